"""Human readable duration parsing.

Expiry settings are written as compact durations such as ``"5m"``, ``"1h30m"`` or
``"1d2h30m10s"``. A bare integer is a number of seconds.
"""

import re
from typing import Optional, Union

DEFAULT_DURATION_SECONDS = 3600

_DURATION_PATTERN = re.compile(
    r"^(?:(?P<days>\d+)d)?(?:(?P<hours>\d+)h)?(?:(?P<minutes>\d+)m)?(?:(?P<seconds>\d+)s)?$"
)

_UNIT_SECONDS = {
    "days": 86400,
    "hours": 3600,
    "minutes": 60,
    "seconds": 1,
}


def parse_duration(
    value: Optional[Union[str, int]], default: int = DEFAULT_DURATION_SECONDS
) -> int:
    """Convert a duration into a number of seconds.

    Args:
        value: Duration string (``"2h"``, ``"1d2h30m10s"``), a bare number of
            seconds (``"120"`` or ``120``), or an empty value
        default: Seconds returned for an empty value

    Returns:
        int: The duration in seconds

    Raises:
        ValueError: If the value is negative or not a recognised duration
    """
    if value is None:
        return default

    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")

    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Duration must not be negative: {value}")
        return value

    text = value.strip().lower()
    if len(text) == 0:
        return default

    if text.isdigit():
        return int(text)

    match = _DURATION_PATTERN.match(text)
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")

    return sum(
        int(amount) * _UNIT_SECONDS[unit]
        for unit, amount in match.groupdict().items()
        if amount is not None
    )
