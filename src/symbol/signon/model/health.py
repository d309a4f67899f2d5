import asyncio


class HealthGauge:
    """
    Error-burst gauge behind the readiness probe.

    Unexpected server errors (store outages, unhandled exceptions) raise the gauge
    with ``womp``; a background task lowers it by one with ``tick`` every interval.
    While a burst of errors keeps the value above the threshold, ``is_healthy``
    returns False and ``/internal/ready`` reports the instance as not ready.

    Client errors such as an expired challenge or a bad PKCE verifier are normal
    flow control and must not be counted.
    """

    def __init__(self, value: int = 0, health_threshold: int = 100) -> None:
        self._value = value
        self._health_threshold = health_threshold
        self._lock = asyncio.Lock()

    @property
    def value(self) -> int:
        return self._value

    async def womp(self, d=1) -> int:
        async with self._lock:
            self._value += int(d)
            return self._value

    async def tick(self) -> None:
        async with self._lock:
            if self._value > 0:
                self._value -= 1

    async def is_healthy(self) -> bool:
        async with self._lock:
            return self._value <= self._health_threshold
