"""
Metrics for the sign-on service.

Call sites only see ``MetricsClient``; ``METRICS_BACKEND`` picks the StatsD
(Telegraf tag format) backend or the no-op client.

Metric names:
- signon.server.request.{count,time,exception}: per HTTP request, tagged with the
  route pattern, method and status
- signon.oauth.<operation>.{count,time}: per sign-on flow operation, tagged with
  ``result`` (``success`` or the OAuth error code)
- signon.oauth.unexpected_exception: handler errors that became a 500
- signon.task.store_purge.{count,exception}: expired record sweeps
- signon.health.error_score: current value of the readiness gauge
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

from aio_statsd import TelegrafStatsdClient

logger = logging.getLogger(__name__)

Number = Union[int, float]
Tags = Optional[Dict[str, Any]]


class MetricsClient(ABC):
    @abstractmethod
    def increment(self, name: str, value: Number = 1, tag_dict: Tags = None) -> None:
        """Add ``value`` to a counter."""

    @abstractmethod
    def gauge(self, name: str, value: Number, tag_dict: Tags = None) -> None:
        pass

    @abstractmethod
    def timer(self, name: str, value: Number, tag_dict: Tags = None) -> None:
        """Record a duration in seconds."""

    async def connect(self) -> None:
        """Open the backend socket. Called once from the app's cleanup context."""

    @abstractmethod
    async def close(self) -> None:
        pass


class StatsdMetricsClient(MetricsClient):
    """Sends metrics through aio-statsd with Telegraf style tags."""

    def __init__(self, statsd_client: TelegrafStatsdClient):
        self.client = statsd_client

    def increment(self, name: str, value: Number = 1, tag_dict: Tags = None) -> None:
        self.client.increment(name, value, tag_dict=tag_dict or {})

    def gauge(self, name: str, value: Number, tag_dict: Tags = None) -> None:
        self.client.gauge(name, value, tag_dict=tag_dict or {})

    def timer(self, name: str, value: Number, tag_dict: Tags = None) -> None:
        self.client.timer(name, value, tag_dict=tag_dict or {})

    async def connect(self) -> None:
        await self.client.connect()

    async def close(self) -> None:
        # A metrics socket that is already gone must not fail shutdown.
        try:
            await self.client.close()
        except Exception as e:
            logger.warning("error closing statsd client: %s", e)


class NoOpMetricsClient(MetricsClient):
    def increment(self, name: str, value: Number = 1, tag_dict: Tags = None) -> None:
        pass

    def gauge(self, name: str, value: Number, tag_dict: Tags = None) -> None:
        pass

    def timer(self, name: str, value: Number, tag_dict: Tags = None) -> None:
        pass

    async def close(self) -> None:
        pass


def create_metrics_client(
    backend: str,
    host: str = "localhost",
    port: int = 8125,
    debug: bool = False,
) -> MetricsClient:
    """
    Build the client for ``METRICS_BACKEND``.

    ``telegraf`` sends to the StatsD listener at ``host:port``; ``none`` records
    nothing. Any other value raises ``ValueError`` so a typo fails at startup.
    """
    backend = backend.lower()

    if backend == "telegraf":
        return StatsdMetricsClient(
            TelegrafStatsdClient(host=host, port=port, debug=debug)
        )

    if backend == "none":
        logger.info("Metrics collection disabled")
        return NoOpMetricsClient()

    raise ValueError(
        f"Invalid metrics backend: {backend}. Supported backends: 'telegraf', 'none'"
    )
