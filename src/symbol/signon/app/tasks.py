import asyncio
import logging
from typing import NoReturn

from aiohttp import web
import sentry_sdk

from symbol.signon.app.config import (
    HealthGaugeAppKey,
    MetricsClientAppKey,
    SettingsAppKey,
    StoreAppKey,
)
from symbol.signon.oauth.errors import StoreError

logger = logging.getLogger(__name__)


async def tick_health_task(app: web.Application) -> NoReturn:
    """
    Lower the readiness error score by one every 30 seconds and report it.
    """

    logger.info("Starting health gauge task")

    health_gauge = app[HealthGaugeAppKey]
    metrics_client = app[MetricsClientAppKey]
    while True:
        await health_gauge.tick()
        metrics_client.gauge("signon.health.error_score", health_gauge.value)
        await asyncio.sleep(30)


async def store_purge_task(app: web.Application) -> NoReturn:
    """
    Periodically delete expired challenges, codes, sessions and blacklist entries.

    Only the PostgreSQL store needs this; Redis expires keys on its own and its
    ``purge_expired`` returns immediately.
    """

    logger.info("Starting store purge task")

    settings = app[SettingsAppKey]
    store = app[StoreAppKey]
    metrics_client = app[MetricsClientAppKey]
    health_gauge = app[HealthGaugeAppKey]

    while True:
        await asyncio.sleep(settings.purge_interval)

        try:
            result = await store.purge_expired()
        except StoreError as e:
            sentry_sdk.capture_exception(e)
            logger.error("error purging expired records: %s", e)
            await health_gauge.womp()
            metrics_client.increment(
                "signon.task.store_purge.exception",
                1,
                tag_dict={"exception": type(e).__name__},
            )
            continue

        if result.total > 0:
            logger.debug(
                "purged expired records: challenges=%d auth_codes=%d sessions=%d blacklisted_tokens=%d",
                result.challenges,
                result.auth_codes,
                result.sessions,
                result.blacklisted_tokens,
            )
        metrics_client.increment("signon.task.store_purge.count", result.total)
