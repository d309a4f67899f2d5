import asyncio
from datetime import datetime, timezone
import logging
import resource
from time import time

from aiohttp import web

from symbol.signon.app.config import (
    HealthGaugeAppKey,
    SettingsAppKey,
    StartTimeAppKey,
    StoreAppKey,
)

logger = logging.getLogger(__name__)

STORE_PING_TIMEOUT = 3


async def check_store_connection(request: web.Request) -> bool:
    store = request.app[StoreAppKey]
    try:
        return await asyncio.wait_for(store.ping(), timeout=STORE_PING_TIMEOUT)
    except asyncio.TimeoutError:
        logger.info("store ping timeout after %d seconds", STORE_PING_TIMEOUT)
        return False


async def handle_health(request: web.Request):
    """
    Liveness and store connectivity.

    Returns 200 with ``status: OK`` when the store answers a ping, otherwise 503
    with ``status: DEGRADED``.
    """
    settings = request.app[SettingsAppKey]

    database_connected = await check_store_connection(request)
    usage = resource.getrusage(resource.RUSAGE_SELF)

    health_status = {
        "status": "OK" if database_connected else "DEGRADED",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.version,
        "uptime": time() - request.app[StartTimeAppKey],
        "database": "connected" if database_connected else "disconnected",
        "memory": {"max_rss": usage.ru_maxrss},
        "environment": settings.environment,
    }
    return web.json_response(
        health_status, status=200 if database_connected else 503
    )


async def handle_internal_ready(request: web.Request):
    health_gauge = request.app[HealthGaugeAppKey]
    if await health_gauge.is_healthy():
        return web.Response(status=200)
    return web.Response(status=503)


async def handle_internal_alive(request: web.Request):
    return web.Response(status=200)
