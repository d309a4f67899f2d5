import asyncio
import contextlib
import logging
from time import time
from typing import (
    Optional,
)
from aiohttp import web
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import create_async_engine
import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from symbol.signon.app.config import (
    AllowedOriginsCacheAppKey,
    ClientRegistryAppKey,
    HealthGaugeAppKey,
    MetricsClientAppKey,
    Settings,
    SettingsAppKey,
    SignOnFlowAppKey,
    StartTimeAppKey,
    StoreAppKey,
    StorePurgeTaskAppKey,
    TickHealthTaskAppKey,
    TokenTransportAppKey,
)
from symbol.signon.app.cors import cors_middleware
from symbol.signon.app.handlers.internal import (
    handle_health,
    handle_internal_alive,
    handle_internal_ready,
)
from symbol.signon.app.handlers.oauth import (
    handle_authorize,
    handle_check,
    handle_logout,
    handle_token,
    handle_userinfo,
    handle_verify_signature,
)
from symbol.signon.app.metrics import MetricsClient, create_metrics_client
from symbol.signon.app.tasks import store_purge_task, tick_health_task
from symbol.signon.app.transport import create_token_transport
from symbol.signon.model.health import HealthGauge
from symbol.signon.oauth.clients import AllowedOriginsCache, ClientRegistry
from symbol.signon.oauth.flow import SignOnFlow
from symbol.signon.oauth.signature import SignatureVerifier
from symbol.signon.oauth.tokens import TokenIssuer
from symbol.signon.store.base import Store
from symbol.signon.store.redis import RedisStore
from symbol.signon.store.sql import SQLStore

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> Store:
    """Create the store selected by ``STORE_BACKEND``. Connections open lazily."""
    if settings.store_backend == "redis":
        return RedisStore(redis.Redis.from_url(str(settings.redis_dsn)))
    return SQLStore(create_async_engine(str(settings.pg_dsn)))


def create_signature_verifier(settings: Settings) -> SignatureVerifier:
    from symbol.signon.oauth.symbol_sdk import SymbolSignatureVerifier

    return SymbolSignatureVerifier(settings.symbol_network_type)


async def background_tasks(app):
    logger.info("Starting up")

    await app[MetricsClientAppKey].connect()

    # Load the CORS origins before the first request needs them.
    try:
        await asyncio.wait_for(app[AllowedOriginsCacheAppKey].refresh(), timeout=5)
    except asyncio.TimeoutError:
        logger.warning("Store did not answer at startup, CORS origins load lazily")

    logger.info("Startup complete")

    app[TickHealthTaskAppKey] = asyncio.create_task(tick_health_task(app))
    app[StorePurgeTaskAppKey] = asyncio.create_task(store_purge_task(app))

    yield

    logger.info("Shutting down background tasks")

    app[TickHealthTaskAppKey].cancel()
    app[StorePurgeTaskAppKey].cancel()

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[TickHealthTaskAppKey]

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[StorePurgeTaskAppKey]

    await app[StoreAppKey].close()
    await app[MetricsClientAppKey].close()


@web.middleware
async def access_log_middleware(request: web.Request, handler):
    logger.info("%s %s - %s", request.method, request.path, request.remote)
    return await handler(request)


@web.middleware
async def sentry_middleware(request: web.Request, handler):
    try:
        response = await handler(request)
        return response
    except web.HTTPException:
        raise
    except Exception as e:
        sentry_sdk.capture_exception(e)
        raise e


@web.middleware
async def metrics_middleware(request: web.Request, handler):
    metrics_client = request.app[MetricsClientAppKey]
    request_method: str = request.method

    # Route patterns keep the tag cardinality bounded.
    resource = request.match_info.route.resource
    request_path = resource.canonical if resource is not None else "unmatched"

    start_time: float = time()
    response_status_code = 0

    try:
        response = await handler(request)
        response_status_code = response.status
        return response
    except web.HTTPException as e:
        response_status_code = e.status
        raise
    except Exception as e:
        response_status_code = 500
        metrics_client.increment(
            "signon.server.request.exception",
            1,
            tag_dict={
                "exception": type(e).__name__,
                "path": request_path,
                "method": request_method,
            },
        )
        raise e
    finally:
        metrics_client.timer(
            "signon.server.request.time",
            time() - start_time,
            tag_dict={"path": request_path, "method": request_method},
        )
        metrics_client.increment(
            "signon.server.request.count",
            1,
            tag_dict={
                "path": request_path,
                "method": request_method,
                "status": response_status_code,
            },
        )


async def start_web_server(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    verifier: Optional[SignatureVerifier] = None,
    metrics_client: Optional[MetricsClient] = None,
):
    """
    Build the sign-on application.

    The store, signature verifier and metrics client are created from settings
    unless they are supplied, which is how tests run the server against fakes.
    """

    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=False,
            integrations=[AioHttpIntegration()],
        )

    if store is None:
        store = create_store(settings)
    if verifier is None:
        verifier = create_signature_verifier(settings)
    if metrics_client is None:
        metrics_client = create_metrics_client(
            settings.metrics_backend,
            host=settings.statsd_host,
            port=settings.statsd_port,
            debug=settings.debug,
        )

    app = web.Application(
        middlewares=[
            access_log_middleware,
            cors_middleware,
            metrics_middleware,
            sentry_middleware,
        ]
    )

    client_registry = ClientRegistry(store)

    app[SettingsAppKey] = settings
    app[StartTimeAppKey] = time()
    app[HealthGaugeAppKey] = HealthGauge()
    app[StoreAppKey] = store
    app[MetricsClientAppKey] = metrics_client
    app[ClientRegistryAppKey] = client_registry
    app[AllowedOriginsCacheAppKey] = AllowedOriginsCache(
        client_registry,
        ttl=settings.cors_origins_cache_ttl,
        default_origin=settings.cors_origin,
    )
    app[TokenTransportAppKey] = create_token_transport(
        settings.refresh_token_transport,
        cookie_name=settings.refresh_token_cookie_name,
        max_age=settings.refresh_token_expiration,
        secure=settings.is_production,
    )
    app[SignOnFlowAppKey] = SignOnFlow(
        settings,
        store,
        TokenIssuer(settings.jwt_secret, settings.jwt_expires_in),
        verifier,
        metrics_client,
    )

    app.add_routes(
        [
            web.get("/oauth/authorize", handle_authorize),
            web.get("/oauth/check", handle_check),
            web.post("/oauth/verify-signature", handle_verify_signature),
            web.post("/oauth/token", handle_token),
            web.get("/oauth/userinfo", handle_userinfo),
            web.post("/oauth/logout", handle_logout),
        ]
    )

    app.add_routes(
        [
            web.get("/health", handle_health),
            web.get("/internal/alive", handle_internal_alive),
            web.get("/internal/ready", handle_internal_ready),
        ]
    )

    app.cleanup_ctx.append(background_tasks)

    return app
