"""
Configuration Module for the Sign-On Service

This module defines the configuration of the sign-on service, using Pydantic for
settings validation and dependency injection through AppKeys.

The Settings class is loaded from environment variables with defaults suitable for
development. Every component reads settings and shared resources through typed
AppKeys rather than module-level globals.

Key configuration areas include:
- Environment and networking
- Store backend selection and connection strings
- Token signing and expiry policy
- Refresh token transport
- CORS
- Monitoring and observability
"""

import asyncio
import logging
from typing import Final, Literal, Optional

from aiohttp import web
from pydantic import (
    AliasChoices,
    Field,
    PostgresDsn,
    RedisDsn,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings

from symbol.signon.app.metrics import MetricsClient
from symbol.signon.app.transport import TokenTransport
from symbol.signon.model.health import HealthGauge
from symbol.signon.oauth.clients import AllowedOriginsCache, ClientRegistry
from symbol.signon.oauth.duration import parse_duration
from symbol.signon.oauth.flow import SignOnFlow
from symbol.signon.store.base import Store

logger = logging.getLogger(__name__)

DEVELOPMENT_JWT_SECRET = "insecure-development-secret"


class Settings(BaseSettings):
    """
    Application settings for the sign-on service.

    Durations (``JWT_EXPIRES_IN``, ``CHALLENGE_EXPIRATION``, ...) accept compact
    strings such as ``"3m"`` or ``"1d2h"`` as well as a bare number of seconds, and
    are stored as seconds.
    """

    # Environment and debugging settings
    debug: bool = False
    """
    Enable debug mode for verbose logging.
    Set with DEBUG=true environment variable.
    """

    environment: str = Field(
        "development",
        validation_alias=AliasChoices("environment", "node_env"),
    )
    """
    Deployment environment. ``production`` enables the HTTPS-only redirect policy
    and Secure cookies.
    Set with ENVIRONMENT or NODE_ENV environment variables.
    """

    http_port: int = Field(alias="port", default=3000)
    """
    HTTP port for the service to listen on.
    Set with PORT environment variable.
    """

    version: str = "1.0.0"
    """Service version reported by the health endpoint"""

    # Store settings
    store_backend: Literal["postgres", "redis"] = "postgres"
    """
    Which store holds clients, challenges, codes and sessions.
    Set with STORE_BACKEND environment variable.
    """

    pg_dsn: PostgresDsn = Field(
        "postgresql+asyncpg://postgres:password@db/signon",
        validation_alias=AliasChoices("pg_dsn", "database_url"),
    )  # type: ignore
    """
    PostgreSQL connection string.
    Set with PG_DSN or DATABASE_URL environment variables.
    """

    redis_dsn: RedisDsn = Field(
        "redis://valkey:6379/1?decode_responses=True",
        validation_alias=AliasChoices("redis_dsn", "redis_url"),
    )  # type: ignore
    """
    Redis connection string.
    Set with REDIS_DSN or REDIS_URL environment variables.
    """

    purge_interval: int = 60
    """
    Seconds between sweeps of expired rows in the PostgreSQL store.
    Set with PURGE_INTERVAL environment variable.
    """

    # Token settings
    jwt_secret: Optional[str] = None
    """
    Shared HS256 secret for access tokens. Required in production.
    Set with JWT_SECRET environment variable.
    """

    jwt_expires_in: int = 3600
    """Access token lifetime. Set with JWT_EXPIRES_IN. Default: 1h"""

    challenge_expiration: int = 180
    """Challenge lifetime. Set with CHALLENGE_EXPIRATION. Default: 3m"""

    authcode_expiration: int = 120
    """Authorization code lifetime. Set with AUTHCODE_EXPIRATION. Default: 2m"""

    refresh_token_expiration: int = 2592000
    """Refresh token lifetime. Set with REFRESH_TOKEN_EXPIRATION. Default: 30d"""

    allow_plain_pkce: bool = False
    """
    Accept the ``plain`` PKCE method in addition to ``S256``.
    Set with ALLOW_PLAIN_PKCE environment variable.
    """

    refresh_token_transport: Literal["body", "cookie"] = "body"
    """
    Return the refresh token in the JSON body or as an HttpOnly cookie.
    Set with REFRESH_TOKEN_TRANSPORT environment variable.
    """

    refresh_token_cookie_name: str = "refresh_token"
    """Set with REFRESH_TOKEN_COOKIE_NAME environment variable."""

    # Symbol network
    symbol_network_type: str = "testnet"
    """
    Network that signed transactions must declare (``testnet`` or ``mainnet``).
    Set with SYMBOL_NETWORK_TYPE environment variable.
    """

    # CORS
    cors_origin: Optional[str] = None
    """
    Origin that is always allowed, in addition to those of registered clients.
    Set with CORS_ORIGIN environment variable.
    """

    cors_origins_cache_ttl: int = 300
    """
    Seconds the allowed origin list is cached for.
    Set with CORS_ORIGINS_CACHE_TTL environment variable.
    """

    # Monitoring and error reporting
    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    metrics_backend: Literal["telegraf", "none"] = "none"
    """
    Metrics backend. Set with METRICS_BACKEND environment variable.
    """

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """Set with TELEGRAF_HOST environment variable."""

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """Set with TELEGRAF_PORT environment variable."""

    @field_validator(
        "jwt_expires_in",
        "challenge_expiration",
        "authcode_expiration",
        "refresh_token_expiration",
        "cors_origins_cache_ttl",
        mode="before",
    )
    @classmethod
    def decode_duration(cls, v, info):
        """Accept ``"5m"`` style durations; an empty value keeps the field default."""
        default = cls.model_fields[info.field_name].default
        return parse_duration(v, default=default)

    @field_validator("environment", mode="before")
    @classmethod
    def normalize_environment(cls, v) -> str:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def require_production_secret(self) -> "Settings":
        if self.jwt_secret:
            return self
        if self.is_production:
            raise ValueError("JWT_SECRET must be set in production")
        logger.warning("JWT_SECRET is not set, using an insecure development secret")
        self.jwt_secret = DEVELOPMENT_JWT_SECRET
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Application context keys for dependency injection
SettingsAppKey: Final = web.AppKey("settings", Settings)
"""AppKey for accessing the application settings"""

StoreAppKey: Final = web.AppKey("store", Store)
"""AppKey for accessing the persistence backend"""

SignOnFlowAppKey: Final = web.AppKey("sign_on_flow", SignOnFlow)
"""AppKey for accessing the authorization state machine"""

ClientRegistryAppKey: Final = web.AppKey("client_registry", ClientRegistry)
"""AppKey for accessing the client registry"""

AllowedOriginsCacheAppKey: Final = web.AppKey(
    "allowed_origins_cache", AllowedOriginsCache
)
"""AppKey for accessing the CORS allowed origins cache"""

TokenTransportAppKey: Final = web.AppKey("token_transport", TokenTransport)
"""AppKey for accessing the refresh token transport"""

MetricsClientAppKey: Final = web.AppKey("metrics_client", MetricsClient)
"""AppKey for accessing the metrics client"""

HealthGaugeAppKey: Final = web.AppKey("health_gauge", HealthGauge)
"""AppKey for accessing the health monitoring gauge"""

StartTimeAppKey: Final = web.AppKey("start_time", float)
"""AppKey for the process start time, used for uptime reporting"""

TickHealthTaskAppKey: Final = web.AppKey("tick_health_task", asyncio.Task[None])
"""AppKey for the background task that monitors service health"""

StorePurgeTaskAppKey: Final = web.AppKey("store_purge_task", asyncio.Task[None])
"""AppKey for the background task that removes expired store records"""
