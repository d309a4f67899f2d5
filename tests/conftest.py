"""
Shared test configuration and fixtures for the sign-on tests.

Provides the store backends (fakeredis always, PostgreSQL when reachable), and a
sign-on flow wired to a fake signature verifier.
"""

import os
import uuid

import fakeredis.aioredis
import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from symbol.signon.app.config import Settings
from symbol.signon.oauth.flow import SignOnFlow
from symbol.signon.oauth.tokens import TokenIssuer
from symbol.signon.store.base import Client
from symbol.signon.store.redis import RedisStore
from symbol.signon.store.sql import SQLStore
from tests.test_helpers import (
    TEST_CLIENT_ID,
    TEST_JWT_SECRET,
    TEST_REDIRECT_URI,
    FakeSignatureVerifier,
)


# Test database configuration
TEST_DB_HOST = os.getenv("TEST_DB_HOST", "postgres")
TEST_DB_PORT = os.getenv("TEST_DB_PORT", "5432")
TEST_DB_USER = os.getenv("TEST_DB_USER", "postgres")
TEST_DB_PASSWORD = os.getenv("TEST_DB_PASSWORD", "password")

# Admin URL for database creation/deletion (connects to postgres database)
ADMIN_DATABASE_URL = f"postgresql+asyncpg://{TEST_DB_USER}:{TEST_DB_PASSWORD}@{TEST_DB_HOST}:{TEST_DB_PORT}/postgres"


async def check_postgres_available():
    """Check if PostgreSQL is available for testing."""
    try:
        admin_engine = create_async_engine(ADMIN_DATABASE_URL, echo=False)
        async with admin_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        await admin_engine.dispose()
        return True
    except Exception:
        return False


@pytest_asyncio.fixture(scope="function")
async def test_database():
    """Create and clean up test database for each test function."""
    if not await check_postgres_available():
        pytest.skip("PostgreSQL database not available for testing")

    # Use a unique database name for each test to avoid conflicts
    unique_db_name = f"signon_test_{uuid.uuid4().hex[:8]}"
    unique_db_url = (
        f"postgresql+asyncpg://{TEST_DB_USER}:{TEST_DB_PASSWORD}@"
        f"{TEST_DB_HOST}:{TEST_DB_PORT}/{unique_db_name}"
    )

    admin_engine = create_async_engine(
        ADMIN_DATABASE_URL, echo=False, isolation_level="AUTOCOMMIT"
    )

    try:
        async with admin_engine.connect() as conn:
            await conn.execute(text(f"CREATE DATABASE {unique_db_name}"))

        yield unique_db_url

    finally:
        async with admin_engine.connect() as conn:
            await conn.execute(text(f"DROP DATABASE IF EXISTS {unique_db_name}"))
        await admin_engine.dispose()


@pytest_asyncio.fixture
async def sql_store(test_database):
    """SQLStore on a fresh PostgreSQL database with the tables created."""
    store = SQLStore(create_async_engine(test_database, echo=False))
    await store.create_all()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def fake_redis_client():
    """Provide fake Redis client for unit tests."""
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def redis_store(fake_redis_client):
    return RedisStore(fake_redis_client)


@pytest.fixture
def settings():
    return Settings(
        jwt_secret=TEST_JWT_SECRET,
        environment="development",
        store_backend="redis",
        refresh_token_transport="body",
        allow_plain_pkce=False,
        symbol_network_type="testnet",
        cors_origin=None,
    )


@pytest.fixture
def verifier():
    return FakeSignatureVerifier()


@pytest.fixture
def token_issuer(settings):
    return TokenIssuer(settings.jwt_secret, settings.jwt_expires_in)


@pytest_asyncio.fixture
async def registered_client(redis_store):
    client = Client(
        client_id=TEST_CLIENT_ID,
        trusted_redirect_uris=[TEST_REDIRECT_URI, "myapp://callback"],
        app_name="Demo App",
    )
    await redis_store.save_client(client)
    return client


@pytest.fixture
def flow(settings, redis_store, token_issuer, verifier):
    return SignOnFlow(settings, redis_store, token_issuer, verifier)
