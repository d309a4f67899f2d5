import pytest

from symbol.signon.oauth.clients import (
    AllowedOriginsCache,
    ClientRegistry,
    extract_origin,
)
from symbol.signon.oauth.errors import StoreError
from symbol.signon.store.base import Client


@pytest.mark.parametrize(
    "uri,origin",
    [
        ("https://app.example.com/callback", "https://app.example.com"),
        ("https://App.Example.com:443/cb?x=1", "https://app.example.com"),
        ("https://app.example.com:8443/cb", "https://app.example.com:8443"),
        ("http://localhost:3000/cb", "http://localhost:3000"),
        ("http://localhost:80/cb", "http://localhost"),
        ("http://[::1]:8080/cb", "http://[::1]:8080"),
        ("myapp://callback", None),
        ("not a uri", None),
        ("https://example.com:notaport/", None),
    ],
)
def test_extract_origin(uri, origin):
    assert extract_origin(uri) == origin


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FlakyRegistry:
    """Registry whose store can be switched off."""

    def __init__(self, origins):
        self.origins = origins
        self.available = True
        self.calls = 0

    async def list_allowed_origins(self):
        self.calls += 1
        if not self.available:
            raise StoreError("list_clients failed: ConnectionError")
        return list(self.origins)


async def test_registry_lists_distinct_origins(redis_store):
    await redis_store.save_client(
        Client(
            client_id="a-app",
            trusted_redirect_uris=[
                "https://a.example.com/cb",
                "https://a.example.com/other",
                "myapp://callback",
            ],
        )
    )
    await redis_store.save_client(
        Client(
            client_id="b-app",
            trusted_redirect_uris=["https://b.example.com/cb", "https://a.example.com/x"],
        )
    )

    registry = ClientRegistry(redis_store)
    assert await registry.list_allowed_origins() == [
        "https://a.example.com",
        "https://b.example.com",
    ]
    assert (await registry.find_by_client_id("a-app")).client_id == "a-app"
    assert await registry.find_by_client_id("missing") is None


async def test_cache_refreshes_after_ttl():
    registry = FlakyRegistry(["https://a.example.com"])
    clock = FakeClock()
    cache = AllowedOriginsCache(registry, ttl=300, clock=clock)

    assert cache.is_stale()
    assert await cache.is_allowed("https://a.example.com")
    assert registry.calls == 1

    registry.origins = ["https://b.example.com"]
    clock.now += 299
    assert await cache.is_allowed("https://a.example.com")
    assert registry.calls == 1

    clock.now += 1
    assert await cache.is_allowed("https://b.example.com")
    assert not await cache.is_allowed("https://a.example.com")
    assert registry.calls == 2


async def test_cache_includes_default_origin():
    cache = AllowedOriginsCache(
        FlakyRegistry(["https://a.example.com"]),
        default_origin="https://portal.example.com",
        clock=FakeClock(),
    )

    assert await cache.refresh() == (
        "https://a.example.com",
        "https://portal.example.com",
    )


async def test_cache_serves_stale_snapshot_when_store_fails():
    registry = FlakyRegistry(["https://a.example.com"])
    clock = FakeClock()
    cache = AllowedOriginsCache(registry, ttl=10, clock=clock)
    await cache.refresh()
    refreshed_at = cache.last_refreshed

    registry.available = False
    clock.now += 60
    assert await cache.is_allowed("https://a.example.com")
    assert cache.last_refreshed == refreshed_at
    assert cache.is_stale()


async def test_cache_falls_back_to_default_origin_without_snapshot():
    registry = FlakyRegistry(["https://a.example.com"])
    registry.available = False
    cache = AllowedOriginsCache(
        registry, default_origin="https://portal.example.com", clock=FakeClock()
    )

    assert await cache.is_allowed("https://portal.example.com")
    assert not await cache.is_allowed("https://a.example.com")
    assert cache.last_refreshed is None
