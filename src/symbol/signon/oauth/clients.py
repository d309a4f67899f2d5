"""
Client registry and the CORS origin cache derived from it.

Browsers calling the token and userinfo endpoints must come from an origin that
one of the registered clients redirects to. The set of such origins is computed
from every client's trusted redirect URIs and cached, since it is needed on every
cross-origin request but changes only when an operator registers a client.
"""

import logging
import time
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from symbol.signon.oauth.errors import StoreError
from symbol.signon.store.base import Client, Store

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}


def extract_origin(uri: str) -> Optional[str]:
    """
    Return the ``scheme://host[:port]`` origin of an http(s) URI.

    Default ports are dropped and the host is lowercased. Custom schemes (mobile
    deep links) and malformed URIs have no web origin and return None.
    """
    try:
        parsed = urlparse(uri)
        port = parsed.port
    except ValueError:
        return None

    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parsed.hostname:
        return None

    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"

    if port is None or port == DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


class ClientRegistry:
    """Read access to registered clients."""

    def __init__(self, store: Store) -> None:
        self.store = store

    async def find_by_client_id(self, client_id: str) -> Optional[Client]:
        return await self.store.find_client(client_id)

    async def list_allowed_origins(self) -> List[str]:
        """Distinct web origins of every trusted redirect URI, in registration order."""
        origins: List[str] = []
        for client in await self.store.list_clients():
            for uri in client.trusted_redirect_uris:
                origin = extract_origin(uri)
                if origin is not None and origin not in origins:
                    origins.append(origin)
        return origins


class AllowedOriginsCache:
    """
    Snapshot of the allowed CORS origins with a time-to-live.

    ``default_origin`` (``CORS_ORIGIN``) is always allowed. When the store cannot
    be read the previous snapshot keeps being served, or just the default origin
    if there has never been a successful refresh. A failed refresh does not reset
    the timer, so the next request tries again.

    Concurrent refreshes are harmless; the last one to finish wins.
    """

    def __init__(
        self,
        registry: ClientRegistry,
        ttl: int = 300,
        default_origin: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.ttl = ttl
        self.default_origin = default_origin
        self._clock = clock
        self._origins: Optional[Tuple[str, ...]] = None
        self._last_refreshed: Optional[float] = None

    @property
    def origins(self) -> Tuple[str, ...]:
        if self._origins is None:
            return self._with_default([])
        return self._origins

    @property
    def last_refreshed(self) -> Optional[float]:
        return self._last_refreshed

    def _with_default(self, origins: Sequence[str]) -> Tuple[str, ...]:
        if self.default_origin and self.default_origin not in origins:
            return tuple(origins) + (self.default_origin,)
        return tuple(origins)

    def is_stale(self) -> bool:
        if self._last_refreshed is None:
            return True
        return self._clock() - self._last_refreshed >= self.ttl

    async def refresh(self) -> Tuple[str, ...]:
        try:
            origins = await self.registry.list_allowed_origins()
        except StoreError as e:
            if self._origins is not None:
                logger.warning("Using stale CORS origins cache: %s", e)
            else:
                logger.error("Failed to load CORS origins: %s", e)
            return self.origins

        self._origins = self._with_default(origins)
        self._last_refreshed = self._clock()
        logger.debug("CORS origins cache updated: %d origins", len(self._origins))
        return self._origins

    async def refresh_if_stale(self) -> Tuple[str, ...]:
        if self.is_stale():
            return await self.refresh()
        return self.origins

    async def is_allowed(self, origin: str) -> bool:
        return origin in await self.refresh_if_stale()
