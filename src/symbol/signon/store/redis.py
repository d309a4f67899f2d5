"""
Redis store.

Each record is stored as its pydantic JSON under a prefixed key with a native
expiry matching ``expires_at``, so Redis reaps stale data by itself and
``purge_expired`` has nothing to do.

Keys (``signon`` is the default prefix)::

    signon:clients                    set of registered client ids
    signon:client:{client_id}         Client
    signon:challenge:{challenge}      Challenge
    signon:code:{auth_code}           AuthCode
    signon:code:{auth_code}:used      marker, set once
    signon:session:{refresh_token}    Session
    signon:session:{refresh_token}:revoked
                                      marker, set once
    signon:blacklist:{token_id}       BlacklistedToken

Challenges are consumed with ``GETDEL``. The used and revoked gates are marker
keys written with ``SET NX``; whichever caller creates the marker wins.
"""

import contextlib
import logging
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional

from pydantic import ValidationError
from redis import asyncio as redis
from redis.exceptions import RedisError

from symbol.signon.oauth.errors import StoreError
from symbol.signon.store.base import (
    AuthCode,
    BlacklistedToken,
    Challenge,
    Client,
    PurgeResult,
    Session,
    Store,
    utcnow,
)

logger = logging.getLogger(__name__)


def normalize_redis_string(value: Any) -> str:
    """
    Normalize Redis value to string, handling bytes conversion.
    """
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


class RedisStore(Store):
    """
    Store backed by a redis-py asyncio client.

    Args:
        redis_client: Connected client; works with or without ``decode_responses``
        prefix: Namespace prepended to every key
    """

    def __init__(self, redis_client: redis.Redis, prefix: str = "signon") -> None:
        self.redis_client = redis_client
        self.prefix = prefix

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix,) + parts)

    @contextlib.asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except (RedisError, OSError, ValidationError) as e:
            logger.debug("store operation %s failed: %s", operation, e)
            raise StoreError(f"{operation} failed: {type(e).__name__}") from e

    async def ping(self) -> bool:
        try:
            async with self._guard("ping"):
                return bool(await self.redis_client.ping())
        except StoreError:
            return False

    async def close(self) -> None:
        await self.redis_client.aclose()

    async def find_client(self, client_id: str) -> Optional[Client]:
        async with self._guard("find_client"):
            raw = await self.redis_client.get(self._key("client", client_id))
            if raw is None:
                return None
            return Client.model_validate_json(raw)

    async def list_clients(self) -> List[Client]:
        async with self._guard("list_clients"):
            client_ids = sorted(
                normalize_redis_string(client_id)
                for client_id in await self.redis_client.smembers(
                    self._key("clients")
                )
            )
            if not client_ids:
                return []
            raw_clients = await self.redis_client.mget(
                [self._key("client", client_id) for client_id in client_ids]
            )
            return [
                Client.model_validate_json(raw)
                for raw in raw_clients
                if raw is not None
            ]

    async def save_client(self, client: Client) -> None:
        async with self._guard("save_client"):
            existing = await self.find_client(client.client_id)
            if existing is not None:
                client = client.model_copy(update={"created_at": existing.created_at})
            async with self.redis_client.pipeline() as redis_pipe:
                redis_pipe.set(
                    self._key("client", client.client_id), client.model_dump_json()
                )
                redis_pipe.sadd(self._key("clients"), client.client_id)
                await redis_pipe.execute()

    async def insert_challenge(self, challenge: Challenge) -> None:
        async with self._guard("insert_challenge"):
            await self.redis_client.set(
                self._key("challenge", challenge.challenge),
                challenge.model_dump_json(),
                ex=challenge.ttl_seconds(),
            )

    async def consume_challenge(
        self, challenge: str, client_id: Optional[str] = None
    ) -> Optional[Challenge]:
        key = self._key("challenge", challenge)
        async with self._guard("consume_challenge"):
            raw = await self.redis_client.getdel(key)
            if raw is None:
                return None

            record = Challenge.model_validate_json(raw)
            now = utcnow()
            if record.is_expired(now):
                return None

            if client_id is not None and record.client_id != client_id:
                # Belongs to another client, put it back for its owner.
                await self.redis_client.set(
                    key, raw, ex=record.ttl_seconds(now), nx=True
                )
                return None

            return record

    async def insert_auth_code(self, auth_code: AuthCode) -> None:
        async with self._guard("insert_auth_code"):
            await self.redis_client.set(
                self._key("code", auth_code.auth_code),
                auth_code.model_dump_json(),
                ex=auth_code.ttl_seconds(),
            )

    async def find_auth_code(self, auth_code: str) -> Optional[AuthCode]:
        async with self._guard("find_auth_code"):
            raw, used_at = await self.redis_client.mget(
                [self._key("code", auth_code), self._key("code", auth_code, "used")]
            )
            if raw is None:
                return None
            record = AuthCode.model_validate_json(raw)
            if used_at is not None:
                record = record.model_copy(
                    update={
                        "used": True,
                        "used_at": datetime.fromisoformat(
                            normalize_redis_string(used_at)
                        ),
                    }
                )
            return record

    async def mark_auth_code_used(self, auth_code: str) -> bool:
        async with self._guard("mark_auth_code_used"):
            raw = await self.redis_client.get(self._key("code", auth_code))
            if raw is None:
                return False
            record = AuthCode.model_validate_json(raw)
            now = utcnow()
            if record.used or record.is_expired(now):
                return False
            marked = await self.redis_client.set(
                self._key("code", auth_code, "used"),
                now.isoformat(),
                ex=record.ttl_seconds(now),
                nx=True,
            )
            return bool(marked)

    async def insert_session(self, session: Session) -> None:
        async with self._guard("insert_session"):
            await self.redis_client.set(
                self._key("session", session.refresh_token),
                session.model_dump_json(),
                ex=session.ttl_seconds(),
            )

    async def find_session(self, refresh_token: str) -> Optional[Session]:
        async with self._guard("find_session"):
            raw, revoked_at = await self.redis_client.mget(
                [
                    self._key("session", refresh_token),
                    self._key("session", refresh_token, "revoked"),
                ]
            )
            if raw is None:
                return None
            record = Session.model_validate_json(raw)
            if revoked_at is not None:
                record = record.model_copy(
                    update={
                        "revoked": True,
                        "revoked_at": datetime.fromisoformat(
                            normalize_redis_string(revoked_at)
                        ),
                    }
                )
            return record

    async def revoke_session(self, refresh_token: str) -> bool:
        async with self._guard("revoke_session"):
            raw = await self.redis_client.get(self._key("session", refresh_token))
            if raw is None:
                return False
            record = Session.model_validate_json(raw)
            if record.revoked:
                return False
            now = utcnow()
            revoked = await self.redis_client.set(
                self._key("session", refresh_token, "revoked"),
                now.isoformat(),
                ex=record.ttl_seconds(now),
                nx=True,
            )
            return bool(revoked)

    async def blacklist_token(self, entry: BlacklistedToken) -> None:
        async with self._guard("blacklist_token"):
            await self.redis_client.set(
                self._key("blacklist", entry.token_id),
                entry.model_dump_json(),
                ex=entry.ttl_seconds(),
                nx=True,
            )

    async def is_token_blacklisted(self, token_id: str) -> bool:
        async with self._guard("is_token_blacklisted"):
            return bool(
                await self.redis_client.exists(self._key("blacklist", token_id))
            )

    async def purge_expired(self, now: Optional[datetime] = None) -> PurgeResult:
        return PurgeResult()
