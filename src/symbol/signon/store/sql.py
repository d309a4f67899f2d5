"""
PostgreSQL store built on SQLAlchemy's asyncio extension.

The atomic gates are single statements so that concurrent requests racing for the
same challenge, code or refresh token cannot both win:

- challenges are consumed with ``DELETE ... RETURNING``
- codes and sessions are flipped with ``UPDATE ... WHERE used/revoked IS false``
  and the row count tells the caller whether it won

Rows are not removed when they expire. ``purge_expired`` is called periodically by
the maintenance task in ``symbol.signon.app.tasks``.
"""

import contextlib
import logging
from datetime import datetime
from typing import AsyncIterator, List, Optional

from sqlalchemy import delete, insert, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from symbol.signon.model.base import Base
from symbol.signon.model.oauth import (
    AccessTokenBlacklist,
    OAuthAuthCode,
    OAuthChallenge,
    OAuthClient,
    OAuthSession,
    insert_blacklist_stmt,
    upsert_client_stmt,
)
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


class SQLStore(Store):
    """
    Store backed by a SQLAlchemy async engine.

    Args:
        engine: Async engine, normally ``postgresql+asyncpg://...``
        session_maker: Optional session factory; one bound to ``engine`` is created
            when omitted
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self.engine = engine
        if session_maker is None:
            session_maker = async_sessionmaker(
                engine, class_=AsyncSession, expire_on_commit=False
            )
        self.session_maker = session_maker

    @contextlib.asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_maker() as database_session:
                async with database_session.begin():
                    yield database_session
        except (SQLAlchemyError, OSError) as e:
            logger.debug("store operation %s failed: %s", operation, e)
            raise StoreError(f"{operation} failed: {type(e).__name__}") from e

    async def create_all(self) -> None:
        """Create the tables directly. Used by tests; deployments use alembic."""
        async with self.engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        try:
            async with self._transaction("ping") as database_session:
                await database_session.execute(text("SELECT 1"))
        except StoreError:
            return False
        return True

    async def close(self) -> None:
        await self.engine.dispose()

    async def find_client(self, client_id: str) -> Optional[Client]:
        async with self._transaction("find_client") as database_session:
            row = (
                await database_session.scalars(
                    select(OAuthClient).where(OAuthClient.client_id == client_id)
                )
            ).first()
            if row is None:
                return None
            return Client.model_validate(row)

    async def list_clients(self) -> List[Client]:
        async with self._transaction("list_clients") as database_session:
            rows = (
                await database_session.scalars(
                    select(OAuthClient).order_by(OAuthClient.client_id)
                )
            ).all()
            return [Client.model_validate(row) for row in rows]

    async def save_client(self, client: Client) -> None:
        async with self._transaction("save_client") as database_session:
            await database_session.execute(
                upsert_client_stmt(
                    client.client_id,
                    list(client.trusted_redirect_uris),
                    client.app_name,
                    client.created_at,
                    client.updated_at,
                )
            )

    async def insert_challenge(self, challenge: Challenge) -> None:
        async with self._transaction("insert_challenge") as database_session:
            await database_session.execute(
                insert(OAuthChallenge).values([challenge.model_dump()])
            )

    async def consume_challenge(
        self, challenge: str, client_id: Optional[str] = None
    ) -> Optional[Challenge]:
        now = utcnow()
        stmt = delete(OAuthChallenge).where(
            OAuthChallenge.challenge == challenge,
            OAuthChallenge.expires_at > now,
        )
        if client_id is not None:
            stmt = stmt.where(OAuthChallenge.client_id == client_id)
        stmt = stmt.returning(OAuthChallenge).execution_options(
            synchronize_session=False
        )

        async with self._transaction("consume_challenge") as database_session:
            row = (await database_session.scalars(stmt)).first()
            if row is None:
                return None
            return Challenge.model_validate(row)

    async def insert_auth_code(self, auth_code: AuthCode) -> None:
        async with self._transaction("insert_auth_code") as database_session:
            await database_session.execute(
                insert(OAuthAuthCode).values([auth_code.model_dump()])
            )

    async def find_auth_code(self, auth_code: str) -> Optional[AuthCode]:
        async with self._transaction("find_auth_code") as database_session:
            row = (
                await database_session.scalars(
                    select(OAuthAuthCode).where(OAuthAuthCode.auth_code == auth_code)
                )
            ).first()
            if row is None:
                return None
            return AuthCode.model_validate(row)

    async def mark_auth_code_used(self, auth_code: str) -> bool:
        now = utcnow()
        stmt = (
            update(OAuthAuthCode)
            .where(
                OAuthAuthCode.auth_code == auth_code,
                OAuthAuthCode.used.is_(False),
                OAuthAuthCode.expires_at > now,
            )
            .values(used=True, used_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction("mark_auth_code_used") as database_session:
            result = await database_session.execute(stmt)
            return result.rowcount == 1

    async def insert_session(self, session: Session) -> None:
        async with self._transaction("insert_session") as database_session:
            await database_session.execute(
                insert(OAuthSession).values([session.model_dump()])
            )

    async def find_session(self, refresh_token: str) -> Optional[Session]:
        async with self._transaction("find_session") as database_session:
            row = (
                await database_session.scalars(
                    select(OAuthSession).where(
                        OAuthSession.refresh_token == refresh_token
                    )
                )
            ).first()
            if row is None:
                return None
            return Session.model_validate(row)

    async def revoke_session(self, refresh_token: str) -> bool:
        now = utcnow()
        stmt = (
            update(OAuthSession)
            .where(
                OAuthSession.refresh_token == refresh_token,
                OAuthSession.revoked.is_(False),
            )
            .values(revoked=True, revoked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction("revoke_session") as database_session:
            result = await database_session.execute(stmt)
            return result.rowcount == 1

    async def blacklist_token(self, entry: BlacklistedToken) -> None:
        async with self._transaction("blacklist_token") as database_session:
            await database_session.execute(insert_blacklist_stmt(entry.model_dump()))

    async def is_token_blacklisted(self, token_id: str) -> bool:
        async with self._transaction("is_token_blacklisted") as database_session:
            row = (
                await database_session.scalars(
                    select(AccessTokenBlacklist.token_id).where(
                        AccessTokenBlacklist.token_id == token_id,
                        AccessTokenBlacklist.expires_at > utcnow(),
                    )
                )
            ).first()
            return row is not None

    async def purge_expired(self, now: Optional[datetime] = None) -> PurgeResult:
        if now is None:
            now = utcnow()

        async with self._transaction("purge_expired") as database_session:
            counts = {}
            for name, model in (
                ("challenges", OAuthChallenge),
                ("auth_codes", OAuthAuthCode),
                ("sessions", OAuthSession),
                ("blacklisted_tokens", AccessTokenBlacklist),
            ):
                result = await database_session.execute(
                    delete(model)
                    .where(model.expires_at <= now)
                    .execution_options(synchronize_session=False)
                )
                counts[name] = result.rowcount
            return PurgeResult(**counts)
