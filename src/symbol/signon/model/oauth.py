"""Sign-on data models for the PostgreSQL store.

Provides SQLAlchemy tables for registered clients, pending challenges,
authorization codes, refresh-token sessions and rejected access tokens.
"""
from typing import Any, Optional
from datetime import datetime
from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSON, insert

from symbol.signon.model.base import Base, str64, str2048, tokenpk


class OAuthClient(Base):
    """Registered relying-party application.

    Rows are written by the admin CLI and are read-only to the sign-on flow.
    """
    __tablename__ = "oauth_clients"

    client_id: Mapped[str] = mapped_column(String(256), primary_key=True)
    trusted_redirect_uris: Mapped[Any] = mapped_column(JSON, nullable=False)
    app_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class OAuthChallenge(Base):
    """Pending authorize request waiting for a signed transaction."""
    __tablename__ = "oauth_challenges"

    challenge: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(256), nullable=False)
    redirect_uri: Mapped[str2048]
    state: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    code_challenge: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    code_challenge_method: Mapped[Optional[str]] = mapped_column(
        String(16), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )


class OAuthAuthCode(Base):
    """Authorization code bound to a verified signer."""
    __tablename__ = "oauth_auth_codes"

    auth_code: Mapped[tokenpk]
    client_id: Mapped[str] = mapped_column(String(256), nullable=False)
    redirect_uri: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    address: Mapped[str64]
    public_key: Mapped[str64]
    state: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    code_challenge: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    code_challenge_method: Mapped[Optional[str]] = mapped_column(
        String(16), nullable=True
    )
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )


class OAuthSession(Base):
    """Rotating refresh-token session.

    ``session_id`` is a ULID that is safe to log; ``access_token`` holds the jti of
    the access token minted with the session.
    """
    __tablename__ = "oauth_sessions"

    refresh_token: Mapped[tokenpk]
    session_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    client_id: Mapped[str] = mapped_column(String(256), nullable=False)
    address: Mapped[str64]
    public_key: Mapped[str64]
    access_token: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )


class AccessTokenBlacklist(Base):
    """Access token that failed verification, keyed by the digest of the token."""
    __tablename__ = "access_token_blacklist"

    token_id: Mapped[tokenpk]
    jti: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    revoked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )


def upsert_client_stmt(
    client_id: str,
    trusted_redirect_uris: list,
    app_name: Optional[str],
    created_at: datetime,
    updated_at: datetime,
):
    """Create PostgreSQL upsert statement for client registrations.

    Re-registering a client replaces its redirect URIs and name but keeps the
    original creation time.
    """
    return (
        insert(OAuthClient)
        .values(
            [
                {
                    "client_id": client_id,
                    "trusted_redirect_uris": trusted_redirect_uris,
                    "app_name": app_name,
                    "created_at": created_at,
                    "updated_at": updated_at,
                }
            ]
        )
        .on_conflict_do_update(
            index_elements=["client_id"],
            set_={
                "trusted_redirect_uris": trusted_redirect_uris,
                "app_name": app_name,
                "updated_at": updated_at,
            },
        )
    )


def insert_blacklist_stmt(values: dict):
    """Create PostgreSQL insert for a blacklist entry that ignores duplicates."""
    return (
        insert(AccessTokenBlacklist)
        .values([values])
        .on_conflict_do_nothing(index_elements=["token_id"])
    )
