"""
Canonical records and the persistence interface.

Every backend stores the same five records. Each record carries an absolute
``expires_at``; backends use it to let their own expiry machinery remove stale
data, but callers must still check ``is_expired`` before trusting a record.

The single-use guarantees of the flow rest on three atomic operations that every
backend must provide:

- ``consume_challenge``: delete-and-return of a live challenge
- ``mark_auth_code_used``: set ``used`` only if it was not set
- ``revoke_session``: set ``revoked`` only if it was not set
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class ExpiringRecord(Record):
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def ensure_expiry_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if now is None:
            now = utcnow()
        return self.expires_at <= now

    def ttl_seconds(self, now: Optional[datetime] = None) -> int:
        """Whole seconds until expiry, never less than one."""
        if now is None:
            now = utcnow()
        return max(1, int((self.expires_at - now).total_seconds()))


class Client(Record):
    """A registered relying-party application."""

    client_id: str
    trusted_redirect_uris: List[str] = Field(default_factory=list)
    app_name: Optional[str] = None

    @field_validator("trusted_redirect_uris", mode="before")
    @classmethod
    def normalize_redirect_uris(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    def trusts(self, redirect_uri: str) -> bool:
        """Exact string match against the trusted redirect URIs."""
        return redirect_uri in self.trusted_redirect_uris


class Challenge(ExpiringRecord):
    """A single authorize request waiting for a signed response."""

    challenge: str
    client_id: str
    redirect_uri: str
    state: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None


class AuthCode(ExpiringRecord):
    """Proof that a signature was verified for a specific signer."""

    auth_code: str
    client_id: str
    redirect_uri: Optional[str] = None
    address: str
    public_key: str
    state: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    used: bool = False
    used_at: Optional[datetime] = None


class Session(ExpiringRecord):
    """The renewable credential behind a refresh token."""

    refresh_token: str
    session_id: str
    client_id: str
    address: str
    public_key: str
    access_token: Optional[str] = None
    """``jti`` of the access token minted alongside this session"""

    revoked: bool = False
    revoked_at: Optional[datetime] = None


class BlacklistedToken(ExpiringRecord):
    """An access token that failed verification."""

    token_id: str
    jti: Optional[str] = None
    reason: Optional[str] = None
    revoked_at: datetime = Field(default_factory=utcnow)


class PurgeResult(BaseModel):
    challenges: int = 0
    auth_codes: int = 0
    sessions: int = 0
    blacklisted_tokens: int = 0

    @property
    def total(self) -> int:
        return self.challenges + self.auth_codes + self.sessions + self.blacklisted_tokens


class Store(ABC):
    """
    Persistence interface used by the sign-on flow.

    Implementations raise ``StoreError`` for any driver failure so callers can
    map infrastructure problems to a generic server error.
    """

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the backing store is reachable."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the store."""

    # Clients

    @abstractmethod
    async def find_client(self, client_id: str) -> Optional[Client]:
        pass

    @abstractmethod
    async def list_clients(self) -> List[Client]:
        pass

    @abstractmethod
    async def save_client(self, client: Client) -> None:
        """Insert or replace a client registration."""

    # Challenges

    @abstractmethod
    async def insert_challenge(self, challenge: Challenge) -> None:
        pass

    @abstractmethod
    async def consume_challenge(
        self, challenge: str, client_id: Optional[str] = None
    ) -> Optional[Challenge]:
        """
        Atomically remove and return a challenge that has not expired.

        When ``client_id`` is given the challenge must belong to that client.
        Returns None if no matching live challenge exists; a challenge owned by
        another client is left in place.
        """

    # Authorization codes

    @abstractmethod
    async def insert_auth_code(self, auth_code: AuthCode) -> None:
        pass

    @abstractmethod
    async def find_auth_code(self, auth_code: str) -> Optional[AuthCode]:
        pass

    @abstractmethod
    async def mark_auth_code_used(self, auth_code: str) -> bool:
        """Set ``used`` on an unused code. Returns False if it was already used or is missing."""

    # Sessions

    @abstractmethod
    async def insert_session(self, session: Session) -> None:
        pass

    @abstractmethod
    async def find_session(self, refresh_token: str) -> Optional[Session]:
        pass

    @abstractmethod
    async def revoke_session(self, refresh_token: str) -> bool:
        """Set ``revoked`` on a live session. Returns False if it was already revoked or is missing."""

    # Access token blacklist

    @abstractmethod
    async def blacklist_token(self, entry: BlacklistedToken) -> None:
        """Record a rejected token. Recording the same token twice is not an error."""

    @abstractmethod
    async def is_token_blacklisted(self, token_id: str) -> bool:
        pass

    # Maintenance

    @abstractmethod
    async def purge_expired(self, now: Optional[datetime] = None) -> PurgeResult:
        """Delete expired records. Backends with native key expiry may do nothing."""
