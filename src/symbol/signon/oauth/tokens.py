"""
Access token issuance and verification.

Access tokens are compact HS256 JWTs signed with a shared secret. They are
self-contained: the userinfo endpoint decodes the signer identity from the claims
without consulting the store. Refresh tokens and authorization codes are opaque
random strings and are minted here as well so every secret in the flow comes from
the same source of randomness.

The issuer is pure. Recording rejected tokens in the blacklist is the caller's job.
"""

import hashlib
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional

from jwcrypto import jwk, jwt
from jwcrypto.common import JWException
from pydantic import BaseModel, ValidationError
from ulid import ULID

ACCESS_TOKEN_TYPE = "access_token"
SIGNING_ALGORITHM = "HS256"


class AccessTokenClaims(BaseModel):
    """Claims carried by an access token."""

    sub: str
    """Symbol address of the signer"""

    pub: str
    """Public key of the signer"""

    client_id: str
    iat: int
    exp: int
    jti: str
    type: Literal["access_token"]


@dataclass(frozen=True)
class MintedAccessToken:
    token: str
    jti: str
    expires_at: datetime
    expires_in: int


@dataclass(frozen=True)
class TokenVerification:
    """
    Outcome of verifying a presented access token.

    Attributes:
        token_id: SHA-256 digest of the token string, the blacklist key
        claims: Decoded claims when the token is valid
        reason: Why the token was rejected
        jti: The token's ``jti`` when its signature is authentic
        expires_at: The token's expiry when its signature is authentic
    """

    token_id: str
    claims: Optional[AccessTokenClaims] = None
    reason: Optional[str] = None
    jti: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def valid(self) -> bool:
        return self.claims is not None


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_opaque_token() -> str:
    """Random URL-safe identifier for authorization codes and refresh tokens."""
    return secrets.token_urlsafe(32)


def redact(value: Optional[str], visible: int = 8) -> str:
    """Shorten a secret for log output."""
    if not value:
        return "<none>"
    if len(value) <= visible:
        return "<redacted>"
    return f"{value[:visible]}..."


class TokenIssuer:
    """
    Mints and verifies HS256 access tokens.

    Args:
        secret: Shared signing secret
        expires_in: Access token lifetime in seconds
    """

    def __init__(self, secret: str, expires_in: int) -> None:
        if not secret:
            raise ValueError("A signing secret is required")
        self._key = jwk.JWK.from_password(secret)
        self.expires_in = expires_in

    def mint(
        self,
        address: str,
        public_key: str,
        client_id: str,
        now: Optional[datetime] = None,
    ) -> MintedAccessToken:
        if now is None:
            now = datetime.now(timezone.utc)

        issued_at = int(now.timestamp())
        expires_at = issued_at + self.expires_in
        jti = str(ULID())

        claims = {
            "sub": address,
            "pub": public_key,
            "client_id": client_id,
            "iat": issued_at,
            "exp": expires_at,
            "jti": jti,
            "type": ACCESS_TOKEN_TYPE,
        }

        access_token = jwt.JWT(
            header={"alg": SIGNING_ALGORITHM, "typ": "JWT"}, claims=claims
        )
        access_token.make_signed_token(self._key)

        return MintedAccessToken(
            token=access_token.serialize(),
            jti=jti,
            expires_at=datetime.fromtimestamp(expires_at, timezone.utc),
            expires_in=self.expires_in,
        )

    def verify(self, token: str, now: Optional[datetime] = None) -> TokenVerification:
        """
        Verify the signature, type and expiry of an access token.

        Claim checks are done here rather than by jwcrypto so that an authentic but
        expired token still yields its ``jti`` for the blacklist entry. No clock
        leeway is applied.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        token_id = token_digest(token)

        try:
            validated_token = jwt.JWT(
                jwt=token,
                key=self._key,
                algs=[SIGNING_ALGORITHM],
                check_claims=False,
            )
            raw_claims = json.loads(validated_token.claims)
        except (JWException, ValueError, TypeError) as e:
            return TokenVerification(
                token_id=token_id, reason=f"invalid token: {type(e).__name__}"
            )

        jti = raw_claims.get("jti") if isinstance(raw_claims, dict) else None
        if not isinstance(jti, str):
            jti = None

        try:
            claims = AccessTokenClaims.model_validate(raw_claims)
        except ValidationError:
            return TokenVerification(
                token_id=token_id, reason="invalid claims", jti=jti
            )

        expires_at = datetime.fromtimestamp(claims.exp, timezone.utc)
        if claims.exp <= int(now.timestamp()):
            return TokenVerification(
                token_id=token_id,
                reason="token expired",
                jti=claims.jti,
                expires_at=expires_at,
            )

        return TokenVerification(
            token_id=token_id,
            claims=claims,
            jti=claims.jti,
            expires_at=expires_at,
        )
