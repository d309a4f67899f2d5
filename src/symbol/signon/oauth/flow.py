"""
Authorization-code lifecycle.

A sign-on moves through these states::

    INIT -> CHALLENGED -> SIGNATURE_VERIFIED -> CODE_ISSUED -> TOKEN_ISSUED
         -> (ACTIVE <-> REFRESHED) -> REVOKED

and any failed check moves it to REJECTED, which is reported as an ``OAuthError``.

- ``authorize`` validates the client and its redirect URI and stores a one-time
  challenge (CHALLENGED).
- ``verify_signature`` checks the signed transfer transaction that embeds the
  challenge, consumes the challenge and stores an authorization code bound to the
  signer (SIGNATURE_VERIFIED, CODE_ISSUED).
- ``exchange_code`` redeems the code, checking PKCE and state, and returns an
  access token and a refresh token (TOKEN_ISSUED).
- ``refresh`` revokes the presented session and issues a new one (REFRESHED).
- ``logout`` revokes a session (REVOKED).
- ``userinfo`` decodes the signer identity from a valid access token.

Every single-use transition is decided by one atomic store operation, so two
requests racing to redeem the same challenge, code or refresh token can never
both succeed.
"""

import functools
import logging
from datetime import datetime, timedelta
from time import time
from typing import TYPE_CHECKING, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse
import uuid

from multidict import MultiMapping
from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

from symbol.signon.app.metrics import MetricsClient, NoOpMetricsClient
from symbol.signon.oauth.errors import (
    OAuthError,
    SignatureVerificationError,
    StoreError,
)
from symbol.signon.oauth.message import decode_signed_message
from symbol.signon.oauth.pkce import (
    PLAIN,
    S256,
    UnsupportedPKCEMethod,
    verify_code_verifier,
)
from symbol.signon.oauth.signature import SignatureVerifier
from symbol.signon.oauth.tokens import (
    TokenIssuer,
    TokenVerification,
    generate_opaque_token,
    redact,
    token_digest,
)
from symbol.signon.store.base import (
    AuthCode,
    BlacklistedToken,
    Challenge,
    Client,
    Session,
    Store,
    utcnow,
)

if TYPE_CHECKING:
    from symbol.signon.app.config import Settings

logger = logging.getLogger(__name__)

SUPPORTED_RESPONSE_TYPES = ("code",)
AUTHORIZATION_CODE_GRANT = "authorization_code"
REFRESH_TOKEN_GRANT = "refresh_token"
LOOPBACK_HOSTS = ("localhost", "127.0.0.1")
UNKNOWN_APP_NAME = "Unknown App"

PKCE_CHALLENGE_ALPHABET = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
)


class AuthorizeResponse(BaseModel):
    client_id: str
    redirect_uri: str
    challenge: str
    app_name: str


class CheckResponse(BaseModel):
    valid: bool = True
    app_name: str


class IssuedCode(BaseModel):
    """An authorization code handed back to the client application."""

    code: str
    expires_in: int
    state: Optional[str] = None
    redirect_uri: Optional[str] = None

    def redirect_location(self) -> Optional[str]:
        """
        ``redirect_uri`` with ``code`` and ``state`` appended to its query.

        Existing query parameters are kept. Returns None when there is nowhere to
        redirect to.
        """
        if not self.redirect_uri:
            return None

        parsed_destination = urlparse(self.redirect_uri)
        query = parse_qsl(parsed_destination.query, keep_blank_values=True)
        query.append(("code", self.code))
        if self.state:
            query.append(("state", self.state))
        return urlunparse(parsed_destination._replace(query=urlencode(query)))


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    expires_in: int


class UserInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str
    public_key: str = Field(serialization_alias="publicKey")
    network: str


class LogoutResponse(BaseModel):
    status: str = "ok"
    message: str = "refresh token revoked"


def is_valid_redirect_uri(redirect_uri: str, production: bool) -> bool:
    """
    Check a redirect URI against the deployment policy.

    ``https`` URIs are always accepted. ``http`` is accepted only for a loopback
    host and only outside production. Other schemes (mobile deep links such as
    ``myapp://callback``) are accepted as long as the URI is absolute.
    """
    if any(c.isspace() for c in redirect_uri):
        return False

    try:
        parsed = urlparse(redirect_uri)
        hostname = parsed.hostname
    except ValueError:
        return False

    scheme = parsed.scheme.lower()
    if not scheme:
        return False

    if scheme == "https":
        return hostname is not None
    if scheme == "http":
        return not production and hostname in LOOPBACK_HOSTS
    return True


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def _single_value(query: MultiMapping[str], name: str) -> Optional[str]:
    values = query.getall(name, [])
    if len(values) == 0:
        return None
    if len(values) > 1:
        raise OAuthError.invalid_request(
            "Parameters must be single values, not arrays"
        )
    return values[0]


def _carry_forward(name: str, stored: Optional[str], signed: Optional[str]) -> Optional[str]:
    if stored and signed and stored != signed:
        raise OAuthError.invalid_request(
            f"{name} in the signed message does not match the authorization request"
        )
    return stored or signed


def _instrumented(operation: str):
    """Count and time a flow operation, tagging failures with their error code."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self: "SignOnFlow", *args, **kwargs):
            start_time = time()
            result = "success"
            try:
                return await func(self, *args, **kwargs)
            except OAuthError as e:
                result = e.error
                raise
            finally:
                self.metrics_client.timer(
                    f"signon.oauth.{operation}.time", time() - start_time
                )
                self.metrics_client.increment(
                    f"signon.oauth.{operation}.count",
                    1,
                    tag_dict={"result": result},
                )

        return wrapper

    return decorator


class SignOnFlow:
    """
    The sign-on state machine.

    Args:
        settings: Application settings; expiry values are in seconds
        store: Persistence backend
        issuer: Access token issuer
        verifier: Signed transaction verifier
        metrics_client: Metrics sink, a no-op client when omitted
    """

    def __init__(
        self,
        settings: "Settings",
        store: Store,
        issuer: TokenIssuer,
        verifier: SignatureVerifier,
        metrics_client: Optional[MetricsClient] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.issuer = issuer
        self.verifier = verifier
        self.metrics_client = metrics_client or NoOpMetricsClient()

    def _database_error(self, operation: str, error: StoreError) -> OAuthError:
        logger.error("Database query failed: %s (%s)", error, operation)
        return OAuthError.database_error()

    async def _validate_authorize_request(self, query: MultiMapping[str]):
        response_type = _single_value(query, "response_type")
        client_id = _single_value(query, "client_id")
        redirect_uri = _single_value(query, "redirect_uri")

        if response_type is None or client_id is None or redirect_uri is None:
            raise OAuthError.invalid_request(
                "Missing required parameters: response_type, client_id, redirect_uri"
            )

        if response_type not in SUPPORTED_RESPONSE_TYPES:
            raise OAuthError.unsupported_response_type()

        if len(client_id) == 0 or len(redirect_uri) == 0:
            raise OAuthError.invalid_request(
                "client_id and redirect_uri cannot be empty"
            )

        if not is_valid_redirect_uri(redirect_uri, self.settings.is_production):
            raise OAuthError.invalid_request("redirect_uri must be a valid URL")

        state = _single_value(query, "state") or None
        code_challenge = _single_value(query, "code_challenge") or None
        code_challenge_method = _single_value(query, "code_challenge_method") or None

        if code_challenge is None:
            if code_challenge_method is not None:
                raise OAuthError.invalid_request(
                    "code_challenge_method requires code_challenge"
                )
        else:
            if code_challenge_method is None:
                code_challenge_method = S256
            if code_challenge_method == PLAIN and not self.settings.allow_plain_pkce:
                raise OAuthError.invalid_request(
                    "Unsupported code_challenge_method: plain"
                )
            if code_challenge_method not in (S256, PLAIN):
                raise OAuthError.invalid_request(
                    f"Unsupported code_challenge_method: {code_challenge_method}"
                )
            if not (
                43 <= len(code_challenge) <= 128
                and set(code_challenge) <= PKCE_CHALLENGE_ALPHABET
            ):
                raise OAuthError.invalid_request("code_challenge is malformed")

        try:
            client = await self.store.find_client(client_id)
        except StoreError as e:
            raise self._database_error("find_client", e) from e

        if client is None or len(client.trusted_redirect_uris) == 0:
            logger.warning(
                "client not found or has no trusted URI: client_id=%s", client_id
            )
            raise OAuthError.unauthorized_client()

        if not client.trusts(redirect_uri):
            logger.warning(
                "redirect_uri does not match any trusted URI: client_id=%s redirect_uri=%s",
                client_id,
                redirect_uri,
            )
            raise OAuthError.untrusted_redirect_uri()

        return client, redirect_uri, state, code_challenge, code_challenge_method

    @staticmethod
    def _app_name(client: Client) -> str:
        return client.app_name or UNKNOWN_APP_NAME

    @_instrumented("check")
    async def check(self, query: MultiMapping[str]) -> CheckResponse:
        """Run the authorize checks without issuing a challenge."""
        client, *_ = await self._validate_authorize_request(query)
        return CheckResponse(valid=True, app_name=self._app_name(client))

    @_instrumented("authorize")
    async def authorize(self, query: MultiMapping[str]) -> AuthorizeResponse:
        (
            client,
            redirect_uri,
            state,
            code_challenge,
            code_challenge_method,
        ) = await self._validate_authorize_request(query)

        now = utcnow()
        challenge = Challenge(
            challenge=str(uuid.uuid4()),
            client_id=client.client_id,
            redirect_uri=redirect_uri,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=self.settings.challenge_expiration),
        )

        try:
            await self.store.insert_challenge(challenge)
        except StoreError as e:
            raise self._database_error("insert_challenge", e) from e

        logger.info(
            "challenge issued: client_id=%s challenge=%s",
            client.client_id,
            redact(challenge.challenge),
        )

        return AuthorizeResponse(
            client_id=client.client_id,
            redirect_uri=redirect_uri,
            challenge=challenge.challenge,
            app_name=self._app_name(client),
        )

    @_instrumented("verify_signature")
    async def verify_signature(self, payload: object) -> IssuedCode:
        if not isinstance(payload, str) or len(payload) == 0:
            raise OAuthError.invalid_request("Missing payload")

        try:
            verified = self.verifier.verify(payload)
            message = decode_signed_message(verified.message)
        except SignatureVerificationError as e:
            logger.warning("Failed to verify signature: %s", e)
            raise OAuthError.invalid_signature(str(e)) from e

        try:
            challenge = await self.store.consume_challenge(
                message.challenge, message.client_id
            )
        except StoreError as e:
            raise self._database_error("consume_challenge", e) from e

        if challenge is None:
            logger.warning(
                "Invalid or expired challenge: challenge=%s client_id=%s",
                redact(message.challenge),
                message.client_id,
            )
            raise OAuthError.invalid_challenge()

        state = _carry_forward("state", challenge.state, message.state)
        code_challenge = _carry_forward(
            "code_challenge", challenge.code_challenge, message.code_challenge
        )
        code_challenge_method = _carry_forward(
            "code_challenge_method",
            challenge.code_challenge_method,
            message.code_challenge_method,
        )
        if code_challenge is not None and code_challenge_method is None:
            code_challenge_method = S256

        now = utcnow()
        auth_code = AuthCode(
            auth_code=generate_opaque_token(),
            client_id=challenge.client_id,
            redirect_uri=challenge.redirect_uri,
            address=verified.address,
            public_key=verified.public_key,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=self.settings.authcode_expiration),
        )

        try:
            await self.store.insert_auth_code(auth_code)
        except StoreError as e:
            raise self._database_error("insert_auth_code", e) from e

        logger.info(
            "authorization code issued: client_id=%s address=%s code=%s",
            auth_code.client_id,
            auth_code.address,
            redact(auth_code.auth_code),
        )

        return IssuedCode(
            code=auth_code.auth_code,
            expires_in=self.settings.authcode_expiration,
            state=state,
            redirect_uri=auth_code.redirect_uri,
        )

    async def _issue_tokens(
        self, address: str, public_key: str, client_id: str
    ) -> TokenResponse:
        now = utcnow()
        access_token = self.issuer.mint(address, public_key, client_id, now=now)
        session = Session(
            refresh_token=generate_opaque_token(),
            session_id=str(ULID()),
            client_id=client_id,
            address=address,
            public_key=public_key,
            access_token=access_token.jti,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=self.settings.refresh_token_expiration),
        )

        try:
            await self.store.insert_session(session)
        except StoreError as e:
            raise self._database_error("insert_session", e) from e

        logger.info(
            "tokens issued: client_id=%s session_id=%s jti=%s",
            client_id,
            session.session_id,
            access_token.jti,
        )

        return TokenResponse(
            access_token=access_token.token,
            refresh_token=session.refresh_token,
            expires_in=access_token.expires_in,
        )

    @_instrumented("exchange_code")
    async def exchange_code(
        self,
        code: Optional[str],
        client_id: Optional[str],
        code_verifier: Optional[str] = None,
        state: Optional[str] = None,
    ) -> TokenResponse:
        """Redeem an authorization code (``authorization_code`` grant)."""
        if not code or not client_id:
            raise OAuthError.invalid_request("Missing code or client_id")

        try:
            auth_code = await self.store.find_auth_code(code)
        except StoreError as e:
            raise self._database_error("find_auth_code", e) from e

        if (
            auth_code is None
            or auth_code.used
            or auth_code.is_expired()
            or auth_code.client_id != client_id
        ):
            logger.warning(
                "Invalid or used code: code=%s client_id=%s", redact(code), client_id
            )
            raise OAuthError.invalid_code()

        if auth_code.code_challenge:
            if not code_verifier:
                raise OAuthError.invalid_grant(
                    "PKCE code_verifier is required but was not supplied"
                )
            try:
                matches = verify_code_verifier(
                    code_verifier,
                    auth_code.code_challenge,
                    auth_code.code_challenge_method,
                    allow_plain=self.settings.allow_plain_pkce,
                )
            except UnsupportedPKCEMethod as e:
                logger.warning("Unsupported PKCE method: %s", e.method)
                raise OAuthError.invalid_grant(
                    f"Unsupported PKCE method: {e.method}"
                ) from e
            except UnicodeEncodeError:
                matches = False

            if not matches:
                logger.warning(
                    "PKCE verification failed: code=%s client_id=%s",
                    redact(code),
                    client_id,
                )
                raise OAuthError.invalid_grant(
                    "code_verifier does not match code_challenge"
                )

        if auth_code.state and state is not None and state != auth_code.state:
            raise OAuthError.invalid_grant("state does not match")

        try:
            marked = await self.store.mark_auth_code_used(code)
        except StoreError as e:
            raise self._database_error("mark_auth_code_used", e) from e

        if not marked:
            logger.warning("code redeemed concurrently: code=%s", redact(code))
            raise OAuthError.invalid_code()

        return await self._issue_tokens(
            auth_code.address, auth_code.public_key, auth_code.client_id
        )

    @_instrumented("refresh")
    async def refresh(
        self, refresh_token: Optional[str], client_id: Optional[str]
    ) -> TokenResponse:
        """Rotate a refresh token (``refresh_token`` grant)."""
        if not refresh_token or not client_id:
            raise OAuthError.invalid_request("Missing refresh_token or client_id")

        try:
            session = await self.store.find_session(refresh_token)
        except StoreError as e:
            raise self._database_error("find_session", e) from e

        if (
            session is None
            or session.revoked
            or session.is_expired()
            or session.client_id != client_id
        ):
            logger.warning(
                "Invalid or used/expired refresh_token: token=%s client_id=%s",
                redact(refresh_token),
                client_id,
            )
            raise OAuthError.invalid_refresh_token()

        try:
            revoked = await self.store.revoke_session(refresh_token)
        except StoreError as e:
            raise self._database_error("revoke_session", e) from e

        if not revoked:
            logger.warning(
                "refresh_token rotated concurrently: session_id=%s", session.session_id
            )
            raise OAuthError.invalid_refresh_token()

        logger.info("session rotated: session_id=%s", session.session_id)

        return await self._issue_tokens(
            session.address, session.public_key, session.client_id
        )

    @_instrumented("userinfo")
    async def userinfo(self, authorization: Optional[str]) -> UserInfo:
        token = parse_bearer_token(authorization)
        if token is None:
            raise OAuthError.missing_bearer()

        try:
            blacklisted = await self.store.is_token_blacklisted(token_digest(token))
        except StoreError as e:
            logger.warning("blacklist lookup failed: %s", e)
            blacklisted = False

        if blacklisted:
            raise OAuthError.invalid_token()

        verification = self.issuer.verify(token)
        if not verification.valid:
            await self._blacklist(verification)
            raise OAuthError.invalid_token()

        claims = verification.claims
        return UserInfo(
            address=claims.sub,
            public_key=claims.pub,
            network=self.settings.symbol_network_type,
        )

    async def _blacklist(self, verification: TokenVerification) -> None:
        now = utcnow()
        expires_at: Optional[datetime] = verification.expires_at
        if expires_at is None or expires_at <= now:
            expires_at = now + timedelta(seconds=self.settings.jwt_expires_in)

        entry = BlacklistedToken(
            token_id=verification.token_id,
            jti=verification.jti,
            reason=verification.reason,
            revoked_at=now,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )

        logger.info(
            "access token rejected: token_id=%s jti=%s reason=%s",
            redact(entry.token_id),
            entry.jti,
            entry.reason,
        )

        try:
            await self.store.blacklist_token(entry)
        except StoreError as e:
            logger.error("Failed to blacklist access token: %s", e)

    @_instrumented("logout")
    async def logout(self, refresh_token: Optional[str]) -> LogoutResponse:
        if not refresh_token:
            raise OAuthError.invalid_request("Missing refresh_token")

        try:
            session = await self.store.find_session(refresh_token)
        except StoreError as e:
            raise self._database_error("find_session", e) from e

        if session is None or session.is_expired():
            raise OAuthError.invalid_request("Invalid refresh_token")

        if session.revoked:
            raise OAuthError.invalid_request("Refresh token already used or revoked")

        try:
            await self.store.revoke_session(refresh_token)
        except StoreError as e:
            logger.error("Failed to revoke token: %s", e)
        else:
            logger.info("session revoked: session_id=%s", session.session_id)

        return LogoutResponse()
