"""
Refresh token transport strategies.

A deployment returns the refresh token either in the token response body (native
and server-side clients) or as an HttpOnly cookie that browser scripts cannot
read. The flow itself never sees the difference; handlers ask the configured
``TokenTransport`` where to read the token from and how to hand a new one back.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from aiohttp import web

from symbol.signon.oauth.errors import OAuthError
from symbol.signon.oauth.flow import TokenResponse

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


class TokenTransport(ABC):
    @abstractmethod
    def read_refresh_token(
        self, request: web.Request, data: Mapping[str, Any]
    ) -> Optional[str]:
        """Return the refresh token presented with a request, if any."""

    @abstractmethod
    def missing_refresh_token(self) -> OAuthError:
        """Error reported when a refresh grant arrives without a refresh token."""

    @abstractmethod
    def token_response(self, token_response: TokenResponse) -> web.Response:
        """Render a successful token response."""

    def clear(self, response: web.StreamResponse) -> None:
        """Forget the refresh token on the client after logout."""


class BodyTokenTransport(TokenTransport):
    """Refresh token travels in JSON bodies as ``refresh_token``."""

    def read_refresh_token(
        self, request: web.Request, data: Mapping[str, Any]
    ) -> Optional[str]:
        refresh_token = data.get("refresh_token")
        if isinstance(refresh_token, str) and refresh_token:
            return refresh_token
        return None

    def missing_refresh_token(self) -> OAuthError:
        return OAuthError.invalid_request("Missing refresh_token or client_id")

    def token_response(self, token_response: TokenResponse) -> web.Response:
        return web.json_response(
            token_response.model_dump(exclude_none=True),
            headers=NO_STORE_HEADERS,
        )


class CookieTokenTransport(TokenTransport):
    """
    Refresh token travels in an HttpOnly cookie.

    Args:
        cookie_name: Name of the cookie
        max_age: Cookie lifetime in seconds, normally the refresh token lifetime
        secure: Set the ``Secure`` attribute (production)
    """

    def __init__(self, cookie_name: str, max_age: int, secure: bool) -> None:
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure = secure

    def read_refresh_token(
        self, request: web.Request, data: Mapping[str, Any]
    ) -> Optional[str]:
        return request.cookies.get(self.cookie_name) or None

    def missing_refresh_token(self) -> OAuthError:
        return OAuthError.missing_refresh_cookie()

    def token_response(self, token_response: TokenResponse) -> web.Response:
        body: Dict[str, Any] = token_response.model_dump(
            exclude_none=True, exclude={"refresh_token"}
        )
        response = web.json_response(body, headers=NO_STORE_HEADERS)
        if token_response.refresh_token:
            response.set_cookie(
                self.cookie_name,
                token_response.refresh_token,
                max_age=self.max_age,
                path="/",
                secure=self.secure,
                httponly=True,
                samesite="Lax",
            )
        return response

    def clear(self, response: web.StreamResponse) -> None:
        response.del_cookie(self.cookie_name, path="/")


def create_token_transport(
    kind: str, cookie_name: str, max_age: int, secure: bool
) -> TokenTransport:
    if kind == "cookie":
        return CookieTokenTransport(cookie_name, max_age, secure)
    if kind == "body":
        return BodyTokenTransport()
    raise ValueError(f"Invalid refresh token transport: {kind}")
