"""Error taxonomy for the sign-on flow.

``OAuthError`` describes every rejection the flow can produce: client request
errors (400), authentication errors (401) and generic server errors (500). The
HTTP layer renders them as ``{"error": ..., "error_description": ...}``.

``StoreError`` wraps persistence failures. Its message is logged server side and
never returned to a client.
"""

from typing import Any, Dict, Optional


class StoreError(Exception):
    """A persistence operation failed (connection, query or serialization)."""


class SignatureVerificationError(Exception):
    """The signed artifact could not be deserialized, verified or decoded."""


class OAuthError(Exception):
    """
    Exception raised when a sign-on request is rejected.

    Attributes:
        status: HTTP status code for the response
        error: OAuth 2.0 error code (``invalid_request``, ``invalid_grant``, ...)
        description: Human readable description returned to the client
    """

    def __init__(self, status: int, error: str, description: str) -> None:
        super().__init__(f"{error}: {description}")
        self.status = status
        self.error = error
        self.description = description

    def as_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "error_description": self.description}

    @staticmethod
    def invalid_request(description: str) -> "OAuthError":
        """The request is missing a parameter or is otherwise malformed."""
        return OAuthError(400, "invalid_request", description)

    @staticmethod
    def unsupported_response_type() -> "OAuthError":
        """Only the ``code`` response type is supported."""
        return OAuthError(
            400,
            "unsupported_response_type",
            "Only 'code' response_type is supported",
        )

    @staticmethod
    def unsupported_grant_type(grant_type: Optional[str]) -> "OAuthError":
        return OAuthError(
            400, "unsupported_grant_type", f"Unsupported grant_type: {grant_type}"
        )

    @staticmethod
    def unauthorized_client() -> "OAuthError":
        """The client is not registered or has no trusted redirect URI."""
        return OAuthError(
            400,
            "unauthorized_client",
            "Client ID is not registered or has no trusted URI",
        )

    @staticmethod
    def untrusted_redirect_uri() -> "OAuthError":
        return OAuthError(
            400, "invalid_request", "redirect_uri does not match any trusted URI"
        )

    @staticmethod
    def invalid_signature(reason: str) -> "OAuthError":
        return OAuthError(
            400, "invalid_request", f"Failed to verify signature: {reason}"
        )

    @staticmethod
    def invalid_challenge() -> "OAuthError":
        return OAuthError(400, "invalid_request", "Invalid or expired challenge")

    @staticmethod
    def invalid_code() -> "OAuthError":
        return OAuthError(400, "invalid_grant", "Invalid or used code")

    @staticmethod
    def invalid_grant(description: str) -> "OAuthError":
        return OAuthError(400, "invalid_grant", description)

    @staticmethod
    def invalid_refresh_token() -> "OAuthError":
        return OAuthError(
            400, "invalid_grant", "Invalid or used/expired refresh_token"
        )

    @staticmethod
    def missing_refresh_cookie() -> "OAuthError":
        return OAuthError(401, "unauthorized", "Refresh token is missing")

    @staticmethod
    def invalid_token() -> "OAuthError":
        return OAuthError(
            401,
            "invalid_token",
            "The access token is invalid or has expired",
        )

    @staticmethod
    def missing_bearer() -> "OAuthError":
        return OAuthError(
            401, "invalid_token", "Missing or invalid Authorization header"
        )

    @staticmethod
    def database_error() -> "OAuthError":
        """Generic message for any persistence failure."""
        return OAuthError(500, "server_error", "Database connection error")

    @staticmethod
    def server_error() -> "OAuthError":
        return OAuthError(500, "server_error", "Internal server error")
