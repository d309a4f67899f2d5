import functools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web
import sentry_sdk

from symbol.signon.app.config import HealthGaugeAppKey, MetricsClientAppKey
from symbol.signon.oauth.errors import OAuthError

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


async def oauth_error_response(
    request: web.Request, error: OAuthError
) -> web.Response:
    """
    Render an ``OAuthError`` as ``{"error": ..., "error_description": ...}``.

    Server errors also raise the health gauge so that a burst of them fails the
    readiness probe.
    """
    if error.status >= 500:
        await request.app[HealthGaugeAppKey].womp()
    return web.json_response(error.as_dict(), status=error.status)


def oauth_endpoint(handler: Handler) -> Handler:
    """
    Turn exceptions raised by a sign-on handler into JSON error responses.

    Unexpected exceptions are reported to Sentry and logged with their traceback;
    the client only sees a generic ``server_error``.
    """

    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        try:
            return await handler(request)
        except OAuthError as e:
            return await oauth_error_response(request, e)
        except web.HTTPException:
            raise
        except Exception as e:
            sentry_sdk.capture_exception(e)
            logger.exception("Unexpected error in %s", handler.__name__)
            request.app[MetricsClientAppKey].increment(
                "signon.oauth.unexpected_exception",
                1,
                tag_dict={"exception": type(e).__name__, "handler": handler.__name__},
            )
            return await oauth_error_response(request, OAuthError.server_error())

    return wrapper


async def read_request_data(request: web.Request) -> Dict[str, Any]:
    """
    Read a JSON object or form encoded body into a dictionary.

    Repeated form fields keep their first value. An empty body is an empty
    dictionary.

    Raises:
        OAuthError: If the body is not a JSON object or a form
    """
    if not request.can_read_body:
        return {}

    if request.content_type == "application/json":
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise OAuthError.invalid_request("Request body is not valid JSON") from e
        if not isinstance(data, dict):
            raise OAuthError.invalid_request("Request body must be a JSON object")
        return data

    if request.content_type in (
        "application/x-www-form-urlencoded",
        "multipart/form-data",
    ):
        form = await request.post()
        result: Dict[str, Any] = {}
        for key, value in form.items():
            if key not in result and isinstance(value, str):
                result[key] = value
        return result

    raise OAuthError.invalid_request(
        "Request body must be application/json or application/x-www-form-urlencoded"
    )


def optional_string(data: Dict[str, Any], name: str) -> Optional[str]:
    """Return a string field, or None when it is absent, empty or not a string."""
    value = data.get(name)
    if isinstance(value, str) and len(value) > 0:
        return value
    return None
