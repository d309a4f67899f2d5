import logging
from typing import Dict, Optional

from aiohttp import web

from symbol.signon.app.config import AllowedOriginsCacheAppKey

logger = logging.getLogger(__name__)


def get_cors_headers(origin_value: Optional[str], allowed: bool) -> Dict[str, str]:
    """Return CORS headers for a request from ``origin_value``."""
    headers = {
        "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": (
            "Keep-Alive, User-Agent, X-Requested-With, "
            "If-Modified-Since, Cache-Control, Content-Type, "
            "Authorization"
        ),
        "Vary": "Origin",
    }

    if origin_value and allowed:
        headers["Access-Control-Allow-Origin"] = origin_value
        headers["Access-Control-Allow-Credentials"] = "true"

    return headers


@web.middleware
async def cors_middleware(request: web.Request, handler):
    """
    Answer preflight requests and add CORS headers for allowed origins.

    Requests without an ``Origin`` header are not cross-origin and pass through
    untouched. Requests from other origins are served without CORS headers, so the
    browser withholds the response from the calling script.
    """
    origin_value = request.headers.get("Origin")
    if origin_value is None:
        return await handler(request)

    allowed = await request.app[AllowedOriginsCacheAppKey].is_allowed(origin_value)
    if not allowed:
        logger.warning("CORS blocked request from origin: %s", origin_value)

    headers = get_cors_headers(origin_value, allowed)

    if (
        request.method == "OPTIONS"
        and "Access-Control-Request-Method" in request.headers
    ):
        if not allowed:
            return web.json_response(
                {"error": "cors_denied", "error_description": "Not allowed by CORS"},
                status=403,
                headers=headers,
            )
        return web.Response(status=204, headers=headers)

    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(headers)
        raise
    response.headers.update(headers)
    return response
