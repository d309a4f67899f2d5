"""
Sign-On OAuth Handlers

This module implements the HTTP endpoints of the sign-on flow. Handlers only
translate between HTTP and ``SignOnFlow``: they read query strings, bodies, headers
and cookies, call the flow, and render its results or errors as JSON.

Sign-on with a Symbol account:
1. The client application calls /oauth/authorize and receives a challenge
2. The user signs a transfer transaction whose message embeds the challenge
3. The signed transaction is posted to /oauth/verify-signature, which redirects to
   the client's redirect_uri with an authorization code
4. The client exchanges the code at /oauth/token for an access token and a
   refresh token
5. The access token is presented to /oauth/userinfo; the refresh token is rotated
   at /oauth/token and revoked at /oauth/logout

The handlers in this module provide the following endpoints:
- GET /oauth/authorize - Issue a challenge
- GET /oauth/check - Validate client_id and redirect_uri without issuing a challenge
- POST /oauth/verify-signature - Verify a signed transaction and issue a code
- POST /oauth/token - authorization_code and refresh_token grants
- GET /oauth/userinfo - Signer identity behind an access token
- POST /oauth/logout - Revoke a refresh token
"""

import logging

from aiohttp import web

from symbol.signon.app.config import SignOnFlowAppKey, TokenTransportAppKey
from symbol.signon.app.handlers.helpers import (
    oauth_endpoint,
    optional_string,
    read_request_data,
)
from symbol.signon.oauth.errors import OAuthError
from symbol.signon.oauth.flow import AUTHORIZATION_CODE_GRANT, REFRESH_TOKEN_GRANT

logger = logging.getLogger(__name__)


@oauth_endpoint
async def handle_authorize(request: web.Request):
    """
    Issue a challenge for a registered client.

    Query Parameters:
        response_type: Must be ``code``
        client_id: Registered client identifier
        redirect_uri: One of the client's trusted redirect URIs
        state: Optional opaque value returned with the code
        code_challenge: Optional PKCE challenge
        code_challenge_method: ``S256`` (default)
    """
    flow = request.app[SignOnFlowAppKey]
    authorize_response = await flow.authorize(request.query)
    return web.json_response(authorize_response.model_dump())


@oauth_endpoint
async def handle_check(request: web.Request):
    flow = request.app[SignOnFlowAppKey]
    check_response = await flow.check(request.query)
    return web.json_response(check_response.model_dump())


@oauth_endpoint
async def handle_verify_signature(request: web.Request):
    """
    Verify a signed transfer transaction and issue an authorization code.

    The body is ``{"payload": "<hex encoded signed transaction>"}``. On success the
    user agent is redirected to the challenge's redirect_uri with ``code`` and
    ``state`` appended; without a redirect_uri the code is returned as JSON.
    """
    flow = request.app[SignOnFlowAppKey]
    data = await read_request_data(request)

    issued_code = await flow.verify_signature(data.get("payload"))

    redirect_destination = issued_code.redirect_location()
    if redirect_destination is None:
        return web.json_response(
            {"code": issued_code.code, "expires_in": issued_code.expires_in}
        )
    raise web.HTTPFound(redirect_destination)


@oauth_endpoint
async def handle_token(request: web.Request):
    """
    Token endpoint for the ``authorization_code`` and ``refresh_token`` grants.

    Accepts JSON or form encoded bodies. Where the refresh token is read from and
    returned to depends on the configured transport.
    """
    flow = request.app[SignOnFlowAppKey]
    transport = request.app[TokenTransportAppKey]
    data = await read_request_data(request)

    grant_type = optional_string(data, "grant_type")
    if grant_type is None:
        raise OAuthError.invalid_request("Missing grant_type")

    if grant_type == AUTHORIZATION_CODE_GRANT:
        token_response = await flow.exchange_code(
            optional_string(data, "code"),
            optional_string(data, "client_id"),
            code_verifier=optional_string(data, "code_verifier"),
            state=optional_string(data, "state"),
        )
    elif grant_type == REFRESH_TOKEN_GRANT:
        refresh_token = transport.read_refresh_token(request, data)
        if refresh_token is None:
            raise transport.missing_refresh_token()
        token_response = await flow.refresh(
            refresh_token, optional_string(data, "client_id")
        )
    else:
        raise OAuthError.unsupported_grant_type(grant_type)

    return transport.token_response(token_response)


@oauth_endpoint
async def handle_userinfo(request: web.Request):
    flow = request.app[SignOnFlowAppKey]
    user_info = await flow.userinfo(request.headers.get("Authorization"))
    return web.json_response(user_info.model_dump(by_alias=True))


@oauth_endpoint
async def handle_logout(request: web.Request):
    flow = request.app[SignOnFlowAppKey]
    transport = request.app[TokenTransportAppKey]
    data = await read_request_data(request)

    logout_response = await flow.logout(transport.read_refresh_token(request, data))

    response = web.json_response(logout_response.model_dump())
    transport.clear(response)
    return response
