"""
HTTP tests for the sign-on endpoints, CORS and health checks.

The application is built with ``start_web_server`` around the fakeredis store and
the fake signature verifier.
"""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from symbol.signon.app.config import HealthGaugeAppKey
from symbol.signon.app.metrics import NoOpMetricsClient
from symbol.signon.app.server import start_web_server
from symbol.signon.store.base import Challenge, utcnow
from tests.test_helpers import (
    RFC7636_CHALLENGE,
    RFC7636_VERIFIER,
    TEST_ADDRESS,
    TEST_CLIENT_ID,
    TEST_PUBLIC_KEY,
    authorize_query,
    signed_payload,
)


@pytest_asyncio.fixture
async def client(settings, redis_store, verifier, registered_client):
    app = await start_web_server(
        settings=settings,
        store=redis_store,
        verifier=verifier,
        metrics_client=NoOpMetricsClient(),
    )
    async with TestClient(TestServer(app)) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def cookie_client(settings, redis_store, verifier, registered_client):
    settings.refresh_token_transport = "cookie"
    app = await start_web_server(
        settings=settings,
        store=redis_store,
        verifier=verifier,
        metrics_client=NoOpMetricsClient(),
    )
    async with TestClient(TestServer(app)) as test_client:
        yield test_client


async def obtain_code(client, **query) -> str:
    resp = await client.get("/oauth/authorize", params=authorize_query(**query))
    assert resp.status == 200
    challenge = (await resp.json())["challenge"]

    resp = await client.post(
        "/oauth/verify-signature",
        json={"payload": signed_payload(client_id=TEST_CLIENT_ID, challenge=challenge)},
        allow_redirects=False,
    )
    assert resp.status == 302
    location = urlparse(resp.headers["Location"])
    return parse_qs(location.query)["code"][0]


async def test_full_sign_on(client):
    code = await obtain_code(client, state="xyz", code_challenge=RFC7636_CHALLENGE)

    resp = await client.post(
        "/oauth/token",
        json={
            "grant_type": "authorization_code",
            "code": code,
            "client_id": TEST_CLIENT_ID,
            "code_verifier": RFC7636_VERIFIER,
            "state": "xyz",
        },
    )
    assert resp.status == 200
    assert resp.headers["Cache-Control"] == "no-store"
    tokens = await resp.json()
    assert tokens["token_type"] == "Bearer"
    assert tokens["expires_in"] == 3600

    resp = await client.get(
        "/oauth/userinfo",
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    assert resp.status == 200
    assert await resp.json() == {
        "address": TEST_ADDRESS,
        "publicKey": TEST_PUBLIC_KEY,
        "network": "testnet",
    }

    resp = await client.post(
        "/oauth/token",
        data={
            "grant_type": "refresh_token",
            "refresh_token": tokens["refresh_token"],
            "client_id": TEST_CLIENT_ID,
        },
    )
    assert resp.status == 200
    rotated = await resp.json()
    assert rotated["refresh_token"] != tokens["refresh_token"]

    resp = await client.post(
        "/oauth/logout", json={"refresh_token": rotated["refresh_token"]}
    )
    assert resp.status == 200
    assert await resp.json() == {"status": "ok", "message": "refresh token revoked"}


async def test_authorize_error_body(client):
    resp = await client.get(
        "/oauth/authorize",
        params=authorize_query(redirect_uri="https://evil.example.com/cb"),
    )
    assert resp.status == 400
    assert await resp.json() == {
        "error": "invalid_request",
        "error_description": "redirect_uri does not match any trusted URI",
    }


async def test_check(client):
    resp = await client.get("/oauth/check", params=authorize_query())
    assert resp.status == 200
    assert await resp.json() == {"valid": True, "app_name": "Demo App"}


async def test_verify_signature_bad_signature(client):
    resp = await client.post("/oauth/verify-signature", json={"payload": "bad-signature"})
    assert resp.status == 400
    body = await resp.json()
    assert body["error"] == "invalid_request"
    assert body["error_description"].startswith("Failed to verify signature:")


async def test_verify_signature_without_redirect_returns_json(client, redis_store):
    challenge = Challenge(
        challenge="no-redirect-challenge",
        client_id=TEST_CLIENT_ID,
        redirect_uri="",
        expires_at=utcnow() + timedelta(minutes=3),
    )
    await redis_store.insert_challenge(challenge)

    resp = await client.post(
        "/oauth/verify-signature",
        json={"payload": signed_payload(challenge=challenge.challenge)},
        allow_redirects=False,
    )
    assert resp.status == 200
    body = await resp.json()
    assert set(body) == {"code", "expires_in"}
    assert body["expires_in"] == 120


async def test_verify_signature_requires_json_object(client):
    resp = await client.post(
        "/oauth/verify-signature",
        data="[1, 2]",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status == 400
    assert (await resp.json())["error_description"] == (
        "Request body must be a JSON object"
    )


@pytest.mark.parametrize(
    "body,error,description",
    [
        ({}, "invalid_request", "Missing grant_type"),
        (
            {"grant_type": "password"},
            "unsupported_grant_type",
            "Unsupported grant_type: password",
        ),
        (
            {"grant_type": "authorization_code", "client_id": TEST_CLIENT_ID},
            "invalid_request",
            "Missing code or client_id",
        ),
        (
            {"grant_type": "authorization_code", "code": "nope", "client_id": TEST_CLIENT_ID},
            "invalid_grant",
            "Invalid or used code",
        ),
        (
            {"grant_type": "refresh_token", "client_id": TEST_CLIENT_ID},
            "invalid_request",
            "Missing refresh_token or client_id",
        ),
    ],
)
async def test_token_errors(client, body, error, description):
    resp = await client.post("/oauth/token", json=body)
    assert resp.status == 400
    assert await resp.json() == {"error": error, "error_description": description}


async def test_userinfo_requires_bearer(client):
    resp = await client.get("/oauth/userinfo")
    assert resp.status == 401
    assert (await resp.json())["error"] == "invalid_token"

    resp = await client.get(
        "/oauth/userinfo", headers={"Authorization": "Bearer garbage"}
    )
    assert resp.status == 401
    assert await resp.json() == {
        "error": "invalid_token",
        "error_description": "The access token is invalid or has expired",
    }


async def test_logout_errors(client):
    resp = await client.post("/oauth/logout", json={})
    assert resp.status == 400
    assert (await resp.json())["error_description"] == "Missing refresh_token"

    resp = await client.post("/oauth/logout", json={"refresh_token": "unknown"})
    assert resp.status == 400
    assert (await resp.json())["error_description"] == "Invalid refresh_token"


async def test_cookie_transport(cookie_client):
    code = await obtain_code(cookie_client)

    resp = await cookie_client.post(
        "/oauth/token",
        json={
            "grant_type": "authorization_code",
            "code": code,
            "client_id": TEST_CLIENT_ID,
        },
    )
    assert resp.status == 200
    tokens = await resp.json()
    assert "refresh_token" not in tokens

    set_cookie = resp.headers["Set-Cookie"]
    assert set_cookie.startswith("refresh_token=")
    assert "HttpOnly" in set_cookie
    assert "SameSite=Lax" in set_cookie

    # the client's cookie jar presents the cookie on the next call
    resp = await cookie_client.post(
        "/oauth/token",
        json={"grant_type": "refresh_token", "client_id": TEST_CLIENT_ID},
    )
    assert resp.status == 200

    resp = await cookie_client.post("/oauth/logout", json={})
    assert resp.status == 200
    assert "refresh_token=" in resp.headers["Set-Cookie"]


async def test_cookie_transport_missing_cookie(cookie_client):
    resp = await cookie_client.post(
        "/oauth/token",
        json={"grant_type": "refresh_token", "client_id": TEST_CLIENT_ID},
    )
    assert resp.status == 401
    assert await resp.json() == {
        "error": "unauthorized",
        "error_description": "Refresh token is missing",
    }


class TestCors:
    async def test_allowed_origin(self, client):
        resp = await client.get(
            "/oauth/check",
            params=authorize_query(),
            headers={"Origin": "https://app.example.com"},
        )
        assert resp.status == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "https://app.example.com"
        assert resp.headers["Access-Control-Allow-Credentials"] == "true"

    async def test_allowed_origin_on_error_response(self, client):
        resp = await client.post(
            "/oauth/token", json={}, headers={"Origin": "https://app.example.com"}
        )
        assert resp.status == 400
        assert resp.headers["Access-Control-Allow-Origin"] == "https://app.example.com"

    async def test_unknown_origin_gets_no_cors_headers(self, client):
        resp = await client.get(
            "/oauth/check",
            params=authorize_query(),
            headers={"Origin": "https://evil.example.com"},
        )
        assert "Access-Control-Allow-Origin" not in resp.headers

    async def test_preflight(self, client):
        resp = await client.options(
            "/oauth/token",
            headers={
                "Origin": "https://app.example.com",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert resp.status == 204
        assert resp.headers["Access-Control-Allow-Origin"] == "https://app.example.com"

    async def test_preflight_denied(self, client):
        resp = await client.options(
            "/oauth/token",
            headers={
                "Origin": "https://evil.example.com",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert resp.status == 403


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status == 200
        body = await resp.json()
        assert body["status"] == "OK"
        assert body["database"] == "connected"
        assert body["version"] == "1.0.0"
        assert body["environment"] == "development"
        assert body["uptime"] >= 0

    async def test_health_degraded(self, client, redis_store, monkeypatch):
        async def unreachable():
            return False

        monkeypatch.setattr(redis_store, "ping", unreachable)

        resp = await client.get("/health")
        assert resp.status == 503
        body = await resp.json()
        assert body["status"] == "DEGRADED"
        assert body["database"] == "disconnected"

    async def test_alive(self, client):
        resp = await client.get("/internal/alive")
        assert resp.status == 200

    async def test_ready_follows_health_gauge(self, client):
        resp = await client.get("/internal/ready")
        assert resp.status == 200

        await client.server.app[HealthGaugeAppKey].womp(101)
        resp = await client.get("/internal/ready")
        assert resp.status == 503
