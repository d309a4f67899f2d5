import pytest
from pydantic import ValidationError

from symbol.signon.app.config import DEVELOPMENT_JWT_SECRET, Settings


def test_durations_accept_compact_strings(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    monkeypatch.setenv("JWT_EXPIRES_IN", "2h")
    monkeypatch.setenv("CHALLENGE_EXPIRATION", "5m")
    monkeypatch.setenv("AUTHCODE_EXPIRATION", "90")
    monkeypatch.setenv("REFRESH_TOKEN_EXPIRATION", "7d")

    settings = Settings()

    assert settings.jwt_expires_in == 7200
    assert settings.challenge_expiration == 300
    assert settings.authcode_expiration == 90
    assert settings.refresh_token_expiration == 604800


def test_empty_duration_keeps_default(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    monkeypatch.setenv("CHALLENGE_EXPIRATION", "")

    assert Settings().challenge_expiration == 180


def test_invalid_duration(monkeypatch):
    monkeypatch.setenv("CHALLENGE_EXPIRATION", "soon")

    with pytest.raises(ValidationError):
        Settings()


def test_node_env_alias(monkeypatch):
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.setenv("NODE_ENV", "Production")
    monkeypatch.setenv("JWT_SECRET", "s3cret")

    settings = Settings()
    assert settings.environment == "production"
    assert settings.is_production


def test_production_requires_secret(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.setenv("ENVIRONMENT", "production")

    with pytest.raises(ValidationError, match="JWT_SECRET must be set in production"):
        Settings()


def test_development_secret_fallback(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.setenv("ENVIRONMENT", "development")

    settings = Settings()
    assert settings.jwt_secret == DEVELOPMENT_JWT_SECRET
    assert not settings.is_production


def test_port_and_store_backend(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("STORE_BACKEND", "redis")

    settings = Settings()
    assert settings.http_port == 8080
    assert settings.store_backend == "redis"
