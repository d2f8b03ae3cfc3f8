from datetime import timedelta

import pytest
from jose import jwt

from sellit.core.config import Settings, settings
from sellit.core.logging import redact_secrets
from sellit.core.security import create_access_token, decode_access_token


def _settings(monkeypatch, **env) -> Settings:
    for k, v in env.items():
        monkeypatch.setenv(k, v)
    return Settings(_env_file=None)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
def test_list_settings_accept_csv_and_json(monkeypatch):
    s = _settings(
        monkeypatch,
        CORS_ORIGINS="https://a.example, https://b.example",
        UPLOAD_ALLOWED_MIME_TYPES='["image/png", "image/gif"]',
    )
    assert s.CORS_ORIGINS == ["https://a.example", "https://b.example"]
    assert s.UPLOAD_ALLOWED_MIME_TYPES == ["image/png", "image/gif"]


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, "sqlite+aiosqlite:///:memory:"),
        ("postgres://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
        ("postgresql+psycopg2://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
        ("sqlite:///./dev.db", "sqlite+aiosqlite:///./dev.db"),
    ],
)
def test_async_database_url(monkeypatch, raw, expected):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    env = {"DATABASE_URL": raw} if raw else {}
    assert _settings(monkeypatch, **env).sqlalchemy_async_url == expected


def test_engine_options_add_pool_for_postgres(monkeypatch):
    s = _settings(monkeypatch, DATABASE_URL="postgresql://u:p@db/app", SQLALCHEMY_POOL_SIZE="3")
    opts = s.sqlalchemy_engine_options()
    assert opts["pool_size"] == 3
    assert opts["pool_pre_ping"] is True


def test_invalid_algorithm_rejected(monkeypatch):
    with pytest.raises(ValueError):
        _settings(monkeypatch, ALGORITHM="RS256")


def test_default_secret_refused_in_production(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    s = _settings(monkeypatch, ENVIRONMENT="production")
    with pytest.raises(ValueError):
        s.check_secret_key()
    _settings(monkeypatch, ENVIRONMENT="production", SECRET_KEY="s3cr3t-value-long").check_secret_key()


def test_dump_masks_secrets(monkeypatch):
    s = _settings(monkeypatch, CLOUDINARY_API_SECRET="abcdefghijkl", CLOUDINARY_CLOUD_NAME="demo")
    dumped = s.dump_settings_safe()
    assert dumped["CLOUDINARY_API_SECRET"] == "abc***jkl"
    assert dumped["CLOUDINARY_CLOUD_NAME"] == "demo"
    assert "***" in dumped["SECRET_KEY"]


def test_redact_secrets_nested():
    out = redact_secrets({"user": {"password": "hunter2hunter2"}, "items": [{"api_key": "k"}], "name": "x"})
    assert out == {"user": {"password": "hun***er2"}, "items": [{"api_key": "***"}], "name": "x"}


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
def test_token_round_trip():
    token = create_access_token(7, role="admin", store_id=3)
    payload = decode_access_token(token)
    assert payload["sub"] == "7"
    assert payload["role"] == "admin"
    assert payload["store_id"] == 3
    assert payload["type"] == "access"


def test_unknown_role_cannot_be_issued():
    with pytest.raises(ValueError):
        create_access_token(1, role="root")


def test_expired_token():
    token = create_access_token(1, expires_delta=timedelta(seconds=-5))
    with pytest.raises(ValueError, match="expired"):
        decode_access_token(token)


def test_foreign_signature():
    token = jwt.encode({"sub": "1", "role": "seller"}, "other-secret", algorithm=settings.ALGORITHM)
    with pytest.raises(ValueError, match="Invalid token"):
        decode_access_token(token)


@pytest.mark.parametrize(
    "claims,reason",
    [
        ({"sub": "1", "role": "seller", "type": "refresh"}, "Unexpected token type"),
        ({"role": "seller"}, "subject"),
        ({"sub": "1", "role": "ghost"}, "role"),
    ],
)
def test_claims_are_checked(claims, reason):
    token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    with pytest.raises(ValueError, match=reason):
        decode_access_token(token)


# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_bad_token_is_401(client):
    r = await client.get("/products/my-store", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_TOKEN"
    assert r.headers["content-type"].startswith("application/problem+json")
    assert "Bearer" in r.headers["www-authenticate"]


@pytest.mark.asyncio
async def test_token_without_store_is_403(client, store):
    from conftest import bearer

    r = await client.get("/products/my-store", headers=bearer(1, None))
    assert r.status_code == 403
    assert r.json()["code"] == "NO_STORE"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    r = await client.get("/products/999/variants", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 404
    assert r.headers["x-request-id"] == "req-123"

    r = await client.get("/products/999/variants")
    assert r.headers["x-request-id"]


@pytest.mark.asyncio
async def test_request_validation_shape(client):
    r = await client.get("/products/store/0")
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "REQUEST_VALIDATION_ERROR"
    assert body["extra"]["errors"][0]["loc"] == ["path", "store_id"]


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["project"] == settings.PROJECT_NAME
    assert body["status"] in {"ok", "degraded"}
