# sellit/core/config.py
"""
Settings layer for the Sellit marketplace API (pydantic v2 / pydantic-settings).

- Values come from the environment and an optional .env file.
- PostgreSQL (asyncpg) in production; sqlite+aiosqlite fallback for dev/tests.
- Deep secret masking for dumps and log summaries.
- One cached instance via get_settings(); `settings` is the module-level alias.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from typing import Annotated, Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_SECRET_KEY = "changeme"


# ================================
# ВСПОМОГАТЕЛЬНЫЕ ХЕЛПЕРЫ
# ================================
def _under_pytest() -> bool:
    return "PYTEST_CURRENT_TEST" in os.environ


def _mask_secret(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    s = str(val)
    if not s:
        return s
    if len(s) <= 6:
        return "***"
    return s[:3] + "***" + s[-3:]


def _parse_list_like(v):
    if isinstance(v, str):
        v = v.strip()
        if v.startswith("[") and v.endswith("]"):
            try:
                parsed = json.loads(v)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                return [str(i).strip() for i in parsed if str(i).strip()]
        return [i.strip() for i in v.split(",") if i.strip()]
    return v


def _is_secret_key_name(key: str) -> bool:
    lk = key.lower()
    if any(s in lk for s in ("secret", "password", "token", "dsn")):
        return True
    if "key" in lk and "public" not in lk:
        return True
    return False


def _mask_nested(obj: Any, key_hint: Optional[str] = None) -> Any:
    """
    Рекурсивная маскировка секретов в dict/list/tuple.
    """
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            if isinstance(k, str) and _is_secret_key_name(k):
                if isinstance(v, (dict, list, tuple)):
                    out[k] = _mask_nested(v, key_hint=k)
                else:
                    out[k] = _mask_secret(v)
            else:
                out[k] = _mask_nested(v, key_hint=None)
        return out
    if isinstance(obj, list):
        return [_mask_nested(v, key_hint=key_hint) for v in obj]
    if isinstance(obj, tuple):
        return tuple(_mask_nested(v, key_hint=key_hint) for v in obj)
    if key_hint and _is_secret_key_name(key_hint):
        return _mask_secret(obj)
    return obj


# ================================
# НАСТРОЙКИ ПРИЛОЖЕНИЯ (Pydantic v2)
# ================================
class Settings(BaseSettings):
    """
    Конфиг-прослойка проекта Sellit.

    - DATABASE_URL не задан -> sqlite+aiosqlite in-memory (dev/tests).
    - В продакшене запрещён дефолтный SECRET_KEY.
    - Лимиты загрузки и генерации вариантов настраиваются через env.
    """

    model_config = SettingsConfigDict(
        env_file=(".env.test", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    # ---- базовые
    PROJECT_NAME: str = Field(default="Sellit", description="Project name")
    VERSION: str = Field(default="0.1.0", description="Application version")
    ENVIRONMENT: str = Field(default="development", description="development|production|test")
    DEBUG: bool = Field(default=False, description="Debug mode")
    API_PREFIX: str = Field(default="", description="Prefix for all API routers")

    # ---- security/JWT
    SECRET_KEY: str = Field(default=DEFAULT_SECRET_KEY, description="JWT secret key")
    ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, description="Access token expiry")

    # ---- БД
    DATABASE_URL: Optional[str] = Field(default=None, description="Database URL")
    DB_ECHO: bool = Field(default=False, description="Echo SQL statements")
    SQLALCHEMY_POOL_SIZE: int = Field(default=10, description="Pool size")
    SQLALCHEMY_MAX_OVERFLOW: int = Field(default=20, description="Max overflow")

    # ---- CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(default=["*"], description="CORS origins")

    # ---- логи
    LOG_PATH: str = Field(default="logs/app.log", description="Log file path")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="console", description="Logging format (json|console)")

    # ---- хранилище изображений
    CLOUDINARY_CLOUD_NAME: Optional[str] = Field(default=None, description="Cloudinary cloud name")
    CLOUDINARY_API_KEY: Optional[str] = Field(default=None, description="Cloudinary API key")
    CLOUDINARY_API_SECRET: Optional[str] = Field(default=None, description="Cloudinary API secret")
    UPLOAD_MAX_SIZE_BYTES: int = Field(default=5 * 1024 * 1024, description="Max size of one image")
    UPLOAD_ALLOWED_MIME_TYPES: Annotated[List[str], NoDecode] = Field(
        default=["image/jpeg", "image/png", "image/webp"], description="Accepted image types"
    )
    MAX_PRODUCT_IMAGES: int = Field(default=10, description="Max product images per request")
    MAX_VARIANT_IMAGES: int = Field(default=50, description="Max variant images per request")

    # ---- варианты
    MAX_VARIANT_COMBINATIONS: int = Field(
        default=500, description="Upper bound for generated variant combinations"
    )

    # --------- валидаторы ---------
    @field_validator("CORS_ORIGINS", "UPLOAD_ALLOWED_MIME_TYPES", mode="before")
    @classmethod
    def _list_like(cls, v):
        return _parse_list_like(v)

    @field_validator("ALGORITHM")
    @classmethod
    def check_alg(cls, v):
        allowed = {"HS256", "HS384", "HS512"}
        if v not in allowed:
            raise ValueError(f"Unsupported JWT algorithm: {v}")
        return v

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_log_format(cls, v):
        v = (v or "console").lower()
        if v not in {"json", "console"}:
            raise ValueError("LOG_FORMAT must be json or console")
        return v

    # --------- удобные свойства ---------
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_testing(self) -> bool:
        return self.ENVIRONMENT.lower() == "test" or _under_pytest()

    @property
    def sqlalchemy_async_url(self) -> str:
        raw = (self.DATABASE_URL or "").strip()
        if not raw:
            return "sqlite+aiosqlite:///:memory:"
        if raw.startswith("postgres://"):
            raw = raw.replace("postgres://", "postgresql://", 1)
        if raw.startswith("postgresql://"):
            return raw.replace("postgresql://", "postgresql+asyncpg://", 1)
        if raw.startswith("postgresql+") and not raw.startswith("postgresql+asyncpg://"):
            return "postgresql+asyncpg://" + raw.split("://", 1)[1]
        if raw.startswith("sqlite://") and not raw.startswith("sqlite+aiosqlite://"):
            return raw.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return raw

    def sqlalchemy_engine_options(self) -> Dict[str, Any]:
        opts: Dict[str, Any] = {"echo": self.DB_ECHO, "future": True}
        if self.sqlalchemy_async_url.startswith("postgresql+"):
            opts.update(
                pool_pre_ping=True,
                pool_size=self.SQLALCHEMY_POOL_SIZE,
                max_overflow=self.SQLALCHEMY_MAX_OVERFLOW,
            )
        return opts

    def build_info(self) -> dict:
        return {"project": self.PROJECT_NAME, "version": self.VERSION, "env": self.ENVIRONMENT}

    # --------- проверки ---------
    def check_secret_key(self) -> None:
        if self.is_production and self.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise ValueError("SECRET_KEY must be set in production")

    def dump_settings_safe(self) -> dict:
        return _mask_nested(self.model_dump())


# Глобальный объект настроек
@lru_cache
def get_settings() -> Settings:
    s = Settings()
    if not _under_pytest():
        s.check_secret_key()
    return s


settings = get_settings()

__all__ = ["Settings", "get_settings", "settings"]
