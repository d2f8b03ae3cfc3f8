# sellit/core/db.py
"""
Async database configuration and session management for Sellit.

Ключевые особенности:
- Ленивое создание движка (никаких подключений при импорте модуля).
- Фолбэк: sqlite+aiosqlite:///:memory: если DATABASE_URL не задан.
- Postgres URL автоматически приводится к postgresql+asyncpg://.
- Утилиты: get_db() (FastAPI dependency), init_db_async(), close_db_async(),
  health_check_db_async().
"""

from __future__ import annotations

from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sellit.core.config import settings
from sellit.core.logging import get_logger
from sellit.models import Base

logger = get_logger(__name__)

_ENGINE: Optional[AsyncEngine] = None
_SESSION_MAKER: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(url: str) -> dict:
    opts = settings.sqlalchemy_engine_options()
    if url.startswith("sqlite") and ":memory:" in url:
        # одна in-memory БД на весь процесс
        opts.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
    return opts


def get_engine() -> AsyncEngine:
    """Создаёт и кэширует async engine лениво (без подключения)."""
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is not None:
        return _ENGINE

    url = settings.sqlalchemy_async_url
    _ENGINE = create_async_engine(url, **_engine_options(url))
    _SESSION_MAKER = make_session_factory(_ENGINE)
    logger.info("Async engine created", driver=url.split("://", 1)[0])
    return _ENGINE


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency (async).
    Сессия открывается на запрос; незакоммиченные изменения откатываются.
    """
    get_engine()
    assert _SESSION_MAKER is not None
    async with _SESSION_MAKER() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db_async(drop_all: bool = False) -> None:
    eng = get_engine()
    async with eng.begin() as conn:
        if drop_all:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db_async() -> None:
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is not None:
        await _ENGINE.dispose()
    _ENGINE = None
    _SESSION_MAKER = None


async def health_check_db_async() -> dict:
    try:
        eng = get_engine()
        async with eng.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"ok": True, "error": None}
    except Exception as e:  # health endpoint reports instead of raising
        logger.error("Async DB health check failed", error=str(e))
        return {"ok": False, "error": str(e)}


__all__ = [
    "get_engine",
    "make_session_factory",
    "get_db",
    "init_db_async",
    "close_db_async",
    "health_check_db_async",
]
