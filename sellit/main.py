"""
Sellit API application factory.

uvicorn sellit.main:app
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from sellit.api.v1 import api_v1
from sellit.core.config import settings
from sellit.core.db import close_db_async, health_check_db_async, init_db_async
from sellit.core.exceptions import register_exception_handlers
from sellit.core.logging import LoggingContextMiddleware, get_logger, setup_logging

logger = get_logger(__name__)


# ======================================================================================
# LIFESPAN (startup -> yield -> shutdown)
# ======================================================================================
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    settings.check_secret_key()
    logger.info("Application startup", env=settings.ENVIRONMENT, version=settings.VERSION)
    logger.debug("Settings loaded", settings=settings.dump_settings_safe())
    await init_db_async()
    try:
        yield
    finally:
        await close_db_async()
        logger.info("Application shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
        max_age=86400,
    )
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    # добавлен последним -> внешний слой: request_id виден всем остальным
    app.add_middleware(LoggingContextMiddleware)

    register_exception_handlers(app)
    app.include_router(api_v1)

    @app.get("/health", tags=["diagnostics"])
    async def health() -> dict[str, Any]:
        db = await health_check_db_async()
        return {
            "status": "ok" if db["ok"] else "degraded",
            **settings.build_info(),
            "database": db,
        }

    return app


app = create_app()
