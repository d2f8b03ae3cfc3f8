"""
API v1 package.

- Подключает все v1-роутеры из ROUTER_MODULES под settings.API_PREFIX.
- Экспортирует готовый APIRouter как `api_v1` для sellit/main.py.
"""

from __future__ import annotations

import importlib
import time
from typing import List

from fastapi import APIRouter

from sellit.core.config import settings
from sellit.core.logging import get_logger

logger = get_logger(__name__)

# Порядок важен: статические пути (/my-store, /reorder) объявлены в модулях раньше /{id}.
ROUTER_MODULES: List[str] = [
    "sellit.api.v1.attributes",
    "sellit.api.v1.categories",
    "sellit.api.v1.products",
]


def create_api_router(prefix: str | None = None) -> APIRouter:
    """Create API router with all v1 endpoints."""
    api_prefix = (settings.API_PREFIX if prefix is None else prefix).rstrip("/")
    api_router = APIRouter()

    for module_name in ROUTER_MODULES:
        t0 = time.perf_counter()
        module = importlib.import_module(module_name)
        router = getattr(module, "router", None)
        if not isinstance(router, APIRouter):
            raise RuntimeError(f"No router found in {module_name}")
        api_router.include_router(router, prefix=api_prefix)
        logger.debug(
            "Router included",
            module=module_name,
            prefix=f"{api_prefix}{router.prefix}",
            ms=round((time.perf_counter() - t0) * 1000, 1),
        )

    return api_router


api_v1: APIRouter = create_api_router()

__all__ = ["api_v1", "create_api_router", "ROUTER_MODULES"]
