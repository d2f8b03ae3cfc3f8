"""
Category endpoints: минимальный CRUD и фасетные фильтры витрины.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sellit.core.db import get_db
from sellit.core.dependencies import AuthContext, require_store_owner
from sellit.core.logging import audit_logger
from sellit.schemas.category import (
    CategoryCreate,
    CategoryFiltersResponse,
    CategoryResponse,
    StatsRebuildResponse,
)
from sellit.services.category_service import CategoryService
from sellit.services.category_stats import CategoryStatsService

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreate,
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    return await CategoryService(db).create(actor.store_id, body)


@router.get("/store/{store_id}", response_model=list[CategoryResponse])
async def list_store_categories(
    store_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
):
    return await CategoryService(db).list_for_store(store_id)


@router.post("/stats/rebuild", response_model=StatsRebuildResponse)
async def rebuild_stats(
    category_id: Optional[int] = Query(None, ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    """Recompute attribute stats for one category or the whole store."""
    if category_id is not None:
        await CategoryService(db).get(category_id, actor.store_id)
    processed = await CategoryStatsService(db).rebuild(actor.store_id, category_id)
    audit_logger.log_data_change(
        actor.user_id, "rebuild_stats", "category", category_id or "*",
        {"store_id": actor.store_id, "products_processed": processed},
    )
    return StatsRebuildResponse(store_id=actor.store_id, category_id=category_id, products_processed=processed)


@router.get("/{category_id}/filters", response_model=CategoryFiltersResponse)
async def category_filters(
    category_id: int = Path(..., ge=1),
    store_id: int = Query(..., ge=1),
    db: AsyncSession = Depends(get_db),
):
    """Facets for the storefront: attributes with per-value product counts."""
    rows = await CategoryStatsService(db).get_filters_for_category(category_id, store_id)
    return {
        "category_id": category_id,
        "store_id": store_id,
        "attributes": [
            {
                "attribute_id": r.attribute_id,
                "attribute_name": r.attribute_name,
                "attribute_slug": r.attribute_slug,
                "attribute_type": r.attribute_type,
                "total_products": r.total_products,
                "values": r.values or [],
            }
            for r in rows
        ],
    }
