"""
Attribute catalog endpoints (store-scoped).

Публичное чтение по store_id; изменения только владельцу магазина из токена.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sellit.core.db import get_db
from sellit.core.dependencies import AuthContext, require_store_owner
from sellit.core.logging import audit_logger
from sellit.schemas.attribute import (
    AttributeCreate,
    AttributeReorder,
    AttributeResponse,
    AttributeUpdate,
    AttributeValueCreate,
    AttributeValueReorder,
    AttributeValueUpdate,
)
from sellit.schemas.base import DeletedResponse
from sellit.services.attribute_service import AttributeService

router = APIRouter(prefix="/attributes", tags=["Attributes"])


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@router.get("/store/{store_id}", response_model=list[AttributeResponse])
async def list_store_attributes(
    store_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
):
    """Active attributes of a store, ordered."""
    return await AttributeService(db).list_for_store(store_id)


@router.get("/my-store", response_model=list[AttributeResponse])
async def list_my_attributes(
    include_inactive: bool = Query(False),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    return await AttributeService(db).list_for_store(actor.store_id, include_inactive=include_inactive)


@router.post("/reorder", response_model=list[AttributeResponse])
async def reorder_attributes(
    body: AttributeReorder,
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    return await AttributeService(db).reorder(actor.store_id, body.attribute_ids)


@router.get("/{attribute_id}", response_model=AttributeResponse)
async def get_attribute(
    attribute_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
):
    return await AttributeService(db).get(attribute_id)


# ---------------------------------------------------------------------------
# Attribute CRUD
# ---------------------------------------------------------------------------


@router.post("", response_model=AttributeResponse, status_code=status.HTTP_201_CREATED)
async def create_attribute(
    body: AttributeCreate,
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    attribute = await AttributeService(db).create(actor.store_id, body)
    audit_logger.log_data_change(
        actor.user_id, "create", "attribute", attribute.id,
        {"store_id": actor.store_id, "slug": attribute.slug, "values": len(attribute.values)},
    )
    return attribute


@router.patch("/{attribute_id}", response_model=AttributeResponse)
async def update_attribute(
    body: AttributeUpdate,
    attribute_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    attribute = await AttributeService(db).update(attribute_id, actor.store_id, body)
    audit_logger.log_data_change(
        actor.user_id, "update", "attribute", attribute_id, body.model_dump(exclude_unset=True)
    )
    return attribute


@router.delete("/{attribute_id}", response_model=DeletedResponse)
async def delete_attribute(
    attribute_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    await AttributeService(db).delete(attribute_id, actor.store_id)
    audit_logger.log_data_change(actor.user_id, "delete", "attribute", attribute_id, {"store_id": actor.store_id})
    return DeletedResponse()


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


@router.post("/{attribute_id}/values/reorder", response_model=AttributeResponse)
async def reorder_values(
    body: AttributeValueReorder,
    attribute_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    return await AttributeService(db).reorder_values(attribute_id, actor.store_id, body.value_ids)


@router.post("/{attribute_id}/values", response_model=AttributeResponse, status_code=status.HTTP_201_CREATED)
async def add_value(
    body: AttributeValueCreate,
    attribute_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    return await AttributeService(db).add_value(attribute_id, actor.store_id, body)


@router.patch("/{attribute_id}/values/{value_id}", response_model=AttributeResponse)
async def update_value(
    body: AttributeValueUpdate,
    attribute_id: int = Path(..., ge=1),
    value_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    return await AttributeService(db).update_value(attribute_id, value_id, actor.store_id, body)


@router.delete("/{attribute_id}/values/{value_id}", response_model=AttributeResponse)
async def delete_value(
    attribute_id: int = Path(..., ge=1),
    value_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    attribute = await AttributeService(db).delete_value(attribute_id, value_id, actor.store_id)
    audit_logger.log_data_change(
        actor.user_id, "delete_value", "attribute", attribute_id, {"value_id": value_id}
    )
    return attribute
