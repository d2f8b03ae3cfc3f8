"""
Category and faceted-filter schemas.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from sellit.schemas.base import BaseSchema, TimestampedSchema


class CategoryCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    parent_id: Optional[int] = Field(None, ge=1)
    order: int = Field(0, ge=0)


class CategoryResponse(TimestampedSchema):
    store_id: int
    name: str
    slug: str
    parent_id: Optional[int] = None
    order: int
    is_active: bool


class FilterValue(BaseModel):
    value_id: int
    value: str
    value_slug: Optional[str] = None
    color_hex: Optional[str] = None
    count: int


class AttributeFilter(BaseModel):
    attribute_id: int
    attribute_name: str
    attribute_slug: str
    attribute_type: str
    total_products: int
    values: list[FilterValue]


class CategoryFiltersResponse(BaseModel):
    category_id: int
    store_id: int
    attributes: list[AttributeFilter]


class StatsRebuildResponse(BaseModel):
    store_id: int
    category_id: Optional[int] = None
    products_processed: int
