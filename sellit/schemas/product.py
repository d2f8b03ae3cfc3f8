"""
Product & variant schemas.

Variant attributes are denormalized: the server fills attribute_name/value/
color_hex from the catalog, callers only need attribute_id + value_id.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from sellit.schemas.base import BaseSchema, LocalizedText, PaginationInfo, TimestampedSchema

SortBy = Literal["relevance", "price_asc", "price_desc", "popularity", "newest"]
HomepageOrder = Literal["newest", "price_asc", "price_desc", "popular"]


# ---------------------------------------------------------------------------
# Attribute selection
# ---------------------------------------------------------------------------
class ProductAttributeInput(BaseSchema):
    attribute_id: int = Field(..., ge=1)
    selected_value_ids: list[int] = Field(default_factory=list)

    @field_validator("selected_value_ids")
    @classmethod
    def _dedupe(cls, v: list[int]) -> list[int]:
        return list(dict.fromkeys(v))


class ProductAttributeResponse(BaseSchema):
    attribute_id: int
    selected_value_ids: list[int]


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------
class VariantAttributeValue(BaseSchema):
    attribute_id: int
    attribute_name: Optional[str] = None
    value_id: int
    value: Optional[str] = None
    color_hex: Optional[str] = None


class ProductVariantInput(BaseSchema):
    id: Optional[int] = None
    sku: Optional[str] = Field(None, max_length=100)
    attributes: list[VariantAttributeValue] = Field(..., min_length=1)
    price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    stock: int = Field(0, ge=0)
    images: list[str] = Field(default_factory=list)
    is_active: bool = True


class ProductVariantUpdate(BaseSchema):
    """Partial update: only fields present in the body are applied."""

    sku: Optional[str] = Field(None, max_length=100)
    price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[list[str]] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _no_null_required(self):
        for name in ("stock", "images", "is_active"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class BulkVariantsRequest(BaseSchema):
    regenerate: Optional[bool] = None
    variants: Optional[list[ProductVariantInput]] = None


class ProductVariantResponse(BaseSchema):
    id: int
    sku: Optional[str] = None
    attributes: list[VariantAttributeValue]
    price: Optional[float] = None
    sale_price: Optional[float] = None
    stock: int
    images: list[str]
    is_active: bool


# ---------------------------------------------------------------------------
# Product
# ---------------------------------------------------------------------------
class ProductCreate(BaseSchema):
    """Assembled by the router from multipart form fields (JSON parts already decoded)."""

    name: str = Field(..., min_length=1, max_length=255)
    name_localized: Optional[LocalizedText] = None
    description: Optional[str] = None
    description_localized: Optional[LocalizedText] = None
    price: float = Field(..., ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    is_on_sale: bool = False
    stock: int = Field(0, ge=0)
    category_id: Optional[int] = Field(None, ge=1)
    subcategory_id: Optional[int] = Field(None, ge=1)
    is_active: bool = True
    product_attributes: list[ProductAttributeInput] = Field(default_factory=list)
    variants: Optional[list[ProductVariantInput]] = None
    variant_image_mapping: Optional[dict[str, int]] = None


class ProductUpdate(BaseSchema):
    """Partial update; only fields present in the form are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    name_localized: Optional[LocalizedText] = None
    description: Optional[str] = None
    description_localized: Optional[LocalizedText] = None
    price: Optional[float] = Field(None, ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    is_on_sale: Optional[bool] = None
    stock: Optional[int] = Field(None, ge=0)
    category_id: Optional[int] = Field(None, ge=1)
    subcategory_id: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    has_variants: Optional[bool] = None
    existing_images: Optional[list[str]] = None
    product_attributes: Optional[list[ProductAttributeInput]] = None
    variants: Optional[list[ProductVariantInput]] = None
    variant_image_mapping: Optional[dict[str, int]] = None


class ProductResponse(TimestampedSchema):
    store_id: int
    name: str
    name_localized: Optional[dict] = None
    description: Optional[str] = None
    description_localized: Optional[dict] = None
    price: float
    sale_price: Optional[float] = None
    is_on_sale: bool
    stock: int
    has_variants: bool
    total_stock: int
    images: list[str]
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    is_active: bool
    view_count: int
    order_count: int
    version: int
    product_attributes: list[ProductAttributeResponse] = Field(default_factory=list)
    variants: list[ProductVariantResponse] = Field(default_factory=list)


class PriceRange(BaseModel):
    min_price: float = 0
    max_price: float = 0


class ProductListFilters(BaseModel):
    price_range: PriceRange


class ProductListResponse(BaseModel):
    products: list[ProductResponse]
    pagination: PaginationInfo
    filters: ProductListFilters


class HomepageProductsResponse(BaseModel):
    products: list[ProductResponse]
    total_count: int
    has_more: bool


class ViewCountResponse(BaseModel):
    id: int
    view_count: int


# ---------------------------------------------------------------------------
# Image groups
# ---------------------------------------------------------------------------
class ImageGroupResponse(BaseModel):
    key: str
    label: str
    attributes: list[VariantAttributeValue]
    images: list[str]
    total_stock: int
    variant_ids: list[int]
    needs_attention: bool


class ImageGroupsResponse(BaseModel):
    product_id: int
    image_attribute_ids: list[int]
    groups: list[ImageGroupResponse]
