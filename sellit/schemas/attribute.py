"""
Attribute catalog schemas.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from sellit.schemas.base import BaseSchema, LocalizedText, TimestampedSchema

AttributeType = Literal["text", "color"]

HEX_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class AttributeValueCreate(BaseSchema):
    value: str = Field(..., min_length=1, max_length=100)
    value_localized: Optional[LocalizedText] = None
    slug: Optional[str] = Field(None, max_length=120)
    color_hex: Optional[str] = Field(None, pattern=HEX_PATTERN)
    order: Optional[int] = Field(None, ge=0)


class AttributeValueUpdate(BaseSchema):
    value: Optional[str] = Field(None, min_length=1, max_length=100)
    value_localized: Optional[LocalizedText] = None
    slug: Optional[str] = Field(None, max_length=120)
    color_hex: Optional[str] = Field(None, pattern=HEX_PATTERN)
    order: Optional[int] = Field(None, ge=0)


class AttributeCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=100)
    name_localized: Optional[LocalizedText] = None
    slug: Optional[str] = Field(None, max_length=120)
    type: AttributeType = "text"
    requires_image: bool = False
    values: list[AttributeValueCreate] = Field(default_factory=list)
    order: Optional[int] = Field(None, ge=0)


class AttributeUpdate(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    name_localized: Optional[LocalizedText] = None
    slug: Optional[str] = Field(None, max_length=120)
    type: Optional[AttributeType] = None
    requires_image: Optional[bool] = None
    order: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class AttributeReorder(BaseSchema):
    attribute_ids: list[int] = Field(..., min_length=1)


class AttributeValueReorder(BaseSchema):
    value_ids: list[int] = Field(..., min_length=1)


class AttributeValueResponse(TimestampedSchema):
    value: str
    value_localized: Optional[dict] = None
    slug: str
    color_hex: Optional[str] = None
    order: int


class AttributeResponse(TimestampedSchema):
    store_id: int
    name: str
    name_localized: Optional[dict] = None
    slug: str
    type: AttributeType
    requires_image: bool
    order: int
    is_active: bool
    values: list[AttributeValueResponse] = Field(default_factory=list)
