"""
Base Pydantic schemas with common patterns.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(from_attributes=True, validate_assignment=True, use_enum_values=True)


class TimestampedSchema(BaseSchema):
    """Schema with timestamp fields."""

    id: int
    created_at: datetime
    updated_at: datetime


class LocalizedText(BaseSchema):
    """Per-locale variants of a display string."""

    ka: Optional[str] = Field(None, max_length=1000)
    en: Optional[str] = Field(None, max_length=1000)


class DeletedResponse(BaseModel):
    deleted: bool = True


class PaginationInfo(BaseModel):
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1, le=100)
    total: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)

    @classmethod
    def create(cls, page: int, limit: int, total: int) -> "PaginationInfo":
        return cls(page=page, limit=limit, total=total, total_pages=(total + limit - 1) // limit)
