# sellit/models/attribute.py
"""
Attribute catalog (store-scoped).

Attribute: ось вариативности товара (Color, Size); AttributeValue: её значения.
Товары ссылаются на атрибуты по id, но не владеют ими: удаление атрибута/значения
не переписывает товары (устаревшие ссылки пропускаются генератором вариантов).
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, ForeignKey, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sellit.models.base import BaseModel

ATTRIBUTE_TYPES = ("text", "color")


class Attribute(BaseModel):
    __tablename__ = "attributes"
    __table_args__ = (
        UniqueConstraint("store_id", "slug"),
        CheckConstraint(
            "type IN (" + ", ".join(f"'{t}'" for t in ATTRIBUTE_TYPES) + ")", name="attribute_type"
        ),
    )

    store_id: Mapped[int] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_localized: Mapped[Optional[dict]] = mapped_column(JSON)
    slug: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[str] = mapped_column(
        String(10), nullable=False, default="text", server_default=text("'text'")
    )
    requires_image: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

    values: Mapped[list["AttributeValue"]] = relationship(
        back_populates="attribute",
        cascade="all, delete-orphan",
        order_by=lambda: [AttributeValue.order, AttributeValue.id],
        lazy="selectin",
    )

    @property
    def is_color(self) -> bool:
        return self.type == "color"

    def value_by_id(self, value_id: int) -> Optional["AttributeValue"]:
        for v in self.values:
            if v.id == value_id:
                return v
        return None


class AttributeValue(BaseModel):
    __tablename__ = "attribute_values"
    __table_args__ = (UniqueConstraint("attribute_id", "slug"),)

    attribute_id: Mapped[int] = mapped_column(
        ForeignKey("attributes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    value: Mapped[str] = mapped_column(String(100), nullable=False)
    value_localized: Mapped[Optional[dict]] = mapped_column(JSON)
    slug: Mapped[str] = mapped_column(String(120), nullable=False)
    color_hex: Mapped[Optional[str]] = mapped_column(String(7))
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    attribute: Mapped[Attribute] = relationship(back_populates="values")
