# sellit/models/category.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from sellit.models.base import BaseModel


class Category(BaseModel):
    """Категория магазина; parent_id задаёт подкатегорию."""

    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("store_id", "slug"),)

    store_id: Mapped[int] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), index=True
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )


class CategoryAttributeStats(BaseModel):
    """
    Денормализованные счётчики для фасетной фильтрации витрины.

    values: [{"value_id", "value", "value_slug", "color_hex", "count"}]: сколько товаров
    категории имеют активный вариант в наличии с этим значением.
    total_products: сколько товаров используют атрибут.
    """

    __tablename__ = "category_attribute_stats"
    __table_args__ = (UniqueConstraint("category_id", "store_id", "attribute_id"),)

    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    store_id: Mapped[int] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attribute_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    attribute_name: Mapped[str] = mapped_column(String(100), nullable=False)
    attribute_slug: Mapped[str] = mapped_column(String(120), nullable=False)
    attribute_type: Mapped[str] = mapped_column(String(10), nullable=False, default="text")
    values: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
