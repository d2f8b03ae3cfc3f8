# sellit/models/product.py
"""
Product aggregate (SQLAlchemy 2.x).

- Product: плоская цена/сток для простого товара; has_variants/total_stock для вариативного.
- ProductAttribute: выбранные атрибуты товара и подмножество их значений (вход генератора).
- ProductVariant: отдельная таблица, позиция задаёт порядок перечисления комбинаций.
- Оптимистическая блокировка по products.version: любая мутация вариантов
  трогает строку товара, поэтому конкурентная запись получает StaleDataError.
- Денежные поля: Numeric(14, 2), отдаются как float.
- JSON-поля заменяются целиком (in-place мутации не отслеживаются).
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sellit.models.base import BaseModel

Money = Numeric(14, 2, asdecimal=False)


class Product(BaseModel):
    __tablename__ = "products"

    store_id: Mapped[int] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_localized: Mapped[Optional[dict]] = mapped_column(JSON)
    description: Mapped[Optional[str]] = mapped_column(Text)
    description_localized: Mapped[Optional[dict]] = mapped_column(JSON)

    price: Mapped[float] = mapped_column(Money, nullable=False, index=True)
    sale_price: Mapped[Optional[float]] = mapped_column(Money)
    is_on_sale: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    # stock авторитетен только для простого товара; total_stock = Σ variant.stock
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    has_variants: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    total_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), index=True
    )
    subcategory_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), index=True
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    __mapper_args__ = {"version_id_col": version}

    product_attributes: Mapped[list["ProductAttribute"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductAttribute.position",
        lazy="selectin",
    )
    variants: Mapped[list["ProductVariant"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.position",
        lazy="selectin",
    )

    # -------------------------------- helpers --------------------------------
    def recompute_total_stock(self) -> int:
        if self.has_variants:
            self.total_stock = sum(int(v.stock or 0) for v in self.variants)
        else:
            self.total_stock = int(self.stock or 0)
        return self.total_stock

    def find_variant(self, variant_id: int) -> Optional["ProductVariant"]:
        for v in self.variants:
            if v.id == variant_id:
                return v
        return None


class ProductAttribute(BaseModel):
    __tablename__ = "product_attributes"

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # без FK: удаление атрибута из каталога не ломает товар
    attribute_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    selected_value_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped[Product] = relationship(back_populates="product_attributes")


class ProductVariant(BaseModel):
    __tablename__ = "product_variants"
    __table_args__ = (Index("ix__product_variants__identity", "product_id", "identity_key"),)

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # "attrId-valueId|attrId-valueId", пары отсортированы
    identity_key: Mapped[str] = mapped_column(String(512), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100))
    # [{"attribute_id", "attribute_name", "value_id", "value", "color_hex"}]
    attributes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    price: Mapped[Optional[float]] = mapped_column(Money)
    sale_price: Mapped[Optional[float]] = mapped_column(Money)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

    product: Mapped[Product] = relationship(back_populates="variants")
