# sellit/services/category_stats.py
"""
Category attribute stats for storefront faceted filtering.

A product contributes when it is active and has variants: every distinct
(attribute, value) pair found on an active variant with stock > 0 counts once
for the product's category and once for its subcategory. `total_products`
counts products per attribute. Counts never drop below zero; rows left empty
are removed.

Stats are a derived view: a failure here is logged and never fails the
product operation that triggered it. `rebuild()` recomputes from scratch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sellit.core.logging import get_logger
from sellit.models.attribute import Attribute
from sellit.models.category import CategoryAttributeStats
from sellit.models.product import Product

logger = get_logger(__name__)


@dataclass
class StatsSnapshot:
    """What one product contributes: category ids and attribute -> value pairs."""

    store_id: int
    category_ids: list[int] = field(default_factory=list)
    # attribute_id -> {value_id: {"value", "color_hex"}}
    values: dict[int, dict[int, dict[str, Any]]] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not self.category_ids or not self.values


def snapshot(product: Product) -> StatsSnapshot:
    snap = StatsSnapshot(store_id=product.store_id)
    for cid in (product.category_id, product.subcategory_id):
        if cid is not None and cid not in snap.category_ids:
            snap.category_ids.append(cid)
    if not product.has_variants or not product.is_active:
        return snap
    for variant in product.variants:
        if not variant.is_active or (variant.stock or 0) <= 0:
            continue
        for a in variant.attributes or []:
            per_attr = snap.values.setdefault(int(a["attribute_id"]), {})
            per_attr.setdefault(
                int(a["value_id"]), {"value": a.get("value") or "", "color_hex": a.get("color_hex")}
            )
    return snap


class CategoryStatsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------ apply
    async def update_stats_for_product(
        self, product_or_snapshot: Product | StatsSnapshot, delta: int
    ) -> None:
        snap = (
            product_or_snapshot
            if isinstance(product_or_snapshot, StatsSnapshot)
            else snapshot(product_or_snapshot)
        )
        if snap.empty or delta == 0:
            return
        # изменения товара сбрасываем вне SAVEPOINT, их ошибки не глотаем
        await self.db.flush()
        try:
            # при сбое откатывается только статистика
            async with self.db.begin_nested():
                await self._apply(snap, delta)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to update category stats",
                store_id=snap.store_id,
                category_ids=snap.category_ids,
                error=str(e),
            )

    async def replace_contribution(self, before: StatsSnapshot, after: StatsSnapshot) -> None:
        """Swap a product's old contribution for its new one."""
        await self.update_stats_for_product(before, -1)
        await self.update_stats_for_product(after, +1)

    async def _apply(self, snap: StatsSnapshot, delta: int, only_category: Optional[int] = None) -> None:
        attrs = {
            a.id: a
            for a in (
                await self.db.execute(select(Attribute).where(Attribute.id.in_(list(snap.values))))
            ).scalars()
        }
        category_ids = [c for c in snap.category_ids if only_category is None or c == only_category]
        for category_id in category_ids:
            for attribute_id, values in snap.values.items():
                attr = attrs.get(attribute_id)
                if attr is None:
                    continue
                await self._update_row(category_id, snap.store_id, attr, values, delta)
        await self.db.flush()

    async def _update_row(
        self,
        category_id: int,
        store_id: int,
        attr: Attribute,
        values: dict[int, dict[str, Any]],
        delta: int,
    ) -> None:
        row = (
            await self.db.execute(
                select(CategoryAttributeStats).where(
                    CategoryAttributeStats.category_id == category_id,
                    CategoryAttributeStats.store_id == store_id,
                    CategoryAttributeStats.attribute_id == attr.id,
                )
            )
        ).scalar_one_or_none()

        if row is None:
            if delta < 0:
                return
            row = CategoryAttributeStats(
                category_id=category_id,
                store_id=store_id,
                attribute_id=attr.id,
                attribute_name=attr.name,
                attribute_slug=attr.slug,
                attribute_type=attr.type,
                values=[],
                total_products=0,
            )
            self.db.add(row)

        row.attribute_name = attr.name
        row.attribute_slug = attr.slug
        row.attribute_type = attr.type

        current = {int(v["value_id"]): dict(v) for v in (row.values or [])}
        for value_id, info in values.items():
            entry = current.get(value_id)
            if entry is None:
                if delta < 0:
                    continue
                catalog_value = attr.value_by_id(value_id)
                entry = {
                    "value_id": value_id,
                    "value": info.get("value") or "",
                    "value_slug": catalog_value.slug if catalog_value is not None else "",
                    "color_hex": info.get("color_hex"),
                    "count": 0,
                }
                current[value_id] = entry
            entry["count"] = max(0, int(entry.get("count", 0)) + delta)

        kept = [v for v in current.values() if v["count"] > 0]
        kept.sort(key=lambda v: (v.get("value") or "", v["value_id"]))
        row.values = kept
        row.total_products = max(0, int(row.total_products or 0) + delta)

        if not kept and row.total_products <= 0:
            if row in self.db.new:
                self.db.expunge(row)
            else:
                await self.db.delete(row)

    # ------------------------------------------------------------------ read
    async def get_filters_for_category(self, category_id: int, store_id: int) -> list[CategoryAttributeStats]:
        stmt = (
            select(CategoryAttributeStats)
            .where(
                CategoryAttributeStats.category_id == category_id,
                CategoryAttributeStats.store_id == store_id,
                CategoryAttributeStats.total_products > 0,
            )
            .order_by(CategoryAttributeStats.attribute_name)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------ rebuild
    async def rebuild(self, store_id: int, category_id: Optional[int] = None) -> int:
        """Recompute stats for one category or the whole store. Returns products processed."""
        logger.info("Rebuilding category stats", store_id=store_id, category_id=category_id)

        wipe = delete(CategoryAttributeStats).where(CategoryAttributeStats.store_id == store_id)
        stmt = select(Product).where(
            Product.store_id == store_id,
            Product.has_variants.is_(True),
            Product.is_active.is_(True),
        )
        if category_id is not None:
            wipe = wipe.where(CategoryAttributeStats.category_id == category_id)
            stmt = stmt.where(
                or_(Product.category_id == category_id, Product.subcategory_id == category_id)
            )
        await self.db.execute(wipe)

        products = list((await self.db.execute(stmt)).scalars().all())
        for product in products:
            snap = snapshot(product)
            if not snap.empty:
                await self._apply(snap, +1, only_category=category_id)
        await self.db.commit()

        logger.info(
            "Rebuilt category stats",
            store_id=store_id,
            category_id=category_id,
            products_processed=len(products),
        )
        return len(products)


__all__ = ["CategoryStatsService", "StatsSnapshot", "snapshot"]
