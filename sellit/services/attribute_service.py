# sellit/services/attribute_service.py
"""
Attribute catalog service (store-scoped CRUD + value management).

Rules:
- slug уникален в магазине (атрибуты) и внутри атрибута (значения); генерируется из имени.
- color-атрибут требует color_hex у каждого значения; у text-атрибута color_hex отбрасывается.
- тип нельзя сменить, пока у атрибута есть значения.
- удаление атрибута/значения не трогает товары.
"""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sellit.core.exceptions import BadRequestError, ConflictError, NotFoundError
from sellit.core.logging import get_logger
from sellit.models.attribute import Attribute, AttributeValue
from sellit.schemas.attribute import (
    AttributeCreate,
    AttributeUpdate,
    AttributeValueCreate,
    AttributeValueUpdate,
)
from sellit.utils.text import is_hex_color, slugify

logger = get_logger(__name__)


def _localized(v) -> Optional[dict]:
    return v.model_dump(exclude_none=True) if v is not None else None


class AttributeService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------ read
    async def list_for_store(self, store_id: int, include_inactive: bool = False) -> list[Attribute]:
        stmt = select(Attribute).where(Attribute.store_id == store_id)
        if not include_inactive:
            stmt = stmt.where(Attribute.is_active.is_(True))
        stmt = stmt.order_by(Attribute.order, Attribute.id)
        return list((await self.db.execute(stmt)).scalars().all())

    async def get(self, attribute_id: int, store_id: Optional[int] = None, *, refresh: bool = False) -> Attribute:
        stmt = select(Attribute).where(Attribute.id == attribute_id)
        if store_id is not None:
            stmt = stmt.where(Attribute.store_id == store_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        attribute = (await self.db.execute(stmt)).scalar_one_or_none()
        if attribute is None:
            raise NotFoundError("Attribute not found", "ATTRIBUTE_NOT_FOUND")
        return attribute

    async def catalog_for(self, store_id: int, attribute_ids: Iterable[int]) -> dict[int, Attribute]:
        """Attributes of the store by id; unknown ids are simply absent."""
        ids = {int(i) for i in attribute_ids}
        if not ids:
            return {}
        stmt = select(Attribute).where(Attribute.store_id == store_id, Attribute.id.in_(ids))
        return {a.id: a for a in (await self.db.execute(stmt)).scalars().all()}

    # ------------------------------------------------------------------ helpers
    async def _slug_taken(self, store_id: int, slug: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(Attribute.id).where(Attribute.store_id == store_id, Attribute.slug == slug)
        if exclude_id is not None:
            stmt = stmt.where(Attribute.id != exclude_id)
        return (await self.db.execute(stmt)).first() is not None

    @staticmethod
    def _check_color(attr_type: str, value: str, color_hex: Optional[str]) -> Optional[str]:
        if attr_type != "color":
            return None
        if not color_hex:
            raise BadRequestError(
                f"Color hex is required for color-type attributes. Missing for value: {value}",
                "COLOR_HEX_REQUIRED",
            )
        if not is_hex_color(color_hex):
            raise BadRequestError(f"Invalid color hex: {color_hex}", "INVALID_COLOR_HEX")
        return color_hex.lower()

    # ------------------------------------------------------------------ attribute CRUD
    async def create(self, store_id: int, data: AttributeCreate) -> Attribute:
        slug = data.slug or slugify(data.name)
        if not slug:
            raise BadRequestError("Cannot derive slug from name", "INVALID_SLUG")
        if await self._slug_taken(store_id, slug):
            raise ConflictError("An attribute with this slug already exists", "DUPLICATE_SLUG")

        values: list[AttributeValue] = []
        seen_slugs: set[str] = set()
        for idx, v in enumerate(data.values):
            vslug = v.slug or slugify(v.value)
            if vslug in seen_slugs:
                raise ConflictError("A value with this slug already exists", "DUPLICATE_VALUE_SLUG")
            seen_slugs.add(vslug)
            values.append(
                AttributeValue(
                    value=v.value,
                    value_localized=_localized(v.value_localized),
                    slug=vslug,
                    color_hex=self._check_color(data.type, v.value, v.color_hex),
                    order=v.order if v.order is not None else idx,
                )
            )

        order = data.order
        if order is None:
            max_order = await self.db.scalar(
                select(func.max(Attribute.order)).where(Attribute.store_id == store_id)
            )
            order = (max_order if max_order is not None else -1) + 1

        attribute = Attribute(
            store_id=store_id,
            name=data.name,
            name_localized=_localized(data.name_localized),
            slug=slug,
            type=data.type,
            requires_image=data.requires_image,
            order=order,
            is_active=True,
            values=values,
        )
        self.db.add(attribute)
        await self.db.commit()
        logger.info("Attribute created", attribute_id=attribute.id, slug=slug)
        return await self.get(attribute.id, store_id, refresh=True)

    async def update(self, attribute_id: int, store_id: int, data: AttributeUpdate) -> Attribute:
        attribute = await self.get(attribute_id, store_id)
        changes = data.model_dump(exclude_unset=True)

        new_slug = changes.get("slug")
        if new_slug and new_slug != attribute.slug and await self._slug_taken(store_id, new_slug, attribute.id):
            raise ConflictError("An attribute with this slug already exists", "DUPLICATE_SLUG")

        new_type = changes.get("type")
        if new_type and new_type != attribute.type and attribute.values:
            raise BadRequestError(
                "Cannot change attribute type when values exist. Delete all values first.",
                "TYPE_CHANGE_WITH_VALUES",
            )

        for field, value in changes.items():
            if value is None and field in ("name", "slug", "type", "requires_image", "order", "is_active"):
                continue
            if field == "name_localized":
                value = _localized(data.name_localized)
            setattr(attribute, field, value)

        await self.db.commit()
        return await self.get(attribute.id, store_id, refresh=True)

    async def delete(self, attribute_id: int, store_id: int) -> None:
        attribute = await self.get(attribute_id, store_id)
        await self.db.delete(attribute)
        await self.db.commit()
        logger.info("Attribute deleted", attribute_id=attribute_id)

    async def reorder(self, store_id: int, attribute_ids: list[int]) -> list[Attribute]:
        owned = {a.id: a for a in await self.list_for_store(store_id, include_inactive=True)}
        for index, aid in enumerate(attribute_ids):
            attr = owned.get(aid)
            if attr is not None:
                attr.order = index
        await self.db.commit()
        return await self.list_for_store(store_id, include_inactive=True)

    # ------------------------------------------------------------------ values
    async def add_value(self, attribute_id: int, store_id: int, data: AttributeValueCreate) -> Attribute:
        attribute = await self.get(attribute_id, store_id)
        slug = data.slug or slugify(data.value)
        if any(v.slug == slug for v in attribute.values):
            raise ConflictError("A value with this slug already exists", "DUPLICATE_VALUE_SLUG")

        max_order = max((v.order for v in attribute.values), default=-1)
        attribute.values.append(
            AttributeValue(
                value=data.value,
                value_localized=_localized(data.value_localized),
                slug=slug,
                color_hex=self._check_color(attribute.type, data.value, data.color_hex),
                order=data.order if data.order is not None else max_order + 1,
            )
        )
        await self.db.commit()
        return await self.get(attribute.id, store_id, refresh=True)

    async def update_value(
        self, attribute_id: int, value_id: int, store_id: int, data: AttributeValueUpdate
    ) -> Attribute:
        attribute = await self.get(attribute_id, store_id)
        value = attribute.value_by_id(value_id)
        if value is None:
            raise NotFoundError("Value not found", "VALUE_NOT_FOUND")

        changes = data.model_dump(exclude_unset=True)
        new_slug = changes.get("slug")
        if new_slug and new_slug != value.slug:
            if any(v.slug == new_slug and v.id != value.id for v in attribute.values):
                raise ConflictError("A value with this slug already exists", "DUPLICATE_VALUE_SLUG")
            value.slug = new_slug
        if changes.get("value") is not None:
            value.value = changes["value"]
        if "value_localized" in changes:
            value.value_localized = _localized(data.value_localized)
        if changes.get("order") is not None:
            value.order = changes["order"]
        if attribute.is_color and "color_hex" in changes:
            value.color_hex = self._check_color("color", value.value, changes["color_hex"])

        await self.db.commit()
        return await self.get(attribute.id, store_id, refresh=True)

    async def delete_value(self, attribute_id: int, value_id: int, store_id: int) -> Attribute:
        attribute = await self.get(attribute_id, store_id)
        value = attribute.value_by_id(value_id)
        if value is None:
            raise NotFoundError("Value not found", "VALUE_NOT_FOUND")
        attribute.values.remove(value)
        await self.db.commit()
        return await self.get(attribute.id, store_id, refresh=True)

    async def reorder_values(self, attribute_id: int, store_id: int, value_ids: list[int]) -> Attribute:
        attribute = await self.get(attribute_id, store_id)
        by_id = {v.id: v for v in attribute.values}
        for index, vid in enumerate(value_ids):
            v = by_id.get(vid)
            if v is not None:
                v.order = index
        await self.db.commit()
        return await self.get(attribute.id, store_id, refresh=True)


__all__ = ["AttributeService"]
