# sellit/services/category_service.py
"""Минимальный каталог категорий магазина (нужен фасетным фильтрам)."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sellit.core.exceptions import BadRequestError, ConflictError, NotFoundError
from sellit.core.logging import get_logger
from sellit.models.category import Category
from sellit.schemas.category import CategoryCreate
from sellit.utils.text import slugify

logger = get_logger(__name__)


class CategoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, category_id: int, store_id: Optional[int] = None) -> Category:
        stmt = select(Category).where(Category.id == category_id)
        if store_id is not None:
            stmt = stmt.where(Category.store_id == store_id)
        category = (await self.db.execute(stmt)).scalar_one_or_none()
        if category is None:
            raise NotFoundError("Category not found", "CATEGORY_NOT_FOUND")
        return category

    async def list_for_store(self, store_id: int) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.store_id == store_id, Category.is_active.is_(True))
            .order_by(Category.order, Category.id)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def create(self, store_id: int, data: CategoryCreate) -> Category:
        slug = data.slug or slugify(data.name)
        if not slug:
            raise BadRequestError("Cannot derive slug from name", "INVALID_SLUG")
        taken = await self.db.execute(
            select(Category.id).where(Category.store_id == store_id, Category.slug == slug)
        )
        if taken.first() is not None:
            raise ConflictError("A category with this slug already exists", "DUPLICATE_SLUG")
        if data.parent_id is not None:
            await self.get(data.parent_id, store_id)

        category = Category(
            store_id=store_id,
            name=data.name,
            slug=slug,
            parent_id=data.parent_id,
            order=data.order,
            is_active=True,
        )
        self.db.add(category)
        await self.db.commit()
        await self.db.refresh(category)
        logger.info("Category created", category_id=category.id, store_id=store_id)
        return category


__all__ = ["CategoryService"]
