# sellit/services/product_service.py
"""
Product service: storefront listing, seller CRUD and the variant lifecycle.

Все мутации работают по схеме load -> mutate -> flush -> commit в одной сессии.
Строка товара всегда "трогается" (touch), поэтому products.version растёт
при каждом изменении вариантов и конкурентная запись получает 409.

Ownership: товар ищется сразу по (id, store_id); чужой товар неотличим от
несуществующего (404 PRODUCT_NOT_FOUND).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from fastapi import UploadFile
from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sellit.core.config import settings
from sellit.core.exceptions import BadRequestError, NotFoundError
from sellit.core.logging import audit_logger, get_logger
from sellit.models.attribute import Attribute
from sellit.models.product import Product, ProductAttribute, ProductVariant
from sellit.schemas.product import (
    ProductAttributeInput,
    ProductCreate,
    ProductUpdate,
    ProductVariantInput,
    ProductVariantUpdate,
)
from sellit.services.attribute_service import AttributeService
from sellit.services.category_stats import CategoryStatsService, snapshot
from sellit.services.image_groups import (
    apply_group_images,
    build_image_groups,
    distribute_uploads,
    image_attribute_ids_for,
)
from sellit.services.variant_generator import (
    generate_combinations,
    identity_key,
    total_stock,
)

logger = get_logger(__name__)

_SCALAR_FIELDS = (
    "name",
    "description",
    "price",
    "sale_price",
    "is_on_sale",
    "stock",
    "category_id",
    "subcategory_id",
    "is_active",
)
# поля, которые нельзя обнулить через PATCH
_NOT_NULLABLE = {"name", "price", "is_on_sale", "stock", "is_active"}


@dataclass
class ProductListQuery:
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    on_sale: Optional[bool] = None
    in_stock: Optional[bool] = None
    attributes: Optional[str] = None
    search: Optional[str] = None
    sort_by: str = "relevance"
    page: int = 1
    limit: int = 20


def parse_attribute_filter(raw: Optional[str]) -> dict[str, list[int]]:
    """
    "color:1,2|size:5" -> {"color": [1, 2], "size": [5]}

    Malformed chunks and non-numeric ids are ignored.
    """
    out: dict[str, list[int]] = {}
    if not raw:
        return out
    for chunk in raw.split("|"):
        slug, sep, ids = chunk.partition(":")
        slug = slug.strip()
        if not sep or not slug:
            continue
        values = [int(v) for v in (s.strip() for s in ids.split(",")) if v.isdigit()]
        if values:
            out.setdefault(slug, []).extend(values)
    return out


def _pair_clause(column, attribute_id: int, value_id: int):
    # identity_key = "a-v|a-v|..."; точное совпадение пары
    pair = f"{attribute_id}-{value_id}"
    return or_(
        column == pair,
        column.like(f"{pair}|%"),
        column.like(f"%|{pair}"),
        column.like(f"%|{pair}|%"),
    )


def _localized(v) -> Optional[dict]:
    return v.model_dump(exclude_none=True) if v is not None else None


class ProductService:
    def __init__(self, db: AsyncSession, uploader: Any = None):
        self.db = db
        self.uploader = uploader
        self.attributes = AttributeService(db)
        self.stats = CategoryStatsService(db)

    # ==================================================================
    # Lookup
    # ==================================================================
    async def get(self, product_id: int, store_id: Optional[int] = None, *, refresh: bool = False) -> Product:
        stmt = select(Product).where(Product.id == product_id)
        if store_id is not None:
            stmt = stmt.where(Product.store_id == store_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        product = (await self.db.execute(stmt)).scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product not found", "PRODUCT_NOT_FOUND")
        return product

    async def get_owned(self, product_id: int, store_id: int, *, refresh: bool = False) -> Product:
        return await self.get(product_id, store_id, refresh=refresh)

    # ==================================================================
    # Storefront
    # ==================================================================
    async def list_products(self, store_id: int, q: ProductListQuery) -> dict[str, Any]:
        conditions = [Product.store_id == store_id, Product.is_active.is_(True)]

        if q.category_id is not None:
            conditions.append(Product.category_id == q.category_id)
        if q.subcategory_id is not None:
            conditions.append(Product.subcategory_id == q.subcategory_id)
        if q.min_price is not None:
            conditions.append(Product.price >= q.min_price)
        if q.max_price is not None:
            conditions.append(Product.price <= q.max_price)
        if q.on_sale:
            conditions.append(Product.is_on_sale.is_(True))
        if q.in_stock:
            conditions.append(
                or_(
                    and_(Product.has_variants.is_(False), Product.stock > 0),
                    and_(Product.has_variants.is_(True), Product.total_stock > 0),
                )
            )
        if q.search:
            pattern = f"%{q.search.strip()}%"
            conditions.append(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        conditions.extend(await self._attribute_conditions(store_id, q.attributes))

        base = select(Product).where(*conditions)
        total = int(await self.db.scalar(select(func.count()).select_from(base.subquery())) or 0)

        stmt = base.order_by(*self._ordering(q.sort_by)).offset((q.page - 1) * q.limit).limit(q.limit)
        products = list((await self.db.execute(stmt)).scalars().all())

        min_price, max_price = (
            await self.db.execute(
                select(func.min(Product.price), func.max(Product.price)).where(
                    Product.store_id == store_id, Product.is_active.is_(True)
                )
            )
        ).one()

        return {
            "products": products,
            "total": total,
            "price_range": {"min_price": float(min_price or 0), "max_price": float(max_price or 0)},
        }

    async def _attribute_conditions(self, store_id: int, raw: Optional[str]) -> list:
        wanted = parse_attribute_filter(raw)
        if not wanted:
            return []
        rows = await self.db.execute(
            select(Attribute.slug, Attribute.id).where(
                Attribute.store_id == store_id, Attribute.slug.in_(list(wanted))
            )
        )
        ids_by_slug = {slug: aid for slug, aid in rows.all()}

        conditions = []
        for slug, value_ids in wanted.items():
            attribute_id = ids_by_slug.get(slug)
            if attribute_id is None:
                logger.debug("Unknown attribute slug in filter", slug=slug, store_id=store_id)
                continue
            conditions.append(
                exists(
                    select(ProductVariant.id).where(
                        ProductVariant.product_id == Product.id,
                        ProductVariant.is_active.is_(True),
                        or_(*[_pair_clause(ProductVariant.identity_key, attribute_id, v) for v in value_ids]),
                    )
                )
            )
        return conditions

    @staticmethod
    def _ordering(sort_by: str) -> list:
        if sort_by == "price_asc":
            return [Product.price.asc(), Product.id.asc()]
        if sort_by == "price_desc":
            return [Product.price.desc(), Product.id.desc()]
        if sort_by == "popularity":
            return [Product.order_count.desc(), Product.view_count.desc(), Product.id.desc()]
        if sort_by == "newest":
            return [Product.created_at.desc(), Product.id.desc()]
        # relevance: без полнотекстового индекса -> по просмотрам
        return [Product.view_count.desc(), Product.created_at.desc(), Product.id.desc()]

    async def homepage(self, store_id: int, order: str = "newest", limit: int = 8) -> dict[str, Any]:
        active = (Product.store_id == store_id, Product.is_active.is_(True))
        ordering = {
            "newest": [Product.created_at.desc(), Product.id.desc()],
            "price_asc": [Product.price.asc(), Product.id.asc()],
            "price_desc": [Product.price.desc(), Product.id.desc()],
            "popular": [Product.view_count.desc(), Product.order_count.desc(), Product.id.desc()],
        }.get(order, [Product.created_at.desc(), Product.id.desc()])

        products = list(
            (await self.db.execute(select(Product).where(*active).order_by(*ordering).limit(limit))).scalars().all()
        )
        total_count = int(await self.db.scalar(select(func.count(Product.id)).where(*active)) or 0)
        return {"products": products, "total_count": total_count, "has_more": total_count > limit}

    async def list_for_owner(self, store_id: int) -> list[Product]:
        stmt = (
            select(Product)
            .where(Product.store_id == store_id)
            .order_by(Product.created_at.desc(), Product.id.desc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def increment_view_count(self, product_id: int) -> int:
        # прямой UPDATE: счётчик просмотров не должен конфликтовать с правками продавца
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(view_count=Product.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            await self.db.rollback()
            raise NotFoundError("Product not found", "PRODUCT_NOT_FOUND")
        await self.db.commit()
        return int(await self.db.scalar(select(Product.view_count).where(Product.id == product_id)) or 0)

    # ==================================================================
    # Uploads
    # ==================================================================
    @staticmethod
    def _check_upload_limits(
        images: Sequence[UploadFile],
        variant_images: Sequence[UploadFile],
        mapping: Optional[dict[str, int]],
    ) -> None:
        if len(images) > settings.MAX_PRODUCT_IMAGES:
            raise BadRequestError(
                f"Too many product images (max {settings.MAX_PRODUCT_IMAGES})", "TOO_MANY_IMAGES"
            )
        if len(variant_images) > settings.MAX_VARIANT_IMAGES:
            raise BadRequestError(
                f"Too many variant images (max {settings.MAX_VARIANT_IMAGES})", "TOO_MANY_IMAGES"
            )
        if variant_images or mapping:
            # проверяем раскладку до загрузки, чтобы не плодить осиротевшие файлы
            distribute_uploads(mapping or {}, variant_images)

    async def _upload(
        self, store_id: int, images: Sequence[UploadFile], variant_images: Sequence[UploadFile]
    ) -> tuple[list[str], list[str]]:
        if not images and not variant_images:
            return [], []
        if self.uploader is None:
            raise BadRequestError("Image uploads are not available", "UPLOADS_DISABLED")
        folder = f"sellit/stores/{store_id}/products"
        product_urls, variant_urls = await asyncio.gather(
            self.uploader.upload_many(list(images), folder),
            self.uploader.upload_many(list(variant_images), f"{folder}/variants"),
        )
        return list(product_urls), list(variant_urls)

    async def _apply_variant_images(
        self, product: Product, mapping: Optional[dict[str, int]], urls: list[str]
    ) -> None:
        if not urls:
            return
        group_images = distribute_uploads(mapping or {}, urls)
        ids = [pa.attribute_id for pa in product.product_attributes]
        catalog = await self.attributes.catalog_for(product.store_id, ids)
        image_ids = image_attribute_ids_for(ids, catalog)
        matched = apply_group_images(product.variants, group_images, image_ids)
        unmatched = [k for k, v in group_images.items() if v and k not in matched]
        if unmatched:
            logger.warning("Variant images matched no variant", product_id=product.id, group_keys=unmatched)

    # ==================================================================
    # Variant helpers
    # ==================================================================
    @staticmethod
    def _attribute_rows(inputs: Iterable[ProductAttributeInput]) -> list[ProductAttribute]:
        rows: list[ProductAttribute] = []
        seen: set[int] = set()
        for pos, pa in enumerate(inputs):
            if pa.attribute_id in seen:
                raise BadRequestError(
                    f"Attribute {pa.attribute_id} is listed more than once", "DUPLICATE_PRODUCT_ATTRIBUTE"
                )
            seen.add(pa.attribute_id)
            rows.append(
                ProductAttribute(
                    attribute_id=pa.attribute_id,
                    selected_value_ids=list(pa.selected_value_ids),
                    position=pos,
                )
            )
        return rows

    async def _replace_variants(self, product: Product, inputs: Sequence[ProductVariantInput]) -> None:
        """
        Wholesale replacement with caller-supplied variants.

        Each attribute must be configured on the product with the value among
        its selected values. Rows are reused by id, then by identity.
        """
        selected = {pa.attribute_id: set(pa.selected_value_ids or []) for pa in product.product_attributes}
        catalog = await self.attributes.catalog_for(product.store_id, selected)

        existing_by_id = {v.id: v for v in product.variants if v.id is not None}
        existing_by_key = {v.identity_key: v for v in product.variants}
        used: set[int] = set()
        keys: set[str] = set()
        rows: list[ProductVariant] = []

        for pos, item in enumerate(inputs):
            attributes: list[dict[str, Any]] = []
            seen_attrs: set[int] = set()
            for a in item.attributes:
                if a.attribute_id not in selected or a.value_id not in selected[a.attribute_id]:
                    raise BadRequestError(
                        "Variant references an attribute value not selected for this product",
                        "INVALID_VARIANT_ATTRIBUTES",
                        extra={"attribute_id": a.attribute_id, "value_id": a.value_id},
                    )
                if a.attribute_id in seen_attrs:
                    raise BadRequestError(
                        "Variant lists the same attribute twice",
                        "INVALID_VARIANT_ATTRIBUTES",
                        extra={"attribute_id": a.attribute_id},
                    )
                seen_attrs.add(a.attribute_id)
                attributes.append(self._denormalize(a, catalog.get(a.attribute_id)))

            key = identity_key((a["attribute_id"], a["value_id"]) for a in attributes)
            if key in keys:
                raise BadRequestError(
                    "Two variants share the same attribute combination",
                    "DUPLICATE_VARIANT",
                    extra={"identity_key": key},
                )
            keys.add(key)

            row = existing_by_id.get(item.id) if item.id is not None else None
            if row is None or id(row) in used:
                row = existing_by_key.get(key)
            if row is None or id(row) in used:
                row = ProductVariant()
            used.add(id(row))

            row.position = pos
            row.identity_key = key
            row.attributes = attributes
            row.sku = item.sku
            row.price = item.price
            row.sale_price = item.sale_price
            row.stock = item.stock
            row.images = list(item.images)
            row.is_active = item.is_active
            rows.append(row)

        product.variants = rows
        product.has_variants = bool(rows)

    @staticmethod
    def _denormalize(a, attr: Optional[Attribute]) -> dict[str, Any]:
        # имена и цвета берём из каталога; если атрибут уже удалён, оставляем присланные
        value = attr.value_by_id(a.value_id) if attr is not None else None
        return {
            "attribute_id": a.attribute_id,
            "attribute_name": attr.name if attr is not None else a.attribute_name,
            "value_id": a.value_id,
            "value": value.value if value is not None else a.value,
            "color_hex": value.color_hex if value is not None else a.color_hex,
        }

    async def _regenerate(self, product: Product) -> None:
        ids = [pa.attribute_id for pa in product.product_attributes]
        catalog = await self.attributes.catalog_for(product.store_id, ids)
        combos = generate_combinations(
            product.product_attributes,
            catalog,
            product.variants,
            max_combinations=settings.MAX_VARIANT_COMBINATIONS,
        )

        rows: list[ProductVariant] = []
        for pos, combo in enumerate(combos):
            row = combo.existing
            if row is None:
                row = ProductVariant(sku=None, stock=0, images=[], is_active=True)
            row.attributes = combo.attributes
            row.identity_key = combo.key
            row.position = pos
            rows.append(row)

        product.variants = rows
        product.has_variants = True

    async def _save(self, product: Product, before) -> Product:
        """Touch the product row (version bump), sync stats, commit, reload."""
        product.touch()
        await self.db.flush()
        await self.stats.replace_contribution(before, snapshot(product))
        await self.db.commit()
        return await self.get(product.id, refresh=True)

    # ==================================================================
    # Product CRUD
    # ==================================================================
    async def create(
        self,
        store_id: int,
        data: ProductCreate,
        *,
        images: Sequence[UploadFile] = (),
        variant_images: Sequence[UploadFile] = (),
        actor_id: Optional[int] = None,
    ) -> Product:
        self._check_upload_limits(images, variant_images, data.variant_image_mapping)
        attribute_rows = self._attribute_rows(data.product_attributes)

        product = Product(
            store_id=store_id,
            name=data.name,
            name_localized=_localized(data.name_localized),
            description=data.description,
            description_localized=_localized(data.description_localized),
            price=data.price,
            sale_price=data.sale_price,
            is_on_sale=data.is_on_sale,
            stock=data.stock,
            has_variants=False,
            total_stock=data.stock,
            images=[],
            category_id=data.category_id,
            subcategory_id=data.subcategory_id,
            is_active=data.is_active,
            view_count=0,
            order_count=0,
            product_attributes=attribute_rows,
            variants=[],
        )
        if data.variants:
            await self._replace_variants(product, data.variants)

        # файлы грузим только после проверки вариантов
        product_urls, variant_urls = await self._upload(store_id, images, variant_images)
        product.images = product_urls
        if product.has_variants:
            await self._apply_variant_images(product, data.variant_image_mapping, variant_urls)
        product.recompute_total_stock()

        self.db.add(product)
        await self.db.flush()
        if product.has_variants:
            await self.stats.update_stats_for_product(product, +1)
        await self.db.commit()

        logger.info("Product created", product_id=product.id, store_id=store_id, variants=len(product.variants))
        audit_logger.log_data_change(
            actor_id, "create", "product", product.id,
            {"store_id": store_id, "has_variants": product.has_variants, "variants": len(product.variants)},
        )
        return await self.get(product.id, refresh=True)

    async def update(
        self,
        product_id: int,
        store_id: int,
        data: ProductUpdate,
        *,
        images: Sequence[UploadFile] = (),
        variant_images: Sequence[UploadFile] = (),
        actor_id: Optional[int] = None,
    ) -> Product:
        product = await self.get_owned(product_id, store_id)
        fields = data.model_fields_set
        self._check_upload_limits(images, variant_images, data.variant_image_mapping)
        attribute_rows = (
            self._attribute_rows(data.product_attributes)
            if "product_attributes" in fields and data.product_attributes is not None
            else None
        )
        before = snapshot(product)

        for name in _SCALAR_FIELDS:
            if name not in fields:
                continue
            value = getattr(data, name)
            if value is None and name in _NOT_NULLABLE:
                continue
            setattr(product, name, value)
        for name in ("name_localized", "description_localized"):
            if name in fields:
                setattr(product, name, _localized(getattr(data, name)))

        if attribute_rows is not None:
            product.product_attributes = attribute_rows

        if data.has_variants is False:
            # одностороннее переключение: данные вариантов не сохраняются
            product.variants = []
            product.has_variants = False
        elif data.variants is not None:
            await self._replace_variants(product, data.variants)
        elif data.has_variants is True:
            product.has_variants = True

        # файлы грузим только после проверки вариантов
        product_urls, variant_urls = await self._upload(store_id, images, variant_images)
        if data.existing_images is not None or product_urls:
            kept = data.existing_images if data.existing_images is not None else list(product.images or [])
            product.images = list(kept) + product_urls
        await self._apply_variant_images(product, data.variant_image_mapping, variant_urls)
        product.recompute_total_stock()

        result = await self._save(product, before)
        logger.info("Product updated", product_id=product_id, store_id=store_id)
        audit_logger.log_data_change(
            actor_id, "update", "product", product_id, {"store_id": store_id, "fields": sorted(fields)}
        )
        return result

    async def delete(self, product_id: int, store_id: int, *, actor_id: Optional[int] = None) -> None:
        product = await self.get_owned(product_id, store_id)
        if product.has_variants:
            await self.stats.update_stats_for_product(product, -1)
        await self.db.delete(product)
        await self.db.commit()
        logger.info("Product deleted", product_id=product_id, store_id=store_id)
        audit_logger.log_data_change(actor_id, "delete", "product", product_id, {"store_id": store_id})

    # ==================================================================
    # Variants
    # ==================================================================
    async def list_variants(self, product_id: int) -> list[ProductVariant]:
        product = await self.get(product_id)
        return list(product.variants)

    async def generate_variants(
        self, product_id: int, store_id: int, *, actor_id: Optional[int] = None
    ) -> Product:
        product = await self.get_owned(product_id, store_id)
        if not product.product_attributes:
            raise BadRequestError("Product has no attributes configured", "NO_PRODUCT_ATTRIBUTES")

        before = snapshot(product)
        await self._regenerate(product)
        product.recompute_total_stock()
        result = await self._save(product, before)

        audit_logger.log_data_change(
            actor_id, "generate_variants", "product", product_id,
            {"store_id": store_id, "variants": len(result.variants), "total_stock": result.total_stock},
        )
        return result

    async def bulk_update_variants(
        self,
        product_id: int,
        store_id: int,
        *,
        regenerate: Optional[bool] = None,
        variants: Optional[Sequence[ProductVariantInput]] = None,
        actor_id: Optional[int] = None,
    ) -> Product:
        if regenerate:
            return await self.generate_variants(product_id, store_id, actor_id=actor_id)
        if variants is None:
            raise BadRequestError("Either regenerate or variants must be provided", "NOTHING_TO_UPDATE")

        product = await self.get_owned(product_id, store_id)
        before = snapshot(product)
        await self._replace_variants(product, variants)
        product.recompute_total_stock()
        result = await self._save(product, before)

        audit_logger.log_data_change(
            actor_id, "replace_variants", "product", product_id,
            {"store_id": store_id, "variants": len(result.variants), "total_stock": result.total_stock},
        )
        return result

    async def update_variant(
        self,
        product_id: int,
        variant_id: int,
        store_id: int,
        data: ProductVariantUpdate,
        *,
        actor_id: Optional[int] = None,
    ) -> Product:
        product = await self.get_owned(product_id, store_id)
        variant = product.find_variant(variant_id)
        if variant is None:
            raise NotFoundError("Variant not found", "VARIANT_NOT_FOUND")

        before = snapshot(product)
        changes = data.model_dump(exclude_unset=True)
        for name, value in changes.items():
            if name == "images":
                value = list(value)
            setattr(variant, name, value)
        product.recompute_total_stock()
        result = await self._save(product, before)

        audit_logger.log_data_change(
            actor_id, "update_variant", "product_variant", variant_id,
            {"store_id": store_id, "product_id": product_id, "fields": sorted(changes)},
        )
        return result

    async def delete_variant(
        self, product_id: int, variant_id: int, store_id: int, *, actor_id: Optional[int] = None
    ) -> None:
        product = await self.get_owned(product_id, store_id)
        if product.find_variant(variant_id) is None:
            raise NotFoundError("Variant not found", "VARIANT_NOT_FOUND")

        before = snapshot(product)
        product.variants = [v for v in product.variants if v.id != variant_id]
        product.total_stock = total_stock(product.variants)
        if not product.variants:
            product.has_variants = False
        await self._save(product, before)

        audit_logger.log_data_change(
            actor_id, "delete_variant", "product_variant", variant_id,
            {"store_id": store_id, "product_id": product_id, "remaining": len(product.variants)},
        )

    async def image_groups(self, product_id: int) -> dict[str, Any]:
        product = await self.get(product_id)
        ids = [pa.attribute_id for pa in product.product_attributes]
        catalog = await self.attributes.catalog_for(product.store_id, ids)
        image_ids = image_attribute_ids_for(ids, catalog)
        groups = build_image_groups(product.variants, image_ids)
        return {
            "product_id": product.id,
            "image_attribute_ids": image_ids,
            "groups": [g.as_dict() for g in groups],
        }


__all__ = ["ProductListQuery", "ProductService", "parse_attribute_filter"]
