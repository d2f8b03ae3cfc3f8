"""
Product endpoints.

- Витрина: листинг с фильтрами (цена, наличие, атрибуты, поиск), главная, просмотры
- Кабинет продавца: CRUD через multipart (файлы + JSON-поля)
- Варианты: генерация, массовая замена, точечное обновление/удаление, группы изображений
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Path, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from sellit.core.db import get_db
from sellit.core.dependencies import AuthContext, Pagination, get_pagination, require_store_owner
from sellit.schemas.base import DeletedResponse, LocalizedText, PaginationInfo
from sellit.schemas.product import (
    BulkVariantsRequest,
    HomepageOrder,
    HomepageProductsResponse,
    ImageGroupsResponse,
    ProductAttributeInput,
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
    ProductVariantInput,
    ProductVariantResponse,
    ProductVariantUpdate,
    SortBy,
    ViewCountResponse,
)
from sellit.services.cloudinary_service import get_image_uploader
from sellit.services.product_service import ProductListQuery, ProductService
from sellit.utils.forms import parse_json_field

router = APIRouter(prefix="/products", tags=["Products"])


# ---------------------------------------------------------------------------
# Вспомогательные утилиты
# ---------------------------------------------------------------------------


def _json_fields(**raw: Optional[str]) -> dict:
    """Decode the JSON-encoded multipart fields that were actually sent."""
    types = {
        "name_localized": LocalizedText,
        "description_localized": LocalizedText,
        "product_attributes": List[ProductAttributeInput],
        "variants": List[ProductVariantInput],
        "variant_image_mapping": dict[str, int],
        "existing_images": List[str],
    }
    out = {}
    for field, value in raw.items():
        parsed = parse_json_field(value, field, types[field])
        if parsed is not None:
            out[field] = parsed
    return out


def _present(**values) -> dict:
    return {k: v for k, v in values.items() if v is not None}


# ---------------------------------------------------------------------------
# Storefront (public)
# ---------------------------------------------------------------------------


@router.get("/store/{store_id}", response_model=ProductListResponse)
async def list_store_products(
    store_id: int = Path(..., ge=1),
    category_id: Optional[int] = Query(None, ge=1),
    subcategory_id: Optional[int] = Query(None, ge=1),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    on_sale: Optional[bool] = Query(None),
    in_stock: Optional[bool] = Query(None),
    attributes: Optional[str] = Query(None, description="slug:valueId,valueId|slug:valueId"),
    search: Optional[str] = Query(None, max_length=200),
    sort_by: SortBy = Query("relevance"),
    pagination: Pagination = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
):
    """List active products of a store with filtering, sorting and pagination."""
    q = ProductListQuery(
        category_id=category_id,
        subcategory_id=subcategory_id,
        min_price=min_price,
        max_price=max_price,
        on_sale=on_sale,
        in_stock=in_stock,
        attributes=attributes,
        search=search,
        sort_by=sort_by,
        page=pagination.page,
        limit=pagination.limit,
    )
    result = await ProductService(db).list_products(store_id, q)
    return {
        "products": result["products"],
        "pagination": PaginationInfo.create(pagination.page, pagination.limit, result["total"]),
        "filters": {"price_range": result["price_range"]},
    }


@router.get("/store/{store_id}/homepage", response_model=HomepageProductsResponse)
async def homepage_products(
    store_id: int = Path(..., ge=1),
    order: HomepageOrder = Query("newest"),
    limit: int = Query(8, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService(db).homepage(store_id, order, limit)


# ---------------------------------------------------------------------------
# Seller dashboard
# ---------------------------------------------------------------------------


@router.get("/my-store", response_model=list[ProductResponse])
async def my_store_products(
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    """All products of the caller's store, newest first (inactive included)."""
    return await ProductService(db).list_for_owner(actor.store_id)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    name: str = Form(...),
    price: float = Form(...),
    description: Optional[str] = Form(None),
    sale_price: Optional[float] = Form(None),
    is_on_sale: Optional[bool] = Form(None),
    stock: Optional[int] = Form(None),
    category_id: Optional[int] = Form(None),
    subcategory_id: Optional[int] = Form(None),
    is_active: Optional[bool] = Form(None),
    name_localized: Optional[str] = Form(None),
    description_localized: Optional[str] = Form(None),
    product_attributes: Optional[str] = Form(None),
    variants: Optional[str] = Form(None),
    variant_image_mapping: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    variant_images: Optional[List[UploadFile]] = File(None),
    actor: AuthContext = Depends(require_store_owner),
    uploader=Depends(get_image_uploader),
    db: AsyncSession = Depends(get_db),
):
    """Create a product (multipart: scalar fields, JSON-encoded structures, image files)."""
    payload = _present(
        name=name,
        price=price,
        description=description,
        sale_price=sale_price,
        is_on_sale=is_on_sale,
        stock=stock,
        category_id=category_id,
        subcategory_id=subcategory_id,
        is_active=is_active,
    )
    payload.update(
        _json_fields(
            name_localized=name_localized,
            description_localized=description_localized,
            product_attributes=product_attributes,
            variants=variants,
            variant_image_mapping=variant_image_mapping,
        )
    )
    data = ProductCreate.model_validate(payload)
    return await ProductService(db, uploader).create(
        actor.store_id,
        data,
        images=images or [],
        variant_images=variant_images or [],
        actor_id=actor.user_id,
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int = Path(..., ge=1),
    store_id: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """Get product by ID (optionally scoped to a store)."""
    return await ProductService(db).get(product_id, store_id)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int = Path(..., ge=1),
    name: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    description: Optional[str] = Form(None),
    sale_price: Optional[float] = Form(None),
    is_on_sale: Optional[bool] = Form(None),
    stock: Optional[int] = Form(None),
    category_id: Optional[int] = Form(None),
    subcategory_id: Optional[int] = Form(None),
    is_active: Optional[bool] = Form(None),
    has_variants: Optional[bool] = Form(None),
    name_localized: Optional[str] = Form(None),
    description_localized: Optional[str] = Form(None),
    existing_images: Optional[str] = Form(None),
    product_attributes: Optional[str] = Form(None),
    variants: Optional[str] = Form(None),
    variant_image_mapping: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    variant_images: Optional[List[UploadFile]] = File(None),
    actor: AuthContext = Depends(require_store_owner),
    uploader=Depends(get_image_uploader),
    db: AsyncSession = Depends(get_db),
):
    """Partial update. `has_variants=false` clears all variants."""
    payload = _present(
        name=name,
        price=price,
        description=description,
        sale_price=sale_price,
        is_on_sale=is_on_sale,
        stock=stock,
        category_id=category_id,
        subcategory_id=subcategory_id,
        is_active=is_active,
        has_variants=has_variants,
    )
    payload.update(
        _json_fields(
            name_localized=name_localized,
            description_localized=description_localized,
            existing_images=existing_images,
            product_attributes=product_attributes,
            variants=variants,
            variant_image_mapping=variant_image_mapping,
        )
    )
    data = ProductUpdate.model_validate(payload)
    return await ProductService(db, uploader).update(
        product_id,
        actor.store_id,
        data,
        images=images or [],
        variant_images=variant_images or [],
        actor_id=actor.user_id,
    )


@router.delete("/{product_id}", response_model=DeletedResponse)
async def delete_product(
    product_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    await ProductService(db).delete(product_id, actor.store_id, actor_id=actor.user_id)
    return DeletedResponse()


@router.post("/{product_id}/view", response_model=ViewCountResponse)
async def increment_view(
    product_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
):
    view_count = await ProductService(db).increment_view_count(product_id)
    return ViewCountResponse(id=product_id, view_count=view_count)


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@router.get("/{product_id}/variants", response_model=list[ProductVariantResponse])
async def list_variants(
    product_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService(db).list_variants(product_id)


@router.get("/{product_id}/variants/image-groups", response_model=ImageGroupsResponse)
async def variant_image_groups(
    product_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
):
    """One group per combination of image-required attribute values."""
    return await ProductService(db).image_groups(product_id)


@router.post("/{product_id}/variants/generate", response_model=ProductResponse)
async def generate_variants(
    product_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    """Cartesian product of the selected attribute values, keeping existing variant data."""
    return await ProductService(db).generate_variants(product_id, actor.store_id, actor_id=actor.user_id)


@router.post("/{product_id}/variants", response_model=ProductResponse)
async def bulk_update_variants(
    body: BulkVariantsRequest,
    product_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService(db).bulk_update_variants(
        product_id,
        actor.store_id,
        regenerate=body.regenerate,
        variants=body.variants,
        actor_id=actor.user_id,
    )


@router.patch("/{product_id}/variants/{variant_id}", response_model=ProductResponse)
async def update_variant(
    body: ProductVariantUpdate,
    product_id: int = Path(..., ge=1),
    variant_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService(db).update_variant(
        product_id, variant_id, actor.store_id, body, actor_id=actor.user_id
    )


@router.delete("/{product_id}/variants/{variant_id}", response_model=DeletedResponse)
async def delete_variant(
    product_id: int = Path(..., ge=1),
    variant_id: int = Path(..., ge=1),
    actor: AuthContext = Depends(require_store_owner),
    db: AsyncSession = Depends(get_db),
):
    await ProductService(db).delete_variant(product_id, variant_id, actor.store_id, actor_id=actor.user_id)
    return DeletedResponse()
