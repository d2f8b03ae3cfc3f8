"""
Optimistic locking on products.version.

Two sessions over a file-backed sqlite database: the first commit wins, the
second writer holding the old version gets StaleDataError (HTTP 409).
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from sellit.core.db import make_session_factory
from sellit.models import Base, Store
from sellit.schemas.product import (
    ProductAttributeInput,
    ProductCreate,
    ProductUpdate,
    ProductVariantUpdate,
)
from sellit.schemas.attribute import AttributeCreate, AttributeValueCreate
from sellit.services.attribute_service import AttributeService
from sellit.services.product_service import ProductService

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def file_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def seeded(file_factory):
    async with file_factory() as s:
        store = Store(name="Race shop", subdomain="race", owner_id=1, is_active=True)
        s.add(store)
        await s.commit()
        size = await AttributeService(s).create(
            store.id,
            AttributeCreate(name="Size", values=[AttributeValueCreate(value="S"), AttributeValueCreate(value="M")]),
        )
        product = await ProductService(s).create(
            store.id,
            ProductCreate(
                name="Mug",
                price=5,
                stock=1,
                product_attributes=[
                    ProductAttributeInput(attribute_id=size.id, selected_value_ids=[v.id for v in size.values])
                ],
            ),
        )
        product = await ProductService(s).generate_variants(product.id, store.id)
        return {"store_id": store.id, "product_id": product.id, "variant_ids": [v.id for v in product.variants]}


async def test_stale_product_update_is_rejected(file_factory, seeded):
    pid, sid = seeded["product_id"], seeded["store_id"]
    async with file_factory() as a, file_factory() as b:
        await ProductService(a).get(pid)
        await ProductService(b).get(pid)

        winner = await ProductService(a).update(pid, sid, ProductUpdate(name="Winner"))
        assert winner.name == "Winner"

        with pytest.raises(StaleDataError):
            await ProductService(b).update(pid, sid, ProductUpdate(name="Loser"))

    async with file_factory() as c:
        assert (await ProductService(c).get(pid)).name == "Winner"


async def test_concurrent_variant_edits_conflict(file_factory, seeded):
    pid, sid = seeded["product_id"], seeded["store_id"]
    first, second = seeded["variant_ids"]
    async with file_factory() as a, file_factory() as b:
        await ProductService(a).get(pid)
        await ProductService(b).get(pid)

        # правки разных вариантов тоже конфликтуют: total_stock общий
        await ProductService(a).update_variant(pid, first, sid, ProductVariantUpdate(stock=4))
        with pytest.raises(StaleDataError):
            await ProductService(b).update_variant(pid, second, sid, ProductVariantUpdate(stock=6))

    async with file_factory() as c:
        product = await ProductService(c).get(pid)
        assert product.total_stock == 4


async def test_fresh_session_after_conflict_succeeds(file_factory, seeded):
    pid, sid = seeded["product_id"], seeded["store_id"]
    async with file_factory() as a, file_factory() as b:
        await ProductService(b).get(pid)
        await ProductService(a).generate_variants(pid, sid)
        with pytest.raises(StaleDataError):
            await ProductService(b).generate_variants(pid, sid)

    async with file_factory() as retry:
        product = await ProductService(retry).generate_variants(pid, sid)
        assert len(product.variants) == 2


async def test_stale_data_maps_to_409(app, client):
    async def boom():
        raise StaleDataError("UPDATE statement on table 'products' expected to update 1 row(s); 0 were matched.")

    app.add_api_route("/_race", boom, methods=["POST"])
    r = await client.post("/_race")
    assert r.status_code == 409
    assert r.json()["code"] == "CONCURRENT_MODIFICATION"
