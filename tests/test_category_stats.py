import pytest
import pytest_asyncio
from sqlalchemy import select

from sellit.models import CategoryAttributeStats
from sellit.services.attribute_service import AttributeService
from sellit.services.category_stats import CategoryStatsService, StatsSnapshot

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def categories(client, auth_headers):
    r = await client.post("/categories", json={"name": "Clothes"}, headers=auth_headers)
    assert r.status_code == 201, r.text
    clothes = r.json()
    r = await client.post("/categories", json={"name": "Shirts", "parent_id": clothes["id"]}, headers=auth_headers)
    assert r.status_code == 201, r.text
    return {"clothes": clothes["id"], "shirts": r.json()["id"]}


@pytest_asyncio.fixture
async def shirt(client, auth_headers, categories, make_product):
    product = await make_product(
        extra={"category_id": str(categories["clothes"]), "subcategory_id": str(categories["shirts"])}
    )
    r = await client.post(f"/products/{product['id']}/variants/generate", headers=auth_headers)
    return r.json()


def _variant(product, *values):
    return next(v for v in product["variants"] if tuple(a["value"] for a in v["attributes"]) == values)


async def _set_stock(client, headers, product, values, stock, **extra):
    vid = _variant(product, *values)["id"]
    r = await client.patch(
        f"/products/{product['id']}/variants/{vid}", json={"stock": stock, **extra}, headers=headers
    )
    assert r.status_code == 200, r.text
    return r.json()


async def _facets(client, store, category_id):
    r = await client.get(f"/categories/{category_id}/filters", params={"store_id": store.id})
    assert r.status_code == 200, r.text
    return {
        a["attribute_slug"]: (a["total_products"], [(v["value"], v["count"]) for v in a["values"]])
        for a in r.json()["attributes"]
    }


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
async def test_category_crud(client, auth_headers, other_headers, store, categories):
    r = await client.get(f"/categories/store/{store.id}")
    assert [(c["name"], c["slug"], c["parent_id"]) for c in r.json()] == [
        ("Clothes", "clothes", None),
        ("Shirts", "shirts", categories["clothes"]),
    ]

    r = await client.post("/categories", json={"name": "clothes"}, headers=auth_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "DUPLICATE_SLUG"

    r = await client.post("/categories", json={"name": "Foreign", "parent_id": categories["clothes"]}, headers=other_headers)
    assert r.status_code == 404
    assert r.json()["code"] == "CATEGORY_NOT_FOUND"


# ---------------------------------------------------------------------------
# Incremental maintenance
# ---------------------------------------------------------------------------
async def test_out_of_stock_variants_do_not_count(client, store, categories, shirt):
    assert shirt["has_variants"] is True
    assert await _facets(client, store, categories["clothes"]) == {}


async def test_stock_changes_move_counts(client, auth_headers, store, categories, shirt):
    product = await _set_stock(client, auth_headers, shirt, ("Red", "S"), 3)
    expected = {"color": (1, [("Red", 1)]), "size": (1, [("S", 1)])}
    assert await _facets(client, store, categories["clothes"]) == expected
    assert await _facets(client, store, categories["shirts"]) == expected

    product = await _set_stock(client, auth_headers, product, ("Blue", "M"), 2)
    assert await _facets(client, store, categories["clothes"]) == {
        "color": (1, [("Blue", 1), ("Red", 1)]),
        "size": (1, [("M", 1), ("S", 1)]),
    }

    # второй вариант того же значения не увеличивает счётчик товара
    product = await _set_stock(client, auth_headers, product, ("Red", "M"), 5)
    facets = await _facets(client, store, categories["clothes"])
    assert facets["color"] == (1, [("Blue", 1), ("Red", 1)])

    await _set_stock(client, auth_headers, product, ("Red", "S"), 0)
    await _set_stock(client, auth_headers, product, ("Red", "M"), 0)
    assert await _facets(client, store, categories["clothes"]) == {
        "color": (1, [("Blue", 1)]),
        "size": (1, [("M", 1)]),
    }


async def test_counts_add_up_across_products(client, auth_headers, store, categories, catalog, shirt, make_product):
    await _set_stock(client, auth_headers, shirt, ("Red", "S"), 1)

    other = await make_product(
        name="Polo",
        product_attributes=[{"attribute_id": catalog["color"], "selected_value_ids": [catalog["red"]]}],
        extra={"category_id": str(categories["clothes"])},
    )
    r = await client.post(f"/products/{other['id']}/variants/generate", headers=auth_headers)
    await _set_stock(client, auth_headers, r.json(), ("Red",), 4)

    clothes = await _facets(client, store, categories["clothes"])
    assert clothes["color"] == (2, [("Red", 2)])
    assert clothes["size"] == (1, [("S", 1)])
    # Polo без подкатегории
    assert (await _facets(client, store, categories["shirts"]))["color"] == (1, [("Red", 1)])


async def test_inactive_variant_does_not_count(client, auth_headers, store, categories, shirt):
    await _set_stock(client, auth_headers, shirt, ("Blue", "S"), 2, is_active=False)
    assert await _facets(client, store, categories["clothes"]) == {}


async def test_inactive_product_does_not_count(client, auth_headers, store, categories, shirt):
    await _set_stock(client, auth_headers, shirt, ("Red", "S"), 1)

    r = await client.patch(f"/products/{shirt['id']}", data={"is_active": "false"}, headers=auth_headers)
    assert r.status_code == 200, r.text
    assert await _facets(client, store, categories["clothes"]) == {}

    r = await client.patch(f"/products/{shirt['id']}", data={"is_active": "true"}, headers=auth_headers)
    assert r.status_code == 200, r.text
    assert (await _facets(client, store, categories["clothes"]))["color"] == (1, [("Red", 1)])

    # пересчёт с нуля даёт то же самое
    r = await client.post("/categories/stats/rebuild", headers=auth_headers)
    assert (await _facets(client, store, categories["clothes"]))["color"] == (1, [("Red", 1)])


async def test_facet_entries_carry_value_metadata(client, auth_headers, store, categories, catalog, shirt):
    await _set_stock(client, auth_headers, shirt, ("Red", "S"), 1)
    r = await client.get(f"/categories/{categories['clothes']}/filters", params={"store_id": store.id})
    color = r.json()["attributes"][0]
    assert color["attribute_name"] == "Color"
    assert color["attribute_type"] == "color"
    assert color["values"] == [
        {"value_id": catalog["red"], "value": "Red", "value_slug": "red", "color_hex": "#ff0000", "count": 1}
    ]


async def test_delete_and_switch_remove_contribution(client, auth_headers, store, categories, shirt, make_product):
    await _set_stock(client, auth_headers, shirt, ("Red", "S"), 1)
    r = await client.patch(f"/products/{shirt['id']}", data={"has_variants": "false"}, headers=auth_headers)
    assert r.status_code == 200
    assert await _facets(client, store, categories["clothes"]) == {}

    r = await client.post(f"/products/{shirt['id']}/variants/generate", headers=auth_headers)
    await _set_stock(client, auth_headers, r.json(), ("Blue", "S"), 1)
    assert await _facets(client, store, categories["clothes"]) != {}

    await client.delete(f"/products/{shirt['id']}", headers=auth_headers)
    assert await _facets(client, store, categories["clothes"]) == {}


async def test_moving_category_moves_counts(client, auth_headers, store, categories, shirt):
    await _set_stock(client, auth_headers, shirt, ("Red", "S"), 1)
    r = await client.post("/categories", json={"name": "Sale"}, headers=auth_headers)
    sale = r.json()["id"]

    r = await client.patch(
        f"/products/{shirt['id']}", data={"category_id": str(sale)}, headers=auth_headers
    )
    assert r.status_code == 200, r.text
    assert await _facets(client, store, categories["clothes"]) == {}
    assert (await _facets(client, store, sale))["color"] == (1, [("Red", 1)])
    assert (await _facets(client, store, categories["shirts"]))["color"] == (1, [("Red", 1)])


async def test_stats_failure_does_not_fail_product_write(
    client, auth_headers, store, categories, shirt, monkeypatch
):
    original = CategoryStatsService._update_row

    async def clashing(self, category_id, store_id, attr, values, delta):
        await original(self, category_id, store_id, attr, values, delta)
        # вторая строка с тем же ключом: flush падает на уникальном индексе
        self.db.add(
            CategoryAttributeStats(
                category_id=category_id,
                store_id=store_id,
                attribute_id=attr.id,
                attribute_name=attr.name,
                attribute_slug=attr.slug,
                attribute_type=attr.type,
                values=[],
                total_products=0,
            )
        )

    monkeypatch.setattr(CategoryStatsService, "_update_row", clashing)
    product = await _set_stock(client, auth_headers, shirt, ("Red", "S"), 3)
    assert product["total_stock"] == 3

    r = await client.get(f"/products/{shirt['id']}/variants")
    assert sum(v["stock"] for v in r.json()) == 3
    assert await _facets(client, store, categories["clothes"]) == {}

    monkeypatch.undo()
    r = await client.post("/categories/stats/rebuild", headers=auth_headers)
    assert r.status_code == 200, r.text
    assert (await _facets(client, store, categories["clothes"]))["color"] == (1, [("Red", 1)])


# ---------------------------------------------------------------------------
# Rebuild
# ---------------------------------------------------------------------------
async def test_rebuild_restores_drifted_counts(client, auth_headers, store, categories, shirt, session_factory):
    await _set_stock(client, auth_headers, shirt, ("Red", "S"), 1)

    async with session_factory() as s:
        for row in (await s.execute(select(CategoryAttributeStats))).scalars():
            row.total_products = 42
            row.values = [dict(v, count=42) for v in row.values]
        await s.commit()

    r = await client.post("/categories/stats/rebuild", headers=auth_headers)
    assert r.status_code == 200, r.text
    assert r.json() == {"store_id": store.id, "category_id": None, "products_processed": 1}
    assert await _facets(client, store, categories["clothes"]) == {
        "color": (1, [("Red", 1)]),
        "size": (1, [("S", 1)]),
    }


async def test_rebuild_single_category(client, auth_headers, store, categories, shirt, session_factory):
    await _set_stock(client, auth_headers, shirt, ("Red", "S"), 1)

    async with session_factory() as s:
        for row in (await s.execute(select(CategoryAttributeStats))).scalars():
            row.total_products = 9
        await s.commit()

    r = await client.post(
        "/categories/stats/rebuild", params={"category_id": categories["shirts"]}, headers=auth_headers
    )
    assert r.json()["products_processed"] == 1
    assert (await _facets(client, store, categories["shirts"]))["color"][0] == 1
    assert (await _facets(client, store, categories["clothes"]))["color"][0] == 9


async def test_rebuild_requires_own_category(client, other_headers, categories):
    r = await client.post(
        "/categories/stats/rebuild", params={"category_id": categories["clothes"]}, headers=other_headers
    )
    assert r.status_code == 404


# ---------------------------------------------------------------------------
# Service level
# ---------------------------------------------------------------------------
async def test_counts_never_go_negative(session_factory, store, catalog, categories):
    snap = StatsSnapshot(
        store_id=store.id,
        category_ids=[categories["clothes"]],
        values={catalog["color"]: {catalog["red"]: {"value": "Red", "color_hex": "#ff0000"}}},
    )
    async with session_factory() as s:
        stats = CategoryStatsService(s)
        await stats.update_stats_for_product(snap, -1)
        await s.commit()
        assert await stats.get_filters_for_category(categories["clothes"], store.id) == []

        await stats.update_stats_for_product(snap, +1)
        await stats.update_stats_for_product(snap, +1)
        await s.commit()
        (row,) = await stats.get_filters_for_category(categories["clothes"], store.id)
        assert row.total_products == 2
        assert row.values[0]["count"] == 2

        for _ in range(3):
            await stats.update_stats_for_product(snap, -1)
        await s.commit()
        assert await stats.get_filters_for_category(categories["clothes"], store.id) == []


async def test_unknown_attribute_is_skipped(session_factory, store, catalog, categories):
    snap = StatsSnapshot(
        store_id=store.id,
        category_ids=[categories["clothes"]],
        values={
            999: {1: {"value": "Ghost", "color_hex": None}},
            catalog["size"]: {catalog["s"]: {"value": "S", "color_hex": None}},
        },
    )
    async with session_factory() as s:
        stats = CategoryStatsService(s)
        await stats.update_stats_for_product(snap, +1)
        await s.commit()
        rows = await stats.get_filters_for_category(categories["clothes"], store.id)
        assert [r.attribute_slug for r in rows] == ["size"]

        # переименование атрибута подтягивается при следующем обновлении строки
        attr = await AttributeService(s).get(catalog["size"])
        attr.name = "Garment size"
        await s.commit()
        await stats.update_stats_for_product(snap, +1)
        await s.commit()
        (row,) = await stats.get_filters_for_category(categories["clothes"], store.id)
        assert row.attribute_name == "Garment size"
        assert row.total_products == 2
