import pytest

pytestmark = pytest.mark.asyncio


async def _create(client, headers, **body):
    return await client.post("/attributes", json=body, headers=headers)


async def test_create_color_attribute(client, auth_headers, store):
    r = await _create(
        client,
        auth_headers,
        name="Color",
        type="color",
        requires_image=True,
        values=[{"value": "Red", "color_hex": "#FF0000"}, {"value": "Navy Blue", "color_hex": "#000080"}],
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["slug"] == "color"
    assert body["store_id"] == store.id
    assert body["requires_image"] is True
    assert [(v["value"], v["slug"], v["color_hex"], v["order"]) for v in body["values"]] == [
        ("Red", "red", "#ff0000", 0),
        ("Navy Blue", "navy-blue", "#000080", 1),
    ]


async def test_color_values_need_hex(client, auth_headers):
    r = await _create(client, auth_headers, name="Color", type="color", values=[{"value": "Red"}])
    assert r.status_code == 400
    assert r.json()["code"] == "COLOR_HEX_REQUIRED"
    assert "Red" in r.json()["detail"]


async def test_text_values_drop_hex(client, auth_headers):
    r = await _create(client, auth_headers, name="Size", values=[{"value": "XL", "color_hex": "#123456"}])
    assert r.status_code == 201
    assert r.json()["values"][0]["color_hex"] is None


async def test_malformed_hex_is_rejected(client, auth_headers):
    r = await _create(client, auth_headers, name="Color", type="color", values=[{"value": "Red", "color_hex": "red"}])
    assert r.status_code == 422


async def test_slug_must_be_derivable(client, auth_headers):
    r = await _create(client, auth_headers, name="Ткань")
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_SLUG"

    r = await _create(client, auth_headers, name="Ткань", slug="fabric")
    assert r.status_code == 201


async def test_duplicate_slug_conflicts_within_store_only(client, auth_headers, other_headers):
    assert (await _create(client, auth_headers, name="Size")).status_code == 201
    r = await _create(client, auth_headers, name="size")
    assert r.status_code == 409
    assert r.json()["code"] == "DUPLICATE_SLUG"

    assert (await _create(client, other_headers, name="Size")).status_code == 201


async def test_duplicate_value_slug(client, auth_headers):
    r = await _create(client, auth_headers, name="Size", values=[{"value": "XL"}, {"value": "xl"}])
    assert r.status_code == 409
    assert r.json()["code"] == "DUPLICATE_VALUE_SLUG"


async def test_type_change_blocked_while_values_exist(client, auth_headers, catalog):
    r = await client.patch(f"/attributes/{catalog['size']}", json={"type": "color"}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["code"] == "TYPE_CHANGE_WITH_VALUES"

    await client.delete(f"/attributes/{catalog['size']}/values/{catalog['s']}", headers=auth_headers)
    await client.delete(f"/attributes/{catalog['size']}/values/{catalog['m']}", headers=auth_headers)
    r = await client.patch(f"/attributes/{catalog['size']}", json={"type": "color"}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["type"] == "color"


async def test_partial_update(client, auth_headers, catalog):
    r = await client.patch(
        f"/attributes/{catalog['size']}",
        json={"name": "Garment size", "name_localized": {"ka": "ზომა", "en": "Size"}, "is_active": False},
        headers=auth_headers,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["name"] == "Garment size"
    assert body["slug"] == "size"
    assert body["name_localized"] == {"ka": "ზომა", "en": "Size"}
    assert body["is_active"] is False


async def test_listing_and_reorder(client, auth_headers, store, catalog):
    r = await client.get(f"/attributes/store/{store.id}")
    assert [a["name"] for a in r.json()] == ["Color", "Size"]

    r = await client.post(
        "/attributes/reorder", json={"attribute_ids": [catalog["size"], catalog["color"], 9999]}, headers=auth_headers
    )
    assert r.status_code == 200
    assert [a["name"] for a in r.json()] == ["Size", "Color"]

    await client.patch(f"/attributes/{catalog['color']}", json={"is_active": False}, headers=auth_headers)
    public = (await client.get(f"/attributes/store/{store.id}")).json()
    assert [a["name"] for a in public] == ["Size"]
    mine = (await client.get("/attributes/my-store", params={"include_inactive": True}, headers=auth_headers)).json()
    assert [a["name"] for a in mine] == ["Size", "Color"]


async def test_value_lifecycle(client, auth_headers, catalog):
    base = f"/attributes/{catalog['color']}/values"

    r = await client.post(base, json={"value": "Green"}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["code"] == "COLOR_HEX_REQUIRED"

    r = await client.post(base, json={"value": "Green", "color_hex": "#00FF00"}, headers=auth_headers)
    assert r.status_code == 201
    green = next(v for v in r.json()["values"] if v["value"] == "Green")
    assert green["order"] == 2
    assert green["color_hex"] == "#00ff00"

    r = await client.post(base, json={"value": "green", "color_hex": "#00FF00"}, headers=auth_headers)
    assert r.status_code == 409

    r = await client.patch(f"{base}/{green['id']}", json={"value": "Lime", "color_hex": "#32CD32"}, headers=auth_headers)
    assert r.status_code == 200
    lime = next(v for v in r.json()["values"] if v["id"] == green["id"])
    assert (lime["value"], lime["slug"], lime["color_hex"]) == ("Lime", "green", "#32cd32")

    r = await client.post(
        f"{base}/reorder", json={"value_ids": [green["id"], catalog["red"], catalog["blue"]]}, headers=auth_headers
    )
    assert [v["id"] for v in r.json()["values"]] == [green["id"], catalog["red"], catalog["blue"]]

    r = await client.delete(f"{base}/{green['id']}", headers=auth_headers)
    assert r.status_code == 200
    assert [v["id"] for v in r.json()["values"]] == [catalog["red"], catalog["blue"]]

    r = await client.delete(f"{base}/{green['id']}", headers=auth_headers)
    assert r.status_code == 404
    assert r.json()["code"] == "VALUE_NOT_FOUND"


async def test_foreign_attribute_is_not_found(client, other_headers, catalog):
    r = await client.patch(f"/attributes/{catalog['size']}", json={"name": "X"}, headers=other_headers)
    assert r.status_code == 404
    assert r.json()["code"] == "ATTRIBUTE_NOT_FOUND"

    r = await client.delete(f"/attributes/{catalog['size']}", headers=other_headers)
    assert r.status_code == 404


async def test_deleting_attribute_keeps_products(client, auth_headers, catalog, make_product):
    product = await make_product()
    await client.post(f"/products/{product['id']}/variants/generate", headers=auth_headers)

    r = await client.delete(f"/attributes/{catalog['color']}", headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {"deleted": True}
    assert (await client.get(f"/attributes/{catalog['color']}")).status_code == 404

    product = (await client.get(f"/products/{product['id']}")).json()
    assert len(product["variants"]) == 4
    assert product["variants"][0]["attributes"][0]["attribute_name"] == "Color"


async def test_writes_require_owner(client, store):
    from conftest import bearer

    assert (await _create(client, {}, name="Size")).status_code == 401
    r = await _create(client, bearer(2, store.id), name="Size")
    assert r.status_code == 403
    assert r.json()["code"] == "NOT_STORE_OWNER"
