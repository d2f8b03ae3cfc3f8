# tests/conftest.py
"""
Pytest configuration and fixtures.

- In-memory sqlite (aiosqlite + StaticPool): одна БД на тест, create_all на каждый тест.
- get_db подменяется сессией тестового движка, загрузка в Cloudinary подменяется фейком.
- Магазины/токены/каталог создаются фикстурами; HTTP-клиент: httpx.AsyncClient поверх ASGITransport.
"""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator
from typing import Any, Optional

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.pop("DATABASE_URL", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sellit.core.db import get_db, make_session_factory
from sellit.core.logging import setup_logging
from sellit.core.security import create_access_token
from sellit.main import create_app
from sellit.models import Base, Store
from sellit.schemas.attribute import AttributeCreate, AttributeValueCreate
from sellit.services.attribute_service import AttributeService
from sellit.services.cloudinary_service import get_image_uploader

setup_logging()


# ======================================================================================
# Database
# ======================================================================================
@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


# ======================================================================================
# App / client
# ======================================================================================
class FakeUploader:
    """Stands in for CloudinaryService: returns deterministic URLs, records calls."""

    def __init__(self) -> None:
        self.uploaded: list[tuple[str, str]] = []

    async def upload_many(self, files, folder: str = "sellit") -> list[str]:
        urls = []
        for f in files:
            await f.read()
            self.uploaded.append((folder, f.filename))
            urls.append(f"https://img.test/{folder}/{f.filename}")
        return urls


@pytest.fixture
def fake_uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def app(session_factory, fake_uploader):
    application = create_app()

    async def _get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = _get_db
    application.dependency_overrides[get_image_uploader] = lambda: fake_uploader
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


# ======================================================================================
# Stores & auth
# ======================================================================================
async def _make_store(session_factory, name: str, subdomain: str, owner_id: int) -> Store:
    async with session_factory() as s:
        store = Store(name=name, subdomain=subdomain, owner_id=owner_id, is_active=True)
        s.add(store)
        await s.commit()
        await s.refresh(store)
        return store


@pytest_asyncio.fixture
async def store(session_factory) -> Store:
    return await _make_store(session_factory, "Demo shop", "demo", owner_id=1)


@pytest_asyncio.fixture
async def other_store(session_factory) -> Store:
    return await _make_store(session_factory, "Other shop", "other", owner_id=2)


def bearer(user_id: int, store_id: Optional[int], role: str = "seller") -> dict[str, str]:
    token = create_access_token(user_id, role=role, store_id=store_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(store) -> dict[str, str]:
    return bearer(1, store.id)


@pytest.fixture
def other_headers(other_store) -> dict[str, str]:
    return bearer(2, other_store.id)


# ======================================================================================
# Catalog: Color (requires_image, Red/Blue) × Size (S/M)
# ======================================================================================
@pytest_asyncio.fixture
async def catalog(session_factory, store) -> dict[str, Any]:
    async with session_factory() as s:
        svc = AttributeService(s)
        color = await svc.create(
            store.id,
            AttributeCreate(
                name="Color",
                type="color",
                requires_image=True,
                values=[
                    AttributeValueCreate(value="Red", color_hex="#FF0000"),
                    AttributeValueCreate(value="Blue", color_hex="#0000FF"),
                ],
            ),
        )
        size = await svc.create(
            store.id,
            AttributeCreate(
                name="Size",
                values=[AttributeValueCreate(value="S"), AttributeValueCreate(value="M")],
            ),
        )
        return {
            "color": color.id,
            "size": size.id,
            "red": color.values[0].id,
            "blue": color.values[1].id,
            "s": size.values[0].id,
            "m": size.values[1].id,
        }


@pytest.fixture
def make_product(client, auth_headers, catalog):
    """POST /products (multipart); defaults to a Color×Size product without variants."""

    async def _make(
        *,
        name: str = "T-shirt",
        price: float = 20,
        stock: int = 0,
        product_attributes: Optional[list] = None,
        variants: Optional[list] = None,
        extra: Optional[dict] = None,
        files: Optional[list] = None,
        headers: Optional[dict] = None,
        expect: int = 201,
    ) -> dict:
        if product_attributes is None:
            product_attributes = [
                {"attribute_id": catalog["color"], "selected_value_ids": [catalog["red"], catalog["blue"]]},
                {"attribute_id": catalog["size"], "selected_value_ids": [catalog["s"], catalog["m"]]},
            ]
        data = {
            "name": name,
            "price": str(price),
            "stock": str(stock),
            "product_attributes": json.dumps(product_attributes),
        }
        if variants is not None:
            data["variants"] = json.dumps(variants)
        data.update(extra or {})
        r = await client.post(
            "/products", data=data, files=files or None, headers=headers or auth_headers
        )
        assert r.status_code == expect, r.text
        return r.json()

    return _make
