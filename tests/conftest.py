"""Shared fixtures: a small beauty catalog, in-memory stores and an API client."""
from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront_search import container
from storefront_search.catalog import InMemoryCatalog
from storefront_search.history import InMemoryHistoryStore
from storefront_search.index_store import load_mapping
from storefront_search.memory_store import InMemoryIndexStore
from storefront_search.sync import SyncController


def make_product(product_id: str, name: str, **fields) -> dict:
    product = {
        "id": product_id,
        "name": name,
        "description": "",
        "brand": "",
        "category": "makeup",
        "price": Decimal("500.00"),
        "stock": 10,
        "rating": Decimal("4.0"),
        "createdAt": "2025-01-01T00:00:00",
        "isActive": True,
    }
    product.update(fields)
    return product


@pytest.fixture
def products() -> list[dict]:
    return [
        make_product(
            "p1",
            "Lipstick XYZ",
            brand="Glamour",
            price=Decimal("850.00"),
            originalPrice=Decimal("1000.00"),
            tags="matte, red",
            createdAt="2025-03-01T00:00:00",
        ),
        make_product(
            "p2",
            "Hydrating Face Serum",
            brand="Dewy",
            category="skincare",
            price="1299",
            rating="4.8",
            description="Hyaluronic acid serum for dry skin",
            createdAt="2025-02-01T00:00:00",
        ),
        make_product(
            "p3",
            "Volume Mascara",
            brand="Lash Lab",
            price=Decimal("450.50"),
            stock=0,
            rating=Decimal("3.5"),
            createdAt="2025-01-15T00:00:00",
        ),
    ]


@pytest.fixture
def catalog(products) -> InMemoryCatalog:
    return InMemoryCatalog.from_records(products)


@pytest.fixture
def store() -> InMemoryIndexStore:
    return InMemoryIndexStore()


@pytest.fixture
def history() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def mapping() -> dict:
    return load_mapping()


@pytest.fixture
def controller(store, catalog, mapping) -> SyncController:
    return SyncController(store, catalog, mapping=mapping, batch_size=2)


@pytest.fixture
def client(store, catalog, history):
    """API client wired to the in-memory collaborators."""
    container.use(store=store, catalog=catalog, history=history)
    from storefront_search.main import app

    with TestClient(app) as test_client:
        yield test_client
    container.reset()
