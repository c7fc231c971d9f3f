"""HTTP surface, driven through FastAPI's TestClient against in-memory stores."""
from unittest.mock import MagicMock

from elasticsearch import AuthenticationException
from fastapi.testclient import TestClient

from storefront_search import container
from storefront_search.index_store import ElasticsearchIndexStore
from storefront_search.main import app


def _sync(client, action, **payload):
    return client.post("/admin/search", json={"action": action, **payload})


def test_health_reports_index(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["connected"] is True
    assert body["indexExists"] is True


def test_status_before_and_after_index_all(client):
    before = client.get("/admin/search", params={"action": "status"}).json()["status"]
    assert before["documentsIndexed"] == 0
    assert before["productsInCatalog"] == 3
    assert before["synced"] is False

    response = _sync(client, "index-all")
    assert response.status_code == 200
    assert response.json()["indexed"] == 3

    after = client.get("/admin/search", params={"action": "status"}).json()["status"]
    assert after["documentsIndexed"] == 3
    assert after["synced"] is True


def test_status_requires_status_action(client):
    response = client.get("/admin/search", params={"action": "nope"})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_create_index_is_idempotent(client):
    response = _sync(client, "create-index")
    assert response.status_code == 200
    assert response.json()["outcome"] == "already_exists"


def test_product_actions_require_product_id(client):
    for action in ("index-product", "update-product", "delete-product"):
        response = _sync(client, action)
        assert response.status_code == 400, action


def test_missing_or_unknown_action_is_rejected(client):
    assert client.post("/admin/search", json={}).status_code == 400
    assert _sync(client, "drop-everything").status_code == 400


def test_update_requires_updates(client):
    response = _sync(client, "update-product", productId="p1")
    assert response.status_code == 400


def test_index_unknown_product_is_not_found(client):
    response = _sync(client, "index-product", productId="missing")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Product missing not found"}


def test_index_update_delete_product_cycle(client, store):
    assert _sync(client, "index-product", productId="p2").json()["indexed"] == 1
    assert store.get_source("p2")["name"] == "Hydrating Face Serum"

    response = _sync(client, "update-product", productId="p2", updates={"price": 999})
    assert response.status_code == 200
    assert store.get_source("p2")["price"] == 999.0

    assert _sync(client, "delete-product", productId="p2").json()["outcome"] == "completed"
    assert _sync(client, "delete-product", productId="p2").json()["outcome"] == "already_absent"


def test_reindex_all(client):
    _sync(client, "index-all")
    response = _sync(client, "reindex-all")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["indexed"] == 3


def test_search_with_blank_query_returns_nothing(client):
    response = client.get("/search", params={"q": "   "})
    assert response.status_code == 200
    assert response.json() == {"query": "", "products": [], "count": 0, "error": None}


def test_search_finds_product_and_records_history(client, history):
    _sync(client, "index-all")

    body = client.get("/search", params={"q": "serum"}).json()

    assert body["count"] == 1
    assert body["products"][0]["id"] == "p2"
    assert history.recent("global", 5)[0].term == "serum"


def test_listing_with_price_filter_and_pagination(client):
    _sync(client, "index-all")

    body = client.get("/products/search", params={"minPrice": 500, "maxPrice": 1000}).json()

    assert body["success"] is True
    assert [product["id"] for product in body["products"]] == ["p1"]
    assert body["pagination"]["total"] == 1
    assert body["pagination"]["totalPages"] == 1
    assert body["query"]["filters"]["minPrice"] == 500


def test_listing_page_past_the_end_is_empty(client):
    _sync(client, "index-all")

    body = client.get("/products/search", params={"page": 5, "limit": 2}).json()

    assert body["products"] == []
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["hasNextPage"] is False
    assert body["pagination"]["hasPreviousPage"] is True


def test_listing_rejects_bad_parameters(client):
    assert client.get("/products/search", params={"sort": "cheapest"}).status_code == 400
    assert client.get("/products/search", params={"page": 0}).status_code == 400
    assert client.get("/products/search", params={"minPrice": 900, "maxPrice": 100}).status_code == 400
    assert client.get("/products/search", params={"limit": "many"}).status_code == 400


def test_listing_sorted_by_price(client):
    _sync(client, "index-all")

    body = client.get("/products/search", params={"sort": "price_asc"}).json()

    assert [product["id"] for product in body["products"]] == ["p3", "p1", "p2"]


def test_suggestions_with_blank_query_are_empty(client):
    body = client.get("/search/suggestions", params={"q": ""}).json()
    assert body["suggestions"] == []
    assert body["count"] == 0


def test_suggestions_for_prefix(client):
    _sync(client, "index-all")

    body = client.get("/search/suggestions", params={"q": "lip"}).json()

    texts = [item["text"] for item in body["suggestions"]]
    assert "Lipstick XYZ" in texts
    assert len(texts) == len(set(texts))
    assert body["count"] == len(texts)


def test_suggestion_limit_is_bounded(client):
    response = client.get("/search/suggestions", params={"q": "lip", "limit": 500})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_engine_failures_surface_as_500_with_message(catalog, history):
    es = MagicMock()
    es.indices.exists.side_effect = AuthenticationException("security_exception", MagicMock(status=401), {})
    container.use(store=ElasticsearchIndexStore(es, "products"), catalog=catalog, history=history)
    try:
        # Startup hits the same failure and must still boot.
        with TestClient(app) as test_client:
            response = test_client.post("/admin/search", json={"action": "index-all"})
    finally:
        container.reset()

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert "security_exception" in body["error"]
