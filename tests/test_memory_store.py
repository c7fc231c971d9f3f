"""Behaviour of the in-process index store used for local runs and tests."""
import pytest

from storefront_search.documents import to_search_document
from storefront_search.exceptions import AlreadyExistsError, NotFoundError, SearchEngineError
from storefront_search.query_builder import build_search_query

pytestmark = pytest.mark.asyncio


async def _fill(store, mapping, products):
    await store.create_index(mapping)
    result = await store.bulk_put([to_search_document(product) for product in products])
    assert result.ok
    return result


async def test_create_index_twice_raises(store, mapping):
    await store.create_index(mapping)
    with pytest.raises(AlreadyExistsError):
        await store.create_index(mapping)


async def test_typo_still_finds_document(store, mapping, products):
    await _fill(store, mapping, products)

    results = await store.search(build_search_query("lipstik"))

    assert [hit.document["id"] for hit in results.hits] == ["p1"]
    assert results.hits[0].score > 0


async def test_short_prefix_uses_edge_ngrams(store, mapping, products):
    await _fill(store, mapping, products)

    results = await store.search(build_search_query("serm"))

    assert "p2" in [hit.document["id"] for hit in results.hits]


async def test_price_filter_is_inclusive(store, mapping, products):
    await _fill(store, mapping, products)

    results = await store.search(build_search_query("", min_price=450.5, max_price=850))

    prices = sorted(hit.document["price"] for hit in results.hits)
    assert prices == [450.5, 850.0]
    assert all(450.5 <= price <= 850 for price in prices)


async def test_in_stock_and_rating_filters(store, mapping, products):
    await _fill(store, mapping, products)

    in_stock = await store.search(build_search_query("", in_stock_only=True))
    rated = await store.search(build_search_query("", min_rating=4.5))

    assert {hit.document["id"] for hit in in_stock.hits} == {"p1", "p2"}
    assert [hit.document["id"] for hit in rated.hits] == ["p2"]


async def test_sorting_by_price_and_newest(store, mapping, products):
    await _fill(store, mapping, products)

    cheapest = await store.search(build_search_query("", sort="price_asc"))
    newest = await store.search(build_search_query("", sort="newest"))

    assert [hit.document["id"] for hit in cheapest.hits] == ["p3", "p1", "p2"]
    assert [hit.document["id"] for hit in newest.hits] == ["p1", "p2", "p3"]


async def test_page_past_the_end_is_empty_not_an_error(store, mapping, products):
    await _fill(store, mapping, products)

    results = await store.search(build_search_query("", page=5, limit=2))

    assert results.hits == []
    assert results.total == 3


async def test_facets_count_all_matches(store, mapping, products):
    await _fill(store, mapping, products)

    results = await store.search(build_search_query("", limit=1))
    facets = results.facets

    assert facets["categories"] == [{"key": "makeup", "count": 2}, {"key": "skincare", "count": 1}]
    assert {bucket["key"]: bucket["count"] for bucket in facets["priceRanges"]}["500-1000"] == 1
    assert facets["priceStats"]["min"] == 450.5
    assert facets["priceStats"]["max"] == 1299.0


async def test_delete_missing_document_raises_not_found(store, mapping):
    await store.create_index(mapping)
    with pytest.raises(NotFoundError):
        await store.delete("missing")


async def test_search_without_index_fails(store):
    with pytest.raises(SearchEngineError):
        await store.search(build_search_query("serum"))


async def test_completion_matches_name_start_and_category(store, mapping, products):
    await _fill(store, mapping, products)

    hits = await store.suggest("lip", 5)
    in_skincare = await store.suggest("lip", 5, category="skincare")

    assert [hit.text for hit in hits] == ["Lipstick XYZ"]
    assert in_skincare == []
