"""Search query construction and Elasticsearch request bodies."""
import pytest

from storefront_search.exceptions import ValidationError
from storefront_search.query_builder import (
    SortMode,
    build_search_query,
    build_suggestion_query,
    to_es_body,
)


def _bool(body):
    return body["query"]["bool"]


def test_empty_text_matches_all_and_keeps_filters():
    body = to_es_body(build_search_query("", category="makeup", in_stock_only=True))

    assert _bool(body)["must"] == [{"match_all": {}}]
    assert {"term": {"category": "makeup"}} in _bool(body)["filter"]
    assert {"term": {"inStock": True}} in _bool(body)["filter"]
    assert "should" not in _bool(body)


def test_text_builds_weighted_fuzzy_multi_match():
    body = to_es_body(build_search_query("  lipstik  "))
    multi_match = _bool(body)["must"][0]["multi_match"]

    assert multi_match["query"] == "lipstik"
    assert multi_match["fields"][0] == "name^5"
    assert multi_match["fields"][1] == "brand^3"
    assert "ingredients^1" in multi_match["fields"]
    assert multi_match["fuzziness"] == "AUTO"
    assert _bool(body)["should"][0]["match_phrase"]["name"]["query"] == "lipstik"
    assert _bool(body)["minimum_should_match"] == 0


def test_filters_are_non_scoring_clauses():
    search_query = build_search_query(
        "serum",
        subcategory="serums",
        brand="Dewy",
        min_price=100,
        max_price=1000,
        min_rating=4,
        tags=["vegan", " "],
    )
    filters = _bool(to_es_body(search_query))["filter"]

    assert {"term": {"subcategory": "serums"}} in filters
    assert {"term": {"brand.keyword": "Dewy"}} in filters
    assert {"range": {"price": {"gte": 100, "lte": 1000}}} in filters
    assert {"range": {"rating": {"gte": 4}}} in filters
    assert {"terms": {"tags": ["vegan"]}} in filters


def test_open_ended_price_range():
    filters = _bool(to_es_body(build_search_query("", min_price=100)))["filter"]
    assert {"range": {"price": {"gte": 100}}} in filters


@pytest.mark.parametrize(
    "mode, first",
    [
        ("relevance", {"_score": "desc"}),
        ("price_asc", {"price": "asc"}),
        ("price_desc", {"price": "desc"}),
        ("newest", {"createdAt": {"order": "desc", "missing": "_last"}}),
        ("rating", {"rating": "desc"}),
    ],
)
def test_sort_modes(mode, first):
    body = to_es_body(build_search_query("serum", sort=mode))
    assert body["sort"][0] == first
    # Only relevance ordering consults the score.
    assert any("_score" in clause for clause in body["sort"]) == (mode == "relevance")


def test_pagination_offset():
    body = to_es_body(build_search_query("serum", page=3, limit=10))
    assert body["from"] == 20
    assert body["size"] == 10


@pytest.mark.parametrize(
    "kwargs",
    [
        {"page": 0},
        {"limit": 0},
        {"limit": 10_000},
        {"sort": "cheapest"},
        {"min_price": 500, "max_price": 100},
        {"min_rating": 6},
    ],
)
def test_invalid_parameters_are_rejected(kwargs):
    with pytest.raises(ValidationError):
        build_search_query("serum", **kwargs)


def test_listing_body_requests_facets_and_highlights():
    body = to_es_body(build_search_query("serum"))
    assert set(body["aggs"]) == {"categories", "brands", "price_ranges", "avg_price", "min_price", "max_price"}
    assert "name" in body["highlight"]["fields"]


def test_suggestion_query_targets_name_brand_category():
    search_query = build_suggestion_query("lip", "makeup", 5)
    body = to_es_body(search_query)

    assert search_query.sort is SortMode.RELEVANCE
    assert _bool(body)["must"][0]["multi_match"]["fields"] == ["name^3", "brand^2", "category^1"]
    assert _bool(body)["filter"] == [{"term": {"category": "makeup"}}]
    assert body["size"] == 5
    assert "aggs" not in body
