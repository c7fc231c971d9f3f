"""Translate caller parameters into a search query and an Elasticsearch request body.

The :class:`SearchQuery` is engine-neutral: the Elasticsearch adapter renders it
with :func:`to_es_body`, the in-memory store evaluates it directly. Filters
never score; only the free-text clauses do.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import settings
from .exceptions import ValidationError
from .text import normalize_query

logger = logging.getLogger(__name__)

# (field, boost) pairs for the product search multi_match.
SEARCH_FIELDS: Tuple[Tuple[str, float], ...] = (
    ("name", 5.0),
    ("brand", 3.0),
    ("category", 2.0),
    ("tags", 2.0),
    ("description", 1.5),
    ("ingredients", 1.0),
)
SUGGEST_FIELDS: Tuple[Tuple[str, float], ...] = (
    ("name", 3.0),
    ("brand", 2.0),
    ("category", 1.0),
)
NAME_PHRASE_BOOST = 3.0

PRICE_BUCKETS: Tuple[Tuple[str, Optional[float], Optional[float]], ...] = (
    ("Under 500", None, 500.0),
    ("500-1000", 500.0, 1000.0),
    ("1000-2000", 1000.0, 2000.0),
    ("2000-5000", 2000.0, 5000.0),
    ("Over 5000", 5000.0, None),
)
FACET_SIZE = 20


class SortMode(str, Enum):
    RELEVANCE = "relevance"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    NEWEST = "newest"
    RATING = "rating"
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"


# Relevance is the only mode ordered by score; the others break ties on id
# so paging stays stable.
SORT_CLAUSES: Dict[SortMode, List[dict]] = {
    SortMode.RELEVANCE: [{"_score": "desc"}, {"createdAt": {"order": "desc", "missing": "_last"}}],
    SortMode.PRICE_ASC: [{"price": "asc"}, {"id": "asc"}],
    SortMode.PRICE_DESC: [{"price": "desc"}, {"id": "asc"}],
    SortMode.NEWEST: [{"createdAt": {"order": "desc", "missing": "_last"}}, {"id": "asc"}],
    SortMode.RATING: [{"rating": "desc"}, {"id": "asc"}],
    SortMode.NAME_ASC: [{"name.keyword": "asc"}, {"id": "asc"}],
    SortMode.NAME_DESC: [{"name.keyword": "desc"}, {"id": "asc"}],
}


@dataclass(frozen=True)
class Filters:
    category: Optional[str] = None
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    in_stock_only: bool = False
    min_rating: Optional[float] = None
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SearchQuery:
    text: str = ""
    fields: Tuple[Tuple[str, float], ...] = SEARCH_FIELDS
    filters: Filters = field(default_factory=Filters)
    sort: SortMode = SortMode.RELEVANCE
    page: int = 1
    limit: int = 20
    fuzzy_prefix_length: int = 1
    phrase_boost: Optional[float] = None
    with_facets: bool = False
    with_highlights: bool = False
    source_fields: Optional[Tuple[str, ...]] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def parse_sort(value: Optional[str]) -> SortMode:
    if not value:
        return SortMode.RELEVANCE
    try:
        return SortMode(value)
    except ValueError as exc:
        allowed = ", ".join(mode.value for mode in SortMode)
        raise ValidationError(f"Unknown sort mode {value!r}; expected one of {allowed}") from exc


def build_search_query(
    text: Optional[str] = None,
    *,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock_only: bool = False,
    min_rating: Optional[float] = None,
    tags: Sequence[str] = (),
    sort: str | SortMode | None = None,
    page: int = 1,
    limit: Optional[int] = None,
    with_facets: bool = True,
) -> SearchQuery:
    """Validate listing/search parameters and build a :class:`SearchQuery`."""
    limit = settings.search_default_limit if limit is None else limit
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    if limit > settings.search_max_limit:
        raise ValidationError(f"limit must be <= {settings.search_max_limit}")
    if min_price is not None and max_price is not None and min_price > max_price:
        raise ValidationError("minPrice must not exceed maxPrice")
    if min_rating is not None and not 0 <= min_rating <= 5:
        raise ValidationError("rating must be between 0 and 5")

    normalized = normalize_query(text)
    sort_mode = sort if isinstance(sort, SortMode) else parse_sort(sort)
    return SearchQuery(
        text=normalized,
        filters=Filters(
            category=category or None,
            subcategory=subcategory or None,
            brand=brand or None,
            min_price=min_price,
            max_price=max_price,
            in_stock_only=in_stock_only,
            min_rating=min_rating,
            tags=tuple(tag.strip() for tag in tags if tag and tag.strip()),
        ),
        sort=sort_mode,
        page=page,
        limit=limit,
        fuzzy_prefix_length=settings.fuzzy_prefix_length,
        phrase_boost=NAME_PHRASE_BOOST if normalized else None,
        with_facets=with_facets,
        with_highlights=bool(normalized),
    )


def build_suggestion_query(prefix: str, category: Optional[str], limit: int) -> SearchQuery:
    """Fuzzy product/brand lookup used as the second suggestion source."""
    return SearchQuery(
        text=normalize_query(prefix),
        fields=SUGGEST_FIELDS,
        filters=Filters(category=category or None),
        page=1,
        limit=limit,
        fuzzy_prefix_length=settings.fuzzy_prefix_length,
        source_fields=("id", "name", "brand", "category", "price", "image"),
    )


def _filter_clauses(filters: Filters) -> List[dict]:
    clauses: List[dict] = []
    if filters.category:
        clauses.append({"term": {"category": filters.category}})
    if filters.subcategory:
        clauses.append({"term": {"subcategory": filters.subcategory}})
    if filters.brand:
        clauses.append({"term": {"brand.keyword": filters.brand}})
    if filters.min_price is not None or filters.max_price is not None:
        price_range: Dict[str, float] = {}
        if filters.min_price is not None:
            price_range["gte"] = filters.min_price
        if filters.max_price is not None:
            price_range["lte"] = filters.max_price
        clauses.append({"range": {"price": price_range}})
    if filters.in_stock_only:
        clauses.append({"term": {"inStock": True}})
    if filters.min_rating is not None:
        clauses.append({"range": {"rating": {"gte": filters.min_rating}}})
    if filters.tags:
        clauses.append({"terms": {"tags": list(filters.tags)}})
    return clauses


def _aggregations() -> Dict[str, Any]:
    ranges = []
    for key, low, high in PRICE_BUCKETS:
        bucket: Dict[str, Any] = {"key": key}
        if low is not None:
            bucket["from"] = low
        if high is not None:
            bucket["to"] = high
        ranges.append(bucket)
    return {
        "categories": {"terms": {"field": "category", "size": FACET_SIZE}},
        "brands": {"terms": {"field": "brand.keyword", "size": FACET_SIZE}},
        "price_ranges": {"range": {"field": "price", "ranges": ranges}},
        "avg_price": {"avg": {"field": "price"}},
        "min_price": {"min": {"field": "price"}},
        "max_price": {"max": {"field": "price"}},
    }


def to_es_body(search_query: SearchQuery, *, offset: Optional[int] = None, size: Optional[int] = None) -> Dict[str, Any]:
    """Render a :class:`SearchQuery` as an Elasticsearch search body."""
    must: List[dict] = []
    should: List[dict] = []
    if search_query.text:
        must.append(
            {
                "multi_match": {
                    "query": search_query.text,
                    "fields": [f"{name}^{boost:g}" for name, boost in search_query.fields],
                    "type": "best_fields",
                    "fuzziness": "AUTO",
                    "prefix_length": search_query.fuzzy_prefix_length,
                }
            }
        )
        if search_query.phrase_boost:
            should.append({"match_phrase": {"name": {"query": search_query.text, "boost": search_query.phrase_boost}}})
    else:
        must.append({"match_all": {}})

    bool_query: Dict[str, Any] = {"must": must, "filter": _filter_clauses(search_query.filters)}
    if should:
        bool_query["should"] = should
        bool_query["minimum_should_match"] = 0

    body: Dict[str, Any] = {
        "query": {"bool": bool_query},
        "from": search_query.offset if offset is None else offset,
        "size": search_query.limit if size is None else size,
        "sort": SORT_CLAUSES[search_query.sort],
        "track_total_hits": True,
    }
    if search_query.sort is not SortMode.RELEVANCE:
        # Keep scores for display even when ordering by a field.
        body["track_scores"] = True
    if search_query.source_fields:
        body["_source"] = list(search_query.source_fields)
    if search_query.with_highlights:
        body["highlight"] = {
            "fields": {
                "name": {"pre_tags": ["<mark>"], "post_tags": ["</mark>"]},
                "description": {
                    "pre_tags": ["<mark>"],
                    "post_tags": ["</mark>"],
                    "fragment_size": 150,
                    "number_of_fragments": 3,
                },
            }
        }
    if search_query.with_facets:
        body["aggs"] = _aggregations()
    logger.debug("ES query payload=%s", body)
    return body
