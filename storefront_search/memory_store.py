"""In-process :class:`IndexStore` for local runs and tests.

It evaluates a :class:`SearchQuery` the way the product mapping makes
Elasticsearch behave, closely enough for the engine's contracts: AUTO
fuzziness per term, edge n-gram prefix matching on ``name``, best-fields
scoring, non-scoring filters, the same sort modes and facets, and a
completion lookup on the start of the product name.
"""
from __future__ import annotations

import copy
import logging
import time
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .documents import SearchDocument
from .exceptions import AlreadyExistsError, NotFoundError, SearchEngineError
from .index_store import BulkResult, CompletionHit, RankedResults, SearchHit
from .query_builder import FACET_SIZE, PRICE_BUCKETS, Filters, SearchQuery, SortMode
from .text import auto_fuzziness, fold, fuzzy_match, tokenize

logger = logging.getLogger(__name__)

# Mirrors the edge_ngram filter of the autocomplete analyzer.
NGRAM_MIN, NGRAM_MAX = 2, 20
NGRAM_FIELDS = {"name"}
EXACT_TERM_SCORE = 1.0
FUZZY_TERM_SCORE = 0.8


def _field_tokens(document: Dict[str, Any], name: str) -> List[str]:
    value = document.get(name)
    if isinstance(value, list):
        return [token for item in value for token in tokenize(str(item))]
    return tokenize(value if isinstance(value, str) else None)


def _term_score(term: str, tokens: List[str], ngrams: bool, prefix_length: int) -> float:
    best = 0.0
    for token in tokens:
        if token == term:
            return EXACT_TERM_SCORE
        candidates = [token]
        if ngrams:
            allowed = auto_fuzziness(term)
            low = max(NGRAM_MIN, len(term) - allowed)
            high = min(NGRAM_MAX, len(term) + allowed, len(token))
            candidates.extend(token[:size] for size in range(low, high + 1))
        for candidate in candidates:
            if candidate == term:
                best = max(best, EXACT_TERM_SCORE if candidate == token else FUZZY_TERM_SCORE)
            elif fuzzy_match(term, candidate, prefix_length):
                best = max(best, FUZZY_TERM_SCORE)
    return best


def _text_score(document: Dict[str, Any], search_query: SearchQuery) -> float:
    terms = tokenize(search_query.text)
    if not terms:
        return 0.0
    best_field = 0.0
    for name, boost in search_query.fields:
        tokens = _field_tokens(document, name)
        if not tokens:
            continue
        matched = sum(_term_score(term, tokens, name in NGRAM_FIELDS, search_query.fuzzy_prefix_length) for term in terms)
        best_field = max(best_field, boost * matched / len(terms))
    if best_field and search_query.phrase_boost:
        phrase = " ".join(terms)
        if phrase in " ".join(tokenize(document.get("name"))):
            best_field += search_query.phrase_boost
    return best_field


def _passes(document: Dict[str, Any], filters: Filters) -> bool:
    if filters.category and document.get("category") != filters.category:
        return False
    if filters.subcategory and document.get("subcategory") != filters.subcategory:
        return False
    if filters.brand and document.get("brand") != filters.brand:
        return False
    price = document.get("price") or 0.0
    if filters.min_price is not None and price < filters.min_price:
        return False
    if filters.max_price is not None and price > filters.max_price:
        return False
    if filters.in_stock_only and not document.get("inStock"):
        return False
    if filters.min_rating is not None and (document.get("rating") or 0.0) < filters.min_rating:
        return False
    if filters.tags and not set(filters.tags) & set(document.get("tags") or []):
        return False
    return True


def _sort(scored: List[Tuple[float, Dict[str, Any]]], mode: SortMode) -> List[Tuple[float, Dict[str, Any]]]:
    def doc_id(item: Tuple[float, Dict[str, Any]]) -> str:
        return item[1]["id"]

    if mode is SortMode.RELEVANCE:
        # Score desc, then createdAt desc with missing timestamps last.
        ordered = sorted(scored, key=doc_id)
        ordered.sort(key=lambda item: item[1].get("createdAt") or "", reverse=True)
        ordered.sort(key=lambda item: item[1].get("createdAt") is None)
        ordered.sort(key=lambda item: item[0], reverse=True)
        return ordered
    if mode is SortMode.NEWEST:
        ordered = sorted(scored, key=doc_id)
        ordered.sort(key=lambda item: item[1].get("createdAt") or "", reverse=True)
        ordered.sort(key=lambda item: item[1].get("createdAt") is None)
        return ordered
    field, reverse = {
        SortMode.PRICE_ASC: ("price", False),
        SortMode.PRICE_DESC: ("price", True),
        SortMode.RATING: ("rating", True),
        SortMode.NAME_ASC: ("name", False),
        SortMode.NAME_DESC: ("name", True),
    }[mode]
    ordered = sorted(scored, key=doc_id)
    ordered.sort(key=lambda item: item[1].get(field), reverse=reverse)
    return ordered


def _terms_facet(documents: List[Dict[str, Any]], name: str) -> List[dict]:
    counts = Counter(document.get(name) for document in documents if document.get(name))
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:FACET_SIZE]
    return [{"key": key, "count": count} for key, count in ordered]


def _facets(documents: List[Dict[str, Any]]) -> Dict[str, Any]:
    prices = [float(document.get("price") or 0.0) for document in documents]
    ranges = []
    for key, low, high in PRICE_BUCKETS:
        count = sum(1 for price in prices if (low is None or price >= low) and (high is None or price < high))
        ranges.append({"key": key, "from": low, "to": high, "count": count})
    return {
        "categories": _terms_facet(documents, "category"),
        "brands": _terms_facet(documents, "brand"),
        "priceRanges": ranges,
        "priceStats": {
            "avg": sum(prices) / len(prices) if prices else None,
            "min": min(prices) if prices else None,
            "max": max(prices) if prices else None,
        },
    }


class InMemoryIndexStore:
    """Dictionary-backed index; documents are stored as their JSON source."""

    def __init__(self, index: str = "products") -> None:
        self.index = index
        self._exists = False
        self._mapping: Optional[Dict[str, Any]] = None
        self._documents: Dict[str, Dict[str, Any]] = {}

    async def ping(self) -> bool:
        return True

    async def index_exists(self) -> bool:
        return self._exists

    async def create_index(self, mapping: Dict[str, Any]) -> None:
        if self._exists:
            raise AlreadyExistsError(f"Index {self.index} already exists")
        logger.info("Creating in-memory index %s", self.index)
        self._mapping = copy.deepcopy(mapping)
        self._exists = True

    async def delete_index(self) -> None:
        self._exists = False
        self._mapping = None
        self._documents.clear()

    async def put(self, document: SearchDocument) -> None:
        # Elasticsearch auto-creates a missing index on first write.
        self._exists = True
        self._documents[document.id] = document.to_source()

    async def bulk_put(self, documents: Sequence[SearchDocument]) -> BulkResult:
        for document in documents:
            await self.put(document)
        return BulkResult(succeeded=len(documents))

    async def delete(self, document_id: str) -> None:
        if self._documents.pop(document_id, None) is None:
            raise NotFoundError("Document", document_id)

    async def refresh(self) -> None:
        return None

    async def count(self) -> int:
        return len(self._documents) if self._exists else 0

    def get_source(self, document_id: str) -> Optional[Dict[str, Any]]:
        source = self._documents.get(document_id)
        return copy.deepcopy(source) if source is not None else None

    async def search(self, search_query: SearchQuery) -> RankedResults:
        if not self._exists:
            raise SearchEngineError(f"no such index [{self.index}]")
        started = time.perf_counter()
        scored: List[Tuple[float, Dict[str, Any]]] = []
        for document in self._documents.values():
            if not _passes(document, search_query.filters):
                continue
            if search_query.text:
                score = _text_score(document, search_query)
                if score <= 0:
                    continue
            else:
                score = 1.0
            scored.append((score, document))

        ordered = _sort(scored, search_query.sort)
        page = ordered[search_query.offset : search_query.offset + search_query.limit]
        hits = []
        for score, document in page:
            source = copy.deepcopy(document)
            if search_query.source_fields:
                source = {key: source.get(key) for key in search_query.source_fields}
            hits.append(SearchHit(document=source, score=score))
        return RankedResults(
            total=len(ordered),
            hits=hits,
            facets=_facets([document for _, document in ordered]) if search_query.with_facets else None,
            took_ms=(time.perf_counter() - started) * 1000,
        )

    async def suggest(self, prefix: str, limit: int, category: Optional[str] = None) -> List[CompletionHit]:
        if not self._exists:
            raise SearchEngineError(f"no such index [{self.index}]")
        needle = fold(prefix).strip()
        if not needle:
            return []
        seen = set()
        hits: List[CompletionHit] = []
        for document in sorted(self._documents.values(), key=lambda doc: (doc.get("name") or "", doc["id"])):
            name = document.get("name") or ""
            if not fold(name).startswith(needle) or name in seen:
                continue
            if category and document.get("category") != category:
                continue
            seen.add(name)
            hits.append(CompletionHit(text=name, score=1.0, product_id=document["id"], source=copy.deepcopy(document)))
            if len(hits) >= limit:
                break
        return hits
