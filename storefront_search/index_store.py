"""Index store abstraction and its Elasticsearch implementation.

The rest of the code works against the official synchronous client. Blocking
calls are wrapped via ``asyncio.to_thread`` so coroutines never stall the
event loop, and transport failures are translated into the engine's own
exception types here, at the boundary.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from elasticsearch import ApiError, BadRequestError, ConnectionError as ESConnectionError
from elasticsearch import ConnectionTimeout, Elasticsearch, TransportError, helpers
from elasticsearch import NotFoundError as ESNotFoundError

from .config import settings
from .documents import SearchDocument
from .exceptions import AlreadyExistsError, ConnectivityError, NotFoundError, SearchEngineError
from .query_builder import PRICE_BUCKETS, SearchQuery, to_es_body

logger = logging.getLogger(__name__)

# Elasticsearch rejects from + size beyond index.max_result_window.
MAX_RESULT_WINDOW = 10_000
# Context-enabled completion fields reject queries without a context, so
# uncategorized prefixes go to a plain completion field.
COMPLETION_FIELD = "name.completion"
CATEGORY_COMPLETION_FIELD = "name.suggest"


@dataclass(frozen=True)
class BulkItemError:
    id: str
    error: str


@dataclass
class BulkResult:
    succeeded: int = 0
    failed: List[BulkItemError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: "BulkResult") -> None:
        self.succeeded += other.succeeded
        self.failed.extend(other.failed)


@dataclass(frozen=True)
class SearchHit:
    document: Dict[str, Any]
    score: Optional[float] = None
    highlights: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class RankedResults:
    total: int
    hits: List[SearchHit] = field(default_factory=list)
    facets: Optional[Dict[str, Any]] = None
    took_ms: float = 0.0


@dataclass(frozen=True)
class CompletionHit:
    text: str
    score: float
    product_id: Optional[str] = None
    source: Dict[str, Any] = field(default_factory=dict)


class IndexStore(Protocol):
    async def ping(self) -> bool: ...

    async def index_exists(self) -> bool: ...

    async def create_index(self, mapping: Dict[str, Any]) -> None: ...

    async def delete_index(self) -> None: ...

    async def put(self, document: SearchDocument) -> None: ...

    async def bulk_put(self, documents: Sequence[SearchDocument]) -> BulkResult: ...

    async def delete(self, document_id: str) -> None: ...

    async def refresh(self) -> None: ...

    async def count(self) -> int: ...

    async def search(self, search_query: SearchQuery) -> RankedResults: ...

    async def suggest(self, prefix: str, limit: int, category: Optional[str] = None) -> List[CompletionHit]: ...


def load_mapping(mapping_path: str | Path | None = None) -> Dict[str, Any]:
    path = Path(mapping_path or settings.mapping_path)
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _facets_from_aggregations(aggs: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not aggs:
        return None

    def terms(name: str) -> List[dict]:
        buckets = aggs.get(name, {}).get("buckets", [])
        return [{"key": bucket.get("key"), "count": bucket.get("doc_count", 0)} for bucket in buckets]

    ranges = []
    raw_ranges = {bucket.get("key"): bucket for bucket in aggs.get("price_ranges", {}).get("buckets", [])}
    for key, low, high in PRICE_BUCKETS:
        ranges.append({"key": key, "from": low, "to": high, "count": raw_ranges.get(key, {}).get("doc_count", 0)})

    return {
        "categories": terms("categories"),
        "brands": terms("brands"),
        "priceRanges": ranges,
        "priceStats": {
            "avg": aggs.get("avg_price", {}).get("value"),
            "min": aggs.get("min_price", {}).get("value"),
            "max": aggs.get("max_price", {}).get("value"),
        },
    }


def _total(hits_section: Dict[str, Any]) -> int:
    total = hits_section.get("total", 0)
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)


def _bulk_error_message(error: Any) -> str:
    if isinstance(error, dict):
        reason = error.get("reason") or ""
        kind = error.get("type") or "error"
        return f"{kind}: {reason}" if reason else kind
    return str(error)


class ElasticsearchIndexStore:
    """:class:`IndexStore` backed by one Elasticsearch index."""

    def __init__(self, client: Elasticsearch, index: str | None = None) -> None:
        self.client = client
        self.index = index or settings.es_index

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (ESConnectionError, ConnectionTimeout) as exc:
            logger.error("Elasticsearch unreachable: %s", exc)
            raise ConnectivityError(f"Elasticsearch unreachable: {exc}") from exc
        except ESNotFoundError:
            raise
        except BadRequestError as exc:
            if getattr(exc, "message", "") == "resource_already_exists_exception":
                raise AlreadyExistsError(f"Index {self.index} already exists") from exc
            raise SearchEngineError(str(exc)) from exc
        except ApiError as exc:
            logger.error("Elasticsearch request failed: %s", exc)
            raise SearchEngineError(str(exc)) from exc

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self.client.ping))
        except TransportError as exc:
            logger.warning("Elasticsearch ping failed: %s", exc)
            return False

    async def index_exists(self) -> bool:
        return bool(await self._call(self.client.indices.exists, index=self.index))

    async def create_index(self, mapping: Dict[str, Any]) -> None:
        logger.info("Creating index %s", self.index)
        await self._call(
            self.client.indices.create,
            index=self.index,
            settings=mapping.get("settings"),
            mappings=mapping.get("mappings"),
        )

    async def delete_index(self) -> None:
        try:
            await self._call(self.client.indices.delete, index=self.index)
            logger.info("Index %s deleted", self.index)
        except ESNotFoundError:
            return

    async def put(self, document: SearchDocument) -> None:
        await self._call(self.client.index, index=self.index, id=document.id, document=document.to_source())

    def _actions(self, documents: Iterable[SearchDocument]) -> Iterable[dict]:
        for document in documents:
            yield {
                "_op_type": "index",
                "_index": self.index,
                "_id": document.id,
                "_source": document.to_source(),
            }

    async def bulk_put(self, documents: Sequence[SearchDocument]) -> BulkResult:
        if not documents:
            return BulkResult()
        succeeded, errors = await self._call(
            helpers.bulk,
            self.client,
            self._actions(documents),
            raise_on_error=False,
            stats_only=False,
        )
        failed: List[BulkItemError] = []
        for item in errors:
            details = next(iter(item.values()), {})
            failed.append(BulkItemError(id=str(details.get("_id")), error=_bulk_error_message(details.get("error"))))
        return BulkResult(succeeded=succeeded, failed=failed)

    async def delete(self, document_id: str) -> None:
        try:
            await self._call(self.client.delete, index=self.index, id=document_id)
        except ESNotFoundError as exc:
            raise NotFoundError("Document", document_id) from exc

    async def refresh(self) -> None:
        try:
            await self._call(self.client.indices.refresh, index=self.index)
        except ESNotFoundError:
            logger.debug("Index %s missing; nothing to refresh", self.index)

    async def _search(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await self._call(self.client.search, index=self.index, body=body)
        except ESNotFoundError as exc:
            raise SearchEngineError(f"Index {self.index} does not exist") from exc

    async def count(self) -> int:
        try:
            stats = await self._call(self.client.count, index=self.index)
        except ESNotFoundError:
            return 0
        return int(stats.get("count", 0))

    async def search(self, search_query: SearchQuery) -> RankedResults:
        if search_query.offset >= MAX_RESULT_WINDOW:
            # Past the result window: fetch the total only.
            body = to_es_body(search_query, offset=0, size=0)
        else:
            # A page straddling the window end is cut at the window.
            size = min(search_query.limit, MAX_RESULT_WINDOW - search_query.offset)
            body = to_es_body(search_query, size=size)
        response = await self._search(body)
        hits_section = response.get("hits", {})
        hits = [
            SearchHit(
                document=hit.get("_source", {}),
                score=hit.get("_score"),
                highlights=hit.get("highlight", {}),
            )
            for hit in hits_section.get("hits", [])
        ]
        return RankedResults(
            total=_total(hits_section),
            hits=hits,
            facets=_facets_from_aggregations(response.get("aggregations")),
            took_ms=float(response.get("took", 0)),
        )

    async def suggest(self, prefix: str, limit: int, category: Optional[str] = None) -> List[CompletionHit]:
        completion: Dict[str, Any] = {
            "field": CATEGORY_COMPLETION_FIELD if category else COMPLETION_FIELD,
            "size": limit,
            "skip_duplicates": True,
        }
        if category:
            completion["contexts"] = {"category": [category]}
        body = {
            "size": 0,
            "suggest": {"product_suggest": {"prefix": prefix, "completion": completion}},
        }
        response = await self._search(body)
        entries = response.get("suggest", {}).get("product_suggest", [])
        options = entries[0].get("options", []) if entries else []
        return [
            CompletionHit(
                text=option.get("text", ""),
                score=float(option.get("_score") or 0.0),
                product_id=option.get("_id"),
                source=option.get("_source", {}),
            )
            for option in options
        ]
