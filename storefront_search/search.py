"""Read path: product search and filtered listing against the index."""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import SearchEngineError
from .history import DEFAULT_OWNER, HistoryStore
from .index_store import IndexStore, RankedResults
from .query_builder import SearchQuery, build_search_query
from .text import normalize_query

logger = logging.getLogger(__name__)


@dataclass
class SearchPage:
    search_query: SearchQuery
    products: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    facets: Optional[Dict[str, Any]] = None
    took_ms: float = 0.0
    error: Optional[str] = None

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.search_query.limit) if self.total else 0

    def pagination(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "page": self.search_query.page,
            "limit": self.search_query.limit,
            "totalPages": self.total_pages,
            "hasNextPage": self.search_query.page * self.search_query.limit < self.total,
            "hasPreviousPage": self.search_query.page > 1,
        }


def _products(results: RankedResults) -> List[Dict[str, Any]]:
    return [
        {**hit.document, "score": hit.score, "highlights": hit.highlights}
        for hit in results.hits
    ]


class SearchService:
    def __init__(self, store: IndexStore, history: Optional[HistoryStore] = None) -> None:
        self.store = store
        self.history = history

    async def _record(self, owner: str, term: str, count: int) -> None:
        if self.history is None or not term:
            return
        await asyncio.to_thread(self.history.record, owner, term, count)

    async def browse(self, search_query: SearchQuery, owner: str = DEFAULT_OWNER) -> SearchPage:
        """Run a listing or search query; engine failures yield an empty page with ``error`` set."""
        try:
            results = await self.store.search(search_query)
        except SearchEngineError as exc:
            logger.error("Search failed q=%r: %s", search_query.text, exc)
            return SearchPage(search_query=search_query, error=str(exc))

        page = SearchPage(
            search_query=search_query,
            products=_products(results),
            total=results.total,
            facets=results.facets,
            took_ms=results.took_ms,
        )
        logger.info(
            "search q=%r sort=%s page=%s hits=%s total=%s took=%sms",
            search_query.text,
            search_query.sort.value,
            search_query.page,
            len(page.products),
            page.total,
            page.took_ms,
        )
        if search_query.text and search_query.page == 1:
            await self._record(owner, search_query.text, page.total)
        return page

    async def search_products(self, q: Optional[str], limit: Optional[int] = None, owner: str = DEFAULT_OWNER) -> Dict[str, Any]:
        """Plain text search: ``{query, products, count}`` or ``{query, products: [], error}``."""
        query = normalize_query(q)
        if not query:
            return {"query": query, "products": [], "count": 0}
        search_query = build_search_query(query, limit=limit, with_facets=False)
        page = await self.browse(search_query, owner=owner)
        payload: Dict[str, Any] = {"query": query, "products": page.products, "count": len(page.products)}
        if page.error:
            payload["error"] = page.error
        return payload
