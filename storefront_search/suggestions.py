"""Autocomplete: merge completion, product/brand and history suggestions.

Sources are queried concurrently and merged in a fixed priority order
(completion, then product/brand, then history). The first occurrence of a
text wins, so a term never appears twice. The merged list is ordered by
score, with a secondary weight that only history and seed items carry
(their result counts), and cut to the requested limit.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .config import settings
from .exceptions import SearchEngineError, ValidationError
from .history import DEFAULT_OWNER, HistoryStore
from .index_store import IndexStore
from .query_builder import build_suggestion_query
from .text import fold, normalize_query

logger = logging.getLogger(__name__)

BRAND_SCORE_FACTOR = 0.8


class SuggestionType(str, Enum):
    COMPLETION = "completion"
    PRODUCT = "product"
    BRAND = "brand"
    HISTORY = "history"
    CATEGORY = "category"


@dataclass(frozen=True)
class Suggestion:
    text: str
    type: SuggestionType
    score: float = 0.0
    weight: int = 0
    product: Optional[Dict[str, Any]] = None


@dataclass
class SuggestionResult:
    query: str
    suggestions: List[Suggestion] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def error(self) -> Optional[str]:
        return "; ".join(self.errors) if self.errors else None


# Shown when the prefix is empty so the search box always has something.
FALLBACK_SUGGESTIONS: Sequence[Suggestion] = (
    Suggestion("lipstick", SuggestionType.PRODUCT, weight=45),
    Suggestion("foundation", SuggestionType.PRODUCT, weight=38),
    Suggestion("mascara", SuggestionType.PRODUCT, weight=42),
    Suggestion("makeup", SuggestionType.CATEGORY, weight=156),
    Suggestion("skincare", SuggestionType.CATEGORY, weight=89),
    Suggestion("perfume", SuggestionType.CATEGORY, weight=67),
    Suggestion("haircare", SuggestionType.CATEGORY, weight=78),
    Suggestion("nail polish", SuggestionType.PRODUCT, weight=35),
)


def merge_suggestions(sources: Sequence[Sequence[Suggestion]], limit: int) -> List[Suggestion]:
    """Deduplicate by exact text (first source wins), rank, and truncate."""
    seen = set()
    merged: List[Suggestion] = []
    for source in sources:
        for suggestion in source:
            if not suggestion.text or suggestion.text in seen:
                continue
            seen.add(suggestion.text)
            merged.append(suggestion)
    # Stable sort: equal keys keep source priority order.
    merged.sort(key=lambda item: (item.score, item.weight), reverse=True)
    return merged[:limit]


def fallback_suggestions(limit: int) -> List[Suggestion]:
    return merge_suggestions([FALLBACK_SUGGESTIONS], limit)


class SuggestionEngine:
    def __init__(self, store: IndexStore, history: Optional[HistoryStore] = None) -> None:
        self.store = store
        self.history = history

    async def _completions(self, prefix: str, category: Optional[str], limit: int) -> List[Suggestion]:
        hits = await self.store.suggest(prefix, limit, category)
        return [
            Suggestion(text=hit.text, type=SuggestionType.COMPLETION, score=hit.score)
            for hit in hits
        ]

    async def _product_matches(self, prefix: str, category: Optional[str], limit: int) -> List[Suggestion]:
        results = await self.store.search(build_suggestion_query(prefix, category, limit))
        suggestions: List[Suggestion] = []
        for hit in results.hits:
            source = hit.document
            score = float(hit.score or 0.0)
            name = source.get("name")
            if name:
                suggestions.append(
                    Suggestion(
                        text=name,
                        type=SuggestionType.PRODUCT,
                        score=score,
                        product={key: source.get(key) for key in ("id", "name", "brand", "category", "price", "image")},
                    )
                )
            brand = source.get("brand")
            if brand:
                suggestions.append(Suggestion(text=brand, type=SuggestionType.BRAND, score=score * BRAND_SCORE_FACTOR))
        return suggestions

    async def _history_matches(self, prefix: str, owner: str) -> List[Suggestion]:
        if self.history is None:
            return []
        items = await asyncio.to_thread(self.history.recent, owner, settings.history_limit)
        needle = fold(prefix)
        return [
            Suggestion(text=item.term, type=SuggestionType.HISTORY, weight=item.resultCount)
            for item in items
            if needle in fold(item.term)
        ]

    async def suggest(
        self,
        prefix: Optional[str],
        category: Optional[str] = None,
        limit: Optional[int] = None,
        owner: str = DEFAULT_OWNER,
    ) -> SuggestionResult:
        limit = settings.suggest_default_limit if limit is None else limit
        if not 1 <= limit <= settings.suggest_max_limit:
            raise ValidationError(f"limit must be between 1 and {settings.suggest_max_limit}")
        query = normalize_query(prefix)
        if not query:
            return SuggestionResult(query=query, suggestions=fallback_suggestions(limit))

        outcomes = await asyncio.gather(
            self._completions(query, category, limit),
            self._product_matches(query, category, limit),
            self._history_matches(query, owner),
            return_exceptions=True,
        )
        sources: List[List[Suggestion]] = []
        errors: List[str] = []
        for name, outcome in zip(("completion", "product", "history"), outcomes):
            if isinstance(outcome, SearchEngineError):
                logger.warning("Suggestion source %s failed: %s", name, outcome)
                errors.append(str(outcome))
                sources.append([])
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                sources.append(outcome)

        suggestions = merge_suggestions(sources, limit)
        logger.info("suggest q=%r category=%r suggestions=%s", query, category, len(suggestions))
        return SuggestionResult(query=query, suggestions=suggestions, errors=errors)
