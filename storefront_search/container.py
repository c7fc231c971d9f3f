"""Process-wide, lazily created collaborators.

The first caller of an accessor builds the resource; later callers share it.
:func:`use` swaps in other implementations (the in-memory ones in tests)
and drops everything built on top of the previous ones.
"""
from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import Optional

from .catalog import CatalogStore, load_json_catalog
from .config import settings
from .es_client import get_client
from .history import HistoryStore, connect_history_store
from .index_store import ElasticsearchIndexStore, IndexStore
from .memory_store import InMemoryIndexStore
from .search import SearchService
from .suggestions import SuggestionEngine
from .sync import SyncController

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_store: Optional[IndexStore] = None
_catalog: Optional[CatalogStore] = None
_history: Optional[HistoryStore] = None


def _create_index_store() -> IndexStore:
    if settings.index_backend == "memory":
        logger.info("Using in-memory index store")
        return InMemoryIndexStore(settings.es_index)
    return ElasticsearchIndexStore(get_client(), settings.es_index)


def get_index_store() -> IndexStore:
    global _store
    with _lock:
        if _store is None:
            _store = _create_index_store()
        return _store


def get_catalog() -> CatalogStore:
    global _catalog
    with _lock:
        if _catalog is None:
            _catalog = load_json_catalog(settings.catalog_path)
        return _catalog


def get_history_store() -> HistoryStore:
    global _history
    with _lock:
        if _history is None:
            _history = connect_history_store()
        return _history


@lru_cache(maxsize=1)
def get_sync_controller() -> SyncController:
    return SyncController(get_index_store(), get_catalog())


@lru_cache(maxsize=1)
def get_search_service() -> SearchService:
    return SearchService(get_index_store(), get_history_store())


@lru_cache(maxsize=1)
def get_suggestion_engine() -> SuggestionEngine:
    return SuggestionEngine(get_index_store(), get_history_store())


def _clear_services() -> None:
    get_sync_controller.cache_clear()
    get_search_service.cache_clear()
    get_suggestion_engine.cache_clear()


def use(
    store: Optional[IndexStore] = None,
    catalog: Optional[CatalogStore] = None,
    history: Optional[HistoryStore] = None,
) -> None:
    global _store, _catalog, _history
    with _lock:
        if store is not None:
            _store = store
        if catalog is not None:
            _catalog = catalog
        if history is not None:
            _history = history
    _clear_services()


def reset() -> None:
    global _store, _catalog, _history
    with _lock:
        _store = _catalog = _history = None
    _clear_services()
