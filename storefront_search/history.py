"""Recent search terms with Redis primary and in-memory fallback."""
from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Dict, List, Protocol

import redis

from .config import settings
from .text import normalize_query

logger = logging.getLogger(__name__)

KEY_PREFIX = "search_history"
DEFAULT_OWNER = "global"


@dataclass(frozen=True)
class HistoryItem:
    term: str
    resultCount: int = 0
    timestamp: float = 0.0


class HistoryStore(Protocol):
    def recent(self, owner: str, limit: int) -> List[HistoryItem]: ...

    def record(self, owner: str, term: str, result_count: int) -> None: ...


def _push(items: List[HistoryItem], term: str, result_count: int, cap: int) -> List[HistoryItem]:
    """Newest first, one entry per term."""
    entry = HistoryItem(term=term, resultCount=max(int(result_count), 0), timestamp=time.time())
    return [entry, *[item for item in items if item.term != term]][:cap]


def _key(owner: str) -> str:
    return f"{KEY_PREFIX}:{owner or DEFAULT_OWNER}"


@dataclass
class RedisHistoryStore:
    client: redis.Redis
    cap: int = settings.history_limit

    def _load(self, owner: str) -> List[HistoryItem]:
        try:
            data = self.client.get(_key(owner))
        except redis.RedisError as exc:  # pragma: no cover - protective
            logger.warning("Redis get failed: %s", exc)
            return []
        if not data:
            return []
        try:
            return [HistoryItem(**item) for item in json.loads(data)]
        except (json.JSONDecodeError, TypeError):
            return []

    def recent(self, owner: str, limit: int) -> List[HistoryItem]:
        return self._load(owner)[:limit]

    def record(self, owner: str, term: str, result_count: int) -> None:
        term = normalize_query(term)
        if not term:
            return
        items = _push(self._load(owner), term, result_count, self.cap)
        try:
            self.client.set(_key(owner), json.dumps([asdict(item) for item in items]))
        except redis.RedisError as exc:  # pragma: no cover - protective
            logger.warning("Redis set failed: %s", exc)


class InMemoryHistoryStore:
    def __init__(self, cap: int = settings.history_limit) -> None:
        self.cap = cap
        self._store: Dict[str, List[HistoryItem]] = {}
        self._lock = threading.Lock()

    def recent(self, owner: str, limit: int) -> List[HistoryItem]:
        with self._lock:
            return list(self._store.get(_key(owner), []))[:limit]

    def record(self, owner: str, term: str, result_count: int) -> None:
        term = normalize_query(term)
        if not term:
            return
        with self._lock:
            key = _key(owner)
            self._store[key] = _push(self._store.get(key, []), term, result_count, self.cap)


def connect_history_store() -> HistoryStore:
    try:
        client = redis.Redis(host=settings.redis_host, port=settings.redis_port, decode_responses=False)
        client.ping()
        logger.info("Using Redis search history at %s:%s", settings.redis_host, settings.redis_port)
        return RedisHistoryStore(client)
    except redis.RedisError:
        logger.warning("Redis not available, using in-memory search history")
        return InMemoryHistoryStore()
