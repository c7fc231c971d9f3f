from unittest.mock import MagicMock

import redis

from storefront_search.history import InMemoryHistoryStore, RedisHistoryStore


def test_recent_is_newest_first_and_unique():
    history = InMemoryHistoryStore(cap=3)
    history.record("u1", "serum", 2)
    history.record("u1", "lipstick", 5)
    history.record("u1", "serum", 1)

    items = history.recent("u1", 10)

    assert [item.term for item in items] == ["serum", "lipstick"]
    assert items[0].resultCount == 1


def test_history_is_capped():
    history = InMemoryHistoryStore(cap=2)
    for term in ("a1", "b2", "c3"):
        history.record("u1", term, 0)
    assert [item.term for item in history.recent("u1", 10)] == ["c3", "b2"]


def test_blank_terms_are_ignored():
    history = InMemoryHistoryStore()
    history.record("u1", "   ", 3)
    assert history.recent("u1", 5) == []


def _fake_redis():
    data = {}
    client = MagicMock()
    client.get.side_effect = data.get
    client.set.side_effect = data.__setitem__
    return client, data


def test_redis_history_round_trip():
    client, data = _fake_redis()
    history = RedisHistoryStore(client, cap=5)

    history.record("u1", "mascara", 4)
    history.record("u1", "serum", 1)

    assert list(data) == ["search_history:u1"]
    assert [item.term for item in history.recent("u1", 5)] == ["serum", "mascara"]
    assert history.recent("u2", 5) == []


def test_redis_errors_degrade_to_empty_history():
    client = MagicMock()
    client.get.side_effect = redis.ConnectionError("down")
    history = RedisHistoryStore(client)

    assert history.recent("u1", 5) == []
