"""Tests for the best-effort Redis wrapper and the mindmap snapshot cache."""

import json
from unittest.mock import MagicMock

import redis

from mindmap_pro.core.cache import RedisCache
from mindmap_pro.models import Visibility
from mindmap_pro.schemas.mindmap import MindmapDetailResponse
from mindmap_pro.services.mindmap_cache import MindmapCache, cache_key
from tests.conftest import InMemoryCache


def _failing_client() -> MagicMock:
    client = MagicMock()
    error = redis.ConnectionError("Connection refused")
    for name in ("get", "set", "delete", "scan_iter", "flushdb", "ping"):
        getattr(client, name).side_effect = error
    return client


def _detail(**overrides) -> MindmapDetailResponse:
    fields = {
        "id": "m1",
        "title": "Plan",
        "data": {"nodes": [{"id": "root"}], "edges": []},
        "visibility": Visibility.PRIVATE,
        "is_favorite": False,
        "is_archived": False,
        "user_id": "u1",
        "share_token": "abc",
    }
    fields.update(overrides)
    return MindmapDetailResponse(**fields)


class TestRedisCache:

    def test_get_passes_through(self):
        client = MagicMock()
        client.get.return_value = "value"
        assert RedisCache(client).get("k") == "value"
        client.get.assert_called_once_with("k")

    def test_set_uses_expiry(self):
        client = MagicMock()
        RedisCache(client).set("k", "v", 300)
        client.set.assert_called_once_with("k", "v", ex=300)

    def test_set_without_ttl(self):
        client = MagicMock()
        RedisCache(client).set("k", "v")
        client.set.assert_called_once_with("k", "v")

    def test_delete_without_keys_skips_redis(self):
        client = MagicMock()
        assert RedisCache(client).delete() == 0
        client.delete.assert_not_called()

    def test_keys_scans_with_pattern(self):
        client = MagicMock()
        client.scan_iter.return_value = iter(["mindmap:1", "mindmap:2"])
        assert RedisCache(client).keys("mindmap:*") == ["mindmap:1", "mindmap:2"]
        assert client.scan_iter.call_args.kwargs["match"] == "mindmap:*"

    def test_flush_all_flushes_current_db_only(self):
        client = MagicMock()
        RedisCache(client).flush_all()
        client.flushdb.assert_called_once_with()
        client.flushall.assert_not_called()

    def test_failures_degrade_to_defaults(self):
        cache = RedisCache(_failing_client())
        assert cache.get("k") is None
        assert cache.set("k", "v", 10) is None
        assert cache.delete("k") == 0
        assert cache.keys("*") == []
        assert cache.flush_all() is None
        assert cache.ping() is False

    def test_failure_is_logged(self, caplog):
        with caplog.at_level("WARNING"):
            RedisCache(_failing_client()).get("k")
        assert "GET failed" in caplog.text


class TestMindmapCache:

    def test_round_trip_keeps_access_fields(self):
        store = InMemoryCache()
        snapshots = MindmapCache(store)
        snapshots.put(_detail(), 300)

        cached = snapshots.get("m1")
        assert cached.user_id == "u1"
        assert cached.visibility == Visibility.PRIVATE
        assert cached.data == {"nodes": [{"id": "root"}], "edges": []}
        assert store.ttls[cache_key("m1")] == 300

    def test_miss_returns_none(self):
        assert MindmapCache(InMemoryCache()).get("missing") is None

    def test_unreadable_entry_is_dropped(self):
        store = InMemoryCache()
        store.set(cache_key("m1"), json.dumps({"unexpected": True}))
        assert MindmapCache(store).get("m1") is None
        assert cache_key("m1") not in store.store

    def test_invalidate_many(self):
        store = InMemoryCache()
        snapshots = MindmapCache(store)
        snapshots.put(_detail(id="a"), 60)
        snapshots.put(_detail(id="b"), 60)
        snapshots.invalidate("a", "b")
        assert store.store == {}

    def test_unavailable_redis_is_a_miss(self):
        snapshots = MindmapCache(RedisCache(_failing_client()))
        assert snapshots.get("m1") is None
        snapshots.put(_detail(), 60)
        snapshots.invalidate("m1")
