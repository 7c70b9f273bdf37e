"""Tests for distributed adapters.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import pickle
from unittest.mock import ANY, MagicMock

import pytest
import redis

from resilient_cache.cache.cache import Cache
from resilient_cache.errors import DistributedCacheError
from resilient_cache.store.memory import MemoryAdapter
from resilient_cache.store.redis import RedisAdapter, RedisConfig

RECORD = {"key": "k", "data": b"x", "format": "pickle", "tags": []}


class TestMemoryAdapter:
    """Tests for MemoryAdapter."""

    def test_set_get_delete(self, clock):
        adapter = MemoryAdapter(clock=clock)

        assert adapter.set("k", RECORD).ok
        assert adapter.get("k").value == RECORD
        assert adapter.exists("k").value

        result = adapter.delete("k")
        assert result.ok and result.value
        assert adapter.get("k").value is None

    def test_ttl(self, clock):
        adapter = MemoryAdapter(clock=clock)
        adapter.set("k", RECORD, ttl=10)

        assert adapter.get_ttl("k").value == 10
        clock.advance(11)
        assert adapter.get("k").value is None

    def test_set_ttl(self, clock):
        adapter = MemoryAdapter(clock=clock)
        adapter.set("k", RECORD)

        assert adapter.get_ttl("k").value is None
        assert adapter.set_ttl("k", 5).value
        clock.advance(6)
        assert not adapter.exists("k").value

    def test_keys_pattern(self, clock):
        adapter = MemoryAdapter(clock=clock)
        for key in ("ns:a", "ns:b", "other:c"):
            adapter.set(key, RECORD)

        assert sorted(adapter.keys("ns:*").value) == ["ns:a", "ns:b"]
        assert adapter.clear().value == 3

    def test_offline(self, clock):
        """Offline calls fail as connectivity errors."""
        adapter = MemoryAdapter(clock=clock)
        adapter.set_online(False)

        result = adapter.set("k", RECORD)
        assert not result.ok
        assert result.connectivity
        assert not adapter.ping().ok
        assert adapter.get_stats().connectivity_errors == 1

        adapter.set_online(True)
        assert adapter.ping().ok

    def test_failure_to_exception(self, clock):
        adapter = MemoryAdapter(clock=clock)
        adapter.set_online(False)

        error = adapter.get("k").to_exception("get")

        assert isinstance(error, DistributedCacheError)
        assert error.connectivity


class TestRedisAdapter:
    """Tests for RedisAdapter against a mocked client."""

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def adapter(self, client):
        return RedisAdapter(RedisConfig(prefix="p:"), client=client)

    def test_set_with_ttl(self, adapter, client):
        assert adapter.set("k", RECORD, ttl=1.5).ok

        client.psetex.assert_called_once_with("p:k", 1500, ANY)
        stored = client.psetex.call_args[0][2]
        assert pickle.loads(stored) == RECORD

    def test_zero_ttl_still_expires(self, adapter, client):
        adapter.set("k", RECORD, ttl=0)

        client.psetex.assert_called_once_with("p:k", 1, ANY)
        client.set.assert_not_called()

    def test_set_without_ttl(self, adapter, client):
        adapter.set("k", RECORD)

        client.set.assert_called_once_with("p:k", ANY)
        client.psetex.assert_not_called()

    def test_get(self, adapter, client):
        client.get.return_value = pickle.dumps(RECORD)

        assert adapter.get("k").value == RECORD
        client.get.assert_called_once_with("p:k")

    def test_get_miss(self, adapter, client):
        client.get.return_value = None

        result = adapter.get("k")
        assert result.ok
        assert result.value is None

    def test_connection_error_is_connectivity(self, adapter, client):
        client.get.side_effect = redis.exceptions.ConnectionError("refused")

        result = adapter.get("k")

        assert not result.ok
        assert result.connectivity
        assert adapter.get_stats().connectivity_errors == 1

    def test_timeout_is_connectivity(self, adapter, client):
        client.psetex.side_effect = redis.exceptions.TimeoutError("slow")

        assert adapter.set("k", RECORD, ttl=10).connectivity

    def test_response_error_is_not_connectivity(self, adapter, client):
        client.get.side_effect = redis.exceptions.ResponseError("WRONGTYPE")

        result = adapter.get("k")

        assert not result.ok
        assert not result.connectivity

    def test_keys_scans_all_pages(self, adapter, client):
        client.scan.side_effect = [(5, [b"p:a"]), (0, [b"p:b"])]

        assert adapter.keys("*").value == ["a", "b"]
        client.scan.assert_any_call(0, match="p:*", count=100)

    def test_clear(self, adapter, client):
        client.scan.return_value = (0, [b"p:a", b"p:b"])
        client.delete.return_value = 2

        assert adapter.clear().value == 2
        client.delete.assert_called_once_with(b"p:a", b"p:b")

    def test_ttl_round_trip(self, adapter, client):
        client.pttl.return_value = 2500
        assert adapter.get_ttl("k").value == 2.5

        client.pttl.return_value = -2
        assert adapter.get_ttl("k").value is None

        client.pexpire.return_value = 1
        assert adapter.set_ttl("k", 3).value
        client.pexpire.assert_called_once_with("p:k", 3000)

    def test_ping(self, adapter, client):
        client.ping.return_value = True
        assert adapter.ping().ok

        client.ping.side_effect = redis.exceptions.ConnectionError("down")
        assert adapter.ping().connectivity


class TestCacheOverRedis:
    """Tests for the cache reading values other clients wrote to Redis."""

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def cache(self, client, clock):
        return Cache(distributed=RedisAdapter(RedisConfig(prefix="p:"), client=client), clock=clock)

    def test_foreign_value_is_a_miss(self, cache, client):
        """A plain value under the namespaced key is ignored, not raised."""
        client.get.return_value = pickle.dumps("written-by-another-client")

        assert cache.get("k", "fallback") == "fallback"

        stats = cache.get_statistics()
        assert stats.misses == 1
        assert stats.remote_hits == 0
        assert stats.errors == 1
        assert "k" not in cache

    def test_incomplete_record_is_a_miss(self, cache, client):
        client.get.return_value = pickle.dumps({"key": "k", "data": 42})

        assert cache.get("k") is None
        assert cache.get_statistics().errors == 1

    def test_valid_record_is_promoted(self, cache, client, clock):
        stored = MagicMock()
        writer_adapter = RedisAdapter(RedisConfig(prefix="p:"), client=stored)
        Cache(distributed=writer_adapter, clock=clock).set("k", {"n": 1})
        client.get.return_value = stored.psetex.call_args[0][2]

        assert cache.get("k") == {"n": 1}
        assert cache.get_statistics().remote_hits == 1
        assert "k" in cache
