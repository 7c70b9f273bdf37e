"""Tests for the persistent file tier.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import pickle

import pytest

from resilient_cache.cache.cache import Cache, CacheConfig
from resilient_cache.errors import CacheOperationError, PersistenceError
from resilient_cache.store.file import FileStore


class UnavailableFileStore(FileStore):
    """File tier whose disk reads and writes always fail."""

    def _read(self, path):
        raise OSError("disk unavailable")

    def _write(self, path, record):
        raise OSError("disk full")


def write_foreign_file(base_path):
    shard = base_path / "ff"
    shard.mkdir(exist_ok=True)
    (shard / "foreign").write_bytes(pickle.dumps("not a record"))


def record(key, expires_at=None, tags=()):
    return {
        "key": key,
        "data": b"payload",
        "format": "pickle",
        "compressed": False,
        "compression_type": "none",
        "original_size": 7,
        "ttl": None,
        "created_at": 0.0,
        "expires_at": expires_at,
        "tags": list(tags),
        "size": 7,
        "metadata": {},
    }


class TestFileStore:
    """Tests for FileStore."""

    def test_save_and_load(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)

        assert store.save(record("a", tags=["t"]))
        loaded = store.load("a")

        assert loaded["key"] == "a"
        assert loaded["tags"] == ["t"]
        assert store.contains("a")
        assert store.load("missing") is None

    def test_sharded_layout(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        store.save(record("a"))

        files = [p for p in tmp_path.rglob("*") if p.is_file()]

        assert len(files) == 1
        assert files[0].parent.parent == tmp_path
        assert len(files[0].name) == 64

    def test_expired_records_hidden(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        store.save(record("old", expires_at=clock() - 1))
        store.save(record("new", expires_at=clock() + 100))

        assert store.load("old") is None
        assert store.keys() == ["new"]

    def test_compact(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        store.save(record("a", expires_at=clock() + 10))
        store.save(record("b"))

        clock.advance(11)

        assert store.compact() == 1
        assert len(store) == 1

    def test_remove(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        store.save(record("a"))

        assert store.remove("a")
        assert not store.remove("a")

    def test_delete_by_tag(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        store.save(record("a", tags=["red"]))
        store.save(record("b", tags=["blue"]))

        assert store.delete_by_tag("red") == ["a"]
        assert store.keys() == ["b"]

    def test_delete_by_tag_raises_on_corrupt_file(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        store.save(record("a"))
        shard = next(p for p in tmp_path.iterdir() if p.is_dir())
        (shard / "garbage").write_bytes(b"\x00not a pickle")

        with pytest.raises(PersistenceError):
            store.delete_by_tag("red")

    def test_clear(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        store.save(record("a"))
        store.save(record("b"))

        assert store.clear() == 2
        assert store.keys() == []

    def test_disk_usage(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        assert store.disk_usage() == 0

        store.save(record("a"))
        assert store.disk_usage() > 0


class TestPersistentTierIntegration:
    """Tests for the cache using the file tier."""

    def test_rehydrate_after_restart(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        first = Cache(persistent=store, clock=clock)
        first.set("a", {"n": 1}, tags=["x"])
        first.set("b", "two", ttl=5)
        first.set("big", "z" * 5000)

        clock.advance(10)
        second = Cache(persistent=FileStore(str(tmp_path), clock=clock), clock=clock)

        assert second.rehydrate() == 2
        assert second.get("a") == {"n": 1}
        assert second.get("big") == "z" * 5000
        assert "b" not in second
        assert second.delete_by_tag("x") == 1

    def test_persistent_fallback(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        writer = Cache(persistent=store, clock=clock)
        writer.set("key", [1, 2, 3])

        reader = Cache(persistent=store, clock=clock)

        assert reader.get("key") == [1, 2, 3]
        stats = reader.get_statistics()
        assert stats.misses == 1
        assert stats.persistent_hits == 1
        assert reader.exists("key")

    def test_delete_by_tag_includes_persisted(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        writer = Cache(persistent=store, clock=clock)
        writer.set("a", 1, tags=["t"])
        writer.set("b", 2)

        fresh = Cache(persistent=store, clock=clock)

        assert fresh.delete_by_tag("t") == 1
        assert store.keys() == ["b"]

    def test_delete_by_tag_reports_failure(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        cache = Cache(persistent=store, clock=clock)
        cache.set("a", 1, tags=["t"])
        shard = next(p for p in tmp_path.iterdir() if p.is_dir())
        (shard / "garbage").write_bytes(b"\x00not a pickle")

        with pytest.raises(CacheOperationError) as excinfo:
            cache.delete_by_tag("t")

        assert "a" not in cache
        assert isinstance(excinfo.value.failures[0], PersistenceError)

    def test_maintenance_compacts(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        cache = Cache(CacheConfig(default_ttl=5), persistent=store, clock=clock)
        cache.set("a", 1)

        clock.advance(6)
        cache.sweep_expired()

        assert cache.compact_persistent() == 1
        assert len(store) == 0

    def test_failing_tier_does_not_fail_operations(self, tmp_path, clock):
        """Disk errors are counted; set and get still work from memory."""
        Cache(persistent=FileStore(str(tmp_path), clock=clock), clock=clock).set("old", 1)
        store = UnavailableFileStore(str(tmp_path), clock=clock)
        cache = Cache(persistent=store, clock=clock)

        assert cache.set("key", "value")
        assert cache.get("key") == "value"
        assert cache.get("old") is None

        stats = cache.get_statistics()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.errors == 1
        assert store.get_stats().errors == 2
        assert not any(p.suffix == ".tmp" for p in tmp_path.rglob("*"))

    def test_foreign_files_ignored(self, tmp_path, clock):
        store = FileStore(str(tmp_path), clock=clock)
        Cache(persistent=store, clock=clock).set("a", 1, tags=["t"])
        write_foreign_file(tmp_path)

        cache = Cache(persistent=store, clock=clock)

        assert cache.rehydrate() == 1
        assert store.keys() == ["a"]
        assert cache.delete_by_tag("t") == 1
        assert store.compact() == 1
