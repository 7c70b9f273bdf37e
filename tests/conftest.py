"""Shared test fixtures.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import pytest

from resilient_cache.cache.cache import Cache, CacheConfig
from resilient_cache.store.backend import DistributedAdapter


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingAdapter(DistributedAdapter):
    """Adapter whose every call fails with a connection error."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def _fail(self, name, *args):
        self.calls.append((name,) + args)
        raise ConnectionError("backend unreachable")

    def _get(self, key):
        return self._fail("get", key)

    def _set(self, key, record, ttl):
        return self._fail("set", key)

    def _delete(self, key):
        return self._fail("delete", key)

    def _exists(self, key):
        return self._fail("exists", key)

    def _clear(self):
        return self._fail("clear")

    def _keys(self, pattern):
        return self._fail("keys", pattern)

    def _get_ttl(self, key):
        return self._fail("get_ttl", key)

    def _set_ttl(self, key, ttl):
        return self._fail("set_ttl", key)

    def _ping(self):
        return False


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_cache(clock):
    """Build caches on the fake clock."""

    def factory(**options):
        tiers = {
            name: options.pop(name)
            for name in ("distributed", "persistent", "offline_queue", "registry", "eviction")
            if name in options
        }
        return Cache(CacheConfig(**options), clock=clock, **tiers)

    return factory


@pytest.fixture
def failing_adapter():
    return FailingAdapter()
