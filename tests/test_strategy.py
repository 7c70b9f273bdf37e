"""Tests for strategies and the strategy registry.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import re

import pytest

from resilient_cache.cache.strategy import CacheStrategy, StrategyRegistry


class TestCacheStrategy:
    """Tests for CacheStrategy."""

    def test_fixed_ttl(self):
        assert CacheStrategy("s", ttl=60).resolve_ttl("value") == 60

    def test_computed_ttl_receives_context(self):
        strategy = CacheStrategy("s", ttl=lambda value, context: context["ttl"])

        assert strategy.resolve_ttl("value", {"ttl": 12}) == 12

    def test_no_ttl(self):
        assert CacheStrategy("s").resolve_ttl("value") is None

    def test_condition(self):
        strategy = CacheStrategy("s", condition=lambda key, value, context: len(value) > 2)

        assert strategy.accepts("k", "long")
        assert not strategy.accepts("k", "no")
        assert CacheStrategy("open").accepts("k", None)


class TestStrategyRegistry:
    """Tests for StrategyRegistry."""

    def test_glob_match(self):
        registry = StrategyRegistry()
        registry.register("session:*", CacheStrategy("session"))

        assert registry.match("session:abc").name == "session"
        assert registry.match("user:1") is None

    def test_literal_key(self):
        registry = StrategyRegistry()
        registry.register("config", CacheStrategy("config"))

        assert registry.match("config").name == "config"
        assert registry.match("config:x") is None

    def test_regex_full_match(self):
        registry = StrategyRegistry()
        registry.register(re.compile(r"user:\d+"), CacheStrategy("user"))

        assert registry.match("user:42").name == "user"
        assert registry.match("user:42:profile") is None

    def test_first_registered_wins(self):
        registry = StrategyRegistry()
        registry.register("api:*", CacheStrategy("broad"))
        registry.register("api:images:*", CacheStrategy("narrow"))

        assert registry.match("api:images:1").name == "broad"

    def test_reregister_replaces_in_place(self):
        registry = StrategyRegistry()
        registry.register("a:*", CacheStrategy("first"))
        registry.register("b:*", CacheStrategy("other"))
        registry.register("a:*", CacheStrategy("second"))

        assert len(registry) == 2
        assert [s.name for _, s in registry.strategies()] == ["second", "other"]

    def test_get_by_name(self):
        registry = StrategyRegistry()
        registry.register("x:*", CacheStrategy("x"))

        assert registry.get("x").name == "x"
        assert registry.get("y") is None

    def test_unregister(self):
        registry = StrategyRegistry()
        registry.register(re.compile("x.*"), CacheStrategy("x"))

        assert registry.unregister(re.compile("x.*"))
        assert not registry.unregister("x.*")
        assert registry.match("xyz") is None

    def test_rejects_bad_pattern(self):
        with pytest.raises(TypeError):
            StrategyRegistry().register(42, CacheStrategy("n"))
