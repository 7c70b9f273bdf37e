"""Tests for statistics, scheduling and events.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import threading
from unittest.mock import MagicMock

import pytest

from resilient_cache.events import CacheEventType, CacheListener, EventBus
from resilient_cache.cache.cache import Cache, CacheConfig
from resilient_cache.metrics.collector import CacheStatistics, StatisticsCollector, Timer
from resilient_cache.metrics.scheduler import MaintenanceScheduler, PeriodicTask


class TestStatisticsCollector:
    """Tests for StatisticsCollector."""

    def test_hit_rate(self):
        collector = StatisticsCollector()
        for _ in range(7):
            collector.record_hit()
        for _ in range(3):
            collector.record_miss()

        assert collector.get_statistics().hit_rate == pytest.approx(0.7)

    def test_empty_hit_rate(self):
        assert CacheStatistics().hit_rate == 0.0

    def test_latency(self):
        collector = StatisticsCollector()
        for ms in (1.0, 2.0, 3.0):
            collector.record_latency(ms)

        stats = collector.get_statistics()
        assert stats.average_access_time_ms == pytest.approx(2.0)
        assert stats.p99_access_time_ms == 3.0

    def test_timer(self):
        collector = MagicMock(spec=StatisticsCollector)

        with Timer(collector):
            pass

        collector.record_latency.assert_called_once()
        assert collector.record_latency.call_args[0][0] >= 0.0

    @pytest.mark.parametrize("enabled, samples", [(True, 2), (False, 0)])
    def test_cache_lookups_are_timed(self, clock, enabled, samples):
        collector = StatisticsCollector(clock=clock)
        collector.record_latency = MagicMock()
        cache = Cache(CacheConfig(enable_metrics=enabled), collector=collector, clock=clock)
        cache.set("key", "value")

        cache.get("key")
        cache.get("missing")

        assert collector.record_latency.call_count == samples

    def test_unknown_counter(self):
        with pytest.raises(KeyError):
            StatisticsCollector().increment("bogus")

    def test_reset_keeps_gauges(self):
        collector = StatisticsCollector()
        collector.record_set()
        collector.set_gauge("item_count", 5)

        collector.reset()

        stats = collector.get_statistics()
        assert stats.sets == 0
        assert stats.item_count == 5

    def test_prometheus_export(self):
        collector = StatisticsCollector()
        collector.record_hit()
        collector.increment("offline_dropped", 2)

        text = collector.to_prometheus()

        assert "cache_hits_total 1" in text
        assert "cache_offline_dropped_total 2" in text
        assert "# TYPE cache_hit_rate gauge" in text

    def test_exporters(self):
        collector = StatisticsCollector()
        received = []
        collector.add_exporter(received.append)
        collector.add_exporter(lambda stats: 1 / 0)

        collector.record_miss()
        collector.export()

        assert received[0].misses == 1

    def test_to_dict(self):
        stats = CacheStatistics(hits=1, misses=1, top_keys=[("a", 3)])

        data = stats.to_dict()

        assert data["hit_rate"] == 0.5
        assert data["top_keys"] == [("a", 3)]


class TestPeriodicTask:
    """Tests for PeriodicTask."""

    def test_runs_and_survives_errors(self):
        calls = []
        ran_twice = threading.Event()

        def work():
            calls.append(1)
            if len(calls) >= 2:
                ran_twice.set()
            raise RuntimeError("boom")

        task = PeriodicTask("test", 0.01, work)
        task.start()
        try:
            assert ran_twice.wait(2.0)
        finally:
            task.stop()

        assert task.failures >= 2
        assert not task.running

    def test_no_runs_after_stop(self):
        calls = []
        task = PeriodicTask("test", 0.01, lambda: calls.append(1))
        task.start()
        task.stop()

        count = len(calls)
        threading.Event().wait(0.05)
        assert len(calls) == count

    def test_rejects_bad_interval(self):
        with pytest.raises(ValueError):
            PeriodicTask("bad", 0, lambda: None)


class TestMaintenanceScheduler:
    """Tests for MaintenanceScheduler."""

    def test_pass_order(self, make_cache, clock):
        cache = make_cache(max_items=10, default_ttl=5)
        for i in range(4):
            cache.set(f"k{i}", i)
        clock.advance(6)
        cache.set("fresh", 1, ttl=100)

        report = MaintenanceScheduler(cache).run_once()

        assert report.expired == 4
        assert report.evicted == 0
        assert cache.keys() == ["fresh"]

    def test_uses_cleanup_interval(self, make_cache):
        scheduler = MaintenanceScheduler(make_cache(cleanup_interval=12))

        assert scheduler.interval == 12
        assert not scheduler.get_status()["running"]


class TestEventBus:
    """Tests for EventBus."""

    def test_order_and_filtering(self):
        bus = EventBus()
        seen = []
        bus.subscribe(lambda e: seen.append(("all", e.key)))
        bus.subscribe(lambda e: seen.append(("evict", e.key)), {CacheEventType.EVICT})

        bus.emit(CacheEventType.SET, "a")
        bus.emit(CacheEventType.EVICT, "b")

        assert seen == [("all", "a"), ("all", "b"), ("evict", "b")]

    def test_listener_errors_isolated(self):
        bus = EventBus()
        seen = []

        class Broken(CacheListener):
            def on_event(self, event):
                raise RuntimeError("listener bug")

        bus.subscribe(Broken())
        bus.subscribe(seen.append)

        bus.emit(CacheEventType.HIT, "k")

        assert len(seen) == 1

    def test_unsubscribe_callable(self):
        bus = EventBus()
        seen = []
        bus.subscribe(seen.append)

        assert bus.unsubscribe(seen.append)
        bus.emit(CacheEventType.HIT, "k")

        assert seen == []

    def test_bounded_history(self):
        bus = EventBus(history_size=3)
        for i in range(5):
            bus.emit(CacheEventType.SET, str(i))

        assert [e.key for e in bus.history()] == ["2", "3", "4"]
        assert [e.key for e in bus.history(limit=1)] == ["4"]
