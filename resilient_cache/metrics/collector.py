"""ResilientCache Statistics Collector - Cache Statistics and Export.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

COUNTERS = (
    "hits",
    "misses",
    "sets",
    "deletes",
    "evictions",
    "expirations",
    "errors",
    "remote_hits",
    "persistent_hits",
    "offline_enqueued",
    "offline_replayed",
    "offline_dropped",
)

GAUGES = ("item_count", "size_bytes", "offline_queue_size")


@dataclass
class CacheStatistics:
    """Snapshot of cache statistics.

    Counters only grow until ``reset``; gauges reflect current state.

    Attributes:
        hits: Lookups served from memory
        misses: Lookups memory could not serve
        sets: Successful writes
        deletes: Successful deletes
        evictions: Entries removed to respect limits
        expirations: Entries removed after their TTL
        errors: Degraded tier operations
        remote_hits: Misses resolved by the distributed tier
        persistent_hits: Misses resolved by the persistent tier
        offline_enqueued: Writes queued for replay
        offline_replayed: Queued writes replayed
        offline_dropped: Queued writes dropped
        item_count: Current entries
        size_bytes: Current size
        offline_queue_size: Writes awaiting replay
        average_access_time_ms: Mean lookup latency
        p99_access_time_ms: P99 lookup latency
        ops_per_second: Recent throughput
        top_keys: Most accessed keys with access counts
    """

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    expirations: int = 0
    errors: int = 0
    remote_hits: int = 0
    persistent_hits: int = 0
    offline_enqueued: int = 0
    offline_replayed: int = 0
    offline_dropped: int = 0
    item_count: int = 0
    size_bytes: int = 0
    offline_queue_size: int = 0
    average_access_time_ms: float = 0.0
    p99_access_time_ms: float = 0.0
    ops_per_second: float = 0.0
    top_keys: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def total_lookups(self) -> int:
        return self.hits + self.misses

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary.

        Returns:
            Statistics dictionary
        """
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["top_keys"] = list(self.top_keys)
        data["hit_rate"] = self.hit_rate
        return data


class StatisticsCollector:
    """Collects and aggregates cache statistics.

    Features:
    - Thread-safe counters and gauges
    - Bounded latency window (average and P99)
    - Throughput calculation
    - Prometheus export
    - Pluggable exporters

    Example:
        collector = StatisticsCollector()
        collector.record_hit()
        collector.record_latency(5.2)

        stats = collector.get_statistics()
        print(f"Hit rate: {stats.hit_rate:.2%}")
    """

    def __init__(
        self,
        window_seconds: int = 60,
        latency_window: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize collector.

        Args:
            window_seconds: Window for rate calculations
            latency_window: Latency samples retained
            clock: Time source for rate calculations
        """
        self.window_seconds = window_seconds
        self._clock = clock

        self._counters: Dict[str, int] = dict.fromkeys(COUNTERS, 0)
        self._gauges: Dict[str, int] = dict.fromkeys(GAUGES, 0)

        self._ops_window: Deque[float] = deque()
        self._latencies: Deque[float] = deque(maxlen=latency_window)

        self._lock = threading.RLock()
        self._exporters: List[Callable[[CacheStatistics], None]] = []

    def increment(self, counter: str, amount: int = 1) -> None:
        """Increase a named counter.

        Raises:
            KeyError: If the counter is unknown
        """
        with self._lock:
            if counter not in self._counters:
                raise KeyError(f"Unknown counter: {counter}")
            self._counters[counter] += amount

    def record_hit(self) -> None:
        """Record a cache hit."""
        with self._lock:
            self._counters["hits"] += 1
            self._record_op()

    def record_miss(self) -> None:
        """Record a cache miss."""
        with self._lock:
            self._counters["misses"] += 1
            self._record_op()

    def record_set(self) -> None:
        with self._lock:
            self._counters["sets"] += 1
            self._record_op()

    def record_delete(self) -> None:
        with self._lock:
            self._counters["deletes"] += 1
            self._record_op()

    def record_eviction(self, count: int = 1) -> None:
        self.increment("evictions", count)

    def record_expiration(self, count: int = 1) -> None:
        self.increment("expirations", count)

    def record_error(self) -> None:
        self.increment("errors")

    def record_latency(self, ms: float) -> None:
        """Record lookup latency.

        Args:
            ms: Latency in milliseconds
        """
        with self._lock:
            self._latencies.append(ms)

    def set_gauge(self, gauge: str, value: int) -> None:
        """Set a named gauge.

        Raises:
            KeyError: If the gauge is unknown
        """
        with self._lock:
            if gauge not in self._gauges:
                raise KeyError(f"Unknown gauge: {gauge}")
            self._gauges[gauge] = value

    def _record_op(self) -> None:
        """Record operation for rate calculation."""
        now = self._clock()
        self._ops_window.append(now)
        self._trim_window(now)

    def _trim_window(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._ops_window and self._ops_window[0] < cutoff:
            self._ops_window.popleft()

    def _calculate_ops_per_second(self) -> float:
        if not self._ops_window:
            return 0.0

        now = self._clock()
        self._trim_window(now)

        if not self._ops_window:
            return 0.0

        elapsed = now - self._ops_window[0]
        if elapsed <= 0:
            return 0.0

        return len(self._ops_window) / elapsed

    def _calculate_latency_avg(self) -> float:
        if not self._latencies:
            return 0.0
        return sum(self._latencies) / len(self._latencies)

    def _calculate_latency_p99(self) -> float:
        if not self._latencies:
            return 0.0

        sorted_latencies = sorted(self._latencies)
        idx = int(len(sorted_latencies) * 0.99)
        return sorted_latencies[min(idx, len(sorted_latencies) - 1)]

    def get_statistics(
        self,
        top_keys: Optional[List[Tuple[str, int]]] = None,
    ) -> CacheStatistics:
        """Get a statistics snapshot.

        Args:
            top_keys: Most accessed keys, supplied by the cache

        Returns:
            CacheStatistics instance
        """
        with self._lock:
            return CacheStatistics(
                **self._counters,
                **self._gauges,
                average_access_time_ms=self._calculate_latency_avg(),
                p99_access_time_ms=self._calculate_latency_p99(),
                ops_per_second=self._calculate_ops_per_second(),
                top_keys=list(top_keys or []),
            )

    def reset(self) -> None:
        """Reset counters and latency samples.

        Gauges describe current state and are left as they are.
        """
        with self._lock:
            self._counters = dict.fromkeys(COUNTERS, 0)
            self._ops_window.clear()
            self._latencies.clear()

    def add_exporter(self, exporter: Callable[[CacheStatistics], None]) -> None:
        """Add statistics exporter.

        Args:
            exporter: Callback to receive statistics
        """
        self._exporters.append(exporter)

    def export(self, top_keys: Optional[List[Tuple[str, int]]] = None) -> None:
        """Export statistics to all exporters."""
        stats = self.get_statistics(top_keys)
        for exporter in self._exporters:
            try:
                exporter(stats)
            except Exception as e:
                logger.error(f"Exporter error: {e}")

    def to_prometheus(self, prefix: str = "cache") -> str:
        """Export statistics in Prometheus text format.

        Args:
            prefix: Metric name prefix

        Returns:
            Prometheus-formatted metrics
        """
        stats = self.get_statistics()
        lines: List[str] = []

        def metric(name: str, kind: str, help_text: str, value: str) -> None:
            lines.append(f"# HELP {prefix}_{name} {help_text}")
            lines.append(f"# TYPE {prefix}_{name} {kind}")
            lines.append(f"{prefix}_{name} {value}")

        for counter in COUNTERS:
            metric(
                f"{counter}_total",
                "counter",
                f"Total {counter.replace('_', ' ')}",
                str(getattr(stats, counter)),
            )
        for gauge in GAUGES:
            metric(gauge, "gauge", f"Current {gauge.replace('_', ' ')}", str(getattr(stats, gauge)))

        metric("hit_rate", "gauge", "Cache hit rate", f"{stats.hit_rate:.4f}")
        metric(
            "access_time_avg_ms",
            "gauge",
            "Average access time",
            f"{stats.average_access_time_ms:.2f}",
        )
        metric("access_time_p99_ms", "gauge", "P99 access time", f"{stats.p99_access_time_ms:.2f}")
        metric("ops_per_second", "gauge", "Operations per second", f"{stats.ops_per_second:.2f}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        stats = self.get_statistics()
        return f"StatisticsCollector(hits={stats.hits}, hit_rate={stats.hit_rate:.2%})"


class Timer:
    """Context manager for timing operations."""

    def __init__(self, collector: StatisticsCollector):
        self._collector = collector
        self._start: float = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        elapsed_ms = (time.perf_counter() - self._start) * 1000
        self._collector.record_latency(elapsed_ms)


__all__ = [
    "StatisticsCollector",
    "CacheStatistics",
    "Timer",
    "COUNTERS",
    "GAUGES",
]
