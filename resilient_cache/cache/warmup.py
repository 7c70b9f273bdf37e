"""ResilientCache Warmup - Bulk Cache Population.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from resilient_cache.cache.cache import Cache

logger = logging.getLogger(__name__)


@dataclass
class WarmupConfig:
    """Configuration for cache warmup.

    Attributes:
        batch_size: Keys to warm per batch
        max_workers: Parallel workers
        delay_between_batches: Seconds between batches
        max_retries: Loader retries per key
        retry_delay: Base delay between loader retries
    """

    batch_size: int = 100
    max_workers: int = 4
    delay_between_batches: float = 0.0
    max_retries: int = 2
    retry_delay: float = 0.1


@dataclass
class WarmupStats:
    """Warmup operation statistics."""

    total_keys: int = 0
    warmed: int = 0
    failed: int = 0
    skipped: int = 0
    failed_keys: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Get success rate."""
        total = self.warmed + self.failed
        return self.warmed / total if total > 0 else 0.0


@dataclass
class WarmupItem:
    """A key to warm along with its set options."""

    key: str
    value: Any = None
    options: Dict[str, Any] = field(default_factory=dict)


class WarmupSource(ABC):
    """Abstract source for warmup keys."""

    @abstractmethod
    def get_keys(self) -> Iterable[str]:
        pass

    @abstractmethod
    def get_value(self, key: str) -> Any:
        """Load the value for a key; may raise."""
        pass

    def get_options(self, key: str) -> Dict[str, Any]:
        """Per-key set options (ttl, tags, strategy, ...)."""
        return {}


class ListSource(WarmupSource):
    """Warmup from prepared items.

    Accepts a key -> value mapping, ``(key, value)`` pairs or dicts
    carrying ``key``, ``value`` and any ``Cache.set`` options.
    """

    def __init__(self, data: Any):
        self._items: Dict[str, WarmupItem] = {}

        pairs = data.items() if isinstance(data, dict) else data
        for item in pairs:
            if isinstance(item, dict):
                options = dict(item)
                key = options.pop("key")
                value = options.pop("value")
            else:
                key, value = item
                options = {}
            self._items[key] = WarmupItem(key, value, options)

    def get_keys(self) -> Iterable[str]:
        return list(self._items)

    def get_value(self, key: str) -> Any:
        return self._items[key].value

    def get_options(self, key: str) -> Dict[str, Any]:
        return dict(self._items[key].options)


class CallableSource(WarmupSource):
    """Warmup using a loader called for each key."""

    def __init__(self, keys: Iterable[str], loader: Callable[[str], Any]):
        self._keys = list(keys)
        self._loader = loader

    def get_keys(self) -> Iterable[str]:
        return self._keys

    def get_value(self, key: str) -> Any:
        return self._loader(key)


class CacheWarmer:
    """Populates a cache from a warmup source.

    Loader calls run on a thread pool in batches; each key is written
    with ``Cache.set`` so strategies, limits and secondary tiers apply
    exactly as for normal writes.

    Example:
        warmer = CacheWarmer(cache)
        warmer.warm_from_loader(["user:1", "user:2"], fetch_user)
    """

    def __init__(self, cache: "Cache", config: Optional[WarmupConfig] = None):
        """Initialize warmer.

        Args:
            cache: Cache to warm
            config: Warmup configuration
        """
        self.cache = cache
        self.config = config or WarmupConfig()
        self._stats = WarmupStats()
        self._lock = threading.Lock()

    def warm(
        self,
        source: WarmupSource,
        ttl: Optional[float] = None,
        skip_existing: bool = False,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> WarmupStats:
        """Warm cache from source.

        Args:
            source: Warmup source
            ttl: TTL for entries without their own
            skip_existing: Skip keys already held in memory
            progress_callback: Called with (completed, total) after each batch

        Returns:
            Warmup statistics
        """
        keys = list(source.get_keys())
        stats = WarmupStats(total_keys=len(keys), started_at=datetime.now())
        self._stats = stats
        started = time.monotonic()

        logger.info(f"Starting warmup of {len(keys)} keys into {self.cache.config.name}")

        batches = [
            keys[i:i + self.config.batch_size]
            for i in range(0, len(keys), self.config.batch_size)
        ]
        completed = 0

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            for index, batch in enumerate(batches):
                futures = {}

                for key in batch:
                    if skip_existing and self.cache.contains_local(key):
                        with self._lock:
                            stats.skipped += 1
                        completed += 1
                        continue
                    futures[executor.submit(self._warm_key, source, key, ttl)] = key

                for future in as_completed(futures):
                    key = futures[future]
                    try:
                        ok = future.result()
                    except Exception as e:
                        logger.error(f"Warmup failed for {key}: {e}")
                        ok = False
                    with self._lock:
                        if ok:
                            stats.warmed += 1
                        else:
                            stats.failed += 1
                            stats.failed_keys.append(key)
                    completed += 1

                if progress_callback:
                    progress_callback(completed, len(keys))

                if self.config.delay_between_batches > 0 and index < len(batches) - 1:
                    time.sleep(self.config.delay_between_batches)

        stats.completed_at = datetime.now()
        stats.duration_seconds = time.monotonic() - started

        logger.info(
            f"Warmup completed: {stats.warmed} warmed, "
            f"{stats.failed} failed, {stats.skipped} skipped"
        )
        return stats

    def _warm_key(self, source: WarmupSource, key: str, ttl: Optional[float]) -> bool:
        """Load and store a single key.

        Returns:
            True if the key was stored
        """
        attempt = 0
        while True:
            try:
                value = source.get_value(key)
                break
            except Exception as e:
                attempt += 1
                if attempt > self.config.max_retries:
                    logger.error(f"Failed to warm {key} after {attempt} attempts: {e}")
                    return False
                time.sleep(self.config.retry_delay * attempt)

        options = source.get_options(key)
        if ttl is not None:
            options.setdefault("ttl", ttl)
        return self.cache.set(key, value, **options)

    def warm_from_items(
        self,
        items: Any,
        ttl: Optional[float] = None,
        skip_existing: bool = False,
    ) -> WarmupStats:
        """Warm from a mapping, pairs or option dicts."""
        return self.warm(ListSource(items), ttl=ttl, skip_existing=skip_existing)

    def warm_from_loader(
        self,
        keys: Iterable[str],
        loader: Callable[[str], Any],
        ttl: Optional[float] = None,
        skip_existing: bool = True,
    ) -> WarmupStats:
        """Warm using a loader function.

        Args:
            keys: Keys to warm
            loader: Function to load values
            ttl: TTL for entries
            skip_existing: Skip keys already held in memory

        Returns:
            Warmup statistics
        """
        return self.warm(CallableSource(keys, loader), ttl=ttl, skip_existing=skip_existing)

    def get_stats(self) -> WarmupStats:
        return self._stats


__all__ = [
    "CacheWarmer",
    "WarmupConfig",
    "WarmupStats",
    "WarmupSource",
    "ListSource",
    "CallableSource",
]
