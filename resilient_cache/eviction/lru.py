"""ResilientCache LRU Policy - Least Recently Used Eviction.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List

from resilient_cache.eviction.policy import EvictionPolicy

if TYPE_CHECKING:
    from resilient_cache.cache.entry import CacheEntry


class LRUPolicy(EvictionPolicy):
    """Least Recently Used eviction policy.

    Evicts the entries that have not been read for the longest time.
    Entries touched within the same clock tick are ordered by the
    store's access sequence, so recency stays exact under a coarse
    or frozen clock.

    Example:
        policy = LRUPolicy()
        victims = policy.select_victims(entries, required_items=1)
    """

    name = "lru"

    def order(self, entries: Iterable[CacheEntry]) -> List[CacheEntry]:
        return sorted(entries, key=lambda e: (e.accessed_at, e.access_sequence))


__all__ = ["LRUPolicy"]
