"""ResilientCache LFU Policy - Least Frequently Used Eviction.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List

from resilient_cache.eviction.policy import EvictionPolicy

if TYPE_CHECKING:
    from resilient_cache.cache.entry import CacheEntry


class LFUPolicy(EvictionPolicy):
    """Least Frequently Used eviction policy.

    Evicts the entries with the lowest access count.

    Properties:
    - Good for frequency-based workloads
    - Handles popularity well
    - May keep old popular items too long

    Ties are broken by insertion order (oldest insert first).
    """

    name = "lfu"

    def order(self, entries: Iterable[CacheEntry]) -> List[CacheEntry]:
        return sorted(entries, key=lambda e: (e.access_count, e.sequence))


__all__ = ["LFUPolicy"]
