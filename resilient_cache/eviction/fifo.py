"""ResilientCache FIFO Policy - First In First Out Eviction.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List

from resilient_cache.eviction.policy import EvictionPolicy

if TYPE_CHECKING:
    from resilient_cache.cache.entry import CacheEntry


class FIFOPolicy(EvictionPolicy):
    """Evicts the oldest inserted entries first, ignoring reads."""

    name = "fifo"

    def order(self, entries: Iterable[CacheEntry]) -> List[CacheEntry]:
        return sorted(entries, key=lambda e: (e.created_at, e.sequence))


__all__ = ["FIFOPolicy"]
