"""ResilientCache Random Policy - Random Eviction.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import random
import threading
from typing import TYPE_CHECKING, Iterable, List, Optional

from resilient_cache.eviction.policy import EvictionPolicy

if TYPE_CHECKING:
    from resilient_cache.cache.entry import CacheEntry


class RandomPolicy(EvictionPolicy):
    """Random eviction policy.

    Candidates are first put in insertion order and then shuffled, so a
    seeded policy produces the same victims for the same store contents.
    """

    name = "random"

    def __init__(self, seed: Optional[int] = None):
        """Initialize random policy.

        Args:
            seed: Seed for reproducible shuffles
        """
        super().__init__()
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def order(self, entries: Iterable[CacheEntry]) -> List[CacheEntry]:
        ordered = sorted(entries, key=lambda e: e.sequence)
        with self._lock:
            self._random.shuffle(ordered)
        return ordered


__all__ = ["RandomPolicy"]
