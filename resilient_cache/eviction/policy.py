"""ResilientCache Eviction Policy - Abstract Eviction Interface.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List

if TYPE_CHECKING:
    from resilient_cache.cache.entry import CacheEntry

logger = logging.getLogger(__name__)


@dataclass
class EvictionStats:
    """Eviction policy statistics.

    Attributes:
        selections: Number of victim selections performed
        victims: Total victims chosen
        bytes_selected: Total bytes freed by chosen victims
    """

    selections: int = 0
    victims: int = 0
    bytes_selected: int = 0


class EvictionPolicy(ABC):
    """Abstract base for eviction policies.

    A policy is a pure strategy: it orders candidate entries and picks
    victims until a space/item requirement is met. It never mutates the
    store; the caller removes the returned victims.

    Implementations:
    - LRU: Least Recently Used
    - LFU: Least Frequently Used
    - FIFO: First In First Out
    - Random: Random eviction

    Example:
        policy = LRUPolicy()
        victims = policy.select_victims(entries, required_bytes=4096)
    """

    name = "base"

    def __init__(self):
        self._stats = EvictionStats()

    @abstractmethod
    def order(self, entries: Iterable[CacheEntry]) -> List[CacheEntry]:
        """Order candidates, first to be evicted first.

        Args:
            entries: Candidate entries

        Returns:
            Ordered list
        """
        pass

    def select_victims(
        self,
        entries: Iterable[CacheEntry],
        required_bytes: int = 0,
        required_items: int = 0,
    ) -> List[CacheEntry]:
        """Choose entries to evict.

        Victims are accumulated in policy order until both the freed
        bytes and the freed item count satisfy the requirement.

        Args:
            entries: Candidate entries
            required_bytes: Bytes that must be freed
            required_items: Entries that must be removed

        Returns:
            Victims in eviction order (may fall short if candidates run out)
        """
        if required_bytes <= 0 and required_items <= 0:
            return []

        victims: List[CacheEntry] = []
        freed_bytes = 0

        for entry in self.order(entries):
            if freed_bytes >= required_bytes and len(victims) >= required_items:
                break
            victims.append(entry)
            freed_bytes += entry.size_bytes

        self._stats.selections += 1
        self._stats.victims += len(victims)
        self._stats.bytes_selected += freed_bytes

        if freed_bytes < required_bytes or len(victims) < required_items:
            logger.debug(
                f"{self.name}: requirement not met "
                f"(bytes {freed_bytes}/{required_bytes}, "
                f"items {len(victims)}/{required_items})"
            )

        return victims

    def get_stats(self) -> EvictionStats:
        """Get eviction statistics."""
        return self._stats

    def __repr__(self) -> str:
        return f"{type(self).__name__}(victims={self._stats.victims})"


__all__ = ["EvictionPolicy", "EvictionStats"]
