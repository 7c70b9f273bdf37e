"""ResilientCache Strategy - Per-Key Caching Policies.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import fnmatch
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Set, Tuple, Union

logger = logging.getLogger(__name__)

TTLSpec = Union[None, float, Callable[[Any, Optional[Dict[str, Any]]], Optional[float]]]
KeyPattern = Union[str, Pattern[str]]


@dataclass
class CacheStrategy:
    """Caching policy applied to keys matching a pattern.

    Attributes:
        name: Strategy name (also usable as an explicit selector on set)
        ttl: Fixed TTL in seconds, or callable(value, context) computing one
        tags: Tags added to every entry stored under this strategy
        condition: callable(key, value, context); False skips the write
        compress: Force compression on (True) or off (False)
        metadata: Merged into entry metadata
        dependencies: Keys whose change invalidates entries stored here
        on_invalidate: callable(key, value) run when a dependency invalidates an entry
    """

    name: str
    ttl: TTLSpec = None
    tags: Set[str] = field(default_factory=set)
    condition: Optional[Callable[[str, Any, Optional[Dict[str, Any]]], bool]] = None
    compress: Optional[bool] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    dependencies: List[str] = field(default_factory=list)
    on_invalidate: Optional[Callable[[str, Any], None]] = None

    def __post_init__(self):
        self.tags = set(self.tags)
        self.dependencies = list(self.dependencies)

    def resolve_ttl(self, value: Any, context: Optional[Dict[str, Any]] = None) -> Optional[float]:
        """Compute the TTL for a value.

        Returns:
            TTL in seconds, or None when the strategy does not set one
        """
        if callable(self.ttl):
            return self.ttl(value, context)
        return self.ttl

    def accepts(self, key: str, value: Any, context: Optional[Dict[str, Any]] = None) -> bool:
        """Check the write condition."""
        if self.condition is None:
            return True
        return bool(self.condition(key, value, context))


class StrategyRegistry:
    """Ordered mapping of key patterns to strategies.

    Patterns are glob strings (``session:*``), literal keys or compiled
    regular expressions (full match). ``match`` returns the first
    registered strategy whose pattern matches; re-registering a pattern
    replaces its strategy in place.

    Example:
        registry = StrategyRegistry()
        registry.register("session:*", CacheStrategy("session", ttl=1800))
        registry.match("session:abc").name  # "session"
    """

    def __init__(self):
        self._entries: List[Tuple[KeyPattern, CacheStrategy]] = []
        self._lock = threading.RLock()

    @staticmethod
    def _matches(pattern: KeyPattern, key: str) -> bool:
        if isinstance(pattern, str):
            return pattern == key or fnmatch.fnmatchcase(key, pattern)
        return pattern.fullmatch(key) is not None

    @staticmethod
    def _pattern_id(pattern: KeyPattern) -> Any:
        if isinstance(pattern, str):
            return pattern
        return ("re", pattern.pattern, pattern.flags)

    def register(self, pattern: KeyPattern, strategy: CacheStrategy) -> None:
        """Register a strategy for a key pattern.

        Args:
            pattern: Glob string, literal key or compiled regex
            strategy: Strategy to apply
        """
        if not isinstance(pattern, (str, re.Pattern)):
            raise TypeError(f"Unsupported pattern type: {type(pattern).__name__}")

        pattern_id = self._pattern_id(pattern)
        with self._lock:
            for i, (existing, _) in enumerate(self._entries):
                if self._pattern_id(existing) == pattern_id:
                    self._entries[i] = (pattern, strategy)
                    break
            else:
                self._entries.append((pattern, strategy))

        logger.info(f"Registered strategy {strategy.name!r} for {pattern_id!r}")

    def unregister(self, pattern: KeyPattern) -> bool:
        """Remove the strategy registered for a pattern.

        Returns:
            True if one was removed
        """
        pattern_id = self._pattern_id(pattern)
        with self._lock:
            for i, (existing, _) in enumerate(self._entries):
                if self._pattern_id(existing) == pattern_id:
                    del self._entries[i]
                    return True
        return False

    def match(self, key: str) -> Optional[CacheStrategy]:
        """Find the first strategy whose pattern matches a key."""
        with self._lock:
            for pattern, strategy in self._entries:
                if self._matches(pattern, key):
                    return strategy
        return None

    def get(self, name: str) -> Optional[CacheStrategy]:
        """Look a strategy up by name."""
        with self._lock:
            for _, strategy in self._entries:
                if strategy.name == name:
                    return strategy
        return None

    def strategies(self) -> List[Tuple[KeyPattern, CacheStrategy]]:
        """Get registered (pattern, strategy) pairs in match order."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"StrategyRegistry(strategies={len(self._entries)})"


__all__ = ["CacheStrategy", "StrategyRegistry"]
