"""Eviction module - Cache eviction policies."""

from typing import Dict, Type

from resilient_cache.eviction.policy import (
    EvictionPolicy,
    EvictionStats,
)
from resilient_cache.eviction.lru import LRUPolicy
from resilient_cache.eviction.lfu import LFUPolicy
from resilient_cache.eviction.fifo import FIFOPolicy
from resilient_cache.eviction.randomized import RandomPolicy

POLICIES: Dict[str, Type[EvictionPolicy]] = {
    "lru": LRUPolicy,
    "lfu": LFUPolicy,
    "fifo": FIFOPolicy,
    "random": RandomPolicy,
}


def create_policy(name: str) -> EvictionPolicy:
    """Create an eviction policy by config name.

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return POLICIES[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown eviction policy {name!r}; expected one of {sorted(POLICIES)}"
        ) from None


__all__ = [
    "EvictionPolicy",
    "EvictionStats",
    "LRUPolicy",
    "LFUPolicy",
    "FIFOPolicy",
    "RandomPolicy",
    "POLICIES",
    "create_policy",
]
