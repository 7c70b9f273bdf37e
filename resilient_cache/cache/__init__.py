"""Cache module - Core caching functionality.

This module provides the tiered cache, its entries, strategies and warmup.
"""

from resilient_cache.cache.entry import CacheEntry
from resilient_cache.cache.strategy import (
    CacheStrategy,
    StrategyRegistry,
)
from resilient_cache.cache.warmup import (
    CacheWarmer,
    WarmupConfig,
    WarmupStats,
)
from resilient_cache.cache.cache import (
    Cache,
    CacheConfig,
    WriteMode,
)

__all__ = [
    "CacheEntry",
    "CacheStrategy",
    "StrategyRegistry",
    "CacheWarmer",
    "WarmupConfig",
    "WarmupStats",
    "Cache",
    "CacheConfig",
    "WriteMode",
]
