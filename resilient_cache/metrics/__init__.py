"""Metrics module - Statistics and periodic maintenance."""

from resilient_cache.metrics.collector import (
    StatisticsCollector,
    CacheStatistics,
    Timer,
)
from resilient_cache.metrics.scheduler import (
    PeriodicTask,
    MaintenanceScheduler,
    MaintenanceReport,
)

__all__ = [
    "StatisticsCollector",
    "CacheStatistics",
    "Timer",
    "PeriodicTask",
    "MaintenanceScheduler",
    "MaintenanceReport",
]
