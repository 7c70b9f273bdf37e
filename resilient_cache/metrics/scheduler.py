"""ResilientCache Scheduler - Periodic Maintenance Tasks.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a function on a daemon thread at a fixed interval.

    Exceptions raised by the function are logged and the loop keeps
    running. ``stop`` joins the thread, so no run starts after it returns.

    Example:
        task = PeriodicTask("sweep", 60.0, cache.sweep_expired)
        task.start()
        ...
        task.stop()
    """

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Any],
        run_immediately: bool = False,
    ):
        """Initialize task.

        Args:
            name: Task name (used for the thread name and logs)
            interval: Seconds between runs
            func: Work to run
            run_immediately: Run once as soon as the task starts
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self.name = name
        self.interval = interval
        self.func = func
        self.run_immediately = run_immediately
        self.runs = 0
        self.failures = 0
        self.last_error: Optional[str] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> bool:
        """Run the function now.

        Returns:
            True if it completed without raising
        """
        try:
            self.func()
            return True
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.error(f"Periodic task {self.name} failed: {e}")
            return False
        finally:
            self.runs += 1

    def _loop(self) -> None:
        if self.run_immediately and not self._stop_event.is_set():
            self.run_once()
        while not self._stop_event.wait(self.interval):
            self.run_once()

    def start(self) -> None:
        """Start the task thread."""
        if self.running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name=self.name)
        self._thread.start()
        logger.debug(f"Periodic task {self.name} started (interval={self.interval}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the task and wait for an in-flight run to finish."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.debug(f"Periodic task {self.name} stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def __repr__(self) -> str:
        return f"PeriodicTask(name={self.name!r}, interval={self.interval}, runs={self.runs})"


@dataclass
class MaintenanceReport:
    """Outcome of one maintenance pass."""

    expired: int = 0
    evicted: int = 0
    compacted: int = 0


class MaintenanceScheduler:
    """Periodic sweep, limit enforcement and compaction for a cache.

    Each pass removes expired entries, then evicts down to the target
    utilization, then compacts the persistent tier if the cache has one.

    Example:
        scheduler = MaintenanceScheduler(cache)
        scheduler.start()
    """

    def __init__(self, cache: Any, interval: Optional[float] = None):
        """Initialize scheduler.

        Args:
            cache: Cache exposing sweep_expired, enforce_limits and compact_persistent
            interval: Seconds between passes (defaults to the cache cleanup_interval)
        """
        self.cache = cache
        self.interval = interval if interval is not None else cache.config.cleanup_interval
        self.reports: List[MaintenanceReport] = []
        self._task = PeriodicTask(
            f"cache-{cache.config.name}-maintenance",
            self.interval,
            self.run_once,
        )

    def run_once(self) -> MaintenanceReport:
        """Run one maintenance pass now."""
        report = MaintenanceReport()
        report.expired = self.cache.sweep_expired()
        report.evicted = self.cache.enforce_limits()
        report.compacted = self.cache.compact_persistent()

        if report.expired or report.evicted or report.compacted:
            logger.debug(
                f"Maintenance for {self.cache.config.name}: expired={report.expired} "
                f"evicted={report.evicted} compacted={report.compacted}"
            )
        self.reports = (self.reports + [report])[-10:]
        return report

    def start(self) -> None:
        self._task.start()
        logger.info(f"Maintenance scheduler started (interval={self.interval}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._task.stop(timeout)

    @property
    def running(self) -> bool:
        return self._task.running

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status."""
        return {
            "running": self.running,
            "interval": self.interval,
            "runs": self._task.runs,
            "failures": self._task.failures,
            "last_error": self._task.last_error,
        }


__all__ = ["PeriodicTask", "MaintenanceScheduler", "MaintenanceReport"]
