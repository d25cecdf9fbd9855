# Copyright (c) 2024 CMS Maintenance Contributors
# SPDX-License-Identifier: MIT

"""Search maintenance actions

Four independent actions selected by MaintenanceAction:
- cleanup: retention-window deletion of search analytics
- cache-clear: best-effort search cache invalidation
- stats: read-only index and analytics statistics
- optimize: orphan removal, statistics refresh hooks, then cache-clear

Each action returns a MaintenanceRun. Nothing is shared between actions.
"""
import logging
import sqlite3
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from cmsmaint.config import SearchConfig
from cmsmaint.errors import CacheStoreError, MaintenanceError, ValidationError
from cmsmaint.operations.analytics_cleaner import AnalyticsCleaner
from cmsmaint.operations.index_orphan_cleaner import IndexOrphanCleaner
from cmsmaint.operations.search_cache_clearer import SearchCacheClearer
from cmsmaint.operations.stats_collector import StatsCollector

logger = logging.getLogger(__name__)


class MaintenanceAction(Enum):
    CLEANUP = "cleanup"
    CACHE_CLEAR = "cache-clear"
    STATS = "stats"
    OPTIMIZE = "optimize"

    @classmethod
    def parse(cls, value: str) -> 'MaintenanceAction':
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(action.value for action in cls)
            raise ValidationError(f"Invalid action: {value}. Valid actions: {valid}") from None


@dataclass
class MaintenanceRun:
    """Outcome of one maintenance action"""
    action: MaintenanceAction
    success: bool
    message: str
    elapsed_seconds: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)


class MaintenanceOrchestrator:
    """Dispatches maintenance actions to their operations

    Example:
        orchestrator = OperationsFactory.create_maintenance_orchestrator(conn, config, cache)
        run = orchestrator.run(MaintenanceAction.STATS)
    """

    def __init__(self, config: SearchConfig, analytics_cleaner: AnalyticsCleaner,
                 cache_clearer: SearchCacheClearer, stats_collector: StatsCollector,
                 orphan_cleaner: IndexOrphanCleaner,
                 refresh_hooks: Optional[List[Callable[[], None]]] = None,
                 output: Callable[[str], None] = None,
                 time_source: Callable[[], float] = None):
        self.config = config
        self.analytics_cleaner = analytics_cleaner
        self.cache_clearer = cache_clearer
        self.stats_collector = stats_collector
        self.orphan_cleaner = orphan_cleaner
        self.refresh_hooks = list(refresh_hooks or [])
        self.output = output or (lambda message: None)
        self.time_source = time_source or time.time

        self._handlers = {
            MaintenanceAction.CLEANUP: self._cleanup,
            MaintenanceAction.CACHE_CLEAR: self._cache_clear,
            MaintenanceAction.STATS: self._stats,
            MaintenanceAction.OPTIMIZE: self._optimize,
        }
        missing = set(MaintenanceAction) - set(self._handlers)
        if missing:
            names = ", ".join(sorted(action.value for action in missing))
            raise MaintenanceError(f"No handler for maintenance action(s): {names}")

    def run(self, action: MaintenanceAction, days: Optional[int] = None, force: bool = False,
            confirm: Optional[Callable[[str], bool]] = None) -> MaintenanceRun:
        """Run one action and time it

        A database or cache backend error ends the action as a failed run.

        Raises:
            ValidationError: Bad arguments for the action
            LockUnavailableError: cleanup while another cleanup holds the lock
        """
        start = self.time_source()
        handler = self._handlers[action]
        try:
            if action is MaintenanceAction.CLEANUP:
                run = handler(days=days, force=force, confirm=confirm)
            else:
                run = handler()
        except (sqlite3.Error, CacheStoreError) as e:
            logger.error(f"Maintenance action '{action.value}' failed: {e}")
            run = MaintenanceRun(action, False, f"Maintenance failed: {e}",
                                 details={'error': str(e)})
        run.elapsed_seconds = round(self.time_source() - start, 2)
        return run

    def add_refresh_hook(self, hook: Callable[[], None]) -> None:
        self.refresh_hooks.append(hook)

    def _cleanup(self, days: Optional[int], force: bool,
                 confirm: Optional[Callable[[str], bool]]) -> MaintenanceRun:
        if not self.config.analytics_enabled:
            return MaintenanceRun(
                MaintenanceAction.CLEANUP, False,
                "Search analytics is disabled; nothing to clean up",
            )
        if days is None:
            days = self.config.analytics.retention_days

        result = self.analytics_cleaner.clean(
            days, force=force, confirm=confirm, announce=self.output
        )
        return MaintenanceRun(
            MaintenanceAction.CLEANUP, True, result.message, details=asdict(result)
        )

    def _cache_clear(self) -> MaintenanceRun:
        result = self.cache_clearer.clear()
        return MaintenanceRun(
            MaintenanceAction.CACHE_CLEAR, True, result.message, details=asdict(result)
        )

    def _stats(self) -> MaintenanceRun:
        stats = self.stats_collector.collect()
        return MaintenanceRun(
            MaintenanceAction.STATS, True,
            f"{stats.total_indexed} entries indexed", details=asdict(stats),
        )

    def _optimize(self) -> MaintenanceRun:
        orphans = self.orphan_cleaner.clean()

        refreshed = 0
        refresh_errors = []
        for hook in self.refresh_hooks:
            try:
                hook()
                refreshed += 1
            except Exception as e:
                logger.error(f"Statistics refresh hook failed: {e}")
                refresh_errors.append(str(e))

        cache = self._cache_clear()

        details = {
            'orphans': asdict(orphans),
            'statistics_refresh': {'hooks_run': refreshed, 'errors': refresh_errors},
            'cache_clear': cache.details,
        }
        success = not refresh_errors and cache.success
        message = (
            f"{orphans.message}; statistics refreshed ({refreshed} hooks); {cache.message}"
        )
        return MaintenanceRun(MaintenanceAction.OPTIMIZE, success, message, details=details)
