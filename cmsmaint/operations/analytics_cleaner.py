"""Search analytics retention cleanup

Deletes analytics rows older than the retention window. The candidate
count is computed before anything is deleted, and the caller decides
(force flag or confirmation) whether deletion proceeds.
"""
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from cmsmaint.config import LockConfig
from cmsmaint.errors import ValidationError
from cmsmaint.ingestion.analytics_repository import AnalyticsRepository, format_timestamp
from cmsmaint.services.advisory_lock import AdvisoryLock

logger = logging.getLogger(__name__)

CLEANUP_LOCK = "search:analytics-cleanup"


@dataclass
class AnalyticsCleanupResult:
    """Result of analytics retention cleanup"""
    retention_days: int
    cutoff: str
    candidates: int
    deleted: int
    cancelled: bool
    message: str


class AnalyticsCleaner:
    """Retention cleanup for the search_analytics table"""

    def __init__(self, conn: sqlite3.Connection, repository: AnalyticsRepository = None,
                 lock_config: LockConfig = None):
        self.conn = conn
        self.repository = repository or AnalyticsRepository(conn)
        self.lock_config = lock_config or LockConfig()

    def clean(self, retention_days: int, force: bool = False,
              confirm: Optional[Callable[[str], bool]] = None,
              announce: Optional[Callable[[str], None]] = None) -> AnalyticsCleanupResult:
        """Delete records older than retention_days

        Args:
            retention_days: Window to keep, at least 1
            force: Skip confirmation
            confirm: Asked with a prompt when not forced; declining cancels
            announce: Receives the candidate summary before any deletion

        Raises:
            ValidationError: If retention_days < 1
            LockUnavailableError: If another cleanup is running
        """
        if retention_days < 1:
            raise ValidationError(f"Days must be at least 1, got {retention_days}")

        cutoff = self.repository.cutoff_for(retention_days)
        candidates = self.repository.count_older_than(cutoff)
        if announce:
            announce(
                f"Found {candidates} analytics records older than {retention_days} days "
                f"(before {format_timestamp(cutoff)})"
            )

        if candidates == 0:
            return self._result(retention_days, cutoff, 0, 0, False,
                                "No old analytics records to clean up")

        if not force:
            prompt = f"Delete {candidates} analytics records?"
            if confirm is None or not confirm(prompt):
                return self._result(retention_days, cutoff, candidates, 0, True,
                                    "Cleanup cancelled")

        deleted = self._delete(cutoff)
        logger.info(f"Deleted {deleted} analytics records older than {retention_days} days")
        return self._result(retention_days, cutoff, candidates, deleted, False,
                            f"Deleted {deleted} old analytics records")

    def _delete(self, cutoff: datetime) -> int:
        lock = AdvisoryLock(
            self.conn, CLEANUP_LOCK,
            ttl_seconds=self.lock_config.ttl_seconds,
            enabled=self.lock_config.enabled,
        )
        with lock:
            return self.repository.delete_older_than(cutoff)

    def _result(self, days: int, cutoff: datetime, candidates: int, deleted: int,
                cancelled: bool, message: str) -> AnalyticsCleanupResult:
        return AnalyticsCleanupResult(
            retention_days=days,
            cutoff=format_timestamp(cutoff),
            candidates=candidates,
            deleted=deleted,
            cancelled=cancelled,
            message=message,
        )
