"""
Exception hierarchy for maintenance operations.

Validation errors end the current command with a failure exit code.
Backend errors are caught per operation by the callers that can degrade.
"""
from typing import Dict


class MaintenanceError(Exception):
    """Base class for maintenance failures"""
    pass


class ValidationError(MaintenanceError):
    """Invalid argument: retention days, batch size, unknown action/component/tag"""
    pass


class CacheStoreError(MaintenanceError):
    """Cache backend failed or is unreachable"""
    pass


class LockUnavailableError(MaintenanceError):
    """Another process holds the advisory lock"""

    def __init__(self, name: str, owner: str = None):
        self.name = name
        self.owner = owner
        holder = f" (held by {owner})" if owner else ""
        super().__init__(f"Lock '{name}' is already held{holder}")


class ReindexError(MaintenanceError):
    """One or more indexable types failed during a full reindex

    Batches written before the failure stay committed.
    """

    def __init__(self, total_indexed: int, failures: Dict[str, str]):
        self.total_indexed = total_indexed
        self.failures = failures
        detail = "; ".join(f"{name}: {msg}" for name, msg in failures.items())
        super().__init__(f"Reindex failed for {len(failures)} type(s): {detail}")
