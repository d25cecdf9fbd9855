"""Advisory lease lock stored in the maintenance_locks table

Keeps two reindex or cleanup runs from interleaving writes. A lease
expires after ttl_seconds so a crashed process cannot hold it forever.

Example:
    with AdvisoryLock(conn, "search:reindex", ttl_seconds=3600):
        service.reindex_all()
"""
import logging
import os
import socket
import sqlite3
import time
import uuid
from typing import Callable, Optional

from cmsmaint.errors import LockUnavailableError

logger = logging.getLogger(__name__)


def default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class AdvisoryLock:
    """Named lease lock with TTL expiry"""

    def __init__(self, conn: sqlite3.Connection, name: str, ttl_seconds: int = 3600,
                 enabled: bool = True, owner: str = None,
                 time_source: Callable[[], float] = None):
        self.conn = conn
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.owner = owner or default_owner()
        self.time_source = time_source or time.time
        self.held = False

    def acquire(self) -> None:
        """Take the lease or raise LockUnavailableError

        BEGIN IMMEDIATE takes the database write lock, so the
        check-then-claim below cannot race another process.
        """
        if not self.enabled:
            return
        now = self.time_source()
        if self.conn.in_transaction:
            self.conn.commit()
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            row = self.conn.execute(
                "SELECT owner, expires_at FROM maintenance_locks WHERE name = ?",
                (self.name,)
            ).fetchone()
            if row and row[0] != self.owner and row[1] > now:
                raise LockUnavailableError(self.name, row[0])
            if row and row[0] != self.owner:
                logger.warning(f"Taking over expired lock '{self.name}' from {row[0]}")
            self.conn.execute(
                """
                INSERT OR REPLACE INTO maintenance_locks (name, owner, acquired_at, expires_at)
                VALUES (?, ?, ?, ?)
                """,
                (self.name, self.owner, now, now + self.ttl_seconds)
            )
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()
        self.held = True
        logger.debug(f"Acquired lock '{self.name}' as {self.owner}")

    def release(self) -> None:
        if not self.enabled or not self.held:
            return
        with self.conn:
            self.conn.execute(
                "DELETE FROM maintenance_locks WHERE name = ? AND owner = ?",
                (self.name, self.owner)
            )
        self.held = False
        logger.debug(f"Released lock '{self.name}'")

    def holder(self) -> Optional[str]:
        """Current live holder, if any"""
        row = self.conn.execute(
            "SELECT owner, expires_at FROM maintenance_locks WHERE name = ?",
            (self.name,)
        ).fetchone()
        if row and row[1] > self.time_source():
            return row[0]
        return None

    def __enter__(self) -> 'AdvisoryLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
