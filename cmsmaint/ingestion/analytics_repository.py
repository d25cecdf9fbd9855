# Copyright (c) 2024 CMS Maintenance Contributors
# SPDX-License-Identifier: MIT

"""Search analytics log

Append-only record of executed searches. Rows are never updated; retention
cleanup removes them in bulk. A search counts as failed when it returned no
results.
"""
import hashlib
import json
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from cmsmaint.errors import ValidationError

MAX_QUERY_LENGTH = 500
MAX_USER_AGENT_LENGTH = 500

# Lexically sortable, so cutoff comparisons can run in SQL
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


class AnalyticsRepository:
    """CRUD and aggregate queries for search_analytics"""

    def __init__(self, conn: sqlite3.Connection, clock: Callable[[], datetime] = None):
        self.conn = conn
        self.clock = clock or utc_now

    def log_search(self, query: str, result_count: int, execution_time_ms: int = None,
                   filters: Dict = None, user_id: int = None, ip_address: str = None,
                   user_agent: str = None) -> int:
        """Record one executed search

        The client IP is stored only as a sha256 digest.

        Returns:
            Row id of the new record
        """
        ip_hash = hashlib.sha256(ip_address.encode()).hexdigest() if ip_address else None
        with self.conn:
            cursor = self.conn.execute(
                """
                INSERT INTO search_analytics
                    (query, filters, result_count, user_id, ip_address_hash,
                     user_agent, execution_time_ms, searched_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    (query or "")[:MAX_QUERY_LENGTH],
                    json.dumps(filters or {}),
                    result_count,
                    user_id,
                    ip_hash,
                    user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
                    execution_time_ms,
                    format_timestamp(self.clock()),
                )
            )
        return cursor.lastrowid

    def cutoff_for(self, retention_days: int) -> datetime:
        if retention_days < 1:
            raise ValidationError(
                f"Retention days must be at least 1, got {retention_days}"
            )
        return self.clock() - timedelta(days=retention_days)

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM search_analytics").fetchone()[0]

    def count_older_than(self, cutoff: datetime) -> int:
        cursor = self.conn.execute(
            "SELECT COUNT(*) FROM search_analytics WHERE searched_at < ?",
            (format_timestamp(cutoff),)
        )
        return cursor.fetchone()[0]

    def delete_older_than(self, cutoff: datetime) -> int:
        with self.conn:
            cursor = self.conn.execute(
                "DELETE FROM search_analytics WHERE searched_at < ?",
                (format_timestamp(cutoff),)
            )
        return cursor.rowcount

    def cleanup(self, retention_days: int) -> int:
        """Delete records older than the retention window

        Returns:
            Number of records deleted
        """
        return self.delete_older_than(self.cutoff_for(retention_days))

    def performance_stats(self, since: datetime) -> Dict:
        """Search volume and performance since a point in time"""
        row = self.conn.execute(
            """
            SELECT COUNT(*),
                   COUNT(DISTINCT query),
                   AVG(result_count),
                   AVG(execution_time_ms),
                   SUM(CASE WHEN result_count = 0 THEN 1 ELSE 0 END)
            FROM search_analytics
            WHERE searched_at >= ?
            """,
            (format_timestamp(since),)
        ).fetchone()
        total = row[0] or 0
        failed = row[4] or 0
        return {
            'total_searches': total,
            'unique_queries': row[1] or 0,
            'avg_results_per_search': round(row[2] or 0.0, 2),
            'avg_execution_time_ms': round(row[3] or 0.0, 2),
            'failed_searches': failed,
            'success_rate': round((total - failed) / total * 100, 2) if total else 0.0,
        }

    def popular_queries(self, limit: int = 10, since: Optional[datetime] = None) -> List[Dict]:
        """Most frequent queries, most searched first"""
        return self._grouped_queries(limit, since, failed_only=False)

    def failed_queries(self, limit: int = 10, since: Optional[datetime] = None) -> List[Dict]:
        """Most frequent queries that returned nothing"""
        return self._grouped_queries(limit, since, failed_only=True)

    def _grouped_queries(self, limit: int, since: Optional[datetime],
                         failed_only: bool) -> List[Dict]:
        clauses = []
        params: list = []
        if since is not None:
            clauses.append("searched_at >= ?")
            params.append(format_timestamp(since))
        if failed_only:
            clauses.append("result_count = 0")
        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = self.conn.execute(
            f"""
            SELECT query, COUNT(*) AS search_count, AVG(result_count) AS avg_results
            FROM search_analytics
            {where_sql}
            GROUP BY query
            ORDER BY search_count DESC, query
            LIMIT ?
            """,
            params + [limit]
        )
        return [
            {
                'query': row[0],
                'search_count': row[1],
                'avg_results': round(row[2] or 0.0, 2),
            }
            for row in cursor.fetchall()
        ]
