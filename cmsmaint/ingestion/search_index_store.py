"""Persisted search index

One row per (searchable_type, searchable_id). Rows are written only by
bulk_replace during reindex and removed by orphan cleanup.
"""
import json
import sqlite3
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cmsmaint.errors import ValidationError


@dataclass
class SearchIndexEntry:
    """One indexed unit of searchable content"""
    searchable_type: str
    searchable_id: int
    title: str
    content: str = ""
    excerpt: str = ""
    keywords: str = ""
    type: Optional[str] = None
    status: Optional[str] = None
    author_id: Optional[int] = None
    published_at: Optional[str] = None
    relevance_boost: float = 1.0
    meta_data: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class OwnerType:
    """Maps a searchable_type discriminator to the table that owns its rows"""
    searchable_type: str
    table: str


class SearchIndexStore:
    """CRUD operations for the search_indices table.

    Single Responsibility: Manage index rows only.
    """

    _UPSERT = """
        INSERT INTO search_indices
            (searchable_type, searchable_id, title, content, excerpt, keywords,
             type, status, author_id, published_at, relevance_boost, meta_data, indexed_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT (searchable_type, searchable_id) DO UPDATE SET
            title = excluded.title,
            content = excluded.content,
            excerpt = excluded.excerpt,
            keywords = excluded.keywords,
            type = excluded.type,
            status = excluded.status,
            author_id = excluded.author_id,
            published_at = excluded.published_at,
            relevance_boost = excluded.relevance_boost,
            meta_data = excluded.meta_data,
            indexed_at = CURRENT_TIMESTAMP
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def count(self) -> int:
        cursor = self.conn.execute("SELECT COUNT(*) FROM search_indices")
        return cursor.fetchone()[0]

    def count_by_type(self, searchable_type: str) -> int:
        """Count entries owned by one searchable type"""
        cursor = self.conn.execute(
            "SELECT COUNT(*) FROM search_indices WHERE searchable_type = ?",
            (searchable_type,)
        )
        return cursor.fetchone()[0]

    def count_grouped_by_type(self) -> List[Dict]:
        """Entry counts per content type label, largest first"""
        cursor = self.conn.execute("""
            SELECT type, COUNT(*) AS count
            FROM search_indices
            GROUP BY type
            ORDER BY count DESC, type
        """)
        return [{'type': row[0], 'count': row[1]} for row in cursor.fetchall()]

    def bulk_replace(self, entries: List[SearchIndexEntry]) -> int:
        """Upsert a batch of entries in a single transaction

        Each batch commits on its own, so an interrupted reindex leaves
        only complete batches behind and the next run overwrites them.

        Returns:
            Number of entries written
        """
        if not entries:
            return 0
        rows = [self._to_row(entry) for entry in entries]
        with self.conn:
            self.conn.executemany(self._UPSERT, rows)
        return len(rows)

    def remove(self, searchable_type: str, searchable_id: int) -> int:
        with self.conn:
            cursor = self.conn.execute(
                "DELETE FROM search_indices WHERE searchable_type = ? AND searchable_id = ?",
                (searchable_type, searchable_id)
            )
        return cursor.rowcount

    def count_orphans(self, owner: OwnerType) -> int:
        """Count entries whose owner row no longer exists"""
        cursor = self.conn.execute(
            f"""
            SELECT COUNT(*) FROM search_indices si
            WHERE si.searchable_type = ?
              AND NOT EXISTS (SELECT 1 FROM {_table(owner)} o WHERE o.id = si.searchable_id)
            """,
            (owner.searchable_type,)
        )
        return cursor.fetchone()[0]

    def delete_orphans(self, owner: OwnerType) -> int:
        """Delete entries whose owner row no longer exists

        Single anti-join DELETE rather than a per-row existence check.

        Returns:
            Number of entries removed
        """
        with self.conn:
            cursor = self.conn.execute(
                f"""
                DELETE FROM search_indices
                WHERE searchable_type = ?
                  AND NOT EXISTS (
                      SELECT 1 FROM {_table(owner)} o
                      WHERE o.id = search_indices.searchable_id
                  )
                """,
                (owner.searchable_type,)
            )
        return cursor.rowcount

    def get(self, searchable_type: str, searchable_id: int) -> Optional[Dict]:
        cursor = self.conn.execute(
            "SELECT * FROM search_indices WHERE searchable_type = ? AND searchable_id = ?",
            (searchable_type, searchable_id)
        )
        row = cursor.fetchone()
        if not row:
            return None
        data = dict(row)
        data['meta_data'] = json.loads(data['meta_data']) if data['meta_data'] else {}
        return data

    def _to_row(self, entry: SearchIndexEntry) -> tuple:
        return (
            entry.searchable_type,
            entry.searchable_id,
            entry.title,
            entry.content,
            entry.excerpt,
            entry.keywords,
            entry.type,
            entry.status,
            entry.author_id,
            entry.published_at,
            entry.relevance_boost,
            json.dumps(entry.meta_data or {}),
        )


def _table(owner: OwnerType) -> str:
    if not owner.table.isidentifier():
        raise ValidationError(f"Invalid owner table: {owner.table!r}")
    return owner.table
