import json
import re
import sqlite3
from typing import Any, Dict, Iterator, List, Optional, Tuple

from cmsmaint.errors import ValidationError

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_OPERATORS = ("=", "!=", "<", "<=", ">", ">=", "LIKE", "IS", "IS NOT")

# Columns stored as JSON text
_JSON_COLUMNS = {"capabilities", "meta", "meta_data", "filters"}


class EntityRepository:
    """Read access to one owner table (content, terms, roles, settings, plugins).

    Exposes only count(), where() and primary-key ordered chunking.
    where() returns a new repository; the original is unchanged.
    """

    def __init__(self, conn: sqlite3.Connection, table: str,
                 conditions: Tuple[Tuple[str, str, Any], ...] = ()):
        self.conn = conn
        self.table = _checked_identifier(table)
        self.conditions = conditions

    def where(self, field: str, op: str, value: Any) -> 'EntityRepository':
        """Add a filter, e.g. where('status', '=', 'published')"""
        op = op.upper()
        if op not in _OPERATORS:
            raise ValidationError(f"Unsupported operator: {op}")
        condition = (_checked_identifier(field), op, value)
        return EntityRepository(self.conn, self.table, self.conditions + (condition,))

    def count(self) -> int:
        where_sql, params = self._where_clause()
        cursor = self.conn.execute(f"SELECT COUNT(*) FROM {self.table}{where_sql}", params)
        return cursor.fetchone()[0]

    def all(self) -> List[Dict]:
        """All matching rows ordered by id"""
        rows = []
        for chunk in self.chunk(1000):
            rows.extend(chunk)
        return rows

    def chunk(self, size: int) -> Iterator[List[Dict]]:
        """Yield rows in chunks ordered by primary key ascending

        Keyset pagination (id > last_id) so rows inserted or deleted between
        chunks never cause a skip or duplicate of an existing row.
        """
        if size < 1:
            raise ValidationError("Chunk size must be at least 1")
        last_id = 0
        while True:
            where_sql, params = self._where_clause(after_id=last_id)
            cursor = self.conn.execute(
                f"SELECT * FROM {self.table}{where_sql} ORDER BY id LIMIT ?",
                params + [size]
            )
            rows = [_row_to_dict(row) for row in cursor.fetchall()]
            if not rows:
                return
            yield rows
            last_id = rows[-1]["id"]
            if len(rows) < size:
                return

    def latest(self, column: str, limit: int) -> List[Dict]:
        """Newest rows by a timestamp column"""
        column = _checked_identifier(column)
        where_sql, params = self._where_clause()
        cursor = self.conn.execute(
            f"SELECT * FROM {self.table}{where_sql} ORDER BY {column} DESC, id DESC LIMIT ?",
            params + [limit]
        )
        return [_row_to_dict(row) for row in cursor.fetchall()]

    def distinct(self, column: str) -> List[Any]:
        column = _checked_identifier(column)
        where_sql, params = self._where_clause()
        cursor = self.conn.execute(
            f"SELECT DISTINCT {column} FROM {self.table}{where_sql} ORDER BY {column}", params
        )
        return [row[0] for row in cursor.fetchall()]

    def ids(self) -> List[int]:
        where_sql, params = self._where_clause()
        cursor = self.conn.execute(f"SELECT id FROM {self.table}{where_sql} ORDER BY id", params)
        return [row[0] for row in cursor.fetchall()]

    def _where_clause(self, after_id: Optional[int] = None) -> Tuple[str, list]:
        clauses = []
        params: list = []
        for field, op, value in self.conditions:
            clauses.append(f"{field} {op} ?")
            params.append(value)
        if after_id is not None:
            clauses.append("id > ?")
            params.append(after_id)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params


def _checked_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name or ""):
        raise ValidationError(f"Invalid identifier: {name!r}")
    return name


def _row_to_dict(row) -> Dict:
    data = dict(row)
    for column in _JSON_COLUMNS.intersection(data):
        raw = data[column]
        if isinstance(raw, str) and raw:
            try:
                data[column] = json.loads(raw)
            except json.JSONDecodeError:
                pass
    return data


class RepositoryRegistry:
    """Named access to the owner tables"""

    TABLES = {
        "content": "content",
        "term": "terms",
        "taxonomy": "taxonomies",
        "role": "roles",
        "setting": "settings",
        "plugin": "plugins",
    }

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, name: str) -> EntityRepository:
        if name not in self.TABLES:
            raise ValidationError(f"Unknown entity: {name}")
        return EntityRepository(self.conn, self.TABLES[name])

    def content(self) -> EntityRepository:
        return self.get("content")

    def terms(self) -> EntityRepository:
        return self.get("term")

    def roles(self) -> EntityRepository:
        return self.get("role")

    def settings(self) -> EntityRepository:
        return self.get("setting")

    def plugins(self) -> EntityRepository:
        return self.get("plugin")
