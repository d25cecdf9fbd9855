"""
Tagged key-value cache stores.

Every store exposes get/put/forget plus tags(...).flush(). Stores that
cannot track tags report supports_tags = False and raise CacheStoreError
from tags(); CacheService then falls back to key pattern deletion.
"""
import fnmatch
import hashlib
import json
import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from cmsmaint.errors import CacheStoreError

logger = logging.getLogger(__name__)


class TaggedCache:
    """Handle returned by CacheStore.tags() for flushing by tag"""

    def __init__(self, store: 'CacheStore', tags: Iterable[str]):
        self.store = store
        self.tag_names = list(tags)

    def flush(self) -> Optional[int]:
        """Remove every entry carrying any of the tags

        Returns:
            Number of distinct entries removed, or None if the store
            cannot report it
        """
        return self.store._flush_tags(self.tag_names)


class CacheStore(ABC):
    """Contract for cache backends"""

    supports_tags = True

    def __init__(self, time_source: Callable[[], float] = None):
        self.time_source = time_source or time.time

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return stored value, or None if absent or expired"""
        pass

    @abstractmethod
    def put(self, key: str, value: Any, tags: Iterable[str] = (), ttl: Optional[int] = None) -> bool:
        """Store a value; ttl of None or 0 never expires"""
        pass

    @abstractmethod
    def forget(self, key: str) -> bool:
        pass

    @abstractmethod
    def forget_pattern(self, pattern: str) -> int:
        """Remove keys matching a glob pattern, returns number removed"""
        pass

    @abstractmethod
    def flush(self) -> int:
        """Remove everything"""
        pass

    def tags(self, tags: Iterable[str]) -> TaggedCache:
        if not self.supports_tags:
            raise CacheStoreError(f"{type(self).__name__} does not support cache tags")
        return TaggedCache(self, tags)

    def _flush_tags(self, tags: List[str]) -> Optional[int]:
        raise CacheStoreError(f"{type(self).__name__} does not support cache tags")

    def _expires_at(self, ttl: Optional[int]) -> Optional[float]:
        if not ttl:
            return None
        return self.time_source() + ttl

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and expires_at <= self.time_source()


class ArrayStore(CacheStore):
    """In-process store; contents live as long as the object"""

    def __init__(self, time_source: Callable[[], float] = None):
        super().__init__(time_source)
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._tags: Dict[str, Set[str]] = {}

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            self._remove(key)
            return None
        return value

    def put(self, key: str, value: Any, tags: Iterable[str] = (), ttl: Optional[int] = None) -> bool:
        self._entries[key] = (value, self._expires_at(ttl))
        for tag in tags:
            self._tags.setdefault(tag, set()).add(key)
        return True

    def forget(self, key: str) -> bool:
        return self._remove(key)

    def forget_pattern(self, pattern: str) -> int:
        matches = fnmatch.filter(list(self._entries), pattern)
        for key in matches:
            self._remove(key)
        return len(matches)

    def flush(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self._tags.clear()
        return count

    def keys(self) -> List[str]:
        return sorted(self._entries)

    def _flush_tags(self, tags: List[str]) -> Optional[int]:
        keys: Set[str] = set()
        for tag in tags:
            keys |= self._tags.pop(tag, set())
        return sum(1 for key in keys if self._remove(key))

    def _remove(self, key: str) -> bool:
        if key not in self._entries:
            return False
        del self._entries[key]
        for tagged in self._tags.values():
            tagged.discard(key)
        return True


class DatabaseStore(CacheStore):
    """Tagged store persisted in the cache_entries/cache_tags tables

    Survives across CLI invocations, so a warm run and a later clear
    operate on the same entries.
    """

    def __init__(self, conn: sqlite3.Connection, time_source: Callable[[], float] = None):
        super().__init__(time_source)
        self.conn = conn

    def get(self, key: str) -> Any:
        try:
            row = self.conn.execute(
                "SELECT value, expires_at FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise CacheStoreError(f"Cache read failed: {e}") from e
        if row is None:
            return None
        if self._expired(row[1]):
            self.forget(key)
            return None
        return json.loads(row[0])

    def put(self, key: str, value: Any, tags: Iterable[str] = (), ttl: Optional[int] = None) -> bool:
        try:
            with self.conn:
                self.conn.execute(
                    "INSERT OR REPLACE INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)",
                    (key, json.dumps(value), self._expires_at(ttl))
                )
                self.conn.executemany(
                    "INSERT OR IGNORE INTO cache_tags (tag, key) VALUES (?, ?)",
                    [(tag, key) for tag in tags]
                )
        except (sqlite3.Error, TypeError) as e:
            raise CacheStoreError(f"Cache write failed for {key}: {e}") from e
        return True

    def forget(self, key: str) -> bool:
        return self._delete_where("key = ?", (key,)) > 0

    def forget_pattern(self, pattern: str) -> int:
        # SQLite GLOB uses the same wildcards as fnmatch
        return self._delete_where("key GLOB ?", (pattern,))

    def flush(self) -> int:
        return self._delete_where("1 = 1", ())

    def _flush_tags(self, tags: List[str]) -> Optional[int]:
        if not tags:
            return 0
        placeholders = ",".join("?" * len(tags))
        return self._delete_where(
            f"key IN (SELECT key FROM cache_tags WHERE tag IN ({placeholders}))",
            tuple(tags)
        )

    def _delete_where(self, condition: str, params: tuple) -> int:
        try:
            with self.conn:
                keys = [
                    row[0] for row in self.conn.execute(
                        f"SELECT key FROM cache_entries WHERE {condition}", params
                    ).fetchall()
                ]
                if not keys:
                    return 0
                placeholders = ",".join("?" * len(keys))
                self.conn.execute(
                    f"DELETE FROM cache_tags WHERE key IN ({placeholders})", keys
                )
                self.conn.execute(
                    f"DELETE FROM cache_entries WHERE key IN ({placeholders})", keys
                )
        except sqlite3.Error as e:
            raise CacheStoreError(f"Cache delete failed: {e}") from e
        return len(keys)


class FileStore(CacheStore):
    """One JSON file per key under a directory; no tag support"""

    supports_tags = False

    def __init__(self, directory: str, time_source: Callable[[], float] = None):
        super().__init__(time_source)
        self.directory = Path(directory)

    def get(self, key: str) -> Any:
        payload = self._read(self._path(key))
        if payload is None:
            return None
        if self._expired(payload.get('expires_at')):
            self.forget(key)
            return None
        return payload.get('value')

    def put(self, key: str, value: Any, tags: Iterable[str] = (), ttl: Optional[int] = None) -> bool:
        payload = {'key': key, 'value': value, 'expires_at': self._expires_at(ttl)}
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._path(key).write_text(json.dumps(payload))
        except (OSError, TypeError) as e:
            raise CacheStoreError(f"Cache write failed for {key}: {e}") from e
        return True

    def forget(self, key: str) -> bool:
        return self._unlink(self._path(key))

    def forget_pattern(self, pattern: str) -> int:
        removed = 0
        for path in self._files():
            payload = self._read(path)
            if payload and fnmatch.fnmatchcase(payload.get('key', ''), pattern):
                removed += int(self._unlink(path))
        return removed

    def flush(self) -> int:
        return sum(int(self._unlink(path)) for path in self._files())

    def _path(self, key: str) -> Path:
        return self.directory / f"{hashlib.md5(key.encode()).hexdigest()}.json"

    def _files(self) -> List[Path]:
        if not self.directory.exists():
            return []
        return sorted(self.directory.glob("*.json"))

    def _read(self, path: Path) -> Optional[Dict]:
        try:
            return json.loads(path.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise CacheStoreError(f"Cache read failed for {path.name}: {e}") from e

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheStoreError(f"Cache delete failed for {path.name}: {e}") from e
        return True


def create_store(driver: str, conn: sqlite3.Connection = None,
                 path: str = None) -> CacheStore:
    """Build the store for a configured driver name"""
    if driver == "array":
        return ArrayStore()
    if driver == "database":
        if conn is None:
            raise CacheStoreError("The database cache driver needs a connection")
        return DatabaseStore(conn)
    if driver == "file":
        return FileStore(path or "data/cache")
    raise CacheStoreError(f"Unknown cache driver: {driver}")
