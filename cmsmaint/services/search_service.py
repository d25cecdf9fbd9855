# Copyright (c) 2024 CMS Maintenance Contributors
# SPDX-License-Identifier: MIT

"""Search index maintenance service

Rebuilds the search index from the owner tables of every registered
indexable type. Rows are read in primary-key order with keyset
pagination and written one committed batch at a time, so an interrupted
run leaves a valid partial index that the next run completes.
"""
import logging
import math
import sqlite3
from typing import Callable, Dict, List, Optional

from cmsmaint.config import LockConfig, SearchConfig
from cmsmaint.config_validator import MAX_BATCH_SIZE, MIN_BATCH_SIZE
from cmsmaint.errors import ReindexError, ValidationError
from cmsmaint.ingestion.entity_repository import EntityRepository
from cmsmaint.ingestion.search_index_store import SearchIndexEntry, SearchIndexStore
from cmsmaint.services.advisory_lock import AdvisoryLock
from cmsmaint.services.index_extractors import (
    IndexableType,
    default_indexable_types,
    resolve_types,
)

logger = logging.getLogger(__name__)

REINDEX_LOCK = "search:reindex"

ProgressCallback = Callable[[str, int], None]


class SearchService:
    """Owns the search index: full reindex, dry-run sizing, single-row updates"""

    def __init__(self, conn: sqlite3.Connection, config: SearchConfig = None,
                 index_store: SearchIndexStore = None,
                 types: Dict[str, IndexableType] = None,
                 lock_config: LockConfig = None):
        self.conn = conn
        self.config = config or SearchConfig()
        self.index_store = index_store or SearchIndexStore(conn)
        self.types = types if types is not None else default_indexable_types(conn)
        self.lock_config = lock_config or LockConfig()
        self.last_counts: Dict[str, int] = {}
        self.last_stale_removed: Dict[str, int] = {}

    def is_enabled(self) -> bool:
        return bool(self.config.enabled)

    def configured_types(self, types: Optional[List[str]] = None) -> List[IndexableType]:
        """Resolve requested type names, defaulting to indexable_models"""
        names = types or self.config.indexing.indexable_models
        return resolve_types(self.types, [name.lower() for name in names])

    def estimate_reindex_size(self, types: Optional[List[str]] = None,
                              batch_size: Optional[int] = None) -> Dict[str, Dict[str, int]]:
        """Row and batch counts a reindex would process. Read only."""
        batch_size = self._batch_size(batch_size)
        estimate = {}
        for indexable in self.configured_types(types):
            count = EntityRepository(self.conn, indexable.table).count()
            estimate[indexable.name] = {
                'count': count,
                'batches': math.ceil(count / batch_size),
            }
        return estimate

    def reindex_all(self, progress_callback: Optional[ProgressCallback] = None,
                    types: Optional[List[str]] = None,
                    batch_size: Optional[int] = None) -> int:
        """Rebuild index entries for every configured type

        progress_callback(type, indexed_so_far) runs after each committed
        batch with the running total across all types.

        Returns:
            Total number of rows indexed

        Raises:
            ValidationError: Bad batch size or unknown type
            LockUnavailableError: Another reindex is running
            ReindexError: One or more types failed; other types completed
        """
        batch_size = self._batch_size(batch_size)
        selected = self.configured_types(types)

        self.last_counts = {}
        self.last_stale_removed = {}
        failures: Dict[str, str] = {}
        total = 0

        with self._lock(REINDEX_LOCK):
            for indexable in selected:
                done = 0
                try:
                    for entries in self._batches(indexable, batch_size):
                        done += self.index_store.bulk_replace(entries)
                        if progress_callback:
                            progress_callback(indexable.name, total + done)
                    self.last_stale_removed[indexable.name] = (
                        self.index_store.delete_orphans(indexable.owner)
                    )
                except Exception as e:
                    logger.error(f"Reindex of '{indexable.name}' failed after {done} rows: {e}")
                    failures[indexable.name] = str(e)
                total += done
                self.last_counts[indexable.name] = done
                logger.info(f"Indexed {done} {indexable.name} rows")

        if failures:
            raise ReindexError(total, failures)
        return total

    def index_model(self, type_name: str, row: Dict) -> SearchIndexEntry:
        """Create or replace the index entry for one owner row"""
        indexable = resolve_types(self.types, [type_name])[0]
        entry = indexable.extractor.extract(row)
        self.index_store.bulk_replace([entry])
        return entry

    def remove_from_index(self, type_name: str, searchable_id: int) -> bool:
        indexable = resolve_types(self.types, [type_name])[0]
        return self.index_store.remove(indexable.name, searchable_id) > 0

    def _batches(self, indexable: IndexableType, batch_size: int):
        repository = EntityRepository(self.conn, indexable.table)
        for rows in repository.chunk(batch_size):
            yield [indexable.extractor.extract(row) for row in rows]

    def _batch_size(self, batch_size: Optional[int]) -> int:
        if batch_size is None:
            batch_size = self.config.indexing.batch_size
        if not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE:
            raise ValidationError(
                f"Batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}."
            )
        return batch_size

    def _lock(self, name: str) -> AdvisoryLock:
        return AdvisoryLock(
            self.conn, name,
            ttl_seconds=self.lock_config.ttl_seconds,
            enabled=self.lock_config.enabled,
        )
