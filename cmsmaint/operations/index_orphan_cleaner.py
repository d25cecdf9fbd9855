"""Search index orphan cleanup

Removes index entries whose owner row no longer exists, one anti-join
DELETE per owner type.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from cmsmaint.ingestion.search_index_store import OwnerType, SearchIndexStore

logger = logging.getLogger(__name__)


@dataclass
class IndexOrphanCleanupResult:
    """Result of index orphan cleanup"""
    dry_run: bool
    orphans_found: int
    orphans_deleted: int
    message: str
    by_type: Dict[str, int] = field(default_factory=dict)


class IndexOrphanCleaner:
    """Index orphan cleanup over a set of owner types

    Example:
        cleaner = IndexOrphanCleaner(store, [OwnerType("content", "content")])
        result = cleaner.clean(dry_run=True)
        if result.orphans_found > 0:
            result = cleaner.clean()
    """

    def __init__(self, index_store: SearchIndexStore, owners: List[OwnerType]):
        self.index_store = index_store
        self.owners = owners

    def clean(self, dry_run: bool = False) -> IndexOrphanCleanupResult:
        """Find and optionally remove orphaned index entries

        Args:
            dry_run: If True, only count orphans

        Returns:
            IndexOrphanCleanupResult with per-type counts
        """
        by_type = {}
        for owner in self.owners:
            if dry_run:
                by_type[owner.searchable_type] = self.index_store.count_orphans(owner)
            else:
                by_type[owner.searchable_type] = self.index_store.delete_orphans(owner)
                if by_type[owner.searchable_type]:
                    logger.info(
                        f"Removed {by_type[owner.searchable_type]} orphaned "
                        f"{owner.searchable_type} index entries"
                    )

        total = sum(by_type.values())
        return IndexOrphanCleanupResult(
            dry_run=dry_run,
            orphans_found=total,
            orphans_deleted=0 if dry_run else total,
            message=self._build_message(dry_run, total),
            by_type=by_type,
        )

    def _build_message(self, dry_run: bool, total: int) -> str:
        if total == 0:
            return "No orphaned index entries found"
        if dry_run:
            return f"Would remove {total} orphaned index entries"
        return f"Removed {total} orphaned index entries"
