"""Cache warming for frequently read CMS data

Each named item has its own loader. A failing or unknown item is
recorded and the remaining items still run. Published content is read
in keyset chunks with a pause between chunks to bound database load.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from cmsmaint.cache.cache_service import CacheService
from cmsmaint.config import WarmingConfig
from cmsmaint.errors import CacheStoreError, ValidationError
from cmsmaint.ingestion.analytics_repository import format_timestamp, utc_now
from cmsmaint.ingestion.entity_repository import EntityRepository, RepositoryRegistry

logger = logging.getLogger(__name__)

CONTENT_BY_TYPE_LIMIT = 50
RECENT_PUBLISHED_LIMIT = 100


@dataclass
class WarmItemResult:
    name: str
    success: bool
    entries: int
    message: str


@dataclass
class CacheWarmResult:
    items: List[WarmItemResult] = field(default_factory=list)

    @property
    def warmed(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.success)


class CacheWarmer:
    """Populates CMS caches ahead of traffic"""

    def __init__(self, cache_service: CacheService, repositories: RepositoryRegistry,
                 config: WarmingConfig = None, force: bool = False,
                 sleep: Callable[[float], None] = None,
                 clock: Callable[[], datetime] = None):
        self.cache_service = cache_service
        self.repositories = repositories
        self.config = config or WarmingConfig()
        self.force = force
        self.sleep = sleep or time.sleep
        self.clock = clock or utc_now

        self._loaders: Dict[str, Callable[[int, int], int]] = {
            'all_roles': self._warm_all_roles,
            'all_settings': self._warm_all_settings,
            'all_installed_plugins': self._warm_installed_plugins,
            'active_plugins': self._warm_active_plugins,
            'published_content': self._warm_published_content,
            'content_types': self._warm_content_types,
            'role_capabilities': self._warm_role_capabilities,
        }

    def available_items(self) -> List[str]:
        return list(self._loaders)

    def warm(self, items: Optional[List[str]] = None, chunk_size: Optional[int] = None,
             delay_ms: Optional[int] = None,
             on_item: Optional[Callable[[WarmItemResult], None]] = None) -> CacheWarmResult:
        """Warm each item, continuing past failures

        Args:
            items: Item names; defaults to the configured warming items
            chunk_size: Rows per chunk for chunked items
            delay_ms: Pause between chunks in milliseconds
            on_item: Called with each item's result as it completes
        """
        items = items or list(self.config.items)
        chunk_size = self.config.chunk_size if chunk_size is None else chunk_size
        delay_ms = self.config.delay_between_chunks if delay_ms is None else delay_ms
        if chunk_size < 1:
            raise ValidationError("Chunk size must be at least 1")
        if delay_ms < 0:
            raise ValidationError("Delay must be >= 0")

        result = CacheWarmResult()
        for name in items:
            item = self._warm_item(name, chunk_size, delay_ms)
            result.items.append(item)
            if on_item:
                on_item(item)
        return result

    def _warm_item(self, name: str, chunk_size: int, delay_ms: int) -> WarmItemResult:
        loader = self._loaders.get(name)
        if loader is None:
            return WarmItemResult(name, False, 0, f"Unknown cache item: {name}")
        try:
            entries = loader(chunk_size, delay_ms)
        except Exception as e:
            logger.error(f"Failed to warm cache for {name}: {e}")
            return WarmItemResult(name, False, 0, str(e))
        return WarmItemResult(name, True, entries, f"Warmed {name} ({entries} entries)")

    def _put(self, component: str, operation: str, value, params: Dict = None) -> int:
        stored = self.cache_service.put(component, operation, value, params=params, force=self.force)
        if stored:
            return 1
        if self.force or self.cache_service.is_enabled_for(component):
            raise CacheStoreError(f"Cache write failed for {component}.{operation}")
        return 0

    def _warm_all_roles(self, chunk_size: int, delay_ms: int) -> int:
        return self._put('roles', 'all_roles', self.repositories.roles().all())

    def _warm_all_settings(self, chunk_size: int, delay_ms: int) -> int:
        settings = {row['key']: row for row in self.repositories.settings().all()}
        return self._put('settings', 'all_settings', settings)

    def _warm_installed_plugins(self, chunk_size: int, delay_ms: int) -> int:
        return self._put('plugins', 'all_installed', self.repositories.plugins().all())

    def _warm_active_plugins(self, chunk_size: int, delay_ms: int) -> int:
        active = self.repositories.plugins().where('is_active', '=', 1).all()
        return self._put('plugins', 'active_plugins', active)

    def _published(self) -> EntityRepository:
        now = format_timestamp(self.clock())
        return (
            self.repositories.content()
            .where('status', '=', 'published')
            .where('published_at', '<=', now)
        )

    def _warm_published_content(self, chunk_size: int, delay_ms: int) -> int:
        published = self._published()
        logger.info(f"Warming published content cache ({published.count()} items)")

        entries = 0
        types_seen = set()
        first = True
        for rows in published.chunk(chunk_size):
            if not first and delay_ms > 0:
                self.sleep(delay_ms / 1000)
            first = False
            for row in rows:
                entries += self._put('content', 'content_item', row, {'id': row['id']})
                if row['type'] not in types_seen:
                    types_seen.add(row['type'])
                    entries += self._put(
                        'content', 'content_by_type',
                        published.where('type', '=', row['type'])
                        .latest('published_at', CONTENT_BY_TYPE_LIMIT),
                        {'type': row['type']}
                    )

        entries += self._put(
            'content', 'published_content',
            published.latest('published_at', RECENT_PUBLISHED_LIMIT)
        )
        return entries

    def _warm_content_types(self, chunk_size: int, delay_ms: int) -> int:
        entries = 0
        published = self._published()
        for content_type in self.repositories.content().distinct('type'):
            rows = published.where('type', '=', content_type).latest(
                'published_at', CONTENT_BY_TYPE_LIMIT
            )
            entries += self._put('content', 'content_type', rows, {'type': content_type})
        return entries

    def _warm_role_capabilities(self, chunk_size: int, delay_ms: int) -> int:
        entries = 0
        for role in self.repositories.roles().all():
            for capability in role.get('capabilities') or []:
                entries += self._put(
                    'roles', 'role_capabilities', True,
                    {'role_id': role['id'], 'capability': capability}
                )
        return entries
