"""
Operations factory for maintenance commands.

Wires repositories, services and operations from one connection and
one Config, so commands and tests build them the same way.
"""
import logging
import sqlite3
from typing import Callable, List, Optional

from cmsmaint.cache.cache_service import CacheService, CacheStats
from cmsmaint.cache.stores import CacheStore, create_store
from cmsmaint.config import Config
from cmsmaint.ingestion.analytics_repository import AnalyticsRepository
from cmsmaint.ingestion.entity_repository import RepositoryRegistry
from cmsmaint.ingestion.search_index_store import SearchIndexStore
from cmsmaint.services.search_service import SearchService

logger = logging.getLogger(__name__)


class OperationsFactory:
    """Factory for maintenance services and operations.

    Usage:
        cache = OperationsFactory.create_cache_service(conn, config)
        clearer = OperationsFactory.create_cache_clearer(cache)
        result = clearer.clear(components=["users"])
    """

    @staticmethod
    def create_cache_store(conn: sqlite3.Connection, config: Config) -> CacheStore:
        logger.debug(f"Creating '{config.cache.driver}' cache store")
        return create_store(config.cache.driver, conn=conn, path=config.cache.path)

    @staticmethod
    def create_cache_service(conn: sqlite3.Connection, config: Config,
                             store: Optional[CacheStore] = None,
                             stats: Optional[CacheStats] = None) -> CacheService:
        if store is None:
            store = OperationsFactory.create_cache_store(conn, config)
        return CacheService(store, config.cache, stats or CacheStats())

    @staticmethod
    def create_search_service(conn: sqlite3.Connection, config: Config) -> SearchService:
        return SearchService(
            conn, config.search,
            index_store=SearchIndexStore(conn),
            lock_config=config.locks,
        )

    @staticmethod
    def create_maintenance_orchestrator(conn: sqlite3.Connection, config: Config,
                                        cache_service: CacheService,
                                        output: Callable[[str], None] = None,
                                        refresh_hooks: Optional[List[Callable[[], None]]] = None,
                                        analytics: Optional[AnalyticsRepository] = None):
        from cmsmaint.operations.analytics_cleaner import AnalyticsCleaner
        from cmsmaint.operations.index_orphan_cleaner import IndexOrphanCleaner
        from cmsmaint.operations.maintenance_orchestrator import MaintenanceOrchestrator
        from cmsmaint.operations.search_cache_clearer import SearchCacheClearer
        from cmsmaint.operations.stats_collector import StatsCollector

        index_store = SearchIndexStore(conn)
        analytics = analytics or AnalyticsRepository(conn)
        search_service = OperationsFactory.create_search_service(conn, config)
        owners = [indexable.owner for indexable in search_service.types.values()]

        return MaintenanceOrchestrator(
            config.search,
            analytics_cleaner=AnalyticsCleaner(conn, analytics, config.locks),
            cache_clearer=SearchCacheClearer(cache_service, config.search.cache),
            stats_collector=StatsCollector(index_store, analytics, config.search),
            orphan_cleaner=IndexOrphanCleaner(index_store, owners),
            refresh_hooks=refresh_hooks,
            output=output,
        )

    @staticmethod
    def create_cache_clearer(cache_service: CacheService):
        from cmsmaint.operations.cache_clearer import CacheClearer
        return CacheClearer(cache_service)

    @staticmethod
    def create_cache_warmer(conn: sqlite3.Connection, config: Config,
                            cache_service: CacheService, force: bool = False, sleep=None):
        from cmsmaint.operations.cache_warmer import CacheWarmer
        return CacheWarmer(
            cache_service, RepositoryRegistry(conn), config.cache.warming,
            force=force, sleep=sleep,
        )
