"""Tagged cache stores and the component-aware CacheService."""

from .stores import ArrayStore, CacheStore, DatabaseStore, FileStore, TaggedCache, create_store
from .cache_service import CacheService, CacheStats, FlushResult

__all__ = [
    'ArrayStore',
    'CacheStore',
    'DatabaseStore',
    'FileStore',
    'TaggedCache',
    'create_store',
    'CacheService',
    'CacheStats',
    'FlushResult',
]
