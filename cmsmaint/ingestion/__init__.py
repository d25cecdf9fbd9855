"""
Ingestion package - SQLite storage for the CMS maintenance toolkit.

This package owns every table the maintenance commands read or write:
- Connection setup and schema creation (DatabaseConnection, SchemaManager)
- Owner entity access with keyset chunking (EntityRepository)
- The persisted search index (SearchIndexStore)
- The append-only search analytics log (AnalyticsRepository)
"""

from .database import DatabaseConnection, SchemaManager
from .entity_repository import EntityRepository, RepositoryRegistry
from .search_index_store import OwnerType, SearchIndexEntry, SearchIndexStore
from .analytics_repository import AnalyticsRepository

__all__ = [
    'DatabaseConnection',
    'SchemaManager',
    'EntityRepository',
    'RepositoryRegistry',
    'OwnerType',
    'SearchIndexEntry',
    'SearchIndexStore',
    'AnalyticsRepository',
]
