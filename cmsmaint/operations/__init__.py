"""Operations layer for CMS maintenance.

This package handles command-facing operations:
- Search maintenance actions (MaintenanceOrchestrator)
- Analytics retention cleanup (AnalyticsCleaner)
- Index orphan removal (IndexOrphanCleaner)
- Search cache invalidation (SearchCacheClearer)
- Read-only statistics (StatsCollector)
- CMS cache clearing and warming (CacheClearer, CacheWarmer)
"""
