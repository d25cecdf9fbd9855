"""Read-only search statistics"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from cmsmaint.config import SearchConfig
from cmsmaint.ingestion.analytics_repository import AnalyticsRepository
from cmsmaint.ingestion.search_index_store import SearchIndexStore


@dataclass
class SearchStatistics:
    """Index totals plus optional trailing-window analytics"""
    total_indexed: int
    by_type: List[Dict]
    analytics_enabled: bool
    window_days: int
    performance: Optional[Dict] = None
    popular_queries: List[Dict] = field(default_factory=list)


class StatsCollector:
    """Aggregates index and analytics statistics without mutating anything"""

    def __init__(self, index_store: SearchIndexStore, analytics: AnalyticsRepository,
                 config: SearchConfig = None):
        self.index_store = index_store
        self.analytics = analytics
        self.config = config or SearchConfig()

    def collect(self) -> SearchStatistics:
        window_days = self.config.analytics.stats_window_days
        stats = SearchStatistics(
            total_indexed=self.index_store.count(),
            by_type=self.index_store.count_grouped_by_type(),
            analytics_enabled=self.config.analytics_enabled,
            window_days=window_days,
        )
        if not self.config.analytics_enabled:
            return stats

        since = self.analytics.clock() - timedelta(days=window_days)
        stats.performance = self.analytics.performance_stats(since)
        stats.popular_queries = self.analytics.popular_queries(
            limit=self.config.analytics.popular_queries_limit, since=since
        )
        return stats
