"""Search cache invalidation

Best effort: a failed tag flush falls back to forgetting the known
search key patterns, and individual pattern failures are ignored.
"""
import logging
from dataclasses import dataclass, field
from typing import List

from cmsmaint.cache.cache_service import CacheService
from cmsmaint.config import SearchCacheConfig
from cmsmaint.errors import CacheStoreError

logger = logging.getLogger(__name__)

SEARCH_COMPONENT = "search"
SEARCH_KEY_PATTERNS = ("facets_*", "suggestions_*", "results_*")


@dataclass
class SearchCacheClearResult:
    """Result of clearing the search cache"""
    skipped: bool
    tags: List[str]
    tag_flush_ok: bool
    message: str
    patterns_cleared: List[str] = field(default_factory=list)
    patterns_failed: List[str] = field(default_factory=list)


class SearchCacheClearer:
    """Clears cached search results, facets and suggestions"""

    def __init__(self, cache_service: CacheService, config: SearchCacheConfig = None):
        self.cache_service = cache_service
        self.config = config or SearchCacheConfig()

    def clear(self) -> SearchCacheClearResult:
        tags = list(self.config.tags)
        if not self.config.enabled:
            return SearchCacheClearResult(
                skipped=True, tags=tags, tag_flush_ok=False,
                message="Search cache is disabled, nothing to clear",
            )

        flushed = self.cache_service.flush_by_tags(tags)
        if flushed and not flushed.fallback:
            return SearchCacheClearResult(
                skipped=False, tags=tags, tag_flush_ok=True,
                message=f"Search cache cleared (tags: {', '.join(tags)})",
            )
        if flushed:
            return SearchCacheClearResult(
                skipped=False, tags=tags, tag_flush_ok=False,
                message=f"Search cache cleared by {flushed.summary()}",
            )

        result = SearchCacheClearResult(
            skipped=False, tags=tags, tag_flush_ok=False, message="",
        )
        for pattern in SEARCH_KEY_PATTERNS:
            try:
                self.cache_service.forget_pattern(SEARCH_COMPONENT, pattern)
                result.patterns_cleared.append(pattern)
            except CacheStoreError as e:
                logger.debug(f"Ignoring failed search cache pattern {pattern}: {e}")
                result.patterns_failed.append(pattern)

        result.message = (
            f"Search cache cleared by key pattern "
            f"({len(result.patterns_cleared)} cleared, {len(result.patterns_failed)} failed)"
        )
        return result
