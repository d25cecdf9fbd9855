# Copyright (c) 2024 CMS Maintenance Contributors
# SPDX-License-Identifier: MIT

"""CMS cache service

Component-aware wrapper over a tagged cache store:
- Deterministic keys from (component, operation, params)
- Component tags attached on every write
- Tag flush with key-pattern fallback for stores without tag support
- Hit/miss/write/invalidation counters held in an injected CacheStats

When the cache is disabled reads always miss and writes are skipped
unless forced. Nothing is counted while disabled.
"""
import hashlib
import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from cmsmaint.cache.stores import CacheStore
from cmsmaint.config import ALL_CMS_TAGS, CacheConfig, ComponentCacheConfig
from cmsmaint.errors import CacheStoreError, ValidationError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass
class CacheStats:
    """Process-lifetime cache counters"""
    hits: int = 0
    misses: int = 0
    writes: int = 0
    invalidations: int = 0

    def reset(self):
        self.hits = 0
        self.misses = 0
        self.writes = 0
        self.invalidations = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class FlushResult:
    """Outcome of flush_by_tags

    Truthy unless the flush degraded to "0 cleared, N failed".
    """
    tags: List[str]
    removed: Optional[int] = None
    fallback: bool = False
    patterns_cleared: int = 0
    patterns_failed: int = 0
    error: Optional[str] = None
    failed_patterns: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.fallback and self.patterns_cleared == 0 and self.patterns_failed > 0

    @property
    def success(self) -> bool:
        return not self.degraded

    def __bool__(self) -> bool:
        return self.success

    def summary(self) -> str:
        if not self.fallback:
            removed = "unknown" if self.removed is None else self.removed
            return f"tags {', '.join(self.tags)}: {removed} entries removed"
        return (
            f"pattern fallback for {', '.join(self.tags)}: "
            f"{self.patterns_cleared} cleared, {self.patterns_failed} failed"
        )


class CacheService:
    """Tag-aware cache facade used by maintenance commands"""

    def __init__(self, store: CacheStore, config: CacheConfig = None,
                 stats: CacheStats = None):
        self.store = store
        self.config = config or CacheConfig()
        self.stats = stats if stats is not None else CacheStats()
        self.prefix = self.config.prefix

    def is_enabled(self) -> bool:
        return bool(self.config.enabled)

    def is_enabled_for(self, component: str) -> bool:
        if not self.is_enabled():
            return False
        return self._component(component).enabled

    def get_key(self, component: str, operation: str, params: Dict = None) -> str:
        """Derive the cache key for a component operation

        The operation resolves through the component's key templates;
        params not used by the template are folded into a digest suffix.
        """
        params = dict(params or {})
        template = self._component(component).keys.get(operation, operation)
        used = set(_PLACEHOLDER.findall(template))
        missing = sorted(used - set(params))
        if missing:
            raise ValidationError(
                f"Cache key '{component}.{operation}' needs params: {', '.join(missing)}"
            )
        key = _PLACEHOLDER.sub(lambda m: str(params[m.group(1)]), template)
        extra = {name: value for name, value in params.items() if name not in used}
        if extra:
            content = json.dumps(extra, sort_keys=True, default=str)
            key = f"{key}_{hashlib.md5(content.encode()).hexdigest()}"
        return f"{self.prefix}_{component}_{key}"

    def get_ttl(self, component: str) -> int:
        ttl = self._component(component).ttl
        return self.config.default_ttl if ttl is None else ttl

    def get_tags(self, component: str) -> List[str]:
        return list(self._component(component).tags)

    def get(self, component: str, operation: str, params: Dict = None, default: Any = None) -> Any:
        if not self.is_enabled_for(component):
            return default

        key = self.get_key(component, operation, params)
        try:
            value = self.store.get(key)
        except CacheStoreError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            self.stats.misses += 1
            return default

        if value is None:
            self.stats.misses += 1
            if self.config.monitoring.log_misses:
                logger.debug(f"Cache miss: {key}")
            return default

        self.stats.hits += 1
        if self.config.monitoring.log_hits:
            logger.debug(f"Cache hit: {key}")
        return value

    def put(self, component: str, operation: str, value: Any, params: Dict = None,
            ttl: Optional[int] = None, force: bool = False) -> bool:
        """Store a value under the component key with the component's tags

        Returns:
            False when the cache is disabled (and not forced) or the store failed
        """
        if not force and not self.is_enabled_for(component):
            return False

        key = self.get_key(component, operation, params)
        ttl = self.get_ttl(component) if ttl is None else ttl
        try:
            self.store.put(key, value, tags=self.get_tags(component), ttl=ttl)
        except CacheStoreError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False

        self.stats.writes += 1
        return True

    def remember(self, component: str, operation: str, callback: Callable[[], Any],
                 params: Dict = None, ttl: Optional[int] = None) -> Any:
        """Return the cached value, computing and storing it on a miss"""
        if not self.is_enabled_for(component):
            return callback()
        value = self.get(component, operation, params)
        if value is None:
            value = callback()
            self.put(component, operation, value, params=params, ttl=ttl)
        return value

    def forget(self, component: str, operation: str, params: Dict = None) -> bool:
        key = self.get_key(component, operation, params)
        try:
            return self.store.forget(key)
        except CacheStoreError as e:
            logger.warning(f"Cache forget failed for {key}: {e}")
            return False

    def forget_pattern(self, component: str, pattern: str = "*") -> int:
        """Remove every key of a component matching a glob suffix

        Raises:
            CacheStoreError: If the store cannot delete
        """
        removed = self.store.forget_pattern(f"{self.prefix}_{component}_{pattern}")
        self.stats.invalidations += removed
        return removed

    def flush_by_tags(self, tags: Iterable[str]) -> FlushResult:
        """Invalidate every entry carrying any of the tags

        Stores without tag support, or whose tag flush fails, fall back to
        deleting the key patterns of every component that uses the tags.
        Individual pattern failures are counted rather than raised.
        """
        tags = list(dict.fromkeys(tags))
        result = FlushResult(tags=tags)

        if self.store.supports_tags:
            try:
                removed = self.store.tags(tags).flush()
            except CacheStoreError as e:
                logger.warning(f"Tag flush failed for {', '.join(tags)}, using key patterns: {e}")
                result.error = str(e)
            else:
                result.removed = removed
                self.stats.invalidations += 1 if removed is None else removed
                self._log_invalidation("tags", ", ".join(tags))
                return result

        return self._flush_by_patterns(tags, result)

    def invalidate_for_model(self, model: str, event: str) -> Optional[FlushResult]:
        """Flush the tags configured for a model event, e.g. ('Role', 'updated')"""
        tags = self.config.invalidation.get(model, {}).get(event, [])
        if not tags:
            return None
        return self.flush_by_tags(tags)

    def clear_all(self) -> bool:
        """Invalidate every CMS-owned entry regardless of tag"""
        try:
            if self.store.supports_tags:
                result = self.flush_by_tags(self._all_tags())
                if not result:
                    return False
            # Sweep untagged keys too
            self.forget_pattern_raw(f"{self.prefix}_*")
        except CacheStoreError as e:
            logger.error(f"Clear all cache failed: {e}")
            return False

        self._log_invalidation("clear_all", self.prefix)
        return True

    def forget_pattern_raw(self, pattern: str) -> int:
        removed = self.store.forget_pattern(pattern)
        self.stats.invalidations += removed
        return removed

    def get_stats(self) -> Dict[str, int]:
        return self.stats.as_dict()

    def reset_stats(self):
        self.stats.reset()

    def get_info(self) -> Dict[str, Any]:
        return {
            'enabled': self.is_enabled(),
            'driver': self.config.driver,
            'prefix': self.prefix,
            'store_class': type(self.store).__name__,
            'supports_tags': self.store.supports_tags,
        }

    def _flush_by_patterns(self, tags: List[str], result: FlushResult) -> FlushResult:
        result.fallback = True
        wanted = set(tags)
        for name, component in self.config.components.items():
            if not wanted.intersection(component.tags):
                continue
            pattern = f"{self.prefix}_{name}_*"
            try:
                self.forget_pattern_raw(pattern)
                result.patterns_cleared += 1
            except CacheStoreError as e:
                logger.warning(f"Pattern delete failed for {pattern}: {e}")
                result.patterns_failed += 1
                result.failed_patterns.append(pattern)

        if result.degraded:
            logger.warning(f"Cache flush degraded: {result.summary()}")
        else:
            self._log_invalidation("patterns", ", ".join(tags))
        return result

    def _all_tags(self) -> List[str]:
        tags = list(ALL_CMS_TAGS)
        for component in self.config.components.values():
            tags.extend(component.tags)
        return list(dict.fromkeys(tags))

    def _component(self, component: str) -> ComponentCacheConfig:
        return self.config.components.get(component) or ComponentCacheConfig()

    def _log_invalidation(self, kind: str, target: str):
        if self.config.monitoring.log_invalidations:
            logger.info(f"Cache invalidated ({kind}): {target}")
