"""CMS cache clearing by selector

Resolves --all, --tags or --components (checked in that order) into
flush operations. Each tag or component is its own item; an unknown or
failed item is counted and the remaining items still run.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from cmsmaint.cache.cache_service import CacheService
from cmsmaint.config import ALL_CMS_TAGS, COMPONENT_TAGS

logger = logging.getLogger(__name__)


@dataclass
class CacheClearItem:
    """One flushed tag, component, or the whole cache"""
    name: str
    success: bool
    message: str
    tags: List[str] = field(default_factory=list)
    degraded: bool = False


@dataclass
class CacheClearResult:
    selector: str
    items: List[CacheClearItem] = field(default_factory=list)

    @property
    def cleared(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.success)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        return f"Cleared: {self.cleared}, Failed: {self.failed}"


class CacheClearer:
    """Clears CMS cache entries by component, tag, or everything"""

    def __init__(self, cache_service: CacheService):
        self.cache_service = cache_service

    def known_tags(self) -> List[str]:
        tags = list(ALL_CMS_TAGS)
        for component in self.cache_service.config.components.values():
            tags.extend(component.tags)
        for component_tags in COMPONENT_TAGS.values():
            tags.extend(component_tags)
        return sorted(set(tags))

    def clear(self, all_caches: bool = False, tags: Optional[List[str]] = None,
              components: Optional[List[str]] = None) -> Optional[CacheClearResult]:
        """Clear by the first selector given

        Returns:
            None when no selector was given
        """
        if all_caches:
            return self.clear_all()
        if tags:
            return self.clear_tags(tags)
        if components:
            return self.clear_components(components)
        return None

    def clear_all(self) -> CacheClearResult:
        result = CacheClearResult(selector="all")
        if self.cache_service.clear_all():
            result.items.append(CacheClearItem("all", True, "All CMS caches cleared"))
        else:
            result.items.append(CacheClearItem("all", False, "Failed to clear all caches"))
        return result

    def clear_tags(self, tags: List[str]) -> CacheClearResult:
        result = CacheClearResult(selector="tags")
        known = set(self.known_tags())
        for tag in tags:
            if tag not in known:
                result.items.append(CacheClearItem(tag, False, f"Unknown tag: {tag}"))
                continue
            result.items.append(self._flush(tag, [tag]))
        return result

    def clear_components(self, components: List[str]) -> CacheClearResult:
        result = CacheClearResult(selector="components")
        for component in components:
            tags = COMPONENT_TAGS.get(component)
            if tags is None:
                available = ", ".join(COMPONENT_TAGS)
                result.items.append(CacheClearItem(
                    component, False, f"Unknown component: {component} (available: {available})"
                ))
                continue
            result.items.append(self._flush(component, tags))
        return result

    def _flush(self, name: str, tags: List[str]) -> CacheClearItem:
        flushed = self.cache_service.flush_by_tags(tags)
        if flushed:
            return CacheClearItem(name, True, f"Cleared {name} ({flushed.summary()})", tags=list(tags))
        logger.warning(f"Cache clear for {name} degraded: {flushed.summary()}")
        return CacheClearItem(
            name, False, f"Warning: {flushed.summary()}", tags=list(tags), degraded=flushed.degraded
        )
