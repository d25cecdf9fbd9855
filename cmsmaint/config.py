"""
Configuration for the CMS maintenance toolkit
"""
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

# Component -> cache tags. Also the selector table for cache clearing.
COMPONENT_TAGS = {
    "users": ["users", "permissions"],
    "roles": ["roles", "permissions"],
    "plugins": ["plugins", "discovery"],
    "themes": ["themes", "discovery"],
    "content": ["content", "posts"],
    "queries": ["queries", "database"],
    "settings": ["settings", "configuration"],
}

# Every tag owned by the CMS (clear_all on tag-capable stores)
ALL_CMS_TAGS = [
    "users", "roles", "permissions", "plugins", "themes",
    "content", "queries", "settings", "configuration", "discovery",
]

CACHE_DRIVERS = ("array", "database", "file")


def _default_component_keys() -> Dict[str, Dict[str, str]]:
    return {
        "users": {
            "user_permissions": "user_permissions_{user_id}",
            "user_settings": "user_settings_{user_id}",
            "user_capabilities": "user_capabilities_{user_id}",
        },
        "roles": {
            "role_capabilities": "role_capabilities_{role_id}_{capability}",
            "all_roles": "all_roles",
            "role_users": "role_users_{role_id}",
        },
        "plugins": {
            "all_installed": "plugins_all_installed",
            "active_plugins": "plugins_active",
            "plugin_instance": "plugin_instance_{slug}",
            "plugin_metadata": "plugin_metadata_{slug}",
        },
        "themes": {
            "all_themes": "themes_all",
            "active_theme": "theme_active",
            "theme_metadata": "theme_metadata_{slug}",
        },
        "content": {
            "published_content": "content_published",
            "content_by_type": "content_type_{type}",
            "content_type": "content_type_{type}",
            "content_item": "content_item_{id}",
            "content_meta": "content_meta_{id}",
            "content_hierarchy": "content_hierarchy_{parent_id}",
        },
        "queries": {
            "query_result": "query_{query_hash}",
            "model_count": "model_count_{model}_{conditions_hash}",
        },
        "settings": {
            "all_settings": "settings_all",
            "setting_value": "setting_{key}",
            "settings_by_type": "settings_type_{type}",
        },
        "search": {},
    }


_COMPONENT_TTLS = {
    "users": 1800,
    "roles": 7200,
    "plugins": 14400,
    "themes": 14400,
    "content": 1800,
    "queries": 900,
    "settings": 3600,
    "search": 3600,
}


@dataclass
class DatabaseConfig:
    """SQLite database configuration"""
    path: str = "data/cms.db"
    busy_timeout_ms: int = 5000  # Wait for writers holding the database lock


@dataclass
class IndexingConfig:
    """Search indexing configuration"""
    batch_size: int = 100
    auto_index: bool = True
    indexable_models: List[str] = field(default_factory=lambda: ["content", "term"])


@dataclass
class SearchCacheConfig:
    """Search result cache configuration"""
    enabled: bool = True
    ttl: int = 3600
    tags: List[str] = field(default_factory=lambda: ["cms", "search"])


@dataclass
class AnalyticsConfig:
    """Search analytics retention"""
    retention_days: int = 365
    stats_window_days: int = 30
    popular_queries_limit: int = 5


@dataclass
class SearchConfig:
    """Search subsystem configuration"""
    enabled: bool = True
    analytics_enabled: bool = True
    indexing: IndexingConfig = field(default_factory=IndexingConfig)
    cache: SearchCacheConfig = field(default_factory=SearchCacheConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)


@dataclass
class ComponentCacheConfig:
    """Per-component cache settings (users, roles, plugins, ...)"""
    enabled: bool = True
    ttl: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    keys: Dict[str, str] = field(default_factory=dict)


def _default_components() -> Dict[str, ComponentCacheConfig]:
    keys = _default_component_keys()
    components = {}
    for name, key_map in keys.items():
        tags = COMPONENT_TAGS.get(name, ["cms", "search"] if name == "search" else [])
        components[name] = ComponentCacheConfig(
            ttl=_COMPONENT_TTLS.get(name),
            tags=list(tags),
            keys=dict(key_map),
        )
    return components


@dataclass
class WarmingConfig:
    """Cache warming configuration"""
    enabled: bool = True
    chunk_size: int = 100
    delay_between_chunks: int = 100  # milliseconds
    items: List[str] = field(default_factory=lambda: [
        "all_roles",
        "all_settings",
        "all_installed_plugins",
        "active_plugins",
        "published_content",
        "content_types",
    ])


@dataclass
class MonitoringConfig:
    """Cache monitoring and debug logging"""
    log_hits: bool = False
    log_misses: bool = False
    log_invalidations: bool = True


def _default_invalidation() -> Dict[str, Dict[str, List[str]]]:
    rules = {
        "User": ["users", "permissions"],
        "Role": ["roles", "permissions"],
        "Content": ["content"],
        "Plugin": ["plugins", "discovery"],
        "Setting": ["settings", "configuration"],
    }
    return {
        model: {"created": list(tags), "updated": list(tags), "deleted": list(tags)}
        for model, tags in rules.items()
    }


@dataclass
class CacheConfig:
    """CMS cache configuration"""
    enabled: bool = True
    driver: str = "database"  # array | database | file
    prefix: str = "cms_framework"
    default_ttl: int = 3600  # 0 = never expires
    path: str = "data/cache"  # file driver directory
    components: Dict[str, ComponentCacheConfig] = field(default_factory=_default_components)
    warming: WarmingConfig = field(default_factory=WarmingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    invalidation: Dict[str, Dict[str, List[str]]] = field(default_factory=_default_invalidation)


@dataclass
class LockConfig:
    """Advisory lock configuration for reindex/cleanup runs"""
    enabled: bool = True
    ttl_seconds: int = 3600


@dataclass
class Config:
    """Main configuration container"""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    locks: LockConfig = field(default_factory=LockConfig)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a value by dotted key, e.g. 'search.indexing.batch_size'

        Cache component settings resolve without the 'components' segment,
        so 'cache.users.ttl' works as well as 'cache.components.users.ttl'.
        """
        node: Any = self
        for part in key.split("."):
            node = _step(node, part)
            if node is _MISSING:
                return default
        return node

    @classmethod
    def from_env(cls) -> 'Config':
        """Create config from environment - delegates to EnvironmentConfigLoader"""
        from cmsmaint.environment_config_loader import EnvironmentConfigLoader
        return EnvironmentConfigLoader().load()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """Create config from an optional YAML file overlaid by environment"""
        from cmsmaint.environment_config_loader import EnvironmentConfigLoader
        return EnvironmentConfigLoader().load(config_path)


_MISSING = object()


def _step(node: Any, part: str) -> Any:
    if isinstance(node, dict):
        return node.get(part, _MISSING)
    if is_dataclass(node):
        names = {f.name for f in fields(node)}
        if part in names:
            return getattr(node, part)
        components = getattr(node, "components", None)
        if isinstance(components, dict) and part in components:
            return components[part]
    return _MISSING
