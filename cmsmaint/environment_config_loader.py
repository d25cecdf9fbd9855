"""
Environment configuration loader.

Builds Config from defaults, an optional YAML file, and CMS_* environment
variables (highest precedence).
"""
import os
from pathlib import Path
from typing import List, Optional

import yaml

from cmsmaint.config import (
    AnalyticsConfig, CacheConfig, ComponentCacheConfig, Config, DatabaseConfig,
    IndexingConfig, LockConfig, MonitoringConfig, SearchCacheConfig,
    SearchConfig, WarmingConfig
)
from cmsmaint.config_validator import ConfigValidationError

DEFAULT_CONFIG_PATHS = [
    Path("config/cms.yaml"),
    Path("/app/config/cms.yaml"),
]


class EnvironmentConfigLoader:
    """Loads configuration from YAML and environment variables.

    Single Responsibility: configuration source access.
    """

    def __init__(self, environ=None):
        self.environ = os.environ if environ is None else environ

    def load(self, config_path: Optional[Path] = None) -> Config:
        """Create Config from YAML (if found) overlaid by environment"""
        path = self._resolve_path(config_path)
        data = self._read_yaml(path)
        try:
            config = ConfigDictParser().parse(data)
        except (ValueError, TypeError, AttributeError) as e:
            raise ConfigValidationError(f"Invalid configuration in {path}: {e}") from e
        self._apply_env(config)
        return config

    def _resolve_path(self, config_path: Optional[Path]) -> Optional[Path]:
        """Explicit path, then CMS_CONFIG_FILE, then default locations"""
        if config_path is not None:
            return Path(config_path)
        env_path = self.environ.get("CMS_CONFIG_FILE")
        if env_path:
            return Path(env_path)
        for path in DEFAULT_CONFIG_PATHS:
            if path.exists():
                return path
        return None

    def _read_yaml(self, path: Optional[Path]) -> dict:
        if path is None:
            return {}
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigValidationError(f"Invalid YAML in {path}: {e}") from e
        if data is not None and not isinstance(data, dict):
            raise ConfigValidationError(f"Invalid configuration in {path}: expected a mapping")
        return data or {}

    def _apply_env(self, config: Config) -> None:
        self._apply_database_env(config.database)
        self._apply_search_env(config.search)
        self._apply_cache_env(config.cache)
        config.locks.enabled = self._get_bool("CMS_LOCKS_ENABLED", config.locks.enabled)
        config.locks.ttl_seconds = self._get_int("CMS_LOCK_TTL", config.locks.ttl_seconds)

    def _apply_database_env(self, database: DatabaseConfig) -> None:
        database.path = self._get_optional("CMS_DATABASE_PATH", database.path)
        database.busy_timeout_ms = self._get_int("CMS_DATABASE_BUSY_TIMEOUT", database.busy_timeout_ms)

    def _apply_search_env(self, search: SearchConfig) -> None:
        search.enabled = self._get_bool("CMS_SEARCH_ENABLED", search.enabled)
        search.analytics_enabled = self._get_bool("CMS_SEARCH_ANALYTICS_ENABLED", search.analytics_enabled)
        search.indexing.batch_size = self._get_int("CMS_SEARCH_INDEX_BATCH_SIZE", search.indexing.batch_size)
        search.indexing.auto_index = self._get_bool("CMS_SEARCH_AUTO_INDEX", search.indexing.auto_index)
        search.indexing.indexable_models = self._get_list(
            "CMS_SEARCH_INDEXABLE_MODELS", search.indexing.indexable_models
        )
        search.cache.enabled = self._get_bool("CMS_SEARCH_CACHE_ENABLED", search.cache.enabled)
        search.cache.ttl = self._get_int("CMS_SEARCH_CACHE_TTL", search.cache.ttl)
        search.analytics.retention_days = self._get_int(
            "CMS_SEARCH_ANALYTICS_RETENTION", search.analytics.retention_days
        )

    def _apply_cache_env(self, cache: CacheConfig) -> None:
        cache.enabled = self._get_bool("CMS_CACHE_ENABLED", cache.enabled)
        cache.driver = self._get_optional("CMS_CACHE_DRIVER", cache.driver)
        cache.prefix = self._get_optional("CMS_CACHE_PREFIX", cache.prefix)
        cache.default_ttl = self._get_int("CMS_CACHE_DEFAULT_TTL", cache.default_ttl)
        cache.path = self._get_optional("CMS_CACHE_PATH", cache.path)

        for name, component in cache.components.items():
            env_name = name.upper()
            component.enabled = self._get_bool(f"CMS_CACHE_{env_name}_ENABLED", component.enabled)
            if f"CMS_CACHE_{env_name}_TTL" in self.environ:
                component.ttl = self._get_int(f"CMS_CACHE_{env_name}_TTL", 0)

        warming = cache.warming
        warming.enabled = self._get_bool("CMS_CACHE_WARMING_ENABLED", warming.enabled)
        warming.chunk_size = self._get_int("CMS_CACHE_WARMING_CHUNK_SIZE", warming.chunk_size)
        warming.delay_between_chunks = self._get_int("CMS_CACHE_WARMING_DELAY", warming.delay_between_chunks)

        monitoring = cache.monitoring
        monitoring.log_hits = self._get_bool("CMS_CACHE_LOG_HITS", monitoring.log_hits)
        monitoring.log_misses = self._get_bool("CMS_CACHE_LOG_MISSES", monitoring.log_misses)
        monitoring.log_invalidations = self._get_bool(
            "CMS_CACHE_LOG_INVALIDATIONS", monitoring.log_invalidations
        )

    def _get_optional(self, key: str, default: str) -> str:
        """Get optional string environment variable"""
        return self.environ.get(key, default)

    def _get_bool(self, key: str, default: bool) -> bool:
        """Get boolean environment variable"""
        value = self.environ.get(key, str(default).lower())
        return value.lower() in ("true", "1", "yes", "on")

    def _get_int(self, key: str, default: int) -> int:
        """Get integer environment variable"""
        value = self.environ.get(key, str(default))
        try:
            return int(value)
        except ValueError:
            raise ConfigValidationError(f"{key} must be an integer, got '{value}'") from None

    def _get_list(self, key: str, default: List[str]) -> List[str]:
        """Get comma-separated list environment variable"""
        value = self.environ.get(key)
        if value is None:
            return list(default)
        return [item.strip() for item in value.split(",") if item.strip()]


class ConfigDictParser:
    """Creates Config from a dictionary (parsed YAML)"""

    def parse(self, data: dict) -> Config:
        return Config(
            database=self._database(data.get("database") or {}),
            search=self._search(data.get("search") or {}),
            cache=self._cache(data.get("cache") or {}),
            locks=self._locks(data.get("locks") or {}),
        )

    def _database(self, data: dict) -> DatabaseConfig:
        defaults = DatabaseConfig()
        return DatabaseConfig(
            path=str(data.get("path", defaults.path)),
            busy_timeout_ms=int(data.get("busy_timeout_ms", defaults.busy_timeout_ms)),
        )

    def _search(self, data: dict) -> SearchConfig:
        indexing_data = data.get("indexing") or {}
        cache_data = data.get("cache") or {}
        analytics_data = data.get("analytics") or {}

        indexing = IndexingConfig()
        cache = SearchCacheConfig()
        analytics = AnalyticsConfig()

        return SearchConfig(
            enabled=bool(data.get("enabled", True)),
            analytics_enabled=bool(data.get("analytics_enabled", True)),
            indexing=IndexingConfig(
                batch_size=int(indexing_data.get("batch_size", indexing.batch_size)),
                auto_index=bool(indexing_data.get("auto_index", indexing.auto_index)),
                indexable_models=list(indexing_data.get("indexable_models", indexing.indexable_models)),
            ),
            cache=SearchCacheConfig(
                enabled=bool(cache_data.get("enabled", cache.enabled)),
                ttl=int(cache_data.get("ttl", cache.ttl)),
                tags=list(cache_data.get("tags", cache.tags)),
            ),
            analytics=AnalyticsConfig(
                retention_days=int(analytics_data.get("retention_days", analytics.retention_days)),
                stats_window_days=int(analytics_data.get("stats_window_days", analytics.stats_window_days)),
                popular_queries_limit=int(
                    analytics_data.get("popular_queries_limit", analytics.popular_queries_limit)
                ),
            ),
        )

    def _cache(self, data: dict) -> CacheConfig:
        config = CacheConfig()
        config.enabled = bool(data.get("enabled", config.enabled))
        config.driver = str(data.get("driver", config.driver))
        config.prefix = str(data.get("prefix", config.prefix))
        config.default_ttl = int(data.get("default_ttl", config.default_ttl))
        config.path = str(data.get("path", config.path))

        for name, component_data in (data.get("components") or {}).items():
            config.components[name] = self._component(config.components.get(name), component_data or {})

        warming_data = data.get("warming") or {}
        config.warming = WarmingConfig(
            enabled=bool(warming_data.get("enabled", config.warming.enabled)),
            chunk_size=int(warming_data.get("chunk_size", config.warming.chunk_size)),
            delay_between_chunks=int(
                warming_data.get("delay_between_chunks", config.warming.delay_between_chunks)
            ),
            items=list(warming_data.get("items", config.warming.items)),
        )

        monitoring_data = data.get("monitoring") or {}
        config.monitoring = MonitoringConfig(
            log_hits=bool(monitoring_data.get("log_hits", config.monitoring.log_hits)),
            log_misses=bool(monitoring_data.get("log_misses", config.monitoring.log_misses)),
            log_invalidations=bool(
                monitoring_data.get("log_invalidations", config.monitoring.log_invalidations)
            ),
        )

        if "invalidation" in data:
            config.invalidation = {
                model: {event: list(tags) for event, tags in (events or {}).items()}
                for model, events in (data["invalidation"] or {}).items()
            }
        return config

    def _component(self, base: Optional[ComponentCacheConfig], data: dict) -> ComponentCacheConfig:
        base = base or ComponentCacheConfig()
        keys = dict(base.keys)
        keys.update(data.get("keys") or {})
        return ComponentCacheConfig(
            enabled=bool(data.get("enabled", base.enabled)),
            ttl=data.get("ttl", base.ttl),
            tags=list(data.get("tags", base.tags)),
            keys=keys,
        )

    def _locks(self, data: dict) -> LockConfig:
        defaults = LockConfig()
        return LockConfig(
            enabled=bool(data.get("enabled", defaults.enabled)),
            ttl_seconds=int(data.get("ttl_seconds", defaults.ttl_seconds)),
        )
