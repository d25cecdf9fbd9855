"""
Configuration validator.

Validates configuration settings early to provide clear error messages
before a command touches the database or cache.
"""
from typing import List

from cmsmaint.config import CACHE_DRIVERS, Config

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 1000


class ConfigValidationError(Exception):
    """Configuration validation failed"""
    pass


class ConfigValidator:
    """Validates configuration settings on startup"""

    def __init__(self, config: Config):
        self.config = config
        self.errors: List[str] = []

    def validate(self) -> None:
        """Validate all configuration settings

        Raises:
            ConfigValidationError: If validation fails
        """
        self.errors = []
        self._validate_database()
        self._validate_search()
        self._validate_cache()
        self._validate_locks()

        if self.errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(
                f"  - {error}" for error in self.errors
            )
            raise ConfigValidationError(error_msg)

    def _validate_database(self) -> None:
        if not self.config.database.path:
            self.errors.append("database.path must not be empty (set CMS_DATABASE_PATH)")
        if self.config.database.busy_timeout_ms < 0:
            self.errors.append("database.busy_timeout_ms must be >= 0")

    def _validate_search(self) -> None:
        indexing = self.config.search.indexing
        if not MIN_BATCH_SIZE <= indexing.batch_size <= MAX_BATCH_SIZE:
            self.errors.append(
                f"search.indexing.batch_size must be between {MIN_BATCH_SIZE} and "
                f"{MAX_BATCH_SIZE}, got {indexing.batch_size}"
            )
        if not indexing.indexable_models:
            self.errors.append("search.indexing.indexable_models must list at least one type")
        if self.config.search.analytics.retention_days < 1:
            self.errors.append("search.analytics.retention_days must be at least 1")
        if self.config.search.cache.ttl < 0:
            self.errors.append("search.cache.ttl must be >= 0")

    def _validate_cache(self) -> None:
        cache = self.config.cache
        if cache.driver not in CACHE_DRIVERS:
            self.errors.append(
                f"cache.driver must be one of {', '.join(CACHE_DRIVERS)}, got '{cache.driver}'"
            )
        if cache.default_ttl < 0:
            self.errors.append("cache.default_ttl must be >= 0")
        for name, component in cache.components.items():
            if component.ttl is not None and component.ttl < 0:
                self.errors.append(f"cache.components.{name}.ttl must be >= 0")
        if cache.warming.chunk_size < 1:
            self.errors.append("cache.warming.chunk_size must be at least 1")
        if cache.warming.delay_between_chunks < 0:
            self.errors.append("cache.warming.delay_between_chunks must be >= 0")

    def _validate_locks(self) -> None:
        if self.config.locks.ttl_seconds < 1:
            self.errors.append("locks.ttl_seconds must be at least 1")
