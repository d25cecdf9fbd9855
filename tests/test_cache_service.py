"""Tests for CacheService

Tests for:
- Deterministic component keys
- Hit/miss/write/invalidation counters
- Disabled-cache bypass
- Tag flush completeness and the key-pattern fallback
"""
import pytest
from unittest.mock import MagicMock

from cmsmaint.cache.cache_service import CacheService, CacheStats
from cmsmaint.cache.stores import ArrayStore, FileStore
from cmsmaint.config import CacheConfig
from cmsmaint.errors import CacheStoreError, ValidationError


class TestKeys:

    def test_key_uses_component_template(self, cache_service):
        key = cache_service.get_key('users', 'user_permissions', {'user_id': 7})
        assert key == "cms_framework_users_user_permissions_7"

    def test_unknown_operation_uses_operation_name(self, cache_service):
        assert cache_service.get_key('roles', 'custom') == "cms_framework_roles_custom"

    def test_extra_params_change_key(self, cache_service):
        first = cache_service.get_key('queries', 'custom', {'page': 1})
        second = cache_service.get_key('queries', 'custom', {'page': 2})
        assert first != second
        assert first == cache_service.get_key('queries', 'custom', {'page': 1})

    def test_missing_placeholder_param_is_validation_error(self, cache_service):
        with pytest.raises(ValidationError):
            cache_service.get_key('content', 'content_item')


class TestGetPut:

    def test_miss_then_hit_counts(self, cache_service):
        assert cache_service.get('roles', 'all_roles') is None
        assert cache_service.put('roles', 'all_roles', ['admin'])
        assert cache_service.get('roles', 'all_roles') == ['admin']

        assert cache_service.get_stats() == {
            'hits': 1, 'misses': 1, 'writes': 1, 'invalidations': 0
        }

    def test_put_attaches_component_tags(self):
        store = MagicMock()
        service = CacheService(store, CacheConfig())
        service.put('users', 'user_settings', {'a': 1}, {'user_id': 3})

        _, kwargs = store.put.call_args
        assert kwargs['tags'] == ['users', 'permissions']
        assert kwargs['ttl'] == 1800

    def test_store_write_failure_returns_false(self):
        store = MagicMock()
        store.put.side_effect = CacheStoreError("down")
        service = CacheService(store, CacheConfig())

        assert service.put('roles', 'all_roles', []) is False
        assert service.get_stats()['writes'] == 0

    def test_remember_computes_once(self, cache_service):
        callback = MagicMock(return_value=42)
        assert cache_service.remember('settings', 'all_settings', callback) == 42
        assert cache_service.remember('settings', 'all_settings', callback) == 42
        callback.assert_called_once()

    def test_stats_are_injected_and_resettable(self):
        stats = CacheStats()
        service = CacheService(ArrayStore(), CacheConfig(), stats)
        service.put('roles', 'all_roles', [])
        assert stats.writes == 1

        service.reset_stats()
        assert stats.as_dict() == {'hits': 0, 'misses': 0, 'writes': 0, 'invalidations': 0}


class TestDisabledCache:

    @pytest.fixture
    def disabled(self):
        store = ArrayStore()
        return CacheService(store, CacheConfig(enabled=False)), store

    def test_put_returns_false_and_stores_nothing(self, disabled):
        service, store = disabled
        assert service.put('roles', 'all_roles', ['admin']) is False
        assert store.keys() == []

    def test_get_always_misses_without_counting(self, disabled):
        service, store = disabled
        store.put("cms_framework_roles_all_roles", ['admin'])

        assert service.get('roles', 'all_roles', default='none') == 'none'
        assert service.get_stats()['misses'] == 0

    def test_forced_put_writes(self, disabled):
        service, store = disabled
        assert service.put('roles', 'all_roles', ['admin'], force=True)
        assert store.keys() == ["cms_framework_roles_all_roles"]

    def test_component_toggle(self):
        config = CacheConfig()
        config.components['users'].enabled = False
        service = CacheService(ArrayStore(), config)

        assert service.is_enabled()
        assert not service.is_enabled_for('users')
        assert service.put('users', 'user_settings', {}, {'user_id': 1}) is False


class TestFlushByTags:

    def test_flush_removes_every_tagged_entry(self, cache_service):
        cache_service.put('users', 'user_permissions', ['edit'], {'user_id': 1})
        cache_service.put('roles', 'all_roles', ['admin'])
        cache_service.put('plugins', 'active_plugins', ['seo'])

        result = cache_service.flush_by_tags(['permissions'])

        assert result
        assert result.removed == 2
        assert cache_service.get('users', 'user_permissions', {'user_id': 1}) is None
        assert cache_service.get('roles', 'all_roles') is None
        assert cache_service.get('plugins', 'active_plugins') == ['seo']
        assert cache_service.get_stats()['invalidations'] == 2

    def test_unknown_removed_count_counts_one(self):
        store = MagicMock()
        store.supports_tags = True
        store.tags.return_value.flush.return_value = None
        service = CacheService(store, CacheConfig())

        result = service.flush_by_tags(['users'])

        assert result
        assert service.get_stats()['invalidations'] == 1

    def test_store_without_tags_falls_back_to_patterns(self, tmp_path):
        service = CacheService(FileStore(str(tmp_path / "cache")), CacheConfig(driver="file"))
        service.put('users', 'user_settings', {'theme': 'dark'}, {'user_id': 1})
        service.put('roles', 'all_roles', ['admin'])
        service.put('settings', 'all_settings', {})

        result = service.flush_by_tags(['permissions'])

        assert result.fallback
        assert result.patterns_cleared == 2
        assert service.get('users', 'user_settings', {'user_id': 1}) is None
        assert service.get('roles', 'all_roles') is None
        assert service.get('settings', 'all_settings') == {}

    def test_tag_flush_error_falls_back(self):
        store = MagicMock()
        store.supports_tags = True
        store.tags.return_value.flush.side_effect = CacheStoreError("tags broken")
        store.forget_pattern.return_value = 3
        service = CacheService(store, CacheConfig())

        result = service.flush_by_tags(['plugins'])

        assert result
        assert result.fallback
        assert result.error == "tags broken"
        store.forget_pattern.assert_called_once_with("cms_framework_plugins_*")

    def test_all_patterns_failing_is_degraded_not_raised(self):
        store = MagicMock()
        store.supports_tags = False
        store.forget_pattern.side_effect = CacheStoreError("unreachable")
        service = CacheService(store, CacheConfig())

        result = service.flush_by_tags(['discovery'])

        assert not result
        assert result.degraded
        assert result.patterns_cleared == 0
        assert result.patterns_failed == 2
        assert "0 cleared, 2 failed" in result.summary()


class TestClearAllAndInfo:

    def test_clear_all_removes_untagged_entries(self, cache_service):
        cache_service.put('roles', 'all_roles', [])
        cache_service.store.put("cms_framework_misc_entry", 1)
        cache_service.store.put("other_app_entry", 1)

        assert cache_service.clear_all()
        assert cache_service.store.keys() == ["other_app_entry"]

    def test_invalidate_for_model(self, cache_service):
        cache_service.put('settings', 'all_settings', {'a': 1})
        result = cache_service.invalidate_for_model('Setting', 'updated')

        assert result
        assert cache_service.get('settings', 'all_settings') is None
        assert cache_service.invalidate_for_model('Unknown', 'updated') is None

    def test_get_info(self, cache_service):
        assert cache_service.get_info() == {
            'enabled': True,
            'driver': 'array',
            'prefix': 'cms_framework',
            'store_class': 'ArrayStore',
            'supports_tags': True,
        }
