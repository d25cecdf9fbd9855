"""Tests for CacheClearer selector resolution and per-item accounting"""
from unittest.mock import MagicMock

from cmsmaint.cache.cache_service import CacheService, FlushResult
from cmsmaint.config import CacheConfig
from cmsmaint.operations.cache_clearer import CacheClearer


def mock_cache(result=None):
    cache = MagicMock(spec=CacheService)
    cache.config = CacheConfig()
    cache.flush_by_tags.return_value = result or FlushResult(tags=[], removed=0)
    return cache


class TestComponents:

    def test_users_component_flushes_mapped_tags_once(self):
        cache = mock_cache()
        result = CacheClearer(cache).clear(components=["users"])

        cache.flush_by_tags.assert_called_once_with(["users", "permissions"])
        assert result.summary() == "Cleared: 1, Failed: 0"
        assert result.success

    def test_unknown_component_is_item_failure(self):
        cache = mock_cache()
        result = CacheClearer(cache).clear(components=["bogus"])

        cache.flush_by_tags.assert_not_called()
        assert result.summary() == "Cleared: 0, Failed: 1"
        assert not result.success

    def test_unknown_component_does_not_stop_batch(self):
        cache = mock_cache()
        result = CacheClearer(cache).clear(components=["bogus", "roles"])

        assert result.cleared == 1
        assert result.failed == 1
        cache.flush_by_tags.assert_called_once_with(["roles", "permissions"])

    def test_degraded_flush_is_reported_as_warning(self):
        degraded = FlushResult(tags=["plugins", "discovery"], fallback=True, patterns_failed=2)
        result = CacheClearer(mock_cache(degraded)).clear(components=["plugins"])

        item = result.items[0]
        assert not item.success
        assert item.degraded
        assert "0 cleared, 2 failed" in item.message


class TestTagsAndAll:

    def test_one_flush_per_tag(self):
        cache = mock_cache()
        result = CacheClearer(cache).clear(tags=["permissions", "plugins"])

        assert [c.args[0] for c in cache.flush_by_tags.call_args_list] == [
            ["permissions"], ["plugins"]
        ]
        assert result.cleared == 2

    def test_unknown_tag_fails(self):
        result = CacheClearer(mock_cache()).clear(tags=["nonsense"])
        assert result.summary() == "Cleared: 0, Failed: 1"

    def test_precedence_all_then_tags_then_components(self):
        cache = mock_cache()
        cache.clear_all.return_value = True
        clearer = CacheClearer(cache)

        assert clearer.clear(all_caches=True, tags=["users"], components=["roles"]).selector == "all"
        assert clearer.clear(tags=["users"], components=["roles"]).selector == "tags"
        assert clearer.clear() is None

    def test_clear_all_failure(self):
        cache = mock_cache()
        cache.clear_all.return_value = False
        result = CacheClearer(cache).clear_all()
        assert result.failed == 1


class TestAgainstRealStore:

    def test_component_clear_invalidates_entries(self, cache_service):
        cache_service.put('users', 'user_settings', {'x': 1}, {'user_id': 1})
        cache_service.put('content', 'published_content', [])

        result = CacheClearer(cache_service).clear(components=["users"])

        assert result.success
        assert cache_service.get('users', 'user_settings', {'user_id': 1}) is None
        assert cache_service.get('content', 'published_content') == []
