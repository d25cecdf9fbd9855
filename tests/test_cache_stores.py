"""Tests for cache stores (array, database, file)"""
import pytest

from cmsmaint.cache.stores import ArrayStore, DatabaseStore, FileStore, create_store
from cmsmaint.errors import CacheStoreError


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture(params=["array", "database"])
def tagged_store(request, conn):
    clock = FakeClock()
    if request.param == "array":
        return ArrayStore(time_source=clock), clock
    return DatabaseStore(conn, time_source=clock), clock


class TestTaggedStores:

    def test_put_get_forget(self, tagged_store):
        store, _ = tagged_store
        store.put("k1", {"a": [1, 2]}, tags=["users"])
        assert store.get("k1") == {"a": [1, 2]}
        assert store.forget("k1") is True
        assert store.get("k1") is None
        assert store.forget("k1") is False

    def test_tag_flush_counts_distinct_entries(self, tagged_store):
        store, _ = tagged_store
        store.put("a", 1, tags=["users", "permissions"])
        store.put("b", 2, tags=["roles", "permissions"])
        store.put("c", 3, tags=["plugins"])

        assert store.tags(["users", "permissions"]).flush() == 2
        assert store.get("a") is None
        assert store.get("b") is None
        assert store.get("c") == 3

    def test_ttl_expiry(self, tagged_store):
        store, clock = tagged_store
        store.put("short", "v", ttl=10)
        store.put("forever", "v", ttl=0)

        clock.now += 11
        assert store.get("short") is None
        assert store.get("forever") == "v"

    def test_forget_pattern(self, tagged_store):
        store, _ = tagged_store
        store.put("cms_users_1", 1)
        store.put("cms_users_2", 2)
        store.put("cms_roles_1", 3)

        assert store.forget_pattern("cms_users_*") == 2
        assert store.get("cms_roles_1") == 3

    def test_flush_everything(self, tagged_store):
        store, _ = tagged_store
        store.put("a", 1, tags=["x"])
        store.put("b", 2)
        assert store.flush() == 2
        assert store.get("a") is None


class TestDatabaseStore:

    def test_entries_persist_across_store_instances(self, conn):
        DatabaseStore(conn).put("key", [1], tags=["content"])
        assert DatabaseStore(conn).get("key") == [1]

    def test_flush_removes_tag_rows(self, conn):
        store = DatabaseStore(conn)
        store.put("key", 1, tags=["content", "posts"])
        store.tags(["posts"]).flush()

        assert conn.execute("SELECT COUNT(*) FROM cache_tags").fetchone()[0] == 0

    def test_unserializable_value_raises_store_error(self, conn):
        with pytest.raises(CacheStoreError):
            DatabaseStore(conn).put("key", object())


class TestFileStore:

    def test_no_tag_support(self, tmp_path):
        store = FileStore(str(tmp_path))
        assert store.supports_tags is False
        with pytest.raises(CacheStoreError):
            store.tags(["users"])

    def test_put_get_and_pattern(self, tmp_path):
        store = FileStore(str(tmp_path / "cache"))
        store.put("cms_users_1", {"x": 1}, tags=["ignored"])
        store.put("cms_roles_1", 2)

        assert store.get("cms_users_1") == {"x": 1}
        assert store.forget_pattern("cms_users_*") == 1
        assert store.get("cms_users_1") is None
        assert store.get("cms_roles_1") == 2

    def test_missing_directory_is_empty(self, tmp_path):
        store = FileStore(str(tmp_path / "absent"))
        assert store.get("anything") is None
        assert store.flush() == 0


class TestCreateStore:

    def test_known_drivers(self, conn, tmp_path):
        assert isinstance(create_store("array"), ArrayStore)
        assert isinstance(create_store("database", conn=conn), DatabaseStore)
        assert isinstance(create_store("file", path=str(tmp_path)), FileStore)

    def test_unknown_driver(self):
        with pytest.raises(CacheStoreError):
            create_store("redis")
