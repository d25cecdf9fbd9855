# Copyright (c) 2024 CMS Maintenance Contributors
# SPDX-License-Identifier: MIT

"""Tests for SearchService reindexing

Tests for:
- Batching and progress callbacks
- Reindex idempotence and stale entry removal
- Per-type failure isolation
- Dry-run estimates
- Advisory lock around reindex_all
"""
import pytest
from unittest.mock import MagicMock

from cmsmaint.config import LockConfig, SearchConfig
from cmsmaint.errors import LockUnavailableError, ReindexError, ValidationError
from cmsmaint.ingestion.search_index_store import SearchIndexEntry, SearchIndexStore
from cmsmaint.services.advisory_lock import AdvisoryLock
from cmsmaint.services.index_extractors import IndexableType, default_indexable_types
from cmsmaint.services.search_service import REINDEX_LOCK, SearchService
from tests.conftest import insert_content, insert_term


@pytest.fixture
def service(conn):
    return SearchService(conn, SearchConfig())


def seed_content(conn, count):
    return [insert_content(conn, f"Post {i}", f"<p>Body {i}</p>", slug=f"post-{i}")
            for i in range(count)]


class TestReindexBatching:

    def test_five_rows_batch_two_reports_running_totals(self, conn, service):
        seed_content(conn, 5)
        callback = MagicMock()
        store = MagicMock(wraps=service.index_store)
        service.index_store = store

        total = service.reindex_all(callback, types=["content"], batch_size=2)

        assert total == 5
        batch_sizes = [len(call.args[0]) for call in store.bulk_replace.call_args_list]
        assert batch_sizes == [2, 2, 1]
        assert [call.args for call in callback.call_args_list] == [
            ("content", 2), ("content", 4), ("content", 5)
        ]

    def test_running_total_spans_types(self, conn, service):
        seed_content(conn, 3)
        insert_term(conn, "News", slug="news")
        seen = []

        total = service.reindex_all(lambda t, n: seen.append((t, n)), batch_size=2)

        assert total == 4
        assert seen == [("content", 2), ("content", 3), ("term", 4)]
        assert service.last_counts == {"content": 3, "term": 1}

    @pytest.mark.parametrize("batch_size", [0, 1001])
    def test_batch_size_bounds(self, service, batch_size):
        with pytest.raises(ValidationError):
            service.reindex_all(batch_size=batch_size)

    def test_unknown_type_is_validation_error(self, service):
        with pytest.raises(ValidationError, match="bogus"):
            service.reindex_all(types=["bogus"])

    def test_types_are_case_insensitive(self, conn, service):
        seed_content(conn, 1)
        assert service.reindex_all(types=["Content"]) == 1


class TestReindexIdempotence:

    def test_two_runs_same_total_no_duplicates(self, conn, service):
        seed_content(conn, 4)
        insert_term(conn, "Tag")

        first = service.reindex_all()
        second = service.reindex_all()

        assert first == second == 5
        duplicates = conn.execute("""
            SELECT searchable_type, searchable_id, COUNT(*) FROM search_indices
            GROUP BY searchable_type, searchable_id HAVING COUNT(*) > 1
        """).fetchall()
        assert duplicates == []

    def test_stale_entries_removed_after_type_completes(self, conn, service):
        ids = seed_content(conn, 3)
        service.reindex_all()
        conn.execute("DELETE FROM content WHERE id = ?", (ids[0],))
        conn.commit()

        assert service.reindex_all() == 2
        assert service.last_stale_removed["content"] == 1
        assert SearchIndexStore(conn).count_by_type("content") == 2


class TestPartialFailure:

    def test_failing_type_does_not_stop_others(self, conn):
        seed_content(conn, 2)
        insert_term(conn, "Tag")
        broken = MagicMock()
        broken.extract.side_effect = RuntimeError("extractor exploded")
        types = default_indexable_types(conn)
        types["content"] = IndexableType("content", "content", broken)
        service = SearchService(conn, SearchConfig(), types=types)

        with pytest.raises(ReindexError) as exc_info:
            service.reindex_all()

        assert exc_info.value.total_indexed == 1
        assert "content" in exc_info.value.failures
        assert SearchIndexStore(conn).count_by_type("term") == 1

    def test_committed_batches_survive_later_failure(self, conn):
        seed_content(conn, 3)
        real = default_indexable_types(conn)["content"].extractor
        calls = {'n': 0}

        def flaky(row):
            calls['n'] += 1
            if calls['n'] == 3:
                raise RuntimeError("boom")
            return real.extract(row)

        extractor = MagicMock()
        extractor.extract.side_effect = flaky
        types = {"content": IndexableType("content", "content", extractor)}
        service = SearchService(conn, SearchConfig(), types=types)

        with pytest.raises(ReindexError) as exc_info:
            service.reindex_all(batch_size=2)

        assert exc_info.value.total_indexed == 2
        assert SearchIndexStore(conn).count() == 2


class TestEstimate:

    def test_estimate_is_pure_read(self, conn, service):
        seed_content(conn, 5)
        insert_term(conn, "Tag")

        estimate = service.estimate_reindex_size(batch_size=2)

        assert estimate == {
            "content": {'count': 5, 'batches': 3},
            "term": {'count': 1, 'batches': 1},
        }
        assert SearchIndexStore(conn).count() == 0

    def test_estimate_for_specific_types(self, conn, service):
        seed_content(conn, 2)
        assert list(service.estimate_reindex_size(types=["term"])) == ["term"]


class TestLocking:

    def test_reindex_refused_while_lock_held(self, conn, service):
        holder = AdvisoryLock(conn, REINDEX_LOCK, owner="other-host:1")
        holder.acquire()

        with pytest.raises(LockUnavailableError):
            service.reindex_all()

    def test_lock_released_after_run(self, conn, service):
        seed_content(conn, 1)
        service.reindex_all()
        assert AdvisoryLock(conn, REINDEX_LOCK).holder() is None

    def test_lock_can_be_disabled(self, conn):
        AdvisoryLock(conn, REINDEX_LOCK, owner="other-host:1").acquire()
        service = SearchService(conn, SearchConfig(), lock_config=LockConfig(enabled=False))
        assert service.reindex_all() == 0


class TestSingleModel:

    def test_index_and_remove_model(self, conn, service):
        content_id = insert_content(conn, "Hello", "World words here", slug="hello")
        row = {'id': content_id, 'title': "Hello", 'content': "World words here",
               'slug': "hello", 'type': "post", 'status': "published"}

        entry = service.index_model("content", row)

        assert isinstance(entry, SearchIndexEntry)
        assert SearchIndexStore(conn).get("content", content_id)['title'] == "Hello"
        assert service.remove_from_index("content", content_id) is True
        assert service.remove_from_index("content", content_id) is False
