"""Tests for owner table access"""
import pytest

from cmsmaint.errors import ValidationError
from cmsmaint.ingestion.entity_repository import EntityRepository, RepositoryRegistry
from tests.conftest import insert_content


class TestChunk:

    def test_chunks_in_id_order(self, conn):
        ids = [insert_content(conn, f"Post {i}") for i in range(5)]
        chunks = list(EntityRepository(conn, "content").chunk(2))

        assert [len(c) for c in chunks] == [2, 2, 1]
        assert [row['id'] for c in chunks for row in c] == ids

    def test_rows_deleted_mid_walk_do_not_shift_pages(self, conn):
        ids = [insert_content(conn, f"Post {i}") for i in range(6)]
        seen = []
        for rows in EntityRepository(conn, "content").chunk(2):
            seen.extend(row['id'] for row in rows)
            if len(seen) == 2:
                conn.execute("DELETE FROM content WHERE id = ?", (ids[0],))
                conn.commit()

        assert seen == ids

    def test_invalid_size(self, conn):
        with pytest.raises(ValidationError):
            list(EntityRepository(conn, "content").chunk(0))


class TestWhere:

    def test_filters_and_counts(self, conn):
        insert_content(conn, "A")
        insert_content(conn, "B", status="draft")
        repo = EntityRepository(conn, "content")

        published = repo.where('status', '=', 'published')

        assert published.count() == 1
        assert repo.count() == 2

    def test_rejects_bad_identifier_and_operator(self, conn):
        repo = EntityRepository(conn, "content")
        with pytest.raises(ValidationError):
            repo.where("status; DROP TABLE content", "=", "x")
        with pytest.raises(ValidationError):
            repo.where("status", "UNION", "x")

    def test_json_columns_are_decoded(self, conn):
        insert_content(conn, "A", meta={'lang': 'en'})
        row = EntityRepository(conn, "content").all()[0]
        assert row['meta'] == {'lang': 'en'}


def test_registry_rejects_unknown_entity(conn):
    with pytest.raises(ValidationError):
        RepositoryRegistry(conn).get("widgets")
