"""
Pytest configuration and shared fixtures

Common fixtures used across multiple test files are defined here.
Every database fixture builds the full schema in a temporary file.
"""
import json
import os
import tempfile
from datetime import datetime

import pytest

from cmsmaint.cache.cache_service import CacheService, CacheStats
from cmsmaint.cache.stores import ArrayStore
from cmsmaint.config import CacheConfig, Config, DatabaseConfig
from cmsmaint.ingestion.database import DatabaseConnection, SchemaManager

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0)


# =============================================================================
# Environment isolation
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep CMS_* variables and config/cms.yaml from leaking into tests"""
    for name in list(os.environ):
        if name.startswith("CMS_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def temp_db():
    """Create temporary database file with the full schema"""
    fd, path = tempfile.mkstemp(suffix='.db')
    db = DatabaseConnection(DatabaseConfig(path=path))
    conn = db.connect()
    SchemaManager(conn).create_schema()
    db.close()

    yield path

    os.close(fd)
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(path + suffix):
            os.unlink(path + suffix)


@pytest.fixture
def conn(temp_db):
    """Open connection (sqlite3.Row rows, WAL) to the temporary database"""
    db = DatabaseConnection(DatabaseConfig(path=temp_db))
    connection = db.connect()
    yield connection
    db.close()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def config(temp_db):
    config = Config()
    config.database.path = temp_db
    return config


@pytest.fixture
def cache_service():
    """CacheService over an in-memory tagged store"""
    return CacheService(ArrayStore(), CacheConfig(driver="array"), CacheStats())


# =============================================================================
# Row helpers
# =============================================================================

def insert_content(conn, title="Post", content="", slug=None, type="post",
                   status="published", published_at="2024-01-01 00:00:00", meta=None):
    cursor = conn.execute(
        """
        INSERT INTO content (title, content, slug, type, status, published_at, meta)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (title, content, slug, type, status, published_at, json.dumps(meta) if meta else None)
    )
    conn.commit()
    return cursor.lastrowid


def insert_term(conn, name="Term", slug=None, taxonomy_id=None):
    cursor = conn.execute(
        "INSERT INTO terms (name, slug, taxonomy_id) VALUES (?, ?, ?)",
        (name, slug, taxonomy_id)
    )
    conn.commit()
    return cursor.lastrowid


def insert_analytics(conn, query, searched_at, result_count=1, execution_time_ms=10):
    conn.execute(
        """
        INSERT INTO search_analytics (query, result_count, execution_time_ms, searched_at)
        VALUES (?, ?, ?, ?)
        """,
        (query, result_count, execution_time_ms, searched_at.strftime("%Y-%m-%d %H:%M:%S"))
    )
    conn.commit()
