import sqlite3
from pathlib import Path

from cmsmaint.config import DatabaseConfig


class DatabaseConnection:
    """Manages the SQLite connection"""

    def __init__(self, config: DatabaseConfig = None):
        self.config = config or DatabaseConfig()
        self.conn = None

    def connect(self) -> sqlite3.Connection:
        """Establish database connection"""
        self._ensure_parent_dir()
        self.conn = sqlite3.connect(self.config.path)
        self.conn.row_factory = sqlite3.Row
        # Enable WAL mode for better concurrency (allows concurrent reads during writes)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute(f"PRAGMA busy_timeout={int(self.config.busy_timeout_ms)}")
        return self.conn

    def _ensure_parent_dir(self):
        if self.config.path == ":memory:":
            return
        Path(self.config.path).parent.mkdir(parents=True, exist_ok=True)

    def close(self):
        """Close connection"""
        if self.conn:
            self.conn.close()
            self.conn = None


class SchemaManager:
    """Manages database schema"""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def create_schema(self):
        """Create all required tables"""
        self._create_owner_tables()
        self._create_search_indices_table()
        self._create_search_analytics_table()
        self._create_cache_tables()
        self._create_locks_table()
        self.conn.commit()

    def _create_owner_tables(self):
        """Create tables for entities the index and cache read from"""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS content (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                content TEXT,
                slug TEXT,
                type TEXT NOT NULL DEFAULT 'post',
                status TEXT NOT NULL DEFAULT 'draft',
                author_id INTEGER,
                parent_id INTEGER,
                meta TEXT,
                published_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS taxonomies (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS terms (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                slug TEXT,
                taxonomy_id INTEGER,
                parent_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS roles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                slug TEXT UNIQUE,
                capabilities TEXT
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                key TEXT UNIQUE NOT NULL,
                value TEXT,
                type TEXT DEFAULT 'string'
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS plugins (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                slug TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                version TEXT,
                is_active INTEGER NOT NULL DEFAULT 0
            )
        """)

    def _create_search_indices_table(self):
        """Create search_indices table"""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS search_indices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                searchable_type TEXT NOT NULL,
                searchable_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                content TEXT,
                excerpt TEXT,
                keywords TEXT,
                type TEXT,
                status TEXT,
                author_id INTEGER,
                published_at TIMESTAMP,
                relevance_boost REAL NOT NULL DEFAULT 1.0,
                meta_data TEXT,
                indexed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (searchable_type, searchable_id)
            )
        """)
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_search_type_status ON search_indices(type, status)"
        )

    def _create_search_analytics_table(self):
        """Create search_analytics table (append-only query log)"""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS search_analytics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                query TEXT NOT NULL,
                filters TEXT,
                result_count INTEGER NOT NULL DEFAULT 0,
                user_id INTEGER,
                ip_address_hash TEXT,
                user_agent TEXT,
                execution_time_ms INTEGER,
                searched_at TIMESTAMP NOT NULL
            )
        """)
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_analytics_searched_at ON search_analytics(searched_at)"
        )
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_analytics_query ON search_analytics(query)"
        )

    def _create_cache_tables(self):
        """Create tables backing the 'database' cache driver"""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS cache_entries (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS cache_tags (
                tag TEXT NOT NULL,
                key TEXT NOT NULL,
                PRIMARY KEY (tag, key)
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_cache_tags_key ON cache_tags(key)")

    def _create_locks_table(self):
        """Create advisory lock leases table"""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS maintenance_locks (
                name TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                acquired_at REAL NOT NULL,
                expires_at REAL NOT NULL
            )
        """)
