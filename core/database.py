"""
LitBook - Database Module
SQLite with WAL mode, schema management, and connection handling
"""

import sqlite3
from pathlib import Path
from datetime import datetime
from typing import Optional, List, Tuple
from contextlib import contextmanager

from core.logger import log_success, log_error, log_config, log_section

# Schema version for migrations
SCHEMA_VERSION = 3

# SQL schema definition
SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Books: author_name is denormalized from the user record at publish time
CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    preface TEXT,
    cover_url TEXT NOT NULL DEFAULT '',
    author_id INTEGER NOT NULL,
    author_name TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Chapters: content is a JSON array of verse strings, raw_content keeps the
-- unsplit submission for re-editing. position is 0-based and contiguous.
CREATE TABLE IF NOT EXISTS chapters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    subtitle TEXT,
    raw_content TEXT NOT NULL DEFAULT '',
    content JSON NOT NULL DEFAULT '[]',
    position INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Reading progress: exactly one row per (user, book).
-- chapter_id is intentionally not a foreign key; positions may go stale
-- after a book edit and the reader handles that.
CREATE TABLE IF NOT EXISTS reading_progress (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    chapter_id INTEGER NOT NULL,
    paragraph_index INTEGER NOT NULL CHECK (paragraph_index >= 1),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (user_id, book_id)
);

-- Bookmarks: text is a copy of the verse at bookmark time
CREATE TABLE IF NOT EXISTS bookmarks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    chapter_id INTEGER NOT NULL,
    paragraph_index INTEGER NOT NULL CHECK (paragraph_index >= 1),
    text TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Activity log: append-only
CREATE TABLE IF NOT EXISTS activities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    type TEXT NOT NULL,
    book_id INTEGER REFERENCES books(id) ON DELETE SET NULL,
    comment TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Indexes for efficient queries
CREATE INDEX IF NOT EXISTS idx_chapters_book_position ON chapters(book_id, position);
CREATE UNIQUE INDEX IF NOT EXISTS idx_bookmarks_coordinate
    ON bookmarks(user_id, book_id, chapter_id, paragraph_index);
CREATE INDEX IF NOT EXISTS idx_bookmarks_user_created ON bookmarks(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_progress_user_updated ON reading_progress(user_id, updated_at DESC);
CREATE INDEX IF NOT EXISTS idx_activities_user_created ON activities(user_id, created_at DESC);
"""

# Migration SQL for v1 -> v2 (keep the unsplit chapter text and a subtitle)
MIGRATION_V2_SQL = """
ALTER TABLE chapters ADD COLUMN subtitle TEXT;
ALTER TABLE chapters ADD COLUMN raw_content TEXT NOT NULL DEFAULT '';
"""

# Migration SQL for v2 -> v3 (storage-level backstop for duplicate bookmarks)
# Older databases may already hold duplicates from the check-then-insert race;
# keep the earliest row for each coordinate before adding the index.
MIGRATION_V3_SQL = """
DELETE FROM bookmarks
WHERE id NOT IN (
    SELECT MIN(id) FROM bookmarks
    GROUP BY user_id, book_id, chapter_id, paragraph_index
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_bookmarks_coordinate
    ON bookmarks(user_id, book_id, chapter_id, paragraph_index);
"""


def now_iso() -> str:
    """Timestamp format used for every *_at column written by the app."""
    return datetime.now().isoformat()


def parse_timestamp(value) -> Optional[datetime]:
    """Read a *_at column back. Column defaults use CURRENT_TIMESTAMP format."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def is_foreign_key_violation(error: sqlite3.IntegrityError) -> bool:
    """True when a write referenced a parent row that doesn't exist."""
    return "FOREIGN KEY constraint failed" in str(error)


class Database:
    """SQLite database manager with WAL mode and per-operation connections."""

    def __init__(
        self,
        db_path: Path,
        busy_timeout_ms: int = 10000,
    ):
        """
        Initialize the database.

        Args:
            db_path: Path to the SQLite database file
            busy_timeout_ms: Timeout for busy/locked database
        """
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> bool:
        """
        Initialize the database: create file, set WAL mode, apply schema.

        Returns:
            True if successful, False otherwise
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            log_section("Initializing database", "📁")
            log_config("Path", str(self.db_path), indent=1)

            with self.get_connection() as conn:
                # WAL lets readers proceed while a reconcile transaction writes
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")

                cursor = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
                )
                if cursor.fetchone() is None:
                    conn.executescript(SCHEMA_SQL)
                    conn.execute(
                        "INSERT INTO schema_version (version) VALUES (?)",
                        (SCHEMA_VERSION,)
                    )
                    log_config("Schema", f"Created (v{SCHEMA_VERSION})", indent=1)
                else:
                    cursor = conn.execute(
                        "SELECT MAX(version) FROM schema_version"
                    )
                    current_version = cursor.fetchone()[0] or 0
                    if current_version < SCHEMA_VERSION:
                        self._apply_migrations(conn, current_version)
                    log_config("Schema", f"Version {max(current_version, SCHEMA_VERSION)}", indent=1)

                cursor = conn.execute("PRAGMA journal_mode")
                mode = cursor.fetchone()[0]
                log_config("Mode", f"{mode.upper()} (Write-Ahead Logging)", indent=1)

            log_success("Database ready")
            self._initialized = True
            return True

        except Exception as e:
            log_error(f"Database initialization failed: {e}")
            return False

    def _apply_migrations(self, conn: sqlite3.Connection, from_version: int) -> None:
        """
        Apply schema migrations from from_version to SCHEMA_VERSION.

        Raises:
            RuntimeError: If any migration fails. Running on a half-migrated
                          schema would corrupt reading data.
        """
        try:
            if from_version < 2:
                log_config("Applying migration", "v1 → v2 (chapter subtitle, raw_content)", indent=1)
                cursor = conn.execute("PRAGMA table_info(chapters)")
                columns = {row[1] for row in cursor.fetchall()}
                if "raw_content" not in columns:
                    conn.executescript(MIGRATION_V2_SQL)
                else:
                    log_config("Skipping v2 migration", "chapters already has raw_content", indent=1)

            if from_version < 3:
                log_config("Applying migration", "v2 → v3 (unique bookmark coordinate)", indent=1)
                conn.executescript(MIGRATION_V3_SQL)

            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,)
            )
            log_config("Migration", f"v{from_version} → v{SCHEMA_VERSION}", indent=1)

        except Exception as e:
            log_error(f"Migration failed (v{from_version} → v{SCHEMA_VERSION}): {e}")
            raise RuntimeError(
                f"Database migration failed: {e}. "
                f"Please fix the database or delete it to start fresh."
            ) from e

    @contextmanager
    def get_connection(self, immediate: bool = False) -> sqlite3.Connection:
        """
        Get a database connection with proper configuration.

        Everything executed on the yielded connection is one transaction:
        committed when the block exits normally, rolled back on any exception.

        Args:
            immediate: Take the write lock up front (BEGIN IMMEDIATE). Use for
                       read-then-write sequences that must see a stable snapshot.

        Yields:
            Configured SQLite connection
        """
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout_ms / 1000,
            check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout={self.busy_timeout_ms}")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute(
        self,
        sql: str,
        params: Tuple = (),
        fetch: bool = False
    ) -> Optional[List[sqlite3.Row]]:
        """
        Execute a SQL statement.

        Args:
            sql: SQL statement
            params: Parameters for the statement
            fetch: Whether to fetch and return results

        Returns:
            List of rows if fetch=True, None otherwise
        """
        with self.get_connection() as conn:
            cursor = conn.execute(sql, params)
            if fetch:
                return cursor.fetchall()
            return None

    def get_stats(self) -> dict:
        """Get row counts for every LitBook table."""
        stats = {}

        with self.get_connection() as conn:
            for table in ("books", "chapters", "reading_progress", "bookmarks", "activities"):
                cursor = conn.execute(f"SELECT COUNT(*) FROM {table}")
                stats[f"total_{table}"] = cursor.fetchone()[0]

        return stats


# Global database instance
_db: Optional[Database] = None


def get_database() -> Database:
    """Get the global database instance."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _db


def init_database(db_path: Path, busy_timeout_ms: int = 10000) -> Database:
    """Initialize the global database instance."""
    global _db
    _db = Database(db_path, busy_timeout_ms)
    _db.initialize()
    return _db
