"""Database connection management and schema migrations."""

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)


def open_connection(db_path: Path | str) -> sqlite3.Connection:
    """Open (creating if needed) the catalog database and migrate it.

    Args:
        db_path: Database file, or ":memory:"

    Returns:
        Connection with sqlite3.Row rows and foreign keys enabled
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    if str(db_path) != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")

    try:
        run_migrations(conn)
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def run_migrations(conn: sqlite3.Connection) -> None:
    """Bring an existing database up to the current schema. Idempotent."""
    with conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS parts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                props JSON
            )
        """)
        # Databases created before part types existed
        if not _has_column(conn, "parts", "type"):
            logger.info("Migrating parts table: adding type column")
            conn.execute("ALTER TABLE parts ADD COLUMN type TEXT DEFAULT ''")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS locations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                parent_id INTEGER REFERENCES locations(id),
                loc_type TEXT NOT NULL DEFAULT 'BOX',
                description TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)
        if not _has_column(conn, "parts", "location_id"):
            logger.info("Migrating parts table: adding location_id column")
            conn.execute("ALTER TABLE parts ADD COLUMN location_id INTEGER REFERENCES locations(id)")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS peers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                url TEXT NOT NULL,
                api_key TEXT NOT NULL DEFAULT ''
            )
        """)

        for statement in (
            "CREATE INDEX IF NOT EXISTS idx_parts_name ON parts (name)",
            "CREATE INDEX IF NOT EXISTS idx_parts_type ON parts (type)",
            "CREATE INDEX IF NOT EXISTS idx_parts_location ON parts (location_id)",
            "CREATE INDEX IF NOT EXISTS idx_locations_parent ON locations (parent_id)",
        ):
            conn.execute(statement)


def _has_column(conn: sqlite3.Connection, table: str, column: str) -> bool:
    return any(row["name"] == column for row in conn.execute(f"PRAGMA table_info({table})"))
