"""Part rows: insert and lookup."""

import json
import logging
import sqlite3
from typing import Any

from ..models import Part
from ..search.result import PART_COLUMNS, row_to_part

logger = logging.getLogger(__name__)


def insert_part(
    conn: sqlite3.Connection,
    type_name: str,
    name: str,
    props: dict[str, Any],
    location_id: int | None = None,
) -> int:
    """Insert an already normalized part and return its ID."""
    with conn:
        cursor = conn.execute(
            "INSERT INTO parts (type, name, props, location_id) VALUES (?, ?, ?, ?)",
            [type_name, name, json.dumps(props, ensure_ascii=False), location_id],
        )
    logger.debug(f"Inserted part {cursor.lastrowid} ({type_name}) {name!r}")
    return cursor.lastrowid


def get_part(conn: sqlite3.Connection, part_id: int) -> Part | None:
    row = conn.execute(f"SELECT {PART_COLUMNS} FROM parts WHERE id = ?", [part_id]).fetchone()
    return row_to_part(row) if row else None


def list_parts(conn: sqlite3.Connection, type_name: str = "") -> list[Part]:
    if type_name:
        rows = conn.execute(f"SELECT {PART_COLUMNS} FROM parts WHERE type = ? ORDER BY id", [type_name])
    else:
        rows = conn.execute(f"SELECT {PART_COLUMNS} FROM parts ORDER BY id")
    return [row_to_part(row) for row in rows]


def count_parts(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM parts").fetchone()[0]


def count_by_type(conn: sqlite3.Connection) -> dict[str, int]:
    return {
        row["type"] or "": row["n"]
        for row in conn.execute("SELECT type, COUNT(*) AS n FROM parts GROUP BY type ORDER BY type")
    }
