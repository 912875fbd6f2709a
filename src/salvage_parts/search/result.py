"""Row to result conversion shared by the store and the search engine."""

import json
import logging
import sqlite3
from typing import Any

from ..models import Part

logger = logging.getLogger(__name__)

PART_COLUMNS = "id, type, name, props, location_id"


def row_to_part(row: sqlite3.Row) -> Part:
    """Convert a database row to a Part (location path left for the caller)."""
    props: dict[str, Any] = {}
    if row["props"]:
        try:
            props = json.loads(row["props"])
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Failed to parse props for part {row['id']}: {e}")
    return Part(
        id=row["id"],
        type=row["type"] or "",
        name=row["name"],
        props=props,
        location_id=row["location_id"],
    )


def tag_source(result: dict[str, Any], source: str) -> dict[str, Any]:
    """Copy of a result dict labelled with the instance it came from."""
    tagged = dict(result)
    tagged["source"] = source
    return tagged
