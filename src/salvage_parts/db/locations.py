"""Location hierarchy: a forest of containers (zone > furniture > shelf > box).

Parent pointers live in the locations table. Every walk over them happens
here in Python, bounded by a visited set and MAX_LOCATION_DEPTH, so a table
left with a cycle by older versions or manual edits cannot hang a request.
"""

import logging
import sqlite3
from collections import defaultdict
from typing import Any

from ..config import DEFAULT_LOCATION_TYPE, MAX_LOCATION_DEPTH
from ..errors import (
    CycleDetected,
    InvalidInputFormat,
    LocationHasChildren,
    LocationNotEmpty,
    LocationNotFound,
    ParentNotFound,
    PartNotFound,
)
from ..models import Location, LocationType

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " > "

_LOCATION_COLUMNS = "id, name, parent_id, loc_type, description, created_at"


def parse_location_type(value: str | LocationType | None) -> LocationType:
    """'box', 'BOX' or LocationType.BOX -> LocationType.BOX. Empty means the default type."""
    if isinstance(value, LocationType):
        return value
    key = (value or DEFAULT_LOCATION_TYPE).strip().upper()
    try:
        return LocationType(key)
    except ValueError:
        valid = ", ".join(t.value for t in LocationType)
        raise InvalidInputFormat(f"unknown location type '{value}' (expected one of: {valid})") from None


def row_to_location(row: sqlite3.Row) -> Location:
    try:
        loc_type = LocationType(row["loc_type"])
    except ValueError:
        logger.warning(f"Location {row['id']} has unknown type {row['loc_type']!r}, showing as BOX")
        loc_type = LocationType.BOX
    return Location(
        id=row["id"],
        name=row["name"],
        parent_id=row["parent_id"],
        loc_type=loc_type,
        description=row["description"] or "",
        created_at=row["created_at"] or "",
    )


# =============================================================================
# Lookup
# =============================================================================

def get_location(conn: sqlite3.Connection, location_id: int) -> Location | None:
    row = conn.execute(
        f"SELECT {_LOCATION_COLUMNS} FROM locations WHERE id = ?", [location_id]
    ).fetchone()
    return row_to_location(row) if row else None


def find_location_by_name(conn: sqlite3.Connection, name: str) -> Location | None:
    """Case-insensitive exact name lookup (lowest ID wins on duplicates)."""
    row = conn.execute(
        f"SELECT {_LOCATION_COLUMNS} FROM locations WHERE LOWER(name) = LOWER(?) ORDER BY id LIMIT 1",
        [name],
    ).fetchone()
    return row_to_location(row) if row else None


def resolve_location(conn: sqlite3.Connection, ref: int | str) -> Location:
    """Find a location by ID or by name.

    A numeric reference is tried as an ID first, then as a name, so a box
    literally named "12" can still be found.

    Raises:
        LocationNotFound: Nothing matches.
    """
    if isinstance(ref, int):
        location = get_location(conn, ref)
        if location is None:
            raise LocationNotFound(ref)
        return location

    ref = ref.strip()
    if ref.isdigit():
        location = get_location(conn, int(ref))
        if location is not None:
            return location
    location = find_location_by_name(conn, ref)
    if location is None:
        raise LocationNotFound(ref)
    return location


def list_locations(conn: sqlite3.Connection) -> list[Location]:
    return [row_to_location(r) for r in conn.execute(f"SELECT {_LOCATION_COLUMNS} FROM locations ORDER BY id")]


def list_roots(conn: sqlite3.Connection) -> list[Location]:
    return [
        row_to_location(r)
        for r in conn.execute(
            f"SELECT {_LOCATION_COLUMNS} FROM locations WHERE parent_id IS NULL ORDER BY name"
        )
    ]


def list_children(conn: sqlite3.Connection, parent_id: int) -> list[Location]:
    return [
        row_to_location(r)
        for r in conn.execute(
            f"SELECT {_LOCATION_COLUMNS} FROM locations WHERE parent_id = ? ORDER BY name", [parent_id]
        )
    ]


# =============================================================================
# Parent-pointer walks
# =============================================================================

def _parent_map(conn: sqlite3.Connection) -> dict[int, int | None]:
    return {row["id"]: row["parent_id"] for row in conn.execute("SELECT id, parent_id FROM locations")}


def _children_map(parents: dict[int, int | None]) -> dict[int, list[int]]:
    children: dict[int, list[int]] = defaultdict(list)
    for loc_id, parent_id in parents.items():
        if parent_id is not None:
            children[parent_id].append(loc_id)
    return children


def is_descendant(conn: sqlite3.Connection, candidate_id: int, ancestor_id: int) -> bool:
    """Whether `candidate_id` is `ancestor_id` itself or lies somewhere below it."""
    current: int | None = candidate_id
    visited: set[int] = set()

    while current is not None:
        if current == ancestor_id:
            return True
        if current in visited:
            return False  # Pre-existing cycle not involving ancestor_id
        visited.add(current)
        row = conn.execute("SELECT parent_id FROM locations WHERE id = ?", [current]).fetchone()
        current = row["parent_id"] if row else None
    return False


def full_path(conn: sqlite3.Connection, location_id: int) -> str:
    """Breadcrumb from the root down to the location: 'Workshop > Cabinet > Box 3'.

    Raises:
        LocationNotFound: The location does not exist.
    """
    names: list[str] = []
    visited: set[int] = set()
    current: int | None = location_id

    while current is not None and current not in visited and len(names) < MAX_LOCATION_DEPTH:
        row = conn.execute("SELECT name, parent_id FROM locations WHERE id = ?", [current]).fetchone()
        if row is None:
            if not names:
                raise LocationNotFound(location_id)
            logger.warning(f"Location {names[-1]!r} points to missing parent {current}")
            break
        visited.add(current)
        names.append(row["name"])
        current = row["parent_id"]

    return PATH_SEPARATOR.join(reversed(names))


def paths_for(conn: sqlite3.Connection, location_ids: list[int | None]) -> dict[int, str]:
    """Breadcrumbs for many locations at once; unknown and None IDs are skipped."""
    paths: dict[int, str] = {}
    for location_id in location_ids:
        if location_id is None or location_id in paths:
            continue
        try:
            paths[location_id] = full_path(conn, location_id)
        except LocationNotFound:
            continue
    return paths


def descendants(conn: sqlite3.Connection, location_id: int) -> list[int]:
    """The location and every location below it (each listed once)."""
    children = _children_map(_parent_map(conn))
    seen: set[int] = set()
    order: list[int] = []
    stack = [location_id]
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        order.append(current)
        stack.extend(children.get(current, []))
    return order


# =============================================================================
# Mutations
# =============================================================================

def create_location(
    conn: sqlite3.Connection,
    name: str,
    parent_id: int | None = None,
    loc_type: str | LocationType | None = None,
    description: str = "",
) -> Location:
    """Create a location, as a root or under an existing parent.

    Raises:
        InvalidInputFormat: Empty name or unknown type.
        ParentNotFound: `parent_id` does not exist.
    """
    name = name.strip()
    if not name:
        raise InvalidInputFormat("location name is required")
    location_type = parse_location_type(loc_type)

    if parent_id is not None and get_location(conn, parent_id) is None:
        raise ParentNotFound(parent_id)

    with conn:
        cursor = conn.execute(
            "INSERT INTO locations (name, parent_id, loc_type, description) VALUES (?, ?, ?, ?)",
            [name, parent_id, location_type.value, description or ""],
        )
    location = get_location(conn, cursor.lastrowid)
    logger.debug(f"Created location {location.id} {name!r} under {parent_id}")
    return location


def move_location(conn: sqlite3.Connection, location_id: int, new_parent_id: int | None) -> None:
    """Re-parent a location. `None` makes it a root.

    Raises:
        LocationNotFound: The location does not exist.
        ParentNotFound: The new parent does not exist.
        CycleDetected: The new parent is the location itself or one of its descendants.
    """
    if get_location(conn, location_id) is None:
        raise LocationNotFound(location_id)

    if new_parent_id is not None:
        if get_location(conn, new_parent_id) is None:
            raise ParentNotFound(new_parent_id)
        if is_descendant(conn, new_parent_id, location_id):
            raise CycleDetected(location_id, new_parent_id)

    with conn:
        conn.execute("UPDATE locations SET parent_id = ? WHERE id = ?", [new_parent_id, location_id])


def count_direct_parts(conn: sqlite3.Connection, location_id: int) -> int:
    return conn.execute("SELECT COUNT(*) FROM parts WHERE location_id = ?", [location_id]).fetchone()[0]


def delete_location(conn: sqlite3.Connection, location_id: int) -> None:
    """Delete an empty leaf location.

    Parts must be moved out and sub-locations removed first, so no part or
    location is ever left pointing at a deleted row.

    Raises:
        LocationNotFound: The location does not exist.
        LocationNotEmpty: Parts are stored in it.
        LocationHasChildren: Sub-locations exist.
    """
    if get_location(conn, location_id) is None:
        raise LocationNotFound(location_id)

    part_count = count_direct_parts(conn, location_id)
    if part_count > 0:
        raise LocationNotEmpty(location_id, part_count)

    child_count = conn.execute(
        "SELECT COUNT(*) FROM locations WHERE parent_id = ?", [location_id]
    ).fetchone()[0]
    if child_count > 0:
        raise LocationHasChildren(location_id, child_count)

    with conn:
        conn.execute("DELETE FROM locations WHERE id = ?", [location_id])


def set_part_location(conn: sqlite3.Connection, part_id: int, location_id: int) -> None:
    """Raises PartNotFound or LocationNotFound."""
    if conn.execute("SELECT 1 FROM parts WHERE id = ?", [part_id]).fetchone() is None:
        raise PartNotFound(part_id)
    if get_location(conn, location_id) is None:
        raise LocationNotFound(location_id)
    with conn:
        conn.execute("UPDATE parts SET location_id = ? WHERE id = ?", [location_id, part_id])


def clear_part_location(conn: sqlite3.Connection, part_id: int) -> None:
    if conn.execute("SELECT 1 FROM parts WHERE id = ?", [part_id]).fetchone() is None:
        raise PartNotFound(part_id)
    with conn:
        conn.execute("UPDATE parts SET location_id = NULL WHERE id = ?", [part_id])


# =============================================================================
# Occupancy
# =============================================================================

def _direct_counts(conn: sqlite3.Connection) -> dict[int, int]:
    return {
        row["location_id"]: row["n"]
        for row in conn.execute(
            "SELECT location_id, COUNT(*) AS n FROM parts WHERE location_id IS NOT NULL GROUP BY location_id"
        )
    }


def parts_count(conn: sqlite3.Connection, location_id: int) -> int:
    """Parts stored in the location or anywhere below it.

    Raises:
        LocationNotFound: The location does not exist.
    """
    if get_location(conn, location_id) is None:
        raise LocationNotFound(location_id)
    counts = _direct_counts(conn)
    return sum(counts.get(loc_id, 0) for loc_id in descendants(conn, location_id))


def location_tree(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Every root with its nested children, each node carrying its path and part count.

    Siblings are sorted by name. `parts_count` includes sub-locations,
    `direct_parts` only the node itself.
    """
    locations = {loc.id: loc for loc in list_locations(conn)}
    parents = {loc_id: loc.parent_id for loc_id, loc in locations.items()}
    children = _children_map(parents)
    counts = _direct_counts(conn)

    def build(loc_id: int, trail: tuple[str, ...], seen: frozenset[int]) -> dict[str, Any]:
        loc = locations[loc_id]
        path = trail + (loc.name,)
        seen = seen | {loc_id}
        kids = []
        if len(path) < MAX_LOCATION_DEPTH:
            kids = [
                build(child_id, path, seen)
                for child_id in sorted(children.get(loc_id, []), key=lambda i: locations[i].name)
                if child_id not in seen and child_id in locations
            ]
        node = loc.to_dict(path=PATH_SEPARATOR.join(path))
        node["icon"] = loc.loc_type.icon
        node["direct_parts"] = counts.get(loc_id, 0)
        node["parts_count"] = node["direct_parts"] + sum(k["parts_count"] for k in kids)
        node["children"] = kids
        return node

    roots = sorted(
        (loc for loc in locations.values() if loc.parent_id is None or loc.parent_id not in locations),
        key=lambda loc: loc.name,
    )
    return [build(root.id, (), frozenset()) for root in roots]
