"""Search engine: local property search, with peer fallback when nothing matches."""

import logging
import sqlite3
from typing import Any, Callable, Iterable

from ..models import Part, Peer
from .criteria import SearchCriteria, criteria_from_prop
from .federation import PeerClient, fan_out
from .result import PART_COLUMNS, row_to_part

logger = logging.getLogger(__name__)

PathResolver = Callable[[list[int | None]], dict[int, str]]


def escape_like(value: str) -> str:
    """Escape SQL LIKE wildcards (%, _) in user input.

    Uses backslash as the escape character, which must be specified
    in the LIKE clause with ESCAPE '\\'.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def json_path(prop_name: str) -> str | None:
    """JSON path selecting one top-level key, quoted so dots stay part of the name.

    SQLite paths cannot escape a double quote: such names get None.
    """
    if '"' in prop_name:
        return None
    return '$."' + prop_name + '"'


class SearchEngine:
    """Search over the parts table.

    Instantiated once by Catalog; `resolve_paths` turns location IDs into
    breadcrumbs so results say where each part is stored.
    """

    def __init__(self, conn: sqlite3.Connection, resolve_paths: PathResolver | None = None):
        self._conn = conn
        self._resolve_paths = resolve_paths

    def find_parts(
        self,
        type_name: str = "",
        name: str = "",
        criteria: SearchCriteria | None = None,
    ) -> list[Part]:
        """Parts matching type, name substring and an optional property criterion.

        SQL narrows by type, name and presence of the criterion's property; the
        criterion itself is evaluated in Python so exact and range semantics are
        the same here as anywhere else a SearchCriteria is applied.

        Args:
            type_name: Exact part type ("" = any)
            name: Case-insensitive substring of the part name ("" = any)
            criteria: Property criterion (None = any)

        Returns:
            Matching parts in ID order
        """
        clauses: list[str] = []
        params: list[Any] = []

        if type_name:
            clauses.append("type = ?")
            params.append(type_name)
        if name:
            clauses.append("name LIKE ? ESCAPE '\\'")
            params.append(f"%{escape_like(name)}%")
        path = json_path(criteria.prop_name) if criteria is not None else None
        if path is not None:
            clauses.append("json_type(props, ?) IS NOT NULL")
            params.append(path)

        sql = f"SELECT {PART_COLUMNS} FROM parts"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id"

        parts = [row_to_part(row) for row in self._conn.execute(sql, params)]
        if criteria is None:
            return parts
        return [p for p in parts if criteria.matches_props(p.props)]

    def with_locations(self, parts: list[Part]) -> list[Part]:
        """Fill in `location_path` on parts that are stored somewhere."""
        if self._resolve_paths is None:
            return parts
        paths = self._resolve_paths([p.location_id for p in parts])
        for part in parts:
            if part.location_id is not None:
                part.location_path = paths.get(part.location_id, "")
        return parts

    def search_local(self, type_name: str = "", name: str = "", prop: str = "") -> list[Part]:
        """Local search from raw arguments.

        Raises:
            InvalidCriteriaFormat: `prop` is not a valid expression.
        """
        criteria = criteria_from_prop(prop)
        return self.with_locations(self.find_parts(type_name, name, criteria))

    async def search(
        self,
        type_name: str = "",
        name: str = "",
        prop: str = "",
        peers: Iterable[Peer] = (),
        client: PeerClient | None = None,
    ) -> list[dict[str, Any]]:
        """Local search, falling back to the peers only when nothing matched locally.

        Local results are tagged `source="local"`, remote ones with the peer's name.
        Unreachable or slow peers are skipped.

        Raises:
            InvalidCriteriaFormat: `prop` is not a valid expression (peers are not queried).
        """
        local = [part.to_dict() for part in self.search_local(type_name, name, prop)]
        peers = list(peers)
        if local or not peers or client is None:
            return local

        logger.info(f"No local match for type={type_name!r} name={name!r} prop={prop!r}, asking {len(peers)} peer(s)")
        return await fan_out(client, peers, type_name, name, prop)
