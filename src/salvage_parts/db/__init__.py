"""Database package for the salvage parts catalog.

Parts are stored with their attribute bag already converted to base units,
so property search compares plain numbers:
- Range queries: "d_int:9.5..10.5" finds a bearing entered as "1cm"
- Exact queries: "brand:SKF"

Locations form a forest of containers; every part may sit in one of them.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from ..config import CHECK_UNIT_DOMAINS, DB_PATH, STRICT_TYPES, TEMPLATES_DIR
from ..errors import InvalidInputFormat, LocationNotFound, ParentNotFound, PartNotFound
from ..models import Location, LocationType, Part, Peer
from ..search import PeerClient, SearchEngine
from ..templates import TemplateRegistry
from ..units import normalize_props
from . import locations as loc
from .connection import open_connection
from .parts import count_by_type, count_parts, get_part, insert_part, list_parts
from .peers import add_peer, is_token_authorized, list_peers, remove_peer

logger = logging.getLogger(__name__)

__all__ = [
    "Catalog",
    "get_db",
    "close_db",
    "set_db",
]

LocationRef = int | str


class Catalog:
    """SQLite-backed parts catalog with a location hierarchy.

    Thread safety: Uses WAL mode + check_same_thread=False.
    Concurrent reads are safe; writes are serialized by SQLite.
    The _conn_lock protects lazy initialization of the connection.
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        registry: TemplateRegistry | None = None,
        check_domains: bool = CHECK_UNIT_DOMAINS,
        peer_client: PeerClient | None = None,
    ):
        self.db_path = db_path if db_path is not None else DB_PATH
        self.registry = registry if registry is not None else TemplateRegistry(strict=False)
        self.check_domains = check_domains
        self._peer_client = peer_client
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()  # Protects _conn initialization
        self._search_engine: SearchEngine | None = None

    def _ensure_db(self) -> sqlite3.Connection:
        """Open and migrate the database on first use. Thread-safe."""
        if self._conn is not None:
            return self._conn

        with self._conn_lock:
            # Double-check after acquiring lock
            if self._conn is None:
                logger.info(f"Opening catalog database at {self.db_path}")
                conn = open_connection(self.db_path)
                self._search_engine = SearchEngine(
                    conn=conn,
                    resolve_paths=lambda ids: loc.paths_for(conn, ids),
                )
                self._conn = conn
        return self._conn

    @property
    def peer_client(self) -> PeerClient:
        if self._peer_client is None:
            self._peer_client = PeerClient()
        return self._peer_client

    def close(self) -> None:
        """Close database connection. Thread-safe."""
        with self._conn_lock:
            if self._conn:
                self._conn.close()
                self._conn = None
                self._search_engine = None

    async def aclose(self) -> None:
        """Close the peer HTTP client and the database."""
        if self._peer_client is not None:
            await self._peer_client.close()
        self.close()

    # =========================================================================
    # Parts
    # =========================================================================

    def add_part(
        self,
        type_name: str,
        name: str,
        props: dict[str, Any] | None = None,
        location: LocationRef | None = None,
    ) -> Part:
        """Normalize, validate and store a part.

        Nothing is written unless every step succeeds.

        Args:
            type_name: Template name ("" for a free-form part)
            name: Display name
            props: Raw attribute bag, e.g. {"d_int": "1cm", "brand": "SKF"}
            location: Location ID or name (None = not stored anywhere)

        Returns:
            The stored part, with its location path filled in

        Raises:
            InvalidInputFormat: Empty name.
            UnknownType: Strict mode and no template for `type_name`.
            UnknownUnit, UnitDomainMismatch: A value cannot be normalized.
            MissingRequiredField: A required template field is absent.
            LocationNotFound: `location` does not resolve.
        """
        name = name.strip()
        if not name:
            raise InvalidInputFormat("part name is required")
        type_name = type_name.strip()

        self.registry.check_type(type_name)
        normalized = normalize_props(
            props or {},
            self.registry.field_units(type_name),
            check_domains=self.check_domains,
        )
        self.registry.validate_props(type_name, normalized)

        conn = self._ensure_db()
        location_id = loc.resolve_location(conn, location).id if location is not None else None
        part_id = insert_part(conn, type_name, name, normalized, location_id)
        logger.info(f"Added part {part_id}: {type_name or 'free-form'} {name!r}")
        return self.get_part(part_id)

    def get_part(self, part_id: int) -> Part | None:
        """Get a part by ID, with its location path."""
        conn = self._ensure_db()
        part = get_part(conn, part_id)
        if part is None:
            return None
        return self._search_engine.with_locations([part])[0]

    def list_parts(self, type_name: str = "") -> list[Part]:
        conn = self._ensure_db()
        return self._search_engine.with_locations(list_parts(conn, type_name))

    def search_local(self, type_name: str = "", name: str = "", prop: str = "") -> list[Part]:
        """Search this catalog only.

        Raises:
            InvalidCriteriaFormat: `prop` is not 'name:value' or 'name:min..max'.
        """
        self._ensure_db()
        return self._search_engine.search_local(type_name, name, prop)

    async def search(
        self,
        type_name: str = "",
        name: str = "",
        prop: str = "",
        federate: bool = True,
    ) -> list[dict[str, Any]]:
        """Search this catalog, then the peers when nothing matched here.

        Raises:
            InvalidCriteriaFormat: `prop` is not a valid expression.
        """
        conn = self._ensure_db()
        peers = list_peers(conn) if federate else []
        return await self._search_engine.search(
            type_name, name, prop,
            peers=peers,
            client=self.peer_client if peers else None,
        )

    # =========================================================================
    # Locations
    # =========================================================================

    def get_location(self, location_id: int) -> Location | None:
        return loc.get_location(self._ensure_db(), location_id)

    def find_location_by_name(self, name: str) -> Location | None:
        return loc.find_location_by_name(self._ensure_db(), name)

    def resolve_location(self, ref: LocationRef) -> Location:
        return loc.resolve_location(self._ensure_db(), ref)

    def list_locations(self) -> list[Location]:
        return loc.list_locations(self._ensure_db())

    def list_roots(self) -> list[Location]:
        return loc.list_roots(self._ensure_db())

    def list_children(self, parent: LocationRef) -> list[Location]:
        conn = self._ensure_db()
        return loc.list_children(conn, loc.resolve_location(conn, parent).id)

    def _resolve_parent(self, conn: sqlite3.Connection, parent: LocationRef | None) -> int | None:
        if parent is None:
            return None
        try:
            return loc.resolve_location(conn, parent).id
        except LocationNotFound:
            raise ParentNotFound(parent) from None

    def create_location(
        self,
        name: str,
        parent: LocationRef | None = None,
        loc_type: str | LocationType | None = None,
        description: str = "",
    ) -> Location:
        """Create a location under `parent` (ID or name), or as a root.

        Raises:
            InvalidInputFormat: Empty name or unknown type.
            ParentNotFound: `parent` does not resolve.
        """
        conn = self._ensure_db()
        parent_id = self._resolve_parent(conn, parent)
        return loc.create_location(conn, name, parent_id, loc_type, description)

    def move_location(self, location: LocationRef, new_parent: LocationRef | None) -> Location:
        """Re-parent a location; `new_parent=None` makes it a root.

        Raises:
            LocationNotFound, ParentNotFound, CycleDetected
        """
        conn = self._ensure_db()
        location_id = loc.resolve_location(conn, location).id
        loc.move_location(conn, location_id, self._resolve_parent(conn, new_parent))
        return loc.get_location(conn, location_id)

    def delete_location(self, location: LocationRef) -> None:
        """Raises LocationNotFound, LocationNotEmpty or LocationHasChildren."""
        conn = self._ensure_db()
        loc.delete_location(conn, loc.resolve_location(conn, location).id)

    def full_path(self, location: LocationRef) -> str:
        conn = self._ensure_db()
        return loc.full_path(conn, loc.resolve_location(conn, location).id)

    def parts_count(self, location: LocationRef) -> int:
        conn = self._ensure_db()
        return loc.parts_count(conn, loc.resolve_location(conn, location).id)

    def location_tree(self) -> list[dict[str, Any]]:
        return loc.location_tree(self._ensure_db())

    def set_part_location(self, part_id: int, location: LocationRef) -> Part:
        """Store a part in a location. Raises PartNotFound or LocationNotFound."""
        conn = self._ensure_db()
        if get_part(conn, part_id) is None:
            raise PartNotFound(part_id)
        loc.set_part_location(conn, part_id, loc.resolve_location(conn, location).id)
        return self.get_part(part_id)

    def clear_part_location(self, part_id: int) -> Part:
        conn = self._ensure_db()
        loc.clear_part_location(conn, part_id)
        return self.get_part(part_id)

    # =========================================================================
    # Peers
    # =========================================================================

    def add_peer(self, name: str, url: str, api_key: str = "") -> Peer:
        peer = add_peer(self._ensure_db(), name, url, api_key)
        logger.info(f"Registered peer {peer.name} at {peer.url}")
        return peer

    def list_peers(self) -> list[Peer]:
        return list_peers(self._ensure_db())

    def remove_peer(self, peer_id: int) -> bool:
        return remove_peer(self._ensure_db(), peer_id)

    def is_token_authorized(self, token: str) -> bool:
        """Federated requests must carry the api key of a registered peer."""
        return is_token_authorized(self._ensure_db(), token)

    def stats(self) -> dict[str, Any]:
        """Counts for the health endpoint and the CLI."""
        conn = self._ensure_db()
        return {
            "parts": count_parts(conn),
            "parts_by_type": count_by_type(conn),
            "locations": conn.execute("SELECT COUNT(*) FROM locations").fetchone()[0],
            "peers": conn.execute("SELECT COUNT(*) FROM peers").fetchone()[0],
            "templates": self.registry.names(),
            "strict_types": self.registry.strict,
        }


# Global instance
_db: Catalog | None = None
_db_lock = threading.Lock()


def get_db() -> Catalog:
    """Get or create the global catalog built from configuration (thread-safe)."""
    global _db
    if _db is None:
        with _db_lock:
            # Double-check locking pattern
            if _db is None:
                registry = TemplateRegistry.load(TEMPLATES_DIR, strict=STRICT_TYPES)
                _db = Catalog(DB_PATH, registry, check_domains=CHECK_UNIT_DOMAINS)
    return _db


def close_db() -> None:
    """Close the global catalog (thread-safe)."""
    global _db
    with _db_lock:
        if _db:
            _db.close()
            _db = None


def set_db(catalog: Catalog) -> None:
    """Install an already built catalog as the global instance (CLI --db / --templates)."""
    global _db
    with _db_lock:
        _db = catalog
