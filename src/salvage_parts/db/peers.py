"""Peer registry: other instances consulted by federated search."""

import sqlite3

import httpx

from ..errors import InvalidInputFormat
from ..models import Peer


def _row_to_peer(row: sqlite3.Row) -> Peer:
    return Peer(id=row["id"], name=row["name"], url=row["url"], api_key=row["api_key"] or "")


def add_peer(conn: sqlite3.Connection, name: str, url: str, api_key: str = "") -> Peer:
    """Register a peer. The URL must be absolute http(s) with a host.

    Raises:
        InvalidInputFormat: Empty name or a URL httpx cannot request.
    """
    name, url = name.strip(), url.strip()
    if not name:
        raise InvalidInputFormat("peer name is required")
    if not url.startswith(("http://", "https://")):
        raise InvalidInputFormat(f"invalid peer URL: {url} (expected http:// or https://)")
    try:
        host = httpx.URL(url).host
    except httpx.InvalidURL as e:
        raise InvalidInputFormat(f"invalid peer URL: {url!r} ({e})") from None
    if not host:
        raise InvalidInputFormat(f"invalid peer URL: {url!r} (no host)")

    with conn:
        cursor = conn.execute(
            "INSERT INTO peers (name, url, api_key) VALUES (?, ?, ?)",
            [name, url.rstrip("/"), api_key],
        )
    return get_peer(conn, cursor.lastrowid)


def get_peer(conn: sqlite3.Connection, peer_id: int) -> Peer | None:
    row = conn.execute("SELECT id, name, url, api_key FROM peers WHERE id = ?", [peer_id]).fetchone()
    return _row_to_peer(row) if row else None


def list_peers(conn: sqlite3.Connection) -> list[Peer]:
    return [_row_to_peer(r) for r in conn.execute("SELECT id, name, url, api_key FROM peers ORDER BY id")]


def remove_peer(conn: sqlite3.Connection, peer_id: int) -> bool:
    with conn:
        cursor = conn.execute("DELETE FROM peers WHERE id = ?", [peer_id])
    return cursor.rowcount > 0


def is_token_authorized(conn: sqlite3.Connection, token: str) -> bool:
    """Whether a bearer token belongs to a registered peer. Empty never does."""
    if not token:
        return False
    return conn.execute("SELECT 1 FROM peers WHERE api_key = ? LIMIT 1", [token]).fetchone() is not None
