"""Federated search: asking other catalog instances over HTTP."""

import asyncio
import logging
from typing import Any, Iterable

import httpx

from ..config import PEER_SEARCH_PATH, PEER_TIMEOUT, PEER_USER_AGENT
from ..models import Peer
from .result import tag_source

logger = logging.getLogger(__name__)


class PeerError(Exception):
    """A peer answered with something other than a result list."""


def _is_part_shaped(item: dict[str, Any]) -> bool:
    return isinstance(item.get("name"), str) and isinstance(item.get("props", {}), dict)


class PeerClient:
    """Async client for the federated search endpoint of other instances."""

    def __init__(self, timeout: float = PEER_TIMEOUT):
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": PEER_USER_AGENT},
            )
        return self._client

    async def search_peer(
        self,
        peer: Peer,
        type_name: str = "",
        name: str = "",
        prop: str = "",
    ) -> list[dict[str, Any]]:
        """Query one peer. Each result is tagged with the peer's name as `source`.

        Raises:
            PeerError: Transport failure, HTTP error or malformed payload.
        """
        url = peer.url.rstrip("/") + PEER_SEARCH_PATH
        params = {"type": type_name, "name": name, "prop": prop}
        headers = {"Authorization": f"Bearer {peer.api_key}"} if peer.api_key else {}

        try:
            response = await self._get_client().get(url, params=params, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # Don't include the exception text, it may embed the URL
            raise PeerError(f"peer {peer.name} unreachable ({type(e).__name__})") from None
        if response.status_code != 200:
            raise PeerError(f"peer {peer.name} returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise PeerError(f"peer {peer.name} returned invalid JSON") from None
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise PeerError(f"peer {peer.name} returned an unexpected payload")

        results = [tag_source(item, peer.name) for item in data if _is_part_shaped(item)]
        if len(results) < len(data):
            logger.warning(f"Peer {peer.name}: dropped {len(data) - len(results)} malformed result(s)")
        return results

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


async def fan_out(
    client: PeerClient,
    peers: Iterable[Peer],
    type_name: str = "",
    name: str = "",
    prop: str = "",
    timeout: float = PEER_TIMEOUT,
) -> list[dict[str, Any]]:
    """Query all peers concurrently and merge what came back.

    Every peer gets at most `timeout` seconds; a failing or slow peer only
    loses its own results. Merged order is completion order.
    """
    peers = list(peers)
    if not peers:
        return []

    queue: asyncio.Queue[list[dict[str, Any]]] = asyncio.Queue(maxsize=len(peers))

    async def ask(peer: Peer) -> None:
        try:
            results = await asyncio.wait_for(client.search_peer(peer, type_name, name, prop), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Peer {peer.name} timed out after {timeout}s")
            results = []
        except PeerError as e:
            logger.warning(f"Peer search failed: {e}")
            results = []
        await queue.put(results)

    await asyncio.gather(*(ask(peer) for peer in peers))

    merged: list[dict[str, Any]] = []
    while not queue.empty():
        merged.extend(queue.get_nowait())
    return merged
