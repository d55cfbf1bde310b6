"""Node REST Client - HTTP command surface of a node.

Every command is ``{endpoint, method, headers, params, body}`` sent with the
node credentials. 2xx responses return decoded JSON (``None`` for no
content); anything else raises ``RemoteCommandError`` carrying the backend
diagnostic fields. Requests are bounded by ``Settings.rest_timeout_s``.

Commands are never retried here.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Callable, Literal

import aiohttp

from lvgo.config.settings import NodeOption
from lvgo.events import ErrorOccurred
from lvgo.exceptions import (
    CommandTimeoutError,
    NodeUnavailableError,
    ProtocolTransportError,
    RemoteCommandError,
)
from lvgo.observability.logging import get_logger
from lvgo.observability.metrics import record_rest_error, record_rest_request

if TYPE_CHECKING:
    from lvgo.node.node import Node

logger = get_logger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


class Rest:
    """Wrapper around the node REST API.

    Usage:
        rest = Rest(node, option)
        player = await rest.update_player(guild_id, {"paused": True})
        await rest.close()
    """

    def __init__(
        self,
        node: "Node",
        option: NodeOption,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.node = node
        self._url = option.rest_url
        self._auth = option.auth
        self._session = session
        self._owns_session = session is None

    @property
    def url(self) -> str:
        """Base URL including the API prefix."""
        return self._url

    @property
    def session_id(self) -> str:
        """Session id assigned by the node.

        Raises:
            NodeUnavailableError: If the node has not completed a handshake
        """
        if not self.node.session_id:
            raise NodeUnavailableError(self.node.name, self.node.state.value)
        return self.node.session_id

    def _players(self, guild_id: str | None = None) -> str:
        path = f"/sessions/{self.session_id}/players"
        if guild_id is not None:
            path += f"/{guild_id}"
        return path

    # -------------------------------------------------------------------------
    # Tracks
    # -------------------------------------------------------------------------

    async def resolve(self, identifier: str) -> dict | None:
        """Resolve a track, playlist or search identifier."""
        return await self.fetch("/tracks/resolve", params={"identifier": identifier})

    async def decode(self, encoded: str) -> dict | None:
        """Decode an encoded track."""
        return await self.fetch("/tracks/decode", params={"encoded": encoded})

    # -------------------------------------------------------------------------
    # Players
    # -------------------------------------------------------------------------

    async def get_players(self) -> list[dict]:
        """Get every player of this session."""
        return await self.fetch(self._players()) or []

    async def get_player(self, guild_id: str) -> dict | None:
        """Get the player of a guild."""
        return await self.fetch(self._players(guild_id))

    async def update_player(
        self,
        guild_id: str,
        player_options: dict[str, Any],
        no_replace: bool = False,
    ) -> dict | None:
        """Patch a player and return the node's resulting player state."""
        return await self.fetch(
            self._players(guild_id),
            method="PATCH",
            params={"noReplace": "true" if no_replace else "false"},
            headers=JSON_HEADERS,
            body=player_options,
        )

    async def destroy_player(self, guild_id: str) -> None:
        """Delete the player of a guild."""
        await self.fetch(self._players(guild_id), method="DELETE")

    # -------------------------------------------------------------------------
    # Session and node
    # -------------------------------------------------------------------------

    async def update_session(
        self, resuming: bool | None = None, timeout: int | None = None
    ) -> dict | None:
        """Configure server-side resume for this session."""
        return await self.fetch(
            f"/sessions/{self.session_id}",
            method="PATCH",
            headers=JSON_HEADERS,
            body={"resuming": resuming, "timeout": timeout},
        )

    async def stats(self) -> dict | None:
        """Get node statistics."""
        return await self.fetch("/stats")

    async def get_info(self) -> dict | None:
        """Get node build and plugin information."""
        return await self.fetch("/info", headers=JSON_HEADERS)

    async def get_route_planner_status(self) -> dict | None:
        """Get route planner status."""
        return await self.fetch("/routeplanner/status")

    async def unmark_failed_address(self, address: str) -> None:
        """Release a blacklisted address back into the pool."""
        await self.fetch(
            "/routeplanner/free/address",
            method="POST",
            headers=JSON_HEADERS,
            body={"address": address},
        )

    async def invalidate_cache(
        self, identifier: str, scope: Literal["metadata", "content", "all"]
    ) -> None:
        """Drop cached data for an identifier."""
        await self.fetch(f"/cache/{identifier}", method="DELETE", params={"scope": scope})

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    async def get_queue(self, guild_id: str, page: int = 1, limit: int = 50) -> dict | None:
        """Get a page of the guild queue."""
        return await self.fetch(
            f"{self._players(guild_id)}/queue",
            params={"page": str(page), "limit": str(limit)},
        )

    async def add_queue(self, guild_id: str, tracks: list[dict]) -> None:
        """Append tracks to the guild queue."""
        await self._post(f"{self._players(guild_id)}/queue", {"tracks": tracks})

    async def prepend_queue(self, guild_id: str, tracks: list[dict]) -> None:
        """Prepend tracks to the guild queue."""
        await self._post(f"{self._players(guild_id)}/queue/prepend", {"tracks": tracks})

    async def move_queue(self, guild_id: str, from_index: int, to_index: int) -> None:
        """Move a queued track."""
        await self._post(
            f"{self._players(guild_id)}/queue/move", {"from": from_index, "to": to_index}
        )

    async def swap_queue(self, guild_id: str, index_a: int, index_b: int) -> None:
        """Swap two queued tracks."""
        await self._post(
            f"{self._players(guild_id)}/queue/swap", {"indexA": index_a, "indexB": index_b}
        )

    async def skip_queue(self, guild_id: str) -> None:
        """Skip to the next queued track."""
        await self.fetch(f"{self._players(guild_id)}/queue/skip", method="POST")

    async def remove_queue(self, guild_id: str, start: int, end: int) -> None:
        """Remove a range of queued tracks."""
        await self.fetch(
            f"{self._players(guild_id)}/queue",
            method="DELETE",
            headers=JSON_HEADERS,
            body={"start": start, "end": end},
        )

    async def remove_queue_item(self, guild_id: str, index: int) -> None:
        """Remove one queued track."""
        await self.fetch(f"{self._players(guild_id)}/queue/{index}", method="DELETE")

    async def set_repeat_mode(
        self, guild_id: str, mode: Literal["off", "track", "queue"]
    ) -> None:
        """Set the queue repeat mode."""
        await self._post(f"{self._players(guild_id)}/repeat", {"mode": mode})

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    async def get_history(self, guild_id: str, page: int = 1, limit: int = 50) -> dict | None:
        """Get a page of played tracks."""
        return await self.fetch(
            f"{self._players(guild_id)}/history",
            params={"page": str(page), "limit": str(limit)},
        )

    async def replay_history(
        self, guild_id: str, index: int, mode: Literal["play", "queue", "next"]
    ) -> None:
        """Replay a track from history."""
        await self._post(
            f"{self._players(guild_id)}/history/replay", {"index": index, "mode": mode}
        )

    async def clear_history(self, guild_id: str) -> None:
        """Clear played tracks."""
        await self.fetch(f"{self._players(guild_id)}/history", method="DELETE")

    # -------------------------------------------------------------------------
    # Party
    # -------------------------------------------------------------------------

    async def get_party(self, guild_id: str) -> dict | None:
        """Get the Listen Together party the guild belongs to."""
        return await self.fetch(f"{self._players(guild_id)}/party")

    async def leave_party(self, guild_id: str) -> None:
        """Leave the guild's party; a leaving host disbands it."""
        await self.fetch(f"{self._players(guild_id)}/party", method="DELETE")

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _post(self, endpoint: str, body: dict[str, Any]) -> None:
        await self.fetch(endpoint, method="POST", headers=JSON_HEADERS, body=body)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def fetch(
        self,
        endpoint: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        """Make a request to the node.

        Args:
            endpoint: Path below the API prefix
            method: HTTP method
            headers: Extra headers merged over the defaults
            params: Query string parameters
            body: JSON body, ignored for GET and HEAD

        Returns:
            Decoded JSON, or None for empty responses

        Raises:
            RemoteCommandError: Non-2xx response
            CommandTimeoutError: No response within the REST timeout
            ProtocolTransportError: The request could not be sent
        """
        settings = self.node.settings
        method = method.upper()
        request_headers = {
            "Authorization": self._auth,
            "User-Agent": settings.user_agent,
            **(headers or {}),
        }
        kwargs: dict[str, Any] = {"headers": request_headers}
        if params:
            kwargs["params"] = params
        if method not in ("GET", "HEAD") and body is not None:
            kwargs["json"] = body

        timeout = aiohttp.ClientTimeout(total=settings.rest_timeout_s)
        started = time.perf_counter()
        try:
            async with self._get_session().request(
                method, f"{self._url}{endpoint}", timeout=timeout, **kwargs
            ) as response:
                if not 200 <= response.status < 300:
                    payload = await self._read_json(response)
                    if settings.metrics_enabled:
                        record_rest_error(response.status)
                    raise RemoteCommandError.from_payload(
                        payload if isinstance(payload, dict) else None,
                        response.status,
                        endpoint,
                    )
                if response.status == 204:
                    return None
                return await self._read_json(response)

        except asyncio.TimeoutError:
            if settings.metrics_enabled:
                record_rest_error(408)
            raise CommandTimeoutError(endpoint, settings.rest_timeout_s)

        except aiohttp.ClientError as e:
            error = ProtocolTransportError(self.node.name, str(e))
            await self.node.events.publish(ErrorOccurred(error=error))
            raise error from e

        finally:
            if settings.metrics_enabled:
                record_rest_request(method, time.perf_counter() - started)

    @staticmethod
    async def _read_json(response: aiohttp.ClientResponse) -> Any:
        try:
            return await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            return None

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


RestFactory = Callable[["Node", NodeOption], Rest]
