"""Node - persistent protocol session with one remote audio node.

States:
- DISCONNECTED: No websocket; terminal after an explicit disconnect or
  once the reconnect budget is spent
- CONNECTING: Websocket opening or waiting for the ``ready`` op
- CONNECTED: ``ready`` received, session id assigned
- RECONNECTING: Waiting out the interval before the next attempt

Resume is two independent mechanisms:
- Server-side: after ``ready`` the node is asked (``update_session``) to
  keep players alive for ``resume_timeout_s`` after an unexpected drop.
  On reconnect the ``Session-Id`` header lets the node pick them up again.
- Library-side: after reconnecting, every cached player bound to this node
  replays its voice credentials and playback state.

The node finds players through a ``PlayerDirectory`` supplied by the
client; it holds no reference to the client itself.
"""

from __future__ import annotations

import asyncio
import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp

from lvgo import __version__
from lvgo.config.constants import DEFAULTS
from lvgo.config.settings import NodeOption, Settings
from lvgo.events import (
    Closed,
    Debug,
    Disconnected,
    ErrorOccurred,
    EventChannel,
    PlayerError,
    Raw,
    Ready,
    Reconnecting,
)
from lvgo.exceptions import LvgoError, ProtocolTransportError
from lvgo.node.rest import Rest, RestFactory
from lvgo.observability.logging import NodeLogger
from lvgo.observability.metrics import (
    record_node_connected,
    record_node_disconnect,
    record_node_lost,
    record_node_reconnect,
)
from lvgo.utils.reconnect import ReconnectBudget, ReconnectConfig

if TYPE_CHECKING:
    from lvgo.guild.connection import Connection
    from lvgo.guild.player import Player


class NodeState(Enum):
    """Node connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class PlayerDirectory(Protocol):
    """Lookup of players and connections by guild id."""

    def get_player(self, guild_id: str) -> "Player | None": ...

    def get_connection(self, guild_id: str) -> "Connection | None": ...

    def players_on(self, node_name: str) -> list["Player"]: ...


@dataclass
class NodeStats:
    """Last ``stats`` report of a node."""

    players: int = 0
    playing_players: int = 0
    uptime: int = 0
    memory: dict[str, int] = field(default_factory=dict)
    cpu: dict[str, float] = field(default_factory=dict)
    frame_stats: dict[str, int] | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "NodeStats":
        return cls(
            players=data.get("players", 0),
            playing_players=data.get("playingPlayers", 0),
            uptime=data.get("uptime", 0),
            memory=dict(data.get("memory") or {}),
            cpu=dict(data.get("cpu") or {}),
            frame_stats=data.get("frameStats"),
        )

    @property
    def penalties(self) -> int:
        """Load score, lower is better."""
        penalties = self.players
        system_load = self.cpu.get("systemLoad", 0.0)
        penalties += round(math.pow(1.05, 100 * system_load) * 10 - 10)
        if self.frame_stats:
            penalties += self.frame_stats.get("deficit", 0)
            penalties += self.frame_stats.get("nulled", 0) * 2
        return penalties


class Node:
    """Connection to one remote audio node.

    Usage:
        node = Node(option, settings, directory, user_id="1234")
        node.events.subscribe(on_event)
        await node.connect()

        player_state = await node.rest.update_player(guild_id, {...})

        await node.disconnect(1000, "shutdown")
    """

    def __init__(
        self,
        option: NodeOption,
        settings: Settings,
        directory: PlayerDirectory,
        user_id: str | None = None,
        rest_factory: RestFactory | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.option = option
        self.name = option.name
        self.group = option.group
        self.settings = settings
        self.user_id = user_id

        self.state = NodeState.DISCONNECTED
        self.session_id: str | None = None
        self.stats: NodeStats | None = None
        self.events = EventChannel(f"node:{self.name}")
        self.rest: Rest = (rest_factory or Rest)(self, option)

        self._directory = directory
        self._budget = ReconnectBudget(
            ReconnectConfig(
                tries=settings.reconnect_tries,
                interval_s=settings.reconnect_interval_s,
            )
        )
        self._http = session
        self._owns_http = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._listener_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._explicit_close = False
        self._initialized = False
        self._logger = NodeLogger(self.name)

    def __repr__(self) -> str:
        return f"<Node name={self.name} state={self.state.value} group={self.group}>"

    @property
    def is_connected(self) -> bool:
        """Whether the node has completed its handshake."""
        return self.state == NodeState.CONNECTED

    @property
    def reconnects(self) -> int:
        """Reconnect attempts since the last handshake."""
        return self._budget.attempts

    @property
    def penalties(self) -> int:
        """Load score from the last stats report."""
        return self.stats.penalties if self.stats else 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": self.option.auth,
            "User-Agent": self.settings.user_agent,
            "Client-Name": f"{DEFAULTS.CLIENT_NAME}/{__version__}",
        }
        if self.user_id:
            headers["User-Id"] = self.user_id
        if self.settings.resume and self.session_id:
            headers["Session-Id"] = self.session_id
        return headers

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    async def connect(self) -> None:
        """Open the websocket.

        Returns once the socket is open; the node becomes CONNECTED when the
        ``ready`` op arrives. Open failures are not raised; they are
        published and handed to the reconnect logic.
        """
        if self.state in (NodeState.CONNECTING, NodeState.CONNECTED):
            return

        self._explicit_close = False
        self.state = NodeState.CONNECTING
        self._logger.connecting(self.option.ws_url, attempt=self._budget.attempts + 1)
        await self._debug(f"Connecting to {self.option.ws_url}")

        try:
            self._ws = await self._get_http().ws_connect(
                self.option.ws_url, headers=self._headers()
            )
        except (aiohttp.ClientError, OSError) as e:
            await self._report(ProtocolTransportError(self.name, str(e)))
            await self._handle_close(DEFAULTS.CLOSE_ABNORMAL, str(e))
            return

        await self._debug("Websocket open, waiting for ready")
        self._listener_task = asyncio.create_task(self._listen(self._ws))

    async def disconnect(
        self,
        code: int = DEFAULTS.CLOSE_NORMAL,
        reason: str = "Disconnected",
    ) -> None:
        """Close the websocket without reconnecting.

        Wins over a pending reconnect regardless of the remaining budget.
        Publishes ``Closed`` only; nodes owned by a client are removed with
        ``LvgoClient.remove_node``.
        """
        self._explicit_close = True
        was_connected = self.is_connected
        self.state = NodeState.DISCONNECTED

        await self._cancel(self._reconnect_task)
        self._reconnect_task = None
        await self._cancel(self._listener_task)
        self._listener_task = None

        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close(code=code, message=reason.encode())

        self.session_id = None
        if was_connected and self.settings.metrics_enabled:
            record_node_lost()
        self._logger.disconnected(len(self._directory.players_on(self.name)), explicit=True)
        await self.events.publish(Closed(code=code, reason=reason))

    async def close(self) -> None:
        """Disconnect if still live and release HTTP resources."""
        if self.state != NodeState.DISCONNECTED:
            await self.disconnect(reason="Node closed")
        await self.rest.close()
        if self._http is not None and self._owns_http and not self._http.closed:
            await self._http.close()
        self._http = None

    @staticmethod
    async def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _listen(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        code, reason = DEFAULTS.CLOSE_ABNORMAL, "Connection lost"
        while True:
            msg = await ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    await self._on_message(msg.data)
                except LvgoError as e:
                    await self._report(e)
            elif msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
            ):
                if isinstance(msg.data, int):
                    code = msg.data
                elif ws.close_code is not None:
                    code = ws.close_code
                reason = msg.extra or reason
                break
            elif msg.type == aiohttp.WSMsgType.ERROR:
                await self._report(ProtocolTransportError(self.name, str(ws.exception())))
                break

        if self._ws is ws:
            self._ws = None
        await self._handle_close(code, reason)

    async def _handle_close(self, code: int, reason: str) -> None:
        if self.state == NodeState.CONNECTED and self.settings.metrics_enabled:
            record_node_lost()
        self._logger.closed(code, reason)
        await self.events.publish(Closed(code=code, reason=reason))

        if self._explicit_close:
            return
        if self._budget.exhausted:
            await self._give_up()
            return

        self.state = NodeState.RECONNECTING
        remaining = self._budget.consume()
        interval_s = self._budget.config.interval_s
        if self.settings.metrics_enabled:
            record_node_reconnect(self.name)
        self._logger.reconnecting(remaining, interval_s)
        await self.events.publish(Reconnecting(remaining=remaining, interval_s=interval_s))
        self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        await self._budget.wait()
        if self._explicit_close:
            return
        await self.connect()

    async def _give_up(self) -> None:
        players = len(self._directory.players_on(self.name))
        self.state = NodeState.DISCONNECTED
        self.session_id = None
        if self.settings.metrics_enabled:
            record_node_disconnect(self.name)
        self._logger.disconnected(players, explicit=False)
        await self.events.publish(Disconnected(players=players))

    # -------------------------------------------------------------------------
    # Inbound messages
    # -------------------------------------------------------------------------

    async def _on_message(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except ValueError:
            await self._debug(f"Dropped malformed message: {raw[:200]}")
            return

        await self.events.publish(Raw(payload=data))
        op = data.get("op")

        if op == "ready":
            await self._on_ready(data)
        elif op == "stats":
            self.stats = NodeStats.from_payload(data)
        elif op in ("playerUpdate", "event"):
            player = self._directory.get_player(str(data.get("guildId")))
            if player is None or player.node is not self:
                return
            if op == "playerUpdate":
                await player.on_player_update(data)
            else:
                await player.on_player_event(data)
        else:
            await self._debug(f"Unknown op: {op}")

    async def _on_ready(self, data: dict[str, Any]) -> None:
        session_id = data.get("sessionId")
        if not session_id:
            reason = "ready without session id"
            await self._report(ProtocolTransportError(self.name, reason))
            # The receive loop sees the close and hands over to reconnect
            if self._ws is not None and not self._ws.closed:
                await self._ws.close(
                    code=DEFAULTS.CLOSE_PROTOCOL_ERROR, message=reason.encode()
                )
            return

        resumed = bool(data.get("resumed", False))
        reconnected = self._initialized
        self.session_id = session_id
        self._initialized = True
        self._budget.reset()
        self.state = NodeState.CONNECTED
        if self.settings.metrics_enabled:
            record_node_connected()

        library_resumed = False
        if self.settings.resume_by_library and reconnected:
            library_resumed = await self._resume_players()

        if self.settings.resume:
            try:
                await self.rest.update_session(True, self.settings.resume_timeout_s)
                await self._debug(
                    f"Server-side resume enabled for {self.settings.resume_timeout_s}s"
                )
            except LvgoError as e:
                await self._report(e)

        self._logger.ready(session_id, resumed, library_resumed)
        await self.events.publish(Ready(resumed=resumed, library_resumed=library_resumed))

    async def _resume_players(self) -> bool:
        players = self._directory.players_on(self.name)
        replayed = False
        for player in players:
            connection = self._directory.get_connection(player.guild_id)
            if connection is None:
                continue
            replayed = True
            try:
                await player.resume(connection)
            except LvgoError as e:
                await player.events.publish(PlayerError(guild_id=player.guild_id, error=e))
                await self._report(e)
        if replayed:
            await self._debug(f"Replayed {len(players)} player(s)")
        return replayed

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def _debug(self, message: str) -> None:
        self._logger.debug(message)
        await self.events.publish(Debug(message=message))

    async def _report(self, error: LvgoError) -> None:
        await self.events.publish(ErrorOccurred(error=error))
