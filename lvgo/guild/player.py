"""Player - mirror of one guild's remote playback state.

The node is authoritative: every command response replaces the cached
attributes instead of merging the request into them. Commands issued while
the owning node is not connected fail with ``NodeUnavailableError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from lvgo.events import (
    ConnectionUpdate,
    Event,
    EventChannel,
    PlayerError,
    PlayerUpdate,
    TrackEnd,
    TrackException,
    TrackStart,
    TrackStuck,
    VoiceState,
    WebSocketClosed,
)
from lvgo.exceptions import HandshakeFailedError, LvgoError, NodeUnavailableError
from lvgo.guild.party import Party
from lvgo.observability.logging import get_logger

if TYPE_CHECKING:
    from lvgo.guild.connection import Connection
    from lvgo.node.node import Node

logger = get_logger(__name__)

DEFAULT_VOLUME = 100

# Filter payload that resets every filter on the node
EMPTY_FILTERS: dict[str, Any] = {
    "volume": 1.0,
    "equalizer": [],
    "karaoke": None,
    "timescale": None,
    "tremolo": None,
    "vibrato": None,
    "rotation": None,
    "distortion": None,
    "channelMix": None,
    "lowPass": None,
}


class Player:
    """Playback session of one guild on one node.

    Usage:
        player = Player(guild_id, node)
        await player.send_server_update(connection)
        await player.play_track({"encoded": encoded})
        await player.set_paused(True)

        try:
            await player.destroy()
        finally:
            player.clean()
    """

    def __init__(self, guild_id: str, node: "Node") -> None:
        self.guild_id = guild_id
        self.node = node

        self.track: str | None = None
        self.position: int = 0
        self.ping: int = 0
        self.connected: bool = False
        self.paused: bool = False
        self.volume: int = DEFAULT_VOLUME
        self.filters: dict[str, Any] = {}
        self.party_id: str | None = None

        self.events = EventChannel(f"player:{guild_id}")
        self._connection: "Connection | None" = None

    def __repr__(self) -> str:
        return (
            f"<Player guild_id={self.guild_id} node={self.node.name} "
            f"track={self.track is not None} paused={self.paused}>"
        )

    # -------------------------------------------------------------------------
    # Core commands
    # -------------------------------------------------------------------------

    def _require_node(self) -> "Node":
        if not self.node.is_connected:
            raise NodeUnavailableError(self.node.name, self.node.state.value)
        return self.node

    async def update(self, options: dict[str, Any], no_replace: bool = False) -> None:
        """Send a partial update and adopt the node's resulting state.

        Args:
            options: Any subset of track, position, endTime, paused, volume,
                filters and voice
            no_replace: Do not replace a playing track

        Raises:
            NodeUnavailableError: The owning node is not connected
            RemoteCommandError: The node rejected the update
        """
        node = self._require_node()
        data = await node.rest.update_player(self.guild_id, options, no_replace)
        if data:
            self.apply_state(data)

    def apply_state(self, data: dict[str, Any]) -> None:
        """Replace cached attributes with a node player object."""
        track = data.get("track") or {}
        state = data.get("state") or {}
        self.track = track.get("encoded")
        self.volume = data.get("volume", DEFAULT_VOLUME)
        self.paused = data.get("paused", False)
        self.filters = dict(data.get("filters") or {})
        self.position = state.get("position", 0)
        self.ping = state.get("ping", 0)
        self.connected = state.get("connected", False)
        if "partyId" in data:
            self.party_id = data["partyId"]

    async def send_server_update(self, connection: "Connection") -> None:
        """Push the connection's voice credentials to the node.

        Safe to repeat; only the voice credentials are sent.

        Raises:
            HandshakeFailedError: The connection is missing a credential half
        """
        voice = self._voice_payload(connection)
        await self.update({"voice": voice})

    @staticmethod
    def _voice_payload(connection: "Connection") -> dict[str, str]:
        server = connection.server_update
        if server is None or not connection.session_id:
            raise HandshakeFailedError(connection.guild_id, "voice credentials incomplete")
        return {
            "token": server["token"],
            "endpoint": server["endpoint"],
            "sessionId": connection.session_id,
        }

    async def resume(self, connection: "Connection", no_replace: bool = False) -> None:
        """Replay voice credentials and cached playback state to the node."""
        payload: dict[str, Any] = {
            "voice": self._voice_payload(connection),
            "track": {"encoded": self.track},
            "position": self.position,
            "paused": self.paused,
            "volume": self.volume,
        }
        if self.filters:
            payload["filters"] = self.filters
        await self.update(payload, no_replace)

    async def move(self, node: "Node", connection: "Connection") -> None:
        """Move this player to another node and replay its state there."""
        if node is self.node:
            return
        old = self.node
        if old.is_connected:
            try:
                await old.rest.destroy_player(self.guild_id)
            except LvgoError as e:
                logger.warning(
                    "player_move_destroy_failed",
                    guild_id=self.guild_id,
                    node=old.name,
                    error=str(e),
                )
        self.node = node
        await self.resume(connection)

    async def destroy(self) -> None:
        """Delete the remote player."""
        node = self._require_node()
        await node.rest.destroy_player(self.guild_id)

    def clean(self) -> None:
        """Drop listeners and reset cached state. Never touches the node."""
        self.unbind_connection()
        self.events.clear()
        self.track = None
        self.position = 0
        self.paused = False
        self.volume = DEFAULT_VOLUME
        self.filters = {}
        self.party_id = None

    # -------------------------------------------------------------------------
    # Connection binding
    # -------------------------------------------------------------------------

    def bind_connection(self, connection: "Connection") -> None:
        """Re-push credentials whenever the connection reports SESSION_READY."""
        self.unbind_connection()
        self._connection = connection
        connection.events.subscribe(self._on_connection_update)

    def unbind_connection(self) -> None:
        """Stop listening to the bound connection."""
        if self._connection is not None:
            self._connection.events.unsubscribe(self._on_connection_update)
            self._connection = None

    async def _on_connection_update(self, event: Event) -> None:
        if not isinstance(event, ConnectionUpdate):
            return
        if event.state != VoiceState.SESSION_READY or self._connection is None:
            return
        try:
            await self.send_server_update(self._connection)
        except LvgoError as e:
            await self.events.publish(PlayerError(guild_id=self.guild_id, error=e))

    # -------------------------------------------------------------------------
    # Convenience commands
    # -------------------------------------------------------------------------

    async def play_track(
        self,
        track: dict[str, Any],
        no_replace: bool = False,
        **options: Any,
    ) -> None:
        """Play a track.

        Args:
            track: ``{"encoded": ...}`` or ``{"identifier": ...}``, optionally
                with ``userData``
            no_replace: Do not replace a playing track
            **options: Extra update fields such as position or paused
        """
        await self.update({"track": track, **options}, no_replace)

    async def stop_track(self) -> None:
        """Stop the current track."""
        await self.update({"track": {"encoded": None}})

    async def set_paused(self, paused: bool = True) -> None:
        """Pause or resume playback."""
        await self.update({"paused": paused})

    async def seek_to(self, position: int) -> None:
        """Seek to a position in milliseconds."""
        await self.update({"position": position})

    async def set_global_volume(self, volume: int) -> None:
        """Set player volume, 0-1000."""
        await self.update({"volume": volume})

    async def set_filters(self, filters: dict[str, Any]) -> None:
        """Replace every filter."""
        await self.update({"filters": filters})

    async def clear_filters(self) -> None:
        """Reset every filter."""
        await self.set_filters(dict(EMPTY_FILTERS))

    async def _set_filter(self, key: str, value: Any) -> None:
        await self.set_filters({**self.filters, key: value})

    async def set_volume(self, volume: float) -> None:
        """Set the volume filter, 0.0-5.0."""
        await self._set_filter("volume", volume)

    async def set_equalizer(self, bands: list[dict[str, float]]) -> None:
        """Set equalizer bands."""
        await self._set_filter("equalizer", bands)

    async def set_karaoke(self, karaoke: dict[str, float] | None = None) -> None:
        await self._set_filter("karaoke", karaoke)

    async def set_timescale(self, timescale: dict[str, float] | None = None) -> None:
        await self._set_filter("timescale", timescale)

    async def set_tremolo(self, tremolo: dict[str, float] | None = None) -> None:
        await self._set_filter("tremolo", tremolo)

    async def set_vibrato(self, vibrato: dict[str, float] | None = None) -> None:
        await self._set_filter("vibrato", vibrato)

    async def set_rotation(self, rotation: dict[str, float] | None = None) -> None:
        await self._set_filter("rotation", rotation)

    async def set_distortion(self, distortion: dict[str, float] | None = None) -> None:
        await self._set_filter("distortion", distortion)

    async def set_channel_mix(self, mix: dict[str, float] | None = None) -> None:
        await self._set_filter("channelMix", mix)

    async def set_low_pass(self, low_pass: dict[str, float] | None = None) -> None:
        await self._set_filter("lowPass", low_pass)

    # -------------------------------------------------------------------------
    # Party
    # -------------------------------------------------------------------------

    async def get_party(self) -> Party | None:
        """Fetch the party this guild belongs to."""
        node = self._require_node()
        data = await node.rest.get_party(self.guild_id)
        if not data:
            self.party_id = None
            return None
        party = Party.from_data(node, self.guild_id, data)
        self.party_id = party.id
        return party

    async def leave_party(self) -> None:
        """Leave the current party."""
        node = self._require_node()
        await node.rest.leave_party(self.guild_id)
        self.party_id = None

    # -------------------------------------------------------------------------
    # Node dispatch
    # -------------------------------------------------------------------------

    async def on_player_update(self, data: dict[str, Any]) -> None:
        """Apply a ``playerUpdate`` message."""
        state = data.get("state") or {}
        self.position = state.get("position", self.position)
        self.ping = state.get("ping", self.ping)
        self.connected = state.get("connected", self.connected)
        await self.events.publish(
            PlayerUpdate(
                guild_id=self.guild_id,
                position=self.position,
                ping=self.ping,
                connected=self.connected,
                time=state.get("time", 0),
            )
        )

    async def on_player_event(self, data: dict[str, Any]) -> None:
        """Apply an ``event`` message."""
        kind = data.get("type")
        track = data.get("track") or {}

        if kind == "TrackStartEvent":
            self.track = track.get("encoded", self.track)
            event: Event = TrackStart(guild_id=self.guild_id, track=track)
        elif kind == "TrackEndEvent":
            reason = data.get("reason", "finished")
            if reason != "replaced":
                self.track = None
            event = TrackEnd(guild_id=self.guild_id, track=track, reason=reason)
        elif kind == "TrackStuckEvent":
            event = TrackStuck(
                guild_id=self.guild_id,
                track=track,
                threshold_ms=data.get("thresholdMs", 0),
            )
        elif kind == "TrackExceptionEvent":
            event = TrackException(
                guild_id=self.guild_id,
                track=track,
                exception=data.get("exception") or {},
            )
        elif kind == "WebSocketClosedEvent":
            event = WebSocketClosed(
                guild_id=self.guild_id,
                code=data.get("code", 0),
                reason=data.get("reason", ""),
                by_remote=data.get("byRemote", False),
            )
        else:
            logger.debug("player_unknown_event", guild_id=self.guild_id, type=kind)
            return
        await self.events.publish(event)


PlayerFactory = Callable[[str, "Node"], Player]
