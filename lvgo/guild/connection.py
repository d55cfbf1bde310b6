"""Voice Connection - per-guild voice handshake with the gateway.

A connection is usable once two independently delivered halves have both
arrived since the last ``connect()``:

- voice state: session id, channel, self mute/deaf
- voice server: token, endpoint (region is derived from the endpoint)

States:
- IDLE: Not joined
- AWAITING_CREDENTIALS: Join requested, waiting for both halves
- READY: Both halves received
- FAILED: Last handshake timed out or was refused; joinable again

Every voice server delivery received while READY re-publishes
SESSION_READY so the player can push fresh credentials.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from lvgo.config.constants import DEFAULTS
from lvgo.events import ConnectionUpdate, EventChannel, VoiceState
from lvgo.exceptions import HandshakeFailedError, HandshakeTimeoutError
from lvgo.observability.logging import GuildLogger
from lvgo.utils.async_timeout import AsyncTimeoutError, with_timeout

if TYPE_CHECKING:
    from lvgo.connectors.connector import Connector


class ConnectionState(Enum):
    """Voice handshake state."""

    IDLE = "idle"
    AWAITING_CREDENTIALS = "awaiting_credentials"
    READY = "ready"
    FAILED = "failed"


@dataclass
class VoiceChannelOptions:
    """Target of a voice join.

    Attributes:
        guild_id: Guild of the voice channel
        shard_id: Gateway shard of the guild, 0 when unsharded
        channel_id: Voice channel to join
        deaf: Join self-deafened
        mute: Join self-muted
    """

    guild_id: str
    shard_id: int
    channel_id: str
    deaf: bool = False
    mute: bool = False


def parse_region(endpoint: str | None) -> str | None:
    """Derive a region name from a voice endpoint.

    ``wss://us-east1234.discord.media:443`` -> ``us-east``
    """
    if not endpoint:
        return None
    host = endpoint.split("://", 1)[-1].split(".", 1)[0]
    region = re.sub(r"[0-9]", "", host)
    return region or None


class Connection:
    """Voice connection of one guild.

    Usage:
        connection = Connection(connector, options)
        await connection.connect()   # returns once READY

        # Gateway adapters deliver the two halves
        await connection.set_state_update(voice_state_payload)
        await connection.set_server_update(voice_server_payload)

        await connection.disconnect()
    """

    def __init__(
        self,
        connector: "Connector",
        options: VoiceChannelOptions,
        timeout_s: float = DEFAULTS.VOICE_CONNECTION_TIMEOUT_S,
    ) -> None:
        self._connector = connector
        self._timeout_s = timeout_s

        self.guild_id = options.guild_id
        self.shard_id = options.shard_id
        self.channel_id: str | None = options.channel_id
        self.last_channel_id: str | None = None
        self.deafened = options.deaf
        self.muted = options.mute

        # Voice state half
        self.session_id: str | None = None
        # Voice server half
        self.token: str | None = None
        self.endpoint: str | None = None
        self.region: str | None = None
        self.last_region: str | None = None

        self._state = ConnectionState.IDLE
        self._state_received = False
        self._server_received = False
        self._ready_event = asyncio.Event()
        self._failure: HandshakeFailedError | None = None

        self.events = EventChannel(f"connection:{self.guild_id}")
        self._logger = GuildLogger(self.guild_id)

    @property
    def state(self) -> ConnectionState:
        """Current handshake state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """Whether both credential halves are present."""
        return self._state == ConnectionState.READY

    @property
    def server_update(self) -> dict[str, str] | None:
        """Token and endpoint of the last voice server delivery."""
        if self.token is None or self.endpoint is None:
            return None
        return {"token": self.token, "endpoint": self.endpoint}

    def _missing(self) -> list[str]:
        missing = []
        if not self._state_received:
            missing.append("voice_state")
        if not self._server_received:
            missing.append("voice_server")
        return missing

    async def connect(self) -> None:
        """Request the voice channel and wait for both credential halves.

        Raises:
            HandshakeTimeoutError: Both halves did not arrive in time
            HandshakeFailedError: The gateway removed us from the channel,
                or a handshake is already running
        """
        if self._state == ConnectionState.AWAITING_CREDENTIALS:
            raise HandshakeFailedError(self.guild_id, "handshake already in progress")

        self._state_received = False
        self._server_received = False
        self._failure = None
        self._ready_event.clear()
        self._state = ConnectionState.AWAITING_CREDENTIALS

        self._logger.handshake_started(self.channel_id, self._timeout_s)
        try:
            await self._send_voice_state()
            await with_timeout(
                self._ready_event.wait(),
                timeout_s=self._timeout_s,
                operation="voice handshake",
            )
        except AsyncTimeoutError:
            missing = self._missing()
            self._state = ConnectionState.FAILED
            self._logger.handshake_timeout(missing)
            raise HandshakeTimeoutError(self.guild_id, self._timeout_s, missing)
        except BaseException:
            if self._state == ConnectionState.AWAITING_CREDENTIALS:
                self._state = ConnectionState.FAILED
            raise

        if self._failure is not None:
            if self._state == ConnectionState.AWAITING_CREDENTIALS:
                self._state = ConnectionState.FAILED
            raise self._failure

    async def set_state_update(self, data: dict[str, Any]) -> None:
        """Apply a voice state delivery.

        Args:
            data: Gateway voice state with ``channel_id``, ``session_id``,
                ``self_deaf`` and ``self_mute``
        """
        channel_id = data.get("channel_id")
        if not channel_id:
            self._on_channel_removed()
            return

        if self.channel_id != channel_id:
            self.last_channel_id = self.channel_id
            self.channel_id = channel_id

        self.deafened = bool(data.get("self_deaf", self.deafened))
        self.muted = bool(data.get("self_mute", self.muted))

        previous_session = self.session_id
        self.session_id = data.get("session_id") or self.session_id
        self._state_received = self.session_id is not None

        if self._state == ConnectionState.READY:
            if self.session_id != previous_session:
                await self._publish(VoiceState.SESSION_READY)
            return
        await self._check_ready()

    async def set_server_update(self, data: dict[str, Any]) -> None:
        """Apply a voice server delivery.

        Args:
            data: Gateway voice server payload with ``token`` and ``endpoint``
        """
        endpoint = data.get("endpoint")
        if not endpoint:
            # Gateway is still allocating a voice server
            await self._publish(VoiceState.SESSION_ENDPOINT_MISSING)
            return

        self.token = data.get("token")
        self.endpoint = endpoint
        region = parse_region(endpoint)
        if region != self.region:
            self.last_region = self.region
            self.region = region
        self._server_received = True
        self._logger.server_update(endpoint, self.region)

        if not self.session_id:
            await self._publish(VoiceState.SESSION_ID_MISSING)

        if self._state == ConnectionState.READY:
            await self._publish(VoiceState.SESSION_READY)
            return
        await self._check_ready()

    async def set_deaf(self, deaf: bool = False) -> None:
        """Change self-deaf and tell the gateway."""
        self.deafened = deaf
        await self._send_voice_state()

    async def set_mute(self, mute: bool = False) -> None:
        """Change self-mute and tell the gateway."""
        self.muted = mute
        await self._send_voice_state()

    async def disconnect(self) -> None:
        """Leave the voice channel. Does nothing when already idle."""
        if self._state == ConnectionState.IDLE:
            return
        if self._state == ConnectionState.AWAITING_CREDENTIALS:
            self._failure = HandshakeFailedError(self.guild_id, "disconnected")
            self._ready_event.set()

        self._state = ConnectionState.IDLE
        self.channel_id = None
        self.deafened = False
        self.muted = False
        await self._connector.send_voice_leave_request(self.guild_id, self.shard_id)

    async def _check_ready(self) -> None:
        if self._state != ConnectionState.AWAITING_CREDENTIALS:
            return
        if not (self._state_received and self._server_received):
            return
        self._state = ConnectionState.READY
        self._ready_event.set()
        self._logger.handshake_ready(self.region)
        await self._publish(VoiceState.SESSION_READY)

    def _on_channel_removed(self) -> None:
        self.last_channel_id = self.channel_id
        self.channel_id = None
        if self._state == ConnectionState.AWAITING_CREDENTIALS:
            self._failure = HandshakeFailedError(self.guild_id, "voice channel removed")
            self._ready_event.set()
        elif self._state == ConnectionState.READY:
            self._state = ConnectionState.IDLE

    async def _send_voice_state(self) -> None:
        await self._connector.send_voice_state_request(
            self.guild_id,
            self.shard_id,
            self.channel_id,
            self.deafened,
            self.muted,
        )

    async def _publish(self, state: VoiceState) -> None:
        await self.events.publish(ConnectionUpdate(guild_id=self.guild_id, state=state))
