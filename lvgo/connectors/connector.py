"""Connector - adapter between a host gateway library and the client.

Outbound, the client asks the connector to send voice state requests
(join, move, leave) through the host's gateway shard. Inbound, the host
feeds raw gateway dispatch packets to ``handle_raw`` which routes the two
voice credential halves to the guild's Connection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol

from lvgo.observability.logging import get_logger

if TYPE_CHECKING:
    from lvgo.guild.connection import Connection

logger = get_logger(__name__)

VOICE_STATE_UPDATE = "VOICE_STATE_UPDATE"
VOICE_SERVER_UPDATE = "VOICE_SERVER_UPDATE"

# Gateway opcode for voice state requests
OP_VOICE_STATE = 4


class ConnectionDirectory(Protocol):
    """Lookup of voice connections by guild id."""

    def get_connection(self, guild_id: str) -> "Connection | None": ...


def voice_state_payload(
    guild_id: str,
    channel_id: str | None,
    deaf: bool = False,
    mute: bool = False,
) -> dict[str, Any]:
    """Build a gateway voice state request. ``channel_id=None`` leaves."""
    return {
        "op": OP_VOICE_STATE,
        "d": {
            "guild_id": guild_id,
            "channel_id": channel_id,
            "self_deaf": deaf,
            "self_mute": mute,
        },
    }


class Connector(ABC):
    """Base class for host gateway adapters.

    Concrete adapters implement the two send methods; ``handle_raw`` is
    shared.
    """

    def __init__(self, user_id: str | None = None) -> None:
        self.user_id = user_id
        self._directory: ConnectionDirectory | None = None

    def bind(self, directory: ConnectionDirectory) -> None:
        """Attach the client whose connections receive voice updates."""
        self._directory = directory

    @property
    def is_bound(self) -> bool:
        return self._directory is not None

    @abstractmethod
    async def send_voice_state_request(
        self,
        guild_id: str,
        shard_id: int,
        channel_id: str | None,
        deaf: bool,
        mute: bool,
    ) -> None:
        """Ask the gateway to join or move to a voice channel."""
        ...

    @abstractmethod
    async def send_voice_leave_request(self, guild_id: str, shard_id: int) -> None:
        """Ask the gateway to leave the guild's voice channel."""
        ...

    async def handle_raw(self, packet: dict[str, Any]) -> None:
        """Route a raw gateway dispatch packet.

        Args:
            packet: ``{"t": event_name, "d": data}``
        """
        if self._directory is None:
            return
        kind = packet.get("t")
        data = packet.get("d") or {}

        if kind == VOICE_STATE_UPDATE:
            if self.user_id is not None and str(data.get("user_id")) != self.user_id:
                return
            connection = self._directory.get_connection(str(data.get("guild_id")))
            if connection is None:
                return
            await connection.set_state_update(data)

        elif kind == VOICE_SERVER_UPDATE:
            connection = self._directory.get_connection(str(data.get("guild_id")))
            if connection is None:
                return
            await connection.set_server_update(data)


GatewaySend = Callable[[int, dict[str, Any]], Awaitable[None]]


class GatewayConnector(Connector):
    """Connector that sends voice state requests through a callable.

    Usage:
        async def send(shard_id, payload):
            await bot.shards[shard_id].ws.send_json(payload)

        connector = GatewayConnector(send, user_id=str(bot.user.id))
    """

    def __init__(self, send: GatewaySend, user_id: str | None = None) -> None:
        super().__init__(user_id)
        self._send = send

    async def send_voice_state_request(
        self,
        guild_id: str,
        shard_id: int,
        channel_id: str | None,
        deaf: bool,
        mute: bool,
    ) -> None:
        logger.debug(
            "voice_state_request",
            guild_id=guild_id,
            shard_id=shard_id,
            channel_id=channel_id,
        )
        await self._send(shard_id, voice_state_payload(guild_id, channel_id, deaf, mute))

    async def send_voice_leave_request(self, guild_id: str, shard_id: int) -> None:
        logger.debug("voice_leave_request", guild_id=guild_id, shard_id=shard_id)
        await self._send(shard_id, voice_state_payload(guild_id, None))
