"""Per-guild voice connection, player and party."""

from lvgo.guild.connection import (
    Connection,
    ConnectionState,
    VoiceChannelOptions,
    parse_region,
)
from lvgo.guild.party import Party
from lvgo.guild.player import Player, PlayerFactory

__all__ = [
    "Connection",
    "ConnectionState",
    "Party",
    "Player",
    "PlayerFactory",
    "VoiceChannelOptions",
    "parse_region",
]
