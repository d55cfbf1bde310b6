"""Session descriptors for resume, export and import.

``SerializedSession`` is the stable at-rest shape produced by
``LvgoClient.export_sessions``. It dumps with camelCase keys:

    {
        "guildId": "...", "channelId": "...", "shardId": 0, "nodeName": "...",
        "player": {"track", "position", "paused", "volume", "filters", "partyId"},
        "connection": {"deaf", "mute", "sessionId", "region"}
    }

``ResumeSession`` is the input of ``LvgoClient.resume_sessions``; import is
``SerializedSession.to_resume_session`` followed by a resume.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Dump with camelCase keys."""
        return self.model_dump(by_alias=True)


class PlayerSnapshot(_CamelModel):
    """Playback state to restore. Fields left unset are not sent."""

    track: str | None = None
    position: int | None = Field(default=None, ge=0)
    paused: bool | None = None
    volume: int | None = Field(default=None, ge=0, le=1000)
    filters: dict[str, Any] | None = None

    def to_update(self) -> dict[str, Any]:
        """Build the player update payload for this snapshot."""
        options: dict[str, Any] = {}
        if "track" in self.model_fields_set:
            options["track"] = {"encoded": self.track}
        for name in ("position", "paused", "volume", "filters"):
            value = getattr(self, name)
            if value is not None:
                options[name] = value
        return options


class ResumeSession(_CamelModel):
    """A guild session to re-establish.

    Attributes:
        preferred_node: Node to use instead of the selector when it is
            registered and connected
    """

    guild_id: str
    channel_id: str
    shard_id: int = 0
    deaf: bool = False
    mute: bool = False
    player_state: PlayerSnapshot | None = None
    preferred_node: str | None = None


class SerializedPlayer(_CamelModel):
    track: str | None = None
    position: int = 0
    paused: bool = False
    volume: int = 100
    filters: dict[str, Any] = Field(default_factory=dict)
    party_id: str | None = None


class SerializedConnection(_CamelModel):
    deaf: bool = False
    mute: bool = False
    session_id: str | None = None
    region: str | None = None


class SerializedSession(_CamelModel):
    """Exported guild session."""

    guild_id: str
    channel_id: str
    shard_id: int = 0
    node_name: str
    player: SerializedPlayer = Field(default_factory=SerializedPlayer)
    connection: SerializedConnection = Field(default_factory=SerializedConnection)

    def to_resume_session(self, prefer_original_node: bool = False) -> ResumeSession:
        """Transform into resume input, restoring the exported playback state."""
        return ResumeSession(
            guild_id=self.guild_id,
            channel_id=self.channel_id,
            shard_id=self.shard_id,
            deaf=self.connection.deaf,
            mute=self.connection.mute,
            player_state=PlayerSnapshot(
                track=self.player.track,
                position=self.player.position,
                paused=self.player.paused,
                volume=self.player.volume,
                filters=dict(self.player.filters),
            ),
            preferred_node=self.node_name if prefer_original_node else None,
        )
