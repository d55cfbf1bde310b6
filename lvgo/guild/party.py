"""Listen Together party - synchronized playback across guilds."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from lvgo.node.node import Node


class Party:
    """A party as seen from one member guild.

    Attributes:
        id: Party id
        host_guild_id: Guild that hosts the party
        host_session_id: Node session of the host
        sync_enabled: Whether playback is synchronized
        members: Members other than the host
    """

    def __init__(self, node: "Node", guild_id: str, data: dict[str, Any]) -> None:
        self._node = node
        self._guild_id = guild_id
        self.id: str = data["id"]
        self.host_guild_id: str = data["hostGuildId"]
        self.host_session_id: str = data.get("hostSessionId", "")
        self.sync_enabled: bool = data.get("syncEnabled", False)
        self.members: list[dict[str, Any]] = list(data.get("members") or [])

    @classmethod
    def from_data(cls, node: "Node", guild_id: str, data: dict[str, Any]) -> "Party":
        return cls(node, guild_id, data)

    def __repr__(self) -> str:
        return f"<Party id={self.id} host={self.host_guild_id} size={self.size}>"

    @property
    def is_host(self) -> bool:
        """Whether this guild hosts the party."""
        return self._guild_id == self.host_guild_id

    @property
    def size(self) -> int:
        """Participants including the host."""
        return len(self.members) + 1

    async def refresh(self) -> "Party | None":
        """Reload members and sync flag; None once the guild left."""
        data = await self._node.rest.get_party(self._guild_id)
        if not data:
            return None
        self.sync_enabled = data.get("syncEnabled", self.sync_enabled)
        self.members = list(data.get("members") or [])
        return self

    async def leave(self) -> None:
        """Leave the party. A leaving host disbands it."""
        await self._node.rest.leave_party(self._guild_id)
