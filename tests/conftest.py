"""Pytest configuration and shared fixtures."""

import copy
from typing import Any

import pytest

from lvgo.config.settings import NodeOption, Settings
from lvgo.connectors.connector import Connector
from lvgo.events import EventChannel
from lvgo.node.node import NodeState


VOICE_ENDPOINT = "us-east123.discord.media:443"


class FakeConnector(Connector):
    """Records voice requests.

    When bound to a client and ``auto_ready`` is set, both credential halves
    are delivered through ``handle_raw`` right after a join request, except
    for guilds listed in ``silent_guilds``.
    """

    def __init__(self, user_id: str = "100", auto_ready: bool = True) -> None:
        super().__init__(user_id)
        self.auto_ready = auto_ready
        self.silent_guilds: set[str] = set()
        self.state_requests: list[tuple] = []
        self.leave_requests: list[tuple] = []

    async def send_voice_state_request(self, guild_id, shard_id, channel_id, deaf, mute):
        self.state_requests.append((guild_id, shard_id, channel_id, deaf, mute))
        if not self.auto_ready or not self.is_bound or guild_id in self.silent_guilds:
            return
        await self.handle_raw(
            {
                "t": "VOICE_STATE_UPDATE",
                "d": {
                    "guild_id": guild_id,
                    "user_id": self.user_id,
                    "channel_id": channel_id,
                    "session_id": f"voice-{guild_id}",
                    "self_deaf": deaf,
                    "self_mute": mute,
                },
            }
        )
        await self.handle_raw(
            {
                "t": "VOICE_SERVER_UPDATE",
                "d": {"guild_id": guild_id, "token": "token", "endpoint": VOICE_ENDPOINT},
            }
        )

    async def send_voice_leave_request(self, guild_id, shard_id):
        self.leave_requests.append((guild_id, shard_id))


class FakeRest:
    """In-memory stand-in for a node REST client.

    ``update_player`` applies the options to a stored player object and
    returns a copy, like the node does.
    """

    def __init__(self) -> None:
        self.updates: list[tuple[str, dict, bool]] = []
        self.destroyed: list[str] = []
        self.session_updates: list[tuple] = []
        self.fail_update: Exception | None = None
        self.fail_destroy: Exception | None = None
        self.party: dict | None = None
        self.left_parties: list[str] = []
        self.remote_players: dict[str, dict[str, Any]] = {}

    async def update_player(self, guild_id, player_options, no_replace=False):
        self.updates.append((guild_id, player_options, no_replace))
        if self.fail_update is not None:
            raise self.fail_update
        player = self.remote_players.setdefault(
            guild_id,
            {
                "guildId": guild_id,
                "track": None,
                "volume": 100,
                "paused": False,
                "filters": {},
                "state": {"time": 0, "position": 0, "connected": False, "ping": -1},
            },
        )
        if "track" in player_options:
            encoded = player_options["track"].get("encoded")
            player["track"] = {"encoded": encoded} if encoded else None
        for key in ("volume", "paused", "filters"):
            if key in player_options:
                player[key] = player_options[key]
        if "position" in player_options:
            player["state"]["position"] = player_options["position"]
        if "voice" in player_options:
            player["state"]["connected"] = True
        return copy.deepcopy(player)

    async def destroy_player(self, guild_id):
        self.destroyed.append(guild_id)
        if self.fail_destroy is not None:
            raise self.fail_destroy
        self.remote_players.pop(guild_id, None)

    async def update_session(self, resuming=None, timeout=None):
        self.session_updates.append((resuming, timeout))
        return {"resuming": resuming, "timeout": timeout}

    async def get_party(self, guild_id):
        return self.party

    async def leave_party(self, guild_id):
        self.left_parties.append(guild_id)

    async def close(self):
        pass


class FakeNode:
    """Node double exposing what players, selectors and the client use."""

    def __init__(
        self,
        name: str = "main",
        connected: bool = True,
        group: str | None = None,
        penalties: int = 0,
    ) -> None:
        self.name = name
        self.group = group
        self.penalties = penalties
        self.state = NodeState.CONNECTED if connected else NodeState.DISCONNECTED
        self.session_id = f"{name}-session" if connected else None
        self.events = EventChannel(f"node:{name}")
        self.rest = FakeRest()
        self.disconnects: list[tuple[int, str]] = []
        self.closed = False

    @property
    def is_connected(self) -> bool:
        return self.state == NodeState.CONNECTED

    async def disconnect(self, code: int = 1000, reason: str = "Disconnected") -> None:
        self.disconnects.append((code, reason))
        self.state = NodeState.DISCONNECTED

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings():
    """Fast settings for unit tests."""
    return Settings(
        _env_file=None,
        voice_connection_timeout_s=0.05,
        reconnect_tries=3,
        reconnect_interval_s=0,
        rest_timeout_s=1.0,
        metrics_enabled=False,
    )


@pytest.fixture
def node_option():
    return NodeOption(name="main", url="localhost:2333", auth="youshallnotpass")


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def make_node():
    """Factory for FakeNode instances."""
    return FakeNode


@pytest.fixture
def node():
    return FakeNode()


@pytest.fixture
def make_rest():
    """Factory for FakeRest instances."""
    return FakeRest


@pytest.fixture
def make_connector():
    """Factory for FakeConnector instances."""
    return FakeConnector
