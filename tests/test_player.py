"""Tests for the Player state mirror."""

import pytest

from lvgo.events import ConnectionUpdate, PlayerError, TrackEnd, TrackStart, VoiceState
from lvgo.exceptions import HandshakeFailedError, NodeUnavailableError, RemoteCommandError
from lvgo.guild.connection import Connection, VoiceChannelOptions
from lvgo.guild.player import EMPTY_FILTERS, Player
from lvgo.node.node import NodeState


@pytest.fixture
def connection(connector):
    connection = Connection(
        connector, VoiceChannelOptions(guild_id="1", shard_id=0, channel_id="10")
    )
    connection.session_id = "voice-session"
    connection.token = "token"
    connection.endpoint = "us-east1.discord.media:443"
    return connection


@pytest.fixture
def player(node):
    return Player("1", node)


class TestServerUpdate:
    """Tests for voice credential pushes."""

    @pytest.mark.asyncio
    async def test_sends_only_voice(self, player, node, connection):
        await player.send_server_update(connection)

        guild_id, options, no_replace = node.rest.updates[-1]
        assert guild_id == "1"
        assert options == {
            "voice": {
                "token": "token",
                "endpoint": "us-east1.discord.media:443",
                "sessionId": "voice-session",
            }
        }
        assert no_replace is False

    @pytest.mark.asyncio
    async def test_repeat_is_safe(self, player, node, connection):
        await player.play_track({"encoded": "T1"})
        await player.send_server_update(connection)
        await player.send_server_update(connection)

        assert player.track == "T1"
        assert all(set(options) == {"voice"} for _, options, _ in node.rest.updates[1:])

    @pytest.mark.asyncio
    async def test_incomplete_credentials(self, player, connection):
        connection.token = None
        with pytest.raises(HandshakeFailedError):
            await player.send_server_update(connection)


class TestUpdate:
    """The node response replaces cached state."""

    @pytest.mark.asyncio
    async def test_response_replaces_cache(self, player, node):
        node.rest.remote_players["1"] = {
            "track": {"encoded": "remote"},
            "volume": 50,
            "paused": True,
            "filters": {"volume": 0.5},
            "state": {"position": 1200, "ping": 20, "connected": True},
        }

        # The node clamps volume; the cache follows the node, not the request
        async def clamping_update(guild_id, options, no_replace=False):
            return {**node.rest.remote_players["1"], "volume": 150}

        node.rest.update_player = clamping_update
        await player.update({"volume": 9999})

        assert player.volume == 150
        assert player.track == "remote"
        assert player.paused is True
        assert player.position == 1200
        assert player.filters == {"volume": 0.5}

    @pytest.mark.asyncio
    async def test_fails_fast_when_node_down(self, player, node):
        node.state = NodeState.RECONNECTING

        with pytest.raises(NodeUnavailableError):
            await player.set_paused(True)
        assert node.rest.updates == []

    @pytest.mark.asyncio
    async def test_remote_error_propagates(self, player, node):
        node.rest.fail_update = RemoteCommandError(status=400, error="Bad Request")
        with pytest.raises(RemoteCommandError):
            await player.seek_to(1000)


class TestConvenienceCommands:
    @pytest.mark.asyncio
    async def test_play_and_stop(self, player, node):
        await player.play_track({"encoded": "T1"}, no_replace=True, paused=True)
        assert node.rest.updates[-1] == ("1", {"track": {"encoded": "T1"}, "paused": True}, True)
        assert player.track == "T1"

        await player.stop_track()
        assert node.rest.updates[-1][1] == {"track": {"encoded": None}}
        assert player.track is None

    @pytest.mark.asyncio
    async def test_filter_setter_keeps_other_filters(self, player, node):
        await player.set_timescale({"speed": 1.2})
        await player.set_volume(0.8)

        assert node.rest.updates[-1][1] == {
            "filters": {"timescale": {"speed": 1.2}, "volume": 0.8}
        }

    @pytest.mark.asyncio
    async def test_clear_filters(self, player, node):
        await player.clear_filters()
        assert node.rest.updates[-1][1] == {"filters": EMPTY_FILTERS}


class TestDestroyAndClean:
    @pytest.mark.asyncio
    async def test_destroy(self, player, node):
        await player.destroy()
        assert node.rest.destroyed == ["1"]

    @pytest.mark.asyncio
    async def test_destroy_on_dead_node_raises(self, player, node):
        node.state = NodeState.DISCONNECTED
        with pytest.raises(NodeUnavailableError):
            await player.destroy()

    @pytest.mark.asyncio
    async def test_clean_resets_state_without_node(self, player, node, connection):
        await player.play_track({"encoded": "T1"})
        player.bind_connection(connection)
        node.state = NodeState.DISCONNECTED

        player.clean()

        assert player.track is None
        assert player.volume == 100
        assert connection.events.subscriber_count == 0
        assert player.events.subscriber_count == 0


class TestConnectionBinding:
    @pytest.mark.asyncio
    async def test_session_ready_repushes_credentials(self, player, node, connection):
        player.bind_connection(connection)
        await connection.events.publish(
            ConnectionUpdate(guild_id="1", state=VoiceState.SESSION_READY)
        )
        assert set(node.rest.updates[-1][1]) == {"voice"}

    @pytest.mark.asyncio
    async def test_other_states_ignored(self, player, node, connection):
        player.bind_connection(connection)
        await connection.events.publish(
            ConnectionUpdate(guild_id="1", state=VoiceState.SESSION_ID_MISSING)
        )
        assert node.rest.updates == []

    @pytest.mark.asyncio
    async def test_repush_failure_published(self, player, node, connection):
        errors = []
        player.events.subscribe(errors.append)
        player.bind_connection(connection)
        node.state = NodeState.DISCONNECTED

        await connection.events.publish(
            ConnectionUpdate(guild_id="1", state=VoiceState.SESSION_READY)
        )

        assert len(errors) == 1
        assert isinstance(errors[0], PlayerError)
        assert isinstance(errors[0].error, NodeUnavailableError)


class TestResumeAndMove:
    @pytest.mark.asyncio
    async def test_resume_replays_state(self, player, node, connection):
        player.track = "T1"
        player.position = 5000
        player.paused = True
        player.volume = 80

        await player.resume(connection)

        options = node.rest.updates[-1][1]
        assert options["track"] == {"encoded": "T1"}
        assert options["position"] == 5000
        assert options["paused"] is True
        assert options["volume"] == 80
        assert options["voice"]["sessionId"] == "voice-session"
        assert "filters" not in options

    @pytest.mark.asyncio
    async def test_move_to_other_node(self, player, node, make_node, connection):
        await player.play_track({"encoded": "T1"})
        target = make_node("backup")

        await player.move(target, connection)

        assert player.node is target
        assert node.rest.destroyed == ["1"]
        assert target.rest.updates[-1][1]["track"] == {"encoded": "T1"}

    @pytest.mark.asyncio
    async def test_move_off_dead_node_skips_destroy(self, player, node, make_node, connection):
        node.state = NodeState.DISCONNECTED
        target = make_node("backup")

        await player.move(target, connection)

        assert node.rest.destroyed == []
        assert player.node is target


class TestNodeDispatch:
    @pytest.mark.asyncio
    async def test_player_update(self, player):
        await player.on_player_update(
            {"op": "playerUpdate", "guildId": "1", "state": {"position": 42, "ping": 7, "connected": True, "time": 1}}
        )
        assert player.position == 42
        assert player.ping == 7
        assert player.connected is True

    @pytest.mark.asyncio
    async def test_track_events(self, player):
        events = []
        player.events.subscribe(events.append)

        await player.on_player_event(
            {"op": "event", "type": "TrackStartEvent", "guildId": "1", "track": {"encoded": "T2"}}
        )
        assert player.track == "T2"

        await player.on_player_event(
            {"op": "event", "type": "TrackEndEvent", "guildId": "1", "track": {"encoded": "T2"}, "reason": "finished"}
        )
        assert player.track is None
        assert [type(event) for event in events] == [TrackStart, TrackEnd]
        assert events[1].reason == "finished"

    @pytest.mark.asyncio
    async def test_unknown_event_ignored(self, player):
        events = []
        player.events.subscribe(events.append)
        await player.on_player_event({"op": "event", "type": "SomethingNew", "guildId": "1"})
        assert events == []


class TestParty:
    @pytest.mark.asyncio
    async def test_get_party(self, player, node):
        node.rest.party = {
            "id": "p1",
            "hostGuildId": "1",
            "hostSessionId": "s",
            "syncEnabled": True,
            "members": [{"guildId": "2"}],
        }

        party = await player.get_party()

        assert party.id == "p1"
        assert party.is_host
        assert party.size == 2
        assert player.party_id == "p1"

    @pytest.mark.asyncio
    async def test_no_party(self, player):
        assert await player.get_party() is None
        assert player.party_id is None

    @pytest.mark.asyncio
    async def test_leave_party(self, player, node):
        player.party_id = "p1"
        await player.leave_party()
        assert node.rest.left_parties == ["1"]
        assert player.party_id is None
