"""Tests for the voice handshake state machine."""

import asyncio

import pytest
import pytest_asyncio

from lvgo.events import ConnectionUpdate, VoiceState
from lvgo.exceptions import HandshakeFailedError, HandshakeTimeoutError
from lvgo.guild.connection import (
    Connection,
    ConnectionState,
    VoiceChannelOptions,
    parse_region,
)

STATE = {
    "guild_id": "1",
    "channel_id": "10",
    "session_id": "voice-session",
    "self_deaf": True,
    "self_mute": False,
}
SERVER = {"guild_id": "1", "token": "token", "endpoint": "us-east123.discord.media:443"}


@pytest.fixture
def connection(connector):
    options = VoiceChannelOptions(guild_id="1", shard_id=0, channel_id="10", deaf=True)
    return Connection(connector, options, timeout_s=0.05)


@pytest.fixture
def updates(connection):
    received = []

    def on_update(event):
        if isinstance(event, ConnectionUpdate):
            received.append(event.state)

    connection.events.subscribe(on_update)
    return received


async def start_connect(connection):
    task = asyncio.create_task(connection.connect())
    await asyncio.sleep(0)
    return task


class TestParseRegion:
    def test_strips_digits_and_domain(self):
        assert parse_region("us-east123.discord.media:443") == "us-east"

    def test_with_scheme(self):
        assert parse_region("wss://rotterdam42.discord.media") == "rotterdam"

    def test_empty(self):
        assert parse_region(None) is None
        assert parse_region("") is None


class TestHandshake:
    """Ready requires both halves, in any order."""

    @pytest.mark.asyncio
    async def test_state_then_server(self, connection, connector, updates):
        task = await start_connect(connection)
        await connection.set_state_update(STATE)
        assert connection.state == ConnectionState.AWAITING_CREDENTIALS
        await connection.set_server_update(SERVER)
        await task

        assert connection.is_ready
        assert connection.session_id == "voice-session"
        assert connection.server_update == {"token": "token", "endpoint": SERVER["endpoint"]}
        assert connection.region == "us-east"
        assert updates == [VoiceState.SESSION_READY]
        assert connector.state_requests == [("1", 0, "10", True, False)]

    @pytest.mark.asyncio
    async def test_server_then_state(self, connection, updates):
        task = await start_connect(connection)
        await connection.set_server_update(SERVER)
        assert not connection.is_ready
        await connection.set_state_update(STATE)
        await task

        assert connection.is_ready
        assert updates[-1] == VoiceState.SESSION_READY
        assert VoiceState.SESSION_ID_MISSING in updates

    @pytest.mark.asyncio
    async def test_duplicate_half_is_not_enough(self, connection):
        task = await start_connect(connection)
        await connection.set_state_update(STATE)
        await connection.set_state_update(STATE)

        with pytest.raises(HandshakeTimeoutError) as exc_info:
            await task

        assert exc_info.value.missing == ["voice_server"]
        assert not connection.is_ready

    @pytest.mark.asyncio
    async def test_halves_from_previous_attempt_do_not_count(self, connection):
        task = await start_connect(connection)
        await connection.set_state_update(STATE)
        with pytest.raises(HandshakeTimeoutError):
            await task

        task = await start_connect(connection)
        await connection.set_server_update(SERVER)
        with pytest.raises(HandshakeTimeoutError) as exc_info:
            await task
        assert exc_info.value.missing == ["voice_state"]

    @pytest.mark.asyncio
    async def test_timeout_leaves_connection_joinable(self, connection):
        with pytest.raises(HandshakeTimeoutError):
            await connection.connect()
        assert connection.state == ConnectionState.FAILED

        task = await start_connect(connection)
        await connection.set_state_update(STATE)
        await connection.set_server_update(SERVER)
        await task
        assert connection.is_ready

    @pytest.mark.asyncio
    async def test_connect_while_awaiting_rejected(self, connection):
        task = await start_connect(connection)
        with pytest.raises(HandshakeFailedError):
            await connection.connect()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_channel_removed_fails_handshake(self, connection):
        task = await start_connect(connection)
        await connection.set_state_update({**STATE, "channel_id": None})

        with pytest.raises(HandshakeFailedError):
            await task
        assert connection.state == ConnectionState.FAILED
        assert connection.channel_id is None


class TestReadyConnection:
    """Behavior after the handshake completed."""

    @pytest_asyncio.fixture
    async def ready(self, connection):
        task = await start_connect(connection)
        await connection.set_state_update(STATE)
        await connection.set_server_update(SERVER)
        await task
        return connection

    @pytest.mark.asyncio
    async def test_server_update_reemits_ready(self, ready, updates):
        moved = {**SERVER, "endpoint": "rotterdam7.discord.media:443"}
        await ready.set_server_update(moved)

        assert updates == [VoiceState.SESSION_READY]
        assert ready.region == "rotterdam"
        assert ready.last_region == "us-east"

    @pytest.mark.asyncio
    async def test_missing_endpoint_reported(self, ready, updates):
        await ready.set_server_update({"guild_id": "1", "token": "t", "endpoint": None})
        assert updates == [VoiceState.SESSION_ENDPOINT_MISSING]
        assert ready.endpoint == SERVER["endpoint"]

    @pytest.mark.asyncio
    async def test_same_state_does_not_reemit(self, ready, updates):
        await ready.set_state_update(STATE)
        assert updates == []

    @pytest.mark.asyncio
    async def test_channel_move(self, ready):
        await ready.set_state_update({**STATE, "channel_id": "11"})
        assert ready.channel_id == "11"
        assert ready.last_channel_id == "10"
        assert ready.is_ready

    @pytest.mark.asyncio
    async def test_kicked_from_channel_goes_idle(self, ready):
        await ready.set_state_update({**STATE, "channel_id": None})
        assert ready.state == ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_set_mute_resends_state(self, ready, connector):
        await ready.set_mute(True)
        assert ready.muted is True
        assert connector.state_requests[-1] == ("1", 0, "10", True, True)

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, ready, connector):
        await ready.disconnect()
        await ready.disconnect()

        assert ready.state == ConnectionState.IDLE
        assert ready.channel_id is None
        assert connector.leave_requests == [("1", 0)]
