"""LvgoClient - process-wide session orchestrator.

Owns the three registries (nodes by name, connections and players by guild
id), picks a node per guild through an injected selector and drives the
join, leave, resume, export and import workflows.

Node events are republished on ``client.events`` tagged with the node name.
Nodes and players never hold a reference to the client; nodes reach players
through the ``PlayerDirectory`` methods implemented here.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Iterable, Mapping

from lvgo.config.constants import DEFAULTS
from lvgo.config.settings import NodeOption, Settings, get_settings
from lvgo.connectors.connector import Connector
from lvgo.events import (
    Debug,
    Disconnected,
    Event,
    EventCallback,
    EventChannel,
    NodeEvent,
    PlayerError,
    SessionResumed,
    SessionResumeFailed,
)
from lvgo.exceptions import (
    HandshakeFailedError,
    LvgoError,
    NoAvailableNodesError,
    NodeNotFoundError,
    ResourceConflictError,
)
from lvgo.guild.connection import Connection, VoiceChannelOptions
from lvgo.guild.player import Player, PlayerFactory
from lvgo.node.node import Node
from lvgo.node.rest import RestFactory
from lvgo.node.selector import LeastPenaltySelector, NodeSelector
from lvgo.observability.logging import GuildLogger, bind_guild, get_logger, unbind_guild
from lvgo.observability.metrics import record_session_resume, update_active_players
from lvgo.sessions import ResumeSession, SerializedConnection, SerializedPlayer, SerializedSession

logger = get_logger(__name__)


class LvgoClient:
    """Entry point for applications.

    Usage:
        client = LvgoClient(connector, nodes=[NodeOption("main", "localhost:2333", "pw")])
        await client.start()

        player = await client.join_voice_channel(
            VoiceChannelOptions(guild_id="1", shard_id=0, channel_id="2")
        )
        await player.play_track({"encoded": encoded})

        saved = client.export_sessions()
        await client.close()
    """

    def __init__(
        self,
        connector: Connector,
        nodes: Iterable[NodeOption] = (),
        settings: Settings | None = None,
        node_selector: NodeSelector | None = None,
        player_factory: PlayerFactory | None = None,
        rest_factory: RestFactory | None = None,
    ) -> None:
        self.connector = connector
        self.settings = settings or get_settings()

        self.nodes: dict[str, Node] = {}
        self.connections: dict[str, Connection] = {}
        self.players: dict[str, Player] = {}
        self.events = EventChannel("client")

        self._initial_nodes = list(nodes)
        self._node_selector: NodeSelector = node_selector or LeastPenaltySelector()
        self._player_factory: PlayerFactory = player_factory or Player
        self._rest_factory = rest_factory
        self._forwarders: dict[str, EventCallback] = {}

        connector.bind(self)

    def __repr__(self) -> str:
        return (
            f"<LvgoClient nodes={len(self.nodes)} connections={len(self.connections)} "
            f"players={len(self.players)}>"
        )

    async def start(self) -> None:
        """Connect the nodes given at construction."""
        for option in self._initial_nodes:
            if option.name not in self.nodes:
                await self.add_node(option)

    # -------------------------------------------------------------------------
    # Directory lookups used by nodes and the connector
    # -------------------------------------------------------------------------

    def get_player(self, guild_id: str) -> Player | None:
        return self.players.get(guild_id)

    def get_connection(self, guild_id: str) -> Connection | None:
        return self.connections.get(guild_id)

    def players_on(self, node_name: str) -> list[Player]:
        """Players currently bound to a node."""
        return [player for player in self.players.values() if player.node.name == node_name]

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def get_ideal_node(self, connection: Connection | None = None) -> Node | None:
        """Ask the selector for the node to use. None when nothing fits."""
        return self._node_selector(self.nodes, connection)

    async def add_node(self, option: NodeOption) -> Node:
        """Register a node and open its websocket.

        Raises:
            ResourceConflictError: A node with this name is registered
        """
        node = Node(
            option,
            self.settings,
            self,
            user_id=self.connector.user_id,
            rest_factory=self._rest_factory,
        )
        self.register_node(node)
        await node.connect()
        return node

    def register_node(self, node: Node) -> None:
        """Track an already constructed node and forward its events."""
        if node.name in self.nodes:
            raise ResourceConflictError(node.name, "node")

        async def forward(event: Event) -> None:
            if isinstance(event, Disconnected):
                await self._on_node_lost(node)
            if isinstance(event, NodeEvent):
                await self.events.publish(dataclasses.replace(event, node=node.name))

        node.events.subscribe(forward)
        self._forwarders[node.name] = forward
        self.nodes[node.name] = node

    async def remove_node(self, name: str, reason: str = "Remove node executed") -> None:
        """Disconnect and forget a node.

        Use this rather than ``Node.disconnect()``: a node disconnected
        directly only publishes ``Closed``, stays registered as DISCONNECTED
        and its players are not moved even with ``move_on_disconnect``.

        Raises:
            NodeNotFoundError: No node with this name
        """
        node = self.nodes.get(name)
        if node is None:
            raise NodeNotFoundError(name)
        await node.disconnect(DEFAULTS.CLOSE_NORMAL, reason)
        await self._on_node_lost(node)

    def _unwatch(self, node: Node) -> None:
        if self.nodes.get(node.name) is node:
            del self.nodes[node.name]
        forward = self._forwarders.pop(node.name, None)
        if forward is not None:
            node.events.unsubscribe(forward)

    async def _on_node_lost(self, node: Node) -> None:
        self._unwatch(node)
        await node.close()

        orphans = [player for player in self.players.values() if player.node is node]
        if not orphans or not self.settings.move_on_disconnect:
            return
        await self._debug(f"Moving {len(orphans)} player(s) off {node.name}")
        for player in orphans:
            await self._move_player(player)

    async def _move_player(self, player: Player) -> None:
        connection = self.connections.get(player.guild_id)
        target = self.get_ideal_node(connection)
        try:
            if target is None:
                raise NoAvailableNodesError(player.guild_id)
            if connection is None:
                raise HandshakeFailedError(player.guild_id, "no voice connection")
            await player.move(target, connection)
        except LvgoError as e:
            logger.warning(
                "player_move_failed",
                guild_id=player.guild_id,
                error=str(e),
            )
            await player.events.publish(PlayerError(guild_id=player.guild_id, error=e))

    # -------------------------------------------------------------------------
    # Guild sessions
    # -------------------------------------------------------------------------

    async def join_voice_channel(self, options: VoiceChannelOptions) -> Player:
        """Join a voice channel and create the guild's player.

        Raises:
            ResourceConflictError: The guild already has a connection
            HandshakeTimeoutError: Voice credentials did not arrive in time
            HandshakeFailedError: The gateway refused or removed the join
            NoAvailableNodesError: The selector found no node
            RemoteCommandError: The node rejected the credentials
        """
        if options.guild_id in self.connections:
            raise ResourceConflictError(options.guild_id)

        connection = self._create_connection(options)
        try:
            await connection.connect()
            return await self._attach_player(connection)
        except BaseException:
            await self._rollback(connection)
            raise

    async def leave_voice_channel(self, guild_id: str) -> None:
        """Leave the channel and destroy the player.

        Both registries end up without the guild, even when the node
        rejects the player deletion.
        """
        connection = self.connections.pop(guild_id, None)
        player = self.players.pop(guild_id, None)
        self._update_player_gauge()
        try:
            if connection is not None:
                await connection.disconnect()
        finally:
            if player is not None:
                await self._discard_player(player)

    async def _discard_player(self, player: Player) -> None:
        try:
            await player.destroy()
        except Exception as e:
            logger.debug("player_destroy_failed", guild_id=player.guild_id, error=str(e))
        finally:
            player.clean()

    def _create_connection(self, options: VoiceChannelOptions) -> Connection:
        connection = Connection(
            self.connector,
            options,
            timeout_s=self.settings.voice_connection_timeout_s,
        )
        self.connections[connection.guild_id] = connection
        return connection

    async def _attach_player(
        self,
        connection: Connection,
        preferred_node: str | None = None,
    ) -> Player:
        guild_id = connection.guild_id
        if guild_id in self.players:
            raise ResourceConflictError(guild_id)

        node = None
        if preferred_node is not None:
            candidate = self.nodes.get(preferred_node)
            if candidate is not None and candidate.is_connected:
                node = candidate
        if node is None:
            node = self.get_ideal_node(connection)
        if node is None:
            raise NoAvailableNodesError(guild_id)

        player = self._player_factory(guild_id, node)
        await player.send_server_update(connection)
        player.bind_connection(connection)
        self.players[guild_id] = player
        self._update_player_gauge()
        return player

    async def _rollback(self, connection: Connection) -> None:
        guild_id = connection.guild_id
        if self.connections.get(guild_id) is connection:
            del self.connections[guild_id]
        try:
            await connection.disconnect()
        except Exception as e:
            logger.warning("connection_rollback_failed", guild_id=guild_id, error=str(e))

    # -------------------------------------------------------------------------
    # Resume, export, import
    # -------------------------------------------------------------------------

    async def resume_sessions(
        self, sessions: Iterable[ResumeSession | Mapping[str, Any]]
    ) -> list[Player]:
        """Re-establish guild sessions one after another.

        A failing session publishes ``SessionResumeFailed`` and does not stop
        the rest. Guilds that already have a connection are skipped.

        Returns:
            Players of the sessions that were resumed
        """
        resumed: list[Player] = []
        for item in sessions:
            session = (
                item if isinstance(item, ResumeSession) else ResumeSession.model_validate(item)
            )
            bind_guild(session.guild_id)
            try:
                player = await self._resume_one(session)
            finally:
                unbind_guild()
            if player is not None:
                resumed.append(player)
        return resumed

    async def _resume_one(self, session: ResumeSession) -> Player | None:
        guild_id = session.guild_id
        guild_logger = GuildLogger(guild_id)

        if guild_id in self.connections:
            await self._debug(f"Guild {guild_id} already has a connection, skipping resume")
            self._record_resume("skipped")
            return None

        try:
            player = await self._resume_session(session)
        except Exception as e:
            guild_logger.session_resume_failed(e)
            self._record_resume("failed")
            await self.events.publish(SessionResumeFailed(guild_id=guild_id, error=e))
            return None

        guild_logger.session_resumed(player.node.name)
        self._record_resume("resumed")
        await self.events.publish(SessionResumed(guild_id=guild_id, player=player))
        return player

    async def _resume_session(self, session: ResumeSession) -> Player:
        connection = self._create_connection(
            VoiceChannelOptions(
                guild_id=session.guild_id,
                shard_id=session.shard_id,
                channel_id=session.channel_id,
                deaf=session.deaf,
                mute=session.mute,
            )
        )
        try:
            await connection.connect()
            player = await self._attach_player(connection, session.preferred_node)
        except BaseException:
            await self._rollback(connection)
            raise

        if session.player_state is not None:
            options = session.player_state.to_update()
            if options:
                try:
                    await player.update(options)
                except BaseException:
                    await self.leave_voice_channel(session.guild_id)
                    raise
        return player

    def export_sessions(self) -> list[SerializedSession]:
        """Snapshot every guild that has both a player and a joined channel."""
        sessions: list[SerializedSession] = []
        for guild_id, player in self.players.items():
            connection = self.connections.get(guild_id)
            if connection is None or not connection.channel_id:
                continue
            sessions.append(
                SerializedSession(
                    guild_id=guild_id,
                    channel_id=connection.channel_id,
                    shard_id=connection.shard_id,
                    node_name=player.node.name,
                    player=SerializedPlayer(
                        track=player.track,
                        position=player.position,
                        paused=player.paused,
                        volume=player.volume,
                        filters=dict(player.filters),
                        party_id=player.party_id,
                    ),
                    connection=SerializedConnection(
                        deaf=connection.deafened,
                        mute=connection.muted,
                        session_id=connection.session_id,
                        region=connection.region,
                    ),
                )
            )
        return sessions

    async def import_sessions(
        self,
        sessions: Iterable[SerializedSession | Mapping[str, Any]],
        prefer_original_node: bool = False,
    ) -> list[Player]:
        """Resume previously exported sessions.

        Args:
            sessions: Output of ``export_sessions`` or its camelCase dumps
            prefer_original_node: Reuse the exported node when it is
                registered and connected
        """
        resume = []
        for item in sessions:
            session = (
                item
                if isinstance(item, SerializedSession)
                else SerializedSession.model_validate(item)
            )
            resume.append(session.to_resume_session(prefer_original_node))
        return await self.resume_sessions(resume)

    async def close(self) -> None:
        """Leave every guild and disconnect every node."""
        for guild_id in list({*self.connections, *self.players}):
            await self.leave_voice_channel(guild_id)
        for name in list(self.nodes):
            await self.remove_node(name, "Client closed")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _debug(self, message: str) -> None:
        logger.debug("client_debug", message=message)
        await self.events.publish(Debug(message=message))

    def _record_resume(self, outcome: str) -> None:
        if self.settings.metrics_enabled:
            record_session_resume(outcome)

    def _update_player_gauge(self) -> None:
        if self.settings.metrics_enabled:
            update_active_players(len(self.players))
