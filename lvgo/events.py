"""Notifications - typed events and the channel that carries them.

Nodes, connections and players each own an ``EventChannel``. The client
subscribes to every node channel and republishes node events on its own
channel tagged with the node name.

Usage:
    async def on_event(event):
        if isinstance(event, Ready):
            print(event.node, event.resumed)

    client.events.subscribe(on_event)
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from lvgo.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, kw_only=True)
class Event:
    """Base class for all notifications."""


# -----------------------------------------------------------------------------
# Node events
# -----------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class NodeEvent(Event):
    """Event raised by a node. ``node`` is set when republished by the client."""

    node: str | None = None


@dataclass(frozen=True, kw_only=True)
class Ready(NodeEvent):
    """Node finished its handshake.

    Attributes:
        resumed: The backend kept the previous session (server-side resume)
        library_resumed: Cached players were replayed (library-side resume)
    """

    resumed: bool = False
    library_resumed: bool = False


@dataclass(frozen=True, kw_only=True)
class Reconnecting(NodeEvent):
    """A reconnect attempt is about to run."""

    remaining: int
    interval_s: float


@dataclass(frozen=True, kw_only=True)
class Disconnected(NodeEvent):
    """Node is gone for good; ``players`` were bound to it."""

    players: int = 0


@dataclass(frozen=True, kw_only=True)
class Closed(NodeEvent):
    """Node websocket closed."""

    code: int
    reason: str = ""


@dataclass(frozen=True, kw_only=True)
class ErrorOccurred(NodeEvent):
    """A non-fatal error, scoped to ``node`` when it came from one."""

    error: Exception


@dataclass(frozen=True, kw_only=True)
class Debug(NodeEvent):
    """Diagnostic message."""

    message: str


@dataclass(frozen=True, kw_only=True)
class Raw(NodeEvent):
    """Unparsed inbound message."""

    payload: Any


# -----------------------------------------------------------------------------
# Client events
# -----------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class SessionResumed(Event):
    """A guild session was restored."""

    guild_id: str
    player: Any


@dataclass(frozen=True, kw_only=True)
class SessionResumeFailed(Event):
    """A guild session could not be restored."""

    guild_id: str
    error: Exception


# -----------------------------------------------------------------------------
# Connection events
# -----------------------------------------------------------------------------


class VoiceState(Enum):
    """Outcome of a voice credential delivery."""

    SESSION_READY = "session_ready"
    SESSION_ID_MISSING = "session_id_missing"
    SESSION_ENDPOINT_MISSING = "session_endpoint_missing"


@dataclass(frozen=True, kw_only=True)
class ConnectionUpdate(Event):
    """Voice credentials changed for a guild."""

    guild_id: str
    state: VoiceState


# -----------------------------------------------------------------------------
# Player events
# -----------------------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class PlayerEvent(Event):
    """Event scoped to one guild's player."""

    guild_id: str


@dataclass(frozen=True, kw_only=True)
class TrackStart(PlayerEvent):
    track: dict


@dataclass(frozen=True, kw_only=True)
class TrackEnd(PlayerEvent):
    track: dict
    reason: str


@dataclass(frozen=True, kw_only=True)
class TrackStuck(PlayerEvent):
    track: dict
    threshold_ms: int


@dataclass(frozen=True, kw_only=True)
class TrackException(PlayerEvent):
    track: dict
    exception: dict = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class WebSocketClosed(PlayerEvent):
    """The node's voice websocket for this guild closed."""

    code: int
    reason: str
    by_remote: bool


@dataclass(frozen=True, kw_only=True)
class PlayerUpdate(PlayerEvent):
    """Periodic position report."""

    position: int
    ping: int
    connected: bool
    time: int


@dataclass(frozen=True, kw_only=True)
class PlayerError(PlayerEvent):
    """Background work for this player failed."""

    error: Exception


EventCallback = Union[Callable[[Event], None], Callable[[Event], Awaitable[None]]]


class EventChannel:
    """Ordered fan-out of events to subscribers.

    Subscribers may be plain functions or coroutine functions. They run in
    subscription order; an exception in one is logged and does not stop
    the others.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._subscribers: list[EventCallback] = []

    @property
    def name(self) -> str:
        """Channel name, used in logs."""
        return self._name

    def subscribe(self, callback: EventCallback) -> None:
        """Register a subscriber."""
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        """Remove a subscriber. Unknown callbacks are ignored."""
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def clear(self) -> None:
        """Remove every subscriber."""
        self._subscribers.clear()

    @property
    def subscriber_count(self) -> int:
        """Number of subscribers."""
        return len(self._subscribers)

    async def publish(self, event: Event) -> None:
        """Deliver an event to every subscriber."""
        for callback in list(self._subscribers):
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(event)
                else:
                    result = callback(event)
                    if inspect.isawaitable(result):
                        await result
            except Exception as e:
                logger.warning(
                    "event_subscriber_error",
                    channel=self._name,
                    event_name=type(event).__name__,
                    error=str(e),
                )
