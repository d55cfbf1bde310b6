"""lvgo - asyncio client for remote audio nodes.

Manages node websocket sessions with reconnect and resume, per-guild
voice handshakes, player state mirrors, and bulk session resume, export
and import.
"""

__version__ = "1.0.0"

from lvgo.client import LvgoClient  # noqa: E402
from lvgo.config import DEFAULTS, NodeOption, Settings, get_settings  # noqa: E402
from lvgo.connectors import Connector, GatewayConnector  # noqa: E402
from lvgo.events import EventChannel  # noqa: E402
from lvgo.exceptions import LvgoError  # noqa: E402
from lvgo.guild import Connection, ConnectionState, Party, Player, VoiceChannelOptions  # noqa: E402
from lvgo.node import LeastPenaltySelector, Node, NodeState, Rest  # noqa: E402
from lvgo.sessions import PlayerSnapshot, ResumeSession, SerializedSession  # noqa: E402

__all__ = [
    "DEFAULTS",
    "Connection",
    "ConnectionState",
    "Connector",
    "EventChannel",
    "GatewayConnector",
    "LeastPenaltySelector",
    "LvgoClient",
    "LvgoError",
    "Node",
    "NodeOption",
    "NodeState",
    "Party",
    "Player",
    "PlayerSnapshot",
    "Rest",
    "ResumeSession",
    "SerializedSession",
    "Settings",
    "VoiceChannelOptions",
    "__version__",
    "get_settings",
]
