"""Default Constants - Library defaults and backend protocol contract.

All durations in seconds unless otherwise noted.
"""

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class Defaults:
    """Immutable library defaults."""

    # Node reconnection
    RECONNECT_TRIES: Final[int] = 3
    RECONNECT_INTERVAL_S: Final[float] = 5.0

    # Server-side resume grace period
    RESUME_TIMEOUT_S: Final[int] = 30

    # REST
    REST_TIMEOUT_S: Final[float] = 60.0
    USER_AGENT: Final[str] = "lvgo/1.0.0 (https://github.com/lvgo/lvgo)"

    # Voice handshake
    VOICE_CONNECTION_TIMEOUT_S: Final[float] = 15.0

    # Backend API
    API_PREFIX: Final[str] = "/g1"
    WEBSOCKET_PATH: Final[str] = "/g1/websocket"
    CLIENT_NAME: Final[str] = "lvgo"

    # Websocket close codes
    CLOSE_NORMAL: Final[int] = 1000
    CLOSE_PROTOCOL_ERROR: Final[int] = 1002
    CLOSE_ABNORMAL: Final[int] = 1006


# Singleton instance for import convenience
DEFAULTS = Defaults()
