"""Client Settings - Environment-based configuration.

Uses Pydantic Settings for validation and type coercion. Every option can
be set through an ``LVGO_``-prefixed environment variable or passed to
``Settings(...)`` directly.

Callable extension points (node selector, player and rest factories) are
not settings; they are passed to ``LvgoClient``.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from lvgo.config.constants import DEFAULTS
from lvgo.exceptions import InvalidConfigError


@dataclass(frozen=True)
class NodeOption:
    """Identity of a remote audio node.

    Attributes:
        name: Unique node name
        url: Host and port without scheme, e.g. ``localhost:2333``
        auth: Credentials sent in the Authorization header
        secure: Use https/wss instead of http/ws
        group: Optional group tag used by node selection
    """

    name: str
    url: str
    auth: str
    secure: bool = False
    group: str | None = None

    @property
    def rest_url(self) -> str:
        """Base URL for REST commands."""
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.url}{DEFAULTS.API_PREFIX}"

    @property
    def ws_url(self) -> str:
        """URL of the event websocket."""
        scheme = "wss" if self.secure else "ws"
        return f"{scheme}://{self.url}{DEFAULTS.WEBSOCKET_PATH}"


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LVGO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Resume
    resume: bool = Field(
        default=False,
        description="Ask the node to keep players alive after an unexpected disconnect",
    )
    resume_timeout_s: int = Field(
        default=DEFAULTS.RESUME_TIMEOUT_S,
        ge=1,
        le=3600,
        description="Seconds the node keeps players before destroying them",
    )
    resume_by_library: bool = Field(
        default=False,
        description="Replay cached player state to the node after reconnecting",
    )

    # Reconnection
    reconnect_tries: int = Field(
        default=DEFAULTS.RECONNECT_TRIES,
        ge=0,
        le=100,
        description="Reconnect attempts before a node is given up",
    )
    reconnect_interval_s: float = Field(
        default=DEFAULTS.RECONNECT_INTERVAL_S,
        ge=0,
        le=600,
        description="Seconds to wait before each reconnect attempt",
    )
    move_on_disconnect: bool = Field(
        default=False,
        description="Move players to another node when their node is lost",
    )

    # REST
    rest_timeout_s: float = Field(
        default=DEFAULTS.REST_TIMEOUT_S,
        gt=0,
        le=600,
        description="Seconds to wait for a REST response",
    )
    user_agent: str = Field(
        default=DEFAULTS.USER_AGENT,
        min_length=1,
        description="User-Agent header sent to nodes",
    )

    # Voice
    voice_connection_timeout_s: float = Field(
        default=DEFAULTS.VOICE_CONNECTION_TIMEOUT_S,
        gt=0,
        le=120,
        description="Seconds to wait for both voice credential halves",
    )

    # Observability
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    log_json: bool = Field(default=True, description="Render logs as JSON")
    metrics_enabled: bool = Field(default=True, description="Record Prometheus metrics")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises:
        InvalidConfigError: An environment value is out of range or malformed
    """
    try:
        return Settings()
    except ValidationError as e:
        error = e.errors()[0]
        key = ".".join(str(part) for part in error["loc"]) or "settings"
        raise InvalidConfigError(key, error.get("input"), error["msg"]) from e
