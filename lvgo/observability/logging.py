"""Structured Logging - JSON logs with node and guild correlation.

Provides structured logging for:
- Node lifecycle (connect, ready, close, reconnect, disconnect)
- Voice handshake progress
- Session resume outcomes

Node logs carry ``node``; guild logs carry ``guild_id``.
"""

import logging
import sys
from typing import Any

import structlog

from lvgo.config.settings import get_settings


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON; else human-readable
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Bound structlog logger
    """
    return structlog.get_logger(name)


def bind_guild(guild_id: str) -> None:
    """Bind guild_id to all logs in current context."""
    structlog.contextvars.bind_contextvars(guild_id=guild_id)


def unbind_guild() -> None:
    """Remove guild_id from log context."""
    structlog.contextvars.unbind_contextvars("guild_id")


# -----------------------------------------------------------------------------
# Event-specific logging functions
# -----------------------------------------------------------------------------


class NodeLogger:
    """Logger for node lifecycle events."""

    def __init__(self, node: str) -> None:
        self._node = node
        self._log = get_logger("node").bind(node=node)

    def connecting(self, url: str, attempt: int) -> None:
        """Log websocket connect attempt."""
        self._log.info(
            "node_connecting",
            event_type="node.connecting",
            url=url,
            attempt=attempt,
        )

    def ready(self, session_id: str, resumed: bool, library_resumed: bool) -> None:
        """Log ready op received."""
        self._log.info(
            "node_ready",
            event_type="node.ready",
            session_id=session_id,
            resumed=resumed,
            library_resumed=library_resumed,
        )

    def closed(self, code: int, reason: str) -> None:
        """Log websocket closure."""
        self._log.warning(
            "node_closed",
            event_type="node.closed",
            code=code,
            reason=reason,
        )

    def reconnecting(self, remaining: int, interval_s: float) -> None:
        """Log scheduled reconnect."""
        self._log.warning(
            "node_reconnecting",
            event_type="node.reconnecting",
            remaining=remaining,
            interval_s=interval_s,
        )

    def disconnected(self, players: int, explicit: bool) -> None:
        """Log terminal disconnect."""
        log = self._log.info if explicit else self._log.error
        log(
            "node_disconnected",
            event_type="node.disconnected",
            players=players,
            explicit=explicit,
        )

    def debug(self, message: str, **context: Any) -> None:
        """Log a debug notification."""
        self._log.debug("node_debug", message=message, **context)


class GuildLogger:
    """Logger for per-guild voice and player events."""

    def __init__(self, guild_id: str) -> None:
        self._guild_id = guild_id
        self._log = get_logger("guild").bind(guild_id=guild_id)

    def handshake_started(self, channel_id: str | None, timeout_s: float) -> None:
        """Log voice join request."""
        self._log.info(
            "voice_handshake_started",
            event_type="voice.handshake_started",
            channel_id=channel_id,
            timeout_s=timeout_s,
        )

    def handshake_ready(self, region: str | None) -> None:
        """Log both credential halves received."""
        self._log.info(
            "voice_handshake_ready",
            event_type="voice.handshake_ready",
            region=region,
        )

    def handshake_timeout(self, missing: list[str]) -> None:
        """Log handshake timeout."""
        self._log.warning(
            "voice_handshake_timeout",
            event_type="voice.handshake_timeout",
            missing=missing,
        )

    def server_update(self, endpoint: str | None, region: str | None) -> None:
        """Log a voice server delivery."""
        self._log.debug(
            "voice_server_update",
            event_type="voice.server_update",
            endpoint=endpoint,
            region=region,
        )

    def session_resumed(self, node: str) -> None:
        """Log successful session resume."""
        self._log.info(
            "session_resumed",
            event_type="session.resumed",
            node=node,
        )

    def session_resume_failed(self, error: Exception) -> None:
        """Log failed session resume."""
        self._log.warning(
            "session_resume_failed",
            event_type="session.resume_failed",
            error=str(error),
            error_type=type(error).__name__,
        )


def init_logging(json_format: bool | None = None, level: str | None = None) -> None:
    """Initialize logging from Settings, with optional overrides.

    Call this once at application startup.
    """
    settings = get_settings()
    configure_logging(
        level=level or settings.log_level,
        json_format=settings.log_json if json_format is None else json_format,
    )
