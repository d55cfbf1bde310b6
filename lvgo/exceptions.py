"""lvgo Exception Hierarchy.

Provides structured exception classes for node, voice and session errors.

Hierarchy:
    LvgoError (base)
    ├── ConfigurationError
    │   └── InvalidConfigError
    ├── TransportError
    │   └── ProtocolTransportError
    ├── HandshakeError
    │   ├── HandshakeTimeoutError
    │   └── HandshakeFailedError
    ├── RemoteCommandError
    │   └── CommandTimeoutError
    ├── ResourceConflictError
    ├── UnavailableError
    │   ├── NoAvailableNodesError
    │   └── NodeUnavailableError
    └── NodeNotFoundError
"""

from __future__ import annotations

import time
from typing import Any


class LvgoError(Exception):
    """Base exception for all lvgo errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the caller may retry the operation
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(LvgoError):
    """Base exception for configuration-related errors."""

    pass


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is invalid."""

    def __init__(self, config_key: str, value: Any, reason: str) -> None:
        super().__init__(
            message=f"Invalid configuration for {config_key}: {reason}",
            details={
                "config_key": config_key,
                "value": str(value),
                "reason": reason,
            },
            recoverable=False,
        )


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(LvgoError):
    """Base exception for node transport errors."""

    pass


class ProtocolTransportError(TransportError):
    """Raised when the node websocket cannot be opened or drops."""

    def __init__(self, node: str, reason: str) -> None:
        super().__init__(
            message=f"Transport failure on node {node}: {reason}",
            details={"node": node, "reason": reason},
            recoverable=True,  # Node reconnects on its own
        )
        self.node = node


# =============================================================================
# Voice Handshake Errors
# =============================================================================


class HandshakeError(LvgoError):
    """Base exception for voice handshake errors."""

    def __init__(
        self,
        message: str,
        guild_id: str | None = None,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ) -> None:
        details = details or {}
        if guild_id:
            details["guild_id"] = guild_id
        super().__init__(message, details, recoverable)
        self.guild_id = guild_id


class HandshakeTimeoutError(HandshakeError):
    """Raised when a Connection does not become ready in time."""

    def __init__(self, guild_id: str, timeout_s: float, missing: list[str]) -> None:
        super().__init__(
            message=f"Voice connection for guild {guild_id} timed out after {timeout_s}s",
            guild_id=guild_id,
            details={"timeout_s": timeout_s, "missing": missing},
            recoverable=True,  # Caller can join again
        )
        self.timeout_s = timeout_s
        self.missing = missing


class HandshakeFailedError(HandshakeError):
    """Raised when the gateway ends the handshake without a channel."""

    def __init__(self, guild_id: str, reason: str) -> None:
        super().__init__(
            message=f"Voice connection for guild {guild_id} failed: {reason}",
            guild_id=guild_id,
            details={"reason": reason},
        )


# =============================================================================
# Remote Command Errors
# =============================================================================


class RemoteCommandError(LvgoError):
    """Raised when the node REST API answers with a non-2xx status.

    Carries the diagnostic fields returned by the backend.
    """

    def __init__(
        self,
        status: int,
        error: str = "Unknown Error",
        message: str = "Unexpected error response from node",
        path: str = "",
        timestamp: int | None = None,
        trace: str | None = None,
    ) -> None:
        text = f"Rest request failed with response code: {status}"
        if message:
            text += f" | message: {message}"
        super().__init__(
            message=text,
            details={"status": status, "error": error, "path": path},
            recoverable=False,
        )
        self.status = status
        self.error = error
        self.remote_message = message
        self.path = path
        self.timestamp = timestamp if timestamp is not None else int(time.time() * 1000)
        self.trace = trace

    @classmethod
    def from_payload(
        cls, payload: dict[str, Any] | None, status: int, path: str
    ) -> "RemoteCommandError":
        """Build from a backend error body, falling back to the HTTP status."""
        if not payload:
            return cls(status=status, path=path)
        return cls(
            status=payload.get("status", status),
            error=payload.get("error", "Unknown Error"),
            message=payload.get("message", ""),
            path=payload.get("path", path),
            timestamp=payload.get("timestamp"),
            trace=payload.get("trace"),
        )


class CommandTimeoutError(RemoteCommandError):
    """Raised when a REST request exceeds the configured timeout."""

    def __init__(self, path: str, timeout_s: float) -> None:
        super().__init__(
            status=408,
            error="Request Timeout",
            message=f"No response within {timeout_s}s",
            path=path,
        )
        self.timeout_s = timeout_s
        self.recoverable = True


# =============================================================================
# Registry Errors
# =============================================================================


class ResourceConflictError(LvgoError):
    """Raised when a registry already holds the key being added."""

    def __init__(self, key: str, resource: str = "guild") -> None:
        if resource == "guild":
            message = f"Guild {key} already has an existing connection"
        else:
            message = f"A {resource} named {key} already exists"
        super().__init__(
            message=message,
            details={"resource": resource, "key": key},
            recoverable=False,
        )
        self.key = key
        self.resource = resource


class UnavailableError(LvgoError):
    """Base exception for missing or disconnected nodes."""

    pass


class NoAvailableNodesError(UnavailableError):
    """Raised when the node selector returns nothing."""

    def __init__(self, guild_id: str | None = None) -> None:
        details = {"guild_id": guild_id} if guild_id else {}
        super().__init__(
            message="No available nodes",
            details=details,
            recoverable=True,  # A node may come back
        )


class NodeUnavailableError(UnavailableError):
    """Raised when a command targets a node that is not connected."""

    def __init__(self, node: str, state: str) -> None:
        super().__init__(
            message=f"Node {node} is not connected",
            details={"node": node, "state": state},
            recoverable=True,
        )
        self.node = node


class NodeNotFoundError(LvgoError):
    """Raised when a node name is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(
            message=f"Node {name} does not exist",
            details={"node": name},
        )
        self.name = name
