"""Observability module - structured logging and Prometheus metrics."""

from lvgo.observability.logging import (
    GuildLogger,
    NodeLogger,
    configure_logging,
    get_logger,
    init_logging,
)

__all__ = [
    "GuildLogger",
    "NodeLogger",
    "configure_logging",
    "get_logger",
    "init_logging",
]
