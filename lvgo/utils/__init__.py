"""Utilities module."""

from lvgo.utils.async_timeout import AsyncTimeoutError, with_timeout
from lvgo.utils.reconnect import ReconnectBudget, ReconnectConfig

__all__ = [
    "AsyncTimeoutError",
    "ReconnectBudget",
    "ReconnectConfig",
    "with_timeout",
]
