"""Reconnect Budget - bounded fixed-interval reconnection.

Tracks how many reconnect attempts a node has used since its last
successful handshake. The node asks for the next attempt before every
retry; when the budget is spent it gives up instead.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from lvgo.config.constants import DEFAULTS


@dataclass
class ReconnectConfig:
    """Configuration for reconnect behavior."""

    tries: int = DEFAULTS.RECONNECT_TRIES
    interval_s: float = DEFAULTS.RECONNECT_INTERVAL_S


class ReconnectBudget:
    """Counter of reconnect attempts against a fixed budget.

    Usage:
        budget = ReconnectBudget(ReconnectConfig(tries=3, interval_s=5))

        if budget.exhausted:
            give_up()
        else:
            remaining = budget.consume()
            notify(remaining)
            await budget.wait()
            await connect()

        # After a successful handshake
        budget.reset()
    """

    def __init__(self, config: ReconnectConfig | None = None) -> None:
        self._config = config or ReconnectConfig()
        self._attempts = 0

    @property
    def config(self) -> ReconnectConfig:
        """Reconnect configuration."""
        return self._config

    @property
    def attempts(self) -> int:
        """Attempts used since the last reset."""
        return self._attempts

    @property
    def remaining(self) -> int:
        """Attempts still available."""
        return max(self._config.tries - self._attempts, 0)

    @property
    def exhausted(self) -> bool:
        """Whether every attempt has been used."""
        return self._attempts >= self._config.tries

    def consume(self) -> int:
        """Use one attempt.

        Returns:
            Attempts remaining after this one

        Raises:
            RuntimeError: If the budget is already exhausted
        """
        if self.exhausted:
            raise RuntimeError("Reconnect budget exhausted")
        self._attempts += 1
        return self.remaining

    def reset(self) -> None:
        """Restore the full budget."""
        self._attempts = 0

    async def wait(self) -> None:
        """Sleep for the configured interval."""
        await asyncio.sleep(self._config.interval_s)
