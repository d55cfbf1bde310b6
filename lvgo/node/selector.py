"""Node selection strategies.

A selector picks the node that hosts a new player. It receives the node
registry and, when one exists, the guild's voice connection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Mapping

if TYPE_CHECKING:
    from lvgo.guild.connection import Connection
    from lvgo.node.node import Node

NodeSelector = Callable[[Mapping[str, "Node"], "Connection | None"], "Node | None"]


class LeastPenaltySelector:
    """Pick the connected node with the lowest load penalty.

    Args:
        group: Only consider nodes of this group
        prefer_region: Prefer nodes whose group matches the connection region
    """

    def __init__(self, group: str | None = None, prefer_region: bool = False) -> None:
        self.group = group
        self.prefer_region = prefer_region

    def __call__(
        self,
        nodes: Mapping[str, "Node"],
        connection: "Connection | None" = None,
    ) -> "Node | None":
        candidates = [node for node in nodes.values() if node.is_connected]
        if self.group is not None:
            candidates = [node for node in candidates if node.group == self.group]

        if self.prefer_region and connection is not None and connection.region:
            regional = [node for node in candidates if node.group == connection.region]
            if regional:
                candidates = regional

        if not candidates:
            return None
        return min(candidates, key=lambda node: node.penalties)
