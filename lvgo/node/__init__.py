"""Node sessions, REST commands and node selection."""

from lvgo.node.node import Node, NodeState, NodeStats, PlayerDirectory
from lvgo.node.rest import Rest, RestFactory
from lvgo.node.selector import LeastPenaltySelector, NodeSelector

__all__ = [
    "LeastPenaltySelector",
    "Node",
    "NodeSelector",
    "NodeState",
    "NodeStats",
    "PlayerDirectory",
    "Rest",
    "RestFactory",
]
