"""
Routing and scaling strategies for the architecture simulator.

Routing strategies pick a request's next hop. Scaling strategies inspect a
node's metrics after each tick and return actions for the engine to apply.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .graph import Graph, Node, NodeType

if TYPE_CHECKING:
    from .metrics import NodeMetrics
    from .state import ActiveRequest


# =============================================================================
# Routing
# =============================================================================


class RoutingStrategy(ABC):
    """Chooses where a request goes after being processed at a node."""

    @abstractmethod
    def next_hop(self, node_id: str, request: ActiveRequest, graph: Graph) -> str | None:
        """Pick the next node for ``request``.

        Implementations must never return a node already in
        ``request.path``.

        Args:
            node_id: Node the request was just processed at.
            request: The request being routed.
            graph: The design being simulated.

        Returns:
            Id of the next node, or None if the request ends here.
        """


class FirstUnvisitedRouting(RoutingStrategy):
    """Take the first outgoing edge whose target the request has not visited.

    Edges are considered in the order the design supplied them.
    """

    def next_hop(self, node_id: str, request: ActiveRequest, graph: Graph) -> str | None:
        visited = set(request.path)
        for edge in graph.outgoing(node_id):
            if edge.target not in visited:
                return edge.target
        return None


# =============================================================================
# Scaling
# =============================================================================


class ScalingDirection(Enum):
    UP = "up"
    DOWN = "down"


@dataclass
class ScalingAction:
    """Add or remove one instance of a node.

    Attributes:
        node_id: Node to scale.
        direction: Whether to add or remove an instance.
        load_factor: Multiplier applied to the node's CPU utilization once
            the instance count has changed.
    """

    node_id: str
    direction: ScalingDirection
    load_factor: float


class ScalingStrategy(ABC):
    """Decides instance-count changes from a node's current metrics."""

    @abstractmethod
    def evaluate(self, node: Node, metrics: NodeMetrics) -> list[ScalingAction]:
        """Return actions to apply to ``node``, in order."""


class NoScalingStrategy(ScalingStrategy):
    """Never scales; useful for baseline runs."""

    def evaluate(self, node: Node, metrics: NodeMetrics) -> list[ScalingAction]:
        return []


class ThresholdScalingStrategy(ScalingStrategy):
    """CPU-threshold auto-scaling for SERVICE nodes.

    Scale up by one instance when CPU is above ``SCALE_UP_CPU`` and the node
    is below ``MAX_INSTANCES``; the new instance takes load, so CPU is
    multiplied by ``SCALE_UP_LOAD_FACTOR``. Then, on the resulting CPU,
    scale down by one when below ``SCALE_DOWN_CPU`` and above
    ``MIN_INSTANCES``; consolidation raises CPU by ``SCALE_DOWN_LOAD_FACTOR``.

    The thresholds are fixed policy. There is no cooldown, so a node whose
    load swings across both thresholds on consecutive ticks oscillates.
    """

    SCALE_UP_CPU = 0.8
    SCALE_DOWN_CPU = 0.3
    MIN_INSTANCES = 1
    MAX_INSTANCES = 10
    SCALE_UP_LOAD_FACTOR = 0.8
    SCALE_DOWN_LOAD_FACTOR = 1.2

    def evaluate(self, node: Node, metrics: NodeMetrics) -> list[ScalingAction]:
        if node.type != NodeType.SERVICE:
            return []

        actions: list[ScalingAction] = []
        cpu = metrics.cpu_utilization
        instances = metrics.instances

        if cpu > self.SCALE_UP_CPU and instances < self.MAX_INSTANCES:
            actions.append(
                ScalingAction(node.id, ScalingDirection.UP, self.SCALE_UP_LOAD_FACTOR)
            )
            cpu *= self.SCALE_UP_LOAD_FACTOR
            instances += 1

        if cpu < self.SCALE_DOWN_CPU and instances > self.MIN_INSTANCES:
            actions.append(
                ScalingAction(node.id, ScalingDirection.DOWN, self.SCALE_DOWN_LOAD_FACTOR)
            )

        return actions
