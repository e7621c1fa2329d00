"""
Injected node failures for the architecture simulator.

When failure injection is enabled, every non-client node alternates between
up and down. Time to the next failure and time to recover are drawn from
configurable distributions in virtual milliseconds. Requests arriving at a
node that is down fail.
"""

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .distributions import Constant, Distribution, Exponential, seconds
from .graph import Graph, NodeType


@dataclass
class FailureInjectionConfig:
    """Distributions governing injected failures.

    Attributes:
        failure_dist: Time (ms) a node stays up before failing.
        recovery_dist: Time (ms) a failed node stays down.
    """

    failure_dist: Distribution = field(default_factory=lambda: Exponential(mean=seconds(10)))
    recovery_dist: Distribution = field(default_factory=lambda: Constant(seconds(2)))


class NodeTransition(Enum):
    FAILED = "failed"
    RECOVERED = "recovered"


class FailureInjector:
    """Tracks up/down state for every eligible node.

    Args:
        graph: Design being simulated; CLIENT nodes never fail.
        rng: Run-owned random generator.
        config: Failure and recovery distributions.
    """

    def __init__(
        self,
        graph: Graph,
        rng: np.random.Generator,
        config: FailureInjectionConfig | None = None,
    ):
        self.config = config or FailureInjectionConfig()
        self.rng = rng
        # node_id -> virtual time of the next failure (while up)
        self._fail_at: dict[str, float] = {
            node.id: self.config.failure_dist.sample(rng)
            for node in graph.nodes
            if node.type != NodeType.CLIENT
        }
        # node_id -> virtual time of recovery (while down)
        self._recover_at: dict[str, float] = {}

    def is_down(self, node_id: str) -> bool:
        return node_id in self._recover_at

    @property
    def down_nodes(self) -> list[str]:
        return list(self._recover_at)

    def advance(self, current_time: float) -> list[tuple[str, NodeTransition]]:
        """Apply every failure and recovery due by ``current_time``.

        Returns:
            (node_id, transition) pairs in node order.
        """
        transitions: list[tuple[str, NodeTransition]] = []

        for node_id in list(self._fail_at):
            if self._fail_at[node_id] <= current_time:
                del self._fail_at[node_id]
                self._recover_at[node_id] = (
                    current_time + self.config.recovery_dist.sample(self.rng)
                )
                transitions.append((node_id, NodeTransition.FAILED))

        for node_id in list(self._recover_at):
            if self._recover_at[node_id] <= current_time and not _just_failed(
                node_id, transitions
            ):
                del self._recover_at[node_id]
                self._fail_at[node_id] = (
                    current_time + self.config.failure_dist.sample(self.rng)
                )
                transitions.append((node_id, NodeTransition.RECOVERED))

        return transitions

    def __repr__(self) -> str:
        return f"FailureInjector(down={self.down_nodes})"


def _just_failed(node_id: str, transitions: list[tuple[str, NodeTransition]]) -> bool:
    # A node stays down for at least the tick in which it failed
    return (node_id, NodeTransition.FAILED) in transitions
