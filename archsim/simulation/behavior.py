"""
Per-component behavior for the architecture simulator.

Each node type maps to a ``NodeBehavior`` that defines how long a request
spends being processed there and which side effects (cache lookups, queries,
enqueues) happen when a request arrives. The engine looks behaviors up in
``BEHAVIORS`` rather than branching on node type, so supporting a new
component means adding one class and one table entry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

import numpy as np

from .events import Severity, SimulationEvent, SimulationEventType
from .graph import Node, NodeType

if TYPE_CHECKING:
    from .config import SimulationConfig
    from .metrics import NodeMetrics
    from .state import ActiveRequest

# Fixed processing latencies (ms) for components without a config knob
CACHE_PROCESSING_MS = 2.0
QUEUE_PROCESSING_MS = 5.0
DEFAULT_PROCESSING_MS = 5.0

# Share of queue capacity above which a backlog warning is raised
BACKLOG_WARNING_FRACTION = 0.8

EmitFn = Callable[..., SimulationEvent]


@dataclass
class ProcessingContext:
    """What a behavior may look at and touch when a request arrives.

    Attributes:
        node: Node the request arrived at.
        request: The arriving request (its path already ends at ``node``).
        metrics: Metrics record for ``node``.
        config: Run configuration.
        rng: Run-owned random generator.
        emit: Engine callback that records and publishes an event; takes the
            event type and message plus optional keyword fields.
    """

    node: Node
    request: ActiveRequest
    metrics: NodeMetrics
    config: SimulationConfig
    rng: np.random.Generator
    emit: EmitFn


class NodeBehavior(ABC):
    """How one kind of component treats requests."""

    @abstractmethod
    def processing_latency(self, config: SimulationConfig) -> float:
        """Time (ms) a request spends being processed at this component."""

    def on_arrival(self, ctx: ProcessingContext) -> None:
        """Side effects when a request is processed here.

        Called after the failure roll succeeded and before the node's load
        figures are updated. Default is no side effect.
        """


class GenericBehavior(NodeBehavior):
    """Pass-through component with a fixed processing cost."""

    def __init__(self, latency_ms: float = DEFAULT_PROCESSING_MS):
        self.latency_ms = latency_ms

    def processing_latency(self, config: SimulationConfig) -> float:
        return self.latency_ms

    def __repr__(self) -> str:
        return f"GenericBehavior({self.latency_ms}ms)"


class ServiceBehavior(NodeBehavior):
    def processing_latency(self, config: SimulationConfig) -> float:
        return config.service_cpu_cost


class DatabaseBehavior(NodeBehavior):
    def processing_latency(self, config: SimulationConfig) -> float:
        return config.db_latency

    def on_arrival(self, ctx: ProcessingContext) -> None:
        ctx.metrics.query_rate = (ctx.metrics.query_rate or 0) + 1
        ctx.emit(
            SimulationEventType.DB_QUERY,
            f"DB query for request {ctx.request.id} (latency: {ctx.config.db_latency:g}ms)",
            node_id=ctx.node.id,
        )


class CacheBehavior(NodeBehavior):
    """Cache lookup.

    A hit or miss is reported, but routing and latency are unaffected: the
    request continues along the same outgoing edges either way.
    """

    def processing_latency(self, config: SimulationConfig) -> float:
        return CACHE_PROCESSING_MS

    def on_arrival(self, ctx: ProcessingContext) -> None:
        hit = ctx.rng.random() < ctx.config.cache_hit_ratio
        ctx.metrics.record_cache_lookup(hit)
        if hit:
            ctx.emit(
                SimulationEventType.CACHE_HIT,
                f"Cache hit for request {ctx.request.id}",
                severity=Severity.SUCCESS,
                node_id=ctx.node.id,
            )
        else:
            ctx.emit(
                SimulationEventType.CACHE_MISS,
                f"Cache miss for request {ctx.request.id}, forwarding to backend",
                severity=Severity.WARNING,
                node_id=ctx.node.id,
            )


class QueueBehavior(NodeBehavior):
    def processing_latency(self, config: SimulationConfig) -> float:
        return QUEUE_PROCESSING_MS

    def on_arrival(self, ctx: ProcessingContext) -> None:
        metrics = ctx.metrics
        capacity = ctx.config.message_queue_depth
        metrics.queue_depth += 1
        ctx.emit(
            SimulationEventType.QUEUE_ENQUEUE,
            f"Message enqueued (depth: {metrics.queue_depth})",
            node_id=ctx.node.id,
            metadata={"queue_depth": metrics.queue_depth},
        )
        if metrics.queue_depth > capacity * BACKLOG_WARNING_FRACTION:
            ctx.emit(
                SimulationEventType.BACKLOG_WARNING,
                f"Queue backlog warning: {metrics.queue_depth}/{capacity}",
                severity=Severity.WARNING,
                node_id=ctx.node.id,
            )


GENERIC_BEHAVIOR = GenericBehavior()

BEHAVIORS: dict[NodeType, NodeBehavior] = {
    NodeType.CLIENT: GENERIC_BEHAVIOR,
    NodeType.API_GATEWAY: GENERIC_BEHAVIOR,
    NodeType.LOAD_BALANCER: GENERIC_BEHAVIOR,
    NodeType.SERVICE: ServiceBehavior(),
    NodeType.DATABASE: DatabaseBehavior(),
    NodeType.CACHE: CacheBehavior(),
    NodeType.QUEUE: QueueBehavior(),
    NodeType.PUBSUB: GENERIC_BEHAVIOR,
    NodeType.OBJECT_STORAGE: GENERIC_BEHAVIOR,
    NodeType.METRICS: GENERIC_BEHAVIOR,
    NodeType.RATE_LIMITER: GENERIC_BEHAVIOR,
    NodeType.CDN: GENERIC_BEHAVIOR,
}


def behavior_for(node_type: NodeType | str) -> NodeBehavior:
    """Behavior for a node type; unknown types behave generically."""
    if isinstance(node_type, NodeType):
        return BEHAVIORS[node_type]
    return GENERIC_BEHAVIOR


def processing_latency(node: Node, config: SimulationConfig) -> float:
    return behavior_for(node.type).processing_latency(config)
