"""
Metrics collection for the architecture simulator.

Tracks per-node, per-edge, and system-wide aggregates that are recomputed
every tick, plus the per-second snapshot history used for charting.
"""

import copy
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

import numpy as np

from .distributions import to_seconds
from .graph import Edge, Node, NodeType

# Requests per second a single instance can absorb at 100% CPU
INSTANCE_CAPACITY_RPS = 100.0


@dataclass
class NodeMetrics:
    """Derived load and health figures for one node.

    Attributes:
        node_id: Node these metrics belong to.
        requests_per_second: Processed requests over elapsed virtual time.
        average_latency: Mean hop latency (network + processing) charged
            to requests arriving at this node, in ms.
        success_rate: Share of arrivals processed without failure.
        error_rate: Share of arrivals that failed.
        queue_depth: Messages currently enqueued (queue nodes).
        cpu_utilization: Load estimate in [0, 1].
        instances: Replica count (changed by auto-scaling).
        throughput: Total requests processed (monotonic).
        cache_hit_rate: Observed hit rate (cache nodes only).
        query_rate: Queries served (database nodes only).
        failures: Total arrivals that failed.
    """

    node_id: str
    requests_per_second: float = 0.0
    average_latency: float = 0.0
    success_rate: float = 1.0
    error_rate: float = 0.0
    queue_depth: int = 0
    cpu_utilization: float = 0.0
    instances: int = 1
    throughput: int = 0
    cache_hit_rate: float | None = None
    query_rate: int | None = None
    failures: int = 0
    cache_hits: int = 0
    cache_lookups: int = 0

    @classmethod
    def for_node(cls, node: Node, cache_hit_ratio: float) -> "NodeMetrics":
        """Initial metrics; cache and database nodes get their optional fields."""
        return cls(
            node_id=node.id,
            cache_hit_rate=cache_hit_ratio if node.type == NodeType.CACHE else None,
            query_rate=0 if node.type == NodeType.DATABASE else None,
        )

    @property
    def arrivals(self) -> int:
        return self.throughput + self.failures

    def record_processed(self, current_time: float, hop_latency: float) -> None:
        """Account for a request successfully processed at this node."""
        self.throughput += 1
        self.average_latency += (hop_latency - self.average_latency) / self.throughput
        self._update_error_rate()
        self.update_load(current_time)

    def record_failure(self) -> None:
        self.failures += 1
        self._update_error_rate()

    def record_cache_lookup(self, hit: bool) -> None:
        self.cache_lookups += 1
        if hit:
            self.cache_hits += 1
        self.cache_hit_rate = self.cache_hits / self.cache_lookups

    def update_load(self, current_time: float) -> None:
        """Recompute rate and CPU from throughput and elapsed time."""
        elapsed = to_seconds(current_time)
        if elapsed <= 0:
            return
        self.requests_per_second = self.throughput / elapsed
        self.cpu_utilization = min(
            (self.requests_per_second / INSTANCE_CAPACITY_RPS) * self.instances, 1.0
        )

    def _update_error_rate(self) -> None:
        if self.arrivals > 0:
            self.error_rate = self.failures / self.arrivals

    def refresh(self) -> None:
        """Per-tick derived fields."""
        if self.arrivals > 0:
            self.success_rate = 1.0 - self.error_rate


@dataclass
class EdgeMetrics:
    """Traffic figures for one edge.

    Attributes:
        edge_id: Edge these metrics belong to.
        throughput: Traversals per second of elapsed virtual time.
        bandwidth: Payload carried per second, in KB/s.
        latency: Mean network latency charged on this edge, in ms.
        packet_loss: Share of traversals whose request failed on arrival.
    """

    edge_id: str
    throughput: float = 0.0
    bandwidth: float = 0.0
    latency: float = 0.0
    packet_loss: float = 0.0
    traversals: int = 0
    losses: int = 0
    payload_total: float = 0.0

    def record_traversal(
        self, current_time: float, latency: float, payload: float, lost: bool
    ) -> None:
        self.traversals += 1
        if lost:
            self.losses += 1
        self.payload_total += payload
        self.latency += (latency - self.latency) / self.traversals
        self.packet_loss = self.losses / self.traversals

        elapsed = to_seconds(current_time)
        if elapsed > 0:
            self.throughput = self.traversals / elapsed
            self.bandwidth = self.payload_total / elapsed


@dataclass
class SystemMetrics:
    """System-wide aggregates, refreshed every tick."""

    timestamp: float = 0.0
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_latency: float = 0.0
    requests_per_second: float = 0.0
    error_rate: float = 0.0
    total_queue_depth: int = 0
    active_requests: int = 0
    scaling_actions: int = 0

    def record_completion(self, latency: float) -> None:
        """Count a completed request and fold its latency into the running mean."""
        self.successful_requests += 1
        n = self.successful_requests
        self.average_latency = (self.average_latency * (n - 1) + latency) / n

    def record_failure(self) -> None:
        self.failed_requests += 1

    @property
    def success_rate(self) -> float:
        """Completed share of generated requests (1.0 when nothing was sent)."""
        if self.total_requests <= 0:
            return 1.0
        return self.successful_requests / self.total_requests

    def copy(self) -> "SystemMetrics":
        return copy.copy(self)


@dataclass(frozen=True)
class MetricsSnapshot:
    """Immutable copy of all metrics at one instant.

    Taken once per simulated second and appended to the history.
    """

    timestamp: float
    system: SystemMetrics
    nodes: dict[str, NodeMetrics]
    edges: dict[str, EdgeMetrics]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "system": asdict(self.system),
            "nodes": {k: asdict(v) for k, v in self.nodes.items()},
            "edges": {k: asdict(v) for k, v in self.edges.items()},
        }

    def __repr__(self) -> str:
        return (
            f"MetricsSnapshot({self.timestamp:.0f}ms, "
            f"requests={self.system.total_requests}, "
            f"rps={self.system.requests_per_second:.1f})"
        )


@dataclass
class MetricsCollector:
    """Owns every metrics record for one run.

    Node metrics are created once per node at construction and are never
    removed. Edge metrics appear the first time an edge carries traffic.
    """

    nodes: dict[str, NodeMetrics] = field(default_factory=dict)
    edges: dict[str, EdgeMetrics] = field(default_factory=dict)
    system: SystemMetrics = field(default_factory=SystemMetrics)
    history: list[MetricsSnapshot] = field(default_factory=list)

    @classmethod
    def for_nodes(cls, nodes: Iterable[Node], cache_hit_ratio: float) -> "MetricsCollector":
        return cls(
            nodes={n.id: NodeMetrics.for_node(n, cache_hit_ratio) for n in nodes}
        )

    def edge(self, edge: Edge) -> EdgeMetrics:
        if edge.id not in self.edges:
            self.edges[edge.id] = EdgeMetrics(edge_id=edge.id)
        return self.edges[edge.id]

    def refresh(self, current_time: float, active_requests: int) -> None:
        """Recompute system aggregates from current state."""
        system = self.system
        system.timestamp = current_time
        system.active_requests = active_requests

        elapsed = to_seconds(current_time)
        if elapsed > 0:
            system.requests_per_second = system.total_requests / elapsed
        system.error_rate = (
            system.failed_requests / system.total_requests
            if system.total_requests > 0
            else 0.0
        )

        total_queue_depth = 0
        for metrics in self.nodes.values():
            total_queue_depth += metrics.queue_depth
            metrics.refresh()
        system.total_queue_depth = total_queue_depth

    def take_snapshot(self, current_time: float) -> MetricsSnapshot:
        snapshot = MetricsSnapshot(
            timestamp=current_time,
            system=self.system.copy(),
            nodes=copy.deepcopy(self.nodes),
            edges=copy.deepcopy(self.edges),
        )
        self.history.append(snapshot)
        return snapshot

    def peak_requests_per_second(self) -> float:
        """Highest system RPS across the snapshot history (0 if empty)."""
        if not self.history:
            return 0.0
        return max(s.system.requests_per_second for s in self.history)

    def history_series(self) -> dict[str, np.ndarray]:
        """System metrics history as arrays keyed by field, for charting.

        Returns:
            Mapping with a ``timestamp`` array plus one array per numeric
            SystemMetrics field, all aligned by snapshot.
        """
        if not self.history:
            return {}
        keys = asdict(self.history[0].system).keys()
        return {
            key: np.array([getattr(s.system, key) for s in self.history], dtype=float)
            for key in keys
        }

    def __repr__(self) -> str:
        return (
            f"MetricsCollector(nodes={len(self.nodes)}, "
            f"requests={self.system.total_requests}, "
            f"snapshots={len(self.history)})"
        )
