"""
Post-run bottleneck analysis for the architecture simulator.

Classifies nodes by threshold rules over their final metrics and derives
per-node and design-wide recommendations.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from .config import SimulationConfig
from .graph import Graph, NodeType
from .metrics import NodeMetrics

ERROR_RATE_CRITICAL = 0.1
CPU_CRITICAL = 0.9
CPU_HIGH = 0.7
QUEUE_NEAR_CAPACITY = 0.8

RECOMMEND_HEALTHY = "System is performing well under current load"
RECOMMEND_CRITICAL = "Critical issues detected - immediate action required"
RECOMMEND_CACHE = "Consider adding a cache layer to reduce database load"
RECOMMEND_LOAD_BALANCER = "Add a load balancer to distribute traffic evenly"


class BottleneckSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    BottleneckSeverity.LOW: 1,
    BottleneckSeverity.MEDIUM: 2,
    BottleneckSeverity.HIGH: 3,
    BottleneckSeverity.CRITICAL: 4,
}


@dataclass(frozen=True)
class BottleneckMetrics:
    avg_latency: float
    max_queue_depth: int
    error_rate: float
    cpu_utilization: float


@dataclass
class BottleneckAnalysis:
    """A node flagged as a performance or reliability risk."""

    node_id: str
    node_name: str
    severity: BottleneckSeverity
    metrics: BottleneckMetrics
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


def _classify(
    metrics: NodeMetrics, config: SimulationConfig
) -> tuple[BottleneckSeverity, list[str], list[str]]:
    """Apply the threshold rules to one node.

    A node's severity is the most severe rule that fired.
    """
    severity = BottleneckSeverity.LOW
    issues: list[str] = []
    recommendations: list[str] = []

    def raise_to(level: BottleneckSeverity) -> None:
        nonlocal severity
        if level.rank > severity.rank:
            severity = level

    if metrics.error_rate > ERROR_RATE_CRITICAL:
        issues.append("High error rate detected")
        recommendations.append("Investigate error sources and add retry logic")
        raise_to(BottleneckSeverity.CRITICAL)

    if metrics.cpu_utilization > CPU_CRITICAL:
        issues.append("CPU utilization critically high")
        recommendations.append("Add more instances or horizontal scaling")
        raise_to(BottleneckSeverity.CRITICAL)
    elif metrics.cpu_utilization > CPU_HIGH:
        issues.append("CPU utilization high")
        recommendations.append("Consider adding auto-scaling")
        raise_to(BottleneckSeverity.MEDIUM)

    if metrics.queue_depth > config.message_queue_depth * QUEUE_NEAR_CAPACITY:
        issues.append("Queue depth near capacity")
        recommendations.append("Increase queue capacity or add more workers")
        raise_to(BottleneckSeverity.HIGH)

    return severity, issues, recommendations


def analyze_bottlenecks(
    graph: Graph,
    node_metrics: Mapping[str, NodeMetrics],
    config: SimulationConfig,
) -> list[BottleneckAnalysis]:
    """Find bottlenecks, most severe first.

    Nodes of equal severity keep their metrics iteration order.
    """
    bottlenecks: list[BottleneckAnalysis] = []

    for node_id, metrics in node_metrics.items():
        node = graph.get_node(node_id)
        if node is None:
            continue

        severity, issues, recommendations = _classify(metrics, config)
        if not issues:
            continue

        bottlenecks.append(
            BottleneckAnalysis(
                node_id=node_id,
                node_name=node.label,
                severity=severity,
                metrics=BottleneckMetrics(
                    avg_latency=metrics.average_latency,
                    max_queue_depth=metrics.queue_depth,
                    error_rate=metrics.error_rate,
                    cpu_utilization=metrics.cpu_utilization,
                ),
                issues=issues,
                recommendations=recommendations,
            )
        )

    # sorted() is stable, so ties keep node order
    return sorted(bottlenecks, key=lambda b: b.severity.rank, reverse=True)


def generate_recommendations(
    graph: Graph, bottlenecks: list[BottleneckAnalysis]
) -> list[str]:
    """Design-wide recommendations, independent of individual nodes."""
    recommendations: list[str] = []

    if not bottlenecks:
        recommendations.append(RECOMMEND_HEALTHY)

    if any(b.severity == BottleneckSeverity.CRITICAL for b in bottlenecks):
        recommendations.append(RECOMMEND_CRITICAL)

    if not graph.has_type(NodeType.CACHE):
        recommendations.append(RECOMMEND_CACHE)

    if not graph.has_type(NodeType.LOAD_BALANCER):
        recommendations.append(RECOMMEND_LOAD_BALANCER)

    return recommendations
