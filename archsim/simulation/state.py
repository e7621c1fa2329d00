"""
Run state for the architecture simulator.

``SimulationState`` is the single owned record of everything that changes
during one run. Each engine instance creates its own, so independent runs
(e.g., side-by-side design comparisons) never share state.
"""

from dataclasses import dataclass, field
from enum import Enum

from .config import SimulationConfig
from .events import EventLog, SimulationEvent
from .metrics import (
    EdgeMetrics,
    MetricsCollector,
    MetricsSnapshot,
    NodeMetrics,
    SystemMetrics,
)


class SimulationStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (SimulationStatus.STOPPED, SimulationStatus.COMPLETED)


class RequestStatus(Enum):
    PENDING = "pending"  # Travelling to its first hop
    PROCESSING = "processing"  # Forwarded at least once
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ActiveRequest:
    """A request in flight through the design.

    Attributes:
        id: Unique id within the run (``req-<n>``).
        source_node_id: Client that generated the request.
        target_node_id: Destination of the current hop.
        path: Node ids visited so far, starting with the client.
        start_time: Virtual time (ms) at which the generating tick began.
        current_latency: Virtual time accumulated toward the current hop.
        payload: Payload size in KB.
        status: Lifecycle status.
        progress: Fraction of the current hop completed, in [0, 1].
    """

    id: str
    source_node_id: str
    target_node_id: str
    path: list[str]
    start_time: float
    current_latency: float = 0.0
    payload: float = 0.0
    status: RequestStatus = RequestStatus.PENDING
    progress: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return self.status in (RequestStatus.COMPLETED, RequestStatus.FAILED)

    @property
    def last_node_id(self) -> str:
        return self.path[-1]

    def retarget(self, next_node_id: str) -> None:
        """Start the next hop."""
        self.target_node_id = next_node_id
        self.current_latency = 0.0
        self.progress = 0.0
        self.status = RequestStatus.PROCESSING

    def __repr__(self) -> str:
        return (
            f"ActiveRequest({self.id}, {self.status.value}, "
            f"{'->'.join(self.path)} => {self.target_node_id}, {self.progress:.0%})"
        )


@dataclass
class SimulationState:
    """Complete mutable state of one simulation run.

    Attributes:
        config: Configuration the run was created with.
        status: Lifecycle status.
        current_time: Virtual time elapsed in ms.
        speed: Wall-clock speed multiplier (ticks every tick_rate / speed ms).
        active_requests: Requests currently in flight.
        metrics: All per-node, per-edge and system metrics and history.
        event_log: Every event emitted so far.
    """

    config: SimulationConfig
    metrics: MetricsCollector
    status: SimulationStatus = SimulationStatus.IDLE
    current_time: float = 0.0
    speed: float = 1.0
    active_requests: list[ActiveRequest] = field(default_factory=list)
    event_log: EventLog = field(default_factory=EventLog)

    @property
    def node_metrics(self) -> dict[str, NodeMetrics]:
        return self.metrics.nodes

    @property
    def edge_metrics(self) -> dict[str, EdgeMetrics]:
        return self.metrics.edges

    @property
    def system_metrics(self) -> SystemMetrics:
        return self.metrics.system

    @property
    def metrics_history(self) -> list[MetricsSnapshot]:
        return self.metrics.history

    @property
    def events(self) -> list[SimulationEvent]:
        return list(self.event_log)

    def __repr__(self) -> str:
        return (
            f"SimulationState({self.status.value}, t={self.current_time:.0f}ms, "
            f"active={len(self.active_requests)}, events={len(self.event_log)})"
        )
