"""
Event log and subscriber fan-out for the architecture simulator.

Everything interesting that happens during a run is recorded as an
immutable ``SimulationEvent`` in an append-only ``EventLog``. Subscribers
are notified synchronously, in emission order.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Iterator, TypeVar


class SimulationEventType(Enum):
    """Kinds of events emitted during a run."""

    # Request lifecycle
    REQUEST_SENT = "request_sent"
    REQUEST_RECEIVED = "request_received"
    REQUEST_PROCESSED = "request_processed"  # Forwarded or completed
    REQUEST_FAILED = "request_failed"

    # Component behavior
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    DB_QUERY = "db_query"
    QUEUE_ENQUEUE = "queue_enqueue"
    QUEUE_DEQUEUE = "queue_dequeue"
    BACKLOG_WARNING = "backlog_warning"  # Queue depth above 80% of capacity
    BACKLOG_CLEARED = "backlog_cleared"

    # Node health and capacity
    NODE_OVERLOAD = "node_overload"
    NODE_SCALED = "node_scaled"
    NODE_FAILURE = "node_failure"
    NODE_RECOVERY = "node_recovery"

    # Run lifecycle (started, paused, resumed, stopped, completed)
    SIMULATION_STATE_CHANGED = "simulation_state_changed"


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class SimulationEvent:
    """A single immutable entry in the event log.

    Attributes:
        id: Unique id within the run (``evt-<n>``).
        type: Kind of event.
        timestamp: Virtual time of emission in ms since the run started.
        message: Human-readable description.
        severity: How a console should present the event.
        node_id: Node the event concerns, if any.
        source_path: Node ids a request has traversed, if relevant.
        target_path: Node ids a request is heading to, if relevant.
        metadata: Event-specific data.
    """

    id: str
    type: SimulationEventType
    timestamp: float
    message: str
    severity: Severity = Severity.INFO
    node_id: str | None = None
    source_path: tuple[str, ...] | None = None
    target_path: tuple[str, ...] | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["severity"] = self.severity.value
        for key in ("source_path", "target_path"):
            if data[key] is not None:
                data[key] = list(data[key])
        return data

    def __repr__(self) -> str:
        return f"SimulationEvent({self.timestamp:.0f}ms, {self.type.value}, {self.message!r})"


class EventLog:
    """Append-only, ordered record of a run's events."""

    def __init__(self) -> None:
        self._events: list[SimulationEvent] = []
        self._counter = 0

    def append(
        self,
        event_type: SimulationEventType,
        timestamp: float,
        message: str,
        severity: Severity = Severity.INFO,
        node_id: str | None = None,
        source_path: Iterable[str] | None = None,
        target_path: Iterable[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SimulationEvent:
        """Create, record, and return a new event."""
        event = SimulationEvent(
            id=f"evt-{self._counter}",
            type=event_type,
            timestamp=timestamp,
            message=message,
            severity=severity,
            node_id=node_id,
            source_path=tuple(source_path) if source_path is not None else None,
            target_path=tuple(target_path) if target_path is not None else None,
            metadata=dict(metadata) if metadata is not None else None,
        )
        self._counter += 1
        self._events.append(event)
        return event

    def of_type(self, event_type: SimulationEventType) -> list[SimulationEvent]:
        return [e for e in self._events if e.type == event_type]

    def __iter__(self) -> Iterator[SimulationEvent]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, index: int) -> SimulationEvent:
        return self._events[index]

    def __repr__(self) -> str:
        return f"EventLog({len(self._events)} events)"


T = TypeVar("T")


class Subscribers(Generic[T]):
    """Ordered observer list with synchronous delivery.

    Delivery iterates over a copy of the callbacks, so a callback may
    unsubscribe itself (or others) while a notification is in flight.
    """

    def __init__(self) -> None:
        self._callbacks: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, payload: T) -> None:
        for callback in list(self._callbacks):
            callback(payload)

    def __len__(self) -> int:
        return len(self._callbacks)


# =============================================================================
# Console filtering
# =============================================================================


class LogFilter(Enum):
    ALL = "all"
    ERRORS = "errors"
    PERFORMANCE = "performance"
    SCALING = "scaling"


PERFORMANCE_EVENT_TYPES = frozenset(
    {
        SimulationEventType.CACHE_HIT,
        SimulationEventType.CACHE_MISS,
        SimulationEventType.DB_QUERY,
        SimulationEventType.BACKLOG_WARNING,
        SimulationEventType.NODE_OVERLOAD,
    }
)


def filter_events(
    events: Iterable[SimulationEvent], log_filter: LogFilter | str = LogFilter.ALL
) -> list[SimulationEvent]:
    """Select the events a log console shows under ``log_filter``."""
    log_filter = LogFilter(log_filter)
    if log_filter == LogFilter.ERRORS:
        return [e for e in events if e.severity == Severity.ERROR]
    if log_filter == LogFilter.PERFORMANCE:
        return [e for e in events if e.type in PERFORMANCE_EVENT_TYPES]
    if log_filter == LogFilter.SCALING:
        return [e for e in events if e.type == SimulationEventType.NODE_SCALED]
    return list(events)
