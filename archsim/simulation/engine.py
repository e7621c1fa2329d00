"""
Tick-driven simulation engine for the architecture simulator.

Each tick advances virtual time by ``tick_rate`` ms, generates new requests
at client nodes, moves every in-flight request along its current hop,
applies node behavior on arrival, refreshes metrics, runs auto-scaling,
and publishes events and metrics to subscribers. A run ends when the
configured duration has elapsed (Completed) or when the host stops it.
"""

import copy
import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import numpy as np

from .analysis import BottleneckAnalysis, analyze_bottlenecks, generate_recommendations
from .behavior import ProcessingContext, behavior_for
from .config import SimulationConfig
from .distributions import to_seconds
from .events import Severity, SimulationEvent, SimulationEventType, Subscribers
from .failures import FailureInjectionConfig, FailureInjector, NodeTransition
from .graph import Edge, Graph, Node
from .metrics import MetricsCollector, MetricsSnapshot, SystemMetrics
from .scheduler import ThreadedTickScheduler, TickScheduler
from .state import ActiveRequest, RequestStatus, SimulationState, SimulationStatus
from .strategy import (
    FirstUnvisitedRouting,
    RoutingStrategy,
    ScalingAction,
    ScalingDirection,
    ScalingStrategy,
    ThresholdScalingStrategy,
)

logger = logging.getLogger(__name__)

# Probability per tick that chaos mode reports a latency spike
CHAOS_SPIKE_PROBABILITY = 0.05

EventListener = Callable[[SimulationEvent], None]
MetricsListener = Callable[[SystemMetrics], None]


@dataclass
class SimulationSummary:
    """Headline figures of a run.

    Attributes:
        total_requests: Requests generated.
        success_rate: Completed share of generated requests.
        average_latency: Mean end-to-end latency of completed requests (ms).
        peak_rps: Highest system RPS over the snapshot history.
        bottlenecks: Flagged nodes, most severe first.
        recommendations: Design-wide advice.
    """

    total_requests: int
    success_rate: float
    average_latency: float
    peak_rps: float
    bottlenecks: list[BottleneckAnalysis] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass
class SimulationResult:
    """Result of a simulation run.

    Attributes:
        config: Configuration the run used.
        duration: Virtual time elapsed in seconds.
        metrics_history: Per-second metrics snapshots.
        events: Every event emitted.
        summary: Headline figures and analysis.
        end_status: Status when the result was produced.
    """

    config: SimulationConfig
    duration: float
    metrics_history: list[MetricsSnapshot]
    events: list[SimulationEvent]
    summary: SimulationSummary
    end_status: SimulationStatus

    def summary_text(self) -> str:
        """Plain-text report of the run."""
        s = self.summary
        lines = [
            f"Simulation {self.end_status.value} after {self.duration:.1f}s",
            f"  Requests: {s.total_requests}",
            f"  Success rate: {s.success_rate * 100:.1f}%",
            f"  Average latency: {s.average_latency:.1f}ms",
            f"  Peak RPS: {s.peak_rps:.0f}",
        ]
        if s.bottlenecks:
            lines.append("  Bottlenecks:")
            for b in s.bottlenecks:
                lines.append(f"    [{b.severity.value}] {b.node_name}: {'; '.join(b.issues)}")
        lines.append("  Recommendations:")
        lines.extend(f"    - {r}" for r in s.recommendations)
        return "\n".join(lines)


class SimulationEngine:
    """Discrete-event, fixed-step simulator of traffic through a design.

    The engine owns one ``SimulationState`` for the lifetime of a run. Ticks
    are driven by a ``TickScheduler`` (wall clock) or synchronously through
    ``run_to_completion``/``step`` (headless). Control calls and ticks are
    serialized by a re-entrant lock, so at most one tick is ever in progress
    and a control call never interleaves with a tick.

    Lifecycle::

        IDLE -> RUNNING <-> PAUSED
        RUNNING/PAUSED -> STOPPED (stop) ; RUNNING -> COMPLETED (duration reached)
        STOPPED -> RUNNING (start again, state retained)

    Control calls that do not apply in the current status are ignored.
    """

    def __init__(
        self,
        nodes: Iterable[Node],
        edges: Iterable[Edge],
        config: SimulationConfig | None = None,
        seed: int | None = None,
        scheduler: TickScheduler | None = None,
        routing: RoutingStrategy | None = None,
        scaling: ScalingStrategy | None = None,
        failure_config: FailureInjectionConfig | None = None,
    ):
        """Initialize the engine.

        Args:
            nodes: Design nodes; copied, so later edits have no effect.
            edges: Design edges; copied likewise.
            config: Run configuration (defaults if None).
            seed: Random seed for reproducible runs.
            scheduler: Tick scheduler (wall-clock thread if None).
            routing: Next-hop strategy (first unvisited edge if None).
            scaling: Auto-scaling strategy (CPU thresholds if None).
            failure_config: Distributions used when failure injection is on.
        """
        self.graph = Graph(nodes, edges)
        self.config = config or SimulationConfig()
        self.seed = seed
        self.scheduler = scheduler or ThreadedTickScheduler()
        self.routing = routing or FirstUnvisitedRouting()
        self.scaling = scaling or ThresholdScalingStrategy()
        self.failure_config = failure_config

        self._event_listeners: Subscribers[SimulationEvent] = Subscribers()
        self._metrics_listeners: Subscribers[SystemMetrics] = Subscribers()
        self._lock = threading.RLock()
        # Bumped on every (re)schedule and cancel; stale tick callbacks see a
        # different generation and do nothing.
        self._schedule_generation = 0

        self._initialize_state()

    def _initialize_state(self) -> None:
        """Create fresh run state (also used by ``reset``)."""
        self.rng = np.random.default_rng(self.seed)
        self.state = SimulationState(
            config=self.config,
            metrics=MetricsCollector.for_nodes(self.graph.nodes, self.config.cache_hit_ratio),
        )
        self._failures = (
            FailureInjector(self.graph, self.rng, self.failure_config)
            if self.config.failure_injection
            else None
        )
        self._request_counter = 0
        self._result: SimulationResult | None = None

    # -- subscriptions ---------------------------------------------------

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        """Subscribe to events; returns an unsubscribe function."""
        return self._event_listeners.subscribe(listener)

    def on_metrics_update(self, listener: MetricsListener) -> Callable[[], None]:
        """Subscribe to per-tick system metrics; returns an unsubscribe function."""
        return self._metrics_listeners.subscribe(listener)

    def _emit(
        self,
        event_type: SimulationEventType,
        message: str,
        severity: Severity = Severity.INFO,
        **details: Any,
    ) -> SimulationEvent:
        event = self.state.event_log.append(
            event_type,
            timestamp=self.state.current_time,
            message=message,
            severity=severity,
            **details,
        )
        self._event_listeners.notify(event)
        return event

    def _emit_lifecycle(self, message: str, severity: Severity = Severity.INFO) -> None:
        self._emit(
            SimulationEventType.SIMULATION_STATE_CHANGED,
            message,
            severity=severity,
            metadata={"status": self.state.status.value},
        )

    # -- lifecycle -------------------------------------------------------

    @property
    def status(self) -> SimulationStatus:
        return self.state.status

    def start(self) -> None:
        """Begin (or continue) ticking. No-op when running or completed."""
        with self._lock:
            if self.state.status in (SimulationStatus.RUNNING, SimulationStatus.COMPLETED):
                return
            self.state.status = SimulationStatus.RUNNING
            self._result = None
            logger.info("Simulation started (%d nodes, %d edges)", len(self.graph), len(self.graph.edges))
            self._emit_lifecycle("Simulation started")
            self._schedule()

    def pause(self) -> None:
        with self._lock:
            if self.state.status != SimulationStatus.RUNNING:
                return
            self._cancel_schedule()
            self.state.status = SimulationStatus.PAUSED
            logger.debug("Simulation paused at %.0fms", self.state.current_time)
            self._emit_lifecycle("Simulation paused")

    def resume(self) -> None:
        with self._lock:
            if self.state.status != SimulationStatus.PAUSED:
                return
            self.state.status = SimulationStatus.RUNNING
            logger.debug("Simulation resumed at %.0fms", self.state.current_time)
            self._emit_lifecycle("Simulation resumed")
            self._schedule()

    def stop(self) -> None:
        """Stop the run and produce its result. No tick runs after this returns."""
        with self._lock:
            if self.state.status not in (SimulationStatus.RUNNING, SimulationStatus.PAUSED):
                return
            self._finish(SimulationStatus.STOPPED, "Simulation stopped")

    def set_speed(self, speed: float) -> None:
        """Change the wall-clock speed multiplier.

        Ticks then fire every ``tick_rate / speed`` ms; the size of each
        virtual step is unchanged.
        """
        if speed <= 0:
            raise ValueError(f"Speed must be positive, got {speed}")
        with self._lock:
            self.state.speed = speed
            if self.state.status == SimulationStatus.RUNNING:
                self._cancel_schedule()
                self._schedule()

    def reset(self) -> None:
        """Discard all run state and return to IDLE. Subscriptions are kept."""
        with self._lock:
            self._cancel_schedule()
            self._initialize_state()

    def _finish(self, status: SimulationStatus, message: str, severity: Severity = Severity.INFO) -> None:
        self._cancel_schedule()
        self.state.status = status
        logger.info(
            "%s at %.0fms: %d requests, %d completed, %d failed",
            message,
            self.state.current_time,
            self.state.system_metrics.total_requests,
            self.state.system_metrics.successful_requests,
            self.state.system_metrics.failed_requests,
        )
        self._emit_lifecycle(message, severity=severity)
        if self._result is None:
            self._result = self._synthesize_result()

    def _complete(self) -> None:
        if self.state.status.is_terminal:
            return
        self._finish(
            SimulationStatus.COMPLETED,
            f"Simulation completed ({self.state.system_metrics.total_requests} requests processed)",
            severity=Severity.SUCCESS,
        )

    # -- scheduling ------------------------------------------------------

    def _tick_interval(self) -> float:
        return self.config.tick_rate / self.state.speed

    def _schedule(self) -> None:
        self._schedule_generation += 1
        generation = self._schedule_generation
        self.scheduler.schedule(
            self._tick_interval(), lambda: self._on_scheduled_tick(generation)
        )

    def _cancel_schedule(self) -> None:
        self._schedule_generation += 1
        self.scheduler.cancel()

    def _on_scheduled_tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._schedule_generation:
                return
            if self.state.status != SimulationStatus.RUNNING:
                return
            self._run_tick()

    def _run_tick(self) -> None:
        """Run one tick; an unexpected error halts the run but keeps its state."""
        try:
            self._tick()
        except Exception as exc:
            logger.exception("Tick at %.0fms failed; halting simulation", self.state.current_time)
            if self.state.status.is_terminal:
                return
            self._finish(
                SimulationStatus.STOPPED,
                f"Simulation halted: {exc}",
                severity=Severity.ERROR,
            )

    def run_to_completion(self) -> SimulationResult:
        """Run every remaining tick synchronously, without the wall clock.

        Returns:
            The run's result.
        """
        with self._lock:
            if self.state.status != SimulationStatus.COMPLETED:
                self._cancel_schedule()
                if self.state.status != SimulationStatus.RUNNING:
                    paused = self.state.status == SimulationStatus.PAUSED
                    self.state.status = SimulationStatus.RUNNING
                    self._result = None
                    self._emit_lifecycle("Simulation resumed" if paused else "Simulation started")
                while self.state.status == SimulationStatus.RUNNING:
                    self._run_tick()
            return self.get_result()

    def step(self, ticks: int = 1) -> int:
        """Run up to ``ticks`` ticks synchronously while running or paused.

        Returns:
            Number of ticks executed.
        """
        executed = 0
        with self._lock:
            for _ in range(ticks):
                if self.state.status not in (SimulationStatus.RUNNING, SimulationStatus.PAUSED):
                    break
                self._run_tick()
                executed += 1
        return executed

    # -- tick ------------------------------------------------------------

    def _tick(self) -> None:
        state = self.state
        config = state.config

        tick_start = state.current_time
        state.current_time += config.tick_rate

        # A listener may stop the run mid-tick; no tick work follows a stop
        self._generate_requests(tick_start)
        if self._interrupted:
            return
        self._process_requests(config.tick_rate)
        state.active_requests = [r for r in state.active_requests if not r.is_terminal]
        if self._interrupted:
            return

        state.metrics.refresh(state.current_time, len(state.active_requests))

        if config.auto_scaling:
            self._check_auto_scaling()
            if self._interrupted:
                return
        if config.chaos_mode:
            self._apply_chaos_effects()
            if self._interrupted:
                return
        if self._failures is not None:
            self._apply_injected_failures()
            if self._interrupted:
                return

        if state.current_time % 1000 == 0:
            state.metrics.take_snapshot(state.current_time)

        self._metrics_listeners.notify(state.system_metrics.copy())

        if state.current_time >= config.duration_ms:
            self._complete()

    @property
    def _interrupted(self) -> bool:
        return self.state.status.is_terminal

    def _next_request_id(self) -> str:
        request_id = f"req-{self._request_counter}"
        self._request_counter += 1
        return request_id

    def _generate_requests(self, tick_start: float) -> None:
        """Emit this tick's share of traffic from client nodes.

        The fractional part of the expected count is resolved by a uniform
        draw so low rates are neither rounded away nor inflated.
        """
        config = self.state.config
        sources = self.graph.traffic_sources()
        if not sources:
            return

        expected = config.requests_per_second * config.tick_rate / 1000
        count = math.floor(expected + self.rng.random())

        for _ in range(count):
            if self._interrupted:
                return
            client = sources[int(self.rng.integers(len(sources)))]
            edges = self.graph.outgoing(client.id)
            edge = edges[int(self.rng.integers(len(edges)))]

            request = ActiveRequest(
                id=self._next_request_id(),
                source_node_id=client.id,
                target_node_id=edge.target,
                path=[client.id],
                start_time=tick_start,
                payload=config.payload_size,
            )
            self.state.active_requests.append(request)
            self.state.system_metrics.total_requests += 1

            target = self.graph.get_node(edge.target)
            self._emit(
                SimulationEventType.REQUEST_SENT,
                f"Request {request.id} sent from {client.label} to "
                f"{target.label if target else edge.target}",
                node_id=client.id,
                source_path=[client.id],
                target_path=[edge.target],
            )

    def _process_requests(self, delta: float) -> None:
        for request in list(self.state.active_requests):
            if self._interrupted:
                return
            if request.is_terminal:
                continue
            try:
                self._advance_request(request, delta)
            except Exception:
                logger.exception("Processing request %s raised; marking it failed", request.id)
                if not request.is_terminal:
                    self._fail_request(request, None, f"Request {request.id} failed: internal error")

    def _advance_request(self, request: ActiveRequest, delta: float) -> None:
        config = self.state.config
        target = self.graph.get_node(request.target_node_id)
        if target is None:
            self._fail_request(
                request,
                None,
                f"Request {request.id} failed: unknown node {request.target_node_id}",
            )
            return

        previous = self.graph.get_node(request.last_node_id)
        network_latency = config.network.between(previous, target)
        behavior = behavior_for(target.type)
        hop_latency = network_latency + behavior.processing_latency(config)

        request.current_latency += delta
        request.progress = (
            min(request.current_latency / hop_latency, 1.0) if hop_latency > 0 else 1.0
        )
        if request.progress < 1.0:
            return

        previous_id = request.last_node_id
        request.path.append(target.id)

        down = self._failures is not None and self._failures.is_down(target.id)
        failed = down or self.rng.random() < config.error_rate
        self._record_edge_traversal(previous_id, target.id, network_latency, request, failed)

        if failed:
            reason = " (node down)" if down else ""
            self._fail_request(request, target, f"Request {request.id} failed at {target.label}{reason}")
            return

        metrics = self.state.node_metrics[target.id]
        behavior.on_arrival(
            ProcessingContext(
                node=target,
                request=request,
                metrics=metrics,
                config=config,
                rng=self.rng,
                emit=self._emit,
            )
        )
        metrics.record_processed(self.state.current_time, hop_latency)

        next_hop = self.routing.next_hop(target.id, request, self.graph)
        if next_hop is not None:
            request.retarget(next_hop)
            next_node = self.graph.get_node(next_hop)
            self._emit(
                SimulationEventType.REQUEST_PROCESSED,
                f"Request {request.id} processed by {target.label}, forwarding to "
                f"{next_node.label if next_node else next_hop}",
                node_id=target.id,
                source_path=request.path,
                target_path=[next_hop],
            )
            return

        request.status = RequestStatus.COMPLETED
        latency = self.state.current_time - request.start_time
        self.state.system_metrics.record_completion(latency)
        self._emit(
            SimulationEventType.REQUEST_PROCESSED,
            f"Request {request.id} completed (latency: {latency:.2f}ms)",
            severity=Severity.SUCCESS,
            node_id=target.id,
            source_path=request.path,
            metadata={"latency": latency},
        )

    def _record_edge_traversal(
        self,
        source_id: str,
        target_id: str,
        latency: float,
        request: ActiveRequest,
        lost: bool,
    ) -> None:
        edge = self.graph.edge_between(source_id, target_id)
        if edge is None:
            return
        self.state.metrics.edge(edge).record_traversal(
            self.state.current_time, latency, request.payload, lost
        )

    def _fail_request(self, request: ActiveRequest, node: Node | None, message: str) -> None:
        request.status = RequestStatus.FAILED
        self.state.system_metrics.record_failure()
        if node is not None:
            self.state.node_metrics[node.id].record_failure()
        self._emit(
            SimulationEventType.REQUEST_FAILED,
            message,
            severity=Severity.ERROR,
            node_id=node.id if node is not None else None,
            source_path=request.path,
        )

    # -- scaling, chaos, failures -----------------------------------------

    def _check_auto_scaling(self) -> None:
        for node in self.graph.nodes:
            metrics = self.state.node_metrics[node.id]
            for action in self.scaling.evaluate(node, metrics):
                if self._interrupted:
                    return
                self._execute_scaling_action(node, action)

    def _execute_scaling_action(self, node: Node, action: ScalingAction) -> None:
        metrics = self.state.node_metrics[action.node_id]
        before = metrics.cpu_utilization
        after = before * action.load_factor

        if action.direction == ScalingDirection.UP:
            metrics.instances += 1
            message = (
                f"Auto-scaled {node.label}: +1 instance (total: {metrics.instances}, "
                f"load: {before * 100:.1f}% → {after * 100:.1f}%)"
            )
            severity = Severity.SUCCESS
        else:
            metrics.instances = max(1, metrics.instances - 1)
            message = f"Auto-scaled {node.label}: -1 instance (total: {metrics.instances})"
            severity = Severity.INFO

        metrics.cpu_utilization = min(after, 1.0)
        self.state.system_metrics.scaling_actions += 1
        self._emit(
            SimulationEventType.NODE_SCALED,
            message,
            severity=severity,
            node_id=node.id,
            metadata={
                "direction": action.direction.value,
                "instances": metrics.instances,
                "cpu_before": before,
                "cpu_after": metrics.cpu_utilization,
            },
        )

    def _apply_chaos_effects(self) -> None:
        """Report random latency spikes. Purely informational."""
        if not len(self.graph) or self.rng.random() >= CHAOS_SPIKE_PROBABILITY:
            return
        nodes = self.graph.nodes
        node = nodes[int(self.rng.integers(len(nodes)))]
        self._emit(
            SimulationEventType.NODE_OVERLOAD,
            "Chaos: Latency spike detected!",
            severity=Severity.WARNING,
            node_id=node.id,
        )

    def _apply_injected_failures(self) -> None:
        for node_id, transition in self._failures.advance(self.state.current_time):
            if self._interrupted:
                return
            node = self.graph.get_node(node_id)
            if transition == NodeTransition.FAILED:
                self._emit(
                    SimulationEventType.NODE_FAILURE,
                    f"Injected failure: {node.label} is down",
                    severity=Severity.ERROR,
                    node_id=node_id,
                )
            else:
                self._emit(
                    SimulationEventType.NODE_RECOVERY,
                    f"{node.label} recovered",
                    severity=Severity.SUCCESS,
                    node_id=node_id,
                )

    # -- results ---------------------------------------------------------

    def analyze_bottlenecks(self) -> list[BottleneckAnalysis]:
        with self._lock:
            return analyze_bottlenecks(self.graph, self.state.node_metrics, self.state.config)

    def _synthesize_result(self) -> SimulationResult:
        state = self.state
        system = state.system_metrics
        bottlenecks = analyze_bottlenecks(self.graph, state.node_metrics, state.config)
        return SimulationResult(
            config=state.config,
            duration=to_seconds(state.current_time),
            metrics_history=list(state.metrics_history),
            events=list(state.event_log),
            summary=SimulationSummary(
                total_requests=system.total_requests,
                success_rate=system.success_rate,
                average_latency=system.average_latency,
                peak_rps=state.metrics.peak_requests_per_second(),
                bottlenecks=bottlenecks,
                recommendations=generate_recommendations(self.graph, bottlenecks),
            ),
            end_status=state.status,
        )

    def get_result(self) -> SimulationResult:
        """Result of the run.

        Once stopped or completed the result is produced once and reused.
        Before that, a best-effort result for the current state is returned.
        """
        with self._lock:
            if self._result is not None:
                return self._result
            result = self._synthesize_result()
            if self.state.status.is_terminal:
                self._result = result
            return result

    def get_state(self) -> SimulationState:
        """Deep copy of the current run state."""
        with self._lock:
            return copy.deepcopy(self.state)

    def __repr__(self) -> str:
        return f"SimulationEngine({self.graph!r}, {self.state!r})"
