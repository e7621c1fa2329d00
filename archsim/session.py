"""
Simulation session host.

A ``SimulationSession`` owns the engine for one design: it builds the
engine from the current design and configuration, forwards lifecycle
calls, keeps the event log and latest metrics it is sent, captures the
result once the run ends, and manages configuration presets.
"""

import itertools
import logging
import threading
from typing import Any, Callable, Iterable

from .simulation.config import DEFAULT_CONFIG, PRESETS, SimulationConfig, SimulationPreset
from .simulation.engine import SimulationEngine, SimulationResult
from .simulation.events import (
    LogFilter,
    SimulationEvent,
    SimulationEventType,
    filter_events,
)
from .simulation.graph import Edge, Node
from .simulation.metrics import SystemMetrics
from .simulation.scheduler import TickScheduler
from .simulation.state import SimulationStatus

logger = logging.getLogger(__name__)


class SimulationSession:
    """Hosts a simulation engine for one design.

    The session's ``status`` mirrors the engine's, but it is only updated by
    the session's own calls and by the events it receives, so it can be read
    from any thread without touching the engine.

    Args:
        nodes: Components of the design.
        edges: Connections of the design.
        config: Configuration for the next run.
        seed: Random seed passed to every engine this session builds.
        scheduler_factory: Builds the tick scheduler for each engine; the
            engine's wall-clock scheduler is used if None.
    """

    def __init__(
        self,
        nodes: Iterable[Node] = (),
        edges: Iterable[Edge] = (),
        config: SimulationConfig = DEFAULT_CONFIG,
        seed: int | None = None,
        scheduler_factory: Callable[[], TickScheduler] | None = None,
    ):
        self.nodes = list(nodes)
        self.edges = list(edges)
        self.config = config
        self.seed = seed
        self.scheduler_factory = scheduler_factory

        self.engine: SimulationEngine | None = None
        self.status = SimulationStatus.IDLE
        self.current_time = 0.0
        self.metrics: SystemMetrics | None = None
        self.result: SimulationResult | None = None
        self.speed = 1.0
        self.show_summary = False
        self.log_filter = LogFilter.ALL

        self.presets: dict[str, SimulationPreset] = dict(PRESETS)
        self.current_preset: str | None = None
        self._preset_ids = itertools.count(1)

        self._events: list[SimulationEvent] = []
        self._events_lock = threading.Lock()
        self._unsubscribe: list[Callable[[], None]] = []

    # -- design ----------------------------------------------------------

    def set_design(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> None:
        """Replace the design used by the next ``initialize``."""
        self.nodes = list(nodes)
        self.edges = list(edges)

    # -- lifecycle -------------------------------------------------------

    def initialize(self, config: SimulationConfig | None = None) -> bool:
        """Build a fresh engine for the current design.

        Any existing engine is stopped and detached first.

        Returns:
            False if the design has no nodes (no engine is built).
        """
        self._dispose_engine()

        if config is not None:
            self.config = config

        if not self.nodes:
            logger.warning("No nodes in design - cannot initialize simulation")
            return False

        engine = SimulationEngine(
            self.nodes,
            self.edges,
            self.config,
            seed=self.seed,
            scheduler=self.scheduler_factory() if self.scheduler_factory else None,
        )
        if self.speed != 1.0:
            engine.set_speed(self.speed)
        self._unsubscribe = [
            engine.on_event(self._handle_event),
            engine.on_metrics_update(self._handle_metrics),
        ]

        self.engine = engine
        self.status = SimulationStatus.IDLE
        self.current_time = 0.0
        self.metrics = None
        self.result = None
        self.show_summary = False
        with self._events_lock:
            self._events = []
        logger.debug("Initialized engine for %d nodes, %d edges", len(self.nodes), len(self.edges))
        return True

    def start(self) -> None:
        if self.engine is None and not self.initialize():
            return
        self.status = SimulationStatus.RUNNING
        self.engine.start()

    def pause(self) -> None:
        if self.engine is None:
            return
        self.engine.pause()
        if self.engine.status == SimulationStatus.PAUSED:
            self.status = SimulationStatus.PAUSED

    def resume(self) -> None:
        if self.engine is None:
            return
        self.engine.resume()
        if self.engine.status == SimulationStatus.RUNNING:
            self.status = SimulationStatus.RUNNING

    def stop(self) -> None:
        """Stop the run and capture its result.

        The summary is only flagged for display if completion has not
        already shown it.
        """
        if self.engine is None:
            return
        already_completed = self.status == SimulationStatus.COMPLETED
        self.engine.stop()
        self.result = self.engine.get_result()
        self.status = self.engine.status
        if not already_completed:
            self.show_summary = True

    def reset(self) -> None:
        """Discard the current run and build a fresh engine with the current config."""
        self._dispose_engine()
        self.status = SimulationStatus.IDLE
        self.current_time = 0.0
        self.initialize(self.config)

    def set_speed(self, speed: float) -> None:
        if self.engine is not None:
            self.engine.set_speed(speed)
        elif speed <= 0:
            raise ValueError(f"Speed must be positive, got {speed}")
        self.speed = speed

    def update_config(self, **changes: Any) -> SimulationConfig:
        """Change fields of the configuration used by the next ``initialize``."""
        self.config = self.config.replace(**changes)
        return self.config

    def _dispose_engine(self) -> None:
        if self.engine is None:
            return
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        self.engine.stop()
        self.engine = None

    # -- presets ---------------------------------------------------------

    def save_preset(
        self, name: str, description: str, tags: Iterable[str] = ()
    ) -> SimulationPreset:
        """Save the current configuration as a new preset."""
        preset = SimulationPreset(
            id=f"preset-{next(self._preset_ids)}",
            name=name,
            description=description,
            config=self.config,
            tags=tuple(tags),
        )
        self.presets[preset.id] = preset
        return preset

    def load_preset(self, preset_id: str) -> SimulationConfig:
        """Make a preset's configuration current.

        Raises:
            KeyError: If no preset has this id.
        """
        if preset_id not in self.presets:
            raise KeyError(f"Unknown preset {preset_id!r}")
        self.config = self.presets[preset_id].config
        self.current_preset = preset_id
        return self.config

    def delete_preset(self, preset_id: str) -> None:
        self.presets.pop(preset_id, None)
        if self.current_preset == preset_id:
            self.current_preset = None

    # -- events and metrics ----------------------------------------------

    @property
    def events(self) -> list[SimulationEvent]:
        with self._events_lock:
            return list(self._events)

    def visible_events(self) -> list[SimulationEvent]:
        """Events shown under the current ``log_filter``."""
        return filter_events(self.events, self.log_filter)

    def set_log_filter(self, log_filter: LogFilter | str) -> None:
        self.log_filter = LogFilter(log_filter)

    def _handle_event(self, event: SimulationEvent) -> None:
        with self._events_lock:
            self._events.append(event)
        self.current_time = event.timestamp

        if not _is_completion(event):
            return
        if self.engine is not None and self.status != SimulationStatus.COMPLETED:
            self.result = self.engine.get_result()
            self.status = SimulationStatus.COMPLETED
            self.show_summary = True
            logger.info("Simulation completed; result captured")

    def _handle_metrics(self, metrics: SystemMetrics) -> None:
        self.metrics = metrics
        self.current_time = metrics.timestamp

    def __repr__(self) -> str:
        return (
            f"SimulationSession({self.status.value}, nodes={len(self.nodes)}, "
            f"events={len(self._events)})"
        )


def _is_completion(event: SimulationEvent) -> bool:
    return (
        event.type == SimulationEventType.SIMULATION_STATE_CHANGED
        and (event.metadata or {}).get("status") == SimulationStatus.COMPLETED.value
    )
