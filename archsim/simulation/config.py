"""
Simulation configuration, presets, and YAML scenario loading.

``SimulationConfig`` is an immutable value object validated on construction.
Scenario files are YAML documents with a ``config`` mapping and the design's
``nodes`` and ``edges`` lists.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml

from .graph import Edge, Node
from .network import NetworkLatencyMatrix


class ConsistencyMode(Enum):
    STRONG = "strong"
    EVENTUAL = "eventual"


@dataclass(frozen=True)
class SimulationConfig:
    """Tunable parameters for one simulation run.

    Attributes:
        requests_per_second: Mean rate of requests generated by clients.
        concurrent_users: Simulated user population (informational).
        payload_size: Request payload in KB.
        error_rate: Probability (0-1) that a hop fails on arrival.
        message_queue_depth: Queue capacity used for backlog warnings.
        cache_hit_ratio: Probability (0-1) of a cache hit.
        db_latency: Database processing latency in ms.
        service_cpu_cost: Service processing latency in ms.
        network: Per-hop network latency matrix.
        auto_scaling: Whether SERVICE nodes scale with load.
        failure_injection: Whether nodes fail and recover at random.
        chaos_mode: Whether random overload warnings are emitted.
        consistency_mode: Data consistency model (informational).
        duration: Simulated run length in seconds.
        tick_rate: Virtual time per tick in ms.
    """

    requests_per_second: float = 100.0
    concurrent_users: int = 50
    payload_size: float = 10.0
    error_rate: float = 0.01
    message_queue_depth: int = 100
    cache_hit_ratio: float = 0.85
    db_latency: float = 40.0
    service_cpu_cost: float = 8.0
    network: NetworkLatencyMatrix = field(default_factory=NetworkLatencyMatrix.with_defaults)
    auto_scaling: bool = True
    failure_injection: bool = False
    consistency_mode: ConsistencyMode = ConsistencyMode.EVENTUAL
    chaos_mode: bool = False
    duration: float = 30.0
    tick_rate: float = 100.0

    def __post_init__(self) -> None:
        # Accept plain values from YAML/JSON for the structured fields
        if not isinstance(self.network, NetworkLatencyMatrix):
            object.__setattr__(self, "network", NetworkLatencyMatrix(self.network))
        if not isinstance(self.consistency_mode, ConsistencyMode):
            object.__setattr__(
                self, "consistency_mode", ConsistencyMode(self.consistency_mode)
            )

        for name in ("error_rate", "cache_hit_ratio"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        for name in (
            "requests_per_second",
            "concurrent_users",
            "payload_size",
            "message_queue_depth",
            "db_latency",
            "service_cpu_cost",
        ):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} cannot be negative, got {value}")
        if self.duration <= 0:
            raise ValueError(f"duration must be positive, got {self.duration}")
        if self.tick_rate <= 0:
            raise ValueError(f"tick_rate must be positive, got {self.tick_rate}")

    @property
    def duration_ms(self) -> float:
        return self.duration * 1000

    def replace(self, **changes: Any) -> "SimulationConfig":
        """Return a copy with the given fields changed."""
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SimulationConfig":
        """Build a config from snake_case or editor-style camelCase keys.

        Missing keys take their defaults; unknown keys are rejected.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_CASE_FIELDS.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown configuration key {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["network"] = self.network.to_dict()
        data["consistency_mode"] = self.consistency_mode.value
        return data


_CAMEL_CASE_FIELDS = {
    "requestsPerSecond": "requests_per_second",
    "concurrentUsers": "concurrent_users",
    "payloadSize": "payload_size",
    "errorRate": "error_rate",
    "messageQueueDepth": "message_queue_depth",
    "cacheHitRatio": "cache_hit_ratio",
    "dbLatency": "db_latency",
    "serviceCpuCost": "service_cpu_cost",
    "networkLatency": "network",
    "autoScaling": "auto_scaling",
    "failureInjection": "failure_injection",
    "chaosMode": "chaos_mode",
    "consistencyMode": "consistency_mode",
    "tickRate": "tick_rate",
}


DEFAULT_CONFIG = SimulationConfig()


@dataclass(frozen=True)
class SimulationPreset:
    """A named, reusable configuration."""

    id: str
    name: str
    description: str
    config: SimulationConfig
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["config"] = self.config.to_dict()
        data["tags"] = list(self.tags)
        return data


PRESETS: dict[str, SimulationPreset] = {
    preset.id: preset
    for preset in (
        SimulationPreset(
            id="low-traffic",
            name="Low Traffic",
            description="Simulates light load for testing basic functionality",
            config=DEFAULT_CONFIG.replace(
                requests_per_second=10, concurrent_users=5, duration=20
            ),
            tags=("beginner", "testing"),
        ),
        SimulationPreset(
            id="moderate-load",
            name="Moderate Load",
            description="Standard production-like traffic",
            config=DEFAULT_CONFIG,
            tags=("intermediate", "production"),
        ),
        SimulationPreset(
            id="high-traffic",
            name="High Traffic",
            description="Heavy load to test system limits",
            config=DEFAULT_CONFIG.replace(
                requests_per_second=1000,
                concurrent_users=500,
                error_rate=0.02,
                duration=60,
            ),
            tags=("advanced", "stress-test"),
        ),
        SimulationPreset(
            id="chaos-mode",
            name="Chaos Mode",
            description="Unpredictable conditions with failures and spikes",
            config=DEFAULT_CONFIG.replace(
                requests_per_second=500,
                error_rate=0.05,
                chaos_mode=True,
                failure_injection=True,
                duration=45,
            ),
            tags=("advanced", "chaos", "resilience"),
        ),
    )
}


@dataclass
class Scenario:
    """A design plus the configuration to simulate it with."""

    name: str
    nodes: list[Node]
    edges: list[Edge]
    config: SimulationConfig = DEFAULT_CONFIG


def _read_yaml(path: str | Path) -> dict[str, Any]:
    resolved = Path(path)
    if not resolved.exists():
        raise FileNotFoundError(f"Missing scenario file at {resolved}")
    with resolved.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{resolved} must contain a YAML mapping at the top level")
    return data


def load_config(path: str | Path) -> SimulationConfig:
    """Load a configuration from YAML.

    The file may hold the settings at the top level or under a ``config``
    key. A ``preset`` key selects a built-in preset as the starting point.
    """
    data = _read_yaml(path)
    return _config_from_mapping(data.get("config", data))


def _config_from_mapping(data: Mapping[str, Any]) -> SimulationConfig:
    settings = dict(data)
    preset_id = settings.pop("preset", None)
    if preset_id is None:
        return SimulationConfig.from_dict(settings)
    if preset_id not in PRESETS:
        raise KeyError(f"Unknown preset {preset_id!r}; choose from {sorted(PRESETS)}")
    base = PRESETS[preset_id].config.to_dict()
    for key, value in settings.items():
        base[_CAMEL_CASE_FIELDS.get(key, key)] = value
    return SimulationConfig.from_dict(base)


def load_scenario(path: str | Path) -> Scenario:
    """Load a design and its configuration from a YAML scenario file."""
    data = _read_yaml(path)
    nodes = [Node.from_dict(n) for n in data.get("nodes") or []]
    edges = [Edge.from_dict(e) for e in data.get("edges") or []]
    config = _config_from_mapping(data.get("config") or {})
    return Scenario(
        name=str(data.get("name", Path(path).stem)),
        nodes=nodes,
        edges=edges,
        config=config,
    )
