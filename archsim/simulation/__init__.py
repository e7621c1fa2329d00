"""
Traffic simulation package for distributed-system designs.

This package provides a tick-driven simulator that pushes synthetic requests
through a graph of architecture components and reports load, latency,
scaling, and bottleneck behavior.
"""

from .distributions import (
    Milliseconds,
    seconds,
    to_seconds,
    Distribution,
    Exponential,
    Uniform,
    Constant,
)
from .graph import NodeType, Node, Edge, Graph, type_label
from .network import NetworkLatencyMatrix, TypePair, DEFAULT_NETWORK_LATENCY_MS
from .config import (
    ConsistencyMode,
    SimulationConfig,
    SimulationPreset,
    Scenario,
    DEFAULT_CONFIG,
    PRESETS,
    load_config,
    load_scenario,
)
from .events import (
    SimulationEventType,
    Severity,
    SimulationEvent,
    EventLog,
    Subscribers,
    LogFilter,
    filter_events,
)
from .metrics import (
    NodeMetrics,
    EdgeMetrics,
    SystemMetrics,
    MetricsSnapshot,
    MetricsCollector,
)
from .state import SimulationStatus, RequestStatus, ActiveRequest, SimulationState
from .behavior import NodeBehavior, ProcessingContext, behavior_for, processing_latency
from .strategy import (
    RoutingStrategy,
    FirstUnvisitedRouting,
    ScalingStrategy,
    ScalingAction,
    ScalingDirection,
    ThresholdScalingStrategy,
    NoScalingStrategy,
)
from .failures import FailureInjectionConfig, FailureInjector
from .scheduler import TickScheduler, ManualTickScheduler, ThreadedTickScheduler
from .analysis import (
    BottleneckSeverity,
    BottleneckAnalysis,
    analyze_bottlenecks,
    generate_recommendations,
)
from .engine import SimulationEngine, SimulationResult, SimulationSummary

__all__ = [
    # Time units
    "Milliseconds",
    "seconds",
    "to_seconds",
    # Distributions
    "Distribution",
    "Exponential",
    "Uniform",
    "Constant",
    # Graph
    "NodeType",
    "Node",
    "Edge",
    "Graph",
    "type_label",
    # Network
    "NetworkLatencyMatrix",
    "TypePair",
    "DEFAULT_NETWORK_LATENCY_MS",
    # Config
    "ConsistencyMode",
    "SimulationConfig",
    "SimulationPreset",
    "Scenario",
    "DEFAULT_CONFIG",
    "PRESETS",
    "load_config",
    "load_scenario",
    # Events
    "SimulationEventType",
    "Severity",
    "SimulationEvent",
    "EventLog",
    "Subscribers",
    "LogFilter",
    "filter_events",
    # Metrics
    "NodeMetrics",
    "EdgeMetrics",
    "SystemMetrics",
    "MetricsSnapshot",
    "MetricsCollector",
    # State
    "SimulationStatus",
    "RequestStatus",
    "ActiveRequest",
    "SimulationState",
    # Behavior
    "NodeBehavior",
    "ProcessingContext",
    "behavior_for",
    "processing_latency",
    # Strategy
    "RoutingStrategy",
    "FirstUnvisitedRouting",
    "ScalingStrategy",
    "ScalingAction",
    "ScalingDirection",
    "ThresholdScalingStrategy",
    "NoScalingStrategy",
    # Failures
    "FailureInjectionConfig",
    "FailureInjector",
    # Scheduling
    "TickScheduler",
    "ManualTickScheduler",
    "ThreadedTickScheduler",
    # Analysis
    "BottleneckSeverity",
    "BottleneckAnalysis",
    "analyze_bottlenecks",
    "generate_recommendations",
    # Engine
    "SimulationEngine",
    "SimulationResult",
    "SimulationSummary",
]
