"""
Graph model consumed by the simulation engine.

Nodes and edges are supplied by the design editor. The engine captures them
by value at construction time into a ``Graph`` so later edits to the design
never leak into a running simulation.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping


class NodeType(Enum):
    """Component kinds a design can contain.

    Values are the tags used by the design editor.
    """

    CLIENT = "client"
    API_GATEWAY = "apiGateway"
    LOAD_BALANCER = "loadBalancer"
    SERVICE = "service"
    DATABASE = "database"
    CACHE = "cache"
    QUEUE = "queue"
    PUBSUB = "pubsub"
    OBJECT_STORAGE = "objectStorage"
    METRICS = "metrics"
    RATE_LIMITER = "rateLimiter"
    CDN = "cdn"

    @property
    def label(self) -> str:
        """Short name used as a key in the network latency matrix."""
        return _TYPE_LABELS[self]

    @classmethod
    def parse(cls, value: "NodeType | str") -> "NodeType | str":
        """Resolve an editor tag or enum name to a NodeType.

        Unrecognized strings are returned unchanged; the engine treats them
        as generic components.
        """
        if isinstance(value, NodeType):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[str(value).upper()]
        except KeyError:
            return str(value)


_TYPE_LABELS = {
    NodeType.CLIENT: "Client",
    NodeType.API_GATEWAY: "Gateway",
    NodeType.LOAD_BALANCER: "LoadBalancer",
    NodeType.SERVICE: "Service",
    NodeType.DATABASE: "DB",
    NodeType.CACHE: "Cache",
    NodeType.QUEUE: "Queue",
    NodeType.PUBSUB: "PubSub",
    NodeType.OBJECT_STORAGE: "ObjectStorage",
    NodeType.METRICS: "Metrics",
    NodeType.RATE_LIMITER: "RateLimiter",
    NodeType.CDN: "CDN",
}


def type_label(node_type: NodeType | str) -> str:
    """Latency-matrix label for a node type (raw string for unknown types)."""
    if isinstance(node_type, NodeType):
        return node_type.label
    return node_type


@dataclass(frozen=True)
class Node:
    """A component placed in the design.

    Attributes:
        id: Unique identifier within the design.
        type: Component kind; drives all behavioral dispatch.
        label: Human-readable name used in event messages.
    """

    id: str
    type: NodeType | str
    label: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", NodeType.parse(self.type))
        if not self.label:
            object.__setattr__(self, "label", self.id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Node":
        """Build a node from a plain mapping.

        Accepts both the flat form ``{"id", "type", "label"}`` and the
        editor form where ``type``/``label`` live under ``data``.
        """
        payload = data.get("data") or {}
        node_type = data.get("type", payload.get("type"))
        if node_type is None:
            raise ValueError(f"Node {data.get('id')!r} has no type")
        return cls(
            id=str(data["id"]),
            type=node_type,
            label=data.get("label", payload.get("label", "")),
        )

    def __repr__(self) -> str:
        return f"Node({self.id!r}, {type_label(self.type)})"


@dataclass(frozen=True)
class Edge:
    """A directed connection between two nodes."""

    source: str
    target: str
    id: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.id:
            object.__setattr__(self, "id", f"{self.source}->{self.target}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Edge":
        return cls(
            source=str(data["source"]),
            target=str(data["target"]),
            id=str(data.get("id", "")),
        )

    def __repr__(self) -> str:
        return f"Edge({self.source!r} -> {self.target!r})"


class Graph:
    """Immutable capture of a design's nodes and edges.

    Outgoing edges keep the order in which they were supplied, which the
    default routing rule relies on. Edges may form cycles and may refer to
    node ids that are not in the graph; the engine handles both at runtime.
    """

    def __init__(self, nodes: Iterable[Node], edges: Iterable[Edge]):
        self._nodes: dict[str, Node] = {}
        for node in nodes:
            if node.id in self._nodes:
                raise ValueError(f"Duplicate node id {node.id!r}")
            self._nodes[node.id] = node

        self._edges: tuple[Edge, ...] = tuple(edges)
        outgoing: dict[str, list[Edge]] = defaultdict(list)
        for edge in self._edges:
            outgoing[edge.source].append(edge)
        self._outgoing: dict[str, tuple[Edge, ...]] = {
            source: tuple(out) for source, out in outgoing.items()
        }

    @classmethod
    def from_dicts(
        cls,
        nodes: Iterable[Mapping[str, Any]],
        edges: Iterable[Mapping[str, Any]],
    ) -> "Graph":
        return cls(
            [Node.from_dict(n) for n in nodes],
            [Edge.from_dict(e) for e in edges],
        )

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(self._nodes.values())

    @property
    def edges(self) -> tuple[Edge, ...]:
        return self._edges

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def outgoing(self, node_id: str) -> tuple[Edge, ...]:
        """Edges leaving ``node_id`` in supplied order."""
        return self._outgoing.get(node_id, ())

    def edge_between(self, source: str, target: str) -> Edge | None:
        """First edge from ``source`` to ``target``, if any."""
        for edge in self.outgoing(source):
            if edge.target == target:
                return edge
        return None

    def nodes_of_type(self, node_type: NodeType) -> list[Node]:
        return [n for n in self._nodes.values() if n.type == node_type]

    def has_type(self, node_type: NodeType) -> bool:
        return any(n.type == node_type for n in self._nodes.values())

    def traffic_sources(self) -> list[Node]:
        """CLIENT nodes that have at least one outgoing edge."""
        return [
            n for n in self.nodes_of_type(NodeType.CLIENT) if self.outgoing(n.id)
        ]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"Graph({len(self._nodes)} nodes, {len(self._edges)} edges)"
