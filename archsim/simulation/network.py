"""
Network latency model for the architecture simulator.

Latency is flat per hop: it depends only on the ordered pair of component
types at either end of the edge, looked up in a configurable matrix with a
fixed fallback for pairs the matrix does not mention.
"""

from dataclasses import dataclass
from typing import Mapping

from .graph import Node, type_label

DEFAULT_NETWORK_LATENCY_MS = 10.0

# Entries shipped with the default configuration
DEFAULT_LATENCY_ENTRIES = {
    "Client→Gateway": 10.0,
    "Gateway→Service": 8.0,
    "Service→DB": 12.0,
    "Service→Cache": 5.0,
    "Service→Queue": 7.0,
}

_SEPARATORS = ("→", "->")


@dataclass(frozen=True)
class TypePair:
    """An ordered (source, target) pair of node-type labels.

    Direction matters: ``Service→DB`` and ``DB→Service`` are distinct
    keys.
    """

    source: str
    target: str

    @classmethod
    def parse(cls, key: "str | TypePair") -> "TypePair":
        """Parse ``"Service→DB"`` (or ``"Service->DB"``) into a pair."""
        if isinstance(key, TypePair):
            return key
        for separator in _SEPARATORS:
            if separator in key:
                source, target = key.split(separator, 1)
                return cls(source.strip(), target.strip())
        raise ValueError(f"Latency key must look like 'Source→Target', got {key!r}")

    def __str__(self) -> str:
        return f"{self.source}→{self.target}"


class NetworkLatencyMatrix:
    """Lookup of per-hop network latency (ms) by ordered type pair.

    Args:
        entries: Mapping of ``"Source→Target"`` keys (or TypePair) to
            latency in milliseconds.
        default: Latency used for pairs absent from ``entries``.
    """

    def __init__(
        self,
        entries: Mapping["str | TypePair", float] | None = None,
        default: float = DEFAULT_NETWORK_LATENCY_MS,
    ):
        if default < 0:
            raise ValueError(f"Default latency cannot be negative, got {default}")
        self.default = float(default)
        self._entries: dict[TypePair, float] = {}
        for key, latency in (entries or {}).items():
            if latency < 0:
                raise ValueError(f"Latency for {key} cannot be negative, got {latency}")
            self._entries[TypePair.parse(key)] = float(latency)

    @classmethod
    def with_defaults(cls) -> "NetworkLatencyMatrix":
        return cls(DEFAULT_LATENCY_ENTRIES)

    def latency(self, source_label: str, target_label: str) -> float:
        return self._entries.get(TypePair(source_label, target_label), self.default)

    def between(self, source: Node | None, target: Node | None) -> float:
        """Latency for a hop between two nodes (default if either is unknown)."""
        if source is None or target is None:
            return self.default
        return self.latency(type_label(source.type), type_label(target.type))

    def to_dict(self) -> dict[str, float]:
        return {str(pair): latency for pair, latency in self._entries.items()}

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NetworkLatencyMatrix):
            return NotImplemented
        return self._entries == other._entries and self.default == other.default

    def __hash__(self) -> int:
        return hash((frozenset(self._entries.items()), self.default))

    def __repr__(self) -> str:
        pairs = ", ".join(f"{p}={v:g}" for p, v in self._entries.items())
        return f"NetworkLatencyMatrix({pairs}; default={self.default:g})"
