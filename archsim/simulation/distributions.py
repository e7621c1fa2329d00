"""
Virtual time units and sampling distributions for the architecture simulator.

All simulated time is measured in milliseconds of virtual time. The
distributions here drive the stochastic parts of the engine that need more
than a single uniform draw (e.g., injected node failures).
"""

from abc import ABC, abstractmethod
from typing import NewType

import numpy as np

# Virtual time - every timestamp and latency in the engine is in milliseconds
Milliseconds = NewType("Milliseconds", float)


def seconds(s: float) -> Milliseconds:
    """Convert seconds of virtual time to milliseconds."""
    return Milliseconds(s * 1000)


def to_seconds(ms: float) -> float:
    """Convert milliseconds of virtual time to seconds."""
    return ms / 1000.0


class Distribution(ABC):
    """A source of random non-negative durations (in milliseconds)."""

    @abstractmethod
    def sample(self, rng: np.random.Generator) -> float:
        """Draw one value using the engine's generator.

        Args:
            rng: NumPy random generator owned by the simulation run.

        Returns:
            A sampled duration in milliseconds.
        """

    @property
    @abstractmethod
    def mean(self) -> float:
        """Expected value of the distribution."""


class Exponential(Distribution):
    """Memoryless waiting time with the given mean.

    Args:
        mean: Expected waiting time in milliseconds. Must be positive.
    """

    def __init__(self, mean: float):
        if mean <= 0:
            raise ValueError(f"Mean must be positive, got {mean}")
        self._mean = mean

    @property
    def mean(self) -> float:
        return self._mean

    def sample(self, rng: np.random.Generator) -> float:
        return rng.exponential(self._mean)

    def __repr__(self) -> str:
        return f"Exponential(mean={self._mean})"


class Uniform(Distribution):
    """Duration drawn uniformly from [low, high)."""

    def __init__(self, low: float, high: float):
        if low >= high:
            raise ValueError(f"Low must be less than high, got low={low}, high={high}")
        if low < 0:
            raise ValueError(f"Durations cannot be negative, got low={low}")
        self.low = low
        self.high = high

    @property
    def mean(self) -> float:
        return (self.low + self.high) / 2.0

    def sample(self, rng: np.random.Generator) -> float:
        return rng.uniform(self.low, self.high)

    def __repr__(self) -> str:
        return f"Uniform(low={self.low}, high={self.high})"


class Constant(Distribution):
    """Fixed duration; handy for deterministic tests."""

    def __init__(self, value: float):
        if value < 0:
            raise ValueError(f"Durations cannot be negative, got {value}")
        self.value = value

    @property
    def mean(self) -> float:
        return self.value

    def sample(self, rng: np.random.Generator) -> float:
        return self.value

    def __repr__(self) -> str:
        return f"Constant(value={self.value})"
