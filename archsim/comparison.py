"""
Batch runner for comparing designs.

Runs many seeded, headless simulations of one or more designs (in parallel
if requested) and aggregates the headline figures of each run into sample
statistics with t-distribution confidence intervals.
"""

import logging
import math
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

import numpy as np
from scipy import stats as scipy_stats

from .simulation.config import DEFAULT_CONFIG, Scenario, SimulationConfig
from .simulation.engine import SimulationEngine
from .simulation.graph import Edge, Node
from .simulation.scheduler import ManualTickScheduler

logger = logging.getLogger(__name__)


class ComparisonMetric(Enum):
    """Per-run figures that can be aggregated across a batch."""

    TOTAL_REQUESTS = "total_requests"
    SUCCESS_RATE = "success_rate"
    AVERAGE_LATENCY = "average_latency"
    PEAK_RPS = "peak_rps"
    SCALING_ACTIONS = "scaling_actions"
    BOTTLENECKS = "bottlenecks"


@dataclass
class DesignVariant:
    """One design to put through a batch of runs."""

    name: str
    nodes: list[Node]
    edges: list[Edge]
    config: SimulationConfig = DEFAULT_CONFIG

    @classmethod
    def from_scenario(cls, scenario: Scenario) -> "DesignVariant":
        return cls(scenario.name, scenario.nodes, scenario.edges, scenario.config)


@dataclass
class ComparisonConfig:
    """Configuration for a batch of runs.

    Attributes:
        num_runs: Number of runs per design.
        parallel_workers: Number of worker processes (1 = sequential).
        base_seed: Base seed for reproducibility (run i gets base_seed + i).
        confidence_level: Confidence level for reported intervals.
    """

    num_runs: int
    parallel_workers: int = 1
    base_seed: int | None = None
    confidence_level: float = 0.95

    def __post_init__(self) -> None:
        if self.num_runs < 1:
            raise ValueError(f"num_runs must be >= 1, got {self.num_runs}")
        if self.parallel_workers < 1:
            raise ValueError(
                f"parallel_workers must be >= 1, got {self.parallel_workers}"
            )
        if not 0 < self.confidence_level < 1:
            raise ValueError(
                f"confidence_level must be in (0, 1), got {self.confidence_level}"
            )

    def seed_for(self, index: int) -> int | None:
        return self.base_seed + index if self.base_seed is not None else None


@dataclass
class RunRecord:
    """Headline figures from a single run."""

    index: int
    seed: int | None
    total_requests: int
    success_rate: float
    average_latency: float
    peak_rps: float
    scaling_actions: int
    bottlenecks: int
    end_status: str

    def value(self, metric: ComparisonMetric) -> float:
        return float(getattr(self, metric.value))


@dataclass
class BatchResults:
    """Aggregated results from a batch of runs of one design.

    Attributes:
        design: Name of the design.
        runs: One record per run, ordered by run index.
    """

    design: str
    runs: list[RunRecord] = field(default_factory=list)

    def samples(self, metric: ComparisonMetric) -> np.ndarray:
        return np.array([r.value(metric) for r in self.runs], dtype=float)

    def mean(self, metric: ComparisonMetric) -> float:
        if not self.runs:
            return 0.0
        return float(np.mean(self.samples(metric)))

    def std(self, metric: ComparisonMetric) -> float:
        if len(self.runs) < 2:
            return 0.0
        return float(np.std(self.samples(metric), ddof=1))

    def percentile(self, metric: ComparisonMetric, p: float) -> float:
        """Calculate a percentile of a metric.

        Args:
            metric: Metric to summarize.
            p: Percentile (0-100).
        """
        if not self.runs:
            return 0.0
        return float(np.percentile(self.samples(metric), p))

    def confidence_interval(
        self, metric: ComparisonMetric, confidence_level: float = 0.95
    ) -> tuple[float, float] | None:
        """Confidence interval for the mean of a metric.

        Uses the t-distribution for the CI.

        Returns:
            Tuple of (lower_bound, upper_bound), or None if fewer than 2 runs.
        """
        n = len(self.runs)
        if n < 2:
            return None
        sample_mean = self.mean(metric)
        sample_std = self.std(metric)
        alpha = 1.0 - confidence_level
        t_crit = scipy_stats.t.ppf(1 - alpha / 2, df=n - 1)
        margin = t_crit * sample_std / math.sqrt(n)
        return (sample_mean - margin, sample_mean + margin)

    def summary(self, confidence_level: float = 0.95) -> str:
        """Generate a text summary of results."""
        lines = [f"{self.design} ({len(self.runs)} runs)"]
        for metric, fmt in (
            (ComparisonMetric.SUCCESS_RATE, "{:.4f}"),
            (ComparisonMetric.AVERAGE_LATENCY, "{:.1f}ms"),
            (ComparisonMetric.PEAK_RPS, "{:.1f}"),
            (ComparisonMetric.SCALING_ACTIONS, "{:.1f}"),
        ):
            line = (
                f"  {metric.value}: mean={fmt.format(self.mean(metric))} "
                f"(std: {fmt.format(self.std(metric))})"
            )
            ci = self.confidence_interval(metric, confidence_level)
            if ci is not None:
                line += (
                    f", {confidence_level:.0%} CI=[{fmt.format(ci[0])}, {fmt.format(ci[1])}]"
                )
            lines.append(line)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"BatchResults({self.design!r}, n={len(self.runs)}, "
            f"success_rate={self.mean(ComparisonMetric.SUCCESS_RATE):.4f})"
        )


def _run_single_simulation(
    index: int,
    nodes: list[Node],
    edges: list[Edge],
    config: SimulationConfig,
    seed: int | None,
) -> RunRecord:
    """Run a single headless simulation (used for parallel execution).

    This is a module-level function to support multiprocessing.
    """
    engine = SimulationEngine(
        nodes, edges, config, seed=seed, scheduler=ManualTickScheduler()
    )
    result = engine.run_to_completion()
    summary = result.summary
    return RunRecord(
        index=index,
        seed=seed,
        total_requests=summary.total_requests,
        success_rate=summary.success_rate,
        average_latency=summary.average_latency,
        peak_rps=summary.peak_rps,
        scaling_actions=engine.state.system_metrics.scaling_actions,
        bottlenecks=len(summary.bottlenecks),
        end_status=result.end_status.value,
    )


class ComparisonRunner:
    """Runs batches of simulations and aggregates results.

    Supports parallel execution for faster results on multi-core systems.
    """

    def __init__(self, config: ComparisonConfig):
        self.config = config

    def run(
        self,
        variant: DesignVariant,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> BatchResults:
        """Run a batch of simulations of one design.

        Args:
            variant: Design and configuration to simulate.
            progress_callback: Optional callback(completed, total) for progress updates.

        Returns:
            Aggregated BatchResults, runs ordered by index.
        """
        logger.info(
            "Running %d simulations of %s (%d workers)",
            self.config.num_runs,
            variant.name,
            self.config.parallel_workers,
        )
        if self.config.parallel_workers > 1:
            runs = self._run_parallel(variant, progress_callback)
        else:
            runs = self._run_sequential(variant, progress_callback)
        runs.sort(key=lambda r: r.index)
        return BatchResults(design=variant.name, runs=runs)

    def compare(
        self,
        variants: Iterable[DesignVariant],
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> dict[str, BatchResults]:
        """Run the same batch against several designs.

        Every design sees the same seeds, so differences come from the
        designs rather than from the random streams.

        Raises:
            ValueError: If two designs share a name.
        """
        results: dict[str, BatchResults] = {}
        for variant in variants:
            if variant.name in results:
                raise ValueError(f"Duplicate design name {variant.name!r}")
            results[variant.name] = self.run(variant, progress_callback)
        return results

    def _run_sequential(
        self,
        variant: DesignVariant,
        progress_callback: Callable[[int, int], None] | None,
    ) -> list[RunRecord]:
        runs: list[RunRecord] = []
        for i in range(self.config.num_runs):
            runs.append(
                _run_single_simulation(
                    index=i,
                    nodes=variant.nodes,
                    edges=variant.edges,
                    config=variant.config,
                    seed=self.config.seed_for(i),
                )
            )
            if progress_callback:
                progress_callback(i + 1, self.config.num_runs)
        return runs

    def _run_parallel(
        self,
        variant: DesignVariant,
        progress_callback: Callable[[int, int], None] | None,
    ) -> list[RunRecord]:
        """Run simulations in parallel using ProcessPoolExecutor."""
        runs: list[RunRecord] = []

        with ProcessPoolExecutor(max_workers=self.config.parallel_workers) as executor:
            futures = [
                executor.submit(
                    _run_single_simulation,
                    index=i,
                    nodes=variant.nodes,
                    edges=variant.edges,
                    config=variant.config,
                    seed=self.config.seed_for(i),
                )
                for i in range(self.config.num_runs)
            ]

            for future in as_completed(futures):
                runs.append(future.result())
                if progress_callback:
                    progress_callback(len(runs), self.config.num_runs)

        return runs


def compare_designs(
    variants: Iterable[DesignVariant],
    num_runs: int,
    parallel_workers: int = 1,
    seed: int | None = None,
) -> dict[str, BatchResults]:
    """Convenience function to compare designs over seeded batches.

    Args:
        variants: Designs to compare.
        num_runs: Runs per design.
        parallel_workers: Number of parallel workers.
        seed: Base random seed.

    Returns:
        BatchResults keyed by design name.
    """
    config = ComparisonConfig(
        num_runs=num_runs, parallel_workers=parallel_workers, base_seed=seed
    )
    return ComparisonRunner(config).compare(variants)
