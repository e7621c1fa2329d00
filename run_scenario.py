"""Run a YAML scenario headlessly and print its summary."""

import argparse
import logging
import sys

from archsim.comparison import ComparisonConfig, ComparisonRunner, DesignVariant
from archsim.simulation.config import PRESETS, load_scenario
from archsim.simulation.engine import SimulationEngine
from archsim.simulation.scheduler import ManualTickScheduler


def run_once(scenario, seed):
    engine = SimulationEngine(
        scenario.nodes,
        scenario.edges,
        scenario.config,
        seed=seed,
        scheduler=ManualTickScheduler(),
    )
    result = engine.run_to_completion()
    print(f"Scenario: {scenario.name}")
    print(result.summary_text())


def run_batch(scenario, runs, workers, seed):
    runner = ComparisonRunner(
        ComparisonConfig(num_runs=runs, parallel_workers=workers, base_seed=seed)
    )

    def progress(done, total):
        print(f"\r  {done}/{total} runs", end="", file=sys.stderr, flush=True)

    results = runner.run(DesignVariant.from_scenario(scenario), progress)
    print(file=sys.stderr)
    print(results.summary())


def main(argv=None):
    parser = argparse.ArgumentParser(description="Simulate traffic through a system design.")
    parser.add_argument("scenario", help="Path to a YAML scenario file")
    parser.add_argument("--preset", choices=sorted(PRESETS),
                        help="Use a built-in configuration preset instead of the file's config")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--runs", type=int, default=1,
                        help="Number of seeded runs; more than one prints batch statistics")
    parser.add_argument("--workers", type=int, default=1, help="Parallel worker processes for --runs")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        scenario = load_scenario(args.scenario)
    except (FileNotFoundError, KeyError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.preset:
        scenario.config = PRESETS[args.preset].config

    if not scenario.nodes:
        print(f"Error: scenario {scenario.name!r} has no nodes", file=sys.stderr)
        return 1

    if args.runs > 1:
        run_batch(scenario, args.runs, args.workers, args.seed)
    else:
        run_once(scenario, args.seed)
    return 0


if __name__ == '__main__':
    sys.exit(main())
