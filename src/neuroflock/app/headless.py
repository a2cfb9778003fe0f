from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.errors import DimensionMismatch
from ..sim.core.population import Population
from ..sim.systems.predators import TARGET_MODES, maybe_create_target_strategy
from .persistence import load_champion, save_champion

logger = logging.getLogger(__name__)


_GENERATION_HEADER = [
    "generation",
    "tick",
    "avg_fitness",
    "best_fitness",
    "worst_fitness",
    "median_fitness",
    "behavior",
]


def _format_generation_row(population: Population, tick: int) -> list[object]:
    record = population.fitness_history[-1]
    return [
        record.generation,
        tick,
        f"{record.avg:.4f}",
        f"{record.best:.4f}",
        f"{record.worst:.4f}",
        f"{record.median:.4f}",
        population.current_behavior,
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    count = len(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / count),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    delta_time: Optional[float] = None,
    summary_path: Optional[Path] = None,
    config: Optional[SimulationConfig] = None,
    champion_in: Optional[Path] = None,
    champion_out: Optional[Path] = None,
    deterministic_log: bool = False,
) -> Population:
    """Step a population ``steps`` times at a fixed ``delta_time``.

    One CSV row is written per completed generation. The population is
    returned undisposed so callers can inspect it.
    """

    config = config if config is not None else SimulationConfig()
    if seed is not None:
        config.seed = seed
    dt = config.time_step if delta_time is None else delta_time
    population = Population(config)
    predator = maybe_create_target_strategy(
        config.predator, config.world_width, config.world_height, population.rng
    )

    if champion_in:
        loaded = load_champion(champion_in)
        if not loaded.ok:
            logger.warning("starting from a random cohort: %s", loaded.error)
        else:
            try:
                population.import_champion(loaded.descriptor)
            except DimensionMismatch as exc:
                logger.warning("starting from a random cohort: %s", exc)

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_GENERATION_HEADER)

    tick_ms_series: list[float] = []
    neighbor_checks_series: list[float] = []
    try:
        for tick in range(steps):
            target = predator.update(population.boids, dt) if predator is not None else None
            metrics = population.tick(dt, target)
            tick_ms_series.append(0.0 if deterministic_log else metrics.tick_duration_ms)
            neighbor_checks_series.append(float(metrics.neighbor_checks))
            if metrics.evolved and writer:
                writer.writerow(_format_generation_row(population, tick))
    finally:
        if csv_file:
            csv_file.close()

    logger.info(
        "headless run finished: %d ticks, generation %d, behavior %s",
        steps,
        population.generation,
        population.current_behavior,
    )

    if champion_out:
        save_champion(population.export_champion(), champion_out)

    if summary_path:
        history = population.fitness_history
        summary = {
            "steps": steps,
            "seed": config.seed,
            "delta_time": dt,
            "generations_completed": len(history),
            "final_generation": population.generation,
            "final_behavior": population.current_behavior,
            "predator": None if predator is None else predator.mode,
            "tick_ms": _summary_stats(tick_ms_series),
            "neighbor_checks": _summary_stats(neighbor_checks_series),
            "best_fitness": _summary_stats([record.best for record in history]),
            "avg_fitness": _summary_stats([record.avg for record in history]),
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))

    return population


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Headless neuroevolution flocking run")
    parser.add_argument("--steps", type=int, default=3600)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--dt", type=float, default=None, help="Fixed time step per tick (seconds).")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file.")
    parser.add_argument("--log", type=Path, default=None, help="CSV file for per-generation fitness.")
    parser.add_argument("--summary", type=Path, default=None, help="Optional JSON summary of the run.")
    parser.add_argument("--champion-in", type=Path, default=None, help="Seed the cohort from a saved champion.")
    parser.add_argument("--champion-out", type=Path, default=None, help="Save the final champion to this file.")
    parser.add_argument(
        "--predator",
        default=None,
        choices=TARGET_MODES,
        help="Enable the external target with this mode (overrides the config file).",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Force tick_ms to 0 in the summary so identical seeds match.",
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = SimulationConfig.from_yaml(args.config) if args.config else SimulationConfig()
    if args.predator:
        config.predator.enabled = True
        config.predator.mode = args.predator
    config.validate()

    population = run_headless(
        args.steps,
        args.seed,
        args.log,
        delta_time=args.dt,
        summary_path=args.summary,
        config=config,
        champion_in=args.champion_in,
        champion_out=args.champion_out,
        deterministic_log=args.deterministic_log,
    )
    population.dispose()


if __name__ == "__main__":
    main()
