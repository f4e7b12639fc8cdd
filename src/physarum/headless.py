from __future__ import annotations

import argparse
import csv
from pathlib import Path
from typing import Optional

from .config import SimulationConfig
from .engine import SimulationEngine
from .logging_utils import configure_logging, get_logger

_LOGGER = get_logger("headless")

_HEADER = [
    "tick",
    "population",
    "moves",
    "boundary_rejections",
    "obstacle_rejections",
    "occupancy_rejections",
    "deposition_total",
    "prepattern_total",
    "tick_ms",
]


def run_headless(
    steps: int,
    seed: Optional[int] = None,
    log_path: Optional[Path] = None,
    deterministic_log: bool = False,
    config: Optional[SimulationConfig] = None,
) -> SimulationEngine:
    if config is None:
        config = SimulationConfig()
    if seed is not None:
        config.seed = seed
    engine = SimulationEngine(config)
    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)

    try:
        for _ in range(steps):
            if not engine.population_complete and config.spawn_batch_size > 0:
                engine.spawn_batch(config.spawn_batch_size)
            metrics = engine.tick()
            if writer:
                tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
                writer.writerow(
                    [
                        metrics.tick,
                        metrics.population,
                        metrics.moves,
                        metrics.boundary_rejections,
                        metrics.obstacle_rejections,
                        metrics.occupancy_rejections,
                        f"{metrics.deposition_total:.4f}",
                        f"{metrics.prepattern_total:.4f}",
                        f"{tick_ms:.3f}",
                    ]
                )
    finally:
        if csv_file:
            csv_file.close()

    _LOGGER.info("Finished %d ticks with %d agents", engine.tick_count, len(engine.agents))
    return engine


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless physarum simulation")
    parser.add_argument("--steps", type=int, default=500)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML simulation config")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    args = parser.parse_args()

    configure_logging(args.log_level)
    config = SimulationConfig.from_yaml(args.config) if args.config else None
    run_headless(args.steps, args.seed, args.log, deterministic_log=args.deterministic_log, config=config)


if __name__ == "__main__":
    main()
