from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    moves: int
    boundary_rejections: int
    obstacle_rejections: int
    occupancy_rejections: int
    deposition_total: float
    prepattern_total: float
    tick_duration_ms: float = 0.0
