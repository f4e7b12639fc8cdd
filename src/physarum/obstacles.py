from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, TYPE_CHECKING

import numpy as np
from pygame.math import Vector2

from .config import Color, ObstacleConfig

if TYPE_CHECKING:
    from .trail_field import TrailField


@dataclass(frozen=True)
class Obstacle:
    x: float
    y: float
    width: float
    height: float
    color: Color

    @classmethod
    def from_config(cls, config: ObstacleConfig) -> "Obstacle":
        x, y, width, height = config.rect
        return cls(float(x), float(y), float(width), float(height), tuple(config.color))  # type: ignore[arg-type]

    def contains(self, px: float, py: float) -> bool:
        # half-open on the far edges so adjacent rectangles never share a point
        return self.x <= px < self.x + self.width and self.y <= py < self.y + self.height


class ObstacleMask:
    """Static rectangles that block agents and pin field cells to a paint color.

    The rectangle list is small, so point queries scan it linearly. Cell
    membership is precomputed once into a boolean grid because the field pass
    asks about every cell every tick.
    """

    def __init__(self, width: int, height: int, obstacles: Iterable[Obstacle] = ()):
        self._width = width
        self._height = height
        self._obstacles: List[Obstacle] = list(obstacles)
        self._cells = np.zeros((height, width), dtype=bool)
        self._paint = np.zeros((height, width, 4), dtype=np.float64)
        xs = np.arange(width)
        ys = np.arange(height)
        for obstacle in self._obstacles:
            cols = (xs >= obstacle.x) & (xs < obstacle.x + obstacle.width)
            rows = (ys >= obstacle.y) & (ys < obstacle.y + obstacle.height)
            covered = rows[:, None] & cols[None, :]
            # the first rectangle listed wins where several overlap
            fresh = covered & ~self._cells
            self._paint[fresh] = obstacle.color
            self._cells |= covered

    @classmethod
    def from_configs(cls, width: int, height: int, configs: Iterable[ObstacleConfig]) -> "ObstacleMask":
        return cls(width, height, (Obstacle.from_config(config) for config in configs))

    @property
    def obstacles(self) -> List[Obstacle]:
        return self._obstacles

    @property
    def cells(self) -> np.ndarray:
        """Boolean (height, width) grid, True where a cell is covered."""
        return self._cells

    @property
    def paint_colors(self) -> np.ndarray:
        return self._paint

    def __bool__(self) -> bool:
        return bool(self._obstacles)

    def contains(self, point: Vector2) -> bool:
        for obstacle in self._obstacles:
            if obstacle.contains(point.x, point.y):
                return True
        return False

    def is_masked(self, x: int, y: int) -> bool:
        if 0 <= x < self._width and 0 <= y < self._height:
            return bool(self._cells[y, x])
        return False

    def paint(self, field: "TrailField") -> None:
        """Write each rectangle's color over the cells it covers (R into deposition, G into pre-pattern)."""
        if not self._obstacles:
            return
        field.deposition[self._cells] = self._paint[self._cells, 0]
        field.prepattern[self._cells] = self._paint[self._cells, 1]
