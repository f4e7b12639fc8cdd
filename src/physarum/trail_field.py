"""Two-channel trail grid with decay and 3x3 diffusion."""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from .math2d import _clamp_index
from .obstacles import ObstacleMask

_KERNEL_SHARE = 1.0 / 9.0


def _spread_axis(values: np.ndarray, axis: int) -> np.ndarray:
    """Send each cell's value to itself and both neighbors along ``axis``.

    Neighbors past the edge are clamped back onto the edge cell, so boundary
    cells keep the share that would have left the grid.
    """
    out = values.copy()
    src = np.moveaxis(values, axis, 0)
    dst = np.moveaxis(out, axis, 0)
    dst[1:] += src[:-1]
    dst[-1] += src[-1]
    dst[:-1] += src[1:]
    dst[0] += src[0]
    return out


def diffuse_clamped(values: np.ndarray) -> np.ndarray:
    """Split every cell into nine equal shares over its clamped 3x3 neighborhood."""
    return _spread_axis(_spread_axis(values, 1), 0) * _KERNEL_SHARE


class TrailField:
    """W x H grid holding the deposition and pre-pattern channels.

    Arrays are indexed ``[y, x]``. Points handed to ``deposit`` and ``sense`` are
    clamped into the grid; a sensing window wholly off the grid reads 0. Nothing
    here raises on a stray point.
    """

    def __init__(
        self,
        width: int,
        height: int,
        obstacles: Optional[ObstacleMask] = None,
        sense_prepattern: bool = False,
    ):
        self._width = width
        self._height = height
        self._obstacles = obstacles if obstacles is not None else ObstacleMask(width, height)
        if self._obstacles.cells.shape != (height, width):
            mask_height, mask_width = self._obstacles.cells.shape
            raise ValueError(f"obstacle mask is {mask_width}x{mask_height} but the field is {width}x{height}")
        self._sense_prepattern = sense_prepattern
        self._deposition = np.zeros((height, width), dtype=np.float64)
        self._prepattern = np.zeros((height, width), dtype=np.float64)
        self._obstacles.paint(self)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def deposition(self) -> np.ndarray:
        return self._deposition

    @property
    def prepattern(self) -> np.ndarray:
        return self._prepattern

    @property
    def obstacles(self) -> ObstacleMask:
        return self._obstacles

    @property
    def sense_prepattern(self) -> bool:
        return self._sense_prepattern

    def reset(self) -> None:
        self._deposition.fill(0.0)
        self._prepattern.fill(0.0)
        self._obstacles.paint(self)

    def clamp_cell(self, x: float, y: float) -> tuple[int, int]:
        return (_clamp_index(math.floor(x), self._width), _clamp_index(math.floor(y), self._height))

    def deposit(self, x: float, y: float, amount: float) -> bool:
        cx, cy = self.clamp_cell(x, y)
        if self._obstacles.is_masked(cx, cy):
            return False
        self._deposition[cy, cx] += amount
        return True

    def paint_cell(self, x: int, y: int, red: float, green: float) -> None:
        if 0 <= x < self._width and 0 <= y < self._height and not self._obstacles.is_masked(x, y):
            self._deposition[y, x] = red
            self._prepattern[y, x] = green

    def sense(self, x: float, y: float, size: float = 0.0) -> float:
        """Sample the sensed channels at a point, or over a square window when ``size > 0``."""
        if size <= 0.0:
            cx, cy = self.clamp_cell(x, y)
            value = self._deposition[cy, cx]
            if self._sense_prepattern:
                value += self._prepattern[cy, cx]
            return float(value)

        half = size / 2.0
        min_x = max(0, math.floor(x - half))
        max_x = min(self._width - 1, math.ceil(x + half))
        min_y = max(0, math.floor(y - half))
        max_y = min(self._height - 1, math.ceil(y + half))
        if min_x > max_x or min_y > max_y:
            return 0.0
        total = self._deposition[min_y : max_y + 1, min_x : max_x + 1].sum()
        if self._sense_prepattern:
            total += self._prepattern[min_y : max_y + 1, min_x : max_x + 1].sum()
        return float(total)

    def deposition_at(self, x: int, y: int) -> float:
        cx, cy = self.clamp_cell(x, y)
        return float(self._deposition[cy, cx])

    def prepattern_at(self, x: int, y: int) -> float:
        cx, cy = self.clamp_cell(x, y)
        return float(self._prepattern[cy, cx])

    def set_prepattern(self, x: int, y: int, value: float) -> None:
        if self._obstacles.is_masked(x, y):
            return
        self._prepattern[y, x] = value

    def add_prepattern(self, x: int, y: int, amount: float) -> None:
        if self._obstacles.is_masked(x, y):
            return
        self._prepattern[y, x] += amount

    def clear_prepattern(self) -> None:
        self._prepattern.fill(0.0)
        self._obstacles.paint(self)

    def tick(self, decay_factor: float) -> None:
        """Decay every free cell, diffuse it over its 3x3 neighborhood and swap buffers.

        Obstacle cells neither send nor receive mass; shares aimed at them are
        dropped. They are repainted with their obstacle color afterwards.
        """
        mask = self._obstacles.cells
        next_deposition = self._step_channel(self._deposition, decay_factor, mask)
        next_prepattern = self._step_channel(self._prepattern, decay_factor, mask)
        self._deposition = next_deposition
        self._prepattern = next_prepattern
        self._obstacles.paint(self)

    @staticmethod
    def _step_channel(values: np.ndarray, decay_factor: float, mask: np.ndarray) -> np.ndarray:
        source = values * decay_factor
        source[mask] = 0.0
        result = diffuse_clamped(source)
        result[mask] = 0.0
        return result

    def totals(self) -> tuple[float, float]:
        return float(self._deposition.sum()), float(self._prepattern.sum())

    def to_rgb(self) -> np.ndarray:
        """Pack the field as a (height, width, 3) color array: R deposition, G pre-pattern, B obstacle paint."""
        rgb = np.zeros((self._height, self._width, 3), dtype=np.float32)
        rgb[..., 0] = self._deposition
        rgb[..., 1] = self._prepattern
        mask = self._obstacles.cells
        rgb[mask, 2] = self._obstacles.paint_colors[mask, 2]
        return rgb
