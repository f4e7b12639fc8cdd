from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from pygame.math import Vector2

from .agent import cell_of
from .config import BoundaryMode, SpawnPointConfig
from .logging_utils import get_logger
from .math2d import _clamp_into, _wrap_xy
from .obstacles import ObstacleMask
from .occupancy import OccupancyIndex
from .rng import DeterministicRng
from .trail_field import TrailField

_LOGGER = get_logger("spawning")


@dataclass(slots=True)
class SpawnProposal:
    position: Vector2
    heading: float
    spawn_point: int = -1


@dataclass(slots=True)
class SpawnReport:
    requested: int
    spawned: int = 0
    saturated: bool = False


def scale_quotas(quotas: Sequence[int], total: int) -> List[int]:
    """Rescale quotas to sum to ``total`` keeping their proportions (largest remainder)."""
    base = sum(quotas)
    if base <= 0 or total <= 0:
        return [0 for _ in quotas]
    exact = [q * total / base for q in quotas]
    scaled = [int(math.floor(value)) for value in exact]
    shortfall = total - sum(scaled)
    order = sorted(range(len(quotas)), key=lambda i: (-(exact[i] - scaled[i]), i))
    for index in order[:shortfall]:
        scaled[index] += 1
    return scaled


class SpawnScheduler:
    """Proposes initial agent placements.

    With spawn points, a point is picked with probability proportional to its
    remaining quota and a position is drawn uniformly from its disk. Without
    spawn points positions are scattered over the whole field. Sampling is
    bounded by ``max_attempts`` and then falls back to a deterministic scan for
    a free cell; when even that finds nothing the proposal is ``None``.
    """

    def __init__(
        self,
        width: int,
        height: int,
        spawn_points: Iterable[SpawnPointConfig],
        rng: DeterministicRng,
        boundary: BoundaryMode = BoundaryMode.PERIODIC,
        obstacles: Optional[ObstacleMask] = None,
        occupancy: Optional[OccupancyIndex] = None,
        max_attempts: int = 64,
    ):
        self._width = width
        self._height = height
        self._points: List[SpawnPointConfig] = list(spawn_points)
        self._rng = rng
        self._boundary = boundary
        self._obstacles = obstacles if obstacles else None
        self._occupancy = occupancy
        self._max_attempts = max(1, max_attempts)
        self._remaining: List[int] = [point.num_agents for point in self._points]

    @property
    def spawn_points(self) -> List[SpawnPointConfig]:
        return self._points

    @property
    def remaining(self) -> List[int]:
        return list(self._remaining)

    @property
    def remaining_total(self) -> int:
        return sum(self._remaining)

    def reset(self, quotas: Optional[Sequence[int]] = None) -> None:
        if quotas is None:
            quotas = [point.num_agents for point in self._points]
        self._remaining = [max(0, int(q)) for q in quotas]

    def commit(self, proposal: SpawnProposal) -> None:
        if 0 <= proposal.spawn_point < len(self._remaining):
            self._remaining[proposal.spawn_point] -= 1

    def propose(self) -> Optional[SpawnProposal]:
        if not self._points:
            return self._propose_scatter()

        weights = [float(q) for q in self._remaining]
        while True:
            index = self._rng.weighted_index(weights)
            if index is None:
                return None
            proposal = self._propose_at(index)
            if proposal is not None:
                return proposal
            _LOGGER.debug("Spawn point %d has no free cell left", index)
            weights[index] = 0.0

    def paint_markers(self, field: TrailField) -> None:
        for point in self._points:
            x = math.floor(point.position[0])
            y = math.floor(point.position[1])
            field.paint_cell(x, y, point.color[0], point.color[1])

    def _propose_at(self, index: int) -> Optional[SpawnProposal]:
        point = self._points[index]
        center = Vector2(point.position[0], point.position[1])
        for _ in range(self._max_attempts):
            position = self._place(center + self._rng.next_in_unit_circle() * point.radius)
            if self._is_free(position):
                return SpawnProposal(position, self._rng.next_angle(), index)

        position = self._search_disk(center, point.radius)
        if position is None:
            return None
        return SpawnProposal(position, self._rng.next_angle(), index)

    def _propose_scatter(self) -> Optional[SpawnProposal]:
        for _ in range(self._max_attempts):
            position = Vector2(
                self._rng.next_range(0.0, self._width),
                self._rng.next_range(0.0, self._height),
            )
            position = self._place(position)
            if self._is_free(position):
                return SpawnProposal(position, self._rng.next_angle())

        free_cells = [
            (x, y)
            for y in range(self._height)
            for x in range(self._width)
            if self._is_free(Vector2(x + 0.5, y + 0.5))
        ]
        cell = self._rng.sample_choice(free_cells)
        if cell is None:
            return None
        return SpawnProposal(Vector2(cell[0] + 0.5, cell[1] + 0.5), self._rng.next_angle())

    def _search_disk(self, center: Vector2, radius: float) -> Optional[Vector2]:
        """Nearest free cell center within the disk, scanning in a fixed order."""
        reach = int(math.ceil(radius)) + 1
        base_x = math.floor(center.x)
        base_y = math.floor(center.y)
        radius_sq = max(radius, 0.5) ** 2
        candidates = []
        for dy in range(-reach, reach + 1):
            for dx in range(-reach, reach + 1):
                cx = base_x + dx
                cy = base_y + dy
                offset_x = cx + 0.5 - center.x
                offset_y = cy + 0.5 - center.y
                dist_sq = offset_x * offset_x + offset_y * offset_y
                if dist_sq <= radius_sq or (dx == 0 and dy == 0):
                    candidates.append((dist_sq, cy, cx))
        candidates.sort()
        for _, cy, cx in candidates:
            position = self._place(Vector2(cx + 0.5, cy + 0.5))
            if self._is_free(position):
                return position
        return None

    def _place(self, position: Vector2) -> Vector2:
        if self._boundary is BoundaryMode.PERIODIC:
            return _wrap_xy(position, self._width, self._height)
        return _clamp_into(position, self._width, self._height)

    def _is_free(self, position: Vector2) -> bool:
        if self._obstacles is not None and self._obstacles.contains(position):
            return False
        if self._occupancy is not None and self._occupancy.is_occupied(cell_of(position)):
            return False
        return True
