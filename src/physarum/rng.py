from __future__ import annotations

import math
import random
from typing import Optional, Sequence

from pygame.math import Vector2

TAU = 2.0 * math.pi


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def reset(self) -> None:
        self._random.seed(self._seed)

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_angle(self) -> float:
        return self._random.uniform(0.0, TAU)

    def next_sign(self) -> float:
        return 1.0 if self._random.random() < 0.5 else -1.0

    def next_in_unit_circle(self) -> Vector2:
        # sqrt keeps the density uniform over the disk area
        radius = math.sqrt(self._random.random())
        angle = self.next_angle()
        return Vector2(radius * math.cos(angle), radius * math.sin(angle))

    def weighted_index(self, weights: Sequence[float]) -> Optional[int]:
        total = sum(weights)
        if total <= 0:
            return None
        pick = self._random.random() * total
        cumulative = 0.0
        last_positive = None
        for index, weight in enumerate(weights):
            if weight <= 0:
                continue
            last_positive = index
            cumulative += weight
            if pick < cumulative:
                return index
        return last_positive

    def sample_choice(self, items: Sequence[tuple[int, int]]) -> Optional[tuple[int, int]]:
        if not items:
            return None
        return self._random.choice(items)
