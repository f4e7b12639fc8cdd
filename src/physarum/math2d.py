from __future__ import annotations

import math

from pygame.math import Vector2


def _wrap(value: float, size: float) -> float:
    wrapped = value % size
    # float modulo of a tiny negative number rounds up to size itself
    if wrapped >= size:
        return 0.0
    return wrapped


def _wrap_xy(position: Vector2, width: float, height: float) -> Vector2:
    return Vector2(_wrap(position.x, width), _wrap(position.y, height))


def _inside(position: Vector2, width: float, height: float) -> bool:
    return 0.0 <= position.x < width and 0.0 <= position.y < height


def _clamp_into(position: Vector2, width: float, height: float) -> Vector2:
    # largest float strictly below the upper bound keeps floor() inside the grid
    return Vector2(
        min(max(position.x, 0.0), math.nextafter(width, 0.0)),
        min(max(position.y, 0.0), math.nextafter(height, 0.0)),
    )


def _clamp_index(value: int, size: int) -> int:
    return max(0, min(size - 1, value))


def _heading_vector(heading: float, length: float) -> Vector2:
    return Vector2(math.cos(heading) * length, math.sin(heading) * length)


def _heading_towards(origin: Vector2, target: Vector2) -> float:
    return math.atan2(target.y - origin.y, target.x - origin.x)
