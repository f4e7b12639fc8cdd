from __future__ import annotations

from dataclasses import dataclass, field

from pygame.math import Vector2


@dataclass(slots=True)
class Agent:
    id: int
    position: Vector2 = field(default_factory=Vector2)
    # radians, never canonicalised
    heading: float = 0.0
    spawn_point: int = -1

    def cell(self) -> tuple[int, int]:
        return cell_of(self.position)


def cell_of(position: Vector2) -> tuple[int, int]:
    return (int(position.x // 1), int(position.y // 1))
