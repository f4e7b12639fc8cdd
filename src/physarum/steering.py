"""Per-agent sense, steer, move and deposit step."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pygame.math import Vector2

from .agent import Agent, cell_of
from .config import BoundaryMode, SteeringConfig
from .math2d import _heading_towards, _heading_vector, _inside, _wrap_xy
from .obstacles import ObstacleMask
from .occupancy import OccupancyIndex
from .rng import DeterministicRng
from .trail_field import TrailField


class StepOutcome(str, Enum):
    MOVED = "moved"
    BOUNDARY = "boundary"
    OBSTACLE = "obstacle"
    OCCUPIED = "occupied"


def steering_delta(front: float, left: float, right: float, rotation_angle: float, rng: DeterministicRng) -> float:
    """Return the heading change for one set of sensor readings.

    Ties favor going straight. A front reading below both sides turns a random
    way; otherwise the agent turns away from the weaker side.
    """
    if front >= left and front >= right:
        return 0.0
    if front < left and front < right:
        return rotation_angle * rng.next_sign()
    if left < right:
        return -rotation_angle
    if right < left:
        return rotation_angle
    return 0.0


class AgentStepper:
    def __init__(
        self,
        field: TrailField,
        steering: SteeringConfig,
        deposition_amount: float,
        boundary: BoundaryMode,
        rng: DeterministicRng,
        obstacles: Optional[ObstacleMask] = None,
        occupancy: Optional[OccupancyIndex] = None,
    ):
        self._field = field
        self._steering = steering
        self._deposition_amount = deposition_amount
        self._boundary = boundary
        self._rng = rng
        self._obstacles = obstacles if obstacles else None
        self._occupancy = occupancy
        self._center = Vector2(field.width / 2.0, field.height / 2.0)

    @property
    def steering(self) -> SteeringConfig:
        return self._steering

    @property
    def deposition_amount(self) -> float:
        return self._deposition_amount

    @deposition_amount.setter
    def deposition_amount(self, value: float) -> None:
        self._deposition_amount = value

    def sense(self, agent: Agent, angle_offset: float) -> float:
        steering = self._steering
        probe = agent.position + _heading_vector(agent.heading + angle_offset, steering.sensor_distance)
        return self._field.sense(probe.x, probe.y, steering.sensor_size)

    def steer(self, agent: Agent) -> None:
        steering = self._steering
        front = self.sense(agent, 0.0)
        left = self.sense(agent, steering.sensor_angle)
        right = self.sense(agent, -steering.sensor_angle)
        agent.heading += steering_delta(front, left, right, steering.rotation_angle, self._rng)

    def step(self, agent: Agent) -> StepOutcome:
        self.steer(agent)

        field = self._field
        candidate = agent.position + _heading_vector(agent.heading, self._steering.step_size)
        if self._boundary is BoundaryMode.PERIODIC:
            candidate = _wrap_xy(candidate, field.width, field.height)
        elif not _inside(candidate, field.width, field.height):
            agent.heading = _heading_towards(agent.position, self._center)
            return StepOutcome.BOUNDARY

        if self._obstacles is not None and self._obstacles.contains(candidate):
            agent.heading = self._rng.next_angle()
            return StepOutcome.OBSTACLE

        if self._occupancy is not None:
            if not self._occupancy.move(agent, cell_of(candidate)):
                agent.heading = self._rng.next_angle()
                return StepOutcome.OCCUPIED

        agent.position = candidate
        field.deposit(candidate.x, candidate.y, self._deposition_amount)
        return StepOutcome.MOVED
