from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

import yaml


class ConfigError(ValueError):
    """Raised when a simulation configuration cannot be run."""


class BoundaryMode(str, Enum):
    PERIODIC = "periodic"
    REFLECTIVE = "reflective"


class CollisionMode(str, Enum):
    NONE = "none"
    ONE_PER_CELL = "one_per_cell"


class StimulusMode(str, Enum):
    NONE = "none"
    ADDITIVE_OVERLAY = "additive_overlay"
    PRE_PATTERN = "pre_pattern"


Color = tuple[float, float, float, float]

GRAY: Color = (0.5, 0.5, 0.5, 1.0)
RED: Color = (1.0, 0.0, 0.0, 1.0)


@dataclass
class SteeringConfig:
    sensor_distance: float = 9.0
    sensor_angle: float = 0.125 * math.pi
    # 0 samples a single cell; larger values sum a square window around the sensor
    sensor_size: float = 0.0
    step_size: float = 1.0
    rotation_angle: float = 0.25 * math.pi


@dataclass
class TrailConfig:
    deposition_amount: float = 5.0
    decay_factor: float = 0.1
    pre_pattern_weight: float = 0.05
    stimulus_neighbor_factor: float = 0.5


@dataclass
class ObstacleConfig:
    # x, y, width, height
    rect: tuple[float, float, float, float] = (0.0, 0.0, 1.0, 1.0)
    color: Color = GRAY


@dataclass
class SpawnPointConfig:
    position: tuple[float, float] = (0.0, 0.0)
    radius: float = 5.0
    num_agents: int = 1000
    color: Color = RED


@dataclass
class StimulusConfig:
    position: tuple[int, int] = (0, 0)
    intensity: float = 1.0


@dataclass
class SimulationConfig:
    width: int = 200
    height: int = 200
    num_agents: int = 6000
    seed: int = 42
    boundary: BoundaryMode = BoundaryMode.PERIODIC
    collision: CollisionMode = CollisionMode.NONE
    stimulus_mode: StimulusMode = StimulusMode.NONE
    spawn_batch_size: int = 10
    spawn_max_attempts: int = 64
    mark_spawn_points: bool = False
    steering: SteeringConfig = field(default_factory=SteeringConfig)
    trail: TrailConfig = field(default_factory=TrailConfig)
    obstacles: List[ObstacleConfig] = field(default_factory=list)
    spawn_points: List[SpawnPointConfig] = field(default_factory=list)
    stimuli: List[StimulusConfig] = field(default_factory=list)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)

    @property
    def target_population(self) -> int:
        if self.spawn_points:
            return sum(point.num_agents for point in self.spawn_points)
        return self.num_agents

    def validate(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"grid dimensions must be positive, got {self.width}x{self.height}")
        if self.num_agents < 0:
            raise ConfigError(f"num_agents must be non-negative, got {self.num_agents}")
        if self.spawn_batch_size < 0:
            raise ConfigError(f"spawn_batch_size must be non-negative, got {self.spawn_batch_size}")
        if self.spawn_max_attempts < 1:
            raise ConfigError(f"spawn_max_attempts must be at least 1, got {self.spawn_max_attempts}")
        validate_steering(self.steering)
        validate_trail(self.trail)

        for index, obstacle in enumerate(self.obstacles):
            if len(obstacle.rect) != 4 or obstacle.rect[2] < 0 or obstacle.rect[3] < 0:
                raise ConfigError(f"obstacle {index} needs a rect (x, y, width, height) with non-negative size")
            if any(channel < 0 for channel in obstacle.color):
                raise ConfigError(f"obstacle {index} color channels must be non-negative, got {obstacle.color}")

        for index, point in enumerate(self.spawn_points):
            if point.radius < 0:
                raise ConfigError(f"spawn point {index} has negative radius {point.radius}")
            if point.num_agents < 0:
                raise ConfigError(f"spawn point {index} has negative quota {point.num_agents}")
            if any(channel < 0 for channel in point.color):
                raise ConfigError(f"spawn point {index} color channels must be non-negative, got {point.color}")
        if self.spawn_points and self.target_population == 0:
            raise ConfigError("spawn points are configured but their total agent quota is zero")

        for index, stimulus in enumerate(self.stimuli):
            x, y = stimulus.position
            if int(x) != x or int(y) != y:
                raise ConfigError(f"stimulus {index} must sit on an integer cell, got {stimulus.position}")
            if stimulus.intensity < 0:
                raise ConfigError(f"stimulus {index} has negative intensity {stimulus.intensity}")

        if self.collision is CollisionMode.ONE_PER_CELL and self.target_population > self.width * self.height:
            raise ConfigError(
                f"{self.target_population} agents cannot fit one per cell on a {self.width}x{self.height} grid"
            )


def validate_steering(steering: SteeringConfig) -> None:
    if steering.step_size < 0:
        raise ConfigError(f"step_size must be non-negative, got {steering.step_size}")
    if steering.sensor_distance < 0:
        raise ConfigError(f"sensor_distance must be non-negative, got {steering.sensor_distance}")
    if steering.sensor_size < 0:
        raise ConfigError(f"sensor_size must be non-negative, got {steering.sensor_size}")


def validate_trail(trail: TrailConfig) -> None:
    if not 0.0 <= trail.decay_factor < 1.0:
        raise ConfigError(f"decay_factor must lie in [0, 1), got {trail.decay_factor}")
    if trail.deposition_amount < 0:
        raise ConfigError(f"deposition_amount must be non-negative, got {trail.deposition_amount}")
    if trail.pre_pattern_weight < 0:
        raise ConfigError(f"pre_pattern_weight must be non-negative, got {trail.pre_pattern_weight}")
    if trail.stimulus_neighbor_factor < 0:
        raise ConfigError(f"stimulus_neighbor_factor must be non-negative, got {trail.stimulus_neighbor_factor}")


def load_config(raw: dict) -> SimulationConfig:
    def _tuple(value: object, length: int, name: str) -> tuple:
        if not isinstance(value, (tuple, list)) or len(value) != length:
            raise ConfigError(f"{name} must be a sequence of {length} numbers, got {value!r}")
        return tuple(float(v) for v in value)

    def _color(value: object) -> Color:
        if isinstance(value, (tuple, list)) and len(value) == 3:
            value = [*value, 1.0]
        return _tuple(value, 4, "color")  # type: ignore[return-value]

    def _enum(enum_type: type[Enum], value: object, name: str) -> Enum:
        try:
            return enum_type(value)
        except ValueError:
            choices = ", ".join(member.value for member in enum_type)
            raise ConfigError(f"{name} must be one of {choices}, got {value!r}") from None

    steering = SteeringConfig(**raw.get("steering", {}))
    trail = TrailConfig(**raw.get("trail", {}))
    obstacles = [
        ObstacleConfig(
            rect=_tuple(item.get("rect"), 4, "obstacle rect"),
            color=_color(item.get("color", GRAY)),
        )
        for item in raw.get("obstacles", [])
    ]
    spawn_points = [
        SpawnPointConfig(
            position=_tuple(item.get("position"), 2, "spawn point position"),
            radius=float(item.get("radius", SpawnPointConfig.radius)),
            num_agents=int(item.get("num_agents", SpawnPointConfig.num_agents)),
            color=_color(item.get("color", RED)),
        )
        for item in raw.get("spawn_points", [])
    ]
    stimuli = []
    for item in raw.get("stimuli", []):
        x, y = _tuple(item.get("position"), 2, "stimulus position")
        intensity = item.get("intensity", item.get("weight", StimulusConfig.intensity))
        # non-integral cells are left as floats so validate() can reject them
        position = tuple(int(v) if v.is_integer() else v for v in (x, y))
        stimuli.append(StimulusConfig(position=position, intensity=float(intensity)))  # type: ignore[arg-type]

    nested = {"steering", "trail", "obstacles", "spawn_points", "stimuli", "boundary", "collision", "stimulus_mode"}
    sim_values = {k: v for k, v in raw.items() if k not in nested}
    return SimulationConfig(
        boundary=_enum(BoundaryMode, raw.get("boundary", BoundaryMode.PERIODIC.value), "boundary"),  # type: ignore[arg-type]
        collision=_enum(CollisionMode, raw.get("collision", CollisionMode.NONE.value), "collision"),  # type: ignore[arg-type]
        stimulus_mode=_enum(StimulusMode, raw.get("stimulus_mode", StimulusMode.NONE.value), "stimulus_mode"),  # type: ignore[arg-type]
        steering=steering,
        trail=trail,
        obstacles=obstacles,
        spawn_points=spawn_points,
        stimuli=stimuli,
        **sim_values,
    )
