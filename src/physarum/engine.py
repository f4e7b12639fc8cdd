from __future__ import annotations

import dataclasses
import math
from time import perf_counter
from typing import Any, Dict, List, Optional

from pygame.math import Vector2

from .agent import Agent
from .config import (
    CollisionMode,
    ConfigError,
    SimulationConfig,
    StimulusMode,
    validate_steering,
    validate_trail,
)
from .logging_utils import get_logger
from .metrics import TickMetrics
from .obstacles import ObstacleMask
from .occupancy import OccupancyIndex
from .rng import DeterministicRng
from .snapshot import Snapshot, SnapshotFields, SnapshotMetadata
from .spawning import SpawnReport, SpawnScheduler, scale_quotas
from .steering import AgentStepper, StepOutcome
from .stimuli import StimulusOverlay
from .trail_field import TrailField

_LOGGER = get_logger("engine")


class SimulationEngine:
    """Owns the field, the agents and every index over them.

    One ``tick`` steps all agents in spawn order, then runs the field's decay
    and diffusion pass, then re-asserts the stimuli. Agents stepped later in a
    tick sense deposits written earlier in the same tick.
    """

    def __init__(self, config: SimulationConfig, rng: Optional[DeterministicRng] = None):
        config.validate()
        self._config = config
        self._steering = dataclasses.replace(config.steering)
        self._trail = dataclasses.replace(config.trail)
        self._rng = rng if rng is not None else DeterministicRng(config.seed)
        self._obstacles = ObstacleMask.from_configs(config.width, config.height, config.obstacles)
        self._field = TrailField(
            config.width,
            config.height,
            self._obstacles,
            sense_prepattern=config.stimulus_mode is StimulusMode.PRE_PATTERN,
        )
        self._occupancy = OccupancyIndex() if config.collision is CollisionMode.ONE_PER_CELL else None
        self._stimuli = StimulusOverlay(
            config.stimulus_mode,
            config.stimuli,
            self._trail.pre_pattern_weight,
            self._trail.stimulus_neighbor_factor,
        )
        self._spawner = SpawnScheduler(
            config.width,
            config.height,
            config.spawn_points,
            self._rng,
            boundary=config.boundary,
            obstacles=self._obstacles,
            occupancy=self._occupancy,
            max_attempts=config.spawn_max_attempts,
        )
        self._stepper = AgentStepper(
            self._field,
            self._steering,
            self._trail.deposition_amount,
            config.boundary,
            self._rng,
            obstacles=self._obstacles,
            occupancy=self._occupancy,
        )
        self._agents: List[Agent] = []
        self._next_id = 0
        self._tick = 0
        self._metrics: TickMetrics | None = None
        self._target_population = config.target_population
        self._quotas = [point.num_agents for point in config.spawn_points]
        self._saturated = False

        _LOGGER.info(
            "Engine created: %dx%d grid, target %d agents, boundary=%s collision=%s stimuli=%s obstacles=%d",
            config.width,
            config.height,
            self._target_population,
            config.boundary.value,
            config.collision.value,
            config.stimulus_mode.value,
            len(self._obstacles.obstacles),
        )
        self._stimuli.sync(self._field)
        self._bootstrap_population()

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    @property
    def field(self) -> TrailField:
        return self._field

    @property
    def obstacles(self) -> ObstacleMask:
        return self._obstacles

    @property
    def occupancy(self) -> Optional[OccupancyIndex]:
        return self._occupancy

    @property
    def stimuli(self) -> StimulusOverlay:
        return self._stimuli

    @property
    def spawner(self) -> SpawnScheduler:
        return self._spawner

    @property
    def stepper(self) -> AgentStepper:
        return self._stepper

    @property
    def tick_count(self) -> int:
        return self._tick

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def target_population(self) -> int:
        return self._target_population

    @property
    def spawn_saturated(self) -> bool:
        return self._saturated

    @property
    def population_complete(self) -> bool:
        if self._config.spawn_points:
            return self._spawner.remaining_total <= 0
        return len(self._agents) >= self._target_population

    def reset(self) -> None:
        self._agents.clear()
        if self._occupancy is not None:
            self._occupancy.clear()
        self._field.reset()
        self._rng.reset()
        self._spawner.reset(self._quotas)
        self._stimuli.rebuild(self._field)
        self._next_id = 0
        self._tick = 0
        self._metrics = None
        self._saturated = False
        _LOGGER.info("Engine reset, target %d agents", self._target_population)
        self._bootstrap_population()

    def tick(self) -> TickMetrics:
        start = perf_counter()
        field = self._field
        step = self._stepper.step
        moves = 0
        boundary = 0
        obstacle = 0
        occupied = 0

        for agent in self._agents:
            outcome = step(agent)
            if outcome is StepOutcome.MOVED:
                moves += 1
            elif outcome is StepOutcome.BOUNDARY:
                boundary += 1
            elif outcome is StepOutcome.OBSTACLE:
                obstacle += 1
            else:
                occupied += 1

        if self._config.mark_spawn_points:
            self._spawner.paint_markers(field)
        self._stimuli.sync(field)
        self._stimuli.inject(field)
        field.tick(self._trail.decay_factor)
        self._stimuli.reapply(field)

        self._tick += 1
        deposition_total, prepattern_total = field.totals()
        self._metrics = TickMetrics(
            tick=self._tick,
            population=len(self._agents),
            moves=moves,
            boundary_rejections=boundary,
            obstacle_rejections=obstacle,
            occupancy_rejections=occupied,
            deposition_total=deposition_total,
            prepattern_total=prepattern_total,
            tick_duration_ms=(perf_counter() - start) * 1000.0,
        )
        _LOGGER.debug(
            "Tick %d: %d agents, %d moved, %.3f ms",
            self._tick,
            len(self._agents),
            moves,
            self._metrics.tick_duration_ms,
        )
        return self._metrics

    def run(self, ticks: int) -> List[TickMetrics]:
        return [self.tick() for _ in range(ticks)]

    def spawn_batch(self, count: int) -> SpawnReport:
        """Add up to ``count`` agents toward the target population."""
        report = SpawnReport(requested=count)
        if self._saturated and not self._config.spawn_points:
            # the number of free cells never changes once scattered agents fill them
            report.saturated = True
            return report
        for _ in range(count):
            if self.population_complete:
                break
            proposal = self._spawner.propose()
            if proposal is None:
                report.saturated = True
                if not self._saturated:
                    _LOGGER.warning(
                        "No free cell found for a new agent after %d attempts; population stuck at %d of %d",
                        self._config.spawn_max_attempts,
                        len(self._agents),
                        self._target_population,
                    )
                self._saturated = True
                break
            agent = Agent(
                id=self._next_id,
                position=proposal.position,
                heading=proposal.heading,
                spawn_point=proposal.spawn_point,
            )
            if self._occupancy is not None:
                self._occupancy.try_occupy(agent.cell(), agent)
            self._next_id += 1
            self._agents.append(agent)
            self._spawner.commit(proposal)
            self._saturated = False
            report.spawned += 1
        return report

    def set_target_population(self, count: int) -> SpawnReport:
        if count < 0:
            raise ConfigError(f"target population must be non-negative, got {count}")
        if self._occupancy is not None and count > self._config.width * self._config.height:
            raise ConfigError(f"{count} agents cannot fit one per cell on this grid")

        self._agents.clear()
        if self._occupancy is not None:
            self._occupancy.clear()
        self._next_id = 0
        self._target_population = count
        self._saturated = False
        _LOGGER.info("Population reset to target %d", count)
        if self._config.spawn_points:
            self._quotas = scale_quotas([point.num_agents for point in self._config.spawn_points], count)
            self._spawner.reset(self._quotas)
            return SpawnReport(requested=0)
        return self.spawn_batch(count)

    def set_stimulus_intensity(self, index: int, intensity: float) -> bool:
        if intensity < 0:
            raise ConfigError(f"stimulus intensity must be non-negative, got {intensity}")
        if not self._stimuli.set_intensity(index, intensity):
            return False
        self._stimuli.rebuild(self._field)
        return True

    def add_stimulus(self, position: tuple[int, int], intensity: float) -> int:
        x, y = position
        if int(x) != x or int(y) != y:
            raise ConfigError(f"stimulus must sit on an integer cell, got {position}")
        if intensity < 0:
            raise ConfigError(f"stimulus intensity must be non-negative, got {intensity}")
        return self._stimuli.add(position, intensity)

    def remove_stimulus(self, index: int) -> bool:
        return self._stimuli.remove(index)

    def update_parameters(self, **values: Any) -> None:
        """Change steering or trail parameters between ticks."""
        steering_names = {f.name for f in dataclasses.fields(self._steering)}
        trail_names = {f.name for f in dataclasses.fields(self._trail)}
        unknown = set(values) - steering_names - trail_names
        if unknown:
            raise ConfigError(f"unknown parameters: {', '.join(sorted(unknown))}")
        try:
            values = {name: float(value) for name, value in values.items()}
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"parameters must be numbers: {exc}") from exc
        if not all(math.isfinite(value) for value in values.values()):
            raise ConfigError(f"parameters must be finite numbers, got {values}")

        steering = dataclasses.replace(self._steering, **{k: v for k, v in values.items() if k in steering_names})
        trail = dataclasses.replace(self._trail, **{k: v for k, v in values.items() if k in trail_names})
        validate_steering(steering)
        validate_trail(trail)

        # the stepper holds a reference to the live steering config
        for name in steering_names:
            setattr(self._steering, name, getattr(steering, name))
        self._trail = trail
        self._stepper.deposition_amount = trail.deposition_amount
        self._stimuli.pre_pattern_weight = trail.pre_pattern_weight
        self._stimuli.neighbor_factor = trail.stimulus_neighbor_factor
        _LOGGER.info("Parameters updated: %s", ", ".join(f"{k}={v}" for k, v in sorted(values.items())))

    def snapshot(self) -> Snapshot:
        config = self._config
        metadata = SnapshotMetadata(
            width=config.width,
            height=config.height,
            seed=self._rng.seed,
            target_population=self._target_population,
            boundary=config.boundary.value,
            collision=config.collision.value,
            stimulus_mode=config.stimulus_mode.value,
        )
        fields = SnapshotFields(
            deposition=self._field.deposition.copy(),
            prepattern=self._field.prepattern.copy(),
            rgb=self._field.to_rgb(),
        )
        return Snapshot(
            tick=self._tick,
            metrics=self._metrics,
            agents=[self._agent_snapshot(agent) for agent in self._agents],
            fields=fields,
            metadata=metadata,
        )

    def _agent_snapshot(self, agent: Agent) -> Dict[str, Any]:
        return {
            "id": agent.id,
            "x": agent.position.x,
            "y": agent.position.y,
            "heading": agent.heading,
            "spawn_point": agent.spawn_point,
        }

    def _bootstrap_population(self) -> None:
        if self._config.spawn_points:
            # spawn-point runs grow through spawn_batch calls from the host
            return
        report = self.spawn_batch(self._target_population)
        _LOGGER.info("Scattered %d of %d agents", report.spawned, self._target_population)

    def place_agent(self, position: Vector2, heading: float) -> Optional[Agent]:
        """Insert an agent at an explicit position, returning None if its cell is taken."""
        agent = Agent(id=self._next_id, position=Vector2(position), heading=heading)
        if self._occupancy is not None and not self._occupancy.try_occupy(agent.cell(), agent):
            return None
        self._next_id += 1
        self._agents.append(agent)
        return agent
