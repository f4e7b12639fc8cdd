from __future__ import annotations

import math

import numpy as np
import pytest
from pygame.math import Vector2
from pytest import approx

from physarum.config import (
    BoundaryMode,
    CollisionMode,
    ConfigError,
    ObstacleConfig,
    SimulationConfig,
    SpawnPointConfig,
    SteeringConfig,
    StimulusConfig,
    StimulusMode,
    TrailConfig,
)
from physarum.engine import SimulationEngine


def _empty_config(**overrides) -> SimulationConfig:
    values = dict(
        width=10,
        height=10,
        num_agents=0,
        steering=SteeringConfig(step_size=1.0),
        trail=TrailConfig(decay_factor=0.5, deposition_amount=5.0),
    )
    values.update(overrides)
    return SimulationConfig(**values)


def _positions(engine: SimulationEngine) -> list[tuple[float, float, float]]:
    return [(agent.position.x, agent.position.y, agent.heading) for agent in engine.agents]


def test_single_agent_deposit_then_field_pass():
    engine = SimulationEngine(_empty_config())
    agent = engine.place_agent(Vector2(5.0, 5.0), 0.0)

    engine.stepper.step(agent)
    assert agent.position == Vector2(6.0, 5.0)
    assert engine.field.deposition_at(6, 5) == approx(5.0)
    assert engine.field.deposition.sum() == approx(5.0)

    engine.field.tick(0.5)
    share = 2.5 / 9.0
    for x in (5, 6, 7):
        for y in (4, 5, 6):
            assert engine.field.deposition_at(x, y) == approx(share)
    assert engine.field.deposition.sum() == approx(2.5)


def test_first_tick_moves_agent_and_diffuses_its_deposit():
    engine = SimulationEngine(_empty_config())
    agent = engine.place_agent(Vector2(5.0, 5.0), 0.0)

    metrics = engine.tick()

    assert metrics.tick == 1
    assert metrics.moves == 1
    assert agent.position == Vector2(6.0, 5.0)
    assert engine.field.deposition_at(6, 5) == approx(2.5 / 9.0)
    assert engine.field.deposition_at(8, 5) == 0.0
    assert metrics.deposition_total == approx(2.5)


def test_later_agents_sense_deposits_from_the_same_tick():
    steering = SteeringConfig(
        sensor_distance=3.0,
        sensor_angle=0.5 * math.pi,
        rotation_angle=0.25 * math.pi,
        step_size=1.0,
    )
    engine = SimulationEngine(_empty_config(width=30, height=30, steering=steering))
    leader = engine.place_agent(Vector2(10.5, 10.5), 0.0)
    follower = engine.place_agent(Vector2(11.5, 7.5), 0.0)

    engine.tick()

    # the leader deposited at (11, 10) right where the follower's left sensor reads
    assert leader.heading == 0.0
    assert follower.heading == approx(0.25 * math.pi)


def test_same_seed_reproduces_trajectories_and_field():
    config_a = SimulationConfig(width=40, height=40, num_agents=200, seed=1234, collision=CollisionMode.ONE_PER_CELL)
    config_b = SimulationConfig(width=40, height=40, num_agents=200, seed=1234, collision=CollisionMode.ONE_PER_CELL)
    engine_a = SimulationEngine(config_a)
    engine_b = SimulationEngine(config_b)

    engine_a.run(20)
    engine_b.run(20)

    assert _positions(engine_a) == _positions(engine_b)
    assert np.array_equal(engine_a.field.deposition, engine_b.field.deposition)


def test_reset_replays_from_the_start():
    config = SimulationConfig(width=30, height=30, num_agents=80, seed=5)
    engine = SimulationEngine(config)
    initial = _positions(engine)
    engine.run(5)

    engine.reset()

    assert engine.tick_count == 0
    assert _positions(engine) == initial
    assert engine.field.totals() == (0.0, 0.0)


def test_periodic_positions_stay_in_bounds():
    engine = SimulationEngine(SimulationConfig(width=25, height=15, num_agents=300, seed=3))
    for _ in range(40):
        engine.tick()
        for agent in engine.agents:
            assert 0.0 <= agent.position.x < 25.0
            assert 0.0 <= agent.position.y < 15.0


def test_reflective_positions_never_leave_the_grid():
    config = SimulationConfig(
        width=20,
        height=20,
        num_agents=150,
        seed=4,
        boundary=BoundaryMode.REFLECTIVE,
        steering=SteeringConfig(step_size=1.5),
    )
    engine = SimulationEngine(config)
    boundary_hits = 0
    for _ in range(60):
        boundary_hits += engine.tick().boundary_rejections
        for agent in engine.agents:
            assert 0.0 <= agent.position.x < 20.0
            assert 0.0 <= agent.position.y < 20.0
    assert boundary_hits > 0


def test_occupancy_index_tracks_every_agent():
    config = SimulationConfig(width=20, height=20, num_agents=150, seed=9, collision=CollisionMode.ONE_PER_CELL)
    engine = SimulationEngine(config)
    for _ in range(30):
        engine.tick()
        cells = [agent.cell() for agent in engine.agents]
        assert len(set(cells)) == len(cells)
        assert len(engine.occupancy) == len(engine.agents)
        for agent in engine.agents:
            assert engine.occupancy.cell_of(agent) == agent.cell()
            assert engine.occupancy.occupant(agent.cell()) is agent


def test_obstacles_and_stimuli_keep_field_invariants():
    color = (0.5, 0.5, 0.5, 1.0)
    config = SimulationConfig(
        width=30,
        height=30,
        num_agents=120,
        seed=21,
        collision=CollisionMode.ONE_PER_CELL,
        stimulus_mode=StimulusMode.PRE_PATTERN,
        obstacles=[ObstacleConfig(rect=(10, 10, 5, 8), color=color)],
        stimuli=[StimulusConfig(position=(3, 3), intensity=1.0), StimulusConfig(position=(25, 20), intensity=2.0)],
    )
    engine = SimulationEngine(config)
    mask = engine.obstacles.cells
    for _ in range(30):
        metrics = engine.tick()
        assert (engine.field.deposition >= 0).all()
        assert (engine.field.prepattern >= 0).all()
        assert np.allclose(engine.field.deposition[mask], color[0])
        assert np.allclose(engine.field.prepattern[mask], color[1])
        for agent in engine.agents:
            assert not engine.obstacles.contains(agent.position)
    assert metrics.prepattern_total > 0.0


def test_additive_overlay_runs_keep_prepattern_empty():
    config = SimulationConfig(
        width=20,
        height=20,
        num_agents=50,
        stimulus_mode=StimulusMode.ADDITIVE_OVERLAY,
        stimuli=[StimulusConfig(position=(10, 10), intensity=3.0)],
    )
    engine = SimulationEngine(config)

    engine.run(5)

    assert engine.field.prepattern.sum() == 0.0
    assert engine.field.deposition.sum() > 0.0


def test_stimulus_management_rebuilds_prepattern():
    config = _empty_config(
        stimulus_mode=StimulusMode.PRE_PATTERN,
        stimuli=[StimulusConfig(position=(2, 2), intensity=1.0)],
    )
    engine = SimulationEngine(config)
    weight = config.trail.pre_pattern_weight
    assert engine.field.prepattern_at(2, 2) == approx(weight)

    assert engine.set_stimulus_intensity(0, 4.0)
    assert engine.field.prepattern_at(2, 2) == approx(4.0 * weight)
    assert not engine.set_stimulus_intensity(3, 1.0)
    with pytest.raises(ConfigError):
        engine.set_stimulus_intensity(0, -1.0)

    index = engine.add_stimulus((7, 7), 2.0)
    assert index == 1
    engine.tick()
    assert engine.field.prepattern_at(7, 7) == approx(2.0 * weight)

    assert engine.remove_stimulus(1)
    engine.tick()
    assert engine.field.prepattern_at(7, 7) == approx(0.0)


def test_set_target_population_in_scatter_mode():
    engine = SimulationEngine(SimulationConfig(width=30, height=30, num_agents=50, seed=2))
    engine.run(3)

    report = engine.set_target_population(20)

    assert report.spawned == 20
    assert len(engine.agents) == 20
    assert [agent.id for agent in engine.agents] == list(range(20))
    with pytest.raises(ConfigError):
        engine.set_target_population(-1)


def test_set_target_population_rescales_spawn_quotas():
    config = SimulationConfig(
        width=60,
        height=60,
        spawn_points=[
            SpawnPointConfig(position=(15.0, 15.0), radius=4.0, num_agents=300),
            SpawnPointConfig(position=(45.0, 45.0), radius=4.0, num_agents=100),
        ],
    )
    engine = SimulationEngine(config)
    engine.spawn_batch(50)

    engine.set_target_population(40)

    assert engine.agents == []
    assert engine.spawner.remaining == [30, 10]
    engine.spawn_batch(100)
    assert len(engine.agents) == 40
    assert sum(1 for agent in engine.agents if agent.spawn_point == 0) == 30


def test_update_parameters_validates_and_applies():
    engine = SimulationEngine(_empty_config())
    agent = engine.place_agent(Vector2(2.0, 2.0), 0.0)

    engine.update_parameters(step_size=2.0, decay_factor=0.25, deposition_amount=1.0)
    engine.tick()

    assert agent.position.x == approx(4.0)
    assert engine.field.deposition.sum() == approx(0.25)
    with pytest.raises(ConfigError):
        engine.update_parameters(decay_factor=1.0)
    with pytest.raises(ConfigError):
        engine.update_parameters(warp_speed=3)
    assert engine.stepper.steering.step_size == 2.0


def test_config_steering_is_not_mutated_by_updates():
    config = _empty_config()
    engine = SimulationEngine(config)

    engine.update_parameters(sensor_distance=3.0)

    assert config.steering.sensor_distance == 9.0
    assert engine.stepper.steering.sensor_distance == 3.0


def test_spawn_markers_are_painted_each_tick():
    config = SimulationConfig(
        width=20,
        height=20,
        mark_spawn_points=True,
        trail=TrailConfig(decay_factor=0.0),
        spawn_points=[SpawnPointConfig(position=(5.0, 5.0), radius=1.0, num_agents=1, color=(0.9, 0.0, 0.0, 1.0))],
    )
    engine = SimulationEngine(config)

    engine.tick()

    # painted before a pass whose decay factor is zero, so only markers could have put mass here
    assert engine.field.deposition.sum() == 0.0
    engine.update_parameters(decay_factor=0.5)
    engine.tick()
    assert engine.field.deposition.sum() == approx(0.45)


def test_snapshot_exposes_field_and_agents():
    engine = SimulationEngine(SimulationConfig(width=12, height=8, num_agents=5, seed=1))
    engine.tick()

    snapshot = engine.snapshot()

    assert snapshot.tick == 1
    assert snapshot.metrics.population == 5
    assert snapshot.fields.rgb.shape == (8, 12, 3)
    assert snapshot.fields.deposition.shape == (8, 12)
    assert snapshot.metadata.seed == 1
    assert set(snapshot.agents[0]) == {"id", "x", "y", "heading", "spawn_point"}
    snapshot.fields.deposition[:] = -1.0
    assert (engine.field.deposition >= 0).all()


def test_invalid_config_is_rejected_at_construction():
    with pytest.raises(ConfigError):
        SimulationEngine(SimulationConfig(trail=TrailConfig(decay_factor=1.0)))


def test_add_stimulus_rejects_fractional_cells():
    engine = SimulationEngine(_empty_config(stimulus_mode=StimulusMode.PRE_PATTERN))

    with pytest.raises(ConfigError, match="integer cell"):
        engine.add_stimulus((2.5, 3), 1.0)
    assert len(engine.stimuli) == 0
    assert engine.add_stimulus((2.0, 3), 1.0) == 0


def test_update_parameters_rejects_non_numeric_values():
    engine = SimulationEngine(_empty_config())

    with pytest.raises(ConfigError, match="numbers"):
        engine.update_parameters(step_size="fast")
    with pytest.raises(ConfigError):
        engine.update_parameters(sensor_angle=float("nan"))
    engine.update_parameters(step_size="2.5")

    assert engine.stepper.steering.step_size == 2.5


def test_scatter_saturation_is_remembered(caplog, monkeypatch):
    config = SimulationConfig(
        width=3,
        height=3,
        num_agents=9,
        collision=CollisionMode.ONE_PER_CELL,
        obstacles=[ObstacleConfig(rect=(0, 0, 3, 1))],
    )
    with caplog.at_level("WARNING", logger="physarum"):
        engine = SimulationEngine(config)
        assert engine.spawn_saturated
        assert len(engine.agents) == 6

        calls = []
        monkeypatch.setattr(engine.spawner, "propose", lambda: calls.append(1))
        for _ in range(5):
            assert engine.spawn_batch(10).saturated

    assert calls == []
    assert sum("No free cell" in record.getMessage() for record in caplog.records) == 1

    monkeypatch.undo()
    engine.set_target_population(4)
    assert not engine.spawn_saturated
    assert len(engine.agents) == 4
