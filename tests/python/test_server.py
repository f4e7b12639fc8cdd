import asyncio
import base64
import json

import numpy as np
import pytest

from physarum.config import ConfigError, SimulationConfig, StimulusConfig, StimulusMode
from physarum.server import SimulationController, encode_field


def _controller() -> SimulationController:
    config = SimulationConfig(
        width=16,
        height=12,
        num_agents=20,
        stimulus_mode=StimulusMode.PRE_PATTERN,
        stimuli=[StimulusConfig(position=(4, 4), intensity=1.0)],
    )
    return SimulationController(config)


def test_encode_field_clips_into_bytes():
    rgb = np.array([[[2.0, -1.0, 0.5]]], dtype=np.float32)

    raw = base64.b64decode(encode_field(rgb))

    assert list(raw) == [255, 0, 127]


def test_controller_advances_and_reports_status() -> None:
    controller = _controller()

    async def exercise() -> None:
        controller.steps_per_frame = 3
        await controller.advance()
        status = controller.status()
        assert status["tick"] == 3
        assert status["population"] == 20
        assert status["metrics"]["tick"] == 3
        assert status["running"] is False

    asyncio.run(exercise())


def test_controller_management_calls() -> None:
    controller = _controller()

    async def exercise() -> None:
        assert await controller.set_stimulus_intensity(0, 2.0)
        assert not await controller.set_stimulus_intensity(5, 2.0)
        report = await controller.set_target_population(8)
        assert report == {"requested": 8, "spawned": 8, "saturated": False}
        await controller.update_parameters({"step_size": 0.5})
        assert controller.engine.stepper.steering.step_size == 0.5
        await controller.reset()
        assert controller.engine.tick_count == 0

    asyncio.run(exercise())


def test_snapshot_payload_carries_packed_field() -> None:
    controller = _controller()
    asyncio.run(controller.advance())

    payload = json.loads(controller.snapshot_payload())

    assert payload["tick"] == 1
    assert (payload["width"], payload["height"]) == (16, 12)
    assert len(base64.b64decode(payload["field"])) == 16 * 12 * 3


def test_controller_rejects_non_numeric_parameters() -> None:
    controller = _controller()

    async def exercise() -> None:
        with pytest.raises(ConfigError):
            await controller.update_parameters({"step_size": "fast"})

    asyncio.run(exercise())
    assert controller.engine.stepper.steering.step_size == 1.0
