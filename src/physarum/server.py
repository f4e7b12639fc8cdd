from __future__ import annotations

import asyncio
import base64
import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Set

import numpy as np
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from .config import ConfigError, SimulationConfig
from .engine import SimulationEngine
from .logging_utils import get_logger

_LOGGER = get_logger("server")


def encode_field(rgb: np.ndarray) -> str:
    """Clip the packed field into bytes and base64 them for the wire."""
    pixels = (np.clip(rgb, 0.0, 1.0) * 255.0).astype(np.uint8)
    return base64.b64encode(pixels.tobytes()).decode("ascii")


class SimulationController:
    def __init__(self, config: SimulationConfig, frame_interval: float = 1.0 / 30.0, broadcast_interval: int = 1):
        self.config = config
        self.engine = SimulationEngine(config)
        self.frame_interval = frame_interval
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.steps_per_frame = 1
        self.clients: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def reset(self) -> None:
        async with self._lock:
            self.engine.reset()
        await self._broadcast_snapshot()

    async def advance(self) -> None:
        async with self._lock:
            engine = self.engine
            for _ in range(self.steps_per_frame):
                if not engine.population_complete and self.config.spawn_batch_size > 0:
                    engine.spawn_batch(self.config.spawn_batch_size)
                engine.tick()

    async def set_stimulus_intensity(self, index: int, intensity: float) -> bool:
        async with self._lock:
            return self.engine.set_stimulus_intensity(index, intensity)

    async def set_target_population(self, count: int) -> Dict[str, Any]:
        async with self._lock:
            report = self.engine.set_target_population(count)
        return asdict(report)

    async def update_parameters(self, values: Dict[str, Any]) -> None:
        async with self._lock:
            self.engine.update_parameters(**values)

    def status(self) -> Dict[str, Any]:
        metrics = self.engine.metrics
        return {
            "running": self.running,
            "tick": self.engine.tick_count,
            "population": len(self.engine.agents),
            "target_population": self.engine.target_population,
            "metrics": asdict(metrics) if metrics is not None else None,
        }

    def snapshot_payload(self) -> str:
        snapshot = self.engine.snapshot()
        return json.dumps(
            {
                "tick": snapshot.tick,
                "width": snapshot.metadata.width,
                "height": snapshot.metadata.height,
                "metrics": asdict(snapshot.metrics) if snapshot.metrics is not None else None,
                "field": encode_field(snapshot.fields.rgb),
            }
        )

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.frame_interval)
            if not self.running:
                continue
            await self.advance()
            if self.engine.tick_count % self.broadcast_interval == 0:
                await self._broadcast_snapshot()

    async def _broadcast_snapshot(self) -> None:
        if not self.clients:
            return
        payload = self.snapshot_payload()
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await client.send_text(payload)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)


def _load_app_config() -> SimulationConfig:
    path = os.environ.get("PHYSARUM_CONFIG")
    if path:
        return SimulationConfig.from_yaml(Path(path))
    return SimulationConfig()


app = FastAPI(title="Physarum Simulation")
controller = SimulationController(_load_app_config())


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.get("/api/status")
async def status() -> JSONResponse:
    return JSONResponse(controller.status())


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    controller.running = True
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    controller.running = False
    return JSONResponse({"running": False})


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"running": controller.running, "tick": controller.engine.tick_count})


@app.post("/api/control/steps")
async def set_steps_per_frame(payload: dict) -> JSONResponse:
    steps = int(payload.get("steps", 1))
    controller.steps_per_frame = max(1, min(50, steps))
    return JSONResponse({"steps": controller.steps_per_frame})


@app.post("/api/stimuli/{index}")
async def set_stimulus(index: int, payload: dict) -> JSONResponse:
    try:
        updated = await controller.set_stimulus_intensity(index, float(payload.get("intensity", 0.0)))
    except ConfigError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if not updated:
        raise HTTPException(status_code=404, detail=f"no stimulus at index {index}")
    return JSONResponse({"index": index, "updated": True})


@app.post("/api/population")
async def set_population(payload: dict) -> JSONResponse:
    try:
        report = await controller.set_target_population(int(payload.get("count", 0)))
    except ConfigError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return JSONResponse(report)


@app.post("/api/parameters")
async def set_parameters(payload: dict) -> JSONResponse:
    try:
        await controller.update_parameters(payload)
    except ConfigError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return JSONResponse({"updated": sorted(payload)})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    await controller._broadcast_snapshot()
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        _LOGGER.debug("Websocket client disconnected")


__all__ = ["app", "controller", "SimulationController", "main"]


def main() -> None:
    import argparse

    import uvicorn

    from .logging_utils import configure_logging

    parser = argparse.ArgumentParser(description="Physarum simulation server")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    args = parser.parse_args()

    configure_logging(args.log_level)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
