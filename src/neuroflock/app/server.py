from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Optional, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..sim.core.config import SimulationConfig
from ..sim.core.errors import NeuroflockError, PersistenceFailure
from ..sim.core.population import ChampionDescriptor, Population
from ..sim.systems.predators import TargetStrategy, maybe_create_target_strategy
from .persistence import load_champion_async, save_champion_async

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class SimulationController:
    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1, champion_dir: Path | str = "champions"):
        self.config = config
        self.champion_dir = Path(champion_dir)
        self.population = Population(config)
        self.predator: Optional[TargetStrategy] = maybe_create_target_strategy(
            config.predator, config.world_width, config.world_height, self.population.rng
        )
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.tick = 0
        self.speed_multiplier = 1.0
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque()
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._broadcast_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._loop())
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def shutdown(self) -> None:
        self.running = False
        if self._broadcast_task is not None:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None
        self.population.dispose()

    async def reset(self) -> None:
        async with self._lock:
            self.population.reset()
            self.tick = 0
        await self._restart_stream()

    async def toggle_evolution(self) -> bool:
        async with self._lock:
            return self.population.toggle_evolution()

    async def set_generation_duration(self, seconds: float) -> float:
        async with self._lock:
            self.population.set_generation_duration(seconds)
        return seconds

    async def step(self) -> None:
        async with self._lock:
            target = None
            if self.predator is not None:
                target = self.predator.update(self.population.boids, self.config.time_step)
            self.population.tick(self.config.time_step, target)
            self.tick += 1

    async def export_champion(self, path: Optional[Path] = None) -> ChampionDescriptor:
        async with self._lock:
            descriptor = self.population.export_champion()
        if path is not None:
            result = await save_champion_async(descriptor, path)
            if not result.ok:
                raise result.error
        return descriptor

    async def import_champion(self, descriptor: ChampionDescriptor | dict | None = None, path: Optional[Path] = None) -> None:
        if descriptor is None:
            if path is None:
                raise ValueError("either a descriptor or a path is required")
            result = await load_champion_async(path)
            if not result.ok:
                raise result.error
            descriptor = result.descriptor
        async with self._lock:
            self.population.import_champion(descriptor)
            self.tick = 0
        await self._restart_stream()

    def champion_path(self, name: str) -> Path:
        """Resolve ``name`` inside ``champion_dir``; anything escaping it is refused."""

        root = self.champion_dir.resolve()
        candidate = (root / name).resolve()
        if not candidate.is_relative_to(root):
            raise PersistenceFailure(name, f"outside the champions directory {root}")
        return candidate

    async def _restart_stream(self) -> None:
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        await self._broadcast_snapshot()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.time_step / self.speed_multiplier)
            if not self.running:
                continue
            await self.step()
            if self.tick % self.broadcast_interval == 0:
                await self._broadcast_snapshot()

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.population.snapshot()
        payload = {
            "type": "snapshot",
            "tick": self.tick,
            "payload": {
                "tick": self.tick,
                "generation": snapshot.generation,
                "progress": snapshot.progress,
                "remaining_time": snapshot.remaining_time,
                "evolving": snapshot.evolving,
                "behavior": snapshot.behavior,
                "stats": asdict(snapshot.stats),
                "agents": snapshot.agents,
                "world": asdict(snapshot.world),
                "metadata": asdict(snapshot.metadata),
                "target": snapshot.target,
            },
        }
        return QueuedSnapshot(tick=self.tick, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.tick
        self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        queued = self._serialize_snapshot()
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)

    def status(self) -> dict:
        population = self.population
        return {
            "running": self.running,
            "tick": self.tick,
            "generation": population.generation,
            "population": len(population.boids),
            "evolving": population.is_evolving,
            "progress": population.get_progress(),
            "remaining_time": population.get_remaining_time(),
            "generation_duration": population.generation_duration,
            "behavior": population.current_behavior,
            "stats": asdict(population.stats),
            "history": [asdict(record) for record in population.fitness_history],
            "speed": self.speed_multiplier,
            "predator": None if self.predator is None else self.predator.mode,
        }


app = FastAPI(title="Neuroflock Simulation")
controller = SimulationController(SimulationConfig())


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.on_event("shutdown")
async def _shutdown() -> None:
    await controller.shutdown()


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
    return JSONResponse({"running": controller.running, "tick": controller.tick})


@app.post("/api/control/toggle-evolution")
async def toggle_evolution() -> JSONResponse:
    evolving = await controller.toggle_evolution()
    return JSONResponse({"evolving": evolving})


@app.post("/api/control/duration")
async def set_duration(payload: dict) -> JSONResponse:
    try:
        seconds = float(payload.get("seconds", 0.0))
        await controller.set_generation_duration(seconds)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"pending_duration": seconds})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    try:
        speed = float(payload.get("multiplier", 1.0))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


def _requested_champion_path(payload: Optional[dict]) -> Optional[Path]:
    name = (payload or {}).get("path")
    if not name:
        return None
    try:
        return controller.champion_path(str(name))
    except PersistenceFailure as exc:
        logger.warning("refused champion path: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/champion/export")
async def export_champion(payload: Optional[dict] = None) -> JSONResponse:
    path = _requested_champion_path(payload)
    try:
        descriptor = await controller.export_champion(path)
    except NeuroflockError as exc:
        logger.warning("champion export failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return JSONResponse(descriptor.to_dict())


@app.post("/api/champion/import")
async def import_champion(payload: dict) -> JSONResponse:
    path = _requested_champion_path(payload)
    descriptor = payload.get("champion")
    try:
        await controller.import_champion(descriptor, path)
    except (NeuroflockError, KeyError, TypeError, ValueError) as exc:
        logger.warning("champion import failed: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return JSONResponse({"generation": controller.population.generation, "tick": controller.tick})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    controller._client_last_sent[websocket] = -1
    await controller._send_pending_snapshots(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                continue
            if payload.get("type") == "ack":
                tick = payload.get("tick")
                if isinstance(tick, int):
                    await controller.acknowledge(tick)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        controller._client_last_sent.pop(websocket, None)


__all__ = ["app", "controller"]
