from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..sim.core.brain import Brain
from ..sim.core.errors import DimensionMismatch, PersistenceFailure
from ..sim.core.population import ChampionDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistenceResult:
    ok: bool
    path: Path
    descriptor: Optional[ChampionDescriptor] = None
    error: Optional[PersistenceFailure] = None


def _failure(path: Path, action: str, exc: Exception) -> PersistenceResult:
    error = PersistenceFailure(path, f"{action} failed: {exc}")
    logger.warning("champion %s failed for %s: %s", action, path, exc)
    return PersistenceResult(ok=False, path=path, error=error)


def save_champion(descriptor: ChampionDescriptor, path: Path | str) -> PersistenceResult:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(descriptor.to_dict(), indent=2))
    except (OSError, TypeError, ValueError) as exc:
        return _failure(path, "save", exc)
    logger.info("saved champion (generation %s) to %s", descriptor.metadata.generation, path)
    return PersistenceResult(ok=True, path=path, descriptor=descriptor)


def load_champion(path: Path | str) -> PersistenceResult:
    path = Path(path)
    try:
        raw = json.loads(path.read_text())
        descriptor = ChampionDescriptor.from_dict(raw)
        Brain.from_buffers(descriptor.weight_buffers, descriptor.architecture).dispose()
    except (OSError, KeyError, TypeError, ValueError, DimensionMismatch) as exc:
        return _failure(path, "load", exc)
    return PersistenceResult(ok=True, path=path, descriptor=descriptor)


async def save_champion_async(descriptor: ChampionDescriptor, path: Path | str) -> PersistenceResult:
    return await asyncio.to_thread(save_champion, descriptor, path)


async def load_champion_async(path: Path | str) -> PersistenceResult:
    return await asyncio.to_thread(load_champion, path)
