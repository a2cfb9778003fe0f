from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .metrics import FitnessStats


@dataclass(slots=True)
class Snapshot:
    tick: int
    generation: int
    progress: float
    remaining_time: float
    evolving: bool
    behavior: str
    stats: FitnessStats
    agents: List[Dict[str, Any]]
    world: "SnapshotWorld"
    metadata: "SnapshotMetadata"
    target: Optional[Dict[str, float]] = None


@dataclass(slots=True)
class SnapshotWorld:
    width: float
    height: float


@dataclass(slots=True)
class SnapshotMetadata:
    sim_dt: float
    tick_rate: float
    seed: int
    config_version: str
    generation_duration: float
