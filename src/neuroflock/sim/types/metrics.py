from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class FitnessStats:
    avg: float = 0.0
    best: float = 0.0
    worst: float = 0.0
    median: float = 0.0


@dataclass(slots=True)
class GenerationRecord:
    generation: int
    avg: float
    best: float
    worst: float
    median: float


@dataclass(slots=True)
class TickMetrics:
    tick: int
    generation: int
    population: int
    neighbor_checks: int
    generation_progress: float
    evolved: bool = False
    tick_duration_ms: float = 0.0
