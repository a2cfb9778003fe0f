from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict, dataclass
from time import perf_counter
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pygame.math import Vector2

from .agent import Agent
from .brain import DEFAULT_ARCHITECTURE, Brain, BrainArchitecture
from .config import SimulationConfig
from .errors import DimensionMismatch, InvalidConfiguration
from .rng import DeterministicRng
from .spatial_grid import SpatialGrid
from ..systems.behavior import BehaviorAnalyzer
from ..systems.fitness import calculate_fitness, calculate_population_stats
from ..systems.genetics import evolve_population
from ..types.metrics import FitnessStats, GenerationRecord, TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotWorld
from ..utils.math2d import _clamp_value

logger = logging.getLogger(__name__)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


@dataclass
class ChampionMetadata:
    generation: Optional[int]
    timestamp: float


@dataclass
class ChampionDescriptor:
    """Owned snapshot of one brain: architecture + flat weight buffers + metadata."""

    architecture: BrainArchitecture
    weight_buffers: List[List[float]]
    metadata: ChampionMetadata
    fitness: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "architecture": self.architecture.to_dict(),
            "weight_buffers": [list(buffer) for buffer in self.weight_buffers],
            "metadata": asdict(self.metadata),
            "fitness": self.fitness,
        }

    @staticmethod
    def from_dict(raw: Mapping[str, Any]) -> "ChampionDescriptor":
        metadata_raw = raw.get("metadata") or {}
        return ChampionDescriptor(
            architecture=BrainArchitecture.from_dict(raw["architecture"]),
            weight_buffers=[list(map(float, buffer)) for buffer in raw["weight_buffers"]],
            metadata=ChampionMetadata(
                generation=_optional_int(metadata_raw.get("generation")),
                timestamp=float(metadata_raw.get("timestamp", 0.0)),
            ),
            fitness=float(raw.get("fitness", 0.0)),
        )


class Population:
    """Fixed-size cohort of agents evolving over fixed-duration generations.

    ``tick`` is the single entry point: one synchronous step per call, no
    internal scheduling. Callers must not mutate the population concurrently.
    """

    def __init__(self, config: SimulationConfig | None = None, rng: DeterministicRng | None = None):
        config = config if config is not None else SimulationConfig()
        config.validate()
        self._config = config
        self._rng = rng if rng is not None else DeterministicRng(config.seed)
        self._grid = SpatialGrid(config.cell_size)
        self._behavior = BehaviorAnalyzer(config.behavior)
        self._agents: List[Agent] = []
        self._size = config.population_size
        self._generation = 1
        self._generation_timer = 0.0
        self._generation_duration = config.generation_duration
        self._pending_duration: Optional[float] = None
        self._stats = FitnessStats()
        self._fitness_history: List[GenerationRecord] = []
        self._evolving = True
        self._tick = 0
        self._metrics: TickMetrics | None = None
        self._target: Optional[Vector2] = None
        self._initialize_population()

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def rng(self) -> DeterministicRng:
        return self._rng

    @property
    def boids(self) -> Tuple[Agent, ...]:
        return tuple(self._agents)

    @property
    def size(self) -> int:
        return self._size

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def generation_timer(self) -> float:
        return self._generation_timer

    @property
    def generation_duration(self) -> float:
        return self._generation_duration

    @property
    def stats(self) -> FitnessStats:
        return self._stats

    @property
    def fitness_history(self) -> Tuple[GenerationRecord, ...]:
        return tuple(self._fitness_history)

    @property
    def current_behavior(self) -> str:
        return self._behavior.label

    @property
    def behavior_scores(self) -> Dict[str, float]:
        return dict(self._behavior.report.scores)

    @property
    def is_evolving(self) -> bool:
        return self._evolving

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    def tick(self, delta_time: float, target: Vector2 | Sequence[float] | None = None) -> TickMetrics:
        start = perf_counter()
        config = self._config
        dt = delta_time if math.isfinite(delta_time) else 0.0
        dt = _clamp_value(dt, 0.0, config.max_delta_time)
        self._target = Vector2(target) if target is not None else None

        if not self._evolving:
            self._metrics = self._make_metrics(0, False, start)
            return self._metrics

        width = config.world_width
        height = config.world_height
        radius = config.agent.perception_radius
        max_neighbors = config.agent.max_neighbors
        fitness_config = config.fitness
        agents = self._agents
        rng = self._rng
        grid = self._grid
        grid.rebuild(agents)

        neighbor_checks = 0
        for agent in agents:
            neighbors = grid.nearest(agent, radius, max_neighbors)
            neighbor_checks += len(neighbors)
            inputs = agent.perceive(agents, width, height, neighbors)
            agent.apply_force(agent.think(inputs))
            agent.update(width, height, rng)
            agent.fitness += calculate_fitness(agent, neighbors, width, height, fitness_config, self._target)

        self._tick += 1
        self._generation_timer += dt
        self._behavior.update(agents, dt, self._target)

        evolved = False
        if self._generation_timer >= self._generation_duration:
            self.next_generation()
            evolved = True

        self._metrics = self._make_metrics(neighbor_checks, evolved, start)
        return self._metrics

    def next_generation(self) -> None:
        config = self._config
        self._stats = calculate_population_stats(self._agents)
        self._fitness_history.append(GenerationRecord(generation=self._generation, **asdict(self._stats)))
        logger.info(
            "generation %d finished: avg=%.2f best=%.2f worst=%.2f median=%.2f",
            self._generation,
            self._stats.avg,
            self._stats.best,
            self._stats.worst,
            self._stats.median,
        )

        offspring = evolve_population(
            self._agents, self._size, self._rng, config.evolution, config.world_width, config.world_height
        )
        self._dispose_agents()
        self._agents = offspring
        self._assign_ids()

        self._generation += 1
        self._generation_timer = 0.0
        self._behavior.reset_timer()
        if self._pending_duration is not None:
            self._generation_duration = self._pending_duration
            self._pending_duration = None
        logger.info("generation %d created by evolution (%d agents)", self._generation, len(self._agents))

    def reset(self) -> None:
        self._dispose_agents()
        self._rng.reset()
        self._generation = 1
        self._generation_timer = 0.0
        self._fitness_history.clear()
        self._stats = FitnessStats()
        self._behavior.reset()
        self._tick = 0
        self._metrics = None
        if self._pending_duration is not None:
            self._generation_duration = self._pending_duration
            self._pending_duration = None
        self._initialize_population()
        logger.info("population reset: generation 1 with %d random agents", len(self._agents))

    def toggle_evolution(self) -> bool:
        self._evolving = not self._evolving
        return self._evolving

    def set_generation_duration(self, seconds: float) -> None:
        if not seconds > 0 or not math.isfinite(seconds):
            raise InvalidConfiguration(f"generation duration must be positive, got {seconds}")
        self._pending_duration = float(seconds)

    def get_remaining_time(self) -> float:
        return max(0.0, self._generation_duration - self._generation_timer)

    def get_progress(self) -> float:
        return min(1.0, self._generation_timer / self._generation_duration)

    def champion(self) -> Agent:
        return max(self._agents, key=lambda agent: agent.fitness)

    def export_champion(self) -> ChampionDescriptor:
        best = self.champion()
        owned = best.brain.clone()
        descriptor = ChampionDescriptor(
            architecture=owned.architecture,
            weight_buffers=owned.to_buffers(),
            metadata=ChampionMetadata(generation=self._generation, timestamp=time.time()),
            fitness=best.fitness,
        )
        owned.dispose()
        return descriptor

    def import_champion(
        self,
        descriptor: ChampionDescriptor | Mapping[str, Any],
        metadata: ChampionMetadata | Mapping[str, Any] | None = None,
        fallback_generation: int = 1,
    ) -> "Population":
        """Reinitialize from one brain: the original plus ``size - 1`` clones."""

        if not isinstance(descriptor, ChampionDescriptor):
            descriptor = ChampionDescriptor.from_dict(descriptor)
        if descriptor.architecture != DEFAULT_ARCHITECTURE:
            raise DimensionMismatch(DEFAULT_ARCHITECTURE, descriptor.architecture, context="champion architecture")
        brain = Brain.from_buffers(descriptor.weight_buffers, descriptor.architecture)

        if metadata is None:
            metadata = descriptor.metadata
        if isinstance(metadata, Mapping):
            generation = metadata.get("generation")
        else:
            generation = metadata.generation if metadata is not None else None

        self._dispose_agents()
        self._agents = []
        self._spawn_random(brain)
        for _ in range(self._size - 1):
            self._spawn_random(brain.clone())
        self._assign_ids()

        if generation is None or int(generation) < 1:
            generation = fallback_generation
        self._generation = int(generation)
        self._generation_timer = 0.0
        self._fitness_history.clear()
        self._stats = FitnessStats()
        self._behavior.reset()
        logger.info("imported champion into %d agents at generation %d", len(self._agents), self._generation)
        return self

    def snapshot(self) -> Snapshot:
        config = self._config
        return Snapshot(
            tick=self._tick,
            generation=self._generation,
            progress=self.get_progress(),
            remaining_time=self.get_remaining_time(),
            evolving=self._evolving,
            behavior=self.current_behavior,
            stats=self._stats,
            agents=[self._agent_snapshot(agent) for agent in self._agents],
            world=SnapshotWorld(width=config.world_width, height=config.world_height),
            metadata=SnapshotMetadata(
                sim_dt=config.time_step,
                tick_rate=0.0 if config.time_step <= 0 else 1.0 / config.time_step,
                seed=config.seed,
                config_version=config.config_version,
                generation_duration=self._generation_duration,
            ),
            target=None if self._target is None else {"x": self._target.x, "y": self._target.y},
        )

    def dispose(self) -> None:
        self._dispose_agents()
        self._agents = []

    def _initialize_population(self) -> None:
        self._agents = []
        for _ in range(self._size):
            self._spawn_random()
        self._assign_ids()
        logger.debug("generation %d: %d agents created", self._generation, len(self._agents))

    def _spawn_random(self, brain: Brain | None = None) -> Agent:
        config = self._config
        agent = Agent.spawn(
            self._rng.next_range(0.0, config.world_width),
            self._rng.next_range(0.0, config.world_height),
            self._rng,
            settings=config.agent,
            brain=brain,
        )
        self._agents.append(agent)
        return agent

    def _assign_ids(self) -> None:
        for index, agent in enumerate(self._agents):
            agent.id = index

    def _dispose_agents(self) -> None:
        for agent in self._agents:
            agent.dispose()

    def _make_metrics(self, neighbor_checks: int, evolved: bool, start: float) -> TickMetrics:
        return TickMetrics(
            tick=self._tick,
            generation=self._generation,
            population=len(self._agents),
            neighbor_checks=neighbor_checks,
            generation_progress=self.get_progress(),
            evolved=evolved,
            tick_duration_ms=(perf_counter() - start) * 1000.0,
        )

    @staticmethod
    def _agent_snapshot(agent: Agent) -> Dict[str, Any]:
        return {
            "id": agent.id,
            "x": agent.position.x,
            "y": agent.position.y,
            "vx": agent.velocity.x,
            "vy": agent.velocity.y,
            "speed": agent.velocity.length(),
            "fitness": agent.fitness,
            "trail": [list(point) for point in agent.trail],
        }
