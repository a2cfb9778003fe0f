from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import InvalidConfiguration


@dataclass
class AgentConfig:
    max_speed: float = 8.0
    max_force: float = 1.5
    damping: float = 0.96
    min_speed: float = 2.0
    # Fraction of the gap to min_speed closed per tick.
    min_speed_correction: float = 0.1
    stall_speed: float = 0.05
    stall_impulse: float = 0.5
    perception_radius: float = 100.0
    max_neighbors: int = 5
    edge_margin: float = 50.0
    boundary_turn_weight: float = 0.4
    rebound_restitution: float = 0.8
    trail_length: int = 10
    initial_speed_min: float = 1.0
    initial_speed_max: float = 3.0


@dataclass
class FitnessConfig:
    ideal_spacing: float = 40.0
    cohesion_sigma: float = 20.0
    cohesion_weight: float = 1.0
    isolation_penalty: float = 0.5
    min_safe_distance: float = 8.0
    separation_penalty: float = 1.0
    alignment_weight: float = 0.8
    group_direction_weight: float = 0.5
    min_group_size: int = 2
    edge_margin: float = 50.0
    boundary_weight: float = 2.0
    boundary_steepness: float = 4.0
    out_of_bounds_margin: float = 0.0
    out_of_bounds_penalty: float = 20.0
    speed_weight: float = 0.02
    cruise_speed: float = 5.0
    cruise_sigma: float = 1.5
    cruise_weight: float = 0.3
    overspeed_ratio: float = 0.9
    overspeed_penalty: float = 0.5
    existence_bonus: float = 0.1
    threat_radius: float = 100.0
    threat_weight: float = 2.0
    threat_reward_cap: float = 5.0
    floor: float = -100.0


@dataclass
class EvolutionConfig:
    mutation_rate: float = 0.3
    mutation_amplitude: float = 0.25
    elite_count: int = 5
    crossover_rate: float = 0.7
    tournament_size: int = 3


@dataclass
class BehaviorConfig:
    interval: float = 1.0
    sample_size: int = 100
    coordination_window: int = 5
    distance_window: int = 10
    exploration_speed_scale: float = 8.0
    exploration_distance_scale: float = 100.0
    huddle_distance_scale: float = 80.0
    evasion_radius: float = 300.0
    evasion_dot_threshold: float = -0.3
    zigzag_cos_threshold: float = 0.5


@dataclass
class PredatorConfig:
    enabled: bool = False
    mode: str = "center_seek"
    aggressiveness: float = 1.0
    vision_range: float = 500.0
    retreat_distance: float = 80.0
    isolation_radius: float = 100.0
    patrol_radius: float = 300.0
    patrol_angular_speed: float = 0.015
    teleport_interval: float = 3.0
    charge_seconds: float = 4.0
    retreat_seconds: float = 2.0
    adaptive_interval: float = 8.0


@dataclass
class SimulationConfig:
    time_step: float = 1.0 / 60.0
    population_size: int = 100
    generation_duration: float = 20.0
    max_delta_time: float = 1.0
    world_width: float = 1280.0
    world_height: float = 720.0
    cell_size: float = 100.0
    seed: int = 42
    config_version: str = "v1"
    agent: AgentConfig = field(default_factory=AgentConfig)
    fitness: FitnessConfig = field(default_factory=FitnessConfig)
    evolution: EvolutionConfig = field(default_factory=EvolutionConfig)
    behavior: BehaviorConfig = field(default_factory=BehaviorConfig)
    predator: PredatorConfig = field(default_factory=PredatorConfig)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)

    def validate(self) -> None:
        if self.population_size <= 0:
            raise InvalidConfiguration(f"population_size must be positive, got {self.population_size}")
        if not self.generation_duration > 0 or not math.isfinite(self.generation_duration):
            raise InvalidConfiguration(f"generation_duration must be positive, got {self.generation_duration}")
        if not self.max_delta_time > 0:
            raise InvalidConfiguration(f"max_delta_time must be positive, got {self.max_delta_time}")
        if self.world_width <= 0 or self.world_height <= 0:
            raise InvalidConfiguration(
                f"world size must be positive, got {self.world_width}x{self.world_height}"
            )
        if self.cell_size <= 0:
            raise InvalidConfiguration(f"cell_size must be positive, got {self.cell_size}")
        evolution = self.evolution
        if evolution.elite_count < 0:
            raise InvalidConfiguration(f"elite_count must be >= 0, got {evolution.elite_count}")
        if evolution.tournament_size < 1:
            raise InvalidConfiguration(f"tournament_size must be >= 1, got {evolution.tournament_size}")
        for name in ("mutation_rate", "crossover_rate"):
            value = getattr(evolution, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidConfiguration(f"{name} must be within [0, 1], got {value}")
        agent = self.agent
        if agent.max_speed <= 0 or agent.perception_radius <= 0:
            raise InvalidConfiguration("agent max_speed and perception_radius must be positive")
        if agent.max_neighbors < 1 or agent.trail_length < 1:
            raise InvalidConfiguration("agent max_neighbors and trail_length must be >= 1")
        if self.behavior.interval <= 0:
            raise InvalidConfiguration(f"behavior interval must be positive, got {self.behavior.interval}")


def load_config(raw: dict) -> SimulationConfig:
    sections = {"agent", "fitness", "evolution", "behavior", "predator"}
    sim_values = {k: v for k, v in raw.items() if k not in sections}
    try:
        agent = AgentConfig(**raw.get("agent", {}))
        fitness = FitnessConfig(**raw.get("fitness", {}))
        evolution = EvolutionConfig(**raw.get("evolution", {}))
        behavior = BehaviorConfig(**raw.get("behavior", {}))
        predator = PredatorConfig(**raw.get("predator", {}))
        config = SimulationConfig(
            agent=agent,
            fitness=fitness,
            evolution=evolution,
            behavior=behavior,
            predator=predator,
            **sim_values,
        )
    except TypeError as exc:
        raise InvalidConfiguration(str(exc)) from exc
    return config
