"""Per-tick reward shaping.

``calculate_fitness`` is pure: it reads the agent and its cached neighbors and
returns the reward for one tick. The population adds that value to
``agent.fitness``; nothing here decays or normalizes mid-generation.
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, TYPE_CHECKING

from pygame.math import Vector2

from ..core.config import FitnessConfig
from ..types.metrics import FitnessStats
from ..utils.math2d import _cosine_similarity, _distance, _safe_divide

if TYPE_CHECKING:
    from ..core.agent import Agent

DEFAULT_FITNESS = FitnessConfig()


def _gaussian(value: float, peak: float, sigma: float) -> float:
    if sigma <= 0:
        return 1.0 if value == peak else 0.0
    delta = value - peak
    return math.exp(-(delta * delta) / (2.0 * sigma * sigma))


def cohesion_score(agent: Agent, neighbors: Sequence[Agent], config: FitnessConfig) -> float:
    if not neighbors:
        return -config.isolation_penalty
    avg_dist = sum(_distance(agent.position, other.position) for other in neighbors) / len(neighbors)
    return config.cohesion_weight * _gaussian(avg_dist, config.ideal_spacing, config.cohesion_sigma)


def separation_score(agent: Agent, neighbors: Sequence[Agent], config: FitnessConfig) -> float:
    too_close = sum(
        1 for other in neighbors if _distance(agent.position, other.position) < config.min_safe_distance
    )
    return -config.separation_penalty * too_close


def alignment_score(agent: Agent, neighbors: Sequence[Agent], config: FitnessConfig) -> float:
    if not neighbors:
        return 0.0
    total = sum(_cosine_similarity(agent.velocity, other.velocity) for other in neighbors)
    return config.alignment_weight * total / len(neighbors)


def group_direction_score(agent: Agent, neighbors: Sequence[Agent], config: FitnessConfig) -> float:
    if len(neighbors) <= config.min_group_size:
        return 0.0
    heading = Vector2()
    for other in neighbors:
        heading += other.velocity
    heading = _safe_divide(heading, len(neighbors))
    return config.group_direction_weight * heading.length() / agent.settings.max_speed


def boundary_score(agent: Agent, width: float, height: float, config: FitnessConfig) -> float:
    score = 0.0
    margin = config.edge_margin
    if margin > 0:
        pos = agent.position
        edge_distance = min(pos.x, width - pos.x, pos.y, height - pos.y)
        if edge_distance < margin:
            depth = 1.0 - edge_distance / margin
            score -= config.boundary_weight * (math.exp(config.boundary_steepness * depth) - 1.0)
    if agent.is_out_of_bounds(width, height, config.out_of_bounds_margin):
        score -= config.out_of_bounds_penalty
    return score


def motion_score(agent: Agent, config: FitnessConfig) -> float:
    speed = agent.velocity.length()
    score = config.speed_weight * speed
    score += config.cruise_weight * _gaussian(speed, config.cruise_speed, config.cruise_sigma)
    if speed > agent.settings.max_speed * config.overspeed_ratio:
        score -= config.overspeed_penalty
    return score


def threat_score(agent: Agent, target: Vector2, config: FitnessConfig) -> float:
    dist = _distance(agent.position, target)
    if dist < config.threat_radius:
        return -(config.threat_radius - dist) / 10.0 * config.threat_weight
    return min(dist * 0.01, config.threat_reward_cap) * config.threat_weight


def calculate_fitness(
    agent: Agent,
    neighbors: Sequence[Agent],
    width: float,
    height: float,
    config: FitnessConfig = DEFAULT_FITNESS,
    target: Optional[Vector2] = None,
) -> float:
    score = cohesion_score(agent, neighbors, config)
    score += separation_score(agent, neighbors, config)
    score += alignment_score(agent, neighbors, config)
    score += group_direction_score(agent, neighbors, config)
    score += boundary_score(agent, width, height, config)
    score += motion_score(agent, config)
    if target is not None:
        score += threat_score(agent, target, config)
    score += config.existence_bonus
    return max(config.floor, score)


def calculate_population_stats(agents: Sequence[Agent]) -> FitnessStats:
    if not agents:
        return FitnessStats()
    fitnesses = sorted((agent.fitness for agent in agents), reverse=True)
    return FitnessStats(
        avg=sum(fitnesses) / len(fitnesses),
        best=fitnesses[0],
        worst=fitnesses[-1],
        median=fitnesses[len(fitnesses) // 2],
    )


def normalize_fitnesses(agents: Sequence[Agent]) -> List[float]:
    """Shift fitness values so none is negative (offset ``|min| + 1`` when needed)."""

    if not agents:
        return []
    fitnesses = [agent.fitness for agent in agents]
    lowest = min(fitnesses)
    offset = abs(lowest) + 1.0 if lowest < 0 else 0.0
    return [value + offset for value in fitnesses]
