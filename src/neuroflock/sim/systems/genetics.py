from __future__ import annotations

from typing import List, Sequence, TYPE_CHECKING

from ..core.brain import Brain
from ..core.config import EvolutionConfig
from ..core.errors import InvalidConfiguration
from .fitness import normalize_fitnesses

if TYPE_CHECKING:
    from ..core.agent import Agent
    from ..core.rng import DeterministicRng


def tournament_selection(pool: Sequence[Agent], rng: DeterministicRng, tournament_size: int = 3) -> Agent:
    """Best of `tournament_size` candidates drawn with replacement; works for any fitness sign."""

    best = pool[rng.next_int(len(pool))]
    for _ in range(tournament_size - 1):
        candidate = pool[rng.next_int(len(pool))]
        if candidate.fitness > best.fitness:
            best = candidate
    return best


def roulette_selection(pool: Sequence[Agent], rng: DeterministicRng) -> Agent:
    weights = normalize_fitnesses(pool)
    total = sum(weights)
    if total == 0:
        return pool[rng.next_int(len(pool))]

    pick = rng.next_float() * total
    running = 0.0
    for agent, weight in zip(pool, weights):
        running += weight
        if pick <= running:
            return agent
    return pool[-1]


def evolve_population(
    pool: Sequence[Agent],
    target_size: int,
    rng: DeterministicRng,
    config: EvolutionConfig,
    width: float,
    height: float,
) -> List[Agent]:
    """Breed exactly `target_size` new agents from `pool`.

    The first ``elite_count`` entries are unmutated clones of the fittest agents.
    Every other slot is a crossover child (random spawn point) or a clone of a
    tournament winner, mutated in place. All returned agents have zero fitness.
    The caller keeps ownership of `pool` and must dispose it.
    """

    if not pool:
        raise InvalidConfiguration("cannot evolve an empty population")
    if target_size < 1:
        raise InvalidConfiguration(f"target_size must be positive, got {target_size}")

    ranked = sorted(pool, key=lambda agent: agent.fitness, reverse=True)
    next_generation: List[Agent] = []

    elite_count = min(config.elite_count, target_size, len(ranked))
    for elite in ranked[:elite_count]:
        child = elite.clone(rng)
        child.fitness = 0.0
        next_generation.append(child)

    while len(next_generation) < target_size:
        if rng.next_float() < config.crossover_rate:
            parent_a = tournament_selection(ranked, rng, config.tournament_size)
            parent_b = tournament_selection(ranked, rng, config.tournament_size)
            brain = Brain.crossover(parent_a.brain, parent_b.brain, rng)
            child = type(parent_a).spawn(
                rng.next_range(0.0, width),
                rng.next_range(0.0, height),
                rng,
                settings=parent_a.settings,
                brain=brain,
            )
        else:
            child = tournament_selection(ranked, rng, config.tournament_size).clone(rng)

        child.brain.mutate(config.mutation_rate, rng, config.mutation_amplitude)
        child.fitness = 0.0
        next_generation.append(child)

    return next_generation


def select_best(pool: Sequence[Agent]) -> List[Agent]:
    ranked = sorted(pool, key=lambda agent: agent.fitness, reverse=True)
    return ranked[: len(pool) // 2]
