from __future__ import annotations

import math

import numpy as np
import pytest
from pytest import approx

from neuroflock.sim.core.config import EvolutionConfig, SimulationConfig
from neuroflock.sim.core.errors import DimensionMismatch, InvalidConfiguration
from neuroflock.sim.core.population import ChampionDescriptor, Population


def _config(**overrides) -> SimulationConfig:
    values = dict(seed=1234, population_size=10, generation_duration=1.0, evolution=EvolutionConfig(elite_count=5))
    values.update(overrides)
    return SimulationConfig(**values)


def _trajectory(population: Population, steps: int, dt: float = 1.0 / 60.0) -> list:
    result = []
    for _ in range(steps):
        metrics = population.tick(dt)
        result.append((metrics.generation, metrics.neighbor_checks, round(population.stats.avg, 6)))
    result.append([(round(a.position.x, 6), round(a.position.y, 6)) for a in population.boids])
    return result


def test_one_full_tick_advances_generation():
    population = Population(_config())
    assert population.generation == 1

    metrics = population.tick(1.0)

    assert metrics.evolved
    assert population.generation == 2
    assert len(population.fitness_history) == 1
    assert population.fitness_history[0].generation == 1
    assert len(population.boids) == 10
    assert all(agent.fitness == 0.0 for agent in population.boids)
    assert [agent.id for agent in population.boids] == list(range(10))


def test_same_seed_is_deterministic():
    result_a = _trajectory(Population(_config(generation_duration=0.25)), 40)
    result_b = _trajectory(Population(_config(generation_duration=0.25)), 40)
    assert result_a == result_b


def test_reset_replays_the_initial_cohort():
    population = Population(_config())
    before = [tuple(agent.position) for agent in population.boids]
    population.tick(1.0)
    population.reset()

    assert population.generation == 1
    assert population.fitness_history == ()
    assert population.generation_timer == 0.0
    assert [tuple(agent.position) for agent in population.boids] == before


def test_delta_time_is_clamped():
    population = Population(_config(generation_duration=5.0, max_delta_time=0.5))
    population.tick(100.0)
    assert population.generation_timer == approx(0.5)
    population.tick(-3.0)
    population.tick(math.nan)
    population.tick(math.inf)
    assert population.generation_timer == approx(0.5)


def test_paused_population_does_not_move():
    population = Population(_config())
    positions = [tuple(agent.position) for agent in population.boids]
    assert population.toggle_evolution() is False
    metrics = population.tick(1.0)

    assert not population.is_evolving
    assert not metrics.evolved
    assert population.generation == 1
    assert [tuple(agent.position) for agent in population.boids] == positions
    assert population.toggle_evolution() is True


def test_progress_and_remaining_time():
    population = Population(_config(generation_duration=2.0))
    population.tick(0.5)
    assert population.get_progress() == approx(0.25)
    assert population.get_remaining_time() == approx(1.5)


def test_generation_duration_change_applies_next_generation():
    population = Population(_config(generation_duration=1.0))
    population.set_generation_duration(3.0)
    assert population.generation_duration == 1.0
    population.tick(1.0)
    assert population.generation == 2
    assert population.generation_duration == 3.0
    with pytest.raises(InvalidConfiguration):
        population.set_generation_duration(0.0)


def test_fitness_accumulates_and_stats_update_at_boundary():
    population = Population(_config(generation_duration=0.5))
    population.tick(0.25)
    assert any(agent.fitness != 0.0 for agent in population.boids)
    population.tick(0.25)
    record = population.fitness_history[-1]
    assert record.best >= record.median >= record.worst
    assert population.stats.best == record.best


def test_old_generation_brains_are_disposed():
    population = Population(_config())
    old = population.boids
    population.tick(1.0)
    assert all(agent.brain.disposed for agent in old)
    assert not any(agent.brain.disposed for agent in population.boids)


def test_champion_export_import_round_trip():
    source = Population(_config())
    source.tick(0.5)
    champion = source.champion()
    descriptor = source.export_champion()

    assert descriptor.metadata.generation == 1
    assert len(descriptor.weight_buffers) == 4

    restored = ChampionDescriptor.from_dict(descriptor.to_dict())
    target = Population(_config(seed=99))
    target.tick(1.0)
    assert target.import_champion(restored, {"generation": 7}) is target

    assert target.generation == 7
    assert target.fitness_history == ()
    assert len(target.boids) == 10
    for agent in target.boids:
        for original, copy in zip(champion.brain.layers, agent.brain.layers):
            assert np.array_equal(original, copy)
    assert len({id(agent.brain) for agent in target.boids}) == 10


def test_import_uses_fallback_generation_without_metadata():
    population = Population(_config())
    descriptor = population.export_champion().to_dict()
    descriptor["metadata"] = {}
    population.import_champion(descriptor, fallback_generation=3)
    assert population.generation == 3

    del descriptor["metadata"]
    population.import_champion(descriptor, fallback_generation=5)
    assert population.generation == 5
    assert ChampionDescriptor.from_dict(descriptor).metadata.generation is None

    population.import_champion(population.export_champion(), {"generation": 0}, fallback_generation=3)
    assert population.generation == 3


def test_import_rejects_other_architectures():
    population = Population(_config())
    raw = population.export_champion().to_dict()
    raw["architecture"]["hidden_size"] = 4
    with pytest.raises(DimensionMismatch):
        population.import_champion(raw)

    for field, value in [("hidden_activation", "sigmoid"), ("output_activation", "linear")]:
        raw = population.export_champion().to_dict()
        raw["architecture"][field] = value
        with pytest.raises(DimensionMismatch):
            population.import_champion(raw)


def test_snapshot_describes_the_cohort():
    population = Population(_config(time_step=0.5))
    population.tick(0.5, target=(10.0, 20.0))
    snapshot = population.snapshot()

    assert snapshot.generation == 1
    assert snapshot.metadata.tick_rate == approx(2.0)
    assert snapshot.metadata.seed == 1234
    assert snapshot.target == {"x": 10.0, "y": 20.0}
    assert len(snapshot.agents) == 10
    for key in ["id", "x", "y", "vx", "vy", "speed", "fitness", "trail"]:
        assert key in snapshot.agents[0]


def test_invalid_config_is_rejected():
    with pytest.raises(InvalidConfiguration):
        Population(_config(population_size=0))


def test_dispose_releases_all_brains():
    population = Population(_config())
    agents = population.boids
    population.dispose()
    assert all(agent.brain.disposed for agent in agents)
    assert population.boids == ()


@pytest.mark.slow
def test_long_run_stays_finite_and_bounded():
    population = Population(SimulationConfig(seed=5, population_size=60, generation_duration=2.0))
    for _ in range(60 * 20):
        population.tick(1.0 / 60.0)
    assert population.generation >= 10
    assert len(population.fitness_history) == population.generation - 1
    for agent in population.boids:
        assert all(math.isfinite(value) for value in (*agent.position, *agent.velocity))
