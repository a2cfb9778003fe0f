from __future__ import annotations

import pytest
import yaml

from neuroflock.sim.core.config import SimulationConfig, load_config
from neuroflock.sim.core.errors import InvalidConfiguration, NeuroflockError


def test_defaults_validate():
    config = SimulationConfig()
    config.validate()
    assert config.population_size == 100
    assert config.generation_duration == 20.0
    assert config.evolution.elite_count == 5
    assert config.agent.perception_radius == 100.0
    assert config.fitness.floor == -100.0


def test_load_config_builds_nested_sections():
    config = load_config(
        {
            "seed": 7,
            "population_size": 12,
            "agent": {"max_speed": 6.0},
            "fitness": {"ideal_spacing": 30.0},
            "predator": {"enabled": True, "mode": "orbit_patrol"},
        }
    )
    assert config.seed == 7
    assert config.population_size == 12
    assert config.agent.max_speed == 6.0
    assert config.agent.max_force == 1.5
    assert config.fitness.ideal_spacing == 30.0
    assert config.predator.enabled
    assert config.predator.mode == "orbit_patrol"


def test_unknown_keys_raise_invalid_configuration():
    with pytest.raises(InvalidConfiguration):
        load_config({"agent": {"warp_speed": 9}})
    with pytest.raises(InvalidConfiguration):
        load_config({"tick_budget": 3})


def test_from_yaml_reads_file(tmp_path):
    path = tmp_path / "sim.yaml"
    path.write_text(yaml.safe_dump({"generation_duration": 5.0, "evolution": {"mutation_rate": 0.1}}))
    config = SimulationConfig.from_yaml(path)
    assert config.generation_duration == 5.0
    assert config.evolution.mutation_rate == 0.1


def test_empty_yaml_uses_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert SimulationConfig.from_yaml(path) == SimulationConfig()


@pytest.mark.parametrize(
    "overrides",
    [
        {"population_size": 0},
        {"generation_duration": 0.0},
        {"generation_duration": float("inf")},
        {"max_delta_time": 0.0},
        {"world_width": -1.0},
        {"cell_size": 0.0},
        {"evolution": {"mutation_rate": 1.5}},
        {"evolution": {"tournament_size": 0}},
        {"evolution": {"elite_count": -1}},
        {"agent": {"max_neighbors": 0}},
        {"behavior": {"interval": 0.0}},
    ],
)
def test_validate_rejects_out_of_range_values(overrides):
    config = load_config(overrides)
    with pytest.raises(InvalidConfiguration) as excinfo:
        config.validate()
    assert isinstance(excinfo.value, NeuroflockError)
    assert isinstance(excinfo.value, ValueError)
