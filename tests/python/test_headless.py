import csv
import json

import pytest
import yaml

from neuroflock.app.headless import _percentile, main, run_headless
from neuroflock.sim.core.config import PredatorConfig, SimulationConfig


def _read_csv(path):
    with path.open(newline="") as handle:
        return list(csv.reader(handle))


def _small_config(**overrides) -> SimulationConfig:
    values = dict(population_size=12, generation_duration=0.5)
    values.update(overrides)
    return SimulationConfig(**values)


def test_headless_writes_one_row_per_generation(tmp_path):
    log_path = tmp_path / "generations.csv"
    population = run_headless(steps=4, seed=1, log_path=log_path, delta_time=0.25, config=_small_config())
    rows = _read_csv(log_path)

    assert rows[0] == [
        "generation",
        "tick",
        "avg_fitness",
        "best_fitness",
        "worst_fitness",
        "median_fitness",
        "behavior",
    ]
    assert [row[0] for row in rows[1:]] == ["1", "2"]
    assert [row[1] for row in rows[1:]] == ["1", "3"]
    assert population.generation == 3


def test_headless_is_deterministic(tmp_path):
    first = tmp_path / "a.csv"
    second = tmp_path / "b.csv"
    run_headless(steps=12, seed=5, log_path=first, delta_time=0.1, config=_small_config())
    run_headless(steps=12, seed=5, log_path=second, delta_time=0.1, config=_small_config())
    assert first.read_text() == second.read_text()


def test_headless_summary_output(tmp_path):
    summary_path = tmp_path / "summary.json"
    run_headless(
        steps=6,
        seed=3,
        log_path=None,
        delta_time=0.25,
        summary_path=summary_path,
        config=_small_config(predator=PredatorConfig(enabled=True, mode="center_seek")),
        deterministic_log=True,
    )
    payload = json.loads(summary_path.read_text())
    assert payload["steps"] == 6
    assert payload["seed"] == 3
    assert payload["generations_completed"] == 3
    assert payload["final_generation"] == 4
    assert payload["predator"] == "center_seek"
    assert payload["tick_ms"]["max"] == 0.0
    assert payload["best_fitness"]["max"] >= payload["best_fitness"]["min"]


def test_headless_champion_round_trip(tmp_path):
    champion = tmp_path / "champion.json"
    run_headless(steps=3, seed=2, log_path=None, delta_time=0.25, config=_small_config(), champion_out=champion)
    assert champion.exists()

    population = run_headless(
        steps=0, seed=9, log_path=None, config=_small_config(), champion_in=champion
    )
    saved = json.loads(champion.read_text())
    assert population.generation == saved["metadata"]["generation"]
    assert population.boids[0].brain.to_buffers() == saved["weight_buffers"]


def test_headless_missing_champion_starts_fresh(tmp_path):
    population = run_headless(
        steps=1, seed=4, log_path=None, config=_small_config(), champion_in=tmp_path / "nope.json"
    )
    assert population.generation == 1


def test_main_reads_yaml_config(tmp_path):
    config_path = tmp_path / "sim.yaml"
    config_path.write_text(yaml.safe_dump({"population_size": 8, "generation_duration": 0.5}))
    summary_path = tmp_path / "summary.json"
    main(
        [
            "--steps",
            "3",
            "--dt",
            "0.25",
            "--seed",
            "11",
            "--config",
            str(config_path),
            "--summary",
            str(summary_path),
            "--predator",
            "orbit_patrol",
            "--log-level",
            "WARNING",
        ]
    )
    payload = json.loads(summary_path.read_text())
    assert payload["generations_completed"] == 1
    assert payload["predator"] == "orbit_patrol"


def test_percentile_interpolates():
    assert _percentile([], 0.5) == 0.0
    assert _percentile([4.0], 0.9) == 4.0
    assert _percentile([0.0, 10.0], 0.25) == 2.5


def test_headless_truncated_champion_starts_fresh(tmp_path):
    champion = tmp_path / "champion.json"
    run_headless(steps=1, seed=2, log_path=None, config=_small_config(), champion_out=champion)
    raw = json.loads(champion.read_text())
    raw["weight_buffers"][0] = raw["weight_buffers"][0][:-1]
    champion.write_text(json.dumps(raw))

    population = run_headless(steps=1, seed=4, log_path=None, config=_small_config(), champion_in=champion)
    assert population.generation == 1
    assert len(population.boids) == 12


def test_headless_foreign_architecture_starts_fresh(tmp_path):
    champion = tmp_path / "champion.json"
    run_headless(steps=1, seed=2, log_path=None, config=_small_config(), champion_out=champion)
    raw = json.loads(champion.read_text())
    raw["architecture"]["hidden_activation"] = "sigmoid"
    champion.write_text(json.dumps(raw))

    population = run_headless(steps=0, seed=4, log_path=None, config=_small_config(), champion_in=champion)
    assert population.boids[0].brain.to_buffers() != raw["weight_buffers"]


def test_main_rejects_unknown_predator_mode(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--steps", "1", "--predator", "teleport_everywhere"])
    assert excinfo.value.code == 2
    assert "invalid choice" in capsys.readouterr().err
