from __future__ import annotations

import math

from pygame.math import Vector2
from pytest import approx

from neuroflock.sim.core.rng import DeterministicRng
from neuroflock.sim.utils.math2d import (
    _angle_between,
    _clamp_length,
    _clamp_value,
    _cosine_similarity,
    _distance,
    _heading_from_velocity,
    _random_unit,
    _safe_divide,
    _safe_normalize,
    _set_magnitude,
)


def test_normalize_zero_vector_stays_zero():
    result = _safe_normalize(Vector2())
    assert result == Vector2()
    assert result.length() == 0.0


def test_normalize_returns_unit_length():
    assert _safe_normalize(Vector2(3, 4)).length() == approx(1.0)


def test_safe_divide_by_zero_is_noop_copy():
    original = Vector2(2, -3)
    result = _safe_divide(original, 0)
    assert result == original
    assert result is not original
    assert _safe_divide(Vector2(2, -4), 2) == Vector2(1, -2)


def test_clamp_length_limits_only_long_vectors():
    short = Vector2(1, 1)
    assert _clamp_length(short, 5.0) is short
    assert _clamp_length(Vector2(30, 40), 5.0).length() == approx(5.0)
    assert _clamp_length(Vector2(1, 0), 0.0) == Vector2()


def test_set_magnitude_keeps_zero_vector_zero():
    assert _set_magnitude(Vector2(), 10.0) == Vector2()
    assert _set_magnitude(Vector2(0, 2), 7.0) == Vector2(0, 7)


def test_distance_angle_and_heading():
    assert _distance(Vector2(0, 0), Vector2(3, 4)) == approx(5.0)
    assert _angle_between(Vector2(1, 1), Vector2(1, 5)) == approx(math.pi / 2)
    assert _heading_from_velocity(Vector2()) == 0.0
    assert _heading_from_velocity(Vector2(-1, 0)) == approx(math.pi)


def test_cosine_similarity_handles_zero_vectors():
    assert _cosine_similarity(Vector2(), Vector2(1, 0)) == 0.0
    assert _cosine_similarity(Vector2(2, 0), Vector2(5, 0)) == approx(1.0)
    assert _cosine_similarity(Vector2(1, 0), Vector2(-1, 0)) == approx(-1.0)


def test_random_unit_is_unit_and_seeded():
    first = [_random_unit(DeterministicRng(9)) for _ in range(3)]
    second = [_random_unit(DeterministicRng(9)) for _ in range(3)]
    assert first == second
    for vector in first:
        assert vector.length() == approx(1.0)


def test_clamp_value():
    assert _clamp_value(5.0, 0.0, 1.0) == 1.0
    assert _clamp_value(-5.0, 0.0, 1.0) == 0.0
    assert _clamp_value(0.25, 0.0, 1.0) == 0.25
