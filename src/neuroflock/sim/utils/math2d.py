from __future__ import annotations

import math
from typing import TYPE_CHECKING

from pygame.math import Vector2

if TYPE_CHECKING:
    from ..core.rng import DeterministicRng


def _safe_normalize(vector: Vector2) -> Vector2:
    return _safe_normalize_xy(vector.x, vector.y)


def _safe_normalize_xy(x: float, y: float) -> Vector2:
    magnitude_sq = x * x + y * y
    if magnitude_sq < 1e-10:
        return Vector2()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector2(x * inv, y * inv)


def _safe_divide(vector: Vector2, divisor: float) -> Vector2:
    if divisor == 0:
        return Vector2(vector)
    return Vector2(vector.x / divisor, vector.y / divisor)


def _clamp_length(vector: Vector2, max_length: float) -> Vector2:
    if max_length <= 0:
        return Vector2()
    magnitude_sq = vector.length_squared()
    if magnitude_sq <= max_length * max_length:
        return vector
    if magnitude_sq == 0:
        return Vector2()
    inv = max_length / math.sqrt(magnitude_sq)
    return Vector2(vector.x * inv, vector.y * inv)


def _set_magnitude(vector: Vector2, magnitude: float) -> Vector2:
    direction = _safe_normalize(vector)
    return direction * magnitude


def _distance(a: Vector2, b: Vector2) -> float:
    dx = a.x - b.x
    dy = a.y - b.y
    return math.sqrt(dx * dx + dy * dy)


def _angle_between(origin: Vector2, target: Vector2) -> float:
    return math.atan2(target.y - origin.y, target.x - origin.x)


def _cosine_similarity(a: Vector2, b: Vector2) -> float:
    mag_a = a.length()
    mag_b = b.length()
    if mag_a == 0 or mag_b == 0:
        return 0.0
    return (a.x * b.x + a.y * b.y) / (mag_a * mag_b)


def _random_unit(rng: DeterministicRng) -> Vector2:
    return rng.next_unit_circle()


def _heading_from_velocity(vector: Vector2) -> float:
    if vector.length_squared() < 1e-12:
        return 0.0
    return math.atan2(vector.y, vector.x)


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))
