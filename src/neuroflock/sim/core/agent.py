from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np
from pygame.math import Vector2

from .brain import Brain
from .config import AgentConfig
from ..utils.math2d import (
    _angle_between,
    _clamp_length,
    _cosine_similarity,
    _distance,
    _heading_from_velocity,
    _random_unit,
    _safe_divide,
    _set_magnitude,
)

if TYPE_CHECKING:
    from .rng import DeterministicRng

FEATURE_COUNT = 8


def _zero_centered(value: float, scale: float) -> float:
    if scale <= 0:
        return 0.0
    return value / scale * 2.0 - 1.0


@dataclass(slots=True)
class Agent:
    position: Vector2
    velocity: Vector2
    brain: Brain
    settings: AgentConfig = field(default_factory=AgentConfig)
    id: int = 0
    acceleration: Vector2 = field(default_factory=Vector2)
    fitness: float = 0.0
    trail: Deque[Tuple[float, float]] = field(default_factory=deque)

    def __post_init__(self) -> None:
        self.trail = deque(self.trail, maxlen=self.settings.trail_length)

    @classmethod
    def spawn(
        cls,
        x: float,
        y: float,
        rng: DeterministicRng,
        settings: AgentConfig | None = None,
        brain: Brain | None = None,
    ) -> "Agent":
        settings = settings if settings is not None else AgentConfig()
        return cls(
            position=Vector2(x, y),
            velocity=cls._initial_velocity(rng, settings),
            brain=brain if brain is not None else Brain.create(rng),
            settings=settings,
        )

    @staticmethod
    def _initial_velocity(rng: DeterministicRng, settings: AgentConfig) -> Vector2:
        speed = rng.next_range(settings.initial_speed_min, settings.initial_speed_max)
        return _random_unit(rng) * speed

    def find_nearest_neighbors(self, agents: Sequence["Agent"], count: int) -> List["Agent"]:
        """Brute-force O(n) scan; the population uses the spatial grid instead."""

        radius = self.settings.perception_radius
        in_range = []
        for other in agents:
            if other is self:
                continue
            dist = _distance(self.position, other.position)
            if dist < radius:
                in_range.append((dist, other))
        in_range.sort(key=lambda pair: pair[0])
        return [other for _, other in in_range[:count]]

    def perceive(
        self,
        agents: Sequence["Agent"],
        width: float,
        height: float,
        neighbors: Optional[Sequence["Agent"]] = None,
    ) -> np.ndarray:
        settings = self.settings
        if neighbors is None:
            neighbors = self.find_nearest_neighbors(agents, settings.max_neighbors)

        features = np.zeros(FEATURE_COUNT, dtype=np.float64)
        if neighbors:
            count = len(neighbors)
            dist_sum = 0.0
            alignment_sum = 0.0
            center = Vector2()
            heading = Vector2()
            for other in neighbors:
                dist_sum += _distance(self.position, other.position)
                alignment_sum += _cosine_similarity(self.velocity, other.velocity)
                center += other.position
                heading += other.velocity
            center = _safe_divide(center, count)
            heading = _safe_divide(heading, count)
            features[0] = _zero_centered(dist_sum / count, settings.perception_radius)
            features[1] = alignment_sum / count
            features[2] = _angle_between(self.position, center) / math.pi
            features[3] = _heading_from_velocity(heading) / math.pi

        features[4] = _zero_centered(self.velocity.length(), settings.max_speed)
        edge_distance = min(self.position.x, width - self.position.x, self.position.y, height - self.position.y)
        features[5] = _zero_centered(edge_distance, min(width, height) * 0.5)
        features[6] = _zero_centered(self.position.x, width)
        features[7] = _zero_centered(self.position.y, height)
        np.clip(features, -1.0, 1.0, out=features)
        return features

    def think(self, inputs: Sequence[float]) -> Vector2:
        output = self.brain.predict(inputs)
        return Vector2(float(output[0]), float(output[1])) * self.settings.max_force

    def apply_force(self, force: Vector2) -> None:
        self.acceleration += force

    def update(self, width: float, height: float, rng: DeterministicRng) -> None:
        settings = self.settings
        self.velocity += self.acceleration
        self.acceleration.update(0.0, 0.0)
        self.velocity += self._boundary_steering(width, height)
        self.velocity *= settings.damping

        speed = self.velocity.length()
        if speed > settings.stall_speed:
            if speed < settings.min_speed:
                target = speed + (settings.min_speed - speed) * settings.min_speed_correction
                self.velocity = _set_magnitude(self.velocity, target)
        else:
            self.velocity += rng.next_unit_circle() * settings.stall_impulse
        self.velocity = _clamp_length(self.velocity, settings.max_speed)

        self.position += self.velocity
        self._rebound(width, height)
        self.trail.append((self.position.x, self.position.y))

    def is_out_of_bounds(self, width: float, height: float, margin: float = 0.0) -> bool:
        return (
            self.position.x < -margin
            or self.position.x > width + margin
            or self.position.y < -margin
            or self.position.y > height + margin
        )

    def clone(self, rng: DeterministicRng) -> "Agent":
        return Agent(
            position=Vector2(self.position),
            velocity=self._initial_velocity(rng, self.settings),
            brain=self.brain.clone(),
            settings=self.settings,
        )

    def dispose(self) -> None:
        self.brain.dispose()

    def _boundary_steering(self, width: float, height: float) -> Vector2:
        margin = self.settings.edge_margin
        if margin <= 0:
            return Vector2()
        weight = self.settings.boundary_turn_weight
        steer = Vector2()
        x = self.position.x
        y = self.position.y
        if x < margin:
            steer.x += weight * (margin - x) / margin
        elif x > width - margin:
            steer.x -= weight * (x - (width - margin)) / margin
        if y < margin:
            steer.y += weight * (margin - y) / margin
        elif y > height - margin:
            steer.y -= weight * (y - (height - margin)) / margin
        return steer

    def _rebound(self, width: float, height: float) -> None:
        restitution = self.settings.rebound_restitution
        if self.position.x < 0:
            self.position.x = 0.0
            self.velocity.x = abs(self.velocity.x) * restitution
        elif self.position.x > width:
            self.position.x = width
            self.velocity.x = -abs(self.velocity.x) * restitution
        if self.position.y < 0:
            self.position.y = 0.0
            self.velocity.y = abs(self.velocity.y) * restitution
        elif self.position.y > height:
            self.position.y = height
            self.velocity.y = -abs(self.velocity.y) * restitution
