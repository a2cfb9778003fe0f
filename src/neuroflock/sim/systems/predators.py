"""Pluggable external point of interest ("predator").

Each strategy consumes a read-only snapshot of the agents plus the elapsed time
and returns the target position for this tick. Strategies live outside the
evolutionary core: the population only ever sees the returned position.
Speeds are in world units per tick, matching agent physics.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, TYPE_CHECKING

from pygame.math import Vector2

from ..core.config import PredatorConfig
from ..core.errors import InvalidConfiguration
from ..core.spatial_grid import SpatialGrid
from ..utils.math2d import _clamp_value, _distance

if TYPE_CHECKING:
    from ..core.agent import Agent
    from ..core.rng import DeterministicRng

logger = logging.getLogger(__name__)


def _center_of_mass(agents: Sequence[Agent]) -> Vector2:
    center = Vector2()
    for agent in agents:
        center += agent.position
    return center / len(agents)


class TargetStrategy:
    mode = "idle"

    def __init__(self, config: PredatorConfig, width: float, height: float):
        self._config = config
        self._width = width
        self._height = height
        self.position = Vector2(width / 2, height / 2)
        self.aggressiveness = _clamp_value(config.aggressiveness, 0.1, 3.0)
        self.state = "approach"

    def update(self, agents: Sequence[Agent], dt: float) -> Vector2:
        raise NotImplementedError

    def set_aggressiveness(self, value: float) -> None:
        self.aggressiveness = _clamp_value(value, 0.1, 3.0)

    def _move_toward(self, target: Vector2, speed: float, stop_distance: float = 0.0) -> None:
        offset = target - self.position
        dist = offset.length()
        if dist > stop_distance and dist > 0:
            self.position += offset * (speed * self.aggressiveness / dist)

    def _clamp_to_world(self) -> None:
        self.position.x = _clamp_value(self.position.x, 0.0, self._width)
        self.position.y = _clamp_value(self.position.y, 0.0, self._height)


class CenterSeekStrategy(TargetStrategy):
    """Drift toward the flock's center of mass, holding off at the retreat distance."""

    mode = "center_seek"

    def update(self, agents: Sequence[Agent], dt: float) -> Vector2:
        if not agents:
            return self.position
        self._move_toward(_center_of_mass(agents), 3.0, self._config.retreat_distance)
        self._clamp_to_world()
        return self.position


class NearestChaseStrategy(TargetStrategy):
    mode = "nearest_chase"

    def update(self, agents: Sequence[Agent], dt: float) -> Vector2:
        if not agents:
            return self.position
        closest = None
        min_dist = self._config.vision_range
        for agent in agents:
            dist = _distance(self.position, agent.position)
            if dist < min_dist:
                min_dist = dist
                closest = agent
        if closest is not None:
            self._move_toward(closest.position, 8.0, 5.0)
        self._clamp_to_world()
        return self.position


class IsolationSeekStrategy(TargetStrategy):
    """Hunt the agent with the fewest neighbors inside the vision range."""

    mode = "isolation_seek"

    def __init__(self, config: PredatorConfig, width: float, height: float):
        super().__init__(config, width, height)
        self._grid = SpatialGrid(max(1.0, config.isolation_radius))
        self._fallback = CenterSeekStrategy(config, width, height)

    def update(self, agents: Sequence[Agent], dt: float) -> Vector2:
        if not agents:
            return self.position
        self._grid.rebuild(agents)
        most_isolated = None
        fewest = math.inf
        for agent in agents:
            if _distance(self.position, agent.position) >= self._config.vision_range:
                continue
            count = self._grid.count_within(agent.position, self._config.isolation_radius, exclude=agent)
            if count < fewest:
                fewest = count
                most_isolated = agent
        if most_isolated is None:
            self._fallback.position = self.position
            self._fallback.aggressiveness = self.aggressiveness
            return self._fallback.update(agents, dt)
        self._move_toward(most_isolated.position, 6.0, 5.0)
        self._clamp_to_world()
        return self.position


class ChargeRetreatStrategy(TargetStrategy):
    """Charge the flock center, then back off, on a fixed cycle."""

    mode = "charge_retreat"

    def __init__(self, config: PredatorConfig, width: float, height: float):
        super().__init__(config, width, height)
        self.timer = 0.0

    def update(self, agents: Sequence[Agent], dt: float) -> Vector2:
        if not agents:
            return self.position
        self.timer += dt
        center = _center_of_mass(agents)
        charge_end = self._config.charge_seconds
        retreat_end = charge_end + self._config.retreat_seconds
        if self.timer < charge_end:
            self.state = "charging"
            self._move_toward(center, 10.0, 30.0)
        elif self.timer < retreat_end:
            self.state = "retreating"
            away = self.position - center
            dist = away.length()
            if 0 < dist < 200:
                self.position += away * (5.0 * self.aggressiveness / dist)
        else:
            self.timer = 0.0
        self._clamp_to_world()
        return self.position


class AdaptiveStrategy(TargetStrategy):
    """Rotate through the hunting strategies on a fixed interval."""

    mode = "adaptive"

    def __init__(self, config: PredatorConfig, width: float, height: float):
        super().__init__(config, width, height)
        self.timer = 0.0
        self.current = 0
        self._strategies: List[TargetStrategy] = [
            CenterSeekStrategy(config, width, height),
            NearestChaseStrategy(config, width, height),
            IsolationSeekStrategy(config, width, height),
            ChargeRetreatStrategy(config, width, height),
        ]

    @property
    def active_mode(self) -> str:
        return self._strategies[self.current].mode

    def update(self, agents: Sequence[Agent], dt: float) -> Vector2:
        self.timer += dt
        if self.timer >= self._config.adaptive_interval:
            self.current = (self.current + 1) % len(self._strategies)
            self.timer = 0.0
            logger.debug("adaptive predator switched to %s", self.active_mode)
        strategy = self._strategies[self.current]
        strategy.position = self.position
        strategy.aggressiveness = self.aggressiveness
        self.position = strategy.update(agents, dt)
        self.state = strategy.state
        return self.position


class OrbitPatrolStrategy(TargetStrategy):
    mode = "orbit_patrol"

    def __init__(self, config: PredatorConfig, width: float, height: float):
        super().__init__(config, width, height)
        self.angle = 0.0

    def update(self, agents: Sequence[Agent], dt: float) -> Vector2:
        self.angle += self._config.patrol_angular_speed * self.aggressiveness
        radius = self._config.patrol_radius
        self.position.update(
            self._width / 2 + math.cos(self.angle) * radius,
            self._height / 2 + math.sin(self.angle) * radius,
        )
        return self.position


class RandomTeleportStrategy(TargetStrategy):
    mode = "random_teleport"

    def __init__(self, config: PredatorConfig, width: float, height: float, rng: DeterministicRng):
        super().__init__(config, width, height)
        self.timer = 0.0
        self._rng = rng

    def update(self, agents: Sequence[Agent], dt: float) -> Vector2:
        self.timer += dt
        if self.timer >= self._config.teleport_interval:
            self.position.update(self._rng.next_range(0.0, self._width), self._rng.next_range(0.0, self._height))
            self.timer = 0.0
            logger.debug("predator teleported to (%.0f, %.0f)", self.position.x, self.position.y)
        return self.position


_FACTORIES: Dict[str, Callable[[PredatorConfig, float, float, "DeterministicRng"], TargetStrategy]] = {
    CenterSeekStrategy.mode: lambda c, w, h, rng: CenterSeekStrategy(c, w, h),
    NearestChaseStrategy.mode: lambda c, w, h, rng: NearestChaseStrategy(c, w, h),
    IsolationSeekStrategy.mode: lambda c, w, h, rng: IsolationSeekStrategy(c, w, h),
    ChargeRetreatStrategy.mode: lambda c, w, h, rng: ChargeRetreatStrategy(c, w, h),
    AdaptiveStrategy.mode: lambda c, w, h, rng: AdaptiveStrategy(c, w, h),
    OrbitPatrolStrategy.mode: lambda c, w, h, rng: OrbitPatrolStrategy(c, w, h),
    RandomTeleportStrategy.mode: RandomTeleportStrategy,
}

TARGET_MODES = tuple(_FACTORIES)


def create_target_strategy(
    config: PredatorConfig, width: float, height: float, rng: DeterministicRng
) -> TargetStrategy:
    factory = _FACTORIES.get(config.mode)
    if factory is None:
        raise InvalidConfiguration(f"Unknown predator mode: {config.mode!r} (expected one of {TARGET_MODES})")
    return factory(config, width, height, rng)


def maybe_create_target_strategy(
    config: PredatorConfig, width: float, height: float, rng: DeterministicRng
) -> Optional[TargetStrategy]:
    if not config.enabled:
        return None
    return create_target_strategy(config, width, height, rng)
