from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, TYPE_CHECKING

from pygame.math import Vector2

from ..core.config import BehaviorConfig
from ..utils.math2d import _clamp_value, _cosine_similarity, _distance, _safe_normalize

if TYPE_CHECKING:
    from ..core.agent import Agent

logger = logging.getLogger(__name__)

INITIALIZING = "initializing"

BEHAVIOR_LABELS = {
    "coordinated": "Coordinated movement",
    "exploring": "Active exploration",
    "huddling": "Huddling",
    "evading": "Evading the target",
    "zigzagging": "Evasive zigzag",
}


@dataclass(slots=True)
class BehaviorReport:
    scores: Dict[str, float] = field(default_factory=dict)
    dominant: str = INITIALIZING
    label: str = "Initializing"


class BehaviorAnalyzer:
    """Periodic read-only classifier of swarm behavior.

    Draws no random numbers and writes nothing back to the agents, so running it
    (or not) leaves the simulation bit-for-bit identical.
    """

    def __init__(self, config: BehaviorConfig | None = None):
        self._config = config if config is not None else BehaviorConfig()
        self._timer = 0.0
        self._report = BehaviorReport()

    @property
    def report(self) -> BehaviorReport:
        return self._report

    @property
    def label(self) -> str:
        return self._report.label

    def reset(self) -> None:
        self._timer = 0.0
        self._report = BehaviorReport()

    def reset_timer(self) -> None:
        self._timer = 0.0

    def update(self, agents: Sequence[Agent], dt: float, target: Optional[Vector2] = None) -> Optional[BehaviorReport]:
        self._timer += dt
        if self._timer < self._config.interval:
            return None
        self._timer = 0.0
        self._report = self.analyze(agents, target)
        return self._report

    def analyze(self, agents: Sequence[Agent], target: Optional[Vector2] = None) -> BehaviorReport:
        if not agents:
            return BehaviorReport()
        sample = self._sample(agents)
        scores = {
            "coordinated": self._coordination(sample),
            "exploring": self._exploration(sample),
            "huddling": self._huddling(sample),
            "evading": self._evasion(sample, target),
            "zigzagging": self._zigzag(sample),
        }
        for key, value in scores.items():
            scores[key] = _clamp_value(value, 0.0, 1.0)
        dominant = max(scores, key=scores.__getitem__)
        logger.debug(
            "behavior scores %s -> %s",
            {key: round(value, 3) for key, value in scores.items()},
            dominant,
        )
        return BehaviorReport(scores=scores, dominant=dominant, label=BEHAVIOR_LABELS[dominant])

    def _sample(self, agents: Sequence[Agent]) -> List[Agent]:
        limit = max(1, self._config.sample_size)
        if len(agents) <= limit:
            return list(agents)
        stride = -(-len(agents) // limit)
        return list(agents[::stride])

    def _coordination(self, agents: Sequence[Agent]) -> float:
        window = self._config.coordination_window
        total = 0.0
        count = 0
        for i, agent in enumerate(agents):
            for other in agents[i + 1 : i + window]:
                if agent.velocity.length_squared() > 0 and other.velocity.length_squared() > 0:
                    total += _cosine_similarity(agent.velocity, other.velocity)
                    count += 1
        alignment = total / count if count else 0.0
        return (alignment + 1.0) / 2.0

    def _average_distance(self, agents: Sequence[Agent]) -> float:
        if len(agents) < 2:
            return 0.0
        window = self._config.distance_window
        total = 0.0
        count = 0
        for i, agent in enumerate(agents):
            for other in agents[i + 1 : i + window]:
                total += _distance(agent.position, other.position)
                count += 1
        return total / count if count else 0.0

    def _exploration(self, agents: Sequence[Agent]) -> float:
        config = self._config
        avg_speed = sum(agent.velocity.length() for agent in agents) / len(agents)
        speed_score = min(1.0, avg_speed / config.exploration_speed_scale)
        dist_score = min(1.0, self._average_distance(agents) / config.exploration_distance_scale)
        return speed_score * 0.5 + dist_score * 0.5

    def _huddling(self, agents: Sequence[Agent]) -> float:
        return max(0.0, 1.0 - self._average_distance(agents) / self._config.huddle_distance_scale)

    def _evasion(self, agents: Sequence[Agent], target: Optional[Vector2]) -> float:
        if target is None:
            return 0.0
        config = self._config
        weighted = 0.0
        for agent in agents:
            dist = _distance(agent.position, target)
            if dist >= config.evasion_radius:
                continue
            to_target = _safe_normalize(target - agent.position)
            heading = _safe_normalize(agent.velocity)
            if heading.dot(to_target) < config.evasion_dot_threshold:
                weighted += 1.0 - dist / config.evasion_radius
        return weighted / len(agents)

    def _zigzag(self, agents: Sequence[Agent]) -> float:
        turns = 0
        segments = 0
        threshold = self._config.zigzag_cos_threshold
        for agent in agents:
            trail = list(agent.trail)
            for p1, p2, p3 in zip(trail, trail[1:], trail[2:]):
                first = Vector2(p2[0] - p1[0], p2[1] - p1[1])
                second = Vector2(p3[0] - p2[0], p3[1] - p2[1])
                if first.length_squared() == 0 or second.length_squared() == 0:
                    continue
                if _cosine_similarity(first, second) < threshold:
                    turns += 1
                segments += 1
        return turns / segments if segments else 0.0
