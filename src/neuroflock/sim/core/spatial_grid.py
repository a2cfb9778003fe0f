from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, Iterable, List, Tuple

from pygame.math import Vector2

if TYPE_CHECKING:
    from .agent import Agent


class SpatialGrid:
    """Uniform bucket grid, rebuilt once per tick and shared by every neighbor query."""

    def __init__(self, cell_size: float) -> None:
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List["Agent"]] = {}
        self._active_keys: List[Tuple[int, int]] = []
        self._offsets_cache: Dict[float, List[Tuple[int, int]]] = {}

    @property
    def cell_size(self) -> float:
        return self._cell_size

    def build_neighbor_cell_offsets(self, radius: float) -> List[Tuple[int, int]]:
        cached = self._offsets_cache.get(radius)
        if cached is not None:
            return cached
        cell_range = int(math.ceil(radius / self._cell_size))
        offsets = [(dx, dy) for dx in range(-cell_range, cell_range + 1) for dy in range(-cell_range, cell_range + 1)]
        self._offsets_cache[radius] = offsets
        return offsets

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()

    def rebuild(self, agents: Iterable["Agent"]) -> None:
        self.clear()
        for agent in agents:
            self.insert(agent)

    def insert(self, agent: "Agent") -> None:
        key = self._cell_key(agent.position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket exists but was cleared at the start of this tick; mark it active again.
            self._active_keys.append(key)
        bucket.append(agent)

    def collect_neighbors(
        self,
        position: Vector2,
        radius: float,
        out_agents: List["Agent"],
        out_dist_sq: List[float],
        exclude: "Agent | None" = None,
    ) -> None:
        """
        Fill the provided buffers with agents within `radius` of `position` and their squared distances.

        Callers must clear/consume the buffers after use.
        """

        out_agents.clear()
        out_dist_sq.clear()
        base_key = self._cell_key(position)
        radius_sq = radius * radius
        pos_x = position.x
        pos_y = position.y
        cells = self._cells
        append_agent = out_agents.append
        append_dist = out_dist_sq.append

        for dx, dy in self.build_neighbor_cell_offsets(radius):
            bucket = cells.get((base_key[0] + dx, base_key[1] + dy))
            if not bucket:
                continue
            for agent in bucket:
                if agent is exclude:
                    continue
                pos = agent.position
                offset_x = pos.x - pos_x
                offset_y = pos.y - pos_y
                dist_sq = offset_x * offset_x + offset_y * offset_y
                if dist_sq < radius_sq:
                    append_agent(agent)
                    append_dist(dist_sq)

    def nearest(self, agent: "Agent", radius: float, count: int) -> List["Agent"]:
        """Up to `count` agents within `radius` of `agent`, closest first."""

        found: List["Agent"] = []
        dist_sq: List[float] = []
        self.collect_neighbors(agent.position, radius, found, dist_sq, exclude=agent)
        if len(found) <= 1:
            return found
        order = sorted(range(len(found)), key=dist_sq.__getitem__)
        return [found[i] for i in order[:count]]

    def count_within(self, position: Vector2, radius: float, exclude: "Agent | None" = None) -> int:
        found: List["Agent"] = []
        dist_sq: List[float] = []
        self.collect_neighbors(position, radius, found, dist_sq, exclude=exclude)
        return len(found)

    def _cell_key(self, position: Vector2) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.y // self._cell_size))
