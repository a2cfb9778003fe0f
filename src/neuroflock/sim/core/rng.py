from __future__ import annotations

import math
import random

import numpy as np
from pygame.math import Vector2

_NUMPY_STREAM_SALT = 0x5EEDB8A1D0C0FFEE


def derive_stream_seed(seed: int, salt: int) -> int:
    return (int(seed) ^ int(salt)) & 0xFFFFFFFFFFFFFFFF


class DeterministicRng:
    """Seedable source for every random draw in the simulation.

    Scalar draws come from a stdlib ``random.Random`` stream; weight buffers are
    drawn from a separate numpy ``Generator`` derived from the same seed so the
    two streams never disturb each other.
    """

    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)
        self._numpy = np.random.default_rng(derive_stream_seed(seed, _NUMPY_STREAM_SALT))

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def numpy(self) -> np.random.Generator:
        return self._numpy

    def reset(self) -> None:
        self._random.seed(self._seed)
        self._numpy = np.random.default_rng(derive_stream_seed(self._seed, _NUMPY_STREAM_SALT))

    def next_float(self) -> float:
        return self._random.random()

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_int(self, max_value: int) -> int:
        return self._random.randrange(max_value)

    def next_unit_circle(self) -> Vector2:
        angle = self._random.uniform(0, 2 * math.pi)
        vector = Vector2()
        vector.from_polar((1, math.degrees(angle)))
        return vector
