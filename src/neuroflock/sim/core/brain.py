from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import List, Sequence, Tuple, TYPE_CHECKING

import numpy as np

from .errors import DimensionMismatch

if TYPE_CHECKING:
    from .rng import DeterministicRng

INPUT_SIZE = 8
HIDDEN_SIZE = 16
OUTPUT_SIZE = 2


@dataclass(frozen=True)
class BrainArchitecture:
    input_size: int = INPUT_SIZE
    hidden_size: int = HIDDEN_SIZE
    output_size: int = OUTPUT_SIZE
    hidden_activation: str = "relu"
    output_activation: str = "tanh"

    @property
    def shapes(self) -> Tuple[Tuple[int, ...], ...]:
        return (
            (self.input_size, self.hidden_size),
            (self.hidden_size,),
            (self.hidden_size, self.output_size),
            (self.output_size,),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @staticmethod
    def from_dict(raw: dict) -> "BrainArchitecture":
        return BrainArchitecture(**raw)


DEFAULT_ARCHITECTURE = BrainArchitecture()


class Brain:
    """Feed-forward steering network: 8 inputs -> 16 ReLU -> 2 tanh.

    The brain owns its four numpy buffers (w1, b1, w2, b2). ``clone`` and
    ``crossover`` always produce fresh buffers, so a brain can be disposed
    without affecting any copy made from it.
    """

    def __init__(
        self,
        w1: np.ndarray,
        b1: np.ndarray,
        w2: np.ndarray,
        b2: np.ndarray,
        architecture: BrainArchitecture = DEFAULT_ARCHITECTURE,
    ):
        buffers = (w1, b1, w2, b2)
        actual = tuple(np.shape(buffer) for buffer in buffers)
        if actual != architecture.shapes:
            raise DimensionMismatch(architecture.shapes, actual)
        self._architecture = architecture
        self._layers: Tuple[np.ndarray, ...] = tuple(np.array(buffer, dtype=np.float64) for buffer in buffers)
        self._disposed = False

    @classmethod
    def create(cls, rng: DeterministicRng, architecture: BrainArchitecture = DEFAULT_ARCHITECTURE) -> "Brain":
        generator = rng.numpy
        limit1 = np.sqrt(6.0 / (architecture.input_size + architecture.hidden_size))
        limit2 = np.sqrt(6.0 / (architecture.hidden_size + architecture.output_size))
        return cls(
            generator.uniform(-limit1, limit1, size=(architecture.input_size, architecture.hidden_size)),
            np.zeros(architecture.hidden_size),
            generator.uniform(-limit2, limit2, size=(architecture.hidden_size, architecture.output_size)),
            np.zeros(architecture.output_size),
            architecture,
        )

    @classmethod
    def from_buffers(
        cls, buffers: Sequence[Sequence[float]], architecture: BrainArchitecture = DEFAULT_ARCHITECTURE
    ) -> "Brain":
        if len(buffers) != len(architecture.shapes):
            raise DimensionMismatch(len(architecture.shapes), len(buffers), context="weight buffer count")
        arrays = []
        for flat, shape in zip(buffers, architecture.shapes):
            values = np.asarray(flat, dtype=np.float64)
            if values.size != int(np.prod(shape)):
                raise DimensionMismatch(shape, values.shape, context="weight buffer")
            arrays.append(values.reshape(shape))
        return cls(*arrays, architecture=architecture)

    @property
    def architecture(self) -> BrainArchitecture:
        return self._architecture

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def layers(self) -> Tuple[np.ndarray, ...]:
        self._check_alive()
        return self._layers

    @property
    def parameter_count(self) -> int:
        return sum(int(np.prod(shape)) for shape in self._architecture.shapes)

    def predict(self, inputs: Sequence[float]) -> np.ndarray:
        self._check_alive()
        x = np.asarray(inputs, dtype=np.float64)
        if x.shape != (self._architecture.input_size,):
            raise DimensionMismatch((self._architecture.input_size,), x.shape, context="brain input")
        w1, b1, w2, b2 = self._layers
        hidden = np.maximum(x @ w1 + b1, 0.0)
        return np.tanh(hidden @ w2 + b2)

    def clone(self) -> "Brain":
        self._check_alive()
        return Brain(*(layer.copy() for layer in self._layers), architecture=self._architecture)

    def mutate(self, rate: float, rng: DeterministicRng, amplitude: float = 0.25) -> None:
        self._check_alive()
        if rate <= 0.0:
            return
        generator = rng.numpy
        for layer in self._layers:
            mask = generator.random(layer.shape) < rate
            offsets = generator.uniform(-amplitude, amplitude, size=layer.shape)
            layer += np.where(mask, offsets, 0.0)

    @staticmethod
    def crossover(parent_a: "Brain", parent_b: "Brain", rng: DeterministicRng) -> "Brain":
        parent_a._check_alive()
        parent_b._check_alive()
        if parent_a.architecture.shapes != parent_b.architecture.shapes:
            raise DimensionMismatch(parent_a.architecture.shapes, parent_b.architecture.shapes, context="crossover")
        generator = rng.numpy
        child_layers = []
        for layer_a, layer_b in zip(parent_a._layers, parent_b._layers):
            if layer_a.shape != layer_b.shape:
                raise DimensionMismatch(layer_a.shape, layer_b.shape, context="crossover")
            take_a = generator.random(layer_a.shape) < 0.5
            child_layers.append(np.where(take_a, layer_a, layer_b))
        return Brain(*child_layers, architecture=parent_a.architecture)

    def to_buffers(self) -> List[List[float]]:
        self._check_alive()
        return [layer.ravel().tolist() for layer in self._layers]

    def dispose(self) -> None:
        if self._disposed:
            return
        self._layers = ()
        self._disposed = True

    def _check_alive(self) -> None:
        if self._disposed:
            raise RuntimeError("brain has been disposed")
