"""Error hierarchy for the neuroevolution core."""

from __future__ import annotations


class NeuroflockError(Exception):
    """Base for all neuroflock errors."""


class InvalidConfiguration(NeuroflockError, ValueError):
    """A configuration value is out of its valid range."""


class DimensionMismatch(NeuroflockError, ValueError):
    """Two brains (or a brain and its input) disagree on shape."""

    def __init__(self, expected: object, actual: object, context: str = "brain"):
        self.expected = expected
        self.actual = actual
        super().__init__(f"{context}: expected shape {expected}, got {actual}")


class PersistenceFailure(NeuroflockError):
    """Saving or loading a champion failed."""

    def __init__(self, path: object, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
