"""Exception types raised by the attack primitives."""
from __future__ import annotations

__all__ = [
    "AttackError",
    "InvalidNormError",
    "ShapeMismatchError",
    "GradientComputationError",
]


class AttackError(Exception):
    """Base class for attack failures."""


class InvalidNormError(AttackError, ValueError):
    """Norm order is not a positive real number (or infinity)."""


class ShapeMismatchError(AttackError, ValueError):
    """Sample, perturbation or label shapes do not line up."""


class GradientComputationError(AttackError, RuntimeError):
    """Autograd could not differentiate the loss w.r.t. the sample."""
