r"""Stopping criteria for projected gradient descent.

Both criteria are normalized by the first quantity they observe, so the same
tolerance works regardless of the objective's scale.
"""

import math

import torch
from torch import Tensor

__all__ = [
    "StoppingCriteria",
    "NormalizedProjectedGradientL2Norm",
    "NormalizedValueDifference",
    "CompositeStoppingCriteria",
]


class StoppingCriteria:
    """Base class; ``stop_optimization`` is called once per iteration."""

    def reset(self) -> None:
        pass

    def stop_optimization(self, value: float, projected_gradient: Tensor) -> bool:
        raise NotImplementedError


class NormalizedProjectedGradientL2Norm(StoppingCriteria):
    r"""Stop when :math:`\|P(x - g) - x\|_2 / \|P(x_0 - g_0) - x_0\|_2 < \text{tol}`.

    An initial projected gradient of zero means the start point is already
    optimal.
    """

    def __init__(self, tolerance: float):
        self.tolerance = tolerance
        self.reset()

    def reset(self) -> None:
        self.initial_norm = None

    def stop_optimization(self, value: float, projected_gradient: Tensor) -> bool:
        norm = float(torch.linalg.vector_norm(projected_gradient))
        if self.initial_norm is None:
            self.initial_norm = norm
        if self.initial_norm == 0.0:
            return True
        return norm / self.initial_norm < self.tolerance


class NormalizedValueDifference(StoppingCriteria):
    r"""Stop when the change in value, relative to the first change, drops below ``tol``."""

    def __init__(self, tolerance: float):
        self.tolerance = tolerance
        self.reset()

    def reset(self) -> None:
        self.previous_value = None
        self.initial_difference = None

    def stop_optimization(self, value: float, projected_gradient: Tensor) -> bool:
        if not math.isfinite(value):
            return False
        previous, self.previous_value = self.previous_value, value
        if previous is None:
            return False
        difference = abs(previous - value)
        if self.initial_difference is None:
            self.initial_difference = difference
        if self.initial_difference == 0.0:
            return True
        return difference / self.initial_difference < self.tolerance


class CompositeStoppingCriteria(StoppingCriteria):
    """Stop as soon as any member criterion says so. Every member sees every iteration."""

    def __init__(self, *criteria: StoppingCriteria):
        self.criteria = list(criteria)

    def add(self, criterion: StoppingCriteria) -> None:
        self.criteria.append(criterion)

    def reset(self) -> None:
        for criterion in self.criteria:
            criterion.reset()

    def stop_optimization(self, value: float, projected_gradient: Tensor) -> bool:
        decisions = [c.stop_optimization(value, projected_gradient) for c in self.criteria]
        return any(decisions)
