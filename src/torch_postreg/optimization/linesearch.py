r"""Line search along the projection arc.

Given a feasible point :math:`x` with gradient :math:`g`, the search direction
is the projected-gradient step :math:`d = P(x - g) - x`, and trial points
follow the arc :math:`x(a) = P(x + a\,d)`. For :math:`a \le 1` the arc is the
straight segment inside the feasible set; longer steps are projected back.

The one-dimensional function searched is :math:`\phi(a) = f(x(a))` with slope
:math:`\phi'(a) = \nabla f(x(a)) \cdot (x(a) - x) / a`, which is exact on the
segment. Steps satisfying the strong Wolfe conditions are found by
extrapolation followed by bisection zoom (Nocedal & Wright, Algorithm 3.5).
"""

import logging
from dataclasses import dataclass
from typing import Optional

import torch
from torch import Tensor

__all__ = ["GenericPickFirstStep", "LineSearchResult", "WolfeRuleLineSearch"]

logger = logging.getLogger(__name__)


class GenericPickFirstStep:
    """Always start the search at the same step length."""

    def __init__(self, initial_step: float = 1.0):
        if initial_step <= 0:
            raise ValueError(f"initial_step must be positive, got {initial_step}")
        self.initial_step = initial_step

    def first_step(self, iteration: int) -> float:
        return self.initial_step


@dataclass
class LineSearchResult:
    step: float
    value: float
    evaluations: int
    point: Tensor


class _ArcFunction:
    """Evaluates phi and phi' on the projection arc, counting evaluations."""

    def __init__(self, objective, x: Tensor, direction: Tensor):
        self.objective = objective
        self.x = x
        self.direction = direction
        self.evaluations = 0

    def point(self, a: float) -> Tensor:
        return self.objective.project(self.x + a * self.direction)

    def value(self, a: float) -> float:
        self.objective.set_parameters(self.point(a))
        self.evaluations += 1
        return self.objective.get_value()

    def slope(self, a: float) -> float:
        # objective already sits at x(a) after value(a)
        moved = self.objective.get_parameters() - self.x
        return float(torch.dot(self.objective.get_gradient(), moved)) / a


class WolfeRuleLineSearch:
    r"""Strong-Wolfe line search on the projection arc.

    Args:
        pick_first_step (GenericPickFirstStep): Initial step policy.
        c1 (float): Sufficient-decrease constant. Default: ``1e-4``
        c2 (float): Curvature constant. Default: ``0.9``
        max_step (float): Largest step tried during extrapolation. Default: ``10``
        max_zoom_evals (int): Evaluation budget for the zoom phase. Default: ``10``
        max_extrapolation_iters (int): Budget for the extrapolation phase. Default: ``200``
    """

    def __init__(
        self,
        pick_first_step: GenericPickFirstStep,
        c1: float = 1e-4,
        c2: float = 0.9,
        max_step: float = 10.0,
        max_zoom_evals: int = 10,
        max_extrapolation_iters: int = 200,
    ):
        self.pick_first_step = pick_first_step
        self.c1 = c1
        self.c2 = c2
        self.max_step = max_step
        self.max_zoom_evals = max_zoom_evals
        self.max_extrapolation_iters = max_extrapolation_iters

    def minimize(
        self,
        objective,
        x: Tensor,
        value: float,
        gradient: Tensor,
        direction: Tensor,
        iteration: int = 0,
    ) -> Optional[LineSearchResult]:
        r"""Search for a step from ``x`` along ``direction``.

        Returns:
            LineSearchResult or None: The accepted step, or ``None`` when no
            step with sufficient decrease was found. The objective is left at
            the last trial point either way.
        """
        arc = _ArcFunction(objective, x, direction)
        phi0 = value
        dphi0 = float(torch.dot(gradient, direction))
        if dphi0 >= 0:
            logger.debug("line search: direction is not a descent direction (%.3e)", dphi0)
            return None

        a_prev, phi_prev = 0.0, phi0
        a = min(self.pick_first_step.first_step(iteration), self.max_step)
        for i in range(self.max_extrapolation_iters):
            phi_a = arc.value(a)
            if phi_a > phi0 + self.c1 * a * dphi0 or (i > 0 and phi_a >= phi_prev):
                return self._zoom(arc, phi0, dphi0, a_prev, phi_prev, a)
            dphi_a = arc.slope(a)
            if abs(dphi_a) <= -self.c2 * dphi0:
                return self._accept(arc, a, phi_a)
            if dphi_a >= 0:
                return self._zoom(arc, phi0, dphi0, a, phi_a, a_prev)
            if a >= self.max_step:
                return self._accept(arc, a, phi_a)
            a_prev, phi_prev = a, phi_a
            a = min(2.0 * a, self.max_step)
        if a_prev > 0:
            return self._accept(arc, a_prev, phi_prev)
        return None

    def _zoom(self, arc, phi0, dphi0, lo, phi_lo, hi) -> Optional[LineSearchResult]:
        for _ in range(self.max_zoom_evals):
            a = 0.5 * (lo + hi)
            phi_a = arc.value(a)
            if phi_a > phi0 + self.c1 * a * dphi0 or phi_a >= phi_lo:
                hi = a
            else:
                dphi_a = arc.slope(a)
                if abs(dphi_a) <= -self.c2 * dphi0:
                    return self._accept(arc, a, phi_a)
                if dphi_a * (hi - lo) >= 0:
                    hi = lo
                lo, phi_lo = a, phi_a
        if lo > 0:
            return self._accept(arc, lo, phi_lo)
        logger.debug("line search: zoom exhausted %d evaluations", self.max_zoom_evals)
        return None

    def _accept(self, arc, a, phi_a) -> LineSearchResult:
        return LineSearchResult(step=a, value=phi_a, evaluations=arc.evaluations, point=arc.point(a))
