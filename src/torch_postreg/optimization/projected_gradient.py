r"""Projected gradient descent driver.

The objective is any object exposing:

- ``dimension`` (int)
- ``get_parameters()`` / ``set_parameters(x)``
- ``get_value()`` and ``get_gradient()`` at the current parameters
- ``project(x)``: Euclidean projection onto the feasible set
"""

import logging

import torch

from .linesearch import WolfeRuleLineSearch
from .stats import ProjectedOptimizerStats
from .stopping import StoppingCriteria

__all__ = ["ProjectedGradientDescent"]

logger = logging.getLogger(__name__)


class ProjectedGradientDescent:
    r"""Minimize a differentiable objective over a convex set.

    Args:
        line_search (WolfeRuleLineSearch): Step-length search on the projection arc.
        max_iterations (int, optional): Iteration cap. Default: ``200``
    """

    def __init__(self, line_search: WolfeRuleLineSearch, max_iterations: int = 200):
        self.line_search = line_search
        self.max_iterations = max_iterations

    def set_max_iterations(self, max_iterations: int) -> None:
        self.max_iterations = max_iterations

    def optimize(self, objective, stats: ProjectedOptimizerStats, stop: StoppingCriteria) -> bool:
        r"""Run until ``stop`` triggers, the line search fails, or the cap is hit.

        Returns:
            bool: ``True`` if the stopping criterion was met. On failure the
            objective is left at the best iterate reached.
        """
        stats.start()
        stop.reset()
        x = objective.project(objective.get_parameters())
        objective.set_parameters(x)
        succeeded = False
        try:
            for iteration in range(self.max_iterations + 1):
                value = objective.get_value()
                gradient = objective.get_gradient()
                direction = objective.project(x - gradient) - x
                stats.collect_iteration(value, float(torch.linalg.vector_norm(direction)))
                if stop.stop_optimization(value, direction):
                    succeeded = True
                    break
                if iteration == self.max_iterations:
                    break
                result = self.line_search.minimize(
                    objective, x, value, gradient, direction, iteration=iteration
                )
                if result is None:
                    stats.line_search_failures += 1
                    logger.debug("projected gradient: line search failed at iteration %d", iteration)
                    objective.set_parameters(x)
                    break
                stats.collect_step(result.step, result.evaluations)
                x = result.point
                objective.set_parameters(x)
        finally:
            stats.finish()
        return succeeded
