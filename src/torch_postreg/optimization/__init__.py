r"""Projected gradient descent for convex objectives with simple feasible sets.

This subpackage holds the generic numerical pieces the L1Lmax projection is
configured from:

- :func:`project_onto_capped_simplices`: projection onto a product of capped simplices
- :class:`WolfeRuleLineSearch` with :class:`GenericPickFirstStep`
- :class:`NormalizedProjectedGradientL2Norm`, :class:`NormalizedValueDifference`,
  combined with :class:`CompositeStoppingCriteria`
- :class:`ProjectedGradientDescent` and its :class:`ProjectedOptimizerStats`

Usage
-----
>>> search = WolfeRuleLineSearch(GenericPickFirstStep(1.0), c1=1e-4, c2=0.9)
>>> optimizer = ProjectedGradientDescent(search, max_iterations=200)
>>> stop = CompositeStoppingCriteria(
...     NormalizedProjectedGradientL2Norm(1e-5), NormalizedValueDifference(1e-5)
... )
>>> succeeded = optimizer.optimize(objective, ProjectedOptimizerStats(), stop)
"""

from .linesearch import GenericPickFirstStep, LineSearchResult, WolfeRuleLineSearch
from .projected_gradient import ProjectedGradientDescent
from .projection import capped_simplex_projection, project_onto_capped_simplices
from .stats import ProjectedOptimizerStats
from .stopping import (
    CompositeStoppingCriteria,
    NormalizedProjectedGradientL2Norm,
    NormalizedValueDifference,
    StoppingCriteria,
)

__all__ = [
    "GenericPickFirstStep",
    "LineSearchResult",
    "WolfeRuleLineSearch",
    "ProjectedGradientDescent",
    "capped_simplex_projection",
    "project_onto_capped_simplices",
    "ProjectedOptimizerStats",
    "StoppingCriteria",
    "NormalizedProjectedGradientL2Norm",
    "NormalizedValueDifference",
    "CompositeStoppingCriteria",
]
