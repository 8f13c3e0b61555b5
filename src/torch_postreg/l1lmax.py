r"""L1Lmax posterior projection for dependency-model EM.

For every E-step the sentence posteriors are projected onto the set of
distributions whose per-group L1/L-infinity penalty is small: each constraint
group (say, "all edges with child word *w* and parent tag *t*") pays
``constraint_strength`` times the largest expected count among its
variables, which encourages few distinct parent types per child.

The projection is solved in the dual (see :mod:`torch_postreg.objective`)
with projected gradient descent, warm-started from the previous E-step's
multipliers.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

import torch
from torch import Tensor

from .config import L1LmaxConfig, ProjectionConfig
from .constants import LEFT, RIGHT
from .corpus import DepCorpus
from .dependency import DependencyModel
from .enumerator import ConstraintEnumerator
from .index import ProjectionIndex
from .objective import L1LmaxDualObjective, PosteriorSnapshot
from .optimization import (
    CompositeStoppingCriteria,
    GenericPickFirstStep,
    NormalizedProjectedGradientL2Norm,
    NormalizedValueDifference,
    ProjectedGradientDescent,
    ProjectedOptimizerStats,
    WolfeRuleLineSearch,
)

__all__ = ["ProjectionResult", "L1LmaxProjection", "read_edges_to_not_project"]

logger = logging.getLogger(__name__)

_COMMENT = re.compile(r"#.*")


@dataclass
class ProjectionResult:
    r"""Outcome of one :meth:`L1LmaxProjection.project` call.

    Attributes:
        success (bool): Whether the stopping criterion was met.
        iterations (int): Descent iterations taken.
        value (float): Final dual objective value.
        log_likelihood (float): Sum of unprojected sentence log partitions.
        elapsed (float): Wall-clock seconds.
        stats (ProjectedOptimizerStats): Full optimizer trace.
    """

    success: bool
    iterations: int
    value: float
    log_likelihood: float
    elapsed: float
    stats: ProjectedOptimizerStats


def read_edges_to_not_project(
    path: Union[str, Path], enumerator: ConstraintEnumerator
) -> frozenset:
    r"""Resolve an allow-list file into the groups exempt from projection.

    Each non-blank line (after stripping ``#`` comments) names
    ``<parent> <child>``; both the left and the right edge group of the pair
    are exempt. Pairs never observed in the corpus are logged and skipped.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If a line has fewer than two fields.
    """
    exempt = set()
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = _COMMENT.sub("", line).rstrip()
            if not line.strip():
                continue
            fields = line.split()
            if len(fields) < 2:
                raise ValueError(f"{path}:{lineno}: expected '<parent> <child>', got {line!r}")
            parent, child = fields[0], fields[1]
            for direction in (LEFT, RIGHT):
                group = enumerator.lookup_existing_group(child, parent, direction)
                if group is None:
                    logger.warning(
                        "Edge %s -> %s : %s doesn't seem to exist, hope that's OK",
                        parent,
                        child,
                        direction,
                    )
                else:
                    exempt.add(group)
    return frozenset(exempt)


class L1LmaxProjection:
    r"""Builds the constraint index once and projects posteriors every E-step.

    Args:
        corpus (DepCorpus): Corpus supplying names for word and tag ids.
        model (DependencyModel): Model whose parameters the posteriors are refreshed from.
        instances (sequence of DepInstance, optional): Sentences to project.
            Default: ``corpus.instances``
        config (L1LmaxConfig, optional): Constraint settings. Default: ``L1LmaxConfig()``
        projection_config (ProjectionConfig, optional): Solver settings.
            Default: ``ProjectionConfig()``

    Raises:
        OSError: If ``config.allowed_types_file`` cannot be read.
    """

    def __init__(
        self,
        corpus: DepCorpus,
        model: DependencyModel,
        instances: Optional[Sequence] = None,
        config: Optional[L1LmaxConfig] = None,
        projection_config: Optional[ProjectionConfig] = None,
    ):
        self.corpus = corpus
        self.model = model
        self.config = config if config is not None else L1LmaxConfig()
        self.projection_config = (
            projection_config if projection_config is not None else ProjectionConfig()
        )
        self.instances = list(corpus.instances if instances is None else instances)
        self.enumerator = ConstraintEnumerator(
            corpus,
            self.config.child_type,
            self.config.parent_type,
            use_root=self.config.use_root,
            use_direction=self.config.use_direction,
        )
        self.num_child_ids = self.enumerator.num_ids_child
        self.num_parent_ids = self.enumerator.num_ids_parent
        self.index = ProjectionIndex.build(
            self.instances, self.enumerator, self.config.min_occurrences_for_projection
        )
        if self.config.allowed_types_file is not None:
            self.edges_to_not_project = read_edges_to_not_project(
                self.config.allowed_types_file, self.enumerator
            )
        else:
            self.edges_to_not_project = frozenset()

        self.max_projection_iterations = self.projection_config.max_projection_iterations
        # persisted across E-steps for warm starts
        self.multipliers: Optional[Tensor] = None
        self.snapshot: Optional[PosteriorSnapshot] = None
        self.last_result: Optional[ProjectionResult] = None
        self._in_projection = False

    def set_max_projection_steps(self, steps: int) -> None:
        self.max_projection_iterations = steps

    def get_constraint_strength(self, group: int) -> float:
        r"""Strength of ``group``: zero if exempt or under the occurrence threshold."""
        if group in self.edges_to_not_project:
            return 0.0
        if self.config.min_occurrences_for_projection > self.index.occurrences(group):
            return 0.0
        return float(self.config.constraint_strength)

    def constraint_strengths(self) -> Tensor:
        return torch.tensor(
            [self.get_constraint_strength(g) for g in range(self.index.num_groups)],
            dtype=torch.float64,
        )

    def _check_posteriors(self, posteriors: Sequence) -> None:
        if len(posteriors) != self.index.num_sentences:
            raise ValueError(
                f"expected {self.index.num_sentences} sentence posteriors, got {len(posteriors)}"
            )
        for s, dist in enumerate(posteriors):
            if dist.num_words != self.index.sentence_lengths[s]:
                raise ValueError(
                    f"sentence {s} length changed: indexed {self.index.sentence_lengths[s]}, "
                    f"posterior has {dist.num_words}"
                )

    def _make_optimizer(self) -> ProjectedGradientDescent:
        cfg = self.projection_config
        line_search = WolfeRuleLineSearch(
            GenericPickFirstStep(cfg.initial_step),
            c1=cfg.c1,
            c2=cfg.c2,
            max_step=cfg.max_step,
            max_zoom_evals=cfg.max_zoom_evals,
            max_extrapolation_iters=cfg.max_extrapolation_iters,
        )
        return ProjectedGradientDescent(line_search, max_iterations=self.max_projection_iterations)

    def _make_stopping_criteria(self) -> CompositeStoppingCriteria:
        tolerance = self.projection_config.tolerance
        stop = CompositeStoppingCriteria()
        stop.add(NormalizedProjectedGradientL2Norm(tolerance))
        stop.add(NormalizedValueDifference(tolerance))
        return stop

    def project(self, counts, posteriors: Sequence, train_stats=None, pr=None) -> ProjectionResult:
        r"""Project ``posteriors`` in place and refill ``counts`` from them.

        Args:
            counts: Count table with ``clear()``; refilled through
                ``model.add_to_counts``.
            posteriors (sequence of DepSentenceDist): One per indexed sentence,
                mutated in place.
            train_stats (TrainStats, optional): Receives ``e_step_start`` and
                ``e_step_end`` callbacks.
            pr (optional): The EM driver, passed through to ``train_stats``.

        Returns:
            ProjectionResult: Convergence summary. Non-convergence is logged,
            never raised.

        Raises:
            AssertionError: If the variable index is inconsistent.
            RuntimeError: If called while another projection is running.
        """
        if self._in_projection:
            raise RuntimeError("L1LmaxProjection.project is not re-entrant")
        self._in_projection = True
        try:
            return self._project(counts, posteriors, train_stats, pr)
        finally:
            self._in_projection = False

    def _project(self, counts, posteriors, train_stats, pr) -> ProjectionResult:
        started = time.perf_counter()
        if train_stats is not None:
            train_stats.e_step_start(self.model, pr)

        self.index.check_consistency()
        self._check_posteriors(posteriors)
        if self.multipliers is None:
            self.multipliers = torch.zeros(self.index.num_variables, dtype=torch.float64)
            self.snapshot = PosteriorSnapshot(len(posteriors))

        for dist in posteriors:
            dist.cache_model_and_compute_io(self.model.params)
        self.snapshot.capture(posteriors)

        objective = L1LmaxDualObjective(
            self.multipliers, self.index, self.constraint_strengths(), posteriors, self.snapshot
        )
        stats = ProjectedOptimizerStats()
        succeeded = self._make_optimizer().optimize(
            objective, stats, self._make_stopping_criteria()
        )
        # the line search may have left the posteriors at a trial point
        value = objective.get_value()
        if not succeeded:
            logger.warning(
                "Projection did not converge after %d iterations (|pg| = %.3e)",
                stats.iterations,
                objective.projected_gradient_norm(),
            )

        counts.clear()
        for dist in posteriors:
            self.model.add_to_counts(dist, counts)

        elapsed = time.perf_counter() - started
        logger.info("After optimization: %.3fs, success %s\n%s", elapsed, succeeded, stats.pretty_print(1))
        self.last_result = ProjectionResult(
            success=succeeded,
            iterations=stats.iterations,
            value=value,
            log_likelihood=self.snapshot.total_log_z(),
            elapsed=elapsed,
            stats=stats,
        )
        if train_stats is not None:
            train_stats.e_step_end(self.model, pr)
        return self.last_result
