r"""Expectation-maximization with optional posterior constraints."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import torch

from .stats import TrainStats

__all__ = ["CorpusPR"]

logger = logging.getLogger(__name__)


class CorpusPR:
    r"""EM over a corpus whose E-step can be followed by a posterior projection.

    Args:
        model (DependencyModel): Model trained in place.
        instances (sequence of DepInstance): Training sentences.
        constraints (L1LmaxProjection, optional): Projection applied after every
            E-step. Default: ``None`` (plain EM).

    Attributes:
        posteriors (list[DepSentenceDist]): One distribution per sentence,
            holding the (projected) posteriors of the last E-step.

    Examples::

        >>> model = DependencyModel(corpus)
        >>> em = CorpusPR(model, corpus.instances, L1LmaxProjection(corpus, model))
        >>> history = em.train(iterations=5)
    """

    def __init__(self, model, instances: Sequence, constraints=None):
        self.model = model
        self.instances = list(instances)
        self.constraints = constraints
        self.posteriors = model.sentence_dists(self.instances)

    def e_step(self, counts, stats: Optional[TrainStats] = None) -> float:
        r"""Fill ``counts`` from the current model and return the corpus log-likelihood."""
        if self.constraints is not None:
            result = self.constraints.project(counts, self.posteriors, train_stats=stats, pr=self)
            return result.log_likelihood

        if stats is not None:
            stats.e_step_start(self.model, self)
        counts.clear()
        log_likelihood = 0.0
        for dist in self.posteriors:
            dist.cache_model_and_compute_io(self.model.params)
            self.model.add_to_counts(dist, counts)
            log_likelihood += float(dist.log_z)
        if stats is not None:
            stats.e_step_end(self.model, self)
        return log_likelihood

    def train(
        self, iterations: int, stats: Optional[TrainStats] = None, smoothing: float = 1e-3
    ) -> list:
        r"""Run ``iterations`` rounds of E-step and M-step.

        Returns:
            list[float]: Corpus log-likelihood of the model at each E-step.
        """
        if iterations < 0:
            raise ValueError(f"iterations must be non-negative, got {iterations}")
        counts = self.model.new_count_table()
        history = []
        for it in range(iterations):
            log_likelihood = self.e_step(counts, stats)
            history.append(log_likelihood)
            logger.info("EM iteration %d: log-likelihood %.6f", it, log_likelihood)
            if stats is not None:
                stats.m_step_start(self.model, self)
            self.model.m_step(counts, smoothing=smoothing)
            if stats is not None:
                stats.m_step_end(self.model, self)
        return history

    def attachment_accuracy(self) -> float:
        r"""Fraction of gold-annotated words whose max-marginal parent is the gold head.

        Uses the posteriors of the last E-step; sentences without gold heads
        are skipped.

        Raises:
            ValueError: If no sentence carries gold heads.
        """
        correct = 0
        total = 0
        for inst, dist in zip(self.instances, self.posteriors):
            if inst.heads is None:
                continue
            predicted = dist.max_marginal_heads()
            correct += int((predicted == torch.as_tensor(inst.heads)).sum())
            total += inst.num_words
        if total == 0:
            raise ValueError("no sentence has gold heads")
        return correct / total
