r"""Training statistics hooks and L1Lmax diagnostics.

:class:`TrainStats` is the callback surface the EM driver and the projection
invoke around each E-step and M-step. The L1Lmax reporters measure how many
distinct parents each child spreads its posterior mass over:

.. math::
    \mathrm{L1Lmax}(q) = \sum_g \max_{i \in g} E_q[\phi_{g,i}]
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

import torch
from torch import Tensor

__all__ = ["TrainStats", "L1LMaxStats", "TransitionL1LMaxStats", "group_maxima"]

logger = logging.getLogger(__name__)


class TrainStats:
    r"""No-op base class for training callbacks.

    Subclasses override the hooks they care about. ``pr`` is the EM driver
    running the iteration, or ``None`` outside of EM.
    """

    prefix = ""

    def e_step_start(self, model, pr) -> None:
        pass

    def e_step_end(self, model, pr) -> None:
        pass

    def m_step_start(self, model, pr) -> None:
        pass

    def m_step_end(self, model, pr) -> None:
        pass


def group_maxima(expected: Tensor, variable_group: Tensor, num_groups: int) -> Tensor:
    r"""Largest expected count per group; ``0`` for groups without variables.

    Args:
        expected (Tensor): :math:`(V,)` expected counts, non-negative.
        variable_group (Tensor): :math:`(V,)` group id of each variable.
        num_groups (int): Number of groups :math:`G`.

    Returns:
        Tensor: :math:`(G,)` per-group maxima.
    """
    out = expected.new_zeros(num_groups)
    return out.scatter_reduce(0, variable_group, expected, reduce="amax", include_self=True)


class L1LMaxStats(TrainStats):
    r"""Reports the L1Lmax value of the corpus posteriors after each E-step.

    Args:
        projection (L1LmaxProjection): Supplies the constraint index and enumerator.

    Attributes:
        history (list[float]): L1Lmax value recorded at every ``e_step_end``.
    """

    prefix = "L1LMax::"

    def __init__(self, projection):
        self.projection = projection
        self.history: list[float] = []

    def l1lmax(self, posteriors: Sequence) -> float:
        index = self.projection.index
        expected = index.expected_counts(
            [dist.child for dist in posteriors], [dist.root for dist in posteriors]
        )
        return float(group_maxima(expected, index.variable_group, index.num_groups).sum())

    def mean_groups_per_child(self) -> float:
        r"""Average number of distinct edge groups over child ids that have any."""
        sizes = [len(groups) for groups in self.projection.enumerator.groups_per_child() if groups]
        if not sizes:
            return 0.0
        return sum(sizes) / len(sizes)

    def e_step_end(self, model, pr) -> None:
        if pr is None:
            return
        value = self.l1lmax(pr.posteriors)
        self.history.append(value)
        logger.info(
            "%s %.6f groups/child %.3f", self.prefix, value, self.mean_groups_per_child()
        )


class TransitionL1LMaxStats:
    r"""L1Lmax and L1/L2 sparsity of tag-bigram transition posteriors.

    For every ``(prev, next)`` state pair the largest transition posterior
    over all positions of all sentences is tracked, along with the sum of
    squared posteriors.

    Args:
        num_states (int): Number of hidden states :math:`S`.
        tag_names (sequence of str, optional): Name of each state.
    """

    prefix = "TransL1LMax::"

    def __init__(self, num_states: int, tag_names: Optional[Sequence[str]] = None):
        if num_states < 1:
            raise ValueError(f"num_states must be positive, got {num_states}")
        if tag_names is not None and len(tag_names) != num_states:
            raise ValueError(f"expected {num_states} tag names, got {len(tag_names)}")
        self.num_states = num_states
        self.tag_names = list(tag_names) if tag_names is not None else [str(i) for i in range(num_states)]
        self.max_table = torch.zeros(num_states, num_states, dtype=torch.float64)
        self.l2_table = torch.zeros(num_states, num_states, dtype=torch.float64)

    def before_inference(self) -> None:
        self.max_table.zero_()
        self.l2_table.zero_()

    def after_sentence_inference(self, dist) -> None:
        if dist.num_states != self.num_states:
            raise ValueError(f"expected {self.num_states} states, got {dist.num_states}")
        trans = dist.transition_posteriors.to(torch.float64)
        if trans.shape[0] == 0:
            return
        torch.maximum(self.max_table, trans.amax(dim=0), out=self.max_table)
        self.l2_table += (trans * trans).sum(dim=0)

    def per_state(self) -> dict:
        r"""``(l1lmax, l1l2)`` contribution of each previous state, keyed by tag name."""
        S = self.num_states
        totals = self.max_table.sum(dim=1) / S
        l2_totals = torch.sqrt(self.l2_table.sum(dim=1)) / S
        return {
            name: (float(totals[i]), float(l2_totals[i])) for i, name in enumerate(self.tag_names)
        }

    def collect_final_stats(self) -> str:
        per_state = self.per_state().values()
        total_l1lmax = math.fsum(v for v, _ in per_state)
        total_l1l2 = math.fsum(v for _, v in per_state)
        S = self.num_states
        return (
            f"L1LMax {total_l1lmax} AVG {total_l1lmax / S} "
            f"L1LL2 {total_l1l2} AVG {total_l1l2 / S}"
        )
