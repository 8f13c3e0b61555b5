r"""Dual objective of the L1Lmax posterior projection.

The primal problem over the projected posteriors :math:`q` is

.. math::
    \min_q \ \mathrm{KL}(q \,\|\, p) + \sum_g \sigma_g \max_i E_q[\phi_{g,i}]

where :math:`g` ranges over constraint groups, :math:`i` over the group's
optimization variables and :math:`\phi_{g,i}` counts the edges (or the root
attachment) that variable covers. Its dual, minimized here, is

.. math::
    f(\lambda) = \sum_s \log Z_s(\theta_s - A_s\lambda) - \log Z_s(\theta_s)
    \quad \text{s.t.} \quad \lambda \ge 0,\ \sum_i \lambda_{g,i} \le \sigma_g

with gradient :math:`\partial f / \partial \lambda_k = -E_q[\phi_k]`, where
:math:`q_s \propto p_s \exp(-A_s \lambda)` is obtained by subtracting each
multiplier from the log-scores of the edges it covers and rerunning
inside-outside. :math:`f(0) = 0`, and at :math:`\lambda = 0` the posteriors
are the snapshot. Groups with :math:`\sigma_g = 0` are pinned at zero and
their gradient entries are zeroed.
"""

from __future__ import annotations

from typing import Optional, Sequence

import torch
from torch import Tensor

from .index import ProjectionIndex
from .optimization.projection import project_onto_capped_simplices
from .validation import validate_multipliers

__all__ = ["PosteriorSnapshot", "L1LmaxDualObjective"]


class PosteriorSnapshot:
    r"""Immutable-by-convention copy of the posteriors before projection.

    Args:
        num_sentences (int): Number of sentence slots.

    Attributes:
        children (list[Tensor]): Edge posteriors per sentence.
        roots (list[Tensor]): Root posteriors per sentence.
        log_z (list[Tensor]): Baseline log partition per sentence.
    """

    def __init__(self, num_sentences: int):
        self.children: list[Optional[Tensor]] = [None] * num_sentences
        self.roots: list[Optional[Tensor]] = [None] * num_sentences
        self.log_z: list[Optional[Tensor]] = [None] * num_sentences

    def __len__(self) -> int:
        return len(self.children)

    def capture(self, posteriors: Sequence) -> None:
        if len(posteriors) != len(self):
            raise ValueError(
                f"snapshot holds {len(self)} sentences, got {len(posteriors)} posteriors"
            )
        for s, dist in enumerate(posteriors):
            self.children[s] = dist.child.clone()
            self.roots[s] = dist.root.clone()
            self.log_z[s] = dist.log_z.clone()

    def restore_sentence(self, dist, s: int) -> None:
        dist.child = self.children[s].clone()
        dist.root = self.roots[s].clone()
        dist.log_z = self.log_z[s].clone()

    def restore(self, posteriors: Sequence) -> None:
        for s, dist in enumerate(posteriors):
            self.restore_sentence(dist, s)

    def total_log_z(self) -> float:
        return float(sum(float(z) for z in self.log_z if z is not None))


class L1LmaxDualObjective:
    r"""Value and gradient of the L1Lmax dual for the projected gradient driver.

    The multiplier tensor is borrowed from the caller and updated in place,
    so the final multipliers outlive the objective. Posteriors are a working
    copy rewritten on every evaluation; the snapshot is only read.

    Args:
        multipliers (Tensor): :math:`(V,)` multiplier buffer, updated in place.
        index (ProjectionIndex): Variable layout.
        caps (Tensor): :math:`(G,)` constraint strength per group.
        posteriors (sequence of DepSentenceDist): Live sentence posteriors.
        snapshot (PosteriorSnapshot): Posteriors at :math:`\lambda = 0`.
    """

    def __init__(
        self,
        multipliers: Tensor,
        index: ProjectionIndex,
        caps: Tensor,
        posteriors: Sequence,
        snapshot: PosteriorSnapshot,
    ):
        validate_multipliers(multipliers, index.num_variables)
        if caps.shape != (index.num_groups,):
            raise ValueError(f"caps must have shape ({index.num_groups},), got {tuple(caps.shape)}")
        self.parameters = multipliers
        self.index = index
        self.caps = caps.to(multipliers.dtype)
        self.posteriors = posteriors
        self.snapshot = snapshot
        self.active = self.caps[index.variable_group] > 0
        self.num_evaluations = 0
        self._evaluated_at: Optional[Tensor] = None
        self._value = 0.0
        self._gradient = torch.zeros_like(multipliers)
        self._expected = torch.zeros_like(multipliers)

    @property
    def dimension(self) -> int:
        return self.parameters.shape[0]

    def get_parameters(self) -> Tensor:
        return self.parameters.clone()

    def set_parameters(self, x: Tensor) -> None:
        self.parameters.copy_(x)

    def project(self, x: Tensor) -> Tensor:
        return project_onto_capped_simplices(x, self.index.variable_group, self.caps)

    def _ensure_fresh(self) -> None:
        if self._evaluated_at is not None and torch.equal(self._evaluated_at, self.parameters):
            return
        value = 0.0
        for s, dist in enumerate(self.posteriors):
            edge_penalty, root_penalty = self.index.penalties(self.parameters, s)
            if edge_penalty.any() or root_penalty.any():
                dist.compute_posteriors(edge_penalty, root_penalty)
                value += float(dist.log_z - self.snapshot.log_z[s])
            else:
                self.snapshot.restore_sentence(dist, s)
        expected = self.index.expected_counts(
            [dist.child for dist in self.posteriors], [dist.root for dist in self.posteriors]
        ).to(self.parameters.dtype)
        gradient = -expected
        gradient[~self.active] = 0.0
        self._expected = expected
        self._value = value
        self._gradient = gradient
        self._evaluated_at = self.parameters.clone()
        self.num_evaluations += 1

    def get_value(self) -> float:
        self._ensure_fresh()
        return self._value

    def get_gradient(self) -> Tensor:
        self._ensure_fresh()
        return self._gradient.clone()

    def expected_counts(self) -> Tensor:
        r""":math:`E_q[\phi_k]` at the current multipliers."""
        self._ensure_fresh()
        return self._expected.clone()

    def projected_gradient_norm(self) -> float:
        x = self.parameters
        return float(torch.linalg.vector_norm(self.project(x - self.get_gradient()) - x))

    def restore(self) -> None:
        r"""Write the snapshot back into the live posteriors and zero the multipliers."""
        self.parameters.zero_()
        self.snapshot.restore(self.posteriors)
        self._evaluated_at = None
