r"""First-order label chains (hidden Markov model posteriors).

The forward algorithm runs in the log semiring over position-specific
transition potentials, so differentiating the log partition yields a separate
transition posterior for every position.
"""

from __future__ import annotations

from typing import Optional

import torch
from torch import Tensor

from .helpers import _Struct
from .validation import validate_chain_potentials

__all__ = ["LinearChain", "HMMSentenceDist"]


class LinearChain(_Struct):
    r"""Linear-chain structure over :math:`T` positions and :math:`S` states."""

    def logpartition(self, emission, transition, initial):
        r"""Forward pass.

        Args:
            emission (Tensor): Emission log-potentials of shape :math:`(T, S)`.
            transition (Tensor): Transition log-potentials of shape :math:`(T-1, S, S)`,
                ``transition[t, prev, next]`` between positions ``t`` and ``t+1``.
            initial (Tensor): Initial-state log-potentials of shape :math:`(S,)`.

        Returns:
            Tensor: 0-d log partition.
        """
        validate_chain_potentials(emission, transition, initial)
        semiring = self.semiring
        alpha = semiring.mul(initial, emission[0])
        for t in range(1, emission.shape[0]):
            alpha = semiring.mul(
                semiring.sum(semiring.mul(alpha.unsqueeze(1), transition[t - 1]), dim=0),
                emission[t],
            )
        return semiring.sum(alpha, dim=-1)


class HMMSentenceDist:
    r"""Posterior over state sequences for one sentence.

    Args:
        emission (Tensor): Emission log-potentials of shape :math:`(T, S)`.
        transition (Tensor): Transition log-potentials of shape :math:`(S, S)`, or
            :math:`(T-1, S, S)` when they vary by position.
        initial (Tensor, optional): Initial-state log-potentials of shape :math:`(S,)`.
            Default: uniform.

    Attributes:
        state_posteriors (Tensor): :math:`(T, S)` state marginals.
        transition_posteriors (Tensor): :math:`(T-1, S, S)` transition marginals.
        log_z (Tensor): 0-d log partition.
    """

    def __init__(self, emission: Tensor, transition: Tensor, initial: Optional[Tensor] = None):
        validate_chain_potentials(emission, transition, initial)
        if initial is None:
            initial = torch.zeros(emission.shape[1], dtype=emission.dtype, device=emission.device)
        self.struct = LinearChain()
        per_position = transition
        if transition.ndim == 2:
            per_position = transition.unsqueeze(0).expand(emission.shape[0] - 1, *transition.shape)
        self.log_z, (state, trans, _) = self.struct.marginals(emission, per_position, initial)
        self.state_posteriors = state
        self.transition_posteriors = trans

    @property
    def num_positions(self) -> int:
        return int(self.state_posteriors.shape[0])

    @property
    def num_states(self) -> int:
        return int(self.state_posteriors.shape[1])

    def transition_posterior(self, pos: int, prev_state: int, next_state: int) -> float:
        return float(self.transition_posteriors[pos, prev_state, next_state])
