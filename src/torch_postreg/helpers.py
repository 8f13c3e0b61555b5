import torch

from .semirings import LogSemiring


class _Struct:
    r"""Base class for sentence-level structured models.

    Provides the shared machinery for dynamic programming over a single
    sentence: leaf allocation for the potentials, the log partition function,
    and posterior marginals computed by differentiating the log partition.

    Subclasses implement :meth:`logpartition`, which receives leaf tensors and
    returns a 0-d log partition built from them with differentiable ops.

    Args:
        semiring: Semiring class defining the algebraic operations for inference.
            Default: :class:`~torch_postreg.semirings.LogSemiring`

    See Also:
        :class:`~torch_postreg.dependency.Eisner`: Projective dependency trees
        :class:`~torch_postreg.hmm.LinearChain`: First-order label chains
    """

    def __init__(self, semiring=LogSemiring):
        self.semiring = semiring

    def score(self, potentials, parts):
        r"""score(potentials, parts) -> Tensor

        Compute the score of a specific structure under the model.

        Args:
            potentials (Tensor): Model log-potentials.
            parts (Tensor): Binary indicator of structure parts (same shape as potentials).

        Returns:
            Tensor: 0-d score.
        """
        return self.semiring.prod(torch.mul(potentials, parts).reshape(-1))

    def _leaves(self, potentials, force_grad):
        r"""Detach potentials into fresh leaves, optionally tracking gradients.

        Args:
            potentials (tuple): Potential tensors.
            force_grad (bool): Enable gradients on the returned leaves.

        Returns:
            tuple: Leaf tensors in the same order.
        """
        return tuple(p.detach().clone().requires_grad_(force_grad) for p in potentials)

    def logpartition(self, *potentials):
        r"""Compute the log partition function from leaf potentials.

        Returns:
            Tensor: 0-d log partition.
        """
        raise NotImplementedError()

    def sum(self, *potentials):
        r"""sum(*potentials) -> Tensor

        Compute the semiring sum over all valid structures. For
        :class:`LogSemiring`, this returns the log partition function.
        """
        with torch.no_grad():
            return self.logpartition(*self._leaves(potentials, force_grad=False))

    def marginals(self, *potentials):
        r"""marginals(*potentials) -> Tuple[Tensor, Tuple[Tensor, ...]]

        Compute posterior marginals via automatic differentiation.

        The marginal of each potential is the gradient of the log partition
        function with respect to that potential, which equals the posterior
        probability of the corresponding part under the model.

        Returns:
            Tuple[Tensor, Tuple[Tensor, ...]]: ``(log_z, marginals)`` with one
            marginal tensor per potential, each detached and shaped like it.
        """
        with torch.enable_grad():
            leaves = self._leaves(potentials, force_grad=True)
            v = self.logpartition(*leaves)
            marg = torch.autograd.grad(v, leaves, only_inputs=True, allow_unused=True)
        marg = tuple(
            torch.zeros_like(leaf) if m is None else m.detach() for leaf, m in zip(leaves, marg)
        )
        return v.detach(), self._arrange_marginals(marg)

    def _arrange_marginals(self, marg):
        r"""Arrange marginal gradients into output format.

        Args:
            marg (tuple): Tuple of gradient tensors from autograd.

        Returns:
            tuple: Arranged marginal tensors.
        """
        return marg
