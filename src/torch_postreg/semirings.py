r"""Semiring used by the sentence-level inference algorithms.

Only the log semiring is needed here: the dependency and chain structures
compute log partition functions, and autograd through them gives posterior
marginals.

Examples::

    >>> from torch_postreg.semirings import LogSemiring
    >>> LogSemiring.plus(torch.tensor(0.0), torch.tensor(0.0))
    tensor(0.6931)
"""

import torch


class Semiring:
    r"""Base semiring class for structured prediction algorithms.

    A semiring :math:`(K, \oplus, \otimes, \bar{0}, \bar{1})` provides:

    - An addition operation :math:`\oplus` (commutative, associative)
    - A multiplication operation :math:`\otimes` (associative, distributes over :math:`\oplus`)
    - Zero element :math:`\bar{0}` and one element :math:`\bar{1}`

    Subclasses must define ``zero``, ``one``, ``sum(xs, dim)`` and ``mul(a, b)``.

    Based on semiring parsing framework from Goodman (1999).
    """

    @classmethod
    def times(cls, *ls):
        r"""times(*ls) -> Tensor

        Multiply a sequence of tensors together using :math:`\otimes`.
        """
        cur = ls[0]
        for item in ls[1:]:
            cur = cls.mul(cur, item)
        return cur

    @staticmethod
    def sum(xs, dim=-1):
        r"""sum(xs, dim=-1) -> Tensor

        Semiring sum (:math:`\oplus`) reduction over dimension.
        """
        raise NotImplementedError()

    @staticmethod
    def mul(a, b):
        raise NotImplementedError()

    @classmethod
    def plus(cls, a, b):
        r"""plus(a, b) -> Tensor

        Binary semiring addition: :math:`a \oplus b`.
        """
        return cls.sum(torch.stack([a, b], dim=-1))


class LogSemiring(Semiring):
    r"""Log-space semiring :math:`(\mathbb{R} \cup \{-\infty\}, \text{logsumexp}, +, -\infty, 0)`.

    Used for computing partition functions. **Gradients give posterior marginals.**
    """

    zero = torch.tensor(-1e5)
    one = torch.tensor(-0.0)

    @staticmethod
    def sum(xs, dim=-1):
        return torch.logsumexp(xs, dim=dim)

    @staticmethod
    def mul(a, b):
        return a + b

    @staticmethod
    def prod(a, dim=-1):
        return torch.sum(a, dim=dim)
