r"""Edge-factored projective dependency model.

Sentence distributions are computed exactly with the Eisner inside algorithm
in the log semiring; edge and root posteriors are the gradients of the log
partition function with respect to the arc and root log-potentials.

Layout conventions:

- Potentials follow ``arc[h, m]`` (head ``h``, modifier ``m``).
- Posteriors follow ``child[c, p]``: probability that token ``c`` attaches to
  parent ``p``. ``root[c]`` is the probability that ``c`` is the root word.
- Exactly one word attaches to the virtual root.
- Direction index ``1`` (``RIGHT``) means the child follows its parent,
  ``0`` (``LEFT``) means it precedes it.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Optional

import torch
from torch import Tensor

from .constants import NEG_INF
from .corpus import DepCorpus, DepInstance
from .helpers import _Struct
from .validation import validate_arc_scores

__all__ = ["Eisner", "DepParams", "DepCountTable", "DepSentenceDist", "DependencyModel"]


class Eisner(_Struct):
    r"""First-order projective dependency trees with a single root.

    Examples::

        >>> arc = torch.randn(4, 4, dtype=torch.float64)
        >>> root = torch.randn(4, dtype=torch.float64)
        >>> log_z, (arc_marg, root_marg) = Eisner().marginals(arc, root)
        >>> torch.isclose(root_marg.sum(), torch.tensor(1.0, dtype=torch.float64))
        tensor(True)
    """

    def logpartition(self, arc, root):
        r"""Inside pass over complete and incomplete spans.

        Args:
            arc (Tensor): Arc log-potentials of shape :math:`(n, n)`; the diagonal is ignored.
            root (Tensor): Root log-potentials of shape :math:`(n,)`.

        Returns:
            Tensor: 0-d log partition.
        """
        validate_arc_scores(arc, root)
        semiring = self.semiring
        n = root.shape[0]
        if n == 1:
            return root[0]

        one = semiring.one.to(dtype=arc.dtype, device=arc.device)
        # complete spans: c_left[i][j] headed by j, c_right[i][j] headed by i
        c_left = [[None] * n for _ in range(n)]
        c_right = [[None] * n for _ in range(n)]
        # incomplete spans: i_left[i][j] holds arc j -> i, i_right[i][j] arc i -> j
        i_left = [[None] * n for _ in range(n)]
        i_right = [[None] * n for _ in range(n)]
        for i in range(n):
            c_left[i][i] = one
            c_right[i][i] = one

        for width in range(1, n):
            for i in range(n - width):
                j = i + width
                split = semiring.sum(
                    torch.stack([semiring.mul(c_right[i][k], c_left[k + 1][j]) for k in range(i, j)])
                )
                i_left[i][j] = semiring.mul(split, arc[j, i])
                i_right[i][j] = semiring.mul(split, arc[i, j])
                c_left[i][j] = semiring.sum(
                    torch.stack([semiring.mul(c_left[i][k], i_left[k][j]) for k in range(i, j)])
                )
                c_right[i][j] = semiring.sum(
                    torch.stack(
                        [semiring.mul(i_right[i][k], c_right[k][j]) for k in range(i + 1, j + 1)]
                    )
                )

        return semiring.sum(
            torch.stack(
                [semiring.times(root[r], c_left[0][r], c_right[r][n - 1]) for r in range(n)]
            )
        )


def _directions(n: int, device=None) -> Tensor:
    r"""``dirs[c, p] = 1`` where child ``c`` follows parent ``p``, else ``0``."""
    pos = torch.arange(n, device=device)
    return (pos.unsqueeze(1) > pos.unsqueeze(0)).long()


@dataclass
class DepParams:
    r"""Log-space model parameters.

    Attributes:
        root (Tensor): Root scores of shape :math:`(\text{num\_tags},)`.
        arc (Tensor): Attachment scores of shape
            :math:`(\text{num\_tags}_{parent}, \text{num\_tags}_{child}, 2)`,
            last dimension indexed by direction.
    """

    root: Tensor
    arc: Tensor

    def __post_init__(self):
        num_tags = self.root.shape[0]
        if self.arc.shape != (num_tags, num_tags, 2):
            raise ValueError(
                f"arc must be (num_tags, num_tags, 2) = ({num_tags}, {num_tags}, 2), "
                f"got {tuple(self.arc.shape)}"
            )

    @property
    def num_tags(self) -> int:
        return int(self.root.shape[0])

    @classmethod
    def uniform(cls, num_tags: int, dtype=torch.float64) -> "DepParams":
        log_p = -torch.log(torch.tensor(float(num_tags), dtype=dtype))
        return cls(
            root=torch.full((num_tags,), float(log_p), dtype=dtype),
            arc=torch.full((num_tags, num_tags, 2), float(log_p), dtype=dtype),
        )

    @classmethod
    def random(cls, num_tags: int, generator=None, dtype=torch.float64) -> "DepParams":
        r"""Random normalized parameters, for breaking symmetry before EM."""
        root = torch.rand(num_tags, generator=generator, dtype=dtype) + 1.0
        arc = torch.rand(num_tags, num_tags, 2, generator=generator, dtype=dtype) + 1.0
        return cls(
            root=torch.log(root / root.sum()),
            arc=torch.log(arc / arc.sum(dim=1, keepdim=True)),
        )


@dataclass
class DepCountTable:
    r"""Expected counts with the same layout as :class:`DepParams`."""

    root: Tensor
    arc: Tensor

    @classmethod
    def zeros(cls, num_tags: int, dtype=torch.float64) -> "DepCountTable":
        return cls(
            root=torch.zeros(num_tags, dtype=dtype),
            arc=torch.zeros(num_tags, num_tags, 2, dtype=dtype),
        )

    def clear(self) -> None:
        self.root.zero_()
        self.arc.zero_()

    def total(self) -> float:
        return float(self.root.sum() + self.arc.sum())


class DepSentenceDist:
    r"""Posterior distribution over the trees of one sentence.

    Holds the sentence log-potentials cached from the model parameters and the
    current posteriors. The posteriors are a working copy: the projection
    overwrites them through :meth:`compute_posteriors` with penalized scores.

    Args:
        instance (DepInstance): The sentence.
        sentence_index (int, optional): Position of the sentence in the corpus.

    Attributes:
        child (Tensor): Edge posteriors of shape :math:`(n, n)`, ``child[c, p]``.
        root (Tensor): Root posteriors of shape :math:`(n,)`.
        log_z (Tensor): 0-d log partition of the current posteriors.
    """

    def __init__(self, instance: DepInstance, sentence_index: Optional[int] = None):
        self.instance = instance
        self.sentence_index = sentence_index
        self.struct = Eisner()
        self.arc_scores: Optional[Tensor] = None
        self.root_scores: Optional[Tensor] = None
        self.child: Optional[Tensor] = None
        self.root: Optional[Tensor] = None
        self.log_z: Optional[Tensor] = None
        self._params: Optional[DepParams] = None

    @property
    def num_words(self) -> int:
        return self.instance.num_words

    def cache_model_and_compute_io(self, params: DepParams) -> None:
        r"""Cache sentence scores from ``params`` and run inside-outside.

        Scores are only re-gathered when ``params`` is a different object from
        the last call; posteriors are always recomputed, discarding any
        penalized posteriors written since.
        """
        if params is self._params and self.arc_scores is not None:
            self.compute_posteriors()
            return
        tags = torch.as_tensor(self.instance.postags, device=params.arc.device)
        dirs = _directions(self.num_words, device=params.arc.device)
        # arc[h, m] = score(parent tag h, child tag m, direction of m w.r.t. h)
        self.arc_scores = params.arc[tags.unsqueeze(1), tags.unsqueeze(0), dirs.t()]
        self.root_scores = params.root[tags]
        self._params = params
        self.compute_posteriors()

    def compute_posteriors(
        self,
        edge_penalty: Optional[Tensor] = None,
        root_penalty: Optional[Tensor] = None,
    ) -> None:
        r"""Recompute posteriors from the cached scores minus penalties.

        Args:
            edge_penalty (Tensor, optional): Log-space penalties of shape
                :math:`(n, n)` in ``[child, parent]`` layout. Default: ``None``
            root_penalty (Tensor, optional): Log-space penalties of shape :math:`(n,)`.
                Default: ``None``
        """
        if self.arc_scores is None:
            raise RuntimeError("cache_model_and_compute_io must be called before compute_posteriors")
        arc = self.arc_scores
        root = self.root_scores
        if edge_penalty is not None:
            arc = arc - edge_penalty.t()
        if root_penalty is not None:
            root = root - root_penalty
        log_z, (arc_marg, root_marg) = self.struct.marginals(arc, root)
        self.child = arc_marg.t().contiguous()
        self.root = root_marg
        self.log_z = log_z
        if not torch.isfinite(self.child).all() or not torch.isfinite(self.root).all():
            warnings.warn(
                f"DepSentenceDist: non-finite posteriors for sentence {self.sentence_index}",
                stacklevel=2,
            )

    def max_marginal_heads(self) -> Tensor:
        r"""Most probable parent of each word under the current posteriors, ``-1`` for the root."""
        if self.child is None:
            raise RuntimeError("cache_model_and_compute_io must be called before max_marginal_heads")
        scores = torch.cat([self.root.unsqueeze(1), self.child], dim=1)
        return scores.argmax(dim=1) - 1


class DependencyModel:
    r"""Tag-based edge-factored dependency model.

    Args:
        corpus (DepCorpus): Corpus whose tag alphabet sizes the parameters.
        params (DepParams, optional): Initial parameters. Default: uniform.
    """

    def __init__(self, corpus: DepCorpus, params: Optional[DepParams] = None):
        self.corpus = corpus
        self.params = params if params is not None else DepParams.uniform(corpus.num_tags)
        if self.params.num_tags != corpus.num_tags:
            raise ValueError(
                f"params cover {self.params.num_tags} tags but corpus has {corpus.num_tags}"
            )

    def new_sentence_dist(self, instance: DepInstance, sentence_index=None) -> DepSentenceDist:
        return DepSentenceDist(instance, sentence_index)

    def sentence_dists(self, instances) -> list:
        return [self.new_sentence_dist(inst, s) for s, inst in enumerate(instances)]

    def new_count_table(self) -> DepCountTable:
        return DepCountTable.zeros(self.params.num_tags, dtype=self.params.arc.dtype)

    def add_to_counts(self, dist: DepSentenceDist, counts: DepCountTable) -> None:
        r"""Add the sentence's current posteriors into ``counts``."""
        tags = torch.as_tensor(dist.instance.postags)
        n = dist.num_words
        counts.root.index_add_(0, tags, dist.root.to(counts.root.dtype))
        child_tags = tags.unsqueeze(1).expand(n, n)
        parent_tags = tags.unsqueeze(0).expand(n, n)
        counts.arc.index_put_(
            (parent_tags, child_tags, _directions(n)),
            dist.child.to(counts.arc.dtype),
            accumulate=True,
        )

    def m_step(self, counts: DepCountTable, smoothing: float = 1e-3) -> None:
        r"""Re-estimate parameters from expected counts.

        Root scores are normalized over child tags; attachment scores are
        normalized over child tags for each parent tag and direction.
        Replaces :attr:`params` with a new object so cached sentence
        distributions notice the change. Without smoothing, cells with zero
        count get score ``NEG_INF`` rather than ``-inf``.
        """
        root = counts.root + smoothing
        arc = counts.arc + smoothing
        self.params = DepParams(
            root=torch.log(root / root.sum()).clamp(min=NEG_INF),
            arc=torch.log(arc / arc.sum(dim=1, keepdim=True).clamp(min=1e-300)).clamp(min=NEG_INF),
        )
