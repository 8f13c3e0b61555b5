r"""Bijection between flat optimization variables and (sentence, edge) space.

Every optimization variable is one :class:`SentenceChildParent`: a child token
of a sentence together with all parent positions that put the edge in the
same constraint group. The flat variable order is group-major: all variables
of group 0, then group 1, and so on, so each group occupies a contiguous
slice of the multiplier vector.

The index is built in two passes over the corpus with an identical traversal:
the first pass counts variables per group, the second allocates each group's
slots and fills them in order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Sequence

import torch
from torch import Tensor

from .constants import ROOT_PARENT
from .corpus import DepInstance
from .enumerator import ConstraintEnumerator

__all__ = ["SentenceChildParent", "ProjectionIndex"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentenceChildParent:
    r"""One optimization variable in structured coordinates.

    Attributes:
        sentence (int): Sentence index in the corpus.
        child (int): Child token position.
        parents (tuple[int, ...]): Parent positions sharing the variable's group,
            or ``(ROOT_PARENT,)`` for a root attachment.
    """

    sentence: int
    child: int
    parents: tuple

    def __post_init__(self):
        if self.parents is None:
            raise AssertionError("parents is null")
        parents = tuple(int(p) for p in self.parents)
        if len(parents) == 0:
            raise AssertionError("parents is empty")
        object.__setattr__(self, "parents", parents)

    @property
    def is_root(self) -> bool:
        return self.parents == (ROOT_PARENT,)


def _walk(
    instances: Sequence[DepInstance], enumerator: ConstraintEnumerator
) -> Iterator[tuple]:
    r"""Yield ``(group, sentence, child, parents)`` in canonical traversal order.

    For every child the root group comes first, then each distinct edge group
    in order of its first parent position. Parents mapping to the same group
    are merged into one variable. Self pairs are not edges and are skipped.
    """
    for s, instance in enumerate(instances):
        n = instance.num_words
        for child in range(n):
            root_group = enumerator.group_for_root(instance, child)
            if root_group is not None:
                yield root_group, s, child, (ROOT_PARENT,)
            parents_by_group: dict[int, list[int]] = {}
            for parent in range(n):
                if parent == child:
                    continue
                group = enumerator.group_for_edge(instance, child, parent)
                parents_by_group.setdefault(group, []).append(parent)
            for group, parents in parents_by_group.items():
                yield group, s, child, tuple(parents)


class ProjectionIndex:
    r"""Group-ordered index of optimization variables.

    Args:
        group_to_variables (sequence of sequences): Variables of each group, by group id.
        sentence_lengths (sequence of int): Token count of every sentence.
        min_occurrences (int, optional): Minimum variables a group needs to be
            projected. Default: ``0``

    Attributes:
        group_to_variables (tuple[tuple[SentenceChildParent, ...], ...]): Per-group variables.
        variable_to_structured (tuple[SentenceChildParent, ...]): Flat concatenation.
        variable_group (Tensor): Group id of every flat variable, shape :math:`(V,)`.
        group_offsets (Tensor): Start of each group's slice, shape :math:`(G+1,)`.
        edge_variable (list[Tensor]): Per sentence, :math:`(n, n)` flat variable of
            edge ``[child, parent]``, ``-1`` where none.
        root_variable (list[Tensor]): Per sentence, :math:`(n,)` flat variable of
            each root attachment, ``-1`` where none.
    """

    def __init__(self, group_to_variables, sentence_lengths, min_occurrences: int = 0):
        self.group_to_variables = tuple(tuple(refs) for refs in group_to_variables)
        self.variable_to_structured = tuple(
            ref for refs in self.group_to_variables for ref in refs
        )
        self.min_occurrences = min_occurrences
        self.sentence_lengths = tuple(int(n) for n in sentence_lengths)

        counts = torch.tensor([len(refs) for refs in self.group_to_variables], dtype=torch.long)
        self.group_offsets = torch.zeros(len(self.group_to_variables) + 1, dtype=torch.long)
        self.group_offsets[1:] = torch.cumsum(counts, dim=0)
        self.variable_group = torch.repeat_interleave(
            torch.arange(len(self.group_to_variables), dtype=torch.long), counts
        )

        self.edge_variable = [torch.full((n, n), -1, dtype=torch.long) for n in self.sentence_lengths]
        self.root_variable = [torch.full((n,), -1, dtype=torch.long) for n in self.sentence_lengths]
        for k, ref in enumerate(self.variable_to_structured):
            if ref.is_root:
                self.root_variable[ref.sentence][ref.child] = k
            else:
                self.edge_variable[ref.sentence][ref.child, list(ref.parents)] = k

    @classmethod
    def build(
        cls,
        instances: Sequence[DepInstance],
        enumerator: ConstraintEnumerator,
        min_occurrences: int = 0,
    ) -> "ProjectionIndex":
        r"""Run the counting and filling passes over ``instances``.

        Args:
            instances (sequence of DepInstance): Sentences to project.
            enumerator (ConstraintEnumerator): Assigns group ids; groups created
                here persist in it.
            min_occurrences (int, optional): Projection threshold used for
                reporting. Default: ``0``

        Returns:
            ProjectionIndex: The built index.
        """
        # pass 1: count variables per group
        counts: list[int] = []
        for group, _, _, _ in _walk(instances, enumerator):
            while group >= len(counts):
                counts.append(0)
            counts[group] += 1
        # groups known to the enumerator but never seen here keep an empty slot
        counts.extend([0] * (enumerator.num_groups - len(counts)))

        not_to_project = sum(1 for c in counts if c < min_occurrences)
        logger.info(
            "Will project %d / %d constraint groups, the rest fall below min occurrences to project",
            len(counts) - not_to_project,
            len(counts),
        )

        # pass 2: fill each group's slots in traversal order
        group_to_variables = [[None] * c for c in counts]
        cursor = [0] * len(counts)
        for group, s, child, parents in _walk(instances, enumerator):
            if group >= len(counts) or cursor[group] >= counts[group]:
                raise AssertionError(f"group {group} gained variables between passes")
            group_to_variables[group][cursor[group]] = SentenceChildParent(s, child, parents)
            cursor[group] += 1
        if cursor != counts:
            raise AssertionError("fill pass produced fewer variables than the count pass")

        return cls(
            group_to_variables,
            [inst.num_words for inst in instances],
            min_occurrences=min_occurrences,
        )

    @property
    def num_groups(self) -> int:
        return len(self.group_to_variables)

    @property
    def num_variables(self) -> int:
        return len(self.variable_to_structured)

    @property
    def num_sentences(self) -> int:
        return len(self.sentence_lengths)

    def occurrences(self, group: int) -> int:
        return len(self.group_to_variables[group])

    def group_slice(self, group: int) -> slice:
        return slice(int(self.group_offsets[group]), int(self.group_offsets[group + 1]))

    def check_consistency(self) -> None:
        r"""Raise ``AssertionError`` if per-group and flat variable counts disagree."""
        total = sum(len(refs) for refs in self.group_to_variables)
        if total != len(self.variable_to_structured):
            raise AssertionError(
                f"index corrupted: {total} grouped variables vs "
                f"{len(self.variable_to_structured)} flat variables"
            )

    def expected_counts(self, child_posteriors, root_posteriors) -> Tensor:
        r"""Posterior mass of every flat variable.

        Args:
            child_posteriors (sequence of Tensor): Per sentence :math:`(n, n)` edge posteriors.
            root_posteriors (sequence of Tensor): Per sentence :math:`(n,)` root posteriors.

        Returns:
            Tensor: :math:`(V,)` expected feature counts :math:`E_q[\phi_k]`.
        """
        dtype = child_posteriors[0].dtype if len(child_posteriors) else torch.float64
        out = torch.zeros(self.num_variables, dtype=dtype)
        for s in range(self.num_sentences):
            edge_var = self.edge_variable[s]
            mask = edge_var >= 0
            out.index_add_(0, edge_var[mask], child_posteriors[s][mask].to(dtype))
            root_var = self.root_variable[s]
            mask = root_var >= 0
            out.index_add_(0, root_var[mask], root_posteriors[s][mask].to(dtype))
        return out

    def penalties(self, multipliers: Tensor, sentence: int) -> tuple:
        r"""Scatter multipliers back onto one sentence's edges and roots.

        Args:
            multipliers (Tensor): :math:`(V,)` flat multipliers.
            sentence (int): Sentence index.

        Returns:
            Tuple[Tensor, Tensor]: ``(edge_penalty, root_penalty)`` of shapes
            :math:`(n, n)` (``[child, parent]``) and :math:`(n,)`; zero where
            no variable covers the edge or root.
        """
        n = self.sentence_lengths[sentence]
        edge_var = self.edge_variable[sentence]
        root_var = self.root_variable[sentence]
        edge_penalty = multipliers.new_zeros((n, n))
        root_penalty = multipliers.new_zeros((n,))
        mask = edge_var >= 0
        edge_penalty[mask] = multipliers[edge_var[mask]]
        mask = root_var >= 0
        root_penalty[mask] = multipliers[root_var[mask]]
        return edge_penalty, root_penalty
