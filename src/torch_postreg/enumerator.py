r"""Assignment of constraint-group ids to roots and edges.

A constraint group collects every edge sharing a (child entity, parent entity,
direction) signature, or every root attachment of one child entity. Groups
are identified by string keys::

    root=<child>
    edge=<child>,<parent>:<direction>

where ``<direction>`` is ``right`` when the child follows its parent, ``left``
otherwise, and empty when direction splitting is off. Keys are interned in an
:class:`~torch_postreg.alphabet.Alphabet`, so group ids follow first-seen
order; that order fixes the multiplier layout and must not change between runs
over the same corpus.
"""

from __future__ import annotations

from typing import Optional

from .alphabet import Alphabet
from .constants import LEFT, RIGHT, ROOT_PARENT
from .corpus import DepCorpus, DepInstance
from .entities import EntityType, entity_type

__all__ = ["ConstraintEnumerator"]


class ConstraintEnumerator:
    r"""Maps roots and edges of sentences to dense constraint-group ids.

    Args:
        corpus (DepCorpus): Corpus providing names for word and tag ids.
        child_type (str or EntityType): What the child side is keyed on.
        parent_type (str or EntityType): What the parent side is keyed on.
        use_root (bool): Build a group per root child entity.
        use_direction (bool): Split edge groups by attachment direction.

    Examples::

        >>> enum = ConstraintEnumerator(corpus, "word", "tag", use_root=True, use_direction=True)
        >>> g = enum.group_for_edge(corpus[0], child=0, parent=1)
        >>> enum.constraint_to_string(g)
        'edge=the,NOUN:left'
    """

    def __init__(
        self,
        corpus: DepCorpus,
        child_type,
        parent_type,
        use_root: bool,
        use_direction: bool,
    ):
        self.corpus = corpus
        self.child_type: EntityType = entity_type(child_type)
        self.parent_type: EntityType = entity_type(parent_type)
        self.use_root = use_root
        self.use_direction = use_direction
        self._groups = Alphabet()
        self._edge2child_type: list[int] = []
        self._edge2parent_type: list[int] = []
        self._parent_ids_per_child: list[list[int]] = [[] for _ in range(self.num_ids_child)]

    @property
    def num_ids_child(self) -> int:
        """Child id range; doubled without direction splitting."""
        n = self.child_type.num_ids(self.corpus)
        return n if self.use_direction else 2 * n

    @property
    def num_ids_parent(self) -> int:
        """Parent id range; one extra slot without root groups."""
        n = self.parent_type.num_ids(self.corpus)
        return n if self.use_root else n + 1

    @property
    def num_groups(self) -> int:
        return len(self._groups)

    def _register(self, group: int, child_id: int, parent_id: int) -> None:
        if group < len(self._edge2child_type):
            return
        if group != len(self._edge2child_type) or group != len(self._edge2parent_type):
            raise AssertionError(
                f"group {group} registered out of order "
                f"(expected {len(self._edge2child_type)})"
            )
        self._edge2child_type.append(child_id)
        self._edge2parent_type.append(parent_id)

    def group_for_root(self, instance: DepInstance, child: int) -> Optional[int]:
        r"""Group of ``child`` attaching to the root, or ``None`` without root groups."""
        if not self.use_root:
            return None
        child_id = self.child_type.resolve(instance, child)
        child_name = self.child_type.name(self.corpus, child_id)
        group = self._groups.lookup_object("root=" + child_name)
        self._register(group, child_id, ROOT_PARENT)
        return group

    def _direction(self, child: int, parent: int) -> str:
        if not self.use_direction:
            return ""
        return RIGHT if child > parent else LEFT

    def group_for_edge(self, instance: DepInstance, child: int, parent: int) -> int:
        r"""Group of the edge ``parent -> child``, created on first sight."""
        child_id = self.child_type.resolve(instance, child)
        parent_id = self.parent_type.resolve(instance, parent)
        child_name = self.child_type.name(self.corpus, child_id)
        parent_name = self.parent_type.name(self.corpus, parent_id)
        key = f"edge={child_name},{parent_name}:{self._direction(child, parent)}"
        group = self._groups.lookup_object(key)
        seen = self._parent_ids_per_child[child_id]
        if group not in seen:
            seen.append(group)
        self._register(group, child_id, parent_id)
        return group

    def lookup_existing_group(
        self, child_name: str, parent_name: str, direction: str
    ) -> Optional[int]:
        r"""Group id of an already observed edge signature, else ``None``.

        Args:
            child_name (str): Child entity name.
            parent_name (str): Parent entity name.
            direction (str): ``"left"`` or ``"right"``; ignored without
                direction splitting.
        """
        if direction not in (LEFT, RIGHT):
            raise ValueError(f"direction must be {LEFT!r} or {RIGHT!r}, got {direction!r}")
        if not self.use_direction:
            direction = ""
        return self._groups.get(f"edge={child_name},{parent_name}:{direction}")

    def groups_per_child(self) -> list:
        r"""Distinct edge groups produced by each child id, in first-seen order."""
        return self._parent_ids_per_child

    def constraint_to_string(self, group: int) -> str:
        return self._groups.lookup_index(group)

    def child_type_of(self, group: int) -> int:
        return self._edge2child_type[group]

    def parent_type_of(self, group: int) -> int:
        r"""Parent entity id of ``group``; :data:`ROOT_PARENT` for root groups."""
        return self._edge2parent_type[group]

    def is_root_group(self, group: int) -> bool:
        return self._edge2parent_type[group] == ROOT_PARENT

    def group_names(self) -> list:
        return list(self._groups)
