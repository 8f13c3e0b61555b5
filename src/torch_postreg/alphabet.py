r"""Append-only bidirectional string/id interning.

Ids are assigned densely from ``0`` in first-seen order and never reused or
reassigned. The insertion order is part of the contract: it fixes the layout
of every vector indexed by these ids (constraint groups, multipliers), so two
runs over the same input yield identical ids.
"""

from typing import Iterator, Optional

__all__ = ["Alphabet"]


class Alphabet:
    r"""Ordered interning table.

    Args:
        names (iterable of str, optional): Names to intern up front, in order.

    Examples::

        >>> a = Alphabet()
        >>> a.lookup_object("root=the"), a.lookup_object("edge=the,NOUN:left")
        (0, 1)
        >>> a.lookup_object("root=the")
        0
        >>> a.get("missing") is None
        True
    """

    def __init__(self, names=()):
        self._index: dict[str, int] = {}
        self._names: list[str] = []
        self._frozen = False
        for name in names:
            self.lookup_object(name)

    def lookup_object(self, name: str) -> int:
        r"""Return the id of ``name``, assigning the next free id on first sight.

        Raises:
            KeyError: If ``name`` is new and the alphabet is frozen.
        """
        idx = self._index.get(name)
        if idx is None:
            if self._frozen:
                raise KeyError(f"Alphabet is frozen, cannot add {name!r}")
            idx = len(self._names)
            self._index[name] = idx
            self._names.append(name)
        return idx

    def lookup_index(self, idx: int) -> str:
        """Return the name interned under ``idx``."""
        if idx < 0:
            raise IndexError(f"Alphabet ids are non-negative, got {idx}")
        return self._names[idx]

    def get(self, name: str) -> Optional[int]:
        """Pure lookup: the id of ``name`` or ``None``; never inserts."""
        return self._index.get(name)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self._names)

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __repr__(self) -> str:
        return f"Alphabet(size={len(self)}, frozen={self._frozen})"
