r"""Minimal dependency corpus: interned words and coarse tags per sentence.

Only what the projection consumes is modelled here: per-token word and tag
ids, the sentence length, and corpus-level counts of distinct words and tags.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from .alphabet import Alphabet

__all__ = ["DepInstance", "DepCorpus"]


@dataclass
class DepInstance:
    r"""A single sentence.

    Attributes:
        words (np.ndarray): Word-type ids of shape :math:`(n,)`.
        postags (np.ndarray): Coarse tag ids of shape :math:`(n,)`.
        heads (np.ndarray, optional): Gold parent positions, ``-1`` for the root.
    """

    words: np.ndarray
    postags: np.ndarray
    heads: Optional[np.ndarray] = None

    def __post_init__(self):
        self.words = np.asarray(self.words, dtype=np.int64)
        self.postags = np.asarray(self.postags, dtype=np.int64)
        if self.words.ndim != 1 or self.postags.ndim != 1:
            raise ValueError(
                f"words and postags must be 1D, got {self.words.ndim}D and {self.postags.ndim}D"
            )
        if self.words.shape != self.postags.shape:
            raise ValueError(
                f"words and postags must have equal length, "
                f"got {self.words.shape[0]} and {self.postags.shape[0]}"
            )
        if self.heads is not None:
            self.heads = np.asarray(self.heads, dtype=np.int64)
            if self.heads.shape != self.words.shape:
                raise ValueError(
                    f"heads length {self.heads.shape[0]} doesn't match sentence length "
                    f"{self.words.shape[0]}"
                )

    @property
    def num_words(self) -> int:
        return int(self.words.shape[0])

    def __len__(self) -> int:
        return self.num_words


@dataclass
class DepCorpus:
    r"""Sentences plus the word and tag alphabets their ids refer to.

    Attributes:
        word_alphabet (Alphabet): Word surface forms.
        tag_alphabet (Alphabet): Coarse tags.
        instances (list[DepInstance]): Sentences in corpus order.
    """

    word_alphabet: Alphabet
    tag_alphabet: Alphabet
    instances: list = field(default_factory=list)

    @classmethod
    def from_tagged_sentences(
        cls,
        sentences: Sequence[Sequence[tuple]],
        heads: Optional[Sequence[Sequence[int]]] = None,
    ) -> "DepCorpus":
        r"""Build a corpus from ``[[(word, tag), ...], ...]``.

        Args:
            sentences: Tagged sentences; each token is a ``(word, tag)`` pair.
            heads (optional): Gold parent positions per sentence, ``-1`` for root.

        Returns:
            DepCorpus: Corpus with alphabets interned in first-seen order.
        """
        words, tags = Alphabet(), Alphabet()
        instances = []
        for s, sentence in enumerate(sentences):
            if len(sentence) == 0:
                raise ValueError(f"sentence {s} is empty")
            instances.append(
                DepInstance(
                    words=[words.lookup_object(w) for w, _ in sentence],
                    postags=[tags.lookup_object(t) for _, t in sentence],
                    heads=None if heads is None else heads[s],
                )
            )
        words.freeze()
        tags.freeze()
        return cls(words, tags, instances)

    @property
    def num_word_types(self) -> int:
        return len(self.word_alphabet)

    @property
    def num_tags(self) -> int:
        return len(self.tag_alphabet)

    def word_name(self, idx: int) -> str:
        return self.word_alphabet.lookup_index(idx)

    def tag_name(self, idx: int) -> str:
        return self.tag_alphabet.lookup_index(idx)

    def __len__(self) -> int:
        return len(self.instances)

    def __getitem__(self, s: int) -> DepInstance:
        return self.instances[s]
