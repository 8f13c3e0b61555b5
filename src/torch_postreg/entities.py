r"""What each side of a constrained edge is keyed on.

An entity type maps a token of a sentence to an id (``resolve``), an id to a
printable name (``name``), and reports how many ids exist in the corpus
(``num_ids``). Only two kinds exist: word surface forms and coarse tags.
"""

from __future__ import annotations

from typing import Union

from .corpus import DepCorpus, DepInstance

__all__ = ["WordEntity", "TagEntity", "EntityType", "entity_type"]


class WordEntity:
    """Keys a token on its word surface form."""

    kind = "word"

    @staticmethod
    def resolve(instance: DepInstance, position: int) -> int:
        return int(instance.words[position])

    @staticmethod
    def name(corpus: DepCorpus, idx: int) -> str:
        return corpus.word_name(idx)

    @staticmethod
    def num_ids(corpus: DepCorpus) -> int:
        return corpus.num_word_types

    def __repr__(self) -> str:
        return "WordEntity()"


class TagEntity:
    """Keys a token on its coarse part-of-speech tag."""

    kind = "tag"

    @staticmethod
    def resolve(instance: DepInstance, position: int) -> int:
        return int(instance.postags[position])

    @staticmethod
    def name(corpus: DepCorpus, idx: int) -> str:
        return corpus.tag_name(idx)

    @staticmethod
    def num_ids(corpus: DepCorpus) -> int:
        return corpus.num_tags

    def __repr__(self) -> str:
        return "TagEntity()"


EntityType = Union[WordEntity, TagEntity]


def entity_type(kind: Union[str, EntityType]) -> EntityType:
    r"""Factory for entity types.

    Args:
        kind (str or EntityType): ``"word"``, ``"tag"``, or an entity instance.

    Returns:
        EntityType: The requested entity type.
    """
    if isinstance(kind, (WordEntity, TagEntity)):
        return kind
    elif kind == "word":
        return WordEntity()
    elif kind == "tag":
        return TagEntity()
    else:
        raise ValueError(f"Unknown entity type: {kind!r}. Options: word, tag")
