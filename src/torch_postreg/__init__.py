r"""Posterior regularization for unsupervised dependency grammar induction.

The package projects the edge and root posteriors computed in each E-step
onto an L1/L-infinity (L1Lmax) constraint set: for every constraint group of
edges sharing a (child, parent, direction) signature, the projected
posteriors pay ``constraint_strength`` times the largest expected count of
any of the group's variables, which encourages each child word to attach
to few distinct parent types.

Usage
-----
Build a corpus and model, then run EM with the projection::

    corpus = DepCorpus.from_tagged_sentences(sentences)
    model = DependencyModel(corpus, DepParams.random(corpus.num_tags))
    projection = L1LmaxProjection(corpus, model, config=L1LmaxConfig(constraint_strength=1.0))
    em = CorpusPR(model, corpus.instances, constraints=projection)
    history = em.train(iterations=10, stats=L1LMaxStats(projection))

Layout
------
- :mod:`.enumerator` assigns constraint-group ids to roots and edges
- :mod:`.index` maps the flat multiplier vector to (sentence, child, parents)
- :mod:`.objective` evaluates the dual objective and its gradient
- :mod:`.l1lmax` runs the projection with :mod:`.optimization`
"""

from .alphabet import Alphabet
from .config import L1LmaxConfig, ProjectionConfig
from .constants import LEFT, NEG_INF, RIGHT, ROOT_PARENT
from .corpus import DepCorpus, DepInstance
from .dependency import DepCountTable, DependencyModel, DepParams, DepSentenceDist, Eisner
from .em import CorpusPR
from .entities import TagEntity, WordEntity, entity_type
from .enumerator import ConstraintEnumerator
from .hmm import HMMSentenceDist, LinearChain
from .index import ProjectionIndex, SentenceChildParent
from .l1lmax import L1LmaxProjection, ProjectionResult, read_edges_to_not_project
from .objective import L1LmaxDualObjective, PosteriorSnapshot
from .semirings import LogSemiring, Semiring
from .stats import L1LMaxStats, TrainStats, TransitionL1LMaxStats

__version__ = "0.1.0"

__all__ = [
    # Projection
    "L1LmaxProjection",
    "ProjectionResult",
    "read_edges_to_not_project",
    "L1LmaxConfig",
    "ProjectionConfig",
    # Constraint layout
    "ConstraintEnumerator",
    "ProjectionIndex",
    "SentenceChildParent",
    "WordEntity",
    "TagEntity",
    "entity_type",
    # Dual objective
    "L1LmaxDualObjective",
    "PosteriorSnapshot",
    # Models and data
    "Alphabet",
    "DepCorpus",
    "DepInstance",
    "DependencyModel",
    "DepParams",
    "DepCountTable",
    "DepSentenceDist",
    "Eisner",
    "LinearChain",
    "HMMSentenceDist",
    "Semiring",
    "LogSemiring",
    # Training
    "CorpusPR",
    "TrainStats",
    "L1LMaxStats",
    "TransitionL1LMaxStats",
    # Constants
    "NEG_INF",
    "ROOT_PARENT",
    "LEFT",
    "RIGHT",
]
