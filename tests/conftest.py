"""
Pytest configuration for torch-postreg tests.

IMPORTANT: CPU-ONLY TESTING
---------------------------
All structures are small and exact, so the suite runs on CPU in float64.

All tests should:
1. Use CPU tensors (the default)
2. Use float64 where posteriors are compared against tight tolerances
3. Seed every random draw
"""

import random

import pytest
import torch

from torch_postreg import DepCorpus, DependencyModel, DepParams

LEXICON = {
    "DET": ["the", "a"],
    "NOUN": ["dog", "cat", "ball"],
    "VERB": ["sees", "chases"],
    "ADJ": ["big"],
}
TEMPLATES = [
    ["DET", "NOUN"],
    ["DET", "NOUN", "VERB"],
    ["DET", "NOUN", "VERB", "DET", "NOUN"],
    ["DET", "ADJ", "NOUN", "VERB"],
]


@pytest.fixture(autouse=True)
def ensure_cpu_default():
    """Verify tensors default to CPU."""
    assert torch.tensor([1.0]).device.type == "cpu", "Default device should be CPU"
    yield


@pytest.fixture
def cpu_device():
    """Fixture providing CPU device for explicit device specification."""
    return torch.device("cpu")


@pytest.fixture
def toy_sentences():
    """Two sentences sharing 'the' as determiner of different nouns."""
    return [
        [("the", "DET"), ("dog", "NOUN")],
        [("the", "DET"), ("cat", "NOUN")],
    ]


@pytest.fixture
def toy_corpus(toy_sentences):
    return DepCorpus.from_tagged_sentences(toy_sentences)


@pytest.fixture
def toy_model(toy_corpus):
    return DependencyModel(toy_corpus)


def make_sentences(num_sentences, seed):
    rng = random.Random(seed)
    sentences = []
    for _ in range(num_sentences):
        template = rng.choice(TEMPLATES)
        sentences.append([(rng.choice(LEXICON[tag]), tag) for tag in template])
    return sentences


@pytest.fixture
def small_corpus():
    """Eight short random sentences over a fixed lexicon."""
    return DepCorpus.from_tagged_sentences(make_sentences(8, seed=0))


@pytest.fixture
def small_model(small_corpus):
    generator = torch.Generator().manual_seed(0)
    return DependencyModel(small_corpus, DepParams.random(small_corpus.num_tags, generator=generator))


@pytest.fixture
def write_allowed(tmp_path):
    """Factory writing an allow-list file and returning its path."""

    def _write(text, name="allowed.txt"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
