"""Tests for the EM driver."""

import math

import pytest
import torch

from torch_postreg import (
    CorpusPR,
    DepCorpus,
    DependencyModel,
    DepParams,
    L1LmaxConfig,
    L1LmaxProjection,
    L1LMaxStats,
    TrainStats,
)


def _model(corpus, seed=0):
    generator = torch.Generator().manual_seed(seed)
    return DependencyModel(corpus, DepParams.random(corpus.num_tags, generator=generator))


class _HookOrder(TrainStats):
    def __init__(self):
        self.calls = []

    def e_step_start(self, model, pr):
        self.calls.append("e_start")

    def e_step_end(self, model, pr):
        self.calls.append("e_end")

    def m_step_start(self, model, pr):
        self.calls.append("m_start")

    def m_step_end(self, model, pr):
        self.calls.append("m_end")


class TestCorpusPR:
    """Tests for CorpusPR."""

    def test_plain_em_history(self, small_corpus):
        em = CorpusPR(_model(small_corpus), small_corpus.instances)
        history = em.train(3)
        assert len(history) == 3
        assert all(math.isfinite(v) for v in history)
        assert len(em.posteriors) == len(small_corpus)

    def test_e_step_fills_counts(self, small_corpus):
        model = _model(small_corpus)
        em = CorpusPR(model, small_corpus.instances)
        counts = model.new_count_table()
        counts.root.fill_(100.0)
        log_likelihood = em.e_step(counts)
        num_tokens = sum(inst.num_words for inst in small_corpus.instances)
        assert math.isclose(counts.total(), num_tokens, rel_tol=1e-9)
        assert log_likelihood == pytest.approx(sum(float(d.log_z) for d in em.posteriors))

    def test_m_step_changes_model(self, small_corpus):
        model = _model(small_corpus)
        before = model.params
        CorpusPR(model, small_corpus.instances).train(1)
        assert model.params is not before

    def test_zero_strength_matches_plain_em(self, small_corpus):
        plain = CorpusPR(_model(small_corpus), small_corpus.instances).train(3)
        model = _model(small_corpus)
        projection = L1LmaxProjection(small_corpus, model, config=L1LmaxConfig(constraint_strength=0.0))
        constrained = CorpusPR(model, small_corpus.instances, constraints=projection).train(3)
        assert constrained == pytest.approx(plain, abs=1e-8)

    def test_first_e_step_log_likelihood_unaffected_by_projection(self, small_corpus):
        plain = CorpusPR(_model(small_corpus), small_corpus.instances).train(1)
        model = _model(small_corpus)
        projection = L1LmaxProjection(small_corpus, model, config=L1LmaxConfig(constraint_strength=1.0))
        constrained = CorpusPR(model, small_corpus.instances, constraints=projection).train(1)
        assert constrained[0] == pytest.approx(plain[0])

    def test_projection_lowers_l1lmax_during_training(self, small_corpus):
        model = _model(small_corpus)
        projection = L1LmaxProjection(small_corpus, model)
        stats = L1LMaxStats(projection)
        em = CorpusPR(model, small_corpus.instances, constraints=projection)
        em.train(2, stats=stats)
        assert len(stats.history) == 2

        unconstrained = L1LMaxStats(projection)
        plain_model = _model(small_corpus)
        plain_em = CorpusPR(plain_model, small_corpus.instances)
        plain_em.train(1)
        first_plain = unconstrained.l1lmax(plain_em.posteriors)
        assert stats.history[0] < first_plain

    def test_hook_order(self, toy_corpus, toy_model):
        hooks = _HookOrder()
        CorpusPR(toy_model, toy_corpus.instances).train(2, stats=hooks)
        assert hooks.calls == ["e_start", "e_end", "m_start", "m_end"] * 2

    def test_negative_iterations_raise(self, toy_corpus, toy_model):
        with pytest.raises(ValueError, match="iterations"):
            CorpusPR(toy_model, toy_corpus.instances).train(-1)

    def test_attachment_accuracy(self):
        corpus = DepCorpus.from_tagged_sentences(
            [[("the", "DET"), ("dog", "NOUN")], [("a", "DET"), ("cat", "NOUN")]],
            heads=[[1, -1], [-1, 0]],
        )
        em = CorpusPR(DependencyModel(corpus), corpus.instances)
        em.e_step(em.model.new_count_table())
        em.posteriors[0].compute_posteriors(root_penalty=torch.tensor([5.0, 0.0], dtype=torch.float64))
        em.posteriors[1].compute_posteriors(root_penalty=torch.tensor([5.0, 0.0], dtype=torch.float64))
        # first sentence fully right, second fully wrong
        assert em.attachment_accuracy() == pytest.approx(0.5)

    def test_attachment_accuracy_needs_gold_heads(self, toy_corpus, toy_model):
        em = CorpusPR(toy_model, toy_corpus.instances)
        em.train(1)
        with pytest.raises(ValueError, match="gold heads"):
            em.attachment_accuracy()
