"""Tests for the L1Lmax dual objective."""

import pytest
import torch

from torch_postreg import (
    ConstraintEnumerator,
    DependencyModel,
    DepParams,
    L1LmaxDualObjective,
    PosteriorSnapshot,
    ProjectionIndex,
)


def _setup(corpus, model, cap=1.0, caps=None):
    enum = ConstraintEnumerator(corpus, "word", "tag", use_root=True, use_direction=True)
    index = ProjectionIndex.build(corpus.instances, enum)
    posteriors = model.sentence_dists(corpus.instances)
    for dist in posteriors:
        dist.cache_model_and_compute_io(model.params)
    snapshot = PosteriorSnapshot(len(posteriors))
    snapshot.capture(posteriors)
    multipliers = torch.zeros(index.num_variables, dtype=torch.float64)
    if caps is None:
        caps = torch.full((index.num_groups,), cap, dtype=torch.float64)
    objective = L1LmaxDualObjective(multipliers, index, caps, posteriors, snapshot)
    return objective, multipliers, posteriors, snapshot


@pytest.fixture
def random_toy_model(toy_corpus):
    return DependencyModel(toy_corpus, DepParams.random(2, generator=torch.Generator().manual_seed(3)))


class TestPosteriorSnapshot:
    """Tests for PosteriorSnapshot."""

    def test_capture_copies(self, toy_corpus, toy_model):
        posteriors = toy_model.sentence_dists(toy_corpus.instances)
        for dist in posteriors:
            dist.cache_model_and_compute_io(toy_model.params)
        snapshot = PosteriorSnapshot(2)
        snapshot.capture(posteriors)
        posteriors[0].child.fill_(7.0)
        assert not torch.equal(snapshot.children[0], posteriors[0].child)
        snapshot.restore(posteriors)
        assert torch.equal(snapshot.children[0], posteriors[0].child)
        assert snapshot.total_log_z() == pytest.approx(sum(float(d.log_z) for d in posteriors))

    def test_capture_length_mismatch_raises(self, toy_corpus, toy_model):
        posteriors = toy_model.sentence_dists(toy_corpus.instances)
        with pytest.raises(ValueError, match="snapshot holds 3 sentences"):
            PosteriorSnapshot(3).capture(posteriors)


class TestL1LmaxDualObjective:
    """Tests for L1LmaxDualObjective."""

    def test_zero_multipliers_leave_posteriors_unchanged(self, small_corpus, small_model):
        objective, _, posteriors, snapshot = _setup(small_corpus, small_model)
        assert objective.get_value() == 0.0
        for s, dist in enumerate(posteriors):
            assert torch.equal(dist.child, snapshot.children[s])
            assert torch.equal(dist.root, snapshot.roots[s])

    def test_gradient_is_negative_expected_counts(self, small_corpus, small_model):
        objective, _, posteriors, _ = _setup(small_corpus, small_model)
        expected = objective.index.expected_counts(
            [d.child for d in posteriors], [d.root for d in posteriors]
        )
        assert torch.allclose(objective.get_gradient(), -expected)
        assert torch.allclose(objective.expected_counts(), expected)
        assert torch.all(objective.get_gradient() <= 0)

    def test_zero_strength_groups_have_zero_gradient(self, toy_corpus, random_toy_model):
        caps = torch.tensor([1.0, 0.0, 1.0, 0.0, 1.0, 1.0], dtype=torch.float64)
        objective, _, _, _ = _setup(toy_corpus, random_toy_model, caps=caps)
        gradient = objective.get_gradient()
        inactive = ~objective.active
        assert inactive.tolist() == [False, False, True, True, False, True, False, False]
        assert torch.all(gradient[inactive] == 0)
        assert torch.all(gradient[~inactive] < 0)
        # expected counts are reported for every variable
        assert torch.all(objective.expected_counts()[inactive] > 0)

    def test_gradient_matches_finite_differences(self, toy_corpus, random_toy_model):
        objective, _, _, _ = _setup(toy_corpus, random_toy_model)
        gen = torch.Generator().manual_seed(0)
        base = torch.rand(objective.dimension, generator=gen, dtype=torch.float64) * 0.3
        objective.set_parameters(base)
        gradient = objective.get_gradient()
        eps = 1e-6
        for k in range(objective.dimension):
            step = torch.zeros_like(base)
            step[k] = eps
            objective.set_parameters(base + step)
            f_plus = objective.get_value()
            objective.set_parameters(base - step)
            f_minus = objective.get_value()
            assert (f_plus - f_minus) / (2 * eps) == pytest.approx(float(gradient[k]), abs=1e-6)

    def test_penalties_lower_value(self, toy_corpus, random_toy_model):
        objective, _, _, _ = _setup(toy_corpus, random_toy_model)
        objective.set_parameters(torch.full((objective.dimension,), 0.2, dtype=torch.float64))
        assert objective.get_value() < 0.0

    def test_parameters_update_borrowed_buffer(self, toy_corpus, toy_model):
        objective, multipliers, _, _ = _setup(toy_corpus, toy_model)
        x = torch.linspace(0, 1, objective.dimension, dtype=torch.float64)
        objective.set_parameters(x)
        assert torch.equal(multipliers, x)
        got = objective.get_parameters()
        got.zero_()
        assert torch.equal(multipliers, x)

    def test_evaluations_are_cached(self, toy_corpus, toy_model):
        objective, _, _, _ = _setup(toy_corpus, toy_model)
        objective.get_value()
        objective.get_gradient()
        assert objective.num_evaluations == 1
        objective.set_parameters(torch.full((objective.dimension,), 0.1, dtype=torch.float64))
        objective.get_value()
        assert objective.num_evaluations == 2

    def test_restore(self, toy_corpus, random_toy_model):
        objective, multipliers, posteriors, snapshot = _setup(toy_corpus, random_toy_model)
        # penalize only the the<-dog edge of sentence 0
        x = torch.zeros(objective.dimension, dtype=torch.float64)
        x[int(objective.index.edge_variable[0][0, 1])] = 0.5
        objective.set_parameters(x)
        objective.get_value()
        assert not torch.allclose(posteriors[0].child, snapshot.children[0])
        objective.restore()
        assert torch.all(multipliers == 0)
        assert torch.equal(posteriors[0].child, snapshot.children[0])
        assert objective.get_value() == 0.0

    def test_project_respects_caps(self, toy_corpus, toy_model):
        objective, _, _, _ = _setup(toy_corpus, toy_model, cap=0.5)
        x = objective.project(torch.ones(objective.dimension, dtype=torch.float64))
        sums = torch.zeros(objective.index.num_groups, dtype=torch.float64).index_add_(
            0, objective.index.variable_group, x
        )
        assert torch.all(sums <= 0.5 + 1e-12)
        assert torch.all(x >= 0)

    def test_wrong_caps_shape_raises(self, toy_corpus, toy_model):
        with pytest.raises(ValueError, match="caps must have shape"):
            _setup(toy_corpus, toy_model, caps=torch.ones(2, dtype=torch.float64))
