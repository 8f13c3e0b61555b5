"""Tests for the projected gradient solver and its components."""

import logging

import pytest
import torch

from torch_postreg.optimization import (
    CompositeStoppingCriteria,
    GenericPickFirstStep,
    NormalizedProjectedGradientL2Norm,
    NormalizedValueDifference,
    ProjectedGradientDescent,
    ProjectedOptimizerStats,
    WolfeRuleLineSearch,
    capped_simplex_projection,
    project_onto_capped_simplices,
)


def _reference_projection(x, cap):
    """Capped-simplex projection by bisection on the threshold."""
    clipped = x.clamp(min=0)
    if clipped.sum() <= cap:
        return clipped
    lo, hi = 0.0, float(x.max())
    for _ in range(200):
        theta = 0.5 * (lo + hi)
        if (x - theta).clamp(min=0).sum() > cap:
            lo = theta
        else:
            hi = theta
    return (x - 0.5 * (lo + hi)).clamp(min=0)


class TestCappedSimplexProjection:
    """Tests for capped_simplex_projection and project_onto_capped_simplices."""

    def test_inside_is_unchanged(self):
        x = torch.tensor([0.2, 0.3, 0.1], dtype=torch.float64)
        assert torch.equal(capped_simplex_projection(x, 1.0), x)

    def test_negative_entries_clipped(self):
        x = torch.tensor([0.2, -0.3, 0.1], dtype=torch.float64)
        out = capped_simplex_projection(x, 1.0)
        assert torch.allclose(out, torch.tensor([0.2, 0.0, 0.1], dtype=torch.float64))

    def test_active_cap(self):
        x = torch.tensor([2.0, 0.0, -1.0])
        assert torch.allclose(capped_simplex_projection(x, 1.0), torch.tensor([1.0, 0.0, 0.0]))
        x = torch.tensor([1.0, 1.0], dtype=torch.float64)
        assert torch.allclose(capped_simplex_projection(x, 1.0), torch.tensor([0.5, 0.5], dtype=torch.float64))

    def test_zero_cap_gives_zero(self):
        x = torch.tensor([0.4, -1.0, 3.0])
        assert torch.equal(capped_simplex_projection(x, 0.0), torch.zeros(3))

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_matches_reference_per_group(self, seed):
        gen = torch.Generator().manual_seed(seed)
        sizes = [3, 1, 5, 0, 2]
        group_ids = torch.repeat_interleave(torch.arange(len(sizes)), torch.tensor(sizes))
        x = torch.randn(sum(sizes), generator=gen, dtype=torch.float64) * 2
        caps = torch.tensor([0.5, 1.0, 2.0, 1.0, 0.0], dtype=torch.float64)
        out = project_onto_capped_simplices(x, group_ids, caps)
        start = 0
        for g, size in enumerate(sizes):
            ref = _reference_projection(x[start : start + size], float(caps[g])) if size else x[:0]
            assert torch.allclose(out[start : start + size], ref, atol=1e-9)
            start += size

    def test_groups_need_not_be_contiguous(self):
        x = torch.tensor([3.0, 0.1, 1.0, 0.2], dtype=torch.float64)
        group_ids = torch.tensor([0, 1, 0, 1])
        caps = torch.tensor([1.0, 1.0], dtype=torch.float64)
        out = project_onto_capped_simplices(x, group_ids, caps)
        assert torch.allclose(out, torch.tensor([1.0, 0.1, 0.0, 0.2], dtype=torch.float64))

    def test_projection_is_idempotent(self):
        gen = torch.Generator().manual_seed(9)
        x = torch.randn(10, generator=gen, dtype=torch.float64)
        group_ids = torch.tensor([0, 0, 0, 1, 1, 2, 2, 2, 2, 2])
        caps = torch.tensor([0.3, 1.0, 0.7], dtype=torch.float64)
        once = project_onto_capped_simplices(x, group_ids, caps)
        twice = project_onto_capped_simplices(once, group_ids, caps)
        assert torch.allclose(once, twice, atol=1e-12)

    def test_empty_input(self):
        out = project_onto_capped_simplices(
            torch.zeros(0), torch.zeros(0, dtype=torch.long), torch.zeros(2)
        )
        assert out.shape == (0,)


class _Quadratic:
    r"""f(x) = 0.5 ||x - target||^2 over a product of capped simplices."""

    def __init__(self, target, group_ids, caps):
        self.target = target
        self.group_ids = group_ids
        self.caps = caps
        self.parameters = torch.zeros_like(target)

    @property
    def dimension(self):
        return self.target.shape[0]

    def get_parameters(self):
        return self.parameters.clone()

    def set_parameters(self, x):
        self.parameters = x.clone()

    def get_value(self):
        return 0.5 * float(((self.parameters - self.target) ** 2).sum())

    def get_gradient(self):
        return self.parameters - self.target

    def project(self, x):
        return project_onto_capped_simplices(x, self.group_ids, self.caps)


def _solver(max_iterations=200):
    search = WolfeRuleLineSearch(GenericPickFirstStep(1.0), c1=1e-4, c2=0.9)
    return ProjectedGradientDescent(search, max_iterations=max_iterations)


def _stop(tol=1e-8):
    return CompositeStoppingCriteria(NormalizedProjectedGradientL2Norm(tol), NormalizedValueDifference(tol))


class TestProjectedGradientDescent:
    """Projected gradient descent on problems with known solutions."""

    def test_quadratic_solution_is_projection_of_target(self):
        target = torch.tensor([2.0, -1.0, 0.5, 0.3, 0.4], dtype=torch.float64)
        group_ids = torch.tensor([0, 0, 1, 1, 1])
        caps = torch.tensor([1.0, 0.5], dtype=torch.float64)
        objective = _Quadratic(target, group_ids, caps)
        stats = ProjectedOptimizerStats()
        assert _solver().optimize(objective, stats, _stop())
        expected = project_onto_capped_simplices(target, group_ids, caps)
        assert torch.allclose(objective.parameters, expected, atol=1e-6)
        assert stats.values[-1] <= stats.values[0]

    def test_optimal_start_stops_immediately(self):
        target = torch.tensor([-1.0, -2.0], dtype=torch.float64)
        objective = _Quadratic(target, torch.tensor([0, 0]), torch.tensor([1.0], dtype=torch.float64))
        stats = ProjectedOptimizerStats()
        assert _solver().optimize(objective, stats, _stop())
        assert stats.iterations == 0
        assert torch.equal(objective.parameters, torch.zeros(2, dtype=torch.float64))

    def test_iteration_cap_reports_failure(self):
        target = torch.tensor([0.3, 0.4], dtype=torch.float64)
        objective = _Quadratic(target, torch.tensor([0, 1]), torch.tensor([1.0, 1.0], dtype=torch.float64))
        solver = _solver()
        solver.set_max_iterations(0)
        stats = ProjectedOptimizerStats()
        assert not solver.optimize(objective, stats, _stop(tol=0.0))
        assert stats.iterations == 0
        assert len(stats.values) == 1

    def test_pretty_print_summary(self):
        target = torch.tensor([0.3, 2.0], dtype=torch.float64)
        objective = _Quadratic(target, torch.tensor([0, 1]), torch.tensor([1.0, 1.0], dtype=torch.float64))
        stats = ProjectedOptimizerStats()
        _solver().optimize(objective, stats, _stop())
        text = stats.pretty_print()
        assert "iter    0" in text
        assert f"{stats.iterations} iterations" in text
        assert stats.elapsed >= 0.0


class TestWolfeRuleLineSearch:
    """Tests for WolfeRuleLineSearch."""

    def test_accepts_unit_step_on_quadratic(self):
        target = torch.tensor([0.25, 0.25], dtype=torch.float64)
        objective = _Quadratic(target, torch.tensor([0, 1]), torch.tensor([1.0, 1.0], dtype=torch.float64))
        x = objective.get_parameters()
        gradient = objective.get_gradient()
        direction = objective.project(x - gradient) - x
        search = WolfeRuleLineSearch(GenericPickFirstStep(1.0))
        result = search.minimize(objective, x, objective.get_value(), gradient, direction)
        assert result is not None
        assert result.step == 1.0
        assert torch.allclose(result.point, target)
        assert result.evaluations == 1

    def test_ascent_direction_fails(self, caplog):
        target = torch.tensor([1.0], dtype=torch.float64)
        objective = _Quadratic(target, torch.tensor([0]), torch.tensor([5.0], dtype=torch.float64))
        x = objective.get_parameters()
        gradient = objective.get_gradient()
        with caplog.at_level(logging.DEBUG, logger="torch_postreg.optimization.linesearch"):
            result = WolfeRuleLineSearch(GenericPickFirstStep()).minimize(
                objective, x, objective.get_value(), gradient, gradient
            )
        assert result is None
        assert "not a descent direction" in caplog.text

    def test_first_step_must_be_positive(self):
        with pytest.raises(ValueError, match="initial_step"):
            GenericPickFirstStep(0.0)


class TestStoppingCriteria:
    """Tests for the normalized stopping criteria."""

    def test_gradient_norm_is_relative(self):
        stop = NormalizedProjectedGradientL2Norm(0.1)
        assert not stop.stop_optimization(0.0, torch.tensor([3.0, 4.0]))
        assert not stop.stop_optimization(0.0, torch.tensor([0.6, 0.0]))
        assert stop.stop_optimization(0.0, torch.tensor([0.4, 0.0]))

    def test_zero_initial_gradient_stops(self):
        assert NormalizedProjectedGradientL2Norm(1e-5).stop_optimization(1.0, torch.zeros(3))

    def test_value_difference_is_relative(self):
        stop = NormalizedValueDifference(0.1)
        g = torch.zeros(1)
        assert not stop.stop_optimization(10.0, g)
        assert not stop.stop_optimization(6.0, g)  # first difference 4
        assert not stop.stop_optimization(5.0, g)  # 1 / 4
        assert stop.stop_optimization(4.8, g)  # 0.2 / 4

    def test_reset_forgets_history(self):
        stop = NormalizedProjectedGradientL2Norm(0.5)
        stop.stop_optimization(0.0, torch.tensor([10.0]))
        stop.reset()
        assert not stop.stop_optimization(0.0, torch.tensor([1.0]))

    def test_composite_is_any(self):
        stop = CompositeStoppingCriteria(NormalizedValueDifference(0.1))
        stop.add(NormalizedProjectedGradientL2Norm(0.5))
        assert not stop.stop_optimization(1.0, torch.tensor([1.0]))
        assert stop.stop_optimization(0.5, torch.tensor([0.1]))
