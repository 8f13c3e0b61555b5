r"""Bookkeeping for one optimizer run."""

import time
from dataclasses import dataclass, field

__all__ = ["ProjectedOptimizerStats"]


@dataclass
class ProjectedOptimizerStats:
    r"""Per-iteration trace of projected gradient descent.

    Attributes:
        values (list[float]): Objective value at the start of each iteration.
        gradient_norms (list[float]): Projected-gradient L2 norm at each iteration.
        steps (list[float]): Accepted line-search step of each iteration.
        evaluations (int): Objective evaluations spent in line searches.
        line_search_failures (int): Iterations whose line search found no step.
    """

    values: list = field(default_factory=list)
    gradient_norms: list = field(default_factory=list)
    steps: list = field(default_factory=list)
    evaluations: int = 0
    line_search_failures: int = 0
    started: float = 0.0
    finished: float = 0.0

    def start(self) -> None:
        self.started = time.perf_counter()

    def finish(self) -> None:
        self.finished = time.perf_counter()

    @property
    def iterations(self) -> int:
        return len(self.steps)

    @property
    def elapsed(self) -> float:
        return max(self.finished - self.started, 0.0)

    def collect_iteration(self, value: float, gradient_norm: float) -> None:
        self.values.append(value)
        self.gradient_norms.append(gradient_norm)

    def collect_step(self, step: float, evaluations: int) -> None:
        self.steps.append(step)
        self.evaluations += evaluations

    def pretty_print(self, every: int = 1) -> str:
        r"""Render the trace, one line per ``every`` iterations plus a summary line."""
        lines = []
        for i, (value, norm) in enumerate(zip(self.values, self.gradient_norms)):
            if i % every:
                continue
            step = f"{self.steps[i]:.4g}" if i < len(self.steps) else "-"
            lines.append(f"  iter {i:4d}  value {value: .6e}  |pg| {norm:.3e}  step {step}")
        lines.append(
            f"  {self.iterations} iterations, {self.evaluations} line-search evaluations, "
            f"{self.line_search_failures} line-search failures, {self.elapsed:.3f}s"
        )
        return "\n".join(lines)
