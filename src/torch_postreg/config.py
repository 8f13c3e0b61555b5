r"""Configuration for the L1Lmax projection and its dual solver."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .validation import validate_non_negative

__all__ = ["ProjectionConfig", "L1LmaxConfig"]

ENTITY_TYPES = ("word", "tag")


@dataclass
class ProjectionConfig:
    """
    Settings for projected gradient descent on the dual.

    The defaults are the line-search constants and caps the projection has
    always run with:
    - Wolfe constants c1=1e-4 (sufficient decrease) and c2=0.9 (curvature)
    - Stopping tolerance 1e-5 for both the normalized projected-gradient norm
      and the normalized successive value difference
    - At most 200 descent iterations per E-step
    """

    c1: float = 1e-4
    c2: float = 0.9
    tolerance: float = 1e-5
    max_step: float = 10.0
    initial_step: float = 1.0
    max_zoom_evals: int = 10
    max_extrapolation_iters: int = 200
    max_projection_iterations: int = 200

    def __post_init__(self):
        if not 0.0 < self.c1 < self.c2 < 1.0:
            raise ValueError(f"Wolfe constants need 0 < c1 < c2 < 1, got c1={self.c1}, c2={self.c2}")
        validate_non_negative(self.tolerance, "tolerance")
        if self.max_step <= 0:
            raise ValueError(f"max_step must be positive, got {self.max_step}")
        if not 0 < self.initial_step <= self.max_step:
            raise ValueError(
                f"initial_step must be in (0, max_step={self.max_step}], got {self.initial_step}"
            )
        validate_non_negative(self.max_zoom_evals, "max_zoom_evals", integral=True)
        validate_non_negative(self.max_extrapolation_iters, "max_extrapolation_iters", integral=True)
        validate_non_negative(
            self.max_projection_iterations, "max_projection_iterations", integral=True
        )


@dataclass
class L1LmaxConfig:
    """
    Which constraint groups to build and how hard to push on them.

    child_type / parent_type pick the entity each side of an edge is keyed on
    ("word" surface form or coarse "tag"). With use_root, every token also
    gets a root group; with use_direction, left and right attachments are
    separate groups. Groups seen fewer than min_occurrences_for_projection
    times, and pairs named in allowed_types_file, get strength 0.
    """

    child_type: str = "word"
    parent_type: str = "tag"
    use_root: bool = True
    use_direction: bool = True
    constraint_strength: float = 1.0
    min_occurrences_for_projection: int = 0
    allowed_types_file: Optional[Union[str, Path]] = None

    def __post_init__(self):
        for side in ("child_type", "parent_type"):
            value = getattr(self, side)
            if value not in ENTITY_TYPES:
                raise ValueError(f"{side} must be one of {ENTITY_TYPES}, got {value!r}")
        validate_non_negative(self.constraint_strength, "constraint_strength")
        validate_non_negative(
            self.min_occurrences_for_projection, "min_occurrences_for_projection", integral=True
        )
