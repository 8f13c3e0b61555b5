r"""Input validation utilities for structured posteriors and projection settings."""

import math
import numbers
from typing import Optional

import torch
from torch import Tensor

__all__ = [
    "validate_arc_scores",
    "validate_chain_potentials",
    "validate_multipliers",
    "validate_non_negative",
]


def validate_arc_scores(
    arc: Tensor,
    root: Tensor,
    name: str = "arc",
    check_nan: bool = True,
) -> None:
    r"""Validate dependency log-potentials for one sentence.

    Args:
        arc (Tensor): Arc scores of shape :math:`(n, n)`, ``arc[h, m]`` for head ``h``.
        root (Tensor): Root scores of shape :math:`(n,)`.
        name (str, optional): Name for error messages. Default: ``"arc"``
        check_nan (bool, optional): Check for NaN values. Default: ``True``

    Raises:
        ValueError: If shapes are inconsistent or values contain NaN when checked.
    """
    if arc.ndim != 2 or arc.shape[0] != arc.shape[1]:
        raise ValueError(f"{name} must be square 2D (n, n), got shape {tuple(arc.shape)}")

    n = arc.shape[0]
    if n < 1:
        raise ValueError(f"{name} must cover at least one word, got n={n}")

    if root.ndim != 1 or root.shape[0] != n:
        raise ValueError(f"root scores must have shape ({n},), got {tuple(root.shape)}")

    if check_nan and (torch.isnan(arc).any() or torch.isnan(root).any()):
        raise ValueError(f"{name} contains NaN values")


def validate_chain_potentials(
    emission: Tensor,
    transition: Tensor,
    initial: Optional[Tensor] = None,
) -> None:
    r"""Validate first-order chain log-potentials.

    Args:
        emission (Tensor): Emission scores of shape :math:`(T, S)`.
        transition (Tensor): Transition scores of shape :math:`(S, S)`, or
            :math:`(T-1, S, S)` for position-specific transitions;
            ``transition[..., prev, next]``.
        initial (Tensor, optional): Initial-state scores of shape :math:`(S,)`.

    Raises:
        ValueError: If any shape contract is violated.
    """
    if emission.ndim != 2:
        raise ValueError(f"emission must be 2D (T, S), got {emission.ndim}D")

    T, S = emission.shape
    if T < 1:
        raise ValueError(f"emission must cover at least one position, got T={T}")

    if transition.ndim == 2:
        if transition.shape != (S, S):
            raise ValueError(
                f"transition must be (S, S) = ({S}, {S}), got {tuple(transition.shape)}"
            )
    elif transition.ndim == 3:
        if transition.shape != (T - 1, S, S):
            raise ValueError(
                f"position-specific transition must be (T-1, S, S) = ({T - 1}, {S}, {S}), "
                f"got {tuple(transition.shape)}"
            )
    else:
        raise ValueError(
            f"transition must be 2D (S, S) or 3D (T-1, S, S), got {transition.ndim}D"
        )

    if initial is not None and initial.shape != (S,):
        raise ValueError(f"initial must be (S,) = ({S},), got {tuple(initial.shape)}")


def validate_multipliers(
    multipliers: Tensor,
    dimension: int,
    name: str = "lambda",
) -> None:
    r"""Validate a Lagrange multiplier vector.

    Args:
        multipliers (Tensor): Vector of shape :math:`(\text{dimension},)`.
        dimension (int): Expected number of optimization variables.
        name (str, optional): Name for error messages. Default: ``"lambda"``

    Raises:
        ValueError: If not 1D, wrong length, or non-finite.
    """
    if multipliers.ndim != 1:
        raise ValueError(f"{name} must be 1D, got {multipliers.ndim}D")

    if multipliers.shape[0] != dimension:
        raise ValueError(f"{name} length {multipliers.shape[0]} doesn't match expected {dimension}")

    if not torch.isfinite(multipliers).all():
        raise ValueError(f"{name} contains non-finite values")


def validate_non_negative(value, name: str, integral: bool = False) -> None:
    r"""Validate a scalar setting is a finite non-negative number.

    Args:
        value: Value to check.
        name (str): Name for error messages.
        integral (bool, optional): Require an integer (not ``bool``). Default: ``False``

    Raises:
        ValueError: If the value has the wrong type, is negative, or non-finite.
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValueError(f"{name} must be a number, got {type(value).__name__}({value!r})")

    if integral and not isinstance(value, numbers.Integral):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}({value!r})")

    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite, got {value}")

    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
