r"""Euclidean projection onto per-group capped simplices.

The feasible set of the L1Lmax dual is a product over constraint groups of

.. math::
    \{\lambda_g \ge 0,\ \textstyle\sum_i \lambda_{g,i} \le c_g\}.

Clipping at zero is the projection whenever the clipped group sum stays under
its cap; otherwise the sum constraint is active and the group is projected
onto the simplex of radius :math:`c_g` with the sort-based algorithm of
Duchi et al. (2008). All groups are handled at once with segmented sorts and
cumulative sums.
"""

import torch
from torch import Tensor

__all__ = ["capped_simplex_projection", "project_onto_capped_simplices"]


def project_onto_capped_simplices(x: Tensor, group_ids: Tensor, caps: Tensor) -> Tensor:
    r"""project_onto_capped_simplices(x, group_ids, caps) -> Tensor

    Args:
        x (Tensor): Point of shape :math:`(V,)`.
        group_ids (Tensor): Group of every coordinate, shape :math:`(V,)`, values in ``[0, G)``.
        caps (Tensor): Non-negative cap per group, shape :math:`(G,)`.

    Returns:
        Tensor: Projection of ``x``, same shape and dtype.
    """
    if x.numel() == 0:
        return x.clone()
    caps = caps.to(x.dtype)
    num_groups = caps.shape[0]
    clipped = x.clamp(min=0)
    sums = torch.zeros(num_groups, dtype=x.dtype, device=x.device).index_add_(0, group_ids, clipped)
    over = sums > caps
    if not over.any():
        return clipped

    # sort descending within each group: value sort, then stable sort by group
    by_value = torch.argsort(-x, stable=True)
    by_group = torch.argsort(group_ids[by_value], stable=True)
    order = by_value[by_group]
    u = x[order]
    g = group_ids[order]

    sizes = torch.bincount(group_ids, minlength=num_groups)
    starts = torch.cumsum(sizes, dim=0) - sizes
    css = torch.cumsum(u, dim=0)
    before = torch.where(starts > 0, css[(starts - 1).clamp(min=0)], torch.zeros_like(caps))
    css = css - before[g]
    rank = torch.arange(x.shape[0], device=x.device) - starts[g] + 1

    cond = (u - (css - caps[g]) / rank) > 0
    rho = torch.zeros(num_groups, dtype=torch.long, device=x.device).index_add_(
        0, g, cond.long()
    )
    rho_safe = rho.clamp(min=1)
    css_at_rho = css[(starts + rho_safe - 1).clamp(max=x.shape[0] - 1)]
    theta = (css_at_rho - caps) / rho_safe.to(x.dtype)

    projected = (x - theta[group_ids]).clamp(min=0)
    out = torch.where(over[group_ids], projected, clipped)
    return torch.where(caps[group_ids] > 0, out, torch.zeros_like(out))


def capped_simplex_projection(x: Tensor, cap: float) -> Tensor:
    r"""Project a single vector onto :math:`\{y \ge 0, \sum y \le \text{cap}\}`.

    Examples::

        >>> capped_simplex_projection(torch.tensor([2.0, 0.0, -1.0]), 1.0)
        tensor([1., 0., 0.])
    """
    group_ids = torch.zeros(x.shape[0], dtype=torch.long, device=x.device)
    caps = torch.tensor([float(cap)], dtype=x.dtype, device=x.device)
    return project_onto_capped_simplices(x, group_ids, caps)
