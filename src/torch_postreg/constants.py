r"""Shared constants for posterior-regularization projection.

Attributes:
    NEG_INF (float): Negative infinity approximation used for log-space computations.
        Set to ``-1e9`` to avoid numerical issues with ``float('-inf')``.
    ROOT_PARENT (int): Parent position standing for the virtual root token.
    LEFT (str): Direction name for an edge whose child precedes its parent.
    RIGHT (str): Direction name for an edge whose child follows its parent.
"""

NEG_INF = -1e9

ROOT_PARENT = -1

LEFT = "left"
RIGHT = "right"
