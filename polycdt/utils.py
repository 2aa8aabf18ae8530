from typing import TypeAlias
from numpy.typing import NDArray
import numpy as np

# Two input coordinates closer than EPS * (extent of the input) are the same point.
# Every other geometric decision is made with exact predicates.
EPS = 1e-9
# Super-triangle size, in units of the input extent
DEFAULT_MARGIN = 10.0
# Per-constraint cap for the edge recovery loop: factor * (crossings + 1) ** 2
CONSTRAINT_ITERATION_FACTOR = 8

Vec2d: TypeAlias = tuple[float, float] | NDArray[np.floating]
Triangle: TypeAlias = tuple[Vec2d, Vec2d, Vec2d] | NDArray[np.floating]
Edge: TypeAlias = tuple[int, int]


def edge_key(v1: int, v2: int) -> Edge:
    """Order-independent key of the edge (v1, v2)."""
    v1, v2 = int(v1), int(v2)
    return (v1, v2) if v1 < v2 else (v2, v1)


def default_flip_limit(n_vertices: int) -> int:
    # a vertex can gain at most one incident edge per flip
    return 3 * n_vertices + 16
