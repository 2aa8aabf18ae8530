from dataclasses import dataclass, field
from enum import IntEnum

import numpy as np
from numpy.typing import NDArray

from polycdt.errors import TopologyError
from polycdt.utils import Edge, edge_key


class VertexOrigin(IntEnum):
    outer = 0
    hole = 1
    interior = 2
    super_triangle = 3


class TriangleClass(IntEnum):
    unclassified = 0
    kept = 1
    exterior = 2
    in_hole = 3


@dataclass
class Triangulation:
    """
    Adjacency-aware triangle store of one triangulation run.

    Triangles are stored counterclockwise. ``triangle_neighbors[t, i]`` is the
    triangle across the edge opposite to vertex ``i`` of ``t`` (the edge
    ``(triangle_vertices[t, i + 1], triangle_vertices[t, i + 2])``), or -1.

    The buffers are over-allocated; only the first ``n_triangles`` rows are
    live, and the ``triangle_*`` properties return views of those rows.
    Views are invalidated by :meth:`add_triangle` when the buffers grow.
    """

    all_points: NDArray[np.floating]
    vertex_origin: NDArray[np.integer]
    n_input_points: int
    triangle_buffer: NDArray[np.integer]
    neighbor_buffer: NDArray[np.integer]
    class_buffer: NDArray[np.integer]
    n_triangles: int = 0
    last_triangle_idx: int = 0
    # constrained edge -> index of the ring it belongs to (0 = outer ring)
    constrained_edges: dict[Edge, int] = field(default_factory=dict)

    @property
    def triangle_vertices(self) -> NDArray[np.integer]:
        return self.triangle_buffer[: self.n_triangles]

    @property
    def triangle_neighbors(self) -> NDArray[np.integer]:
        return self.neighbor_buffer[: self.n_triangles]

    @property
    def triangle_class(self) -> NDArray[np.integer]:
        return self.class_buffer[: self.n_triangles]

    @property
    def super_vertices(self) -> NDArray[np.integer]:
        return np.arange(self.n_input_points, self.n_input_points + 3)

    def add_triangle(
        self, vertices: tuple[int, int, int], neighbors: tuple[int, int, int]
    ) -> int:
        if self.n_triangles == len(self.triangle_buffer):
            grow = max(len(self.triangle_buffer), 1)
            self.triangle_buffer = np.vstack(
                (self.triangle_buffer, np.full((grow, 3), -1, dtype=int))
            )
            self.neighbor_buffer = np.vstack(
                (self.neighbor_buffer, np.full((grow, 3), -1, dtype=int))
            )
            self.class_buffer = np.concatenate(
                (self.class_buffer, np.zeros(grow, dtype=self.class_buffer.dtype))
            )
        idx = self.n_triangles
        self.triangle_buffer[idx] = vertices
        self.neighbor_buffer[idx] = neighbors
        self.class_buffer[idx] = TriangleClass.unclassified
        self.n_triangles += 1
        return idx

    def replace_neighbor(self, triangle_idx: int, old_idx: int, new_idx: int) -> None:
        """Make ``triangle_idx`` point to ``new_idx`` where it pointed to ``old_idx``."""
        if triangle_idx < 0:
            return
        for i, ref in enumerate(self.neighbor_buffer[triangle_idx]):
            if ref == old_idx:
                self.neighbor_buffer[triangle_idx, i] = new_idx
                return
        raise TopologyError(f"{old_idx} not found in {triangle_idx} neighbors!")

    def edge_vertices(self, triangle_idx: int, edge_idx: int) -> tuple[int, int]:
        """Vertices of the edge opposite to ``edge_idx``, in counterclockwise order."""
        verts = self.triangle_buffer[triangle_idx]
        return int(verts[(edge_idx + 1) % 3]), int(verts[(edge_idx + 2) % 3])

    def triangles_with_vertex(self, vertex: int) -> NDArray[np.integer]:
        return np.nonzero(np.any(self.triangle_vertices == vertex, axis=1))[0]

    def find_edge(self, v1: int, v2: int) -> tuple[int, int] | None:
        """
        Locate the edge (v1, v2).

        Returns
        -------
        tuple[int, int] | None
            ``(triangle_idx, edge_idx)`` such that the edge is opposite to vertex
            ``edge_idx`` of the triangle. The triangle in which the edge runs
            from v1 to v2 counterclockwise is preferred. None if the edge is
            not part of the triangulation.
        """
        fallback = None
        for t in self.triangles_with_vertex(v1):
            verts = self.triangle_buffer[t]
            k = int(np.nonzero(verts == v1)[0][0])
            if verts[(k + 1) % 3] == v2:
                return int(t), (k + 2) % 3
            if verts[(k + 2) % 3] == v2:
                fallback = (int(t), (k + 1) % 3)
        return fallback

    def is_constrained(self, v1: int, v2: int) -> bool:
        return edge_key(v1, v2) in self.constrained_edges

    def mark_constrained(self, v1: int, v2: int, ring: int = 0) -> None:
        self.constrained_edges[edge_key(v1, v2)] = ring
