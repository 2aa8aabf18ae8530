"""Removal of the triangles outside the polygon or inside its holes.

Works on a triangulation in which every ring edge is constrained: the
constrained edges split the triangles into connected regions, and a flood from
a triangle known to be inside the polygon classifies all of them.
"""

from collections import deque

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from polycdt.delaunay import Triangulation, TriangleClass
from polycdt.errors import TopologyError
from polycdt.utils import edge_key


def remove_super_triangle_triangles(triangulation: Triangulation) -> int:
    """
    Mark every triangle that contains a vertex of the super triangle as exterior.

    Triangles are only classified here, the adjacency is left untouched.

    :return: the number of triangles marked
    """
    mask = np.any(triangulation.triangle_vertices >= triangulation.n_input_points, axis=1)
    triangulation.triangle_class[mask] = TriangleClass.exterior
    n_marked = int(np.count_nonzero(mask))
    logger.debug(f"Marked {n_marked} super-triangle triangles as exterior")
    return n_marked


def find_seed_triangle(triangulation: Triangulation, outer_ring: list[int]) -> int:
    """
    Triangle on the interior side of the first edge of the (counterclockwise) outer ring.
    """
    v1, v2 = int(outer_ring[0]), int(outer_ring[1])
    located = triangulation.find_edge(v1, v2)
    if located is None:
        raise TopologyError(f"Outer ring edge {v1}-{v2} is not in the triangulation")
    triangle_idx, edge_idx = located
    if triangulation.edge_vertices(triangle_idx, edge_idx) != (v1, v2):
        raise TopologyError(f"No triangle on the interior side of edge {v1}-{v2}")
    return triangle_idx


def classify_triangles(triangulation: Triangulation, outer_ring: list[int]) -> int:
    """
    Classify the triangles as kept, exterior or in_hole by flooding from a seed.

    The flood never enters a triangle that is already classified. Crossing an
    unconstrained edge keeps the classification. Crossing a constrained edge
    out of the kept region leads outside (outer ring edge) or into a hole (hole
    ring edge); crossing one from outside or from a hole leads back in.

    Triangles that the flood does not reach are walled off by exterior
    triangles and are marked exterior.

    Parameters
    ----------
    triangulation : Triangulation
        Triangulation with every ring edge constrained
    outer_ring : list[int]
        Vertex ids of the outer ring, counterclockwise

    Returns
    -------
    int
        Number of kept triangles
    """
    triangle_class = triangulation.triangle_class
    neighbors = triangulation.triangle_neighbors

    seed = find_seed_triangle(triangulation, outer_ring)
    if triangle_class[seed] != TriangleClass.unclassified:
        raise TopologyError(f"Seed triangle {seed} is already classified")
    triangle_class[seed] = TriangleClass.kept
    logger.debug(f"Flooding from seed triangle {seed}")

    queue = deque([seed])
    while queue:
        triangle_idx = queue.popleft()
        current = triangle_class[triangle_idx]
        for edge_idx in range(3):
            neighbor_idx = int(neighbors[triangle_idx, edge_idx])
            if neighbor_idx < 0 or triangle_class[neighbor_idx] != TriangleClass.unclassified:
                continue

            v1, v2 = triangulation.edge_vertices(triangle_idx, edge_idx)
            ring = triangulation.constrained_edges.get(edge_key(v1, v2))
            if ring is None:
                triangle_class[neighbor_idx] = current
            elif current == TriangleClass.kept:
                triangle_class[neighbor_idx] = (
                    TriangleClass.exterior if ring == 0 else TriangleClass.in_hole
                )
            else:
                triangle_class[neighbor_idx] = TriangleClass.kept
            queue.append(neighbor_idx)

    unreached = triangle_class == TriangleClass.unclassified
    if np.any(unreached):
        logger.debug(f"{np.count_nonzero(unreached)} unreached triangles marked exterior")
        triangle_class[unreached] = TriangleClass.exterior

    n_kept = int(np.count_nonzero(triangle_class == TriangleClass.kept))
    n_holes = int(np.count_nonzero(triangle_class == TriangleClass.in_hole))
    logger.info(f"Kept {n_kept} triangles, removed {n_holes} triangles in holes")
    return n_kept


def extract_kept_triangles(
    triangulation: Triangulation,
) -> tuple[NDArray[np.integer], NDArray[np.integer]]:
    """
    Vertices and rebuilt neighbors of the kept triangles.

    :return: (triangle_vertices, triangle_neighbors) of the kept triangles only;
        neighbor ids refer to the rows of the returned arrays
    """
    keep_mask = triangulation.triangle_class == TriangleClass.kept
    new_tri_vertices = triangulation.triangle_vertices[keep_mask].copy()

    # Rebuild neighbors
    edge_to_triangle = {}
    for t_idx, tri in enumerate(new_tri_vertices):
        for i in range(3):
            v1, v2 = int(tri[(i + 1) % 3]), int(tri[(i + 2) % 3])
            edge_to_triangle[(v1, v2)] = t_idx

    new_neighbors = np.full((len(new_tri_vertices), 3), -1, dtype=int)
    for t_idx, tri in enumerate(new_tri_vertices):
        for i in range(3):
            v1, v2 = int(tri[(i + 1) % 3]), int(tri[(i + 2) % 3])
            if (v2, v1) in edge_to_triangle:
                new_neighbors[t_idx, i] = edge_to_triangle[(v2, v1)]

    return new_tri_vertices, new_neighbors
