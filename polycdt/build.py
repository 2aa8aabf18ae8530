from dataclasses import dataclass

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from polycdt.delaunay import Triangulation, VertexOrigin
from polycdt.errors import TopologyError
from polycdt.geometry import (
    Orientation,
    PointInTriangle,
    orientation,
    point_inside_triangle,
)
from polycdt.topology import find_neighbor_edge_index, lawson_swapping
from polycdt.utils import DEFAULT_MARGIN, default_flip_limit, edge_key


@dataclass
class ContainingTriangle:
    idx: int
    position: PointInTriangle
    # local vertex for ``vertex``, local vertex opposite to the edge for ``edge``
    local_idx: int | None


def find_containing_triangle(
    triangulation: Triangulation,
    point: NDArray[np.floating],
    last_triangle_idx: int,
) -> ContainingTriangle:
    """
    Implementation of Lawson's algorithm to find the triangle containing a point.
    Starts from the most recently used triangle and "walks" towards the point,
    crossing an edge the point lies to the right of at every step.

    The walk is bounded by the number of live triangles; when the bound is hit
    every triangle is tested in turn.

    Parameters:
    - triangulation: the triangulation, super-triangle included
    - point: The point to locate
    - last_triangle_idx: Index of the triangle to start the walk from

    Returns:
    - The containing triangle and where the point lies in it

    Raises:
    - ValueError if there are no triangles or the start index is invalid
    - TopologyError if no triangle contains the point
    """
    n_triangles = triangulation.n_triangles
    if n_triangles == 0 or not 0 <= last_triangle_idx < n_triangles:
        raise ValueError("No triangles available or invalid starting triangle")

    all_points = triangulation.all_points
    triangle_vertices = triangulation.triangle_vertices
    triangle_neighbors = triangulation.triangle_neighbors

    triangle_idx = last_triangle_idx
    # Keep track of visited triangles to avoid cycles
    visited = {triangle_idx}
    for steps in range(n_triangles):
        triangle = all_points[triangle_vertices[triangle_idx]]

        candidates = []
        blocked = False
        for i in range(3):
            side = orientation(triangle[(i + 1) % 3], triangle[(i + 2) % 3], point)
            if side != Orientation.right:
                continue
            adjacent_idx = int(triangle_neighbors[triangle_idx, i])
            if adjacent_idx < 0:
                blocked = True
            else:
                candidates.append(adjacent_idx)

        if not candidates:
            if blocked:
                break
            position, local_idx = point_inside_triangle(triangle, point)
            logger.trace(
                f"Found triangle {triangle_idx} with vertices {triangle_vertices[triangle_idx]} in {steps} steps"
            )
            return ContainingTriangle(
                idx=triangle_idx, position=position, local_idx=local_idx
            )

        unvisited = [c for c in candidates if c not in visited]
        triangle_idx = unvisited[0] if unvisited else candidates[0]
        visited.add(triangle_idx)

    logger.warning(
        f"Walk towards {point} did not reach it in {n_triangles} steps, scanning all triangles"
    )
    for triangle_idx in range(n_triangles):
        triangle = all_points[triangle_vertices[triangle_idx]]
        position, local_idx = point_inside_triangle(triangle, point)
        if position != PointInTriangle.outside:
            return ContainingTriangle(
                idx=triangle_idx, position=position, local_idx=local_idx
            )
    raise TopologyError(f"Couldn't find a triangle containing {point}!")


def get_sorted_points(
    points: NDArray[np.floating],
) -> tuple[NDArray[np.floating], NDArray[np.integer]]:
    """
    Sort points into a spatially coherent order to improve incremental insertion efficiency.

    Points are binned on a square grid over their bounding box and the bins are
    visited row by row in a snake-like pattern. Points of the same bin keep
    their input order, so the result only depends on the input.

    :param points: input points
    :return: sorted points and their original indices
    """
    points = np.asarray(points, dtype=float)
    lo = points.min(axis=0)
    span = points.max(axis=0) - lo
    span[span == 0] = 1.0
    normalized = (points - lo) / span

    # sort the points into bins
    grid_size = int(np.sqrt(len(points)))
    grid_size = max(grid_size, 4)  # Minimum grid size of 4x4

    y_idxs = (0.99 * grid_size * normalized[:, 1]).astype(int)
    x_idxs = (0.99 * grid_size * normalized[:, 0]).astype(int)

    # Create bin numbers in a snake-like pattern
    bin_numbers = np.where(
        y_idxs % 2 == 0,
        y_idxs * grid_size + x_idxs,
        (y_idxs + 1) * grid_size - x_idxs - 1,
    )

    # Sort the points by their bin numbers
    sorted_indices = np.argsort(bin_numbers, kind="stable")
    return points[sorted_indices], sorted_indices


def initialize_triangulation(
    points: NDArray[np.floating],
    vertex_origin: NDArray[np.integer] | None = None,
    margin: float = DEFAULT_MARGIN,
) -> Triangulation:
    """
    Initialize the triangulation with a super triangle.

    The super-triangle vertices are appended after the input points, so the
    input ids are preserved. Its size is ``margin`` times the largest extent
    of the input.

    :param points: input points, shape (n, 2)
    :param vertex_origin: origin tag of each input point (default: interior)
    :param margin: extra margin to ensure all points are inside the super triangle
    :return: a triangulation made of the super triangle alone
    """
    if margin <= 2.0:
        raise ValueError(f"Super-triangle margin must be larger than 2, got {margin}")

    points = np.asarray(points, dtype=float)
    n_points = len(points)
    if vertex_origin is None:
        vertex_origin = np.full(n_points, VertexOrigin.interior, dtype=int)

    lo = points.min(axis=0)
    extent = float(np.max(points.max(axis=0) - lo))
    if extent == 0.0:
        extent = 1.0

    unit_super_vertices = np.array(
        [
            [-margin + 0.5, -margin / 2],
            [margin + 0.5, -margin / 2],
            [0.5, margin],
        ]
    )
    super_vertices = lo + extent * unit_super_vertices

    # Add super-triangle vertices to the points array
    all_points = np.vstack([points, super_vertices])
    origins = np.concatenate(
        [np.asarray(vertex_origin, dtype=int), np.full(3, VertexOrigin.super_triangle)]
    )

    # every insertion adds two triangles
    capacity = 2 * n_points + 1
    triangulation = Triangulation(
        all_points=all_points,
        vertex_origin=origins,
        n_input_points=n_points,
        triangle_buffer=np.full((capacity, 3), -1, dtype=int),
        neighbor_buffer=np.full((capacity, 3), -1, dtype=int),
        class_buffer=np.zeros(capacity, dtype=int),
    )
    # Initial triangle is the super-triangle, it has no neighbors
    triangulation.add_triangle((n_points, n_points + 1, n_points + 2), (-1, -1, -1))
    return triangulation


def insert_point_inside_triangle(
    triangulation: Triangulation, point_idx: int, containing_idx: int
) -> list[tuple[int, int]]:
    """
    Split triangle `containing_idx` into three triangles sharing `point_idx`.

    The containing triangle is reused for the first new triangle.

    :return: Lawson stack of (triangle, local index of the new point)
    """
    v0, v1, v2 = (int(v) for v in triangulation.triangle_vertices[containing_idx])
    n0, n1, n2 = (int(n) for n in triangulation.triangle_neighbors[containing_idx])
    logger.trace(
        f"Splitting triangle {containing_idx} ({v0}, {v1}, {v2}) at point {point_idx}"
    )

    t0 = containing_idx
    t1 = triangulation.add_triangle((point_idx, v2, v0), (n1, -1, t0))
    t2 = triangulation.add_triangle((point_idx, v0, v1), (n2, t0, t1))
    triangulation.triangle_buffer[t0] = (point_idx, v1, v2)
    triangulation.neighbor_buffer[t0] = (n0, t1, t2)
    triangulation.neighbor_buffer[t1, 1] = t2

    triangulation.replace_neighbor(n1, containing_idx, t1)
    triangulation.replace_neighbor(n2, containing_idx, t2)

    return [(t0, 0), (t1, 0), (t2, 0)]


def insert_point_on_edge(
    triangulation: Triangulation,
    point_idx: int,
    containing_idx: int,
    edge_idx: int,
) -> list[tuple[int, int]]:
    """
    Insert a point on the edge opposite to vertex `edge_idx` of triangle `containing_idx`.
    If edge is internal, split 2 tris into 4.
    If edge is boundary, split 1 tri into 2.

    A constrained edge is replaced by its two halves.

    :return: Lawson stack of (triangle, local index of the new point)
    """
    vertices = triangulation.triangle_vertices
    neighbors = triangulation.triangle_neighbors

    i = edge_idx
    a = int(vertices[containing_idx, i])
    b = int(vertices[containing_idx, (i + 1) % 3])
    c = int(vertices[containing_idx, (i + 2) % 3])
    n_ab = int(neighbors[containing_idx, (i + 2) % 3])
    n_ca = int(neighbors[containing_idx, (i + 1) % 3])
    opposite_idx = int(neighbors[containing_idx, i])
    logger.trace(f"Splitting edge ({b}, {c}) at point {point_idx}")

    t0 = containing_idx
    if opposite_idx < 0:
        # only reachable without a super triangle around the points
        t1 = triangulation.add_triangle((point_idx, c, a), (n_ca, t0, -1))
        triangulation.triangle_buffer[t0] = (point_idx, a, b)
        triangulation.neighbor_buffer[t0] = (n_ab, -1, t1)
        triangulation.replace_neighbor(n_ca, containing_idx, t1)
        stack = [(t0, 0), (t1, 0)]
    else:
        j = find_neighbor_edge_index(neighbors, opposite_idx, containing_idx)
        d = int(vertices[opposite_idx, j])
        n_bd = int(neighbors[opposite_idx, (j + 1) % 3])
        n_dc = int(neighbors[opposite_idx, (j + 2) % 3])

        t2 = opposite_idx
        t1 = triangulation.add_triangle((point_idx, c, a), (n_ca, t0, t2))
        t3 = triangulation.add_triangle((point_idx, b, d), (n_bd, t2, t0))
        triangulation.triangle_buffer[t0] = (point_idx, a, b)
        triangulation.neighbor_buffer[t0] = (n_ab, t3, t1)
        triangulation.triangle_buffer[t2] = (point_idx, d, c)
        triangulation.neighbor_buffer[t2] = (n_dc, t1, t3)

        triangulation.replace_neighbor(n_ca, containing_idx, t1)
        triangulation.replace_neighbor(n_bd, opposite_idx, t3)
        stack = [(t0, 0), (t1, 0), (t2, 0), (t3, 0)]

    if triangulation.is_constrained(b, c):
        ring = triangulation.constrained_edges.pop(edge_key(b, c))
        triangulation.mark_constrained(b, point_idx, ring)
        triangulation.mark_constrained(point_idx, c, ring)

    return stack


def insert_point(
    triangulation: Triangulation,
    point_idx: int,
    max_flips: int | None = None,
) -> int:
    """
    Insert a point into the triangulation and restore the Delaunay condition.

    A point falling on an existing edge splits it; a point coinciding with an
    existing vertex is not inserted.

    :param triangulation: triangulation to update in-place
    :param point_idx: Index of the point to insert
    :param max_flips: flip budget of this insertion
    :return: id of the vertex now standing at the point's position
    """
    if max_flips is None:
        max_flips = default_flip_limit(len(triangulation.all_points))
    point = triangulation.all_points[point_idx]
    containing_tri = find_containing_triangle(
        triangulation, point, triangulation.last_triangle_idx
    )
    triangulation.last_triangle_idx = containing_tri.idx

    if containing_tri.position == PointInTriangle.vertex:
        existing = int(
            triangulation.triangle_vertices[containing_tri.idx, containing_tri.local_idx]
        )
        logger.debug(
            f"Point {point_idx} coincides with existing vertex {existing}! Not adding it again"
        )
        return existing

    if containing_tri.position == PointInTriangle.edge:
        stack = insert_point_on_edge(
            triangulation, point_idx, containing_tri.idx, containing_tri.local_idx
        )
    else:
        stack = insert_point_inside_triangle(
            triangulation, point_idx, containing_tri.idx
        )

    flips = lawson_swapping(triangulation, stack, max_flips)
    logger.trace(f"Inserted point {point_idx} with {flips} flips")
    return point_idx


def insert_vertices(
    triangulation: Triangulation,
    order: NDArray[np.integer] | list[int],
    max_flips_per_insertion: int | None = None,
) -> dict[int, int]:
    """
    Insert the given vertices one by one, in the given order.

    :return: map from every vertex that was merged with an existing one to that vertex
    """
    if max_flips_per_insertion is None:
        max_flips_per_insertion = default_flip_limit(len(triangulation.all_points))

    merged = {}
    for point_idx in order:
        point_idx = int(point_idx)
        used_idx = insert_point(triangulation, point_idx, max_flips_per_insertion)
        if used_idx != point_idx:
            merged[point_idx] = used_idx

    logger.info(
        f"Inserted {len(order) - len(merged)} vertices, {triangulation.n_triangles} triangles"
    )
    return merged


def build_delaunay(
    points: NDArray[np.floating],
    margin: float = DEFAULT_MARGIN,
    max_flips_per_insertion: int | None = None,
) -> Triangulation:
    """
    Delaunay triangulation of a point set, using the incremental algorithm with
    efficient adjacency tracking. The super triangle is kept.

    :param points: Input points to triangulate
    :param margin: size of the super triangle in units of the input extent
    :param max_flips_per_insertion: flip budget of every insertion
    :return: the triangulation
    """
    points = np.asarray(points, dtype=float)
    triangulation = initialize_triangulation(points, margin=margin)
    _, order = get_sorted_points(points)
    insert_vertices(triangulation, order, max_flips_per_insertion)
    return triangulation
