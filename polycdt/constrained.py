from collections import deque
from dataclasses import dataclass
from typing import Iterable

from loguru import logger

from polycdt.delaunay import Triangulation
from polycdt.errors import NonTerminationGuard, TopologyError, UnrecoverableConstraintError
from polycdt.geometry import (
    Orientation,
    is_point_in_box,
    is_quadrilateral_convex,
    orientation,
    segments_cross,
)
from polycdt.topology import find_neighbor_edge_index, legalize_edge, swap_diagonal
from polycdt.utils import CONSTRAINT_ITERATION_FACTOR, Edge, default_flip_limit, edge_key


@dataclass(frozen=True)
class IntersectedEdge:
    # endpoint on the right of the directed constraint, endpoint on its left
    p1: int
    p2: int


def _find_first_crossing(
    triangulation: Triangulation, p_idx: int, q_idx: int
) -> tuple[int, int]:
    """
    Find the triangle around p whose edge opposite to p is crossed by pq.

    Returns
    -------
    tuple[int, int]
        (triangle_idx, local index of p)
    """
    points = triangulation.all_points
    p, q = points[p_idx], points[q_idx]
    for t in triangulation.triangles_with_vertex(p_idx):
        verts = triangulation.triangle_vertices[t]
        k = next(i for i in range(3) if verts[i] == p_idx)
        b = int(verts[(k + 1) % 3])
        c = int(verts[(k + 2) % 3])

        o_b = orientation(p, q, points[b])
        o_c = orientation(p, q, points[c])
        for v, o_v in ((b, o_b), (c, o_c)):
            if o_v == Orientation.collinear and is_point_in_box(p, q, points[v]):
                raise UnrecoverableConstraintError(
                    f"Vertex {v} lies on constraint {p_idx}-{q_idx}",
                    edge=(p_idx, q_idx),
                )
        if o_b == Orientation.right and o_c == Orientation.left:
            return int(t), k

    raise TopologyError(f"No triangle around vertex {p_idx} faces vertex {q_idx}")


def find_intersecting_edges(
    triangulation: Triangulation, p_idx: int, q_idx: int
) -> list[IntersectedEdge]:
    """
    Find all the edges properly crossed by the segment p_idx-q_idx.

    Walks the triangles pierced by the segment, from p to q. Each crossed edge
    is recorded with its endpoint on the right of p->q first.

    Parameters
    ----------
    triangulation : Triangulation
        The triangulation
    p_idx : int
        Start vertex index of constraint
    q_idx : int
        End vertex index of constraint

    Returns
    -------
    list[IntersectedEdge]
        Crossed edges, in walking order

    Raises
    ------
    UnrecoverableConstraintError
        If a vertex lies in the interior of the segment, or the segment crosses
        an edge that is already constrained.
    """
    points = triangulation.all_points
    p, q = points[p_idx], points[q_idx]

    triangle_idx, edge_idx = _find_first_crossing(triangulation, p_idx, q_idx)
    intersecting = []
    for _ in range(triangulation.n_triangles):
        right, left = triangulation.edge_vertices(triangle_idx, edge_idx)
        if triangulation.is_constrained(right, left):
            raise UnrecoverableConstraintError(
                f"Constraint {p_idx}-{q_idx} crosses constrained edge {right}-{left}",
                edge=(p_idx, q_idx),
            )
        intersecting.append(IntersectedEdge(p1=right, p2=left))

        neighbors = triangulation.triangle_neighbors
        next_idx = int(neighbors[triangle_idx, edge_idx])
        if next_idx < 0:
            raise TopologyError(
                f"Constraint {p_idx}-{q_idx} leaves the triangulation at edge {right}-{left}"
            )
        # seen from the neighbor, the crossed edge is (left, right)
        j = find_neighbor_edge_index(neighbors, next_idx, triangle_idx)
        d = int(triangulation.triangle_vertices[next_idx, j])
        if d == q_idx:
            logger.debug(
                f"Found {len(intersecting)} intersecting edges from {p_idx} to {q_idx}"
            )
            return intersecting

        o_d = orientation(p, q, points[d])
        if o_d == Orientation.collinear:
            raise UnrecoverableConstraintError(
                f"Vertex {d} lies on constraint {p_idx}-{q_idx}", edge=(p_idx, q_idx)
            )
        triangle_idx = next_idx
        # next crossed edge: (d, left) or (right, d)
        edge_idx = (j + 2) % 3 if o_d == Orientation.right else (j + 1) % 3

    raise TopologyError(f"Walk from {p_idx} never reached {q_idx}")


def remove_intersecting_edges(
    triangulation: Triangulation,
    p_idx: int,
    q_idx: int,
    edges: list[IntersectedEdge],
    max_iterations: int | None = None,
) -> list[Edge]:
    """
    Remove edges that intersect the constraint edge p_idx-q_idx by edge swapping.

    This implements the edge-flipping algorithm:
    While edges still cross the constraint:
    1. Remove an edge Vk-Vl from the front of the queue
    2. If the two triangles sharing Vk-Vl don't form a strictly convex quadrilateral,
       put the edge back at the end of the queue
    3. Otherwise, swap the diagonal. If the new diagonal Vm-Vn still crosses
       the constraint, queue it again

    Parameters
    ----------
    triangulation : Triangulation
        The triangulation to modify (modified in-place)
    p_idx : int
        Start vertex index of constraint edge
    q_idx : int
        End vertex index of constraint edge
    edges : list[IntersectedEdge]
        Initial list of edges that intersect the constraint
    max_iterations : int | None
        Cap on the number of queue pops, by default
        ``CONSTRAINT_ITERATION_FACTOR * (len(edges) + 1) ** 2``

    Returns
    -------
    list[Edge]
        Edges whose Delaunay condition must be checked again: the new diagonals
        that do not cross the constraint and the sides of every swapped quadrilateral

    Raises
    ------
    UnrecoverableConstraintError
        If every queued edge was put back without a swap, or after ``max_iterations``.
    """
    if max_iterations is None:
        max_iterations = CONSTRAINT_ITERATION_FACTOR * (len(edges) + 1) ** 2

    points = triangulation.all_points
    p, q = points[p_idx], points[q_idx]
    constraint = edge_key(p_idx, q_idx)

    intersecting = deque(edges)
    to_check = []
    deferred = 0
    for iteration in range(max_iterations):
        if not intersecting:
            logger.debug(
                f"Removed intersecting edges of {p_idx}-{q_idx} in {iteration} iterations"
            )
            return to_check

        edge = intersecting.popleft()
        located = triangulation.find_edge(edge.p1, edge.p2)
        if located is None:
            raise TopologyError(f"Edge {edge.p1}-{edge.p2} is not in the triangulation")
        triangle_idx, edge_idx = located
        neighbor_idx = int(triangulation.triangle_neighbors[triangle_idx, edge_idx])
        if neighbor_idx < 0:
            raise TopologyError(f"Edge {edge.p1}-{edge.p2} is on the border")

        vk, vl = triangulation.edge_vertices(triangle_idx, edge_idx)
        vm = int(triangulation.triangle_vertices[triangle_idx, edge_idx])
        j = find_neighbor_edge_index(
            triangulation.triangle_neighbors, neighbor_idx, triangle_idx
        )
        vn = int(triangulation.triangle_vertices[neighbor_idx, j])

        # Check if the quadrilateral is strictly convex
        if not is_quadrilateral_convex(points[vk], points[vl], points[vm], points[vn]):
            # Put the edge back on the queue and try another
            intersecting.append(edge)
            deferred += 1
            if deferred >= len(intersecting):
                raise UnrecoverableConstraintError(
                    f"No crossing edge of constraint {p_idx}-{q_idx} can be swapped, "
                    f"{len(intersecting)} edges remain",
                    edge=(p_idx, q_idx),
                )
            continue

        deferred = 0
        result = swap_diagonal(triangulation, triangle_idx, edge_idx)
        new_diagonal = (result.diagonal_vk, result.diagonal_vl)
        to_check.extend([(vm, vk), (vk, vn), (vn, vl), (vl, vm)])

        if edge_key(*new_diagonal) == constraint:
            continue
        if segments_cross(p, q, points[new_diagonal[0]], points[new_diagonal[1]]):
            intersecting.append(IntersectedEdge(*new_diagonal))
        else:
            to_check.append(new_diagonal)

    if not intersecting:
        return to_check
    raise UnrecoverableConstraintError(
        f"Failed to remove all intersecting edges after {max_iterations} iterations. "
        f"{len(intersecting)} edges remain.",
        edge=(p_idx, q_idx),
    )


def restore_delaunay(
    triangulation: Triangulation,
    edges: Iterable[Edge],
    max_flips: int | None = None,
) -> int:
    """
    Legalize the given edges, and every edge that becomes illegal on the way.

    Constrained edges are never swapped. Edges that no longer exist are skipped.

    :return: number of swaps
    :raises NonTerminationGuard: if more than ``max_flips`` swaps are needed
    """
    if max_flips is None:
        max_flips = default_flip_limit(len(triangulation.all_points))

    stack = list(edges)
    flips = 0
    while stack:
        vk, vl = stack.pop()
        located = triangulation.find_edge(vk, vl)
        if located is None:
            continue
        triangle_idx, edge_idx = located
        vm = int(triangulation.triangle_vertices[triangle_idx, edge_idx])
        b, c = triangulation.edge_vertices(triangle_idx, edge_idx)

        result = legalize_edge(triangulation, triangle_idx, edge_idx)
        if result is None:
            continue
        flips += 1
        if flips > max_flips:
            raise NonTerminationGuard(
                f"Delaunay restoration did not settle after {max_flips} flips",
                limit=max_flips,
            )
        vn = result.diagonal_vl
        stack.extend([(vm, b), (b, vn), (vn, c), (c, vm)])

    return flips


def _insert_single_constraint(
    triangulation: Triangulation,
    p_idx: int,
    q_idx: int,
    ring: int = 0,
    max_iterations: int | None = None,
    max_flips: int | None = None,
) -> None:
    """
    Insert a single constraint edge into the triangulation.

    This is an internal function. Use add_constraints() instead.
    """
    if triangulation.find_edge(p_idx, q_idx) is not None:
        triangulation.mark_constrained(p_idx, q_idx, ring)
        logger.trace(f"Constraint edge {p_idx}-{q_idx} already in the triangulation")
        return

    intersected_edges = find_intersecting_edges(triangulation, p_idx, q_idx)
    to_check = remove_intersecting_edges(
        triangulation, p_idx, q_idx, intersected_edges, max_iterations
    )

    if triangulation.find_edge(p_idx, q_idx) is None:
        raise UnrecoverableConstraintError(
            f"Constraint {p_idx}-{q_idx} is missing after removing intersecting edges",
            edge=(p_idx, q_idx),
        )
    triangulation.mark_constrained(p_idx, q_idx, ring)

    flips = restore_delaunay(triangulation, to_check, max_flips)
    logger.debug(
        f"Constraint {p_idx}-{q_idx} inserted: {len(intersected_edges)} crossing edges, "
        f"{flips} flips to restore the Delaunay condition"
    )


def add_constraints(
    triangulation: Triangulation,
    constraints: list[tuple[int, int]] | list[tuple[int, int, int]],
    max_iterations: int | None = None,
    max_flips: int | None = None,
) -> None:
    """
    Add constraint edge(s) to a triangulation.

    This modifies the triangulation to include the constraint edges,
    creating a Constrained Delaunay Triangulation (CDT).

    Parameters
    ----------
    triangulation : Triangulation
        The triangulation to constrain (modified in-place)
    constraints : list[tuple[int, int]] or list[tuple[int, int, int]]
        Constraint edges as [(v1_idx, v2_idx), ...], optionally with the index
        of the ring they belong to as a third item (0 when missing).
        Vertex indices refer to indices in triangulation.all_points.
    max_iterations : int | None
        Per-constraint cap on the edge removal loop
    max_flips : int | None
        Per-constraint cap on the Delaunay restoration flips

    Raises
    ------
    UnrecoverableConstraintError
        If a constraint cannot be recovered.
    NonTerminationGuard
        If the Delaunay restoration does not settle.

    Notes
    -----
    The resulting triangulation will:
    - Contain all the constraint edges
    - Be as close to Delaunay as possible while respecting constraints
    - May have some triangles that violate the Delaunay property if necessary
      to accommodate the constraints

    Example
    --------
    >>> add_constraints(tri, [(0, 5), (1, 6), (2, 7)])
    """
    logger.info(f"Adding {len(constraints)} constraint(s) to triangulation")
    for i, constraint in enumerate(constraints):
        v1_idx, v2_idx = int(constraint[0]), int(constraint[1])
        ring = int(constraint[2]) if len(constraint) > 2 else 0
        logger.trace(
            f"Processing constraint {i + 1}/{len(constraints)}: {v1_idx}-{v2_idx}"
        )
        _insert_single_constraint(
            triangulation, v1_idx, v2_idx, ring, max_iterations, max_flips
        )
