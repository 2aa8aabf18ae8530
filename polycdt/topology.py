from dataclasses import dataclass

from loguru import logger
from numpy.typing import NDArray

from polycdt.delaunay import Triangulation
from polycdt.errors import NonTerminationGuard, TopologyError
from polycdt.geometry import InCircle, in_circumcircle


def find_neighbor_edge_index(
    triangle_neighbors: NDArray, triangle_idx: int, neighbor_idx: int
) -> int:
    """
    Find which edge index (0, 1, or 2) connects to the given neighbor.
    Returns the index i such that triangle_neighbors[triangle_idx, i] == neighbor_idx
    """
    neighbors = triangle_neighbors[triangle_idx]
    for i, neighbor in enumerate(neighbors):
        if neighbor == neighbor_idx:
            return i
    raise TopologyError(
        f"Triangle {triangle_idx} is not a neighbor of triangle {neighbor_idx}"
    )


class SharedEdgeError(TopologyError): ...


@dataclass(frozen=True)
class SwapDiagonalResult:
    """Result of a diagonal swap operation.

    Attributes
    ----------
    t1 : int
        Triangle (vk, b, vl): the swapped triangle, still at its original index
    t2 : int
        Triangle (vk, vl, c): its former neighbor, still at its original index
    diagonal_vk : int
        First vertex index of the new diagonal edge (kept at position 0 of both triangles)
    diagonal_vl : int
        Second vertex index of the new diagonal edge
    """

    t1: int
    t2: int
    diagonal_vk: int
    diagonal_vl: int


def swap_diagonal(
    triangulation: Triangulation,
    triangle_idx: int,
    edge_idx: int,
) -> SwapDiagonalResult:
    """
    Swap the diagonal between two adjacent triangles.

    This function performs an edge flip operation, replacing the shared edge between
    two triangles with a new edge connecting the two opposite vertices.

    Before swap:
        Triangle triangle_idx: (a, b, c), with a at position edge_idx
        Neighbor across (b, c): (d, c, b)
        Shared edge: (b, c)

    After swap:
        Triangle at triangle_idx: (a, b, d)
        Triangle at the neighbor's index: (a, d, c)
        New shared edge: (a, d)

    The caller is responsible for the quadrilateral (a, b, d, c) being strictly
    convex; both new triangles are then counterclockwise. The edge opposite to
    ``a`` is at position 0 in both new triangles.

    Parameters
    ----------
    triangulation : Triangulation
        The triangulation to modify (modified in-place)
    triangle_idx : int
        Index of the triangle owning the edge
    edge_idx : int
        Position (0, 1, 2) of the vertex opposite to the edge to swap

    Returns
    -------
    SwapDiagonalResult
        The two triangles and the new diagonal (a, d).

    Raises
    ------
    TopologyError
        If the edge is on the border of the triangulation or adjacency is inconsistent.
    """
    vertices = triangulation.triangle_vertices
    neighbors = triangulation.triangle_neighbors

    i = edge_idx
    s_idx = int(neighbors[triangle_idx, i])
    if s_idx < 0:
        raise TopologyError(
            f"Edge {i} of triangle {triangle_idx} is on the border, nothing to swap"
        )
    a = int(vertices[triangle_idx, i])
    b = int(vertices[triangle_idx, (i + 1) % 3])
    c = int(vertices[triangle_idx, (i + 2) % 3])

    j = find_neighbor_edge_index(neighbors, s_idx, triangle_idx)
    d = int(vertices[s_idx, j])
    if vertices[s_idx, (j + 1) % 3] != c or vertices[s_idx, (j + 2) % 3] != b:
        raise SharedEdgeError(
            f"Triangles {triangle_idx} and {s_idx} do not share edge ({b}, {c})"
        )

    # Outer edges of the quadrilateral (a, b, d, c)
    n_ab = int(neighbors[triangle_idx, (i + 2) % 3])
    n_ca = int(neighbors[triangle_idx, (i + 1) % 3])
    n_bd = int(neighbors[s_idx, (j + 1) % 3])
    n_dc = int(neighbors[s_idx, (j + 2) % 3])

    vertices[triangle_idx] = (a, b, d)
    neighbors[triangle_idx] = (n_bd, s_idx, n_ab)
    vertices[s_idx] = (a, d, c)
    neighbors[s_idx] = (n_dc, n_ca, triangle_idx)

    triangulation.replace_neighbor(n_bd, s_idx, triangle_idx)
    triangulation.replace_neighbor(n_ca, triangle_idx, s_idx)

    return SwapDiagonalResult(t1=triangle_idx, t2=s_idx, diagonal_vk=a, diagonal_vl=d)


def legalize_edge(
    triangulation: Triangulation,
    triangle_idx: int,
    edge_idx: int,
) -> SwapDiagonalResult | None:
    """
    Flip the edge opposite to vertex ``edge_idx`` of ``triangle_idx`` if it is not
    locally Delaunay.

    The edge is flipped when the vertex of the neighbor opposite to the edge lies
    strictly inside the circumcircle of ``triangle_idx`` and the edge is not
    constrained. Border edges, constrained edges and legal edges are left alone.

    Returns
    -------
    SwapDiagonalResult | None
        The swap result, or None when nothing was flipped.
    """
    vertices = triangulation.triangle_vertices
    neighbors = triangulation.triangle_neighbors

    s_idx = int(neighbors[triangle_idx, edge_idx])
    if s_idx < 0:
        return None

    b, c = triangulation.edge_vertices(triangle_idx, edge_idx)
    if triangulation.is_constrained(b, c):
        return None

    a = int(vertices[triangle_idx, edge_idx])
    d = int(vertices[s_idx, find_neighbor_edge_index(neighbors, s_idx, triangle_idx)])
    points = triangulation.all_points
    if in_circumcircle(points[a], points[b], points[c], points[d]) != InCircle.inside:
        return None

    logger.trace(f"Vertex {d} lies in circumcircle of triangle {triangle_idx}; flipping ({b}, {c})")
    return swap_diagonal(triangulation, triangle_idx, edge_idx)


def lawson_swapping(
    triangulation: Triangulation,
    stack: list[tuple[int, int]],
    max_flips: int,
) -> int:
    """
    Restore the Delaunay condition around a newly inserted vertex by flipping edges.

    Every stack entry ``(triangle_idx, edge_idx)`` names a triangle whose vertex at
    ``edge_idx`` is the new vertex; the opposite edge is the candidate. After a
    flip the new vertex sits at position 0 of both new triangles, so their two
    outer edges are pushed as ``(t, 0)``.

    :param triangulation: Triangulation structure containing geometry and topology
    :param stack: Worklist of (triangle_idx, edge_idx) candidates
    :param max_flips: Flip budget for this insertion
    :return: number of flips performed
    :raises NonTerminationGuard: if more than ``max_flips`` flips are needed
    """
    flips = 0
    while stack:
        triangle_idx, edge_idx = stack.pop()
        result = legalize_edge(triangulation, triangle_idx, edge_idx)
        if result is None:
            continue

        flips += 1
        if flips > max_flips:
            raise NonTerminationGuard(
                f"Edge legalization did not settle after {max_flips} flips",
                limit=max_flips,
            )
        stack.append((result.t1, 0))
        stack.append((result.t2, 0))

    return flips
