from dataclasses import dataclass, field

import numpy as np
from loguru import logger
from numpy.typing import ArrayLike, NDArray

from polycdt.build import get_sorted_points, initialize_triangulation, insert_vertices
from polycdt.constrained import add_constraints
from polycdt.errors import (
    InputValidationError,
    NonTerminationGuard,
    TopologyError,
    UnrecoverableConstraintError,
)
from polycdt.holes import (
    classify_triangles,
    extract_kept_triangles,
    remove_super_triangle_triangles,
)
from polycdt.utils import DEFAULT_MARGIN, Edge
from polycdt.validation import validate_polygon


@dataclass(frozen=True, eq=False)
class Mesh:
    """
    Triangulation of a polygon with holes.

    Attributes
    ----------
    vertices : NDArray
        Vertex coordinates, shape (n, 2), in input order: the outer ring, each hole
        ring, then the interior points. Vertices that no triangle uses (merged
        duplicates) stay in place so that ids match the input.
    triangles : NDArray
        Vertex ids of each triangle, shape (m, 3), counterclockwise
    neighbors : NDArray
        ``neighbors[t, i]`` is the triangle across the edge opposite to vertex ``i``
        of triangle ``t``, or -1 on the boundary
    vertex_origin : NDArray
        ``VertexOrigin`` of every vertex
    constrained_edges : frozenset[Edge]
        Ring edges, as (min id, max id)
    vertex_aliases : dict[int, int]
        Interior points merged with the vertex standing at the same position
    """

    vertices: NDArray[np.floating]
    triangles: NDArray[np.integer]
    neighbors: NDArray[np.integer]
    vertex_origin: NDArray[np.integer]
    constrained_edges: frozenset[Edge] = frozenset()
    vertex_aliases: dict[int, int] = field(default_factory=dict)

    def area(self) -> float:
        a, b, c = (self.vertices[self.triangles[:, k]] for k in range(3))
        ab, ac = b - a, c - a
        return 0.5 * float(np.sum(ab[:, 0] * ac[:, 1] - ab[:, 1] * ac[:, 0]))

    def edges(self) -> NDArray[np.integer]:
        """Unique edges, as rows (min id, max id), sorted."""
        all_edges = np.vstack(
            [self.triangles[:, [(k + 1) % 3, (k + 2) % 3]] for k in range(3)]
        )
        return np.unique(np.sort(all_edges, axis=1), axis=0)

    def boundary_edges(self) -> NDArray[np.integer]:
        """Edges with a triangle on one side only, oriented as in their triangle."""
        t_idx, k = np.nonzero(self.neighbors < 0)
        return np.column_stack(
            (self.triangles[t_idx, (k + 1) % 3], self.triangles[t_idx, (k + 2) % 3])
        ).astype(int)


def triangulate(
    outer: ArrayLike,
    holes: list[ArrayLike] | None = None,
    interior_points: ArrayLike | None = None,
    *,
    margin: float = DEFAULT_MARGIN,
    max_flips_per_insertion: int | None = None,
    max_constraint_iterations: int | None = None,
) -> Mesh:
    """
    Constrained Delaunay triangulation of a polygon with holes.

    The rings are forced into the mesh as constrained edges; everywhere else the
    triangulation is Delaunay. Triangles outside the outer ring or inside a hole
    are removed.

    :param outer: outer ring, shape (n, 2), any winding, optionally closed
    :param holes: hole rings, each strictly inside the outer ring
    :param interior_points: extra vertices strictly inside the polygon, shape (k, 2)
    :param margin: size of the super triangle in units of the input extent
    :param max_flips_per_insertion: flip budget of every vertex insertion and of
        the Delaunay restoration after every constraint
    :param max_constraint_iterations: cap on the edge removal loop of every constraint
    :return: the mesh
    :raises InputValidationError: if the input is not a simple polygon with valid holes
    :raises OutOfBoundsHoleError: if a hole reaches beyond the convex extent of the input
    :raises UnrecoverableConstraintError: if a ring edge cannot be recovered
    :raises NonTerminationGuard: if a flip loop does not settle
    """
    if margin <= 2.0:
        raise InputValidationError(f"Super-triangle margin must be larger than 2, got {margin}")

    polygon = validate_polygon(outer, holes, interior_points)
    triangulation = initialize_triangulation(
        polygon.points, polygon.vertex_origin, margin=margin
    )

    _, sorted_indices = get_sorted_points(polygon.points[polygon.insertion_ids])
    order = polygon.insertion_ids[sorted_indices]
    try:
        merged = insert_vertices(triangulation, order, max_flips_per_insertion)
    except (TopologyError, ValueError) as err:
        # point location or splitting broke the mesh, not a flip bound
        raise NonTerminationGuard(
            f"Vertex insertion failed to locate or split a triangle: {err}"
        ) from err

    try:
        add_constraints(
            triangulation,
            polygon.constraints,
            max_iterations=max_constraint_iterations,
            max_flips=max_flips_per_insertion,
        )
        remove_super_triangle_triangles(triangulation)
        classify_triangles(triangulation, polygon.outer_ring)
    except (TopologyError, ValueError) as err:
        raise UnrecoverableConstraintError(f"Boundary recovery failed: {err}") from err

    triangles, neighbors = extract_kept_triangles(triangulation)
    mesh = Mesh(
        vertices=polygon.points.copy(),
        triangles=triangles,
        neighbors=neighbors,
        vertex_origin=polygon.vertex_origin.copy(),
        constrained_edges=frozenset(triangulation.constrained_edges),
        vertex_aliases={**polygon.aliases, **merged},
    )
    logger.info(
        f"Triangulated polygon with {len(polygon.rings) - 1} hole(s): "
        f"{len(mesh.vertices)} vertices, {len(mesh.triangles)} triangles"
    )
    return mesh
