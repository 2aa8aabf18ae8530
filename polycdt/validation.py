"""Input checks run before any triangle is built.

Every failure is reported as :class:`InputValidationError` (or
:class:`OutOfBoundsHoleError`) with the ring and vertex ids involved. Ring
labels in messages are ``outer ring`` and ``hole <k>`` (0-based).
"""

from dataclasses import dataclass, field

import numpy as np
from loguru import logger
from numpy.typing import ArrayLike, NDArray

from polycdt.delaunay import VertexOrigin
from polycdt.errors import InputValidationError, OutOfBoundsHoleError
from polycdt.geometry import (
    Orientation,
    PointInPolygon,
    convex_hull,
    is_point_in_box,
    is_point_in_convex_polygon,
    orientation,
    point_in_polygon,
    polygon_area,
    segments_intersect,
)
from polycdt.utils import EPS


@dataclass
class PolygonInput:
    """
    Validated input, with every vertex numbered.

    Attributes
    ----------
    points : NDArray
        All vertices: the outer ring, then each hole ring, then the interior points,
        in the order they were given
    vertex_origin : NDArray
        ``VertexOrigin`` of every vertex
    rings : list[list[int]]
        Vertex ids of each ring, the outer ring (counterclockwise) first, then the
        holes (clockwise)
    insertion_ids : NDArray
        Ids of the vertices to insert; aliased interior points are left out
    aliases : dict[int, int]
        Interior points merged with an earlier vertex at the same position
    """

    points: NDArray[np.floating]
    vertex_origin: NDArray[np.integer]
    rings: list[list[int]]
    insertion_ids: NDArray[np.integer]
    aliases: dict[int, int] = field(default_factory=dict)

    @property
    def outer_ring(self) -> list[int]:
        return self.rings[0]

    @property
    def constraints(self) -> list[tuple[int, int, int]]:
        """Every ring edge, as (v1, v2, ring index)."""
        return [
            (ring[k], ring[(k + 1) % len(ring)], ring_idx)
            for ring_idx, ring in enumerate(self.rings)
            for k in range(len(ring))
        ]


def _ring_label(ring_idx: int) -> str:
    return "outer ring" if ring_idx == 0 else f"hole {ring_idx - 1}"


def _as_ring(coords: ArrayLike, label: str) -> NDArray[np.floating]:
    try:
        ring = np.asarray(coords, dtype=float)
    except (TypeError, ValueError) as err:
        raise InputValidationError(f"{label}: coordinates are not numeric") from err
    if ring.ndim != 2 or ring.shape[1] != 2:
        raise InputValidationError(
            f"{label}: expected an array of shape (n, 2), got {ring.shape}"
        )
    if not np.all(np.isfinite(ring)):
        raise InputValidationError(f"{label}: coordinates must be finite")
    # closed ring: drop the repeated first point
    if len(ring) > 1 and np.array_equal(ring[0], ring[-1]):
        ring = ring[:-1]
    if len(ring) < 3:
        raise InputValidationError(f"{label}: a ring needs at least 3 vertices")
    return ring


def _as_points(coords: ArrayLike | None) -> NDArray[np.floating]:
    if coords is None:
        return np.empty((0, 2))
    try:
        points = np.asarray(coords, dtype=float)
    except (TypeError, ValueError) as err:
        raise InputValidationError("interior points: coordinates are not numeric") from err
    if points.size == 0:
        return np.empty((0, 2))
    if points.ndim != 2 or points.shape[1] != 2:
        raise InputValidationError(
            f"interior points: expected an array of shape (k, 2), got {points.shape}"
        )
    if not np.all(np.isfinite(points)):
        raise InputValidationError("interior points: coordinates must be finite")
    return points


def _edge_boxes(ring: NDArray[np.floating]) -> tuple[NDArray, NDArray]:
    ends = np.roll(ring, -1, axis=0)
    return np.minimum(ring, ends), np.maximum(ring, ends)


def _candidate_edge_pairs(
    ring_a: NDArray[np.floating], ring_b: NDArray[np.floating]
) -> NDArray[np.integer]:
    """Pairs (i, j) of edges of ring_a and ring_b whose bounding boxes overlap."""
    lo_a, hi_a = _edge_boxes(ring_a)
    lo_b, hi_b = _edge_boxes(ring_b)
    overlap = np.all(
        (lo_a[:, None, :] <= hi_b[None, :, :]) & (lo_b[None, :, :] <= hi_a[:, None, :]),
        axis=2,
    )
    return np.argwhere(overlap)


def _check_edge_lengths(ring: NDArray[np.floating], ring_idx: int, tol: float) -> None:
    lengths = np.linalg.norm(np.roll(ring, -1, axis=0) - ring, axis=1)
    short = np.nonzero(lengths <= tol)[0]
    if len(short):
        k = int(short[0])
        raise InputValidationError(
            f"{_ring_label(ring_idx)}: zero-length edge between vertices {k} and "
            f"{(k + 1) % len(ring)}"
        )


def _find_coincident_pairs(points: NDArray[np.floating], tol: float) -> list[tuple[int, int]]:
    """Pairs (i, j), i < j, of points closer than ``tol`` along both axes."""
    order = np.lexsort((points[:, 1], points[:, 0]))
    pairs = []
    for pos, i in enumerate(order):
        for j in order[pos + 1 :]:
            if points[j, 0] - points[i, 0] > tol:
                break
            if abs(points[j, 1] - points[i, 1]) <= tol:
                pairs.append((int(min(i, j)), int(max(i, j))))
    return sorted(pairs)


def _is_collinear(ring: NDArray[np.floating]) -> bool:
    """True if every vertex lies on the line through the first two."""
    return all(
        orientation(ring[0], ring[1], p) == Orientation.collinear for p in ring[2:]
    )


def _check_simple(ring: NDArray[np.floating], ring_idx: int) -> None:
    """
    A ring is simple when its non-adjacent edges share no point and its
    adjacent edges only share their common vertex.
    """
    m = len(ring)
    label = _ring_label(ring_idx)
    for i, j in _candidate_edge_pairs(ring, ring):
        i, j = int(i), int(j)
        if j <= i:
            continue
        p1, p2 = ring[i], ring[(i + 1) % m]
        q1, q2 = ring[j], ring[(j + 1) % m]
        if j == i + 1 or (i == 0 and j == m - 1):
            # shared vertex v, the two edges must not fold onto each other
            if j == i + 1:
                v, a, b = p2, p1, q2
            else:
                v, a, b = p1, p2, q1
            if orientation(a, v, b) == Orientation.collinear and (
                is_point_in_box(v, a, b) or is_point_in_box(v, b, a)
            ):
                raise InputValidationError(
                    f"{label}: edges {i} and {j} overlap, the ring is not simple"
                )
        elif segments_intersect(p1, p2, q1, q2):
            raise InputValidationError(
                f"{label}: edges {i} and {j} intersect, the ring is not simple"
            )


def _check_rings_disjoint(
    ring_a: NDArray[np.floating],
    ring_a_idx: int,
    ring_b: NDArray[np.floating],
    ring_b_idx: int,
) -> None:
    for i, j in _candidate_edge_pairs(ring_a, ring_b):
        i, j = int(i), int(j)
        if segments_intersect(
            ring_a[i], ring_a[(i + 1) % len(ring_a)], ring_b[j], ring_b[(j + 1) % len(ring_b)]
        ):
            raise InputValidationError(
                f"{_ring_label(ring_b_idx)}: edge {j} touches edge {i} of "
                f"{_ring_label(ring_a_idx)}"
            )


def validate_polygon(
    outer: ArrayLike,
    holes: list[ArrayLike] | None = None,
    interior_points: ArrayLike | None = None,
) -> PolygonInput:
    """
    Check the input of a triangulation and number its vertices.

    Rings may be given in any winding and may repeat their first vertex at the
    end. The outer ring is returned counterclockwise and the holes clockwise;
    vertex ids always follow the input order.

    Interior points closer than the coincidence tolerance to an earlier vertex
    are merged with it (see ``PolygonInput.aliases``).

    Parameters
    ----------
    outer : ArrayLike
        Outer ring, shape (n, 2)
    holes : list[ArrayLike] | None
        Hole rings
    interior_points : ArrayLike | None
        Loose points to add to the mesh, shape (k, 2)

    Returns
    -------
    PolygonInput

    Raises
    ------
    InputValidationError
        If a ring is malformed, degenerate or not simple, if points coincide
        across rings, if a hole is not strictly inside the outer ring or touches
        another hole, or if an interior point is not strictly inside the region.
    OutOfBoundsHoleError
        If a hole reaches outside the convex hull of the outer ring and the
        interior points.
    """
    holes = [] if holes is None else list(holes)
    rings_xy = [_as_ring(outer, _ring_label(0))]
    rings_xy += [_as_ring(hole, _ring_label(k + 1)) for k, hole in enumerate(holes)]
    interior = _as_points(interior_points)

    points = np.vstack(rings_xy + [interior])
    origins = [np.full(len(rings_xy[0]), VertexOrigin.outer)]
    origins += [np.full(len(ring), VertexOrigin.hole) for ring in rings_xy[1:]]
    origins.append(np.full(len(interior), VertexOrigin.interior))
    vertex_origin = np.concatenate(origins).astype(int)

    offsets = np.cumsum([0] + [len(ring) for ring in rings_xy])
    n_ring_points = int(offsets[-1])
    extent = float(np.max(points.max(axis=0) - points.min(axis=0)))
    tol = EPS * extent

    for ring_idx, ring in enumerate(rings_xy):
        _check_edge_lengths(ring, ring_idx, tol)

    def locate(vertex: int) -> str:
        if vertex >= n_ring_points:
            return f"interior point {vertex - n_ring_points}"
        ring_idx = int(np.searchsorted(offsets, vertex, side="right")) - 1
        return f"vertex {vertex - offsets[ring_idx]} of {_ring_label(ring_idx)}"

    aliases = {}
    for i, j in _find_coincident_pairs(points, tol):
        if j < n_ring_points:
            raise InputValidationError(f"{locate(i)} coincides with {locate(j)}")
        if j not in aliases:
            aliases[j] = aliases.get(i, i)
    if aliases:
        logger.debug(f"Merging {len(aliases)} duplicate interior point(s)")

    for ring_idx, ring in enumerate(rings_xy):
        if _is_collinear(ring):
            raise InputValidationError(f"{_ring_label(ring_idx)} has zero area")
        _check_simple(ring, ring_idx)

    rings = []
    for ring_idx, ring in enumerate(rings_xy):
        ids = list(range(int(offsets[ring_idx]), int(offsets[ring_idx + 1])))
        ccw = polygon_area(ring) > 0
        # outer ring counterclockwise, holes clockwise
        if ccw != (ring_idx == 0):
            ids = ids[::-1]
        rings.append(ids)

    outer_xy = rings_xy[0]
    hull = convex_hull(np.vstack([outer_xy, interior]))
    for hole_idx, hole in enumerate(rings_xy[1:]):
        for k, p in enumerate(hole):
            if not is_point_in_convex_polygon(p, hull):
                raise OutOfBoundsHoleError(
                    f"vertex {k} of {_ring_label(hole_idx + 1)} lies outside the "
                    f"convex extent of the input points",
                    hole_index=hole_idx,
                )

    for hole_idx, hole in enumerate(rings_xy[1:]):
        ring_idx = hole_idx + 1
        for k, p in enumerate(hole):
            if point_in_polygon(p, outer_xy) != PointInPolygon.inside:
                raise InputValidationError(
                    f"vertex {k} of {_ring_label(ring_idx)} is not strictly inside the outer ring"
                )
        _check_rings_disjoint(outer_xy, 0, hole, ring_idx)
        for other_idx in range(1, ring_idx):
            other = rings_xy[other_idx]
            _check_rings_disjoint(other, other_idx, hole, ring_idx)
            if point_in_polygon(hole[0], other) == PointInPolygon.inside or (
                point_in_polygon(other[0], hole) == PointInPolygon.inside
            ):
                raise InputValidationError(
                    f"{_ring_label(ring_idx)} and {_ring_label(other_idx)} are nested"
                )

    for k, p in enumerate(interior):
        vertex = n_ring_points + k
        if vertex in aliases:
            continue
        position = point_in_polygon(p, outer_xy)
        if position == PointInPolygon.outside:
            raise InputValidationError(f"interior point {k} lies outside the outer ring")
        if position == PointInPolygon.boundary:
            raise InputValidationError(f"interior point {k} lies on the outer ring")
        for hole_idx, hole in enumerate(rings_xy[1:]):
            position = point_in_polygon(p, hole)
            if position == PointInPolygon.boundary:
                raise InputValidationError(
                    f"interior point {k} lies on {_ring_label(hole_idx + 1)}"
                )
            if position == PointInPolygon.inside:
                raise InputValidationError(
                    f"interior point {k} lies inside {_ring_label(hole_idx + 1)}"
                )

    insertion_ids = np.array(
        [v for v in range(len(points)) if v not in aliases], dtype=int
    )
    logger.debug(
        f"Validated {len(rings)} ring(s), {n_ring_points} ring vertices and "
        f"{len(interior)} interior point(s)"
    )
    return PolygonInput(
        points=points,
        vertex_origin=vertex_origin,
        rings=rings,
        insertion_ids=insertion_ids,
        aliases=aliases,
    )
