from enum import Enum, IntEnum, auto

import numpy as np
from numpy.typing import NDArray
from shewchuk import incircle_test, orientation as _orientation

from polycdt.utils import Vec2d, Triangle


class Orientation(IntEnum):
    right = -1
    collinear = 0
    left = 1


class InCircle(IntEnum):
    outside = -1
    on = 0
    inside = 1


class PointInTriangle(Enum):
    vertex = auto()
    edge = auto()
    inside = auto()
    outside = auto()


class PointInPolygon(Enum):
    inside = auto()
    boundary = auto()
    outside = auto()


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def orientation(a: Vec2d, b: Vec2d, c: Vec2d) -> Orientation:
    """
    Shewchuk's robust 2D orientation predicate.

    Returns ``left`` if ``c`` lies to the left of the directed line ``a -> b``
    (``a, b, c`` counterclockwise), ``right`` if it lies to the right and
    ``collinear`` otherwise. The sign is computed with adaptive exact
    arithmetic, so it never disagrees with itself on the same input.
    """
    return Orientation(_sign(_orientation(a[0], a[1], b[0], b[1], c[0], c[1])))


def in_circumcircle(a: Vec2d, b: Vec2d, c: Vec2d, d: Vec2d) -> InCircle:
    """
    Exact test of ``d`` against the circle through ``a``, ``b`` and ``c``.

    The winding of ``a, b, c`` does not matter.

    Raises
    ------
    ValueError
        If ``a``, ``b`` and ``c`` are collinear (no circumcircle).
    """
    turn = orientation(a, b, c)
    if turn == Orientation.collinear:
        raise ValueError("Collinear points have no circumcircle")
    # shewchuk's sign assumes a counterclockwise triangle
    test = _sign(incircle_test(d[0], d[1], a[0], a[1], b[0], b[1], c[0], c[1]))
    return InCircle(test * turn)


def is_point_in_box(
    a: Vec2d,
    b: Vec2d,
    p: Vec2d,
    eps: float = 0.0,
) -> bool:
    # check if p is within the bounding box of [a, b]
    return (
        min(a[0], b[0]) - eps <= p[0] <= max(a[0], b[0]) + eps
        and min(a[1], b[1]) - eps <= p[1] <= max(a[1], b[1]) + eps
    )


def segments_intersect(p1: Vec2d, p2: Vec2d, q1: Vec2d, q2: Vec2d) -> bool:
    """
    Check if the closed segments [p1, p2] and [q1, q2] share at least one point.

    Uses the orientation-based method: two segments intersect if and only if
    one of the following conditions holds:
    1. General case: (q1, q2, p1) and (q1, q2, p2) have different orientations AND
                     (p1, p2, q1) and (p1, p2, q2) have different orientations
    2. Special case: an endpoint is collinear with the other segment and lies on it

    Parameters
    ----------
    p1, p2 : Vec2d
        Endpoints of first segment
    q1, q2 : Vec2d
        Endpoints of second segment

    Returns
    -------
    bool
        True if segments intersect (touching included), False otherwise
    """
    o1 = orientation(q1, q2, p1)
    o2 = orientation(q1, q2, p2)
    o3 = orientation(p1, p2, q1)
    o4 = orientation(p1, p2, q2)

    # General case: segments intersect if orientations differ
    if o1 * o2 < 0 and o3 * o4 < 0:
        return True

    # Special cases: check if points are collinear and segments overlap
    if o1 == 0 and is_point_in_box(q1, q2, p1):
        return True
    if o2 == 0 and is_point_in_box(q1, q2, p2):
        return True
    if o3 == 0 and is_point_in_box(p1, p2, q1):
        return True
    if o4 == 0 and is_point_in_box(p1, p2, q2):
        return True

    return False


def segments_cross(p1: Vec2d, p2: Vec2d, q1: Vec2d, q2: Vec2d) -> bool:
    """
    Check if [p1, p2] and [q1, q2] cross properly, i.e. at a single point interior
    to both segments. Touching at an endpoint or collinear overlap is not a crossing.
    """
    o1 = orientation(q1, q2, p1)
    o2 = orientation(q1, q2, p2)
    o3 = orientation(p1, p2, q1)
    o4 = orientation(p1, p2, q2)
    return o1 * o2 < 0 and o3 * o4 < 0


def point_inside_triangle(
    triangle: Triangle,
    point: Vec2d,
) -> tuple[PointInTriangle, int | None]:
    """
    Classify a point relative to a triangle using Shewchuk's exact orientation predicate.

    Parameters
    ----------
    triangle : Triangle
        The three triangle vertices [A, B, C], in any winding.
    point : Vec2d
        The query point.

    Returns
    -------
    (PointInTriangle, Optional[int])
        - Classification (inside, edge, vertex, outside)
        - For ``vertex`` the index of the matching vertex, for ``edge`` the index
          of the vertex opposite to the touched edge, otherwise None.

    Raises
    ------
    ValueError
        If the triangle is degenerate.
    """
    a, b, c = triangle
    turn = orientation(a, b, c)
    if turn == Orientation.collinear:
        raise ValueError("Degenerate triangle")

    # Side of the point w.r.t. the edge opposite each vertex, in the triangle's winding
    sides = (
        orientation(b, c, point) * turn,
        orientation(c, a, point) * turn,
        orientation(a, b, point) * turn,
    )
    if min(sides) < 0:
        return PointInTriangle.outside, None

    on_edge = [i for i, side in enumerate(sides) if side == 0]
    if not on_edge:
        return PointInTriangle.inside, None
    if len(on_edge) == 1:
        return PointInTriangle.edge, on_edge[0]
    # on the lines of two edges: the point is the vertex they share
    return PointInTriangle.vertex, 3 - on_edge[0] - on_edge[1]


def is_quadrilateral_convex(vk: Vec2d, vl: Vec2d, vm: Vec2d, vn: Vec2d) -> bool:
    """
    Check if the quadrilateral formed by two triangles sharing the diagonal vk-vl,
    with vm on one side and vn on the other, is strictly convex.

    That holds exactly when the two diagonals vk-vl and vm-vn cross properly.
    """
    return segments_cross(vk, vl, vm, vn)


def polygon_area(coords: NDArray[np.floating] | list[Vec2d]) -> float:
    """Signed area of polygon (positive for CCW)."""
    pts = np.asarray(coords, dtype=float)
    # relative to the first vertex, large offsets would swamp the cross products
    pts = pts - pts[0]
    x, y = pts[:, 0], pts[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def point_in_polygon(
    point: Vec2d, polygon: NDArray[np.floating] | list[Vec2d]
) -> PointInPolygon:
    """
    From https://en.wikipedia.org/wiki/Even%E2%80%93odd_rule
    Locate a point with respect to a simple polygon, with exact orientation tests.

    Args:
      point -- The query point.
      polygon -- The polygon vertices, in any winding, without a closing duplicate.

    Returns:
      ``boundary`` if the point is a corner or lies on an edge, otherwise
      ``inside`` or ``outside``.
    """
    y = point[1]
    inside = False
    for i in range(len(polygon)):
        p0 = polygon[i]
        p1 = polygon[i - 1]
        turn = orientation(p0, p1, point)
        if turn == Orientation.collinear and is_point_in_box(p0, p1, point):
            return PointInPolygon.boundary
        # Check whether the edge straddles the horizontal ray through the point
        if (p0[1] > y) != (p1[1] > y):
            # The ray towards +x hits the edge when the point is on the left of
            # the edge directed upwards.
            upwards = p1[1] > p0[1]
            if (turn == Orientation.left) == upwards:
                inside = not inside
    return PointInPolygon.inside if inside else PointInPolygon.outside


def convex_hull(points: NDArray[np.floating]) -> NDArray[np.floating]:
    """
    Andrew's monotone chain. Returns the hull vertices in counterclockwise order,
    without collinear points.
    """
    pts = np.unique(np.asarray(points, dtype=float), axis=0)  # lexicographic order
    if len(pts) < 3:
        return pts

    def half_hull(sequence: NDArray[np.floating]) -> list[NDArray[np.floating]]:
        chain: list[NDArray[np.floating]] = []
        for p in sequence:
            while len(chain) >= 2 and orientation(chain[-2], chain[-1], p) != Orientation.left:
                chain.pop()
            chain.append(p)
        return chain

    lower = half_hull(pts)
    upper = half_hull(pts[::-1])
    return np.array(lower[:-1] + upper[:-1])


def is_point_in_convex_polygon(point: Vec2d, hull: NDArray[np.floating]) -> bool:
    """True if the point is inside or on the boundary of a CCW convex polygon."""
    for i in range(len(hull)):
        if orientation(hull[i - 1], hull[i], point) == Orientation.right:
            return False
    return True
