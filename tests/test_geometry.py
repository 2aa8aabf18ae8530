"""Tests for the exact geometric predicates."""

import numpy as np
import pytest

from polycdt.geometry import (
    InCircle,
    Orientation,
    PointInPolygon,
    PointInTriangle,
    convex_hull,
    in_circumcircle,
    is_point_in_convex_polygon,
    is_quadrilateral_convex,
    orientation,
    point_in_polygon,
    point_inside_triangle,
    polygon_area,
    segments_cross,
    segments_intersect,
)


class TestOrientation:
    def test_left_turn(self):
        assert orientation((0.0, 0.0), (1.0, 0.0), (0.0, 1.0)) == Orientation.left

    def test_right_turn(self):
        assert orientation((0.0, 0.0), (0.0, 1.0), (1.0, 0.0)) == Orientation.right

    def test_collinear(self):
        assert orientation((0.0, 0.0), (1.0, 1.0), (3.0, 3.0)) == Orientation.collinear

    def test_nearly_collinear_is_exact(self):
        """A point a tiny bit above the line is still on the left."""
        a = np.array([0.0, 0.0])
        b = np.array([1.0, 1.0])
        c = np.array([0.5, 0.5 + 1e-15])
        assert orientation(a, b, c) == Orientation.left


class TestInCircumcircle:
    triangle = ((0.0, 0.0), (2.0, 0.0), (0.0, 2.0))

    def test_inside(self):
        assert in_circumcircle(*self.triangle, (1.0, 1.0)) == InCircle.inside

    def test_outside(self):
        assert in_circumcircle(*self.triangle, (3.0, 3.0)) == InCircle.outside

    def test_on_circle(self):
        assert in_circumcircle(*self.triangle, (2.0, 2.0)) == InCircle.on

    def test_winding_does_not_matter(self):
        a, b, c = self.triangle
        assert in_circumcircle(a, c, b, (1.0, 1.0)) == InCircle.inside
        assert in_circumcircle(a, c, b, (3.0, 3.0)) == InCircle.outside

    def test_collinear_raises(self):
        with pytest.raises(ValueError):
            in_circumcircle((0.0, 0.0), (1.0, 0.0), (2.0, 0.0), (1.0, 1.0))


class TestSegments:
    def test_crossing(self):
        assert segments_intersect((0.0, 0.0), (2.0, 2.0), (0.0, 2.0), (2.0, 0.0))
        assert segments_cross((0.0, 0.0), (2.0, 2.0), (0.0, 2.0), (2.0, 0.0))

    def test_parallel(self):
        assert not segments_intersect((0.0, 0.0), (2.0, 0.0), (0.0, 1.0), (2.0, 1.0))
        assert not segments_cross((0.0, 0.0), (2.0, 0.0), (0.0, 1.0), (2.0, 1.0))

    def test_touching_endpoints(self):
        """Closed segments sharing an endpoint intersect but do not cross."""
        assert segments_intersect((0.0, 0.0), (1.0, 1.0), (1.0, 1.0), (2.0, 0.0))
        assert not segments_cross((0.0, 0.0), (1.0, 1.0), (1.0, 1.0), (2.0, 0.0))

    def test_t_intersection(self):
        assert segments_intersect((0.0, 0.0), (2.0, 0.0), (1.0, 0.0), (1.0, 2.0))
        assert not segments_cross((0.0, 0.0), (2.0, 0.0), (1.0, 0.0), (1.0, 2.0))

    def test_collinear_overlap(self):
        assert segments_intersect((0.0, 0.0), (2.0, 0.0), (1.0, 0.0), (3.0, 0.0))
        assert not segments_cross((0.0, 0.0), (2.0, 0.0), (1.0, 0.0), (3.0, 0.0))

    def test_collinear_disjoint(self):
        assert not segments_intersect((0.0, 0.0), (1.0, 0.0), (2.0, 0.0), (3.0, 0.0))


class TestPointInsideTriangle:
    triangle = np.array([[0.0, 0.0], [2.0, 0.0], [0.0, 2.0]])

    def test_inside(self):
        assert point_inside_triangle(self.triangle, (0.5, 0.5)) == (
            PointInTriangle.inside,
            None,
        )

    def test_outside(self):
        assert point_inside_triangle(self.triangle, (3.0, 3.0)) == (
            PointInTriangle.outside,
            None,
        )

    def test_on_edge_returns_opposite_vertex(self):
        assert point_inside_triangle(self.triangle, (1.0, 0.0)) == (
            PointInTriangle.edge,
            2,
        )
        assert point_inside_triangle(self.triangle, (1.0, 1.0)) == (
            PointInTriangle.edge,
            0,
        )

    def test_on_vertex(self):
        assert point_inside_triangle(self.triangle, (2.0, 0.0)) == (
            PointInTriangle.vertex,
            1,
        )

    def test_clockwise_triangle(self):
        clockwise = self.triangle[[0, 2, 1]]
        assert point_inside_triangle(clockwise, (0.5, 0.5))[0] == PointInTriangle.inside

    def test_degenerate_triangle_raises(self):
        with pytest.raises(ValueError):
            point_inside_triangle(np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]]), (0.5, 0.5))


def test_is_quadrilateral_convex():
    # square split by the diagonal (0.0, 0.0)-(1.0, 1.0)
    assert is_quadrilateral_convex((0.0, 0.0), (1.0, 1.0), (1.0, 0.0), (0.0, 1.0))
    # arrow head: the opposite vertices do not straddle the shared edge
    assert not is_quadrilateral_convex((0.0, 0.0), (2.0, 0.0), (1.0, 1.0), (1.0, 0.5))
    # vk, vm, vl on one line: not strictly convex
    assert not is_quadrilateral_convex((0.0, 0.0), (2.0, 2.0), (1.0, 1.0), (0.0, 2.0))


def test_polygon_area_sign():
    square = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]
    assert polygon_area(square) == pytest.approx(1.0)
    assert polygon_area(square[::-1]) == pytest.approx(-1.0)


class TestPointInPolygon:
    square = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    # L-shape with the notch at the top right
    l_shape = np.array(
        [[0.0, 0.0], [2.0, 0.0], [2.0, 1.0], [1.0, 1.0], [1.0, 2.0], [0.0, 2.0]]
    )

    def test_inside(self):
        assert point_in_polygon((0.5, 0.5), self.square) == PointInPolygon.inside

    def test_outside(self):
        assert point_in_polygon((2.0, 0.5), self.square) == PointInPolygon.outside
        assert point_in_polygon((-0.5, 0.5), self.square) == PointInPolygon.outside

    def test_boundary(self):
        assert point_in_polygon((1.0, 0.5), self.square) == PointInPolygon.boundary
        assert point_in_polygon((0.0, 0.0), self.square) == PointInPolygon.boundary

    def test_winding_does_not_matter(self):
        assert point_in_polygon((0.5, 0.5), self.square[::-1]) == PointInPolygon.inside

    def test_concave(self):
        assert point_in_polygon((1.5, 1.5), self.l_shape) == PointInPolygon.outside
        assert point_in_polygon((0.5, 1.5), self.l_shape) == PointInPolygon.inside
        assert point_in_polygon((1.5, 0.5), self.l_shape) == PointInPolygon.inside

    def test_ray_through_vertex(self):
        """The horizontal ray from the point passes exactly through corner (1.0, 1.0)."""
        assert point_in_polygon((0.5, 1.0), self.l_shape) == PointInPolygon.inside


def test_convex_hull():
    points = np.array([[0, 0], [2, 0], [2, 2], [0, 2], [1, 1], [1, 0]], dtype=float)
    hull = convex_hull(points)

    assert len(hull) == 4
    assert polygon_area(hull) == pytest.approx(4.0)
    assert is_point_in_convex_polygon((1.0, 1.0), hull)
    assert is_point_in_convex_polygon((2.0, 1.0), hull)
    assert not is_point_in_convex_polygon((3.0, 1.0), hull)
