"""Tests for input validation."""

import numpy as np
import pytest

from polycdt.delaunay import VertexOrigin
from polycdt.errors import InputValidationError, OutOfBoundsHoleError
from polycdt.geometry import polygon_area
from polycdt.validation import validate_polygon


SQUARE = [(0.0, 0.0), (4.0, 0.0), (4.0, 4.0), (0.0, 4.0)]
BIG_SQUARE = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]


class TestRings:
    def test_ids_follow_input_order(self):
        hole = [(1.0, 1.0), (1.0, 3.0), (3.0, 3.0), (3.0, 1.0)]
        polygon = validate_polygon(SQUARE, [hole], [(0.5, 2.0)])

        assert polygon.points.shape == (9, 2)
        assert polygon.rings == [[0, 1, 2, 3], [4, 5, 6, 7]]
        assert list(polygon.vertex_origin) == [VertexOrigin.outer] * 4 + [
            VertexOrigin.hole
        ] * 4 + [VertexOrigin.interior]
        assert list(polygon.insertion_ids) == list(range(9))
        assert polygon.constraints[:4] == [(0, 1, 0), (1, 2, 0), (2, 3, 0), (3, 0, 0)]
        assert polygon.constraints[4] == (4, 5, 1)

    def test_winding_is_normalized(self):
        """Outer ring given clockwise, hole given counterclockwise."""
        hole = [(1.0, 1.0), (3.0, 1.0), (3.0, 3.0), (1.0, 3.0)]
        polygon = validate_polygon(SQUARE[::-1], [hole])

        assert polygon_area(polygon.points[polygon.outer_ring]) > 0
        assert polygon_area(polygon.points[polygon.rings[1]]) < 0
        assert sorted(polygon.outer_ring) == [0, 1, 2, 3]

    def test_closed_ring(self):
        polygon = validate_polygon(SQUARE + [SQUARE[0]])
        assert polygon.rings == [[0, 1, 2, 3]]

    def test_numpy_input(self):
        polygon = validate_polygon(np.array(SQUARE), interior_points=np.empty((0, 2)))
        assert len(polygon.points) == 4

    @pytest.mark.parametrize(
        "outer",
        [
            [(0.0, 0.0), (1.0, 0.0)],
            [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0)],
            [(0.0, 0.0), (1.0, np.nan), (0.0, 1.0)],
            [(0.0, 0.0), (1.0, np.inf), (0.0, 1.0)],
            [(0.0, 0.0), (1.0, 0.0), (1.0, 0.0), (0.0, 1.0)],
            [(0.0, 0.0), (1.0, 1.0), (2.0, 2.0)],
            [(0.0, 0.0), (4.0, 0.0), (0.0, 4.0), (2.0, 5.0)],
            [(0.0, 0.0), (2.0, 0.0), (1.0, 0.0), (1.0, 1.0)],
        ],
        ids=[
            "too-few-vertices",
            "3d",
            "nan",
            "inf",
            "zero-length-edge",
            "zero-area",
            "self-intersecting",
            "folded-edge",
        ],
    )
    def test_invalid_outer_ring(self, outer):
        with pytest.raises(InputValidationError):
            validate_polygon(outer)

    def test_ring_may_come_close_to_itself(self):
        """Two lobes nearly meeting at (1, 1) are fine, a repeated vertex is not."""
        outer = [(0.0, 0.0), (2.0, 0.0), (1.0, 1.0), (2.0, 2.0), (0.0, 2.0), (1.0, 1.0 + 1e-3)]
        polygon = validate_polygon(outer)
        assert len(polygon.rings[0]) == 6

        pinched = [(0.0, 0.0), (2.0, 0.0), (1.0, 1.0), (2.0, 2.0), (0.0, 2.0), (0.9, 1.0), (1.0, 1.0)]
        with pytest.raises(InputValidationError):
            validate_polygon(pinched)

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_polygon([(0.0, 0.0)])


class TestHoles:
    def test_hole_vertex_coincident_with_outer_vertex(self):
        hole = [(0.0, 0.0), (2.0, 1.0), (1.0, 2.0)]
        with pytest.raises(InputValidationError, match="coincides"):
            validate_polygon(SQUARE, [hole])

    def test_hole_vertex_on_outer_edge(self):
        hole = [(2.0, 0.0), (3.0, 1.0), (1.0, 1.0)]
        with pytest.raises(InputValidationError):
            validate_polygon(SQUARE, [hole])

    def test_hole_outside_convex_extent(self):
        hole = [(3.0, 3.0), (6.0, 3.0), (3.0, 1.0)]
        with pytest.raises(OutOfBoundsHoleError) as excinfo:
            validate_polygon(SQUARE, [hole])
        assert excinfo.value.hole_index == 0

    def test_interior_points_extend_convex_extent(self):
        """A hole leaving the outer ring is invalid even inside the convex extent."""
        hole = [(3.0, 3.0), (5.0, 3.0), (3.0, 1.0)]
        with pytest.raises(InputValidationError, match="not strictly inside"):
            validate_polygon(SQUARE, [hole], [(8.0, 8.0)])

    def test_hole_in_concave_notch(self):
        outer = [(0.0, 0.0), (4.0, 0.0), (4.0, 2.0), (2.0, 2.0), (2.0, 4.0), (0.0, 4.0)]
        hole = [(2.5, 2.5), (3.0, 2.5), (2.5, 3.0)]
        with pytest.raises(InputValidationError):
            validate_polygon(outer, [hole])

    def test_hole_crossing_outer_edge(self):
        """All hole vertices inside, but a hole edge cuts through the notch."""
        outer = [(0.0, 0.0), (4.0, 0.0), (4.0, 2.0), (2.0, 2.0), (2.0, 4.0), (0.0, 4.0)]
        hole = [(1.0, 2.5), (2.5, 1.0), (1.0, 1.0)]
        polygon = validate_polygon(outer, [hole])
        assert len(polygon.rings) == 2

        crossing = [(1.0, 3.5), (3.5, 1.0), (1.0, 1.0)]
        with pytest.raises(InputValidationError):
            validate_polygon(outer, [crossing])

    def test_overlapping_holes(self):
        hole_a = [(1.0, 1.0), (5.0, 1.0), (5.0, 5.0), (1.0, 5.0)]
        hole_b = [(4.0, 4.0), (8.0, 4.0), (8.0, 8.0), (4.0, 8.0)]
        with pytest.raises(InputValidationError):
            validate_polygon(BIG_SQUARE, [hole_a, hole_b])

    def test_nested_holes(self):
        hole_a = [(1.0, 1.0), (9.0, 1.0), (9.0, 9.0), (1.0, 9.0)]
        hole_b = [(3.0, 3.0), (6.0, 3.0), (6.0, 6.0), (3.0, 6.0)]
        with pytest.raises(InputValidationError, match="nested"):
            validate_polygon(BIG_SQUARE, [hole_a, hole_b])

    def test_holes_sharing_a_vertex(self):
        hole_a = [(1.0, 1.0), (5.0, 1.0), (5.0, 5.0)]
        hole_b = [(5.0, 5.0), (8.0, 5.0), (8.0, 8.0)]
        with pytest.raises(InputValidationError, match="coincides"):
            validate_polygon(BIG_SQUARE, [hole_a, hole_b])

    def test_two_separate_holes(self):
        hole_a = [(1.0, 1.0), (4.0, 1.0), (4.0, 4.0), (1.0, 4.0)]
        hole_b = [(6.0, 6.0), (9.0, 6.0), (9.0, 9.0), (6.0, 9.0)]
        polygon = validate_polygon(BIG_SQUARE, [hole_a, hole_b])
        assert [len(ring) for ring in polygon.rings] == [4, 4, 4]

    def test_small_hole_in_large_domain(self):
        outer = [(0.0, 0.0), (1e5, 0.0), (1e5, 1e5), (0.0, 1e5)]
        hole = [(5e4, 5e4), (5e4 + 1e-3, 5e4), (5e4 + 1e-3, 5e4 + 1e-3), (5e4, 5e4 + 1e-3)]

        polygon = validate_polygon(outer, [hole])

        assert polygon.rings[1] == [7, 6, 5, 4]
        assert polygon_area(polygon.points[polygon.rings[1]]) < 0

    def test_far_from_origin(self):
        offset = np.array([1e8, 1e8])
        outer = np.array(BIG_SQUARE[::-1]) + offset
        hole = np.array([(4.0, 4.0), (5.0, 4.0), (5.0, 5.0), (4.0, 5.0)]) + offset

        polygon = validate_polygon(outer, [hole])

        assert polygon.rings == [[3, 2, 1, 0], [7, 6, 5, 4]]
        assert polygon_area(polygon.points[polygon.outer_ring]) == pytest.approx(100.0)
        assert polygon_area(polygon.points[polygon.rings[1]]) == pytest.approx(-1.0)

    def test_collinear_hole(self):
        hole = [(1.0, 1.0), (2.0, 2.0), (3.0, 3.0)]
        with pytest.raises(InputValidationError, match="zero area"):
            validate_polygon(BIG_SQUARE, [hole])


class TestInteriorPoints:
    def test_duplicates_are_merged(self):
        polygon = validate_polygon(SQUARE, interior_points=[(2.0, 2.0), (2.0, 2.0), (1.0, 1.0)])

        assert polygon.aliases == {5: 4}
        assert list(polygon.insertion_ids) == [0, 1, 2, 3, 4, 6]

    def test_point_near_duplicate_is_merged(self):
        polygon = validate_polygon(SQUARE, interior_points=[(2.0, 2.0), (2.0, 2.0 + 1e-12)])
        assert polygon.aliases == {5: 4}

    def test_point_on_ring_vertex_is_merged(self):
        polygon = validate_polygon(SQUARE, interior_points=[(4.0, 4.0)])
        assert polygon.aliases == {4: 2}

    @pytest.mark.parametrize(
        "point",
        [(5.0, 5.0), (2.0, 0.0), (2.0, 2.0), (1.0, 2.0)],
        ids=["outside", "on-outer-edge", "inside-hole", "on-hole-edge"],
    )
    def test_invalid_interior_point(self, point):
        hole = [(1.0, 1.0), (3.0, 1.0), (3.0, 3.0), (1.0, 3.0)]
        with pytest.raises(InputValidationError):
            validate_polygon(SQUARE, [hole], [point])
