"""Tests for the polygon kernel."""

import math

import numpy as np
import pytest

from tilecull.polygon_ops import (
    clip_polygon_by_plane,
    create_plane,
    dedupe_polygons,
    face_vertices_from_plane_rect,
    fround,
    has_renderable_polygon,
    is_degenerate_polygon,
    is_in_front,
    js_divide,
    js_round,
    normalize_vec,
    plane_intersect_segment,
    polygon_cut_2d,
    polygon_intersect_2d,
    polygons_equal,
    project_polygon_to_axis,
    simplify_polygon,
)
from tilecull.stats import planar_area
from tilecull.contracts import Facing


def _unit_square_xz(y=0.0):
    """Clockwise unit square on the (x, z) axes."""
    return [(0.0, y, 1.0), (1.0, y, 1.0), (1.0, y, 0.0), (0.0, y, 0.0)]


class TestScalarHelpers:
    """Single-precision and JavaScript-compatible arithmetic."""

    def test_fround_matches_float32(self):
        assert fround(0.1) == float(np.float32(0.1))
        assert fround(0.1) != 0.1

    def test_js_round_rounds_half_up(self):
        assert js_round(2.5) == 3
        assert js_round(-2.5) == -2
        assert js_round(-2.6) == -3

    def test_js_divide_by_zero(self):
        assert js_divide(1.0, 0.0) == math.inf
        assert js_divide(-1.0, 0.0) == -math.inf
        assert math.isnan(js_divide(0.0, 0.0))
        assert js_divide(6.0, 3.0) == 2.0

    def test_normalize_zero_vector_is_nan(self):
        n = normalize_vec((0.0, 0.0, 0.0))
        assert all(math.isnan(c) for c in n)


class TestPolygonChecks:

    def test_collinear_polygon_is_degenerate(self):
        assert is_degenerate_polygon([(0, 0, 0), (1, 0, 0), (2, 0, 0)])

    def test_short_polygon_is_degenerate(self):
        assert is_degenerate_polygon([(0, 0, 0), (1, 0, 0)])
        assert is_degenerate_polygon(None)

    def test_square_is_not_degenerate(self):
        assert not is_degenerate_polygon(_unit_square_xz())

    def test_has_renderable_polygon(self):
        assert not has_renderable_polygon([])
        assert not has_renderable_polygon([None, [(0, 0, 0), (1, 0, 0), (2, 0, 0)]])
        assert has_renderable_polygon([None, _unit_square_xz()])

    def test_simplify_drops_duplicates_and_closing_point(self):
        square = _unit_square_xz()
        noisy = [square[0], square[0], square[1], square[2], square[3], square[0]]
        assert simplify_polygon(noisy) == square

    def test_simplify_drops_collinear_end(self):
        square = _unit_square_xz()
        midpoint = (0.0, 0.0, 0.5)
        simplified = simplify_polygon(square + [midpoint])
        assert simplified == square

    def test_simplify_degenerate_returns_none(self):
        assert simplify_polygon([(0, 0, 0), (1, 0, 0), (0, 0, 0)]) is None

    def test_polygons_equal_ignores_order(self):
        square = _unit_square_xz()
        assert polygons_equal(square, list(reversed(square)), 1e-6)
        assert not polygons_equal(square, square[:3], 1e-6)

    def test_dedupe_polygons(self):
        square = _unit_square_xz()
        shifted = [(x, y, z + 1e-7) for x, y, z in square]
        assert dedupe_polygons([square, shifted], 1e-4) == [square]


class TestPlanes:

    def test_zero_normal_plane_is_invalid(self):
        assert create_plane((0, 0, 0), (0, 0, 0)).invalid

    def test_sidedness(self):
        plane = create_plane((0.5, 0, 0), (1, 0, 0))
        assert is_in_front(plane, (1, 0, 0), 1e-4) is True
        assert is_in_front(plane, (0, 0, 0), 1e-4) is False
        assert is_in_front(plane, (0.5, 3, 3), 1e-4) is None

    def test_segment_intersection(self):
        plane = create_plane((0.5, 0, 0), (1, 0, 0))
        point = plane_intersect_segment(plane, (0.0, 0.0, 0.0), (1.0, 0.0, 0.0))
        assert point == pytest.approx((0.5, 0.0, 0.0))

    def test_parallel_segment_has_no_intersection(self):
        plane = create_plane((0.5, 0, 0), (1, 0, 0))
        assert plane_intersect_segment(plane, (0.0, 0.0, 0.0), (0.0, 1.0, 0.0)) is None


class TestClipPolygonByPlane:
    """Clipping keeps the part behind the plane."""

    def test_polygon_behind_plane_is_returned_unchanged(self):
        square = _unit_square_xz()
        plane = create_plane((5, 0, 0), (1, 0, 0))
        assert clip_polygon_by_plane(square, plane, 1e-4) == square

    def test_polygon_in_front_is_dropped(self):
        plane = create_plane((-5, 0, 0), (1, 0, 0))
        assert clip_polygon_by_plane(_unit_square_xz(), plane, 1e-4) is None

    def test_polygon_on_plane_is_dropped(self):
        plane = create_plane((0, 0, 0), (0, 1, 0))
        assert clip_polygon_by_plane(_unit_square_xz(), plane, 1e-4) is None

    def test_touching_vertices_do_not_split(self):
        square = _unit_square_xz()
        plane = create_plane((1, 0, 0), (1, 0, 0))
        assert clip_polygon_by_plane(square, plane, 1e-4) == square

    def test_split_keeps_back_half(self):
        plane = create_plane((0.5, 0, 0), (1, 0, 0))
        clipped = clip_polygon_by_plane(_unit_square_xz(), plane, 1e-4)
        assert clipped is not None
        assert max(p[0] for p in clipped) == pytest.approx(0.5)
        assert planar_area(clipped, Facing.UP) == pytest.approx(0.5)

    def test_invalid_plane(self):
        plane = create_plane((0, 0, 0), (0, 0, 0))
        assert clip_polygon_by_plane(_unit_square_xz(), plane, 1e-4) is None


class TestPlanarCuts:
    """2D cut and intersection on the (x, z) axes."""

    def test_cut_removes_overlap(self):
        square = _unit_square_xz()
        cutter = [(0.0, 0.0, 1.0), (0.5, 0.0, 1.0), (0.5, 0.0, 0.0), (0.0, 0.0, 0.0)]
        pieces = polygon_cut_2d(square, cutter, 0, 2, False, False)
        assert len(pieces) == 1
        assert min(p[0] for p in pieces[0]) == pytest.approx(0.5)
        assert planar_area(pieces[0], Facing.UP) == pytest.approx(0.5)

    def test_cut_take_inner(self):
        square = _unit_square_xz()
        cutter = [(0.0, 0.0, 1.0), (0.5, 0.0, 1.0), (0.5, 0.0, 0.0), (0.0, 0.0, 0.0)]
        pieces = polygon_cut_2d(square, cutter, 0, 2, False, True)
        assert len(pieces) == 1
        assert planar_area(pieces[0], Facing.UP) == pytest.approx(0.5)
        assert max(p[0] for p in pieces[0]) == pytest.approx(0.5)

    def test_fully_covered_polygon_has_no_remainder(self):
        square = _unit_square_xz()
        cutter = [(-1.0, 0.0, 2.0), (2.0, 0.0, 2.0), (2.0, 0.0, -1.0), (-1.0, 0.0, -1.0)]
        assert polygon_cut_2d(square, cutter, 0, 2, False, False) == []

    def test_intersect_overlapping(self):
        square = _unit_square_xz()
        other = [(x + 0.5, y, z + 0.5) for x, y, z in square]
        assert polygon_intersect_2d(square, other, 0, 2, False, 1e-3)

    def test_intersect_contained(self):
        square = _unit_square_xz()
        inner = [(0.25, 0.0, 0.75), (0.75, 0.0, 0.75), (0.75, 0.0, 0.25), (0.25, 0.0, 0.25)]
        assert polygon_intersect_2d(square, inner, 0, 2, False, 1e-3)
        assert polygon_intersect_2d(inner, square, 0, 2, False, 1e-3)

    def test_touching_edges_do_not_intersect(self):
        square = _unit_square_xz()
        neighbour = [(x + 1.0, y, z) for x, y, z in square]
        assert not polygon_intersect_2d(square, neighbour, 0, 2, False, 1e-3)

    def test_disjoint(self):
        square = _unit_square_xz()
        far = [(x + 5.0, y, z + 5.0) for x, y, z in square]
        assert not polygon_intersect_2d(square, far, 0, 2, False, 1e-3)


class TestRectangles:

    @pytest.mark.parametrize("facing", list(Facing))
    def test_rect_lies_on_plane(self, facing):
        axis = facing.axis_index
        rect = face_vertices_from_plane_rect(axis, facing.positive, 0.25, 0.0, 1.0, 0.0, 0.5)
        assert len(rect) == 4
        assert all(p[axis] == 0.25 for p in rect)
        assert planar_area(rect, facing) == pytest.approx(0.5)

    def test_project_polygon_to_axis(self):
        projected = project_polygon_to_axis(_unit_square_xz(0.3), 1, 0.75)
        assert all(p[1] == 0.75 for p in projected)
        assert project_polygon_to_axis([(0, 0, 0)], 1, 0.0) is None
