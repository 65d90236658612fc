"""Tests for occluder application and neighbour predicates."""

import pytest

from conftest import RAMP_TRANSFORM
from tilecull.contracts import Facing
from tilecull.face_candidates import build_face_candidates
from tilecull.occluders import (
    apply_occluders,
    box_intersects_face,
    can_be_render_combined,
    has_static_external_neighbour,
    is_face_solid,
    is_outside_face,
    outside_neighbour_index,
    signed_area_2d,
)
from tilecull.stats import planar_area


def _face(tile, facing):
    return next(f for f in build_face_candidates(tile, tile.boxes[0]) if f.facing is facing)


def _area(polys, facing):
    return sum(planar_area(p, facing) for p in polys)


class TestPredicates:

    def test_outside_neighbour_index(self, make_tile):
        tile = make_tile()
        assert outside_neighbour_index(_face(tile, Facing.EAST)) == 1
        assert outside_neighbour_index(_face(tile, Facing.WEST)) == -1

    def test_outside_face(self, make_tile):
        tile = make_tile(((0, 4, 4), (8, 12, 12)))
        assert is_outside_face(_face(tile, Facing.WEST))
        assert not is_outside_face(_face(tile, Facing.EAST))

    def test_boolean_grid_is_rejected(self, make_tile):
        tile = make_tile()
        face = _face(tile, Facing.EAST)
        face.box.grid = True
        assert outside_neighbour_index(face) is None
        assert not is_outside_face(face)

    def test_static_external_neighbour_is_never_present(self, make_tile):
        tile = make_tile()
        assert has_static_external_neighbour(_face(tile, Facing.UP), tile) is False

    def test_render_combine_needs_same_block_and_colour(self, make_tile):
        a = make_tile(block_state="minecraft:glass")
        b = make_tile(block_state="minecraft:glass")
        c = make_tile(block_state="minecraft:glass", color=0x80FF0000)
        assert can_be_render_combined(a, b)
        assert not can_be_render_combined(a, c)

    def test_face_solidity(self, make_box):
        assert is_face_solid(make_box(), Facing.UP)
        ramp = make_box(transform=RAMP_TRANSFORM)
        assert is_face_solid(ramp, Facing.EAST)
        assert not is_face_solid(ramp, Facing.WEST)

    def test_box_intersects_face(self, make_tile, make_box):
        tile = make_tile(((0, 0, 0), (8, 16, 16)))
        face = _face(tile, Facing.EAST)
        assert box_intersects_face(make_box((8, 0, 0), (16, 4, 4)), face)
        assert not box_intersects_face(make_box((9, 0, 0), (16, 4, 4)), face)
        assert not box_intersects_face(make_box((8, 16, 0), (16, 20, 4)), face)

    def test_signed_area_orientation(self):
        clockwise = [(0.0, 0.0, 1.0), (1.0, 0.0, 1.0), (1.0, 0.0, 0.0), (0.0, 0.0, 0.0)]
        assert signed_area_2d(clockwise, 0, 2) == pytest.approx(-1.0)
        assert signed_area_2d(list(reversed(clockwise)), 0, 2) == pytest.approx(1.0)


class TestApplyOccluders:
    """Partially covered faces keep only their uncovered part."""

    @pytest.mark.parametrize("facing, lo, hi", [
        (Facing.UP, (0, 16, 0), (8, 24, 16)),
        (Facing.DOWN, (0, -8, 0), (8, 0, 16)),
        (Facing.EAST, (16, 0, 0), (24, 8, 16)),
        (Facing.WEST, (-8, 0, 0), (0, 8, 16)),
        (Facing.SOUTH, (0, 0, 16), (16, 8, 24)),
        (Facing.NORTH, (0, 0, -8), (16, 8, 0)),
    ])
    def test_half_cover_leaves_half(self, make_tile, facing, lo, hi):
        tile = make_tile()
        neighbour = make_tile((lo, hi))
        face = _face(tile, facing)
        visible = apply_occluders(face, face.axis_polys, tile, [tile, neighbour])
        assert visible
        assert _area(visible, facing) == pytest.approx(0.5, abs=1e-4)
        axis = facing.axis_index
        for poly in visible:
            assert all(p[axis] == pytest.approx(face.origin) for p in poly)

    def test_cut_keeps_outward_winding(self, make_tile):
        tile = make_tile()
        neighbour = make_tile(((16, 0, 0), (24, 8, 16)))
        face = _face(tile, Facing.EAST)
        one, two = face.one_index, face.two_index
        original_sign = signed_area_2d(face.axis_polys[0], one, two) > 0
        visible = apply_occluders(face, face.axis_polys, tile, [tile, neighbour])
        assert all((signed_area_2d(p, one, two) > 0) == original_sign for p in visible)

    def test_full_cover_removes_everything(self, make_tile):
        a = make_tile(((0, 0, 0), (16, 8, 16)))
        b = make_tile(((0, 8, 0), (16, 16, 16)))
        face = _face(a, Facing.UP)
        assert apply_occluders(face, face.axis_polys, a, [a, b]) == []

    def test_translucent_neighbour_is_ignored(self, make_tile):
        a = make_tile(((0, 0, 0), (16, 8, 16)))
        b = make_tile(((0, 8, 0), (8, 16, 16)), block_state="minecraft:glass")
        face = _face(a, Facing.UP)
        visible = apply_occluders(face, face.axis_polys, a, [a, b])
        assert _area(visible, Facing.UP) == pytest.approx(1.0)

    def test_transformable_neighbour_cuts_by_its_axis_strips(self, make_tile):
        a = make_tile(((0, 0, 0), (8, 16, 16)))
        ramp = make_tile(((8, 0, 0), (16, 16, 16), RAMP_TRANSFORM))
        face = _face(a, Facing.EAST)
        visible = apply_occluders(face, face.axis_polys, a, [a, ramp])
        assert _area(visible, Facing.EAST) == pytest.approx(0.5, abs=1e-3)
        assert min(p[1] for poly in visible for p in poly) == pytest.approx(0.5, abs=1e-3)

    def test_outside_face_only_sees_adjacent_block(self, make_tile):
        tile = make_tile()
        far = make_tile(((32, 0, 0), (40, 8, 16)))
        face = _face(tile, Facing.EAST)
        visible = apply_occluders(face, face.axis_polys, tile, [tile, far])
        assert _area(visible, Facing.EAST) == pytest.approx(1.0)
