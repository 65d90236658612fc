"""Tests for face candidate construction."""

import pytest

from conftest import RAMP_TRANSFORM
from tilecull.contracts import FACING_ORDER, Facing
from tilecull.face_candidates import build_face_candidates, full_face_rect
from tilecull.stats import planar_area


class TestAabbCandidates:

    def test_six_full_rectangles_in_facing_order(self, make_tile):
        tile = make_tile(((2, 4, 6), (10, 12, 14)))
        faces = build_face_candidates(tile, tile.boxes[0])
        assert [f.facing for f in faces] == list(FACING_ORDER)
        for face in faces:
            assert len(face.axis_polys) == 1
            assert face.tilted_polys == []

    def test_origin_and_bounds(self, make_tile):
        tile = make_tile(((2, 4, 6), (10, 12, 14)))
        faces = {f.facing: f for f in build_face_candidates(tile, tile.boxes[0])}
        up = faces[Facing.UP]
        assert up.origin_raw == 12
        assert up.origin == pytest.approx(0.75)
        assert (up.min_one_raw, up.max_one_raw) == (2, 10)
        assert (up.min_two_raw, up.max_two_raw) == (6, 14)
        west = faces[Facing.WEST]
        assert west.origin_raw == 2
        assert (west.one_index, west.two_index) == (1, 2)

    def test_rect_area(self, make_box):
        box = make_box((0, 0, 0), (8, 16, 4))
        assert planar_area(full_face_rect(box, Facing.UP), Facing.UP) == pytest.approx(0.5 * 0.25)
        assert planar_area(full_face_rect(box, Facing.EAST), Facing.EAST) == pytest.approx(0.25)


class TestTransformableCandidates:

    def test_filled_facings_use_full_rect(self, make_tile):
        tile = make_tile(((0, 0, 0), (16, 16, 16), (0,)))
        faces = build_face_candidates(tile, tile.boxes[0])
        assert len(faces) == 6
        for face in faces:
            assert face.axis_polys == [full_face_rect(tile.boxes[0], face.facing)]

    def test_server_mode_skips_tilted_only_facing(self, make_tile):
        tile = make_tile(((0, 0, 0), (16, 16, 16), RAMP_TRANSFORM))
        faces = build_face_candidates(tile, tile.boxes[0], allow_tilted_only=False)
        assert Facing.UP not in [f.facing for f in faces]
        assert len(faces) == 5

    def test_client_mode_keeps_tilted_only_facing(self, make_tile):
        tile = make_tile(((0, 0, 0), (16, 16, 16), RAMP_TRANSFORM))
        faces = {f.facing: f for f in build_face_candidates(tile, tile.boxes[0], allow_tilted_only=True)}
        assert len(faces) == 6
        assert faces[Facing.UP].axis_polys == []
        assert len(faces[Facing.UP].tilted_polys) == 1

    def test_candidate_polygons_are_copies(self, make_tile):
        tile = make_tile(((0, 0, 0), (16, 16, 16), RAMP_TRANSFORM))
        box = tile.boxes[0]
        face = build_face_candidates(tile, box)[0]
        face.axis_polys[0].append((9.0, 9.0, 9.0))
        again = build_face_candidates(tile, box)[0]
        assert (9.0, 9.0, 9.0) not in again.axis_polys[0]
