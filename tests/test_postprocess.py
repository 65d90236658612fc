"""Tests for geometry-mode postprocessing."""

import pytest

from tilecull.contracts import BoxKind, Facing, FaceType, VisibleFace
from tilecull.postprocess import (
    GeometryMode,
    apply_geometry_mode_pipeline,
    dedupe_exact_faces,
    face_render_key,
    normalized_polygon_key,
    remove_transparent_coplanar_seams,
    resolve_geometry_mode,
)

SQUARE_X = ((0.5, 0.0, 0.0), (0.5, 1.0, 0.0), (0.5, 1.0, 1.0), (0.5, 0.0, 1.0))


def _face(facing=Facing.EAST, vertices=SQUARE_X, solid=True, block_id="minecraft:stone",
          face_type=FaceType.AXIS, outside=False, color=-1):
    return VisibleFace(
        block_state=block_id,
        block_id=block_id,
        color=color,
        provides_solid_face=solid,
        source_kind=BoxKind.AABB,
        facing=facing,
        face_type=face_type,
        outside=outside,
        vertices=vertices,
    )


class TestGeometryModeResolution:

    @pytest.mark.parametrize("value, expected", [
        ("client", GeometryMode.CLIENT),
        (" SERVER ", GeometryMode.SERVER),
        ("bogus", GeometryMode.CLIENT),
        (None, GeometryMode.CLIENT),
        (GeometryMode.SERVER, GeometryMode.SERVER),
    ])
    def test_resolve(self, value, expected):
        assert resolve_geometry_mode(value) is expected


class TestKeys:

    def test_render_key(self):
        assert face_render_key(_face()) == "minecraft:stone|-1|solid"
        assert face_render_key(_face(solid=False, color=5)) == "minecraft:stone|5|translucent"

    def test_polygon_key_ignores_order_and_tiny_noise(self):
        shuffled = (SQUARE_X[2], SQUARE_X[0], SQUARE_X[3], SQUARE_X[1])
        noisy = tuple((x + 1e-8, y, z) for x, y, z in SQUARE_X)
        assert normalized_polygon_key(SQUARE_X) == normalized_polygon_key(shuffled)
        assert normalized_polygon_key(SQUARE_X) == normalized_polygon_key(noisy)

    def test_polygon_key_negative_zero(self):
        assert normalized_polygon_key(((-0.0, 0.0, 0.0),)) == normalized_polygon_key(((0.0, 0.0, 0.0),))


class TestDedupe:

    def test_identical_faces_collapse(self):
        faces = [_face(), _face()]
        assert len(dedupe_exact_faces(faces)) == 1

    def test_different_facing_or_outside_kept(self):
        faces = [_face(), _face(facing=Facing.WEST), _face(outside=True)]
        assert len(dedupe_exact_faces(faces)) == 3


class TestSeamRemoval:

    def test_opposite_translucent_pair_removed(self):
        east = _face(Facing.EAST, solid=False, block_id="minecraft:glass")
        west = _face(Facing.WEST, solid=False, block_id="minecraft:glass")
        assert remove_transparent_coplanar_seams([east, west]) == []

    def test_unmatched_surplus_retained(self):
        east = _face(Facing.EAST, solid=False, block_id="minecraft:glass")
        west = _face(Facing.WEST, solid=False, block_id="minecraft:glass")
        extra = _face(Facing.EAST, solid=False, block_id="minecraft:glass")
        assert remove_transparent_coplanar_seams([east, west, extra]) == [extra]

    def test_solid_pair_kept(self):
        faces = [_face(Facing.EAST), _face(Facing.WEST)]
        assert remove_transparent_coplanar_seams(faces) == faces

    def test_tilted_pair_kept(self):
        faces = [
            _face(Facing.EAST, solid=False, face_type=FaceType.TILTED),
            _face(Facing.WEST, solid=False, face_type=FaceType.TILTED),
        ]
        assert remove_transparent_coplanar_seams(faces) == faces

    def test_different_material_kept(self):
        faces = [
            _face(Facing.EAST, solid=False, block_id="minecraft:glass"),
            _face(Facing.WEST, solid=False, block_id="minecraft:ice"),
        ]
        assert remove_transparent_coplanar_seams(faces) == faces


class TestPipeline:

    def _faces(self):
        return [
            _face(),
            _face(),
            _face(Facing.EAST, solid=False, block_id="minecraft:glass"),
            _face(Facing.WEST, solid=False, block_id="minecraft:glass"),
        ]

    def test_client_optimize_runs_both_passes(self):
        result = apply_geometry_mode_pipeline(self._faces(), "client", optimize=True)
        assert result.output_face_count == 1
        assert [p.pass_id for p in result.passes] == [
            "dedupe_exact_faces",
            "remove_transparent_coplanar_seams",
        ]
        assert [p.removed for p in result.passes] == [1, 2]
        assert result.stats()["removed_face_count"] == 3

    def test_without_optimize_nothing_changes(self):
        faces = self._faces()
        result = apply_geometry_mode_pipeline(faces, "client", optimize=False)
        assert result.faces == faces
        assert result.passes == []

    def test_server_mode_never_optimizes(self):
        faces = self._faces()
        result = apply_geometry_mode_pipeline(faces, "server", optimize=True)
        assert result.mode is GeometryMode.SERVER
        assert result.faces == faces
