"""Public API for tile face culling."""

from tilecull.contracts import (
    Box,
    BoxKind,
    CullConfig,
    CullResult,
    Facing,
    FaceType,
    Group,
    Tile,
    VisibleFace,
)
from tilecull.mesh_assembly import faces_to_meshes
from tilecull.normalization import TileTreeError, flatten_tiles, group_from_dict
from tilecull.pipeline import build_visible_faces, cull_dict, cull_group, cull_tiles
from tilecull.profiles import resolve_runtime_face_behavior_profile

__all__ = [
    "Box",
    "BoxKind",
    "CullConfig",
    "CullResult",
    "Facing",
    "FaceType",
    "Group",
    "Tile",
    "TileTreeError",
    "VisibleFace",
    "build_visible_faces",
    "cull_dict",
    "cull_group",
    "cull_tiles",
    "faces_to_meshes",
    "flatten_tiles",
    "group_from_dict",
    "resolve_runtime_face_behavior_profile",
]
