"""
Hand-off of visible faces to triangle meshes.

Faces are grouped by render key (block id, colour, solidity) and each
polygon is fan-triangulated from its first vertex. Vertices are not shared
between polygons, so every face keeps its own flat normal. Material lookup
and file output belong to the caller.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

import logging
import numpy as np
import trimesh

from tilecull.contracts import VisibleFace
from tilecull.postprocess import face_render_key

logger = logging.getLogger(__name__)


@dataclass
class FaceMesh:
    """Triangle mesh of all faces sharing one render key."""

    render_key: str
    block_state: str
    mesh: trimesh.Trimesh
    face_count: int
    transformable_face_count: int


def fan_triangles(vertex_count: int, base: int = 0) -> List[List[int]]:
    return [[base, base + i, base + i + 1] for i in range(1, vertex_count - 1)]


def faces_to_meshes(faces: Sequence[VisibleFace]) -> List[FaceMesh]:
    """Build one ``trimesh.Trimesh`` per render key, in first-seen order."""
    groups: Dict[str, dict] = {}
    for face in faces:
        if len(face.vertices) < 3:
            continue
        key = face_render_key(face)
        group = groups.get(key)
        if group is None:
            group = {"block_state": face.block_state, "vertices": [], "triangles": [], "faces": 0, "transformable": 0}
            groups[key] = group

        base = len(group["vertices"])
        group["vertices"].extend(face.vertices)
        group["triangles"].extend(fan_triangles(len(face.vertices), base))
        group["faces"] += 1
        if face.source_kind.value == "transformable":
            group["transformable"] += 1

    meshes = []
    for key, group in groups.items():
        mesh = trimesh.Trimesh(
            vertices=np.asarray(group["vertices"], dtype=np.float64),
            faces=np.asarray(group["triangles"], dtype=np.int64).reshape(-1, 3),
            process=False,
        )
        meshes.append(FaceMesh(
            render_key=key,
            block_state=group["block_state"],
            mesh=mesh,
            face_count=group["faces"],
            transformable_face_count=group["transformable"],
        ))

    logger.debug("Assembled %d faces into %d meshes", len(faces), len(meshes))
    return meshes


def combined_mesh(meshes: Sequence[FaceMesh]) -> trimesh.Trimesh:
    """Concatenate per-key meshes into one, e.g. for bounds or export."""
    if not meshes:
        return trimesh.Trimesh()
    return trimesh.util.concatenate([m.mesh for m in meshes])
