"""
Geometry-mode postprocessing of emitted faces.

Only runs with ``optimize`` in client geometry mode:

1. ``dedupe_exact_faces`` drops faces identical in render key, facing, face
   type, outside flag and rounded vertex set.
2. ``remove_transparent_coplanar_seams`` drops opposite-facing pairs of
   translucent axis faces sharing render key and footprint, matched first
   come first served per bucket.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set

from tilecull.contracts import FACING_ORDER, Facing, FaceType, VisibleFace

logger = logging.getLogger(__name__)

QUANTIZE_SCALE = 1e6


class GeometryMode(Enum):
    CLIENT = "client"
    SERVER = "server"


DEFAULT_GEOMETRY_MODE = GeometryMode.CLIENT


def resolve_geometry_mode(value: Optional[object]) -> GeometryMode:
    """Normalize a geometry mode option, falling back to client."""
    if isinstance(value, GeometryMode):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        for mode in GeometryMode:
            if mode.value == raw:
                return mode
    return DEFAULT_GEOMETRY_MODE


@dataclass
class PassStats:
    pass_id: str
    before: int
    after: int

    @property
    def removed(self) -> int:
        return self.before - self.after


@dataclass
class PostprocessResult:
    faces: List[VisibleFace]
    mode: GeometryMode
    optimize: bool
    input_face_count: int
    passes: List[PassStats] = field(default_factory=list)

    @property
    def output_face_count(self) -> int:
        return len(self.faces)

    @property
    def removed_face_count(self) -> int:
        return self.input_face_count - len(self.faces)

    def stats(self) -> Dict[str, object]:
        return {
            "mode": self.mode.value,
            "optimize": self.optimize,
            "input_face_count": self.input_face_count,
            "output_face_count": self.output_face_count,
            "removed_face_count": self.removed_face_count,
            "passes": [
                {"pass_id": p.pass_id, "before": p.before, "after": p.after, "removed": p.removed}
                for p in self.passes
            ],
        }


# ─── Keys ────────────────────────────────────────────────────────────────────

def face_render_key(face: VisibleFace) -> str:
    color = face.color if isinstance(face.color, int) else -1
    solidity = "solid" if face.provides_solid_face is True else "translucent"
    return f"{face.block_id}|{color}|{solidity}"


def _quantize(value: float) -> str:
    number = float(value)
    if not math.isfinite(number):
        return "nan"
    rounded = math.floor(number * QUANTIZE_SCALE + 0.5) / QUANTIZE_SCALE
    if abs(rounded) < 1 / QUANTIZE_SCALE:
        return "0"
    return repr(rounded)


def normalized_polygon_key(vertices: Sequence[Sequence[float]]) -> str:
    """Order-independent key of a vertex set rounded to 1e-6."""
    if not vertices:
        return "empty"
    points = sorted(
        ",".join(_quantize(c) for c in vertex[:3]) if len(vertex) >= 3 else "nan,nan,nan"
        for vertex in vertices
    )
    return f"{len(points)}:{';'.join(points)}"


def _outside_tag(face: VisibleFace) -> str:
    return "outside" if face.outside else "inside"


# ─── Passes ──────────────────────────────────────────────────────────────────

def dedupe_exact_faces(faces: Sequence[VisibleFace]) -> List[VisibleFace]:
    seen: Set[str] = set()
    out = []
    for face in faces:
        key = "|".join((
            face_render_key(face),
            face.facing.value,
            face.face_type.value,
            _outside_tag(face),
            normalized_polygon_key(face.vertices),
        ))
        if key in seen:
            continue
        seen.add(key)
        out.append(face)
    return out


def remove_transparent_coplanar_seams(faces: Sequence[VisibleFace]) -> List[VisibleFace]:
    buckets: Dict[str, Dict[Facing, List[int]]] = {}
    for index, face in enumerate(faces):
        if face.provides_solid_face is not False:
            continue
        if face.face_type is not FaceType.AXIS:
            continue
        key = "|".join((face_render_key(face), _outside_tag(face), normalized_polygon_key(face.vertices)))
        bucket = buckets.setdefault(key, {facing: [] for facing in FACING_ORDER})
        bucket[face.facing].append(index)

    removed: Set[int] = set()
    for bucket in buckets.values():
        for first, second in ((Facing.UP, Facing.DOWN), (Facing.NORTH, Facing.SOUTH), (Facing.WEST, Facing.EAST)):
            for a, b in zip(bucket[first], bucket[second]):
                removed.add(a)
                removed.add(b)

    if not removed:
        return list(faces)
    return [face for index, face in enumerate(faces) if index not in removed]


def apply_geometry_mode_pipeline(
    faces: Sequence[VisibleFace],
    geometry_mode: object = DEFAULT_GEOMETRY_MODE,
    optimize: bool = False,
) -> PostprocessResult:
    mode = resolve_geometry_mode(geometry_mode)
    optimize = optimize is True
    working = list(faces or [])
    result = PostprocessResult(faces=working, mode=mode, optimize=optimize, input_face_count=len(working))

    if optimize and mode is GeometryMode.CLIENT:
        for pass_id, fn in (
            ("dedupe_exact_faces", dedupe_exact_faces),
            ("remove_transparent_coplanar_seams", remove_transparent_coplanar_seams),
        ):
            processed = fn(working)
            result.passes.append(PassStats(pass_id=pass_id, before=len(working), after=len(processed)))
            logger.debug("%s: %d -> %d faces", pass_id, len(working), len(processed))
            working = processed
        result.faces = working

    return result
