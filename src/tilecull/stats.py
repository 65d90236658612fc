"""Counts and planar areas of emitted faces and renderable candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Sequence

from shapely.geometry import Polygon

from tilecull.contracts import FACING_ORDER, BoxKind, Facing, FaceType, VisibleFace


def _facing_counts() -> Dict[str, int]:
    return {facing.value: 0 for facing in FACING_ORDER}


def _kind_counts() -> Dict[str, int]:
    return {kind.value: 0 for kind in BoxKind}


def _outside_counts() -> Dict[str, int]:
    return {"inside": 0, "outside": 0}


@dataclass
class FaceSetSummary:
    total_faces: int = 0
    by_facing: Dict[str, int] = field(default_factory=_facing_counts)
    by_source_kind: Dict[str, int] = field(default_factory=_kind_counts)
    by_face_type: Dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in FaceType})
    by_outside: Dict[str, int] = field(default_factory=_outside_counts)
    # world units squared, axis faces only
    axis_area_by_facing: Dict[str, float] = field(
        default_factory=lambda: {facing.value: 0.0 for facing in FACING_ORDER}
    )

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_faces": self.total_faces,
            "by_facing": dict(self.by_facing),
            "by_source_kind": dict(self.by_source_kind),
            "by_face_type": dict(self.by_face_type),
            "by_outside": dict(self.by_outside),
            "axis_area_by_facing": dict(self.axis_area_by_facing),
        }


@dataclass
class CandidateSummary:
    total_visible_candidates: int = 0
    by_facing: Dict[str, int] = field(default_factory=_facing_counts)
    by_source_kind: Dict[str, int] = field(default_factory=_kind_counts)
    by_outside: Dict[str, int] = field(default_factory=_outside_counts)


def planar_area(vertices: Sequence[Sequence[float]], facing: Facing) -> float:
    """Area of an axis-aligned polygon projected onto its face plane."""
    one, two = facing.plane_axes
    if len(vertices) < 3:
        return 0.0
    poly = Polygon([(v[one], v[two]) for v in vertices])
    if not poly.is_valid:
        poly = poly.buffer(0)
    return float(poly.area)


def summarize_face_set(faces: Iterable[VisibleFace]) -> FaceSetSummary:
    summary = FaceSetSummary()
    for face in faces:
        summary.total_faces += 1
        summary.by_facing[face.facing.value] += 1
        summary.by_source_kind[face.source_kind.value] += 1
        summary.by_face_type[face.face_type.value] += 1
        summary.by_outside["outside" if face.outside else "inside"] += 1
        if face.face_type is FaceType.AXIS:
            summary.axis_area_by_facing[face.facing.value] += planar_area(face.vertices, face.facing)
    return summary


def summarize_renderable_candidates(candidates) -> CandidateSummary:
    """Summarize the output of ``iterate_renderable_face_candidates``."""
    summary = CandidateSummary()
    for candidate in candidates:
        summary.total_visible_candidates += 1
        summary.by_facing[candidate.face.facing.value] += 1
        summary.by_source_kind[candidate.box.kind.value] += 1
        summary.by_outside["outside" if candidate.outside else "inside"] += 1
    return summary
