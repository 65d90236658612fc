"""
Face state evaluation.

Classifies a face candidate as unloaded, covered, partially covered or
uncovered. Coverage is measured on a boolean cell bitmap spanning the face
in its own grid resolution: every neighbour box lying on the face plane with
a solid opposing face fills the cells it overlaps. A non-solid neighbour
cannot be measured cell-wise and marks the face as partially covered unless
the runtime profile supports true cutting.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from tilecull.contracts import Box, FaceCandidate, FaceState, FaceStateKind, Tile
from tilecull.occluders import (
    is_face_solid,
    is_occluding_tile,
    is_outside_face,
    matches_outside_neighbour,
    outside_neighbour_index,
)
from tilecull.polygon_ops import RAW_COORD_EPSILON, has_renderable_polygon, js_round
from tilecull.postprocess import GeometryMode
from tilecull.profiles import (
    OutsideNeighborPolicy,
    RuntimeFaceBehaviorProfile,
    should_occlude_outside_faces,
    supports_cutting,
)


def _state(outside: bool, kind: FaceStateKind, reason: str, needs_axis_cutting: bool = False) -> FaceState:
    return FaceState(
        outside=outside,
        state=kind,
        covered_fully=kind in (FaceStateKind.INSIDE_COVERED, FaceStateKind.OUTSIDE_COVERED),
        partially=kind in (FaceStateKind.INSIDE_PARTIALLY_COVERED, FaceStateKind.OUTSIDE_PARTIALLY_COVERED),
        renderable=kind.renderable,
        reason=reason,
        needs_axis_cutting=needs_axis_cutting,
    )


def _uncovered(outside: bool, reason: str) -> FaceState:
    kind = FaceStateKind.OUTSIDE_UNCOVERED if outside else FaceStateKind.INSIDE_UNCOVERED
    return _state(outside, kind, reason)


# ─── Raw coordinate helpers ──────────────────────────────────────────────────

def _snap(value: float) -> Optional[int]:
    rounded = js_round(value)
    if abs(value - rounded) <= RAW_COORD_EPSILON:
        return int(rounded)
    return None


def round_raw_coord(value: float) -> float:
    snapped = _snap(value)
    return value if snapped is None else snapped


def _cell_start(value: float) -> int:
    snapped = _snap(value)
    return snapped if snapped is not None else math.floor(value + RAW_COORD_EPSILON)


def _cell_end(value: float) -> int:
    snapped = _snap(value)
    return snapped if snapped is not None else math.ceil(value - RAW_COORD_EPSILON)


def _cell_span(value: float) -> int:
    snapped = _snap(value)
    return snapped if snapped is not None else max(0, math.floor(value + RAW_COORD_EPSILON))


def _clamp_cell(value: int, limit: int) -> int:
    return min(max(value, 0), limit)


def convert_raw_coord(value: float, from_grid: int, to_grid: int) -> float:
    """Rescale a raw coordinate between grids with an integer ratio."""
    if from_grid > to_grid:
        ratio = int(from_grid / to_grid)
        if ratio <= 0:
            return value
        return int(value / ratio)
    ratio = int(to_grid / from_grid)
    if ratio <= 0:
        return 0
    return value * ratio


# ─── Coverage ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Coverage:
    covered_fully: bool
    partially: bool
    filled_cells: int = 0
    total_cells: int = 0

    @property
    def needs_axis_cutting(self) -> bool:
        return self.partially


def _project_overlap(face: FaceCandidate, box: Box, target_grid: int, face_bounds):
    """Overlap of *box* with the face rectangle in the face's raw units, or None."""
    min_one, max_one, min_two, max_two = face_bounds

    def raw(value: int) -> float:
        return round_raw_coord(convert_raw_coord(value, box.grid, target_grid))

    axis = face.axis_index
    if face.sign > 0:
        matches_plane = abs(raw(box.min_raw[axis]) - face.origin_raw) <= RAW_COORD_EPSILON
    else:
        matches_plane = abs(raw(box.max_raw[axis]) - face.origin_raw) <= RAW_COORD_EPSILON
    if not matches_plane:
        return None

    one, two = face.one_index, face.two_index
    lo_one = max(min_one, raw(box.min_raw[one]))
    hi_one = min(max_one, raw(box.max_raw[one]))
    lo_two = max(min_two, raw(box.min_raw[two]))
    hi_two = min(max_two, raw(box.max_raw[two]))
    if hi_one - lo_one <= RAW_COORD_EPSILON or hi_two - lo_two <= RAW_COORD_EPSILON:
        return None
    return lo_one, hi_one, lo_two, hi_two


def compute_face_coverage(
    face: FaceCandidate,
    rendered_tile: Tile,
    all_tiles: Sequence[Tile],
    profile: Optional[RuntimeFaceBehaviorProfile] = None,
    outside: bool = False,
) -> Coverage:
    """Rasterize neighbour footprints onto the face's cell bitmap."""
    face_grid = face.box.grid
    bounds = (
        round_raw_coord(face.min_one_raw),
        round_raw_coord(face.max_one_raw),
        round_raw_coord(face.min_two_raw),
        round_raw_coord(face.max_two_raw),
    )
    cells_one = max(0, _cell_span(bounds[1] - bounds[0]))
    cells_two = max(0, _cell_span(bounds[3] - bounds[2]))
    if cells_one * cells_two == 0:
        return Coverage(covered_fully=False, partially=False)

    filled = np.zeros((cells_one, cells_two), dtype=bool)
    partial_by_non_solid = False
    neighbour_index = outside_neighbour_index(face) if outside else None
    cutting = supports_cutting(profile)

    for tile in all_tiles:
        if not is_occluding_tile(tile, rendered_tile):
            continue
        for box in tile.boxes:
            if box.id == face.box.id:
                continue
            if outside and not matches_outside_neighbour(face, box, neighbour_index):
                continue

            overlap = _project_overlap(face, box, face_grid, bounds)
            if overlap is None:
                continue

            if not is_face_solid(box, face.facing.opposite):
                if not cutting:
                    partial_by_non_solid = True
                continue

            one_start = _clamp_cell(_cell_start(overlap[0] - bounds[0]), cells_one)
            one_end = _clamp_cell(_cell_end(overlap[1] - bounds[0]), cells_one)
            two_start = _clamp_cell(_cell_start(overlap[2] - bounds[2]), cells_two)
            two_end = _clamp_cell(_cell_end(overlap[3] - bounds[2]), cells_two)
            if one_end <= one_start or two_end <= two_start:
                continue
            filled[one_start:one_end, two_start:two_end] = True

    filled_cells = int(np.count_nonzero(filled))
    total = filled.size
    covered_fully = filled_cells == total
    return Coverage(
        covered_fully=covered_fully,
        partially=not covered_fully and (filled_cells > 0 or partial_by_non_solid),
        filled_cells=filled_cells,
        total_cells=total,
    )


# ─── Evaluation ──────────────────────────────────────────────────────────────

def _classify(coverage: Coverage, outside: bool) -> FaceState:
    prefix = "outside" if outside else "inside"
    if coverage.covered_fully:
        kind = FaceStateKind.OUTSIDE_COVERED if outside else FaceStateKind.INSIDE_COVERED
        return _state(outside, kind, f"{prefix}_covered")
    if coverage.partially:
        kind = FaceStateKind.OUTSIDE_PARTIALLY_COVERED if outside else FaceStateKind.INSIDE_PARTIALLY_COVERED
        return _state(outside, kind, f"{prefix}_partially_covered", coverage.needs_axis_cutting)
    return _uncovered(outside, f"{prefix}_uncovered")


def _evaluate_outside(face, rendered_tile, all_tiles, profile) -> FaceState:
    if not rendered_tile.cull_over_edge:
        return _uncovered(True, "outside_cull_over_edge_disabled")

    policy = profile.face_states.outside_neighbor_policy if profile is not None else None
    if policy is OutsideNeighborPolicy.AIR or not should_occlude_outside_faces(profile):
        return _uncovered(True, "outside_assume_air_neighbour")

    coverage = compute_face_coverage(face, rendered_tile, all_tiles, profile, outside=True)
    return _classify(coverage, True)


def evaluate_face_state(
    face: FaceCandidate,
    rendered_tile: Tile,
    all_tiles: Sequence[Tile],
    profile: Optional[RuntimeFaceBehaviorProfile] = None,
    geometry_mode: GeometryMode = GeometryMode.CLIENT,
) -> FaceState:
    """Classify *face* of *rendered_tile* against every tile in *all_tiles*."""
    outside = is_outside_face(face)
    has_axis = has_renderable_polygon(face.axis_polys)
    has_tilted = has_renderable_polygon(face.tilted_polys)

    if not has_axis and not has_tilted:
        return _state(outside, FaceStateKind.UNLOADED, "face_unloaded")

    if geometry_mode is GeometryMode.CLIENT and not has_axis:
        if not outside:
            return _uncovered(False, "inside_uncovered")
        if not rendered_tile.cull_over_edge:
            return _uncovered(True, "outside_cull_over_edge_disabled")
        return _uncovered(True, "outside_assume_air_neighbour")

    if outside:
        return _evaluate_outside(face, rendered_tile, all_tiles, profile)

    coverage = compute_face_coverage(face, rendered_tile, all_tiles, profile, outside=False)
    return _classify(coverage, False)
