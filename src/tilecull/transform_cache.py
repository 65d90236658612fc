"""
Face cache for transformable (corner-displaced) boxes.

A transformable box stores per-corner integer displacements in a packed
payload. Each of its six faces becomes either an untouched axis face or one
or two tilted fragments with their own cut planes. The cache records, per
facing:

1. ``axis_strips``: what remains of the undisplaced rectangle after every
   tilted cut plane has been applied.
2. ``tilted_render``: tilted fragments routed to their nearest facing.
3. ``is_completely_filled``: whether the facing is still the full rectangle.

All geometry is computed in raw grid units and scaled to world units at the
end. The cache is a pure function of the box, memoized on it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from tilecull.contracts import FACING_ORDER, Box, Facing, Polygon3, Tile, Vec3
from tilecull.polygon_ops import (
    CUT_EPSILON,
    EPSILON,
    ZERO_VEC3,
    Plane,
    clip_polygon_by_plane,
    create_plane,
    cross3f,
    dedupe_polygons,
    is_degenerate_polygon,
    is_in_front,
    normalize_vec,
    points_equal,
    polygon_cut_2d,
    polygon_intersect_2d,
    polygons_equal,
    scale_polygon,
    simplify_polygon,
    sub3f,
    vector_epsilon_equals,
    vectors_parallel,
)

logger = logging.getLogger(__name__)

CORNER_NAMES: Tuple[str, ...] = ("EUN", "EUS", "EDN", "EDS", "WUN", "WUS", "WDN", "WDS")
_CORNER_INDEX = {name: i for i, name in enumerate(CORNER_NAMES)}

# Corner winding of each box face; this processing order also fixes the
# order in which tilted fragments land in their target facing.
FACE_CORNERS: Tuple[Tuple[Facing, Tuple[str, str, str, str]], ...] = (
    (Facing.EAST, ("EUS", "EDS", "EDN", "EUN")),
    (Facing.WEST, ("WUN", "WDN", "WDS", "WUS")),
    (Facing.UP, ("WUN", "WUS", "EUS", "EUN")),
    (Facing.DOWN, ("WDS", "WDN", "EDN", "EDS")),
    (Facing.SOUTH, ("WUS", "WDS", "EDS", "EUS")),
    (Facing.NORTH, ("EUN", "EDN", "WDN", "WUN")),
)
_FACE_CORNERS_BY_FACING = dict(FACE_CORNERS)

FLIP_BIT_OFFSET = 24
FILLED_EPSILON = 1e-4
FACING_PLANE_TOLERANCE = 2e-3
DUAL_CUT_INTERSECT_EPSILON = 0.001
# DOWN strips keep fragments sitting a hair behind a cut plane.
DOWN_AXIS_CUT_EPSILON = 1e-7
AXIS_CUT_EPSILON = 5e-4


@dataclass
class CornerOffsets:
    """Decoded per-corner displacements, shape ``(8, 3)`` in corner order."""
    values: np.ndarray
    present: np.ndarray

    def offset(self, corner: int, axis: int) -> int:
        return int(self.values[corner, axis])


@dataclass
class FacingCache:
    axis_strips: List[Polygon3] = field(default_factory=list)
    tilted_render: List[Polygon3] = field(default_factory=list)
    is_completely_filled: bool = False


@dataclass
class BoxFaceCache:
    faces: Dict[Facing, FacingCache]

    def __getitem__(self, facing: Facing) -> FacingCache:
        return self.faces[facing]


@dataclass
class _RawFacingCache:
    convex: bool = True
    tilted_strip1: Optional[Polygon3] = None
    tilted_strip2: Optional[Polygon3] = None
    cut_plane1: Optional[Plane] = None
    cut_plane2: Optional[Plane] = None
    axis_strips: List[Polygon3] = field(default_factory=list)
    tilted_render: List[Polygon3] = field(default_factory=list)


def empty_face_cache() -> BoxFaceCache:
    return BoxFaceCache(faces={facing: FacingCache() for facing in FACING_ORDER})


# ─── Payload decoding ────────────────────────────────────────────────────────

def _bit_is(value: int, bit: int) -> bool:
    return ((value >> bit) & 1) == 1


def _packed_short(data: Sequence[int], index: int) -> int:
    """Signed 16-bit value *index* of the packed stream after the indicator.

    Even indices take the high half of a word. Reads past the end yield 0.
    """
    real_index = (index >> 1) + 1
    if real_index >= len(data):
        return 0
    word = int(data[real_index])
    if index & 1:
        out = word & 0xFFFF
    else:
        out = (word >> 16) & 0xFFFF
    if out & 0x8000:
        out -= 0x10000
    return out


def decode_corner_offsets(transform_data: Sequence[int]) -> CornerOffsets:
    """Decode the indicator word and packed deltas into an ``(8, 3)`` array."""
    values = np.zeros((len(CORNER_NAMES), 3), dtype=np.int16)
    present = np.zeros((len(CORNER_NAMES), 3), dtype=bool)
    if not transform_data:
        return CornerOffsets(values=values, present=present)

    indicator = int(transform_data[0])
    active = 0
    for corner in range(len(CORNER_NAMES)):
        for axis in range(3):
            if _bit_is(indicator, corner * 3 + axis):
                values[corner, axis] = _packed_short(transform_data, active)
                present[corner, axis] = True
                active += 1
    return CornerOffsets(values=values, present=present)


def base_corners(box: Box) -> Dict[str, Vec3]:
    out = {}
    for name in CORNER_NAMES:
        out[name] = (
            box.max_raw[0] if name[0] == "E" else box.min_raw[0],
            box.max_raw[1] if name[1] == "U" else box.min_raw[1],
            box.max_raw[2] if name[2] == "S" else box.min_raw[2],
        )
    return out


def displaced_corners(box: Box, offsets: CornerOffsets) -> Dict[str, Vec3]:
    base = base_corners(box)
    out = {}
    for name, point in base.items():
        i = _CORNER_INDEX[name]
        out[name] = (
            point[0] + offsets.offset(i, 0),
            point[1] + offsets.offset(i, 1),
            point[2] + offsets.offset(i, 2),
        )
    return out


# ─── Geometry helpers ────────────────────────────────────────────────────────

def _plane_for_facing(box: Box, facing: Facing) -> Plane:
    origin = [0, 0, 0]
    axis = facing.axis_index
    origin[axis] = box.max_raw[axis] if facing.positive else box.min_raw[axis]
    return create_plane(origin, facing.normal)


def _create_strip(corner_names: Iterable[str], corners: Dict[str, Vec3]) -> Optional[Polygon3]:
    out: Polygon3 = []
    for name in corner_names:
        point = corners[name]
        if not any(points_equal(existing, point, EPSILON) for existing in out):
            out.append(point)
    return simplify_polygon(out)


def _check_equal_axis(corners, base, names: Sequence[str], axis: int) -> bool:
    return all(abs(corners[n][axis] - base[n][axis]) <= EPSILON for n in names)


def _triangle_normal(a: Vec3, b: Vec3, c: Vec3) -> Vec3:
    return cross3f(sub3f(b, a), sub3f(c, a))


def _plane_is_facing(plane: Plane, facing: Facing) -> bool:
    n = facing.normal
    return all(abs(plane.normal[i] - n[i]) <= FACING_PLANE_TOLERANCE for i in range(3))


def nearest_facing(normal: Sequence[float]) -> Facing:
    """Facing with the largest dot product; the first strict maximum wins."""
    if normal[0] == 0 and normal[1] == 0 and normal[2] == 0:
        return Facing.DOWN
    best = Facing.DOWN
    distance = float("-inf")
    for candidate in FACING_ORDER:
        axis_normal = candidate.normal
        dot = normal[0] * axis_normal[0] + normal[1] * axis_normal[1] + normal[2] * axis_normal[2]
        if dot > distance:
            distance = dot
            best = candidate
    return best


def axis_cut_epsilon(facing: Facing) -> float:
    """On-plane tolerance used when cutting the axis strips of *facing*."""
    return DOWN_AXIS_CUT_EPSILON if facing is Facing.DOWN else AXIS_CUT_EPSILON


def _cut_axis_strips_single(strips: List[Polygon3], facing: Facing, plane: Optional[Plane], epsilon: float) -> List[Polygon3]:
    if plane is None or plane.invalid or _plane_is_facing(plane, facing):
        return strips
    out = []
    for strip in strips:
        clipped = clip_polygon_by_plane(strip, plane, epsilon)
        if clipped:
            out.append(clipped)
    return out


def _cut_axis_strips_dual(
    strips: List[Polygon3],
    facing: Facing,
    plane1: Optional[Plane],
    plane2: Optional[Plane],
    epsilon: float,
) -> List[Polygon3]:
    """Cut by a non-convex pair of planes.

    Each plane keeps its own region; overlapping regions are merged by
    subtracting the second from the first before both are kept.
    """
    valid1 = plane1 is not None and not plane1.invalid
    valid2 = plane2 is not None and not plane2.invalid
    if not valid1 and not valid2:
        return strips
    if not valid1:
        return _cut_axis_strips_single(strips, facing, plane2, epsilon)
    if not valid2:
        return _cut_axis_strips_single(strips, facing, plane1, epsilon)

    one, two = facing.plane_axes
    inverse = facing.positive
    out: List[Polygon3] = []
    for strip in strips:
        cut1 = clip_polygon_by_plane(strip, plane1, epsilon)
        cut2 = clip_polygon_by_plane(strip, plane2, epsilon)
        if cut1 and cut2:
            if polygon_intersect_2d(cut1, cut2, one, two, inverse, DUAL_CUT_INTERSECT_EPSILON):
                fans = polygon_cut_2d(cut1, cut2, one, two, inverse, False)
                out.append(cut2)
                out.extend(fan for fan in fans if len(fan) >= 3)
            else:
                out.extend((cut1, cut2))
        elif cut1:
            out.append(cut1)
        elif cut2:
            out.append(cut2)
    return dedupe_polygons(out, FILLED_EPSILON)


def _source_cut_planes(source: _RawFacingCache) -> Tuple[Optional[Plane], Optional[Plane]]:
    """Planes another facing cuts with; a convex single strip cuts with its own plane."""
    if not source.tilted_strip1 and not source.tilted_strip2:
        return source.cut_plane1, source.cut_plane2
    if not source.convex or (source.tilted_strip1 and source.tilted_strip2):
        return source.cut_plane1, source.cut_plane2
    if source.tilted_strip1:
        return source.cut_plane1, None
    return source.cut_plane2, None


# ─── Cache construction ──────────────────────────────────────────────────────

def _compute_raw_face_cache(box: Box) -> Tuple[Dict[Facing, _RawFacingCache], Dict[str, Vec3]]:
    offsets = decode_corner_offsets(box.transform_data)
    corners = displaced_corners(box, offsets)
    base = base_corners(box)
    indicator = int(box.transform_data[0]) if box.transform_data else 0
    caches = {facing: _RawFacingCache() for facing in FACING_ORDER}
    axis_planes = {facing: _plane_for_facing(box, facing) for facing in FACING_ORDER}

    for facing, face_corners in FACE_CORNERS:
        cache = caches[facing]
        if _bit_is(indicator, FLIP_BIT_OFFSET + facing.ordinal):
            tri_a = (face_corners[0], face_corners[1], face_corners[3])
            tri_b = (face_corners[1], face_corners[2], face_corners[3])
        else:
            tri_a = (face_corners[0], face_corners[1], face_corners[2])
            tri_b = (face_corners[0], face_corners[2], face_corners[3])

        first_same = _check_equal_axis(corners, base, tri_a, facing.axis_index)
        second_same = _check_equal_axis(corners, base, tri_b, facing.axis_index)
        if first_same and second_same:
            continue

        normal_a = normalize_vec(_triangle_normal(*(corners[n] for n in tri_a)))
        normal_b = normalize_vec(_triangle_normal(*(corners[n] for n in tri_b)))

        strip1 = strip2 = None
        plane1 = plane2 = None
        usable_a = not first_same and not vector_epsilon_equals(normal_a, ZERO_VEC3, EPSILON)
        usable_b = not second_same and not vector_epsilon_equals(normal_b, ZERO_VEC3, EPSILON)

        if vectors_parallel(normal_a, normal_b, EPSILON):
            if usable_a:
                strip1 = _create_strip(face_corners, corners)
                plane1 = create_plane(corners[tri_a[0]], normal_a) if strip1 else None
        else:
            if usable_a:
                strip1 = _create_strip(tri_a, corners)
                plane1 = create_plane(corners[tri_a[0]], normal_a) if strip1 else None
            if usable_b:
                strip2 = _create_strip(tri_b, corners)
                plane2 = create_plane(corners[tri_b[0]], normal_b) if strip2 else None

        if strip1 and (plane1 is None or plane1.invalid):
            strip1 = None
        if strip2 and (plane2 is None or plane2.invalid):
            strip2 = None

        if strip1 and strip2 and plane1:
            if any(is_in_front(plane1, vec, EPSILON) is True for vec in strip2):
                cache.convex = False

        for bound in FACING_ORDER:
            if strip1:
                strip1 = clip_polygon_by_plane(strip1, axis_planes[bound], CUT_EPSILON)
            if strip2:
                strip2 = clip_polygon_by_plane(strip2, axis_planes[bound], CUT_EPSILON)

        cache.tilted_strip1 = strip1
        cache.tilted_strip2 = strip2
        cache.cut_plane1 = plane1
        cache.cut_plane2 = plane2

        if strip1 and plane1:
            caches[nearest_facing(plane1.normal)].tilted_render.append(strip1)
        if strip2 and plane2:
            caches[nearest_facing(plane2.normal)].tilted_render.append(strip2)

    for facing in FACING_ORDER:
        axis_cache = caches[facing]
        full = _create_strip(_FACE_CORNERS_BY_FACING[facing], base)
        axis_cache.axis_strips = [full] if full else []
        epsilon = axis_cut_epsilon(facing)

        for other in FACING_ORDER:
            if not axis_cache.axis_strips:
                break
            source = caches[other]
            plane1, plane2 = _source_cut_planes(source)
            if source.convex:
                if plane1:
                    axis_cache.axis_strips = _cut_axis_strips_single(axis_cache.axis_strips, facing, plane1, epsilon)
                if plane2:
                    axis_cache.axis_strips = _cut_axis_strips_single(axis_cache.axis_strips, facing, plane2, epsilon)
            else:
                axis_cache.axis_strips = _cut_axis_strips_dual(axis_cache.axis_strips, facing, plane1, plane2, epsilon)

    return caches, base


def build_face_cache(box: Box) -> BoxFaceCache:
    """Compute the face cache of *box* without touching its memo slot."""
    if not box.transform_data:
        return empty_face_cache()

    raw_caches, base = _compute_raw_face_cache(box)
    inv_grid = 1.0 / box.grid
    faces: Dict[Facing, FacingCache] = {}
    for facing in FACING_ORDER:
        raw = raw_caches[facing]
        full = _create_strip(_FACE_CORNERS_BY_FACING[facing], base)
        is_filled = (
            not raw.tilted_strip1
            and not raw.tilted_strip2
            and len(raw.axis_strips) == 1
            and full is not None
            and polygons_equal(raw.axis_strips[0], full, FILLED_EPSILON)
        )
        faces[facing] = FacingCache(
            axis_strips=[
                scale_polygon(poly, inv_grid)
                for poly in raw.axis_strips
                if poly and len(poly) >= 3 and not is_degenerate_polygon(poly)
            ],
            tilted_render=[
                scale_polygon(poly, inv_grid)
                for poly in raw.tilted_render
                if poly and len(poly) >= 3 and not is_degenerate_polygon(poly)
            ],
            is_completely_filled=bool(is_filled),
        )
    return BoxFaceCache(faces=faces)


def get_face_cache(box: Box) -> BoxFaceCache:
    """Memoized face cache of a transformable box."""
    if box.face_cache is None:
        box.face_cache = build_face_cache(box)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Built face cache for box %d (%s)",
                box.id,
                ", ".join(
                    f"{f.value}:{len(c.axis_strips)}a/{len(c.tilted_render)}t"
                    for f, c in box.face_cache.faces.items()
                ),
            )
    return box.face_cache


def warm_face_caches(tiles: Iterable[Tile]) -> int:
    """Fill the cache of every transformable box up front. Returns the count."""
    count = 0
    for tile in tiles:
        for box in tile.boxes:
            if box.is_transformable:
                get_face_cache(box)
                count += 1
    return count
