"""
Occluder application and the neighbour predicates shared with face states.

A partially covered face is cut against every eligible neighbour box lying
on its plane: solid opposing faces remove their overlap rectangle, and
non-solid transformable neighbours remove the footprint of their opposing
axis strips.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from tilecull.contracts import Box, FaceCandidate, Facing, Polygon3, Tile, Vec3
from tilecull.polygon_ops import (
    BOUNDARY_EPSILON,
    dedupe_polygons,
    face_vertices_from_plane_rect,
    is_degenerate_polygon,
    polygon_cut_2d,
    polygon_intersect_2d,
    polygons_equal,
    project_polygon_to_axis,
    simplify_polygon,
)
from tilecull.transform_cache import get_face_cache

CUT_INTERSECT_EPSILON = 0.001
PIECE_DEDUPE_EPSILON = 1e-4


# ─── Neighbour predicates ────────────────────────────────────────────────────

def _valid_grid(grid) -> bool:
    return type(grid) is int and grid > 0


def is_outside_face(face: FaceCandidate) -> bool:
    """True when the face plane sits on or beyond the tile's grid cell."""
    grid = face.box.grid
    if not _valid_grid(grid):
        return False
    return not (0 < face.origin_raw < grid)


def outside_neighbour_index(face: FaceCandidate) -> Optional[int]:
    """Block index directly across the boundary the face lies on."""
    grid = face.box.grid
    if not _valid_grid(grid):
        return None
    if face.sign > 0:
        owner = (face.origin_raw - 1) // grid
    else:
        owner = face.origin_raw // grid
    return owner + face.sign


def matches_outside_neighbour(face: FaceCandidate, box: Box, neighbour_index: Optional[int]) -> bool:
    if neighbour_index is None:
        return False
    grid = face.box.grid
    if not _valid_grid(grid):
        return False
    axis = face.axis_index
    if face.sign > 0:
        index = box.min_raw[axis] // grid
    else:
        index = (box.max_raw[axis] - 1) // grid
    return index == neighbour_index


def has_static_external_neighbour(face: FaceCandidate, tile: Tile) -> bool:
    """Whether a world block outside the construct hides this face.

    Standalone conversion has no world context, so there never is one.
    """
    return False


def provides_solid_face(tile: Tile) -> bool:
    return tile.provides_solid_face is True


def can_be_render_combined(one: Tile, two: Tile) -> bool:
    return one.block_id == two.block_id and one.color == two.color


def is_occluding_tile(tile: Tile, rendered_tile: Tile) -> bool:
    if tile.structure_no_collision:
        return False
    return provides_solid_face(tile) or can_be_render_combined(tile, rendered_tile)


def is_face_solid(box: Box, facing: Facing) -> bool:
    if not box.is_transformable:
        return True
    return get_face_cache(box).faces[facing].is_completely_filled


# ─── Cutting ─────────────────────────────────────────────────────────────────

def box_intersects_face(box: Box, face: FaceCandidate) -> bool:
    """True when *box* touches the face plane from the outside and overlaps it."""
    axis = face.axis_index
    if face.sign > 0:
        matches_plane = abs(box.min_world[axis] - face.origin) <= BOUNDARY_EPSILON
    else:
        matches_plane = abs(box.max_world[axis] - face.origin) <= BOUNDARY_EPSILON
    if not matches_plane:
        return False

    one, two = face.one_index, face.two_index
    return (
        face.max_one > box.min_world[one] + BOUNDARY_EPSILON
        and face.min_one < box.max_world[one] - BOUNDARY_EPSILON
        and face.max_two > box.min_world[two] + BOUNDARY_EPSILON
        and face.min_two < box.max_world[two] - BOUNDARY_EPSILON
    )


def _transformable_cutters(face: FaceCandidate, box: Box) -> List[Polygon3]:
    if not box.is_transformable:
        return []
    opposite = get_face_cache(box).faces.get(face.facing.opposite)
    if opposite is None or not opposite.axis_strips:
        return []
    cutters = []
    for strip in opposite.axis_strips:
        projected = project_polygon_to_axis(strip, face.axis_index, face.origin)
        if projected and len(projected) >= 3:
            cutters.append(projected)
    return cutters


def signed_area_2d(poly: Sequence[Vec3], one: int, two: int) -> float:
    """Shoelace area on the (one, two) axes; negative for clockwise order."""
    total = 0.0
    for i, a in enumerate(poly):
        b = poly[(i + 1) % len(poly)]
        total += a[one] * b[two] - b[one] * a[two]
    return total / 2.0


def _clockwise(poly: Sequence[Vec3], one: int, two: int) -> Polygon3:
    points = list(poly)
    if signed_area_2d(points, one, two) > 0:
        points.reverse()
    return points


def cut_polygons_2d(
    polys: Sequence[Polygon3],
    cutters: Sequence[Polygon3],
    one: int,
    two: int,
) -> List[Polygon3]:
    """Subtract each cutter in turn from every polygon.

    The 2D kernel treats the right-hand side of a clockwise edge as inside,
    so subjects and cutters are cut in clockwise order. Surviving pieces get
    their subject's original winding back.
    """
    result = list(polys)
    for cutter in cutters:
        cutter = _clockwise(cutter, one, two)
        next_polys: List[Polygon3] = []
        for poly in result:
            if not poly or len(poly) < 3:
                continue

            flipped = signed_area_2d(poly, one, two) > 0
            subject = _clockwise(poly, one, two)
            cut = polygon_cut_2d(subject, cutter, one, two, False, False)
            if not cut:
                if not polygon_intersect_2d(subject, cutter, one, two, False, CUT_INTERSECT_EPSILON):
                    next_polys.append(poly)
                continue

            unchanged = len(cut) == 1 and polygons_equal(cut[0], subject, PIECE_DEDUPE_EPSILON)
            if unchanged and not polygon_intersect_2d(subject, cutter, one, two, False, CUT_INTERSECT_EPSILON):
                next_polys.append(poly)
                continue

            for piece in cut:
                simplified = simplify_polygon(piece)
                if simplified and not is_degenerate_polygon(simplified):
                    if flipped:
                        simplified.reverse()
                    next_polys.append(simplified)

        result = dedupe_polygons(next_polys, PIECE_DEDUPE_EPSILON)
        if not result:
            break
    return result


def _apply_fill_from_box(face: FaceCandidate, visible: List[Polygon3], box: Box) -> List[Polygon3]:
    if not box_intersects_face(box, face):
        return visible

    one, two = face.one_index, face.two_index
    if is_face_solid(box, face.facing.opposite):
        min_one = max(face.min_one, box.min_world[one])
        max_one = min(face.max_one, box.max_world[one])
        min_two = max(face.min_two, box.min_world[two])
        max_two = min(face.max_two, box.max_world[two])
        if max_one - min_one <= BOUNDARY_EPSILON or max_two - min_two <= BOUNDARY_EPSILON:
            return visible
        cutter = face_vertices_from_plane_rect(
            face.axis_index, face.facing.positive, face.origin, min_one, max_one, min_two, max_two,
        )
        return cut_polygons_2d(visible, [cutter], one, two)

    cutters = _transformable_cutters(face, box)
    if not cutters:
        return visible
    return cut_polygons_2d(visible, cutters, one, two)


def apply_occluders(
    face: FaceCandidate,
    start_polys: Sequence[Polygon3],
    rendered_tile: Tile,
    all_tiles: Sequence[Tile],
) -> List[Polygon3]:
    """Cut *start_polys* against every eligible neighbour of *face*.

    Outside faces only consider boxes in the block directly across their
    boundary.
    """
    visible = [list(poly) for poly in start_polys]
    outside = is_outside_face(face)
    neighbour_index = outside_neighbour_index(face) if outside else None

    for tile in all_tiles:
        if not is_occluding_tile(tile, rendered_tile):
            continue
        for box in tile.boxes:
            if box.id == face.box.id:
                continue
            if outside and not matches_outside_neighbour(face, box, neighbour_index):
                continue
            if not visible:
                return visible
            visible = _apply_fill_from_box(face, visible, box)
    return visible
