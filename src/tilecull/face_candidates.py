"""Face candidate construction for AABB and transformable boxes."""
from __future__ import annotations

from typing import List

from tilecull.contracts import FACING_ORDER, Box, FaceCandidate, Facing, Polygon3, Tile
from tilecull.polygon_ops import face_vertices_from_plane_rect
from tilecull.transform_cache import get_face_cache


def _candidate(tile: Tile, box: Box, facing: Facing, axis_polys: List[Polygon3], tilted_polys: List[Polygon3]) -> FaceCandidate:
    axis = facing.axis_index
    one, two = facing.plane_axes
    if facing.positive:
        origin, origin_raw = box.max_world[axis], box.max_raw[axis]
    else:
        origin, origin_raw = box.min_world[axis], box.min_raw[axis]
    return FaceCandidate(
        tile=tile,
        box=box,
        facing=facing,
        origin=origin,
        origin_raw=origin_raw,
        min_one=box.min_world[one],
        max_one=box.max_world[one],
        min_two=box.min_world[two],
        max_two=box.max_world[two],
        min_one_raw=box.min_raw[one],
        max_one_raw=box.max_raw[one],
        min_two_raw=box.min_raw[two],
        max_two_raw=box.max_raw[two],
        axis_polys=axis_polys,
        tilted_polys=tilted_polys,
    )


def full_face_rect(box: Box, facing: Facing) -> Polygon3:
    """The undisplaced rectangle of *box* on *facing*, in world units."""
    axis = facing.axis_index
    one, two = facing.plane_axes
    c = box.max_world[axis] if facing.positive else box.min_world[axis]
    return face_vertices_from_plane_rect(
        axis, facing.positive, c,
        box.min_world[one], box.max_world[one],
        box.min_world[two], box.max_world[two],
    )


def build_face_candidates(tile: Tile, box: Box, allow_tilted_only: bool = False) -> List[FaceCandidate]:
    """Candidates of *box* in DOWN, UP, NORTH, SOUTH, WEST, EAST order.

    An AABB box yields one full rectangle per facing. A transformable box
    yields the full rectangle for completely filled facings, otherwise its
    axis strips plus tilted fragments. Facings with tilted fragments but no
    axis strips are skipped unless *allow_tilted_only* (client geometry).
    """
    if not box.is_transformable:
        return [_candidate(tile, box, facing, [full_face_rect(box, facing)], []) for facing in FACING_ORDER]

    cache = get_face_cache(box)
    out = []
    for facing in FACING_ORDER:
        face_cache = cache.faces.get(facing)
        if face_cache is None:
            continue
        if not allow_tilted_only and not face_cache.is_completely_filled and not face_cache.axis_strips:
            continue

        if face_cache.is_completely_filled:
            axis_polys = [full_face_rect(box, facing)]
        else:
            axis_polys = [list(poly) for poly in face_cache.axis_strips]
        tilted_polys = [list(poly) for poly in face_cache.tilted_render]
        if not axis_polys and not tilted_polys:
            continue
        out.append(_candidate(tile, box, facing, axis_polys, tilted_polys))
    return out
