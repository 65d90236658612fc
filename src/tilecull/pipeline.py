"""Tile face culling: candidates -> face states -> cut polygons -> postprocess."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Optional, Sequence

from tilecull.contracts import (
    Box,
    CullConfig,
    CullResult,
    FaceCandidate,
    FaceState,
    FaceType,
    Group,
    Polygon3,
    Tile,
    VisibleFace,
)
from tilecull.face_candidates import build_face_candidates
from tilecull.face_state import evaluate_face_state
from tilecull.normalization import count_boxes, flatten_tiles, group_from_dict
from tilecull.occluders import apply_occluders, has_static_external_neighbour, is_outside_face
from tilecull.polygon_ops import has_renderable_polygon, is_degenerate_polygon
from tilecull.postprocess import GeometryMode, apply_geometry_mode_pipeline, resolve_geometry_mode
from tilecull.profiles import (
    RuntimeFaceBehaviorProfile,
    resolve_runtime_face_behavior_profile,
    should_occlude_outside_faces,
)
from tilecull.stats import summarize_face_set
from tilecull.transform_cache import warm_face_caches

logger = logging.getLogger(__name__)


@dataclass
class RenderableCandidate:
    tile: Tile
    box: Box
    face: FaceCandidate
    # None when internal occlusion is disabled
    face_state: Optional[FaceState]
    outside: bool


def resolve_profile(config: CullConfig) -> RuntimeFaceBehaviorProfile:
    """Resolve ``config.runtime_profile`` to a concrete profile.

    Accepts a profile instance, a profile id, or a runtime mapping with
    ``minecraftVersion``/``littleTilesVersion``; anything else is the default.
    """
    option = config.runtime_profile
    if isinstance(option, RuntimeFaceBehaviorProfile):
        return option
    if isinstance(option, str):
        return resolve_runtime_face_behavior_profile(profile_id=option)
    if isinstance(option, Mapping):
        return resolve_runtime_face_behavior_profile(runtime=option)
    return resolve_runtime_face_behavior_profile()


def _renderability(face, tile, tiles, config, profile, mode):
    if config.evaluate_internal_occlusion:
        state = evaluate_face_state(face, tile, tiles, profile, mode)
        if not state.renderable:
            return None
        return state, state.outside

    if not (has_renderable_polygon(face.axis_polys) or has_renderable_polygon(face.tilted_polys)):
        return None
    return None, is_outside_face(face)


def iterate_renderable_face_candidates(
    tiles: Sequence[Tile],
    config: Optional[CullConfig] = None,
    profile: Optional[RuntimeFaceBehaviorProfile] = None,
) -> Iterator[RenderableCandidate]:
    """Yield renderable candidates in tile, box, facing order."""
    config = config or CullConfig()
    if profile is None:
        profile = resolve_profile(config)
    mode = resolve_geometry_mode(config.geometry_mode)
    allow_tilted_only = mode is GeometryMode.CLIENT

    for tile in tiles:
        for box in tile.boxes:
            for face in build_face_candidates(tile, box, allow_tilted_only=allow_tilted_only):
                result = _renderability(face, tile, tiles, config, profile, mode)
                if result is None:
                    continue
                state, outside = result
                yield RenderableCandidate(tile=tile, box=box, face=face, face_state=state, outside=outside)


def _visible_axis_polys(candidate: RenderableCandidate, tiles, config, profile) -> List[Polygon3]:
    face = candidate.face
    polys = face.axis_polys
    if not config.evaluate_internal_occlusion or not polys:
        return polys
    if candidate.face_state is None or not candidate.face_state.needs_axis_cutting:
        return polys

    if not candidate.outside:
        return apply_occluders(face, polys, candidate.tile, tiles)
    if should_occlude_outside_faces(profile):
        if has_static_external_neighbour(face, candidate.tile):
            return []
        return apply_occluders(face, polys, candidate.tile, tiles)
    return polys


def _emit(out: List[VisibleFace], candidate: RenderableCandidate, polys, face_type: FaceType) -> None:
    tile = candidate.tile
    for poly in polys:
        if not poly or len(poly) < 3 or is_degenerate_polygon(poly):
            continue
        out.append(VisibleFace(
            block_state=tile.block_state,
            block_id=tile.block_id,
            color=tile.color,
            provides_solid_face=tile.provides_solid_face,
            source_kind=candidate.box.kind,
            facing=candidate.face.facing,
            face_type=face_type,
            outside=candidate.outside,
            vertices=tuple(tuple(float(c) for c in v) for v in poly),
        ))


def build_visible_faces(tiles: Sequence[Tile], config: Optional[CullConfig] = None) -> List[VisibleFace]:
    """Visible polygons of *tiles*, axis polygons before tilted ones per candidate."""
    config = config or CullConfig()
    profile = resolve_profile(config)
    out: List[VisibleFace] = []
    for candidate in iterate_renderable_face_candidates(tiles, config, profile):
        _emit(out, candidate, _visible_axis_polys(candidate, tiles, config, profile), FaceType.AXIS)
        _emit(out, candidate, candidate.face.tilted_polys, FaceType.TILTED)
    return out


def cull_tiles(tiles: Sequence[Tile], config: Optional[CullConfig] = None) -> CullResult:
    """Run the full culling pipeline over an already flattened tile list."""
    config = config or CullConfig()
    tiles = list(tiles)
    mode = resolve_geometry_mode(config.geometry_mode)
    profile = resolve_profile(config)

    warmed = warm_face_caches(tiles)
    faces = build_visible_faces(tiles, config)
    post = apply_geometry_mode_pipeline(faces, mode, config.optimize)

    box_count = count_boxes(tiles)
    stats = {
        "geometry_mode": mode.value,
        "runtime_profile": profile.profile_id,
        "evaluate_internal_occlusion": config.evaluate_internal_occlusion,
        "transformable_boxes_warmed": warmed,
        "postprocess": post.stats(),
        "faces": summarize_face_set(post.faces).to_dict(),
    }
    logger.info(
        "Culled %d tiles (%d boxes): %d faces emitted, %d after postprocess",
        len(tiles), box_count, len(faces), len(post.faces),
    )
    return CullResult(faces=post.faces, tile_count=len(tiles), box_count=box_count, stats=stats)


def cull_group(root: Group, config: Optional[CullConfig] = None) -> CullResult:
    return cull_tiles(flatten_tiles(root), config)


def cull_dict(data: Mapping[str, Any], config: Optional[CullConfig] = None) -> CullResult:
    """Build the tile tree from its mapping form and cull it.

    ``config.behavior_overrides`` is applied while the tree is built.
    """
    config = config or CullConfig()
    root = group_from_dict(data, behavior_overrides=config.behavior_overrides)
    return cull_group(root, config)
