"""
Build the typed group/tile/box tree from its plain mapping form.

The mapping form is what an upstream parser produces::

    {"grid": 16, "structureId": None,
     "tiles": [{"blockState": "minecraft:stone", "color": -1,
                "boxes": [{"kind": "aabb", "min": [0, 0, 0], "max": [16, 16, 16]},
                          {"kind": "transformable", "min": [...], "max": [...],
                           "transformData": [indicator, packed...]}]}],
     "children": [...]}

Block behaviour (solidity, culling over the block edge) is inferred from
the block id and colour, with per-block overrides.
"""
from __future__ import annotations

import itertools
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Optional

from tilecull.contracts import Box, BoxKind, Group, Tile

logger = logging.getLogger(__name__)

DEFAULT_GRID = 16
DEFAULT_BLOCK_STATE = "minecraft:air"
TRANSLUCENT_PATH_TOKENS = ("air", "leaves", "glass", "pane", "ice", "water", "lava", "barrier")
CULL_OVER_EDGE_DISABLED_PATH_TOKENS = ("leaves",)
NO_COLLISION_STRUCTURES = ("noclip",)

_LEGACY_META_RE = re.compile(r"^[^:]+:[^:]+:-?\d+$")


class TileTreeError(ValueError):
    """Raised when the input tree cannot be turned into tiles and boxes."""


@dataclass(frozen=True)
class BlockBehavior:
    provides_solid_face: bool
    cull_over_edge: bool


# ─── Block identity ──────────────────────────────────────────────────────────

def canonical_block_id(state: str) -> str:
    """Block id without ``[property]`` suffix or legacy ``:meta``."""
    name = str(state or "")
    bracket = name.find("[")
    if bracket >= 0:
        name = name[:bracket]
    name = name.strip()
    if _LEGACY_META_RE.match(name):
        name = name.rsplit(":", 1)[0]
    return name


def _path_tokens(block_id: str) -> List[str]:
    parts = block_id.split(":")
    path = parts[1] if len(parts) > 1 else block_id
    return re.split(r"[_./-]+", path)


def is_color_transparent(color: int) -> bool:
    return ((color >> 24) & 255) < 255


def infer_block_behavior(
    block_id: str,
    color: int = -1,
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> BlockBehavior:
    tokens = _path_tokens(block_id)
    translucent = any(t in tokens for t in TRANSLUCENT_PATH_TOKENS)
    provides_solid_face = not (translucent or is_color_transparent(color))
    cull_over_edge = not any(t in tokens for t in CULL_OVER_EDGE_DISABLED_PATH_TOKENS)

    override = (overrides or {}).get(block_id)
    if isinstance(override, Mapping):
        if isinstance(override.get("providesSolidFace"), bool):
            provides_solid_face = override["providesSolidFace"]
        if isinstance(override.get("cullOverEdge"), bool):
            cull_over_edge = override["cullOverEdge"]
    return BlockBehavior(provides_solid_face=provides_solid_face, cull_over_edge=cull_over_edge)


def _structure_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _grid(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, float) and value.is_integer() and value > 0:
        return int(value)
    return fallback


def _int_triple(value: Any, path: str) -> tuple:
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        raise TileTreeError(f"{path} must be a list of three integers")
    out = []
    for i, item in enumerate(value):
        if isinstance(item, bool) or not isinstance(item, int):
            raise TileTreeError(f"{path}[{i}] must be an integer")
        out.append(item)
    return tuple(out)


# ─── Tree construction ───────────────────────────────────────────────────────

def _build_box(data: Mapping[str, Any], box_id: int, grid: int, path: str) -> Box:
    try:
        kind = BoxKind(data.get("kind", "aabb"))
    except ValueError as exc:
        raise TileTreeError(f"{path}.kind: unknown box kind {data.get('kind')!r}") from exc

    min_raw = _int_triple(data.get("min"), f"{path}.min")
    max_raw = _int_triple(data.get("max"), f"{path}.max")
    if not all(lo < hi for lo, hi in zip(min_raw, max_raw)):
        raise TileTreeError(f"{path}: invalid bounds {list(min_raw)} -> {list(max_raw)}")

    transform_data = None
    if kind is BoxKind.TRANSFORMABLE:
        raw = data.get("transformData")
        if raw is not None:
            if not isinstance(raw, (list, tuple)) or any(isinstance(v, bool) or not isinstance(v, int) for v in raw):
                raise TileTreeError(f"{path}.transformData must be a list of integers")
            transform_data = tuple(raw)

    return Box(
        id=box_id,
        kind=kind,
        grid=_grid(data.get("grid"), grid),
        min_raw=min_raw,
        max_raw=max_raw,
        transform_data=transform_data,
    )


def group_from_dict(
    data: Mapping[str, Any],
    default_grid: int = DEFAULT_GRID,
    behavior_overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Group:
    """Build a ``Group`` tree; tile and box ids follow flatten order."""
    if not isinstance(data, Mapping):
        raise TileTreeError("root group must be a mapping")
    tile_ids = itertools.count()
    box_ids = itertools.count()
    root = _build_group(data, default_grid, behavior_overrides, tile_ids, box_ids, "root")
    logger.debug("Built group tree with %d tiles and %d boxes", next(tile_ids), next(box_ids))
    return root


def _build_group(data, inherited_grid, overrides, tile_ids, box_ids, path) -> Group:
    grid = _grid(data.get("grid"), inherited_grid)
    structure_id = _structure_id(data.get("structureId"))
    group = Group(grid=grid, structure_id=structure_id)

    tiles = data.get("tiles") or []
    if not isinstance(tiles, (list, tuple)):
        raise TileTreeError(f"{path}.tiles must be a list")
    for i, tile_data in enumerate(tiles):
        if not isinstance(tile_data, Mapping):
            raise TileTreeError(f"{path}.tiles[{i}] must be a mapping")
        boxes = tile_data.get("boxes") or []
        if not boxes:
            continue
        group.tiles.append(
            _build_tile(tile_data, grid, structure_id, overrides, next(tile_ids), box_ids, f"{path}.tiles[{i}]")
        )

    children = data.get("children") or []
    if not isinstance(children, (list, tuple)):
        raise TileTreeError(f"{path}.children must be a list")
    for i, child in enumerate(children):
        if not isinstance(child, Mapping):
            raise TileTreeError(f"{path}.children[{i}] must be a mapping")
        group.children.append(_build_group(child, grid, overrides, tile_ids, box_ids, f"{path}.children[{i}]"))
    return group


def _build_tile(data, group_grid, structure_id, overrides, tile_id, box_ids, path) -> Tile:
    block_state = str(data.get("blockState") or DEFAULT_BLOCK_STATE)
    color = data.get("color", -1)
    if isinstance(color, bool) or not isinstance(color, int):
        color = -1
    block_id = canonical_block_id(block_state)
    behavior = infer_block_behavior(block_id, color, overrides)
    grid = _grid(data.get("grid"), group_grid)

    tile = Tile(
        id=tile_id,
        block_state=block_state,
        block_id=block_id,
        color=color,
        grid=grid,
        structure_id=structure_id,
        provides_solid_face=behavior.provides_solid_face,
        cull_over_edge=behavior.cull_over_edge,
        structure_no_collision=structure_id in NO_COLLISION_STRUCTURES,
    )
    for i, box_data in enumerate(data["boxes"]):
        if not isinstance(box_data, Mapping):
            raise TileTreeError(f"{path}.boxes[{i}] must be a mapping")
        tile.boxes.append(_build_box(box_data, next(box_ids), grid, f"{path}.boxes[{i}]"))
    return tile


def iter_groups(root: Group) -> Iterator[Group]:
    yield root
    for child in root.children:
        yield from iter_groups(child)


def flatten_tiles(root: Group) -> List[Tile]:
    """Tiles with at least one box, group tiles before child groups."""
    return [tile for group in iter_groups(root) for tile in group.tiles if tile.boxes]


def count_boxes(tiles: List[Tile]) -> int:
    return sum(len(tile.boxes) for tile in tiles)
