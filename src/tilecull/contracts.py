"""Contracts for the tile face culling pipeline.

Groups own tiles, tiles own boxes, boxes produce face candidates, and
candidates that survive occlusion become ``VisibleFace`` records for the
downstream mesh stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

Vec3 = Tuple[float, float, float]
Polygon3 = List[Vec3]


class Facing(Enum):
    """Axis-aligned outward face directions, in reference ordinal order."""
    DOWN = "DOWN"
    UP = "UP"
    NORTH = "NORTH"
    SOUTH = "SOUTH"
    WEST = "WEST"
    EAST = "EAST"

    @property
    def ordinal(self) -> int:
        return _FACING_ORDINAL[self]

    @property
    def axis_index(self) -> int:
        """0 for X, 1 for Y, 2 for Z."""
        return _FACING_AXIS[self]

    @property
    def axis_name(self) -> str:
        return "xyz"[self.axis_index]

    @property
    def positive(self) -> bool:
        return self in (Facing.EAST, Facing.UP, Facing.SOUTH)

    @property
    def sign(self) -> int:
        return 1 if self.positive else -1

    @property
    def normal(self) -> Vec3:
        n = [0.0, 0.0, 0.0]
        n[self.axis_index] = float(self.sign)
        return (n[0], n[1], n[2])

    @property
    def opposite(self) -> "Facing":
        return _FACING_OPPOSITE[self]

    @property
    def plane_axes(self) -> Tuple[int, int]:
        """In-plane (one, two) axis indices."""
        axis = self.axis_index
        if axis == 0:
            return (1, 2)
        if axis == 1:
            return (0, 2)
        return (0, 1)


_FACING_ORDINAL = {
    Facing.DOWN: 0, Facing.UP: 1, Facing.NORTH: 2,
    Facing.SOUTH: 3, Facing.WEST: 4, Facing.EAST: 5,
}
_FACING_AXIS = {
    Facing.DOWN: 1, Facing.UP: 1, Facing.NORTH: 2,
    Facing.SOUTH: 2, Facing.WEST: 0, Facing.EAST: 0,
}
_FACING_OPPOSITE = {
    Facing.DOWN: Facing.UP, Facing.UP: Facing.DOWN,
    Facing.NORTH: Facing.SOUTH, Facing.SOUTH: Facing.NORTH,
    Facing.WEST: Facing.EAST, Facing.EAST: Facing.WEST,
}

FACING_ORDER: Tuple[Facing, ...] = (
    Facing.DOWN, Facing.UP, Facing.NORTH, Facing.SOUTH, Facing.WEST, Facing.EAST,
)


class BoxKind(Enum):
    AABB = "aabb"
    TRANSFORMABLE = "transformable"


class FaceType(Enum):
    AXIS = "axis"
    TILTED = "tilted"


class FaceStateKind(Enum):
    """Classification of a face candidate."""
    UNLOADED = "UNLOADED"
    INSIDE_UNCOVERED = "INSIDE_UNCOVERED"
    OUTSIDE_UNCOVERED = "OUTSIDE_UNCOVERED"
    INSIDE_PARTIALLY_COVERED = "INSIDE_PARTIALLY_COVERED"
    OUTSIDE_PARTIALLY_COVERED = "OUTSIDE_PARTIALLY_COVERED"
    INSIDE_COVERED = "INSIDE_COVERED"
    OUTSIDE_COVERED = "OUTSIDE_COVERED"

    @property
    def renderable(self) -> bool:
        return self not in (
            FaceStateKind.UNLOADED,
            FaceStateKind.INSIDE_COVERED,
            FaceStateKind.OUTSIDE_COVERED,
        )


@dataclass
class Box:
    """A cuboid in grid units, optionally with corner displacements.

    ``transform_data`` is the raw payload: indicator word followed by packed
    16-bit deltas. The face cache of a transformable box is filled lazily by
    ``tilecull.transform_cache.get_face_cache`` and kept for the box's life.
    """
    id: int
    kind: BoxKind
    grid: int
    min_raw: Tuple[int, int, int]
    max_raw: Tuple[int, int, int]
    transform_data: Optional[Tuple[int, ...]] = None
    face_cache: Optional[Any] = field(default=None, repr=False, compare=False)
    min_world: Vec3 = field(init=False, repr=False, compare=False)
    max_world: Vec3 = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        inv = 1.0 / self.grid
        self.min_world = (self.min_raw[0] * inv, self.min_raw[1] * inv, self.min_raw[2] * inv)
        self.max_world = (self.max_raw[0] * inv, self.max_raw[1] * inv, self.max_raw[2] * inv)

    @property
    def is_transformable(self) -> bool:
        return self.kind is BoxKind.TRANSFORMABLE and self.transform_data is not None


@dataclass
class Tile:
    """A block-state identity holding one or more boxes."""
    id: int
    block_state: str
    block_id: str
    color: int = -1
    grid: int = 16
    structure_id: Optional[str] = None
    provides_solid_face: bool = True
    cull_over_edge: bool = True
    structure_no_collision: bool = False
    boxes: List[Box] = field(default_factory=list)


@dataclass
class Group:
    """Node of the construct tree."""
    grid: int
    structure_id: Optional[str] = None
    tiles: List[Tile] = field(default_factory=list)
    children: List["Group"] = field(default_factory=list)


@dataclass
class FaceCandidate:
    """One (tile, box, facing) face with its axis and tilted polygons."""
    tile: Tile
    box: Box
    facing: Facing
    origin: float
    origin_raw: int
    min_one: float
    max_one: float
    min_two: float
    max_two: float
    min_one_raw: int
    max_one_raw: int
    min_two_raw: int
    max_two_raw: int
    axis_polys: List[Polygon3] = field(default_factory=list)
    tilted_polys: List[Polygon3] = field(default_factory=list)

    @property
    def axis_index(self) -> int:
        return self.facing.axis_index

    @property
    def one_index(self) -> int:
        return self.facing.plane_axes[0]

    @property
    def two_index(self) -> int:
        return self.facing.plane_axes[1]

    @property
    def sign(self) -> int:
        return self.facing.sign


@dataclass(frozen=True)
class FaceState:
    outside: bool
    state: FaceStateKind
    covered_fully: bool
    partially: bool
    renderable: bool
    reason: str
    needs_axis_cutting: bool = False


@dataclass(frozen=True)
class VisibleFace:
    """Final emitted polygon handed to the mesh stage."""
    block_state: str
    block_id: str
    color: int
    provides_solid_face: bool
    source_kind: BoxKind
    facing: Facing
    face_type: FaceType
    outside: bool
    vertices: Tuple[Vec3, ...]


@dataclass(frozen=True)
class CullConfig:
    """Options accepted by the culling entry point."""

    evaluate_internal_occlusion: bool = True
    geometry_mode: str = "client"
    optimize: bool = False
    # None resolves to the built-in default profile
    runtime_profile: Optional[Any] = None
    behavior_overrides: Optional[Dict[str, Dict[str, bool]]] = None


@dataclass
class CullResult:
    """In-memory result of a culling run."""

    faces: List[VisibleFace]
    tile_count: int
    box_count: int
    stats: Dict[str, Any] = field(default_factory=dict)
