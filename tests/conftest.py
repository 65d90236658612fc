"""
Shared test fixtures for tile face culling tests.
"""
import itertools
import sys
from pathlib import Path

import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tilecull.contracts import Box, BoxKind, Tile
from tilecull.normalization import canonical_block_id, infer_block_behavior


def packed_word(high: int, low: int) -> int:
    """Pack two signed 16-bit deltas into one payload word."""
    return ((high & 0xFFFF) << 16) | (low & 0xFFFF)


# UP face of a full block with both west top corners lowered by 8 units:
# a ramp rising from y=8 on the west side to y=16 on the east side.
RAMP_TRANSFORM = ((1 << 13) | (1 << 16), packed_word(-8, -8))


@pytest.fixture
def make_box():
    """Factory for boxes with unique ids."""
    ids = itertools.count(1000)

    def _make(lo=(0, 0, 0), hi=(16, 16, 16), grid=16, transform=None):
        kind = BoxKind.AABB if transform is None else BoxKind.TRANSFORMABLE
        return Box(
            id=next(ids),
            kind=kind,
            grid=grid,
            min_raw=tuple(lo),
            max_raw=tuple(hi),
            transform_data=None if transform is None else tuple(transform),
        )

    return _make


@pytest.fixture
def make_tile(make_box):
    """Factory for tiles; each box spec is ``(lo, hi)`` or ``(lo, hi, transform)``."""
    ids = itertools.count()

    def _make(*box_specs, block_state="minecraft:stone", color=-1, grid=16, structure_id=None):
        block_id = canonical_block_id(block_state)
        behavior = infer_block_behavior(block_id, color)
        tile = Tile(
            id=next(ids),
            block_state=block_state,
            block_id=block_id,
            color=color,
            grid=grid,
            structure_id=structure_id,
            provides_solid_face=behavior.provides_solid_face,
            cull_over_edge=behavior.cull_over_edge,
            structure_no_collision=structure_id == "noclip",
        )
        for spec in box_specs or (((0, 0, 0), (grid, grid, grid)),):
            lo, hi = spec[0], spec[1]
            transform = spec[2] if len(spec) > 2 else None
            tile.boxes.append(make_box(lo, hi, grid=grid, transform=transform))
        return tile

    return _make
