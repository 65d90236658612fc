"""Runtime face behaviour profiles.

A profile captures how a given game/mod version decides face states: whether
outside faces see tiles across the block boundary or assume air, and whether
non-solid neighbours can be cut against. Profiles live in a small table
keyed by id and are selected by version-prefix matchers.
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class OutsideNeighborPolicy(Enum):
    AIR = "air"
    TILES = "tiles"


@dataclass(frozen=True)
class RuntimeMatchers:
    minecraft_version_prefix: Optional[str] = None
    little_tiles_version_prefix: Optional[str] = None

    def matches(self, runtime: Mapping[str, Any]) -> bool:
        if self.minecraft_version_prefix:
            if not str(runtime.get("minecraftVersion") or "").startswith(self.minecraft_version_prefix):
                return False
        if self.little_tiles_version_prefix:
            if not str(runtime.get("littleTilesVersion") or "").startswith(self.little_tiles_version_prefix):
                return False
        return True


@dataclass(frozen=True)
class FaceStatePolicy:
    evaluation_mode: str = "little_server_face"
    supports_cutting: bool = False
    outside_neighbor_policy: OutsideNeighborPolicy = OutsideNeighborPolicy.AIR
    occlude_outside_faces_with_tiles: bool = False


@dataclass(frozen=True)
class RuntimeFaceBehaviorProfile:
    profile_id: str
    runtime_matchers: RuntimeMatchers = RuntimeMatchers()
    face_states: FaceStatePolicy = FaceStatePolicy()


DEFAULT_PROFILE_ID = "default"

DEFAULT_PROFILE = RuntimeFaceBehaviorProfile(profile_id=DEFAULT_PROFILE_ID)

MC_1_21_LT_1_6_PROFILE = RuntimeFaceBehaviorProfile(
    profile_id="mc1.21.1-lt1.6.x",
    runtime_matchers=RuntimeMatchers(
        minecraft_version_prefix="1.21.",
        little_tiles_version_prefix="1.6.",
    ),
)

PROFILES: Dict[str, RuntimeFaceBehaviorProfile] = {
    DEFAULT_PROFILE.profile_id: DEFAULT_PROFILE,
    MC_1_21_LT_1_6_PROFILE.profile_id: MC_1_21_LT_1_6_PROFILE,
}

_POLICY_FIELDS = {f.name for f in fields(FaceStatePolicy)}


def _resolve_profile_id(runtime: Optional[Mapping[str, Any]], profile_id: Optional[str]) -> str:
    if isinstance(profile_id, str) and profile_id.strip():
        return profile_id.strip()
    if not isinstance(runtime, Mapping):
        return DEFAULT_PROFILE_ID
    for pid, profile in PROFILES.items():
        if pid == DEFAULT_PROFILE_ID:
            continue
        if profile.runtime_matchers.matches(runtime):
            return pid
    return DEFAULT_PROFILE_ID


def resolve_runtime_face_behavior_profile(
    runtime: Optional[Mapping[str, Any]] = None,
    profile_id: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> RuntimeFaceBehaviorProfile:
    """Pick a profile by explicit id or runtime versions, then apply overrides.

    *runtime* uses the keys ``minecraftVersion`` and ``littleTilesVersion``.
    *overrides* maps ``FaceStatePolicy`` field names to values; unknown keys
    are ignored. An unknown explicit id keeps its name but falls back to the
    default behaviour.
    """
    resolved_id = _resolve_profile_id(runtime, profile_id)
    base = PROFILES.get(resolved_id, DEFAULT_PROFILE)

    policy = base.face_states
    if overrides:
        changes = {k: v for k, v in overrides.items() if k in _POLICY_FIELDS}
        if "outside_neighbor_policy" in changes:
            changes["outside_neighbor_policy"] = OutsideNeighborPolicy(changes["outside_neighbor_policy"])
        policy = replace(policy, **changes)

    return replace(base, profile_id=resolved_id, face_states=policy)


def should_occlude_outside_faces(profile: Optional[RuntimeFaceBehaviorProfile]) -> bool:
    if profile is None:
        return False
    if profile.face_states.outside_neighbor_policy is OutsideNeighborPolicy.AIR:
        return False
    return profile.face_states.occlude_outside_faces_with_tiles


def supports_cutting(profile: Optional[RuntimeFaceBehaviorProfile]) -> bool:
    return profile is not None and profile.face_states.supports_cutting
