from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193

MIN_SCENES = 6
MAX_SCENES = 9
MIN_DURATION = 21.0
MAX_DURATION = 25.0


def fnv1a_32(text: str) -> int:
    h = FNV_OFFSET_BASIS
    for b in text.encode("utf-8"):
        h ^= b
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def hash_to_unit(seed: str, tag: str) -> float:
    """Map (seed, tag) to a reproducible float in [0, 1)."""
    return fnv1a_32(f"{seed}{tag}") / 2**32


def draw_int(seed: str, tag: str, lo: int, hi: int) -> int:
    if hi <= lo:
        return lo
    return lo + int(hash_to_unit(seed, tag) * (hi - lo + 1))


def round_half(x: float) -> float:
    return math.floor(x * 2 + 0.5) / 2


def build_seed(
    project_id: str,
    version: int,
    language_variant: str,
    mode: str,
    production_mode: str,
    max_video_scenes: int,
) -> str:
    return "|".join(
        [str(project_id), f"v{int(version)}", str(language_variant), str(mode), str(production_mode), str(int(max_video_scenes))]
    )


@dataclass(frozen=True)
class DynamicPlan:
    scene_count: int
    target_duration: float
    grouping_plan: List[List[int]] = field(default_factory=list)

    def to_meta(self) -> Dict[str, Any]:
        return {
            "sceneCount": self.scene_count,
            "targetDuration": self.target_duration,
            "groupingPlan": [list(g) for g in self.grouping_plan],
        }


def plan_grouping(seed: str, storyboard_len: int, scene_count: int) -> List[List[int]]:
    groups: List[List[int]] = [[i] for i in range(1, storyboard_len + 1)]
    merges = storyboard_len - scene_count
    if merges <= 0:
        return groups

    positions = [draw_int(seed, f"|merge|{k}", 0, storyboard_len - 2) for k in range(merges)]
    # Descending order keeps the indices of earlier groups stable while merging.
    for pos in sorted(positions, reverse=True):
        pos = min(pos, len(groups) - 2)
        groups[pos : pos + 2] = [groups[pos] + groups[pos + 1]]
    return groups


def plan_dynamic(seed: str, storyboard_len: int) -> DynamicPlan:
    """
    Decide scene count, target duration and scene grouping from a seed.

    Same seed and length always give the same plan.
    """
    if storyboard_len < 1:
        raise ValueError("storyboard_len must be >= 1")

    lo = min(MIN_SCENES, storyboard_len)
    hi = min(MAX_SCENES, storyboard_len)
    scene_count = draw_int(seed, "|scenes", lo, hi)

    duration = MIN_DURATION + hash_to_unit(seed, "|dur") * (MAX_DURATION - MIN_DURATION)
    target_duration = min(MAX_DURATION, max(MIN_DURATION, round_half(duration)))

    return DynamicPlan(
        scene_count=scene_count,
        target_duration=target_duration,
        grouping_plan=plan_grouping(seed, storyboard_len, scene_count),
    )


def static_grouping(storyboard_len: int) -> List[List[int]]:
    return [[i] for i in range(1, storyboard_len + 1)]


def format_time_range(start: float, end: float) -> str:
    return f"{start:.1f}–{end:.1f}s"


def split_duration(total: float, count: int) -> List[str]:
    """Even time slots over `total` seconds, e.g. ["0.0–4.0s", "4.0–8.0s", ...]."""
    if count < 1:
        return []
    step = total / count
    slots = []
    for i in range(count):
        start = round(i * step, 1)
        end = round(total if i == count - 1 else (i + 1) * step, 1)
        slots.append(format_time_range(start, end))
    return slots
