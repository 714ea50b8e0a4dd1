from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Union

from shortcraft.pipeline.schemas import (
    ALLOWED_VIDEO_BUDGETS,
    AssetType,
    ProductionMode,
)

MID_ANCHORS = (0.33, 0.66)


@dataclass
class PlacementResult:
    timeline: List[Dict[str, Any]]
    selected_indexes: List[int] = field(default_factory=list)
    video_count: int = 0
    image_count: int = 0
    estimated_cost: float = 0.0

    @property
    def mix(self) -> Dict[str, int]:
        return {"image": self.image_count, "video": self.video_count}


def validate_budget(max_video_scenes: int) -> int:
    budget = int(max_video_scenes)
    if budget not in ALLOWED_VIDEO_BUDGETS:
        raise ValueError(f"max_video_scenes must be one of {ALLOWED_VIDEO_BUDGETS}, got {max_video_scenes}")
    return budget


def default_production_mode(max_video_scenes: int) -> ProductionMode:
    if max_video_scenes == 0:
        return ProductionMode.IMAGE_ONLY
    if max_video_scenes <= 2:
        return ProductionMode.BALANCED
    return ProductionMode.PREMIUM


def select_video_indexes(
    length: int,
    production_mode: Union[ProductionMode, str],
    max_video_scenes: int,
) -> List[int]:
    """
    Pick the timeline indexes that get video treatment.

    Hook (0) first, then payoff (L-1), then mid-timeline anchors, capped at the budget.
    """
    budget = validate_budget(max_video_scenes)
    mode = ProductionMode(production_mode)
    if length <= 0 or budget == 0 or mode == ProductionMode.IMAGE_ONLY:
        return []

    picks: List[int] = [0]
    if budget >= 2:
        picks.append(length - 1)
    if budget >= 4:
        for anchor in MID_ANCHORS:
            idx = math.floor(length * anchor)
            if idx not in picks:
                picks.append(idx)

    return sorted(set(picks))[:budget]


def enforce_placement(
    timeline: Sequence[Dict[str, Any]],
    production_mode: Union[ProductionMode, str],
    max_video_scenes: int,
    video_scene_cost: float,
) -> PlacementResult:
    """
    Force assetType on every timeline entry: VIDEO for the selected indexes,
    IMAGE for all others, regardless of what the model assigned.
    """
    selected = select_video_indexes(len(timeline), production_mode, max_video_scenes)
    chosen = set(selected)

    out: List[Dict[str, Any]] = []
    for idx, entry in enumerate(timeline):
        e = dict(entry)
        e["assetType"] = AssetType.VIDEO.value if idx in chosen else AssetType.IMAGE.value
        out.append(e)

    video_count = len(chosen)
    return PlacementResult(
        timeline=out,
        selected_indexes=selected,
        video_count=video_count,
        image_count=len(out) - video_count,
        estimated_cost=round(video_count * float(video_scene_cost), 2),
    )
