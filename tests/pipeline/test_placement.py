import math

import pytest

from shortcraft.pipeline.placement import (
    default_production_mode,
    enforce_placement,
    select_video_indexes,
    validate_budget,
)
from shortcraft.pipeline.schemas import ProductionMode


@pytest.mark.parametrize("length", range(1, 13))
@pytest.mark.parametrize("budget", [0, 2, 4])
def test_selection_properties(length, budget):
    picks = select_video_indexes(length, ProductionMode.PREMIUM, budget)
    assert len(picks) <= budget
    assert picks == sorted(set(picks))
    assert all(0 <= i < length for i in picks)
    if budget:
        assert picks[0] == 0
    if budget >= 2 and length > 1:
        assert length - 1 in picks


def test_known_selections():
    assert select_video_indexes(8, "BALANCED", 2) == [0, 7]
    assert select_video_indexes(6, "PREMIUM", 4) == [0, 1, 3, 5]
    assert select_video_indexes(9, "PREMIUM", 4) == [0, math.floor(9 * 0.33), math.floor(9 * 0.66), 8]
    assert select_video_indexes(1, "PREMIUM", 4) == [0]
    assert select_video_indexes(3, "PREMIUM", 4) == [0, 1, 2]


def test_image_only_or_zero_budget_selects_nothing():
    assert select_video_indexes(8, ProductionMode.IMAGE_ONLY, 4) == []
    assert select_video_indexes(8, ProductionMode.PREMIUM, 0) == []
    assert select_video_indexes(0, ProductionMode.PREMIUM, 4) == []


def test_invalid_budget_rejected():
    with pytest.raises(ValueError):
        validate_budget(3)
    with pytest.raises(ValueError):
        select_video_indexes(5, "BALANCED", 1)


def test_enforce_overrides_model_asset_types():
    timeline = [{"scene": i + 1, "assetType": "VIDEO"} for i in range(6)]
    result = enforce_placement(timeline, "BALANCED", 2, 3.0)
    assert [e["assetType"] for e in result.timeline] == ["VIDEO", "IMAGE", "IMAGE", "IMAGE", "IMAGE", "VIDEO"]
    assert result.selected_indexes == [0, 5]
    assert result.mix == {"image": 4, "video": 2}
    assert result.estimated_cost == 6.0
    # Input entries are left untouched.
    assert all(e["assetType"] == "VIDEO" for e in timeline)


def test_enforce_image_only():
    result = enforce_placement([{"scene": 1}, {"scene": 2}], "IMAGE_ONLY", 2, 3.0)
    assert [e["assetType"] for e in result.timeline] == ["IMAGE", "IMAGE"]
    assert result.estimated_cost == 0.0


def test_default_production_mode():
    assert default_production_mode(0) == ProductionMode.IMAGE_ONLY
    assert default_production_mode(2) == ProductionMode.BALANCED
    assert default_production_mode(4) == ProductionMode.PREMIUM
