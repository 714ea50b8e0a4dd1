from enum import Enum
from typing import Any


class StageKind(str, Enum):
    HOOKS = "hooks"
    STORYBOARD = "storyboard"
    IMAGE_PROMPTS = "image_prompts"
    VIDEO_PROMPTS = "video_prompts"
    EDITING_SCRIPT = "editing_script"
    SELECTED_HOOK = "selected_hook"
    SCRIPT = "script"


STAGE_KINDS = frozenset(k.value for k in StageKind)


def stage_value(stage_kind: Any) -> str:
    value = stage_kind.value if isinstance(stage_kind, StageKind) else str(stage_kind)
    if value not in STAGE_KINDS:
        raise ValueError(f"Unknown stage kind: {stage_kind!r}")
    return value

