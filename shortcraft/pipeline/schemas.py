from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictStr, field_validator


class EditingMode(str, Enum):
    STATIC = "STATIC"
    DYNAMIC = "DYNAMIC"


class ProductionMode(str, Enum):
    IMAGE_ONLY = "IMAGE_ONLY"
    BALANCED = "BALANCED"
    PREMIUM = "PREMIUM"


class PlacementStrategy(str, Enum):
    SMART = "SMART"
    FIXED = "FIXED"


class AssetType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


VIDEO_TOOLS = ("GENERIC", "VEO", "RUNWAY")
ALLOWED_VIDEO_BUDGETS = (0, 2, 4)


class StoryboardScene(BaseModel):
    scene: int
    onScreenText: StrictStr
    voiceover: StrictStr
    visual: StrictStr

    @field_validator("onScreenText", "voiceover", "visual")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class ImagePromptItem(BaseModel):
    scene: int = Field(ge=1)
    imagePrompt: StrictStr
    character: Optional[str] = None
    intent: Optional[str] = None
    style: Optional[str] = None

    @field_validator("imagePrompt")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("imagePrompt must be non-empty")
        return v


class VideoPromptItem(BaseModel):
    sceneNumber: int = Field(ge=1)
    title: str
    variants: Dict[str, str]


class TimelineEntry(BaseModel):
    scene: int
    time: str = ""
    assetType: AssetType = AssetType.IMAGE
    sourceScenes: Optional[List[int]] = None
    clip: str = ""
    edit: str = ""
    onScreenText: str = ""
    voiceover: str = ""
    sound: str = ""
    notes: str = ""

    def to_content(self) -> Dict[str, Any]:
        d = self.model_dump(mode="json")
        if d.get("sourceScenes") is None:
            d.pop("sourceScenes", None)
        return d


class StageResult(BaseModel):
    ok: bool = True
    skipped: bool = False
    stage: str
    language_variant: str
    version: Optional[int] = None
    content: Optional[Any] = None
    message: Optional[str] = None
