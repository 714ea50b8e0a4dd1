"""
Turn raw generation-service text into the structure a stage expects.

Extraction order, first success wins:
  1. strip one leading/trailing code fence (```json ... ```)
  2. parse the whole text
  3. parse the slice between the first opening bracket and the last closing one
  4. same, with trailing commas before } or ] removed
Anything else raises MalformedGenerationOutput; callers never get a default.

Each stage then runs a small decode step with an explicit list of accepted
shapes (bare array, {"scenes": [...]}, {"prompts": [...]}, ...).
"""
from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ValidationError

from shortcraft.errors import MalformedGenerationOutput
from shortcraft.pipeline.schemas import (
    ImagePromptItem,
    StoryboardScene,
    VideoPromptItem,
)

ARRAY = "array"
OBJECT = "object"
ANY = "any"

MAX_HOOKS = 10
MAX_STORYBOARD_SCENES = 10
MIN_SCENE_NUMBER = 1
MAX_SCENE_NUMBER = 20

_LEADING_FENCE = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?[ \t]*```\s*$")

_BRACKETS = {ARRAY: ("[", "]"), OBJECT: ("{", "}")}


def strip_code_fences(text: str) -> str:
    text = (text or "").strip()
    text = _LEADING_FENCE.sub("", text, count=1)
    text = _TRAILING_FENCE.sub("", text, count=1)
    return text.strip()


def remove_trailing_commas(text: str) -> str:
    """Drop commas directly before } or ]; string literals are copied untouched."""
    out: List[str] = []
    in_string = False
    escaped = False
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                i = j
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def _matches(value: Any, container: str) -> bool:
    if container == ARRAY:
        return isinstance(value, list)
    if container == OBJECT:
        return isinstance(value, dict)
    return isinstance(value, (list, dict))


def _try_parse(text: str, container: str) -> tuple[bool, Any]:
    try:
        value = json.loads(text)
    except ValueError:
        return False, None
    return _matches(value, container), value


def _bracket_slice(text: str, container: str) -> Optional[str]:
    if container == ANY:
        firsts = [(text.find(o), kind) for kind, (o, _) in _BRACKETS.items() if text.find(o) != -1]
        if not firsts:
            return None
        container = min(firsts)[1]
    opener, closer = _BRACKETS[container]
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json(raw: str, container: str = ANY) -> Any:
    """
    Extract a JSON array/object from model text or raise MalformedGenerationOutput.
    """
    if container not in (ARRAY, OBJECT, ANY):
        raise ValueError(f"Unknown container: {container!r}")

    unfenced = strip_code_fences(raw)
    if not unfenced:
        raise MalformedGenerationOutput("Model returned empty output.", raw=raw)

    ok, value = _try_parse(unfenced, container)
    if ok:
        return value

    sliced = _bracket_slice(unfenced, container)
    if sliced is not None and sliced != unfenced:
        ok, value = _try_parse(sliced, container)
        if ok:
            return value

    candidate = sliced if sliced is not None else unfenced
    ok, value = _try_parse(remove_trailing_commas(candidate), container)
    if ok:
        return value

    raise MalformedGenerationOutput(f"Model did not return a valid JSON {container}.", raw=raw)


def ensure_string(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, ensure_ascii=False)
    return str(value)


def _unwrap_list(data: Any, keys: Sequence[str]) -> Optional[List[Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            if isinstance(data.get(key), list):
                return data[key]
    return None


def _validate_items(items: List[Any], model: type[BaseModel]) -> List[BaseModel]:
    out: List[BaseModel] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            out.append(model.model_validate(item))
        except ValidationError:
            continue
    return out


# --- per-stage decoders ---
def decode_hooks(data: Any, raw: Optional[str] = None) -> List[str]:
    items = _unwrap_list(data, ("hooks",))
    if items is None or not all(isinstance(x, str) for x in items):
        raise MalformedGenerationOutput("Expected a JSON array of hook strings.", raw=raw)
    hooks = [x.strip() for x in items if x and x.strip()][:MAX_HOOKS]
    if not hooks:
        raise MalformedGenerationOutput("Model returned no hooks.", raw=raw)
    return hooks


def decode_storyboard(data: Any, raw: Optional[str] = None) -> List[Dict[str, Any]]:
    items = _unwrap_list(data, ("scenes",))
    if items is None:
        raise MalformedGenerationOutput("Expected a JSON array of storyboard scenes.", raw=raw)
    scenes = [
        s.model_dump()
        for s in _validate_items(items, StoryboardScene)
        if MIN_SCENE_NUMBER <= s.scene <= MAX_SCENE_NUMBER
    ][:MAX_STORYBOARD_SCENES]
    if not scenes:
        raise MalformedGenerationOutput("Invalid storyboard format.", raw=raw)
    return scenes


def decode_image_prompts(data: Any, raw: Optional[str] = None) -> List[Dict[str, Any]]:
    items = _unwrap_list(data, ("prompts",))
    if items is None:
        raise MalformedGenerationOutput("Expected a JSON array of image prompts.", raw=raw)
    prompts = [p.model_dump(exclude_none=True) for p in _validate_items(items, ImagePromptItem)]
    if not prompts:
        raise MalformedGenerationOutput("Model returned no usable image prompts.", raw=raw)
    return prompts


def normalize_video_prompt_item(p: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(p, dict):
        return None
    try:
        scene_number = int(p.get("sceneNumber") or 0)
    except (TypeError, ValueError):
        return None
    if scene_number < 1:
        return None

    title = p.get("title")
    title = title.strip() if isinstance(title, str) and title.strip() else f"Scene {scene_number}"

    variants_raw = p.get("variants") or p.get("outputs") or {}
    if not isinstance(variants_raw, dict):
        variants_raw = {}
    generic = ensure_string(variants_raw.get("GENERIC") or p.get("GENERIC"))
    veo = ensure_string(variants_raw.get("VEO") or p.get("VEO"))
    runway = ensure_string(variants_raw.get("RUNWAY") or p.get("RUNWAY"))
    # Older replies carry a single fullPrompt; treat it as the generic variant.
    legacy = ensure_string(p.get("fullPrompt"))

    variants = {
        "GENERIC": generic or legacy,
        "VEO": veo or generic or legacy,
        "RUNWAY": runway or generic or legacy,
    }
    if not variants["GENERIC"]:
        return None
    item = VideoPromptItem(sceneNumber=scene_number, title=title, variants=variants)
    return item.model_dump()


def decode_video_prompts(data: Any, raw: Optional[str] = None) -> List[Dict[str, Any]]:
    items = _unwrap_list(data, ("prompts", "scenes"))
    if items is None:
        raise MalformedGenerationOutput("Expected a JSON array of video prompts.", raw=raw)
    prompts = [p for p in (normalize_video_prompt_item(x) for x in items) if p]
    if not prompts:
        raise MalformedGenerationOutput("Model returned empty prompts.", raw=raw)
    return prompts


def decode_editing_script(data: Any, raw: Optional[str] = None) -> Dict[str, Any]:
    if isinstance(data, list):
        data = {"timeline": data}
    if not isinstance(data, dict) or not isinstance(data.get("timeline"), list):
        raise MalformedGenerationOutput("Expected an editing script object with a timeline array.", raw=raw)
    timeline = [e for e in data["timeline"] if isinstance(e, dict)]
    if not timeline:
        raise MalformedGenerationOutput("Editing script timeline is empty.", raw=raw)
    out = dict(data)
    out["timeline"] = timeline
    return out


def decode_same_shape(data: Any, like: Any, raw: Optional[str] = None) -> Any:
    """
    Free-form content (scripts) must come back with the source's structure:
    the same keys for an object, the same length and item types for an array.
    """
    if isinstance(like, dict) and isinstance(data, dict) and set(data) == set(like):
        return data
    if (
        isinstance(like, list)
        and isinstance(data, list)
        and len(data) == len(like)
        and all(type(a) is type(b) for a, b in zip(data, like))
    ):
        return data
    raise MalformedGenerationOutput("Translation did not keep the input structure.", raw=raw)


def decode_translation(stage_kind: str, data: Any, source: Any, raw: Optional[str] = None) -> Any:
    """
    Validate a translated reply with the decoder of the stage it will be stored as.
    Storyboards must also keep the source's scene numbers.
    """
    if stage_kind == "hooks":
        return decode_hooks(data, raw=raw)
    if stage_kind == "storyboard":
        scenes = decode_storyboard(data, raw=raw)
        expected = [s["scene"] for s in storyboard_scenes(source)]
        if expected and [s["scene"] for s in scenes] != expected:
            raise MalformedGenerationOutput("Translated storyboard does not match the source scenes.", raw=raw)
        return scenes
    return decode_same_shape(data, source, raw=raw)


# --- lenient readers for stored content ---
def _lenient(decoder: Callable[[Any], Any], content: Any) -> Any:
    try:
        return decoder(content)
    except MalformedGenerationOutput:
        return []


def storyboard_scenes(content: Any) -> List[Dict[str, Any]]:
    return _lenient(decode_storyboard, content)


def video_prompt_items(content: Any) -> List[Dict[str, Any]]:
    return _lenient(decode_video_prompts, content)


def hook_list(content: Any) -> List[str]:
    return _lenient(decode_hooks, content)


def parse_stage_output(raw: str, decoder: Callable[..., Any], container: str = ANY) -> Any:
    return decoder(extract_json(raw, container), raw=raw)

