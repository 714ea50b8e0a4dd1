"""
Re-render a labelled video prompt for a specific video tool.

Prompts come back either as the multi-line labelled block
(SCENE: / CAMERA: / ON-SCREEN TEXT: / ...) or as one paragraph with the
same labels inline; sections are sliced between consecutive labels.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

FORMATS = ("RAW", "VEO_3_1", "RUNWAY_GEN3", "PIKA", "HEYGEN", "CAPCUT", "JSON_MIN")

_LABEL = re.compile(
    r"(?<![\w-])(HOOK LINE|CUTS|SCENE|CAMERA|LIGHTING|ACTION|ON-SCREEN TEXT|"
    r"VOICE-OVER(?:\s*\(EN\))?|SOUND DESIGN|NEGATIVE(?: PROMPT)?|SETTINGS)\s*:",
    re.IGNORECASE,
)

_SECTION_KEYS = {
    "HOOK LINE": "hook",
    "CUTS": "cuts",
    "SCENE": "scene",
    "CAMERA": "camera",
    "LIGHTING": "lighting",
    "ACTION": "action",
    "ON-SCREEN TEXT": "on_screen",
    "VOICE-OVER": "voice",
    "SOUND DESIGN": "sound",
    "NEGATIVE": "negative",
    "SETTINGS": "settings",
}

DEFAULT_FORMAT_LINE = "Format: 9:16"
DEFAULT_DURATION_LINE = "Duration: 6-8 seconds"


def _key_for(label: str) -> str:
    label = re.sub(r"\s+", " ", label.upper())
    label = re.sub(r"\s*\(EN\)$", "", label)
    if label.startswith("NEGATIVE"):
        label = "NEGATIVE"
    return _SECTION_KEYS[label]


def _first(text: str, pattern: str) -> str:
    m = re.search(pattern, text, re.IGNORECASE)
    return m.group(1).strip() if m else ""


def split_sections(prompt: str) -> Dict[str, str]:
    text = (prompt or "").strip()
    sections = {key: "" for key in _SECTION_KEYS.values()}

    matches = list(_LABEL.finditer(text))
    for i, m in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        key = _key_for(m.group(1))
        if not sections[key]:
            sections[key] = text[m.end() : end].strip()

    settings = sections["settings"]
    sections["format"] = _first(settings, r"(Format:\s*[^,.\n]+)") or DEFAULT_FORMAT_LINE
    sections["duration"] = (
        _first(settings, r"(Duration:\s*[^,.\n]+)")
        or _first(text, r"(Duration:\s*\d+\s*seconds?)")
        or DEFAULT_DURATION_LINE
    )
    return sections


def _title_line(scene_number: Optional[int], title: Optional[str]) -> str:
    if scene_number:
        return f"Scene {scene_number} - {title}" if title else f"Scene {scene_number}"
    return title or ""


def _join(lines: List[str]) -> str:
    return "\n".join(line for line in lines if line)


def _bare_duration(duration: str) -> str:
    return re.sub(r"^Duration:\s*", "", duration, flags=re.IGNORECASE)


def format_for_tool(
    base_prompt: str,
    fmt: str,
    scene_number: Optional[int] = None,
    title: Optional[str] = None,
    tool_variant: Optional[str] = None,
) -> str:
    p = (base_prompt or "").strip()
    fmt = (fmt or "RAW").upper()
    if fmt == "RAW":
        return p

    s = split_sections(p)
    heading = _title_line(scene_number, title)
    heading = f"# {heading}" if heading else ""
    duration = s["duration"]

    if fmt == "VEO_3_1":
        return _join(
            [
                heading,
                "TOOL: Veo 3.1",
                "ASPECT: 9:16",
                f"DURATION: {_bare_duration(duration)}",
                f"SCENE: {s['scene'] or '(keep original scene description)'}",
                f"CAMERA: {s['camera'] or '(keep original camera direction)'}",
                f"ON-SCREEN TEXT: {s['on_screen'] or '(optional)'}",
                f"VOICE-OVER (EN): {s['voice'] or '(optional)'}",
                f"SOUND DESIGN: {s['sound'] or '(optional)'}",
                f"NEGATIVE: {s['negative'] or '(none)'}",
            ]
        )

    if fmt == "RUNWAY_GEN3":
        prompt = s["scene"] or "(scene)"
        if s["camera"]:
            prompt += f". Camera: {s['camera']}"
        if s["on_screen"]:
            prompt += f". On-screen text: {s['on_screen']}"
        return _join(
            [
                heading,
                "TOOL: Runway Gen-3",
                "FORMAT: 9:16",
                duration,
                f"PROMPT: {prompt}",
                f"AUDIO: {s['sound'] or 'Keep clean, minimal background.'}",
                f"VO: {s['voice'] or 'None'}",
                f"NEGATIVE PROMPT: {s['negative'] or 'low quality, artifacts, distorted faces, extra fingers, text glitches'}",
                "NOTES: Smooth motion, avoid jitter, avoid warping, keep face natural if present.",
            ]
        )

    if fmt == "PIKA":
        prompt = s["scene"] or "(scene)"
        if s["camera"]:
            prompt += f" | Camera: {s['camera']}"
        return _join(
            [
                heading,
                "TOOL: Pika",
                "ASPECT: 9:16",
                duration,
                f"PROMPT: {prompt}",
                f"TEXT (optional): {s['on_screen']}" if s["on_screen"] else "",
                f"VO (EN): {s['voice']}" if s["voice"] else "",
                f"SFX/MUSIC: {s['sound']}" if s["sound"] else "",
                f"NEGATIVE: {s['negative'] or 'blurry, low quality, warped faces, extra fingers, unreadable text'}",
            ]
        )

    if fmt == "HEYGEN":
        visual = s["scene"] or "(scene notes)"
        if s["camera"]:
            visual += f" | Camera: {s['camera']}"
        return _join(
            [
                heading,
                "TOOL: HeyGen",
                f"AVATAR / VISUAL NOTES: {visual}",
                f"ON-SCREEN TEXT: {s['on_screen'] or '(none)'}",
                f"VOICE-OVER (EN): {s['voice'] or '(none)'}",
                f"SOUND / MUSIC: {s['sound'] or '(optional)'}",
                "SAFE NOTES: Keep it clean, avoid logos/watermarks.",
            ]
        )

    if fmt == "CAPCUT":
        return _join(
            [
                heading,
                "TOOL: CapCut (Edit Plan)",
                f"SHOT: {s['scene'] or '(shot description)'}",
                f"CAMERA: {s['camera']}" if s["camera"] else "",
                f"TEXT OVERLAY: {s['on_screen']}" if s["on_screen"] else "",
                f"VOICEOVER (EN): {s['voice']}" if s["voice"] else "",
                f"SOUND: {s['sound']}" if s["sound"] else "",
                f"EXPORT: 9:16 | Duration {_bare_duration(duration)}",
                f"AVOID: {s['negative']}" if s["negative"] else "",
            ]
        )

    if fmt == "JSON_MIN":
        obj = {
            "sceneNumber": scene_number,
            "title": title,
            "toolVariant": tool_variant,
            "format": "9:16",
            "duration": _bare_duration(duration),
            "scene": s["scene"] or None,
            "camera": s["camera"] or None,
            "onScreenText": s["on_screen"] or None,
            "voiceOver": s["voice"] or None,
            "soundDesign": s["sound"] or None,
            "negativePrompt": s["negative"] or None,
        }
        return json.dumps(obj, indent=2, ensure_ascii=False)

    raise ValueError(f"Unknown tool format: {fmt!r}; expected one of {FORMATS}")


# Which stored prompt variant feeds each tool format.
_FORMAT_VARIANTS = {"VEO_3_1": "VEO", "RUNWAY_GEN3": "RUNWAY"}


def format_video_prompts(
    items: List[Dict[str, Any]],
    fmt: str,
    tool_variant: Optional[str] = None,
) -> List[Dict[str, Any]]:
    fmt = (fmt or "").upper()
    if fmt not in FORMATS:
        raise ValueError(f"Unknown tool format: {fmt!r}; expected one of {FORMATS}")

    out = []
    for item in items:
        variants = item.get("variants") or {}
        variant = (tool_variant or _FORMAT_VARIANTS.get(fmt, "GENERIC")).upper()
        base = variants.get(variant) or variants.get("GENERIC", "")
        out.append(
            {
                "sceneNumber": item["sceneNumber"],
                "title": item.get("title"),
                "toolVariant": variant,
                "format": fmt,
                "prompt": format_for_tool(base, fmt, item["sceneNumber"], item.get("title"), variant),
            }
        )
    return out
