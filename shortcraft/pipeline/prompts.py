from __future__ import annotations

import json
from typing import Any, Dict, Optional, Sequence, Tuple

STYLE_PROFILES: Dict[str, str] = {
    "default": "cinematic lighting, ultra-realistic, shallow depth of field, professional photo look",
    "business": "clean modern office, soft natural lighting, professional atmosphere, high-end startup aesthetic",
    "creator": "natural daylight, handheld smartphone feel, authentic social media photo, slightly imperfect framing",
    "coaching": "soft warm lighting, calm environment, minimal background, emotional and introspective mood",
    "fitness": "high-contrast gym lighting, dynamic energy, sweat detail, athletic realism, premium fitness campaign look",
    "beauty": "soft beauty lighting, clean studio background, high-end skincare editorial look, natural skin texture",
    "food": "appetizing natural lighting, macro detail, steam and texture emphasis, premium food photography look",
    "realestate": "bright airy interior, wide clean composition, architectural realism, premium listing photo look",
    "automotive": "dramatic showroom lighting, glossy reflections, cinematic car commercial look, crisp detail",
}

DEFAULT_CHARACTER = "\n".join(
    [
        "Main character:",
        "Relatable adult, realistic facial features, not a model, natural skin texture.",
        "Neutral clothing (t-shirt / casual blazer), modern look.",
    ]
)

# Checked in order; first keyword hit wins.
NICHE_KEYWORDS: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("business", ("saas", "business", "startup", "money")),
    ("creator", ("creator", "ugc", "tiktok", "reels")),
    ("coaching", ("coach", "mindset", "therapy", "psych")),
    ("fitness", ("fitness", "gym", "workout")),
    ("beauty", ("beauty", "skincare", "makeup")),
    ("food", ("food", "recipe", "cooking")),
    ("realestate", ("real estate", "realtor", "mortgage")),
    ("automotive", ("car", "auto", "dealership")),
)

NEGATIVE_LINE = "No text, no subtitles, no watermark, no logo, no distorted face, no extra fingers, no blur, no low quality"


def language_name(language_variant: str) -> str:
    return "French (Canada)" if (language_variant or "").lower().startswith("fr") else "English"


def infer_style_from_niche(niche: Optional[str]) -> str:
    n = (niche or "").lower()
    for style, keywords in NICHE_KEYWORDS:
        if any(k in n for k in keywords):
            return style
    return "default"


# --- hooks ---
def build_hooks_prompt(idea: str, language_variant: str) -> str:
    return f"""
You are a senior short-form copywriter.

Language: {language_name(language_variant)}

Task:
Generate 10 high-performing hooks for short-form videos (TikTok / Reels / Shorts).

Rules:
- Hooks must be concise (1 sentence max)
- Strong curiosity or pain-based
- No emojis
- No hashtags
- No explanations

Context:
{idea}

Output format:
JSON array of strings.
""".strip()


# --- storyboard ---
def build_storyboard_prompt(idea: str, hooks: Sequence[str], language_variant: str) -> str:
    if (language_variant or "").lower().startswith("fr"):
        lang_rules = "- Écris en FRANÇAIS (Québec si possible).\n- Style: direct, punchy, viral, simple à comprendre."
    else:
        lang_rules = "- Write in ENGLISH.\n- Style: direct, punchy, viral, easy to follow."

    # One primary hook keeps the storyboard stable.
    primary_hook = hooks[0] if hooks else ""

    return f'''
You are an expert short-form video writer.

Goal: create a SHORT storyboard from an idea + a primary hook.
The storyboard will be used to generate the rest of the pipeline later.

{lang_rules}

INPUT:
- Idea: """{idea}"""
- Primary hook: """{primary_hook}"""

OUTPUT FORMAT (IMPORTANT):
Return ONLY valid JSON, with no extra text.
Return a JSON array of 6 to 8 objects.
Each object MUST have exactly these keys:
- scene (number starting at 1)
- onScreenText (string, short, max ~12 words)
- voiceover (string, 1-2 sentences)
- visual (string, describe what we see)

Rules:
- Scene 1 must be the hook.
- Keep it fast-paced, high retention.
- No emojis in voiceover.
- No markdown. JSON only.

Example (shape only):
[
  {{ "scene": 1, "onScreenText": "...", "voiceover": "...", "visual": "..." }}
]
'''.strip()


# --- image prompts ---
def build_image_prompts_system() -> str:
    return "\n".join(
        [
            "You are ShortCraft's Image Prompt Generator.",
            "Your job: turn each storyboard scene into ONE high-quality image prompt for image generators.",
            "",
            "Hard rules:",
            "- Output MUST be valid JSON ONLY (no markdown, no prose).",
            "- Output MUST be a JSON array of objects.",
            "- One object per scene, in the same order as input.",
            "- Prompts MUST be in English.",
            "- Always include 'vertical 9:16'.",
            "- NEVER ask to render text in the image.",
            "- Always add a negative prompt line: No text, no subtitles, no watermark, no logo.",
            "",
            "Structure inside each prompt:",
            "1) Character consistency block (global/persistent across scenes)",
            "2) Scene intent (short emotional intent phrase)",
            "3) Style profile (based on chosen style)",
            "4) Technical + negative prompt",
            "",
            "Return fields per item:",
            "- scene (number)",
            "- character (string, a multi-line block starting with 'Main character:')",
            "- intent (string)",
            f"- style (one of: {', '.join(STYLE_PROFILES)})",
            "- imagePrompt (string)",
        ]
    )


def build_image_prompts_user(
    scenes: Sequence[Dict[str, Any]],
    style: str,
    character: Optional[str] = None,
) -> str:
    style_profile = STYLE_PROFILES.get(style, STYLE_PROFILES["default"])
    character = (character or "").strip() or DEFAULT_CHARACTER

    scene_blocks = []
    for s in scenes:
        lines = [f"Scene {s.get('scene')}:", f"Visual: {s.get('visual', '')}"]
        if s.get("onScreenText"):
            lines.append(f"On-screen text (DO NOT put text in image): {s['onScreenText']}")
        if s.get("voiceover"):
            lines.append(f"Voiceover context: {s['voiceover']}")
        scene_blocks.append("\n".join(lines))

    template = "\n".join(
        [
            "A vertical 9:16 cinematic photo.",
            "",
            "[CHARACTER BLOCK]",
            "",
            "Scene intent:",
            "[INTENT PHRASE + 1 short sentence describing emotion/action]",
            "",
            "Environment:",
            "[LOCATION / ENVIRONMENT]",
            "",
            "Style profile:",
            "[STYLE PROFILE]",
            "",
            "Camera:",
            "[SHOT TYPE + LENS]",
            "",
            NEGATIVE_LINE,
        ]
    )

    return "\n".join(
        [
            "Generate image prompts for the storyboard below.",
            "",
            "Global settings:",
            f"- Chosen style: {style}",
            f"- Style profile: {style_profile}",
            "",
            "Character consistency block (must be identical across all items):",
            character,
            "",
            "Storyboard scenes:",
            "\n\n".join(scene_blocks),
            "",
            "Prompt template (must be followed in 'imagePrompt'):",
            template,
        ]
    )


# --- video prompts ---
DURATION_PRESETS: Sequence[Tuple[Tuple[str, ...], Tuple[int, int]]] = (
    (("6_8", "6-8"), (6, 8)),
    (("9_12", "9-12"), (9, 12)),
    (("12_15", "12-15"), (12, 15)),
    (("15_30", "15-30"), (15, 30)),
)


def parse_duration_preset(preset: Optional[str]) -> Tuple[int, int]:
    p = (preset or "").upper()
    for markers, bounds in DURATION_PRESETS:
        if any(m in p for m in markers):
            return bounds
    return (6, 8)


def build_video_prompts_system(duration_preset: str) -> str:
    lo, hi = parse_duration_preset(duration_preset)
    return f"""
You are a senior short-form VIDEO PROMPT ENGINEER.

OUTPUT RULES:
- Return ONLY valid JSON (no markdown).
- Return an ARRAY of objects.
- Each object MUST be:
{{
  "sceneNumber": number,
  "title": string,
  "variants": {{
    "GENERIC": string,
    "VEO": string,
    "RUNWAY": string
  }}
}}

LANGUAGE:
- EVERYTHING must be written in ENGLISH ONLY.

FORMAT:
Each variants.* MUST be a MULTI-LINE block with EXACTLY these labels:

HOOK LINE:
CUTS:
SCENE:
CAMERA:
LIGHTING:
ACTION:
ON-SCREEN TEXT:
VOICE-OVER (EN):
SOUND DESIGN:
NEGATIVE:
SETTINGS:

CUTS:
- 3 to 5 bullet beats
- Describe shot changes / motion beats
- No timestamps

SETTINGS:
- Format: 9:16
- Duration: choose an exact value between {lo}-{hi} seconds

TOOL EMPHASIS:
- GENERIC: universal, tool-agnostic, clean
- VEO: cinematic camera language, believable sound cues
- RUNWAY: motion continuity, clear transitions, anti-warp

FORBIDDEN:
- Brand names, copyrighted music, platform UI references
- Vague filler ("nice", "cool", "beautiful")
""".strip()


def build_video_prompts_user(project: Dict[str, Any], scenes: Sequence[Dict[str, Any]], presets: Dict[str, str]) -> str:
    storyboard_text = "\n\n".join(
        f"SCENE {s['scene']}\nVISUAL: {s['visual']}\nON-SCREEN TEXT: {s['onScreenText']}\nVOICEOVER HINT: {s['voiceover']}"
        for s in sorted(scenes, key=lambda s: s["scene"])
    )
    return f"""
PROJECT
Title: {project.get('title', '')}
Idea: {project.get('idea', '')}

PRESETS
Platform: {presets['platformPreset']}
Style: {presets['stylePreset']}
Duration preset: {presets['durationPreset']}
Tool preset (UI): {presets['toolPreset']}

STORYBOARD
{storyboard_text}

TASK
Generate premium tool-ready video prompts (3 variants per scene) following the exact labeled format.
Return ONLY the JSON array.
""".strip()


# --- editing script ---
def build_editing_script_system() -> str:
    return "\n".join(
        [
            "You are a senior short-form video editor.",
            "Your job: produce an EDITING SCRIPT (not a narration script).",
            "Return STRICT JSON only (no markdown).",
            "The output must be actionable for CapCut/Premiere: cuts, pacing, text, b-roll, sfx, music cues.",
            "Assume vertical 9:16.",
        ]
    )


def build_editing_script_user(
    project: Dict[str, Any],
    scenes: Sequence[Dict[str, Any]],
    video_prompts: Sequence[Dict[str, Any]],
    grouping_plan: Sequence[Sequence[int]],
    target_duration: float,
    video_indexes: Sequence[int],
) -> str:
    compact_storyboard = [
        {"scene": s["scene"], "visual": s["visual"], "onScreenText": s["onScreenText"], "voiceover": s["voiceover"]}
        for s in sorted(scenes, key=lambda s: s["scene"])
    ]
    compact_prompts = [
        {"sceneNumber": p["sceneNumber"], "title": p["title"], "prompt": p["variants"].get("GENERIC", "")}
        for p in sorted(video_prompts, key=lambda p: p["sceneNumber"])
    ][:12]
    shape = {
        "meta": {"format": "9:16", "platform": "Reels/Shorts/TikTok", "editingStyle": "fast paced, punchy"},
        "timeline": [
            {
                "scene": 1,
                "time": "0.0–1.2s",
                "sourceScenes": [1],
                "clip": "What is shown (visual clip description)",
                "edit": "Cut/zoom/speed/ramp instructions",
                "onScreenText": "Exact on-screen text (short)",
                "voiceover": "what VO line plays here (from storyboard)",
                "sound": "SFX + music cue",
                "notes": "extra editor notes",
            }
        ],
        "exportNotes": ["global notes for export, captions, pacing, audio mix"],
    }
    groups_text = "\n".join(
        f"- Timeline scene {i + 1}: storyboard scenes {', '.join(str(n) for n in group)}"
        + (" (VIDEO)" if i in video_indexes else " (IMAGE + motion)")
        for i, group in enumerate(grouping_plan)
    )
    return "\n".join(
        [
            f"Project: {project.get('title', '')}",
            "",
            "INPUT 1) STORYBOARD SCENES (truth):",
            json.dumps(compact_storyboard, indent=2, ensure_ascii=False),
            "",
            "INPUT 2) VIDEO PROMPTS (for visual intent & camera ideas):",
            json.dumps(compact_prompts, indent=2, ensure_ascii=False),
            "",
            "EDIT PLAN (follow exactly):",
            f"- Total duration: {target_duration:g} seconds",
            f"- Timeline scenes: {len(grouping_plan)}",
            groups_text,
            "",
            "OUTPUT FORMAT (STRICT JSON):",
            json.dumps(shape, indent=2, ensure_ascii=False),
            "",
            "Rules:",
            "- One timeline item per timeline scene above, in order.",
            "- Keep each timeline item <= 8 lines worth of content.",
            "- Use storyboard voiceover text exactly (light trimming ok, but don't invent new claims).",
            "- Make it punchy: frequent cuts, clear text overlays, strong first 1s.",
        ]
    )


# --- translation ---
TRANSLATE_SYSTEM = (
    "You are a professional translator for short-form video content. "
    "Keep meaning, tone, and structure. Do not add new claims."
)


def build_translate_prompt(project: Dict[str, Any], stage_kind: str, target_language: str, source_language: Optional[str], content: Any) -> str:
    target = "French (Québec-friendly neutral)" if target_language == "fr" else "English"
    return "\n".join(
        [
            f"Project: {project.get('title', '')}",
            f"Kind: {stage_kind}",
            f"Target language: {target}",
            f"Source locale (for reference): {source_language or 'unknown'}",
            "",
            "Translate the content below.",
            "Return the SAME STRUCTURE as the input:",
            "- If input is an array, return an array.",
            "- If input is an object, return an object.",
            "- Do not wrap in markdown.",
            "",
            "INPUT JSON:",
            json.dumps(content, indent=2, ensure_ascii=False),
        ]
    )
