from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from shortcraft.config import Settings
from shortcraft.errors import MalformedGenerationOutput, MissingDependency, NotFound, Unauthorized
from shortcraft.pipeline import prompts
from shortcraft.pipeline.formats import format_video_prompts
from shortcraft.pipeline.normalizer import (
    ARRAY,
    OBJECT,
    ANY,
    decode_editing_script,
    decode_hooks,
    decode_image_prompts,
    decode_storyboard,
    decode_translation,
    decode_video_prompts,
    ensure_string,
    hook_list,
    parse_stage_output,
    storyboard_scenes,
    video_prompt_items,
)
from shortcraft.pipeline.placement import (
    default_production_mode,
    enforce_placement,
    select_video_indexes,
    validate_budget,
)
from shortcraft.pipeline.planner import build_seed, plan_dynamic, split_duration, static_grouping
from shortcraft.pipeline.schemas import (
    VIDEO_TOOLS,
    EditingMode,
    PlacementStrategy,
    ProductionMode,
    StageResult,
    TimelineEntry,
)
from shortcraft.quota.limiter import QuotaLimiter
from shortcraft.store.models import StageKind, stage_value
from shortcraft.store.resolver import DependencyResolver
from shortcraft.store.store import ArtifactStore
from shortcraft.utils.logging_setup import log_context, setup_logger

logger = setup_logger(__name__)

TRANSLATABLE_KINDS = (StageKind.HOOKS.value, StageKind.STORYBOARD.value, StageKind.SCRIPT.value)
SUPPORTED_LANGUAGES = ("en", "fr")

DEFAULT_VIDEO_PRESETS = {
    "platformPreset": "INSTAGRAM_REELS",
    "stylePreset": "UGC_TALKING_HEAD",
    "durationPreset": "6_8_PUNCHY",
    "toolPreset": "VEO",
}

# Readers for stored upstream content, keyed by stage kind.
UPSTREAM_DECODERS = {
    StageKind.HOOKS.value: hook_list,
    StageKind.STORYBOARD.value: storyboard_scenes,
    StageKind.VIDEO_PROMPTS.value: video_prompt_items,
}

_TIMELINE_TEXT_FIELDS = ("clip", "edit", "onScreenText", "voiceover", "sound", "notes")


class TextGenerator(Protocol):
    def generate(self, system: str, user: str, stage: Optional[str] = None) -> str: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _language(language_variant: Optional[str]) -> str:
    lang = (language_variant or "").strip().lower()
    if not lang:
        raise ValueError("language_variant is required")
    return lang


class PipelineService:
    """
    Runs one pipeline stage per call against an artifact store.

    Each call resolves the account and project, checks upstream artifacts,
    calls the generation service once, normalizes the reply and appends a new
    artifact version. Nothing is written unless every step succeeded.
    """

    def __init__(
        self,
        store: ArtifactStore,
        generator: TextGenerator,
        settings: Settings,
        limiter: Optional[QuotaLimiter] = None,
    ):
        self.store = store
        self.generator = generator
        self.settings = settings
        self.resolver = DependencyResolver(store)
        self.limiter = limiter or QuotaLimiter(settings.quota, store)

    # --- accounts / projects ---
    def resolve_account(self, email: Optional[str]) -> Dict[str, Any]:
        if not (email or "").strip():
            raise Unauthorized()
        return self.store.ensure_account(email)

    def resolve_project(self, email: Optional[str], project_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        account = self.resolve_account(email)
        project = self.store.get_project(project_id, account_id=account["account_id"]) if project_id else None
        if project is None:
            raise NotFound("Project not found")
        return account, project

    def create_project(self, email: Optional[str], title: str = "", idea: str = "") -> Dict[str, Any]:
        account = self.resolve_account(email)
        project = self.store.create_project(account["account_id"], title=title, idea=idea)
        with log_context(account_id=account["account_id"], project_id=project["project_id"]):
            logger.info("Project created")
        return project

    def list_projects(self, email: Optional[str]) -> List[Dict[str, Any]]:
        account = self.resolve_account(email)
        return self.store.list_projects(account["account_id"])

    # --- shared steps ---
    def _generate(self, stage: str, system: str, user: str) -> str:
        logger.info("Calling generation service")
        return self.generator.generate(system, user, stage=stage)

    def _parse(self, raw: str, decoder, container: str) -> Any:
        try:
            return parse_stage_output(raw, decoder, container)
        except MalformedGenerationOutput as e:
            logger.error("Malformed generation output: %s | raw=%s", e.message, e.raw[:500])
            raise

    def _persist(self, project_id: str, language_variant: str, stage: str, content: Any) -> StageResult:
        artifact = self.store.create_artifact(project_id, language_variant, stage, content)
        logger.info("Persisted %s v%d", stage, artifact["version"])
        return StageResult(
            stage=stage,
            language_variant=artifact["language_variant"],
            version=artifact["version"],
            content=content,
        )

    def _upstream(self, project_id: str, language_variant: str, stage: str) -> Dict[str, Any]:
        return self.resolver.check_prerequisites(project_id, language_variant, stage, decoders=UPSTREAM_DECODERS)

    def _skipped(self, project_id: str, stage: str, language_variant: str) -> StageResult:
        logger.info("Skipped: %s already exists", stage)
        existing = self.store.latest(project_id, language_variant, stage)
        return StageResult(
            skipped=True,
            stage=stage,
            language_variant=language_variant,
            version=existing["version"] if existing else None,
            content=existing["content"] if existing else None,
            message=f"{stage} already exists",
        )

    # --- stages ---
    def generate_hooks(self, email: Optional[str], project_id: str, language_variant: str) -> StageResult:
        stage = StageKind.HOOKS.value
        account, project = self.resolve_project(email, project_id)
        lang = _language(language_variant)
        with log_context(account_id=account["account_id"], project_id=project_id, stage=stage):
            if self.resolver.should_skip(project_id, lang, stage):
                return self._skipped(project_id, stage, lang)

            raw = self._generate(stage, "", prompts.build_hooks_prompt(project["idea"], lang))
            hooks = self._parse(raw, decode_hooks, ARRAY)
            return self._persist(project_id, lang, stage, hooks)

    def generate_storyboard(self, email: Optional[str], project_id: str, language_variant: str) -> StageResult:
        stage = StageKind.STORYBOARD.value
        account, project = self.resolve_project(email, project_id)
        lang = _language(language_variant)
        with log_context(account_id=account["account_id"], project_id=project_id, stage=stage):
            if self.resolver.should_skip(project_id, lang, stage):
                return self._skipped(project_id, stage, lang)

            hooks = self._upstream(project_id, lang, stage)[StageKind.HOOKS.value]
            selected = self.store.latest(project_id, lang, StageKind.SELECTED_HOOK.value)
            if selected and isinstance(selected["content"], dict) and selected["content"].get("hook"):
                chosen = selected["content"]["hook"]
                hooks = [chosen] + [h for h in hooks if h != chosen]

            raw = self._generate(stage, "", prompts.build_storyboard_prompt(project["idea"], hooks, lang))
            scenes = self._parse(raw, decode_storyboard, ARRAY)
            return self._persist(project_id, lang, stage, scenes)

    def generate_image_prompts(
        self,
        email: Optional[str],
        project_id: str,
        language_variant: str,
        character: Optional[str] = None,
    ) -> StageResult:
        stage = StageKind.IMAGE_PROMPTS.value
        account, project = self.resolve_project(email, project_id)
        lang = _language(language_variant)
        with log_context(account_id=account["account_id"], project_id=project_id, stage=stage):
            scenes = self._upstream(project_id, lang, stage)[StageKind.STORYBOARD.value]

            niche = f"{project.get('title', '')} {project.get('idea', '')}".strip()
            style = prompts.infer_style_from_niche(niche or "SaaS")
            raw = self._generate(
                stage,
                prompts.build_image_prompts_system(),
                prompts.build_image_prompts_user(scenes, style, character),
            )
            items = self._parse(raw, decode_image_prompts, ANY)
            return self._persist(project_id, lang, stage, {"style": style, "count": len(items), "prompts": items})

    def generate_video_prompts(
        self,
        email: Optional[str],
        project_id: str,
        language_variant: str,
        platform_preset: Optional[str] = None,
        style_preset: Optional[str] = None,
        duration_preset: Optional[str] = None,
        tool_preset: Optional[str] = None,
    ) -> StageResult:
        stage = StageKind.VIDEO_PROMPTS.value
        account, project = self.resolve_project(email, project_id)
        lang = _language(language_variant)
        presets = {
            "platformPreset": platform_preset or DEFAULT_VIDEO_PRESETS["platformPreset"],
            "stylePreset": style_preset or DEFAULT_VIDEO_PRESETS["stylePreset"],
            "durationPreset": duration_preset or DEFAULT_VIDEO_PRESETS["durationPreset"],
            "toolPreset": tool_preset or DEFAULT_VIDEO_PRESETS["toolPreset"],
        }
        with log_context(account_id=account["account_id"], project_id=project_id, stage=stage):
            scenes = self._upstream(project_id, lang, stage)[StageKind.STORYBOARD.value]

            raw = self._generate(
                stage,
                prompts.build_video_prompts_system(presets["durationPreset"]),
                prompts.build_video_prompts_user(project, scenes, presets),
            )
            items = self._parse(raw, decode_video_prompts, ANY)
            content = {"presets": presets, "tools": list(VIDEO_TOOLS), "prompts": items}
            return self._persist(project_id, lang, stage, content)

    def generate_editing_script(
        self,
        email: Optional[str],
        project_id: str,
        language_variant: str,
        mode: str = EditingMode.DYNAMIC.value,
        production_mode: Optional[str] = None,
        max_video_scenes: int = 2,
        video_placement_strategy: str = PlacementStrategy.SMART.value,
        video_scene_cost: Optional[float] = None,
    ) -> StageResult:
        """
        Quota -> dependencies -> generate -> normalize -> plan -> placement -> persist.

        The plan is computed before the generation call so the prompt can
        carry the grouping; it depends only on stable identifiers, so the
        result is the same whether computed before or after.
        """
        stage = StageKind.EDITING_SCRIPT.value
        account, project = self.resolve_project(email, project_id)
        lang = _language(language_variant)

        editing_mode = EditingMode(str(mode).upper())
        budget = validate_budget(max_video_scenes)
        prod_mode = ProductionMode(production_mode) if production_mode else default_production_mode(budget)
        strategy = PlacementStrategy(str(video_placement_strategy).upper())
        cost = self.settings.editing.video_scene_cost if video_scene_cost is None else float(video_scene_cost)

        with log_context(account_id=account["account_id"], project_id=project_id, stage=stage):
            if self.limiter.is_gated(stage):
                decision = self.limiter.check(account["account_id"], account["email"])
                logger.info(
                    "Quota ok: plan=%s today=%d/%d week=%d/%d",
                    decision.plan, decision.used_today, decision.per_day, decision.used_week, decision.per_week,
                )

            upstream = self._upstream(project_id, lang, stage)
            video_prompts = upstream[StageKind.VIDEO_PROMPTS.value]
            scenes = sorted(upstream[StageKind.STORYBOARD.value], key=lambda s: s["scene"])

            version = self.store.next_version(project_id, lang, stage)
            plan = None
            if editing_mode == EditingMode.DYNAMIC:
                seed = build_seed(project_id, version, lang, editing_mode.value, prod_mode.value, budget)
                plan = plan_dynamic(seed, len(scenes))
                grouping = plan.grouping_plan
                target_duration = plan.target_duration
                logger.info("Dynamic plan: %d scenes, %.1fs, groups=%s", plan.scene_count, target_duration, grouping)
            else:
                grouping = static_grouping(len(scenes))
                target_duration = self.settings.editing.static_target_duration

            planned_video = select_video_indexes(len(grouping), prod_mode, budget)
            raw = self._generate(
                stage,
                prompts.build_editing_script_system(),
                prompts.build_editing_script_user(
                    project, scenes, video_prompts, grouping, target_duration, planned_video
                ),
            )
            script = self._parse(raw, decode_editing_script, ANY)

            timeline = build_timeline(script["timeline"], scenes, grouping, target_duration)
            placed = enforce_placement(timeline, prod_mode, budget, cost)
            logger.info("Placement: video=%s mix=%s cost=%.2f", placed.selected_indexes, placed.mix, placed.estimated_cost)

            meta: Dict[str, Any] = {
                "mode": editing_mode.value,
                "targetDuration": target_duration,
                "productionMode": prod_mode.value,
                "maxVideoScenes": budget,
                "videoSceneCost": cost,
                "estimatedCost": placed.estimated_cost,
                "mix": placed.mix,
                "videoPlacementStrategy": strategy.value,
                "smartVideoIndexes": placed.selected_indexes,
                "sceneCount": len(placed.timeline),
            }
            if plan is not None:
                meta["groupingPlan"] = [list(g) for g in plan.grouping_plan]

            export_notes = script.get("exportNotes")
            if not isinstance(export_notes, list):
                export_notes = [export_notes] if isinstance(export_notes, str) and export_notes.strip() else []
            content = {
                "meta": meta,
                "timeline": placed.timeline,
                "exportNotes": [ensure_string(n) for n in export_notes if ensure_string(n)],
            }
            return self._persist(project_id, lang, stage, content)

    def select_hook(self, email: Optional[str], project_id: str, hook: str, language: Optional[str] = None) -> StageResult:
        stage = StageKind.SELECTED_HOOK.value
        account, _ = self.resolve_project(email, project_id)
        hook = (hook or "").strip()
        if not hook:
            raise ValueError("hook is required")
        # Stored under the language the hook is written in.
        lang = "fr" if (language or "").strip().lower() == "fr" else "en"
        with log_context(account_id=account["account_id"], project_id=project_id, stage=stage):
            content = {"hook": hook, "language": lang, "selectedAt": _now_iso()}
            return self._persist(project_id, lang, stage, content)

    def translate_output(
        self,
        email: Optional[str],
        project_id: str,
        stage_kind: str,
        target_language: str,
        source_language: Optional[str] = None,
    ) -> StageResult:
        kind = stage_value(stage_kind)
        if kind not in TRANSLATABLE_KINDS:
            raise ValueError(f"Unsupported kind for translation: {kind}")
        target = (target_language or "").strip().lower()
        if target not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported target language: {target_language}")
        source_lang = (source_language or "").strip().lower()
        source_lang = source_lang if source_lang in SUPPORTED_LANGUAGES else None

        account, project = self.resolve_project(email, project_id)
        with log_context(account_id=account["account_id"], project_id=project_id, stage=kind):
            source = self.store.latest(project_id, source_lang, kind) if source_lang else None
            if source is None:
                source = self.store.latest_any(project_id, kind)
            if source is None:
                raise MissingDependency(kind, "Nothing to translate yet.")

            raw = self._generate(
                "translate",
                prompts.TRANSLATE_SYSTEM,
                prompts.build_translate_prompt(project, kind, target, source["language_variant"], source["content"]),
            )
            like = source["content"]
            container = ARRAY if isinstance(like, list) else OBJECT if isinstance(like, dict) else ANY
            translated = self._parse(
                raw, lambda data, raw=None: decode_translation(kind, data, like, raw=raw), container
            )
            result = self._persist(project_id, target, kind, translated)
            result.message = f"Translated from {source['language_variant']} v{source['version']}"
            return result

    def get_output(
        self,
        email: Optional[str],
        project_id: str,
        language_variant: str,
        stage_kind: str,
        tool_format: Optional[str] = None,
        tool_variant: Optional[str] = None,
    ) -> StageResult:
        """
        Latest output for presentation, with language fallback.

        With `tool_format`, video prompts also carry a `formatted` list: each
        prompt re-rendered for that video tool.
        """
        kind = stage_value(stage_kind)
        if tool_format and kind != StageKind.VIDEO_PROMPTS.value:
            raise ValueError("format is only supported for video_prompts")
        self.resolve_project(email, project_id)
        lang = _language(language_variant)
        artifact = self.resolver.find_latest_output(project_id, lang, kind)
        if artifact is None:
            raise NotFound(f"No {kind} output for this project")
        content = artifact["content"]
        if tool_format:
            content = dict(content) if isinstance(content, dict) else {"prompts": content}
            content["formatted"] = format_video_prompts(video_prompt_items(content), tool_format, tool_variant)
        return StageResult(
            stage=kind,
            language_variant=artifact["language_variant"],
            version=artifact["version"],
            content=content,
        )


def build_timeline(
    model_timeline: Sequence[Dict[str, Any]],
    scenes: Sequence[Dict[str, Any]],
    grouping: Sequence[Sequence[int]],
    target_duration: float,
) -> List[Dict[str, Any]]:
    """
    One timeline entry per group, in group order.

    Text the model left out is filled from the grouped storyboard scenes;
    times are spread evenly over the target duration.
    """
    by_number = {s["scene"]: s for s in scenes}
    ordered = [s["scene"] for s in scenes]
    slots = split_duration(target_duration, len(grouping))

    out: List[Dict[str, Any]] = []
    for i, group in enumerate(grouping):
        # Groups hold 1-based positions into the ordered storyboard.
        numbers = [ordered[p - 1] for p in group if 0 < p <= len(ordered)]
        grouped = [by_number[n] for n in numbers]
        model_entry = model_timeline[i] if i < len(model_timeline) else {}

        fallback = {
            "clip": " / ".join(s["visual"] for s in grouped),
            "onScreenText": " / ".join(s["onScreenText"] for s in grouped),
            "voiceover": " ".join(s["voiceover"] for s in grouped),
        }
        fields = {}
        for name in _TIMELINE_TEXT_FIELDS:
            fields[name] = ensure_string(model_entry.get(name)) or fallback.get(name, "")

        entry = TimelineEntry(scene=i + 1, time=slots[i], sourceScenes=numbers, **fields)
        out.append(entry.to_content())
    return out
