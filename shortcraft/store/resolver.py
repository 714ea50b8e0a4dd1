from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from shortcraft.errors import MissingDependency
from shortcraft.store.models import StageKind, stage_value
from shortcraft.store.store import ArtifactStore
from shortcraft.utils.logging_setup import setup_logger

logger = setup_logger(__name__)

# stage -> upstream stages that must exist before it can be generated
STAGE_PREREQUISITES: Dict[str, Tuple[str, ...]] = {
    StageKind.STORYBOARD.value: (StageKind.HOOKS.value,),
    StageKind.IMAGE_PROMPTS.value: (StageKind.STORYBOARD.value,),
    StageKind.VIDEO_PROMPTS.value: (StageKind.STORYBOARD.value,),
    StageKind.EDITING_SCRIPT.value: (StageKind.STORYBOARD.value, StageKind.VIDEO_PROMPTS.value),
}

MISSING_MESSAGES: Dict[str, str] = {
    StageKind.HOOKS.value: "Hooks not found. Generate hooks first.",
    StageKind.STORYBOARD.value: "Missing storyboard. Generate storyboard first.",
    StageKind.VIDEO_PROMPTS.value: "Missing video prompts. Generate video prompts first.",
}

# Stages whose generation is a no-op when the exact (project, language, stage) exists.
SKIP_IF_EXISTS = frozenset({StageKind.HOOKS.value, StageKind.STORYBOARD.value})


def missing_message(stage_kind: str) -> str:
    return MISSING_MESSAGES.get(stage_kind, f"Missing {stage_kind}. Generate {stage_kind} first.")


@dataclass
class DependencyResolver:
    """
    Finds the latest usable upstream artifact for a stage.

    Exact language variant first, else the latest artifact of that stage in
    any variant. Downstream stages proceed with whatever upstream content
    exists instead of forcing regeneration per language.
    """

    store: ArtifactStore

    def find_latest_output(self, project_id: str, language_variant: str, stage_kind: str) -> Optional[Dict[str, Any]]:
        kind = stage_value(stage_kind)
        exact = self.store.latest(project_id, language_variant, kind)
        if exact is not None:
            return exact
        fallback = self.store.latest_any(project_id, kind)
        if fallback is not None:
            logger.info(
                "No %s in %s for %s, falling back to %s v%s",
                kind, language_variant, project_id, fallback["language_variant"], fallback["version"],
            )
        return fallback

    def require(
        self,
        project_id: str,
        language_variant: str,
        stage_kind: str,
        decode: Optional[Callable[[Any], Any]] = None,
    ) -> Tuple[Dict[str, Any], Any]:
        """
        Return (artifact, decoded content) or raise MissingDependency.

        `decode` returns a falsy value for content that is present but unusable
        (e.g. a storyboard with no scenes); that counts as missing too.
        """
        kind = stage_value(stage_kind)
        artifact = self.find_latest_output(project_id, language_variant, kind)
        if artifact is None:
            raise MissingDependency(kind, missing_message(kind))
        decoded = decode(artifact["content"]) if decode else artifact["content"]
        if not decoded:
            raise MissingDependency(kind, missing_message(kind))
        return artifact, decoded

    def prerequisites_for(self, stage_kind: str) -> List[str]:
        return list(STAGE_PREREQUISITES.get(stage_value(stage_kind), ()))

    def check_prerequisites(
        self,
        project_id: str,
        language_variant: str,
        stage_kind: str,
        decoders: Optional[Dict[str, Callable[[Any], Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Require every upstream stage of `stage_kind`, in table order.

        Returns {upstream kind: decoded content}; `decoders` maps an upstream
        kind to its reader, raw content is returned for kinds without one.
        """
        decoders = decoders or {}
        found: Dict[str, Any] = {}
        for upstream in self.prerequisites_for(stage_kind):
            _, found[upstream] = self.require(project_id, language_variant, upstream, decode=decoders.get(upstream))
        return found

    def should_skip(self, project_id: str, language_variant: str, stage_kind: str) -> bool:
        kind = stage_value(stage_kind)
        return kind in SKIP_IF_EXISTS and self.store.exists(project_id, language_variant, kind)
