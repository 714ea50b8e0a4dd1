from __future__ import annotations

from typing import Any, Dict, List, Optional

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from shortcraft.config import LLMSettings
from shortcraft.errors import GenerationServiceFailure, MalformedGenerationOutput
from shortcraft.utils.logging_setup import setup_logger

logger = setup_logger(__name__)

SUPPORTED_PROVIDERS = {"openai", "openai_compatible", "vllm", "sglang", "ollama", "azure", "azure_openai"}


def _create_chat_model(settings: LLMSettings, stage: Optional[str]) -> ChatOpenAI:
    p = (settings.provider or "").lower()
    if p not in SUPPORTED_PROVIDERS:
        logger.warning(f"Provider '{settings.provider}' not explicitly supported; using OpenAI-compatible ChatOpenAI.")

    return ChatOpenAI(
        model=settings.model_for(stage or ""),
        api_key=settings.api_key or None,
        base_url=settings.base_url or None,
        temperature=settings.temperature_for(stage or ""),
        timeout=settings.timeout_sec,
        # A failed call is surfaced to the caller, never retried behind its back.
        max_retries=0,
    )


def message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts: List[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") in ("text", "output_text"):
                parts.append(str(part.get("text") or ""))
        return "".join(parts).strip()
    return ""


class ChatModelGenerator:
    """
    Generation service: system instructions + user prompt in, raw text out.
    """

    def __init__(self, settings: LLMSettings):
        self.settings = settings
        self._models: Dict[str, ChatOpenAI] = {}

    def _model(self, stage: Optional[str]) -> ChatOpenAI:
        key = stage or ""
        if key not in self._models:
            self._models[key] = _create_chat_model(self.settings, stage)
        return self._models[key]

    def generate(self, system: str, user: str, stage: Optional[str] = None) -> str:
        messages: List[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=user))

        try:
            reply = self._model(stage).invoke(messages)
        except Exception as e:
            logger.error(f"Generation call failed for stage {stage}: {e}")
            raise GenerationServiceFailure("Generation service call failed.", details=str(e)) from e

        text = message_text(reply)
        if not text:
            raise MalformedGenerationOutput("Model returned empty output.", raw="")
        return text
