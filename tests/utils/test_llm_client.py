from unittest.mock import MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from shortcraft.config import LLMSettings
from shortcraft.errors import GenerationServiceFailure, MalformedGenerationOutput
from shortcraft.utils.llm_client import ChatModelGenerator, message_text


def _settings():
    return LLMSettings(
        model_id="base-model",
        api_key="sk-test",
        timeout_sec=12.0,
        stage_models={"editing_script": "editor-model"},
        temperatures={"hooks": 0.7},
    )


def test_generate_sends_system_and_user():
    with patch("shortcraft.utils.llm_client.ChatOpenAI") as chat_cls:
        chat_cls.return_value.invoke.return_value = AIMessage(content="  [\"hook\"]  ")
        text = ChatModelGenerator(_settings()).generate("be brief", "write hooks", stage="hooks")

    assert text == '["hook"]'
    kwargs = chat_cls.call_args.kwargs
    assert kwargs["model"] == "base-model"
    assert kwargs["temperature"] == 0.7
    assert kwargs["timeout"] == 12.0
    assert kwargs["max_retries"] == 0
    messages = chat_cls.return_value.invoke.call_args.args[0]
    assert isinstance(messages[0], SystemMessage) and messages[0].content == "be brief"
    assert isinstance(messages[1], HumanMessage) and messages[1].content == "write hooks"


def test_stage_model_override_and_cache():
    with patch("shortcraft.utils.llm_client.ChatOpenAI") as chat_cls:
        chat_cls.return_value.invoke.return_value = AIMessage(content="{}")
        gen = ChatModelGenerator(_settings())
        gen.generate("", "a", stage="editing_script")
        gen.generate("", "b", stage="editing_script")

    assert chat_cls.call_count == 1
    assert chat_cls.call_args.kwargs["model"] == "editor-model"
    messages = chat_cls.return_value.invoke.call_args.args[0]
    assert len(messages) == 1


def test_client_error_becomes_generation_failure():
    with patch("shortcraft.utils.llm_client.ChatOpenAI") as chat_cls:
        chat_cls.return_value.invoke.side_effect = TimeoutError("read timed out")
        with pytest.raises(GenerationServiceFailure) as exc:
            ChatModelGenerator(_settings()).generate("s", "u")
    assert "read timed out" in exc.value.details
    assert exc.value.status_code == 502


def test_empty_reply_is_malformed():
    with patch("shortcraft.utils.llm_client.ChatOpenAI") as chat_cls:
        chat_cls.return_value.invoke.return_value = AIMessage(content="   ")
        with pytest.raises(MalformedGenerationOutput):
            ChatModelGenerator(_settings()).generate("s", "u")


def test_message_text_handles_content_parts():
    msg = MagicMock()
    msg.content = [{"type": "text", "text": "[1,"}, {"type": "image_url"}, "2]"]
    assert message_text(msg) == "[1,2]"
    assert message_text("plain") == "plain"
