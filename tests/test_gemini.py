"""Tests for the Gemini transport and model registry."""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.genai import errors as genai_errors
from google.genai import types

from abcscribe.config.models import LLMSettings
from abcscribe.llm import (
    AVAILABLE_MODELS,
    DEFAULT_MODEL_ID,
    create_transport,
    get_model_variant,
)
from abcscribe.llm.gemini import (
    GeminiChatSession,
    GeminiTransport,
    _to_sdk_part,
    normalize_chunk,
)
from abcscribe.llm.models import (
    ImagePart,
    LLMError,
    TextPart,
    ThoughtPart,
    ToolCallPart,
    ToolResultPart,
)
from abcscribe.prompts import VALIDATE_TOOL


def _chunk(*parts):
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))]
    )


async def _agen(items):
    for item in items:
        yield item


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_default_is_registered(self):
        assert get_model_variant(DEFAULT_MODEL_ID).name == "Gemini 3 Pro (Agent)"

    def test_budgets_only_for_25_family(self):
        budgets = {m.id: m.thinking_budget for m in AVAILABLE_MODELS}
        assert budgets["gemini-2.5-flash"] == 24576
        assert budgets["gemini-2.5-pro"] == 32768
        assert budgets["gemini-3-pro-preview"] is None

    def test_unknown_model(self):
        with pytest.raises(ValueError, match="Unknown model"):
            get_model_variant("gemini-1.0-ultra")


# ---------------------------------------------------------------------------
# Chunk normalization
# ---------------------------------------------------------------------------


class TestNormalizeChunk:
    def test_classifies_parts(self):
        chunk = _chunk(
            types.Part(text="Counting beats.", thought=True),
            types.Part(text="X:1\n"),
            types.Part(
                function_call=types.FunctionCall(
                    name="validate_abc_notation", args={"abc_notation": "X:1"}, id="fc-1"
                )
            ),
        )
        fragments = normalize_chunk(chunk)

        assert fragments == [
            ThoughtPart(content="Counting beats."),
            TextPart(content="X:1\n"),
            ToolCallPart(name="validate_abc_notation", args={"abc_notation": "X:1"}, call_id="fc-1"),
        ]

    def test_empty_chunk(self):
        assert normalize_chunk(types.GenerateContentResponse(candidates=[])) == []

    def test_empty_thought_dropped(self):
        assert normalize_chunk(_chunk(types.Part(text="", thought=True))) == []


class TestToSdkPart:
    def test_image(self):
        part = _to_sdk_part(ImagePart(data=b"img", mime_type="image/jpeg"))
        assert part.inline_data.data == b"img"
        assert part.inline_data.mime_type == "image/jpeg"

    def test_tool_result(self):
        part = _to_sdk_part(
            ToolResultPart(call_id="fc-1", name="validate_abc_notation", payload={"result": "ok"})
        )
        assert part.function_response.id == "fc-1"
        assert part.function_response.name == "validate_abc_notation"
        assert part.function_response.response == {"result": "ok"}

    def test_thought_cannot_be_sent(self):
        with pytest.raises(ValueError):
            _to_sdk_part(ThoughtPart(content="private"))


# ---------------------------------------------------------------------------
# Transport / session
# ---------------------------------------------------------------------------


class TestGeminiTransport:
    @patch("abcscribe.llm.gemini.genai")
    def test_open_session_config(self, mock_genai):
        transport = GeminiTransport(api_key="goog-key")
        transport.open_session(get_model_variant("gemini-2.5-flash"), "rules", [VALIDATE_TOOL])

        mock_genai.Client.assert_called_once()
        assert mock_genai.Client.call_args.kwargs["api_key"] == "goog-key"
        create = mock_genai.Client.return_value.aio.chats.create
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        config = kwargs["config"]
        assert config.system_instruction == "rules"
        assert config.thinking_config.include_thoughts is True
        assert config.thinking_config.thinking_budget == 24576
        declaration = config.tools[0].function_declarations[0]
        assert declaration.name == "validate_abc_notation"
        assert declaration.parameters.required == ["abc_notation"]

    @patch("abcscribe.llm.gemini.genai")
    def test_newer_models_get_default_budget(self, mock_genai):
        transport = GeminiTransport(api_key="k")
        config = transport.thinking_config(get_model_variant("gemini-3-pro-preview"))
        assert config.include_thoughts is True
        assert config.thinking_budget is None

    @patch("abcscribe.llm.gemini.genai")
    def test_budget_override(self, mock_genai):
        transport = GeminiTransport(api_key="k", thinking_budgets={"gemini-2.5-pro": 1024})
        config = transport.thinking_config(get_model_variant("gemini-2.5-pro"))
        assert config.thinking_budget == 1024

    @patch("abcscribe.llm.gemini.genai")
    def test_http_options(self, mock_genai):
        GeminiTransport(api_key="k", timeout=30, max_retries=2)
        options = mock_genai.Client.call_args.kwargs["http_options"]
        assert options.timeout == 30000
        assert options.retry_options.attempts == 3


class TestGeminiChatSession:
    @pytest.mark.asyncio
    async def test_streams_normalized_fragments(self):
        chat = MagicMock()
        chat.send_message_stream = AsyncMock(
            return_value=_agen(
                [
                    _chunk(types.Part(text="Hmm", thought=True)),
                    _chunk(types.Part(text="X:1")),
                ]
            )
        )
        session = GeminiChatSession(chat)

        fragments = [f async for f in session.send_stream([TextPart(content="go")])]

        assert fragments == [ThoughtPart(content="Hmm"), TextPart(content="X:1")]
        sent = chat.send_message_stream.call_args.kwargs["message"]
        assert sent[0].text == "go"

    @pytest.mark.asyncio
    async def test_wraps_api_error(self):
        chat = MagicMock()
        chat.send_message_stream = AsyncMock(
            side_effect=genai_errors.ClientError(
                429, {"error": {"code": 429, "message": "quota", "status": "RESOURCE_EXHAUSTED"}}
            )
        )
        session = GeminiChatSession(chat)

        with pytest.raises(LLMError) as exc_info:
            async for _ in session.send_stream([TextPart(content="go")]):
                pass

        assert exc_info.value.provider == "gemini"
        assert exc_info.value.operation == "send_message_stream"
        assert exc_info.value.retryable
        assert isinstance(exc_info.value.__cause__, genai_errors.APIError)

    @pytest.mark.asyncio
    async def test_bad_request_not_retryable(self):
        chat = MagicMock()
        chat.send_message_stream = AsyncMock(
            side_effect=genai_errors.ClientError(
                400, {"error": {"code": 400, "message": "bad", "status": "INVALID_ARGUMENT"}}
            )
        )
        session = GeminiChatSession(chat)

        with pytest.raises(LLMError) as exc_info:
            async for _ in session.send_stream([TextPart(content="go")]):
                pass
        assert not exc_info.value.retryable


class TestCreateTransport:
    @patch.dict(os.environ, {"GOOGLE_API_KEY": "goog-key-123"}, clear=True)
    @patch("abcscribe.llm.gemini.genai")
    def test_creates_gemini_transport(self, mock_genai):
        transport = create_transport(LLMSettings())
        assert isinstance(transport, GeminiTransport)
        assert mock_genai.Client.call_args.kwargs["api_key"] == "goog-key-123"

    @patch.dict(os.environ, {"GEMINI_API_KEY": "gem-key"}, clear=True)
    @patch("abcscribe.llm.gemini.genai")
    def test_falls_back_to_gemini_key(self, mock_genai):
        create_transport(LLMSettings(api_key_env="MY_KEY"))
        assert mock_genai.Client.call_args.kwargs["api_key"] == "gem-key"

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_key(self):
        with pytest.raises(ValueError, match="Missing API key"):
            create_transport(LLMSettings())
