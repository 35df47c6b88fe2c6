"""Google Gemini adapter for abcscribe."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from abcscribe.llm.base import ChatSession, ChatTransport
from abcscribe.llm.models import (
    ImagePart,
    LLMError,
    ModelVariant,
    Part,
    TextPart,
    ThoughtPart,
    ToolCallPart,
    ToolResultPart,
    ToolSpec,
)

logger = logging.getLogger(__name__)

_RETRYABLE_CODES = {429, 500, 503}


def _wrap_error(operation: str, exc: genai_errors.APIError) -> LLMError:
    return LLMError(
        "gemini",
        operation,
        exc,
        retryable=getattr(exc, "code", None) in _RETRYABLE_CODES,
    )


def _to_declaration(tool: ToolSpec) -> types.FunctionDeclaration:
    return types.FunctionDeclaration(
        name=tool.name,
        description=tool.description,
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={
                name: types.Schema(type=types.Type.STRING, description=desc)
                for name, desc in tool.parameters.items()
            },
            required=list(tool.required),
        ),
    )


def _to_sdk_part(part: Part) -> types.Part:
    """Convert an outgoing Part into the SDK's representation."""
    if isinstance(part, ImagePart):
        return types.Part.from_bytes(data=part.data, mime_type=part.mime_type)
    if isinstance(part, TextPart):
        return types.Part(text=part.content)
    if isinstance(part, ToolResultPart):
        return types.Part(
            function_response=types.FunctionResponse(
                id=part.call_id,
                name=part.name,
                response=part.payload,
            )
        )
    raise ValueError(f"Cannot send a {part.kind!r} part to the model")


def normalize_chunk(chunk: Any) -> list[Part]:
    """Turn one streamed SDK chunk into normalized fragments.

    Thought parts carry ``thought=True`` alongside their text; everything
    else with text is answer text. Empty parts are dropped.
    """
    fragments: list[Part] = []
    candidates = getattr(chunk, "candidates", None) or []
    if not candidates:
        return fragments
    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        if getattr(part, "thought", False):
            if part.text:
                fragments.append(ThoughtPart(content=part.text))
            continue
        if getattr(part, "text", None):
            fragments.append(TextPart(content=part.text))
        call = getattr(part, "function_call", None)
        if call is not None and call.name:
            fragments.append(
                ToolCallPart(name=call.name, args=dict(call.args or {}), call_id=call.id)
            )
    return fragments


class GeminiChatSession(ChatSession):
    """Wraps one ``client.aio.chats`` conversation."""

    def __init__(self, chat: Any) -> None:
        self._chat = chat

    async def send_stream(self, parts: Sequence[Part]) -> AsyncIterator[Part]:
        message = [_to_sdk_part(p) for p in parts]
        try:
            stream = await self._chat.send_message_stream(message=message)
            async for chunk in stream:
                for fragment in normalize_chunk(chunk):
                    yield fragment
        except genai_errors.APIError as e:
            raise _wrap_error("send_message_stream", e) from e


class GeminiTransport(ChatTransport):
    """Gemini adapter using the google-genai async SDK."""

    provider_name = "gemini"

    def __init__(
        self,
        api_key: str,
        timeout: int = 120,
        max_retries: int = 3,
        thinking_budgets: Mapping[str, int] | None = None,
    ) -> None:
        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(
                timeout=timeout * 1000,
                retry_options=types.HttpRetryOptions(attempts=max_retries + 1),
            ),
        )
        self._thinking_budgets = dict(thinking_budgets or {})

    def thinking_config(self, model: ModelVariant) -> types.ThinkingConfig:
        """Always request thoughts; only set a budget where one is known.

        Newer model families reject an explicit budget, so they get the
        provider default.
        """
        budget = self._thinking_budgets.get(model.id, model.thinking_budget)
        if budget is None:
            return types.ThinkingConfig(include_thoughts=True)
        return types.ThinkingConfig(include_thoughts=True, thinking_budget=budget)

    def open_session(
        self,
        model: ModelVariant,
        system_instruction: str,
        tools: Sequence[ToolSpec],
    ) -> GeminiChatSession:
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            tools=[types.Tool(function_declarations=[_to_declaration(t) for t in tools])],
            thinking_config=self.thinking_config(model),
        )
        logger.debug("Opening Gemini chat (model=%s, tools=%d)", model.id, len(tools))
        chat = self._client.aio.chats.create(model=model.id, config=config)
        return GeminiChatSession(chat)
