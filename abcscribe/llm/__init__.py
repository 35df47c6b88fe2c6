"""Model transport layer and model registry."""

import os

from abcscribe.config.models import LLMSettings
from abcscribe.llm.base import ChatSession, ChatTransport
from abcscribe.llm.gemini import GeminiTransport
from abcscribe.llm.models import (
    ConversationTurn,
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

AVAILABLE_MODELS: tuple[ModelVariant, ...] = (
    ModelVariant(id="gemini-3-pro-preview", name="Gemini 3 Pro (Agent)"),
    ModelVariant(id="gemini-2.5-pro", name="Gemini 2.5 Pro", thinking_budget=32768),
    ModelVariant(id="gemini-2.5-flash", name="Gemini 2.5 Flash", thinking_budget=24576),
    ModelVariant(id="gemini-flash-latest", name="Gemini Flash (Latest)"),
    ModelVariant(id="gemini-flash-lite-latest", name="Gemini Flash Lite (Latest)"),
)

DEFAULT_MODEL_ID = "gemini-3-pro-preview"

_PROVIDER_MAP: dict[str, type[ChatTransport]] = {
    "google": GeminiTransport,
}

# Fallback key names checked when api_key_env is unset.
_FALLBACK_KEY_ENVS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


def get_model_variant(model_id: str) -> ModelVariant:
    """Look up a registered model by id."""
    for variant in AVAILABLE_MODELS:
        if variant.id == model_id:
            return variant
    raise ValueError(
        f"Unknown model: {model_id!r}. "
        f"Available: {', '.join(m.id for m in AVAILABLE_MODELS)}"
    )


def create_transport(config: LLMSettings) -> ChatTransport:
    """Create a chat transport from app-level settings.

    Resolves the API key from the env var in config.api_key_env, falling
    back to the conventional Gemini key names.
    """
    cls = _PROVIDER_MAP.get(config.provider)
    if cls is None:
        raise ValueError(
            f"Unsupported LLM provider: {config.provider!r}. "
            f"Supported: {', '.join(_PROVIDER_MAP)}"
        )

    api_key = os.environ.get(config.api_key_env)
    if not api_key:
        for name in _FALLBACK_KEY_ENVS:
            api_key = os.environ.get(name)
            if api_key:
                break
    if not api_key:
        raise ValueError(
            f"Missing API key: set environment variable {config.api_key_env!r}"
        )
    return cls(
        api_key=api_key,
        timeout=config.timeout,
        max_retries=config.max_retries,
        thinking_budgets=config.thinking_budgets,
    )


__all__ = [
    "AVAILABLE_MODELS",
    "ChatSession",
    "ChatTransport",
    "ConversationTurn",
    "DEFAULT_MODEL_ID",
    "GeminiTransport",
    "ImagePart",
    "LLMError",
    "ModelVariant",
    "Part",
    "TextPart",
    "ThoughtPart",
    "ToolCallPart",
    "ToolResultPart",
    "ToolSpec",
    "create_transport",
    "get_model_variant",
]
