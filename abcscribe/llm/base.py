"""Abstract chat transport for abcscribe."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence

from abcscribe.llm.models import ModelVariant, Part, ToolSpec


class ChatSession(ABC):
    """A stateful multi-turn conversation with one model.

    The session owns the provider-side history; callers only send the
    parts of the next message and drain the streamed reply.
    """

    @abstractmethod
    def send_stream(self, parts: Sequence[Part]) -> AsyncIterator[Part]:
        """Send one message and yield normalized reply fragments as they arrive.

        Fragments are ThoughtPart, TextPart or ToolCallPart instances. Provider
        failures surface as LLMError.
        """
        ...


class ChatTransport(ABC):
    """Provider-agnostic factory for chat sessions.

    Transports are injected into the orchestrator so tests can swap in a
    scripted fake; nothing here reads global state.
    """

    provider_name: str = "unknown"

    @abstractmethod
    def open_session(
        self,
        model: ModelVariant,
        system_instruction: str,
        tools: Sequence[ToolSpec],
    ) -> ChatSession:
        """Start a fresh conversation. Sessions are never shared between attempts."""
        ...
