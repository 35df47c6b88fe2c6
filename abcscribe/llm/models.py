"""Pydantic models for the LLM subsystem."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LLMError(Exception):
    """Wraps provider-specific exceptions with context."""

    def __init__(
        self, provider: str, operation: str, cause: Exception, retryable: bool = False
    ) -> None:
        self.provider = provider
        self.operation = operation
        self.retryable = retryable
        super().__init__(f"{provider} {operation} failed: {cause}")
        self.__cause__ = cause


class ImagePart(BaseModel):
    """Inline image sent to the model."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["image"] = "image"
    data: bytes
    mime_type: str


class TextPart(BaseModel):
    """Plain text; for a model turn this is answer text."""

    kind: Literal["text"] = "text"
    content: str


class ThoughtPart(BaseModel):
    """Model reasoning surfaced for transparency, never part of the answer."""

    kind: Literal["thought"] = "thought"
    content: str


class ToolCallPart(BaseModel):
    """A request from the model to run a client-side function."""

    kind: Literal["tool_call"] = "tool_call"
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    call_id: str | None = None


class ToolResultPart(BaseModel):
    """The client's answer to a ToolCallPart."""

    kind: Literal["tool_result"] = "tool_result"
    call_id: str | None = None
    name: str
    payload: dict[str, Any] = Field(default_factory=dict)


Part = Annotated[
    Union[ImagePart, TextPart, ThoughtPart, ToolCallPart, ToolResultPart],
    Field(discriminator="kind"),
]


class ConversationTurn(BaseModel):
    """One message in a conversion conversation."""

    role: Literal["user", "model", "tool"]
    parts: list[Part] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_parts(self) -> ConversationTurn:
        kinds = [p.kind for p in self.parts]
        if self.role == "tool":
            if kinds != ["tool_result"]:
                raise ValueError("a tool turn must contain exactly one tool_result part")
        elif self.role == "user":
            if any(k in ("thought", "tool_call", "tool_result") for k in kinds):
                raise ValueError("a user turn may only contain image and text parts")
        elif "tool_result" in kinds or "image" in kinds:
            raise ValueError("a model turn may only contain thought, text and tool_call parts")
        return self


class ToolSpec(BaseModel):
    """Provider-neutral declaration of a client-side tool.

    Every parameter is a string; ``parameters`` maps name -> description.
    """

    name: str
    description: str
    parameters: dict[str, str] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)


class ModelVariant(BaseModel):
    """A selectable model and its thinking tuning."""

    id: str
    name: str
    thinking_budget: int | None = None
