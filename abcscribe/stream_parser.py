"""Classifies streamed model fragments and accumulates one turn's output."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import BaseModel, Field

from abcscribe.llm.models import Part, TextPart, ThoughtPart, ToolCallPart
from abcscribe.log_sink import LogCallback
from abcscribe.notation import preview_from_marker

logger = logging.getLogger(__name__)

PreviewCallback = Callable[[str], None]


class TurnOutput(BaseModel):
    """Everything one streamed model response produced."""

    answer_text: str = ""
    thought_text: str = ""
    tool_call: ToolCallPart | None = None
    dropped_tool_calls: list[ToolCallPart] = Field(default_factory=list)

    def model_parts(self) -> list[ThoughtPart | TextPart | ToolCallPart]:
        """The turn as it would appear in the conversation history."""
        parts: list[ThoughtPart | TextPart | ToolCallPart] = []
        if self.thought_text:
            parts.append(ThoughtPart(content=self.thought_text))
        if self.answer_text:
            parts.append(TextPart(content=self.answer_text))
        if self.tool_call is not None:
            parts.append(self.tool_call)
        return parts


class StreamingResponseParser:
    """Feeds on fragments of a single streamed turn.

    Thinking is reported as the whole accumulated thought so far, so the
    log sink can replace its last entry instead of appending. Answer text
    is previewed from the first start marker onward, or verbatim once it
    grows past ``preview_threshold`` characters.

    Only the first tool call of a turn is honored; later ones are kept in
    ``dropped_tool_calls`` and reported as a warning.
    """

    def __init__(
        self,
        on_log: LogCallback,
        on_preview: PreviewCallback,
        preview_threshold: int = 50,
    ) -> None:
        self._on_log = on_log
        self._on_preview = on_preview
        self._threshold = preview_threshold
        self._thoughts: list[str] = []
        self._answer: list[str] = []
        self._answer_len = 0
        self._tool_call: ToolCallPart | None = None
        self._dropped: list[ToolCallPart] = []

    def feed(self, fragment: Part) -> None:
        if isinstance(fragment, ThoughtPart):
            self._feed_thought(fragment)
        elif isinstance(fragment, TextPart):
            self._feed_answer(fragment)
        elif isinstance(fragment, ToolCallPart):
            self._feed_tool_call(fragment)
        else:
            logger.warning("Ignoring unexpected %s fragment in model stream", fragment.kind)

    def _feed_thought(self, fragment: ThoughtPart) -> None:
        if not fragment.content:
            return
        self._thoughts.append(fragment.content)
        self._on_log("".join(self._thoughts), "thinking")

    def _feed_answer(self, fragment: TextPart) -> None:
        if not fragment.content:
            return
        self._answer.append(fragment.content)
        self._answer_len += len(fragment.content)
        text = "".join(self._answer)
        preview = preview_from_marker(text)
        if preview is not None:
            self._on_preview(preview)
        elif self._answer_len > self._threshold:
            self._on_preview(text)

    def _feed_tool_call(self, fragment: ToolCallPart) -> None:
        if self._tool_call is None:
            self._tool_call = fragment
            return
        self._dropped.append(fragment)
        logger.warning(
            "Dropping extra tool call %s (id=%s); %s already pending",
            fragment.name,
            fragment.call_id,
            self._tool_call.name,
        )
        self._on_log(
            f"Ignoring additional tool call '{fragment.name}' in the same turn.",
            "warning",
        )

    def result(self) -> TurnOutput:
        return TurnOutput(
            answer_text="".join(self._answer),
            thought_text="".join(self._thoughts),
            tool_call=self._tool_call,
            dropped_tool_calls=list(self._dropped),
        )
