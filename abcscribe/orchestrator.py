"""Turn-taking state machine that drives one image-to-ABC conversion."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from abcscribe.config.models import ConversionSettings
from abcscribe.llm import get_model_variant
from abcscribe.llm.base import ChatSession, ChatTransport
from abcscribe.llm.models import ConversationTurn, ImagePart, LLMError, ModelVariant, Part
from abcscribe.log_sink import LogCallback
from abcscribe.notation import clean_abc, extract_document
from abcscribe.prompts import (
    VALIDATE_TOOL,
    VALIDATE_TOOL_ARG,
    VALIDATE_TOOL_NAME,
    build_correction_message,
    build_finalize_request,
    build_initial_message,
    build_system_instruction,
    build_tool_result_message,
    build_unknown_tool_message,
)
from abcscribe.stream_parser import PreviewCallback, StreamingResponseParser, TurnOutput
from abcscribe.validator import NotationValidator

logger = logging.getLogger(__name__)


class ConversionStatus(str, enum.Enum):
    INIT = "init"
    TURN_ACTIVE = "turn_active"
    TOOL_DISPATCH = "tool_dispatch"
    DONE = "done"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ConversionCancelled(Exception):
    """Raised when the caller abandons a conversion mid-flight."""


class ConversionRequest(BaseModel):
    """Inputs for one conversion attempt."""

    model_config = ConfigDict(frozen=True)

    images: tuple[ImagePart, ...]
    model_id: str

    @field_validator("images")
    @classmethod
    def validate_images(cls, v: tuple[ImagePart, ...]) -> tuple[ImagePart, ...]:
        if not v:
            raise ValueError("at least one image is required")
        return v


class ConversionState(BaseModel):
    """Mutable per-attempt state. Owned by a single convert() call."""

    status: ConversionStatus = ConversionStatus.INIT
    turns: list[ConversationTurn] = Field(default_factory=list)
    turn_count: int = 0
    running_answer_text: str = ""
    best_effort: str = ""
    thoughts: list[str] = Field(default_factory=list)
    final_document: str | None = None


class ConversionResult(BaseModel):
    """What a finished (or exhausted) conversion hands back."""

    document: str
    status: ConversionStatus
    turns: int
    thoughts: str = ""

    @property
    def exhausted(self) -> bool:
        return self.status == ConversionStatus.EXHAUSTED


def _noop_log(message: str, category: str = "info") -> None:
    pass


def _noop_preview(text: str) -> None:
    pass


class ConversionOrchestrator:
    """Runs the conversation until a validated document or the turn budget.

    Termination needs two signals: the model must answer in plain text
    (stop calling the tool) and the document in that answer must pass one
    final validation. A valid tool result alone only triggers a request
    for a visual audit.

    The orchestrator holds configuration only; every attempt builds its
    own ConversionState and ChatSession, so one instance can serve
    concurrent conversions.
    """

    def __init__(
        self,
        transport: ChatTransport,
        validator: NotationValidator,
        settings: ConversionSettings | None = None,
    ) -> None:
        self.transport = transport
        self.validator = validator
        self.settings = settings or ConversionSettings()

    async def convert(
        self,
        request: ConversionRequest,
        on_log: LogCallback = _noop_log,
        on_preview: PreviewCallback = _noop_preview,
        cancel_event: asyncio.Event | None = None,
    ) -> ConversionResult:
        """Convert the request's images to an ABC document.

        Transport failures are logged as an Error event and re-raised
        (LLMError for wrapped SDK errors and timeouts). Raises
        ConversionCancelled when *cancel_event* is set. Running out of turns
        is not an error: the best-effort document comes back with status
        EXHAUSTED.
        """
        model = get_model_variant(request.model_id)
        state = ConversionState()
        try:
            return await self._run(request, model, state, on_log, on_preview, cancel_event)
        except ConversionCancelled:
            state.status = ConversionStatus.CANCELLED
            logger.info("Conversion cancelled after %d turn(s)", state.turn_count)
            raise
        except Exception as e:
            # SDK network errors can arrive unwrapped; fail them the same way.
            state.status = ConversionStatus.FAILED
            logger.error("Conversion failed on turn %d: %s", state.turn_count + 1, e)
            on_log(f"Error: {e}", "warning")
            raise

    async def _run(
        self,
        request: ConversionRequest,
        model: ModelVariant,
        state: ConversionState,
        on_log: LogCallback,
        on_preview: PreviewCallback,
        cancel_event: asyncio.Event | None,
    ) -> ConversionResult:
        session = self.transport.open_session(
            model, build_system_instruction(), [VALIDATE_TOOL]
        )
        on_log("Analyzing input image(s)...", "thinking")
        message: list[Part] = list(build_initial_message(request.images))
        role = "user"

        while state.turn_count < self.settings.max_turns:
            self._check_cancelled(cancel_event)
            state.status = ConversionStatus.TURN_ACTIVE
            state.turns.append(ConversationTurn(role=role, parts=message))
            on_log(f"Turn {state.turn_count + 1}: Processing...", "info")
            logger.debug("Turn %d: sending %d part(s)", state.turn_count + 1, len(message))

            output = await self._drain(session, message, on_log, on_preview, cancel_event)
            state.turns.append(ConversationTurn(role="model", parts=output.model_parts()))
            state.running_answer_text = output.answer_text
            if output.thought_text:
                state.thoughts.append(output.thought_text)
            state.turn_count += 1

            if output.tool_call is not None:
                state.status = ConversionStatus.TOOL_DISPATCH
                message = self._dispatch_tool(output, state, on_log, on_preview)
                role = "tool"
                continue

            document = extract_document(output.answer_text)
            if document is None:
                if output.answer_text.strip():
                    state.best_effort = clean_abc(output.answer_text)
                on_log("Model response ended without code. Retrying...", "warning")
                message = list(build_finalize_request())
                role = "user"
                continue

            state.best_effort = document
            outcome = self.validator(document)
            if outcome.is_valid:
                state.final_document = document
                state.status = ConversionStatus.DONE
                on_preview(document)
                on_log("Finalizing output...", "success")
                logger.info("Conversion done in %d turn(s)", state.turn_count)
                return ConversionResult(
                    document=document,
                    status=state.status,
                    turns=state.turn_count,
                    thoughts="\n\n".join(state.thoughts),
                )

            on_log(
                f"Final document failed validation ({len(outcome.errors)} errors). "
                "Requesting fix...",
                "warning",
            )
            message = list(build_correction_message(outcome.errors))
            role = "user"

        state.status = ConversionStatus.EXHAUSTED
        on_log("Max refinement turns reached. Returning best effort.", "warning")
        logger.warning(
            "Turn budget of %d exhausted; returning best-effort document",
            self.settings.max_turns,
        )
        return ConversionResult(
            document=state.best_effort,
            status=state.status,
            turns=state.turn_count,
            thoughts="\n\n".join(state.thoughts),
        )

    async def _drain(
        self,
        session: ChatSession,
        message: Sequence[Part],
        on_log: LogCallback,
        on_preview: PreviewCallback,
        cancel_event: asyncio.Event | None,
    ) -> TurnOutput:
        parser = StreamingResponseParser(
            on_log, on_preview, preview_threshold=self.settings.preview_threshold
        )
        stream = session.send_stream(message)
        try:
            while True:
                try:
                    fragment = await self._next_fragment(stream)
                except StopAsyncIteration:
                    break
                self._check_cancelled(cancel_event)
                parser.feed(fragment)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return parser.result()

    async def _next_fragment(self, stream: AsyncIterator[Part]) -> Part:
        timeout = self.settings.fragment_timeout
        if timeout is None:
            return await anext(stream)
        try:
            return await asyncio.wait_for(anext(stream), timeout)
        except asyncio.TimeoutError as e:
            raise LLMError(self.transport.provider_name, "stream", e) from e

    def _dispatch_tool(
        self,
        output: TurnOutput,
        state: ConversionState,
        on_log: LogCallback,
        on_preview: PreviewCallback,
    ) -> list[Part]:
        call = output.tool_call
        on_log(f"Agent requesting tool: {call.name}", "info")
        if call.name != VALIDATE_TOOL_NAME:
            logger.warning("Model called unknown tool %r", call.name)
            return list(build_unknown_tool_message(call.call_id, call.name))

        candidate = call.args.get(VALIDATE_TOOL_ARG) or ""
        if not isinstance(candidate, str):
            candidate = str(candidate)
        if candidate:
            cleaned = clean_abc(candidate)
            state.best_effort = cleaned
            on_preview(cleaned)
        elif output.answer_text.strip():
            state.best_effort = clean_abc(output.answer_text)

        on_log("Running syntax validation engine...", "info")
        outcome = self.validator(candidate)
        if outcome.is_valid:
            on_log("Syntax valid. Requesting visual accuracy check...", "info")
        else:
            on_log(f"Syntax errors found: {len(outcome.errors)}", "warning")
        logger.debug("Tool validation: valid=%s errors=%d", outcome.is_valid, len(outcome.errors))
        return list(build_tool_result_message(call.call_id, outcome, name=call.name))

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ConversionCancelled("conversion cancelled by caller")


async def convert(
    images: Sequence[ImagePart],
    model_id: str,
    on_log: LogCallback,
    on_preview: PreviewCallback,
    validate: NotationValidator,
    *,
    transport: ChatTransport,
    settings: ConversionSettings | None = None,
    cancel_event: asyncio.Event | None = None,
) -> ConversionResult:
    """One-call entry point mirroring the collaborator contract."""
    request = ConversionRequest(images=tuple(images), model_id=model_id)
    orchestrator = ConversionOrchestrator(transport, validate, settings)
    return await orchestrator.convert(
        request, on_log=on_log, on_preview=on_preview, cancel_event=cancel_event
    )
