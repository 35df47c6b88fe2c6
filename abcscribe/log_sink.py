"""User-facing progress log with streaming-friendly coalescing."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime
from typing import Literal

from pydantic import BaseModel

LogCategory = Literal["info", "success", "warning", "thinking"]

# (message, category) -> None; the shape callers hand to convert().
LogCallback = Callable[[str, LogCategory], None]


class LogEvent(BaseModel):
    """One displayed entry in the conversion log."""

    timestamp_text: str
    category: LogCategory
    message: str


def _timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


class LogStream:
    """Append-only log that collapses consecutive ``thinking`` entries.

    Thinking events carry the whole accumulated thought text, so a new
    thinking event replaces the previous one in place; an identical message
    is a no-op. Every other category appends.
    """

    def __init__(
        self,
        clock: Callable[[], str] = _timestamp,
        listener: Callable[[LogEvent, bool], None] | None = None,
    ) -> None:
        self._events: list[LogEvent] = []
        self._clock = clock
        # listener(event, replaced) fires after every visible change.
        self._listener = listener

    def __call__(self, message: str, category: LogCategory = "info") -> None:
        self.add(message, category)

    def add(self, message: str, category: LogCategory = "info") -> bool:
        """Record an event. Returns False when the update was a no-op."""
        last = self._events[-1] if self._events else None
        if category == "thinking" and last is not None and last.category == "thinking":
            if last.message == message:
                return False
            updated = last.model_copy(update={"message": message})
            self._events[-1] = updated
            self._notify(updated, replaced=True)
            return True

        event = LogEvent(timestamp_text=self._clock(), category=category, message=message)
        self._events.append(event)
        self._notify(event, replaced=False)
        return True

    def _notify(self, event: LogEvent, replaced: bool) -> None:
        if self._listener is not None:
            self._listener(event, replaced)

    @property
    def events(self) -> list[LogEvent]:
        return list(self._events)

    def by_category(self, category: LogCategory) -> list[LogEvent]:
        return [e for e in self._events if e.category == category]

    def __iter__(self) -> Iterator[LogEvent]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)
