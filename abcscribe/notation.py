"""Locating and cleaning ABC documents inside free-form model text."""

from __future__ import annotations

import re

# Every tune starts with its reference-number header.
START_MARKER = "X:"

_FROM_MARKER = re.compile(r"X:[\s\S]*")
_OPEN_FENCE = re.compile(r"```(?:abc)?[ \t]*\n?")
_CLOSE_FENCE = re.compile(r"\n?```\s*$")
# A fence line after the tune closes the code block; anything past it is prose.
_FENCE_LINE = re.compile(r"\n[ \t]*```")


def clean_abc(text: str) -> str:
    """Strip chatter before the start marker and any markdown code fences."""
    if not text:
        return ""
    match = _FROM_MARKER.search(text)
    if match:
        body = _FENCE_LINE.split(match.group(0), maxsplit=1)[0]
        return _CLOSE_FENCE.sub("", body).replace("```abc", "").strip()
    body = _OPEN_FENCE.sub("", text, count=1) if text.lstrip().startswith("```") else text
    return _CLOSE_FENCE.sub("", body.strip()).strip()


def extract_document(text: str) -> str | None:
    """Return the cleaned document if *text* contains the start marker."""
    if START_MARKER not in text:
        return None
    return clean_abc(text)


def preview_from_marker(text: str) -> str | None:
    """Return the raw suffix of *text* starting at the first start marker."""
    index = text.find(START_MARKER)
    if index == -1:
        return None
    return text[index:]
