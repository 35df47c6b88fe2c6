"""Syntax validator for ABC notation documents."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Callable

from music21 import converter
from pydantic import BaseModel, Field

from abcscribe.config.models import DEFAULT_PROHIBITED_DIRECTIVES

logger = logging.getLogger(__name__)

_FIELD_LINE = re.compile(r"^([A-Za-z]):")
_INLINE_FIELD = re.compile(r"\[[A-Za-z]:[^\]]*\]")
_QUOTED = re.compile(r'"[^"]*"')
# Barlines and variant endings that reuse the bracket characters.
_BRACKET_BARLINES = re.compile(r"\[\||\|\]|\[(?=\d)")

# Fields that belong before K: when they open a tune.
_PRE_KEY_FIELDS = {"M", "L", "Q"}

_PAIRS = {"]": "[", "}": "{"}

_KEY_LINE = re.compile(r"^K:", re.MULTILINE)
_UNIT_OR_METER = re.compile(r"^[LM]:", re.MULTILINE)

NO_MUSIC_ERROR = "No valid ABC music data found."


class ValidationOutcome(BaseModel):
    """Result of validating one document. Produced fresh for every call."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)


NotationValidator = Callable[[str], ValidationOutcome]


class AbcValidator:
    """Checks ABC text for structural problems, then parses it with music21.

    Calling an instance never raises: every problem, including parser
    exceptions, comes back as an error string. Instances hold no mutable
    state, so one validator can serve concurrent conversions.
    """

    def __init__(
        self,
        strict: bool = False,
        prohibited_directives: Sequence[str] | None = None,
    ) -> None:
        self.strict = strict
        directives = (
            DEFAULT_PROHIBITED_DIRECTIVES
            if prohibited_directives is None
            else prohibited_directives
        )
        self._prohibited = [
            (d, re.compile(re.escape(d) + r"(?![\w-])")) for d in directives
        ]

    def __call__(self, text: str) -> ValidationOutcome:
        return self.validate(text)

    def validate(self, text: str) -> ValidationOutcome:
        if not text or not text.strip():
            return ValidationOutcome(is_valid=False, errors=[NO_MUSIC_ERROR])

        errors: list[str] = []
        lines = text.strip().splitlines()
        body_start = self._check_header(lines, errors)
        self._check_directives(lines, errors)
        if body_start is not None:
            self._check_brackets(lines, body_start, errors)

        if not errors:
            errors.extend(self._parse(_with_default_unit_length(text)))

        if errors:
            logger.debug("ABC validation failed with %d error(s)", len(errors))
        return ValidationOutcome(is_valid=not errors, errors=errors)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_header(self, lines: list[str], errors: list[str]) -> int | None:
        """Validate the header block; return the index of the first body line."""
        # Leading comments such as the %abc-2.1 version line may precede X:.
        first = next(
            (i for i, line in enumerate(lines) if line.strip() and not line.lstrip().startswith("%")),
            0,
        )
        if not lines[first].startswith("X:"):
            errors.append(
                f"Line {first + 1}: tune must start with the X: reference number field."
            )

        key_index = None
        has_title = False
        for i, line in enumerate(lines):
            match = _FIELD_LINE.match(line)
            if not match:
                if line.strip() and not line.lstrip().startswith("%"):
                    # Music before K: ends the header early.
                    break
                continue
            if match.group(1) == "T":
                has_title = True
            if match.group(1) == "K":
                key_index = i
                break

        if key_index is None:
            errors.append("Missing K: key field; K: must be the last header field.")
            return None
        if self.strict and not has_title:
            errors.append("Missing T: title field in header.")

        # Header-only fields written after K: but before any music.
        for i in range(key_index + 1, len(lines)):
            match = _FIELD_LINE.match(lines[i])
            if not match:
                if lines[i].strip() and not lines[i].lstrip().startswith("%"):
                    break
                continue
            if match.group(1) in _PRE_KEY_FIELDS:
                errors.append(
                    f"Line {i + 1}: header field {match.group(1)}: must come before K: "
                    "(K: must be the last header field)."
                )
        return key_index + 1

    def _check_directives(self, lines: list[str], errors: list[str]) -> None:
        for i, line in enumerate(lines):
            stripped = line.strip()
            if not stripped.startswith("%%"):
                continue
            for name, pattern in self._prohibited:
                if pattern.match(stripped):
                    errors.append(f"Line {i + 1}: unsupported directive {name} is not allowed.")
                    break

    @staticmethod
    def _check_brackets(lines: list[str], start: int, errors: list[str]) -> None:
        for i in range(start, len(lines)):
            line = lines[i]
            if not line.strip() or _FIELD_LINE.match(line) or line.lstrip().startswith("%"):
                continue
            music = line.split("%", 1)[0]
            music = _QUOTED.sub("", music)
            music = _INLINE_FIELD.sub("", music)
            music = _BRACKET_BARLINES.sub("", music)

            stack: list[str] = []
            for ch in music:
                if ch in "[{":
                    stack.append(ch)
                elif ch in _PAIRS:
                    if not stack or stack[-1] != _PAIRS[ch]:
                        errors.append(f"Line {i + 1}: unmatched '{ch}'.")
                        break
                    stack.pop()
            else:
                if stack:
                    errors.append(f"Line {i + 1}: unclosed '{stack[-1]}'.")

    @staticmethod
    def _parse(text: str) -> list[str]:
        try:
            parsed = converter.parseData(text, format="abc")
        except Exception as e:
            return [f"Parser error: {e}"]
        if next(iter(parsed.recurse().notesAndRests), None) is None:
            return [NO_MUSIC_ERROR]
        return []


def _with_default_unit_length(text: str) -> str:
    """Make the 1/8 default explicit for tunes with neither L: nor M: in the header."""
    key = _KEY_LINE.search(text)
    if key is None or _UNIT_OR_METER.search(text, 0, key.start()):
        return text
    return text[: key.start()] + "L:1/8\n" + text[key.start() :]


_default_validator = AbcValidator()


def validate_abc(text: str) -> ValidationOutcome:
    """Validate with default settings."""
    return _default_validator(text)
