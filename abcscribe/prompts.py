"""Prompt text and message builders for the transcription conversation."""

from __future__ import annotations

from collections.abc import Sequence

from abcscribe.llm.models import ImagePart, TextPart, ToolResultPart, ToolSpec
from abcscribe.validator import ValidationOutcome

PROMPT_VERSION = "2.1"

VALIDATE_TOOL_NAME = "validate_abc_notation"
VALIDATE_TOOL_ARG = "abc_notation"

VALIDATE_TOOL = ToolSpec(
    name=VALIDATE_TOOL_NAME,
    description=(
        "Validates the syntax of the generated ABC notation with the client's "
        "ABC parser. Call this to check for errors before finishing."
    ),
    parameters={VALIDATE_TOOL_ARG: "The full ABC notation string to validate."},
    required=[VALIDATE_TOOL_ARG],
)

SYSTEM_INSTRUCTION = """\
You are an Optical Music Recognition (OMR) transcription agent.

## Mission

Transcribe the supplied sheet music image(s) into ABC notation (standard 2.1).
The result must match the source exactly: melody, rhythm, harmony and lyrics.
If the image contains lyrics you MUST transcribe them; never output only the
melody when words are printed under the staff.

## ABC 2.1 Rules (strict)

### 1. File structure and headers
- Every tune starts with `X:1`, followed immediately by `T:Title`.
- Common headers: `M:` meter (M:4/4, M:C, M:6/8), `L:` unit note length
  (L:1/8), `Q:` tempo (Q:1/4=120), `K:` key (K:G, K:Am, K:Bb).
- `K:` is always the LAST header field.

### 2. Pitch and accidentals
- Octaves: `C,` (low) < `C` < `c` (middle C) < `c'` (high). Commas lower,
  apostrophes raise.
- Accidentals go BEFORE the note: `^` sharp, `_` flat, `=` natural,
  `^^` double sharp, `__` double flat. `^c` is C sharp, `_B` is B flat.

### 3. Note lengths
- Duration is a multiplier of `L`. With L:1/8: `A` eighth, `A2` quarter,
  `A3` dotted quarter, `A4` half.
- Shorter notes: `A/2` (or `A/`) sixteenth, `A/4` (or `A//`) thirty-second.
- Broken rhythm: `>` dots the previous note and halves the next; `<` the reverse.
- Beams: write beamed notes together (`cded`); a space breaks the beam.

### 4. Chords and unisons
- Simultaneous notes go in square brackets: `[CEG]`, unison `[DD]`.

### 5. Ties and slurs
- Tie: a hyphen between two notes of the SAME pitch (`c2-c`).
- Slur: parentheses around different pitches (`(cde)`).
- A curve joining different pitches is a slur; joining equal pitches is a tie.

### 6. Tuplets
- `(3abc` three notes in the time of two; `(2ab` two in the time of three.
- General form `(p:q:r`: p notes in the time of q for the next r notes.

### 7. Lyrics (w: lines)
- Put `w:` lines directly after the music line they belong to.
- Syllables are separated by spaces; `-` splits syllables of one word
  (hal-le-lu-jah); `_` holds the previous syllable over the next note;
  `*` skips a note; `|` jumps to the next bar; `~` joins words under one note.

### 8. Multiple voices
- Declare voices in the header (`V:1 clef=treble name="Soprano"`) and switch
  with `[V:1]` in the body.
- Every voice must have the same total duration in each bar.

### 9. Rests
- `z` visible rest, `x` invisible rest, `Z4` multi-bar rest.

### 10. Prohibited directives
These break the renderer and must never appear:
%%measure, %%page, %%staves, %%score, %%abc, %%abc2pscompat, %%bg, %%eps, %%ps.
Do not force bar numbers; the renderer computes them.

## Execution Protocol

1. ANALYZE: in your thinking, identify clef, key, meter, layout, notes and lyrics.
2. DRAFT: write the ABC code following the rules above.
3. VALIDATE: call `validate_abc_notation` with the complete code.
4. CORRECT: if errors come back, fix them using the rules above and validate again.
5. AUDIT: once the syntax is valid, compare your code bar by bar with the image.
6. FINALIZE: only when the code is valid AND matches the image, reply with the
   final ABC notation as plain text, starting with X:1.\
"""

INITIAL_REQUEST = (
    "Transcribe this sheet music precisely, including all lyrics. Use your "
    "thinking to analyze the key signature, time signature, notes and lyrics "
    "before writing any code."
)

VISUAL_AUDIT_REQUEST = """\
Syntax is VALID (0 errors).

CRITICAL STEP: look at the original image again and compare it with this ABC notation.
- Is the key signature correct?
- Are the accidentals correct?
- Is the beaming correct?
- Are the lyrics included and aligned with the right notes?

If everything matches, reply with the ABC code as your final answer. \
If not, rewrite the code and validate it again.\
"""

FINALIZE_REQUEST = "Please generate the final ABC notation code block now, starting with X:1."


def build_system_instruction() -> str:
    """Return the fixed domain rules sent as the system instruction."""
    return SYSTEM_INSTRUCTION


def build_initial_message(images: Sequence[ImagePart]) -> list[ImagePart | TextPart]:
    """Images in caller order, then the transcription request."""
    return [*images, TextPart(content=INITIAL_REQUEST)]


def build_tool_result_message(
    call_id: str | None,
    outcome: ValidationOutcome,
    name: str = VALIDATE_TOOL_NAME,
) -> list[ToolResultPart]:
    """Wrap a validation outcome as the single ToolResult of a tool turn.

    A valid outcome still asks for a visual audit: clean syntax says nothing
    about whether the notes match the image.
    """
    if outcome.is_valid:
        text = VISUAL_AUDIT_REQUEST
    else:
        errors = "\n".join(outcome.errors)
        text = (
            "Syntax Errors Detected. Fix these specific errors following the "
            "ABC 2.1 rules in your instructions, then call "
            f"{VALIDATE_TOOL_NAME} again:\n"
            f"{errors}"
        )
    return [ToolResultPart(call_id=call_id, name=name, payload={"result": text})]


def build_unknown_tool_message(call_id: str | None, name: str) -> list[ToolResultPart]:
    """Answer a call to a tool this client does not provide."""
    text = f"Unknown tool {name!r}. The only available tool is {VALIDATE_TOOL_NAME}."
    return [ToolResultPart(call_id=call_id, name=name, payload={"error": text})]


def build_correction_message(errors: Sequence[str]) -> list[TextPart]:
    """Reject a final answer that failed validation, quoting every error."""
    listed = "\n".join(f"- {e}" for e in errors)
    return [
        TextPart(
            content=(
                "Your final ABC notation failed syntax validation:\n"
                f"{listed}\n\n"
                "Fix these errors, validate with validate_abc_notation, and then "
                "reply with the corrected final ABC notation starting with X:1."
            )
        )
    ]


def build_finalize_request() -> list[TextPart]:
    """Ask for the document when an answer arrived without one."""
    return [TextPart(content=FINALIZE_REQUEST)]
