"""Tests for fragment classification and live previews."""

from abcscribe.llm.models import TextPart, ThoughtPart, ToolCallPart
from abcscribe.log_sink import LogStream
from abcscribe.stream_parser import StreamingResponseParser


def _parser(threshold=50):
    logs = []
    previews = []
    parser = StreamingResponseParser(
        lambda message, category: logs.append((category, message)),
        previews.append,
        preview_threshold=threshold,
    )
    return parser, logs, previews


class TestThoughts:
    def test_thinking_carries_accumulated_text(self):
        parser, logs, _ = _parser()
        parser.feed(ThoughtPart(content="The key "))
        parser.feed(ThoughtPart(content="is G major."))

        assert logs == [
            ("thinking", "The key "),
            ("thinking", "The key is G major."),
        ]
        assert parser.result().thought_text == "The key is G major."

    def test_repeated_accumulation_is_one_log_entry(self):
        stream = LogStream()
        parser = StreamingResponseParser(stream, lambda text: None)
        parser.feed(ThoughtPart(content="Meter is 6/8."))
        parser.feed(ThoughtPart(content=""))

        assert len(stream) == 1
        assert stream.events[0].message == "Meter is 6/8."

    def test_thoughts_never_reach_answer(self):
        parser, _, previews = _parser()
        parser.feed(ThoughtPart(content="X:1 would be the header"))

        assert previews == []
        assert parser.result().answer_text == ""


class TestAnswerPreview:
    def test_preview_starts_at_marker(self):
        parser, _, previews = _parser()
        parser.feed(TextPart(content="chatter X:1\nT:A"))

        assert previews == ["X:1\nT:A"]

    def test_marker_split_across_fragments(self):
        parser, _, previews = _parser()
        parser.feed(TextPart(content="Sure. X"))
        parser.feed(TextPart(content=":1\nK:C"))

        assert previews == ["X:1\nK:C"]
        assert parser.result().answer_text == "Sure. X:1\nK:C"

    def test_short_chatter_is_not_previewed(self):
        parser, _, previews = _parser()
        parser.feed(TextPart(content="Let me look at this."))

        assert previews == []

    def test_long_text_without_marker_is_previewed_raw(self):
        parser, _, previews = _parser(threshold=10)
        parser.feed(TextPart(content="T:Untitled\nK:D\n"))

        assert previews == ["T:Untitled\nK:D\n"]


class TestToolCalls:
    def test_tool_call_captured(self):
        parser, _, _ = _parser()
        call = ToolCallPart(name="validate_abc_notation", args={"abc_notation": "X:1"}, call_id="c1")
        parser.feed(TextPart(content="Validating."))
        parser.feed(call)

        out = parser.result()
        assert out.tool_call == call
        assert out.answer_text == "Validating."
        assert out.dropped_tool_calls == []

    def test_first_tool_call_wins(self):
        parser, logs, _ = _parser()
        first = ToolCallPart(name="validate_abc_notation", args={"abc_notation": "a"}, call_id="1")
        second = ToolCallPart(name="validate_abc_notation", args={"abc_notation": "b"}, call_id="2")
        parser.feed(first)
        parser.feed(second)

        out = parser.result()
        assert out.tool_call.call_id == "1"
        assert [c.call_id for c in out.dropped_tool_calls] == ["2"]
        assert logs[-1][0] == "warning"

    def test_model_parts_order(self):
        parser, _, _ = _parser()
        parser.feed(ThoughtPart(content="hmm"))
        parser.feed(TextPart(content="ok"))
        parser.feed(ToolCallPart(name="validate_abc_notation", call_id="z"))

        kinds = [p.kind for p in parser.result().model_parts()]
        assert kinds == ["thought", "text", "tool_call"]
