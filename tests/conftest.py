"""Shared test fixtures for abcscribe."""

import asyncio

import pytest

from abcscribe.config.models import AbcScribeConfig
from abcscribe.llm.base import ChatSession, ChatTransport
from abcscribe.llm.models import ImagePart
from abcscribe.validator import ValidationOutcome

VALID_ABC = "X:1\nT:Test Tune\nM:4/4\nL:1/8\nK:G\nGABc dedB|dedB dedB|"


class ScriptedSession(ChatSession):
    """Replays one list of fragments per turn and records what was sent.

    When the script runs out, the last turn repeats.
    """

    def __init__(self, script, fail_on_turn=None, error=None, delay=None):
        self.script = [list(turn) for turn in script]
        self.fail_on_turn = fail_on_turn
        self.error = error
        self.delay = delay
        self.sent = []

    async def send_stream(self, parts):
        self.sent.append(list(parts))
        turn = len(self.sent)
        if self.fail_on_turn == turn:
            raise self.error
        fragments = self.script[min(turn, len(self.script)) - 1]
        for fragment in fragments:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield fragment


class ScriptedTransport(ChatTransport):
    provider_name = "scripted"

    def __init__(self, script, **session_kwargs):
        self.script = script
        self.session_kwargs = session_kwargs
        self.sessions = []
        self.opened_with = []

    def open_session(self, model, system_instruction, tools):
        self.opened_with.append((model, system_instruction, list(tools)))
        session = ScriptedSession(self.script, **self.session_kwargs)
        self.sessions.append(session)
        return session

    @property
    def session(self):
        return self.sessions[-1]


class RecordingValidator:
    """Validator stub: documents listed in ``invalid`` fail with ``errors``."""

    def __init__(self, invalid=None, errors=None):
        self.invalid = set(invalid or [])
        self.errors = list(errors or ["Unknown syntax warning"])
        self.calls = []

    def __call__(self, text):
        self.calls.append(text)
        if text in self.invalid:
            return ValidationOutcome(is_valid=False, errors=list(self.errors))
        return ValidationOutcome(is_valid=True, errors=[])


@pytest.fixture
def sample_image():
    return ImagePart(data=b"\x89PNG\r\n\x1a\nfake", mime_type="image/png")


@pytest.fixture
def valid_abc():
    return VALID_ABC


@pytest.fixture
def make_transport():
    def _make(script, **session_kwargs):
        return ScriptedTransport(script, **session_kwargs)

    return _make


@pytest.fixture
def make_validator():
    def _make(invalid=None, errors=None):
        return RecordingValidator(invalid=invalid, errors=errors)

    return _make


@pytest.fixture
def sample_config():
    return AbcScribeConfig()


@pytest.fixture
def png_file(tmp_path):
    path = tmp_path / "page1.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\nfake-image-bytes")
    return path
