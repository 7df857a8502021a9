"""
Tests for `filters/input_filter.py`.

Focus:
- Markup removal, whitespace collapse and the length cap of `sanitize_text`
- Deduplication keeps the newest copy and caps the conversational window
- The stage records the detected language and is a no-op when re-entered
"""

import os
from unittest.mock import MagicMock

os.environ.setdefault("NEBIUS_API_KEY", "test-key")

from conftest import make_state
from filters.input_filter import InputFilter, deduplicate_messages, sanitize_text
from shared.models import ControlFlags, LanguageDetection, Message, Role, Stage


def _detector(code="pt", name="Portuguese"):
    detector = MagicMock()
    detector.detect.return_value = LanguageDetection(code=code, name=name, confidence=0.9)
    return detector


def test_sanitize_removes_scripts_and_tags():
    text = "Hello <b>there</b><script>alert('x')</script>   friend"
    assert sanitize_text(text) == "Hello there friend"


def test_sanitize_truncates_long_text():
    assert sanitize_text("a" * 20, max_length=10) == "a" * 10 + "..."


def test_deduplicate_keeps_newest_copy_and_system_messages():
    messages = [
        Message(role=Role.SYSTEM, content="rules"),
        Message(role=Role.USER, content="Hi"),
        Message(role=Role.ASSISTANT, content="Hello!"),
        Message(role=Role.USER, content="hi "),
        Message(role=Role.ASSISTANT, content="How can I help?"),
    ]
    result = deduplicate_messages(messages, max_history=6)
    assert [(m.role, m.content) for m in result] == [
        (Role.SYSTEM, "rules"),
        (Role.ASSISTANT, "Hello!"),
        (Role.USER, "hi "),
        (Role.ASSISTANT, "How can I help?"),
    ]


def test_deduplicate_caps_conversational_window():
    messages = [Message(role=Role.SYSTEM, content="rules")]
    messages += [Message(role=Role.USER if i % 2 == 0 else Role.ASSISTANT, content=f"m{i}") for i in range(10)]
    result = deduplicate_messages(messages, max_history=4)

    assert [m.content for m in result] == ["rules", "m6", "m7", "m8", "m9"]


def test_stage_sanitizes_detects_language_and_routes():
    detector = _detector()
    stage = InputFilter(detector, max_message_length=50, max_history=6)
    result = stage.run(make_state("  <i>Oi,</i>   tudo bem?  "))

    assert result.next == Stage.ROUTER
    assert result.control.inputValidated
    assert result.messages[-1].content == "Oi, tudo bem?"
    assert result.memory.languagePreference.code == "pt"
    assert result.memory.languagePreference.name == "Portuguese"
    assert result.memory.lastInteraction is not None
    detector.detect.assert_called_once_with("Oi, tudo bem?")


def test_stage_is_noop_when_already_validated():
    detector = _detector()
    state = make_state("<b>hi</b>", control=ControlFlags(inputValidated=True), next=Stage.INPUT_FILTER)
    result = InputFilter(detector).run(state)

    assert result.messages[-1].content == "<b>hi</b>"
    detector.detect.assert_not_called()
