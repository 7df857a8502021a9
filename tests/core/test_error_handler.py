"""
Unit tests for `core/error_handler.py` – recovery without ever raising.

Focus:
- The apology is appended once, the error is cleared and the state returns to the router
- Non-English conversations get a localized apology; localization failures fall back to English
- A failure inside the handler itself still produces a message (the terminal apology)
"""

import os

import pytest

os.environ.setdefault("NEBIUS_API_KEY", "test-key")

from conftest import FakeCompletionService, make_state
from core.error_handler import DEFAULT_APOLOGY, TERMINAL_APOLOGY, ErrorHandler, terminal_state
from shared.exceptions import UpstreamServiceError
from shared.models import ControlFlags, LanguagePreference, MemoryContext, Role, Stage


def _failed_state(language_code="en", language_name="English"):
    return make_state(
        "Olá",
        control=ControlFlags(lastError="general_worker: boom"),
        memory=MemoryContext(languagePreference=LanguagePreference(code=language_code, name=language_name)),
        next=Stage.ERROR_HANDLER,
    )


def test_apology_clears_error_and_returns_to_router():
    handler = ErrorHandler(FakeCompletionService())
    result = handler.run(_failed_state())

    assert result.next == Stage.ROUTER
    assert result.control.lastError is None
    assert result.messages[-1].role == Role.ASSISTANT
    assert result.messages[-1].content == DEFAULT_APOLOGY
    assert len(result.messages) == 2


def test_apology_is_localized_for_portuguese():
    completion = FakeCompletionService(replies={"error_localization": "Peço desculpas, houve um problema inesperado."})
    handler = ErrorHandler(completion)
    result = handler.run(_failed_state("pt-BR", "Portuguese"))

    assert result.messages[-1].content == "Peço desculpas, houve um problema inesperado."
    prompt = completion.calls_for("error_localization")[0][2][0]["content"]
    assert "Portuguese" in prompt
    assert DEFAULT_APOLOGY in prompt


def test_localization_failure_uses_english_text():
    """A throwing completion service must not prevent the apology."""
    completion = FakeCompletionService(replies={"error_localization": UpstreamServiceError("down")})
    result = ErrorHandler(completion).run(_failed_state("pt", "Portuguese"))

    assert result.next == Stage.ROUTER
    assert result.messages[-1].content == DEFAULT_APOLOGY


def test_english_conversation_skips_completion_call():
    completion = FakeCompletionService()
    ErrorHandler(completion).run(_failed_state())
    assert completion.calls == []


def test_internal_failure_falls_back_to_terminal_apology(monkeypatch):
    """
    If the handler's own processing raises, `_on_failure` still appends a
    non-empty message and hands the state to the router.
    """
    handler = ErrorHandler(FakeCompletionService())

    def explode(state, text):
        raise RuntimeError("localization wiring broken")

    monkeypatch.setattr(handler, "localize", explode)
    result = handler.run(_failed_state())

    assert result.next == Stage.ROUTER
    assert result.messages[-1].content == TERMINAL_APOLOGY
    assert result.control.lastError is None


@pytest.mark.parametrize("next_stage", [Stage.END, Stage.ROUTER])
def test_terminal_state_appends_fixed_text(next_stage):
    state = _failed_state()
    result = terminal_state(state, next_stage=next_stage)

    assert result.next == next_stage
    assert result.messages[-1].content == TERMINAL_APOLOGY
    assert state.messages[-1].role == Role.USER
