"""
conftest.py – central pytest configuration, test bootstrap and shared fixtures.

Pytest imports this module before it collects any test files, which lets us
prepare the environment once for the whole suite:

1) Extend `sys.path` with the project root directory so absolute-style imports
   like `from core ...` and `from shared ...` resolve without an editable install.
2) Define safe default environment variables required at import time by the
   configuration layer (`config/__init__.py` validates that an LLM key exists),
   and select the in-memory checkpoint store so no test writes to disk by accident.
3) Provide `FakeCompletionService`, a deterministic stand-in for
   `llm_cloud.completion.CompletionService`. Stages only ever call `complete`
   and `complete_structured`, so the fake answers those two methods from
   dictionaries keyed by model key and records every call for assertions.

Keeping the wiring here keeps individual test modules focused on behavior.
"""

import os
import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path for direct imports like `core`, `shared`, etc.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Provide required environment defaults for tests
os.environ.setdefault("NEBIUS_API_KEY", "test-key")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("CONTEXT_STORE_BACKEND", "memory")
os.environ.setdefault("CHANNEL_GATEWAY_BACKEND", "recording")

from shared.exceptions import StructuredOutputError, UpstreamServiceError  # noqa: E402
from shared.models import (  # noqa: E402
    ConversationState,
    LanguagePreference,
    MemoryContext,
    Message,
    ProcessType,
    RegistrationState,
    RegistrationStep,
    Role,
    Stage,
    StructuredChunk,
    StructuredReply,
)


class FakeCompletionService:
    """
    Scripted completion service.

    Args:
        replies (dict): model_key -> reply text, a list of texts (consumed in order),
            or an Exception instance to raise.
        structured (dict): model_key -> pydantic instance, dict (validated against the
            requested schema), callable ``(messages, schema) -> instance`` or an Exception.
            A model key without an entry raises ``StructuredOutputError``.
    """

    def __init__(self, replies=None, structured=None):
        self.replies = dict(replies or {})
        self.structured = dict(structured or {})
        self.calls = []

    def complete(self, messages, model_key, tools=None, tool_executor=None):
        self.calls.append(("complete", model_key, messages))
        reply = self.replies.get(model_key)
        if isinstance(reply, list):
            reply = reply.pop(0) if reply else None
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            raise UpstreamServiceError(f"No scripted reply for '{model_key}'")
        return reply

    def complete_structured(self, messages, schema, model_key):
        self.calls.append(("complete_structured", model_key, messages))
        value = self.structured.get(model_key)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise StructuredOutputError(f"No scripted structured output for '{model_key}'")
        if callable(value) and not isinstance(value, type):
            return value(messages, schema)
        if isinstance(value, dict):
            return schema.model_validate(value)
        return value

    def calls_for(self, model_key):
        return [call for call in self.calls if call[1] == model_key]


def single_chunk(messages, schema):
    """Structuring answer that keeps the reply as one message, read back from the structuring prompt."""
    prompt = messages[0]["content"]
    reply = prompt.split("Reply to split:\n", 1)[-1].split("\n\nAnswer with", 1)[0].strip()
    return StructuredReply(messages=[StructuredChunk(content=reply)])


def make_state(user_text=None, history=None, **overrides):
    """
    Build a ``ConversationState`` for stage-level tests.

    ``history`` is a list of ``(role, content)`` pairs placed before the newest
    user message ``user_text``.
    """
    messages = [Message.from_raw(item) for item in (history or [])]
    if user_text is not None:
        messages.append(Message(role=Role.USER, content=user_text))
    values = {"userId": "+5511999990000", "threadId": "thread-1", "channelId": "whatsapp", "messages": messages}
    values.update(overrides)
    return ConversationState(**values)


def registration_memory(step=RegistrationStep.COLLECT_NAME, language="en", **fields):
    """Memory of a user who is in the middle of a registration at ``step``."""
    return MemoryContext(
        currentProcess=ProcessType.REGISTRATION,
        currentStep=step.value,
        registrationState=RegistrationState(step=step, **fields),
        languagePreference=LanguagePreference(code=language, name="English" if language == "en" else language),
    )


@pytest.fixture
def fake_completion():
    return FakeCompletionService()


@pytest.fixture
def general_state():
    """A fresh English conversation whose newest message is a greeting."""
    return make_state(
        "Hi there",
        memory=MemoryContext(languagePreference=LanguagePreference(code="en", name="English")),
        next=Stage.ROUTER,
    )
