"""
Tests for `core/workflow.py` – the stage loop of a single turn.

Focus:
- The step bound ends a runaway turn with the terminal apology
- Unknown stages and stages that raise are contained
- A full stage-level registration start (input filter, router, registration
  worker, output filter) using the scripted completion service from `conftest.py`
- The recovery loop with real stages: a failing worker, the error handler's
  apology and the retry through the router, or the terminal apology when the
  worker keeps failing
- A confirmed exit from the registration stays out of it through a retry
"""

import os
from unittest.mock import MagicMock

os.environ.setdefault("NEBIUS_API_KEY", "test-key")

from conftest import FakeCompletionService, make_state, registration_memory, single_chunk
from core.classifier import RoutingClassifier
from core.error_handler import DEFAULT_APOLOGY, TERMINAL_APOLOGY, ErrorHandler
from core.router import Router
from core.workflow import WorkflowRunner
from filters.input_filter import InputFilter
from filters.output_filter import OutputFilter
from provider_api.mock_client import InMemoryUserProfileStore
from services.language_service import LanguageDetector
from shared.exceptions import UpstreamServiceError
from shared.models import ConfirmationKind, ControlFlags, Message, ProcessType, RegistrationStep, Role, Stage
from workers import DomainSpecialistWorker, GeneralWorker, RegistrationWorker
from workers.base import FALLBACK_REPLIES


def _looping_stage(next_stage):
    stage = MagicMock()
    stage.run.side_effect = lambda state: state.model_copy(update={"next": next_stage})
    return stage


def test_step_bound_ends_turn_with_terminal_apology():
    stages = {Stage.INPUT_FILTER: _looping_stage(Stage.ROUTER), Stage.ROUTER: _looping_stage(Stage.INPUT_FILTER)}
    result = WorkflowRunner(stages, max_steps=4).run(make_state("hi"))

    assert result.next == Stage.END
    assert result.messages[-1].content == TERMINAL_APOLOGY
    assert stages[Stage.INPUT_FILTER].run.call_count + stages[Stage.ROUTER].run.call_count == 4


def test_unknown_stage_ends_turn():
    result = WorkflowRunner({}, max_steps=5).run(make_state("hi"))
    assert result.next == Stage.END
    assert result.messages[-1].content == TERMINAL_APOLOGY


def test_raising_stage_is_routed_to_error_handler():
    """A stage whose failure path itself breaks is contained by the runner."""
    broken = MagicMock()
    broken.run.side_effect = RuntimeError("failure path broke")
    handler = MagicMock()
    handler.run.side_effect = lambda state: state.with_reply("sorry", next=Stage.END)

    result = WorkflowRunner({Stage.INPUT_FILTER: broken, Stage.ERROR_HANDLER: handler}).run(make_state("hi"))

    passed = handler.run.call_args[0][0]
    assert passed.control.lastError == "input_filter: failure path broke"
    assert result.messages[-1].content == "sorry"
    assert result.next == Stage.END


def test_raising_error_handler_ends_turn():
    handler = MagicMock()
    handler.run.side_effect = RuntimeError("handler broke")
    state = make_state("hi", next=Stage.ERROR_HANDLER)

    result = WorkflowRunner({Stage.ERROR_HANDLER: handler}).run(state)
    assert result.next == Stage.END
    assert result.messages[-1].content == TERMINAL_APOLOGY


def _build_runner(completion, profile_store, max_steps=None):
    stages = {
        Stage.INPUT_FILTER: InputFilter(LanguageDetector(completion)),
        Stage.ROUTER: Router(RoutingClassifier(completion)),
        Stage.REGISTRATION_WORKER: RegistrationWorker(profile_store),
        Stage.DOMAIN_WORKER: DomainSpecialistWorker(completion),
        Stage.GENERAL_WORKER: GeneralWorker(completion),
        Stage.ERROR_HANDLER: ErrorHandler(completion),
        Stage.OUTPUT_FILTER: OutputFilter(completion, channel_format="plain"),
    }
    return WorkflowRunner(stages, max_steps=max_steps)


def _next_turn(state, text):
    messages = list(state.messages) + [Message(role=Role.USER, content=text)]
    return state.model_copy(update={"messages": messages, "control": ControlFlags(), "next": Stage.INPUT_FILTER})


def test_registration_start_and_name_step():
    """
    Turn 1: "I want to register" is classified to the registration worker, which
    starts the process and asks for the name. Turn 2: "John Smith" is routed by
    the continuity rule (no classifier call) and the flow moves to the email step.
    """
    completion = FakeCompletionService(structured={
        "language_detection": {"code": "en", "name": "English", "confidence": 0.95},
        "routing": {"routeTo": "registration_worker", "reasoning": "wants to sign up"},
        "output_structuring": single_chunk,
    })
    profiles = InMemoryUserProfileStore()
    runner = _build_runner(completion, profiles)

    state = runner.run(make_state("I want to register"))
    assert state.next == Stage.END
    assert state.memory.registrationState.step == RegistrationStep.COLLECT_NAME
    assert "What is your full name?" in state.messages[-1].content
    assert state.control.outputValidated
    assert len(completion.calls_for("routing")) == 1

    state = runner.run(_next_turn(state, "John Smith"))
    assert state.memory.registrationState.step == RegistrationStep.COLLECT_EMAIL
    assert state.memory.registrationState.name == "John Smith"
    assert "What is your email address?" in state.messages[-1].content
    assert profiles.find_by_identity(state.userId)["name"] == "John Smith"
    assert len(completion.calls_for("routing")) == 1


def _general_completion(general_replies):
    return FakeCompletionService(
        replies={"general_assistant": general_replies},
        structured={
            "language_detection": {"code": "en", "name": "English", "confidence": 0.95},
            "routing": {"routeTo": "general_worker", "reasoning": "small talk"},
            "output_structuring": single_chunk,
        },
    )


def _assistant_texts(state):
    return [m.content for m in state.messages if m.role == Role.ASSISTANT]


def test_failed_worker_recovers_through_error_handler():
    """
    The general worker fails once: its fallback reply is followed by the error
    handler's apology, the router is consulted again and the retried worker's
    answer goes through the output filter.
    """
    completion = _general_completion([UpstreamServiceError("provider timeout"), "Hello! How can I help?"])
    runner = _build_runner(completion, InMemoryUserProfileStore())

    state = runner.run(make_state("hi there"))

    assert state.next == Stage.END
    assert _assistant_texts(state) == [FALLBACK_REPLIES["en"], DEFAULT_APOLOGY, "Hello! How can I help?"]
    assert state.control.lastError is None
    assert state.control.outputValidated
    assert len(completion.calls_for("general_assistant")) == 2
    assert len(completion.calls_for("routing")) == 2


def test_worker_that_keeps_failing_ends_with_terminal_apology():
    completion = _general_completion(UpstreamServiceError("provider down"))
    runner = _build_runner(completion, InMemoryUserProfileStore(), max_steps=6)

    state = runner.run(make_state("hi there"))

    assert state.next == Stage.END
    assert state.messages[-1].content == TERMINAL_APOLOGY
    assert _assistant_texts(state).count(DEFAULT_APOLOGY) == 1
    assert len(completion.calls_for("general_assistant")) == 2


def test_confirmed_exit_is_kept_when_the_general_reply_fails():
    """
    "yes" to the exit question pauses the registration. A failing general
    worker sends the turn round the error loop, and the retry must still reach
    the general worker instead of feeding "yes" to the email step.
    """
    memory = registration_memory(RegistrationStep.COLLECT_EMAIL, name="John Smith").model_copy(
        update={"pendingConfirmation": ConfirmationKind.PROCESS_EXIT}
    )
    completion = _general_completion([UpstreamServiceError("provider timeout"), "Sure, what else can I do for you?"])
    runner = _build_runner(completion, InMemoryUserProfileStore())

    state = runner.run(make_state("yes", memory=memory))

    assert state.next == Stage.END
    assert state.messages[-1].content == "Sure, what else can I do for you?"
    assert not any("What is your email address?" in text for text in _assistant_texts(state))
    assert state.memory.currentProcess == ProcessType.GENERAL
    assert not state.memory.registration_in_progress()
    assert state.memory.interruptedProcess.originalStep == RegistrationStep.COLLECT_EMAIL.value
    assert state.memory.registrationState.name == "John Smith"
    assert completion.calls_for("routing") == []
