"""
core/router.py

Priority-ordered routing with process continuity.

The router decides which stage runs after the input filter (or after the error
handler). Deterministic rules come first so that an unfinished registration can
never be hijacked by a misclassification:

0. A pending yes/no confirmation from the previous turn is resolved. A confirmed
   exit pauses the registration right away and is remembered for the rest of the
   turn, so a retry after a failed general reply still goes to the general worker.
1. An active, incomplete registration keeps the registration worker, unless the
   user asks to leave, in which case the turn ends with a confirmation question.
2. A diverted process that was interrupted earlier in this turn goes back to its owner.
3. Otherwise the LLM classifier picks a worker. Rule 1 runs first, so an active
   registration is never handed to the classifier.

The router never raises; a failure routes to the error handler.
"""

from typing import Any, Dict, Optional

from core.classifier import RoutingClassifier
from core.stage import BaseStage
from shared.models import (
    CandidateField,
    ConfirmationKind,
    ConversationState,
    PROCESS_OWNERS,
    ProcessType,
    RegistrationStep,
    Stage,
)
from shared.validators import is_exit_phrase, looks_like_email, looks_like_name, parse_yes_no

GENERAL_STEP = "general_assistant"

EXIT_CONFIRMATION_QUESTIONS = {
    "en": "Would you like to exit the current registration?",
    "pt": "Você gostaria de sair do cadastro atual?",
    "es": "¿Te gustaría salir del registro actual?",
}


def exit_confirmation_question(language_code: Optional[str]) -> str:
    base = (language_code or "en").split("-")[0].lower()
    return EXIT_CONFIRMATION_QUESTIONS.get(base, EXIT_CONFIRMATION_QUESTIONS["en"])


class Router(BaseStage):
    """
    Route each turn to a worker, the error handler, or the end of the turn.

    Args:
        classifier (RoutingClassifier): Fallback classifier for messages no rule claims.
    """

    def __init__(self, classifier: RoutingClassifier):
        self.classifier = classifier
        super().__init__()

    def setup(self) -> None:
        self.logger.info("[Router] Initialized router")

    def get_stage_name(self) -> Stage:
        return Stage.ROUTER

    def _route(self, state: ConversationState, destination: Stage, reason: str,
               memory_updates: Optional[Dict[str, Any]] = None, **control_updates: Any) -> ConversationState:
        control = state.control.model_copy(update={"routingReason": reason, **control_updates})
        updates: Dict[str, Any] = {"control": control, "next": destination}
        if memory_updates:
            updates["memory"] = state.memory.model_copy(update=memory_updates)
        self.logger.info(f"[Router] -> {destination.value}: {reason}")
        return state.model_copy(update=updates)

    def _run_internal(self, state: ConversationState) -> ConversationState:
        latest = state.last_user_message()
        text = latest.content if latest else ""
        memory = state.memory

        if state.control.exitConfirmed:
            return self._route(state, Stage.GENERAL_WORKER, "Exit confirmed earlier in this turn")

        # Rule 0: the user is answering the exit question asked last turn.
        if memory.pendingConfirmation == ConfirmationKind.PROCESS_EXIT:
            if parse_yes_no(text) is True:
                return self._leave_registration(state)
            return self._route(
                state, Stage.REGISTRATION_WORKER, "User chose to stay in the registration",
                memory_updates={"pendingConfirmation": None},
                shouldMaintainProcess=True,
                resumeProcess=True,
            )

        # Rule 1: an unfinished registration keeps its worker.
        if memory.registration_in_progress():
            return self._continue_registration(state, text)

        # Rule 2: return to a process diverted earlier in this turn.
        interrupted = memory.interruptedProcess
        if interrupted is not None and state.control.temporaryDiversion:
            owner = PROCESS_OWNERS.get(interrupted.type, interrupted.returnToStage)
            return self._route(
                state, owner, f"Resuming interrupted {interrupted.type.value} process",
                shouldMaintainProcess=True,
            )

        # Rule 3: ask the classifier.
        decision = self.classifier.classify(state)
        return self._route(
            state, decision.routeTo, decision.reasoning or "Classifier decision",
            shouldMaintainProcess=decision.shouldMaintainProcess,
        )

    def _leave_registration(self, state: ConversationState) -> ConversationState:
        memory = state.memory.pause_registration(ProcessType.GENERAL, GENERAL_STEP)
        memory = memory.model_copy(update={
            "pendingConfirmation": None,
            "currentProcess": ProcessType.GENERAL,
            "currentStep": GENERAL_STEP,
        })
        control = state.control.model_copy(update={
            "routingReason": "User confirmed leaving the registration",
            "shouldMaintainProcess": False,
            "exitConfirmed": True,
        })
        self.logger.info("[Router] -> general_worker: User confirmed leaving the registration")
        return state.model_copy(update={"memory": memory, "control": control, "next": Stage.GENERAL_WORKER})

    def _continue_registration(self, state: ConversationState, text: str) -> ConversationState:
        step = state.memory.registrationState.step

        if is_exit_phrase(text):
            language = state.memory.languagePreference
            question = exit_confirmation_question(language.code if language else None)
            memory = state.memory.model_copy(update={"pendingConfirmation": ConfirmationKind.PROCESS_EXIT})
            control = state.control.model_copy(update={
                "routingReason": "Exit requested during registration",
                "shouldMaintainProcess": True,
            })
            self.logger.info("[Router] Exit phrase during registration, asking for confirmation")
            return state.with_reply(question, memory=memory, control=control, next=Stage.END)

        if step == RegistrationStep.COLLECT_NAME and looks_like_name(text):
            return self._route(
                state, Stage.REGISTRATION_WORKER, "Message looks like the requested name",
                shouldMaintainProcess=True,
                candidateField=CandidateField(field="name", value=text.strip()),
            )

        if step == RegistrationStep.COLLECT_EMAIL and looks_like_email(text):
            return self._route(
                state, Stage.REGISTRATION_WORKER, "Message looks like the requested email",
                shouldMaintainProcess=True,
                candidateField=CandidateField(field="email", value=text.strip()),
            )

        return self._route(
            state, Stage.REGISTRATION_WORKER, f"Registration in progress at {step.value}",
            shouldMaintainProcess=True,
        )

    def _on_failure(self, state: ConversationState, error: Exception) -> ConversationState:
        control = state.control.model_copy(update={"lastError": "Routing failure"})
        return state.model_copy(update={"control": control, "next": Stage.ERROR_HANDLER})
