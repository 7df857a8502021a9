"""
workers/registration/worker_registration.py

Registration worker implementation (deterministic, no completion calls).

The worker walks the user through a fixed sequence of steps:

    collect_name -> collect_email -> collect_birthdate -> collect_gender
    -> collect_country -> collect_consent -> confirm -> completed

Each answer is validated with the helpers in ``shared.validators``. A valid
answer is persisted through the user-profile store and the step advances; an
invalid answer re-prompts the same step with a hint. The confirm step shows
every collected field, and answering "no" there restarts at collect_name.

A registration paused by another worker is restored from the
``InterruptedProcess`` snapshot the first time this worker runs again.
"""

from typing import Any, Dict, Optional, Tuple

from config.logging_config import mask_user_id
from provider_api.base import UserProfileStore
from shared.models import (
    ConversationState,
    ProcessType,
    RegistrationState,
    RegistrationStep,
    REGISTRATION_SEQUENCE,
    Stage,
)
from shared.validators import (
    looks_like_email,
    normalize_name,
    normalize_country,
    normalize_gender,
    parse_birthdate,
    parse_yes_no,
)
from ..base import BaseWorker, language_base
from .templates import get_templates

# Profile field collected at each data step.
STEP_FIELDS = {
    RegistrationStep.COLLECT_NAME: "name",
    RegistrationStep.COLLECT_EMAIL: "email",
    RegistrationStep.COLLECT_BIRTHDATE: "birthDate",
    RegistrationStep.COLLECT_GENDER: "gender",
    RegistrationStep.COLLECT_COUNTRY: "country",
    RegistrationStep.COLLECT_CONSENT: "termsAccepted",
}


def _parse_email(text: str) -> Optional[str]:
    return text.strip().lower() if looks_like_email(text) else None


FIELD_PARSERS = {
    RegistrationStep.COLLECT_NAME: normalize_name,
    RegistrationStep.COLLECT_EMAIL: _parse_email,
    RegistrationStep.COLLECT_BIRTHDATE: parse_birthdate,
    RegistrationStep.COLLECT_GENDER: normalize_gender,
    RegistrationStep.COLLECT_COUNTRY: normalize_country,
}


def next_step(step: RegistrationStep) -> RegistrationStep:
    index = REGISTRATION_SEQUENCE.index(step)
    return REGISTRATION_SEQUENCE[min(index + 1, len(REGISTRATION_SEQUENCE) - 1)]


class RegistrationWorker(BaseWorker):
    """
    Worker that owns the REGISTRATION process.

    Args:
        profile_store (UserProfileStore): Where collected fields are persisted.
    """

    process_type = ProcessType.REGISTRATION
    process_step = RegistrationStep.COLLECT_NAME.value
    interrupts_registration = False

    def __init__(self, profile_store: UserProfileStore):
        self.profile_store = profile_store
        super().__init__(completion_service=None)

    def setup(self) -> None:
        self.logger.info(f"[RegistrationWorker] Worker setup complete ({type(self.profile_store).__name__})")

    def get_stage_name(self) -> Stage:
        return Stage.REGISTRATION_WORKER

    def _run_internal(self, state: ConversationState) -> ConversationState:
        result = super()._run_internal(state)
        registration = result.memory.registrationState
        if registration is not None and registration.step == RegistrationStep.COMPLETED and registration.confirmed:
            completeness = self.profile_store.validate_completeness(result.userId)
            self.logger.info(
                f"[RegistrationWorker] Registration completed for {result.userId}, "
                f"complete profile: {completeness['isComplete']}"
            )
            result = result.model_copy(update={"isRegistered": bool(completeness["isComplete"])})
        return result

    def _prompt(self, registration: RegistrationState, texts: Dict[str, Any]) -> str:
        template = texts["prompts"].get(registration.step.value, "")
        return template.format(**{key: value or "-" for key, value in registration.model_dump().items()})

    @staticmethod
    def _memory_for(registration: RegistrationState, **extra: Any) -> Dict[str, Any]:
        updates = {
            "registrationState": registration,
            "currentProcess": ProcessType.REGISTRATION,
            "currentStep": registration.step.value,
        }
        updates.update(extra)
        return updates

    def _respond(self, state: ConversationState) -> Tuple[str, Dict[str, Any]]:
        memory = state.memory
        texts = get_templates(language_base(state))
        registration = memory.registrationState
        interrupted = memory.interruptedProcess

        # A paused registration is restored before anything else.
        if interrupted is not None and interrupted.type == ProcessType.REGISTRATION:
            if interrupted.dataSnapshot:
                registration = RegistrationState.model_validate(interrupted.dataSnapshot)
            registration = registration or RegistrationState()
            self.logger.info(f"[RegistrationWorker] Resuming registration at {registration.step.value}")
            reply = f"{texts['resume']}\n\n{self._prompt(registration, texts)}"
            return reply, self._memory_for(registration, interruptedProcess=None)

        if registration is None or not registration.is_active():
            if state.isRegistered:
                return texts["already_registered"], {}
            registration = RegistrationState()
            self.logger.info(f"[RegistrationWorker] Starting registration for {mask_user_id(state.userId)}")
            return f"{texts['start']}\n\n{self._prompt(registration, texts)}", self._memory_for(registration)

        if memory.currentProcess != ProcessType.REGISTRATION:
            reply = f"{texts['resume']}\n\n{self._prompt(registration, texts)}"
            return reply, self._memory_for(registration)

        if state.control.resumeProcess:
            return self._prompt(registration, texts), self._memory_for(registration)

        latest = state.last_user_message()
        text = latest.content if latest else ""
        candidate = state.control.candidateField
        if candidate is not None and candidate.field == STEP_FIELDS.get(registration.step):
            text = candidate.value

        registration, reply = self._advance(state, registration, text, texts)
        if registration.step == RegistrationStep.COMPLETED:
            return reply, {
                "registrationState": registration,
                "currentProcess": ProcessType.GENERAL,
                "currentStep": "general_assistant",
                "interruptedProcess": None,
            }
        return reply, self._memory_for(registration)

    def _advance(self, state: ConversationState, registration: RegistrationState, text: str,
                 texts: Dict[str, Any]) -> Tuple[RegistrationState, str]:
        """
        Apply the user's answer to the current step.

        Returns:
            Tuple[RegistrationState, str]: The replacement registration state and the reply.
        """
        step = registration.step

        if step in FIELD_PARSERS:
            value = FIELD_PARSERS[step](text)
            if value is None:
                return self._invalid(registration, texts["invalid"][step.value], texts)
            return self._accept(state, registration, STEP_FIELDS[step], value, texts)

        answer = parse_yes_no(text)

        if step == RegistrationStep.COLLECT_CONSENT:
            if answer is None:
                return self._invalid(registration, texts["yes_no"], texts)
            if not answer:
                return self._invalid(registration, texts["consent_required"], texts)
            return self._accept(state, registration, "termsAccepted", True, texts)

        if step == RegistrationStep.CONFIRM:
            if answer is None:
                return self._invalid(registration, texts["yes_no"], texts)
            if not answer:
                restarted = RegistrationState()
                self.logger.info(f"[RegistrationWorker] {mask_user_id(state.userId)} rejected the summary, restarting")
                return restarted, f"{texts['restart']}\n\n{self._prompt(restarted, texts)}"
            completed = registration.model_copy(update={
                "step": RegistrationStep.COMPLETED,
                "confirmed": True,
                "isValid": True,
                "lastValidationError": None,
            })
            return completed, texts["completed"].format(name=registration.name or "")

        return registration, self._prompt(registration, texts)

    def _invalid(self, registration: RegistrationState, hint: str,
                 texts: Dict[str, Any]) -> Tuple[RegistrationState, str]:
        self.logger.info(f"[RegistrationWorker] Invalid answer at {registration.step.value}: {hint}")
        updated = registration.model_copy(update={"isValid": False, "lastValidationError": hint})
        return updated, f"{hint} {self._prompt(registration, texts)}"

    def _accept(self, state: ConversationState, registration: RegistrationState, field: str, value: Any,
                texts: Dict[str, Any]) -> Tuple[RegistrationState, str]:
        self.profile_store.upsert(state.userId, {field: value})
        updated = registration.model_copy(update={
            field: value,
            "step": next_step(registration.step),
            "isValid": True,
            "lastValidationError": None,
        })
        self.logger.info(f"[RegistrationWorker] Stored {field}, next step {updated.step.value}")
        return updated, self._prompt(updated, texts)
