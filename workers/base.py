"""
Base class for all workers of the conversation router.

A worker is the stage that actually answers the user. Every worker follows the
same contract:

- on success it appends exactly one assistant message, returns its memory
  updates and hands over to the output filter;
- on failure it appends one fallback message that does not touch the process
  in progress, records the error and hands over to the error handler.

Workers that answer outside the registration flow (the domain specialist and
the general assistant) also implement the interruption logic: if they are
reached while a registration is still in progress, the registration is saved
as an ``InterruptedProcess`` snapshot so that it can be resumed later.
"""

from abc import abstractmethod
from typing import Any, Dict, List, Tuple

from core.stage import BaseStage
from shared.models import (
    ConversationState,
    ProcessType,
    Role,
    Stage,
)
from shared.utils import to_chat_messages

HISTORY_TURNS_FOR_COMPLETION = 6

FALLBACK_REPLIES = {
    "en": "Sorry, I couldn't process your message right now. Could you send it again?",
    "pt": "Desculpe, não consegui processar sua mensagem agora. Pode enviar novamente?",
    "es": "Lo siento, no pude procesar tu mensaje ahora. ¿Puedes enviarlo de nuevo?",
}


def language_base(state: ConversationState) -> str:
    """Two-letter language code of the conversation, ``en`` when unknown."""
    preference = state.memory.languagePreference
    return (preference.code if preference else "en").split("-")[0].lower() or "en"


class BaseWorker(BaseStage):
    """
    Template for worker stages.

    Subclasses implement `get_stage_name`, `setup` and `_respond`. Workers
    that set ``interrupts_registration`` snapshot an in-progress registration
    before answering and move ``currentProcess`` to ``process_type``.
    """

    process_type: ProcessType = ProcessType.GENERAL
    process_step: str = "general_assistant"
    interrupts_registration: bool = False
    fallback_replies: Dict[str, str] = FALLBACK_REPLIES

    def __init__(self, completion_service=None):
        self.completion_service = completion_service
        super().__init__()

    def _run_internal(self, state: ConversationState) -> ConversationState:
        if self.interrupts_registration:
            state = self._divert_from_registration(state)

        reply, memory_updates = self._respond(state)
        memory = state.memory.model_copy(update=memory_updates) if memory_updates else state.memory
        self.logger.info(f"[{self.get_stage_name().value}] Replied with {len(reply)} characters")
        return state.with_reply(reply, memory=memory, next=Stage.OUTPUT_FILTER)

    @abstractmethod
    def _respond(self, state: ConversationState) -> Tuple[str, Dict[str, Any]]:
        """
        Produce the reply for the latest user message.

        Args:
            state (ConversationState): The routed state, after any interruption snapshot.

        Returns:
            Tuple[str, Dict[str, Any]]: The reply text and the memory fields to replace.
        """
        pass

    def _divert_from_registration(self, state: ConversationState) -> ConversationState:
        """
        Snapshot an in-progress registration before answering outside of it.

        The snapshot is only taken when there is no interruption stored yet, so a
        second diversion can never overwrite the data needed to resume.
        """
        memory = state.memory
        new_memory = memory.pause_registration(self.process_type, self.process_step)
        if new_memory is memory:
            return state

        control = state.control.model_copy(update={"temporaryDiversion": True})
        self.logger.info(
            f"[{self.get_stage_name().value}] Registration paused at {memory.registrationState.step.value} "
            f"for a {self.process_type.value} diversion"
        )
        return state.model_copy(update={"memory": new_memory, "control": control})

    def _process_memory_updates(self, state: ConversationState) -> Dict[str, Any]:
        """Claim ``currentProcess`` for this worker unless a registration is still in progress."""
        if state.memory.registration_in_progress():
            return {}
        return {"currentProcess": self.process_type, "currentStep": self.process_step}

    def _build_completion_messages(self, state: ConversationState, system_prompt: str) -> List[Dict[str, Any]]:
        """
        Assemble the chat messages for a completion call.

        The system prompt is followed by a context note (language preference and
        history summary) and the last conversational messages of the thread.
        """
        memory = state.memory
        context_lines = []
        if memory.languagePreference:
            context_lines.append(f"Reply in {memory.languagePreference.name} ({memory.languagePreference.code}).")
        if memory.relevantHistorySummary:
            context_lines.append(f"Conversation summary so far: {memory.relevantHistorySummary}")
        if memory.interruptedProcess is not None:
            context_lines.append(
                f"The user paused their registration at step '{memory.interruptedProcess.originalStep}'."
            )

        prompt = system_prompt
        if context_lines:
            prompt = f"{system_prompt}\n\n" + "\n".join(context_lines)

        history = [m for m in state.messages if m.role != Role.SYSTEM][-HISTORY_TURNS_FOR_COMPLETION:]
        return to_chat_messages(history, system_prompt=prompt)

    def fallback_reply(self, state: ConversationState) -> str:
        return self.fallback_replies.get(language_base(state), self.fallback_replies["en"])

    def _on_failure(self, state: ConversationState, error: Exception) -> ConversationState:
        """Append a fallback reply, keep memory as it was and hand over to the error handler."""
        control = state.control.model_copy(update={
            "lastError": f"{self.get_stage_name().value}: {error}",
        })
        return state.with_reply(self.fallback_reply(state), control=control, next=Stage.ERROR_HANDLER)
