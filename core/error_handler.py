"""
core/error_handler.py

Recovery stage of the conversation pipeline.

Any stage that fails records ``control.lastError`` and routes here. The error
handler apologizes to the user exactly once, clears the error and hands the
state back to the router, which is the only loop in the pipeline. The apology
is translated through the completion service when the conversation is not in
English; if the translation (or anything else) fails, a fixed English text is
used instead. This stage never raises.
"""

from typing import Optional

from core.stage import BaseStage
from shared.models import ConversationState, Message, Role, Stage

DEFAULT_APOLOGY = "I apologize, but there was an unexpected issue. Let me try to help you differently."
TERMINAL_APOLOGY = "I apologize, but I encountered an unexpected issue. Please try again later."


class ErrorHandler(BaseStage):
    """
    Apologize, clear the error and return to the router.

    Args:
        completion_service: Object with ``complete(messages, model_key)``, used to
            localize the apology. May be None, in which case the apology is always English.
        prompt_template (Optional[str]): Localization prompt with ``{language}`` and ``{message}`` placeholders.
    """

    def __init__(self, completion_service=None, prompt_template: Optional[str] = None):
        self.completion_service = completion_service
        self._prompt_template = prompt_template
        super().__init__()

    def setup(self) -> None:
        self.prompt_template = self._prompt_template or self.config['error_localization_message']
        self.logger.info("[ErrorHandler] Initialized error handler")

    def get_stage_name(self) -> Stage:
        return Stage.ERROR_HANDLER

    def localize(self, state: ConversationState, text: str) -> str:
        """Translate ``text`` into the conversation language; English or any failure returns ``text``."""
        preference = state.memory.languagePreference
        if preference is None or preference.code.split("-")[0].lower() == "en" or self.completion_service is None:
            return text
        try:
            prompt = self.prompt_template.format(language=preference.name, message=text)
            return self.completion_service.complete([{"role": "user", "content": prompt}], "error_localization")
        except Exception as e:
            self.logger.warning(f"[ErrorHandler] Apology localization to {preference.code} failed: {e}")
            return text

    def _run_internal(self, state: ConversationState) -> ConversationState:
        self.logger.warning(f"[ErrorHandler] Recovering from: {state.control.lastError}")
        apology = self.localize(state, DEFAULT_APOLOGY)
        control = state.control.model_copy(update={"lastError": None})
        return state.with_reply(apology, control=control, next=Stage.ROUTER)

    def _on_failure(self, state: ConversationState, error: Exception) -> ConversationState:
        return terminal_state(state, next_stage=Stage.ROUTER)


def terminal_state(state: ConversationState, next_stage: Stage = Stage.END) -> ConversationState:
    """
    Append the fixed terminal apology without touching anything else that could fail.

    Used by the error handler's own failure path and by the workflow runner when
    the step bound of a turn is exceeded.
    """
    messages = list(state.messages) + [Message(role=Role.ASSISTANT, content=TERMINAL_APOLOGY)]
    control = state.control.model_copy(update={"lastError": None})
    return state.model_copy(update={"messages": messages, "control": control, "next": next_stage})
