"""
filters/input_filter.py

First stage of every turn: make the inbound state safe and compact before routing.

The input filter:
- sanitizes the newest user message (markup removal, whitespace collapse, length cap)
- detects the message language and records it as the language preference
- deduplicates the message history and caps it to the most recent entries
- marks the input as validated and hands over to the router

Re-entering the stage within the same turn is a no-op, so the error handler
loop can never sanitize or trim a message twice.
"""

import re
from typing import List, Optional

from core.stage import BaseStage
from services.language_service import LanguageDetector, language_name
from shared.models import (
    ConversationState,
    LanguagePreference,
    Message,
    Role,
    Stage,
    utc_now,
)
from shared.utils import normalize_content, truncate_message_for_logging

MAX_MESSAGE_LENGTH = 1000
MAX_HISTORY = 6

_SCRIPT_BLOCK = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def sanitize_text(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Remove markup from user text and cap its length.

    Script blocks are removed together with their content, any other tag is
    removed on its own, and runs of whitespace become a single space. Text
    longer than ``max_length`` is cut and marked with ``...``.
    """
    cleaned = _SCRIPT_BLOCK.sub(" ", text or "")
    cleaned = _TAG.sub(" ", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + "..."
    return cleaned


def deduplicate_messages(messages: List[Message], max_history: int = MAX_HISTORY) -> List[Message]:
    """
    Drop repeated messages and keep only the recent conversational window.

    Messages are scanned from newest to oldest and only the first (newest)
    occurrence of each ``(role, normalized content)`` pair survives. Of the
    survivors, every system message is kept and only the last ``max_history``
    user/assistant messages are. Relative order is preserved.
    """
    seen = set()
    kept_reversed = []
    for message in reversed(messages):
        key = (message.role, normalize_content(message.content))
        if key in seen:
            continue
        seen.add(key)
        kept_reversed.append(message)
    unique = list(reversed(kept_reversed))

    conversational_indexes = [i for i, m in enumerate(unique) if m.role != Role.SYSTEM]
    allowed = set(conversational_indexes[-max_history:]) if max_history > 0 else set()
    return [m for i, m in enumerate(unique) if m.role == Role.SYSTEM or i in allowed]


class InputFilter(BaseStage):
    """
    Sanitize, annotate and compact the inbound turn.

    Args:
        language_detector (LanguageDetector): Classifier for the language of the newest user message.
        max_message_length (Optional[int]): Length cap for user text. Defaults to ``input_filter.max_message_length``.
        max_history (Optional[int]): Conversational messages kept after deduplication. Defaults to ``input_filter.max_history``.
    """

    def __init__(self, language_detector: LanguageDetector, max_message_length: Optional[int] = None,
                 max_history: Optional[int] = None):
        self.language_detector = language_detector
        self._max_message_length = max_message_length
        self._max_history = max_history
        super().__init__()

    def setup(self) -> None:
        filter_config = self.config.get('input_filter', {})
        if self._max_message_length is None:
            self._max_message_length = filter_config.get('max_message_length', MAX_MESSAGE_LENGTH)
        if self._max_history is None:
            self._max_history = filter_config.get('max_history', MAX_HISTORY)
        self.logger.info(
            f"[InputFilter] Initialized (max_message_length={self._max_message_length}, max_history={self._max_history})"
        )

    def get_stage_name(self) -> Stage:
        return Stage.INPUT_FILTER

    def _run_internal(self, state: ConversationState) -> ConversationState:
        if state.control.inputValidated:
            self.logger.debug("[InputFilter] Input already validated this turn, skipping")
            return state
        if not state.messages:
            self.logger.debug("[InputFilter] No messages to validate, skipping")
            return state

        messages = list(state.messages)
        latest_text = ""
        for index in range(len(messages) - 1, -1, -1):
            if messages[index].role == Role.USER:
                latest_text = sanitize_text(messages[index].content, self._max_message_length)
                messages[index] = messages[index].model_copy(update={"content": latest_text})
                break

        messages = deduplicate_messages(messages, self._max_history)

        if latest_text:
            detection = self.language_detector.detect(latest_text)
            preference = LanguagePreference(
                code=detection.code,
                name=detection.name or language_name(detection.code),
                detectedAt=utc_now(),
            )
        else:
            preference = LanguagePreference(code="en", name="English", detectedAt=utc_now())

        memory_updates = {"languagePreference": preference, "lastInteraction": utc_now()}
        if not state.memory.currentStep:
            memory_updates["currentStep"] = "general_assistant"
        memory = state.memory.model_copy(update=memory_updates)
        control = state.control.model_copy(update={"inputValidated": True})

        self.logger.info(
            f"[InputFilter] Validated input '{truncate_message_for_logging(latest_text, 50)}' "
            f"(language={preference.code}, history={len(messages)})"
        )
        return state.model_copy(update={
            "messages": messages,
            "memory": memory,
            "control": control,
            "next": Stage.ROUTER,
        })
