"""
workers/general/worker_general.py

General assistant worker implementation.

This module contains `GeneralWorker`, the default destination of the router.
It is also where a user lands after confirming that they want to leave a
registration: the interruption logic of `BaseWorker` saves the registration as
a snapshot before the general reply is produced.
"""

from typing import Any, Dict, Tuple

from shared.models import ConversationState, ProcessType, Stage
from ..base import BaseWorker


class GeneralWorker(BaseWorker):
    """
    Worker for open conversation.

    Handles:
    - Greetings and small talk
    - Questions about the assistant itself
    - Messages that fit no other worker, including the turn right after leaving a registration
    """

    process_type = ProcessType.GENERAL
    process_step = "general_assistant"
    interrupts_registration = True

    def setup(self) -> None:
        self.system_prompt = self.config['general_assistant_message']
        self.logger.info("[GeneralWorker] Worker setup complete")

    def get_stage_name(self) -> Stage:
        return Stage.GENERAL_WORKER

    def _respond(self, state: ConversationState) -> Tuple[str, Dict[str, Any]]:
        messages = self._build_completion_messages(state, self.system_prompt)
        reply = self.completion_service.complete(messages, "general_assistant")
        return reply, self._process_memory_updates(state)
