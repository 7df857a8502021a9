"""
core/classifier.py

LLM-backed routing classifier.

This module provides the fallback routing rule of the router: when none of the
deterministic continuity rules apply, the completion service decides which
worker should answer the latest user message. The classifier only returns a
``RoutingDecision``; it never produces text for the user.
"""

import logging
from typing import Optional

from config import CONFIG
from shared.models import ConversationState, RoutingDecision, Stage, WORKER_STAGES
from shared.utils import format_recent_turns

logger = logging.getLogger(__name__)

DEFAULT_DECISION = RoutingDecision(
    routeTo=Stage.GENERAL_WORKER,
    reasoning="Classifier fallback",
    shouldMaintainProcess=False,
)


class RoutingClassifier:
    """
    Route a conversation to one of the workers using the completion service.

    Responsibilities:
    - Render the routing context (process, registration status, recent turns,
      language, history summary, paused registration) into the router prompt
    - Request a structured ``RoutingDecision`` under the ``routing`` model
    - Reduce any malformed or failed classification to the general worker

    Args:
        completion_service: Object with ``complete_structured(messages, schema, model_key)``.
        prompt_template (Optional[str]): Prompt with ``{context}`` and ``{message}`` placeholders.
            Defaults to ``config/router_system_prompt.txt``.
    """

    def __init__(self, completion_service, prompt_template: Optional[str] = None):
        self.completion_service = completion_service
        self.prompt_template = prompt_template or CONFIG['router_message']
        logger.info("[RoutingClassifier] Initialized routing classifier")

    @staticmethod
    def build_context(state: ConversationState) -> str:
        """
        Describe the conversation for the routing prompt.

        Args:
            state (ConversationState): The current turn state.

        Returns:
            str: One ``key: value`` line per context item, followed by the recent turns.
        """
        memory = state.memory
        language = memory.languagePreference
        paused = memory.interruptedProcess
        registration = memory.registrationState
        lines = [
            f"Current process: {memory.currentProcess.value}",
            f"Current step: {memory.currentStep}",
            f"User registered: {'yes' if state.isRegistered else 'no'}",
            f"Registration step: {registration.step.value if registration else 'not started'}",
            f"Language: {language.name if language else 'unknown'}",
            f"Paused registration: {'yes, at ' + str(paused.originalStep) if paused else 'no'}",
            f"History summary: {memory.relevantHistorySummary or 'none'}",
            "Recent turns:",
            format_recent_turns(state.messages, limit=3) or "(none)",
        ]
        return "\n".join(lines)

    def classify(self, state: ConversationState) -> RoutingDecision:
        """
        Decide which worker should handle the latest user message.

        Args:
            state (ConversationState): The current turn state.

        Returns:
            RoutingDecision: The classifier's decision. When the model output is
            malformed, names a non-worker destination, or the call fails, the
            decision routes to the general worker with ``shouldMaintainProcess=False``.
        """
        latest = state.last_user_message()
        message = latest.content if latest else ""
        try:
            prompt = self.prompt_template.format(context=self.build_context(state), message=message)
            decision = self.completion_service.complete_structured(
                [{"role": "system", "content": prompt}],
                RoutingDecision,
                "routing",
            )
        except Exception as e:
            logger.error(f"[RoutingClassifier] Classification error: {e}")
            return DEFAULT_DECISION

        if decision.routeTo not in WORKER_STAGES:
            logger.warning(f"[RoutingClassifier] Ignoring non-worker destination '{decision.routeTo.value}'")
            return DEFAULT_DECISION

        logger.info(
            f"[RoutingClassifier] Routed '{message[:50]}' to {decision.routeTo.value}: {decision.reasoning}"
        )
        return decision
