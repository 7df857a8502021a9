"""
workers/domain_specialist/worker_domain_specialist.py

Domain specialist worker implementation (tool-augmented).

The worker renders the domain specialist prompt for the user's knowledge level,
adds the conversation context assembled by `BaseWorker`, and asks the
completion service for a reply with the finance tools available. Tool calls
requested by the model are executed locally by the worker's own
ToolManager/ToolExecutor pair.
"""

from typing import Any, Dict, Tuple

from llm_cloud.tools import build_finance_toolbox
from shared.models import ConversationState, ProcessType, Stage
from ..base import BaseWorker


class DomainSpecialistWorker(BaseWorker):
    """
    Worker for personal finance coaching.

    Features:
    - Knowledge-level aware explanations (``memory.knowledgeLevel``)
    - Finance calculators exposed as tools
    - Registration interruption: a finance question asked in the middle of a
      registration pauses the registration instead of losing it
    """

    process_type = ProcessType.DOMAIN_TASK
    process_step = "domain_specialist"
    interrupts_registration = True

    def setup(self) -> None:
        """
        Initialize the finance toolbox and the prompt template.

        The prompt template carries a ``{knowledge_level}`` placeholder that is
        filled per turn.
        """
        self.tool_manager, self.tool_executor = build_finance_toolbox()
        self.prompt_template = self.config['domain_specialist_message']
        self.logger.info(
            f"[DomainSpecialistWorker] Worker setup complete with tools: {self.tool_manager.get_tool_names()}"
        )

    def get_stage_name(self) -> Stage:
        return Stage.DOMAIN_WORKER

    def _render_prompt(self, state: ConversationState) -> str:
        level = state.memory.knowledgeLevel.value
        if "{knowledge_level}" in self.prompt_template:
            return self.prompt_template.replace("{knowledge_level}", level)
        return f"{self.prompt_template}\n\nUser knowledge level: {level}"

    def _respond(self, state: ConversationState) -> Tuple[str, Dict[str, Any]]:
        messages = self._build_completion_messages(state, self._render_prompt(state))
        reply = self.completion_service.complete(
            messages,
            "domain_specialist",
            tools=self.tool_manager.get_definitions(),
            tool_executor=self.tool_executor,
        )
        return reply, self._process_memory_updates(state)
