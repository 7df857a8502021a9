"""
core/workflow.py

The stage loop that runs one turn.

Topology (fixed):

    input_filter -> router -> {registration_worker | domain_worker | general_worker | error_handler | END}
    *_worker     -> output_filter -> END
    error_handler -> router

The runner follows ``state.next`` from stage to stage until a stage sets
``END`` (or None). The error handler to router edge is the only loop, so the
number of steps per turn is bounded; when the bound is exceeded the turn ends
with the terminal apology.
"""

from typing import Dict, Optional

from config import CONFIG
from config.logging_config import get_logger
from core.error_handler import terminal_state
from core.stage import BaseStage
from shared.models import ConversationState, Stage

logger = get_logger(__name__)

DEFAULT_MAX_STEPS = 12


class WorkflowRunner:
    """
    Run stages in the order their ``next`` pointers dictate.

    Args:
        stages (Dict[Stage, BaseStage]): The stage instance for every stage name.
        max_steps (Optional[int]): Upper bound of stage executions per turn.
            Defaults to ``workflow.max_steps``.
    """

    def __init__(self, stages: Dict[Stage, BaseStage], max_steps: Optional[int] = None):
        self.stages = stages
        self.max_steps = max_steps or CONFIG.get('workflow', {}).get('max_steps', DEFAULT_MAX_STEPS)

    def run(self, state: ConversationState) -> ConversationState:
        """
        Execute one turn starting at ``state.next``.

        Returns:
            ConversationState: The final state, with ``next`` set to ``END``.
        """
        steps = 0
        while state.next is not None and state.next != Stage.END:
            if steps >= self.max_steps:
                logger.error(
                    f"[WorkflowRunner] Turn for thread {state.threadId} exceeded {self.max_steps} steps, ending turn"
                )
                return terminal_state(state, next_stage=Stage.END)

            stage_name = state.next
            stage = self.stages.get(stage_name)
            if stage is None:
                logger.error(f"[WorkflowRunner] No stage registered for '{stage_name}', ending turn")
                return terminal_state(state, next_stage=Stage.END)

            try:
                state = stage.run(state)
            except Exception as e:
                # Stages handle their own failures; this only fires when a failure path itself broke.
                logger.error(f"[WorkflowRunner] Stage {stage_name.value} raised: {e}", exc_info=True)
                if stage_name == Stage.ERROR_HANDLER:
                    return terminal_state(state, next_stage=Stage.END)
                control = state.control.model_copy(update={"lastError": f"{stage_name.value}: {e}"})
                state = state.model_copy(update={"control": control, "next": Stage.ERROR_HANDLER})
            steps += 1

        if state.next is None:
            state = state.model_copy(update={"next": Stage.END})
        return state
