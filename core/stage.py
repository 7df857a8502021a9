"""
Base class for all stages of the conversation pipeline.

This module defines the BaseStage abstract base class that the input filter,
router, workers, error handler and output filter implement. It enforces a
common interface and provides the shared lifecycle: per-stage logging,
configuration access, latency and error metrics, and the guarantee that a
stage hands back a state instead of letting an exception escape into the
workflow runner.
"""

import logging
from abc import ABC, abstractmethod

from config import CONFIG
from config.logging_config import get_logger
from monitoring.metrics import STAGE_PROCESSING_TIME, count_error, track_errors, track_latency
from shared.models import ConversationState, Stage

logger = logging.getLogger(__name__)


class BaseStage(ABC):
    """
    Abstract base class for pipeline stages.

    Concrete stages override `setup`, `get_stage_name` and `_run_internal`, and
    may override `_on_failure` to decide what a failed run leaves behind. The
    default failure behavior records the error and routes to the error handler.
    """

    def __init__(self):
        """
        Initialize common stage state and invoke stage-specific setup.

        The constructor configures a per-stage namespaced logger and keeps a
        reference to the global application configuration, then calls
        `self.setup()` so the concrete stage can prepare its collaborators
        (completion service, prompts, stores).
        """
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.config = CONFIG

        self.setup()

    @abstractmethod
    def setup(self) -> None:
        """
        Set up the stage with necessary resources.

        This method should be implemented by each stage to initialize any
        required resources (e.g., prompts, tool manager).
        """
        pass

    @abstractmethod
    def get_stage_name(self) -> Stage:
        """
        Get the name of the stage.

        Returns:
            Stage: The stage's name, used for routing, logging and metrics.
        """
        pass

    @track_latency(STAGE_PROCESSING_TIME, lambda self: {'stage': self.get_stage_name().value})
    @track_errors('stage', lambda self: self.get_stage_name().value)
    def run(self, state: ConversationState) -> ConversationState:
        """
        Run the stage on ``state`` and return the replacement state.

        Exceptions raised by `_run_internal` are counted, logged and turned into
        a state by `_on_failure`. ``control.lastStage`` is set on every state
        this method returns.

        Args:
            state (ConversationState): The state produced by the previous stage.

        Returns:
            ConversationState: The new state, with ``next`` naming the stage to run afterwards.
        """
        stage_name = self.get_stage_name()
        turn_logger = get_logger(self.logger.name, thread_id=state.threadId, stage=stage_name.value)
        turn_logger.debug(f"[{stage_name.value}] Starting stage")

        try:
            result = self._run_internal(state)
            turn_logger.debug(f"[{stage_name.value}] Stage completed, next={result.next}")
        except Exception as e:
            count_error('stage', stage_name.value)
            turn_logger.error(f"[{stage_name.value}] Stage failed: {e}", exc_info=True)
            result = self._on_failure(state, e)

        control = result.control.model_copy(update={"lastStage": stage_name})
        return result.model_copy(update={"control": control})

    @abstractmethod
    def _run_internal(self, state: ConversationState) -> ConversationState:
        """
        Stage-specific processing.

        Args:
            state (ConversationState): The incoming state. Must not be mutated.

        Returns:
            ConversationState: A new state with every owned field replaced.
        """
        pass

    def _on_failure(self, state: ConversationState, error: Exception) -> ConversationState:
        """Default failure contract: keep the state, record the error, hand over to the error handler."""
        control = state.control.model_copy(update={
            "lastError": f"{self.get_stage_name().value}: {error}",
        })
        return state.model_copy(update={"control": control, "next": Stage.ERROR_HANDLER})
