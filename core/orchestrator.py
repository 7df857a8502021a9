"""
core/orchestrator.py

Turn handling around the stage pipeline.

This module contains the public entry point of the conversation router. For
each inbound message, `ConversationService.handle_inbound_message`:
1. Serializes turns of the same conversation with a per-conversation lock
2. Resolves the thread and rehydrates its checkpoint (or starts a fresh state)
3. Resets the per-turn control flags and looks up the registration status
4. Appends the user message and bounds the thread size
5. Runs the workflow, persists the final state once and delivers the replies

No exception escapes the entry point: if the turn itself fails, the user
receives a short apology in Portuguese or English instead of silence.
"""

from typing import Any, List, Optional

from pydantic import ValidationError

from config import CONFIG, get_config_value
from config.logging_config import get_logger, mask_user_id
from core.circuit_breaker import CircuitBreakerRegistry
from core.classifier import RoutingClassifier
from core.error_handler import ErrorHandler
from core.router import Router
from core.workflow import WorkflowRunner
from filters.input_filter import InputFilter
from filters.output_filter import OutputFilter
from llm_cloud.completion import CompletionService
from monitoring.metrics import TURN_COUNT, count_error
from provider_api.base import ChannelGateway, UserProfileStore
from provider_api.http_gateway import HttpChannelGateway
from provider_api.mock_client import InMemoryUserProfileStore, RecordingChannelGateway
from services.context_store import ContextStore, build_context_store
from services.delivery_pacer import DeliveryPacer
from services.language_service import LanguageDetector
from services.thread_manager import ThreadManager
from shared.models import (
    ControlFlags,
    ConversationState,
    InboundMessage,
    Message,
    Role,
    Stage,
)
from shared.utils import looks_portuguese, normalize_content, truncate_message_for_logging
from workers import DomainSpecialistWorker, GeneralWorker, RegistrationWorker

logger = get_logger(__name__)

FALLBACK_MESSAGES = {
    "pt": "Desculpe, tive um problema ao processar sua mensagem. Por favor, tente novamente em instantes.",
    "en": "Sorry, I had a problem processing your message. Please try again in a moment.",
}


class ConversationService:
    """
    Long-lived service that owns every collaborator of a turn.

    Args:
        thread_manager (ThreadManager): Thread ids, checkpoints and per-conversation locks.
        workflow (WorkflowRunner): The stage loop.
        profile_store (UserProfileStore): Source of the ``isRegistered`` flag.
        pacer (DeliveryPacer): Outbound delivery.
        circuit_breaker (Optional[CircuitBreakerRegistry]): Exposed for administration endpoints.
    """

    def __init__(self, thread_manager: ThreadManager, workflow: WorkflowRunner,
                 profile_store: UserProfileStore, pacer: DeliveryPacer,
                 circuit_breaker: Optional[CircuitBreakerRegistry] = None):
        self.thread_manager = thread_manager
        self.workflow = workflow
        self.profile_store = profile_store
        self.pacer = pacer
        self.circuit_breaker = circuit_breaker
        logger.info("[ConversationService] Initialized with %d stages", len(workflow.stages))

    def handle_inbound_message(self, inbound: Any) -> Optional[str]:
        """
        Process one normalized inbound message end to end.

        Args:
            inbound (Any): An ``InboundMessage`` or a dictionary with its fields.

        Returns:
            Optional[str]: The thread id the turn was recorded under, or None when the
            message was rejected or the turn failed. Never raises.
        """
        try:
            message = inbound if isinstance(inbound, InboundMessage) else InboundMessage.model_validate(inbound)
        except ValidationError as e:
            logger.warning(f"[ConversationService] Rejected malformed inbound message: {e}")
            TURN_COUNT.labels(channel="unknown", outcome="rejected").inc()
            return None

        if not message.content or not message.content.strip():
            logger.warning(f"[ConversationService] Ignoring empty message from {mask_user_id(message.userId)}")
            TURN_COUNT.labels(channel=message.channelId, outcome="rejected").inc()
            return None

        logger.info(
            f"[ConversationService] Inbound from {mask_user_id(message.userId)} on {message.channelId}: "
            f"'{truncate_message_for_logging(message.content, 50)}'"
        )

        try:
            with self.thread_manager.conversation_lock(message.userId, message.channelId):
                final_state = self._run_turn(message)
                replies = self._new_replies(final_state)
                self.pacer.deliver(message.userId, message.channelId, replies)
        except Exception as e:
            count_error('turn', 'conversation_service')
            logger.error(f"[ConversationService] Turn failed for {mask_user_id(message.userId)}: {e}", exc_info=True)
            TURN_COUNT.labels(channel=message.channelId, outcome="failed").inc()
            self._send_fallback(message)
            return None

        TURN_COUNT.labels(channel=message.channelId, outcome="completed").inc()
        return final_state.threadId

    def _run_turn(self, message: InboundMessage) -> ConversationState:
        thread_id = self.thread_manager.get_or_create_thread_id(message.userId, message.channelId)
        state = self.thread_manager.get_state(thread_id)
        if state is None:
            logger.info(f"[ConversationService] Starting new conversation state for thread {thread_id}")
            state = ConversationState(userId=message.userId, threadId=thread_id, channelId=message.channelId)

        user_message = Message(role=Role.USER, content=message.content)
        messages = list(state.messages) + [user_message]

        new_thread_id = self.thread_manager.check_and_reset_if_needed(
            thread_id, len(messages), user_id=message.userId, channel=message.channelId,
        )
        if new_thread_id != thread_id:
            # Durable memory carries over; the message history starts again.
            messages = [user_message]
            thread_id = new_thread_id

        state = state.model_copy(update={
            "messages": messages,
            "threadId": thread_id,
            "control": ControlFlags(),
            "next": Stage.INPUT_FILTER,
            "isRegistered": self._lookup_registration(message.userId, state.isRegistered),
        })

        final_state = self.workflow.run(state)

        try:
            self.thread_manager.set_state(final_state)
        except Exception as e:
            count_error('checkpoint', 'thread_manager')
            logger.error(f"[ConversationService] Failed to persist thread {thread_id}: {e}", exc_info=True)

        return final_state

    def _lookup_registration(self, user_id: str, current: bool) -> bool:
        """``find_by_identity`` then ``validate_completeness``; keeps ``current`` if the store fails."""
        try:
            if self.profile_store.find_by_identity(user_id) is None:
                return False
            return bool(self.profile_store.validate_completeness(user_id).get("isComplete"))
        except Exception as e:
            logger.warning(f"[ConversationService] Profile lookup failed for {mask_user_id(user_id)}: {e}")
            return current

    @staticmethod
    def _new_replies(state: ConversationState) -> List[Message]:
        """
        Assistant messages produced by this turn, in order and without repeated text.

        These are the assistant messages after the newest user message.
        """
        last_user_index = max(
            (i for i, m in enumerate(state.messages) if m.role == Role.USER),
            default=-1,
        )
        replies = []
        seen = set()
        for message in state.messages[last_user_index + 1:]:
            if message.role != Role.ASSISTANT:
                continue
            key = normalize_content(message.content)
            if key in seen:
                continue
            seen.add(key)
            replies.append(message)
        return replies

    def _send_fallback(self, message: InboundMessage) -> None:
        text = FALLBACK_MESSAGES["pt"] if looks_portuguese(message.content) else FALLBACK_MESSAGES["en"]
        try:
            self.pacer.deliver(message.userId, message.channelId, [Message(role=Role.ASSISTANT, content=text)])
        except Exception as e:
            count_error('delivery', 'fallback')
            logger.error(f"[ConversationService] Fallback delivery failed for {mask_user_id(message.userId)}: {e}", exc_info=True)


def build_channel_gateway() -> ChannelGateway:
    """Select the channel gateway from ``channel_gateway.backend`` (``recording`` or ``http``)."""
    backend = get_config_value(['channel_gateway', 'backend'], 'CHANNEL_GATEWAY_BACKEND', 'recording')
    if str(backend).lower() == 'http':
        base_url = get_config_value(['channel_gateway', 'base_url'], 'CHANNEL_GATEWAY_URL', '')
        if not base_url:
            raise ValueError("channel_gateway.backend is 'http' but no base_url / CHANNEL_GATEWAY_URL is set")
        timeout_s = float(get_config_value(['channel_gateway', 'timeout_s'], 'CHANNEL_GATEWAY_TIMEOUT_S', 5.0))
        api_token = get_config_value(['channel_gateway', 'api_token'], 'CHANNEL_GATEWAY_TOKEN')
        return HttpChannelGateway(base_url, api_token=api_token, timeout_s=timeout_s)
    return RecordingChannelGateway()


def build_conversation_service(gateway: Optional[ChannelGateway] = None,
                               profile_store: Optional[UserProfileStore] = None,
                               store: Optional[ContextStore] = None,
                               completion_service: Any = None,
                               circuit_breaker: Optional[CircuitBreakerRegistry] = None,
                               sleep: Any = None) -> ConversationService:
    """
    Wire a `ConversationService` from CONFIG, with every collaborator overridable.

    Args:
        gateway (Optional[ChannelGateway]): Outbound channel. Default from ``channel_gateway``.
        profile_store (Optional[UserProfileStore]): Defaults to an in-memory store.
        store (Optional[ContextStore]): Defaults to the ``context_store.backend`` selection.
        completion_service (Any): Defaults to a `CompletionService` guarded by ``circuit_breaker``.
        circuit_breaker (Optional[CircuitBreakerRegistry]): Defaults to the ``circuit_breaker`` section.
        sleep (Any): Sleep function for the delivery pacer; ``time.sleep`` when None.

    Returns:
        ConversationService: A ready-to-use service.
    """
    circuit_breaker = circuit_breaker or CircuitBreakerRegistry.from_config(CONFIG.get('circuit_breaker', {}))
    completion_service = completion_service or CompletionService(circuit_breaker)
    profile_store = profile_store or InMemoryUserProfileStore()
    gateway = gateway or build_channel_gateway()
    store = store or build_context_store(
        get_config_value(['context_store', 'backend'], 'CONTEXT_STORE_BACKEND', 'file')
    )

    thread_config = CONFIG.get('threads', {})
    thread_manager = ThreadManager(
        store,
        max_safe_message_count=thread_config.get('max_safe_message_count', 30),
        ttl_seconds=thread_config.get('ttl_seconds', 86400),
    )

    detector = LanguageDetector(
        completion_service,
        cache_size=CONFIG.get('input_filter', {}).get('language_cache_size', 500),
    )
    stages = {
        Stage.INPUT_FILTER: InputFilter(detector),
        Stage.ROUTER: Router(RoutingClassifier(completion_service)),
        Stage.REGISTRATION_WORKER: RegistrationWorker(profile_store),
        Stage.DOMAIN_WORKER: DomainSpecialistWorker(completion_service),
        Stage.GENERAL_WORKER: GeneralWorker(completion_service),
        Stage.ERROR_HANDLER: ErrorHandler(completion_service),
        Stage.OUTPUT_FILTER: OutputFilter(completion_service),
    }

    delivery_config = CONFIG.get('delivery', {})
    pacer_kwargs = {key: value for key, value in delivery_config.items()
                    if key in ('base_delay_ms', 'per_char_delay_ms', 'max_typing_delay_ms')}
    if sleep is not None:
        pacer_kwargs['sleep'] = sleep
    pacer = DeliveryPacer(gateway, **pacer_kwargs)

    return ConversationService(
        thread_manager=thread_manager,
        workflow=WorkflowRunner(stages),
        profile_store=profile_store,
        pacer=pacer,
        circuit_breaker=circuit_breaker,
    )
