"""
shared/models.py

Common data models and type definitions used across the pipeline stages.

Every stage of a turn receives a ``ConversationState`` and returns a new one.
The models are pydantic so that the same objects can be validated at the
pipeline boundary, dumped to JSON for the checkpoint store, and rehydrated at
the start of the next turn without hand-written (de)serialization.

Field ownership and update semantics (a stage never merges partially):

    messages  replaced with a new list. Workers, the Error Handler and the
              Router's exit interrupt build ``old + [reply]``; the Input Filter
              builds the deduplicated, capped list; the Output Filter replaces
              the last assistant message with its annotated chunks.
    control   replaced with ``control.model_copy(update=...)`` by every stage,
              and reset to a fresh ``ControlFlags`` at the start of each turn.
    memory    replaced with ``memory.model_copy(update=...)``. Nested records
              (registration state, interruption snapshot) are replaced as whole
              objects, never edited in place.
    next      replaced by every stage.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Timezone-aware current time used for every timestamp stored in state."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ProcessType(str, Enum):
    """
    Multi-turn processes tracked in ``MemoryContext.currentProcess``.

    - REGISTRATION: the step-by-step account creation flow
    - DOMAIN_TASK: an ongoing conversation with the domain specialist
    - GENERAL: free conversation with the general assistant
    """
    REGISTRATION = "REGISTRATION"
    DOMAIN_TASK = "DOMAIN_TASK"
    GENERAL = "GENERAL"


class Stage(str, Enum):
    """Names of the pipeline stages. ``END`` terminates the turn."""
    INPUT_FILTER = "input_filter"
    ROUTER = "router"
    REGISTRATION_WORKER = "registration_worker"
    DOMAIN_WORKER = "domain_worker"
    GENERAL_WORKER = "general_worker"
    ERROR_HANDLER = "error_handler"
    OUTPUT_FILTER = "output_filter"
    END = "END"


WORKER_STAGES = (Stage.REGISTRATION_WORKER, Stage.DOMAIN_WORKER, Stage.GENERAL_WORKER)

# Stage that owns (and is able to resume) each process type.
PROCESS_OWNERS = {
    ProcessType.REGISTRATION: Stage.REGISTRATION_WORKER,
    ProcessType.DOMAIN_TASK: Stage.DOMAIN_WORKER,
    ProcessType.GENERAL: Stage.GENERAL_WORKER,
}


class RegistrationStep(str, Enum):
    COLLECT_NAME = "collect_name"
    COLLECT_EMAIL = "collect_email"
    COLLECT_BIRTHDATE = "collect_birthdate"
    COLLECT_GENDER = "collect_gender"
    COLLECT_COUNTRY = "collect_country"
    COLLECT_CONSENT = "collect_consent"
    CONFIRM = "confirm"
    COMPLETED = "completed"


REGISTRATION_SEQUENCE = [
    RegistrationStep.COLLECT_NAME,
    RegistrationStep.COLLECT_EMAIL,
    RegistrationStep.COLLECT_BIRTHDATE,
    RegistrationStep.COLLECT_GENDER,
    RegistrationStep.COLLECT_COUNTRY,
    RegistrationStep.COLLECT_CONSENT,
    RegistrationStep.CONFIRM,
    RegistrationStep.COMPLETED,
]


class ConfirmationKind(str, Enum):
    """Interrupts that ask the user a yes/no question before acting."""
    PROCESS_EXIT = "process_exit"


class MessageType(str, Enum):
    GREETING = "GREETING"
    EXPLANATION = "EXPLANATION"
    INSTRUCTION = "INSTRUCTION"
    CONFIRMATION = "CONFIRMATION"
    WARNING = "WARNING"
    ERROR = "ERROR"
    FOLLOW_UP = "FOLLOW_UP"
    SUMMARY = "SUMMARY"
    STEP = "STEP"
    EXAMPLE = "EXAMPLE"
    TIP = "TIP"


class Domain(str, Enum):
    GENERAL = "GENERAL"
    FINANCIAL_EDUCATION = "FINANCIAL_EDUCATION"
    ACCOUNT_MANAGEMENT = "ACCOUNT_MANAGEMENT"
    BUDGETING = "BUDGETING"
    INVESTMENT = "INVESTMENT"
    SAVINGS = "SAVINGS"
    DEBT_MANAGEMENT = "DEBT_MANAGEMENT"
    REGISTRATION = "REGISTRATION"
    ERROR_HANDLING = "ERROR_HANDLING"


class KnowledgeLevel(str, Enum):
    NO_KNOWLEDGE = "NO_KNOWLEDGE"
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

_ROLE_ALIASES = {
    "user": Role.USER,
    "human": Role.USER,
    "assistant": Role.ASSISTANT,
    "ai": Role.ASSISTANT,
    "bot": Role.ASSISTANT,
    "system": Role.SYSTEM,
}


class MessageAnnotations(BaseModel):
    """Delivery metadata attached by the Output Filter to each outbound chunk."""
    messageType: MessageType = MessageType.EXPLANATION
    domain: Domain = Domain.GENERAL
    order: int = 0
    groupId: Optional[str] = None
    isStandalone: bool = True
    delayMs: int = 0


class Message(BaseModel):
    """
    A single conversational message.

    Producers upstream of the pipeline (webhooks, stored checkpoints written by
    older versions, test fixtures) hand over messages in different shapes. They
    are normalized once, through ``Message.from_raw``, before anything else in
    the pipeline touches them.
    """
    role: Role
    content: str = ""
    annotations: Optional[MessageAnnotations] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "Message":
        """
        Build a ``Message`` from any of the accepted producer shapes.

        Accepted shapes:
        - an existing ``Message`` (returned as is)
        - a dict with ``role`` (or ``type``, e.g. ``human``/``ai``) and ``content`` (or ``text``)
        - a ``(role, content)`` tuple or list

        Raises:
            ValueError: If the role cannot be recognized.
        """
        if isinstance(raw, Message):
            return raw
        annotations = None
        if isinstance(raw, dict):
            role_value = raw.get("role") or raw.get("type")
            content = raw.get("content", raw.get("text"))
            annotations = raw.get("annotations")
        elif isinstance(raw, (tuple, list)) and len(raw) == 2:
            role_value, content = raw
        else:
            raise ValueError(f"Unsupported message shape: {type(raw).__name__}")

        role = _ROLE_ALIASES.get(str(role_value or "").strip().lower())
        if role is None:
            raise ValueError(f"Unknown message role: {role_value!r}")

        if content is None:
            content = ""
        elif not isinstance(content, str):
            content = str(content)

        return cls(role=role, content=content, annotations=annotations)


# ---------------------------------------------------------------------------
# Durable memory
# ---------------------------------------------------------------------------

class LanguagePreference(BaseModel):
    code: str = "en"
    name: str = "English"
    detectedAt: datetime = Field(default_factory=utc_now)


class RegistrationState(BaseModel):
    """Progress of the registration process plus the fields collected so far."""
    step: RegistrationStep = RegistrationStep.COLLECT_NAME
    name: Optional[str] = None
    email: Optional[str] = None
    birthDate: Optional[str] = None
    gender: Optional[str] = None
    country: Optional[str] = None
    termsAccepted: bool = False
    confirmed: bool = False
    isValid: bool = True
    lastValidationError: Optional[str] = None

    def is_active(self) -> bool:
        return self.step != RegistrationStep.COMPLETED


class InterruptedProcess(BaseModel):
    """Snapshot that lets a diverted process resume where it stopped."""
    type: ProcessType
    returnToStage: Stage
    originalStep: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    dataSnapshot: Dict[str, Any] = Field(default_factory=dict)


class Diversion(BaseModel):
    fromProcess: ProcessType
    toProcess: ProcessType
    timestamp: datetime = Field(default_factory=utc_now)


class MemoryContext(BaseModel):
    """Durable cross-turn context persisted with the thread checkpoint."""
    currentProcess: ProcessType = ProcessType.GENERAL
    currentStep: str = "general_assistant"
    registrationState: Optional[RegistrationState] = None
    interruptedProcess: Optional[InterruptedProcess] = None
    languagePreference: Optional[LanguagePreference] = None
    lastInteraction: Optional[datetime] = None
    relevantHistorySummary: str = ""
    knowledgeLevel: KnowledgeLevel = KnowledgeLevel.BEGINNER
    pendingConfirmation: Optional[ConfirmationKind] = None
    lastDiversion: Optional[Diversion] = None

    def registration_in_progress(self) -> bool:
        """True while the user is inside an unfinished registration."""
        return (
            self.currentProcess == ProcessType.REGISTRATION
            and self.registrationState is not None
            and self.registrationState.is_active()
        )

    def pause_registration(self, to_process: ProcessType, to_step: str) -> "MemoryContext":
        """
        Return a copy with the in-progress registration saved as an ``InterruptedProcess``.

        ``currentProcess`` moves to ``to_process``. An existing snapshot is never
        overwritten, and a memory without an active registration is returned unchanged.
        """
        if not self.registration_in_progress() or self.interruptedProcess is not None:
            return self
        registration = self.registrationState
        snapshot = InterruptedProcess(
            type=ProcessType.REGISTRATION,
            returnToStage=Stage.REGISTRATION_WORKER,
            originalStep=registration.step.value,
            timestamp=utc_now(),
            dataSnapshot=registration.model_dump(mode="json"),
        )
        return self.model_copy(update={
            "interruptedProcess": snapshot,
            "currentProcess": to_process,
            "currentStep": to_step,
            "lastDiversion": Diversion(fromProcess=ProcessType.REGISTRATION, toProcess=to_process),
        })


# ---------------------------------------------------------------------------
# Transient per-turn control flags
# ---------------------------------------------------------------------------

class MessageBreakdown(BaseModel):
    totalMessages: int = 1
    shouldBreakMessages: bool = False
    requiresFollowUp: bool = False


class CandidateField(BaseModel):
    """A registration value the Router recognized in the latest message."""
    field: str
    value: str


class ControlFlags(BaseModel):
    inputValidated: bool = False
    outputValidated: bool = False
    lastError: Optional[str] = None
    lastStage: Optional[Stage] = None
    routingReason: Optional[str] = None
    shouldMaintainProcess: bool = False
    temporaryDiversion: bool = False
    candidateField: Optional[CandidateField] = None
    resumeProcess: bool = False
    exitConfirmed: bool = False
    messageBreakdown: Optional[MessageBreakdown] = None


class ConversationState(BaseModel):
    """The single object threaded through every stage of a turn."""
    messages: List[Message] = Field(default_factory=list)
    userId: str
    threadId: str
    channelId: str = "whatsapp"
    isRegistered: bool = False
    control: ControlFlags = Field(default_factory=ControlFlags)
    memory: MemoryContext = Field(default_factory=MemoryContext)
    next: Optional[Stage] = Stage.INPUT_FILTER

    def last_user_message(self) -> Optional[Message]:
        for message in reversed(self.messages):
            if message.role == Role.USER:
                return message
        return None

    def with_reply(self, content: str, **updates: Any) -> "ConversationState":
        """Return a new state with one assistant message appended and ``updates`` applied."""
        messages = list(self.messages) + [Message(role=Role.ASSISTANT, content=content)]
        return self.model_copy(update={"messages": messages, **updates})


# ---------------------------------------------------------------------------
# Structured outputs requested from the completion service
# ---------------------------------------------------------------------------

class RoutingDecision(BaseModel):
    """Validate the JSON routing decision returned by the classifier. Never shown to the user."""
    routeTo: Stage = Field(..., description="One of the worker stages")
    reasoning: str = Field("", description="Short justification for logs")
    shouldMaintainProcess: bool = Field(False, description="Whether the current process continues")


class StructuredChunk(BaseModel):
    content: str
    messageType: MessageType = MessageType.EXPLANATION
    domain: Domain = Domain.GENERAL
    order: int = 0
    groupId: Optional[str] = None
    isStandalone: bool = True
    delayMs: int = 0


class ReplyContext(BaseModel):
    shouldBreakMessages: bool = False
    requiresFollowUp: bool = False
    emotionalContext: str = "neutral"


class StructuredReply(BaseModel):
    """Validate the message decomposition returned by the structuring service."""
    messages: List[StructuredChunk] = Field(default_factory=list)
    context: ReplyContext = Field(default_factory=ReplyContext)


class LanguageDetection(BaseModel):
    code: str = "en"
    name: str = "English"
    confidence: float = 1.0


# ---------------------------------------------------------------------------
# Channel payloads
# ---------------------------------------------------------------------------

class InboundMessage(BaseModel):
    """Normalized inbound message handed over by the channel gateway."""
    userId: str
    content: str = ""
    channelId: str = "whatsapp"
    attachments: List[Dict[str, Any]] = Field(default_factory=list)


class OutboundMetadata(BaseModel):
    messageType: MessageType = MessageType.EXPLANATION
    isTyping: bool = False


class OutboundMessage(BaseModel):
    userId: str
    content: str
    channelId: str
    attachments: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: OutboundMetadata = Field(default_factory=OutboundMetadata)
