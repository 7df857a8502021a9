"""
filters/output_filter.py

Last stage of every answered turn: turn a worker's reply into deliverable chat messages.

The output filter:
- asks the completion service to split the reply into a ``StructuredReply``
  (short messages, each with a type, a domain and an order)
- adjusts the tone of each chunk for the user's language and knowledge level
- converts markdown to the markup of the delivery channel
- replaces the worker's reply with the annotated chunks and records the breakdown

If structuring fails or yields no usable chunk, the original reply is passed
through as a single message with default annotations. The reply is never lost.
"""

from typing import List, Optional

from filters.tone import ToneAdjuster
from shared.channel_format import get_formatter
from shared.exceptions import StructuredOutputError
from shared.models import (
    ConversationState,
    Domain,
    Message,
    MessageAnnotations,
    MessageBreakdown,
    ReplyContext,
    Role,
    Stage,
    StructuredChunk,
    StructuredReply,
)
from shared.utils import format_recent_turns
from core.stage import BaseStage

# Domain of a reply, by the worker that produced it.
STAGE_DOMAINS = {
    Stage.REGISTRATION_WORKER: Domain.REGISTRATION,
    Stage.DOMAIN_WORKER: Domain.FINANCIAL_EDUCATION,
    Stage.GENERAL_WORKER: Domain.GENERAL,
    Stage.ERROR_HANDLER: Domain.ERROR_HANDLING,
}


class OutputFilter(BaseStage):
    """
    Structure, tone-adjust and format the worker reply for the channel.

    Args:
        completion_service: Object with ``complete_structured(messages, schema, model_key)``.
        tone (Optional[ToneAdjuster]): Tone rules; a default ``ToneAdjuster`` when omitted.
        channel_format (Optional[str]): Key of ``shared.channel_format.CHANNEL_FORMATTERS``.
            Defaults to ``output.channel_format``.
    """

    def __init__(self, completion_service, tone: Optional[ToneAdjuster] = None,
                 channel_format: Optional[str] = None):
        self.completion_service = completion_service
        self.tone = tone or ToneAdjuster()
        self._channel_format = channel_format
        super().__init__()

    def setup(self) -> None:
        output_config = self.config.get('output', {})
        self.channel_format = self._channel_format or output_config.get('channel_format', 'whatsapp')
        self.default_language = output_config.get('default_language', 'pt-BR')
        self.formatter = get_formatter(self.channel_format)
        self.prompt_template = self.config['output_structuring_message']
        self.logger.info(f"[OutputFilter] Initialized for channel format '{self.channel_format}'")

    def get_stage_name(self) -> Stage:
        return Stage.OUTPUT_FILTER

    def _structure(self, state: ConversationState, reply: str, domain: Domain,
                   language: str) -> StructuredReply:
        prompt = self.prompt_template.format(
            domain=domain.value,
            knowledge_level=state.memory.knowledgeLevel.value,
            language=language,
            reply=reply,
        )
        recent = format_recent_turns(state.messages[:-1], limit=3)
        messages = [{"role": "system", "content": prompt}]
        if recent:
            messages.append({"role": "user", "content": f"Recent conversation:\n{recent}"})
        structured = self.completion_service.complete_structured(messages, StructuredReply, "output_structuring")
        if not [chunk for chunk in structured.messages if chunk.content.strip()]:
            raise StructuredOutputError("Structuring returned no message chunks")
        return structured

    def _run_internal(self, state: ConversationState) -> ConversationState:
        if state.control.outputValidated:
            return state.model_copy(update={"next": Stage.END})

        reply_index = next(
            (i for i in range(len(state.messages) - 1, -1, -1) if state.messages[i].role == Role.ASSISTANT),
            None,
        )
        if reply_index is None:
            self.logger.warning("[OutputFilter] No assistant reply to format")
            control = state.control.model_copy(update={"outputValidated": True})
            return state.model_copy(update={"control": control, "next": Stage.END})

        reply = state.messages[reply_index].content
        domain = STAGE_DOMAINS.get(state.control.lastStage, Domain.GENERAL)
        preference = state.memory.languagePreference
        language_code = preference.code if preference else self.default_language
        language_name = preference.name if preference else self.default_language

        passthrough = False
        try:
            structured = self._structure(state, reply, domain, language_name)
            chunks = sorted((c for c in structured.messages if c.content.strip()), key=lambda c: c.order)
            context = structured.context
        except Exception as e:
            self.logger.warning(f"[OutputFilter] Structuring failed, passing the reply through: {e}")
            chunks = [StructuredChunk(content=reply, domain=domain)]
            context = ReplyContext()
            passthrough = True

        annotated: List[Message] = []
        for position, chunk in enumerate(chunks):
            content = chunk.content
            if not passthrough:
                content = self.tone.adjust(
                    content,
                    language_code,
                    state.memory.knowledgeLevel,
                    message_type=chunk.messageType,
                    is_first=position == 0,
                )
            annotated.append(Message(
                role=Role.ASSISTANT,
                content=self.formatter(content),
                annotations=MessageAnnotations(
                    messageType=chunk.messageType,
                    domain=chunk.domain,
                    order=position,
                    groupId=chunk.groupId,
                    isStandalone=chunk.isStandalone,
                    delayMs=max(0, chunk.delayMs),
                ),
            ))

        messages = list(state.messages[:reply_index]) + annotated + list(state.messages[reply_index + 1:])
        breakdown = MessageBreakdown(
            totalMessages=len(annotated),
            shouldBreakMessages=len(annotated) > 1 or context.shouldBreakMessages,
            requiresFollowUp=context.requiresFollowUp,
        )
        control = state.control.model_copy(update={"outputValidated": True, "messageBreakdown": breakdown})
        self.logger.info(
            f"[OutputFilter] Prepared {len(annotated)} message(s) for {self.channel_format}"
            f"{' (passthrough)' if passthrough else ''}"
        )
        return state.model_copy(update={"messages": messages, "control": control, "next": Stage.END})

    def _on_failure(self, state: ConversationState, error: Exception) -> ConversationState:
        """The reply is already in ``messages``; deliver it unformatted rather than looping."""
        control = state.control.model_copy(update={"outputValidated": True, "lastError": None})
        return state.model_copy(update={"control": control, "next": Stage.END})
