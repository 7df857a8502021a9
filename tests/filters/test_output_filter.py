"""
Tests for `filters/output_filter.py`.

The structuring service is the scripted `FakeCompletionService` from
`conftest.py`, so each test fixes the decomposition the "model" returns.

Focus:
- The worker reply is replaced by ordered, annotated chunks and the breakdown is recorded
- Tone and channel formatting are applied per chunk
- Structuring failures pass the original reply through unchanged in meaning
"""

import os

os.environ.setdefault("NEBIUS_API_KEY", "test-key")

from conftest import FakeCompletionService, make_state
from filters.output_filter import OutputFilter
from shared.exceptions import StructuredOutputError
from shared.models import (
    ControlFlags,
    Domain,
    KnowledgeLevel,
    LanguagePreference,
    MemoryContext,
    MessageType,
    Role,
    Stage,
)


def _replied_state(reply, language="en", level=KnowledgeLevel.INTERMEDIATE, last_stage=Stage.DOMAIN_WORKER):
    state = make_state(
        "How do I save money?",
        memory=MemoryContext(languagePreference=LanguagePreference(code=language, name=language), knowledgeLevel=level),
        control=ControlFlags(inputValidated=True, lastStage=last_stage),
        next=Stage.OUTPUT_FILTER,
    )
    return state.with_reply(reply)


def test_reply_is_split_into_ordered_annotated_chunks():
    completion = FakeCompletionService(structured={"output_structuring": {
        "messages": [
            {"content": "Then save **20%** of it.", "messageType": "TIP", "domain": "SAVINGS", "order": 1, "delayMs": 300},
            {"content": "First, track your spending.", "messageType": "STEP", "domain": "BUDGETING", "order": 0},
        ],
        "context": {"shouldBreakMessages": True, "requiresFollowUp": True},
    }})
    stage = OutputFilter(completion, channel_format="whatsapp")
    result = stage.run(_replied_state("First, track your spending. Then save **20%** of it."))

    assistant = [m for m in result.messages if m.role == Role.ASSISTANT]
    assert [m.content for m in assistant] == ["First, track your spending.", "Then save *20%* of it."]
    assert [m.annotations.order for m in assistant] == [0, 1]
    assert assistant[0].annotations.messageType == MessageType.STEP
    assert assistant[1].annotations.domain == Domain.SAVINGS
    assert assistant[1].annotations.delayMs == 300

    assert result.next == Stage.END
    assert result.control.outputValidated
    assert result.control.messageBreakdown.totalMessages == 2
    assert result.control.messageBreakdown.shouldBreakMessages
    assert result.control.messageBreakdown.requiresFollowUp


def test_prompt_carries_domain_of_the_answering_worker():
    completion = FakeCompletionService(structured={"output_structuring": {"messages": [{"content": "ok"}]}})
    OutputFilter(completion).run(_replied_state("ok", last_stage=Stage.REGISTRATION_WORKER))

    prompt = completion.calls_for("output_structuring")[0][2][0]["content"]
    assert "Domain: REGISTRATION" in prompt


def test_tone_is_adjusted_for_beginners():
    completion = FakeCompletionService(structured={"output_structuring": {
        "messages": [{"content": "A volatilidade é normal para quem investe."}],
    }})
    stage = OutputFilter(completion, channel_format="plain")
    result = stage.run(_replied_state("A volatilidade é normal para quem investe.", language="pt",
                                      level=KnowledgeLevel.BEGINNER))

    assert result.messages[-1].content == "A variação é normal pra quem investe."


def test_structuring_failure_passes_reply_through():
    completion = FakeCompletionService(structured={"output_structuring": StructuredOutputError("bad json")})
    stage = OutputFilter(completion, channel_format="whatsapp")
    result = stage.run(_replied_state("It is **important** to save."))

    assert result.messages[-1].content == "It is *important* to save."
    assert result.messages[-1].annotations.order == 0
    assert result.control.messageBreakdown.totalMessages == 1
    assert result.control.outputValidated
    assert result.next == Stage.END


def test_empty_structuring_passes_reply_through():
    completion = FakeCompletionService(structured={"output_structuring": {"messages": [{"content": "  "}]}})
    result = OutputFilter(completion, channel_format="plain").run(_replied_state("Keep going."))
    assert result.messages[-1].content == "Keep going."


def test_already_validated_output_is_left_alone():
    completion = FakeCompletionService()
    state = _replied_state("Done.")
    state = state.model_copy(update={"control": state.control.model_copy(update={"outputValidated": True})})
    result = OutputFilter(completion).run(state)

    assert result.messages == state.messages
    assert result.next == Stage.END
    assert completion.calls == []
