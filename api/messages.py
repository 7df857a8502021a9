""" api/messages.py: Inbound message webhook.

The channel integration posts every normalized inbound message here. The
endpoint runs the whole turn synchronously (routing, the worker reply, output
formatting and paced delivery through the channel gateway) and answers with
the thread the turn was recorded under.

Endpoints:
  - POST /messages: Accepts an ``InboundMessage`` JSON body and returns ``{status, threadId}``.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_conversation_service
from config.logging_config import mask_user_id
from core.orchestrator import ConversationService
from shared.models import InboundMessage

# Get a logger instance for this module
logger = logging.getLogger(__name__)

router = APIRouter()


# Declared with a plain ``def`` so FastAPI runs the turn (including the pacer's sleeps) in its thread pool.
@router.post("/messages")
def receive_message(message: InboundMessage, service: ConversationService = Depends(get_conversation_service)):
    """
    Process one inbound message through the conversation pipeline.

    Args:
        message (InboundMessage): userId, content, channelId and optional attachments.

    Returns:
        dict: ``{"status": "processed", "threadId": ...}`` when the turn completed, or
            ``{"status": "failed", "threadId": None}`` when it failed and the user got the fallback apology.

    Raises:
        HTTPException: 422 when the content is empty.
    """
    if not message.content or not message.content.strip():
        raise HTTPException(status_code=422, detail="Message content must not be empty.")

    logger.info(f"[receive_message] Message from {mask_user_id(message.userId)} on {message.channelId}\n")
    thread_id = service.handle_inbound_message(message)
    return {"status": "processed" if thread_id else "failed", "threadId": thread_id}
