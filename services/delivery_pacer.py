"""
Paced delivery of a turn's outbound messages.

A reply that the output filter broke into several messages is sent one message
at a time, with a pause before each that imitates a person typing:

    delay_ms = base_delay_ms + min(len(content) * per_char_delay_ms, max_typing_delay_ms) + annotations.delayMs

Messages are sent in ``annotations.order`` order. Messages with empty content
are skipped. A failed send is logged and counted, and delivery continues with
the next message.
"""

import logging
import time
from typing import Callable, List, Sequence

from config.logging_config import mask_user_id
from monitoring.metrics import DELIVERED_MESSAGES, count_error
from provider_api.base import ChannelGateway
from shared.models import Message, MessageType, OutboundMessage, OutboundMetadata

logger = logging.getLogger(__name__)

BASE_DELAY_MS = 500
PER_CHAR_DELAY_MS = 20
MAX_TYPING_DELAY_MS = 2000


class DeliveryPacer:
    def __init__(self, gateway: ChannelGateway, base_delay_ms: int = BASE_DELAY_MS,
                 per_char_delay_ms: int = PER_CHAR_DELAY_MS, max_typing_delay_ms: int = MAX_TYPING_DELAY_MS,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        self.gateway = gateway
        self.base_delay_ms = base_delay_ms
        self.per_char_delay_ms = per_char_delay_ms
        self.max_typing_delay_ms = max_typing_delay_ms
        self._sleep = sleep

    def compute_delay_ms(self, message: Message) -> int:
        typing_delay = min(len(message.content) * self.per_char_delay_ms, self.max_typing_delay_ms)
        extra = message.annotations.delayMs if message.annotations else 0
        return self.base_delay_ms + typing_delay + max(0, extra)

    def deliver(self, user_id: str, channel_id: str, messages: Sequence[Message]) -> int:
        """
        Send ``messages`` to the user through the gateway, pacing each one.

        Returns:
            int: Number of messages handed to the gateway successfully.
        """
        ordered: List[Message] = sorted(
            messages, key=lambda m: m.annotations.order if m.annotations else 0
        )
        delivered = 0
        for message in ordered:
            if not message.content or not message.content.strip():
                logger.debug("[DeliveryPacer] Skipping message with empty content")
                continue

            delay_ms = self.compute_delay_ms(message)
            self._sleep(delay_ms / 1000)

            message_type = message.annotations.messageType if message.annotations else MessageType.EXPLANATION
            outbound = OutboundMessage(
                userId=user_id,
                content=message.content,
                channelId=channel_id,
                attachments=[],
                metadata=OutboundMetadata(messageType=message_type, isTyping=False),
            )
            try:
                self.gateway.send(outbound)
            except Exception as e:
                count_error('delivery', type(self.gateway).__name__)
                logger.error(f"[DeliveryPacer] Failed to send message to {mask_user_id(user_id)}: {e}", exc_info=True)
                continue
            delivered += 1
            DELIVERED_MESSAGES.labels(channel=channel_id).inc()

        logger.info(f"[DeliveryPacer] Delivered {delivered}/{len(ordered)} message(s) to {mask_user_id(user_id)}")
        return delivered
