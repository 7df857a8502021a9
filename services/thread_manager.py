"""
Manages conversation threads: id mapping, checkpoint persistence, size bounding and locking.

A thread is the durable identifier that correlates all turns of one user on
one channel. This module provides:

- ``get_or_create_thread_id``: map ``(user, channel)`` to a thread id, minting one when needed
- ``get_state`` / ``set_state``: round-trip the full ``ConversationState`` of a thread
- ``check_and_reset_if_needed``: abandon a thread whose history grew past the
  safe ceiling and start a fresh one, leaving an audit trail
- ``conversation_lock``: serialize turns for the same ``(user, channel)``

Store keys:

    thread:{user}:{channel}           -> current thread id
    thread_owner:{thread_id}          -> {"userId", "channel"}
    checkpoint:{thread_id}            -> ConversationState as JSON
    thread_reset:{user}:{epoch_ms}    -> {oldThreadId, newThreadId, messageCount, resetTimestamp}
    thread_successor:{old_thread_id}  -> new thread id
"""

import logging
import random
import string
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from pydantic import ValidationError

from config.logging_config import mask_user_id
from services.context_store import ContextStore
from shared.models import ConversationState

logger = logging.getLogger(__name__)

MAX_SAFE_MESSAGE_COUNT = 30
DEFAULT_TTL_SECONDS = 86400

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def _random_base36(length: int = 9) -> str:
    return "".join(random.choice(_BASE36_ALPHABET) for _ in range(length))


class ThreadManager:
    """
    Thread bookkeeping on top of a ``ContextStore``.

    Args:
        store (ContextStore): Keyed store for mappings and checkpoints.
        max_safe_message_count (int): A thread whose message count exceeds this is reset.
        ttl_seconds (int): Expiry for mappings and checkpoints.
        clock (Callable[[], float]): Seconds clock, injectable for tests.
    """

    def __init__(self, store: ContextStore, max_safe_message_count: int = MAX_SAFE_MESSAGE_COUNT,
                 ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self.max_safe_message_count = max_safe_message_count
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # key -> [lock, number of turns holding or waiting for it]
        self._locks: Dict[str, List] = {}
        self._locks_guard = threading.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def generate_thread_id(self) -> str:
        """Mint a thread id of the form ``{epoch_ms}-{9 random base36 chars}``."""
        return f"{self._now_ms()}-{_random_base36()}"

    @staticmethod
    def _mapping_key(user_id: str, channel: str) -> str:
        return f"thread:{user_id}:{channel}"

    def get_or_create_thread_id(self, user_id: str, channel: str) -> str:
        """
        Return the current thread id for ``(user_id, channel)``, minting and storing one if absent.

        When the store is unavailable a temporary id (``temp-{epoch_ms}``) is returned
        so the turn can still be answered; its checkpoint will simply not be found
        on the next turn.
        """
        key = self._mapping_key(user_id, channel)
        try:
            existing = self.store.get(key)
            if existing:
                return existing
            thread_id = self.generate_thread_id()
            self._bind(thread_id, user_id, channel)
            logger.info(f"[ThreadManager] Created thread {thread_id} for {mask_user_id(user_id)} on {channel}")
            return thread_id
        except Exception as e:
            fallback = f"temp-{self._now_ms()}"
            logger.error(f"[ThreadManager] Thread lookup failed for {mask_user_id(user_id)}: {e}; using {fallback}", exc_info=True)
            return fallback

    def _bind(self, thread_id: str, user_id: str, channel: str) -> None:
        self.store.set(self._mapping_key(user_id, channel), thread_id, self.ttl_seconds)
        self.store.set(f"thread_owner:{thread_id}", {"userId": user_id, "channel": channel}, self.ttl_seconds)

    def check_and_reset_if_needed(self, thread_id: str, message_count: int,
                                  user_id: Optional[str] = None, channel: Optional[str] = None) -> str:
        """
        Start a new thread when ``message_count`` exceeds the safe ceiling.

        The old thread is abandoned: the ``(user, channel)`` mapping now points to
        the new id, and the reset is recorded both under a timestamped audit key
        and under ``thread_successor:{old}``. The owner is read from
        ``thread_owner:{thread_id}``; ``user_id`` and ``channel`` are used when that
        record is missing, e.g. for threads created before it existed.

        A store failure during the reset is logged and the turn continues on the
        old thread.

        Returns:
            str: ``thread_id`` unchanged, or the newly minted id after a reset.
        """
        if message_count <= self.max_safe_message_count:
            return thread_id

        try:
            owner = self.store.get(f"thread_owner:{thread_id}") or {}
            user_id = owner.get("userId") or user_id
            channel = owner.get("channel") or channel
            new_thread_id = self.generate_thread_id()
            reset_ms = self._now_ms()

            if user_id and channel:
                self._bind(new_thread_id, user_id, channel)
            self.store.set(f"thread_reset:{user_id or 'unknown'}:{reset_ms}", {
                "oldThreadId": thread_id,
                "newThreadId": new_thread_id,
                "messageCount": message_count,
                "resetTimestamp": reset_ms,
            }, self.ttl_seconds)
            self.store.set(f"thread_successor:{thread_id}", new_thread_id, self.ttl_seconds)
        except Exception as e:
            logger.error(f"[ThreadManager] Reset of thread {thread_id} failed: {e}; keeping it", exc_info=True)
            return thread_id

        logger.warning(
            f"[ThreadManager] Thread {thread_id} reached {message_count} messages "
            f"(limit {self.max_safe_message_count}); continuing in {new_thread_id}"
        )
        return new_thread_id

    def get_successor(self, thread_id: str) -> Optional[str]:
        """Thread id that replaced ``thread_id`` after a reset, if any."""
        return self.store.get(f"thread_successor:{thread_id}")

    def get_state(self, thread_id: str) -> Optional[ConversationState]:
        """Load the checkpoint of ``thread_id``; corrupted checkpoints are discarded."""
        raw = self.store.get(f"checkpoint:{thread_id}")
        if raw is None:
            return None
        try:
            return ConversationState.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"[ThreadManager] Discarding invalid checkpoint for {thread_id}: {e}")
            return None

    def set_state(self, state: ConversationState) -> None:
        self.store.set(f"checkpoint:{state.threadId}", state.model_dump(mode="json"), self.ttl_seconds)

    @contextmanager
    def conversation_lock(self, user_id: str, channel: str) -> Iterator[None]:
        """
        Hold the per-conversation lock for the duration of a turn.

        Turns for the same ``(user, channel)`` are processed one at a time, in
        the order they acquire the lock; different conversations never block
        each other.
        The entry for a conversation is dropped once no turn holds or waits for it.
        """
        key = self._mapping_key(user_id, channel)
        with self._locks_guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]
