"""
In-memory collaborator implementations for local runs, demos, and tests.

``InMemoryUserProfileStore`` keeps profiles in a dictionary guarded by a lock;
``RecordingChannelGateway`` appends every outbound message to a list and logs
it. Because behavior is deterministic, tests can assert on exactly what was
stored and sent without any network access.
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional

from shared.exceptions import ProfileStoreError
from shared.models import OutboundMessage
from .base import ChannelGateway, UserProfileStore, REQUIRED_PROFILE_FIELDS

logger = logging.getLogger(__name__)


class InMemoryUserProfileStore(UserProfileStore):
    """
    Dictionary-backed profile store.

    Profiles are copied on the way in and out so callers can never mutate stored
    state by accident.
    """

    def __init__(self, profiles: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self._profiles: Dict[str, Dict[str, Any]] = copy.deepcopy(profiles or {})
        self._lock = threading.Lock()

    def find_by_identity(self, identity: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            profile = self._profiles.get(identity)
            return copy.deepcopy(profile) if profile is not None else None

    def create(self, identity: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if identity in self._profiles:
                raise ProfileStoreError(f"Profile already exists for identity '{identity}'")
            self._profiles[identity] = {"identity": identity, **copy.deepcopy(fields)}
            logger.info(f"[InMemoryUserProfileStore] Created profile for {identity}")
            return copy.deepcopy(self._profiles[identity])

    def update(self, identity: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if identity not in self._profiles:
                raise ProfileStoreError(f"No profile for identity '{identity}'")
            self._profiles[identity].update(copy.deepcopy(fields))
            return copy.deepcopy(self._profiles[identity])

    def validate_completeness(self, identity: str) -> Dict[str, Any]:
        profile = self.find_by_identity(identity) or {}
        missing = [name for name in REQUIRED_PROFILE_FIELDS if not profile.get(name)]
        return {"isComplete": not missing, "missingSteps": missing}


class RecordingChannelGateway(ChannelGateway):
    """Gateway that keeps every outbound message in ``sent`` instead of delivering it."""

    def __init__(self) -> None:
        self.sent: List[OutboundMessage] = []

    def send(self, message: OutboundMessage) -> None:
        self.sent.append(message)
        logger.info(
            f"[RecordingChannelGateway] -> {message.userId} ({message.channelId}) "
            f"[{message.metadata.messageType.value}]: {message.content[:80]}"
        )
