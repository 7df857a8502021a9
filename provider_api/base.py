"""
Collaborator interfaces for user profiles and outbound channel delivery.

The conversation pipeline depends on two external systems it does not own:

- a user-profile store, which answers "who is this user and is their
  registration complete?" and persists the fields the registration worker
  collects;
- a channel gateway, which delivers each outbound message to the messaging
  channel the user wrote from.

Both are expressed as Abstract Base Classes (ABC) so the pipeline only depends
on the small contract below. In-memory implementations ship in
``provider_api.mock_client`` so the service runs end-to-end without a database
or channel credentials; an HTTP gateway lives in ``provider_api.http_gateway``.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from shared.models import OutboundMessage

# Fields that must be present for a profile to count as completely registered,
# in the order the registration worker collects them.
REQUIRED_PROFILE_FIELDS: List[str] = ["name", "email", "birthDate", "gender", "country", "termsAccepted"]


class UserProfileStore(ABC):
    """
    Abstract store of user profiles keyed by channel identity (for example a phone number).

    Implementations translate between their storage and plain dictionaries using
    the camelCase field names of ``shared.models.RegistrationState``. Failures
    should raise ``shared.exceptions.ProfileStoreError``.
    """

    @abstractmethod
    def find_by_identity(self, identity: str) -> Optional[Dict[str, Any]]:
        """
        Look up the profile for ``identity``.

        Returns:
            Optional[Dict[str, Any]]: The profile fields, or None when the user is unknown.
        """
        raise NotImplementedError

    @abstractmethod
    def create(self, identity: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create a profile for ``identity`` with the given fields and return it."""
        raise NotImplementedError

    @abstractmethod
    def update(self, identity: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``fields`` into the existing profile and return the updated profile."""
        raise NotImplementedError

    @abstractmethod
    def validate_completeness(self, identity: str) -> Dict[str, Any]:
        """
        Check whether every required field of the profile is filled in.

        Returns:
            Dict[str, Any]: ``{"isComplete": bool, "missingSteps": List[str]}``.
        """
        raise NotImplementedError

    def upsert(self, identity: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create the profile on first write, update it afterwards."""
        if self.find_by_identity(identity) is None:
            return self.create(identity, fields)
        return self.update(identity, fields)


class ChannelGateway(ABC):
    """Abstract outbound side of a messaging channel. One ``send`` call per paced message."""

    @abstractmethod
    def send(self, message: OutboundMessage) -> None:
        """
        Deliver one message to the user.

        Raises:
            Exception: Implementations may raise on transport failure; the delivery
                pacer logs the failure and continues with the next message.
        """
        raise NotImplementedError
