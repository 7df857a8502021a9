"""
provider_api package: collaborators the conversation pipeline talks to but does not own.

Included modules:
- base: Abstract interfaces (ABC) for the user-profile store and the channel gateway.
- mock_client: Deterministic in-memory implementations used for local runs, tests and demos.
- http_gateway: A channel gateway that POSTs outbound messages to an HTTP endpoint.

Adding a real profile database or messaging provider means implementing the
matching interface in a new module and selecting it in ``core.orchestrator.build_conversation_service``.
"""

from .base import ChannelGateway, UserProfileStore, REQUIRED_PROFILE_FIELDS
from .mock_client import InMemoryUserProfileStore, RecordingChannelGateway
from .http_gateway import HttpChannelGateway, ChannelGatewayError, ChannelGatewayTimeoutError

__all__ = [
    "ChannelGateway",
    "UserProfileStore",
    "REQUIRED_PROFILE_FIELDS",
    "InMemoryUserProfileStore",
    "RecordingChannelGateway",
    "HttpChannelGateway",
    "ChannelGatewayError",
    "ChannelGatewayTimeoutError",
]
