"""
shared/exceptions.py

Error hierarchy for the conversation router.

Collaborators (completion service, stores) raise these. Pipeline stages catch
them at their boundary and route forward, so none of them ever reaches the
public entry point.
"""


class ConversationRouterError(Exception):
    """Base error for the conversation router."""
    pass


class UpstreamServiceError(ConversationRouterError):
    """The completion service failed or returned an unusable response."""
    pass


class CircuitOpenError(UpstreamServiceError):
    """The circuit guarding an upstream provider is open; the call was not attempted."""

    def __init__(self, circuit_name: str):
        super().__init__(f"Circuit '{circuit_name}' is open; call rejected")
        self.circuit_name = circuit_name


class StructuredOutputError(ConversationRouterError):
    """The completion service answered, but not with the requested JSON schema."""
    pass


class ContextStoreError(ConversationRouterError):
    """The checkpoint store could not read or write a key."""
    pass


class ProfileStoreError(ConversationRouterError):
    """The user-profile store rejected a lookup or an update."""
    pass
