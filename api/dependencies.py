""" api/dependencies.py: Shared FastAPI dependencies for the API routers.

The conversation service is expensive to build (it wires every stage, the
checkpoint store and the circuit registry), so one instance is created lazily
on first use and shared by all requests. Tests replace it through
``app.dependency_overrides[get_conversation_service]``.
"""

import logging
import threading
from typing import Optional

from core.circuit_breaker import CircuitBreakerRegistry
from core.orchestrator import ConversationService, build_conversation_service

logger = logging.getLogger(__name__)

_service: Optional[ConversationService] = None
_service_lock = threading.Lock()


def get_conversation_service() -> ConversationService:
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                logger.info("[dependencies] Building conversation service\n")
                _service = build_conversation_service()
    return _service


def get_circuit_breaker() -> CircuitBreakerRegistry:
    return get_conversation_service().circuit_breaker
