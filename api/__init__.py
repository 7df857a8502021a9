"""
api package: FastAPI routers mounted under ``/api`` by ``main.py``.

Included modules:
- messages: Inbound message webhook that runs a conversation turn
- circuits: Circuit breaker inspection and reset
- dependencies: Lazily built, shared conversation service
"""
