""" api/circuits.py: Circuit breaker administration endpoints.

Operators use these endpoints to inspect the guards around upstream services
and to close a circuit by hand once the upstream has recovered.

Endpoints:
  - GET /circuits: All circuits with their state, counters and thresholds.
  - GET /circuits/{name}: One circuit, 404 when the name is unknown.
  - POST /circuits/{name}/reset: Force a circuit back to CLOSED, 404 when the name is unknown.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_circuit_breaker
from core.circuit_breaker import CircuitBreakerRegistry

# Get a logger instance for this module
logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/circuits")
def list_circuits(registry: CircuitBreakerRegistry = Depends(get_circuit_breaker)):
    return {name: record.to_dict() for name, record in registry.get_all().items()}


@router.get("/circuits/{name}")
def get_circuit(name: str, registry: CircuitBreakerRegistry = Depends(get_circuit_breaker)):
    record = registry.get_record(name)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Unknown circuit '{name}'")
    return {"name": name, **record.to_dict()}


@router.post("/circuits/{name}/reset")
def reset_circuit(name: str, registry: CircuitBreakerRegistry = Depends(get_circuit_breaker)):
    """Force the circuit to CLOSED and return its new record."""
    if not registry.reset(name):
        raise HTTPException(status_code=404, detail=f"Unknown circuit '{name}'")
    logger.warning(f"[reset_circuit] Circuit '{name}' reset by operator\n")
    return {"name": name, **registry.get_record(name).to_dict()}
