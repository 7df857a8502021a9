"""
core/circuit_breaker.py

Circuit breaker guarding calls to unreliable upstream completion providers.

Each named circuit moves through three states:

    CLOSED     calls are allowed; consecutive failures are counted.
    OPEN       calls are rejected until ``reset_timeout_ms`` has elapsed since
               the last failure.
    HALF_OPEN  entered lazily the first time ``can_execute`` is asked after the
               cooldown; calls are allowed. ``half_open_success_threshold``
               successes close the circuit, a single failure re-opens it.

The registry is a plain object constructed by the application (see
``core.orchestrator.build_conversation_service``) and injected into the
completion service. Tests build their own isolated instances with a fake clock.

Every public method is exception-safe: an internal error is logged and the
caller is allowed to proceed, so the breaker can never wedge the pipeline.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace, asdict
from enum import Enum
from typing import Callable, Dict, Optional, Any

from monitoring.metrics import CIRCUIT_STATE, CIRCUIT_TRANSITIONS

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"
    UNKNOWN = "UNKNOWN"


_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


@dataclass(frozen=True)
class CircuitOptions:
    failure_threshold: int = 5
    reset_timeout_ms: int = 30000
    half_open_success_threshold: int = 2


@dataclass(frozen=True)
class CircuitRecord:
    """Immutable snapshot of one circuit. Transitions replace the record as a whole."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_at: Optional[float] = None
    half_open_success_count: int = 0
    thresholds: CircuitOptions = field(default_factory=CircuitOptions)

    def to_dict(self) -> Dict[str, Any]:
        """
        Render the record with the camelCase keys used by the circuits API.

        Returns:
            Dict[str, Any]: state, failureCount, lastFailureAt (epoch ms or None),
            halfOpenSuccessCount and the thresholds.
        """
        thresholds = asdict(self.thresholds)
        return {
            'state': self.state.value,
            'failureCount': self.failure_count,
            'lastFailureAt': self.last_failure_at,
            'halfOpenSuccessCount': self.half_open_success_count,
            'thresholds': {
                'failureThreshold': thresholds['failure_threshold'],
                'resetTimeoutMs': thresholds['reset_timeout_ms'],
                'halfOpenSuccessThreshold': thresholds['half_open_success_threshold'],
            },
        }


def _epoch_ms() -> float:
    return time.time() * 1000


class CircuitBreakerRegistry:
    """
    Registry of named circuits shared by every conversation handled by this process.

    Responsibilities:
    - Create circuits with default or custom thresholds
    - Answer "may I call this provider now?" according to the state machine
    - Record call outcomes and perform the resulting transitions
    - Expose snapshots for the admin API and Prometheus

    Design notes:
    - Records live in a dict owned by the instance and are mutated under a single
      in-process lock; conversations on different threads share the records.
    - New records are computed first and swapped in with one assignment, so an
      exception half way through a transition leaves the previous record intact.
    - ``clock`` returns milliseconds and is injectable for tests.
    """

    def __init__(self, default_options: Optional[CircuitOptions] = None,
                 clock: Callable[[], float] = _epoch_ms):
        self._circuits: Dict[str, CircuitRecord] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.default_options = default_options or CircuitOptions()

    @classmethod
    def from_config(cls, breaker_config: Dict[str, Any],
                    clock: Callable[[], float] = _epoch_ms) -> "CircuitBreakerRegistry":
        """
        Build a registry from the ``circuit_breaker`` section of config.json.

        Args:
            breaker_config (Dict[str, Any]): ``{"defaults": {...}, "circuits": {name: {...overrides}}}``
                using snake_case threshold keys.
            clock (Callable[[], float]): Millisecond clock.

        Returns:
            CircuitBreakerRegistry: A registry with every configured circuit registered.
        """
        defaults = CircuitOptions(**breaker_config.get('defaults', {}))
        registry = cls(default_options=defaults, clock=clock)
        for name, overrides in breaker_config.get('circuits', {}).items():
            registry.register(name, replace(defaults, **(overrides or {})))
        return registry

    def register(self, name: str, options: Optional[CircuitOptions] = None) -> None:
        """Create (or re-create) a CLOSED circuit named ``name``."""
        try:
            record = CircuitRecord(thresholds=options or self.default_options)
            with self._lock:
                self._circuits[name] = record
            CIRCUIT_STATE.labels(circuit=name).set(_STATE_GAUGE_VALUES[CircuitState.CLOSED])
            logger.info(f"[CircuitBreaker] Registered circuit '{name}' with {record.thresholds}")
        except Exception as e:
            logger.error(f"[CircuitBreaker] Failed to register circuit '{name}': {e}", exc_info=True)

    def can_execute(self, name: str) -> bool:
        """
        Decide whether a call to the provider ``name`` may proceed.

        An OPEN circuit whose cooldown has elapsed becomes HALF_OPEN during this
        call and the call is allowed. Unknown circuits are allowed.

        Returns:
            bool: True when the call may proceed.
        """
        try:
            with self._lock:
                record = self._circuits.get(name)
                if record is None:
                    logger.warning(f"[CircuitBreaker] Unknown circuit '{name}'; allowing execution")
                    return True

                if record.state == CircuitState.CLOSED:
                    return True

                if record.state == CircuitState.OPEN:
                    elapsed = self._clock() - (record.last_failure_at or 0)
                    if elapsed > record.thresholds.reset_timeout_ms:
                        self._transition(name, record, replace(
                            record,
                            state=CircuitState.HALF_OPEN,
                            half_open_success_count=0,
                        ))
                        return True
                    return False

                return True  # HALF_OPEN
        except Exception as e:
            logger.error(f"[CircuitBreaker] can_execute failed for '{name}': {e}; failing open", exc_info=True)
            return True

    def record_success(self, name: str) -> None:
        try:
            with self._lock:
                record = self._circuits.get(name)
                if record is None:
                    return
                if record.state == CircuitState.HALF_OPEN:
                    successes = record.half_open_success_count + 1
                    if successes >= record.thresholds.half_open_success_threshold:
                        self._transition(name, record, replace(
                            record,
                            state=CircuitState.CLOSED,
                            failure_count=0,
                            half_open_success_count=0,
                        ))
                    else:
                        self._circuits[name] = replace(record, half_open_success_count=successes)
                elif record.state == CircuitState.CLOSED and record.failure_count:
                    self._circuits[name] = replace(record, failure_count=0)
        except Exception as e:
            logger.error(f"[CircuitBreaker] record_success failed for '{name}': {e}", exc_info=True)

    def record_failure(self, name: str) -> None:
        try:
            with self._lock:
                record = self._circuits.get(name)
                if record is None:
                    return
                now = self._clock()
                if record.state == CircuitState.HALF_OPEN:
                    self._transition(name, record, replace(
                        record,
                        state=CircuitState.OPEN,
                        last_failure_at=now,
                        half_open_success_count=0,
                    ))
                elif record.state == CircuitState.CLOSED:
                    failures = record.failure_count + 1
                    if failures >= record.thresholds.failure_threshold:
                        self._transition(name, record, replace(
                            record,
                            state=CircuitState.OPEN,
                            failure_count=failures,
                            last_failure_at=now,
                        ))
                    else:
                        self._circuits[name] = replace(record, failure_count=failures, last_failure_at=now)
                else:
                    self._circuits[name] = replace(record, last_failure_at=now)
        except Exception as e:
            logger.error(f"[CircuitBreaker] record_failure failed for '{name}': {e}", exc_info=True)

    def reset(self, name: str) -> bool:
        """
        Force the circuit back to CLOSED with cleared counters.

        Returns:
            bool: False when no circuit with that name exists.
        """
        try:
            with self._lock:
                record = self._circuits.get(name)
                if record is None:
                    return False
                self._transition(name, record, CircuitRecord(thresholds=record.thresholds))
                return True
        except Exception as e:
            logger.error(f"[CircuitBreaker] reset failed for '{name}': {e}", exc_info=True)
            return False

    def get_state(self, name: str) -> CircuitState:
        try:
            with self._lock:
                record = self._circuits.get(name)
            return record.state if record else CircuitState.UNKNOWN
        except Exception as e:
            logger.error(f"[CircuitBreaker] get_state failed for '{name}': {e}", exc_info=True)
            return CircuitState.UNKNOWN

    def get_record(self, name: str) -> Optional[CircuitRecord]:
        with self._lock:
            return self._circuits.get(name)

    def get_all(self) -> Dict[str, CircuitRecord]:
        """Return a snapshot copy of every circuit record."""
        with self._lock:
            return dict(self._circuits)

    def _transition(self, name: str, old: CircuitRecord, new: CircuitRecord) -> None:
        # Caller holds the lock.
        self._circuits[name] = new
        if old.state != new.state:
            CIRCUIT_TRANSITIONS.labels(
                circuit=name, from_state=old.state.value, to_state=new.state.value
            ).inc()
            CIRCUIT_STATE.labels(circuit=name).set(_STATE_GAUGE_VALUES[new.state])
            logger.warning(f"[CircuitBreaker] Circuit '{name}' {old.state.value} -> {new.state.value}")
