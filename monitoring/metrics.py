"""
Core metrics and monitoring decorators for the conversation router.

This module defines Prometheus metrics and decorators for tracking:
- Stage processing time within a turn
- Error rates per component
- Completion service latency
- Circuit breaker state and transitions
- Turns processed and messages delivered
"""

import time
import functools
import logging
from typing import Optional, Callable, Union
from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

# Error metrics
ERROR_COUNT = Counter(
    'error_total',
    'Total number of errors',
    ['type', 'location']  # type: e.g., 'stage', 'llm', 'delivery'; location: specific component
)

# Stage metrics
STAGE_PROCESSING_TIME = Histogram(
    'stage_processing_duration_seconds',
    'Time spent processing in a pipeline stage',
    ['stage'],
    buckets=[0.01, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")]
)

# External API metrics
LLM_REQUEST_TIME = Histogram(
    'llm_request_duration_seconds',
    'Time spent waiting for the completion service',
    ['model'],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, float("inf")]
)

# Tool execution metrics
TOOL_EXECUTION_TIME = Histogram(
    'tool_execution_duration_seconds',
    'Time spent executing worker tools',
    ['tool_name'],
    buckets=[0.01, 0.1, 0.5, 1.0, 2.0, float("inf")]
)

# Circuit breaker metrics
CIRCUIT_STATE = Gauge(
    'circuit_state',
    'Current circuit state (0=CLOSED, 1=HALF_OPEN, 2=OPEN)',
    ['circuit']
)

CIRCUIT_TRANSITIONS = Counter(
    'circuit_state_transitions_total',
    'Number of circuit state transitions',
    ['circuit', 'from_state', 'to_state']
)

# Conversation metrics
TURN_COUNT = Counter(
    'turns_total',
    'Number of inbound messages processed',
    ['channel', 'outcome']
)

DELIVERED_MESSAGES = Counter(
    'delivered_messages_total',
    'Number of outbound messages handed to the channel gateway',
    ['channel']
)

def track_latency(metric: Histogram, labels: Optional[Callable] = None) -> Callable:
    """
    A decorator factory that tracks the execution time of a function using a Prometheus Histogram.

    Args:
        metric (Histogram): The Prometheus Histogram to record the timing in
        labels (Callable, optional): Function that receives the instance and returns the labels dictionary

    Returns:
        Callable: The decorated function
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                duration = time.time() - start_time
                if labels and args:
                    # For instance methods, first arg is 'self'
                    metric.labels(**labels(args[0])).observe(duration)
                else:
                    metric.observe(duration)

                logger.debug(
                    f"Function {func.__name__} execution time: {duration:.2f} seconds",
                    extra={'extra_fields': {'duration': duration, 'function': func.__name__}}
                )
        return wrapper
    return decorator

def track_errors(error_type: str, location: Union[str, Callable]) -> Callable:
    """
    A decorator factory that counts exceptions raised by a function and re-raises them.

    Args:
        error_type (str): Type of error (e.g., 'stage', 'llm', 'delivery')
        location (Union[str, Callable]): Where the error occurred. A callable receives
            the instance (the first positional argument) and returns the location name.

    Returns:
        Callable: The decorated function

    Example:
        @track_errors('stage', lambda self: self.get_stage_name().value)
        def run(self, state):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                resolved_location = location(args[0]) if callable(location) and args else location
                ERROR_COUNT.labels(
                    type=error_type,
                    location=str(resolved_location)
                ).inc()

                logger.error(
                    f"Error in {resolved_location} ({error_type}): {str(e)}",
                    extra={'extra_fields': {
                        'error_type': error_type,
                        'location': str(resolved_location),
                        'error': str(e)
                    }},
                    exc_info=True
                )
                raise
        return wrapper
    return decorator

def count_error(error_type: str, location: str) -> None:
    """Increment the error counter for failures that are handled without re-raising."""
    ERROR_COUNT.labels(type=error_type, location=location).inc()
