"""
Monitoring package initializer.

This package exposes Prometheus metrics and helper decorators for tracking the
conversation pipeline: stage latency, errors, upstream calls, circuit state and
delivery volume.
"""

from .metrics import (
    ERROR_COUNT,
    STAGE_PROCESSING_TIME,
    LLM_REQUEST_TIME,
    TOOL_EXECUTION_TIME,
    CIRCUIT_STATE,
    CIRCUIT_TRANSITIONS,
    TURN_COUNT,
    DELIVERED_MESSAGES,
    track_latency,
    track_errors,
    count_error,
)

__all__ = [
    'ERROR_COUNT',
    'STAGE_PROCESSING_TIME',
    'LLM_REQUEST_TIME',
    'TOOL_EXECUTION_TIME',
    'CIRCUIT_STATE',
    'CIRCUIT_TRANSITIONS',
    'TURN_COUNT',
    'DELIVERED_MESSAGES',
    'track_latency',
    'track_errors',
    'count_error',
]
