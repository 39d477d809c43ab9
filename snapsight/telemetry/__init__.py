"""Telemetry helpers and metrics."""

from .metrics import (
    ANALYSIS_ITEMS,
    ANALYSIS_JOBS,
    QUEUE_DEPTH,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    VOICE_ERRORS,
    VOICE_TRANSITIONS,
    observe_items,
    observe_job,
    observe_request,
    observe_transition,
    observe_voice_error,
    set_queue_depth,
)

__all__ = [
    "ANALYSIS_ITEMS",
    "ANALYSIS_JOBS",
    "QUEUE_DEPTH",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "VOICE_ERRORS",
    "VOICE_TRANSITIONS",
    "observe_items",
    "observe_job",
    "observe_request",
    "observe_transition",
    "observe_voice_error",
    "set_queue_depth",
]
