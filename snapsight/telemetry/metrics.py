"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

ANALYSIS_JOBS = Counter(
    "analysis_jobs_total",
    "Analysis jobs executed by the queue processor",
    ("priority", "outcome"),
)

ANALYSIS_ITEMS = Counter(
    "analysis_items_total",
    "Captures resolved by the analysis worker",
    ("outcome",),
)

QUEUE_DEPTH = Gauge(
    "analysis_queue_depth",
    "Analysis jobs waiting to be processed",
)

VOICE_TRANSITIONS = Counter(
    "voice_transitions_total",
    "Voice recognition lifecycle transitions",
    ("source", "target"),
)

VOICE_ERRORS = Counter(
    "voice_errors_total",
    "Speech engine errors reported to the voice controller",
    ("code",),
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"
    observed_duration = duration_seconds if duration_seconds >= 0 else 0

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=str(status_code),
    ).inc()
    REQUEST_LATENCY.labels(
        method=safe_method,
        route=safe_route,
    ).observe(observed_duration)


def observe_job(priority: str, outcome: str) -> None:
    """Count one finished analysis job."""

    ANALYSIS_JOBS.labels(priority=priority, outcome=outcome).inc()


def observe_items(outcome: str, count: int = 1) -> None:
    """Count resolved captures (``analyzed``, ``failed`` or ``discarded``)."""

    if count > 0:
        ANALYSIS_ITEMS.labels(outcome=outcome).inc(count)


def set_queue_depth(depth: int) -> None:
    QUEUE_DEPTH.set(max(depth, 0))


def observe_transition(source: str, target: str) -> None:
    VOICE_TRANSITIONS.labels(source=source, target=target).inc()


def observe_voice_error(code: object) -> None:
    VOICE_ERRORS.labels(code=str(code) if code is not None else "unknown").inc()
