"""
experiment_sdk.tier0_core.metrics
──────────────────────────────────
Counters and histograms with standard naming and labels.
Exported via the default Prometheus registry; the host application
decides whether to serve /metrics or push.

Minimal stack: prometheus-client
"""
from __future__ import annotations

import os
from typing import Callable

from prometheus_client import Counter, Histogram, start_http_server

# Standard labels applied to every metric
_DEFAULT_LABELS = ["service", "env"]
_SERVICE = os.getenv("APP_NAME", "experiments")
_ENV = os.getenv("APP_ENV", "development")
_DEFAULT_LABEL_VALUES = [_SERVICE, _ENV]


def counter(name: str, description: str, labels: list[str] | None = None) -> Callable:
    """
    Create a counter with standard labels.

    Usage:
        assignments = counter("experiment_assignments_total", "Assignments", ["outcome"])
        assignments(outcome="assigned").inc()
    """
    all_labels = _DEFAULT_LABELS + (labels or [])
    c = Counter(name, description, all_labels)

    def _counter(**extra_labels: str) -> Counter:
        return c.labels(**dict(zip(_DEFAULT_LABELS, _DEFAULT_LABEL_VALUES)), **extra_labels)

    return _counter


def histogram(
    name: str,
    description: str,
    labels: list[str] | None = None,
    buckets: tuple = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
) -> Callable:
    """
    Create a histogram with standard labels.

    Usage:
        fetch_seconds = histogram("experiment_fetch_seconds", "Experiment fetch latency")
        fetch_seconds().observe(elapsed)
    """
    all_labels = _DEFAULT_LABELS + (labels or [])
    h = Histogram(name, description, all_labels, buckets=buckets)

    def _histogram(**extra_labels: str) -> Histogram:
        return h.labels(**dict(zip(_DEFAULT_LABELS, _DEFAULT_LABEL_VALUES)), **extra_labels)

    return _histogram


def start_metrics_server(port: int | None = None) -> None:
    """Serve the default registry on a dedicated port. Call once at startup."""
    port = port or int(os.getenv("EXPERIMENTS_METRICS_PORT", "8001"))
    start_http_server(port)


# ── Engine metrics ────────────────────────────────────────────────────────────
# Declared once here so re-importing engine modules never re-registers them.

assignment_outcomes = counter(
    "experiment_assignments_total",
    "Assignment engine outcomes per call",
    ["outcome"],
)

fetch_seconds = histogram(
    "experiment_fetch_seconds",
    "Latency of the active-experiment query",
)

tracked_events = counter(
    "experiment_events_total",
    "Tracked experiment events by delivery status",
    ["event_type", "status"],
)


__all__ = [
    "counter",
    "histogram",
    "start_metrics_server",
    "assignment_outcomes",
    "fetch_seconds",
    "tracked_events",
]
