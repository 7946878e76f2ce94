"""Prometheus metrics for bring-up and request handling.

Metrics live in a private registry so that repeated bring-ups inside one
process (tests, reloads) share the same collectors instead of colliding
in the global default registry.

Usage:
    from sampleapp.observability.metrics import increment_counter, track_duration

    with track_duration("bootstrap_stage_duration_seconds", labels={"stage": "cors"}):
        ...

    increment_counter("bootstrap_failures_total", labels={"stage": "persistence"})
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_PREFIX = "sampleapp_"

_registry = CollectorRegistry()

# Bring-up metrics
bootstrap_stage_duration_seconds = Histogram(
    "sampleapp_bootstrap_stage_duration_seconds",
    "Duration of each bring-up stage in seconds",
    ["stage"],
    registry=_registry,
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, float("inf")),
)

bootstrap_failures_total = Counter(
    "sampleapp_bootstrap_failures_total",
    "Total number of failed bring-up stages",
    ["stage"],
    registry=_registry,
)

# Request metrics
http_requests_total = Counter(
    "sampleapp_http_requests_total",
    "Total number of HTTP requests by method and status",
    ["method", "status"],
    registry=_registry,
)

http_request_duration_seconds = Histogram(
    "sampleapp_http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    ["method"],
    registry=_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, float("inf")),
)


def increment_counter(
    metric_name: str,
    value: float = 1.0,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Increment a counter metric.

    Args:
        metric_name: Name of the counter (with or without sampleapp_ prefix)
        value: Amount to increment by (default: 1.0)
        labels: Optional labels as key-value pairs
    """
    metric = _get_metric(metric_name)
    if isinstance(metric, Counter):
        if labels:
            metric.labels(**labels).inc(value)
        else:
            metric.inc(value)


def record_histogram(
    metric_name: str,
    value: float,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Record a histogram observation."""
    metric = _get_metric(metric_name)
    if isinstance(metric, Histogram):
        if labels:
            metric.labels(**labels).observe(value)
        else:
            metric.observe(value)


@contextmanager
def track_duration(
    metric_name: str,
    labels: Optional[Dict[str, str]] = None,
) -> Iterator[None]:
    """Context manager recording the wall time of the block into a histogram."""
    start_time = time.perf_counter()
    try:
        yield
    finally:
        record_histogram(metric_name, time.perf_counter() - start_time, labels)


def get_metrics_registry() -> CollectorRegistry:
    """Return the service metrics registry."""
    return _registry


def get_metrics_output() -> bytes:
    """Return Prometheus-formatted metrics output."""
    return generate_latest(_registry)


def get_metrics_content_type() -> str:
    """Return the content type for Prometheus exposition output."""
    return CONTENT_TYPE_LATEST


def _get_metric(metric_name: str) -> Any:
    if metric_name.startswith(_PREFIX):
        metric_name = metric_name[len(_PREFIX):]
    return globals().get(metric_name)


__all__ = [
    "increment_counter",
    "record_histogram",
    "track_duration",
    "get_metrics_registry",
    "get_metrics_output",
    "get_metrics_content_type",
    "bootstrap_stage_duration_seconds",
    "bootstrap_failures_total",
    "http_requests_total",
    "http_request_duration_seconds",
]
