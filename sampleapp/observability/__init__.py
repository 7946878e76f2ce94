"""Logging and metrics shared by bring-up and request handling.

Components:
    - logging: structlog configuration and request-id helpers
    - metrics: Prometheus collectors for stages and requests
"""

from sampleapp.observability.logging import configure_logging, get_logger
from sampleapp.observability.metrics import (
    get_metrics_output,
    increment_counter,
    record_histogram,
    track_duration,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "get_metrics_output",
    "increment_counter",
    "record_histogram",
    "track_duration",
]
