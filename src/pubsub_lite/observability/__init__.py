"""Observability utilities for pubsub-lite.

This package provides:
- Structured logging with contextual information (structlog)
- In-process Prometheus counters for publish and consume outcomes

Nothing here starts an exporter; scrape the default prometheus_client
registry from the host application if needed.
"""

from pubsub_lite.observability.logging import configure_logging, get_logger
from pubsub_lite.observability.metrics import (
    record_cleanup,
    record_idempotency_check,
    record_message_outcome,
    record_publish,
    record_publish_attempt,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_publish_attempt",
    "record_publish",
    "record_message_outcome",
    "record_idempotency_check",
    "record_cleanup",
]
