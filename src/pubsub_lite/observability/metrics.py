"""Prometheus metrics for pubsub-lite.

Counters only, registered in the default prometheus_client registry:

- Publish attempts and final publish results
- Consumer message outcomes (acked, nacked, duplicate, ...)
- Idempotency lookups by result (hit, miss, error)
- Records removed by the memory store sweep

Examples:
    >>> record_publish_attempt("error")
    >>> record_publish("success")
    >>> record_message_outcome("duplicate")
"""

from prometheus_client import Counter

# Labels: result (success, error)
publish_attempts_total = Counter(
    "pubsub_lite_publish_attempts_total",
    "Transport publish calls made by publishers",
    ["result"],
)

# Labels: result (success, failure)
publish_total = Counter(
    "pubsub_lite_publish_total",
    "Logical publish() operations by final result",
    ["result"],
)

# Labels: outcome (see core.state_machine.MessageOutcome)
messages_total = Counter(
    "pubsub_lite_messages_total",
    "Messages processed by consumers, by pipeline outcome",
    ["outcome"],
)

# Labels: result (hit, miss, error)
idempotency_checks_total = Counter(
    "pubsub_lite_idempotency_checks_total",
    "Idempotency store lookups performed by consumers",
    ["result"],
)

cleanup_records_removed = Counter(
    "pubsub_lite_cleanup_records_removed_total",
    "Expired idempotency records removed by the memory store sweep",
)


def record_publish_attempt(result: str) -> None:
    """Record one transport publish call ("success" or "error")."""
    publish_attempts_total.labels(result=result).inc()


def record_publish(result: str) -> None:
    """Record a finished publish() ("success" or "failure")."""
    publish_total.labels(result=result).inc()


def record_message_outcome(outcome: str) -> None:
    """Record the terminal outcome of one message pipeline run."""
    messages_total.labels(outcome=outcome).inc()


def record_idempotency_check(result: str) -> None:
    """Record an idempotency lookup ("hit", "miss" or "error")."""
    idempotency_checks_total.labels(result=result).inc()


def record_cleanup(records_removed: int) -> None:
    """Record a sweep of the memory store.

    Args:
        records_removed: Number of expired records removed
    """
    cleanup_records_removed.inc(records_removed)
