"""Core logic for publishing and consuming.

This package contains the transport-agnostic pieces:
- Backoff: delay schedule for publish retries
- Hooks: isolated invocation of user callbacks
- State machine: RECEIVED -> PARSING -> IDEMPOTENCY_CHECK -> HANDLING -> ack/nack
- Cleanup: periodic removal of expired idempotency keys
"""

from pubsub_lite.core.backoff import compute_backoff_delay
from pubsub_lite.core.state_machine import MessageOutcome, process_message

__all__ = ["MessageOutcome", "compute_backoff_delay", "process_message"]
