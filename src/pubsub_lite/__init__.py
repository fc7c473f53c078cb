"""
Pub/Sub convenience layer with retrying publishes and idempotent consumers.

This package wraps a pub/sub transport with JSON serialization, exponential
backoff on publish, lifecycle hooks, and at-most-once handler invocation per
idempotency key on the consumer side.
"""

from pubsub_lite.config import (
    BatchingOptions,
    ConsumerHooks,
    ConsumerOptions,
    Defaults,
    FlowControlOptions,
    PublisherHooks,
    PublisherOptions,
    RedisOptions,
    RetryOptions,
)
from pubsub_lite.consumer import Consumer, create_consumer
from pubsub_lite.core.backoff import compute_backoff_delay
from pubsub_lite.core.state_machine import MessageOutcome
from pubsub_lite.exceptions import (
    MessageSettledError,
    PubSubLiteError,
    SerializationError,
    StoreError,
)
from pubsub_lite.models import (
    IdempotencyStoreStats,
    MessageAttributes,
    ReceivedMessage,
    SettlementState,
)
from pubsub_lite.publisher import Publisher, create_publisher
from pubsub_lite.storage import (
    IdempotencyStore,
    MemoryIdempotencyStore,
    RedisIdempotencyStore,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "BatchingOptions",
    "Consumer",
    "ConsumerHooks",
    "ConsumerOptions",
    "Defaults",
    "FlowControlOptions",
    "IdempotencyStore",
    "IdempotencyStoreStats",
    "MemoryIdempotencyStore",
    "MessageAttributes",
    "MessageOutcome",
    "MessageSettledError",
    "Publisher",
    "PublisherHooks",
    "PublisherOptions",
    "PubSubLiteError",
    "ReceivedMessage",
    "RedisIdempotencyStore",
    "RedisOptions",
    "RetryOptions",
    "SerializationError",
    "SettlementState",
    "StoreError",
    "compute_backoff_delay",
    "create_consumer",
    "create_publisher",
]
