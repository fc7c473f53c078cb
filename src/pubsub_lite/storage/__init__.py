"""Idempotency stores for pubsub-lite.

All stores implement the IdempotencyStore protocol defined in base.py.

Available Stores:
    - MemoryIdempotencyStore: process-local map with lazy and periodic expiry
    - RedisIdempotencyStore: namespaced keys in a shared Redis instance
"""

from pubsub_lite.storage.base import IdempotencyStore, InspectableStore
from pubsub_lite.storage.memory import MemoryIdempotencyStore
from pubsub_lite.storage.redis import RedisIdempotencyStore

__all__ = [
    "IdempotencyStore",
    "InspectableStore",
    "MemoryIdempotencyStore",
    "RedisIdempotencyStore",
]
