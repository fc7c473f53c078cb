"""Idempotency store protocol for pubsub-lite.

This module defines the capability the consumer needs to deduplicate
deliveries: a key-existence check with time-to-live. Two implementations
ship with the package:

- MemoryIdempotencyStore: process-local map with lazy and periodic expiry
- RedisIdempotencyStore: keys namespaced in a shared Redis instance

Any object with the same coroutine methods works; there is no base class
to inherit from. Test doubles only need ``has``, ``set`` and ``close``.

Examples:
    Implementing a custom store::

        class DictStore:
            def __init__(self) -> None:
                self.keys: set[str] = set()

            async def has(self, key: str) -> bool:
                return key in self.keys

            async def set(self, key: str, ttl_ms: int | None = None) -> None:
                self.keys.add(key)

            async def close(self) -> None:
                self.keys.clear()

Error Handling:
    Remote stores may raise on connectivity failures. Callers must treat a
    failing ``has`` as "not a duplicate" and a failing ``set`` as "write
    ignored" (fail-open), favoring availability and at-least-once delivery
    over strict exactly-once.

Concurrency:
    One store instance is shared by every in-flight message of a consumer.
    The memory store relies on cooperative asyncio scheduling (no suspension
    point between its check and its write); the Redis store relies on the
    server's own atomicity.
"""

from typing import Protocol, runtime_checkable

from pubsub_lite.models import IdempotencyStoreStats


@runtime_checkable
class IdempotencyStore(Protocol):
    """Key-existence-with-TTL cache used to skip duplicate deliveries."""

    async def has(self, key: str) -> bool:
        """Return True if ``key`` was set and has not expired.

        Args:
            key: The idempotency key.

        Returns:
            Whether a live record exists for the key.
        """
        ...

    async def set(self, key: str, ttl_ms: int | None = None) -> None:
        """Record ``key`` for ``ttl_ms`` milliseconds.

        Args:
            key: The idempotency key.
            ttl_ms: Record lifetime; None applies the store default.
        """
        ...

    async def close(self) -> None:
        """Release timers and connections. Safe to call more than once."""
        ...


@runtime_checkable
class InspectableStore(IdempotencyStore, Protocol):
    """Optional extensions implemented by both bundled stores."""

    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...

    async def stats(self) -> IdempotencyStoreStats:
        """Return a monitoring snapshot."""
        ...
