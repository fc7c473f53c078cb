"""In-memory idempotency store.

This module provides a process-local implementation of the IdempotencyStore
protocol, backed by a dict mapping keys to expiry timestamps.

The MemoryIdempotencyStore is suitable for:
    - Single-process consumers
    - Development and testing

It does not survive restarts and is not shared between consumer instances;
use RedisIdempotencyStore for that.

Expiry:
    - has() checks expiry on access and deletes stale keys, so results never
      depend on sweep timing
    - A background asyncio task sweeps expired keys every
      ``cleanup_interval_ms`` (default 60s); it starts with the first
      has()/set() made inside a running event loop and stops on close()

Concurrency:
    No method suspends between reading and writing the map, so concurrent
    coroutines on one event loop never interleave inside an operation. The
    store is not meant to be shared across threads.

Examples:
    Basic usage::

        from pubsub_lite.storage.memory import MemoryIdempotencyStore

        store = MemoryIdempotencyStore(default_ttl_ms=60_000)

        await store.set("order-42")
        assert await store.has("order-42")

        await store.close()
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

from pubsub_lite.config import Defaults
from pubsub_lite.core.cleanup import start_cleanup_task, stop_cleanup_task
from pubsub_lite.models import IdempotencyStoreStats
from pubsub_lite.observability.logging import get_logger


class MemoryIdempotencyStore:
    """Process-local idempotency store with lazy and periodic expiry.

    Attributes:
        default_ttl_ms: Lifetime applied when set() is called without a TTL.
        cleanup_interval_ms: Period of the background sweep.
    """

    def __init__(
        self,
        default_ttl_ms: int = Defaults.IDEMPOTENCY_TTL_MS,
        cleanup_interval_ms: int = Defaults.CLEANUP_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
        logger: Any = None,
    ) -> None:
        """Initialize an empty store.

        Args:
            default_ttl_ms: Default record lifetime in milliseconds.
            cleanup_interval_ms: Sweep period in milliseconds.
            clock: Monotonic time source in seconds (injectable for tests).
            logger: Structured logger; defaults to the module logger.

        Raises:
            ValueError: If a duration is not positive.
        """
        if default_ttl_ms < 1:
            raise ValueError(f"default_ttl_ms must be >= 1, got {default_ttl_ms}")
        if cleanup_interval_ms < 1:
            raise ValueError(f"cleanup_interval_ms must be >= 1, got {cleanup_interval_ms}")

        self.default_ttl_ms = default_ttl_ms
        self.cleanup_interval_ms = cleanup_interval_ms
        self._clock = clock
        self._logger = logger or get_logger(__name__)
        self._store: dict[str, float] = {}
        self._sweeper: asyncio.Task[None] | None = None
        self._closed = False
        self._checks = 0

    async def has(self, key: str) -> bool:
        """Return True if ``key`` is present and not expired.

        Expired entries found here are deleted on the spot.
        """
        self._ensure_sweeper()
        self._checks += 1

        expires_at = self._store.get(key)
        if expires_at is None:
            return False

        if self._clock() > expires_at:
            del self._store[key]
            return False

        return True

    async def set(self, key: str, ttl_ms: int | None = None) -> None:
        """Record ``key`` until ``ttl_ms`` milliseconds from now.

        Raises:
            ValueError: If ttl_ms is not positive.
        """
        ttl = self.default_ttl_ms if ttl_ms is None else ttl_ms
        if ttl < 1:
            raise ValueError(f"ttl_ms must be >= 1, got {ttl}")

        self._store[key] = self._clock() + ttl / 1000.0
        self._ensure_sweeper()

    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        self._store.pop(key, None)

    async def cleanup_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            The number of entries removed.
        """
        now = self._clock()
        expired = [key for key, expires_at in self._store.items() if now > expires_at]
        for key in expired:
            del self._store[key]
        return len(expired)

    def size(self) -> int:
        """Number of entries currently held, including not-yet-swept expired ones."""
        return len(self._store)

    async def stats(self) -> IdempotencyStoreStats:
        """Return a monitoring snapshot. Memory lookups never fail."""
        return IdempotencyStoreStats(
            total_keys=len(self._store),
            successful_checks=self._checks,
            failed_checks=0,
            connection_status="disconnected" if self._closed else "connected",
        )

    async def close(self) -> None:
        """Stop the sweep and drop all entries. Safe to call repeatedly."""
        self._closed = True
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None:
            await stop_cleanup_task(sweeper)
        self._store.clear()

    def _ensure_sweeper(self) -> None:
        if self._closed or (self._sweeper is not None and not self._sweeper.done()):
            return
        try:
            self._sweeper = start_cleanup_task(self, self.cleanup_interval_ms / 1000.0)
        except RuntimeError:
            # No running loop; lazy expiry in has() still applies
            self._logger.debug("idempotency.sweep_unavailable")
