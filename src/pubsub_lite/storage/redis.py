"""Redis-backed idempotency store.

Keys are namespaced with a prefix (default ``pubsubx:idemp:``) so the store
can share a Redis instance with unrelated data. Records are written with
``SET key 1 PX ttl`` and checked with ``EXISTS``; Redis expires them on its
own, so there is no sweep.

Backend failures never propagate: a failing lookup reports "not a duplicate", a
failing write is logged and ignored. This keeps consumers available when the
cache is down, at the cost of possible duplicate handling. Using the store
after close() raises StoreError instead; the consumer pipeline still fails
open on it.

Connection ownership:
    - Built from ``RedisOptions`` (url or host/port/...): the store owns the
      client and closes it on close()
    - Given an existing ``redis.asyncio.Redis`` (``client=`` or
      ``RedisOptions.client``): the caller owns it; close() leaves it open

Examples:
    Store with its own connection::

        from pubsub_lite.config import RedisOptions
        from pubsub_lite.storage.redis import RedisIdempotencyStore

        store = RedisIdempotencyStore(RedisOptions(url="redis://cache:6379/0"))

    Sharing the application's pool::

        from redis.asyncio import Redis

        app_redis = Redis.from_url("redis://cache:6379/0")
        store = RedisIdempotencyStore(client=app_redis, key_prefix="billing:idemp:")
        ...
        await store.close()       # app_redis stays open
"""

from typing import Any, Literal

import redis.asyncio as aioredis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from pubsub_lite.config import RedisOptions
from pubsub_lite.exceptions import StoreError
from pubsub_lite.models import IdempotencyStoreStats
from pubsub_lite.observability.logging import get_logger

# Connectivity problems surface as RedisError subclasses or raw socket errors
BACKEND_ERRORS = (RedisError, OSError)


class RedisIdempotencyStore:
    """Idempotency store backed by a shared Redis instance.

    Attributes:
        key_prefix: Namespace prepended to every key.
        default_ttl_ms: Lifetime applied when set() is called without a TTL.
        owns_client: True if close() also closes the Redis client.
    """

    def __init__(
        self,
        options: RedisOptions | None = None,
        *,
        client: Any = None,
        key_prefix: str | None = None,
        default_ttl_ms: int | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize the store.

        Args:
            options: Connection and keying options.
            client: Externally owned ``redis.asyncio.Redis``; overrides
                ``options.client``.
            key_prefix: Overrides ``options.key_prefix``.
            default_ttl_ms: Overrides ``options.ttl_ms``.
            logger: Structured logger; defaults to the module logger.
        """
        options = options or RedisOptions()
        self.key_prefix = options.key_prefix if key_prefix is None else key_prefix
        self.default_ttl_ms = options.ttl_ms if default_ttl_ms is None else default_ttl_ms
        if self.default_ttl_ms < 1:
            raise ValueError(f"default_ttl_ms must be >= 1, got {self.default_ttl_ms}")

        external = client if client is not None else options.client
        if external is not None:
            self._redis = external
            self.owns_client = False
        else:
            self._redis = self._create_client(options)
            self.owns_client = True

        self._logger = logger or get_logger(__name__)
        self._closed = False
        self._successful_checks = 0
        self._failed_checks = 0
        self._status: Literal["connected", "disconnected", "error"] = "disconnected"
        self._last_error: str | None = None

    @property
    def client(self) -> Any:
        """The underlying ``redis.asyncio.Redis`` client."""
        return self._redis

    def full_key(self, key: str) -> str:
        """Return ``key`` with the store namespace applied."""
        return f"{self.key_prefix}{key}"

    async def has(self, key: str) -> bool:
        """Return True if ``key`` exists; False on any backend error."""
        self._ensure_open("has")
        try:
            exists = await self._redis.exists(self.full_key(key))
        except BACKEND_ERRORS as e:
            self._failed_checks += 1
            self._record_error(e)
            self._logger.error(
                "idempotency.check_failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        self._successful_checks += 1
        self._status = "connected"
        return int(exists) > 0

    async def set(self, key: str, ttl_ms: int | None = None) -> None:
        """Write ``key`` with a millisecond TTL; failures are logged and ignored."""
        self._ensure_open("set")
        ttl = self.default_ttl_ms if ttl_ms is None else ttl_ms
        try:
            await self._redis.set(self.full_key(key), "1", px=ttl)
        except BACKEND_ERRORS as e:
            self._record_error(e)
            self._logger.error(
                "idempotency.set_failed",
                key=key,
                ttl_ms=ttl,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        self._status = "connected"

    async def delete(self, key: str) -> None:
        """Remove ``key``; failures are logged and ignored."""
        self._ensure_open("delete")
        try:
            await self._redis.delete(self.full_key(key))
        except BACKEND_ERRORS as e:
            self._record_error(e)
            self._logger.error(
                "idempotency.delete_failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def ping(self) -> bool:
        """Health check: True if Redis answers PING."""
        try:
            result = await self._redis.ping()
        except BACKEND_ERRORS as e:
            self._record_error(e)
            self._logger.warning("idempotency.ping_failed", error=str(e))
            return False
        self._status = "connected"
        return bool(result)

    async def stats(self) -> IdempotencyStoreStats:
        """Return a monitoring snapshot.

        ``total_keys`` counts keys under the prefix with SCAN, which walks the
        whole keyspace; do not call this on a hot path.
        """
        total = 0
        if not self._closed:
            try:
                async for _ in self._redis.scan_iter(match=f"{self.key_prefix}*"):
                    total += 1
            except BACKEND_ERRORS as e:
                self._record_error(e)

        return IdempotencyStoreStats(
            total_keys=total,
            successful_checks=self._successful_checks,
            failed_checks=self._failed_checks,
            connection_status="disconnected" if self._closed else self._status,
            last_error=self._last_error,
        )

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreError(f"{operation}() called on a closed RedisIdempotencyStore")

    async def close(self) -> None:
        """Close the client if this store created it. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._status = "disconnected"
        if self.owns_client:
            await self._redis.aclose()

    def _record_error(self, error: Exception) -> None:
        self._status = "error"
        self._last_error = f"{type(error).__name__}: {error}"

    @staticmethod
    def _create_client(options: RedisOptions) -> Any:
        kwargs: dict[str, Any] = {}
        if options.connect_timeout_ms is not None:
            kwargs["socket_connect_timeout"] = options.connect_timeout_ms / 1000.0
        if options.command_timeout_ms is not None:
            kwargs["socket_timeout"] = options.command_timeout_ms / 1000.0
        if options.retry_on_failure:
            kwargs["retry"] = Retry(ExponentialBackoff(), options.max_retries)
            kwargs["retry_on_error"] = [RedisConnectionError, RedisTimeoutError]

        if options.url:
            return aioredis.Redis.from_url(options.url, **kwargs)

        return aioredis.Redis(
            host=options.host,
            port=options.port,
            db=options.db,
            password=options.password,
            **kwargs,
        )
