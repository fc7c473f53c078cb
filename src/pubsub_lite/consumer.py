"""Consumer with idempotent message handling.

The consumer attaches the per-message pipeline (see
``core.state_machine``) to a transport subscription and routes
subscription-level faults to an ``error`` handler.

Store selection when idempotency is enabled:
    1. ``idempotency_store`` given: used as is, never closed by the consumer
    2. ``redis`` given: a RedisIdempotencyStore is created and closed on stop()
       (a Redis client instance passed here stays open)
    3. neither: an in-memory store is created, with a warning; it only
       deduplicates within this process

Examples:
    Consuming with Redis-backed idempotency::

        from pubsub_lite import ConsumerOptions, RedisOptions, create_consumer

        consumer = create_consumer(
            client,
            "orders-sub",
            ConsumerOptions(
                idempotency_enabled=True,
                redis=RedisOptions(url="redis://cache:6379/0"),
            ),
        )

        async def handle(order, message):
            await save(order)

        consumer.on("message", handle)
        consumer.on("error", lambda e: log.error("stream", error=str(e)))
        consumer.start()
        ...
        await consumer.stop()
"""

from typing import Any

from pubsub_lite.adapters.base import SubscriptionHandle
from pubsub_lite.config import ConsumerOptions, RedisOptions
from pubsub_lite.core.hooks import invoke_hook
from pubsub_lite.core.state_machine import (
    MessageHandler,
    MessageOutcome,
    default_key_selector,
    process_message,
)
from pubsub_lite.models import ReceivedMessage
from pubsub_lite.observability.logging import get_logger
from pubsub_lite.storage.base import IdempotencyStore
from pubsub_lite.storage.memory import MemoryIdempotencyStore
from pubsub_lite.storage.redis import RedisIdempotencyStore


class Consumer:
    """Runs the idempotent processing pipeline for one subscription.

    Attributes:
        options: The consumer configuration.
        subscription_name: Name used in log records.
    """

    EVENTS = ("message", "error")

    def __init__(
        self,
        subscription: SubscriptionHandle,
        options: ConsumerOptions | None = None,
        *,
        subscription_name: str | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize the consumer. Nothing is received until start().

        Args:
            subscription: Transport subscription handle; owned by this consumer.
            options: Consumer configuration (defaults if omitted).
            subscription_name: Name used in log records.
            logger: Structured logger; defaults to the module logger.
        """
        self.options = options or ConsumerOptions()
        self.subscription_name = (
            subscription_name or getattr(subscription, "path", None) or "subscription"
        )
        self._subscription = subscription
        self._logger = logger or get_logger(__name__)
        self._store, self._owns_store = self._resolve_store(self.options)
        self._message_handler: MessageHandler | None = None
        self._error_handler: Any = None
        self._started = False
        self._stopped = False

    @property
    def subscription(self) -> SubscriptionHandle:
        """The underlying transport subscription handle."""
        return self._subscription

    @property
    def store(self) -> IdempotencyStore | None:
        """The idempotency store in use, or None when idempotency is off."""
        return self._store

    @property
    def owns_store(self) -> bool:
        """True if stop() closes the store."""
        return self._owns_store

    @property
    def started(self) -> bool:
        """True between start() and stop()."""
        return self._started

    def on(self, event: str, handler: Any) -> None:
        """Register the ``message`` or ``error`` handler.

        ``message`` handlers are called as ``handler(data, message)`` and may
        be coroutine functions. ``error`` handlers receive the transport
        exception. Registering again replaces the previous handler.

        Raises:
            ValueError: For any other event name.
        """
        if event == "message":
            self._message_handler = handler
        elif event == "error":
            self._error_handler = handler
        else:
            raise ValueError(f"Unknown event {event!r}; expected one of {self.EVENTS}")

    def start(self) -> None:
        """Attach the pipeline to the subscription. Repeated calls are no-ops.

        Raises:
            RuntimeError: If the consumer was already stopped.
        """
        if self._stopped:
            raise RuntimeError("Consumer has been stopped and cannot be restarted")
        if self._started:
            return
        self._subscription.on("message", self._on_message)
        self._subscription.on("error", self._on_error)
        self._started = True
        self._logger.info(
            "consumer.started",
            subscription=self.subscription_name,
            idempotency=self._store is not None,
        )

    async def stop(self) -> None:
        """Close the subscription and any store this consumer created.

        Injected stores are left open. Repeated calls are no-ops.
        """
        if self._stopped:
            return
        self._stopped = True

        if self._started:
            self._started = False
            await self._subscription.close()

        if self._store is not None and self._owns_store:
            await self._store.close()

        self._logger.info("consumer.stopped", subscription=self.subscription_name)

    async def _on_message(self, message: ReceivedMessage) -> MessageOutcome:
        options = self.options
        return await process_message(
            message,
            handler=self._message_handler,
            store=self._store,
            key_selector=options.idempotency_key_selector or default_key_selector,
            ttl_ms=options.idempotency_ttl_ms,
            hooks=options.hooks,
            auto_ack=options.auto_ack,
            release_key_on_error=options.release_key_on_error,
            log=self._logger,
        )

    async def _on_error(self, error: Exception) -> None:
        self._logger.error(
            "subscription.error",
            subscription=self.subscription_name,
            error=str(error),
            error_type=type(error).__name__,
        )
        await invoke_hook(self._error_handler, "error", error, log=self._logger)

    def _resolve_store(self, options: ConsumerOptions) -> tuple[IdempotencyStore | None, bool]:
        if not options.idempotency_enabled:
            return None, False

        if options.idempotency_store is not None:
            return options.idempotency_store, False

        if options.redis is not None:
            if isinstance(options.redis, RedisOptions):
                store = RedisIdempotencyStore(
                    options.redis,
                    default_ttl_ms=options.idempotency_ttl_ms,
                    logger=self._logger,
                )
            else:
                store = RedisIdempotencyStore(
                    client=options.redis,
                    default_ttl_ms=options.idempotency_ttl_ms,
                    logger=self._logger,
                )
            return store, True

        self._logger.warning(
            "consumer.memory_idempotency",
            subscription=self.subscription_name,
            message="No Redis config provided; using an in-memory store",
        )
        if options.idempotency_ttl_ms is not None:
            return MemoryIdempotencyStore(default_ttl_ms=options.idempotency_ttl_ms), True
        return MemoryIdempotencyStore(), True


def create_consumer(
    client: Any,
    subscription_name: str,
    options: ConsumerOptions | None = None,
) -> Consumer:
    """Create a Consumer for ``subscription_name`` on a transport client.

    Args:
        client: Transport client exposing ``subscription(name, flow_control=...,
            ack_deadline_seconds=...)``, e.g. ``adapters.gcp.PubSubClient``.
        subscription_name: Subscription name or full resource path.
        options: Consumer configuration.

    Returns:
        A Consumer; call ``start()`` to begin receiving.
    """
    options = options or ConsumerOptions()
    subscription = client.subscription(
        subscription_name,
        flow_control=options.flow_control,
        ack_deadline_seconds=options.ack_deadline_seconds,
    )
    return Consumer(subscription, options, subscription_name=subscription_name)
