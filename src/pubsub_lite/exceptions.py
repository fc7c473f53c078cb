"""Custom exceptions for pubsub-lite.

This module defines the exception hierarchy used by the publisher, the
consumer pipeline and the idempotency stores.

Most failures inside the consumer pipeline never reach the caller: store
errors fail open, hook errors are logged, and handler errors turn into a
``nack()``. The exceptions below are what *can* surface.

Examples:
    Handling a serialization failure on publish::

        from pubsub_lite.exceptions import SerializationError

        try:
            await publisher.publish({"when": object()})
        except SerializationError as e:
            logger.error("publish.bad_payload", error=str(e))

    Guarding a manual acknowledgment::

        from pubsub_lite.exceptions import MessageSettledError

        try:
            message.ack()
        except MessageSettledError:
            # Already acked or nacked for this delivery
            pass
"""


class PubSubLiteError(Exception):
    """Base exception for all pubsub-lite errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class SerializationError(PubSubLiteError):
    """The payload could not be encoded as JSON.

    Raised from inside a publish attempt. With the default retry policy the
    attempt is retried like any other error; pass ``RetryOptions(
    is_retryable=lambda e: not isinstance(e, SerializationError))`` to fail
    on the first attempt instead.

    Attributes:
        message: Human-readable error description.
        cause: The underlying ``TypeError``/``ValueError`` from the encoder.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize the serialization error.

        Args:
            message: Human-readable error description.
            cause: The underlying encoder exception.
        """
        super().__init__(message)
        self.cause = cause


class StoreError(PubSubLiteError):
    """Idempotency backend operation failed.

    RedisIdempotencyStore raises it when used after close(); custom stores
    may raise it for their own backend failures.

    The consumer treats this as "not a duplicate" (fail-open) and logs it.
    It is never propagated to the message handler.

    Attributes:
        message: Human-readable error description.
        cause: The underlying backend exception.

    Examples:
        Raising from a custom store::

            try:
                return await self.backend.exists(key)
            except ConnectionError as e:
                raise StoreError(f"exists failed for {key}", cause=e) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize the store error.

        Args:
            message: Human-readable error description.
            cause: The underlying backend exception.
        """
        super().__init__(message)
        self.cause = cause


class MessageSettledError(PubSubLiteError):
    """A delivery was acked or nacked more than once.

    Exactly one of ``ack()``/``nack()`` may be invoked per delivery attempt.

    Attributes:
        message: Human-readable error description.
        message_id: Transport identifier of the delivery.
        state: The settlement state already recorded ("ACKED" or "NACKED").
    """

    def __init__(self, message: str, message_id: str, state: str) -> None:
        """Initialize the settlement error.

        Args:
            message: Human-readable error description.
            message_id: Transport identifier of the delivery.
            state: The settlement state already recorded.
        """
        super().__init__(message)
        self.message_id = message_id
        self.state = state
