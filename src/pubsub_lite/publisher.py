"""Publisher with JSON serialization, default attributes and retry.

A publish() call runs::

    START -> ATTEMPT -> SUCCESS
                     -> ATTEMPT (after backoff delay)
                     -> FAILURE (attempts exhausted, last error re-raised)

Before the first attempt the ordering key is derived from the payload and
the attributes are merged (call-site over defaults). A failing ordering-key
selector propagates at once: nothing is published and nothing is retried.

Every transport error is retried by default, including serialization
errors, which happen inside the attempt. Set ``RetryOptions.is_retryable``
to classify errors instead. A predicate that raises is logged and
treated as "not retryable".

Examples:
    Publishing through the Google adapter::

        from pubsub_lite import PublisherOptions, create_publisher
        from pubsub_lite.adapters.gcp import create_pubsub_client

        client = create_pubsub_client(project_id="my-project")
        publisher = create_publisher(
            client,
            "orders",
            PublisherOptions(
                attributes_defaults={"source": "checkout"},
                ordering_key_selector=lambda order: order["customer_id"],
            ),
        )

        message_id = await publisher.publish({"customer_id": "c-1", "total": 42})
        await publisher.flush()
"""

import asyncio
from typing import Any

from pubsub_lite.adapters.base import TopicHandle
from pubsub_lite.codec import encode_payload
from pubsub_lite.config import PublisherOptions
from pubsub_lite.core.backoff import compute_backoff_delay
from pubsub_lite.core.hooks import invoke_hook
from pubsub_lite.observability.logging import get_logger
from pubsub_lite.observability.metrics import record_publish, record_publish_attempt
from pubsub_lite.utils.attributes import merge_attributes, validate_attributes


class Publisher:
    """Publishes JSON payloads to one topic with retry and hooks.

    Attributes:
        options: The publisher configuration.
        topic_name: Name used in log records.
    """

    def __init__(
        self,
        topic: TopicHandle,
        options: PublisherOptions | None = None,
        *,
        topic_name: str | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize the publisher.

        Args:
            topic: Transport topic handle; owned by this publisher.
            options: Publisher configuration (defaults if omitted).
            topic_name: Name used in log records.
            logger: Structured logger; defaults to the module logger.
        """
        self.options = options or PublisherOptions()
        self.topic_name = topic_name or getattr(topic, "path", None) or "topic"
        self._topic = topic
        self._logger = logger or get_logger(__name__)

    @property
    def topic(self) -> TopicHandle:
        """The underlying transport topic handle."""
        return self._topic

    async def publish(
        self,
        data: Any,
        attributes: dict[str, str] | None = None,
    ) -> str:
        """Serialize and publish ``data``, retrying transport failures.

        Args:
            data: JSON-serializable payload.
            attributes: Call-site attributes; override configured defaults.

        Returns:
            The transport message id.

        Raises:
            TypeError: If an attribute key or value is not a string.
            Exception: Whatever the ordering-key selector raises, or the last
                error observed once attempts are exhausted.
        """
        options = self.options
        retry = options.retry
        hooks = options.hooks

        ordering_key = None
        if options.ordering_key_selector is not None:
            ordering_key = options.ordering_key_selector(data) or None

        merged = validate_attributes(merge_attributes(options.attributes_defaults, attributes))

        await invoke_hook(
            hooks.on_publish_start, "on_publish_start", data, merged, log=self._logger
        )

        last_error: Exception | None = None
        attempts = 0
        for attempt in range(retry.max_attempts):
            attempts = attempt + 1
            try:
                payload = encode_payload(data)
                message_id = await self._topic.publish_message(payload, merged, ordering_key)
            except Exception as e:
                last_error = e
                record_publish_attempt("error")
                await invoke_hook(
                    hooks.on_publish_error, "on_publish_error", e, data, attempts, log=self._logger
                )

                if attempts >= retry.max_attempts:
                    break
                if not self._is_retryable(e):
                    self._logger.warning(
                        "publish.not_retryable",
                        topic=self.topic_name,
                        attempt=attempts,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    break

                delay_ms = compute_backoff_delay(
                    attempt,
                    initial_delay_ms=retry.initial_delay_ms,
                    max_delay_ms=retry.max_delay_ms,
                    factor=retry.factor,
                )
                self._logger.warning(
                    "publish.retry",
                    topic=self.topic_name,
                    attempt=attempts,
                    max_attempts=retry.max_attempts,
                    delay_ms=delay_ms,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await invoke_hook(
                    hooks.on_publish_retry,
                    "on_publish_retry",
                    e,
                    data,
                    attempts,
                    delay_ms,
                    log=self._logger,
                )
                await asyncio.sleep(delay_ms / 1000.0)
                continue

            record_publish_attempt("success")
            record_publish("success")
            self._logger.debug(
                "publish.succeeded",
                topic=self.topic_name,
                message_id=message_id,
                attempt=attempts,
            )
            await invoke_hook(
                hooks.on_publish_success, "on_publish_success", message_id, data, log=self._logger
            )
            return message_id

        if last_error is None:
            raise RuntimeError("Publish loop ended without an attempt")

        record_publish("failure")
        self._logger.error(
            "publish.failed",
            topic=self.topic_name,
            attempts=attempts,
            error=str(last_error),
            error_type=type(last_error).__name__,
        )
        await invoke_hook(
            hooks.on_publish_failure,
            "on_publish_failure",
            last_error,
            data,
            attempts,
            log=self._logger,
        )
        raise last_error

    def _is_retryable(self, error: Exception) -> bool:
        predicate = self.options.retry.is_retryable
        if predicate is None:
            return True
        try:
            return bool(predicate(error))
        except Exception as e:
            self._logger.error(
                "publish.retry_predicate_failed",
                topic=self.topic_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def flush(self) -> None:
        """Drain the transport batch buffer. Await before shutdown."""
        await self._topic.flush()


def create_publisher(
    client: Any,
    topic_name: str,
    options: PublisherOptions | None = None,
) -> Publisher:
    """Create a Publisher for ``topic_name`` on a transport client.

    Args:
        client: Transport client exposing ``topic(name, batching=...)``,
            e.g. ``adapters.gcp.PubSubClient``.
        topic_name: Topic name or full resource path.
        options: Publisher configuration.

    Returns:
        A ready Publisher.
    """
    options = options or PublisherOptions()
    topic = client.topic(topic_name, batching=options.batching)
    return Publisher(topic, options, topic_name=topic_name)
