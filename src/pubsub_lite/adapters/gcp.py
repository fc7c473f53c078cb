"""Google Cloud Pub/Sub transport adapter.

This module adapts ``google.cloud.pubsub_v1`` to the TopicHandle and
SubscriptionHandle protocols so the publisher and consumer can run on
asyncio:

- GoogleTopic bridges the SDK's publish futures into awaitables and tracks
  in-flight publishes so flush() can drain them
- GoogleSubscription opens a streaming pull when the ``message`` callback is
  registered. The SDK invokes its callback on worker threads; each delivery
  is handed to the event loop and the worker waits for the pipeline, so the
  SDK's flow control bounds the number of messages in flight

Examples:
    Creating a client and wiring a publisher and a consumer::

        from pubsub_lite.adapters.gcp import create_pubsub_client

        client = create_pubsub_client(project_id="my-project")
        topic = client.topic("orders")
        subscription = client.subscription("orders-sub")

    Using the emulator::

        import os

        os.environ["PUBSUB_EMULATOR_HOST"] = "localhost:8085"
        client = create_pubsub_client(project_id="local-project")
"""

import asyncio
import concurrent.futures
import inspect
from typing import Any

import google.auth
from google.cloud import pubsub_v1
from google.oauth2 import service_account

from pubsub_lite.config import BatchingOptions, FlowControlOptions
from pubsub_lite.models import ReceivedMessage
from pubsub_lite.observability.logging import get_logger

logger = get_logger(__name__)


class GoogleTopic:
    """TopicHandle over a ``pubsub_v1.PublisherClient``.

    Attributes:
        path: Full topic resource path.
    """

    def __init__(self, publisher_client: Any, topic_path: str) -> None:
        self.path = topic_path
        self._client = publisher_client
        self._pending: set[concurrent.futures.Future[str]] = set()

    @property
    def client(self) -> Any:
        """The underlying PublisherClient."""
        return self._client

    async def publish_message(
        self,
        data: bytes,
        attributes: dict[str, str],
        ordering_key: str | None = None,
    ) -> str:
        """Publish one message and wait for the server-assigned id.

        When a publish with an ordering key fails, the SDK pauses that key;
        it is resumed here so a retry can go through.
        """
        kwargs: dict[str, Any] = dict(attributes)
        if ordering_key:
            kwargs["ordering_key"] = ordering_key

        future = self._client.publish(self.path, data, **kwargs)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

        try:
            return str(await asyncio.wrap_future(future))
        except Exception:
            if ordering_key:
                self._client.resume_publish(self.path, ordering_key)
            raise

    async def flush(self) -> None:
        """Wait until every publish issued so far has settled.

        Failures are not raised here; each one was already raised to the
        publish_message() call that issued it.
        """
        pending = list(self._pending)
        if not pending:
            return
        results = await asyncio.gather(
            *(asyncio.wrap_future(f) for f in pending),
            return_exceptions=True,
        )
        failed = sum(1 for r in results if isinstance(r, BaseException))
        logger.debug("topic.flushed", topic=self.path, messages=len(pending), failed=failed)


class GoogleSubscription:
    """SubscriptionHandle over a ``pubsub_v1.SubscriberClient`` streaming pull.

    Attributes:
        path: Full subscription resource path.
    """

    def __init__(
        self,
        subscriber_client: Any,
        subscription_path: str,
        flow_control: FlowControlOptions | None = None,
        ack_deadline_seconds: int | None = None,
    ) -> None:
        self.path = subscription_path
        self._client = subscriber_client
        self._flow_control = flow_control or FlowControlOptions()
        self._ack_deadline_seconds = ack_deadline_seconds
        self._message_callback: Any = None
        self._error_callbacks: list[Any] = []
        self._future: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closing = False
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def client(self) -> Any:
        """The underlying SubscriberClient."""
        return self._client

    def on(self, event: str, callback: Any) -> None:
        """Register a ``message`` or ``error`` callback.

        Registering the message callback opens the streaming pull and must
        happen inside a running event loop.

        Raises:
            ValueError: For any other event name.
            RuntimeError: If no event loop is running.
        """
        if event == "message":
            self._message_callback = callback
            self._open()
        elif event == "error":
            self._error_callbacks.append(callback)
        else:
            raise ValueError(f"Unknown subscription event {event!r}")

    async def close(self) -> None:
        """Cancel the streaming pull and wait for in-flight callbacks."""
        self._closing = True
        future, self._future = self._future, None
        if future is None:
            return
        future.cancel()
        await asyncio.get_running_loop().run_in_executor(None, self._wait_for_shutdown, future)
        logger.debug("subscription.closed", subscription=self.path)

    def _open(self) -> None:
        if self._future is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._closing = False

        flow_kwargs: dict[str, Any] = {
            "max_messages": self._flow_control.max_messages,
            "max_bytes": self._flow_control.max_bytes,
        }
        if self._ack_deadline_seconds is not None:
            flow_kwargs["min_duration_per_lease_extension"] = self._ack_deadline_seconds
            flow_kwargs["max_duration_per_lease_extension"] = self._ack_deadline_seconds

        self._future = self._client.subscribe(
            self.path,
            callback=self._dispatch,
            flow_control=pubsub_v1.types.FlowControl(**flow_kwargs),
            await_callbacks_on_shutdown=True,
        )
        self._future.add_done_callback(self._on_stream_done)
        logger.debug("subscription.opened", subscription=self.path)

    def _dispatch(self, raw: Any) -> None:
        # Runs on an SDK worker thread
        message = ReceivedMessage(
            message_id=raw.message_id,
            data=raw.data,
            attributes=dict(raw.attributes),
            ack=raw.ack,
            nack=raw.nack,
            ordering_key=getattr(raw, "ordering_key", None),
            delivery_attempt=getattr(raw, "delivery_attempt", None),
            publish_time=getattr(raw, "publish_time", None),
        )
        loop = self._loop
        callback = self._message_callback
        try:
            if loop is None or callback is None:
                raise RuntimeError("Subscription has no message callback")
            asyncio.run_coroutine_threadsafe(callback(message), loop).result()
        except Exception as e:
            logger.error(
                "subscription.dispatch_failed",
                subscription=self.path,
                message_id=message.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            if not message.settled:
                message.nack()

    def _on_stream_done(self, future: Any) -> None:
        # Runs on an SDK thread when the streaming pull ends
        if self._closing or future.cancelled():
            return
        error = future.exception()
        loop = self._loop
        if error is None or loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._emit_error, error)

    def _emit_error(self, error: BaseException) -> None:
        for callback in self._error_callbacks:
            result = callback(error)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._background.add(task)
                task.add_done_callback(self._background.discard)

    @staticmethod
    def _wait_for_shutdown(future: Any) -> None:
        try:
            future.result()
        except concurrent.futures.CancelledError:
            pass
        except Exception as e:
            logger.warning("subscription.shutdown_error", error=str(e), error_type=type(e).__name__)


class PubSubClient:
    """Factory for Google topic and subscription handles in one project.

    Attributes:
        project_id: Google Cloud project id.
    """

    def __init__(
        self,
        project_id: str,
        *,
        credentials: Any = None,
        api_endpoint: str | None = None,
        enable_message_ordering: bool = True,
        publisher_client: Any = None,
        subscriber_client: Any = None,
    ) -> None:
        """Initialize the client.

        Args:
            project_id: Google Cloud project id.
            credentials: google-auth credentials (None = Application Default).
            api_endpoint: Endpoint override for tests or private endpoints.
            enable_message_ordering: Enable ordering keys on created publishers.
            publisher_client: Existing PublisherClient to use for topics
                without batching options; not stopped by close().
            subscriber_client: Existing SubscriberClient; not closed by close().
        """
        self.project_id = project_id
        self._credentials = credentials
        self._client_options = {"api_endpoint": api_endpoint} if api_endpoint else None
        self._enable_message_ordering = enable_message_ordering
        self._publisher = publisher_client
        self._subscriber = subscriber_client
        self._owned_publishers: list[Any] = []
        self._owns_subscriber = False

    def topic_path(self, topic_name: str) -> str:
        """Return the full resource path for ``topic_name``."""
        if topic_name.startswith("projects/"):
            return topic_name
        return f"projects/{self.project_id}/topics/{topic_name}"

    def subscription_path(self, subscription_name: str) -> str:
        """Return the full resource path for ``subscription_name``."""
        if subscription_name.startswith("projects/"):
            return subscription_name
        return f"projects/{self.project_id}/subscriptions/{subscription_name}"

    def topic(self, topic_name: str, batching: BatchingOptions | None = None) -> GoogleTopic:
        """Return a topic handle.

        Batching settings are per PublisherClient in the SDK, so a topic with
        batching options gets a dedicated client.
        """
        if batching is not None:
            client = self._create_publisher(
                pubsub_v1.types.BatchSettings(
                    max_messages=batching.max_messages,
                    max_bytes=batching.max_bytes,
                    max_latency=batching.max_latency_seconds,
                )
            )
        else:
            if self._publisher is None:
                self._publisher = self._create_publisher(None)
            client = self._publisher
        return GoogleTopic(client, self.topic_path(topic_name))

    def subscription(
        self,
        subscription_name: str,
        flow_control: FlowControlOptions | None = None,
        ack_deadline_seconds: int | None = None,
    ) -> GoogleSubscription:
        """Return a subscription handle (the pull starts on ``on("message")``)."""
        if self._subscriber is None:
            kwargs: dict[str, Any] = {}
            if self._credentials is not None:
                kwargs["credentials"] = self._credentials
            if self._client_options is not None:
                kwargs["client_options"] = self._client_options
            self._subscriber = pubsub_v1.SubscriberClient(**kwargs)
            self._owns_subscriber = True
        return GoogleSubscription(
            self._subscriber,
            self.subscription_path(subscription_name),
            flow_control=flow_control,
            ack_deadline_seconds=ack_deadline_seconds,
        )

    def close(self) -> None:
        """Stop publishers and close the subscriber created by this client.

        Publisher stop() flushes outstanding batches and blocks until done.
        """
        for publisher in self._owned_publishers:
            publisher.stop()
        self._owned_publishers.clear()
        if self._owns_subscriber and self._subscriber is not None:
            self._subscriber.close()
            self._subscriber = None
            self._owns_subscriber = False

    def _create_publisher(self, batch_settings: Any) -> Any:
        kwargs: dict[str, Any] = {
            "publisher_options": pubsub_v1.types.PublisherOptions(
                enable_message_ordering=self._enable_message_ordering,
            ),
        }
        if batch_settings is not None:
            kwargs["batch_settings"] = batch_settings
        if self._credentials is not None:
            kwargs["credentials"] = self._credentials
        if self._client_options is not None:
            kwargs["client_options"] = self._client_options
        publisher = pubsub_v1.PublisherClient(**kwargs)
        self._owned_publishers.append(publisher)
        return publisher


def create_pubsub_client(
    project_id: str | None = None,
    *,
    credentials: Any = None,
    credentials_file: str | None = None,
    api_endpoint: str | None = None,
    enable_message_ordering: bool = True,
) -> PubSubClient:
    """Create a Google Pub/Sub client.

    Credentials resolve in order: explicit ``credentials``, a service
    account ``credentials_file``, then Application Default Credentials. When
    ``project_id`` is omitted the ADC project is used.

    Raises:
        ValueError: If no project id is given and ADC has none.
    """
    if credentials is None and credentials_file is not None:
        credentials = service_account.Credentials.from_service_account_file(
            credentials_file,
            scopes=["https://www.googleapis.com/auth/pubsub"],
        )
        if project_id is None:
            project_id = credentials.project_id

    if project_id is None:
        default_credentials, default_project = google.auth.default()
        if credentials is None:
            credentials = default_credentials
        project_id = default_project

    if not project_id:
        raise ValueError("A Google Cloud project id is required")

    return PubSubClient(
        project_id,
        credentials=credentials,
        api_endpoint=api_endpoint,
        enable_message_ordering=enable_message_ordering,
    )
