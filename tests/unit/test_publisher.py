"""Unit tests for Publisher.

Retry delays are configured to 0 or 1 ms so the tests never wait.
"""

from unittest.mock import MagicMock

import pytest
from conftest import FakeTopic

from pubsub_lite.config import BatchingOptions, PublisherHooks, PublisherOptions, RetryOptions
from pubsub_lite.exceptions import SerializationError
from pubsub_lite.publisher import Publisher, create_publisher

FAST_RETRY = RetryOptions(initial_delay_ms=1, max_delay_ms=1, max_attempts=3)


def recording_hooks(events: list[tuple]) -> PublisherHooks:
    def record(name: str):
        async def hook(*args):
            events.append((name, *args))

        return hook

    return PublisherHooks(
        on_publish_start=record("start"),
        on_publish_success=record("success"),
        on_publish_error=record("error"),
        on_publish_retry=record("retry"),
        on_publish_failure=record("failure"),
    )


class TestPublish:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_publish_returns_transport_id(self, topic) -> None:
        publisher = Publisher(topic)

        message_id = await publisher.publish({"message": "Hello World!"})

        assert message_id == "msg-1"
        assert topic.calls == [(b'{"message":"Hello World!"}', {}, None)]

    @pytest.mark.asyncio
    async def test_default_attributes_merged(self, topic) -> None:
        publisher = Publisher(
            topic, PublisherOptions(attributes_defaults={"source": "svc", "version": "1"})
        )

        await publisher.publish({"a": 1}, {"source": "override", "type": "order"})

        assert topic.calls[0][1] == {"source": "override", "version": "1", "type": "order"}

    @pytest.mark.asyncio
    async def test_ordering_key_from_selector(self, topic) -> None:
        publisher = Publisher(
            topic, PublisherOptions(ordering_key_selector=lambda data: data["customer"])
        )

        await publisher.publish({"customer": "c-1"})

        assert topic.calls[0][2] == "c-1"

    @pytest.mark.asyncio
    async def test_empty_ordering_key_omitted(self, topic) -> None:
        publisher = Publisher(topic, PublisherOptions(ordering_key_selector=lambda data: ""))

        await publisher.publish({"customer": "c-1"})

        assert topic.calls[0][2] is None

    @pytest.mark.asyncio
    async def test_hooks_on_success(self, topic) -> None:
        events: list[tuple] = []
        publisher = Publisher(topic, PublisherOptions(hooks=recording_hooks(events)))
        payload = {"a": 1}

        await publisher.publish(payload, {"k": "v"})

        assert events == [("start", payload, {"k": "v"}), ("success", "msg-1", payload)]

    @pytest.mark.asyncio
    async def test_flush_delegates(self, topic) -> None:
        await Publisher(topic).flush()

        assert topic.flush_count == 1

    def test_topic_accessor(self, topic) -> None:
        publisher = Publisher(topic)

        assert publisher.topic is topic
        assert publisher.topic_name == topic.path


class TestPublishValidation:
    """Failures before any transport call."""

    @pytest.mark.asyncio
    async def test_selector_error_propagates_without_publish(self, topic) -> None:
        events: list[tuple] = []
        publisher = Publisher(
            topic,
            PublisherOptions(
                ordering_key_selector=lambda data: data["missing"],
                hooks=recording_hooks(events),
                retry=FAST_RETRY,
            ),
        )

        with pytest.raises(KeyError):
            await publisher.publish({"a": 1})

        assert topic.calls == []
        assert events == []

    @pytest.mark.asyncio
    async def test_non_string_attribute_rejected(self, topic) -> None:
        publisher = Publisher(topic)

        with pytest.raises(TypeError):
            await publisher.publish({"a": 1}, {"count": 3})  # type: ignore[dict-item]

        assert topic.calls == []


class TestRetry:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self) -> None:
        events: list[tuple] = []
        first, second = ConnectionError("one"), ConnectionError("two")
        topic = FakeTopic([first, second, "id-1"])
        publisher = Publisher(
            topic, PublisherOptions(retry=FAST_RETRY, hooks=recording_hooks(events))
        )
        payload = {"a": 1}

        assert await publisher.publish(payload) == "id-1"

        assert len(topic.calls) == 3
        assert events == [
            ("start", payload, {}),
            ("error", first, payload, 1),
            ("retry", first, payload, 1, 1),
            ("error", second, payload, 2),
            ("retry", second, payload, 2, 1),
            ("success", "id-1", payload),
        ]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self) -> None:
        events: list[tuple] = []
        errors = [ConnectionError("one"), ConnectionError("two"), ConnectionError("three")]
        topic = FakeTopic(list(errors))
        publisher = Publisher(
            topic, PublisherOptions(retry=FAST_RETRY, hooks=recording_hooks(events))
        )

        with pytest.raises(ConnectionError) as exc_info:
            await publisher.publish({"a": 1})

        assert exc_info.value is errors[-1]
        assert len(topic.calls) == 3
        names = [e[0] for e in events]
        assert names.count("error") == 3
        assert names.count("retry") == 2
        assert events[-1] == ("failure", errors[-1], {"a": 1}, 3)

    @pytest.mark.asyncio
    async def test_single_attempt_never_retries(self) -> None:
        topic = FakeTopic([ConnectionError("down")])
        publisher = Publisher(topic, PublisherOptions(retry=RetryOptions(max_attempts=1)))

        with pytest.raises(ConnectionError):
            await publisher.publish({"a": 1})

        assert len(topic.calls) == 1

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_fast(self) -> None:
        topic = FakeTopic([PermissionError("denied"), "never"])
        publisher = Publisher(
            topic,
            PublisherOptions(
                retry=RetryOptions(
                    initial_delay_ms=1,
                    max_delay_ms=1,
                    max_attempts=5,
                    is_retryable=lambda e: isinstance(e, ConnectionError),
                )
            ),
        )

        with pytest.raises(PermissionError):
            await publisher.publish({"a": 1})

        assert len(topic.calls) == 1

    @pytest.mark.asyncio
    async def test_raising_retry_predicate_fails_with_transport_error(self) -> None:
        events: list[tuple] = []
        logger = MagicMock()
        error = ConnectionError("down")
        topic = FakeTopic([error, "never"])

        def classify(e: Exception) -> bool:
            raise KeyError("classifier bug")

        publisher = Publisher(
            topic,
            PublisherOptions(
                retry=RetryOptions(
                    initial_delay_ms=1, max_delay_ms=1, max_attempts=5, is_retryable=classify
                ),
                hooks=recording_hooks(events),
            ),
            logger=logger,
        )

        with pytest.raises(ConnectionError) as exc_info:
            await publisher.publish({"a": 1})

        assert exc_info.value is error
        assert len(topic.calls) == 1
        assert events[-1] == ("failure", error, {"a": 1}, 1)
        logged = [c.args[0] for c in logger.error.call_args_list]
        assert "publish.retry_predicate_failed" in logged

    @pytest.mark.asyncio
    async def test_serialization_error_retried_by_default(self, topic) -> None:
        events: list[tuple] = []
        publisher = Publisher(
            topic, PublisherOptions(retry=FAST_RETRY, hooks=recording_hooks(events))
        )

        with pytest.raises(SerializationError):
            await publisher.publish({"when": object()})

        assert topic.calls == []
        assert [e[0] for e in events].count("error") == 3

    @pytest.mark.asyncio
    async def test_retry_logged(self) -> None:
        logger = MagicMock()
        topic = FakeTopic([ConnectionError("one")])
        publisher = Publisher(topic, PublisherOptions(retry=FAST_RETRY), logger=logger)

        await publisher.publish({"a": 1})

        logger.warning.assert_called_once()
        assert logger.warning.call_args.args[0] == "publish.retry"
        assert logger.warning.call_args.kwargs["delay_ms"] == 1


class TestHookIsolation:
    """Failing hooks never change the publish result."""

    @pytest.mark.asyncio
    async def test_failing_hooks_on_success(self, topic) -> None:
        def broken(*args):
            raise RuntimeError("hook broke")

        hooks = PublisherHooks(on_publish_start=broken, on_publish_success=broken)
        publisher = Publisher(topic, PublisherOptions(hooks=hooks))

        assert await publisher.publish({"a": 1}) == "msg-1"

    @pytest.mark.asyncio
    async def test_failing_hooks_keep_retry_count(self) -> None:
        async def broken(*args):
            raise RuntimeError("hook broke")

        error = ConnectionError("down")
        topic = FakeTopic([error, error, error])
        hooks = PublisherHooks(
            on_publish_error=broken, on_publish_retry=broken, on_publish_failure=broken
        )
        publisher = Publisher(topic, PublisherOptions(retry=FAST_RETRY, hooks=hooks))

        with pytest.raises(ConnectionError) as exc_info:
            await publisher.publish({"a": 1})

        assert exc_info.value is error
        assert len(topic.calls) == 3


def test_create_publisher_passes_batching() -> None:
    client = MagicMock()
    batching = BatchingOptions(max_messages=10)

    publisher = create_publisher(client, "orders", PublisherOptions(batching=batching))

    client.topic.assert_called_once_with("orders", batching=batching)
    assert publisher.topic is client.topic.return_value
    assert publisher.topic_name == "orders"
