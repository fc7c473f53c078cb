"""Unit tests for the per-message processing pipeline.

Tests cover:
- Hook ordering on success and failure paths
- Payload decoding handed to the handler
- Duplicate detection and fail-open store behavior
- Key release on handler failure
- Settlement when the handler acks or nacks itself
- Hook isolation
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pubsub_lite.config import ConsumerHooks
from pubsub_lite.core.state_machine import MessageOutcome, default_key_selector, process_message
from pubsub_lite.models import SettlementState


def recording_hooks(events: list[tuple]) -> ConsumerHooks:
    """Build hooks that append (hook_name, *args) to ``events``."""

    def record(name: str):
        def hook(*args):
            events.append((name, *args))

        return hook

    return ConsumerHooks(
        on_message_received=record("received"),
        on_idempotency_check=record("idempotency_check"),
        on_message_start=record("start"),
        on_message_success=record("success"),
        on_message_error=record("error"),
        on_message_ack=record("ack"),
        on_message_nack=record("nack"),
    )


def mock_store(exists: bool = False) -> AsyncMock:
    store = AsyncMock()
    store.has.return_value = exists
    return store


class TestWithoutStore:
    """Pipeline runs with idempotency disabled."""

    @pytest.mark.asyncio
    async def test_success_acks(self, make_message) -> None:
        events: list[tuple] = []
        message = make_message()
        handler = MagicMock()

        outcome = await process_message(message, handler=handler, hooks=recording_hooks(events))

        assert outcome is MessageOutcome.ACKED
        handler.assert_called_once_with({"order_id": 42}, message)
        message.transport_ack.assert_called_once()
        message.transport_nack.assert_not_called()
        assert [e[0] for e in events] == ["received", "start", "success", "ack"]
        assert events[2] == ("success", message, {"order_id": 42})

    @pytest.mark.asyncio
    async def test_async_handler_awaited(self, make_message) -> None:
        seen = []

        async def handler(data, message):
            seen.append(data)

        outcome = await process_message(make_message(), handler=handler)

        assert outcome is MessageOutcome.ACKED
        assert seen == [{"order_id": 42}]

    @pytest.mark.asyncio
    async def test_non_json_payload_passed_as_text(self, make_message) -> None:
        handler = MagicMock()
        message = make_message(data=b"plain text")

        await process_message(message, handler=handler)

        handler.assert_called_once_with("plain text", message)

    @pytest.mark.asyncio
    async def test_no_handler_acks(self, make_message) -> None:
        events: list[tuple] = []
        message = make_message()

        outcome = await process_message(message, handler=None, hooks=recording_hooks(events))

        assert outcome is MessageOutcome.NO_HANDLER
        message.transport_ack.assert_called_once()
        assert [e[0] for e in events] == ["received", "ack"]

    @pytest.mark.asyncio
    async def test_handler_error_nacks(self, make_message) -> None:
        events: list[tuple] = []
        message = make_message()
        error = RuntimeError("handler broke")

        def handler(data, msg):
            raise error

        outcome = await process_message(message, handler=handler, hooks=recording_hooks(events))

        assert outcome is MessageOutcome.FAILED
        message.transport_nack.assert_called_once()
        message.transport_ack.assert_not_called()
        assert [e[0] for e in events] == ["received", "start", "error", "nack"]
        assert events[2] == ("error", message, error)

    @pytest.mark.asyncio
    async def test_handler_error_logged(self, make_message) -> None:
        log = MagicMock()

        async def handler(data, msg):
            raise ValueError("bad order")

        await process_message(make_message(message_id="m-9"), handler=handler, log=log)

        log.warning.assert_any_call(
            "message.handler_failed",
            message_id="m-9",
            error="bad order",
            error_type="ValueError",
        )


class TestIdempotency:
    """Pipeline runs with a store."""

    @pytest.mark.asyncio
    async def test_new_key_recorded_before_handler(self, make_message) -> None:
        events: list[tuple] = []
        store = mock_store(exists=False)

        def handler(data, msg):
            store.set.assert_awaited_once_with("msg-1", 5000)

        outcome = await process_message(
            make_message(),
            handler=handler,
            store=store,
            ttl_ms=5000,
            hooks=recording_hooks(events),
        )

        assert outcome is MessageOutcome.ACKED
        store.has.assert_awaited_once_with("msg-1")
        assert ("idempotency_check", "msg-1", False) in events

    @pytest.mark.asyncio
    async def test_duplicate_acked_without_handler(self, make_message) -> None:
        events: list[tuple] = []
        store = mock_store(exists=True)
        handler = MagicMock()
        message = make_message()

        outcome = await process_message(
            message, handler=handler, store=store, hooks=recording_hooks(events)
        )

        assert outcome is MessageOutcome.DUPLICATE
        handler.assert_not_called()
        store.set.assert_not_awaited()
        message.transport_ack.assert_called_once()
        assert [e[0] for e in events] == ["received", "idempotency_check", "ack"]
        assert events[1] == ("idempotency_check", "msg-1", True)

    @pytest.mark.asyncio
    async def test_custom_key_selector(self, make_message) -> None:
        store = mock_store()
        message = make_message(attributes={"orderId": "o-7"})

        await process_message(
            message,
            handler=MagicMock(),
            store=store,
            key_selector=lambda m: m.attributes["orderId"],
        )

        store.has.assert_awaited_once_with("o-7")
        store.set.assert_awaited_once_with("o-7", None)

    @pytest.mark.asyncio
    async def test_key_selector_error_rejects(self, make_message) -> None:
        events: list[tuple] = []
        store = mock_store()
        handler = MagicMock()
        message = make_message()

        outcome = await process_message(
            message,
            handler=handler,
            store=store,
            key_selector=lambda m: m.attributes["missing"],
            hooks=recording_hooks(events),
        )

        assert outcome is MessageOutcome.REJECTED
        handler.assert_not_called()
        store.has.assert_not_awaited()
        message.transport_nack.assert_called_once()
        assert [e[0] for e in events] == ["received", "error", "nack"]
        assert isinstance(events[1][2], KeyError)

    @pytest.mark.asyncio
    async def test_has_failure_fails_open(self, make_message) -> None:
        events: list[tuple] = []
        store = mock_store()
        store.has.side_effect = ConnectionError("cache down")
        handler = MagicMock()

        outcome = await process_message(
            make_message(), handler=handler, store=store, hooks=recording_hooks(events)
        )

        assert outcome is MessageOutcome.ACKED
        handler.assert_called_once()
        store.set.assert_awaited_once()
        assert not any(e[0] == "idempotency_check" for e in events)

    @pytest.mark.asyncio
    async def test_set_failure_fails_open(self, make_message) -> None:
        store = mock_store()
        store.set.side_effect = ConnectionError("cache down")
        handler = MagicMock()

        outcome = await process_message(make_message(), handler=handler, store=store)

        assert outcome is MessageOutcome.ACKED
        handler.assert_called_once()

    @pytest.mark.asyncio
    async def test_key_released_on_handler_error(self, make_message) -> None:
        store = mock_store()

        def handler(data, msg):
            raise RuntimeError("boom")

        outcome = await process_message(make_message(), handler=handler, store=store)

        assert outcome is MessageOutcome.FAILED
        store.delete.assert_awaited_once_with("msg-1")

    @pytest.mark.asyncio
    async def test_key_kept_when_release_disabled(self, make_message) -> None:
        store = mock_store()

        def handler(data, msg):
            raise RuntimeError("boom")

        await process_message(
            make_message(), handler=handler, store=store, release_key_on_error=False
        )

        store.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_release_failure_still_nacks(self, make_message) -> None:
        store = mock_store()
        store.delete.side_effect = ConnectionError("cache down")
        message = make_message()

        def handler(data, msg):
            raise RuntimeError("boom")

        outcome = await process_message(message, handler=handler, store=store)

        assert outcome is MessageOutcome.FAILED
        message.transport_nack.assert_called_once()

    @pytest.mark.asyncio
    async def test_store_without_delete(self, make_message) -> None:
        class MinimalStore:
            async def has(self, key):
                return False

            async def set(self, key, ttl_ms=None):
                return None

            async def close(self):
                return None

        message = make_message()

        def handler(data, msg):
            raise RuntimeError("boom")

        outcome = await process_message(message, handler=handler, store=MinimalStore())

        assert outcome is MessageOutcome.FAILED
        message.transport_nack.assert_called_once()


class TestSettlement:
    """Acknowledgment discipline."""

    @pytest.mark.asyncio
    async def test_auto_ack_disabled(self, make_message) -> None:
        events: list[tuple] = []
        message = make_message()

        outcome = await process_message(
            message, handler=MagicMock(), auto_ack=False, hooks=recording_hooks(events)
        )

        assert outcome is MessageOutcome.HANDLED
        assert message.state is SettlementState.PENDING
        assert "ack" not in [e[0] for e in events]

    @pytest.mark.asyncio
    async def test_handler_acks_itself(self, make_message) -> None:
        message = make_message()

        outcome = await process_message(message, handler=lambda data, msg: msg.ack())

        assert outcome is MessageOutcome.HANDLED
        message.transport_ack.assert_called_once()

    @pytest.mark.asyncio
    async def test_handler_acks_then_raises(self, make_message) -> None:
        events: list[tuple] = []
        message = make_message()

        def handler(data, msg):
            msg.ack()
            raise RuntimeError("after ack")

        outcome = await process_message(message, handler=handler, hooks=recording_hooks(events))

        assert outcome is MessageOutcome.FAILED
        assert message.state is SettlementState.ACKED
        message.transport_nack.assert_not_called()
        assert [e[0] for e in events] == ["received", "start", "error"]

    @pytest.mark.asyncio
    async def test_transport_ack_failure_logged(self, make_message) -> None:
        log = MagicMock()
        message = make_message()
        message.transport_ack.side_effect = RuntimeError("stream closed")

        outcome = await process_message(message, handler=MagicMock(), log=log)

        assert outcome is MessageOutcome.HANDLED
        log.error.assert_called_once()
        assert log.error.call_args.args[0] == "message.ack_failed"


class TestHookIsolation:
    """A failing hook never changes the outcome."""

    @pytest.mark.asyncio
    async def test_every_hook_failing(self, make_message) -> None:
        def broken(*args):
            raise RuntimeError("hook broke")

        hooks = ConsumerHooks(
            on_message_received=broken,
            on_idempotency_check=broken,
            on_message_start=broken,
            on_message_success=broken,
            on_message_ack=broken,
        )
        handler = MagicMock()
        message = make_message()

        outcome = await process_message(message, handler=handler, store=mock_store(), hooks=hooks)

        assert outcome is MessageOutcome.ACKED
        handler.assert_called_once()
        message.transport_ack.assert_called_once()

    @pytest.mark.asyncio
    async def test_failing_error_hook_still_nacks(self, make_message) -> None:
        async def broken(*args):
            raise RuntimeError("hook broke")

        message = make_message()

        def handler(data, msg):
            raise ValueError("handler broke")

        outcome = await process_message(
            message,
            handler=handler,
            hooks=ConsumerHooks(on_message_error=broken, on_message_nack=broken),
        )

        assert outcome is MessageOutcome.FAILED
        message.transport_nack.assert_called_once()


def test_default_key_selector(make_message) -> None:
    assert default_key_selector(make_message(message_id="abc")) == "abc"
