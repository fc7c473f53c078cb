"""
Pytest configuration and shared fixtures for pubsub_lite tests.

The fake transport here satisfies the TopicHandle and SubscriptionHandle
protocols without any network access.
"""

import inspect
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from pubsub_lite.models import ReceivedMessage


class FakeTopic:
    """In-process topic recording every publish call.

    ``results`` is consumed one item per call: an exception instance is
    raised, anything else is returned as the message id. Once exhausted,
    ids ``msg-1``, ``msg-2``, ... are returned.
    """

    def __init__(self, results: list[Any] | None = None) -> None:
        self.path = "projects/test-project/topics/test-topic"
        self.calls: list[tuple[bytes, dict[str, str], str | None]] = []
        self.flush_count = 0
        self._results = list(results or [])

    async def publish_message(
        self,
        data: bytes,
        attributes: dict[str, str],
        ordering_key: str | None = None,
    ) -> str:
        self.calls.append((data, dict(attributes), ordering_key))
        if self._results:
            result = self._results.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return f"msg-{len(self.calls)}"

    async def flush(self) -> None:
        self.flush_count += 1


class FakeSubscription:
    """In-process subscription that lets tests push deliveries by hand."""

    def __init__(self) -> None:
        self.path = "projects/test-project/subscriptions/test-sub"
        self.callbacks: dict[str, Any] = {}
        self.closed = False

    def on(self, event: str, callback: Any) -> None:
        self.callbacks[event] = callback

    async def deliver(self, message: ReceivedMessage) -> Any:
        """Run the registered message callback for one delivery."""
        return await self.callbacks["message"](message)

    async def emit_error(self, error: Exception) -> None:
        result = self.callbacks["error"](error)
        if inspect.isawaitable(result):
            await result

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def topic() -> FakeTopic:
    """Provide a fresh fake topic."""
    return FakeTopic()


@pytest.fixture
def subscription() -> FakeSubscription:
    """Provide a fresh fake subscription."""
    return FakeSubscription()


@pytest.fixture
def make_message() -> Callable[..., ReceivedMessage]:
    """Factory for deliveries whose transport ack/nack are MagicMocks.

    The mocks are reachable as ``message.transport_ack`` and
    ``message.transport_nack``.
    """

    def _make(
        message_id: str = "msg-1",
        data: bytes = b'{"order_id": 42}',
        attributes: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> ReceivedMessage:
        ack = MagicMock(name="ack")
        nack = MagicMock(name="nack")
        message = ReceivedMessage(
            message_id=message_id,
            data=data,
            attributes=attributes or {},
            ack=ack,
            nack=nack,
            **kwargs,
        )
        message.transport_ack = ack  # type: ignore[attr-defined]
        message.transport_nack = nack  # type: ignore[attr-defined]
        return message

    return _make


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Provide a manually advanced clock for TTL tests."""
    return FakeClock()
