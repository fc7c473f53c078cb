"""Transport boundary for pubsub-lite.

The publisher and consumer never talk to a pub/sub SDK directly. They use
the two protocols below, which any transport adapter (or test double) can
satisfy. The Google Cloud Pub/Sub adapter lives in ``adapters.gcp``.

Message delivery, redelivery, ordering, flow control and dead-lettering
all belong to the transport behind these protocols.

Examples:
    A minimal in-process topic for tests::

        class ListTopic:
            def __init__(self) -> None:
                self.sent: list[tuple[bytes, dict[str, str], str | None]] = []

            async def publish_message(self, data, attributes, ordering_key=None):
                self.sent.append((data, attributes, ordering_key))
                return str(len(self.sent))

            async def flush(self) -> None:
                pass
"""

from collections.abc import Awaitable, Callable
from typing import Any, Literal, Protocol, runtime_checkable

from pubsub_lite.models import ReceivedMessage

MessageCallback = Callable[[ReceivedMessage], Awaitable[None]]
ErrorCallback = Callable[[Exception], Any]


@runtime_checkable
class TopicHandle(Protocol):
    """Publishing side of the transport."""

    async def publish_message(
        self,
        data: bytes,
        attributes: dict[str, str],
        ordering_key: str | None = None,
    ) -> str:
        """Publish one message and return the transport message id."""
        ...

    async def flush(self) -> None:
        """Drain any transport-level batch buffer."""
        ...


@runtime_checkable
class SubscriptionHandle(Protocol):
    """Receiving side of the transport.

    ``on("message", cb)`` starts delivery: the transport awaits ``cb`` once
    per delivered message, possibly for several messages concurrently.
    ``on("error", cb)`` reports subscription-level faults such as stream
    disconnects.
    """

    def on(self, event: Literal["message", "error"], callback: Any) -> None:
        """Register a callback for ``event``."""
        ...

    async def close(self) -> None:
        """Stop delivery and release the subscription."""
        ...
