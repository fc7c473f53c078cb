"""Core type definitions for pubsub-lite.

This module provides the data structures shared by the publisher, the
consumer pipeline and the idempotency stores: the delivered message with
its settlement guard, the settlement states, and store statistics.

Examples:
    Wrapping a delivery from a transport::

        from pubsub_lite.models import ReceivedMessage

        message = ReceivedMessage(
            message_id="1234",
            data=b'{"order_id": 42}',
            attributes={"source": "billing"},
            ack=raw.ack,
            nack=raw.nack,
        )

        message.ack()
        message.state
        # <SettlementState.ACKED: 'ACKED'>
"""

from collections.abc import Callable, Mapping
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from pubsub_lite.exceptions import MessageSettledError


class SettlementState(str, Enum):
    """Acknowledgment state of a single delivery attempt.

    Attributes:
        PENDING: Neither ack() nor nack() has been invoked yet.
        ACKED: The delivery was positively acknowledged.
        NACKED: The delivery was negatively acknowledged (redelivery requested).
    """

    PENDING = "PENDING"
    ACKED = "ACKED"
    NACKED = "NACKED"


class MessageAttributes:
    """Well-known attribute names used across services."""

    SOURCE = "source"
    TYPE = "type"
    VERSION = "version"
    CORRELATION_ID = "correlationId"
    TIMESTAMP = "timestamp"
    CONTENT_TYPE = "contentType"


class ReceivedMessage:
    """A message delivered by the transport for one processing cycle.

    The transport owns the message; the consumer only references it while
    the pipeline runs. ``ack()`` and ``nack()`` forward to the transport
    callables and enforce that exactly one of them is invoked, once.

    Attributes:
        id: Opaque unique identifier assigned by the transport.
        data: Raw payload bytes.
        attributes: String-to-string metadata.
        ordering_key: Transport ordering key, if any.
        delivery_attempt: Transport delivery attempt counter, if exposed.
        publish_time: Publish timestamp, if exposed.
    """

    def __init__(
        self,
        message_id: str,
        data: bytes,
        attributes: Mapping[str, str] | None,
        ack: Callable[[], None],
        nack: Callable[[], None],
        ordering_key: str | None = None,
        delivery_attempt: int | None = None,
        publish_time: datetime | None = None,
    ) -> None:
        """Initialize a delivered message.

        Args:
            message_id: Transport identifier.
            data: Payload bytes.
            attributes: Message attributes (copied into a plain dict).
            ack: Transport callable that acknowledges the delivery.
            nack: Transport callable that requests redelivery.
            ordering_key: Optional ordering key.
            delivery_attempt: Optional delivery attempt counter.
            publish_time: Optional publish timestamp.
        """
        self.id = message_id
        self.data = data
        self.attributes: dict[str, str] = dict(attributes or {})
        self.ordering_key = ordering_key or None
        self.delivery_attempt = delivery_attempt
        self.publish_time = publish_time
        self._ack = ack
        self._nack = nack
        self._state = SettlementState.PENDING

    @property
    def message_id(self) -> str:
        """Alias of ``id``."""
        return self.id

    @property
    def state(self) -> SettlementState:
        """Current settlement state."""
        return self._state

    @property
    def settled(self) -> bool:
        """True once ack() or nack() has been invoked."""
        return self._state is not SettlementState.PENDING

    def ack(self) -> None:
        """Acknowledge the delivery.

        Raises:
            MessageSettledError: If the delivery was already acked or nacked.
        """
        self._settle(SettlementState.ACKED)
        self._ack()

    def nack(self) -> None:
        """Request redelivery.

        Raises:
            MessageSettledError: If the delivery was already acked or nacked.
        """
        self._settle(SettlementState.NACKED)
        self._nack()

    def _settle(self, state: SettlementState) -> None:
        if self.settled:
            raise MessageSettledError(
                message=f"Message {self.id} already {self._state.value.lower()}",
                message_id=self.id,
                state=self._state.value,
            )
        self._state = state

    def __repr__(self) -> str:
        return (
            f"ReceivedMessage(id={self.id!r}, bytes={len(self.data)}, "
            f"attributes={self.attributes!r}, state={self._state.value})"
        )


class IdempotencyStoreStats(BaseModel):
    """Monitoring snapshot of an idempotency store.

    Attributes:
        total_keys: Number of live keys held by the store.
        successful_checks: Number of has() calls that completed.
        failed_checks: Number of has() calls that hit a backend error.
        connection_status: Backend connectivity as last observed.
        last_error: Text of the last backend error, if any.

    Examples:
        >>> stats = IdempotencyStoreStats(total_keys=3, connection_status="connected")
        >>> stats.failed_checks
        0
    """

    total_keys: int = Field(default=0, ge=0, description="Live keys held by the store")
    successful_checks: int = Field(default=0, ge=0, description="Completed has() calls")
    failed_checks: int = Field(default=0, ge=0, description="has() calls that failed")
    connection_status: Literal["connected", "disconnected", "error"] = Field(
        default="connected",
        description="Backend connectivity as last observed",
    )
    last_error: str | None = Field(default=None, description="Last backend error text")

    model_config = {"frozen": True}
