"""Per-message processing pipeline for consumers.

Each delivered message runs once through::

    RECEIVED -> PARSING -> IDEMPOTENCY_CHECK -> HANDLING -> ack | nack

- RECEIVED: ``on_message_received`` fires
- PARSING: payload decoded as JSON, falling back to the raw text
- IDEMPOTENCY_CHECK (only with a store): key derived from the message;
  a live key means DUPLICATE, which is acked without calling the handler;
  otherwise the key is recorded before the handler runs. Store failures
  fail open (treated as "not a duplicate")
- HANDLING: no handler means ack; a handler that returns leads to
  ``on_message_success`` (and an ack when auto-ack is on); a handler that
  raises leads to ``on_message_error`` then ``nack()``

Every hook is isolated: a failing hook is logged and never changes the
ack/nack decision. Redelivery after a nack, and its limits, are entirely up
to the transport.

Examples:
    Processing one delivery::

        outcome = await process_message(
            message,
            handler=handle_order,
            store=store,
            key_selector=lambda m: m.id,
            hooks=ConsumerHooks(),
        )
        if outcome is MessageOutcome.DUPLICATE:
            ...
"""

from collections.abc import Callable
from enum import Enum
from typing import Any

from pubsub_lite.codec import decode_payload
from pubsub_lite.config import ConsumerHooks
from pubsub_lite.core.hooks import invoke_hook, maybe_await
from pubsub_lite.models import ReceivedMessage
from pubsub_lite.observability.logging import get_logger
from pubsub_lite.observability.metrics import (
    record_idempotency_check,
    record_message_outcome,
)
from pubsub_lite.storage.base import IdempotencyStore

logger = get_logger(__name__)

MessageHandler = Callable[[Any, ReceivedMessage], Any]


class MessageOutcome(str, Enum):
    """Terminal state of one pipeline run.

    Attributes:
        ACKED: Handler succeeded and the pipeline acked.
        HANDLED: Handler succeeded; acknowledgment was left to (or already
            done by) the handler.
        DUPLICATE: Key already recorded; acked without calling the handler.
        NO_HANDLER: No handler registered; acked.
        FAILED: Handler raised; nacked.
        REJECTED: The idempotency key could not be derived; nacked without
            calling the handler.
    """

    ACKED = "acked"
    HANDLED = "handled"
    DUPLICATE = "duplicate"
    NO_HANDLER = "no_handler"
    FAILED = "failed"
    REJECTED = "rejected"


def default_key_selector(message: ReceivedMessage) -> str:
    """Use the transport message id as the idempotency key."""
    return message.id


async def process_message(
    message: ReceivedMessage,
    *,
    handler: MessageHandler | None,
    store: IdempotencyStore | None = None,
    key_selector: Callable[[ReceivedMessage], str] = default_key_selector,
    ttl_ms: int | None = None,
    hooks: ConsumerHooks | None = None,
    auto_ack: bool = True,
    release_key_on_error: bool = True,
    log: Any = None,
) -> MessageOutcome:
    """Run one delivery through the pipeline.

    Args:
        message: The delivery
        handler: ``handler(data, message)``, sync or async; None acks everything
        store: Idempotency store; None skips the duplicate check
        key_selector: Derives the idempotency key from the message
        ttl_ms: Lifetime for newly recorded keys (None = store default)
        hooks: Pipeline hooks
        auto_ack: Ack after a successful handler
        release_key_on_error: Delete the recorded key when the handler raises
        log: Structured logger

    Returns:
        The terminal MessageOutcome. Never raises for handler, hook or
        store failures.
    """
    hooks = hooks or ConsumerHooks()
    log = log or logger

    await invoke_hook(hooks.on_message_received, "on_message_received", message, log=log)

    data = decode_payload(message.data)

    key: str | None = None
    if store is not None:
        try:
            key = key_selector(message)
        except Exception as e:
            log.error(
                "message.key_selector_failed",
                message_id=message.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await _fail(message, e, hooks, log)
            return _finish(MessageOutcome.REJECTED)

        if await _check_and_mark(store, key, ttl_ms, hooks, log):
            log.info("message.duplicate", message_id=message.id, key=key)
            await _ack(message, hooks, log)
            return _finish(MessageOutcome.DUPLICATE)

    if handler is None:
        await _ack(message, hooks, log)
        return _finish(MessageOutcome.NO_HANDLER)

    await invoke_hook(hooks.on_message_start, "on_message_start", message, log=log)

    try:
        await maybe_await(handler(data, message))
    except Exception as e:
        log.warning(
            "message.handler_failed",
            message_id=message.id,
            error=str(e),
            error_type=type(e).__name__,
        )
        if store is not None and key is not None and release_key_on_error:
            await _release(store, key, log)
        await _fail(message, e, hooks, log)
        return _finish(MessageOutcome.FAILED)

    await invoke_hook(hooks.on_message_success, "on_message_success", message, data, log=log)

    if auto_ack and await _ack(message, hooks, log):
        return _finish(MessageOutcome.ACKED)
    return _finish(MessageOutcome.HANDLED)


async def _check_and_mark(
    store: IdempotencyStore,
    key: str,
    ttl_ms: int | None,
    hooks: ConsumerHooks,
    log: Any,
) -> bool:
    """Return True for a duplicate; otherwise record the key. Fails open."""
    exists: bool | None
    try:
        exists = bool(await store.has(key))
    except Exception as e:
        record_idempotency_check("error")
        log.error(
            "idempotency.check_failed",
            key=key,
            error=str(e),
            error_type=type(e).__name__,
        )
        exists = None

    if exists:
        record_idempotency_check("hit")
        await invoke_hook(hooks.on_idempotency_check, "on_idempotency_check", key, True, log=log)
        return True

    # No suspension between has() and set() for stores that complete synchronously
    try:
        await store.set(key, ttl_ms)
    except Exception as e:
        log.error(
            "idempotency.set_failed",
            key=key,
            error=str(e),
            error_type=type(e).__name__,
        )

    if exists is not None:
        record_idempotency_check("miss")
        await invoke_hook(hooks.on_idempotency_check, "on_idempotency_check", key, False, log=log)
    return False


async def _release(store: IdempotencyStore, key: str, log: Any) -> None:
    delete = getattr(store, "delete", None)
    if delete is None:
        return
    try:
        await delete(key)
    except Exception as e:
        log.error(
            "idempotency.release_failed",
            key=key,
            error=str(e),
            error_type=type(e).__name__,
        )


async def _ack(message: ReceivedMessage, hooks: ConsumerHooks, log: Any) -> bool:
    if message.settled:
        log.debug("message.already_settled", message_id=message.id, state=message.state.value)
        return False
    try:
        message.ack()
    except Exception as e:
        log.error("message.ack_failed", message_id=message.id, error=str(e))
        return False
    await invoke_hook(hooks.on_message_ack, "on_message_ack", message, log=log)
    return True


async def _fail(
    message: ReceivedMessage,
    error: Exception,
    hooks: ConsumerHooks,
    log: Any,
) -> None:
    await invoke_hook(hooks.on_message_error, "on_message_error", message, error, log=log)

    if message.settled:
        log.warning(
            "message.nack_skipped",
            message_id=message.id,
            state=message.state.value,
        )
        return
    try:
        message.nack()
    except Exception as e:
        log.error("message.nack_failed", message_id=message.id, error=str(e))
        return
    await invoke_hook(hooks.on_message_nack, "on_message_nack", message, log=log)


def _finish(outcome: MessageOutcome) -> MessageOutcome:
    record_message_outcome(outcome.value)
    return outcome
