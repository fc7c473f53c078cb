"""Background sweep of expired idempotency records.

The memory store checks expiry lazily on every lookup, so correctness never
depends on this task. The sweep only bounds memory use by removing records
nobody asks about again.

The sweep is a plain asyncio task: it does not keep the process alive and
is cancelled with the event loop if the store is never closed.

Examples:
    Run a sweep next to a store::

        from pubsub_lite.core.cleanup import start_cleanup_task, stop_cleanup_task

        task = start_cleanup_task(store, interval_seconds=60)
        ...
        await stop_cleanup_task(task)
"""

import asyncio
from typing import Protocol

from pubsub_lite.observability.logging import get_logger
from pubsub_lite.observability.metrics import record_cleanup

logger = get_logger(__name__)


class Sweepable(Protocol):
    """Anything exposing an async ``cleanup_expired() -> int``."""

    async def cleanup_expired(self) -> int: ...


async def cleanup_loop(
    store: Sweepable,
    interval_seconds: float = 60,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Periodically remove expired records until stopped.

    The first sweep runs after one full interval. Errors are logged and the
    loop keeps going.

    Args:
        store: Store to sweep
        interval_seconds: Time between sweeps
        stop_event: Event that ends the loop when set
    """
    if stop_event is None:
        stop_event = asyncio.Event()

    logger.debug("cleanup.started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass
        else:
            break

        try:
            count = await store.cleanup_expired()
            record_cleanup(count)
            logger.debug("cleanup.completed", records_removed=count)
        except Exception as e:
            logger.error(
                "cleanup.failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    logger.debug("cleanup.stopped")


def start_cleanup_task(
    store: Sweepable,
    interval_seconds: float = 60,
) -> "asyncio.Task[None]":
    """Start the sweep loop on the running event loop.

    Args:
        store: Store to sweep
        interval_seconds: Time between sweeps

    Returns:
        The asyncio Task running the loop

    Raises:
        RuntimeError: If no event loop is running
    """
    stop_event = asyncio.Event()
    task = asyncio.get_running_loop().create_task(
        cleanup_loop(store=store, interval_seconds=interval_seconds, stop_event=stop_event)
    )
    task._stop_event = stop_event  # type: ignore[attr-defined]
    return task


async def stop_cleanup_task(task: "asyncio.Task[None]") -> None:
    """Stop a sweep task started by :func:`start_cleanup_task`.

    Signals the loop and waits briefly, cancelling it if it does not finish.
    Safe to call on a task that already finished.
    """
    if task.done():
        return

    stop_event: asyncio.Event | None = getattr(task, "_stop_event", None)
    if stop_event:
        stop_event.set()

    try:
        await asyncio.wait_for(task, timeout=5.0)
    except asyncio.TimeoutError:
        logger.warning("cleanup.stop_timeout")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("cleanup.cancelled")
