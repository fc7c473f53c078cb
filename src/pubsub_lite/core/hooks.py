"""Safe invocation of user-supplied hooks and handlers.

Hooks are observability callbacks. A hook that raises, or returns an
awaitable that raises, is logged and otherwise ignored, so a hook can never
alter the outcome of the operation it is attached to.
"""

import inspect
from collections.abc import Callable
from typing import Any

from pubsub_lite.observability.logging import get_logger

logger = get_logger(__name__)


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


async def invoke_hook(
    hook: Callable[..., Any] | None,
    name: str,
    *args: Any,
    log: Any = None,
) -> None:
    """Call a sync or async hook, logging and discarding any failure.

    Args:
        hook: The callback, or None (no-op)
        name: Hook name used in the log record
        *args: Positional arguments for the hook
        log: Logger to report failures to (defaults to this module's logger)

    Examples:
        >>> await invoke_hook(hooks.on_message_ack, "on_message_ack", message)
    """
    if hook is None:
        return
    try:
        await maybe_await(hook(*args))
    except Exception as e:
        (log or logger).warning(
            "hook.failed",
            hook=name,
            error=str(e),
            error_type=type(e).__name__,
        )
