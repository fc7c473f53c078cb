"""Exponential backoff with jitter for publish retries.

The delay before retry ``attempt`` (0-based index of the attempt that just
failed) is::

    min(max_delay_ms, initial_delay_ms * factor ** attempt) + U(0, initial_delay_ms)

so it never exceeds ``max_delay_ms + initial_delay_ms``.
"""

import random
from collections.abc import Callable


def compute_backoff_delay(
    attempt: int,
    initial_delay_ms: int = 100,
    max_delay_ms: int = 10000,
    factor: float = 2.0,
    rand: Callable[[], float] = random.random,
) -> int:
    """Compute the wait in milliseconds before the next publish attempt.

    Args:
        attempt: 0-based index of the attempt that just failed
        initial_delay_ms: Base delay, also the jitter ceiling
        max_delay_ms: Cap applied to the exponential part
        factor: Growth factor per attempt
        rand: Source of uniform values in [0, 1)

    Returns:
        Delay in whole milliseconds

    Examples:
        >>> compute_backoff_delay(0, rand=lambda: 0.0)
        100
        >>> compute_backoff_delay(3, rand=lambda: 0.0)
        800
        >>> compute_backoff_delay(20, rand=lambda: 0.0)
        10000
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    # float ** large int overflows; the cap is reached long before that
    try:
        exponential = initial_delay_ms * (factor**attempt)
    except OverflowError:
        exponential = 0.0 if initial_delay_ms == 0 else float(max_delay_ms)
    capped = min(float(max_delay_ms), exponential)
    jitter = rand() * initial_delay_ms
    return int(capped + jitter)
