"""Scenario 3: Publish Retry

Transient transport failures are retried with backoff:
- Two rejections followed by success resolve with the final id
- The transport is called at most max_attempts times
- Persistent failure surfaces the last observed error
"""

import pytest
from conftest import FakeTopic

from pubsub_lite.config import PublisherOptions, RetryOptions
from pubsub_lite.publisher import Publisher


def fast_retry(max_attempts: int) -> PublisherOptions:
    return PublisherOptions(
        retry=RetryOptions(initial_delay_ms=1, max_delay_ms=2, max_attempts=max_attempts)
    )


@pytest.mark.asyncio
async def test_two_failures_then_success() -> None:
    topic = FakeTopic([ConnectionError("unavailable"), TimeoutError("deadline"), "id-1"])
    publisher = Publisher(topic, fast_retry(3))

    assert await publisher.publish({"order_id": 1}) == "id-1"
    assert len(topic.calls) == 3
    assert len({call[0] for call in topic.calls}) == 1


@pytest.mark.asyncio
async def test_persistent_failure_bounded_by_max_attempts() -> None:
    errors = [ConnectionError(f"attempt {n}") for n in range(1, 10)]
    topic = FakeTopic(list(errors))
    publisher = Publisher(topic, fast_retry(4))

    with pytest.raises(ConnectionError) as exc_info:
        await publisher.publish({"order_id": 1})

    assert len(topic.calls) == 4
    assert exc_info.value is errors[3]
