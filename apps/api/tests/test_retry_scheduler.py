from datetime import datetime, timedelta, timezone

import pytest

from postline.services.delivery import store
from postline.services.delivery.retry_scheduler import (
    MAX_RETRIES,
    RETRY_DELAYS,
    add_to_retry_queue,
    format_retry_delay,
    get_retry_queue_status,
    retry_delay_seconds,
    time_until_retry,
)

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _queued_post(engine) -> int:
    operation_id = store.create_operation(engine, 1, "single", now=T0)
    return store.create_post_record(
        engine,
        operation_id,
        1,
        original_content="Original text here",
        processed_content="Processed text here",
        quality_score=100,
        issues=[],
        corrections=[],
        status="queued",
        now=T0,
    )


def test_retry_delays_follow_fixed_schedule() -> None:
    assert MAX_RETRIES == 7
    assert [retry_delay_seconds(k) for k in range(1, 8)] == [30, 60, 120, 300, 600, 1800, 3600]
    assert retry_delay_seconds(12) == RETRY_DELAYS[-1]


def test_add_to_retry_queue_schedules_each_retry_with_backoff(engine) -> None:
    post_id = _queued_post(engine)

    for attempt, delay in enumerate(RETRY_DELAYS, start=1):
        assert add_to_retry_queue(engine, post_id, f"HTTP 503 #{attempt}", now=T0)

        post = store.get_post(engine, post_id)
        assert post.status == "failed"
        assert post.retry_count == attempt
        assert store.as_utc(post.next_retry_at) == T0 + timedelta(seconds=delay)
        assert post.publisher_response == f"HTTP 503 #{attempt}"


def test_add_to_retry_queue_gives_up_after_max_retries(engine) -> None:
    post_id = _queued_post(engine)
    for _ in range(MAX_RETRIES):
        add_to_retry_queue(engine, post_id, "HTTP 500", now=T0)

    assert not add_to_retry_queue(engine, post_id, "HTTP 502", now=T0)

    post = store.get_post(engine, post_id)
    assert post.status == "permanently_failed"
    assert post.retry_count == MAX_RETRIES
    assert post.next_retry_at is None
    assert post.publisher_response == "Max retries (7) exceeded. Last error: HTTP 502"
    assert store.get_posts_due_for_retry(engine, now=T0 + timedelta(days=1)) == []


def test_add_to_retry_queue_ignores_missing_post(engine) -> None:
    assert not add_to_retry_queue(engine, 12345, "boom")


def test_retry_queue_status_counts(engine) -> None:
    waiting = _queued_post(engine)
    _queued_post(engine)
    add_to_retry_queue(engine, waiting, "HTTP 500", now=T0)

    status = get_retry_queue_status(engine)

    assert status.pending == 1
    assert status.awaiting_retry == 1
    assert status.permanently_failed == 0
    assert status.total == 2


def test_time_until_retry(engine) -> None:
    post_id = _queued_post(engine)
    assert time_until_retry(store.get_post(engine, post_id), now=T0) is None

    add_to_retry_queue(engine, post_id, "HTTP 500", now=T0)
    post = store.get_post(engine, post_id)

    assert time_until_retry(post, now=T0 + timedelta(seconds=10)) == 20.0
    assert time_until_retry(post, now=T0 + timedelta(minutes=5)) == 0.0


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(0, "0s"), (45, "45s"), (90, "1m"), (1800, "30m"), (3600, "1h"), (3900, "1h 5m")],
)
def test_format_retry_delay(seconds: int, expected: str) -> None:
    assert format_retry_delay(seconds) == expected
