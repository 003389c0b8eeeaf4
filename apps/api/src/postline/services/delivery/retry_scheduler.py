"""Exponential backoff bookkeeping for failed deliveries.

``add_to_retry_queue`` is the only place that grows ``retry_count`` or moves a
post to ``permanently_failed``; delivery call sites just report the failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.engine import Engine

from postline.models import PostRecord
from postline.services.delivery.store import (
    as_utc,
    get_post,
    get_queue_status,
    mark_post_failed,
    mark_post_permanently_failed,
    utcnow,
)

RETRY_DELAYS: tuple[int, ...] = (30, 60, 120, 300, 600, 1800, 3600)
MAX_RETRIES = len(RETRY_DELAYS)


@dataclass(frozen=True)
class RetryQueueStatus:
    pending: int
    awaiting_retry: int
    permanently_failed: int
    total: int


def retry_delay_seconds(retry_number: int) -> int:
    """Delay before the ``retry_number``-th retry (1-based)."""
    index = min(max(retry_number, 1) - 1, len(RETRY_DELAYS) - 1)
    return RETRY_DELAYS[index]


def add_to_retry_queue(
    engine: Engine,
    post_id: int,
    error_message: str,
    *,
    now: datetime | None = None,
) -> bool:
    post = get_post(engine, post_id)
    if post is None:
        print(f"[retry-queue] post not found post_id={post_id}", flush=True)
        return False

    new_retry_count = post.retry_count + 1
    if new_retry_count > MAX_RETRIES:
        mark_post_permanently_failed(
            engine,
            post_id,
            f"Max retries ({MAX_RETRIES}) exceeded. Last error: {error_message}",
        )
        print(
            f"[retry-queue] post permanently failed post_id={post_id} max_retries={MAX_RETRIES}",
            flush=True,
        )
        return False

    delay = retry_delay_seconds(new_retry_count)
    next_retry_at = (now or utcnow()) + timedelta(seconds=delay)
    mark_post_failed(engine, post_id, error_message, next_retry_at)
    print(
        f"[retry-queue] post queued post_id={post_id} retry={new_retry_count}/{MAX_RETRIES} "
        f"delay={delay}s next_retry_at={next_retry_at.isoformat()}",
        flush=True,
    )
    return True


def get_retry_queue_status(engine: Engine) -> RetryQueueStatus:
    status = get_queue_status(engine)
    return RetryQueueStatus(
        pending=status.pending,
        awaiting_retry=status.failed,
        permanently_failed=status.permanently_failed,
        total=status.pending + status.failed + status.permanently_failed,
    )


def time_until_retry(post: PostRecord, *, now: datetime | None = None) -> float | None:
    """Seconds until the post's next retry, or ``None`` if it is not awaiting one."""
    next_retry_at = as_utc(post.next_retry_at)
    if post.status != "failed" or next_retry_at is None:
        return None
    remaining = (next_retry_at - (now or utcnow())).total_seconds()
    return max(0.0, remaining)


def format_retry_delay(seconds: float) -> str:
    whole_seconds = int(seconds)
    if whole_seconds < 60:
        return f"{whole_seconds}s"

    minutes = whole_seconds // 60
    if minutes < 60:
        return f"{minutes}m"

    hours, remaining_minutes = divmod(minutes, 60)
    if remaining_minutes > 0:
        return f"{hours}h {remaining_minutes}m"
    return f"{hours}h"
