"""Persisted operation, post and client records.

Every function takes the engine explicitly so the API process, the worker
process and tests can each point at their own database.  Timestamps default to
the current UTC time and can be pinned with ``now``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from postline.models import ClientRecord, OperationRecord, PostRecord

OperationType = Literal["google_doc", "webhook", "bulk", "single", "retry"]
OperationStatus = Literal["pending", "processing", "completed", "partial", "failed"]
PostStatus = Literal["queued", "sent", "failed", "retrying", "rejected", "permanently_failed"]
HealthStatus = Literal["healthy", "degraded", "down"]


class RecordNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class OperationCounts:
    successful: int
    failed: int
    corrected: int
    rejected: int


@dataclass(frozen=True)
class QueueStatus:
    pending: int
    failed: int
    permanently_failed: int


@dataclass(frozen=True)
class SystemHealth:
    status: HealthStatus
    success_rate: float
    total_operations: int
    avg_quality_score: float
    posts_corrected: int
    posts_rejected: int
    queue_size: int
    last_updated: datetime


@dataclass(frozen=True)
class ClientStats:
    total_operations: int
    total_posts: int
    success_rate: float
    avg_quality_score: float


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def derive_operation_status(counts: OperationCounts) -> OperationStatus:
    if counts.failed == 0 and counts.rejected == 0:
        return "completed"
    return "partial" if counts.successful > 0 else "failed"


def mask_api_key(api_key: str) -> str:
    if len(api_key) <= 4:
        return "****"
    return "****" + api_key[-4:]


def create_client(engine: Engine, name: str, api_key: str, *, now: datetime | None = None) -> ClientRecord:
    trimmed_name = name.strip()
    trimmed_key = api_key.strip()
    if not trimmed_name:
        raise ValueError("Client name is required")
    if not trimmed_key:
        raise ValueError("API key is required")

    timestamp = now or utcnow()
    with Session(engine, expire_on_commit=False) as session:
        existing = session.scalar(select(ClientRecord).where(ClientRecord.name == trimmed_name))
        if existing is not None:
            raise ValueError("A client with this name already exists")

        client = ClientRecord(
            name=trimmed_name,
            api_key=trimmed_key,
            created_at=timestamp,
            updated_at=timestamp,
        )
        session.add(client)
        session.commit()
    return client


def get_client(engine: Engine, client_id: int) -> ClientRecord | None:
    with Session(engine) as session:
        return session.get(ClientRecord, client_id)


def list_clients(engine: Engine) -> Sequence[ClientRecord]:
    with Session(engine) as session:
        return session.scalars(select(ClientRecord).order_by(ClientRecord.name.asc())).all()


def create_operation(
    engine: Engine,
    client_id: int,
    operation_type: OperationType,
    source_url: str | None = None,
    *,
    now: datetime | None = None,
) -> int:
    with Session(engine) as session:
        operation = OperationRecord(
            client_id=client_id,
            operation_type=operation_type,
            source_url=source_url,
            total_posts=0,
            status="processing",
            started_at=now or utcnow(),
        )
        session.add(operation)
        session.commit()
        return operation.id


def _load_operation(session: Session, operation_id: int) -> OperationRecord:
    operation = session.get(OperationRecord, operation_id)
    if operation is None:
        raise RecordNotFoundError(f"operation {operation_id} not found")
    return operation


def update_operation_total(engine: Engine, operation_id: int, total: int) -> None:
    with Session(engine) as session:
        operation = _load_operation(session, operation_id)
        operation.total_posts = total
        session.commit()


def complete_operation(
    engine: Engine,
    operation_id: int,
    counts: OperationCounts,
    *,
    now: datetime | None = None,
) -> OperationStatus:
    status = derive_operation_status(counts)
    with Session(engine) as session:
        operation = _load_operation(session, operation_id)
        operation.successful_posts = counts.successful
        operation.failed_posts = counts.failed
        operation.corrected_posts = counts.corrected
        operation.rejected_posts = counts.rejected
        operation.status = status
        operation.completed_at = now or utcnow()
        session.commit()
    return status


def fail_operation(
    engine: Engine,
    operation_id: int,
    error_message: str,
    *,
    counts: OperationCounts | None = None,
    now: datetime | None = None,
) -> None:
    with Session(engine) as session:
        operation = _load_operation(session, operation_id)
        if counts is not None:
            operation.successful_posts = counts.successful
            operation.failed_posts = counts.failed
            operation.corrected_posts = counts.corrected
            operation.rejected_posts = counts.rejected
        operation.status = "failed"
        operation.error_message = error_message
        operation.completed_at = now or utcnow()
        session.commit()


def get_operation(engine: Engine, operation_id: int) -> OperationRecord | None:
    with Session(engine) as session:
        return session.get(OperationRecord, operation_id)


def list_recent_operations(
    engine: Engine,
    *,
    limit: int = 20,
    client_id: int | None = None,
) -> Sequence[OperationRecord]:
    stmt = select(OperationRecord)
    if client_id is not None:
        stmt = stmt.where(OperationRecord.client_id == client_id)
    stmt = stmt.order_by(OperationRecord.started_at.desc(), OperationRecord.id.desc()).limit(limit)

    with Session(engine) as session:
        return session.scalars(stmt).all()


def create_post_record(
    engine: Engine,
    operation_id: int,
    client_id: int,
    *,
    original_content: str,
    processed_content: str,
    quality_score: int,
    issues: list[dict[str, Any]],
    corrections: list[str],
    status: PostStatus,
    scheduled_time: str | None = None,
    now: datetime | None = None,
) -> int:
    with Session(engine) as session:
        post = PostRecord(
            operation_id=operation_id,
            client_id=client_id,
            original_content=original_content,
            processed_content=processed_content,
            quality_score=quality_score,
            issues_detected=issues,
            corrections_applied=corrections,
            scheduled_time=scheduled_time,
            status=status,
            retry_count=0,
            created_at=now or utcnow(),
        )
        session.add(post)
        session.commit()
        return post.id


def _load_post(session: Session, post_id: int) -> PostRecord:
    post = session.get(PostRecord, post_id)
    if post is None:
        raise RecordNotFoundError(f"post {post_id} not found")
    return post


def mark_post_sent(engine: Engine, post_id: int, response: str, *, now: datetime | None = None) -> None:
    with Session(engine) as session:
        post = _load_post(session, post_id)
        post.status = "sent"
        post.sent_at = now or utcnow()
        post.next_retry_at = None
        post.publisher_response = response
        session.commit()


def mark_post_failed(engine: Engine, post_id: int, error_message: str, next_retry_at: datetime) -> None:
    with Session(engine) as session:
        post = _load_post(session, post_id)
        post.status = "failed"
        post.retry_count = post.retry_count + 1
        post.next_retry_at = next_retry_at
        post.publisher_response = error_message
        session.commit()


def mark_post_permanently_failed(engine: Engine, post_id: int, error_message: str) -> None:
    with Session(engine) as session:
        post = _load_post(session, post_id)
        post.status = "permanently_failed"
        post.next_retry_at = None
        post.publisher_response = error_message
        session.commit()


def get_post(engine: Engine, post_id: int) -> PostRecord | None:
    with Session(engine) as session:
        return session.get(PostRecord, post_id)


def list_posts_for_operation(engine: Engine, operation_id: int) -> Sequence[PostRecord]:
    with Session(engine) as session:
        return session.scalars(
            select(PostRecord)
            .where(PostRecord.operation_id == operation_id)
            .order_by(PostRecord.id.asc())
        ).all()


def get_posts_due_for_retry(
    engine: Engine,
    *,
    limit: int = 10,
    now: datetime | None = None,
) -> Sequence[PostRecord]:
    with Session(engine) as session:
        return session.scalars(
            select(PostRecord)
            .where(PostRecord.status == "failed")
            .where(PostRecord.next_retry_at <= (now or utcnow()))
            .order_by(PostRecord.next_retry_at.asc(), PostRecord.id.asc())
            .limit(limit)
        ).all()


def claim_posts_due_for_retry(
    engine: Engine,
    *,
    limit: int = 10,
    now: datetime | None = None,
    lease_seconds: int = 300,
) -> list[PostRecord]:
    """Flip due posts to ``retrying`` so no other worker picks them up.

    The claim pushes ``next_retry_at`` out by ``lease_seconds``; a claim left
    behind by a crashed worker becomes due again once that lease runs out.
    """
    current = now or utcnow()
    due = PostRecord.status.in_(["failed", "retrying"]) & (PostRecord.next_retry_at <= current)

    stmt = (
        select(PostRecord.id)
        .where(due)
        .order_by(PostRecord.next_retry_at.asc(), PostRecord.id.asc())
        .limit(limit)
    )
    if engine.dialect.name == "postgresql":
        stmt = stmt.with_for_update(skip_locked=True)

    with Session(engine, expire_on_commit=False) as session:
        claimed_ids: list[int] = []
        for post_id in session.scalars(stmt).all():
            claimed = session.execute(
                update(PostRecord)
                .where(PostRecord.id == post_id)
                .where(due)
                .values(status="retrying", next_retry_at=current + timedelta(seconds=lease_seconds))
            )
            if claimed.rowcount == 1:
                claimed_ids.append(post_id)
        session.commit()

        if not claimed_ids:
            return []
        posts = session.scalars(select(PostRecord).where(PostRecord.id.in_(claimed_ids))).all()
    return sorted(posts, key=lambda post: claimed_ids.index(post.id))


def release_post_claim(engine: Engine, post_id: int, *, now: datetime | None = None) -> None:
    """Hand a claimed post back to the queue without counting an attempt."""
    with Session(engine) as session:
        session.execute(
            update(PostRecord)
            .where(PostRecord.id == post_id)
            .where(PostRecord.status == "retrying")
            .values(status="failed", next_retry_at=now or utcnow())
        )
        session.commit()


def get_queue_status(engine: Engine) -> QueueStatus:
    with Session(engine) as session:
        rows = session.execute(
            select(PostRecord.status, func.count(PostRecord.id))
            .where(PostRecord.status.in_(["queued", "failed", "retrying", "permanently_failed"]))
            .group_by(PostRecord.status)
        ).all()

    counts = {status: int(count) for status, count in rows}
    return QueueStatus(
        pending=counts.get("queued", 0),
        failed=counts.get("failed", 0) + counts.get("retrying", 0),
        permanently_failed=counts.get("permanently_failed", 0),
    )


def _health_status(success_rate: float, queue_size: int) -> HealthStatus:
    if success_rate < 0.7 or queue_size > 50:
        return "down"
    if success_rate < 0.9 or queue_size > 10:
        return "degraded"
    return "healthy"


def get_system_health(
    engine: Engine,
    *,
    window_hours: int = 24,
    now: datetime | None = None,
) -> SystemHealth:
    """Rolling summary for dashboards; nothing in the delivery path reads it."""
    current = now or utcnow()
    since = current - timedelta(hours=window_hours)

    with Session(engine) as session:
        operation_statuses = session.scalars(
            select(OperationRecord.status).where(OperationRecord.started_at >= since)
        ).all()
        post_rows = session.execute(
            select(PostRecord.quality_score, PostRecord.corrections_applied, PostRecord.status)
            .where(PostRecord.created_at >= since)
        ).all()

    total_operations = len(operation_statuses)
    completed = sum(1 for status in operation_statuses if status == "completed")
    success_rate = completed / total_operations if total_operations > 0 else 1.0

    scores = [int(score) for score, _, _ in post_rows]
    avg_quality_score = sum(scores) / len(scores) if scores else 0.0
    posts_corrected = sum(1 for _, corrections, _ in post_rows if corrections)
    posts_rejected = sum(1 for _, _, status in post_rows if status == "rejected")

    queue = get_queue_status(engine)
    queue_size = queue.pending + queue.failed

    return SystemHealth(
        status=_health_status(success_rate, queue_size),
        success_rate=success_rate,
        total_operations=total_operations,
        avg_quality_score=avg_quality_score,
        posts_corrected=posts_corrected,
        posts_rejected=posts_rejected,
        queue_size=queue_size,
        last_updated=current,
    )


def get_client_stats(engine: Engine, client_id: int) -> ClientStats:
    with Session(engine) as session:
        total_operations = session.scalar(
            select(func.count(OperationRecord.id)).where(OperationRecord.client_id == client_id)
        ) or 0
        total_posts = session.scalar(
            select(func.count(PostRecord.id)).where(PostRecord.client_id == client_id)
        ) or 0
        sent_posts = session.scalar(
            select(func.count(PostRecord.id))
            .where(PostRecord.client_id == client_id)
            .where(PostRecord.status == "sent")
        ) or 0
        avg_score = session.scalar(
            select(func.avg(PostRecord.quality_score)).where(PostRecord.client_id == client_id)
        )

    return ClientStats(
        total_operations=int(total_operations),
        total_posts=int(total_posts),
        success_rate=sent_posts / total_posts if total_posts > 0 else 1.0,
        avg_quality_score=float(avg_score or 0.0),
    )
