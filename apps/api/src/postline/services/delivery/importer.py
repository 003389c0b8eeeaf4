"""Drives one operation: chunk, run the quality pipeline, persist, deliver, route failures.

Posts are processed and persisted in chunk order.  Rejected chunks are stored
as ``rejected`` and never delivered; delivery failures go to the retry queue.
The zero-chunk check lives here and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from time import sleep as _sleep
from typing import Callable

from sqlalchemy.engine import Engine

from postline.models import ClientRecord
from postline.services.delivery.publisher import PublisherClient
from postline.services.delivery.retry_scheduler import add_to_retry_queue
from postline.services.delivery.store import (
    OperationCounts,
    OperationStatus,
    OperationType,
    PostStatus,
    complete_operation,
    create_operation,
    create_post_record,
    fail_operation,
    mark_post_sent,
    update_operation_total,
    utcnow,
)
from postline.services.document_source import DocumentFetcher, DocumentFetchError
from postline.services.quality import PipelinePolicy, chunk_document, run_quality_pipeline

NO_POSTS_MESSAGE = "No posts found in document"
PREVIEW_LENGTH = 50


@dataclass(frozen=True)
class PostOutcome:
    index: int
    post_id: int
    status: PostStatus
    quality_score: int
    preview: str
    message: str | None
    corrections: list[str]


@dataclass(frozen=True)
class ImportSummary:
    operation_id: int
    status: OperationStatus
    total: int
    successful: int
    failed: int
    corrected: int
    rejected: int
    error_message: str | None
    outcomes: list[PostOutcome]


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH] + "..."


class PostImporter:
    def __init__(
        self,
        engine: Engine,
        publisher: PublisherClient,
        *,
        policy: PipelinePolicy | None = None,
        delay_seconds: float = 0.0,
        sleep: Callable[[float], None] = _sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._publisher = publisher
        self._policy = policy
        self._delay_seconds = delay_seconds
        self._sleep = sleep
        self._clock = clock

    def import_chunks(
        self,
        client: ClientRecord,
        chunks: list[str],
        *,
        operation_type: OperationType,
        source_url: str | None = None,
        scheduled_time: str | None = None,
    ) -> ImportSummary:
        operation_id = create_operation(
            self._engine, client.id, operation_type, source_url, now=self._clock()
        )
        return self._process(operation_id, client, chunks, scheduled_time=scheduled_time)

    def import_document(
        self,
        client: ClientRecord,
        document: str,
        *,
        operation_type: OperationType = "webhook",
        source_url: str | None = None,
        scheduled_time: str | None = None,
    ) -> ImportSummary:
        return self.import_chunks(
            client,
            chunk_document(document),
            operation_type=operation_type,
            source_url=source_url,
            scheduled_time=scheduled_time,
        )

    def import_document_from_url(
        self,
        client: ClientRecord,
        url: str,
        fetcher: DocumentFetcher,
    ) -> ImportSummary:
        operation_id = create_operation(
            self._engine, client.id, "google_doc", url, now=self._clock()
        )
        try:
            document = fetcher.fetch(url)
        except DocumentFetchError as exc:
            print(f"[importer] document fetch failed operation_id={operation_id} error={exc}", flush=True)
            return self._fail(operation_id, str(exc))

        return self._process(operation_id, client, chunk_document(document))

    def _fail(self, operation_id: int, message: str) -> ImportSummary:
        fail_operation(self._engine, operation_id, message, now=self._clock())
        return ImportSummary(
            operation_id=operation_id,
            status="failed",
            total=0,
            successful=0,
            failed=0,
            corrected=0,
            rejected=0,
            error_message=message,
            outcomes=[],
        )

    def _process(
        self,
        operation_id: int,
        client: ClientRecord,
        chunks: list[str],
        *,
        scheduled_time: str | None = None,
    ) -> ImportSummary:
        if not chunks:
            print(f"[importer] no chunks operation_id={operation_id}", flush=True)
            return self._fail(operation_id, NO_POSTS_MESSAGE)

        print(f"[importer] processing operation_id={operation_id} chunks={len(chunks)}", flush=True)

        successful = failed = corrected = rejected = 0
        outcomes: list[PostOutcome] = []
        delivered_any = False

        # Any store error past this point still leaves the operation in a terminal state.
        try:
            update_operation_total(self._engine, operation_id, len(chunks))
            for index, chunk in enumerate(chunks):
                result = run_quality_pipeline(chunk, self._policy)
                if result.corrections:
                    corrected += 1

                post_id = create_post_record(
                    self._engine,
                    operation_id,
                    client.id,
                    original_content=result.original_content,
                    processed_content=result.processed_content,
                    quality_score=result.quality_score,
                    issues=[issue.to_dict() for issue in result.all_issues],
                    corrections=result.corrections,
                    status="queued" if result.is_valid else "rejected",
                    scheduled_time=scheduled_time,
                    now=self._clock(),
                )

                if not result.is_valid:
                    rejected += 1
                    outcomes.append(
                        PostOutcome(
                            index=index,
                            post_id=post_id,
                            status="rejected",
                            quality_score=result.quality_score,
                            preview=_preview(result.original_content),
                            message=result.rejection_reason,
                            corrections=result.corrections,
                        )
                    )
                    continue

                if delivered_any and self._delay_seconds > 0:
                    self._sleep(self._delay_seconds)
                delivered_any = True

                status, message = self._deliver(post_id, result.processed_content, client, scheduled_time)
                if status == "sent":
                    successful += 1
                else:
                    failed += 1
                outcomes.append(
                    PostOutcome(
                        index=index,
                        post_id=post_id,
                        status=status,
                        quality_score=result.quality_score,
                        preview=_preview(result.processed_content),
                        message=message,
                        corrections=result.corrections,
                    )
                )
        except Exception as exc:
            print(f"[importer] aborted operation_id={operation_id} error={exc!r}", flush=True)
            fail_operation(
                self._engine,
                operation_id,
                f"Import aborted: {exc}",
                counts=OperationCounts(
                    successful=successful,
                    failed=failed,
                    corrected=corrected,
                    rejected=rejected,
                ),
                now=self._clock(),
            )
            raise

        counts = OperationCounts(
            successful=successful,
            failed=failed,
            corrected=corrected,
            rejected=rejected,
        )
        status = complete_operation(self._engine, operation_id, counts, now=self._clock())
        print(
            f"[importer] completed operation_id={operation_id} status={status} "
            f"sent={successful} failed={failed} rejected={rejected} corrected={corrected}",
            flush=True,
        )

        return ImportSummary(
            operation_id=operation_id,
            status=status,
            total=len(chunks),
            successful=successful,
            failed=failed,
            corrected=corrected,
            rejected=rejected,
            error_message=None,
            outcomes=outcomes,
        )

    def _deliver(
        self,
        post_id: int,
        text: str,
        client: ClientRecord,
        scheduled_time: str | None,
    ) -> tuple[PostStatus, str | None]:
        try:
            result = self._publisher.deliver(
                text,
                api_key=client.api_key,
                scheduled_time=scheduled_time,
            )
        except Exception as exc:
            message = f"Exception: {exc}"
            add_to_retry_queue(self._engine, post_id, message, now=self._clock())
            return "failed", message

        if result.ok:
            mark_post_sent(self._engine, post_id, result.body or "Success", now=self._clock())
            return "sent", "Added to queue"

        message = result.failure_detail()
        add_to_retry_queue(self._engine, post_id, message, now=self._clock())
        return "failed", message
