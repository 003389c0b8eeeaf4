from dataclasses import asdict
from datetime import datetime
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator

from postline.config import get_settings
from postline.db import create_schema, get_engine, is_sqlite
from postline.models import ClientRecord, OperationRecord, PostRecord
from postline.services.delivery import store
from postline.services.delivery.importer import ImportSummary, PostImporter
from postline.services.delivery.publisher import (
    HttpPublisherClient,
    PublisherClient,
    PublisherClientError,
)
from postline.services.delivery.retry_scheduler import format_retry_delay, time_until_retry
from postline.services.delivery.retry_worker import RetryWorker
from postline.services.document_source import DocumentFetcher, GoogleDocFetcher
from postline.services.quality import PipelinePolicy, process_document

app = FastAPI(title="Postline API", version="0.1.0")


class ClientCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    api_key: str = Field(min_length=1)


class PreviewRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: str


class ScheduleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    client_id: int
    content: str | None = None
    posts: list[str] | None = None
    scheduled_time: str | None = None

    @model_validator(mode="after")
    def _require_content_or_posts(self) -> "ScheduleRequest":
        if self.content is None and not self.posts:
            raise ValueError("either content or posts is required")
        return self


class DocumentScheduleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    client_id: int
    url: str = Field(min_length=1)


def get_publisher_client() -> PublisherClient:
    settings = get_settings()
    return HttpPublisherClient(
        base_url=settings.publisher_base_url,
        partner_key=settings.publisher_partner_key,
        timeout_seconds=settings.publisher_timeout_seconds,
    )


def get_document_fetcher() -> DocumentFetcher:
    return GoogleDocFetcher(timeout_seconds=get_settings().document_fetch_timeout_seconds)


def get_pipeline_policy() -> PipelinePolicy:
    return PipelinePolicy.from_settings(get_settings())


def build_retry_worker(publisher: PublisherClient) -> RetryWorker:
    settings = get_settings()
    return RetryWorker(
        get_engine(),
        publisher,
        interval_seconds=settings.retry_worker_interval_seconds,
        batch_size=settings.retry_worker_batch_size,
        delay_between_posts_seconds=settings.retry_worker_delay_seconds,
    )


def get_retry_worker(request: Request) -> RetryWorker:
    return request.app.state.retry_worker


@app.on_event("startup")
def startup() -> None:
    engine = get_engine()
    if is_sqlite(engine):
        create_schema(engine)

    worker = build_retry_worker(get_publisher_client())
    app.state.retry_worker = worker
    if get_settings().retry_worker_enabled:
        worker.start()


@app.on_event("shutdown")
def shutdown() -> None:
    worker = getattr(app.state, "retry_worker", None)
    if worker is not None:
        worker.stop()


def _to_iso(value: datetime | None) -> str | None:
    value = store.as_utc(value)
    if value is None:
        return None
    return value.isoformat()


def _client_summary(client: ClientRecord) -> dict[str, Any]:
    return {
        "id": client.id,
        "name": client.name,
        "api_key": store.mask_api_key(client.api_key),
        "created_at": _to_iso(client.created_at),
    }


def _operation_summary(operation: OperationRecord) -> dict[str, Any]:
    return {
        "id": operation.id,
        "client_id": operation.client_id,
        "operation_type": operation.operation_type,
        "source_url": operation.source_url,
        "total_posts": operation.total_posts,
        "successful_posts": operation.successful_posts,
        "failed_posts": operation.failed_posts,
        "corrected_posts": operation.corrected_posts,
        "rejected_posts": operation.rejected_posts,
        "status": operation.status,
        "error_message": operation.error_message,
        "started_at": _to_iso(operation.started_at),
        "completed_at": _to_iso(operation.completed_at),
    }


def _post_detail(post: PostRecord) -> dict[str, Any]:
    retry_in = time_until_retry(post)
    return {
        "id": post.id,
        "operation_id": post.operation_id,
        "client_id": post.client_id,
        "original_content": post.original_content,
        "processed_content": post.processed_content,
        "quality_score": post.quality_score,
        "issues_detected": post.issues_detected,
        "corrections_applied": post.corrections_applied,
        "scheduled_time": post.scheduled_time,
        "status": post.status,
        "publisher_response": post.publisher_response,
        "retry_count": post.retry_count,
        "next_retry_at": _to_iso(post.next_retry_at),
        "retry_in": format_retry_delay(retry_in) if retry_in is not None else None,
        "created_at": _to_iso(post.created_at),
        "sent_at": _to_iso(post.sent_at),
    }


def _import_response(summary: ImportSummary) -> JSONResponse:
    body = asdict(summary)
    status_code = 400 if summary.status == "failed" and summary.total == 0 else 200
    return JSONResponse(status_code=status_code, content=body)


def _require_client(client_id: int) -> ClientRecord:
    client = store.get_client(get_engine(), client_id)
    if client is None:
        raise HTTPException(status_code=404, detail="client not found")
    return client


def _importer(publisher: PublisherClient, policy: PipelinePolicy) -> PostImporter:
    return PostImporter(
        get_engine(),
        publisher,
        policy=policy,
        delay_seconds=get_settings().delivery_delay_seconds,
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/clients")
def list_clients() -> list[dict[str, Any]]:
    return [_client_summary(client) for client in store.list_clients(get_engine())]


@app.post("/clients", status_code=201)
def create_client(request: ClientCreateRequest) -> dict[str, Any]:
    try:
        client = store.create_client(get_engine(), request.name, request.api_key)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _client_summary(client)


@app.get("/clients/{client_id}/stats")
def client_stats(client_id: int) -> dict[str, Any]:
    client = _require_client(client_id)
    return {"client_id": client.id, **asdict(store.get_client_stats(get_engine(), client.id))}


@app.post("/clients/{client_id}/validate")
def validate_client(
    client_id: int,
    publisher: Annotated[PublisherClient, Depends(get_publisher_client)],
) -> dict[str, Any]:
    client = _require_client(client_id)
    try:
        result = publisher.authenticate(api_key=client.api_key)
    except PublisherClientError as exc:
        raise HTTPException(status_code=502, detail=f"Publisher request failed: {exc}") from exc

    # 409 means the key is already linked, which is still a working key.
    return {
        "client_id": client.id,
        "valid": result.ok or result.status_code == 409,
        "status_code": result.status_code,
    }


@app.post("/pipeline/preview")
def preview_pipeline(
    request: PreviewRequest,
    policy: Annotated[PipelinePolicy, Depends(get_pipeline_policy)],
) -> dict[str, Any]:
    report = process_document(request.content, policy)
    return {
        "chunks": report.chunks,
        "results": [result.to_dict() for result in report.results],
        "summary": asdict(report.summary),
    }


@app.post("/schedule")
def schedule_posts(
    request: ScheduleRequest,
    publisher: Annotated[PublisherClient, Depends(get_publisher_client)],
    policy: Annotated[PipelinePolicy, Depends(get_pipeline_policy)],
) -> JSONResponse:
    client = _require_client(request.client_id)
    importer = _importer(publisher, policy)

    if request.posts:
        chunks = [post.strip() for post in request.posts if post.strip()]
        summary = importer.import_chunks(
            client,
            chunks,
            operation_type="bulk" if len(request.posts) > 1 else "single",
            scheduled_time=request.scheduled_time,
        )
    else:
        summary = importer.import_document(
            client,
            request.content or "",
            operation_type="webhook",
            scheduled_time=request.scheduled_time,
        )
    return _import_response(summary)


@app.post("/schedule/document")
def schedule_document(
    request: DocumentScheduleRequest,
    publisher: Annotated[PublisherClient, Depends(get_publisher_client)],
    fetcher: Annotated[DocumentFetcher, Depends(get_document_fetcher)],
    policy: Annotated[PipelinePolicy, Depends(get_pipeline_policy)],
) -> JSONResponse:
    client = _require_client(request.client_id)
    summary = _importer(publisher, policy).import_document_from_url(client, request.url, fetcher)
    return _import_response(summary)


@app.get("/operations")
def list_operations(
    client_id: int | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=200),
) -> list[dict[str, Any]]:
    operations = store.list_recent_operations(get_engine(), limit=limit, client_id=client_id)
    return [_operation_summary(operation) for operation in operations]


@app.get("/operations/{operation_id}")
def get_operation(operation_id: int) -> dict[str, Any]:
    engine = get_engine()
    operation = store.get_operation(engine, operation_id)
    if operation is None:
        raise HTTPException(status_code=404, detail="operation not found")

    detail = _operation_summary(operation)
    detail["posts"] = [_post_detail(post) for post in store.list_posts_for_operation(engine, operation_id)]
    return detail


@app.get("/posts/{post_id}")
def get_post(post_id: int) -> dict[str, Any]:
    post = store.get_post(get_engine(), post_id)
    if post is None:
        raise HTTPException(status_code=404, detail="post not found")
    return _post_detail(post)


@app.get("/queue/status")
def queue_status(worker: Annotated[RetryWorker, Depends(get_retry_worker)]) -> dict[str, Any]:
    return asdict(worker.status().queue)


@app.get("/system/health")
def system_health() -> dict[str, Any]:
    health_summary = store.get_system_health(
        get_engine(),
        window_hours=get_settings().health_window_hours,
    )
    body = asdict(health_summary)
    body["last_updated"] = _to_iso(health_summary.last_updated)
    return body


@app.get("/retry/status")
def retry_status(worker: Annotated[RetryWorker, Depends(get_retry_worker)]) -> dict[str, Any]:
    return asdict(worker.status())


@app.post("/retry/trigger", status_code=202)
def trigger_retry(worker: Annotated[RetryWorker, Depends(get_retry_worker)]) -> dict[str, Any]:
    processed = worker.trigger_now()
    return {"running": worker.is_running(), "processed": processed}


def run() -> None:
    import uvicorn

    uvicorn.run("postline.main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    run()
