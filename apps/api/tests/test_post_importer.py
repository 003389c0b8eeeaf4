from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from postline.services.delivery import store
from postline.services.delivery import importer
from postline.services.delivery.importer import NO_POSTS_MESSAGE, PostImporter
from postline.services.delivery.publisher import DeliveryResult
from postline.services.document_source import DocumentFetchError

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class _FakePublisher:
    def __init__(self, status_codes: list[int]) -> None:
        self._status_codes = list(status_codes)
        self.delivered: list[tuple[str, str | None]] = []

    def deliver(self, text: str, *, api_key: str, scheduled_time: str | None = None) -> DeliveryResult:
        self.delivered.append((text, scheduled_time))
        return DeliveryResult(status_code=self._status_codes.pop(0), body=None)

    def authenticate(self, *, api_key: str) -> DeliveryResult:
        return DeliveryResult(status_code=200, body=None)


class _FakeFetcher:
    def __init__(self, document: str | None = None, error: str | None = None) -> None:
        self._document = document
        self._error = error

    def fetch(self, url: str) -> str:
        if self._error is not None:
            raise DocumentFetchError(self._error)
        return self._document or ""


def _importer(engine, publisher, sleeps=None) -> PostImporter:
    return PostImporter(
        engine,
        publisher,
        delay_seconds=0.5,
        sleep=(sleeps if sleeps is not None else []).append,
        clock=lambda: T0,
    )


def test_import_chunks_tracks_mixed_outcomes(engine) -> None:
    client = store.create_client(engine, "Acme", "key-12345678")
    publisher = _FakePublisher([200, 500])
    sleeps: list[float] = []

    summary = _importer(engine, publisher, sleeps).import_chunks(
        client,
        ["Day 1:\nHello world, this is a real post.", "---", "Another valid post right here."],
        operation_type="bulk",
        scheduled_time="2026-03-02T09:00:00Z",
    )

    assert summary.status == "partial"
    assert (summary.total, summary.successful, summary.failed, summary.rejected) == (3, 1, 1, 1)
    assert summary.successful + summary.failed + summary.rejected == summary.total
    assert summary.corrected == 1
    assert [outcome.status for outcome in summary.outcomes] == ["sent", "rejected", "failed"]
    assert summary.outcomes[0].message == "Added to queue"
    assert summary.outcomes[2].message == "HTTP 500"
    assert publisher.delivered == [
        ("Hello world, this is a real post.", "2026-03-02T09:00:00Z"),
        ("Another valid post right here.", "2026-03-02T09:00:00Z"),
    ]
    assert sleeps == [0.5]

    operation = store.get_operation(engine, summary.operation_id)
    assert operation.status == "partial"
    assert operation.total_posts == 3
    assert operation.corrected_posts == 1

    posts = store.list_posts_for_operation(engine, summary.operation_id)
    assert [post.status for post in posts] == ["sent", "rejected", "failed"]
    assert posts[0].corrections_applied == ['Removed "Day X:" header(s)']
    assert posts[1].issues_detected[0]["code"] == "GARBAGE_CONTENT"
    assert posts[2].retry_count == 1
    assert posts[2].scheduled_time == "2026-03-02T09:00:00Z"
    assert store.as_utc(posts[2].next_retry_at) is not None


def test_import_document_without_posts_fails_operation(engine) -> None:
    client = store.create_client(engine, "Acme", "key-12345678")
    publisher = _FakePublisher([])

    summary = _importer(engine, publisher).import_document(client, "___\n—\n___")

    assert summary.status == "failed"
    assert summary.total == 0
    assert summary.error_message == NO_POSTS_MESSAGE
    operation = store.get_operation(engine, summary.operation_id)
    assert operation.status == "failed"
    assert operation.operation_type == "webhook"
    assert operation.error_message == NO_POSTS_MESSAGE
    assert publisher.delivered == []


def test_import_document_from_url_records_fetch_failure(engine) -> None:
    client = store.create_client(engine, "Acme", "key-12345678")
    url = "https://docs.google.com/document/d/abc123/edit"
    fetcher = _FakeFetcher(error="Google Doc not found. Make sure the document exists and is publicly shared.")

    summary = _importer(engine, _FakePublisher([])).import_document_from_url(client, url, fetcher)

    operation = store.get_operation(engine, summary.operation_id)
    assert summary.status == "failed"
    assert operation.operation_type == "google_doc"
    assert operation.source_url == url
    assert operation.error_message.startswith("Google Doc not found")


def test_import_document_from_url_delivers_every_post(engine) -> None:
    client = store.create_client(engine, "Acme", "key-12345678")
    fetcher = _FakeFetcher(document="First post from the doc\n—\nSecond post from the doc\n")
    publisher = _FakePublisher([200, 200])

    summary = _importer(engine, publisher).import_document_from_url(
        client, "https://docs.google.com/document/d/abc123/edit", fetcher
    )

    assert summary.status == "completed"
    assert summary.successful == 2
    assert [text for text, _ in publisher.delivered] == [
        "First post from the doc",
        "Second post from the doc",
    ]


def test_all_rejected_operation_is_failed(engine) -> None:
    client = store.create_client(engine, "Acme", "key-12345678")

    summary = _importer(engine, _FakePublisher([])).import_chunks(
        client, ["---", "Hi"], operation_type="bulk"
    )

    assert summary.status == "failed"
    assert summary.rejected == 2
    assert summary.error_message is None


def test_store_error_mid_import_leaves_operation_failed(engine, monkeypatch: pytest.MonkeyPatch) -> None:
    client = store.create_client(engine, "Acme", "key-12345678")
    create_post_record = importer.create_post_record
    calls: list[int] = []

    def flaky_create_post_record(*args, **kwargs) -> int:
        calls.append(1)
        if len(calls) == 2:
            raise OperationalError("INSERT INTO posts", {}, Exception("database is locked"))
        return create_post_record(*args, **kwargs)

    monkeypatch.setattr("postline.services.delivery.importer.create_post_record", flaky_create_post_record)
    publisher = _FakePublisher([200])

    with pytest.raises(OperationalError):
        _importer(engine, publisher).import_chunks(
            client,
            ["Hello world, this is a real post.", "Another valid post right here."],
            operation_type="bulk",
        )

    operations = store.list_recent_operations(engine)
    assert len(operations) == 1
    operation = operations[0]
    assert operation.status == "failed"
    assert operation.total_posts == 2
    assert operation.successful_posts == 1
    assert store.as_utc(operation.completed_at) == T0
    assert operation.error_message.startswith("Import aborted:")
    assert "database is locked" in operation.error_message
