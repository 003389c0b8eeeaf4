from fastapi.testclient import TestClient

from postline.main import app, get_document_fetcher, get_publisher_client
from postline.services.delivery.publisher import DeliveryResult
from postline.services.document_source import DocumentFetchError

DOCUMENT = "Day 1:\nHello world, this is a real post.\n___\n— \nAnother valid post right here."


class _FakePublisher:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.delivered: list[str] = []

    def deliver(self, text: str, *, api_key: str, scheduled_time: str | None = None) -> DeliveryResult:
        self.delivered.append(text)
        return DeliveryResult(status_code=self.status_code, body=None)

    def authenticate(self, *, api_key: str) -> DeliveryResult:
        return DeliveryResult(status_code=self.status_code, body=None)


class _FakeFetcher:
    def __init__(self, document: str | None) -> None:
        self._document = document

    def fetch(self, url: str) -> str:
        if self._document is None:
            raise DocumentFetchError("Cannot access Google Doc. Make sure the document is publicly shared.")
        return self._document


def _use_publisher(publisher: _FakePublisher) -> _FakePublisher:
    app.dependency_overrides[get_publisher_client] = lambda: publisher
    return publisher


def _create_client(client: TestClient, name: str = "Acme") -> int:
    response = client.post("/clients", json={"name": name, "api_key": "key-12345678"})
    assert response.status_code == 201
    return response.json()["id"]


def test_health_returns_ok(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_and_list_clients_masks_keys(client: TestClient) -> None:
    response = client.post("/clients", json={"name": "Acme", "api_key": "key-12345678"})

    assert response.status_code == 201
    assert response.json()["api_key"] == "****5678"

    duplicate = client.post("/clients", json={"name": "Acme", "api_key": "other"})
    assert duplicate.status_code == 400

    listed = client.get("/clients")
    assert [item["name"] for item in listed.json()] == ["Acme"]
    assert listed.json()[0]["api_key"] == "****5678"


def test_validate_client_accepts_already_linked_key(client: TestClient) -> None:
    _use_publisher(_FakePublisher(status_code=409))
    client_id = _create_client(client)

    response = client.post(f"/clients/{client_id}/validate")

    assert response.status_code == 200
    assert response.json() == {"client_id": client_id, "valid": True, "status_code": 409}


def test_preview_runs_pipeline_without_delivery(client: TestClient) -> None:
    publisher = _use_publisher(_FakePublisher())

    response = client.post("/pipeline/preview", json={"content": DOCUMENT})

    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["total"] == 2
    assert body["summary"]["valid"] == 2
    assert body["results"][0]["processed_content"] == "Hello world, this is a real post."
    assert body["results"][0]["stage"] == "complete"
    assert publisher.delivered == []


def test_schedule_document_content_creates_tracked_operation(client: TestClient) -> None:
    publisher = _use_publisher(_FakePublisher())
    client_id = _create_client(client)

    response = client.post("/schedule", json={"client_id": client_id, "content": DOCUMENT})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["successful"] == 2
    assert publisher.delivered == ["Hello world, this is a real post.", "Another valid post right here."]

    operations = client.get("/operations").json()
    assert [item["id"] for item in operations] == [body["operation_id"]]
    assert operations[0]["operation_type"] == "webhook"

    detail = client.get(f"/operations/{body['operation_id']}").json()
    assert [post["status"] for post in detail["posts"]] == ["sent", "sent"]

    post = client.get(f"/posts/{detail['posts'][0]['id']}").json()
    assert post["corrections_applied"] == ['Removed "Day X:" header(s)']


def test_schedule_failed_delivery_lands_in_retry_queue(client: TestClient) -> None:
    _use_publisher(_FakePublisher(status_code=503))
    client_id = _create_client(client)

    response = client.post(
        "/schedule",
        json={"client_id": client_id, "posts": ["A post that will fail to send"]},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["failed"] == 1

    retry_status = client.get("/retry/status").json()
    assert retry_status["running"] is False
    assert retry_status["queue"]["awaiting_retry"] == 1

    queue = client.get("/queue/status").json()
    assert queue["total"] == 1

    detail = client.get(f"/operations/{response.json()['operation_id']}").json()
    assert detail["posts"][0]["retry_count"] == 1
    assert detail["posts"][0]["scheduled_time"] is None
    assert detail["posts"][0]["retry_in"].endswith("s")

    stats = client.get(f"/clients/{client_id}/stats").json()
    assert stats["total_posts"] == 1
    assert stats["success_rate"] == 0.0


def test_schedule_without_posts_is_bad_request(client: TestClient) -> None:
    _use_publisher(_FakePublisher())
    client_id = _create_client(client)

    response = client.post("/schedule", json={"client_id": client_id, "content": "___\n—"})

    assert response.status_code == 400
    assert response.json()["error_message"] == "No posts found in document"


def test_schedule_validates_request(client: TestClient) -> None:
    _use_publisher(_FakePublisher())

    assert client.post("/schedule", json={"client_id": 1}).status_code == 422
    assert client.post("/schedule", json={"client_id": 999, "posts": ["Some post text"]}).status_code == 404


def test_schedule_document_url_reports_fetch_failure(client: TestClient) -> None:
    _use_publisher(_FakePublisher())
    app.dependency_overrides[get_document_fetcher] = lambda: _FakeFetcher(None)
    client_id = _create_client(client)

    response = client.post(
        "/schedule/document",
        json={"client_id": client_id, "url": "https://docs.google.com/document/d/abc/edit"},
    )

    assert response.status_code == 400
    assert response.json()["error_message"].startswith("Cannot access Google Doc")
    operation = client.get(f"/operations/{response.json()['operation_id']}").json()
    assert operation["operation_type"] == "google_doc"
    assert operation["status"] == "failed"


def test_system_health_without_activity(client: TestClient) -> None:
    response = client.get("/system/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["total_operations"] == 0
    assert body["queue_size"] == 0


def test_missing_operation_and_post_return_404(client: TestClient) -> None:
    assert client.get("/operations/999").status_code == 404
    assert client.get("/posts/999").status_code == 404


def test_retry_trigger_starts_stopped_worker(client: TestClient) -> None:
    assert client.get("/retry/status").json()["running"] is False

    response = client.post("/retry/trigger")

    assert response.status_code == 202
    assert response.json() == {"running": True, "processed": None}
    assert client.get("/retry/status").json()["running"] is True
