import httpx
import pytest

from postline.services.delivery.publisher import (
    DeliveryResult,
    HttpPublisherClient,
    PublisherClientError,
)


def _client() -> HttpPublisherClient:
    return HttpPublisherClient(
        base_url="https://publisher.example/",
        partner_key="partner-1",
        timeout_seconds=12,
    )


def test_deliver_posts_text_with_combined_bearer_token(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_request(method: str, url: str, *, json, headers, timeout) -> httpx.Response:
        captured.update(method=method, url=url, json=json, headers=headers, timeout=timeout)
        return httpx.Response(200, text='{"ok": true}')

    monkeypatch.setattr("postline.services.delivery.publisher.httpx.request", fake_request)

    result = _client().deliver("Hello world", api_key="client-key", scheduled_time="2026-03-02T09:00:00Z")

    assert result == DeliveryResult(status_code=200, body='{"ok": true}')
    assert result.ok
    assert captured["method"] == "POST"
    assert captured["url"] == "https://publisher.example/api/externalApps/posts/save"
    assert captured["json"] == {"text": "Hello world", "time": "2026-03-02T09:00:00Z"}
    assert captured["headers"]["Authorization"] == "Bearer partner-1:client-key"
    assert captured["timeout"] == 12


def test_deliver_reports_non_2xx_without_raising(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(method: str, url: str, *, json, headers, timeout) -> httpx.Response:
        del method, url, json, headers, timeout
        return httpx.Response(503)

    monkeypatch.setattr("postline.services.delivery.publisher.httpx.request", fake_request)

    result = _client().deliver("Hello world", api_key="client-key")

    assert not result.ok
    assert result.failure_detail() == "HTTP 503"


def test_network_errors_become_publisher_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(method: str, url: str, *, json, headers, timeout) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr("postline.services.delivery.publisher.httpx.request", fake_request)

    with pytest.raises(PublisherClientError, match="Network error: connection refused"):
        _client().authenticate(api_key="client-key")


def test_missing_api_key_is_rejected_before_any_request() -> None:
    with pytest.raises(PublisherClientError, match="API key is missing"):
        _client().deliver("Hello world", api_key="")
