from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

AUTH_PATH = "/api/externalApps/auth"
SCHEDULE_PATH = "/api/externalApps/posts/save"


class PublisherClientError(RuntimeError):
    pass


@dataclass(frozen=True)
class DeliveryResult:
    status_code: int
    body: str | None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def failure_detail(self) -> str:
        return self.body or f"HTTP {self.status_code}"


class PublisherClient(Protocol):
    def deliver(
        self,
        text: str,
        *,
        api_key: str,
        scheduled_time: str | None = None,
    ) -> DeliveryResult: ...

    def authenticate(self, *, api_key: str) -> DeliveryResult: ...


class HttpPublisherClient:
    def __init__(
        self,
        *,
        base_url: str,
        partner_key: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._partner_key = partner_key
        self._timeout_seconds = timeout_seconds

    def deliver(
        self,
        text: str,
        *,
        api_key: str,
        scheduled_time: str | None = None,
    ) -> DeliveryResult:
        payload: dict[str, str] = {"text": text}
        if scheduled_time:
            payload["time"] = scheduled_time
        return self._request("POST", SCHEDULE_PATH, api_key=api_key, json=payload)

    def authenticate(self, *, api_key: str) -> DeliveryResult:
        return self._request("GET", AUTH_PATH, api_key=api_key)

    def _request(
        self,
        method: str,
        path: str,
        *,
        api_key: str,
        json: dict[str, str] | None = None,
    ) -> DeliveryResult:
        if not api_key:
            raise PublisherClientError("API key is missing")

        try:
            response = httpx.request(
                method,
                f"{self._base_url}{path}",
                json=json,
                headers={
                    "Authorization": f"Bearer {self._partner_key}:{api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise PublisherClientError(f"Network error: {exc}") from exc

        return DeliveryResult(status_code=response.status_code, body=response.text or None)
