from __future__ import annotations

import re
from typing import Protocol

import httpx

_DOCUMENT_ID_PATTERNS = (
    re.compile(r"docs\.google\.com/document/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"drive\.google\.com/file/d/([a-zA-Z0-9_-]+)"),
)

EXPORT_URL_TEMPLATE = "https://docs.google.com/document/d/{document_id}/export?format=txt"


class DocumentFetchError(RuntimeError):
    pass


class DocumentFetcher(Protocol):
    def fetch(self, url: str) -> str: ...


def extract_document_id(url: str) -> str | None:
    for pattern in _DOCUMENT_ID_PATTERNS:
        match = pattern.search(url)
        if match is not None:
            return match.group(1)
    return None


class GoogleDocFetcher:
    """Reads a publicly shared Google Doc through its plain-text export."""

    def __init__(self, *, timeout_seconds: float = 30.0) -> None:
        self._timeout_seconds = timeout_seconds

    def fetch(self, url: str) -> str:
        document_id = extract_document_id(url)
        if document_id is None:
            raise DocumentFetchError(
                "Invalid Google Doc URL. Expected format: "
                "https://docs.google.com/document/d/YOUR_DOC_ID/..."
            )

        try:
            response = httpx.get(
                EXPORT_URL_TEMPLATE.format(document_id=document_id),
                follow_redirects=True,
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise DocumentFetchError(f"Failed to fetch Google Doc: {exc}") from exc

        if response.status_code == 404:
            raise DocumentFetchError(
                "Google Doc not found. Make sure the document exists and is publicly shared."
            )
        if response.status_code in {401, 403}:
            raise DocumentFetchError(
                "Cannot access Google Doc. Make sure the document is publicly shared."
            )
        if response.status_code >= 400:
            raise DocumentFetchError(f"Failed to fetch Google Doc: HTTP {response.status_code}")

        text = response.text
        if not text.strip():
            raise DocumentFetchError("Google Doc is empty or could not be read.")
        return text
