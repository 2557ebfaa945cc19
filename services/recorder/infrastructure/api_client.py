from __future__ import annotations

import logging
from typing import List, Optional

import requests

from ..application.errors import UploadApiError
from ..application.interfaces import (
    CompletedPart,
    InitializedRecording,
    PublishedRecording,
)

logger = logging.getLogger(__name__)


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason or "unknown error"
    if isinstance(payload, dict) and "detail" in payload:
        return str(payload["detail"])
    return str(payload)


class RecordingsApiClient:
    """HTTP client for the recordings service init/complete endpoints."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def init_recording(self, *, estimated_size: int, part_count: int) -> InitializedRecording:
        payload = self._post(
            "/api/recordings/init",
            {"estimatedSize": estimated_size, "partCount": part_count},
        )
        return InitializedRecording(
            recording_id=payload["recordingId"], upload_urls=list(payload["uploadUrls"])
        )

    def complete_recording(
        self,
        recording_id: str,
        *,
        parts: List[CompletedPart],
        duration_seconds: int,
        title: Optional[str] = None,
    ) -> PublishedRecording:
        body = {
            "parts": [
                {"partNumber": part.part_number, "etag": part.etag} for part in parts
            ],
            "duration": duration_seconds,
        }
        if title:
            body["title"] = title
        payload = self._post(f"/api/recordings/{recording_id}/complete", body)
        return PublishedRecording(
            share_url=payload["shareUrl"], share_token=payload["shareToken"]
        )

    def _post(self, path: str, body: dict) -> dict:
        try:
            response = self._session.post(
                f"{self._base_url}{path}", json=body, timeout=self._timeout
            )
        except requests.RequestException as exc:
            logger.error("POST %s failed: %s", path, exc)
            raise UploadApiError(503, str(exc)) from exc
        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error("POST %s failed with %s: %s", path, response.status_code, detail)
            raise UploadApiError(response.status_code, detail)
        return response.json()


class HttpPartUploader:
    def __init__(
        self, *, timeout: float = 120.0, session: Optional[requests.Session] = None
    ) -> None:
        self._timeout = timeout
        self._session = session or requests.Session()

    def put_part(self, url: str, data: bytes, content_type: str) -> Optional[str]:
        response = self._session.put(
            url,
            data=data,
            headers={"Content-Type": content_type},
            timeout=self._timeout,
        )
        response.raise_for_status()
        return response.headers.get("ETag")
