from __future__ import annotations

from typing import Optional

import requests


class CoordinatorUnavailable(RuntimeError):
    """Raised when the local coordinator service cannot be reached."""


class CoordinatorRequestFailed(RuntimeError):
    def __init__(self, status: int, detail: str) -> None:
        super().__init__(detail)
        self.status = status
        self.detail = detail


class CoordinatorClient:
    """Thin HTTP client the UI uses to drive the local coordinator."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def state(self) -> dict:
        return self._request("GET", "/state")

    def start(self, *, webcam: bool = False, mic: bool = False) -> dict:
        return self._request("POST", "/start", {"webcam": webcam, "mic": mic})

    def pause(self) -> dict:
        return self._request("POST", "/pause")

    def resume(self) -> dict:
        return self._request("POST", "/resume")

    def stop(self) -> dict:
        return self._request("POST", "/stop")

    def upload(self, title: Optional[str] = None, *, timeout: float = 900.0) -> dict:
        return self._request("POST", "/upload", {"title": title}, timeout=timeout)

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        *,
        timeout: Optional[float] = None,
    ) -> dict:
        url = f"{self._base_url}/v1/recording{path}"
        try:
            response = self._session.request(
                method, url, json=body, timeout=timeout or self._timeout
            )
        except requests.ConnectionError as exc:
            raise CoordinatorUnavailable(
                f"Recorder coordinator is not running at {self._base_url}"
            ) from exc
        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            detail = (
                payload.get("detail", response.text)
                if isinstance(payload, dict)
                else response.text
            )
            raise CoordinatorRequestFailed(response.status_code, str(detail))
        return response.json()
