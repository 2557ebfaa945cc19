from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from .errors import RecordingNotFound
from .interfaces import MultipartStorage, RecordingRepository
from ..domain.recording import WatchView

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WatchRecordingUseCase:
    """Resolves a share token into playback metadata and a short-lived read URL."""

    def __init__(
        self,
        *,
        storage: MultipartStorage,
        recording_repository: RecordingRepository,
        url_ttl_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._recordings = recording_repository
        self._url_ttl_seconds = url_ttl_seconds
        self._clock = clock

    def execute(self, share_token: str) -> WatchView:
        recording = self._recordings.get_by_share_token(share_token)
        if recording is None:
            raise RecordingNotFound("Recording not found")
        if recording.is_expired(self._clock()):
            raise RecordingNotFound("Recording has expired")

        video_url = self._storage.generate_get_url(
            object_key=recording.object_key, expires_in_seconds=self._url_ttl_seconds
        )
        return WatchView(
            recording_id=recording.recording_id,
            title=recording.title,
            duration_seconds=recording.duration_seconds,
            video_url=video_url,
            created_at=recording.created_at,
        )

    def record_view(self, recording_id: str) -> None:
        # Runs after the response is sent; a lost increment is acceptable.
        try:
            self._recordings.increment_view_count(recording_id)
        except Exception:
            logger.exception("Failed to increment view count for %s", recording_id)
