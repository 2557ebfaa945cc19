from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from botocore.exceptions import BotoCoreError, ClientError

from .interfaces import MultipartStorage, UploadSessionRepository
from ..domain.upload_session import UploadSessionStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpireUploadSessionsUseCase:
    """Marks abandoned upload sessions expired and releases their storage parts."""

    def __init__(
        self,
        *,
        storage: MultipartStorage,
        session_repository: UploadSessionRepository,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._sessions = session_repository
        self._clock = clock

    def execute(self) -> int:
        expired = 0
        for session in self._sessions.list_stale(self._clock()):
            # A completion may have claimed the session since it was listed.
            if not self._sessions.close(session.session_id, UploadSessionStatus.EXPIRED):
                continue
            expired += 1
            try:
                self._storage.abort_upload(
                    object_key=session.object_key,
                    upload_id=session.provider_upload_id,
                )
            except (ClientError, BotoCoreError) as exc:
                logger.error(
                    "Failed to abort multipart upload for %s: %s",
                    session.recording_id,
                    exc,
                )
        if expired:
            logger.info("Expired %d upload session(s)", expired)
        return expired
