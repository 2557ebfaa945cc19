from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from botocore.exceptions import BotoCoreError, ClientError

from .dto import CompleteRecordingCommand
from .errors import (
    AssemblyFailed,
    SessionExpired,
    SessionForbidden,
    SessionInactive,
    SessionNotFound,
    ShareTokenCollision,
)
from .interfaces import (
    IdProvider,
    MultipartStorage,
    RecordingRepository,
    UploadSessionRepository,
)
from ..domain.recording import DEFAULT_TITLE, CompletedRecording, Recording
from ..domain.upload_session import UploadSession, UploadSessionStatus
from ..domain.user import SubscriptionTier

logger = logging.getLogger(__name__)

MAX_SHARE_TOKEN_ATTEMPTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CompleteRecordingUseCase:
    def __init__(
        self,
        *,
        storage: MultipartStorage,
        session_repository: UploadSessionRepository,
        recording_repository: RecordingRepository,
        share_token_provider: IdProvider,
        watch_base_url: str,
        free_tier_retention: timedelta,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._sessions = session_repository
        self._recordings = recording_repository
        self._share_tokens = share_token_provider
        self._watch_base_url = watch_base_url.rstrip("/")
        self._free_tier_retention = free_tier_retention
        self._clock = clock

    def execute(self, command: CompleteRecordingCommand) -> CompletedRecording:
        session = self._validate_session(command)

        ordered_parts = [(part.part_number, part.etag) for part in command.parts]
        try:
            self._storage.complete_upload(
                object_key=session.object_key,
                upload_id=session.provider_upload_id,
                parts=ordered_parts,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "Storage rejected part set for recording %s: %s",
                session.recording_id,
                exc,
            )
            if not self._sessions.close(session.session_id, UploadSessionStatus.FAILED):
                # Another completion consumed the session and its multipart upload.
                raise SessionInactive("Upload session is not active") from exc
            self._abort_quietly(session)
            raise AssemblyFailed(f"Failed to assemble recording: {exc}") from exc

        byte_size = self._storage.head_object_size(session.object_key)
        if byte_size is None:
            logger.warning(
                "Assembled object %s has no readable size", session.object_key
            )
            byte_size = 0

        now = self._clock()
        expires_at = (
            now + self._free_tier_retention
            if command.tier is SubscriptionTier.FREE
            else None
        )
        recording = self._persist(
            command=command,
            session=session,
            byte_size=byte_size,
            created_at=now,
            expires_at=expires_at,
        )
        logger.info(
            "Completed recording %s (%d bytes) for owner %s",
            recording.recording_id,
            recording.byte_size,
            recording.owner_id,
        )
        return CompletedRecording(
            share_url=self.share_url(recording.share_token),
            share_token=recording.share_token,
            recording=recording,
        )

    def share_url(self, share_token: str) -> str:
        return f"{self._watch_base_url}/v/{share_token}"

    def _validate_session(self, command: CompleteRecordingCommand) -> UploadSession:
        session = self._sessions.get_by_recording_id(command.recording_id)
        if session is None:
            raise SessionNotFound("Upload session not found")
        if session.owner_id != command.owner_id:
            raise SessionForbidden("Not authorized")
        if session.status is UploadSessionStatus.EXPIRED:
            raise SessionExpired("Upload session expired")
        if session.status is not UploadSessionStatus.UPLOADING:
            raise SessionInactive("Upload session is not active")
        if session.is_expired(self._clock()):
            if self._sessions.close(session.session_id, UploadSessionStatus.EXPIRED):
                self._abort_quietly(session)
            raise SessionExpired("Upload session expired")
        return session

    def _persist(
        self,
        *,
        command: CompleteRecordingCommand,
        session: UploadSession,
        byte_size: int,
        created_at: datetime,
        expires_at: datetime | None,
    ) -> Recording:
        for attempt in range(1, MAX_SHARE_TOKEN_ATTEMPTS + 1):
            recording = Recording(
                recording_id=session.recording_id,
                owner_id=session.owner_id,
                title=command.title or DEFAULT_TITLE,
                duration_seconds=command.duration_seconds,
                object_key=session.object_key,
                byte_size=byte_size,
                share_token=self._share_tokens.generate(),
                created_at=created_at,
                expires_at=expires_at,
            )
            try:
                return self._recordings.create_for_session(
                    recording,
                    session_id=session.session_id,
                    parts_uploaded=len(command.parts),
                )
            except ShareTokenCollision:
                logger.warning(
                    "Share token collision for recording %s (attempt %d)",
                    session.recording_id,
                    attempt,
                )
        raise RuntimeError("Could not allocate a unique share token")

    def _abort_quietly(self, session: UploadSession) -> None:
        try:
            self._storage.abort_upload(
                object_key=session.object_key, upload_id=session.provider_upload_id
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "Failed to abort multipart upload %s: %s",
                session.provider_upload_id,
                exc,
            )
