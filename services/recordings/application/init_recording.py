from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List

from .dto import InitRecordingCommand
from .errors import QuotaExceeded, TooManyParts
from .interfaces import (
    IdProvider,
    MultipartStorage,
    RecordingRepository,
    UploadSessionRepository,
)
from ..domain.upload_session import (
    InitializedUpload,
    PartUploadTarget,
    UploadSession,
    UploadSessionStatus,
)
from ..domain.user import SubscriptionTier

logger = logging.getLogger(__name__)

RECORDING_CONTENT_TYPE = "video/webm"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_object_key(prefix: str, recording_id: str) -> str:
    segments = [segment for segment in [prefix.strip("/"), f"{recording_id}.webm"] if segment]
    return "/".join(segments)


class InitRecordingUseCase:
    def __init__(
        self,
        *,
        storage: MultipartStorage,
        session_repository: UploadSessionRepository,
        recording_repository: RecordingRepository,
        recording_id_provider: IdProvider,
        session_ttl: timedelta,
        max_parts: int,
        max_upload_bytes: int,
        free_tier_max_recordings: int,
        object_key_prefix: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._sessions = session_repository
        self._recordings = recording_repository
        self._recording_id_provider = recording_id_provider
        self._session_ttl = session_ttl
        self._max_parts = max_parts
        self._max_upload_bytes = max_upload_bytes
        self._free_tier_max_recordings = free_tier_max_recordings
        self._object_key_prefix = object_key_prefix
        self._clock = clock

    def execute(self, command: InitRecordingCommand) -> InitializedUpload:
        if command.part_count > self._max_parts:
            raise TooManyParts(
                f"Recording would need {command.part_count} parts; "
                f"at most {self._max_parts} are allowed"
            )
        if command.estimated_size > self._max_upload_bytes:
            raise TooManyParts(
                f"Recording of {command.estimated_size} bytes exceeds the "
                f"{self._max_upload_bytes} byte limit"
            )
        self._enforce_quota(command.owner_id, command.tier)

        recording_id = self._recording_id_provider.generate()
        object_key = build_object_key(self._object_key_prefix, recording_id)
        upload_id = self._storage.initiate_upload(
            object_key=object_key, content_type=RECORDING_CONTENT_TYPE
        )

        now = self._clock()
        session = UploadSession(
            session_id=uuid.uuid4().hex,
            recording_id=recording_id,
            owner_id=command.owner_id,
            provider_upload_id=upload_id,
            object_key=object_key,
            status=UploadSessionStatus.UPLOADING,
            created_at=now,
            expires_at=now + self._session_ttl,
        )
        try:
            self._sessions.create(session)
        except Exception:
            logger.error(
                "Failed to persist upload session for %s; aborting multipart upload",
                recording_id,
            )
            self._storage.abort_upload(object_key=object_key, upload_id=upload_id)
            raise

        targets = self._build_targets(
            object_key=object_key, upload_id=upload_id, part_count=command.part_count
        )
        logger.info(
            "Initialized recording %s for owner %s with %d part(s)",
            recording_id,
            command.owner_id,
            len(targets),
        )
        return InitializedUpload(
            recording_id=recording_id,
            upload_id=upload_id,
            upload_targets=targets,
            expires_at=session.expires_at,
        )

    def _enforce_quota(self, owner_id: str, tier: SubscriptionTier) -> None:
        if tier is not SubscriptionTier.FREE:
            return
        count = self._recordings.count_for_owner(owner_id)
        if count >= self._free_tier_max_recordings:
            raise QuotaExceeded(
                f"Free tier limited to {self._free_tier_max_recordings} recordings"
            )

    def _build_targets(
        self, object_key: str, upload_id: str, part_count: int
    ) -> List[PartUploadTarget]:
        parts_to_issue = min(self._max_parts, part_count)
        expires_in_seconds = max(int(self._session_ttl.total_seconds()), 60)
        return [
            PartUploadTarget(
                part_number=part_no,
                url=self._storage.generate_part_url(
                    object_key=object_key,
                    upload_id=upload_id,
                    part_no=part_no,
                    expires_in_seconds=expires_in_seconds,
                ),
            )
            for part_no in range(1, parts_to_issue + 1)
        ]
