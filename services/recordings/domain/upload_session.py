from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List


class UploadSessionStatus(str, Enum):
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class UploadSession:
    session_id: str
    recording_id: str
    owner_id: str
    provider_upload_id: str
    object_key: str
    status: UploadSessionStatus
    created_at: datetime
    expires_at: datetime
    parts_uploaded: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class UploadPart:
    part_number: int
    etag: str


@dataclass(frozen=True)
class PartUploadTarget:
    part_number: int
    url: str


@dataclass(frozen=True)
class InitializedUpload:
    recording_id: str
    upload_id: str
    upload_targets: List[PartUploadTarget]
    expires_at: datetime
