from dataclasses import dataclass
from typing import List

from ..domain.upload_session import UploadPart
from ..domain.user import SubscriptionTier


@dataclass(frozen=True)
class InitRecordingCommand:
    owner_id: str
    tier: SubscriptionTier
    estimated_size: int
    part_count: int


@dataclass(frozen=True)
class CompleteRecordingCommand:
    recording_id: str
    owner_id: str
    tier: SubscriptionTier
    parts: List[UploadPart]
    duration_seconds: int
    title: str | None = None
