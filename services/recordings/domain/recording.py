from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

DEFAULT_TITLE = "Untitled Recording"


@dataclass(frozen=True)
class Recording:
    recording_id: str
    owner_id: str
    title: str
    duration_seconds: int
    object_key: str
    byte_size: int
    share_token: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_public: bool = True
    view_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass(frozen=True)
class CompletedRecording:
    share_url: str
    share_token: str
    recording: Recording


@dataclass(frozen=True)
class WatchView:
    recording_id: str
    title: str
    duration_seconds: int
    video_url: str
    created_at: datetime
