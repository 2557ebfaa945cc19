from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

WEBM_MIME_TYPE = "video/webm"


class CaptureStatus(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    RECORDING = "recording"
    PAUSED = "paused"
    FINALIZING = "finalizing"
    ERROR = "error"


ACTIVE_STATUSES = frozenset(
    {
        CaptureStatus.ACQUIRING,
        CaptureStatus.RECORDING,
        CaptureStatus.PAUSED,
        CaptureStatus.FINALIZING,
    }
)


@dataclass(frozen=True)
class SourceFlags:
    screen: bool = True
    webcam: bool = False
    mic: bool = False


@dataclass
class CaptureSession:
    """Mutable state of one capture, owned by the capture controller.

    Times are read from a monotonic clock; ``started_at`` is the wall-clock
    start reported to the UI so it can rebuild its timer after reattaching.
    """

    flags: SourceFlags
    status: CaptureStatus = CaptureStatus.IDLE
    started_at: datetime | None = None
    started_monotonic: float | None = None
    accumulated_pause_seconds: float = 0.0
    paused_since: float | None = None
    last_error: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def mark_recording(self, *, wall_clock: datetime, now: float) -> None:
        self.status = CaptureStatus.RECORDING
        self.started_at = wall_clock
        self.started_monotonic = now

    def pause(self, now: float) -> bool:
        if self.status is not CaptureStatus.RECORDING:
            return False
        self.status = CaptureStatus.PAUSED
        self.paused_since = now
        return True

    def resume(self, now: float) -> bool:
        if self.status is not CaptureStatus.PAUSED:
            return False
        self.accumulated_pause_seconds += now - (self.paused_since or now)
        self.paused_since = None
        self.status = CaptureStatus.RECORDING
        return True

    def paused_seconds(self, now: float) -> float:
        current = now - self.paused_since if self.paused_since is not None else 0.0
        return self.accumulated_pause_seconds + current

    def elapsed_seconds(self, now: float) -> float:
        if self.started_monotonic is None:
            return 0.0
        return max(0.0, now - self.started_monotonic - self.paused_seconds(now))


@dataclass(frozen=True)
class Artifact:
    data: bytes
    duration_seconds: int
    mime_type: str = WEBM_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StopResult:
    artifact: Artifact | None
    duration_seconds: float
    error: str | None = None
    captured_nothing: bool = False

    @property
    def ok(self) -> bool:
        return self.artifact is not None and self.error is None


@dataclass(frozen=True)
class UploadResult:
    recording_id: str
    share_url: str
    share_token: str
