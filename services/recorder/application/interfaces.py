from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

import numpy as np


class VideoSource(Protocol):
    """Latest-frame video source; ``read`` never blocks."""

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    @property
    def active(self) -> bool: ...

    def read(self) -> Optional[np.ndarray]: ...

    def stop(self) -> None: ...


class ScreenSource(VideoSource, Protocol):
    def on_ended(self, callback: Callable[[], None]) -> None:
        """Register a callback fired (from a capture thread) when sharing ends."""
        ...


class AudioSource(Protocol):
    """Buffered float32 audio; ``read`` drains samples shaped (frames, channels)."""

    @property
    def sample_rate(self) -> int: ...

    @property
    def channels(self) -> int: ...

    @property
    def active(self) -> bool: ...

    def read(self) -> Optional[np.ndarray]: ...

    def stop(self) -> None: ...


@dataclass
class ScreenCapture:
    video: ScreenSource
    system_audio: Optional[AudioSource] = None


class MediaSourceProvider(Protocol):
    def acquire_screen(self) -> ScreenCapture:
        """Raises PermissionDenied when the screen cannot be captured."""
        ...

    def acquire_webcam(self) -> Optional[VideoSource]:
        """Returns None or raises SourceUnavailable when no camera can be used."""
        ...

    def acquire_microphone(self) -> Optional[AudioSource]: ...


class Encoder(Protocol):
    mime_type: str

    def start(
        self,
        *,
        video: VideoSource,
        audio: Optional[AudioSource],
        on_chunk: Callable[[bytes], None],
        loop: asyncio.AbstractEventLoop,
    ) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def request_data(self) -> None: ...

    async def flush(self, timeout: float) -> None:
        """Stop feeding input and emit every remaining encoded byte."""
        ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class InitializedRecording:
    recording_id: str
    upload_urls: List[str]


@dataclass(frozen=True)
class CompletedPart:
    part_number: int
    etag: str


@dataclass(frozen=True)
class PublishedRecording:
    share_url: str
    share_token: str


class RecordingsApi(Protocol):
    def init_recording(
        self, *, estimated_size: int, part_count: int
    ) -> InitializedRecording: ...

    def complete_recording(
        self,
        recording_id: str,
        *,
        parts: List[CompletedPart],
        duration_seconds: int,
        title: Optional[str] = None,
    ) -> PublishedRecording: ...


class PartUploader(Protocol):
    def put_part(self, url: str, data: bytes, content_type: str) -> Optional[str]:
        """PUT one part and return the storage ETag header, if any."""
        ...
