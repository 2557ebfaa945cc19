"""Long-lived owner of the single active recording.

The UI process never touches devices; it sends requests here and polls
``state()`` to rebuild its view after reattaching. Capture transitions are
serialized by one ``asyncio.Lock``; uploads only take it to claim the artifact.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .application.capture_controller import CaptureController
from .application.errors import (
    CaptureFailed,
    NoDataCaptured,
    NoPendingArtifact,
    PartUploadFailed,
    RecorderError,
    RecordingAlreadyActive,
    UploadInProgress,
)
from .application.upload_pipeline import UploadPipeline
from .domain.capture import (
    Artifact,
    CaptureStatus,
    SourceFlags,
    StopResult,
    UploadResult,
)
from .infrastructure.retention import LocalArtifactStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordingState:
    status: str
    is_recording: bool
    is_paused: bool
    start_time: Optional[str]
    paused_seconds: float
    elapsed_seconds: float
    pending_artifact_bytes: int
    retained_path: Optional[str]
    upload_progress: Optional[float]
    share_url: Optional[str]
    last_error: Optional[str]


class RecordingCoordinator:
    def __init__(
        self,
        *,
        controller: CaptureController,
        upload_pipeline: UploadPipeline,
        artifact_store: LocalArtifactStore,
    ) -> None:
        self._controller = controller
        self._pipeline = upload_pipeline
        self._store = artifact_store
        self._lock = asyncio.Lock()
        self._pending: Optional[Artifact] = None
        self._pending_title: Optional[str] = None
        self._pending_path: Optional[Path] = None
        self._uploading: Optional[Artifact] = None
        self._last_error: Optional[str] = None
        self._last_upload: Optional[UploadResult] = None
        self._upload_progress: Optional[float] = None
        controller.on_stopped(self._on_capture_stopped)

    @property
    def pending_artifact(self) -> Optional[Artifact]:
        return self._pending

    def restore_pending(self) -> Optional[Path]:
        """Pick up the newest recording kept on disk by an earlier run."""
        retained = self._store.list()
        if not retained or self._pending is not None:
            return None
        path = retained[-1]
        self._pending, self._pending_title = self._store.load(path)
        self._pending_path = path
        logger.info("Restored unsent recording from %s", path)
        return path

    def state(self) -> RecordingState:
        controller = self._controller
        session = controller.session
        status = controller.status
        live = status in (CaptureStatus.RECORDING, CaptureStatus.PAUSED)
        return RecordingState(
            status=status.value,
            is_recording=live,
            is_paused=status is CaptureStatus.PAUSED,
            start_time=(
                session.started_at.isoformat()
                if live and session.started_at is not None
                else None
            ),
            paused_seconds=round(controller.paused_seconds(), 3) if live else 0.0,
            elapsed_seconds=round(controller.elapsed_seconds(), 3) if live else 0.0,
            pending_artifact_bytes=self._pending.size if self._pending else 0,
            retained_path=str(self._pending_path) if self._pending_path else None,
            upload_progress=self._upload_progress,
            share_url=self._last_upload.share_url if self._last_upload else None,
            last_error=self._last_error,
        )

    async def start(self, flags: SourceFlags) -> RecordingState:
        async with self._lock:
            if self._controller.session is not None and self._controller.session.is_active:
                raise RecordingAlreadyActive("A recording is already in progress")
            self._last_error = None
            try:
                await self._controller.start(flags)
            except RecorderError as exc:
                self._last_error = str(exc)
                raise
            return self.state()

    async def pause(self) -> RecordingState:
        async with self._lock:
            self._controller.pause()
            return self.state()

    async def resume(self) -> RecordingState:
        async with self._lock:
            self._controller.resume()
            return self.state()

    async def stop(self) -> StopResult:
        async with self._lock:
            result = await self._controller.stop()
        if not result.ok:
            if result.captured_nothing:
                raise NoDataCaptured(result.error)
            raise CaptureFailed(result.error)
        return result

    async def upload(self, title: Optional[str] = None) -> UploadResult:
        """Upload the pending recording.

        The lock only guards the hand-off; capture controls stay responsive
        while parts are in flight. A recording finished during the upload
        becomes the new pending artifact and is left untouched here.
        """
        async with self._lock:
            artifact = self._pending
            if artifact is None:
                raise NoPendingArtifact("There is no finished recording to upload")
            if self._uploading is not None:
                raise UploadInProgress("An upload is already running")
            title = title or self._pending_title
            path = self._pending_path
            self._uploading = artifact
            self._upload_progress = 0.0
            self._last_error = None

        try:
            result = await asyncio.to_thread(
                self._pipeline.upload,
                artifact,
                title=title,
                on_progress=self._set_progress,
            )
        except RecorderError as exc:
            if path is None:
                path = await asyncio.to_thread(self._store.save, artifact, title=title)
            self._upload_progress = None
            if self._pending is artifact:
                self._pending_path = path
                self._pending_title = title
            if isinstance(exc, PartUploadFailed):
                failure = exc.with_retained_path(path)
                self._last_error = str(failure)
                raise failure from exc
            self._last_error = str(exc)
            raise
        finally:
            self._uploading = None

        if path is not None:
            self._store.discard(path)
        if self._pending is artifact:
            self._pending = None
            self._pending_title = None
            self._pending_path = None
        self._last_upload = result
        self._upload_progress = 100.0
        return result

    def _set_progress(self, percent: float) -> None:
        self._upload_progress = round(percent, 1)

    def _on_capture_stopped(self, result: StopResult) -> None:
        if result.artifact is None:
            self._last_error = result.error
            return
        previous = self._pending
        if previous is not None and previous is not self._uploading:
            if self._pending_path is None:
                self._pending_path = self._store.save(previous, title=self._pending_title)
            logger.info("Unsent recording kept at %s", self._pending_path)
        self._pending = result.artifact
        self._pending_title = None
        self._pending_path = None
        self._last_upload = None
        self._upload_progress = None
