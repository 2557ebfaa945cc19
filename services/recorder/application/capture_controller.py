"""Capture lifecycle: acquire sources, encode, pause/resume, finalize.

Idle -> Acquiring -> Recording <-> Paused -> Finalizing -> Idle | Error
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .errors import NoActiveRecording, RecordingAlreadyActive, SourceUnavailable
from .interfaces import AudioSource, Encoder, MediaSourceProvider, VideoSource
from ..domain.capture import (
    Artifact,
    CaptureSession,
    CaptureStatus,
    SourceFlags,
    StopResult,
)
from ..media.audio_mixer import mix
from ..media.compositor import Compositor

logger = logging.getLogger(__name__)


def no_data_message(timeslice_seconds: float) -> str:
    minimum = max(1, math.ceil(timeslice_seconds))
    return (
        "No data captured. Record for at least "
        f"{minimum} second{'s' if minimum != 1 else ''} before stopping."
    )


class CaptureController:
    def __init__(
        self,
        *,
        sources: MediaSourceProvider,
        encoder: Encoder,
        compositor_factory: Callable[[], Compositor] = Compositor,
        frame_rate: int = 30,
        timeslice_seconds: float = 1.0,
        max_duration_seconds: float = 420,
        flush_timeout_seconds: float = 2.0,
        watchdog_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._sources = sources
        self._encoder = encoder
        self._compositor_factory = compositor_factory
        self._frame_rate = frame_rate
        self._timeslice_seconds = timeslice_seconds
        self._max_duration_seconds = max_duration_seconds
        self._flush_timeout_seconds = flush_timeout_seconds
        self._watchdog_interval = watchdog_interval
        self._clock = clock
        self._wall_clock = wall_clock

        self._session: Optional[CaptureSession] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._chunks: List[bytes] = []
        self._compositor: Optional[Compositor] = None
        self._video_sources: List[VideoSource] = []
        self._audio_sources: List[AudioSource] = []
        self._watchdog: Optional[asyncio.TimerHandle] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._stop_requested = False
        self._listeners: List[Callable[[StopResult], None]] = []

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def status(self) -> CaptureStatus:
        return self._session.status if self._session else CaptureStatus.IDLE

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def elapsed_seconds(self) -> float:
        if self._session is None:
            return 0.0
        return self._session.elapsed_seconds(self._clock())

    def paused_seconds(self) -> float:
        if self._session is None:
            return 0.0
        return self._session.paused_seconds(self._clock())

    def on_stopped(self, listener: Callable[[StopResult], None]) -> None:
        """Register a listener for every finalized capture, including auto-stops."""
        self._listeners.append(listener)

    async def start(self, flags: SourceFlags) -> CaptureSession:
        if self._session is not None and self._session.is_active:
            raise RecordingAlreadyActive("A recording is already in progress")

        self._loop = asyncio.get_running_loop()
        session = CaptureSession(flags=flags, status=CaptureStatus.ACQUIRING)
        self._session = session
        self._chunks = []
        self._stop_task = None
        self._stop_requested = False
        logger.info("Acquiring sources (webcam=%s, mic=%s)", flags.webcam, flags.mic)

        try:
            screen = await asyncio.to_thread(self._sources.acquire_screen)
            self._video_sources.append(screen.video)
            if screen.system_audio is not None:
                self._audio_sources.append(screen.system_audio)
            screen.video.on_ended(self._on_screen_ended)

            webcam = None
            if flags.webcam:
                webcam = await self._acquire_optional(self._sources.acquire_webcam, "webcam")
                if webcam is not None:
                    self._video_sources.append(webcam)
            microphone = None
            if flags.mic:
                microphone = await self._acquire_optional(
                    self._sources.acquire_microphone, "microphone"
                )
                if microphone is not None:
                    self._audio_sources.append(microphone)

            video: VideoSource = screen.video
            if webcam is not None:
                self._compositor = self._compositor_factory()
                self._compositor.initialize(screen.video, webcam)
                video = self._compositor.get_output_stream(self._frame_rate)
            audio = mix(screen.system_audio, microphone)

            self._encoder.start(
                video=video, audio=audio, on_chunk=self._on_chunk, loop=self._loop
            )
            if self._compositor is not None:
                self._compositor.start(self._loop)
        except Exception as exc:
            logger.error("Failed to start recording: %s", exc)
            self._teardown()
            session.status = CaptureStatus.ERROR
            session.last_error = str(exc)
            raise

        session.mark_recording(wall_clock=self._wall_clock(), now=self._clock())
        self._schedule_watchdog()
        logger.info("Recording started")
        if self._stop_requested:
            logger.info("Screen sharing ended while starting; stopping recording")
            self._request_stop()
        return session

    def pause(self) -> bool:
        session = self._require_session()
        if not session.pause(self._clock()):
            return False
        self._encoder.pause()
        logger.info("Recording paused")
        return True

    def resume(self) -> bool:
        session = self._require_session()
        if not session.resume(self._clock()):
            return False
        self._encoder.resume()
        logger.info("Recording resumed")
        return True

    async def stop(self) -> StopResult:
        session = self._session
        if self._stop_task is None or self._stop_task.done():
            if session is None or session.status not in (
                CaptureStatus.RECORDING,
                CaptureStatus.PAUSED,
            ):
                raise NoActiveRecording("No recording in progress")
            self._stop_task = asyncio.get_running_loop().create_task(self._finalize())
        return await asyncio.shield(self._stop_task)

    async def _finalize(self) -> StopResult:
        session = self._session
        now = self._clock()
        duration = session.elapsed_seconds(now)
        session.resume(now)
        session.status = CaptureStatus.FINALIZING
        self._cancel_watchdog()
        logger.info("Finalizing recording after %.1fs", duration)

        data = b""
        error: Optional[str] = None
        try:
            self._encoder.request_data()
            await self._encoder.flush(self._flush_timeout_seconds)
            if self._compositor is not None:
                self._compositor.stop()
            data = b"".join(self._chunks)
        except Exception as exc:
            logger.exception("Encoder failed while finalizing")
            error = f"Recording failed: {exc}"
        finally:
            self._teardown()

        captured_nothing = error is None and not data
        if captured_nothing:
            error = no_data_message(self._timeslice_seconds)

        if error is None:
            session.status = CaptureStatus.IDLE
            artifact = Artifact(
                data=data,
                duration_seconds=max(1, int(round(duration))),
                mime_type=self._encoder.mime_type,
            )
            result = StopResult(artifact=artifact, duration_seconds=duration)
            logger.info("Recording finalized: %d bytes", artifact.size)
        else:
            session.status = CaptureStatus.ERROR
            session.last_error = error
            result = StopResult(
                artifact=None,
                duration_seconds=duration,
                error=error,
                captured_nothing=captured_nothing,
            )
            logger.error("Recording finalized without output: %s", error)

        self._chunks = []
        for listener in list(self._listeners):
            listener(result)
        return result

    async def _acquire_optional(self, acquire, label: str):
        try:
            return await asyncio.to_thread(acquire)
        except SourceUnavailable as exc:
            logger.warning("Continuing without %s: %s", label, exc)
            return None

    def _on_chunk(self, data: bytes) -> None:
        if data:
            self._chunks.append(data)

    def _on_screen_ended(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        logger.info("Screen sharing ended; stopping recording")
        loop.call_soon_threadsafe(self._request_stop)

    def _request_stop(self) -> None:
        session = self._session
        if self._stop_task is not None or session is None:
            return
        if session.status is CaptureStatus.ACQUIRING:
            # Acted on once start() has the session recording.
            self._stop_requested = True
        elif session.status in (CaptureStatus.RECORDING, CaptureStatus.PAUSED):
            self._stop_task = self._loop.create_task(self._finalize())

    def _schedule_watchdog(self) -> None:
        self._watchdog = self._loop.call_later(self._watchdog_interval, self._check_duration)

    def _check_duration(self) -> None:
        self._watchdog = None
        session = self._session
        if session is None or session.status not in (
            CaptureStatus.RECORDING,
            CaptureStatus.PAUSED,
        ):
            return
        if session.elapsed_seconds(self._clock()) >= self._max_duration_seconds:
            logger.info(
                "Maximum duration of %ss reached; stopping", self._max_duration_seconds
            )
            self._request_stop()
            return
        self._schedule_watchdog()

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _teardown(self) -> None:
        self._cancel_watchdog()
        if self._compositor is not None:
            self._compositor.stop()
            self._compositor = None
        for source in [*self._video_sources, *self._audio_sources]:
            try:
                source.stop()
            except Exception:
                logger.exception("Failed to release %s", type(source).__name__)
        self._video_sources = []
        self._audio_sources = []
        try:
            self._encoder.close()
        except Exception:
            logger.exception("Failed to close encoder")

    def _require_session(self) -> CaptureSession:
        if self._session is None or self._session.status not in (
            CaptureStatus.RECORDING,
            CaptureStatus.PAUSED,
        ):
            raise NoActiveRecording("No recording in progress")
        return self._session
