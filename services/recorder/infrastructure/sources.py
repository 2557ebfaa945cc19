"""Device adapters: screen (mss), webcam (OpenCV), audio (sounddevice).

Each adapter runs its own capture thread and keeps the latest frame or a
buffer of audio blocks that the event loop reads without blocking.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

import cv2
import mss
import numpy as np
from mss.exception import ScreenShotError

from ..application.errors import PermissionDenied, SourceUnavailable
from ..application.interfaces import ScreenCapture
from ..config import RecorderConfig

logger = logging.getLogger(__name__)

# Consecutive failed grabs before the screen is treated as no longer shared.
SCREEN_FAILURE_LIMIT = 15


class ScreenVideoSource:
    def __init__(self, monitor: dict, frame_rate: int = 30) -> None:
        self._monitor = dict(monitor)
        self._interval = 1.0 / frame_rate
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None
        self._stop_event = threading.Event()
        self._ended_callbacks: List[Callable[[], None]] = []
        self._running = False
        self._thread: Optional[threading.Thread] = None

    @property
    def width(self) -> int:
        return int(self._monitor["width"])

    @property
    def height(self) -> int:
        return int(self._monitor["height"])

    @property
    def active(self) -> bool:
        return self._running

    def on_ended(self, callback: Callable[[], None]) -> None:
        self._ended_callbacks.append(callback)

    def start(self) -> None:
        self._stop_event.clear()
        self._running = True
        self._thread = threading.Thread(
            target=self._loop, name="recorder-screen-capture", daemon=True
        )
        self._thread.start()

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1.5)
        self._running = False

    def _loop(self) -> None:
        failures = 0
        # mss handles are thread-bound, so the grabber lives in this thread.
        with mss.mss() as sct:
            while not self._stop_event.is_set():
                started = time.monotonic()
                try:
                    shot = sct.grab(self._monitor)
                except ScreenShotError as exc:
                    failures += 1
                    if failures >= SCREEN_FAILURE_LIMIT:
                        logger.warning("Screen capture lost: %s", exc)
                        break
                    time.sleep(self._interval)
                    continue
                failures = 0
                frame = np.frombuffer(shot.bgra, dtype=np.uint8).reshape(
                    (shot.height, shot.width, 4)
                )
                with self._lock:
                    self._frame = np.ascontiguousarray(frame[:, :, :3])
                delay = self._interval - (time.monotonic() - started)
                if delay > 0:
                    time.sleep(delay)

        was_stopped = self._stop_event.is_set()
        self._running = False
        if not was_stopped:
            for callback in list(self._ended_callbacks):
                callback()


class WebcamVideoSource:
    def __init__(self, capture, *, width: int, height: int) -> None:
        self._capture = capture
        self._width = width
        self._height = height
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None
        self._last_frame_at = 0.0
        self._stop_event = threading.Event()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def open(cls, index: int, *, width: int, height: int) -> "WebcamVideoSource":
        capture = cv2.VideoCapture(index)
        if capture is None or not capture.isOpened():
            if capture is not None:
                capture.release()
            raise SourceUnavailable(f"Camera {index} could not be opened")
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        source = cls(capture, width=width, height=height)
        source.start()
        return source

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def active(self) -> bool:
        # A camera that stops delivering frames is treated as gone.
        return self._running and time.monotonic() - self._last_frame_at < 1.0

    def start(self) -> None:
        self._stop_event.clear()
        self._running = True
        self._last_frame_at = time.monotonic()
        self._thread = threading.Thread(
            target=self._loop, name="recorder-webcam-capture", daemon=True
        )
        self._thread.start()

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread.is_alive():
            thread.join(timeout=1.5)
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        self._running = False

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            ok, frame = self._capture.read()
            if not ok or frame is None:
                time.sleep(0.03)
                continue
            with self._lock:
                self._frame = frame
                self._last_frame_at = time.monotonic()
        self._running = False


class SoundDeviceAudioSource:
    """Audio input (microphone or loopback device) captured with sounddevice."""

    def __init__(self, *, device, sample_rate: int, channels: int) -> None:
        self._device = device
        self._sample_rate = sample_rate
        self._channels = channels
        self._lock = threading.Lock()
        self._blocks: List[np.ndarray] = []
        self._stream = None

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channels(self) -> int:
        return self._channels

    @property
    def active(self) -> bool:
        return self._stream is not None and bool(self._stream.active)

    def open(self) -> "SoundDeviceAudioSource":
        import sounddevice as sd

        def _callback(indata, frames, time_info, status) -> None:
            if status:
                logger.warning("Audio callback status for %s: %s", self._device, status)
            with self._lock:
                self._blocks.append(indata.copy())

        try:
            self._stream = sd.InputStream(
                samplerate=self._sample_rate,
                channels=self._channels,
                dtype="float32",
                device=self._device,
                callback=_callback,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            self._stream = None
            raise SourceUnavailable(f"Audio device {self._device!r} unavailable: {exc}") from exc
        return self

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            if not self._blocks:
                return None
            blocks, self._blocks = self._blocks, []
        return np.concatenate(blocks)

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()


class LocalMediaSourceProvider:
    def __init__(self, config: RecorderConfig) -> None:
        self._config = config

    def acquire_screen(self) -> ScreenCapture:
        try:
            with mss.mss() as sct:
                monitors = sct.monitors
                index = self._config.monitor_index
                if index >= len(monitors):
                    index = 1 if len(monitors) > 1 else 0
                monitor = monitors[index]
                sct.grab(monitor)
        except ScreenShotError as exc:
            raise PermissionDenied(f"Screen capture was refused: {exc}") from exc

        video = ScreenVideoSource(monitor, frame_rate=self._config.frame_rate)
        video.start()
        system_audio = None
        if self._config.system_audio_device:
            try:
                system_audio = self._open_audio(self._config.system_audio_device)
            except SourceUnavailable as exc:
                logger.warning("Continuing without system audio: %s", exc)
        return ScreenCapture(video=video, system_audio=system_audio)

    def acquire_webcam(self) -> WebcamVideoSource:
        return WebcamVideoSource.open(
            self._config.webcam_index,
            width=self._config.webcam_width,
            height=self._config.webcam_height,
        )

    def acquire_microphone(self) -> SoundDeviceAudioSource:
        return self._open_audio(self._config.microphone_device)

    def _open_audio(self, device) -> SoundDeviceAudioSource:
        if isinstance(device, str) and device.isdigit():
            device = int(device)
        return SoundDeviceAudioSource(
            device=device,
            sample_rate=self._config.sample_rate,
            channels=self._config.channels,
        ).open()
