"""WebM encoder driving an ffmpeg subprocess.

Composited BGR frames are fed on stdin as raw video and audio as f32le
through an extra pipe; encoded WebM bytes are read from stdout and handed to
the caller in one chunk per timeslice.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import threading
import time
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from ..application.errors import EncodingUnsupported
from ..application.interfaces import AudioSource, VideoSource
from ..domain.capture import WEBM_MIME_TYPE

logger = logging.getLogger(__name__)

VIDEO_CODEC_PREFERENCE = ("libvpx-vp9", "libvpx")
AUDIO_CODEC = "libopus"
READ_SIZE = 64 * 1024


class FFmpegEncoderError(RuntimeError):
    """Raised when ffmpeg exits with an error while encoding."""


def probe_codecs(binary: str = "ffmpeg") -> Tuple[str, str]:
    """Pick the first available WebM video codec, always paired with Opus."""
    try:
        result = subprocess.run(
            [binary, "-hide_banner", "-encoders"], capture_output=True, timeout=10
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
        raise EncodingUnsupported(f"ffmpeg is not usable: {exc}") from exc
    available = set()
    for line in result.stdout.decode("utf-8", errors="ignore").splitlines():
        fields = line.split()
        if len(fields) >= 2:
            available.add(fields[1])
    if AUDIO_CODEC not in available:
        raise EncodingUnsupported("ffmpeg was built without libopus")
    for codec in VIDEO_CODEC_PREFERENCE:
        if codec in available:
            return codec, AUDIO_CODEC
    raise EncodingUnsupported("ffmpeg was built without a VP9 or VP8 encoder")


class FFmpegEncoder:
    mime_type = WEBM_MIME_TYPE

    def __init__(
        self,
        *,
        binary: str = "ffmpeg",
        frame_rate: int = 30,
        video_bitrate: int = 2_500_000,
        timeslice_seconds: float = 1.0,
        codecs: Optional[Tuple[str, str]] = None,
    ) -> None:
        self._binary = binary
        self._frame_rate = frame_rate
        self._video_bitrate = video_bitrate
        self._timeslice_seconds = timeslice_seconds
        self._codecs = codecs

        self._process: Optional[subprocess.Popen] = None
        self._audio_pipe = None
        self._buffer = bytearray()
        self._buffer_lock = threading.Lock()
        self._stop_feeding = threading.Event()
        self._paused = threading.Event()
        self._threads: List[threading.Thread] = []
        self._reader: Optional[threading.Thread] = None
        self._stderr = bytearray()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_chunk: Optional[Callable[[bytes], None]] = None

    def build_command(
        self,
        *,
        width: int,
        height: int,
        video_codec: str,
        audio: Optional[AudioSource] = None,
        audio_fd: Optional[int] = None,
    ) -> List[str]:
        cmd = [
            self._binary,
            "-hide_banner",
            "-loglevel",
            "error",
            "-f",
            "rawvideo",
            "-pix_fmt",
            "bgr24",
            "-s",
            f"{width}x{height}",
            "-r",
            str(self._frame_rate),
            "-i",
            "pipe:0",
        ]
        if audio is not None:
            cmd += [
                "-f",
                "f32le",
                "-ar",
                str(audio.sample_rate),
                "-ac",
                str(audio.channels),
                "-i",
                f"pipe:{audio_fd}",
            ]
        cmd += [
            "-map",
            "0:v",
            "-vf",
            "scale=trunc(iw/2)*2:trunc(ih/2)*2",
            "-c:v",
            video_codec,
            "-b:v",
            str(self._video_bitrate),
            "-deadline",
            "realtime",
            "-cpu-used",
            "8",
            "-pix_fmt",
            "yuv420p",
        ]
        if audio is not None:
            cmd += ["-map", "1:a", "-c:a", AUDIO_CODEC, "-b:a", "128k"]
        cmd += ["-f", "webm", "pipe:1"]
        return cmd

    def start(
        self,
        *,
        video: VideoSource,
        audio: Optional[AudioSource],
        on_chunk: Callable[[bytes], None],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        video_codec, _ = self._codecs or probe_codecs(self._binary)
        self._loop = loop
        self._on_chunk = on_chunk
        self._buffer = bytearray()
        self._stderr = bytearray()
        self._stop_feeding.clear()
        self._paused.clear()

        audio_read_fd = audio_write_fd = None
        if audio is not None:
            audio_read_fd, audio_write_fd = os.pipe()
        cmd = self.build_command(
            width=video.width,
            height=video.height,
            video_codec=video_codec,
            audio=audio,
            audio_fd=audio_read_fd,
        )
        logger.info("Starting encoder: %s", " ".join(cmd))
        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                pass_fds=(audio_read_fd,) if audio_read_fd is not None else (),
            )
        except FileNotFoundError as exc:
            if audio_write_fd is not None:
                os.close(audio_write_fd)
            raise EncodingUnsupported(f"ffmpeg is not usable: {exc}") from exc
        finally:
            if audio_read_fd is not None:
                os.close(audio_read_fd)
        if audio_write_fd is not None:
            self._audio_pipe = os.fdopen(audio_write_fd, "wb")

        self._threads = [
            threading.Thread(
                target=self._feed_video,
                args=(video, video.width, video.height),
                name="recorder-encoder-video",
                daemon=True,
            )
        ]
        if audio is not None:
            self._threads.append(
                threading.Thread(
                    target=self._feed_audio,
                    args=(audio,),
                    name="recorder-encoder-audio",
                    daemon=True,
                )
            )
        self._reader = threading.Thread(
            target=self._read_output, name="recorder-encoder-output", daemon=True
        )
        threading.Thread(
            target=self._read_stderr, name="recorder-encoder-stderr", daemon=True
        ).start()
        for thread in [*self._threads, self._reader]:
            thread.start()
        self._timer = loop.call_later(self._timeslice_seconds, self._on_timeslice)

    def pause(self) -> None:
        self._paused.set()

    def resume(self) -> None:
        self._paused.clear()

    def request_data(self) -> None:
        with self._buffer_lock:
            data = bytes(self._buffer)
            self._buffer.clear()
        if data and self._on_chunk is not None:
            self._on_chunk(data)

    async def flush(self, timeout: float) -> None:
        self._cancel_timer()
        process = self._process
        if process is None:
            return
        self._stop_feeding.set()
        for thread in self._threads:
            await asyncio.to_thread(thread.join, timeout)
        self._close_inputs()
        try:
            await asyncio.to_thread(process.wait, timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Encoder did not finish within %.1fs; killing it", timeout)
            process.kill()
        if self._reader is not None:
            await asyncio.to_thread(self._reader.join, timeout)
        self.request_data()
        # A negative return code means the process was killed above.
        if process.returncode is not None and process.returncode > 0:
            stderr = bytes(self._stderr).decode("utf-8", errors="ignore").strip()
            raise FFmpegEncoderError(
                f"ffmpeg exited with {process.returncode}: {stderr or 'unknown error'}"
            )

    def close(self) -> None:
        self._cancel_timer()
        self._stop_feeding.set()
        self._close_inputs()
        process, self._process = self._process, None
        if process is not None and process.poll() is None:
            process.kill()
            process.wait()

    def _on_timeslice(self) -> None:
        self._timer = None
        self.request_data()
        if self._process is not None and not self._stop_feeding.is_set():
            self._timer = self._loop.call_later(self._timeslice_seconds, self._on_timeslice)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _close_inputs(self) -> None:
        process = self._process
        if process is not None and process.stdin is not None and not process.stdin.closed:
            try:
                process.stdin.close()
            except BrokenPipeError:
                logger.warning("Encoder closed its video input early")
        pipe, self._audio_pipe = self._audio_pipe, None
        if pipe is not None:
            try:
                pipe.close()
            except BrokenPipeError:
                logger.warning("Encoder closed its audio input early")

    def _feed_video(self, video: VideoSource, width: int, height: int) -> None:
        interval = 1.0 / self._frame_rate
        blank = np.zeros((height, width, 3), dtype=np.uint8)
        last = blank
        stdin = self._process.stdin
        while not self._stop_feeding.is_set():
            started = time.monotonic()
            if not self._paused.is_set():
                frame = video.read()
                if frame is not None:
                    if frame.shape[0] != height or frame.shape[1] != width:
                        frame = cv2.resize(frame, (width, height))
                    last = frame
                try:
                    stdin.write(np.ascontiguousarray(last).tobytes())
                except (BrokenPipeError, ValueError):
                    logger.error("Encoder video input closed unexpectedly")
                    return
            delay = interval - (time.monotonic() - started)
            if delay > 0:
                time.sleep(delay)

    def _feed_audio(self, audio: AudioSource) -> None:
        pipe = self._audio_pipe
        while not self._stop_feeding.is_set():
            block = audio.read()
            if block is not None and len(block) and not self._paused.is_set():
                try:
                    pipe.write(np.asarray(block, dtype=np.float32).tobytes())
                except (BrokenPipeError, ValueError):
                    logger.error("Encoder audio input closed unexpectedly")
                    return
            else:
                time.sleep(0.02)

    def _read_output(self) -> None:
        stdout = self._process.stdout
        while True:
            data = stdout.read1(READ_SIZE)
            if not data:
                break
            with self._buffer_lock:
                self._buffer.extend(data)

    def _read_stderr(self) -> None:
        process = self._process
        for line in process.stderr:
            self._stderr.extend(line)
