import numpy as np
import pytest

from services.recorder.application.capture_controller import CaptureController
from services.recorder.application.interfaces import ScreenCapture


class FakeVideoSource:
    def __init__(self, width=1280, height=720, color=(100, 100, 100)) -> None:
        self._width = width
        self._height = height
        self.color = color
        self.is_active = True
        self.stopped = False
        self.reads = 0
        self._ended = []

    @property
    def width(self):
        return self._width

    @property
    def height(self):
        return self._height

    @property
    def active(self):
        return self.is_active and not self.stopped

    def read(self):
        self.reads += 1
        frame = np.zeros((self._height, self._width, 3), dtype=np.uint8)
        frame[:, :] = self.color
        return frame

    def stop(self):
        self.stopped = True

    def on_ended(self, callback):
        self._ended.append(callback)

    def end(self):
        for callback in self._ended:
            callback()


class FakeAudioSource:
    def __init__(self, blocks=None, *, sample_rate=48000, channels=2) -> None:
        self._blocks = list(blocks or [])
        self._sample_rate = sample_rate
        self._channels = channels
        self.stopped = False

    @property
    def sample_rate(self):
        return self._sample_rate

    @property
    def channels(self):
        return self._channels

    @property
    def active(self):
        return not self.stopped

    def read(self):
        if not self._blocks:
            return None
        return self._blocks.pop(0)

    def stop(self):
        self.stopped = True


class FakeSourceProvider:
    def __init__(self) -> None:
        self.screen = FakeVideoSource()
        self.system_audio = None
        self.webcam = FakeVideoSource(640, 480, color=(0, 0, 255))
        self.mic = FakeAudioSource()
        self.screen_error = None
        self.webcam_error = None
        self.mic_error = None

    def acquire_screen(self):
        if self.screen_error is not None:
            raise self.screen_error
        return ScreenCapture(video=self.screen, system_audio=self.system_audio)

    def acquire_webcam(self):
        if self.webcam_error is not None:
            raise self.webcam_error
        return self.webcam

    def acquire_microphone(self):
        if self.mic_error is not None:
            raise self.mic_error
        return self.mic

    def all_sources(self):
        return [s for s in (self.screen, self.system_audio, self.webcam, self.mic) if s]


class FakeEncoder:
    mime_type = "video/webm"

    def __init__(self) -> None:
        self.video = None
        self.audio = None
        self.on_chunk = None
        self.pauses = 0
        self.resumes = 0
        self.flushed = False
        self.closed = False
        self.final_chunk = b""
        self.flush_error = None
        self.start_error = None

    def start(self, *, video, audio, on_chunk, loop):
        if self.start_error is not None:
            raise self.start_error
        self.video = video
        self.audio = audio
        self.on_chunk = on_chunk
        self.closed = False

    def emit(self, data: bytes):
        self.on_chunk(data)

    def pause(self):
        self.pauses += 1

    def resume(self):
        self.resumes += 1

    def request_data(self):
        pass

    async def flush(self, timeout):
        self.flushed = True
        if self.flush_error is not None:
            raise self.flush_error
        if self.final_chunk:
            self.on_chunk(self.final_chunk)

    def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sources():
    return FakeSourceProvider()


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_controller(sources, encoder, clock):
    def _make(**overrides):
        options = dict(
            sources=sources,
            encoder=encoder,
            clock=clock,
            max_duration_seconds=420,
            flush_timeout_seconds=0.1,
            watchdog_interval=0.01,
        )
        options.update(overrides)
        return CaptureController(**options)

    return _make


@pytest.fixture
def audio_source_class():
    return FakeAudioSource


@pytest.fixture
def video_source_class():
    return FakeVideoSource
