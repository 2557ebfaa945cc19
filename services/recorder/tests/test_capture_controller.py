import asyncio

import pytest

from services.recorder.application.errors import (
    NoActiveRecording,
    PermissionDenied,
    RecordingAlreadyActive,
    SourceUnavailable,
)
from services.recorder.domain.capture import CaptureStatus, SourceFlags
from services.recorder.media.compositor import CompositedVideoSource, CompositorState


def test_screen_and_mic_recording_produces_artifact(make_controller, sources, encoder):
    controller = make_controller()

    async def scenario():
        await controller.start(SourceFlags(webcam=False, mic=True))
        assert controller.status is CaptureStatus.RECORDING
        for chunk in (b"one-", b"two-", b"three"):
            encoder.emit(chunk)
        return await controller.stop()

    result = asyncio.run(scenario())

    assert result.ok
    assert result.artifact.data == b"one-two-three"
    assert result.artifact.mime_type == "video/webm"
    assert controller.status is CaptureStatus.IDLE
    assert encoder.video is sources.screen
    assert encoder.audio is sources.mic
    assert encoder.flushed and encoder.closed
    assert sources.screen.stopped and sources.mic.stopped


def test_pause_and_resume_exclude_paused_time(make_controller, encoder, clock):
    controller = make_controller()

    async def scenario():
        await controller.start(SourceFlags())
        clock.advance(10)
        assert controller.pause() is True
        assert controller.pause() is False
        clock.advance(5)
        assert controller.elapsed_seconds() == pytest.approx(10)
        assert controller.resume() is True
        assert controller.resume() is False
        clock.advance(5)
        elapsed = controller.elapsed_seconds()
        encoder.emit(b"data")
        result = await controller.stop()
        return elapsed, result

    elapsed, result = asyncio.run(scenario())

    assert elapsed == pytest.approx(15)
    assert result.duration_seconds == pytest.approx(15)
    assert result.artifact.duration_seconds == 15
    assert encoder.pauses == 1
    assert encoder.resumes == 1


def test_recording_auto_stops_at_duration_ceiling(make_controller, encoder, clock):
    controller = make_controller(max_duration_seconds=5)
    results = []
    controller.on_stopped(results.append)

    async def scenario():
        await controller.start(SourceFlags())
        encoder.emit(b"frames")
        clock.advance(5)
        for _ in range(100):
            await asyncio.sleep(0.01)
            if results:
                break

    asyncio.run(scenario())

    assert len(results) == 1
    assert results[0].artifact.data == b"frames"
    assert controller.status is CaptureStatus.IDLE


def test_stop_without_data_reports_error_and_releases_sources(
    make_controller, sources, encoder
):
    controller = make_controller()

    async def scenario():
        await controller.start(SourceFlags(webcam=True, mic=True))
        return await controller.stop()

    result = asyncio.run(scenario())

    assert not result.ok
    assert "No data captured" in result.error
    assert "at least 1 second" in result.error
    assert controller.status is CaptureStatus.ERROR
    assert all(source.stopped for source in sources.all_sources())
    assert encoder.closed


def test_encoder_failure_still_releases_sources(make_controller, sources, encoder):
    controller = make_controller()
    encoder.flush_error = RuntimeError("ffmpeg crashed")

    async def scenario():
        await controller.start(SourceFlags(mic=True))
        encoder.emit(b"partial")
        return await controller.stop()

    result = asyncio.run(scenario())

    assert result.artifact is None
    assert "ffmpeg crashed" in result.error
    assert sources.screen.stopped and sources.mic.stopped


def test_screen_permission_denied_fails_start(make_controller, sources):
    controller = make_controller()
    sources.screen_error = PermissionDenied("Screen capture was refused")

    with pytest.raises(PermissionDenied):
        asyncio.run(controller.start(SourceFlags(mic=True)))

    assert controller.status is CaptureStatus.ERROR
    assert not sources.mic.stopped


def test_encoder_start_failure_releases_acquired_sources(make_controller, sources, encoder):
    controller = make_controller()
    encoder.start_error = RuntimeError("no codec")

    with pytest.raises(RuntimeError):
        asyncio.run(controller.start(SourceFlags(webcam=True, mic=True)))

    assert sources.screen.stopped and sources.webcam.stopped and sources.mic.stopped
    assert controller.status is CaptureStatus.ERROR


def test_unavailable_webcam_and_mic_degrade(make_controller, sources, encoder):
    controller = make_controller()
    sources.webcam_error = SourceUnavailable("no camera")
    sources.mic_error = SourceUnavailable("no microphone")

    async def scenario():
        await controller.start(SourceFlags(webcam=True, mic=True))
        status = controller.status
        encoder.emit(b"x")
        await controller.stop()
        return status

    assert asyncio.run(scenario()) is CaptureStatus.RECORDING
    assert encoder.video is sources.screen
    assert encoder.audio is None


def test_webcam_recording_runs_compositor(make_controller, sources, encoder):
    controller = make_controller()

    async def scenario():
        await controller.start(SourceFlags(webcam=True))
        await asyncio.sleep(0.05)
        compositor = encoder.video._compositor
        running = compositor.state
        encoder.emit(b"x")
        await controller.stop()
        return compositor, running

    compositor, running = asyncio.run(scenario())

    assert isinstance(encoder.video, CompositedVideoSource)
    assert running is CompositorState.RUNNING
    assert compositor.state is CompositorState.STOPPED
    assert compositor.frames_drawn > 0
    assert sources.webcam.stopped


def test_screen_share_ending_stops_recording(make_controller, sources, encoder):
    controller = make_controller()
    results = []
    controller.on_stopped(results.append)

    async def scenario():
        await controller.start(SourceFlags())
        encoder.emit(b"data")
        sources.screen.end()
        for _ in range(100):
            await asyncio.sleep(0.01)
            if results:
                break

    asyncio.run(scenario())

    assert results and results[0].ok
    assert controller.status is CaptureStatus.IDLE


def test_second_start_is_rejected(make_controller):
    controller = make_controller()

    async def scenario():
        await controller.start(SourceFlags())
        with pytest.raises(RecordingAlreadyActive):
            await controller.start(SourceFlags())

    asyncio.run(scenario())


def test_stop_without_recording_is_rejected(make_controller):
    controller = make_controller()

    with pytest.raises(NoActiveRecording):
        asyncio.run(controller.stop())

    with pytest.raises(NoActiveRecording):
        controller.pause()


def test_screen_ending_while_acquiring_stops_once_recording(
    make_controller, sources, encoder
):
    controller = make_controller()
    results = []
    controller.on_stopped(results.append)
    webcam = sources.webcam

    def acquire_webcam_after_share_ended():
        sources.screen.end()
        return webcam

    sources.acquire_webcam = acquire_webcam_after_share_ended

    async def scenario():
        await controller.start(SourceFlags(webcam=True))
        encoder.emit(b"early")
        for _ in range(100):
            await asyncio.sleep(0.01)
            if results:
                break

    asyncio.run(scenario())

    assert len(results) == 1
    assert results[0].artifact.data == b"early"
    assert controller.status is CaptureStatus.IDLE
    assert sources.screen.stopped and webcam.stopped


def test_empty_recording_is_flagged_apart_from_encoder_failure(make_controller, encoder):
    controller = make_controller()

    async def record(emit):
        await controller.start(SourceFlags())
        if emit:
            encoder.emit(b"partial")
        return await controller.stop()

    empty = asyncio.run(record(emit=False))
    encoder.flush_error = RuntimeError("ffmpeg crashed")
    broken = asyncio.run(record(emit=True))

    assert empty.captured_nothing
    assert not broken.captured_nothing
    assert "ffmpeg crashed" in broken.error
