from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from .api.routes import create_router
from .application.capture_controller import CaptureController
from .application.upload_pipeline import UploadPipeline
from .config import RecorderConfig, load_config
from .coordinator import RecordingCoordinator
from .infrastructure.api_client import HttpPartUploader, RecordingsApiClient
from .infrastructure.encoder import FFmpegEncoder
from .infrastructure.retention import LocalArtifactStore
from .infrastructure.sources import LocalMediaSourceProvider
from .media.compositor import Compositor


def create_app(coordinator: RecordingCoordinator) -> FastAPI:
    app = FastAPI(title="Recorder coordinator")

    @app.get("/ping")
    async def ping():
        return {"message": "pong"}

    app.include_router(create_router(coordinator))
    return app


def build_coordinator(cfg: RecorderConfig) -> RecordingCoordinator:
    controller = CaptureController(
        sources=LocalMediaSourceProvider(cfg),
        encoder=FFmpegEncoder(
            binary=cfg.ffmpeg_binary,
            frame_rate=cfg.frame_rate,
            video_bitrate=cfg.video_bitrate,
            timeslice_seconds=cfg.timeslice_seconds,
        ),
        compositor_factory=lambda: Compositor(
            refresh_interval=cfg.refresh_interval_seconds
        ),
        frame_rate=cfg.frame_rate,
        timeslice_seconds=cfg.timeslice_seconds,
        max_duration_seconds=cfg.max_duration_seconds,
        flush_timeout_seconds=cfg.flush_timeout_seconds,
    )
    pipeline = UploadPipeline(
        api=RecordingsApiClient(
            base_url=cfg.api_base_url,
            token=cfg.api_token,
            timeout=cfg.request_timeout_seconds,
        ),
        part_uploader=HttpPartUploader(),
        part_size=cfg.part_size_bytes,
        max_parts=cfg.max_parts,
        max_attempts=cfg.max_attempts,
    )
    coordinator = RecordingCoordinator(
        controller=controller,
        upload_pipeline=pipeline,
        artifact_store=LocalArtifactStore(cfg.retention_dir),
    )
    coordinator.restore_pending()
    return coordinator


def build_app(config: RecorderConfig | None = None) -> FastAPI:
    cfg = config or load_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return create_app(build_coordinator(cfg))


def run() -> None:
    cfg = load_config()
    uvicorn.run(
        "services.recorder.main:build_app",
        factory=True,
        host=cfg.coordinator_host,
        port=cfg.coordinator_port,
    )


if __name__ == "__main__":
    run()
