from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..application.errors import RecorderError
from ..coordinator import RecordingCoordinator, RecordingState
from ..domain.capture import SourceFlags


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartRequest(CamelModel):
    webcam: bool = False
    mic: bool = False


class UploadRequest(CamelModel):
    title: Optional[str] = None


class StateResponse(CamelModel):
    status: str
    is_recording: bool
    is_paused: bool
    start_time: Optional[str] = None
    paused_seconds: float
    elapsed_seconds: float
    pending_artifact_bytes: int
    retained_path: Optional[str] = None
    upload_progress: Optional[float] = None
    share_url: Optional[str] = None
    last_error: Optional[str] = None

    @classmethod
    def from_state(cls, state: RecordingState) -> "StateResponse":
        return cls(**state.__dict__)


class StopResponse(CamelModel):
    duration_seconds: float
    artifact_bytes: int
    mime_type: str


class UploadResponse(CamelModel):
    recording_id: str
    share_url: str
    share_token: str


def _http_error(exc: RecorderError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def create_router(coordinator: RecordingCoordinator) -> APIRouter:
    router = APIRouter(prefix="/v1/recording", tags=["recording"])

    @router.get("/state", response_model=StateResponse)
    async def get_state():
        return StateResponse.from_state(coordinator.state())

    @router.post("/start", response_model=StateResponse)
    async def start_recording(payload: StartRequest):
        flags = SourceFlags(screen=True, webcam=payload.webcam, mic=payload.mic)
        try:
            state = await coordinator.start(flags)
        except RecorderError as exc:
            raise _http_error(exc) from exc
        return StateResponse.from_state(state)

    @router.post("/pause", response_model=StateResponse)
    async def pause_recording():
        try:
            state = await coordinator.pause()
        except RecorderError as exc:
            raise _http_error(exc) from exc
        return StateResponse.from_state(state)

    @router.post("/resume", response_model=StateResponse)
    async def resume_recording():
        try:
            state = await coordinator.resume()
        except RecorderError as exc:
            raise _http_error(exc) from exc
        return StateResponse.from_state(state)

    @router.post("/stop", response_model=StopResponse)
    async def stop_recording():
        try:
            result = await coordinator.stop()
        except RecorderError as exc:
            raise _http_error(exc) from exc
        return StopResponse(
            duration_seconds=round(result.duration_seconds, 3),
            artifact_bytes=result.artifact.size,
            mime_type=result.artifact.mime_type,
        )

    @router.post("/upload", response_model=UploadResponse)
    async def upload_recording(payload: Optional[UploadRequest] = None):
        title = payload.title if payload is not None else None
        try:
            result = await coordinator.upload(title)
        except RecorderError as exc:
            raise _http_error(exc) from exc
        return UploadResponse(
            recording_id=result.recording_id,
            share_url=result.share_url,
            share_token=result.share_token,
        )

    return router
