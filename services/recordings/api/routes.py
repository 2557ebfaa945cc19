from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..application.complete_recording import CompleteRecordingUseCase
from ..application.dto import CompleteRecordingCommand, InitRecordingCommand
from ..application.errors import RecordingServiceError, Unauthorized
from ..application.init_recording import InitRecordingUseCase
from ..application.interfaces import IdentityProvider
from ..application.watch_recording import WatchRecordingUseCase
from ..domain.recording import CompletedRecording, WatchView
from ..domain.upload_session import InitializedUpload, UploadPart
from ..domain.user import Owner


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InitRecordingRequest(CamelModel):
    estimated_size: int = Field(ge=1)
    part_count: int = Field(ge=1)


class InitRecordingResponse(CamelModel):
    recording_id: str
    upload_id: str
    upload_urls: List[str]
    expires_at: str

    @classmethod
    def from_domain(cls, upload: InitializedUpload) -> "InitRecordingResponse":
        return cls(
            recording_id=upload.recording_id,
            upload_id=upload.upload_id,
            upload_urls=[target.url for target in upload.upload_targets],
            expires_at=_iso(upload.expires_at),
        )


class CompletionPart(CamelModel):
    part_number: int = Field(ge=1)
    etag: str = Field(min_length=1)


class CompleteRecordingRequest(CamelModel):
    parts: List[CompletionPart] = Field(min_length=1)
    duration: int = Field(ge=1)
    title: str | None = None


class RecordingSummary(CamelModel):
    id: str
    title: str
    duration: int
    created_at: str


class CompleteRecordingResponse(CamelModel):
    share_url: str
    share_token: str
    recording: RecordingSummary

    @classmethod
    def from_domain(cls, completed: CompletedRecording) -> "CompleteRecordingResponse":
        recording = completed.recording
        return cls(
            share_url=completed.share_url,
            share_token=completed.share_token,
            recording=RecordingSummary(
                id=recording.recording_id,
                title=recording.title,
                duration=recording.duration_seconds,
                created_at=_iso(recording.created_at),
            ),
        )


class WatchResponse(CamelModel):
    title: str
    duration: int
    video_url: str
    created_at: str

    @classmethod
    def from_domain(cls, view: WatchView) -> "WatchResponse":
        return cls(
            title=view.title,
            duration=view.duration_seconds,
            video_url=view.video_url,
            created_at=_iso(view.created_at),
        )


def _http_error(exc: RecordingServiceError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def create_router(
    init_recording_use_case: InitRecordingUseCase,
    complete_recording_use_case: CompleteRecordingUseCase,
    watch_recording_use_case: WatchRecordingUseCase,
    identity_provider: IdentityProvider,
) -> APIRouter:
    router = APIRouter(prefix="/api")
    recordings_router = APIRouter(prefix="/recordings", tags=["recordings"])
    watch_router = APIRouter(prefix="/watch", tags=["watch"])
    bearer = HTTPBearer(auto_error=False)

    def current_owner(
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    ) -> Owner:
        if credentials is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token"
            )
        try:
            return identity_provider.resolve(credentials.credentials)
        except Unauthorized as exc:
            raise _http_error(exc) from exc

    @recordings_router.post(
        "/init", response_model=InitRecordingResponse, status_code=201
    )
    def init_recording_endpoint(
        payload: InitRecordingRequest, owner: Owner = Depends(current_owner)
    ):
        command = InitRecordingCommand(
            owner_id=owner.owner_id,
            tier=owner.tier,
            estimated_size=payload.estimated_size,
            part_count=payload.part_count,
        )
        try:
            result = init_recording_use_case.execute(command)
        except RecordingServiceError as exc:
            raise _http_error(exc) from exc
        return InitRecordingResponse.from_domain(result)

    @recordings_router.post(
        "/{recording_id}/complete",
        response_model=CompleteRecordingResponse,
        status_code=200,
    )
    def complete_recording_endpoint(
        recording_id: str,
        payload: CompleteRecordingRequest,
        owner: Owner = Depends(current_owner),
    ):
        command = CompleteRecordingCommand(
            recording_id=recording_id,
            owner_id=owner.owner_id,
            tier=owner.tier,
            parts=[
                UploadPart(part_number=part.part_number, etag=part.etag)
                for part in payload.parts
            ],
            duration_seconds=payload.duration,
            title=payload.title,
        )
        try:
            completed = complete_recording_use_case.execute(command)
        except RecordingServiceError as exc:
            raise _http_error(exc) from exc
        return CompleteRecordingResponse.from_domain(completed)

    @watch_router.get("/{share_token}", response_model=WatchResponse)
    def watch_recording_endpoint(share_token: str, background_tasks: BackgroundTasks):
        try:
            view = watch_recording_use_case.execute(share_token)
        except RecordingServiceError as exc:
            raise _http_error(exc) from exc
        background_tasks.add_task(
            watch_recording_use_case.record_view, view.recording_id
        )
        return WatchResponse.from_domain(view)

    router.include_router(recordings_router)
    router.include_router(watch_router)

    return router
