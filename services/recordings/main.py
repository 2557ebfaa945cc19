from __future__ import annotations

import logging
import os
from datetime import timedelta

import uvicorn
from fastapi import FastAPI

from .api.routes import create_router
from .application.complete_recording import CompleteRecordingUseCase
from .application.init_recording import InitRecordingUseCase
from .application.interfaces import IdentityProvider
from .application.watch_recording import WatchRecordingUseCase
from .config import RecordingsConfig, load_config
from .infrastructure.db import create_session_factory
from .infrastructure.identity import JwtIdentityProvider
from .infrastructure.ids import ShareTokenProvider, UuidIdProvider
from .infrastructure.recordings import PostgresRecordingRepository
from .infrastructure.s3_storage import S3MultipartStorage
from .infrastructure.upload_sessions import PostgresUploadSessionRepository
from .infrastructure.users import PostgresUserRepository


def create_app(
    *,
    init_recording_use_case: InitRecordingUseCase,
    complete_recording_use_case: CompleteRecordingUseCase,
    watch_recording_use_case: WatchRecordingUseCase,
    identity_provider: IdentityProvider,
) -> FastAPI:
    app = FastAPI(title="Recordings")

    @app.get("/ping")
    async def ping():
        return {"message": "pong"}

    app.include_router(
        create_router(
            init_recording_use_case,
            complete_recording_use_case,
            watch_recording_use_case,
            identity_provider,
        )
    )
    return app


def build_app(config: RecordingsConfig | None = None) -> FastAPI:
    cfg = config or load_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    storage = S3MultipartStorage(
        endpoint_url=cfg.storage_endpoint_url,
        public_endpoint_url=cfg.storage_public_endpoint_url,
        region_name=cfg.storage_region,
        bucket_name=cfg.storage_bucket,
        access_key=cfg.storage_access_key,
        secret_key=cfg.storage_secret_key,
    )
    orm_session_factory = create_session_factory(cfg.sqlalchemy_dsn)
    session_repository = PostgresUploadSessionRepository(
        session_factory=orm_session_factory
    )
    recording_repository = PostgresRecordingRepository(
        session_factory=orm_session_factory
    )
    user_repository = PostgresUserRepository(session_factory=orm_session_factory)

    init_recording_use_case = InitRecordingUseCase(
        storage=storage,
        session_repository=session_repository,
        recording_repository=recording_repository,
        recording_id_provider=UuidIdProvider(),
        session_ttl=timedelta(minutes=cfg.upload_session_ttl_minutes),
        max_parts=cfg.max_parts,
        max_upload_bytes=cfg.max_upload_bytes,
        free_tier_max_recordings=cfg.free_tier_max_recordings,
        object_key_prefix=cfg.storage_object_prefix,
    )
    complete_recording_use_case = CompleteRecordingUseCase(
        storage=storage,
        session_repository=session_repository,
        recording_repository=recording_repository,
        share_token_provider=ShareTokenProvider(),
        watch_base_url=cfg.watch_base_url,
        free_tier_retention=timedelta(days=cfg.free_tier_retention_days),
    )
    watch_recording_use_case = WatchRecordingUseCase(
        storage=storage,
        recording_repository=recording_repository,
        url_ttl_seconds=cfg.download_url_ttl_seconds,
    )
    identity_provider = JwtIdentityProvider(
        secret=cfg.jwt_secret,
        algorithm=cfg.jwt_algorithm,
        user_repository=user_repository,
    )

    return create_app(
        init_recording_use_case=init_recording_use_case,
        complete_recording_use_case=complete_recording_use_case,
        watch_recording_use_case=watch_recording_use_case,
        identity_provider=identity_provider,
    )


def run() -> None:
    uvicorn.run(
        "services.recordings.main:build_app",
        factory=True,
        host=os.getenv("RECORDINGS_HOST", "0.0.0.0"),
        port=int(os.getenv("RECORDINGS_PORT", "8000")),
    )


if __name__ == "__main__":
    run()
