from datetime import timedelta

from services.recordings.application.dto import InitRecordingCommand
from services.recordings.application.expire_upload_sessions import (
    ExpireUploadSessionsUseCase,
)
from services.recordings.domain.upload_session import UploadSessionStatus
from services.recordings.domain.user import SubscriptionTier


def _init(init_use_case):
    return init_use_case.execute(
        InitRecordingCommand(
            owner_id="owner-1",
            tier=SubscriptionTier.PAID,
            estimated_size=1024,
            part_count=1,
        )
    )


def test_sweep_expires_only_stale_uploading_sessions(
    init_use_case, storage, session_repository, clock
):
    stale = _init(init_use_case)
    clock.advance(timedelta(minutes=10))
    fresh = _init(init_use_case)
    clock.advance(timedelta(minutes=6))

    sweep = ExpireUploadSessionsUseCase(
        storage=storage, session_repository=session_repository, clock=clock
    )

    assert sweep.execute() == 1
    assert (
        session_repository.get_by_recording_id(stale.recording_id).status
        is UploadSessionStatus.EXPIRED
    )
    assert (
        session_repository.get_by_recording_id(fresh.recording_id).status
        is UploadSessionStatus.UPLOADING
    )
    assert storage.aborted == [("recordings/rec-1.webm", stale.upload_id)]

    assert sweep.execute() == 0
    assert len(storage.aborted) == 1


def test_sweep_skips_session_completed_after_listing(
    init_use_case, storage, session_repository, clock
):
    upload = _init(init_use_case)
    clock.advance(timedelta(minutes=20))
    list_stale = session_repository.list_stale

    def list_then_complete(now):
        stale = list_stale(now)
        session_repository.close(stale[0].session_id, UploadSessionStatus.COMPLETED)
        return stale

    session_repository.list_stale = list_then_complete
    sweep = ExpireUploadSessionsUseCase(
        storage=storage, session_repository=session_repository, clock=clock
    )

    assert sweep.execute() == 0
    assert (
        session_repository.get_by_recording_id(upload.recording_id).status
        is UploadSessionStatus.COMPLETED
    )
    assert storage.aborted == []
