from datetime import timedelta

import pytest

from services.recordings.application.dto import InitRecordingCommand
from services.recordings.application.errors import QuotaExceeded, TooManyParts
from services.recordings.application.init_recording import (
    InitRecordingUseCase,
    build_object_key,
)
from services.recordings.domain.upload_session import UploadSessionStatus
from services.recordings.domain.user import SubscriptionTier

MIB = 1024 * 1024


class FixedCountRecordings:
    def __init__(self, count: int) -> None:
        self.count = count

    def count_for_owner(self, owner_id: str) -> int:
        return self.count


class BrokenSessionRepository:
    def create(self, session):
        raise RuntimeError("database unavailable")


def _command(tier=SubscriptionTier.FREE, *, size=12 * MIB, parts=3):
    return InitRecordingCommand(
        owner_id="owner-1", tier=tier, estimated_size=size, part_count=parts
    )


def test_build_object_key_places_recording_under_prefix():
    assert build_object_key("recordings/", "abc") == "recordings/abc.webm"
    assert build_object_key("", "abc") == "abc.webm"


def test_init_issues_one_target_per_part(init_use_case, storage, session_repository, clock):
    result = init_use_case.execute(_command(parts=3))

    assert result.recording_id == "rec-1"
    assert result.upload_id == "upload-1"
    assert [target.part_number for target in result.upload_targets] == [1, 2, 3]
    assert "partNumber=2" in result.upload_targets[1].url
    assert result.expires_at == clock.now + timedelta(minutes=15)
    assert storage.initiated == [("recordings/rec-1.webm", "video/webm")]

    session = session_repository.get_by_recording_id("rec-1")
    assert session.status is UploadSessionStatus.UPLOADING
    assert session.owner_id == "owner-1"
    assert session.provider_upload_id == "upload-1"
    assert session.expires_at == clock.now + timedelta(minutes=15)


def test_part_count_over_cap_is_rejected_before_storage(init_use_case, storage):
    with pytest.raises(TooManyParts):
        init_use_case.execute(_command(parts=101))

    assert storage.initiated == []


def test_oversized_recording_is_rejected(init_use_case, storage):
    with pytest.raises(TooManyParts):
        init_use_case.execute(_command(size=500 * MIB + 1, parts=100))

    assert storage.initiated == []


def test_exact_cap_is_accepted(init_use_case):
    result = init_use_case.execute(_command(size=500 * MIB, parts=100))

    assert len(result.upload_targets) == 100


def _use_case_with(storage, session_repository, recordings, recording_ids, clock):
    return InitRecordingUseCase(
        storage=storage,
        session_repository=session_repository,
        recording_repository=recordings,
        recording_id_provider=recording_ids,
        session_ttl=timedelta(minutes=15),
        max_parts=100,
        max_upload_bytes=500 * MIB,
        free_tier_max_recordings=5,
        object_key_prefix="recordings",
        clock=clock,
    )


def test_free_tier_quota_blocks_sixth_recording(
    storage, session_repository, recording_ids, clock
):
    use_case = _use_case_with(
        storage, session_repository, FixedCountRecordings(5), recording_ids, clock
    )

    with pytest.raises(QuotaExceeded):
        use_case.execute(_command())

    assert storage.initiated == []


def test_free_tier_below_quota_is_allowed(
    storage, session_repository, recording_ids, clock
):
    use_case = _use_case_with(
        storage, session_repository, FixedCountRecordings(4), recording_ids, clock
    )

    assert use_case.execute(_command()).recording_id == "rec-1"


def test_paid_tier_is_not_limited(storage, session_repository, recording_ids, clock):
    use_case = _use_case_with(
        storage, session_repository, FixedCountRecordings(50), recording_ids, clock
    )

    result = use_case.execute(_command(tier=SubscriptionTier.PAID))

    assert result.recording_id == "rec-1"


def test_failed_session_persist_aborts_storage_upload(storage, recording_ids, clock):
    use_case = _use_case_with(
        storage, BrokenSessionRepository(), FixedCountRecordings(0), recording_ids, clock
    )

    with pytest.raises(RuntimeError):
        use_case.execute(_command())

    assert storage.aborted == [("recordings/rec-1.webm", "upload-1")]
