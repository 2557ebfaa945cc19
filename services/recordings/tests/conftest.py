from datetime import datetime, timedelta, timezone

import pytest

from services.recordings.application.complete_recording import CompleteRecordingUseCase
from services.recordings.application.init_recording import InitRecordingUseCase
from services.recordings.application.watch_recording import WatchRecordingUseCase
from services.recordings.infrastructure.db import create_session_factory
from services.recordings.infrastructure.recordings import PostgresRecordingRepository
from services.recordings.infrastructure.upload_sessions import (
    PostgresUploadSessionRepository,
)
from services.recordings.infrastructure.users import PostgresUserRepository


class FakeStorage:
    def __init__(self) -> None:
        self.initiated: list[tuple[str, str]] = []
        self.completed: list[dict] = []
        self.aborted: list[tuple[str, str]] = []
        self.object_size: int | None = 4096
        self.complete_error: Exception | None = None

    def initiate_upload(self, object_key: str, content_type: str) -> str:
        self.initiated.append((object_key, content_type))
        return f"upload-{len(self.initiated)}"

    def generate_part_url(self, *, object_key, upload_id, part_no, expires_in_seconds):
        return (
            f"https://storage.test/{object_key}"
            f"?uploadId={upload_id}&partNumber={part_no}&expires={expires_in_seconds}"
        )

    def complete_upload(self, *, object_key, upload_id, parts):
        if self.complete_error is not None:
            raise self.complete_error
        self.completed.append(
            {"object_key": object_key, "upload_id": upload_id, "parts": list(parts)}
        )
        return f"https://storage.test/{object_key}"

    def abort_upload(self, *, object_key, upload_id):
        self.aborted.append((object_key, upload_id))

    def head_object_size(self, object_key):
        return self.object_size

    def generate_get_url(self, *, object_key, expires_in_seconds):
        return f"https://storage.test/{object_key}?get=1&expires={expires_in_seconds}"


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class SequenceIds:
    def __init__(self, values: list[str]) -> None:
        self._values = list(values)

    def generate(self) -> str:
        return self._values.pop(0)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def session_factory(tmp_path):
    return create_session_factory(f"sqlite:///{tmp_path / 'recordings.db'}")


@pytest.fixture
def session_repository(session_factory):
    return PostgresUploadSessionRepository(session_factory=session_factory)


@pytest.fixture
def recording_repository(session_factory):
    return PostgresRecordingRepository(session_factory=session_factory)


@pytest.fixture
def user_repository(session_factory):
    return PostgresUserRepository(session_factory=session_factory)


@pytest.fixture
def recording_ids():
    return SequenceIds([f"rec-{n}" for n in range(1, 20)])


@pytest.fixture
def share_tokens():
    return SequenceIds([f"token{n:07d}" for n in range(1, 20)])


@pytest.fixture
def init_use_case(storage, session_repository, recording_repository, recording_ids, clock):
    return InitRecordingUseCase(
        storage=storage,
        session_repository=session_repository,
        recording_repository=recording_repository,
        recording_id_provider=recording_ids,
        session_ttl=timedelta(minutes=15),
        max_parts=100,
        max_upload_bytes=100 * 5 * 1024 * 1024,
        free_tier_max_recordings=5,
        object_key_prefix="recordings",
        clock=clock,
    )


@pytest.fixture
def complete_use_case(
    storage, session_repository, recording_repository, share_tokens, clock
):
    return CompleteRecordingUseCase(
        storage=storage,
        session_repository=session_repository,
        recording_repository=recording_repository,
        share_token_provider=share_tokens,
        watch_base_url="https://watch.test/",
        free_tier_retention=timedelta(days=30),
        clock=clock,
    )


@pytest.fixture
def watch_use_case(storage, recording_repository, clock):
    return WatchRecordingUseCase(
        storage=storage,
        recording_repository=recording_repository,
        url_ttl_seconds=3600,
        clock=clock,
    )


@pytest.fixture
def sequence_ids():
    return SequenceIds
