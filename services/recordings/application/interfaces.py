from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..domain.recording import Recording
    from ..domain.upload_session import UploadSession, UploadSessionStatus
    from ..domain.user import Owner, User


class IdProvider(Protocol):
    def generate(self) -> str: ...


class MultipartStorage(Protocol):
    def initiate_upload(self, object_key: str, content_type: str) -> str: ...

    def generate_part_url(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_no: int,
        expires_in_seconds: int,
    ) -> str: ...

    def complete_upload(
        self, *, object_key: str, upload_id: str, parts: list[tuple[int, str]]
    ) -> str | None: ...

    def abort_upload(self, *, object_key: str, upload_id: str) -> None: ...

    def head_object_size(self, object_key: str) -> int | None: ...

    def generate_get_url(self, *, object_key: str, expires_in_seconds: int) -> str: ...


class UploadSessionRepository(Protocol):
    def create(self, session: "UploadSession") -> "UploadSession": ...

    def get_by_recording_id(self, recording_id: str) -> "UploadSession" | None: ...

    def close(self, session_id: str, status: "UploadSessionStatus") -> bool: ...

    def list_stale(self, now: datetime) -> list["UploadSession"]: ...


class RecordingRepository(Protocol):
    def count_for_owner(self, owner_id: str) -> int: ...

    def create_for_session(
        self, recording: "Recording", *, session_id: str, parts_uploaded: int
    ) -> "Recording": ...

    def get_by_share_token(self, share_token: str) -> "Recording" | None: ...

    def increment_view_count(self, recording_id: str) -> None: ...


class UserRepository(Protocol):
    def create(self, user: "User") -> "User": ...

    def get_by_id(self, user_id: str) -> "User" | None: ...


class IdentityProvider(Protocol):
    def resolve(self, credential: str) -> "Owner": ...
