from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, func, update
from sqlalchemy.exc import IntegrityError

from ..application.errors import SessionInactive, ShareTokenCollision
from ..application.interfaces import RecordingRepository
from ..domain.recording import Recording
from ..domain.upload_session import UploadSessionStatus
from .db import Base, as_utc
from .upload_sessions import UploadSessionRecord


class RecordingRecord(Base):
    __tablename__ = "recordings"

    recording_id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    duration_seconds = Column(Integer, nullable=False)
    object_key = Column(String, nullable=False)
    byte_size = Column(BigInteger, nullable=False)
    share_token = Column(String, nullable=False, unique=True, index=True)
    is_public = Column(Boolean, nullable=False, default=True)
    view_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)


def _to_domain(record: RecordingRecord) -> Recording:
    return Recording(
        recording_id=record.recording_id,
        owner_id=record.owner_id,
        title=record.title,
        duration_seconds=record.duration_seconds,
        object_key=record.object_key,
        byte_size=record.byte_size,
        share_token=record.share_token,
        created_at=as_utc(record.created_at),
        expires_at=as_utc(record.expires_at),
        is_public=record.is_public,
        view_count=record.view_count or 0,
    )


class PostgresRecordingRepository(RecordingRepository):
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def count_for_owner(self, owner_id: str) -> int:
        with self._session_factory() as db:
            return (
                db.query(func.count(RecordingRecord.recording_id))
                .filter(RecordingRecord.owner_id == owner_id)
                .scalar()
            )

    def create_for_session(
        self, recording: Recording, *, session_id: str, parts_uploaded: int
    ) -> Recording:
        """Consume the upload session and insert the recording in one transaction.

        The conditional status update is the single-writer gate: a concurrent or
        repeated completion finds no ``uploading`` row and fails with
        ``SessionInactive``. The primary key on ``recording_id`` backs it up.
        """
        with self._session_factory() as db:
            claimed = db.execute(
                update(UploadSessionRecord)
                .where(
                    UploadSessionRecord.session_id == session_id,
                    UploadSessionRecord.status == UploadSessionStatus.UPLOADING.value,
                )
                .values(
                    status=UploadSessionStatus.COMPLETED.value,
                    parts_uploaded=parts_uploaded,
                )
            ).rowcount
            if claimed != 1:
                db.rollback()
                raise SessionInactive("Upload session is not active")

            db.add(
                RecordingRecord(
                    recording_id=recording.recording_id,
                    owner_id=recording.owner_id,
                    title=recording.title,
                    duration_seconds=recording.duration_seconds,
                    object_key=recording.object_key,
                    byte_size=recording.byte_size,
                    share_token=recording.share_token,
                    is_public=recording.is_public,
                    view_count=recording.view_count,
                    created_at=recording.created_at,
                    expires_at=recording.expires_at,
                )
            )
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                if db.get(RecordingRecord, recording.recording_id) is not None:
                    raise SessionInactive("Upload session is not active") from exc
                raise ShareTokenCollision(recording.share_token) from exc
        return recording

    def get_by_share_token(self, share_token: str) -> Recording | None:
        with self._session_factory() as db:
            record = (
                db.query(RecordingRecord)
                .filter(RecordingRecord.share_token == share_token)
                .one_or_none()
            )
            if record is None:
                return None
            return _to_domain(record)

    def increment_view_count(self, recording_id: str) -> None:
        with self._session_factory() as db:
            db.execute(
                update(RecordingRecord)
                .where(RecordingRecord.recording_id == recording_id)
                .values(view_count=RecordingRecord.view_count + 1)
            )
            db.commit()
