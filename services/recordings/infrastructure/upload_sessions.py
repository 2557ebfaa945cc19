from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String, update

from ..application.interfaces import UploadSessionRepository
from ..domain.upload_session import UploadSession, UploadSessionStatus
from .db import Base, as_utc


class UploadSessionRecord(Base):
    __tablename__ = "upload_sessions"
    __table_args__ = (Index("ix_upload_sessions_status_expires_at", "status", "expires_at"),)

    session_id = Column(String, primary_key=True)
    recording_id = Column(String, nullable=False, unique=True, index=True)
    owner_id = Column(String, nullable=False, index=True)
    provider_upload_id = Column(String, nullable=False)
    object_key = Column(String, nullable=False)
    status = Column(String, nullable=False)
    parts_uploaded = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)


def _to_domain(record: UploadSessionRecord) -> UploadSession:
    return UploadSession(
        session_id=record.session_id,
        recording_id=record.recording_id,
        owner_id=record.owner_id,
        provider_upload_id=record.provider_upload_id,
        object_key=record.object_key,
        status=UploadSessionStatus(record.status),
        created_at=as_utc(record.created_at),
        expires_at=as_utc(record.expires_at),
        parts_uploaded=record.parts_uploaded or 0,
    )


class PostgresUploadSessionRepository(UploadSessionRepository):
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def create(self, session: UploadSession) -> UploadSession:
        record = UploadSessionRecord(
            session_id=session.session_id,
            recording_id=session.recording_id,
            owner_id=session.owner_id,
            provider_upload_id=session.provider_upload_id,
            object_key=session.object_key,
            status=session.status.value,
            parts_uploaded=session.parts_uploaded,
            created_at=session.created_at,
            expires_at=session.expires_at,
        )
        with self._session_factory() as db:
            db.add(record)
            db.commit()
        return session

    def get_by_recording_id(self, recording_id: str) -> UploadSession | None:
        with self._session_factory() as db:
            record = (
                db.query(UploadSessionRecord)
                .filter(UploadSessionRecord.recording_id == recording_id)
                .one_or_none()
            )
            if record is None:
                return None
            return _to_domain(record)

    def close(self, session_id: str, status: UploadSessionStatus) -> bool:
        """Move an ``uploading`` session to a terminal status.

        Returns False when the session already left ``uploading``; statuses
        never move backward.
        """
        with self._session_factory() as db:
            closed = db.execute(
                update(UploadSessionRecord)
                .where(
                    UploadSessionRecord.session_id == session_id,
                    UploadSessionRecord.status == UploadSessionStatus.UPLOADING.value,
                )
                .values(status=status.value)
            ).rowcount
            db.commit()
        return closed == 1

    def list_stale(self, now: datetime) -> list[UploadSession]:
        with self._session_factory() as db:
            records = (
                db.query(UploadSessionRecord)
                .filter(
                    UploadSessionRecord.status == UploadSessionStatus.UPLOADING.value,
                    UploadSessionRecord.expires_at < now,
                )
                .all()
            )
            return [_to_domain(record) for record in records]
