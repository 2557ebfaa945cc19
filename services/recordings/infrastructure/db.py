from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


def _engine_options(dsn: str):
    if dsn.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
    }


class Base(DeclarativeBase):
    pass


def create_session_factory(dsn: str):
    # Table classes register themselves on Base when imported.
    from . import recordings, upload_sessions, users  # noqa: F401

    engine = create_engine(dsn, **_engine_options(dsn))
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on round-trip; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
