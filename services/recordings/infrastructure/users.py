from __future__ import annotations

from sqlalchemy import Column, DateTime, String

from ..domain.user import SubscriptionTier, User
from .db import Base, as_utc


class UserRecord(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)
    subscription_tier = Column(
        String, nullable=False, default=SubscriptionTier.FREE.value
    )
    created_at = Column(DateTime(timezone=True), nullable=False)

    def to_domain(self) -> User:
        return User(
            user_id=self.user_id,
            email=self.email,
            subscription_tier=SubscriptionTier(self.subscription_tier),
            created_at=as_utc(self.created_at),
        )


class PostgresUserRepository:
    """Accounts are provisioned elsewhere; this side only needs tier lookups."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    def create(self, user: User) -> User:
        with self._session_factory() as db:
            db.add(
                UserRecord(
                    user_id=user.user_id,
                    email=user.email,
                    subscription_tier=user.subscription_tier.value,
                    created_at=user.created_at,
                )
            )
            db.commit()
        return user

    def get_by_id(self, user_id: str) -> User | None:
        with self._session_factory() as db:
            record = db.get(UserRecord, user_id)
            return record.to_domain() if record is not None else None
