"""Owner domain model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SubscriptionTier(str, Enum):
    FREE = "free"
    PAID = "paid"


@dataclass(frozen=True)
class User:
    """Account that owns recordings."""

    user_id: str
    email: str
    subscription_tier: SubscriptionTier
    created_at: datetime


@dataclass(frozen=True)
class Owner:
    """Caller identity resolved from a bearer credential."""

    owner_id: str
    tier: SubscriptionTier

    @property
    def is_free_tier(self) -> bool:
        return self.tier is SubscriptionTier.FREE
