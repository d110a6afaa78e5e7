# backend/studio_booking/models/subscription.py
"""
Subscription and credit balance models.

A subscription grants class credits for a category (group or personal) and an
equipment access level. ``remaining_credits`` is NULL for unlimited plans.
When a refund arrives after every subscription of the user has lapsed, the
credit is parked on ``UserCreditBalance`` instead of being lost.
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer, String
from sqlalchemy.sql import func
import ulid

from ..database import Base


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class SubscriptionCategory(str, Enum):
    GROUP = "group"
    PERSONAL = "personal"


class Subscription(Base):
    """A user's subscription plan instance."""

    __tablename__ = "user_subscriptions"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), nullable=False, index=True)
    plan_name = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)
    category = Column(String(20), nullable=False, default=SubscriptionCategory.GROUP.value)
    # Personal plans are sold for a fixed party size (solo=1, duo=2, trio=3)
    personal_party_size = Column(Integer, nullable=True)
    equipment_access = Column(String(20), nullable=False, default="mat")
    remaining_credits = Column(Integer, nullable=True)

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("status IN ('active', 'expired')", name="ck_subscriptions_status"),
        CheckConstraint("category IN ('group', 'personal')", name="ck_subscriptions_category"),
        CheckConstraint(
            "equipment_access IN ('mat', 'reformer', 'both')",
            name="ck_subscriptions_equipment_access",
        ),
        CheckConstraint(
            "personal_party_size IS NULL OR personal_party_size IN (1, 2, 3)",
            name="ck_subscriptions_party_size",
        ),
        CheckConstraint(
            "remaining_credits IS NULL OR remaining_credits >= 0",
            name="ck_subscriptions_remaining_non_negative",
        ),
    )

    @property
    def is_unlimited(self) -> bool:
        return self.remaining_credits is None

    @property
    def is_personal(self) -> bool:
        return self.category == SubscriptionCategory.PERSONAL.value

    def has_credit(self) -> bool:
        return self.is_unlimited or (self.remaining_credits or 0) > 0

    def __repr__(self) -> str:
        remaining = "unlimited" if self.is_unlimited else self.remaining_credits
        return (
            f"<Subscription {self.id} user={self.user_id} {self.category}/{self.equipment_access} "
            f"status={self.status} remaining={remaining} ends={self.end_date}>"
        )


class UserCreditBalance(Base):
    """Fallback credits refunded while the user had no active subscription."""

    __tablename__ = "user_credit_balances"

    user_id = Column(String(26), primary_key=True)
    credits = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_user_credit_balances_non_negative"),
    )
