# backend/studio_booking/repositories/subscription_repository.py
"""
Subscription Repository for the studio reservation engine.

Credit movements are single conditional UPDATE statements so concurrent
deductions and refunds on the same subscription row cannot lose updates.
"""

from __future__ import annotations

from datetime import date
import logging
from typing import Optional, cast

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.subscription import Subscription, SubscriptionStatus, UserCreditBalance
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository[Subscription]):
    """Repository for subscription lookups and credit counters."""

    def __init__(self, db: Session):
        super().__init__(db, Subscription)
        self.logger = logging.getLogger(__name__)

    def expire_lapsed(self, *, user_id: str, today: date) -> int:
        """Flip the user's active subscriptions that ended before ``today`` to expired."""
        try:
            updated = (
                self.db.query(Subscription)
                .filter(
                    and_(
                        Subscription.user_id == user_id,
                        Subscription.status == SubscriptionStatus.ACTIVE.value,
                        Subscription.end_date < today,
                    )
                )
                .update(
                    {Subscription.status: SubscriptionStatus.EXPIRED.value},
                    synchronize_session="fetch",
                )
            )
            return int(updated or 0)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to expire subscriptions for %s: %s", user_id, str(exc))
            raise RepositoryException("Failed to expire subscriptions") from exc

    def get_active_subscription(self, *, user_id: str, today: date) -> Optional[Subscription]:
        """Most recently created active subscription that has not ended."""
        try:
            query = (
                self.db.query(Subscription)
                .filter(
                    and_(
                        Subscription.user_id == user_id,
                        Subscription.status == SubscriptionStatus.ACTIVE.value,
                        Subscription.end_date >= today,
                    )
                )
                .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            )
            return cast(Optional[Subscription], query.first())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load active subscription for %s: %s", user_id, str(exc))
            raise RepositoryException("Failed to load active subscription") from exc

    def decrement_credit(self, subscription_id: str) -> bool:
        """Atomically take one credit; False when the balance is already zero."""
        try:
            updated = (
                self.db.query(Subscription)
                .filter(
                    Subscription.id == subscription_id,
                    Subscription.remaining_credits.is_not(None),
                    Subscription.remaining_credits > 0,
                )
                .update(
                    {Subscription.remaining_credits: Subscription.remaining_credits - 1},
                    synchronize_session="fetch",
                )
            )
            return bool(updated)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to deduct credit from %s: %s", subscription_id, str(exc))
            raise RepositoryException("Failed to deduct credit") from exc

    def increment_credit(self, subscription_id: str) -> bool:
        """Atomically return one credit to a metered subscription."""
        try:
            updated = (
                self.db.query(Subscription)
                .filter(
                    Subscription.id == subscription_id,
                    Subscription.remaining_credits.is_not(None),
                )
                .update(
                    {Subscription.remaining_credits: Subscription.remaining_credits + 1},
                    synchronize_session="fetch",
                )
            )
            return bool(updated)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to refund credit to %s: %s", subscription_id, str(exc))
            raise RepositoryException("Failed to refund credit") from exc


class CreditBalanceRepository(BaseRepository[UserCreditBalance]):
    """Repository for the user-level fallback credit balance."""

    def __init__(self, db: Session):
        super().__init__(db, UserCreditBalance)
        self.logger = logging.getLogger(__name__)

    def get_balance(self, user_id: str) -> int:
        try:
            row = self.db.get(UserCreditBalance, user_id)
            return int(row.credits) if row else 0
        except SQLAlchemyError as exc:
            self.logger.error("Failed to read credit balance for %s: %s", user_id, str(exc))
            raise RepositoryException("Failed to read credit balance") from exc

    def add_credit(self, user_id: str, amount: int = 1) -> int:
        """Add ``amount`` credits to the fallback balance and return the new total."""
        try:
            updated = (
                self.db.query(UserCreditBalance)
                .filter(UserCreditBalance.user_id == user_id)
                .update(
                    {UserCreditBalance.credits: UserCreditBalance.credits + amount},
                    synchronize_session="fetch",
                )
            )
            if not updated:
                self.db.add(UserCreditBalance(user_id=user_id, credits=amount))
            self.db.flush()
            return self.get_balance(user_id)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to add fallback credit for %s: %s", user_id, str(exc))
            raise RepositoryException("Failed to add fallback credit") from exc


__all__ = ["CreditBalanceRepository", "SubscriptionRepository"]
