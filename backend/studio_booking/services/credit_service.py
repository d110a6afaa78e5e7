"""Subscription credit ledger for class reservations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import InsufficientCreditException
from ..core.timezone_utils import get_studio_today
from ..events.publisher import EventPublisher
from ..models.studio_class import EquipmentType, StudioClass
from ..models.subscription import Subscription
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass
class CreditCharge:
    """Outcome of a deduction: ``charged`` is False when the plan is unlimited."""

    subscription_id: str
    charged: bool


@dataclass
class CreditRefund:
    """Outcome of a refund attempt; ``target`` says where the credit went."""

    refunded: bool
    target: str
    subscription_id: Optional[str] = None
    fallback_balance: Optional[int] = None
    error: Optional[str] = None


class CreditService(BaseService):
    """Deducts and refunds subscription credits and classifies plans."""

    def __init__(self, db: Session, publisher: Optional[EventPublisher] = None):
        super().__init__(db, publisher)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.balance_repository = RepositoryFactory.create_credit_balance_repository(db)

    # Classification

    @staticmethod
    def is_unlimited(subscription: Subscription) -> bool:
        return subscription.remaining_credits is None

    @staticmethod
    def equipment_satisfies(access: str, required: str) -> bool:
        """``both`` access covers any class; otherwise the access must match exactly."""
        return access == EquipmentType.BOTH.value or access == required

    @staticmethod
    def category_matches(subscription: Subscription, studio_class: StudioClass) -> bool:
        if subscription.is_personal:
            return studio_class.is_personal
        return not studio_class.is_personal

    @staticmethod
    def party_size_matches(subscription: Subscription, studio_class: StudioClass) -> bool:
        """Personal sessions must be exactly the size the plan was sold for."""
        if not studio_class.is_personal:
            return True
        return subscription.personal_party_size == studio_class.capacity

    # Lookups

    def get_active_subscription(
        self, user_id: str, today: Optional[date] = None
    ) -> Optional[Subscription]:
        """
        Resolve the subscription that pays for the user's bookings.

        Subscriptions whose end date has passed are flipped to expired first,
        so callers never see a lapsed plan as active.
        """
        day = today or get_studio_today()
        expired = self.subscription_repository.expire_lapsed(user_id=user_id, today=day)
        if expired:
            self.logger.info(
                "Expired lapsed subscriptions",
                extra={"user_id": user_id, "expired": expired, "today": day.isoformat()},
            )
        return self.subscription_repository.get_active_subscription(user_id=user_id, today=day)

    # Movements

    @BaseService.measure_operation("credit_deduct")
    def deduct(
        self, user_id: str, *, today: Optional[date] = None, use_transaction: bool = False
    ) -> CreditCharge:
        """
        Take one credit from the user's active subscription.

        Unlimited plans succeed without a mutation.

        Raises:
            InsufficientCreditException: No active subscription or no credit left
        """

        def _deduct() -> CreditCharge:
            subscription = self.get_active_subscription(user_id, today)
            if subscription is None:
                prometheus_metrics.record_credit_movement("deduct_rejected")
                raise InsufficientCreditException(user_id)

            if self.is_unlimited(subscription):
                prometheus_metrics.record_credit_movement("deduct_unlimited")
                return CreditCharge(subscription_id=subscription.id, charged=False)

            if not self.subscription_repository.decrement_credit(subscription.id):
                prometheus_metrics.record_credit_movement("deduct_rejected")
                raise InsufficientCreditException(user_id, subscription.id)

            prometheus_metrics.record_credit_movement("deduct")
            self.logger.debug(
                "Credit deducted",
                extra={"user_id": user_id, "subscription_id": subscription.id},
            )
            return CreditCharge(subscription_id=subscription.id, charged=True)

        if use_transaction:
            with self.transaction():
                return _deduct()
        return _deduct()

    @BaseService.measure_operation("credit_refund")
    def refund(
        self, user_id: str, *, today: Optional[date] = None, use_transaction: bool = False
    ) -> CreditRefund:
        """
        Return one credit to the user.

        Goes to the active subscription when there is one, else to the
        user-level fallback balance. Never raises: the work runs in a
        SAVEPOINT, and a failure rolls back only that savepoint and is
        reported as ``refunded=False`` with a warning in the log.
        """

        def _refund() -> CreditRefund:
            try:
                with self.db.begin_nested():
                    subscription = self.get_active_subscription(user_id, today)
                    if subscription is not None and self.is_unlimited(subscription):
                        prometheus_metrics.record_credit_movement("refund_unlimited")
                        return CreditRefund(
                            refunded=True,
                            target="unlimited",
                            subscription_id=subscription.id,
                        )
                    if subscription is not None:
                        if self.subscription_repository.increment_credit(subscription.id):
                            prometheus_metrics.record_credit_movement("refund")
                            return CreditRefund(
                                refunded=True,
                                target="subscription",
                                subscription_id=subscription.id,
                            )

                    # No active plan: keep the credit aside until the user renews
                    balance = self.balance_repository.add_credit(user_id)
                    prometheus_metrics.record_credit_movement("refund_fallback")
                    return CreditRefund(
                        refunded=True,
                        target="fallback_balance",
                        subscription_id=subscription.id if subscription else None,
                        fallback_balance=balance,
                    )
            except Exception as exc:
                prometheus_metrics.record_credit_movement("refund_failed")
                self.logger.warning(
                    "credit_refund_failed",
                    extra={
                        "user_id": user_id,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                return CreditRefund(refunded=False, target="failed", error=str(exc))

        if use_transaction:
            with self.transaction():
                return _refund()
        return _refund()

    @BaseService.measure_operation("credit_summary")
    def get_credit_summary(self, user_id: str, *, today: Optional[date] = None) -> Dict[str, Any]:
        """Remaining credits on the active plan plus any fallback balance."""
        with self.transaction():
            subscription = self.get_active_subscription(user_id, today)
            fallback = self.balance_repository.get_balance(user_id)

        summary: Dict[str, Any] = {
            "user_id": user_id,
            "has_active_subscription": subscription is not None,
            "subscription_id": None,
            "plan_name": None,
            "category": None,
            "equipment_access": None,
            "unlimited": False,
            "remaining_credits": None,
            "end_date": None,
            "fallback_credits": fallback,
        }
        if subscription is not None:
            summary.update(
                {
                    "subscription_id": subscription.id,
                    "plan_name": subscription.plan_name,
                    "category": subscription.category,
                    "equipment_access": subscription.equipment_access,
                    "unlimited": self.is_unlimited(subscription),
                    "remaining_credits": subscription.remaining_credits,
                    "end_date": subscription.end_date.isoformat(),
                }
            )
        return summary
