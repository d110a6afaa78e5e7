"""
Eligibility checks run before a reservation attempt.

Checks short-circuit in a fixed order so the user always sees the most
fundamental problem first: no plan, wrong category, wrong party size, no
credit, then equipment.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    CapacityMismatchException,
    CategoryMismatchException,
    EquipmentAccessDeniedException,
    NoActiveSubscriptionException,
    NoCreditsRemainingException,
)
from ..events.publisher import EventPublisher
from ..models.studio_class import StudioClass
from ..models.subscription import Subscription
from .base import BaseService
from .credit_service import CreditService


class EligibilityService(BaseService):
    """Decides whether a user may book a class."""

    def __init__(
        self,
        db: Session,
        publisher: Optional[EventPublisher] = None,
        credit_service: Optional[CreditService] = None,
    ):
        super().__init__(db, publisher)
        self.credit_service = credit_service or CreditService(db, self.publisher)

    @BaseService.measure_operation("check_eligibility")
    def check(
        self,
        user_id: str,
        studio_class: StudioClass,
        *,
        override: bool = False,
        today: Optional[date] = None,
    ) -> Optional[Subscription]:
        """
        Validate a booking attempt and return the subscription that would pay for it.

        With ``override`` the subscription, category, party size and credit
        checks are skipped; equipment is still checked when the user has a plan.
        Capacity is never part of eligibility.

        Raises:
            NoActiveSubscriptionException
            CategoryMismatchException
            CapacityMismatchException
            NoCreditsRemainingException
            EquipmentAccessDeniedException
        """
        subscription = self.credit_service.get_active_subscription(user_id, today)

        if not override:
            if subscription is None:
                raise NoActiveSubscriptionException(user_id)

            if not CreditService.category_matches(subscription, studio_class):
                raise CategoryMismatchException(subscription.category, studio_class.category)

            if not CreditService.party_size_matches(subscription, studio_class):
                raise CapacityMismatchException(
                    subscription.personal_party_size, studio_class.capacity
                )

            if not subscription.has_credit():
                raise NoCreditsRemainingException(subscription.id)

        if subscription is not None and not CreditService.equipment_satisfies(
            subscription.equipment_access, studio_class.equipment_type
        ):
            raise EquipmentAccessDeniedException(
                subscription.equipment_access, studio_class.equipment_type
            )

        return subscription
