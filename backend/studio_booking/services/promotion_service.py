# backend/studio_booking/services/promotion_service.py
"""
Promotion cascade: hands a freed seat to the first eligible waitlisted user.

The cascade walks a snapshot of the waitlist taken when it starts, so it runs
at most once per entry. Entries that can no longer be promoted (already
seated, no plan, no credit) are removed from the queue as they are met;
the first user whose credit can be taken gets the seat and the walk stops.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import InsufficientCreditException, ValidationException
from ..core.timezone_utils import get_studio_today, hours_until, utc_now
from ..events.publisher import EventPublisher
from ..events.reservation_events import WaitlistPromoted
from ..models.studio_class import StudioClass
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .capacity_service import CapacityService
from .credit_service import CreditService
from .eligibility_service import EligibilityService
from .waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


@dataclass
class PromotionResult:
    """What the cascade did for one freed seat."""

    promoted: bool
    reason: str
    user_id: Optional[str] = None
    booking_id: Optional[str] = None
    booking_version: Optional[int] = None
    funded: bool = False
    skipped_user_ids: List[str] = field(default_factory=list)
    iterations: int = 0


class PromotionService(BaseService):
    """Runs the promotion cascade inside the caller's transaction and class lock."""

    def __init__(
        self,
        db: Session,
        publisher: Optional[EventPublisher] = None,
        *,
        credit_service: Optional[CreditService] = None,
        waitlist_service: Optional[WaitlistService] = None,
        eligibility_service: Optional[EligibilityService] = None,
        capacity_service: Optional[CapacityService] = None,
    ):
        super().__init__(db, publisher)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.waitlist_repository = RepositoryFactory.create_waitlist_repository(db)
        self.credit_service = credit_service or CreditService(db, self.publisher)
        self.waitlist_service = waitlist_service or WaitlistService(db, self.publisher)
        self.eligibility_service = eligibility_service or EligibilityService(
            db, self.publisher, credit_service=self.credit_service
        )
        self.capacity_service = capacity_service or CapacityService(db, self.publisher)

    def within_lead_time(self, studio_class: StudioClass, now: Optional[datetime] = None) -> bool:
        """True when the class starts too soon for a promotion."""
        return hours_until(studio_class.starts_at, now) <= settings.promotion_lead_time_hours

    @BaseService.measure_operation("promote_from_waitlist")
    def promote_next(
        self, studio_class: StudioClass, *, now: Optional[datetime] = None
    ) -> PromotionResult:
        """
        Offer the freed seat to the waitlist, head first.

        Fills at most one seat per call. The caller holds ``class_lock`` for
        the class and commits.
        """
        current = now or utc_now()
        today = get_studio_today(current)

        if not studio_class.is_active:
            prometheus_metrics.record_promotion("class_inactive")
            return PromotionResult(promoted=False, reason="class_inactive")

        if self.within_lead_time(studio_class, current):
            prometheus_metrics.record_promotion("lead_time")
            self.logger.info(
                "Skipping promotion inside lead time",
                extra={
                    "class_id": studio_class.id,
                    "lead_time_hours": settings.promotion_lead_time_hours,
                },
            )
            return PromotionResult(promoted=False, reason="lead_time")

        snapshot = self.waitlist_repository.get_for_class(studio_class.id)
        result = PromotionResult(promoted=False, reason="empty")

        for entry in snapshot:
            result.iterations += 1

            if not self.capacity_service.check(studio_class).has_room:
                result.reason = "no_seat"
                break

            user_id = entry.user_id

            if self.booking_repository.has_confirmed_booking(user_id, studio_class.id):
                # Stale entry: the user already got a seat some other way
                self.waitlist_service.remove_entry(entry, studio_class)
                result.skipped_user_ids.append(user_id)
                continue

            try:
                self.eligibility_service.check(user_id, studio_class, today=today)
                charge = self.credit_service.deduct(user_id, today=today)
            except (ValidationException, InsufficientCreditException) as exc:
                self.logger.info(
                    "Removing ineligible waitlist entry",
                    extra={
                        "class_id": studio_class.id,
                        "user_id": user_id,
                        "reason": getattr(exc, "code", type(exc).__name__),
                    },
                )
                self.waitlist_service.remove_entry(entry, studio_class)
                result.skipped_user_ids.append(user_id)
                prometheus_metrics.record_promotion("skipped")
                continue

            booking = self.booking_repository.upsert_confirmed(
                user_id=user_id,
                class_id=studio_class.id,
                subscription_id=charge.subscription_id,
                funded=charge.charged,
                confirmed_at=current,
            )
            self.waitlist_service.remove_entry(entry, studio_class)
            self.capacity_service.assert_within_capacity(studio_class)

            self.publisher.record(
                WaitlistPromoted(
                    user_id=user_id,
                    class_id=studio_class.id,
                    booking_id=booking.id,
                    booking_version=booking.version,
                    funded=booking.funded,
                    **studio_class.display_fields(),
                )
            )
            prometheus_metrics.record_promotion("promoted")
            self.log_operation(
                "waitlist_promoted",
                class_id=studio_class.id,
                user_id=user_id,
                booking_id=booking.id,
                skipped=len(result.skipped_user_ids),
            )

            result.promoted = True
            result.reason = "promoted"
            result.user_id = user_id
            result.booking_id = booking.id
            result.booking_version = booking.version
            result.funded = bool(booking.funded)
            return result

        if not result.promoted and result.reason == "empty" and snapshot:
            result.reason = "exhausted"
        if not result.promoted:
            prometheus_metrics.record_promotion(result.reason)
        return result
