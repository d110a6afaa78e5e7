# backend/studio_booking/services/reservation_service.py
"""
Reservation Manager for the studio reservation engine.

Every write for a class runs as one transaction inside ``class_lock`` for
that class: the seat count, the credit movement, the booking write, waitlist
changes and the promotion cascade either all commit together or not at all.
Notifications are buffered and only delivered after the commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from ..core.class_lock import class_lock
from ..core.config import settings
from ..core.exceptions import (
    BookingNotFoundException,
    BookingStateException,
    CancellationWindowClosedException,
    ClassNotBookableException,
    ClassNotFoundException,
    ValidationException,
)
from ..core.timezone_utils import get_studio_today, hours_until, utc_now
from ..events.publisher import EventPublisher
from ..events.reservation_events import ClassBooked, ClassCancelled, ClassFull
from ..models.booking import Booking, BookingStatus, CancelledBy
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .capacity_service import CapacityService
from .credit_service import CreditRefund, CreditService
from .eligibility_service import EligibilityService
from .promotion_service import PromotionResult, PromotionService
from .waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


class ReservationOutcome(str, Enum):
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"


@dataclass
class ReservationResult:
    """Result of a reservation request; ``existing`` marks a repeated request."""

    outcome: ReservationOutcome
    user_id: str
    class_id: str
    booking_id: Optional[str] = None
    booking_version: Optional[int] = None
    funded: bool = False
    waitlist_entry_id: Optional[str] = None
    position: Optional[int] = None
    existing: bool = False

    @property
    def is_confirmed(self) -> bool:
        return self.outcome == ReservationOutcome.CONFIRMED


@dataclass
class CancellationResult:
    """Result of a cancellation or staff removal."""

    booking_id: str
    user_id: str
    class_id: str
    status: str
    cancelled_by: str
    booking_version: Optional[int] = None
    refund: Optional[CreditRefund] = None
    promotion: Optional[PromotionResult] = None
    already_cancelled: bool = False
    removed: bool = False

    @property
    def refunded(self) -> bool:
        return bool(self.refund and self.refund.refunded)


class ReservationService(BaseService):
    """
    Top-level orchestrator for bookings.

    Collaborating services share this service's session and event publisher,
    so the transaction opened here covers all their writes.
    """

    def __init__(self, db: Session, publisher: Optional[EventPublisher] = None):
        super().__init__(db, publisher)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.class_repository = RepositoryFactory.create_class_repository(db)

        self.credit_service = CreditService(db, self.publisher)
        self.eligibility_service = EligibilityService(
            db, self.publisher, credit_service=self.credit_service
        )
        self.capacity_service = CapacityService(db, self.publisher)
        self.waitlist_service = WaitlistService(db, self.publisher)
        self.promotion_service = PromotionService(
            db,
            self.publisher,
            credit_service=self.credit_service,
            waitlist_service=self.waitlist_service,
            eligibility_service=self.eligibility_service,
            capacity_service=self.capacity_service,
        )

    @BaseService.measure_operation("create_reservation")
    def create_reservation(
        self,
        user_id: str,
        class_id: str,
        *,
        override: bool = False,
        now: Optional[datetime] = None,
    ) -> ReservationResult:
        """
        Book a seat, or queue the user when the class is full.

        A full class is not an error: the user is waitlisted and the position
        returned. Repeating a request returns the current seat or position.
        Staff ``override`` skips plan and credit checks and books without
        charging; capacity still applies.

        Raises:
            ClassNotFoundException: Class missing or cancelled
            ClassNotBookableException: Class already started
            ValidationException: An eligibility check failed
            InsufficientCreditException: Credit vanished between check and charge
            CapacityExceededException: Recount after the write found too many seats
        """
        current = now or utc_now()
        today = get_studio_today(current)

        with class_lock(class_id):
            with self.transaction():
                studio_class = self.class_repository.get_active_class(class_id, for_update=True)
                if studio_class is None:
                    raise ClassNotFoundException(class_id)
                if studio_class.starts_at <= current:
                    raise ClassNotBookableException(class_id)

                existing = self.booking_repository.get_for_user_and_class(user_id, class_id)
                if existing is not None and existing.is_confirmed:
                    prometheus_metrics.record_reservation("existing")
                    return ReservationResult(
                        outcome=ReservationOutcome.CONFIRMED,
                        user_id=user_id,
                        class_id=class_id,
                        booking_id=existing.id,
                        booking_version=existing.version,
                        funded=bool(existing.funded),
                        existing=True,
                    )

                capacity = self.capacity_service.check(studio_class)
                placement = self.waitlist_service.placement_for(user_id, class_id)

                if not capacity.has_room and placement is not None:
                    prometheus_metrics.record_reservation("existing")
                    return ReservationResult(
                        outcome=ReservationOutcome.WAITLISTED,
                        user_id=user_id,
                        class_id=class_id,
                        waitlist_entry_id=placement.entry_id,
                        position=placement.position,
                        existing=True,
                    )

                subscription = self.eligibility_service.check(
                    user_id, studio_class, override=override, today=today
                )

                if not capacity.has_room:
                    placement = self.waitlist_service.enqueue(user_id, studio_class)
                    prometheus_metrics.record_reservation("waitlisted")
                    self.log_operation(
                        "reservation_waitlisted",
                        user_id=user_id,
                        class_id=class_id,
                        position=placement.position,
                    )
                    return ReservationResult(
                        outcome=ReservationOutcome.WAITLISTED,
                        user_id=user_id,
                        class_id=class_id,
                        waitlist_entry_id=placement.entry_id,
                        position=placement.position,
                    )

                if override:
                    subscription_id = subscription.id if subscription is not None else None
                    funded = False
                else:
                    charge = self.credit_service.deduct(user_id, today=today)
                    subscription_id = charge.subscription_id
                    funded = charge.charged

                booking = self.booking_repository.upsert_confirmed(
                    user_id=user_id,
                    class_id=class_id,
                    subscription_id=subscription_id,
                    funded=funded,
                    confirmed_at=current,
                )
                confirmed = self.capacity_service.assert_within_capacity(studio_class)

                if placement is not None:
                    entry = self.waitlist_service.waitlist_repository.get_by_id(placement.entry_id)
                    if entry is not None:
                        self.waitlist_service.remove_entry(entry, studio_class)

                display = studio_class.display_fields()
                self.publisher.record(
                    ClassBooked(
                        user_id=user_id,
                        class_id=class_id,
                        booking_id=booking.id,
                        booking_version=booking.version,
                        funded=funded,
                        **display,
                    )
                )
                if confirmed == studio_class.capacity:
                    self.publisher.record(
                        ClassFull(
                            user_id=user_id,
                            class_id=class_id,
                            capacity=studio_class.capacity,
                            **display,
                        )
                    )

                prometheus_metrics.record_reservation("confirmed")
                self.log_operation(
                    "reservation_confirmed",
                    user_id=user_id,
                    class_id=class_id,
                    booking_id=booking.id,
                    funded=funded,
                    override=override,
                )
                return ReservationResult(
                    outcome=ReservationOutcome.CONFIRMED,
                    user_id=user_id,
                    class_id=class_id,
                    booking_id=booking.id,
                    booking_version=booking.version,
                    funded=funded,
                )

    @BaseService.measure_operation("cancel_reservation")
    def cancel_reservation(
        self,
        booking_id: str,
        cancelled_by: Union[CancelledBy, str] = CancelledBy.USER,
        *,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CancellationResult:
        """
        Cancel a booking, refund it if a credit paid for it, and promote from the waitlist.

        Cancelling an already cancelled booking returns its state unchanged.
        With ``expected_version`` the request only applies to that seat of the
        row: once the row was cancelled and reused for a later seat, a retried
        request for the earlier one is answered as already cancelled.
        Users cannot cancel inside the cancellation cutoff; studio and
        reception can cancel at any time.

        Raises:
            BookingNotFoundException: No such booking
            BookingStateException: Booking is completed or a no-show
            CancellationWindowClosedException: User cancellation inside the cutoff
        """
        actor = self._parse_actor(cancelled_by)
        current = now or utc_now()
        class_id = self._class_id_for_booking(booking_id)

        with class_lock(class_id):
            with self.transaction():
                booking = self.booking_repository.get_with_class(booking_id, for_update=True)
                if booking is None:
                    raise BookingNotFoundException(booking_id)

                if expected_version is not None and booking.version != expected_version:
                    self.logger.info(
                        "Ignoring cancellation for a superseded seat",
                        extra={
                            "booking_id": booking.id,
                            "expected_version": expected_version,
                            "version": booking.version,
                        },
                    )
                    return CancellationResult(
                        booking_id=booking.id,
                        user_id=booking.user_id,
                        class_id=booking.class_id,
                        status=BookingStatus.CANCELLED.value,
                        cancelled_by=actor.value,
                        booking_version=expected_version,
                        already_cancelled=True,
                    )

                if booking.is_cancelled:
                    return CancellationResult(
                        booking_id=booking.id,
                        user_id=booking.user_id,
                        class_id=booking.class_id,
                        status=booking.status,
                        cancelled_by=booking.cancelled_by or actor.value,
                        booking_version=booking.version,
                        already_cancelled=True,
                    )

                if not booking.is_confirmed:
                    raise BookingStateException(
                        booking.id, booking.status, "Only confirmed bookings can be cancelled"
                    )

                studio_class = booking.studio_class
                if actor == CancelledBy.USER:
                    hours_before = hours_until(studio_class.starts_at, current)
                    if hours_before < settings.user_cancellation_cutoff_hours:
                        raise CancellationWindowClosedException(
                            settings.user_cancellation_cutoff_hours, hours_before
                        )

                booking.status = BookingStatus.CANCELLED.value
                booking.cancelled_by = actor.value
                booking.cancelled_at = current
                self.db.flush()

                refund = None
                if booking.funded:
                    refund = self.credit_service.refund(
                        booking.user_id, today=get_studio_today(current)
                    )

                self.publisher.record(
                    ClassCancelled(
                        user_id=booking.user_id,
                        class_id=booking.class_id,
                        booking_id=booking.id,
                        cancelled_by=actor.value,
                        refunded=bool(refund and refund.refunded),
                        **studio_class.display_fields(),
                    )
                )
                promotion = self.promotion_service.promote_next(studio_class, now=current)

                self.log_operation(
                    "reservation_cancelled",
                    booking_id=booking.id,
                    class_id=booking.class_id,
                    cancelled_by=actor.value,
                    refunded=bool(refund and refund.refunded),
                    promoted=promotion.promoted,
                )
                return CancellationResult(
                    booking_id=booking.id,
                    user_id=booking.user_id,
                    class_id=booking.class_id,
                    status=booking.status,
                    cancelled_by=actor.value,
                    booking_version=booking.version,
                    refund=refund,
                    promotion=promotion,
                )

    @BaseService.measure_operation("remove_reservation")
    def remove_reservation(
        self,
        booking_id: str,
        removed_by: Union[CancelledBy, str] = CancelledBy.STUDIO,
        *,
        now: Optional[datetime] = None,
    ) -> CancellationResult:
        """
        Staff removal: delete the booking row and give the credit back.

        The refund does not depend on the funding flag. A row that was already
        cancelled had its seat released before, so it is deleted without a refund.

        Raises:
            BookingNotFoundException: No such booking
            ValidationException: Removal requested by a non-staff actor
        """
        actor = self._parse_actor(removed_by)
        if actor == CancelledBy.USER:
            raise ValidationException(
                "Only studio staff can remove a reservation", code="STAFF_ONLY_OPERATION"
            )
        current = now or utc_now()
        class_id = self._class_id_for_booking(booking_id)

        with class_lock(class_id):
            with self.transaction():
                booking = self.booking_repository.get_with_class(booking_id, for_update=True)
                if booking is None:
                    raise BookingNotFoundException(booking_id)

                studio_class = booking.studio_class
                held_seat = booking.is_confirmed
                was_cancelled = booking.is_cancelled
                user_id = booking.user_id
                version = booking.version

                self.db.delete(booking)
                self.db.flush()

                refund = None
                if not was_cancelled:
                    refund = self.credit_service.refund(user_id, today=get_studio_today(current))

                self.publisher.record(
                    ClassCancelled(
                        user_id=user_id,
                        class_id=class_id,
                        booking_id=booking_id,
                        cancelled_by=actor.value,
                        refunded=bool(refund and refund.refunded),
                        **studio_class.display_fields(),
                    )
                )
                promotion = None
                if held_seat:
                    promotion = self.promotion_service.promote_next(studio_class, now=current)

                self.log_operation(
                    "reservation_removed",
                    booking_id=booking_id,
                    class_id=class_id,
                    removed_by=actor.value,
                    refunded=bool(refund and refund.refunded),
                )
                return CancellationResult(
                    booking_id=booking_id,
                    user_id=user_id,
                    class_id=class_id,
                    status="removed",
                    cancelled_by=actor.value,
                    booking_version=version,
                    refund=refund,
                    promotion=promotion,
                    already_cancelled=was_cancelled,
                    removed=True,
                )

    @BaseService.measure_operation("check_in")
    def check_in(self, booking_id: str, *, now: Optional[datetime] = None) -> Booking:
        """
        Mark a confirmed booking as attended.

        Raises:
            BookingNotFoundException: No such booking
            BookingStateException: Not confirmed, or already checked in
        """
        current = now or utc_now()
        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True)
            if booking is None:
                raise BookingNotFoundException(booking_id)
            if not booking.is_confirmed:
                raise BookingStateException(
                    booking.id, booking.status, "Only confirmed bookings can be checked in"
                )
            if booking.checked_in:
                raise BookingStateException(booking.id, booking.status, "Already checked in")
            booking.checked_in = True
            booking.check_in_time = current
        return booking

    def get_class_attendees(self, class_id: str) -> List[Booking]:
        """Confirmed bookings of a class in booking order."""
        if self.class_repository.get_by_id(class_id) is None:
            raise ClassNotFoundException(class_id)
        return self.booking_repository.get_confirmed_for_class(class_id)

    @staticmethod
    def _parse_actor(actor: Union[CancelledBy, str]) -> CancelledBy:
        try:
            return CancelledBy(actor)
        except ValueError:
            raise ValidationException(
                f"Unknown cancellation actor: {actor}",
                code="INVALID_CANCELLED_BY",
                details={"cancelled_by": str(actor)},
            )

    def _class_id_for_booking(self, booking_id: str) -> str:
        """
        Resolve the class to lock for a booking.

        The read runs as its own unit of work, so the locked section that
        follows starts from a fresh snapshot. Work already pending on the
        session is committed with it.
        """
        with self.transaction():
            class_id = self.booking_repository.get_class_id(booking_id)
        if class_id is None:
            raise BookingNotFoundException(booking_id)
        return class_id
