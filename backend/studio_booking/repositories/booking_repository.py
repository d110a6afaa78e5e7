# backend/studio_booking/repositories/booking_repository.py
"""
Booking Repository for the studio reservation engine.

Holds the seat-counting and per-(user, class) lookups the capacity gatekeeper
and reservation manager run inside the class critical section.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking rows."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def count_confirmed(self, class_id: str) -> int:
        """Number of seats currently held in a class."""
        try:
            result = (
                self.db.query(func.count(Booking.id))
                .filter(
                    Booking.class_id == class_id,
                    Booking.status == BookingStatus.CONFIRMED.value,
                )
                .scalar()
            )
            return int(result or 0)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to count confirmed bookings for %s: %s", class_id, str(exc))
            raise RepositoryException("Failed to count confirmed bookings") from exc

    def get_class_id(self, booking_id: str) -> Optional[str]:
        """Class of a booking, read without loading the row into the session."""
        try:
            return cast(
                Optional[str],
                self.db.query(Booking.class_id).filter(Booking.id == booking_id).scalar(),
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to read class of booking %s: %s", booking_id, str(exc))
            raise RepositoryException("Failed to load booking") from exc

    def get_with_class(self, booking_id: str, *, for_update: bool = False) -> Optional[Booking]:
        """Load a booking together with its class."""
        try:
            query = (
                self.db.query(Booking)
                .options(joinedload(Booking.studio_class))
                .filter(Booking.id == booking_id)
            )
            return cast(Optional[Booking], self._lockable(query, for_update).first())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load booking %s: %s", booking_id, str(exc))
            raise RepositoryException("Failed to load booking") from exc

    def get_for_user_and_class(self, user_id: str, class_id: str) -> Optional[Booking]:
        """
        Return the row for a (user, class) pair.

        A live (non-cancelled) row wins; otherwise the most recent cancelled
        row is returned so it can be reused instead of inserting a new one.
        """
        try:
            cancelled_last = case((Booking.status == BookingStatus.CANCELLED.value, 1), else_=0)
            query = (
                self.db.query(Booking)
                .filter(Booking.user_id == user_id, Booking.class_id == class_id)
                .order_by(cancelled_last.asc(), Booking.created_at.desc(), Booking.id.desc())
            )
            return cast(Optional[Booking], query.first())
        except SQLAlchemyError as exc:
            self.logger.error(
                "Failed to load booking for user %s class %s: %s", user_id, class_id, str(exc)
            )
            raise RepositoryException("Failed to load booking for user and class") from exc

    def has_confirmed_booking(self, user_id: str, class_id: str) -> bool:
        try:
            return (
                self.db.query(Booking.id)
                .filter(
                    Booking.user_id == user_id,
                    Booking.class_id == class_id,
                    Booking.status == BookingStatus.CONFIRMED.value,
                )
                .first()
                is not None
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to check confirmed booking: %s", str(exc))
            raise RepositoryException("Failed to check confirmed booking") from exc

    def upsert_confirmed(
        self,
        *,
        user_id: str,
        class_id: str,
        subscription_id: Optional[str],
        funded: bool,
        confirmed_at: datetime,
    ) -> Booking:
        """
        Give a user a confirmed seat.

        A previously cancelled row for the pair is reused and its ``version``
        bumped, so requests issued against the earlier seat can be told apart;
        otherwise a new row is inserted. IntegrityError propagates if a live
        row already exists.
        """
        fields = {
            "status": BookingStatus.CONFIRMED.value,
            "subscription_id": subscription_id,
            "funded": funded,
            "checked_in": False,
            "check_in_time": None,
            "cancelled_by": None,
            "cancelled_at": None,
            "confirmed_at": confirmed_at,
        }
        existing = self.get_for_user_and_class(user_id, class_id)
        if existing is not None and existing.status == BookingStatus.CANCELLED.value:
            for key, value in fields.items():
                setattr(existing, key, value)
            existing.version = (existing.version or 1) + 1
            self.db.flush()
            return existing
        return self.create(user_id=user_id, class_id=class_id, **fields)

    def get_confirmed_for_class(self, class_id: str) -> List[Booking]:
        """Confirmed bookings of a class in the order seats were taken."""
        try:
            query = (
                self.db.query(Booking)
                .filter(
                    Booking.class_id == class_id,
                    Booking.status == BookingStatus.CONFIRMED.value,
                )
                .order_by(Booking.confirmed_at.asc(), Booking.id.asc())
            )
            return cast(List[Booking], query.all())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load attendees for %s: %s", class_id, str(exc))
            raise RepositoryException("Failed to load class attendees") from exc


__all__ = ["BookingRepository"]
