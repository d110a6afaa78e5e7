# backend/studio_booking/models/booking.py
"""
Booking model.

A booking holds one seat in a class for one user while it is ``confirmed``.
Cancelled rows are kept (and reused if the same user books the same class
again) so history survives; only an explicit staff removal deletes a row.

``funded`` records whether a subscription credit was actually spent to create
the booking. It is the sole input to the refund decision on cancellation.
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    CONFIRMED = "confirmed"  # Holds a seat
    CANCELLED = "cancelled"
    COMPLETED = "completed"  # Set by post-class processing
    NO_SHOW = "no_show"  # Set by post-class processing


class CancelledBy(str, Enum):
    """Who initiated a cancellation."""

    USER = "user"
    STUDIO = "studio"
    RECEPTION = "reception"


class Booking(Base):
    """A user's reservation of a seat in a class."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), nullable=False, index=True)
    class_id = Column(String(26), ForeignKey("classes.id"), nullable=False, index=True)
    subscription_id = Column(String(26), ForeignKey("user_subscriptions.id"), nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    funded = Column(Boolean, nullable=False, default=False)
    # Bumped each time a cancelled row is reused for a new seat
    version = Column(Integer, nullable=False, default=1)
    checked_in = Column(Boolean, nullable=False, default=False)
    check_in_time = Column(DateTime(timezone=True), nullable=True)

    cancelled_by = Column(String(20), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    studio_class = relationship("StudioClass", back_populates="bookings")
    subscription = relationship("Subscription")

    __table_args__ = (
        # One live booking per (user, class); cancelled rows are exempt
        Index(
            "uq_bookings_user_class_live",
            "user_id",
            "class_id",
            unique=True,
            sqlite_where=text("status <> 'cancelled'"),
            postgresql_where=text("status <> 'cancelled'"),
        ),
        Index("ix_bookings_class_status", "class_id", "status"),
        CheckConstraint(
            "status IN ('confirmed', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "cancelled_by IS NULL OR cancelled_by IN ('user', 'studio', 'reception')",
            name="ck_bookings_cancelled_by",
        ),
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status == BookingStatus.CONFIRMED.value

    @property
    def is_cancelled(self) -> bool:
        return self.status == BookingStatus.CANCELLED.value

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id} user={self.user_id} class={self.class_id} "
            f"status={self.status} funded={self.funded}>"
        )
