# backend/studio_booking/models/studio_class.py
"""
Scheduled class model.

A class is published by the scheduling side of the studio and is treated as
immutable by the reservation engine: it only reads capacity, category,
equipment and the start time to decide what a reservation may do.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer, String, Time
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import studio_local_to_utc
from ..database import Base


class ClassCategory(str, Enum):
    """Group classes or personal (solo/duo/trio) sessions."""

    GROUP = "group"
    PERSONAL = "personal"


class EquipmentType(str, Enum):
    """Equipment a class uses, or that a subscription grants."""

    MAT = "mat"
    REFORMER = "reformer"
    BOTH = "both"


class ClassStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class StudioClass(Base):
    """A scheduled class with a fixed number of seats."""

    __tablename__ = "classes"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)
    instructor_id = Column(String(26), nullable=True, index=True)

    # Studio-local schedule
    class_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=50)
    room = Column(String(100), nullable=True)

    capacity = Column(Integer, nullable=False)
    category = Column(String(20), nullable=False, default=ClassCategory.GROUP.value)
    equipment_type = Column(String(20), nullable=False, default=EquipmentType.MAT.value)
    status = Column(String(20), nullable=False, default=ClassStatus.ACTIVE.value, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    bookings = relationship("Booking", back_populates="studio_class")
    waitlist_entries = relationship(
        "WaitlistEntry",
        back_populates="studio_class",
        order_by="WaitlistEntry.position",
    )

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_classes_capacity_positive"),
        CheckConstraint("category IN ('group', 'personal')", name="ck_classes_category"),
        CheckConstraint(
            "equipment_type IN ('mat', 'reformer', 'both')", name="ck_classes_equipment_type"
        ),
        CheckConstraint("status IN ('active', 'cancelled')", name="ck_classes_status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ClassStatus.ACTIVE.value

    @property
    def is_personal(self) -> bool:
        return self.category == ClassCategory.PERSONAL.value

    @property
    def starts_at(self) -> datetime:
        """Start of the class as an aware UTC datetime."""
        return studio_local_to_utc(self.class_date, self.start_time)

    def display_fields(self) -> dict:
        """Minimal fields carried on notification events."""
        return {
            "class_name": self.name,
            "class_date": self.class_date.isoformat(),
            "class_time": self.start_time.strftime("%H:%M"),
        }

    def __repr__(self) -> str:
        return (
            f"<StudioClass {self.id} {self.name!r} {self.class_date} {self.start_time} "
            f"capacity={self.capacity}>"
        )
