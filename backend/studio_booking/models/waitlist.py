# backend/studio_booking/models/waitlist.py
"""Waitlist entries: a dense, 1-based queue of users per class."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class WaitlistEntry(Base):
    """A user's place in a class waitlist. Position 1 is the next to be promoted."""

    __tablename__ = "waitlist"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), nullable=False, index=True)
    class_id = Column(String(26), ForeignKey("classes.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    studio_class = relationship("StudioClass", back_populates="waitlist_entries")

    __table_args__ = (
        UniqueConstraint("class_id", "position", name="uq_waitlist_class_position"),
        UniqueConstraint("user_id", "class_id", name="uq_waitlist_user_class"),
        CheckConstraint("position >= 1", name="ck_waitlist_position_positive"),
    )

    def __repr__(self) -> str:
        return f"<WaitlistEntry {self.id} class={self.class_id} user={self.user_id} #{self.position}>"
