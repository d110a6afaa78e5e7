"""Reservation domain events handed to the notification sink."""
from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict, Optional


@dataclass
class ReservationEvent:
    """Common payload: who, which class, and what to show them."""

    event_type: ClassVar[str] = "reservation_event"

    user_id: str
    class_id: str
    class_name: str
    class_date: str
    class_time: str

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["event_type"] = self.event_type
        return payload


@dataclass
class ClassBooked(ReservationEvent):
    """Fired after a seat is confirmed for a user."""

    event_type: ClassVar[str] = "class_booked"

    booking_id: str = ""
    funded: bool = False
    booking_version: int = 1


@dataclass
class ClassFull(ReservationEvent):
    """Fired when a booking takes the last seat. ``user_id`` is the user who filled it."""

    event_type: ClassVar[str] = "class_full"

    capacity: int = 0


@dataclass
class ClassCancelled(ReservationEvent):
    """Fired after a booking is cancelled or removed."""

    event_type: ClassVar[str] = "class_cancelled"

    booking_id: str = ""
    cancelled_by: str = "user"
    refunded: bool = False


@dataclass
class WaitlistJoined(ReservationEvent):
    """Fired after a user is queued for a full class."""

    event_type: ClassVar[str] = "waitlist_joined"

    entry_id: str = ""
    position: int = 0


@dataclass
class WaitlistMovedUp(ReservationEvent):
    """Fired for every entry whose position changed during renumbering."""

    event_type: ClassVar[str] = "waitlist_moved_up"

    entry_id: str = ""
    position: int = 0
    previous_position: Optional[int] = None


@dataclass
class WaitlistPromoted(ReservationEvent):
    """Fired when the waitlist head is given a freed seat."""

    event_type: ClassVar[str] = "waitlist_promoted"

    booking_id: str = ""
    funded: bool = False
    booking_version: int = 1
