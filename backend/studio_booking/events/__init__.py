"""Domain events emitted by the reservation engine."""

from .publisher import (
    EventPublisher,
    LoggingNotificationSink,
    NotificationSink,
)
from .reservation_events import (
    ClassBooked,
    ClassCancelled,
    ClassFull,
    ReservationEvent,
    WaitlistJoined,
    WaitlistMovedUp,
    WaitlistPromoted,
)

__all__ = [
    "ClassBooked",
    "ClassCancelled",
    "ClassFull",
    "EventPublisher",
    "LoggingNotificationSink",
    "NotificationSink",
    "ReservationEvent",
    "WaitlistJoined",
    "WaitlistMovedUp",
    "WaitlistPromoted",
]
