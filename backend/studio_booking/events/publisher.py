"""
Event publisher - hands domain events to the notification sink.

Events raised while a reservation is being processed are buffered and only
delivered once the surrounding transaction has committed, so a rolled back
reservation never produces a notification. Delivery is fire-and-forget: a
sink failure is logged and never reaches the caller.
"""
import logging
from typing import Any, Dict, List, Protocol

from .reservation_events import ReservationEvent

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    event_type: str

    def to_dict(self) -> Dict[str, Any]:
        ...


class NotificationSink(Protocol):
    """External collaborator that delivers events to users."""

    def deliver(self, event: Event) -> None:
        ...


class LoggingNotificationSink:
    """Default sink: writes each event to the log."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logging.getLogger("studio_booking.notifications")

    def deliver(self, event: Event) -> None:
        self.log.info("notification_event %s", event.event_type, extra={"event": event.to_dict()})


class EventPublisher:
    """Buffers events for the current unit of work and flushes them to a sink."""

    def __init__(self, sink: NotificationSink | None = None):
        self.sink: NotificationSink = sink or LoggingNotificationSink()
        self._pending: List[ReservationEvent] = []

    @property
    def pending(self) -> List[ReservationEvent]:
        return list(self._pending)

    def record(self, event: ReservationEvent) -> None:
        """Queue an event until the transaction outcome is known."""
        self._pending.append(event)

    def discard(self) -> None:
        """Drop buffered events (the transaction rolled back)."""
        if self._pending:
            logger.debug("Discarding %d buffered events", len(self._pending))
        self._pending.clear()

    def flush(self) -> List[ReservationEvent]:
        """
        Deliver buffered events in order.

        Each delivery is isolated: one failing event does not stop the rest.
        Returns the events that were handed to the sink.
        """
        events, self._pending = self._pending, []
        delivered: List[ReservationEvent] = []
        for event in events:
            try:
                self.sink.deliver(event)
                delivered.append(event)
            except Exception as exc:
                logger.warning(
                    "notification_delivery_failed",
                    extra={
                        "event_type": event.event_type,
                        "user_id": event.user_id,
                        "class_id": event.class_id,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
        return delivered
