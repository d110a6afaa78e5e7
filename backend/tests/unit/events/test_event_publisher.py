"""EventPublisher buffers until commit and never lets a sink failure escape."""

import logging
from unittest.mock import MagicMock

from studio_booking.events.publisher import EventPublisher, LoggingNotificationSink
from studio_booking.events.reservation_events import (
    ClassBooked,
    ClassFull,
    WaitlistMovedUp,
)

DISPLAY = {"class_name": "Mat Pilates", "class_date": "2025-03-12", "class_time": "18:00"}


def _booked(user_id: str = "u1") -> ClassBooked:
    return ClassBooked(user_id=user_id, class_id="c1", booking_id="b1", funded=True, **DISPLAY)


class TestEvents:
    def test_to_dict_includes_type_and_display_fields(self):
        payload = WaitlistMovedUp(
            user_id="u2", class_id="c1", entry_id="w1", position=1, previous_position=2, **DISPLAY
        ).to_dict()

        assert payload["event_type"] == "waitlist_moved_up"
        assert payload["class_name"] == "Mat Pilates"
        assert payload["class_time"] == "18:00"
        assert payload["position"] == 1
        assert payload["previous_position"] == 2

    def test_event_type_is_not_a_constructor_field(self):
        event = ClassFull(user_id="u1", class_id="c1", capacity=10, **DISPLAY)
        assert event.event_type == "class_full"


class TestEventPublisher:
    def test_nothing_delivered_before_flush(self):
        sink = MagicMock()
        publisher = EventPublisher(sink)

        publisher.record(_booked())

        sink.deliver.assert_not_called()
        assert len(publisher.pending) == 1

    def test_flush_delivers_in_order_and_empties_buffer(self):
        sink = MagicMock()
        publisher = EventPublisher(sink)
        first, second = _booked("u1"), _booked("u2")
        publisher.record(first)
        publisher.record(second)

        delivered = publisher.flush()

        assert delivered == [first, second]
        assert [call.args[0] for call in sink.deliver.call_args_list] == [first, second]
        assert publisher.pending == []

    def test_failing_delivery_is_swallowed_and_others_continue(self, caplog):
        sink = MagicMock()
        sink.deliver.side_effect = [RuntimeError("push down"), None]
        publisher = EventPublisher(sink)
        publisher.record(_booked("u1"))
        publisher.record(_booked("u2"))

        with caplog.at_level(logging.WARNING):
            delivered = publisher.flush()

        assert [event.user_id for event in delivered] == ["u2"]
        assert sink.deliver.call_count == 2
        assert "notification_delivery_failed" in caplog.text

    def test_discard_drops_buffer(self):
        sink = MagicMock()
        publisher = EventPublisher(sink)
        publisher.record(_booked())

        publisher.discard()
        publisher.flush()

        sink.deliver.assert_not_called()

    def test_default_sink_logs(self, caplog):
        publisher = EventPublisher()
        assert isinstance(publisher.sink, LoggingNotificationSink)
        publisher.record(_booked())

        with caplog.at_level(logging.INFO, logger="studio_booking.notifications"):
            publisher.flush()

        assert "class_booked" in caplog.text
