"""Waitlist queue: joining, leaving, density and optimistic position assignment."""

from datetime import timedelta

import pytest

from studio_booking.core.config import settings
from studio_booking.core.exceptions import (
    AlreadyBookedOrWaitlistedException,
    ClassHasRoomException,
    ClassNotBookableException,
    ClassNotFoundException,
    WaitlistContentionException,
    WaitlistEntryNotFoundException,
)
from studio_booking.models.booking import Booking
from studio_booking.models.subscription import UserCreditBalance
from studio_booking.models.waitlist import WaitlistEntry
from studio_booking.services.waitlist_service import WaitlistService


@pytest.fixture
def waitlist_service(db, publisher):
    return WaitlistService(db, publisher)


@pytest.fixture
def full_class(db, make_class):
    """A one-seat class whose seat is held by ``holder``."""
    studio_class = make_class(capacity=1)
    db.add(Booking(user_id="holder", class_id=studio_class.id, status="confirmed"))
    db.commit()
    return studio_class


class TestJoinWaitlist:
    def test_positions_are_assigned_in_arrival_order(
        self, waitlist_service, full_class, now, waitlist_positions, sink
    ):
        for user_id in ("a", "b", "c"):
            waitlist_service.join_waitlist(user_id, full_class.id, now=now)

        assert waitlist_positions(full_class.id) == [("a", 1), ("b", 2), ("c", 3)]
        joined = sink.of_type("waitlist_joined")
        assert [(e.user_id, e.position) for e in joined] == [("a", 1), ("b", 2), ("c", 3)]
        assert joined[0].class_name == full_class.name

    def test_class_with_room_must_be_booked_directly(self, waitlist_service, make_class, now):
        studio_class = make_class(capacity=3)

        with pytest.raises(ClassHasRoomException):
            waitlist_service.join_waitlist("a", studio_class.id, now=now)

    def test_duplicate_join_reports_existing_position(self, waitlist_service, full_class, now):
        waitlist_service.join_waitlist("a", full_class.id, now=now)
        waitlist_service.join_waitlist("b", full_class.id, now=now)

        with pytest.raises(AlreadyBookedOrWaitlistedException) as exc_info:
            waitlist_service.join_waitlist("b", full_class.id, now=now)
        assert exc_info.value.details["position"] == 2

    def test_seat_holder_cannot_join(self, waitlist_service, full_class, now):
        with pytest.raises(AlreadyBookedOrWaitlistedException) as exc_info:
            waitlist_service.join_waitlist("holder", full_class.id, now=now)
        assert exc_info.value.details["position"] is None

    def test_past_class(self, db, waitlist_service, make_class, now):
        studio_class = make_class(capacity=1, starts_in=-timedelta(hours=1))

        with pytest.raises(ClassNotBookableException):
            waitlist_service.join_waitlist("a", studio_class.id, now=now)

    def test_cancelled_class(self, waitlist_service, make_class, now):
        studio_class = make_class(capacity=1, status="cancelled")

        with pytest.raises(ClassNotFoundException):
            waitlist_service.join_waitlist("a", studio_class.id, now=now)


class TestLeaveWaitlist:
    def test_leaving_closes_the_gap(
        self, db, waitlist_service, full_class, now, waitlist_positions, sink
    ):
        placements = {
            user_id: waitlist_service.join_waitlist(user_id, full_class.id, now=now)
            for user_id in ("a", "b", "c", "d")
        }
        sink.clear()

        waitlist_service.leave_waitlist(placements["b"].entry_id)

        assert waitlist_positions(full_class.id) == [("a", 1), ("c", 2), ("d", 3)]
        moved = sink.of_type("waitlist_moved_up")
        assert [(e.user_id, e.previous_position, e.position) for e in moved] == [
            ("c", 3, 2),
            ("d", 4, 3),
        ]

    def test_leaving_the_tail_moves_nobody(
        self, waitlist_service, full_class, now, waitlist_positions, sink
    ):
        waitlist_service.join_waitlist("a", full_class.id, now=now)
        tail = waitlist_service.join_waitlist("b", full_class.id, now=now)
        sink.clear()

        waitlist_service.leave_waitlist(tail.entry_id)

        assert waitlist_positions(full_class.id) == [("a", 1)]
        assert sink.of_type("waitlist_moved_up") == []

    def test_pending_session_work_is_kept(self, db, waitlist_service, full_class, now):
        placement = waitlist_service.join_waitlist("a", full_class.id, now=now)
        db.add(UserCreditBalance(user_id="walk-in", credits=1))

        waitlist_service.leave_waitlist(placement.entry_id)

        db.expire_all()
        assert db.get(UserCreditBalance, "walk-in").credits == 1

    def test_unknown_entry(self, waitlist_service):
        with pytest.raises(WaitlistEntryNotFoundException):
            waitlist_service.leave_waitlist("01JNOTANENTRY000000000000")


class TestOptimisticPositions:
    def test_collision_retries_with_next_position(
        self, db, waitlist_service, full_class, monkeypatch, waitlist_positions
    ):
        db.add(WaitlistEntry(user_id="early", class_id=full_class.id, position=1))
        db.commit()
        # Simulate a stale read: the racing writer's row is not visible yet
        monkeypatch.setattr(
            waitlist_service.waitlist_repository, "get_max_position", lambda class_id: 0
        )

        with waitlist_service.transaction():
            placement = waitlist_service.enqueue("late", full_class)

        assert placement.position == 2
        assert waitlist_positions(full_class.id) == [("early", 1), ("late", 2)]

    def test_bounded_retries_surface_contention(
        self, db, waitlist_service, full_class, monkeypatch, waitlist_positions
    ):
        for position, user_id in enumerate(("w1", "w2", "w3"), 1):
            db.add(WaitlistEntry(user_id=user_id, class_id=full_class.id, position=position))
        db.commit()
        monkeypatch.setattr(settings, "waitlist_max_insert_attempts", 2)
        monkeypatch.setattr(
            waitlist_service.waitlist_repository, "get_max_position", lambda class_id: 0
        )

        with pytest.raises(WaitlistContentionException) as exc_info:
            with waitlist_service.transaction():
                waitlist_service.enqueue("late", full_class)

        assert exc_info.value.details["attempts"] == 2
        assert [user for user, _ in waitlist_positions(full_class.id)] == ["w1", "w2", "w3"]


class TestQueries:
    def test_user_waitlist_only_lists_upcoming_classes(
        self, db, waitlist_service, make_class, now
    ):
        upcoming = make_class(capacity=1, name="Upcoming")
        started = make_class(capacity=1, name="Started", starts_in=-timedelta(minutes=30))
        db.add(WaitlistEntry(user_id="a", class_id=upcoming.id, position=1))
        db.add(WaitlistEntry(user_id="a", class_id=started.id, position=1))
        db.commit()

        entries = waitlist_service.get_user_waitlist("a", now=now)

        assert [entry.class_id for entry in entries] == [upcoming.id]

    def test_class_waitlist_is_ordered(self, db, waitlist_service, full_class):
        db.add(WaitlistEntry(user_id="second", class_id=full_class.id, position=2))
        db.add(WaitlistEntry(user_id="first", class_id=full_class.id, position=1))
        db.commit()

        assert [e.user_id for e in waitlist_service.get_class_waitlist(full_class.id)] == [
            "first",
            "second",
        ]

    def test_cleanup_removes_only_unpromotable_waitlists(
        self, db, waitlist_service, make_class, now, waitlist_positions
    ):
        long_gone = make_class(capacity=1, starts_in=-timedelta(hours=3))
        just_started = make_class(capacity=1, starts_in=-timedelta(hours=1))
        upcoming = make_class(capacity=1, starts_in=timedelta(days=1))
        for studio_class in (long_gone, just_started, upcoming):
            db.add(WaitlistEntry(user_id="a", class_id=studio_class.id, position=1))
        db.commit()

        deleted = waitlist_service.cleanup_stale_waitlists(now=now)

        assert deleted == 1
        assert waitlist_positions(long_gone.id) == []
        assert waitlist_positions(just_started.id) == [("a", 1)]
        assert waitlist_positions(upcoming.id) == [("a", 1)]
