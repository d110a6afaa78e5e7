"""
Property checks over arbitrary sequences of reservation and waitlist operations.

After every step a class must hold at most ``capacity`` confirmed seats, its
waitlist positions must be exactly 1..N, and no user may be both seated and
queued.
"""

from itertools import count

from hypothesis import HealthCheck, given, settings, strategies as st
from sqlalchemy import func

from studio_booking.core.exceptions import DomainException
from studio_booking.models.booking import Booking

USERS = 5
CAPACITY = 2

operations = st.lists(
    st.tuples(
        st.sampled_from(["book", "join", "leave", "cancel", "cleanup"]),
        st.integers(min_value=0, max_value=USERS - 1),
    ),
    min_size=1,
    max_size=25,
)

_example_ids = count()


def _confirmed_users(db, class_id):
    rows = (
        db.query(Booking.user_id)
        .filter(Booking.class_id == class_id, Booking.status == "confirmed")
        .all()
    )
    return [user_id for (user_id,) in rows]


def _live_bookings_per_user(db, class_id):
    rows = (
        db.query(Booking.user_id, func.count(Booking.id))
        .filter(Booking.class_id == class_id, Booking.status != "cancelled")
        .group_by(Booking.user_id)
        .all()
    )
    return dict(rows)


@settings(
    max_examples=30,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(steps=operations)
def test_waitlist_stays_dense_under_mixed_operations(
    steps, db, reservation_service, make_class, make_subscription, waitlist_positions, now
):
    studio_class = make_class(capacity=CAPACITY)
    run = next(_example_ids)
    users = [f"r{run}u{index}" for index in range(USERS)]
    for index, user_id in enumerate(users):
        # Every other user runs out of credit, so promotions have to skip them
        make_subscription(user_id, credits=2 if index % 2 == 0 else 0)

    waitlist_service = reservation_service.waitlist_service
    for action, index in steps:
        user_id = users[index]
        try:
            if action == "book":
                reservation_service.create_reservation(user_id, studio_class.id, now=now)
            elif action == "join":
                waitlist_service.join_waitlist(user_id, studio_class.id, now=now)
            elif action == "leave":
                placement = waitlist_service.placement_for(user_id, studio_class.id)
                if placement is not None:
                    waitlist_service.leave_waitlist(placement.entry_id)
            elif action == "cancel":
                booking = reservation_service.booking_repository.get_for_user_and_class(
                    user_id, studio_class.id
                )
                if booking is not None:
                    reservation_service.cancel_reservation(booking.id, "studio", now=now)
            else:
                waitlist_service.cleanup_stale_waitlists(now=now)
        except DomainException:
            pass

        positions = waitlist_positions(studio_class.id)
        queued = [queued_user for queued_user, _ in positions]
        seated = _confirmed_users(db, studio_class.id)

        assert [position for _, position in positions] == list(range(1, len(positions) + 1))
        assert len(seated) <= CAPACITY
        assert len(set(queued)) == len(queued)
        assert not set(queued) & set(seated)
        assert all(total == 1 for total in _live_bookings_per_user(db, studio_class.id).values())
