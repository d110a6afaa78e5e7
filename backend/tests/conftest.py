# backend/tests/conftest.py
"""
Pytest configuration for the reservation engine.

Tests run against an in-memory SQLite database shared through a StaticPool.
Every test gets a fresh session; rows are deleted after each test in
dependency order. Redis is never used: the class lock runs process-local.
"""

import os

# Set testing mode BEFORE any studio_booking imports
os.environ["is_testing"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)

from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

import pytest
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from studio_booking.core.config import settings

settings.is_testing = True
settings.redis_url = None

from studio_booking.core.timezone_utils import get_studio_timezone, get_studio_today, utc_now
from studio_booking.database import create_db_engine, init_db
from studio_booking.events.publisher import EventPublisher
from studio_booking.events.reservation_events import ReservationEvent
from studio_booking.models.booking import Booking
from studio_booking.models.studio_class import StudioClass
from studio_booking.models.subscription import Subscription, UserCreditBalance
from studio_booking.models.waitlist import WaitlistEntry
from studio_booking.services.reservation_service import ReservationService

test_engine = create_db_engine("sqlite://", poolclass=StaticPool)
TestSessionLocal = sessionmaker(
    bind=test_engine, autocommit=False, autoflush=False, expire_on_commit=False
)


@pytest.fixture(scope="session", autouse=True)
def _create_schema():
    init_db(bind=test_engine)
    yield


@pytest.fixture(scope="function")
def db():
    """Create a new database session for each test and wipe the tables afterwards."""
    session = TestSessionLocal()

    yield session

    session.rollback()
    session.close()

    cleanup_db = TestSessionLocal()
    try:
        # Delete in dependency order to avoid FK violations
        cleanup_db.query(WaitlistEntry).delete()
        cleanup_db.query(Booking).delete()
        cleanup_db.query(UserCreditBalance).delete()
        cleanup_db.query(Subscription).delete()
        cleanup_db.query(StudioClass).delete()
        cleanup_db.commit()
    except Exception:
        cleanup_db.rollback()
        raise
    finally:
        cleanup_db.close()


@pytest.fixture
def now() -> datetime:
    """Reference instant for a test, truncated to the minute."""
    return utc_now().replace(second=0, microsecond=0)


@pytest.fixture
def today(now: datetime) -> date:
    return get_studio_today(now)


class RecordingSink:
    """Notification sink that keeps delivered events in memory."""

    def __init__(self):
        self.events: List[ReservationEvent] = []

    def deliver(self, event: ReservationEvent) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [event.event_type for event in self.events]

    def of_type(self, event_type: str) -> List[ReservationEvent]:
        return [event for event in self.events if event.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def publisher(sink: RecordingSink) -> EventPublisher:
    return EventPublisher(sink)


@pytest.fixture
def reservation_service(db: Session, publisher: EventPublisher) -> ReservationService:
    return ReservationService(db, publisher)


@pytest.fixture
def make_class(db: Session, now: datetime) -> Callable[..., StudioClass]:
    """Factory for committed classes starting ``starts_in`` after ``now``."""

    def _make(
        *,
        capacity: int = 10,
        starts_in: timedelta = timedelta(days=2),
        category: str = "group",
        equipment_type: str = "mat",
        name: str = "Mat Pilates",
        status: str = "active",
    ) -> StudioClass:
        local_start = (now + starts_in).astimezone(get_studio_timezone())
        studio_class = StudioClass(
            name=name,
            class_date=local_start.date(),
            start_time=local_start.time(),
            duration_minutes=50,
            capacity=capacity,
            category=category,
            equipment_type=equipment_type,
            status=status,
        )
        db.add(studio_class)
        db.commit()
        return studio_class

    return _make


@pytest.fixture
def make_subscription(db: Session, today: date) -> Callable[..., Subscription]:
    """Factory for committed subscriptions; ``credits=None`` means unlimited."""

    def _make(
        user_id: str,
        *,
        credits: Optional[int] = 5,
        category: str = "group",
        equipment_access: str = "both",
        party_size: Optional[int] = None,
        ends_in_days: int = 30,
        status: str = "active",
        plan_name: str = "Monthly 8",
    ) -> Subscription:
        subscription = Subscription(
            user_id=user_id,
            plan_name=plan_name,
            status=status,
            category=category,
            personal_party_size=party_size,
            equipment_access=equipment_access,
            remaining_credits=credits,
            start_date=today - timedelta(days=1),
            end_date=today + timedelta(days=ends_in_days),
        )
        db.add(subscription)
        db.commit()
        return subscription

    return _make


@pytest.fixture
def remaining(db: Session) -> Callable[[Subscription], Optional[int]]:
    """Read a subscription's remaining credits straight from the database."""

    def _remaining(subscription: Subscription) -> Optional[int]:
        db.expire_all()
        return db.get(Subscription, subscription.id).remaining_credits

    return _remaining


@pytest.fixture
def waitlist_positions(db: Session) -> Callable[[str], List[tuple]]:
    """(user_id, position) pairs of a class waitlist in position order."""

    def _positions(class_id: str) -> List[tuple]:
        db.expire_all()
        entries = (
            db.query(WaitlistEntry)
            .filter(WaitlistEntry.class_id == class_id)
            .order_by(WaitlistEntry.position.asc())
            .all()
        )
        return [(entry.user_id, entry.position) for entry in entries]

    return _positions
