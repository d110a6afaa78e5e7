"""Settings validation and studio timezone conversions."""

from datetime import date, datetime, time, timedelta, timezone

from pydantic import ValidationError
import pytest

from studio_booking.core.config import Settings, settings
from studio_booking.core.timezone_utils import (
    get_studio_today,
    hours_until,
    studio_local_to_utc,
)
from studio_booking.core.ulid_helper import generate_ulid, get_timestamp_from_ulid, is_valid_ulid


class TestSettings:
    def test_defaults(self):
        fresh = Settings(DATABASE_URL="sqlite://")
        assert fresh.promotion_lead_time_hours == 2
        assert fresh.user_cancellation_cutoff_hours == 2
        assert fresh.waitlist_max_insert_attempts == 5
        assert fresh.is_sqlite is True

    def test_rejects_unknown_timezone(self):
        with pytest.raises(ValidationError):
            Settings(studio_timezone="Mars/Olympus_Mons")

    def test_rejects_zero_insert_attempts(self):
        with pytest.raises(ValidationError):
            Settings(waitlist_max_insert_attempts=0)

    def test_tests_never_use_redis(self):
        assert settings.redis_url is None
        assert settings.is_testing is True


class TestStudioTime:
    def test_winter_offset(self):
        # Europe/Tirane is UTC+1 in January
        start = studio_local_to_utc(date(2025, 1, 15), time(10, 0))
        assert start == datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)

    def test_summer_offset(self):
        # and UTC+2 in July
        start = studio_local_to_utc(date(2025, 7, 15), time(10, 0))
        assert start == datetime(2025, 7, 15, 8, 0, tzinfo=timezone.utc)

    def test_studio_today_rolls_over_before_utc(self):
        late_utc = datetime(2025, 1, 15, 23, 30, tzinfo=timezone.utc)
        assert get_studio_today(late_utc) == date(2025, 1, 16)

    def test_hours_until(self):
        now = datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)
        assert hours_until(now + timedelta(hours=3), now) == pytest.approx(3.0)
        assert hours_until(now - timedelta(minutes=30), now) == pytest.approx(-0.5)


class TestUlidHelper:
    def test_generated_ids_are_valid(self):
        value = generate_ulid()
        assert len(value) == 26
        assert is_valid_ulid(value)
        assert get_timestamp_from_ulid(value).tzinfo is not None

    def test_rejects_garbage(self):
        assert is_valid_ulid("not-a-ulid") is False
