"""Domain exceptions map to stable codes and HTTP statuses."""

from fastapi import HTTPException
import pytest

from studio_booking.core.exceptions import (
    AlreadyBookedOrWaitlistedException,
    BookingNotFoundException,
    CancellationWindowClosedException,
    CapacityExceededException,
    CategoryMismatchException,
    ClassHasRoomException,
    DomainException,
    InsufficientCreditException,
    NoActiveSubscriptionException,
    ServiceException,
    ValidationException,
    WaitlistContentionException,
)


class TestHttpMapping:
    @pytest.mark.parametrize(
        "exc, status_code, code",
        [
            (NoActiveSubscriptionException("u1"), 400, "NO_ACTIVE_SUBSCRIPTION"),
            (ClassHasRoomException("c1", 3, 10), 400, "CLASS_HAS_ROOM"),
            (BookingNotFoundException("b1"), 404, "BOOKING_NOT_FOUND"),
            (WaitlistContentionException("c1", 5), 409, "WAITLIST_CONTENTION"),
            (CapacityExceededException("c1", 3, 2), 409, "CAPACITY_EXCEEDED"),
            (InsufficientCreditException("u1"), 422, "INSUFFICIENT_CREDIT"),
            (ServiceException("db down"), 500, "ServiceException"),
        ],
    )
    def test_to_http_exception(self, exc: DomainException, status_code: int, code: str):
        http_exc = exc.to_http_exception()

        assert isinstance(http_exc, HTTPException)
        assert http_exc.status_code == status_code
        assert http_exc.detail["code"] == code
        assert http_exc.detail["message"] == exc.message


class TestMessages:
    def test_already_booked_without_position(self):
        exc = AlreadyBookedOrWaitlistedException("u1", "c1")
        assert isinstance(exc, ValidationException)
        assert exc.message == "You are already booked for this class"
        assert exc.details["position"] is None

    def test_already_waitlisted_carries_position(self):
        exc = AlreadyBookedOrWaitlistedException("u1", "c1", position=3)
        assert "#3" in exc.message
        assert exc.details == {"user_id": "u1", "class_id": "c1", "position": 3}

    def test_category_mismatch_message_depends_on_subscription(self):
        personal = CategoryMismatchException("personal", "group")
        group = CategoryMismatchException("group", "personal")
        assert "personal subscription can only book" in personal.message
        assert "requires a personal subscription" in group.message

    def test_cancellation_window_rounds_hours(self):
        exc = CancellationWindowClosedException(2, 1.23456)
        assert exc.details["hours_before_class"] == 1.23
        assert "less than 2 hours" in exc.message
