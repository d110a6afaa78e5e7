# backend/studio_booking/core/exceptions.py
"""
Domain-specific exceptions for the studio reservation engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the domain code and details."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Eligibility failures (surfaced verbatim, never retried)


class NoActiveSubscriptionException(ValidationException):
    def __init__(self, user_id: str):
        super().__init__(
            message="An active subscription is required to book classes",
            code="NO_ACTIVE_SUBSCRIPTION",
            details={"user_id": user_id},
        )


class CategoryMismatchException(ValidationException):
    def __init__(self, subscription_category: str, class_category: str):
        if subscription_category == "personal":
            message = "A personal subscription can only book personal sessions"
        else:
            message = "This is a personal session and requires a personal subscription"
        super().__init__(
            message=message,
            code="CATEGORY_MISMATCH",
            details={
                "subscription_category": subscription_category,
                "class_category": class_category,
            },
        )


class CapacityMismatchException(ValidationException):
    def __init__(self, party_size: Optional[int], class_capacity: int):
        super().__init__(
            message=(
                f"Your personal subscription covers sessions for {party_size} "
                f"but this session is for {class_capacity}"
            ),
            code="CAPACITY_MISMATCH",
            details={"party_size": party_size, "class_capacity": class_capacity},
        )


class NoCreditsRemainingException(ValidationException):
    def __init__(self, subscription_id: str):
        super().__init__(
            message="No remaining classes in your subscription",
            code="NO_CREDITS_REMAINING",
            details={"subscription_id": subscription_id},
        )


class EquipmentAccessDeniedException(ValidationException):
    def __init__(self, access: str, required: str):
        super().__init__(
            message=f"Your subscription doesn't include access to {required} classes",
            code="EQUIPMENT_ACCESS_DENIED",
            details={"equipment_access": access, "equipment_required": required},
        )


class AlreadyBookedOrWaitlistedException(ValidationException):
    def __init__(self, user_id: str, class_id: str, *, position: Optional[int] = None):
        if position is None:
            message = "You are already booked for this class"
        else:
            message = f"You are already on the waitlist for this class (position #{position})"
        super().__init__(
            message=message,
            code="ALREADY_BOOKED_OR_WAITLISTED",
            details={"user_id": user_id, "class_id": class_id, "position": position},
        )


class ClassNotBookableException(ValidationException):
    def __init__(self, class_id: str, reason: str = "Cannot book past classes"):
        super().__init__(
            message=reason,
            code="CLASS_NOT_BOOKABLE",
            details={"class_id": class_id},
        )


class ClassHasRoomException(ValidationException):
    def __init__(self, class_id: str, confirmed: int, capacity: int):
        super().__init__(
            message="Class has available spots. Please book directly instead of joining waitlist.",
            code="CLASS_HAS_ROOM",
            details={"class_id": class_id, "confirmed": confirmed, "capacity": capacity},
        )


# Business rules


class InsufficientCreditException(BusinessRuleException):
    def __init__(self, user_id: str, subscription_id: Optional[str] = None):
        super().__init__(
            message="Not enough credit to reserve a seat",
            code="INSUFFICIENT_CREDIT",
            details={"user_id": user_id, "subscription_id": subscription_id},
        )


class CancellationWindowClosedException(BusinessRuleException):
    def __init__(self, required_hours: float, hours_before_class: float):
        super().__init__(
            message=(
                f"Cannot cancel booking less than {required_hours:g} hours before class. "
                f"Class starts in {hours_before_class:.1f} hours."
            ),
            code="CANCELLATION_WINDOW_CLOSED",
            details={
                "required_hours": required_hours,
                "hours_before_class": round(hours_before_class, 2),
            },
        )


class BookingStateException(BusinessRuleException):
    def __init__(self, booking_id: str, status_value: str, message: str):
        super().__init__(
            message=message,
            code="INVALID_BOOKING_STATE",
            details={"booking_id": booking_id, "status": status_value},
        )


# Conflicts (retried internally up to a bound, then surfaced)


class WaitlistContentionException(ConflictException):
    def __init__(self, class_id: str, attempts: int):
        super().__init__(
            message="Could not secure a waitlist position, please retry",
            code="WAITLIST_CONTENTION",
            details={"class_id": class_id, "attempts": attempts},
        )


class CapacityExceededException(ConflictException):
    def __init__(self, class_id: str, confirmed: int, capacity: int):
        super().__init__(
            message="Class capacity would be exceeded",
            code="CAPACITY_EXCEEDED",
            details={"class_id": class_id, "confirmed": confirmed, "capacity": capacity},
        )


class ClassLockTimeoutException(ConflictException):
    def __init__(self, class_id: str, waited_seconds: float):
        super().__init__(
            message="Class is busy processing other reservations, please retry",
            code="CLASS_LOCK_TIMEOUT",
            details={"class_id": class_id, "waited_seconds": waited_seconds},
        )


# Missing resources


class BookingNotFoundException(NotFoundException):
    def __init__(self, booking_id: str):
        super().__init__(
            message="Booking not found",
            code="BOOKING_NOT_FOUND",
            details={"booking_id": booking_id},
        )


class ClassNotFoundException(NotFoundException):
    def __init__(self, class_id: str):
        super().__init__(
            message="Class not found or not available",
            code="CLASS_NOT_FOUND",
            details={"class_id": class_id},
        )


class WaitlistEntryNotFoundException(NotFoundException):
    def __init__(self, entry_id: str):
        super().__init__(
            message="Waitlist entry not found",
            code="WAITLIST_ENTRY_NOT_FOUND",
            details={"entry_id": entry_id},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
