# backend/studio_booking/repositories/factory.py
"""
Repository Factory for the studio reservation engine.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .class_repository import ClassRepository
    from .subscription_repository import CreditBalanceRepository, SubscriptionRepository
    from .waitlist_repository import WaitlistRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_class_repository(db: Session) -> "ClassRepository":
        """Create repository for class lookups."""
        from .class_repository import ClassRepository

        return ClassRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking operations."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_waitlist_repository(db: Session) -> "WaitlistRepository":
        """Create repository for waitlist operations."""
        from .waitlist_repository import WaitlistRepository

        return WaitlistRepository(db)

    @staticmethod
    def create_subscription_repository(db: Session) -> "SubscriptionRepository":
        """Create repository for subscriptions and their credit counters."""
        from .subscription_repository import SubscriptionRepository

        return SubscriptionRepository(db)

    @staticmethod
    def create_credit_balance_repository(db: Session) -> "CreditBalanceRepository":
        """Create repository for fallback credit balances."""
        from .subscription_repository import CreditBalanceRepository

        return CreditBalanceRepository(db)
