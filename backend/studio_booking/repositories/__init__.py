"""Repository layer: data access for the reservation engine."""

from .base_repository import BaseRepository, IRepository
from .booking_repository import BookingRepository
from .class_repository import ClassRepository
from .factory import RepositoryFactory
from .subscription_repository import CreditBalanceRepository, SubscriptionRepository
from .waitlist_repository import WaitlistRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "ClassRepository",
    "CreditBalanceRepository",
    "IRepository",
    "RepositoryFactory",
    "SubscriptionRepository",
    "WaitlistRepository",
]
