"""
SQLAlchemy models for the studio reservation engine.

Importing this package registers every table on ``Base.metadata``.
"""

from .booking import Booking, BookingStatus, CancelledBy
from .studio_class import ClassCategory, ClassStatus, EquipmentType, StudioClass
from .subscription import (
    Subscription,
    SubscriptionCategory,
    SubscriptionStatus,
    UserCreditBalance,
)
from .waitlist import WaitlistEntry

__all__ = [
    "Booking",
    "BookingStatus",
    "CancelledBy",
    "ClassCategory",
    "ClassStatus",
    "EquipmentType",
    "StudioClass",
    "Subscription",
    "SubscriptionCategory",
    "SubscriptionStatus",
    "UserCreditBalance",
    "WaitlistEntry",
]
