"""Capacity gatekeeper: routes a request to a seat or to the waitlist."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import CapacityExceededException
from ..events.publisher import EventPublisher
from ..models.studio_class import StudioClass
from ..repositories.factory import RepositoryFactory
from .base import BaseService


class CapacityDecision(str, Enum):
    HAS_ROOM = "has_room"
    FULL = "full"


@dataclass
class CapacityCheck:
    decision: CapacityDecision
    confirmed: int
    capacity: int

    @property
    def has_room(self) -> bool:
        return self.decision == CapacityDecision.HAS_ROOM

    @property
    def seats_left(self) -> int:
        return max(self.capacity - self.confirmed, 0)


class CapacityService(BaseService):
    """
    Counts confirmed seats against class capacity.

    Callers must hold ``class_lock`` for the class, so the count and the write
    that follows it form one critical section.
    """

    def __init__(self, db: Session, publisher: Optional[EventPublisher] = None):
        super().__init__(db, publisher)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    def check(self, studio_class: StudioClass) -> CapacityCheck:
        confirmed = self.booking_repository.count_confirmed(studio_class.id)
        decision = (
            CapacityDecision.HAS_ROOM if confirmed < studio_class.capacity else CapacityDecision.FULL
        )
        return CapacityCheck(decision=decision, confirmed=confirmed, capacity=studio_class.capacity)

    def assert_within_capacity(self, studio_class: StudioClass) -> int:
        """
        Recount after a write and fail closed if the class is over capacity.

        Returns the confirmed count.

        Raises:
            CapacityExceededException: More confirmed seats than capacity
        """
        self.db.flush()
        confirmed = self.booking_repository.count_confirmed(studio_class.id)
        if confirmed > studio_class.capacity:
            self.logger.error(
                "Capacity exceeded after write",
                extra={
                    "class_id": studio_class.id,
                    "confirmed": confirmed,
                    "capacity": studio_class.capacity,
                },
            )
            raise CapacityExceededException(studio_class.id, confirmed, studio_class.capacity)
        return confirmed
