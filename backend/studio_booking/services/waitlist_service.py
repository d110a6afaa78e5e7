# backend/studio_booking/services/waitlist_service.py
"""
Waitlist Queue for the studio reservation engine.

Each class has a dense queue of positions 1..N. New entries take
max(position) + 1; a collision on the (class_id, position) unique constraint
means another writer took that number, so the insert is retried with the next
one, a bounded number of times. Every removal is followed by a renumbering
pass that closes the gap and notifies each user who moved up.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.class_lock import class_lock
from ..core.config import settings
from ..core.exceptions import (
    AlreadyBookedOrWaitlistedException,
    ClassHasRoomException,
    ClassNotBookableException,
    ClassNotFoundException,
    WaitlistContentionException,
    WaitlistEntryNotFoundException,
)
from ..core.timezone_utils import get_studio_today, utc_now
from ..events.publisher import EventPublisher
from ..events.reservation_events import WaitlistJoined, WaitlistMovedUp
from ..models.studio_class import StudioClass
from ..models.waitlist import WaitlistEntry
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .capacity_service import CapacityService

logger = logging.getLogger(__name__)


@dataclass
class WaitlistPlacement:
    """Where a user sits in a class waitlist."""

    entry_id: str
    user_id: str
    class_id: str
    position: int


class WaitlistService(BaseService):
    """Maintains per-class waitlists."""

    def __init__(self, db: Session, publisher: Optional[EventPublisher] = None):
        super().__init__(db, publisher)
        self.waitlist_repository = RepositoryFactory.create_waitlist_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.class_repository = RepositoryFactory.create_class_repository(db)
        self.capacity_service = CapacityService(db, self.publisher)

    # Queue primitives (caller holds the class lock and owns the transaction)

    def enqueue(self, user_id: str, studio_class: StudioClass) -> WaitlistPlacement:
        """
        Append a user to the class waitlist.

        Raises:
            AlreadyBookedOrWaitlistedException: User holds a seat or is already queued
            WaitlistContentionException: Position retries exhausted
        """
        if self.booking_repository.has_confirmed_booking(user_id, studio_class.id):
            raise AlreadyBookedOrWaitlistedException(user_id, studio_class.id)

        existing = self.waitlist_repository.get_for_user_and_class(user_id, studio_class.id)
        if existing is not None:
            raise AlreadyBookedOrWaitlistedException(
                user_id, studio_class.id, position=existing.position
            )

        attempts = settings.waitlist_max_insert_attempts
        position = self.waitlist_repository.get_max_position(studio_class.id) + 1
        entry: Optional[WaitlistEntry] = None

        for attempt in range(1, attempts + 1):
            try:
                entry = self.waitlist_repository.try_insert(
                    user_id=user_id, class_id=studio_class.id, position=position
                )
                break
            except IntegrityError:
                duplicate = self.waitlist_repository.get_for_user_and_class(
                    user_id, studio_class.id
                )
                if duplicate is not None:
                    raise AlreadyBookedOrWaitlistedException(
                        user_id, studio_class.id, position=duplicate.position
                    )
                self.logger.info(
                    "Waitlist position collision, retrying",
                    extra={
                        "class_id": studio_class.id,
                        "position": position,
                        "attempt": attempt,
                    },
                )
                position = max(
                    position + 1, self.waitlist_repository.get_max_position(studio_class.id) + 1
                )

        if entry is None:
            raise WaitlistContentionException(studio_class.id, attempts)

        self.publisher.record(
            WaitlistJoined(
                user_id=user_id,
                class_id=studio_class.id,
                entry_id=entry.id,
                position=entry.position,
                **studio_class.display_fields(),
            )
        )
        self.log_operation(
            "waitlist_enqueue", user_id=user_id, class_id=studio_class.id, position=entry.position
        )
        return WaitlistPlacement(
            entry_id=entry.id,
            user_id=user_id,
            class_id=studio_class.id,
            position=entry.position,
        )

    def renumber_from(self, studio_class: StudioClass) -> List[WaitlistEntry]:
        """
        Reassign positions 1..N in queue order.

        Returns the entries whose position changed; each gets a moved-up event.
        """
        moved: List[WaitlistEntry] = []
        for index, entry in enumerate(self.waitlist_repository.get_for_class(studio_class.id), 1):
            if entry.position == index:
                continue
            previous = entry.position
            self.waitlist_repository.move(entry, index)
            moved.append(entry)
            self.publisher.record(
                WaitlistMovedUp(
                    user_id=entry.user_id,
                    class_id=studio_class.id,
                    entry_id=entry.id,
                    position=index,
                    previous_position=previous,
                    **studio_class.display_fields(),
                )
            )
        return moved

    def remove_entry(self, entry: WaitlistEntry, studio_class: StudioClass) -> None:
        """Delete an entry and close the gap it leaves."""
        self.waitlist_repository.remove(entry)
        self.renumber_from(studio_class)

    def placement_for(self, user_id: str, class_id: str) -> Optional[WaitlistPlacement]:
        entry = self.waitlist_repository.get_for_user_and_class(user_id, class_id)
        if entry is None:
            return None
        return WaitlistPlacement(
            entry_id=entry.id, user_id=user_id, class_id=class_id, position=entry.position
        )

    # Operations

    @BaseService.measure_operation("join_waitlist")
    def join_waitlist(
        self, user_id: str, class_id: str, *, now: Optional[datetime] = None
    ) -> WaitlistPlacement:
        """
        Queue a user for a full class.

        Raises:
            ClassNotFoundException: Class missing or cancelled
            ClassNotBookableException: Class already started
            AlreadyBookedOrWaitlistedException: Seat held or already queued
            ClassHasRoomException: Seats are free, book directly instead
        """
        current = now or utc_now()
        with class_lock(class_id):
            with self.transaction():
                studio_class = self.class_repository.get_active_class(class_id, for_update=True)
                if studio_class is None:
                    raise ClassNotFoundException(class_id)
                if studio_class.starts_at <= current:
                    raise ClassNotBookableException(
                        class_id, "Cannot join waitlist for past classes"
                    )
                if self.booking_repository.has_confirmed_booking(user_id, class_id):
                    raise AlreadyBookedOrWaitlistedException(user_id, class_id)
                existing = self.placement_for(user_id, class_id)
                if existing is not None:
                    raise AlreadyBookedOrWaitlistedException(
                        user_id, class_id, position=existing.position
                    )
                capacity = self.capacity_service.check(studio_class)
                if capacity.has_room:
                    raise ClassHasRoomException(class_id, capacity.confirmed, capacity.capacity)

                return self.enqueue(user_id, studio_class)

    @BaseService.measure_operation("leave_waitlist")
    def leave_waitlist(self, entry_id: str) -> None:
        """
        Remove a waitlist entry and renumber the entries behind it.

        Raises:
            WaitlistEntryNotFoundException: No such entry
        """
        class_id = self._class_id_for_entry(entry_id)
        with class_lock(class_id):
            with self.transaction():
                entry = self.waitlist_repository.get_by_id(entry_id)
                if entry is None:
                    raise WaitlistEntryNotFoundException(entry_id)
                studio_class = self.class_repository.get_by_id(class_id, for_update=True)
                self.remove_entry(entry, studio_class)
                self.log_operation("leave_waitlist", entry_id=entry_id, class_id=class_id)

    def get_class_waitlist(self, class_id: str) -> List[WaitlistEntry]:
        """Entries of a class in promotion order."""
        return self.waitlist_repository.get_for_class(class_id)

    def get_user_waitlist(
        self, user_id: str, *, now: Optional[datetime] = None
    ) -> List[WaitlistEntry]:
        """A user's entries for classes that have not started yet."""
        current = now or utc_now()
        entries = self.waitlist_repository.get_for_user(
            user_id, from_date=get_studio_today(current)
        )
        return [entry for entry in entries if entry.studio_class.starts_at > current]

    @BaseService.measure_operation("cleanup_stale_waitlists")
    def cleanup_stale_waitlists(self, *, now: Optional[datetime] = None) -> int:
        """
        Delete waitlist entries of classes that can no longer promote anyone.

        A class is stale once it started more than the promotion lead time ago.
        Returns the number of entries deleted.
        """
        current = now or utc_now()
        cutoff = current - timedelta(hours=settings.promotion_lead_time_hours)
        with self.transaction():
            candidates = self.class_repository.get_classes_with_waitlist_until(
                get_studio_today(current)
            )
            stale_ids = [c.id for c in candidates if c.starts_at < cutoff]
            deleted = self.waitlist_repository.delete_for_classes(stale_ids)

        if deleted:
            self.logger.info(
                "Removed stale waitlist entries",
                extra={"deleted": deleted, "classes": len(stale_ids)},
            )
        return deleted

    def _class_id_for_entry(self, entry_id: str) -> str:
        """
        Resolve the class to lock for an entry.

        The read runs as its own unit of work, so the locked section that
        follows starts from a fresh snapshot. Work already pending on the
        session is committed with it.
        """
        with self.transaction():
            class_id = self.waitlist_repository.get_class_id(entry_id)
        if class_id is None:
            raise WaitlistEntryNotFoundException(entry_id)
        return class_id
