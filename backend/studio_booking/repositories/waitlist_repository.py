# backend/studio_booking/repositories/waitlist_repository.py
"""
Waitlist Repository for the studio reservation engine.

Positions per class are kept dense (1..N) by the waitlist service; the
repository only exposes the primitive reads and writes, including the
savepoint-guarded insert used for optimistic position assignment.
"""

from __future__ import annotations

from datetime import date
import logging
from typing import List, Optional, Sequence, cast

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.studio_class import StudioClass
from ..models.waitlist import WaitlistEntry
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class WaitlistRepository(BaseRepository[WaitlistEntry]):
    """Repository for waitlist entries."""

    def __init__(self, db: Session):
        super().__init__(db, WaitlistEntry)
        self.logger = logging.getLogger(__name__)

    def get_for_class(self, class_id: str) -> List[WaitlistEntry]:
        """All entries of a class ordered by position."""
        try:
            query = (
                self.db.query(WaitlistEntry)
                .filter(WaitlistEntry.class_id == class_id)
                .order_by(WaitlistEntry.position.asc(), WaitlistEntry.created_at.asc())
            )
            return cast(List[WaitlistEntry], query.all())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load waitlist for %s: %s", class_id, str(exc))
            raise RepositoryException("Failed to load class waitlist") from exc

    def get_class_id(self, entry_id: str) -> Optional[str]:
        """Class of a waitlist entry, read without loading the row into the session."""
        try:
            return cast(
                Optional[str],
                self.db.query(WaitlistEntry.class_id)
                .filter(WaitlistEntry.id == entry_id)
                .scalar(),
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to read class of waitlist entry %s: %s", entry_id, str(exc))
            raise RepositoryException("Failed to load waitlist entry") from exc

    def get_max_position(self, class_id: str) -> int:
        """Highest occupied position, 0 for an empty waitlist."""
        try:
            result = (
                self.db.query(func.max(WaitlistEntry.position))
                .filter(WaitlistEntry.class_id == class_id)
                .scalar()
            )
            return int(result or 0)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to read max waitlist position for %s: %s", class_id, str(exc))
            raise RepositoryException("Failed to read waitlist position") from exc

    def get_for_user_and_class(self, user_id: str, class_id: str) -> Optional[WaitlistEntry]:
        return self.find_one_by(user_id=user_id, class_id=class_id)

    def get_for_user(self, user_id: str, *, from_date: Optional[date] = None) -> List[WaitlistEntry]:
        """A user's waitlist entries, optionally limited to classes on or after ``from_date``."""
        try:
            query = (
                self.db.query(WaitlistEntry)
                .join(StudioClass, StudioClass.id == WaitlistEntry.class_id)
                .options(joinedload(WaitlistEntry.studio_class))
                .filter(WaitlistEntry.user_id == user_id)
            )
            if from_date is not None:
                query = query.filter(StudioClass.class_date >= from_date)
            query = query.order_by(WaitlistEntry.created_at.desc(), WaitlistEntry.id.desc())
            return cast(List[WaitlistEntry], query.all())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load waitlist for user %s: %s", user_id, str(exc))
            raise RepositoryException("Failed to load user waitlist") from exc

    def try_insert(self, *, user_id: str, class_id: str, position: int) -> WaitlistEntry:
        """
        Insert an entry inside a SAVEPOINT.

        A unique-constraint collision only rolls back the savepoint and is
        re-raised as IntegrityError so the caller can retry another position.
        """
        entry = WaitlistEntry(user_id=user_id, class_id=class_id, position=position)
        try:
            with self.db.begin_nested():
                self.db.add(entry)
                self.db.flush()
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            self.logger.error("Failed to insert waitlist entry: %s", str(exc))
            raise RepositoryException("Failed to insert waitlist entry") from exc
        return entry

    def remove(self, entry: WaitlistEntry) -> None:
        try:
            self.db.delete(entry)
            self.db.flush()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to delete waitlist entry %s: %s", entry.id, str(exc))
            raise RepositoryException("Failed to delete waitlist entry") from exc

    def move(self, entry: WaitlistEntry, position: int) -> None:
        """
        Move an entry to ``position`` and flush immediately.

        Flushing per move keeps the (class_id, position) unique constraint
        satisfied when moves are applied in ascending order.
        """
        try:
            entry.position = position
            self.db.flush()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to move waitlist entry %s: %s", entry.id, str(exc))
            raise RepositoryException("Failed to renumber waitlist") from exc

    def delete_for_classes(self, class_ids: Sequence[str]) -> int:
        """Bulk delete every entry of the given classes."""
        if not class_ids:
            return 0
        try:
            deleted = (
                self.db.query(WaitlistEntry)
                .filter(WaitlistEntry.class_id.in_(list(class_ids)))
                .delete(synchronize_session="fetch")
            )
            return int(deleted or 0)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to purge waitlists: %s", str(exc))
            raise RepositoryException("Failed to purge waitlists") from exc


__all__ = ["WaitlistRepository"]
