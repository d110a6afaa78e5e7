# backend/studio_booking/repositories/class_repository.py
"""Read access to scheduled classes."""

from __future__ import annotations

from datetime import date
import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.studio_class import ClassStatus, StudioClass
from ..models.waitlist import WaitlistEntry
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ClassRepository(BaseRepository[StudioClass]):
    """Repository for class lookups used by the reservation engine."""

    def __init__(self, db: Session):
        super().__init__(db, StudioClass)
        self.logger = logging.getLogger(__name__)

    def get_active_class(self, class_id: str, *, for_update: bool = False) -> Optional[StudioClass]:
        """Return the class if it exists and has not been cancelled."""
        try:
            query = self.db.query(StudioClass).filter(
                StudioClass.id == class_id,
                StudioClass.status == ClassStatus.ACTIVE.value,
            )
            return cast(Optional[StudioClass], self._lockable(query, for_update).first())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load class %s: %s", class_id, str(exc))
            raise RepositoryException("Failed to load class") from exc

    def get_classes_with_waitlist_until(self, last_day: date) -> List[StudioClass]:
        """Classes dated on or before ``last_day`` that still have waitlist entries."""
        try:
            query = (
                self.db.query(StudioClass)
                .filter(
                    StudioClass.class_date <= last_day,
                    StudioClass.id.in_(self.db.query(WaitlistEntry.class_id).distinct()),
                )
                .order_by(StudioClass.class_date.asc(), StudioClass.start_time.asc())
            )
            return cast(List[StudioClass], query.all())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load classes with waitlists: %s", str(exc))
            raise RepositoryException("Failed to load classes with waitlists") from exc


__all__ = ["ClassRepository"]
