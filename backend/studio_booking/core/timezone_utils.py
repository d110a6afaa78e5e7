"""
Timezone utilities for the studio reservation engine.

Classes are scheduled as a local date and start time in the studio's
timezone; every comparison against "now" happens in UTC.
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz

from .config import settings


def get_studio_timezone() -> pytz.BaseTzInfo:
    """Return the configured studio timezone as a pytz timezone object."""
    return pytz.timezone(settings.studio_timezone)


def utc_now() -> datetime:
    """Current timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def get_studio_today(now: Optional[datetime] = None) -> date:
    """Today's date in the studio timezone."""
    current = now or utc_now()
    return current.astimezone(get_studio_timezone()).date()


def studio_local_to_utc(local_date: date, local_time: time) -> datetime:
    """
    Convert a studio-local date and time to an aware UTC datetime.

    pytz requires ``localize`` rather than ``tzinfo=`` so DST offsets are applied.
    """
    naive = datetime.combine(local_date, local_time.replace(tzinfo=None))
    return get_studio_timezone().localize(naive).astimezone(timezone.utc)


def hours_until(start_utc: datetime, now: Optional[datetime] = None) -> float:
    """Hours from ``now`` until ``start_utc`` (negative once started)."""
    current = now or utc_now()
    return (start_utc - current).total_seconds() / 3600.0
