"""Application-wide constants for the studio reservation engine."""

from __future__ import annotations

BRAND_NAME = "Studio Booking"

# Lock key namespace shared by every process touching the same store
CLASS_LOCK_NAMESPACE = "studio_booking"
