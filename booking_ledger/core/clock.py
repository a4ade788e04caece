"""UTC time helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so every value read from storage goes through :func:`as_utc` before
it is compared with :func:`utcnow`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
