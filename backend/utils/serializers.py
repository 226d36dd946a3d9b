"""
Timestamp helpers shared by the ORM, the domain types and the API schemas.

Stored timestamps are UTC. SQLite hands them back without an offset, so
anything read from the store goes through ``as_utc`` before it is exposed.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat a naive datetime as UTC; aware ones are converted to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
