"""Calendar day keys ("YYYY-MM-DD") resolved in a user's timezone."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

__all__ = ["resolve_zone", "to_utc_date_key", "to_date_key", "shift_date_key"]

logger = logging.getLogger(__name__)


def resolve_zone(name: Optional[str]) -> Optional[ZoneInfo]:
    """Return the ZoneInfo for an IANA name, or None if it is unknown."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug(f"Unknown timezone {name!r}")
        return None


def _as_utc(instant: datetime) -> datetime:
    # Naive datetimes are taken to be UTC
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def to_utc_date_key(instant: Optional[datetime] = None) -> str:
    """Calendar day of ``instant`` (default: now) in UTC."""
    if instant is None:
        instant = datetime.now(timezone.utc)
    return _as_utc(instant).date().isoformat()


def to_date_key(instant: datetime, tz_name: Optional[str] = None) -> str:
    """Calendar day of ``instant`` in ``tz_name``.

    Falls back to the UTC day when no timezone is given or it cannot be
    resolved.
    """
    zone = resolve_zone(tz_name)
    if zone is None:
        return to_utc_date_key(instant)
    return _as_utc(instant).astimezone(zone).date().isoformat()


def shift_date_key(date_key: str, days: int) -> str:
    """Move a date key by ``days`` calendar days.

    An empty key yields today's UTC key; an unparsable key is returned as is.
    """
    if not date_key:
        return to_utc_date_key()
    try:
        parsed = date.fromisoformat(date_key)
    except ValueError:
        return date_key
    return (parsed + timedelta(days=days)).isoformat()
