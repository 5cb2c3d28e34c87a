"""
Official timestamp handling for eForm-C passes.

Passes carry their "Generated On" and "Valid Upto" values in the fixed
display format ``DD-MM-YYYY HH:MM:SS AM/PM`` (12-hour clock, zero padded,
rendered on the configured display timezone's wall clock). The same
instants are also stored as native timestamp columns for filtering; both
are written together when a record is created.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from app.config import settings

logger = logging.getLogger(__name__)

TIMESTAMP_PATTERN = re.compile(r"^\d{2}-\d{2}-\d{4} \d{2}:\d{2}:\d{2} (AM|PM)$")
_CANONICAL_PARTS = re.compile(r"^(\d{2})-(\d{2})-(\d{4}) (\d{2}):(\d{2}):(\d{2}) (AM|PM)$")


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def display_zone() -> ZoneInfo:
    return _zone(settings.display_timezone)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are read as UTC (storage convention)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(instant: datetime) -> str:
    """
    Format an instant as ``DD-MM-YYYY HH:MM:SS AM/PM``.

    Aware datetimes are shown on the display timezone's clock; naive ones
    are taken as already being wall-clock time.
    """
    local = instant.astimezone(display_zone()) if instant.tzinfo is not None else instant

    period = "PM" if local.hour >= 12 else "AM"
    hours = local.hour % 12 or 12

    return (
        f"{local.day:02d}-{local.month:02d}-{local.year:04d} "
        f"{hours:02d}:{local.minute:02d}:{local.second:02d} {period}"
    )


def is_valid_timestamp_format(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    return TIMESTAMP_PATTERN.match(value) is not None


def _parse_canonical(value: str) -> Optional[datetime]:
    match = _CANONICAL_PARTS.match(value)
    if not match:
        return None

    day, month, year, hours, minutes, seconds = (int(part) for part in match.groups()[:6])
    period = match.group(7)

    if period == "PM" and hours != 12:
        hours += 12
    elif period == "AM" and hours == 12:
        hours = 0

    try:
        return datetime(year, month, day, hours, minutes, seconds, tzinfo=display_zone())
    except ValueError:
        return None


def parse_timestamp(value: Optional[str], now: Optional[datetime] = None) -> datetime:
    """
    Parse a display-format timestamp back to an aware datetime.

    Input that does not match the format yields ``now`` instead of raising;
    callers that need strictness check ``is_valid_timestamp_format`` first.
    """
    parsed = _parse_canonical(value) if isinstance(value, str) else None
    if parsed is None:
        logger.warning("Unparseable timestamp %r, falling back to current time", value)
        return now or utcnow()
    return parsed


def parse_flexible(value: Any) -> Optional[datetime]:
    """
    Parse either the display format or a raw ISO-8601 date-time.

    Returns None when neither applies, so the caller can fall back to
    another source. Naive ISO values are read as UTC.
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    parsed = _parse_canonical(text)
    if parsed is not None:
        return parsed

    try:
        raw = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return as_utc(raw)


def add_validity_window(instant: datetime, hours: float) -> datetime:
    return instant + timedelta(hours=hours)


def is_still_valid(valid_upto: str, now: Optional[datetime] = None) -> bool:
    """True while ``now`` has not passed the display-format ``valid_upto``."""
    if not is_valid_timestamp_format(valid_upto):
        logger.warning("Cannot check validity of malformed timestamp %r", valid_upto)
        return False
    now = now or utcnow()
    return as_utc(now) <= parse_timestamp(valid_upto)


def remaining_validity(valid_upto: datetime, now: Optional[datetime] = None) -> str:
    """Human readable time left, e.g. ``3h 12m remaining`` or ``Expired``."""
    now = as_utc(now or utcnow())
    expiry = as_utc(valid_upto)

    if now > expiry:
        return "Expired"

    total_minutes = int((expiry - now).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)

    if hours > 0:
        return f"{hours}h {minutes}m remaining"
    return f"{minutes}m remaining"


def resolve_timestamp(form_data: Optional[Mapping[str, Any]], stored: Optional[datetime], key: str) -> Optional[datetime]:
    """
    Pick the authoritative value of a record timestamp stored under ``key``.

    Used for both ``valid_upto`` and ``generated_on``. The display-format
    value embedded in ``form_data`` wins; the storage column is used when
    the embedded value is missing or unparseable.
    """
    embedded = parse_flexible(form_data.get(key)) if form_data else None
    if embedded is not None:
        return embedded

    if form_data and form_data.get(key):
        logger.warning("Embedded %s %r is unparseable, using storage column", key, form_data.get(key))

    return as_utc(stored) if stored is not None else None
