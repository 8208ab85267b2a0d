"""
Booking Archive Rules

A booking is archivable when:
- its status is Active
- its departure date parses to a valid date
- that date is strictly earlier than one calendar month before `now`

Bookings with a missing or unparsable departure date are never archived.
Trip state is not consulted.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Iterable, Optional, Set

from dateutil.parser import parse as parse_date
from dateutil.relativedelta import relativedelta

from reconciliation.models import Booking, BookingStatus


ARCHIVE_AFTER = relativedelta(months=1)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def archive_cutoff(now: datetime) -> datetime:
    """
    One calendar month before `now`.

    The month component is stepped back with year rollover (Jan 15 -> Dec 15)
    and the day is clamped to the target month's length (Mar 31 -> Feb 28).
    """
    return _as_utc(now) - ARCHIVE_AFTER


def parse_departure_date(value: Any) -> Optional[datetime]:
    """Parse a stored departure date. Returns None when it cannot be read."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return _as_utc(parse_date(value.strip()))
    except (ValueError, OverflowError):
        return None


def is_archivable(booking: Booking, cutoff: datetime) -> bool:
    if booking.status != BookingStatus.ACTIVE.value:
        return False
    departure = parse_departure_date(booking.departure_date)
    return departure is not None and departure < cutoff


def select_archivable(bookings: Iterable[Booking], now: datetime) -> Set[str]:
    """
    Ids of the bookings that should move from Active to Archived.

    Args:
        bookings: Candidate bookings (normally every Active booking)
        now: Reference timestamp

    Returns:
        Set of store document ids
    """
    cutoff = archive_cutoff(now)
    return {booking.doc_id for booking in bookings if is_archivable(booking, cutoff)}
