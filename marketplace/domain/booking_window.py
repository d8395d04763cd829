"""Booking window validation.

A booking is either a fixed appointment slot or a stay over a date range:

- ``FixedSlot``: optional ``scheduled_at`` instant, free-form ``time`` and a
  duration in minutes. A slot with no ``scheduled_at`` is an open request.
- ``DateRange``: ``entry_date`` < ``departure_date`` and the derived number of
  nights, ``ceil((departure - entry) / 1 day)``.

All instants are normalized to UTC; naive values are read as UTC.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from marketplace.core.exceptions import BookingKindMismatch, InvalidDateRange

ONE_DAY = timedelta(days=1)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def count_nights(entry_date: datetime, departure_date: datetime) -> int:
    """Number of nights covered, rounding partial days up."""
    return math.ceil((as_utc(departure_date) - as_utc(entry_date)) / ONE_DAY)


@dataclass(frozen=True)
class FixedSlot:
    scheduled_at: datetime | None = None
    time: str | None = None
    duration_mins: int | None = None


@dataclass(frozen=True)
class DateRange:
    entry_date: datetime
    departure_date: datetime
    nights: int

    def overlaps(self, other: DateRange) -> bool:
        """Inclusive overlap: shared boundary instants count as a conflict."""
        return self.entry_date <= other.departure_date and self.departure_date >= other.entry_date


BookingKind = FixedSlot | DateRange


def validate_date_range(
    entry_date: datetime | None,
    departure_date: datetime | None,
) -> DateRange | None:
    """Validate a possibly-absent date pair.

    Returns None when neither date is given.

    Raises:
        InvalidDateRange: only one date given, or departure not after entry.
    """
    if entry_date is None and departure_date is None:
        return None
    if entry_date is None or departure_date is None:
        raise InvalidDateRange("entry_date and departure_date must be provided together")

    entry = as_utc(entry_date)
    departure = as_utc(departure_date)
    if departure <= entry:
        raise InvalidDateRange()

    nights = count_nights(entry, departure)
    if nights < 1:
        raise InvalidDateRange()
    return DateRange(entry_date=entry, departure_date=departure, nights=nights)


def build_booking_kind(
    entry_date: datetime | None = None,
    departure_date: datetime | None = None,
    scheduled_at: datetime | None = None,
    time: str | None = None,
    duration_mins: int | None = None,
) -> BookingKind:
    """Build the booking variant from flat request fields."""
    date_range = validate_date_range(entry_date, departure_date)
    has_slot_fields = any(v is not None for v in (scheduled_at, time, duration_mins))

    if date_range is not None:
        if has_slot_fields:
            raise BookingKindMismatch()
        return date_range

    return FixedSlot(
        scheduled_at=as_utc(scheduled_at),
        time=time,
        duration_mins=duration_mins,
    )
