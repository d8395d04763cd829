"""Listing availability over date ranges.

A date-range booking holds its dates while it is REQUESTED or CONFIRMED.
Overlap is inclusive: a stay ending on the 25th conflicts with one starting
on the 25th. Fixed-slot bookings never block dates.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import BookingConflict, InvalidDateRange, NotFoundError
from marketplace.domain.booking_state import ACTIVE_STATUSES
from marketplace.domain.booking_window import DateRange, validate_date_range
from marketplace.models.booking import Booking
from marketplace.models.listing import Listing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    conflict_count: int
    nights: int


async def get_listing(db: AsyncSession, listing_id: UUID, for_update: bool = False) -> Listing:
    """Load a listing, optionally locking its row.

    Locking the listing serializes check-then-insert for concurrent bookings
    on the same listing.
    """
    query = select(Listing).where(Listing.id == listing_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    listing = result.scalar_one_or_none()
    if not listing:
        raise NotFoundError("Listing", str(listing_id))
    return listing


async def count_conflicts(
    db: AsyncSession,
    listing_id: UUID,
    window: DateRange,
    exclude_booking_id: UUID | None = None,
) -> int:
    """Count active date-range bookings on the listing overlapping ``window``."""
    query = select(func.count(Booking.id)).where(
        Booking.listing_id == listing_id,
        Booking.status.in_(list(ACTIVE_STATUSES)),
        Booking.entry_date.is_not(None),
        Booking.departure_date.is_not(None),
        Booking.entry_date <= window.departure_date,
        Booking.departure_date >= window.entry_date,
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)

    result = await db.execute(query)
    return result.scalar() or 0


async def check_availability(
    db: AsyncSession,
    listing_id: UUID,
    entry_date: datetime,
    departure_date: datetime,
    exclude_booking_id: UUID | None = None,
) -> AvailabilityResult:
    """Report whether the listing is free over ``[entry_date, departure_date]``.

    Read-only; repeated calls with no intervening writes return the same result.

    Raises:
        InvalidDateRange: dates missing or not strictly ordered.
        NotFoundError: listing does not exist.
    """
    window = validate_date_range(entry_date, departure_date)
    if window is None:
        raise InvalidDateRange("entry_date and departure_date are required")

    await get_listing(db, listing_id)
    conflicts = await count_conflicts(db, listing_id, window, exclude_booking_id)

    return AvailabilityResult(
        available=conflicts == 0,
        conflict_count=conflicts,
        nights=window.nights,
    )


async def ensure_available(
    db: AsyncSession,
    listing_id: UUID,
    window: DateRange,
    exclude_booking_id: UUID | None = None,
) -> None:
    """Raise BookingConflict when ``window`` overlaps an active booking.

    Callers must hold the listing row lock (``get_listing(for_update=True)``).
    """
    conflicts = await count_conflicts(db, listing_id, window, exclude_booking_id)
    if conflicts:
        logger.info(
            "Rejected dates %s → %s on listing %s: %d conflicting booking(s)",
            window.entry_date.isoformat(),
            window.departure_date.isoformat(),
            listing_id,
            conflicts,
        )
        raise BookingConflict(conflicts)
