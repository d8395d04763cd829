"""Month calendar of bookings.

Bookings are bucketed by the local day (``settings.calendar_timezone``) of
their calendar instant: ``scheduled_at`` for slots, ``entry_date`` for stays.
Confirmed stays additionally block every day from entry to departure,
inclusive of both ends.
"""

import logging
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.domain.booking_state import BookingStatus, summarize_statuses
from marketplace.domain.booking_window import as_utc
from marketplace.models.booking import Booking
from marketplace.models.user import User
from marketplace.schemas.booking import BookingResponse, BookingStats
from marketplace.schemas.calendar import CalendarPeriod, CalendarResponse
from marketplace.services.booking_scope import (
    booking_scope,
    check_listing_filter,
    scoped_listing_ids,
)

logger = logging.getLogger(__name__)


def month_window(year: int, month: int, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """First instant of the month and first instant of the next, in ``tz``."""
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if not 1 <= year <= 9998:
        raise ValidationError("year is out of range")

    start = datetime(year, month, 1, tzinfo=tz)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=tz)
    else:
        end = datetime(year, month + 1, 1, tzinfo=tz)
    return start, end


def expand_days(entry_date: datetime, departure_date: datetime, tz: ZoneInfo) -> list[date]:
    """Local days from entry to departure, both included."""
    first = as_utc(entry_date).astimezone(tz).date()
    last = as_utc(departure_date).astimezone(tz).date()
    days = []
    current = first
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


class CalendarService:
    """Service building month views of bookings."""

    async def get_calendar(
        self,
        db: AsyncSession,
        user_id: UUID,
        year: int,
        month: int,
        listing_id: UUID | None = None,
    ) -> CalendarResponse:
        """Bookings of ``user_id`` in a month, grouped by day.

        With ``listing_id``, bookings are narrowed to that listing and blocked
        dates cover every confirmed stay on it, whoever booked it.

        Raises:
            NotFoundError: user or listing does not exist.
            ValidationError: month outside 1-12.
            AuthorizationError: role without a booking view, or a provider
                asking for another provider's listing.
        """
        tz = ZoneInfo(settings.calendar_timezone)
        start, end = month_window(year, month, tz)
        start_utc = as_utc(start)
        end_utc = as_utc(end)

        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User", str(user_id))

        scope = booking_scope(user)
        if listing_id is not None:
            await check_listing_filter(db, user, listing_id)

        # Bookings placed in the month
        anchor = func.coalesce(Booking.scheduled_at, Booking.entry_date)
        query = select(Booking).where(scope, anchor >= start_utc, anchor < end_utc)
        if listing_id is not None:
            query = query.where(Booking.listing_id == listing_id)
        result = await db.execute(query.order_by(anchor, Booking.created_at))
        bookings = list(result.scalars().all())

        items = [BookingResponse.model_validate(b) for b in bookings]
        by_day: dict[str, list[BookingResponse]] = defaultdict(list)
        for booking, item in zip(bookings, items):
            day = booking.calendar_anchor.astimezone(tz).date().isoformat()
            by_day[day].append(item)

        # Confirmed stays touching the month, on the listings in view
        if listing_id is not None:
            listing_ids: list[UUID] | None = [listing_id]
        else:
            listing_ids = await scoped_listing_ids(db, user)

        blocked_query = select(Booking.entry_date, Booking.departure_date).where(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.entry_date.is_not(None),
            Booking.departure_date.is_not(None),
            Booking.entry_date < end_utc,
            Booking.departure_date >= start_utc,
        )
        if listing_ids is not None:
            blocked_query = blocked_query.where(Booking.listing_id.in_(listing_ids))
        result = await db.execute(blocked_query)
        blocked: set[date] = set()
        for entry_date, departure_date in result.all():
            blocked.update(expand_days(entry_date, departure_date, tz))

        stats = summarize_statuses(Counter(b.status for b in bookings))

        logger.debug(
            "Calendar %04d-%02d for user %s: %d booking(s), %d blocked day(s)",
            year,
            month,
            user_id,
            len(bookings),
            len(blocked),
        )
        return CalendarResponse(
            period=CalendarPeriod(year=year, month=month),
            bookings=items,
            bookings_by_day=dict(by_day),
            blocked_dates=[d.isoformat() for d in sorted(blocked)],
            stats=BookingStats(**stats),
        )


# Singleton instance
calendar_service = CalendarService()
