"""Listing booking views."""

from uuid import UUID

from fastapi import APIRouter

from marketplace.api.deps import CurrentUser, DbSession
from marketplace.schemas.booking import BookingStats
from marketplace.schemas.calendar import CalendarResponse
from marketplace.services.booking_service import booking_service
from marketplace.services.calendar_service import calendar_service

router = APIRouter()


@router.get("/{listing_id}/calendar", response_model=CalendarResponse)
async def get_listing_calendar(
    listing_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    year: int,
    month: int,
) -> CalendarResponse:
    """Month view of a listing's bookings and blocked dates."""
    return await calendar_service.get_calendar(db, current_user.id, year, month, listing_id)


@router.get("/{listing_id}/stats", response_model=BookingStats)
async def get_listing_stats(
    listing_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> dict:
    """Booking counts by status on a listing."""
    return await booking_service.booking_stats(db, current_user, listing_id)
