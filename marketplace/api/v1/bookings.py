"""Booking endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.deps import CurrentUser, DbSession, Pagination, pagination_params
from marketplace.core.middleware import booking_limiter
from marketplace.domain.booking_state import BookingStatus
from marketplace.domain.booking_window import build_booking_kind
from marketplace.models.booking import Booking, Rating
from marketplace.models.user import User
from marketplace.schemas.booking import (
    AvailabilityRequest,
    AvailabilityResponse,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingStats,
    BookingStatusUpdate,
    BookingUpdate,
    RatingRequest,
    RatingResponse,
)
from marketplace.schemas.calendar import CalendarResponse
from marketplace.services.availability_service import check_availability
from marketplace.services.booking_service import booking_service
from marketplace.services.calendar_service import calendar_service
from marketplace.services.notification_service import notification_service

router = APIRouter()


def _other_party(booking: Booking, user: User) -> UUID:
    return booking.provider_id if booking.client_id == user.id else booking.client_id


async def _queue_push(db: AsyncSession, background_tasks: BackgroundTasks, user_id: UUID) -> None:
    # Commit first: the push task reads the notification from its own session
    # and must not run while this request still holds row locks.
    await db.commit()
    background_tasks.add_task(notification_service.deliver_pending_pushes, user_id)


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_limiter)],
)
async def create_booking(
    booking_data: BookingCreate,
    current_user: CurrentUser,
    db: DbSession,
    background_tasks: BackgroundTasks,
) -> Booking:
    """Request a booking on a listing."""
    kind = build_booking_kind(
        entry_date=booking_data.entry_date,
        departure_date=booking_data.departure_date,
        scheduled_at=booking_data.scheduled_at,
        time=booking_data.time,
        duration_mins=booking_data.duration_mins,
    )
    booking = await booking_service.create_booking(
        db,
        client_id=current_user.id,
        listing_id=booking_data.listing_id,
        kind=kind,
        intervention_type=booking_data.intervention_type,
        price_cents=booking_data.price_cents,
        provider_notes=booking_data.provider_notes,
    )
    await _queue_push(db, background_tasks, booking.provider_id)
    return booking


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    current_user: CurrentUser,
    db: DbSession,
    pagination: Annotated[Pagination, Depends(pagination_params)],
    status_filter: Annotated[BookingStatus | None, Query(alias="status")] = None,
    listing_id: UUID | None = None,
    intervention_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """List the bookings visible to the current user."""
    return await booking_service.list_bookings(
        db,
        current_user,
        page=pagination.page,
        limit=pagination.limit,
        status=status_filter,
        listing_id=listing_id,
        intervention_type=intervention_type,
        start=start,
        end=end,
    )


@router.get("/calendar", response_model=CalendarResponse)
async def get_my_calendar(
    current_user: CurrentUser,
    db: DbSession,
    year: int,
    month: int,
    listing_id: UUID | None = None,
) -> CalendarResponse:
    """Month view of the current user's bookings."""
    return await calendar_service.get_calendar(db, current_user.id, year, month, listing_id)


@router.get("/stats", response_model=BookingStats)
async def get_my_booking_stats(
    current_user: CurrentUser,
    db: DbSession,
    listing_id: UUID | None = None,
) -> dict:
    """Booking counts by status for the current user."""
    return await booking_service.booking_stats(db, current_user, listing_id)


@router.post("/check-availability", response_model=AvailabilityResponse)
async def check_listing_availability(
    request: AvailabilityRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> AvailabilityResponse:
    """Check whether a listing is free over a date range."""
    result = await check_availability(
        db,
        request.listing_id,
        request.entry_date,
        request.departure_date,
        request.exclude_booking_id,
    )
    return AvailabilityResponse(
        available=result.available,
        conflict_count=result.conflict_count,
        nights=result.nights,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> Booking:
    """Get booking details."""
    return await booking_service.get_booking(db, booking_id, current_user)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: UUID,
    booking_data: BookingUpdate,
    current_user: CurrentUser,
    db: DbSession,
    background_tasks: BackgroundTasks,
) -> Booking:
    """Modify an open booking."""
    booking = await booking_service.update_booking(
        db,
        booking_id,
        current_user.id,
        booking_data.model_dump(exclude_unset=True),
    )
    await _queue_push(db, background_tasks, _other_party(booking, current_user))
    return booking


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    status_data: BookingStatusUpdate,
    current_user: CurrentUser,
    db: DbSession,
    background_tasks: BackgroundTasks,
) -> Booking:
    """Confirm, reject, cancel or complete a booking."""
    booking = await booking_service.update_status(
        db,
        booking_id,
        current_user.id,
        status_data.status,
        price_cents=status_data.price_cents,
    )
    await _queue_push(db, background_tasks, _other_party(booking, current_user))
    return booking


@router.put("/{booking_id}/rating", response_model=RatingResponse)
async def rate_booking(
    booking_id: UUID,
    rating_data: RatingRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> Rating:
    """Rate a completed booking; rating again replaces the previous one."""
    return await booking_service.rate_booking(
        db,
        booking_id,
        current_user.id,
        rating_data.rating,
        rating_data.comment,
    )


@router.delete("/{booking_id}", response_model=BookingResponse)
async def delete_booking(
    booking_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> Booking:
    """Delete a booking that was never confirmed."""
    return await booking_service.delete_booking(db, booking_id, current_user.id)
