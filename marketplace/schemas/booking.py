"""Booking-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.domain.booking_state import BookingStatus


class BookingCreate(BaseModel):
    """Schema for creating a booking.

    Either ``entry_date``/``departure_date`` (a stay) or the slot fields
    (``scheduled_at``, ``time``, ``duration_mins``) may be given, not both.
    """

    listing_id: UUID
    entry_date: datetime | None = None
    departure_date: datetime | None = None
    scheduled_at: datetime | None = None
    time: str | None = Field(None, max_length=10)
    duration_mins: int | None = Field(None, ge=1, le=24 * 60)
    intervention_type: str | None = Field(None, max_length=50)
    price_cents: int | None = Field(None, ge=0)
    provider_notes: str | None = Field(None, max_length=1000)


class BookingUpdate(BaseModel):
    """Partial update of a booking; status changes go through the status endpoint."""

    listing_id: UUID | None = None
    entry_date: datetime | None = None
    departure_date: datetime | None = None
    scheduled_at: datetime | None = None
    time: str | None = Field(None, max_length=10)
    duration_mins: int | None = Field(None, ge=1, le=24 * 60)
    intervention_type: str | None = Field(None, max_length=50)
    price_cents: int | None = Field(None, ge=0)
    provider_notes: str | None = Field(None, max_length=1000)


class BookingStatusUpdate(BaseModel):
    """Schema for moving a booking to a new status."""

    status: BookingStatus
    # Agreed price, only on CONFIRMED or COMPLETED; required when completing
    # a booking that was never confirmed
    price_cents: int | None = Field(None, ge=0)


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference: str
    listing_id: UUID
    client_id: UUID
    provider_id: UUID

    # Stay
    entry_date: datetime | None = None
    departure_date: datetime | None = None
    nights: int | None = None

    # Slot
    scheduled_at: datetime | None = None
    time: str | None = None
    duration_mins: int | None = None

    price_cents: int | None = None
    status: BookingStatus
    intervention_type: str | None = None
    provider_notes: str | None = None
    transaction_id: UUID | None = None

    created_at: datetime
    updated_at: datetime


class BookingListResponse(BaseModel):
    """Schema for paginated booking list."""

    data: list[BookingResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class AvailabilityRequest(BaseModel):
    """Schema for checking a listing's availability over a date range."""

    listing_id: UUID
    entry_date: datetime
    departure_date: datetime
    exclude_booking_id: UUID | None = None


class AvailabilityResponse(BaseModel):
    """Availability of a listing over a date range."""

    available: bool
    conflict_count: int
    nights: int


class BookingStats(BaseModel):
    """Booking counts by status."""

    total: int = 0
    requested: int = 0
    confirmed: int = 0
    cancelled: int = 0  # cancelled + rejected
    completed: int = 0


class RatingRequest(BaseModel):
    """Schema for rating a completed booking."""

    # Range is enforced by the booking service so the error shape stays uniform
    rating: float
    comment: str | None = Field(None, max_length=1000)


class RatingResponse(BaseModel):
    """Schema for rating response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    client_id: UUID
    rating: float
    comment: str | None = None
    created_at: datetime
    updated_at: datetime
