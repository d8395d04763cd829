"""Pydantic schemas for API validation."""

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
from marketplace.schemas.calendar import CalendarPeriod, CalendarResponse
from marketplace.schemas.notification import NotificationListResponse, NotificationResponse
from marketplace.schemas.wallet import (
    TransactionListResponse,
    TransactionResponse,
    WalletResponse,
)

__all__ = [
    # Booking
    "BookingCreate",
    "BookingUpdate",
    "BookingStatusUpdate",
    "BookingResponse",
    "BookingListResponse",
    "BookingStats",
    "AvailabilityRequest",
    "AvailabilityResponse",
    "RatingRequest",
    "RatingResponse",
    # Calendar
    "CalendarPeriod",
    "CalendarResponse",
    # Wallet
    "WalletResponse",
    "TransactionResponse",
    "TransactionListResponse",
    # Notification
    "NotificationResponse",
    "NotificationListResponse",
]
