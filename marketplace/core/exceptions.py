"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.context = context or {}
        super().__init__(status_code=status_code, detail=detail, headers=headers)


# ==================== VALIDATION ====================


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed") -> None:
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class InvalidDateRange(ValidationError):
    """Entry/departure dates missing a partner or not strictly ordered."""

    def __init__(self, detail: str = "departure_date must be strictly after entry_date") -> None:
        super().__init__(detail)


class BookingKindMismatch(ValidationError):
    """Date-range and fixed-slot fields mixed on one booking."""

    def __init__(
        self,
        detail: str = "A booking is either a date range or a scheduled slot, not both",
    ) -> None:
        super().__init__(detail)


class MissingPrice(ValidationError):
    """No price available to settle a booking."""

    def __init__(self, detail: str = "A price must be set to complete this booking") -> None:
        super().__init__(detail)


class InvalidRating(ValidationError):
    """Rating outside the accepted range."""

    def __init__(self, detail: str = "Rating must be between 1 and 5") -> None:
        super().__init__(detail)


class InvalidBookingStatus(AppException):
    """Invalid booking status for operation."""

    def __init__(self, detail: str = "This operation is not allowed for the current booking status") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ListingNotAvailable(AppException):
    """Listing is inactive and cannot take bookings."""

    def __init__(self, detail: str = "This listing is not available for booking") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


# ==================== AUTH ====================


class AuthenticationError(AppException):
    """Authentication failed exception."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """Authorization denied exception."""

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotOwner(AuthorizationError):
    """Caller is neither the booking's client nor the listing's provider."""

    def __init__(self, detail: str = "You are not a party to this booking") -> None:
        super().__init__(detail)


class ProviderOnlyAction(AuthorizationError):
    """Action reserved for the listing's provider."""

    def __init__(self, detail: str = "Only the listing's provider can perform this action") -> None:
        super().__init__(detail)


class SelfBookingForbidden(AuthorizationError):
    """A provider tried to book their own listing."""

    def __init__(self, detail: str = "You cannot book your own listing") -> None:
        super().__init__(detail)


class BookingDeletionForbidden(AuthorizationError):
    """Confirmed or completed bookings cannot be removed."""

    def __init__(self, detail: str = "Confirmed or completed bookings cannot be deleted") -> None:
        super().__init__(detail)


# ==================== LOOKUP / CONFLICT ====================


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(AppException):
    """Request conflicts with existing state."""

    def __init__(self, detail: str = "Conflict with existing data", context: dict[str, Any] | None = None) -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail, context=context)


class BookingConflict(ConflictError):
    """Requested dates overlap active bookings on the listing."""

    def __init__(self, conflict_count: int) -> None:
        self.conflict_count = conflict_count
        super().__init__(
            detail="The selected dates are not available",
            context={"conflict_count": conflict_count},
        )


# ==================== INFRASTRUCTURE ====================


class RateLimitExceeded(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, detail: str = "Too many requests. Please try again later.") -> None:
        super().__init__(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)


class InfrastructureError(AppException):
    """Store or ledger unavailable."""

    def __init__(self, detail: str = "Service temporarily unavailable. Please retry.") -> None:
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)

