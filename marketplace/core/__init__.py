"""Core utilities: errors, security and middleware."""

from marketplace.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    BookingConflict,
    ConflictError,
    InfrastructureError,
    InvalidBookingStatus,
    NotFoundError,
    ValidationError,
)
from marketplace.core.security import create_access_token, verify_token

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "BookingConflict",
    "ConflictError",
    "InfrastructureError",
    "InvalidBookingStatus",
    "NotFoundError",
    "ValidationError",
    "create_access_token",
    "verify_token",
]
