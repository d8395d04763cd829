"""User roles and booking parties."""

from enum import Enum


class UserRole(str, Enum):
    """Closed set of account roles."""

    CLIENT = "CLIENT"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"
    SELLER = "SELLER"


class BookingParty(str, Enum):
    """Side a caller stands on for a given booking."""

    CLIENT = "client"
    PROVIDER = "provider"
