"""Database models."""

from marketplace.database import Base
from marketplace.models.booking import Booking, Rating
from marketplace.models.listing import Listing, ListingType
from marketplace.models.notification import Notification
from marketplace.models.user import User
from marketplace.models.wallet import Transaction, TransactionStatus, Wallet

__all__ = [
    "Base",
    # User
    "User",
    # Listing
    "Listing",
    "ListingType",
    # Booking
    "Booking",
    "Rating",
    # Wallet
    "Wallet",
    "Transaction",
    "TransactionStatus",
    # Notification
    "Notification",
]
