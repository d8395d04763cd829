"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from marketplace.api.v1 import bookings, listings, notifications, wallets

api_router = APIRouter()

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Listings
api_router.include_router(listings.router, prefix="/listings", tags=["Listings"])

# Wallets
api_router.include_router(wallets.router, prefix="/wallets", tags=["Wallets"])

# Notifications
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
