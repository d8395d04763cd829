"""Which bookings a user may see, by role."""

from uuid import UUID

from sqlalchemy import ColumnElement, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import AuthorizationError, NotFoundError, NotOwner
from marketplace.domain.roles import BookingParty, UserRole
from marketplace.models.booking import Booking
from marketplace.models.listing import Listing
from marketplace.models.user import User


def booking_scope(user: User) -> ColumnElement[bool]:
    """SQL filter selecting the bookings visible to ``user``.

    Clients see the bookings they made, providers the bookings on their
    listings, admins everything.

    Raises:
        AuthorizationError: the role has no booking view.
    """
    match user.role:
        case UserRole.CLIENT:
            return Booking.client_id == user.id
        case UserRole.PROVIDER:
            own_listings = select(Listing.id).where(Listing.provider_id == user.id)
            return Booking.listing_id.in_(own_listings)
        case UserRole.ADMIN:
            return true()
        case _:
            raise AuthorizationError(f"Role '{user.role.value}' cannot access bookings")


async def check_listing_filter(db: AsyncSession, user: User, listing_id: UUID) -> Listing:
    """Validate a listing filter on a booking view.

    Providers may only narrow to their own listings. Clients keep their own
    scope, so narrowing to any listing is harmless.
    """
    result = await db.execute(select(Listing).where(Listing.id == listing_id))
    listing = result.scalar_one_or_none()
    if not listing:
        raise NotFoundError("Listing", str(listing_id))
    if user.role is UserRole.PROVIDER and listing.provider_id != user.id:
        raise NotOwner("You do not own this listing")
    return listing


def booking_party(booking: Booking, user_id: UUID) -> BookingParty | None:
    """Side of the booking ``user_id`` is on, or None for a third party."""
    if booking.client_id == user_id:
        return BookingParty.CLIENT
    if booking.provider_id == user_id:
        return BookingParty.PROVIDER
    return None


async def scoped_listing_ids(db: AsyncSession, user: User) -> list[UUID] | None:
    """Listings whose occupancy ``user`` may see; None means every listing.

    Providers see their own listings, clients the listings they booked.
    """
    match user.role:
        case UserRole.CLIENT:
            query = select(Booking.listing_id).where(Booking.client_id == user.id).distinct()
        case UserRole.PROVIDER:
            query = select(Listing.id).where(Listing.provider_id == user.id)
        case UserRole.ADMIN:
            return None
        case _:
            raise AuthorizationError(f"Role '{user.role.value}' cannot access bookings")

    result = await db.execute(query)
    return list(result.scalars().all())
