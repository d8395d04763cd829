"""Booking lifecycle service.

Every mutating operation validates first and writes last, so a rejected
request leaves no partial state behind. Rows are locked in a fixed order
(listing, then booking, then wallet) to keep concurrent requests on the same
listing from interleaving their check-then-write steps.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.core.exceptions import (
    AuthorizationError,
    BookingDeletionForbidden,
    BookingKindMismatch,
    InfrastructureError,
    InvalidBookingStatus,
    InvalidDateRange,
    InvalidRating,
    ListingNotAvailable,
    NotFoundError,
    NotOwner,
    SelfBookingForbidden,
    ValidationError,
)
from marketplace.domain.booking_state import (
    TERMINAL_STATUSES,
    UNDELETABLE_STATUSES,
    BookingStatus,
    assert_party_may_transition,
    resolve_settlement_amount,
    summarize_statuses,
)
from marketplace.domain.booking_window import (
    BookingKind,
    DateRange,
    as_utc,
    validate_date_range,
)
from marketplace.domain.roles import BookingParty, UserRole
from marketplace.models.booking import Booking, Rating
from marketplace.models.listing import Listing
from marketplace.models.user import User
from marketplace.services.availability_service import ensure_available, get_listing
from marketplace.services.booking_scope import booking_party, booking_scope, check_listing_filter
from marketplace.services.ledger_service import ledger_service
from marketplace.services.notification_service import notification_service
from marketplace.utils.booking_reference import generate_booking_reference
from marketplace.utils.pagination import paginate

logger = logging.getLogger(__name__)

REFERENCE_ATTEMPTS = 5
# How the unique index on bookings.reference shows up in driver errors
REFERENCE_COLLISION_MARKERS = ("ix_bookings_reference", "bookings.reference", "(reference)=")

DATE_FIELDS = ("entry_date", "departure_date")
SLOT_FIELDS = ("scheduled_at", "time", "duration_mins")
UPDATABLE_FIELDS = frozenset(
    ("listing_id", "price_cents", "provider_notes", "intervention_type")
    + DATE_FIELDS
    + SLOT_FIELDS
)

MIN_RATING = 1.0
MAX_RATING = 5.0


def _assert_bookable(listing: Listing, client_id: UUID) -> None:
    if not listing.is_active:
        raise ListingNotAvailable()
    if listing.provider_id == client_id:
        raise SelfBookingForbidden()


def _is_reference_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return any(marker in message for marker in REFERENCE_COLLISION_MARKERS)


class BookingService:
    """Service for creating, changing and settling bookings."""

    async def _get_booking_for_update(self, db: AsyncSession, booking_id: UUID) -> Booking:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def _get_booking_row(self, db: AsyncSession, booking_id: UUID) -> Booking:
        result = await db.execute(select(Booking).where(Booking.id == booking_id))
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    # ==================== CREATE ====================

    async def create_booking(
        self,
        db: AsyncSession,
        client_id: UUID,
        listing_id: UUID,
        kind: BookingKind,
        intervention_type: str | None = None,
        price_cents: int | None = None,
        provider_notes: str | None = None,
    ) -> Booking:
        """Create a REQUESTED booking for ``client_id`` on a listing.

        The price defaults to the listing's base price when not given.

        Raises:
            NotFoundError: listing does not exist.
            ListingNotAvailable: listing is inactive.
            SelfBookingForbidden: client owns the listing.
            BookingConflict: stay overlaps an active booking.
        """
        listing = await get_listing(db, listing_id, for_update=True)
        _assert_bookable(listing, client_id)

        if isinstance(kind, DateRange):
            await ensure_available(db, listing.id, kind)

        fields: dict[str, Any] = {
            "listing_id": listing.id,
            "client_id": client_id,
            "provider_id": listing.provider_id,
            "status": BookingStatus.REQUESTED,
            "intervention_type": intervention_type,
            "price_cents": price_cents if price_cents is not None else listing.base_price_cents,
            "provider_notes": provider_notes,
        }
        if isinstance(kind, DateRange):
            fields.update(
                entry_date=kind.entry_date,
                departure_date=kind.departure_date,
                nights=kind.nights,
            )
        else:
            fields.update(
                scheduled_at=kind.scheduled_at,
                time=kind.time,
                duration_mins=kind.duration_mins,
            )

        booking = await self._insert_with_reference(db, fields)
        await notification_service.notify_booking_requested(db, booking)

        logger.info(
            "Booking %s requested on listing %s by client %s",
            booking.reference,
            listing.id,
            client_id,
        )
        return booking

    async def _insert_with_reference(self, db: AsyncSession, fields: dict[str, Any]) -> Booking:
        """Insert a booking, drawing a fresh reference on collision."""
        for attempt in range(1, REFERENCE_ATTEMPTS + 1):
            booking = Booking(reference=generate_booking_reference(), **fields)
            try:
                async with db.begin_nested():
                    db.add(booking)
                    await db.flush()
            except IntegrityError as e:
                if not _is_reference_collision(e):
                    raise
                logger.warning(
                    "Booking reference collision on attempt %d/%d",
                    attempt,
                    REFERENCE_ATTEMPTS,
                )
                continue
            return booking

        raise InfrastructureError("Could not allocate a booking reference. Please retry.")

    # ==================== READ ====================

    async def get_booking(self, db: AsyncSession, booking_id: UUID, user: User) -> Booking:
        """Get a booking visible to ``user``."""
        booking = await self._get_booking_row(db, booking_id)
        if user.role is not UserRole.ADMIN and booking_party(booking, user.id) is None:
            raise NotOwner()
        return booking

    async def list_bookings(
        self,
        db: AsyncSession,
        user: User,
        page: int | None = None,
        limit: int | None = None,
        status: BookingStatus | None = None,
        listing_id: UUID | None = None,
        intervention_type: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        """Page through the bookings visible to ``user``, newest first.

        ``start``/``end`` filter on the booking's calendar instant
        (``scheduled_at`` or ``entry_date``).
        """
        query = select(Booking).where(booking_scope(user))

        if listing_id is not None:
            await check_listing_filter(db, user, listing_id)
            query = query.where(Booking.listing_id == listing_id)
        if status is not None:
            query = query.where(Booking.status == status)
        if intervention_type:
            query = query.where(Booking.intervention_type == intervention_type)

        anchor = func.coalesce(Booking.scheduled_at, Booking.entry_date)
        if start is not None:
            query = query.where(anchor >= as_utc(start))
        if end is not None:
            query = query.where(anchor <= as_utc(end))

        query = query.order_by(Booking.created_at.desc())
        return await paginate(db, query, page, limit)

    async def booking_stats(
        self,
        db: AsyncSession,
        user: User,
        listing_id: UUID | None = None,
    ) -> dict[str, int]:
        """Count the bookings visible to ``user`` by status."""
        query = select(Booking.status, func.count(Booking.id)).where(booking_scope(user))
        if listing_id is not None:
            await check_listing_filter(db, user, listing_id)
            query = query.where(Booking.listing_id == listing_id)

        result = await db.execute(query.group_by(Booking.status))
        return summarize_statuses({status: count for status, count in result.all()})

    # ==================== UPDATE ====================

    async def update_booking(
        self,
        db: AsyncSession,
        booking_id: UUID,
        caller_id: UUID,
        changes: Mapping[str, Any],
    ) -> Booking:
        """Apply a partial update to an open booking.

        A booking keeps its kind: stays accept date changes, slots accept
        slot changes. Date changes need both dates and are re-checked for
        availability, excluding the booking itself.

        Raises:
            NotOwner: caller is not a party to the booking.
            InvalidBookingStatus: booking is cancelled, rejected or completed.
            AuthorizationError: provider editing an unconfirmed booking, or
                moving it to another listing.
            BookingKindMismatch: fields of the other booking kind supplied.
            InvalidDateRange: only one date supplied, or dates out of order.
            BookingConflict: new dates overlap another active booking.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        # Lock the listing before the booking, as create_booking does
        current = await self._get_booking_row(db, booking_id)
        target_listing_id = changes.get("listing_id") or current.listing_id
        moving = target_listing_id != current.listing_id

        is_stay = current.is_date_range
        touches_dates = any(f in changes for f in DATE_FIELDS)
        target_listing: Listing | None = None
        if is_stay or moving:
            target_listing = await get_listing(db, target_listing_id, for_update=True)

        booking = await self._get_booking_for_update(db, booking_id)
        party = booking_party(booking, caller_id)
        if party is None:
            raise NotOwner()
        if booking.status in TERMINAL_STATUSES:
            raise InvalidBookingStatus(
                f"A {booking.status.value} booking can no longer be modified"
            )
        if booking.status is BookingStatus.REQUESTED and party is not BookingParty.CLIENT:
            raise AuthorizationError("Only the client can modify a booking before it is confirmed")

        if is_stay and any(changes.get(f) is not None for f in SLOT_FIELDS):
            raise BookingKindMismatch("A date range booking cannot take slot fields")
        if not is_stay and any(changes.get(f) is not None for f in DATE_FIELDS):
            raise BookingKindMismatch("A slot booking cannot take dates")

        window: DateRange | None = None
        if is_stay:
            if touches_dates:
                window = validate_date_range(changes.get("entry_date"), changes.get("departure_date"))
                if window is None:
                    raise InvalidDateRange("Dates of a date range booking cannot be cleared")
            else:
                window = booking.kind

        if moving:
            if party is not BookingParty.CLIENT:
                raise AuthorizationError("Only the client can move a booking to another listing")
            _assert_bookable(target_listing, booking.client_id)

        if window is not None and (touches_dates or moving):
            await ensure_available(db, target_listing.id, window, exclude_booking_id=booking.id)

        # All checks passed; apply
        if moving:
            booking.listing_id = target_listing.id
            booking.provider_id = target_listing.provider_id
        if touches_dates and window is not None:
            booking.entry_date = window.entry_date
            booking.departure_date = window.departure_date
            booking.nights = window.nights
        if "scheduled_at" in changes:
            booking.scheduled_at = as_utc(changes["scheduled_at"])
        for field in ("time", "duration_mins", "price_cents", "provider_notes", "intervention_type"):
            if field in changes:
                setattr(booking, field, changes[field])
        await db.flush()

        other = booking.provider_id if party is BookingParty.CLIENT else booking.client_id
        await notification_service.notify_booking_updated(db, booking, other)

        logger.info("Booking %s updated by %s (%s)", booking.reference, caller_id, party.value)
        return booking

    # ==================== STATUS ====================

    async def update_status(
        self,
        db: AsyncSession,
        booking_id: UUID,
        caller_id: UUID,
        new_status: BookingStatus,
        price_cents: int | None = None,
    ) -> Booking:
        """Move a booking to ``new_status``.

        Completing a booking settles it: the provider's wallet is credited
        and the ledger transaction is linked to the booking, together with
        the status change or not at all.

        Raises:
            NotOwner: caller is not a party to the booking.
            InvalidBookingStatus: transition not allowed from the current status.
            ProviderOnlyAction: client confirming, rejecting, or cancelling
                a confirmed booking.
            MissingPrice: completion with no price to settle.
            NotFoundError: provider has no wallet.
        """
        booking = await self._get_booking_for_update(db, booking_id)
        party = booking_party(booking, caller_id)
        previous = booking.status

        assert_party_may_transition(previous, new_status, party, price_cents)

        if new_status is BookingStatus.COMPLETED:
            await self._settle(db, booking, price_cents)
        else:
            booking.status = new_status
            if price_cents is not None:
                booking.price_cents = price_cents
            await db.flush()

        other = booking.provider_id if party is BookingParty.CLIENT else booking.client_id
        await notification_service.notify_booking_status(db, booking, other)

        logger.info(
            "Booking %s: %s → %s by %s",
            booking.reference,
            previous.value,
            new_status.value,
            party.value,
        )
        return booking

    async def _settle(self, db: AsyncSession, booking: Booking, price_cents: int | None) -> None:
        amount = resolve_settlement_amount(
            explicit_price=price_cents,
            stored_price=booking.price_cents,
            nights=booking.nights,
            multiply_by_nights=settings.settlement_multiply_by_nights,
        )
        wallet = await ledger_service.get_wallet(db, booking.provider_id, for_update=True)

        async with db.begin_nested():
            booking.status = BookingStatus.COMPLETED
            if price_cents is not None:
                booking.price_cents = price_cents
            transaction = await ledger_service.credit_booking_settlement(
                db, wallet, booking, amount
            )
            booking.transaction_id = transaction.id
            await db.flush()

    # ==================== DELETE ====================

    async def delete_booking(self, db: AsyncSession, booking_id: UUID, caller_id: UUID) -> Booking:
        """Remove a booking that never got confirmed.

        Raises:
            NotOwner: caller is not a party to the booking.
            BookingDeletionForbidden: booking is CONFIRMED or COMPLETED.
        """
        booking = await self._get_booking_for_update(db, booking_id)
        if booking_party(booking, caller_id) is None:
            raise NotOwner()
        if booking.status in UNDELETABLE_STATUSES:
            raise BookingDeletionForbidden()

        await db.delete(booking)
        await db.flush()

        logger.info("Booking %s deleted by %s", booking.reference, caller_id)
        return booking

    # ==================== RATING ====================

    async def rate_booking(
        self,
        db: AsyncSession,
        booking_id: UUID,
        caller_id: UUID,
        rating: float,
        comment: str | None = None,
    ) -> Rating:
        """Record or replace the client's rating of a completed booking.

        Raises:
            InvalidRating: rating outside 1-5.
            NotOwner: caller is not a party to the booking.
            AuthorizationError: caller is the provider.
            InvalidBookingStatus: booking is not COMPLETED.
        """
        if not MIN_RATING <= rating <= MAX_RATING:
            raise InvalidRating()

        booking = await self._get_booking_for_update(db, booking_id)
        party = booking_party(booking, caller_id)
        if party is None:
            raise NotOwner()
        if party is not BookingParty.CLIENT:
            raise AuthorizationError("Only the client can rate a booking")
        if booking.status is not BookingStatus.COMPLETED:
            raise InvalidBookingStatus("Only completed bookings can be rated")

        result = await db.execute(select(Rating).where(Rating.booking_id == booking.id))
        existing = result.scalar_one_or_none()
        if existing:
            existing.rating = rating
            existing.comment = comment
            record = existing
        else:
            record = Rating(
                booking_id=booking.id,
                client_id=caller_id,
                rating=rating,
                comment=comment,
            )
            db.add(record)
        await db.flush()
        await notification_service.notify_rating_received(db, booking, rating)

        return record


# Singleton instance
booking_service = BookingService()
