from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from conftest import dt
from marketplace.core.exceptions import (
    AuthorizationError,
    BookingConflict,
    BookingDeletionForbidden,
    BookingKindMismatch,
    InfrastructureError,
    InvalidBookingStatus,
    InvalidDateRange,
    InvalidRating,
    ListingNotAvailable,
    MissingPrice,
    NotFoundError,
    NotOwner,
    ProviderOnlyAction,
    SelfBookingForbidden,
    ValidationError,
)
from marketplace.domain.booking_state import BookingStatus
from marketplace.domain.booking_window import DateRange, FixedSlot, validate_date_range
from marketplace.domain.roles import UserRole
from marketplace.models import Booking, Notification, Rating, Transaction, Wallet
from marketplace.services.booking_service import booking_service
from marketplace.services.ledger_service import ledger_service


async def request_stay(db, listing, client, entry, departure, **kwargs) -> Booking:
    booking = await booking_service.create_booking(
        db,
        client_id=client.id,
        listing_id=listing.id,
        kind=validate_date_range(entry, departure),
        **kwargs,
    )
    await db.commit()
    return booking


async def confirm(db, booking, provider) -> Booking:
    booking = await booking_service.update_status(
        db, booking.id, provider.id, BookingStatus.CONFIRMED
    )
    await db.commit()
    return booking


async def wallet_balance(db, user) -> int:
    result = await db.execute(
        select(Wallet.balance_cents).where(Wallet.user_id == user.id)
    )
    return result.scalar_one()


async def count_rows(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


# ==================== CREATE ====================


async def test_create_stay_booking(db, listing, client_user):
    booking = await request_stay(
        db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25), intervention_type="rdv"
    )

    assert booking.status is BookingStatus.REQUESTED
    assert booking.reference.startswith("BK-")
    assert len(booking.reference) == 11
    assert booking.provider_id == listing.provider_id
    assert booking.nights == 5
    assert booking.is_date_range


async def test_create_slot_booking(db, listing, client_user):
    booking = await booking_service.create_booking(
        db,
        client_id=client_user.id,
        listing_id=listing.id,
        kind=FixedSlot(scheduled_at=dt(2025, 12, 20, 15), time="15:00", duration_mins=30),
        price_cents=5000,
    )

    assert booking.entry_date is None
    assert booking.nights is None
    assert booking.duration_mins == 30
    assert booking.price_cents == 5000
    assert not booking.is_date_range


async def test_price_defaults_to_listing_base_price(db, make_listing, provider, client_user):
    listing = await make_listing(provider, base_price_cents=1500)

    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 22))

    assert booking.price_cents == 1500


async def test_create_notifies_the_provider(db, listing, client_user, provider):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 22))

    result = await db.execute(select(Notification).where(Notification.user_id == provider.id))
    notification = result.scalar_one()
    assert notification.booking_id == booking.id
    assert notification.notification_type == "booking_request"
    assert notification.push_sent is False


async def test_provider_cannot_book_own_listing(db, listing, provider):
    with pytest.raises(SelfBookingForbidden):
        await request_stay(db, listing, provider, dt(2025, 12, 20), dt(2025, 12, 22))


async def test_inactive_listing_cannot_be_booked(db, make_listing, provider, client_user):
    listing = await make_listing(provider, is_active=False)

    with pytest.raises(ListingNotAvailable):
        await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 22))


async def test_unknown_listing(db, client_user):
    with pytest.raises(NotFoundError):
        await booking_service.create_booking(
            db, client_id=client_user.id, listing_id=uuid4(), kind=FixedSlot()
        )


async def test_overlapping_request_is_rejected_without_insert(
    db, listing, client_user, other_client
):
    await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(BookingConflict) as exc_info:
        await request_stay(db, listing, other_client, dt(2025, 12, 23), dt(2025, 12, 27))

    assert exc_info.value.conflict_count == 1
    assert await count_rows(db, Booking) == 1


async def test_active_bookings_never_overlap(db, listing, client_user, other_client):
    windows = [
        (dt(2025, 12, 1), dt(2025, 12, 5)),
        (dt(2025, 12, 4), dt(2025, 12, 8)),
        (dt(2025, 12, 6), dt(2025, 12, 9)),
        (dt(2025, 12, 9), dt(2025, 12, 12)),
        (dt(2025, 12, 13), dt(2025, 12, 15)),
    ]
    for i, (entry, departure) in enumerate(windows):
        client = client_user if i % 2 == 0 else other_client
        try:
            await request_stay(db, listing, client, entry, departure)
        except BookingConflict:
            pass

    result = await db.execute(select(Booking).where(Booking.listing_id == listing.id))
    stays = [b.kind for b in result.scalars().all()]
    assert len(stays) == 3
    for i, a in enumerate(stays):
        for b in stays[i + 1:]:
            assert not a.overlaps(b)


async def test_reference_collisions_are_retried_then_given_up(
    db, listing, client_user, make_booking, monkeypatch
):
    await make_booking(listing, client_user, reference="BK-TAKEN001")
    draws = []

    def taken_reference():
        draws.append(1)
        return "BK-TAKEN001"

    monkeypatch.setattr(
        "marketplace.services.booking_service.generate_booking_reference", taken_reference
    )

    with pytest.raises(InfrastructureError):
        await booking_service.create_booking(
            db, client_id=client_user.id, listing_id=listing.id, kind=FixedSlot()
        )

    assert len(draws) == 5
    assert await count_rows(db, Booking) == 1


async def test_other_integrity_errors_are_not_retried(db, listing, client_user, monkeypatch):
    draws = []

    def fresh_reference():
        draws.append(1)
        return f"BK-{len(draws):08d}"

    monkeypatch.setattr(
        "marketplace.services.booking_service.generate_booking_reference", fresh_reference
    )
    zero_nights = DateRange(entry_date=dt(2025, 12, 20), departure_date=dt(2025, 12, 22), nights=0)

    with pytest.raises(IntegrityError):
        await booking_service.create_booking(
            db, client_id=client_user.id, listing_id=listing.id, kind=zero_nights
        )

    assert len(draws) == 1
    assert await count_rows(db, Booking) == 0


# ==================== UPDATE ====================


async def test_client_moves_dates(db, listing, client_user):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    updated = await booking_service.update_booking(
        db,
        booking.id,
        client_user.id,
        {"entry_date": dt(2025, 12, 22), "departure_date": dt(2025, 12, 28)},
    )

    assert updated.nights == 6
    assert updated.kind.entry_date == dt(2025, 12, 22)


async def test_date_change_ignores_the_booking_itself(db, listing, client_user):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    updated = await booking_service.update_booking(
        db,
        booking.id,
        client_user.id,
        {"entry_date": dt(2025, 12, 21), "departure_date": dt(2025, 12, 24)},
    )

    assert updated.nights == 3


async def test_date_change_into_another_booking_conflicts(
    db, listing, client_user, other_client
):
    await request_stay(db, listing, other_client, dt(2025, 12, 1), dt(2025, 12, 5))
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(BookingConflict):
        await booking_service.update_booking(
            db,
            booking.id,
            client_user.id,
            {"entry_date": dt(2025, 12, 3), "departure_date": dt(2025, 12, 6)},
        )

    await db.refresh(booking)
    assert booking.nights == 5


async def test_date_change_needs_both_dates(db, listing, client_user):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(InvalidDateRange):
        await booking_service.update_booking(
            db, booking.id, client_user.id, {"entry_date": dt(2025, 12, 21)}
        )


async def test_stay_cannot_take_slot_fields(db, listing, client_user):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(BookingKindMismatch):
        await booking_service.update_booking(
            db, booking.id, client_user.id, {"duration_mins": 30}
        )


async def test_provider_cannot_edit_before_confirming(db, listing, client_user, provider):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(AuthorizationError):
        await booking_service.update_booking(
            db, booking.id, provider.id, {"provider_notes": "Keys at reception"}
        )


async def test_provider_edits_confirmed_booking(db, listing, client_user, provider):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))
    await confirm(db, booking, provider)

    updated = await booking_service.update_booking(
        db, booking.id, provider.id, {"provider_notes": "Keys at reception", "price_cents": 1800}
    )

    assert updated.provider_notes == "Keys at reception"
    assert updated.price_cents == 1800


async def test_terminal_booking_cannot_be_updated(db, listing, client_user):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))
    await booking_service.update_status(db, booking.id, client_user.id, BookingStatus.CANCELLED)

    with pytest.raises(InvalidBookingStatus):
        await booking_service.update_booking(
            db, booking.id, client_user.id, {"intervention_type": "urgence"}
        )


async def test_status_is_not_patchable(db, listing, client_user):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(ValidationError):
        await booking_service.update_booking(
            db, booking.id, client_user.id, {"status": BookingStatus.CONFIRMED}
        )


async def test_client_moves_booking_to_another_listing(
    db, make_listing, make_user, listing, client_user
):
    other_provider = await make_user(role=UserRole.PROVIDER)
    other_listing = await make_listing(other_provider, title="Case Saly")
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    updated = await booking_service.update_booking(
        db, booking.id, client_user.id, {"listing_id": other_listing.id}
    )

    assert updated.listing_id == other_listing.id
    assert updated.provider_id == other_provider.id


# ==================== STATUS ====================


async def test_client_cannot_confirm(db, listing, client_user):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(AuthorizationError):
        await booking_service.update_status(
            db, booking.id, client_user.id, BookingStatus.CONFIRMED
        )

    await db.refresh(booking)
    assert booking.status is BookingStatus.REQUESTED


async def test_provider_confirms(db, listing, client_user, provider):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    booking = await confirm(db, booking, provider)

    assert booking.status is BookingStatus.CONFIRMED
    result = await db.execute(
        select(Notification).where(
            Notification.user_id == client_user.id,
            Notification.notification_type == "booking_confirmed",
        )
    )
    assert result.scalar_one().booking_id == booking.id


async def test_third_party_cannot_change_status(db, listing, client_user, other_client):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(NotOwner):
        await booking_service.update_status(
            db, booking.id, other_client.id, BookingStatus.CANCELLED
        )


async def test_client_cannot_cancel_after_confirmation(db, listing, client_user, provider):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))
    await confirm(db, booking, provider)

    with pytest.raises(ProviderOnlyAction):
        await booking_service.update_status(
            db, booking.id, client_user.id, BookingStatus.CANCELLED
        )


async def test_completion_settles_price_times_nights(db, listing, client_user, provider):
    booking = await request_stay(
        db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25), price_cents=1500
    )
    await confirm(db, booking, provider)

    booking = await booking_service.update_status(
        db, booking.id, provider.id, BookingStatus.COMPLETED
    )
    await db.commit()

    assert booking.status is BookingStatus.COMPLETED
    transaction = (await db.execute(select(Transaction))).scalar_one()
    assert transaction.amount_cents == 7500
    assert transaction.booking_id == booking.id
    assert transaction.user_id == provider.id
    assert transaction.currency == "FCFA"
    assert transaction.kind == "BOOKING_SETTLEMENT"
    assert booking.transaction_id == transaction.id
    assert await wallet_balance(db, provider) == 7500


async def test_completion_with_explicit_price(db, listing, client_user, provider):
    booking = await booking_service.create_booking(
        db, client_id=client_user.id, listing_id=listing.id, kind=FixedSlot()
    )
    await db.commit()

    booking = await booking_service.update_status(
        db, booking.id, provider.id, BookingStatus.COMPLETED, price_cents=2500
    )

    assert booking.price_cents == 2500
    assert await wallet_balance(db, provider) == 2500


async def test_completion_without_price_changes_nothing(db, listing, client_user, provider):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))
    await confirm(db, booking, provider)

    with pytest.raises(MissingPrice):
        await booking_service.update_status(
            db, booking.id, provider.id, BookingStatus.COMPLETED
        )

    await db.refresh(booking)
    assert booking.status is BookingStatus.CONFIRMED
    assert booking.transaction_id is None
    assert await count_rows(db, Transaction) == 0
    assert await wallet_balance(db, provider) == 0


async def test_completion_requires_a_provider_wallet(db, make_user, make_listing, client_user):
    walletless = await make_user(role=UserRole.PROVIDER)
    listing = await make_listing(walletless, base_price_cents=1000)
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 21))
    await confirm(db, booking, walletless)

    with pytest.raises(NotFoundError):
        await booking_service.update_status(
            db, booking.id, walletless.id, BookingStatus.COMPLETED
        )

    await db.refresh(booking)
    assert booking.status is BookingStatus.CONFIRMED


async def test_completed_booking_cannot_be_settled_twice(db, listing, client_user, provider):
    booking = await request_stay(
        db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 22), price_cents=1000
    )
    await confirm(db, booking, provider)
    await booking_service.update_status(db, booking.id, provider.id, BookingStatus.COMPLETED)
    await db.commit()

    with pytest.raises(InvalidBookingStatus):
        await booking_service.update_status(
            db, booking.id, client_user.id, BookingStatus.COMPLETED, price_cents=1000
        )
    assert await count_rows(db, Transaction) == 1


async def test_unknown_booking(db, client_user):
    with pytest.raises(NotFoundError):
        await booking_service.update_status(
            db, uuid4(), client_user.id, BookingStatus.CANCELLED
        )


async def test_ledger_failure_leaves_booking_unsettled(
    db, listing, client_user, provider, monkeypatch
):
    booking = await request_stay(
        db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25), price_cents=1500
    )
    await confirm(db, booking, provider)
    booking_id = booking.id
    credit = ledger_service.credit_booking_settlement

    async def credit_then_fail(*args, **kwargs):
        await credit(*args, **kwargs)
        raise InfrastructureError("Ledger write failed")

    monkeypatch.setattr(ledger_service, "credit_booking_settlement", credit_then_fail)

    with pytest.raises(InfrastructureError):
        await booking_service.update_status(
            db, booking_id, provider.id, BookingStatus.COMPLETED
        )

    await db.refresh(booking)
    assert booking.status is BookingStatus.CONFIRMED
    assert booking.transaction_id is None
    assert await count_rows(db, Transaction) == 0
    assert await wallet_balance(db, provider) == 0


async def test_cancelling_cannot_rewrite_the_price(db, listing, client_user):
    booking = await request_stay(
        db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25), price_cents=1500
    )

    with pytest.raises(ValidationError):
        await booking_service.update_status(
            db, booking.id, client_user.id, BookingStatus.CANCELLED, price_cents=1
        )

    await db.refresh(booking)
    assert booking.status is BookingStatus.REQUESTED
    assert booking.price_cents == 1500


async def test_provider_sets_price_when_confirming(db, listing, client_user, provider):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    booking = await booking_service.update_status(
        db, booking.id, provider.id, BookingStatus.CONFIRMED, price_cents=1800
    )

    assert booking.status is BookingStatus.CONFIRMED
    assert booking.price_cents == 1800


# ==================== DELETE ====================


async def test_confirmed_booking_cannot_be_deleted_until_cancelled(
    db, listing, client_user, provider
):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))
    await confirm(db, booking, provider)

    with pytest.raises(BookingDeletionForbidden):
        await booking_service.delete_booking(db, booking.id, client_user.id)

    await booking_service.update_status(db, booking.id, provider.id, BookingStatus.CANCELLED)
    await booking_service.delete_booking(db, booking.id, client_user.id)
    await db.commit()

    assert await db.get(Booking, booking.id) is None


async def test_third_party_cannot_delete(db, listing, client_user, other_client):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(NotOwner):
        await booking_service.delete_booking(db, booking.id, other_client.id)


# ==================== RATING ====================


async def completed_booking(db, listing, client_user, provider) -> Booking:
    booking = await request_stay(
        db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 22), price_cents=1000
    )
    await confirm(db, booking, provider)
    booking = await booking_service.update_status(
        db, booking.id, provider.id, BookingStatus.COMPLETED
    )
    await db.commit()
    return booking


async def test_client_rates_completed_booking(db, listing, client_user, provider):
    booking = await completed_booking(db, listing, client_user, provider)

    rating = await booking_service.rate_booking(db, booking.id, client_user.id, 4.5, "Très bien")

    assert rating.rating == 4.5
    assert rating.booking_id == booking.id
    assert rating.client_id == client_user.id


async def test_rating_again_replaces_the_rating(db, listing, client_user, provider):
    booking = await completed_booking(db, listing, client_user, provider)

    await booking_service.rate_booking(db, booking.id, client_user.id, 2)
    await db.commit()
    await booking_service.rate_booking(db, booking.id, client_user.id, 5, "Finalement parfait")
    await db.commit()

    ratings = (await db.execute(select(Rating))).scalars().all()
    assert len(ratings) == 1
    assert ratings[0].rating == 5
    assert ratings[0].comment == "Finalement parfait"


@pytest.mark.parametrize("value", [0, 0.5, 5.5, 10])
async def test_rating_out_of_range(db, listing, client_user, provider, value):
    booking = await completed_booking(db, listing, client_user, provider)

    with pytest.raises(InvalidRating):
        await booking_service.rate_booking(db, booking.id, client_user.id, value)


async def test_only_completed_bookings_are_rated(db, listing, client_user):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))

    with pytest.raises(InvalidBookingStatus):
        await booking_service.rate_booking(db, booking.id, client_user.id, 4)


async def test_provider_cannot_rate(db, listing, client_user, provider):
    booking = await completed_booking(db, listing, client_user, provider)

    with pytest.raises(AuthorizationError):
        await booking_service.rate_booking(db, booking.id, provider.id, 5)


# ==================== READ ====================


async def test_get_booking_for_parties_and_admin(db, listing, client_user, provider, other_client, make_user):
    booking = await request_stay(db, listing, client_user, dt(2025, 12, 20), dt(2025, 12, 25))
    admin = await make_user(role=UserRole.ADMIN)

    for user in (client_user, provider, admin):
        assert (await booking_service.get_booking(db, booking.id, user)).id == booking.id

    with pytest.raises(NotOwner):
        await booking_service.get_booking(db, booking.id, other_client)


async def test_list_bookings_is_scoped_by_role(
    db, listing, provider, client_user, other_client, make_user
):
    await request_stay(db, listing, client_user, dt(2025, 12, 1), dt(2025, 12, 3))
    await request_stay(db, listing, other_client, dt(2025, 12, 10), dt(2025, 12, 12))
    admin = await make_user(role=UserRole.ADMIN)

    mine = await booking_service.list_bookings(db, client_user)
    theirs = await booking_service.list_bookings(db, provider)
    everything = await booking_service.list_bookings(db, admin)

    assert mine["total"] == 1
    assert mine["data"][0].client_id == client_user.id
    assert theirs["total"] == 2
    assert everything["total"] == 2


async def test_list_bookings_filters_and_paginates(db, listing, provider, client_user):
    for day in (1, 5, 9):
        await request_stay(db, listing, client_user, dt(2025, 12, day), dt(2025, 12, day + 2))
    await booking_service.create_booking(
        db,
        client_id=client_user.id,
        listing_id=listing.id,
        kind=FixedSlot(scheduled_at=dt(2025, 12, 20, 9)),
        intervention_type="urgence",
    )
    await db.commit()

    page = await booking_service.list_bookings(db, provider, page=2, limit=3)
    assert page["total"] == 4
    assert page["total_pages"] == 2
    assert len(page["data"]) == 1

    urgent = await booking_service.list_bookings(db, provider, intervention_type="urgence")
    assert urgent["total"] == 1

    early = await booking_service.list_bookings(
        db, provider, start=dt(2025, 12, 1), end=dt(2025, 12, 6)
    )
    assert early["total"] == 2


async def test_seller_has_no_booking_view(db, make_user):
    seller = await make_user(role=UserRole.SELLER)

    with pytest.raises(AuthorizationError):
        await booking_service.list_bookings(db, seller)


async def test_booking_stats(db, listing, provider, client_user, other_client):
    first = await request_stay(db, listing, client_user, dt(2025, 12, 1), dt(2025, 12, 3))
    second = await request_stay(db, listing, other_client, dt(2025, 12, 10), dt(2025, 12, 12))
    await request_stay(db, listing, other_client, dt(2025, 12, 20), dt(2025, 12, 22))
    await confirm(db, first, provider)
    await booking_service.update_status(db, second.id, provider.id, BookingStatus.REJECTED)
    await db.commit()

    stats = await booking_service.booking_stats(db, provider, listing.id)

    assert stats == {"total": 3, "requested": 1, "confirmed": 1, "cancelled": 1, "completed": 0}


async def test_provider_stats_on_foreign_listing(db, make_user, listing):
    stranger = await make_user(role=UserRole.PROVIDER)

    with pytest.raises(NotOwner):
        await booking_service.booking_stats(db, stranger, listing.id)
