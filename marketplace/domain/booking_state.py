"""Booking state machine."""

from collections.abc import Mapping
from enum import Enum

from marketplace.core.exceptions import (
    InvalidBookingStatus,
    MissingPrice,
    NotOwner,
    ProviderOnlyAction,
    ValidationError,
)
from marketplace.domain.roles import BookingParty


class BookingStatus(str, Enum):
    REQUESTED = "REQUESTED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


# Statuses that hold dates on a listing
ACTIVE_STATUSES = frozenset({BookingStatus.REQUESTED, BookingStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.COMPLETED}
)
UNDELETABLE_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED})

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.REQUESTED: {
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
        BookingStatus.COMPLETED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
        BookingStatus.COMPLETED,
    },
    BookingStatus.CANCELLED: set(),
    BookingStatus.REJECTED: set(),
    BookingStatus.COMPLETED: set(),
}

PROVIDER_ONLY_TARGETS = frozenset({BookingStatus.CONFIRMED, BookingStatus.REJECTED})
# Transitions that may carry an agreed price
PRICED_TARGETS = frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED})


def assert_booking_transition(current: BookingStatus, target: BookingStatus) -> None:
    allowed = BOOKING_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidBookingStatus(
            f"Invalid booking transition: {current.value} → {target.value}"
        )


def assert_party_may_transition(
    current: BookingStatus,
    target: BookingStatus,
    party: BookingParty | None,
    explicit_price: int | None = None,
) -> None:
    """Check who may move a booking from ``current`` to ``target``.

    Raises:
        NotOwner: caller is not a party to the booking.
        InvalidBookingStatus: the transition does not exist.
        ProviderOnlyAction: a client tried to confirm or reject.
        InvalidBookingStatus: a client cancelling after confirmation, or
            completing an unconfirmed booking without an explicit price.
        ValidationError: a price sent with a cancellation or rejection.
    """
    if party is None:
        raise NotOwner("You are not allowed to change the status of this booking")

    assert_booking_transition(current, target)

    if explicit_price is not None and target not in PRICED_TARGETS:
        raise ValidationError(
            f"A price can only be set when confirming or completing, not on {target.value}"
        )

    if target in PROVIDER_ONLY_TARGETS and party is not BookingParty.PROVIDER:
        raise ProviderOnlyAction(
            f"Only the listing's provider can set a booking to {target.value}"
        )

    if (
        target is BookingStatus.CANCELLED
        and party is BookingParty.CLIENT
        and current is not BookingStatus.REQUESTED
    ):
        raise ProviderOnlyAction("Clients can only cancel a booking that is not yet confirmed")

    if (
        target is BookingStatus.COMPLETED
        and current is BookingStatus.REQUESTED
        and explicit_price is None
    ):
        raise InvalidBookingStatus(
            "An unconfirmed booking can only be completed with an explicit price"
        )


def resolve_settlement_amount(
    explicit_price: int | None,
    stored_price: int | None,
    nights: int | None,
    multiply_by_nights: bool = True,
) -> int:
    """Amount credited to the provider when a booking completes."""
    price = explicit_price if explicit_price is not None else stored_price
    if not price:
        raise MissingPrice()
    if multiply_by_nights and nights:
        return price * nights
    return price


def summarize_statuses(counts: Mapping[BookingStatus, int]) -> dict[str, int]:
    """Fold per-status counts into booking stats; rejected counts as cancelled."""
    return {
        "total": sum(counts.values()),
        "requested": counts.get(BookingStatus.REQUESTED, 0),
        "confirmed": counts.get(BookingStatus.CONFIRMED, 0),
        "cancelled": counts.get(BookingStatus.CANCELLED, 0)
        + counts.get(BookingStatus.REJECTED, 0),
        "completed": counts.get(BookingStatus.COMPLETED, 0),
    }
