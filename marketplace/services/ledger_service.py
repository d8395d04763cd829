"""Wallet ledger service.

Completing a booking credits the provider's wallet and records a
``BOOKING_SETTLEMENT`` transaction. The booking service runs both writes in
the same savepoint as the status change.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.models.booking import Booking
from marketplace.models.wallet import Transaction, TransactionStatus, Wallet
from marketplace.utils.pagination import paginate

logger = logging.getLogger(__name__)

BOOKING_SETTLEMENT = "BOOKING_SETTLEMENT"


def assert_positive_amount(amount: int, context: str) -> None:
    """Guard: Prevent negative or zero amounts."""
    if amount <= 0:
        raise ValidationError(f"{context}: amount must be positive, got {amount}")


class LedgerService:
    """Service for wallet balances and their ledger entries."""

    async def get_wallet(
        self,
        db: AsyncSession,
        user_id: UUID,
        for_update: bool = False,
    ) -> Wallet:
        """Get a user's wallet.

        Raises:
            NotFoundError: the user has no wallet.
        """
        query = select(Wallet).where(Wallet.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        wallet = result.scalar_one_or_none()
        if not wallet:
            raise NotFoundError("Wallet", str(user_id))
        return wallet

    async def credit_booking_settlement(
        self,
        db: AsyncSession,
        wallet: Wallet,
        booking: Booking,
        amount_cents: int,
    ) -> Transaction:
        """Credit ``wallet`` for a completed booking and record the transaction.

        The wallet row must be locked by the caller. The transaction is
        flushed so its id is available to link from the booking.
        """
        assert_positive_amount(amount_cents, f"Settlement of booking {booking.reference}")

        description: dict[str, Any] = {
            "booking_id": str(booking.id),
            "booking_reference": booking.reference,
            "listing_id": str(booking.listing_id),
            "client_id": str(booking.client_id),
            "price_cents": booking.price_cents,
            "nights": booking.nights,
        }
        transaction = Transaction(
            user_id=wallet.user_id,
            wallet_id=wallet.id,
            booking_id=booking.id,
            amount_cents=amount_cents,
            currency=settings.ledger_currency,
            status=TransactionStatus.COMPLETED,
            kind=BOOKING_SETTLEMENT,
            description=description,
        )
        db.add(transaction)
        wallet.balance_cents += amount_cents
        await db.flush()

        logger.info(
            "Credited %d %s to wallet %s for booking %s",
            amount_cents,
            settings.ledger_currency,
            wallet.id,
            booking.reference,
        )
        return transaction

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: UUID,
        page: int | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Page through a user's ledger entries, newest first."""
        query = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc())
        )
        return await paginate(db, query, page, limit)


# Singleton instance
ledger_service = LedgerService()
