"""Wallet endpoints (read-only; balances move only through booking settlement)."""

from typing import Annotated

from fastapi import APIRouter, Depends

from marketplace.api.deps import CurrentUser, DbSession, Pagination, pagination_params
from marketplace.models.wallet import Wallet
from marketplace.schemas.wallet import TransactionListResponse, WalletResponse
from marketplace.services.ledger_service import ledger_service

router = APIRouter()


@router.get("/me", response_model=WalletResponse)
async def get_my_wallet(current_user: CurrentUser, db: DbSession) -> Wallet:
    """Get the current user's wallet."""
    return await ledger_service.get_wallet(db, current_user.id)


@router.get("/me/transactions", response_model=TransactionListResponse)
async def get_my_transactions(
    current_user: CurrentUser,
    db: DbSession,
    pagination: Annotated[Pagination, Depends(pagination_params)],
) -> dict:
    """List the current user's ledger entries."""
    return await ledger_service.list_transactions(
        db, current_user.id, page=pagination.page, limit=pagination.limit
    )
