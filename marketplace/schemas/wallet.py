"""Wallet and ledger schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from marketplace.models.wallet import TransactionStatus


class WalletResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    balance_cents: int
    currency: str
    updated_at: datetime


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    wallet_id: UUID
    booking_id: UUID | None = None
    amount_cents: int
    currency: str
    status: TransactionStatus
    kind: str
    description: dict[str, Any] | None = None
    created_at: datetime


class TransactionListResponse(BaseModel):
    """Schema for paginated ledger entries."""

    data: list[TransactionResponse]
    total: int
    page: int
    limit: int
    total_pages: int
