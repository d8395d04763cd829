"""User-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Enum, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from marketplace.database import Base, utcnow
from marketplace.domain.roles import UserRole

if TYPE_CHECKING:
    from marketplace.models.listing import Listing
    from marketplace.models.wallet import Wallet


class User(Base):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(20), unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(200))
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, native_enum=False, length=20),
        nullable=False,
        default=UserRole.CLIENT,
    )

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Push notification token
    push_token: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    listings: Mapped[list["Listing"]] = relationship(
        "Listing", back_populates="provider", foreign_keys="[Listing.provider_id]"
    )
    wallet: Mapped["Wallet | None"] = relationship(
        "Wallet", back_populates="user", uselist=False
    )
