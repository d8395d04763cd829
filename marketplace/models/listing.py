"""Listing database model."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from marketplace.database import Base, utcnow

if TYPE_CHECKING:
    from marketplace.models.booking import Booking
    from marketplace.models.user import User


class ListingType(str, PyEnum):
    SERVICE = "SERVICE"  # appointment-style service
    ANNONCE = "ANNONCE"  # rental-style listing booked over dates


class Listing(Base):
    """Bookable resource owned by a provider."""

    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    listing_type: Mapped[ListingType] = mapped_column(
        Enum(ListingType, native_enum=False, length=20),
        nullable=False,
        default=ListingType.ANNONCE,
    )

    # Pricing (in cents of the platform currency)
    base_price_cents: Mapped[int | None] = mapped_column(Integer)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    provider: Mapped["User"] = relationship(
        "User", back_populates="listings", foreign_keys=[provider_id]
    )
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="listing")
