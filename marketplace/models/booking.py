"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from marketplace.database import Base, utcnow
from marketplace.domain.booking_state import BookingStatus
from marketplace.domain.booking_window import BookingKind, DateRange, FixedSlot, as_utc

if TYPE_CHECKING:
    from marketplace.models.listing import Listing
    from marketplace.models.user import User


class Booking(Base):
    """Appointment or stay requested by a client on a listing."""

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(
            "(entry_date IS NULL AND departure_date IS NULL) OR "
            "(entry_date IS NOT NULL AND departure_date IS NOT NULL "
            "AND departure_date > entry_date)",
            name="ck_bookings_date_range",
        ),
        CheckConstraint("nights IS NULL OR nights >= 1", name="ck_bookings_nights_positive"),
        Index("ix_bookings_listing_status", "listing_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    reference: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )  # BK-XXXXXXXX
    listing_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("listings.id"), nullable=False, index=True
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )

    # Date range stays
    entry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    departure_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    nights: Mapped[int | None] = mapped_column(Integer)

    # Fixed slot appointments
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    time: Mapped[str | None] = mapped_column(String(10))  # "15:30"
    duration_mins: Mapped[int | None] = mapped_column(Integer)

    # Pricing (cents of the platform currency; per night for stays)
    price_cents: Mapped[int | None] = mapped_column(Integer)

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, native_enum=False, length=20),
        nullable=False,
        default=BookingStatus.REQUESTED,
        index=True,
    )
    intervention_type: Mapped[str | None] = mapped_column(String(50))  # e.g. "rdv", "urgence"
    provider_notes: Mapped[str | None] = mapped_column(Text)

    # Settlement
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("transactions.id", use_alter=True, name="fk_bookings_transaction_id"),
        unique=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    listing: Mapped["Listing"] = relationship("Listing", back_populates="bookings")
    client: Mapped["User"] = relationship("User", foreign_keys=[client_id])
    provider: Mapped["User"] = relationship("User", foreign_keys=[provider_id])
    rating: Mapped["Rating | None"] = relationship(
        "Rating",
        back_populates="booking",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def kind(self) -> BookingKind:
        """Typed view of the booking window."""
        if self.entry_date is not None and self.departure_date is not None:
            return DateRange(
                entry_date=as_utc(self.entry_date),
                departure_date=as_utc(self.departure_date),
                nights=self.nights or 0,
            )
        return FixedSlot(
            scheduled_at=as_utc(self.scheduled_at),
            time=self.time,
            duration_mins=self.duration_mins,
        )

    @property
    def is_date_range(self) -> bool:
        return isinstance(self.kind, DateRange)

    @property
    def calendar_anchor(self) -> datetime | None:
        """Instant used to place the booking on a calendar."""
        return as_utc(self.scheduled_at or self.entry_date)

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, listing={self.listing_id}, status={self.status})>"


class Rating(Base):
    """Client rating of a completed booking (one per booking)."""

    __tablename__ = "ratings"
    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_ratings_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    rating: Mapped[float] = mapped_column(Float, nullable=False)  # 1-5
    comment: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="rating")
