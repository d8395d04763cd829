"""Notification service for in-app and push notifications.

In-app notifications are written in the caller's transaction. Push delivery
(Firebase Cloud Messaging) happens afterwards, from a background task, so a
slow or failing push provider never holds booking locks or fails a request.
"""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.core.exceptions import NotFoundError
from marketplace.database import get_db_context
from marketplace.domain.booking_state import BookingStatus
from marketplace.models.booking import Booking
from marketplace.models.notification import Notification
from marketplace.models.user import User
from marketplace.utils.pagination import paginate

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for sending notifications."""

    # Notification types
    BOOKING_REQUEST = "booking_request"
    BOOKING_UPDATED = "booking_updated"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_COMPLETED = "booking_completed"
    RATING_RECEIVED = "rating_received"

    STATUS_TYPES = {
        BookingStatus.CONFIRMED: BOOKING_CONFIRMED,
        BookingStatus.CANCELLED: BOOKING_CANCELLED,
        BookingStatus.REJECTED: BOOKING_REJECTED,
        BookingStatus.COMPLETED: BOOKING_COMPLETED,
    }

    def __init__(self) -> None:
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ==================== IN-APP NOTIFICATIONS ====================

    async def create_notification(
        self,
        db: AsyncSession,
        user_id: UUID,
        title: str,
        body: str,
        notification_type: str,
        booking_id: UUID | None = None,
        listing_id: UUID | None = None,
    ) -> Notification:
        """Create an in-app notification.

        Args:
            db: Database session
            user_id: User to notify
            title: Notification title
            body: Notification body text
            notification_type: Type of notification
            booking_id: Related booking ID
            listing_id: Related listing ID

        Returns:
            Notification: Created notification
        """
        notification = Notification(
            user_id=user_id,
            title=title,
            body=body,
            notification_type=notification_type,
            booking_id=booking_id,
            listing_id=listing_id,
            is_read=False,
            push_sent=False,
        )
        db.add(notification)
        await db.flush()
        return notification

    async def list_notifications(
        self,
        db: AsyncSession,
        user_id: UUID,
        page: int | None = None,
        limit: int | None = None,
        unread_only: bool = False,
    ) -> dict[str, Any]:
        """Page through a user's notifications, newest first."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc())

        result = await paginate(db, query, page, limit)

        unread = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        result["unread"] = unread.scalar() or 0
        return result

    async def mark_read(
        self,
        db: AsyncSession,
        notification_id: UUID,
        user_id: UUID,
    ) -> Notification:
        """Mark one of the user's notifications as read."""
        result = await db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotFoundError("Notification", str(notification_id))

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(UTC)
            await db.flush()
        return notification

    # ==================== PUSH NOTIFICATIONS (FIREBASE) ====================

    async def send_push_notification(
        self,
        push_token: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        """Send a push notification via Firebase Cloud Messaging.

        Args:
            push_token: Device FCM token
            title: Notification title
            body: Notification body
            data: Additional data payload

        Returns:
            bool: True if sent successfully
        """
        if not settings.fcm_server_key:
            return False

        payload = {
            "to": push_token,
            "priority": "high",
            "notification": {
                "title": title,
                "body": body,
                "sound": "default",
            },
            "data": data or {},
        }
        headers = {
            "Authorization": f"key={settings.fcm_server_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self.http_client.post(
                settings.fcm_endpoint, headers=headers, json=payload
            )
        except httpx.HTTPError as e:
            logger.warning("Push delivery failed: %s", e)
            return False

        if response.status_code != 200:
            logger.warning(
                "Push delivery rejected by FCM: %s %s",
                response.status_code,
                response.text[:200],
            )
            return False
        return True

    async def deliver_pending_pushes(self, user_id: UUID) -> int:
        """Push every notification of ``user_id`` not yet delivered.

        Runs outside the request transaction with its own session.

        Returns:
            int: number of notifications pushed
        """
        if not settings.fcm_server_key:
            return 0

        async with get_db_context() as db:
            result = await db.execute(select(User).where(User.id == user_id))
            user = result.scalar_one_or_none()
            if not user or not user.push_token:
                return 0

            result = await db.execute(
                select(Notification)
                .where(
                    Notification.user_id == user_id,
                    Notification.push_sent.is_(False),
                )
                .order_by(Notification.created_at)
            )
            sent = 0
            for notification in result.scalars().all():
                success = await self.send_push_notification(
                    push_token=user.push_token,
                    title=notification.title,
                    body=notification.body,
                    data={
                        "type": notification.notification_type,
                        "notification_id": str(notification.id),
                        "booking_id": str(notification.booking_id or ""),
                    },
                )
                if success:
                    notification.push_sent = True
                    sent += 1
            return sent

    # ==================== BOOKING NOTIFICATIONS ====================

    async def notify_booking_requested(self, db: AsyncSession, booking: Booking) -> Notification:
        """Tell the provider about a new booking request."""
        return await self.create_notification(
            db=db,
            user_id=booking.provider_id,
            title="New booking request",
            body=f"You have a new booking request. Booking #{booking.reference}",
            notification_type=self.BOOKING_REQUEST,
            booking_id=booking.id,
            listing_id=booking.listing_id,
        )

    async def notify_booking_updated(
        self, db: AsyncSession, booking: Booking, recipient_id: UUID
    ) -> Notification:
        return await self.create_notification(
            db=db,
            user_id=recipient_id,
            title="Booking updated",
            body=f"Booking #{booking.reference} has been modified.",
            notification_type=self.BOOKING_UPDATED,
            booking_id=booking.id,
            listing_id=booking.listing_id,
        )

    async def notify_booking_status(
        self, db: AsyncSession, booking: Booking, recipient_id: UUID
    ) -> Notification:
        """Tell the other party that the booking changed status."""
        status_label = booking.status.value.lower()
        return await self.create_notification(
            db=db,
            user_id=recipient_id,
            title=f"Booking {status_label}",
            body=f"Booking #{booking.reference} is now {status_label}.",
            notification_type=self.STATUS_TYPES.get(booking.status, self.BOOKING_UPDATED),
            booking_id=booking.id,
            listing_id=booking.listing_id,
        )

    async def notify_rating_received(
        self, db: AsyncSession, booking: Booking, rating: float
    ) -> Notification:
        return await self.create_notification(
            db=db,
            user_id=booking.provider_id,
            title="New rating",
            body=f"Booking #{booking.reference} was rated {rating:g}/5.",
            notification_type=self.RATING_RECEIVED,
            booking_id=booking.id,
            listing_id=booking.listing_id,
        )


# Singleton instance
notification_service = NotificationService()
