"""Notification endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from marketplace.api.deps import CurrentUser, DbSession, Pagination, pagination_params
from marketplace.models.notification import Notification
from marketplace.schemas.notification import NotificationListResponse, NotificationResponse
from marketplace.services.notification_service import notification_service

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    current_user: CurrentUser,
    db: DbSession,
    pagination: Annotated[Pagination, Depends(pagination_params)],
    unread_only: bool = Query(default=False),
) -> dict:
    """Get user's notifications."""
    return await notification_service.list_notifications(
        db,
        current_user.id,
        page=pagination.page,
        limit=pagination.limit,
        unread_only=unread_only,
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> Notification:
    """Mark a notification as read."""
    return await notification_service.mark_read(db, notification_id, current_user.id)
