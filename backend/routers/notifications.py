"""Notification routes."""
from fastapi import APIRouter, Depends

from core.dependencies import get_user_id, get_notification_store
from core.exceptions import NotFoundError
from stores import NotificationStore
from notification_service import (
    get_user_notifications,
    mark_notification_read,
    get_unread_count
)

router = APIRouter()


@router.get("")
async def get_notifications(
    unread_only: bool = False,
    limit: int = 50,
    user_id: str = Depends(get_user_id),
    store: NotificationStore = Depends(get_notification_store)
):
    """Get user notifications."""
    return await get_user_notifications(store, user_id, unread_only, limit)


@router.get("/unread-count")
async def get_notifications_unread_count(
    user_id: str = Depends(get_user_id),
    store: NotificationStore = Depends(get_notification_store)
):
    """Get count of unread notifications."""
    count = await get_unread_count(store, user_id)
    return {"count": count}


@router.post("/{notification_id}/read")
async def mark_notification_as_read(
    notification_id: str,
    user_id: str = Depends(get_user_id),
    store: NotificationStore = Depends(get_notification_store)
):
    """Mark a notification as read."""
    success = await mark_notification_read(store, notification_id, user_id)
    if not success:
        raise NotFoundError("Notification")
    return {"message": "Notification marked as read"}
