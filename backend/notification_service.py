"""
Notification Service
Creates in-app notifications for match events
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, List
from enum import Enum

from models import TripMatch, UserPreferences, MatchStatus
from stores import NotificationStore

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    # Match events
    NEW_MATCH_SUGGESTION = "new_match_suggestion"
    MATCH_CONTACTED = "match_contacted"
    MATCH_ACCEPTED = "match_accepted"
    MATCH_DECLINED = "match_declined"


NOTIFICATION_TEMPLATES = {
    NotificationType.NEW_MATCH_SUGGESTION: {
        "title": "New Ride Match!",
        "body": "We found a {label} ({percentage}%) for your trip to {destination}. Check it out!",
        "icon": "lightning",
        "priority": "medium"
    },
    NotificationType.MATCH_CONTACTED: {
        "title": "A Rider Reached Out",
        "body": "Someone started a conversation about your trip to {destination}.",
        "icon": "message-circle",
        "priority": "medium"
    },
    NotificationType.MATCH_ACCEPTED: {
        "title": "Match Accepted",
        "body": "Your shared ride to {destination} was accepted.",
        "icon": "check-circle",
        "priority": "high"
    },
    NotificationType.MATCH_DECLINED: {
        "title": "Match Declined",
        "body": "The shared ride to {destination} was declined.",
        "icon": "x-circle",
        "priority": "medium"
    },
}

STATUS_NOTIFICATIONS = {
    MatchStatus.CONTACTED: NotificationType.MATCH_CONTACTED,
    MatchStatus.ACCEPTED: NotificationType.MATCH_ACCEPTED,
    MatchStatus.DECLINED: NotificationType.MATCH_DECLINED,
}


async def create_notification(
    store: NotificationStore,
    user_id: str,
    notification_type: NotificationType,
    data: dict = None,
    match_id: str = None
) -> dict:
    """
    Create a new notification for a user.
    Returns the created notification document.
    """
    template = NOTIFICATION_TEMPLATES.get(notification_type, {})
    data = data or {}

    # Format title and body with data
    title = template.get("title", "Notification")
    body = template.get("body", "").format(**data) if data else template.get("body", "")

    notification_doc = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "type": notification_type.value,
        "title": title,
        "body": body,
        "icon": template.get("icon", "bell"),
        "priority": template.get("priority", "medium"),
        "match_id": match_id,
        "data": data,
        "read": False,
        "read_at": None,
        "created_at": datetime.now(timezone.utc)
    }

    await store.insert(notification_doc)

    logger.info(f"Notification created: {notification_type.value} for user {user_id}")
    return notification_doc


async def get_user_notifications(
    store: NotificationStore,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50
) -> List[dict]:
    """Get notifications for a user"""
    return await store.list_for_user(user_id, unread_only, limit)


async def mark_notification_read(store: NotificationStore, notification_id: str, user_id: str) -> bool:
    """Mark a single notification as read"""
    return await store.mark_read(notification_id, user_id, datetime.now(timezone.utc))


async def get_unread_count(store: NotificationStore, user_id: str) -> int:
    """Get count of unread notifications"""
    return await store.unread_count(user_id)


# Convenience functions for match events
async def notify_new_match(
    store: NotificationStore,
    match: TripMatch,
    destinations: dict,
    preferences_by_user: dict,
    label: str,
    percentage: int
) -> int:
    """
    Tell both trip owners about a new match, unless they opted out.

    Args:
        destinations: owner id -> destination address of the *other* trip
        preferences_by_user: owner id -> UserPreferences

    Returns:
        Number of notifications created
    """
    sent = 0
    for owner_id in (match.trip_owner_id, match.matched_trip_owner_id):
        preferences: Optional[UserPreferences] = preferences_by_user.get(owner_id)
        if preferences is not None and not preferences.notify_new_matches:
            continue
        await create_notification(
            store,
            owner_id,
            NotificationType.NEW_MATCH_SUGGESTION,
            {
                "label": label.lower(),
                "percentage": percentage,
                "destination": destinations.get(owner_id, "your destination")
            },
            match.id
        )
        sent += 1
    return sent


async def notify_match_status(
    store: NotificationStore,
    match: TripMatch,
    acting_user_id: str,
    destination: str,
    recipient_preferences: Optional[UserPreferences] = None
) -> Optional[dict]:
    """Tell the other owner that a match moved to CONTACTED, ACCEPTED or DECLINED."""
    notification_type = STATUS_NOTIFICATIONS.get(match.status)
    if notification_type is None:
        return None
    if recipient_preferences is not None and not recipient_preferences.notify_match_updates:
        return None

    recipient = (
        match.matched_trip_owner_id
        if acting_user_id == match.trip_owner_id
        else match.trip_owner_id
    )
    return await create_notification(
        store,
        recipient,
        notification_type,
        {"destination": destination},
        match.id
    )
