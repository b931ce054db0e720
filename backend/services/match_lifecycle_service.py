"""
Match Lifecycle
===============

A recorded match moves through:

    SUGGESTED -> VIEWED -> CONTACTED -> ACCEPTED
        |          |          |
        +----------+----------+--> DECLINED / EXPIRED

ACCEPTED, DECLINED and EXPIRED are final. Viewing an already viewed match
is a no-op. Only the owners of the two trips may move a match, and a match
past its expiry date is expired on first touch.
"""
from datetime import datetime, timezone
from typing import Optional
import logging

from core.exceptions import NotFoundError, ForbiddenError, InvalidMatchTransition
from models import TripMatch, MatchStatus, TripStatus, TERMINAL_MATCH_STATUSES
from stores import MatchStore, TripStore, PreferencesStore, NotificationStore
from notification_service import notify_match_status

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    MatchStatus.SUGGESTED: {MatchStatus.VIEWED, MatchStatus.DECLINED, MatchStatus.EXPIRED},
    MatchStatus.VIEWED: {MatchStatus.VIEWED, MatchStatus.CONTACTED, MatchStatus.DECLINED, MatchStatus.EXPIRED},
    MatchStatus.CONTACTED: {MatchStatus.ACCEPTED, MatchStatus.DECLINED, MatchStatus.EXPIRED},
    MatchStatus.ACCEPTED: set(),
    MatchStatus.DECLINED: set(),
    MatchStatus.EXPIRED: set(),
}

TRANSITION_TIMESTAMPS = {
    MatchStatus.VIEWED: "viewed_at",
    MatchStatus.CONTACTED: "contacted_at",
    MatchStatus.ACCEPTED: "responded_at",
    MatchStatus.DECLINED: "responded_at",
}


def can_transition(current: MatchStatus, target: MatchStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def check_transition(current: MatchStatus, target: MatchStatus):
    if not can_transition(current, target):
        raise InvalidMatchTransition(current.value, target.value)


def is_past_expiry(match: TripMatch, now: datetime) -> bool:
    return match.status not in TERMINAL_MATCH_STATUSES and match.expires_at < now


async def get_match_for_user(store: MatchStore, match_id: str, user_id: str) -> TripMatch:
    match = await store.get(match_id)
    if not match:
        raise NotFoundError("Match")
    if not match.involves(user_id):
        raise ForbiddenError("Only the owners of the matched trips can access this match")
    return match


async def transition_match(
    match_store: MatchStore,
    match_id: str,
    user_id: str,
    target: MatchStatus,
    trip_store: Optional[TripStore] = None,
    preferences_store: Optional[PreferencesStore] = None,
    notification_store: Optional[NotificationStore] = None,
    now: Optional[datetime] = None
) -> TripMatch:
    """
    Move a match to `target` on behalf of one of its trip owners.

    Raises NotFoundError, ForbiddenError for outsiders and
    InvalidMatchTransition when the lifecycle does not allow the move.
    """
    now = now or datetime.now(timezone.utc)
    match = await get_match_for_user(match_store, match_id, user_id)

    if is_past_expiry(match, now) and target != MatchStatus.EXPIRED:
        await match_store.update(match.id, {"status": MatchStatus.EXPIRED, "updated_at": now})
        logger.info(f"Match {match.id} expired on access")
        raise InvalidMatchTransition(MatchStatus.EXPIRED.value, target.value)

    check_transition(match.status, target)

    if match.status == target:
        return match

    fields = {"status": target, "updated_at": now}
    timestamp_field = TRANSITION_TIMESTAMPS.get(target)
    if timestamp_field:
        fields[timestamp_field] = now

    updated = await match_store.update(match.id, fields)
    logger.info(f"Match {match.id}: {match.status.value} -> {target.value} by user {user_id}")

    if target == MatchStatus.ACCEPTED and trip_store is not None:
        for trip_id in (updated.trip_id, updated.matched_trip_id):
            trip = await trip_store.get(trip_id)
            if trip and trip.status == TripStatus.ACTIVE:
                await trip_store.update(trip_id, {"status": TripStatus.MATCHED.value, "updated_at": now})

    if notification_store is not None and trip_store is not None:
        await _notify_other_owner(updated, user_id, trip_store, preferences_store, notification_store)

    return updated


async def _notify_other_owner(match, acting_user_id, trip_store, preferences_store, notification_store):
    # The recipient sees the destination of the trip they are sharing with
    acting_trip_id = match.trip_id if acting_user_id == match.trip_owner_id else match.matched_trip_id
    recipient_id = match.matched_trip_owner_id if acting_user_id == match.trip_owner_id else match.trip_owner_id

    acting_trip = await trip_store.get(acting_trip_id)
    destination = acting_trip.destination.address if acting_trip else "your destination"

    recipient_preferences = None
    if preferences_store is not None:
        recipient_preferences = await preferences_store.get(recipient_id)

    await notify_match_status(notification_store, match, acting_user_id, destination, recipient_preferences)
