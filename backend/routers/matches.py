"""Trip match routes: scoring, matching runs and the match lifecycle."""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from core.dependencies import (
    get_user_id, get_trip_store, get_preferences_store, get_match_store,
    get_notification_store, get_matching_service
)
from core.exceptions import NotFoundError, ForbiddenError
from models import (
    TripMatch, MatchStatus, ScorePairRequest, ScorePairResponse, MatchingRunResponse
)
from stores import TripStore, PreferencesStore, MatchStore, NotificationStore
from services.matching_service import MatchingService
from services.scoring_service import describe_compatibility
from services.match_lifecycle_service import transition_match, get_match_for_user
from services.expiration_service import expire_stale_matches

router = APIRouter()


async def check_trip_owner(trip_store: TripStore, trip_id: str, user_id: str):
    trip = await trip_store.get(trip_id)
    if not trip:
        raise NotFoundError("Trip")
    if trip.user_id != user_id:
        raise ForbiddenError("Only the trip owner can see its matches")


@router.post("/score", response_model=ScorePairResponse)
async def score_trip_pair(
    request: ScorePairRequest,
    user_id: str = Depends(get_user_id),
    trip_store: TripStore = Depends(get_trip_store),
    matching_service: MatchingService = Depends(get_matching_service)
):
    """Compatibility of two trips, without recording a match. The user must own one of them."""
    owners = []
    for trip_id in (request.trip_id, request.matched_trip_id):
        trip = await trip_store.get(trip_id)
        if not trip:
            raise NotFoundError("Trip")
        owners.append(trip.user_id)
    if user_id not in owners:
        raise ForbiddenError("Only the owner of one of the trips can score them")

    evaluation = await matching_service.score_pair(request.trip_id, request.matched_trip_id)
    display = describe_compatibility(
        evaluation.compatibility_score, evaluation.match_type, evaluation.breakdown
    )
    return ScorePairResponse(evaluation=evaluation, display=display)


@router.post("/trips/{trip_id}/run", response_model=MatchingRunResponse)
async def run_matching_for_trip(
    trip_id: str,
    user_id: str = Depends(get_user_id),
    trip_store: TripStore = Depends(get_trip_store),
    matching_service: MatchingService = Depends(get_matching_service)
):
    """Find and record matches for one of the user's trips."""
    await check_trip_owner(trip_store, trip_id, user_id)
    return await matching_service.find_matches_for_trip(trip_id)


@router.get("/trips/{trip_id}", response_model=List[TripMatch])
async def list_trip_matches(
    trip_id: str,
    status: Optional[List[MatchStatus]] = Query(None),
    limit: int = 20,
    user_id: str = Depends(get_user_id),
    trip_store: TripStore = Depends(get_trip_store),
    match_store: MatchStore = Depends(get_match_store)
):
    """Matches of a trip, best score first."""
    await check_trip_owner(trip_store, trip_id, user_id)
    return await match_store.list_for_trip(trip_id, status, limit)


@router.post("/expire")
async def expire_matches(match_store: MatchStore = Depends(get_match_store)):
    """Expire every open match past its expiry date."""
    return await expire_stale_matches(match_store)


@router.get("/{match_id}", response_model=TripMatch)
async def get_match(
    match_id: str,
    user_id: str = Depends(get_user_id),
    match_store: MatchStore = Depends(get_match_store)
):
    return await get_match_for_user(match_store, match_id, user_id)


async def _move(match_id, user_id, target, match_store, trip_store, preferences_store, notification_store):
    return await transition_match(
        match_store, match_id, user_id, target,
        trip_store=trip_store,
        preferences_store=preferences_store,
        notification_store=notification_store
    )


@router.post("/{match_id}/view", response_model=TripMatch)
async def view_match(
    match_id: str,
    user_id: str = Depends(get_user_id),
    match_store: MatchStore = Depends(get_match_store),
    trip_store: TripStore = Depends(get_trip_store),
    preferences_store: PreferencesStore = Depends(get_preferences_store),
    notification_store: NotificationStore = Depends(get_notification_store)
):
    return await _move(match_id, user_id, MatchStatus.VIEWED,
                       match_store, trip_store, preferences_store, notification_store)


@router.post("/{match_id}/contact", response_model=TripMatch)
async def contact_match(
    match_id: str,
    user_id: str = Depends(get_user_id),
    match_store: MatchStore = Depends(get_match_store),
    trip_store: TripStore = Depends(get_trip_store),
    preferences_store: PreferencesStore = Depends(get_preferences_store),
    notification_store: NotificationStore = Depends(get_notification_store)
):
    return await _move(match_id, user_id, MatchStatus.CONTACTED,
                       match_store, trip_store, preferences_store, notification_store)


@router.post("/{match_id}/accept", response_model=TripMatch)
async def accept_match(
    match_id: str,
    user_id: str = Depends(get_user_id),
    match_store: MatchStore = Depends(get_match_store),
    trip_store: TripStore = Depends(get_trip_store),
    preferences_store: PreferencesStore = Depends(get_preferences_store),
    notification_store: NotificationStore = Depends(get_notification_store)
):
    return await _move(match_id, user_id, MatchStatus.ACCEPTED,
                       match_store, trip_store, preferences_store, notification_store)


@router.post("/{match_id}/decline", response_model=TripMatch)
async def decline_match(
    match_id: str,
    user_id: str = Depends(get_user_id),
    match_store: MatchStore = Depends(get_match_store),
    trip_store: TripStore = Depends(get_trip_store),
    preferences_store: PreferencesStore = Depends(get_preferences_store),
    notification_store: NotificationStore = Depends(get_notification_store)
):
    return await _move(match_id, user_id, MatchStatus.DECLINED,
                       match_store, trip_store, preferences_store, notification_store)
