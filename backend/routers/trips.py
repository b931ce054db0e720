"""Trip management routes."""
from fastapi import APIRouter, BackgroundTasks, Depends
from datetime import datetime, timezone
from typing import List
import logging
import uuid

import pydantic

from core.config import Settings, get_settings
from core.dependencies import (
    get_user_id, get_trip_store, get_preferences_store, get_match_store, get_matching_service
)
from core.exceptions import NotFoundError, ForbiddenError, BusinessRuleError, ValidationError
from models import Trip, TripCreate, TripUpdate, TripStatus, TERMINAL_TRIP_STATUSES
from stores import TripStore, PreferencesStore, MatchStore
from services.matching_service import MatchingService
from services.preferences_service import ensure_user_preferences, apply_preference_defaults
from services.expiration_service import expire_matches_for_trip

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_owned_trip(trip_store: TripStore, trip_id: str, user_id: str) -> Trip:
    trip = await trip_store.get(trip_id)
    if not trip:
        raise NotFoundError("Trip")
    if trip.user_id != user_id:
        raise ForbiddenError("Only the trip owner can change this trip")
    return trip


async def run_matching(matching_service: MatchingService, trip_id: str):
    """Background matching run after a trip is published."""
    result = await matching_service.find_matches_for_trip(trip_id)
    logger.info(f"Matching for new trip {trip_id}: {result.created} matches created")


@router.post("", response_model=Trip)
async def create_trip(
    trip_data: TripCreate,
    background_tasks: BackgroundTasks,
    match_now: bool = True,
    user_id: str = Depends(get_user_id),
    trip_store: TripStore = Depends(get_trip_store),
    preferences_store: PreferencesStore = Depends(get_preferences_store),
    matching_service: MatchingService = Depends(get_matching_service),
    settings: Settings = Depends(get_settings)
):
    """Create a new trip. Unstated preferences come from the owner's account."""
    preferences = await ensure_user_preferences(
        preferences_store, user_id, max_attempts=settings.preferences_upsert_attempts
    )
    fields = apply_preference_defaults(trip_data.model_dump(), preferences)

    now = datetime.now(timezone.utc)
    try:
        trip = Trip(
            **fields,
            id=str(uuid.uuid4()),
            user_id=user_id,
            available_seats=trip_data.max_passengers,
            status=TripStatus.ACTIVE,
            created_at=now,
            updated_at=now
        )
    except pydantic.ValidationError as e:
        raise ValidationError(str(e))
    await trip_store.insert(trip)
    logger.info(f"Trip {trip.id} created by user {user_id}")

    if match_now:
        background_tasks.add_task(run_matching, matching_service, trip.id)

    return trip


@router.get("/active", response_model=List[Trip])
async def list_active_trips(
    limit: int = 50,
    trip_store: TripStore = Depends(get_trip_store)
):
    """Active trips with seats left, earliest departure first."""
    return await trip_store.list_active(limit)


@router.get("/my-trips", response_model=List[Trip])
async def get_my_trips(
    user_id: str = Depends(get_user_id),
    trip_store: TripStore = Depends(get_trip_store)
):
    """Get current user's trips."""
    return await trip_store.list_by_user(user_id)


@router.get("/{trip_id}", response_model=Trip)
async def get_trip(trip_id: str, trip_store: TripStore = Depends(get_trip_store)):
    trip = await trip_store.get(trip_id)
    if not trip:
        raise NotFoundError("Trip")
    return trip


@router.put("/{trip_id}", response_model=Trip)
async def update_trip(
    trip_id: str,
    update: TripUpdate,
    user_id: str = Depends(get_user_id),
    trip_store: TripStore = Depends(get_trip_store)
):
    """Update a trip that is still open for matching."""
    trip = await get_owned_trip(trip_store, trip_id, user_id)
    if trip.status != TripStatus.ACTIVE:
        raise BusinessRuleError(f"Trip can no longer be changed (status {trip.status.value})")

    changes = update.model_dump(exclude_unset=True)
    if "max_passengers" in changes:
        taken = trip.max_passengers - trip.available_seats
        if changes["max_passengers"] < taken:
            raise BusinessRuleError("Cannot offer fewer seats than already taken")
        changes["available_seats"] = changes["max_passengers"] - taken
    changes["updated_at"] = datetime.now(timezone.utc)

    # Revalidate the merged trip so range checks see both bounds
    try:
        merged = Trip(**{**trip.model_dump(), **changes})
    except pydantic.ValidationError as e:
        raise ValidationError(str(e))

    return await trip_store.update(trip_id, {k: getattr(merged, k) for k in changes})


@router.post("/{trip_id}/cancel", response_model=Trip)
async def cancel_trip(
    trip_id: str,
    user_id: str = Depends(get_user_id),
    trip_store: TripStore = Depends(get_trip_store),
    match_store: MatchStore = Depends(get_match_store)
):
    """Cancel a trip. Its open matches expire."""
    trip = await get_owned_trip(trip_store, trip_id, user_id)
    if trip.status in TERMINAL_TRIP_STATUSES:
        raise BusinessRuleError(f"Trip is already {trip.status.value.lower()}")

    now = datetime.now(timezone.utc)
    updated = await trip_store.update(trip_id, {"status": TripStatus.CANCELLED.value, "updated_at": now})
    await expire_matches_for_trip(match_store, trip_id, now)
    logger.info(f"Trip {trip_id} cancelled by user {user_id}")
    return updated


@router.post("/{trip_id}/complete", response_model=Trip)
async def complete_trip(
    trip_id: str,
    user_id: str = Depends(get_user_id),
    trip_store: TripStore = Depends(get_trip_store),
    match_store: MatchStore = Depends(get_match_store)
):
    """Mark a trip as completed."""
    trip = await get_owned_trip(trip_store, trip_id, user_id)
    if trip.status in TERMINAL_TRIP_STATUSES:
        raise BusinessRuleError(f"Trip is already {trip.status.value.lower()}")

    now = datetime.now(timezone.utc)
    updated = await trip_store.update(trip_id, {"status": TripStatus.COMPLETED.value, "updated_at": now})
    await expire_matches_for_trip(match_store, trip_id, now)
    return updated
