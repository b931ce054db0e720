"""Common dependencies for FastAPI routes."""
from functools import lru_cache

from fastapi import Depends, Header

from core.config import Settings, get_settings
from database import (
    trips_collection, preferences_collection, matches_collection, notifications_collection
)
from providers import DirectionsProvider, OSRMDirectionsProvider
from stores import (
    TripStore, PreferencesStore, MatchStore, NotificationStore,
    MongoTripStore, MongoPreferencesStore, MongoMatchStore, MongoNotificationStore
)
from services.matching_service import MatchingService


def get_trip_store() -> TripStore:
    return MongoTripStore(trips_collection)


def get_preferences_store() -> PreferencesStore:
    return MongoPreferencesStore(preferences_collection)


def get_match_store() -> MatchStore:
    return MongoMatchStore(matches_collection)


def get_notification_store() -> NotificationStore:
    return MongoNotificationStore(notifications_collection)


@lru_cache()
def _osrm_provider(base_url: str, timeout: float) -> OSRMDirectionsProvider:
    return OSRMDirectionsProvider(base_url, timeout)


def get_directions_provider(settings: Settings = Depends(get_settings)) -> DirectionsProvider:
    """One OSRM client per process, configured from settings."""
    return _osrm_provider(settings.osrm_base_url, settings.directions_timeout_seconds)


def get_matching_service(
    trip_store: TripStore = Depends(get_trip_store),
    preferences_store: PreferencesStore = Depends(get_preferences_store),
    match_store: MatchStore = Depends(get_match_store),
    notification_store: NotificationStore = Depends(get_notification_store),
    directions: DirectionsProvider = Depends(get_directions_provider),
    settings: Settings = Depends(get_settings)
) -> MatchingService:
    return MatchingService(
        trip_store, preferences_store, match_store, notification_store, directions, settings
    )


def get_user_id(x_user_id: str = Header(..., min_length=1)) -> str:
    """Acting user, as authenticated upstream and forwarded in X-User-Id."""
    return x_user_id
