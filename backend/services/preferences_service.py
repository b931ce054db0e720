"""
User matching preferences with account defaults.

Missing preferences never fail a match: the defaults are used instead.
Creating the preferences row is an idempotent upsert, retried a bounded
number of times while the database is briefly unreachable.
"""
import asyncio
import logging
from typing import Optional, Dict, Iterable

from pymongo.errors import ConnectionFailure

from models import UserPreferences, Trip
from stores import PreferencesStore

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY_SECONDS = 0.5


def default_preferences(user_id: Optional[str] = None) -> UserPreferences:
    return UserPreferences(user_id=user_id)


async def get_preferences_or_default(store: PreferencesStore, user_id: str) -> UserPreferences:
    preferences = await store.get(user_id)
    return preferences or default_preferences(user_id)


async def get_preferences_for_users(store: PreferencesStore, user_ids: Iterable[str]) -> Dict[str, UserPreferences]:
    """Preferences of several users, defaults filled in."""
    result = {}
    for user_id in set(user_ids):
        result[user_id] = await get_preferences_or_default(store, user_id)
    return result


async def save_preferences(
    store: PreferencesStore,
    preferences: UserPreferences,
    max_attempts: int = 3,
    base_delay: float = RETRY_BASE_DELAY_SECONDS
) -> UserPreferences:
    """
    Upsert preferences, retrying transient connection failures.
    The last failure is raised once `max_attempts` is exhausted.
    """
    attempt = 1
    while True:
        try:
            return await store.upsert(preferences)
        except ConnectionFailure as e:
            if attempt >= max_attempts:
                logger.error(f"Saving preferences for {preferences.user_id} failed after {attempt} attempts: {e}")
                raise
            logger.warning(f"Saving preferences for {preferences.user_id} failed (attempt {attempt}), retrying: {e}")
            await asyncio.sleep(base_delay * 2 ** (attempt - 1))
            attempt += 1


async def ensure_user_preferences(
    store: PreferencesStore,
    user_id: str,
    max_attempts: int = 3,
    base_delay: float = RETRY_BASE_DELAY_SECONDS
) -> UserPreferences:
    """Return stored preferences, creating the default row when missing."""
    existing = await store.get(user_id)
    if existing is not None:
        return existing
    return await save_preferences(store, default_preferences(user_id), max_attempts, base_delay)


def apply_preference_defaults(trip_fields: dict, preferences: UserPreferences) -> dict:
    """
    Fill a new trip's unstated preference flags and price range from the
    owner's account preferences.
    """
    fields = dict(trip_fields)

    if fields.get("smoking_allowed") is None and preferences.smoking_preference.value != "indifferent":
        fields["smoking_allowed"] = preferences.smoking_preference.value == "yes"
    if fields.get("pets_allowed") is None:
        fields["pets_allowed"] = preferences.pets_preference
    if fields.get("music_preference") is None:
        fields["music_preference"] = preferences.music_preference
    if fields.get("conversation_level") is None:
        fields["conversation_level"] = preferences.conversation_level
    if fields.get("departure_flexibility") is None:
        fields["departure_flexibility"] = preferences.time_flexibility
    if fields.get("price_range_min") is None and fields.get("price_range_max") is None:
        fields["price_range_min"] = preferences.price_range_min
        fields["price_range_max"] = preferences.price_range_max
    if fields.get("owner_gender") is None and preferences.gender:
        fields["owner_gender"] = preferences.gender

    return fields


def trip_owner_ids(trips: Iterable[Trip]) -> set:
    return {trip.user_id for trip in trips}
