"""
Rider preference compatibility: smoking, pets, music, conversation,
plus the gender and age filters from each user's matching preferences.
"""
from typing import Optional, Dict
import logging

from models import Trip, UserPreferences, GenderPreference

logger = logging.getLogger(__name__)

INDIFFERENT = "indifferent"


def _bool_stance(value: Optional[bool]) -> Optional[str]:
    if value is None:
        return None
    return "yes" if value else "no"


def trip_stances(trip: Trip) -> Dict[str, Optional[str]]:
    """Stated stance of a trip on each categorical dimension (None = not stated)."""
    return {
        "smoking": _bool_stance(trip.smoking_allowed),
        "pets": _bool_stance(trip.pets_allowed),
        "music": trip.music_preference.value if trip.music_preference else None,
        "conversation": trip.conversation_level.value if trip.conversation_level else None,
    }


def compare_stances(first: str, second: str) -> float:
    """Exact match or indifference on either side is compatible."""
    if first == INDIFFERENT or second == INDIFFERENT:
        return 1.0
    return 1.0 if first == second else 0.0


def calculate_preferences_compatibility(trip_a: Trip, trip_b: Trip) -> Optional[float]:
    """
    Average compatibility over the dimensions both trips state.
    Returns None when no dimension is stated on both sides.
    """
    stances_a = trip_stances(trip_a)
    stances_b = trip_stances(trip_b)

    scores = [
        compare_stances(stances_a[dimension], stances_b[dimension])
        for dimension in stances_a
        if stances_a[dimension] is not None and stances_b[dimension] is not None
    ]

    if not scores:
        return None
    return sum(scores) / len(scores)


def _owner_gender(trip: Trip, preferences: UserPreferences) -> Optional[str]:
    gender = trip.owner_gender or preferences.gender
    return gender.strip().lower() if gender else None


def passes_demographic_filters(
    preferences: UserPreferences,
    own_trip: Trip,
    other_trip: Trip,
    other_preferences: UserPreferences
) -> bool:
    """
    Check one user's gender/age filters against the other trip's owner.
    Unknown demographics never fail a filter.
    """
    if preferences.gender_preference == GenderPreference.SAME:
        own = _owner_gender(own_trip, preferences)
        other = _owner_gender(other_trip, other_preferences)
        if own and other and own != other:
            return False

    age = other_trip.owner_age
    if age is not None:
        if preferences.min_age is not None and age < preferences.min_age:
            return False
        if preferences.max_age is not None and age > preferences.max_age:
            return False

    return True


def check_demographic_compatibility(
    trip_a: Trip,
    preferences_a: UserPreferences,
    trip_b: Trip,
    preferences_b: UserPreferences
) -> bool:
    """Both users' filters must accept the other owner."""
    return (
        passes_demographic_filters(preferences_a, trip_a, trip_b, preferences_b)
        and passes_demographic_filters(preferences_b, trip_b, trip_a, preferences_a)
    )
