"""Price range compatibility between two trips."""
from typing import Optional, Tuple

from core.exceptions import ValidationError
from models import Trip, UserPreferences

# Share of the per-seat price saved on the shared part of a route
SHARED_SAVINGS_RATE = 0.5


def validate_price_range(price_range: Tuple[float, float]) -> Tuple[float, float]:
    minimum, maximum = price_range
    if minimum < 0:
        raise ValidationError(f"Price range minimum must not be negative: {price_range}")
    if maximum <= minimum:
        raise ValidationError(f"Price range must have a positive width: {price_range}")
    return price_range


def resolve_price_range(trip: Trip, preferences: Optional[UserPreferences]) -> Tuple[float, float]:
    """The trip's own acceptable range, else its owner's preferred range."""
    if trip.price_range_min is not None and trip.price_range_max is not None:
        return validate_price_range((trip.price_range_min, trip.price_range_max))

    preferences = preferences or UserPreferences()
    return validate_price_range((preferences.price_range_min, preferences.price_range_max))


def calculate_price_compatibility(
    range_a: Tuple[float, float],
    range_b: Tuple[float, float]
) -> float:
    """
    Intersection length over union length of two price ranges.
    Ranges that do not overlap (or only touch) score 0.
    """
    validate_price_range(range_a)
    validate_price_range(range_b)

    intersection = min(range_a[1], range_b[1]) - max(range_a[0], range_b[0])
    if intersection <= 0:
        return 0.0

    union = max(range_a[1], range_b[1]) - min(range_a[0], range_b[0])
    return min(1.0, intersection / union)


def calculate_estimated_savings(
    price_per_seat: Optional[float],
    shared_distance_km: float,
    total_distance_km: float
) -> float:
    """Cost saved per person on the shared portion of the route."""
    if not price_per_seat or not shared_distance_km or not total_distance_km:
        return 0.0

    shared_portion = min(1.0, shared_distance_km / total_distance_km)
    return round(price_per_seat * shared_portion * SHARED_SAVINGS_RATE, 2)
