"""
Departure time compatibility.

Two riders can share a trip when the gap between their departures fits in
the sum of their flexibility windows. Outside that window the pair is
ineligible, whatever the other dimensions say.
"""
from datetime import datetime
from typing import Optional, Tuple

from core.exceptions import ValidationError
from models import Trip, UserPreferences


def departure_difference_minutes(first: datetime, second: datetime) -> float:
    """Absolute difference between two departures, in minutes."""
    return abs((first - second).total_seconds()) / 60


def effective_flexibility(trip: Trip, preferences: Optional[UserPreferences]) -> int:
    """Trip-level flexibility wins over the owner's account setting."""
    if trip.departure_flexibility is not None:
        return trip.departure_flexibility
    return (preferences or UserPreferences()).time_flexibility


def calculate_time_compatibility(
    difference_minutes: float,
    flexibility_a: float,
    flexibility_b: float
) -> Tuple[float, bool]:
    """
    Score departure alignment.

    Returns (score, eligible). The score is 1 - diff / combined window,
    floored at 0; eligible is False when the gap exceeds the window.
    """
    if flexibility_a < 0 or flexibility_b < 0:
        raise ValidationError("Time flexibility must not be negative")
    if difference_minutes < 0:
        raise ValidationError("Departure difference must not be negative")

    window = flexibility_a + flexibility_b
    if window == 0:
        return (1.0, True) if difference_minutes == 0 else (0.0, False)

    if difference_minutes > window:
        return (0.0, False)

    return (max(0.0, 1 - difference_minutes / window), True)
