"""
Trip Compatibility Scoring
==========================

Combines the route, time, preference and price sub-scores of a trip pair
into one compatibility score in [0, 1]:

    score = (0.4 * route + 0.3 * time + 0.2 * preferences + 0.1 * price)
            / sum of the weights that apply

Preferences drop out of the sum when neither trip states anything
comparable, and the remaining weights are renormalised.

Hard cutoffs are checked before aggregation:
- Departures further apart than both flexibility windows combined
- Gender / age filters of either user

Below `min_match_score` (0.3) the pair is not a viable match. That is a
normal outcome, reported on the evaluation, never raised.

All functions here are pure: they can run for many pairs concurrently.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Dict
import logging
import math

from core.exceptions import TripNotMatchableError, ValidationError
from models import (
    Trip, UserPreferences, MatchEvaluation, ScoreBreakdown, RouteAnalysis,
    MatchType, RejectionReason, CompatibilityDisplay
)
from providers.base import RouteResult
from services.route_compatibility_service import compare_routes, EXACT_ROUTE_RADIUS_KM
from services.time_compatibility_service import (
    departure_difference_minutes, effective_flexibility, calculate_time_compatibility
)
from services.preference_matching_service import (
    calculate_preferences_compatibility, check_demographic_compatibility
)
from services.price_compatibility_service import (
    resolve_price_range, calculate_price_compatibility, calculate_estimated_savings
)
from services.meeting_point_service import find_meeting_points

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringPolicy:
    """Weights and thresholds of the aggregator."""
    weight_route: float = 0.4
    weight_time: float = 0.3
    weight_preferences: float = 0.2
    weight_price: float = 0.1
    min_match_score: float = 0.3
    exact_route_radius_km: float = EXACT_ROUTE_RADIUS_KM

    def __post_init__(self):
        weights = (self.weight_route, self.weight_time, self.weight_preferences, self.weight_price)
        if any(w < 0 for w in weights):
            raise ValidationError("Scoring weights must not be negative")
        if sum(weights) <= 0:
            raise ValidationError("Scoring weights must have a positive sum")
        if not 0 <= self.min_match_score <= 1:
            raise ValidationError("Minimum match score must be within [0, 1]")
        if self.exact_route_radius_km < 0:
            raise ValidationError("Exact route radius must not be negative")

    @classmethod
    def from_settings(cls, settings) -> "ScoringPolicy":
        return cls(
            weight_route=settings.weight_route,
            weight_time=settings.weight_time,
            weight_preferences=settings.weight_preferences,
            weight_price=settings.weight_price,
            min_match_score=settings.min_match_score,
            exact_route_radius_km=settings.exact_route_radius_km
        )


DEFAULT_POLICY = ScoringPolicy()


def aggregate_score(breakdown: ScoreBreakdown, policy: ScoringPolicy = DEFAULT_POLICY) -> float:
    """
    Weighted mean of the available sub-scores, clamped to [0, 1].
    """
    weighted = [
        (policy.weight_route, breakdown.route_score),
        (policy.weight_time, breakdown.time_score),
        (policy.weight_price, breakdown.price_score),
    ]
    if breakdown.preferences_score is not None:
        weighted.append((policy.weight_preferences, breakdown.preferences_score))

    total_weight = sum(weight for weight, _ in weighted)
    if total_weight <= 0:
        return 0.0

    score = sum(weight * value for weight, value in weighted) / total_weight
    return min(1.0, max(0.0, score))


def evaluate_trip_pair(
    trip_a: Trip,
    trip_b: Trip,
    preferences_a: Optional[UserPreferences] = None,
    preferences_b: Optional[UserPreferences] = None,
    route_a: Optional[RouteResult] = None,
    route_b: Optional[RouteResult] = None,
    policy: Optional[ScoringPolicy] = None
) -> MatchEvaluation:
    """
    Score a pair of trips.

    Raises TripNotMatchableError when either trip is not active with seats
    left, and ValidationError for malformed geometry or price ranges.
    """
    policy = policy or DEFAULT_POLICY
    for trip in (trip_a, trip_b):
        if not trip.is_matchable:
            raise TripNotMatchableError(trip.id, trip.status.value)

    # Missing preferences fall back to the account defaults
    preferences_a = preferences_a or UserPreferences(user_id=trip_a.user_id)
    preferences_b = preferences_b or UserPreferences(user_id=trip_b.user_id)

    route = compare_routes(
        trip_a, trip_b, preferences_a, preferences_b, route_a, route_b,
        exact_route_radius_km=policy.exact_route_radius_km
    )

    time_difference = departure_difference_minutes(trip_a.departure_time, trip_b.departure_time)
    time_score, time_eligible = calculate_time_compatibility(
        time_difference,
        effective_flexibility(trip_a, preferences_a),
        effective_flexibility(trip_b, preferences_b)
    )

    preferences_score = calculate_preferences_compatibility(trip_a, trip_b)
    price_score = calculate_price_compatibility(
        resolve_price_range(trip_a, preferences_a),
        resolve_price_range(trip_b, preferences_b)
    )

    breakdown = ScoreBreakdown(
        route_score=route.route_score,
        time_score=time_score,
        preferences_score=preferences_score,
        price_score=price_score
    )

    evaluation = MatchEvaluation(
        trip_id=trip_a.id,
        matched_trip_id=trip_b.id,
        viable=False,
        breakdown=breakdown,
        match_type=route.match_type,
        detour_distance=round(route.detour_distance_km, 3),
        detour_time=round(route.detour_time_min, 1),
        shared_distance=round(route.shared_distance_km, 3),
        time_difference=round(time_difference, 1)
    )

    if not time_eligible:
        evaluation.rejection_reason = RejectionReason.OUTSIDE_TIME_WINDOW
        return evaluation

    if not check_demographic_compatibility(trip_a, preferences_a, trip_b, preferences_b):
        evaluation.rejection_reason = RejectionReason.DEMOGRAPHIC_FILTER
        return evaluation

    score = aggregate_score(breakdown, policy)
    evaluation.compatibility_score = score

    if score < policy.min_match_score:
        evaluation.rejection_reason = RejectionReason.BELOW_THRESHOLD
        return evaluation

    evaluation.viable = True
    _attach_route_details(evaluation, trip_a, trip_b, preferences_a, preferences_b, route)
    return evaluation


def _attach_route_details(evaluation, trip_a, trip_b, preferences_a, preferences_b, route):
    host, guest = (trip_a, trip_b) if route.host_trip_id == trip_a.id else (trip_b, trip_a)
    guest_preferences = preferences_b if guest is trip_b else preferences_a

    pickup, pickup_alternatives = find_meeting_points(
        guest.origin, route.host_path, host.origin.coordinates,
        guest_preferences.max_walking_distance
    )
    dropoff, dropoff_alternatives = find_meeting_points(
        guest.destination, route.host_path, host.destination.coordinates,
        guest_preferences.max_walking_distance
    )

    evaluation.route_analysis = RouteAnalysis(
        common_path=route.common_path,
        deviation_from_original=round(route.detour_distance_km, 3),
        pickup_points=[[p.coordinates.lat, p.coordinates.lng] for p in [pickup] + pickup_alternatives],
        dropoff_points=[[p.coordinates.lat, p.coordinates.lng] for p in [dropoff] + dropoff_alternatives],
        route_source=route.route_source
    )
    evaluation.suggested_pickup_point = pickup
    evaluation.suggested_dropoff_point = dropoff
    evaluation.alternative_meeting_points = pickup_alternatives + dropoff_alternatives
    evaluation.estimated_savings = calculate_estimated_savings(
        host.price_per_seat, route.shared_distance_km, route.guest_distance_km
    )


def rank_evaluations(evaluations: Iterable[MatchEvaluation]) -> List[MatchEvaluation]:
    """
    Highest score first. Equal scores go to the better route, since route
    compatibility is the main value of a shared ride.
    """
    return sorted(
        evaluations,
        key=lambda e: (e.compatibility_score, e.breakdown.route_score),
        reverse=True
    )


# Display contract of a compatibility score
SCORE_LEVELS = [
    (0.8, "Excellent Match", "green"),
    (0.6, "Good Match", "blue"),
    (0.4, "Fair Match", "yellow"),
]

MATCH_TYPE_LABELS = {
    MatchType.EXACT_ROUTE: "Same Route",
    MatchType.PARTIAL_OVERLAP: "Shared Path",
    MatchType.DETOUR_PICKUP: "Pickup Detour",
    MatchType.DETOUR_DROPOFF: "Dropoff Detour",
}


def to_percentage(score: float) -> int:
    return int(math.floor(score * 100 + 0.5))


def get_score_label(score: float) -> str:
    for threshold, label, _ in SCORE_LEVELS:
        if score >= threshold:
            return label
    return "Poor Match"


def get_score_color(score: float) -> str:
    for threshold, _, color in SCORE_LEVELS:
        if score >= threshold:
            return color
    return "red"


def describe_compatibility(
    score: float,
    match_type: Optional[MatchType] = None,
    breakdown: Optional[ScoreBreakdown] = None
) -> CompatibilityDisplay:
    """Percentage, qualitative label and optional per-dimension breakdown."""
    parts: Optional[Dict[str, int]] = None
    if breakdown is not None:
        parts = {
            "route": to_percentage(breakdown.route_score),
            "time": to_percentage(breakdown.time_score),
            "price": to_percentage(breakdown.price_score),
        }
        if breakdown.preferences_score is not None:
            parts["preferences"] = to_percentage(breakdown.preferences_score)

    return CompatibilityDisplay(
        percentage=to_percentage(score),
        label=get_score_label(score),
        color=get_score_color(score),
        match_type_label=MATCH_TYPE_LABELS.get(match_type) if match_type else None,
        breakdown=parts
    )
