"""
Route compatibility between two trips.

MATCHING PRINCIPLE: one trip (the host) keeps its path and the other (the
guest) joins it. The guest's pickup deviation is the distance from its
origin to the host path, the dropoff deviation the same for its
destination. Both orientations are evaluated and the one with the smaller
detour wins, so comparing A with B gives the same result as B with A.

Routed polylines are used when the directions provider answered; otherwise
the straight segment between origin and destination stands in for the path.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import math
import logging

from core.exceptions import ValidationError
from models import Trip, UserPreferences, MatchType, RouteSource, Coordinates
from providers.base import RouteResult
from route_service import (
    haversine_distance,
    point_to_polyline_distance,
    position_along_polyline,
    polyline_length,
    straight_line_path,
    simplify_polyline,
    shared_path
)

logger = logging.getLogger(__name__)

EXACT_ROUTE_RADIUS_KM = 0.5
# exact_route is only reported when the route score is near maximal
EXACT_ROUTE_MIN_SCORE = 0.9
# Segments closer than this to the other path count as shared
OVERLAP_THRESHOLD_KM = 0.5
# Rough driving estimate when no routed duration is known
DEFAULT_MINUTES_PER_KM = 2.0
MAX_PATH_POINTS = 100
# Backtracking shorter than this is projection noise
REVERSE_TOLERANCE_KM = 0.05
# Routed ends closer than this to the stored endpoints are left as they are
ENDPOINT_TOLERANCE_KM = 0.001


@dataclass
class TripPath:
    """Path geometry of one trip."""
    polyline: List[List[float]]
    distance_km: float
    minutes_per_km: float
    source: RouteSource


@dataclass
class RouteComparison:
    """Result of comparing the routes of two trips."""
    route_score: float
    match_type: MatchType
    host_trip_id: str
    guest_trip_id: str
    origin_gap_km: float
    destination_gap_km: float
    pickup_deviation_km: float
    dropoff_deviation_km: float
    detour_distance_km: float
    detour_time_min: float
    shared_distance_km: float
    guest_distance_km: float
    corridor_radius_km: float
    reversed_direction: bool
    route_source: RouteSource
    host_path: List[List[float]] = field(default_factory=list)
    common_path: List[List[float]] = field(default_factory=list)


def _validate_point(point: Coordinates, label: str):
    lat, lng = point.lat, point.lng
    if not (math.isfinite(lat) and math.isfinite(lng)) or not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValidationError(f"Invalid {label} coordinates: ({lat}, {lng})")


def anchor_to_endpoints(
    polyline: List[List[float]],
    origin: Coordinates,
    destination: Coordinates
) -> Tuple[List[List[float]], float]:
    """
    Routing engines snap the start and end of a route to the nearest road.
    The stored endpoints are put back at both ends so a trip always lies on
    its own path. Returns the polyline and the length added.
    """
    anchored = [list(point) for point in polyline]
    added_km = 0.0

    start_gap = haversine_distance(origin.lat, origin.lng, anchored[0][0], anchored[0][1])
    if start_gap > ENDPOINT_TOLERANCE_KM:
        anchored.insert(0, [origin.lat, origin.lng])
        added_km += start_gap

    end_gap = haversine_distance(anchored[-1][0], anchored[-1][1], destination.lat, destination.lng)
    if end_gap > ENDPOINT_TOLERANCE_KM:
        anchored.append([destination.lat, destination.lng])
        added_km += end_gap

    return anchored, added_km


def build_trip_path(trip: Trip, route: Optional[RouteResult] = None) -> TripPath:
    """
    Path geometry for a trip, from routed data when available.
    """
    origin = trip.origin.coordinates
    destination = trip.destination.coordinates
    _validate_point(origin, "origin")
    _validate_point(destination, "destination")

    if route and route.polyline and len(route.polyline) >= 2:
        polyline, added_km = anchor_to_endpoints(route.polyline, origin, destination)
        distance_km = (route.distance_km or polyline_length(route.polyline)) + added_km
        minutes_per_km = (
            route.duration_min / distance_km
            if distance_km > 0 and route.duration_min > 0
            else DEFAULT_MINUTES_PER_KM
        )
        return TripPath(
            polyline=simplify_polyline(polyline, MAX_PATH_POINTS),
            distance_km=distance_km,
            minutes_per_km=minutes_per_km,
            source=RouteSource.DIRECTIONS
        )

    return TripPath(
        polyline=straight_line_path(origin.lat, origin.lng, destination.lat, destination.lng),
        distance_km=haversine_distance(origin.lat, origin.lng, destination.lat, destination.lng),
        minutes_per_km=DEFAULT_MINUTES_PER_KM,
        source=RouteSource.STRAIGHT_LINE
    )


def calculate_route_score(
    detour_distance_km: float,
    detour_time_min: float,
    max_detour_distance_km: float,
    max_detour_time_min: float
) -> float:
    """1 - normalized detour, bounded by both distance and time limits."""
    distance_ratio = detour_distance_km / max_detour_distance_km
    time_ratio = detour_time_min / max_detour_time_min
    return round(max(0.0, min(1.0, 1 - max(distance_ratio, time_ratio))), 6)


def _evaluate_orientation(
    host: Trip,
    host_path: TripPath,
    guest: Trip,
    guest_path: TripPath,
    corridor_radius_km: float
) -> dict:
    polyline = host_path.polyline
    guest_origin = guest.origin.coordinates
    guest_destination = guest.destination.coordinates

    pickup_deviation = point_to_polyline_distance(guest_origin.lat, guest_origin.lng, polyline)
    dropoff_deviation = point_to_polyline_distance(guest_destination.lat, guest_destination.lng, polyline)
    detour_km = pickup_deviation + dropoff_deviation

    # Guest heading against the host: the host has to drive back over that stretch
    pickup_position = position_along_polyline(guest_origin.lat, guest_origin.lng, polyline)
    dropoff_position = position_along_polyline(guest_destination.lat, guest_destination.lng, polyline)
    reversed_direction = pickup_position - dropoff_position > REVERSE_TOLERANCE_KM
    if reversed_direction:
        detour_km += 2 * (pickup_position - dropoff_position)

    shared_km, common = shared_path(guest_path.polyline, polyline, OVERLAP_THRESHOLD_KM)

    return {
        "host": host,
        "guest": guest,
        "host_path": host_path,
        "guest_path": guest_path,
        "pickup_deviation": pickup_deviation,
        "dropoff_deviation": dropoff_deviation,
        "detour_km": detour_km,
        "detour_min": detour_km * host_path.minutes_per_km,
        "reversed_direction": reversed_direction,
        "shared_km": min(shared_km, guest_path.distance_km) if guest_path.distance_km else shared_km,
        "common_path": common,
    }


def _orientation_key(orientation: dict) -> Tuple[float, float, float, float]:
    return (
        orientation["detour_km"],
        orientation["detour_min"],
        max(orientation["pickup_deviation"], orientation["dropoff_deviation"]),
        orientation["pickup_deviation"],
    )


def classify_match_type(
    origin_gap_km: float,
    destination_gap_km: float,
    pickup_deviation_km: float,
    dropoff_deviation_km: float,
    corridor_radius_km: float,
    reversed_direction: bool,
    route_score: float,
    exact_route_radius_km: float = EXACT_ROUTE_RADIUS_KM
) -> MatchType:
    """
    exact_route: both endpoints within a small radius of each other.
    partial_overlap: the guest joins and leaves inside the host corridor.
    detour_pickup / detour_dropoff: the larger deviation decides.
    """
    if (
        origin_gap_km <= exact_route_radius_km
        and destination_gap_km <= exact_route_radius_km
        and route_score >= EXACT_ROUTE_MIN_SCORE
    ):
        return MatchType.EXACT_ROUTE

    if (
        not reversed_direction
        and pickup_deviation_km <= corridor_radius_km
        and dropoff_deviation_km <= corridor_radius_km
    ):
        return MatchType.PARTIAL_OVERLAP

    if pickup_deviation_km >= dropoff_deviation_km:
        return MatchType.DETOUR_PICKUP
    return MatchType.DETOUR_DROPOFF


def compare_routes(
    trip_a: Trip,
    trip_b: Trip,
    preferences_a: Optional[UserPreferences] = None,
    preferences_b: Optional[UserPreferences] = None,
    route_a: Optional[RouteResult] = None,
    route_b: Optional[RouteResult] = None,
    exact_route_radius_km: float = EXACT_ROUTE_RADIUS_KM
) -> RouteComparison:
    """
    Compare the routes of two trips.

    Limits come from the stricter of the two users: the smaller maximum
    detour (distance and time) and the smaller walking distance, which
    sets the corridor radius around the host path.
    """
    preferences_a = preferences_a or UserPreferences()
    preferences_b = preferences_b or UserPreferences()

    path_a = build_trip_path(trip_a, route_a)
    path_b = build_trip_path(trip_b, route_b)

    if path_a.source != path_b.source:
        logger.warning(
            f"Directions missing for one of trips {trip_a.id}/{trip_b.id}, using straight-line geometry"
        )
    route_source = (
        RouteSource.DIRECTIONS
        if path_a.source == RouteSource.DIRECTIONS and path_b.source == RouteSource.DIRECTIONS
        else RouteSource.STRAIGHT_LINE
    )

    max_detour_km = min(preferences_a.max_detour_distance, preferences_b.max_detour_distance)
    max_detour_min = min(preferences_a.max_detour_time, preferences_b.max_detour_time)
    corridor_radius_km = min(preferences_a.max_walking_distance, preferences_b.max_walking_distance) / 1000

    origin_a, origin_b = trip_a.origin.coordinates, trip_b.origin.coordinates
    destination_a, destination_b = trip_a.destination.coordinates, trip_b.destination.coordinates
    origin_gap = haversine_distance(origin_a.lat, origin_a.lng, origin_b.lat, origin_b.lng)
    destination_gap = haversine_distance(destination_a.lat, destination_a.lng, destination_b.lat, destination_b.lng)

    best = min(
        (
            _evaluate_orientation(trip_a, path_a, trip_b, path_b, corridor_radius_km),
            _evaluate_orientation(trip_b, path_b, trip_a, path_a, corridor_radius_km),
        ),
        key=_orientation_key
    )

    route_score = calculate_route_score(best["detour_km"], best["detour_min"], max_detour_km, max_detour_min)
    match_type = classify_match_type(
        origin_gap,
        destination_gap,
        best["pickup_deviation"],
        best["dropoff_deviation"],
        corridor_radius_km,
        best["reversed_direction"],
        route_score,
        exact_route_radius_km
    )

    return RouteComparison(
        route_score=route_score,
        match_type=match_type,
        host_trip_id=best["host"].id,
        guest_trip_id=best["guest"].id,
        origin_gap_km=origin_gap,
        destination_gap_km=destination_gap,
        pickup_deviation_km=best["pickup_deviation"],
        dropoff_deviation_km=best["dropoff_deviation"],
        detour_distance_km=best["detour_km"],
        detour_time_min=best["detour_min"],
        shared_distance_km=best["shared_km"],
        guest_distance_km=best["guest_path"].distance_km,
        corridor_radius_km=corridor_radius_km,
        reversed_direction=best["reversed_direction"],
        route_source=route_source,
        host_path=best["host_path"].polyline,
        common_path=best["common_path"]
    )
