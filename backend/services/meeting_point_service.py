"""
Meeting point suggestions along a host route.

The guest walks from its own origin (or to its own destination) to a point
on the host path. Candidates are sampled along the path and kept when they
are within the walking limit; the closest point of the path is the main
suggestion. When nothing is walkable the host drives to the guest's point.
"""
from typing import List, Optional, Tuple
import logging

from models import MeetingPoint, Coordinates, LocationData
from route_service import haversine_distance, closest_point_on_polyline

logger = logging.getLogger(__name__)

SAMPLED_POINTS = 20
MAX_ALTERNATIVES = 3


def _meeting_point(
    lat: float,
    lng: float,
    walking_km: float,
    anchor: Coordinates,
    address: Optional[str] = None
) -> MeetingPoint:
    return MeetingPoint(
        address=address,
        coordinates=Coordinates(lat=lat, lng=lng),
        walking_distance=round(walking_km * 1000, 1),
        driver_distance=round(haversine_distance(lat, lng, anchor.lat, anchor.lng) * 1000, 1)
    )


def get_candidate_points_along_route(
    route_path: List[List[float]],
    location: Coordinates,
    max_walking_distance_m: float
) -> List[Tuple[List[float], float]]:
    """
    Sample ~20 points of the route and keep those within walking distance.
    Returns [(point, walking_km)] sorted by walking distance.
    """
    step = max(1, len(route_path) // SAMPLED_POINTS)
    candidates = []

    for i in range(0, len(route_path), step):
        point = route_path[i]
        walking_km = haversine_distance(location.lat, location.lng, point[0], point[1])
        if walking_km * 1000 <= max_walking_distance_m:
            candidates.append((list(point), walking_km))

    return sorted(candidates, key=lambda candidate: candidate[1])


def find_meeting_points(
    guest_location: LocationData,
    host_path: List[List[float]],
    host_anchor: Coordinates,
    max_walking_distance_m: float
) -> Tuple[MeetingPoint, List[MeetingPoint]]:
    """
    Suggest where host and guest meet.

    Args:
        guest_location: guest's original pickup or dropoff point
        host_path: host route polyline [[lat, lng], ...]
        host_anchor: host's own point on that side (origin for pickup, destination for dropoff)
        max_walking_distance_m: walking limit of the guest

    Returns:
        (suggested point, alternative points)
    """
    location = guest_location.coordinates
    closest, walking_km = closest_point_on_polyline(location.lat, location.lng, host_path)

    if walking_km * 1000 <= max_walking_distance_m:
        address = guest_location.address if walking_km == 0 else None
        suggested = _meeting_point(closest[0], closest[1], walking_km, host_anchor, address)
    else:
        # Nothing walkable: host picks the guest up at its own point
        suggested = _meeting_point(location.lat, location.lng, 0.0, host_anchor, guest_location.address)

    alternatives = []
    for point, point_walking_km in get_candidate_points_along_route(host_path, location, max_walking_distance_m):
        if point == [suggested.coordinates.lat, suggested.coordinates.lng]:
            continue
        alternatives.append(_meeting_point(point[0], point[1], point_walking_km, host_anchor))
        if len(alternatives) >= MAX_ALTERNATIVES:
            break

    return suggested, alternatives
