"""
Route geometry helpers for corridor-based trip comparison.
All distances are in kilometers, all points are [lat, lng].
"""
import math
from typing import List, Tuple

EARTH_RADIUS_KM = 6371


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth (in kilometers).
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = math.sin(delta_lat / 2) ** 2 + \
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def project_point_on_segment(
    point_lat: float,
    point_lng: float,
    line_start_lat: float,
    line_start_lng: float,
    line_end_lat: float,
    line_end_lng: float
) -> Tuple[float, float]:
    """
    Return the point of a line segment closest to the given point.
    """
    # Vector from line start to end
    line_vec = (line_end_lat - line_start_lat, line_end_lng - line_start_lng)
    # Vector from line start to point
    point_vec = (point_lat - line_start_lat, point_lng - line_start_lng)

    line_len_sq = line_vec[0] ** 2 + line_vec[1] ** 2

    if line_len_sq == 0:
        return (line_start_lat, line_start_lng)

    # Project point onto line, clamped to [0, 1]
    t = max(0, min(1, (point_vec[0] * line_vec[0] + point_vec[1] * line_vec[1]) / line_len_sq))

    return (line_start_lat + t * line_vec[0], line_start_lng + t * line_vec[1])


def closest_point_on_polyline(
    point_lat: float,
    point_lng: float,
    polyline: List[List[float]]
) -> Tuple[List[float], float]:
    """
    Find the point of a polyline closest to the given point.
    Returns ([lat, lng], distance_km).
    """
    if not polyline:
        return ([point_lat, point_lng], float('inf'))

    if len(polyline) == 1:
        only = polyline[0]
        return (list(only), haversine_distance(point_lat, point_lng, only[0], only[1]))

    best_point = list(polyline[0])
    best_distance = float('inf')

    for i in range(len(polyline) - 1):
        segment_start = polyline[i]
        segment_end = polyline[i + 1]

        closest = project_point_on_segment(
            point_lat, point_lng,
            segment_start[0], segment_start[1],
            segment_end[0], segment_end[1]
        )
        distance = haversine_distance(point_lat, point_lng, closest[0], closest[1])

        if distance < best_distance:
            best_distance = distance
            best_point = [closest[0], closest[1]]

    return (best_point, best_distance)


def point_to_polyline_distance(
    point_lat: float,
    point_lng: float,
    polyline: List[List[float]]
) -> float:
    """
    Calculate the minimum distance from a point to a polyline (in kilometers).
    """
    if not polyline or len(polyline) < 2:
        return float('inf')

    return closest_point_on_polyline(point_lat, point_lng, polyline)[1]


def is_point_in_corridor(
    point_lat: float,
    point_lng: float,
    polyline: List[List[float]],
    corridor_radius_km: float
) -> Tuple[bool, float]:
    """
    Check if a point is within the corridor around a polyline.
    Returns (is_inside, distance_to_route_km).
    """
    distance = point_to_polyline_distance(point_lat, point_lng, polyline)
    return (distance <= corridor_radius_km, distance)


def position_along_polyline(
    point_lat: float,
    point_lng: float,
    polyline: List[List[float]]
) -> float:
    """
    Distance (km) travelled along the polyline up to the point's projection.
    Used to tell whether a pickup comes before a dropoff on a route.
    """
    if not polyline or len(polyline) < 2:
        return 0.0

    travelled = 0.0
    best_position = 0.0
    best_distance = float('inf')

    for i in range(len(polyline) - 1):
        segment_start = polyline[i]
        segment_end = polyline[i + 1]

        closest = project_point_on_segment(
            point_lat, point_lng,
            segment_start[0], segment_start[1],
            segment_end[0], segment_end[1]
        )
        distance = haversine_distance(point_lat, point_lng, closest[0], closest[1])

        if distance < best_distance:
            best_distance = distance
            best_position = travelled + haversine_distance(
                segment_start[0], segment_start[1], closest[0], closest[1]
            )

        travelled += haversine_distance(segment_start[0], segment_start[1], segment_end[0], segment_end[1])

    return best_position


def simplify_polyline(polyline: List[List[float]], max_points: int = 100) -> List[List[float]]:
    """
    Downsample a polyline to at most `max_points`, keeping both ends.
    Routed paths can carry thousands of points.
    """
    if len(polyline) <= max_points:
        return [list(p) for p in polyline]

    step = (len(polyline) - 1) / (max_points - 1)
    return [list(polyline[round(i * step)]) for i in range(max_points)]


def polyline_length(polyline: List[List[float]]) -> float:
    """Total length of a polyline in kilometers."""
    return sum(
        haversine_distance(polyline[i][0], polyline[i][1], polyline[i + 1][0], polyline[i + 1][1])
        for i in range(len(polyline) - 1)
    )


def straight_line_path(
    origin_lat: float,
    origin_lng: float,
    dest_lat: float,
    dest_lng: float,
    segments: int = 20
) -> List[List[float]]:
    """
    Straight path between two points, split into equal segments so that
    corridor overlap can be measured without routed data.
    """
    return [
        [
            origin_lat + (dest_lat - origin_lat) * step / segments,
            origin_lng + (dest_lng - origin_lng) * step / segments
        ]
        for step in range(segments + 1)
    ]


def shared_path(
    path: List[List[float]],
    other_path: List[List[float]],
    corridor_radius_km: float
) -> Tuple[float, List[List[float]]]:
    """
    Measure how much of `path` runs inside the corridor around `other_path`.
    A segment counts when both of its ends are inside the corridor.
    Returns (shared_km, common_points).
    """
    shared_km = 0.0
    common: List[List[float]] = []

    for i in range(len(path) - 1):
        start, end = path[i], path[i + 1]
        start_inside, _ = is_point_in_corridor(start[0], start[1], other_path, corridor_radius_km)
        end_inside, _ = is_point_in_corridor(end[0], end[1], other_path, corridor_radius_km)

        if start_inside and end_inside:
            shared_km += haversine_distance(start[0], start[1], end[0], end[1])
            if not common or common[-1] != list(start):
                common.append(list(start))
            common.append(list(end))

    return (shared_km, common)
