"""
Straight-line Directions Provider - simulated routing for tests and offline runs.

Returns the straight segment between the two points with a distance from
the haversine formula and a duration at a fixed average speed.
"""
import logging
from typing import Optional, Dict, Tuple

from .base import DirectionsProvider, RouteResult
from route_service import haversine_distance, straight_line_path

logger = logging.getLogger(__name__)


class StraightLineDirectionsProvider(DirectionsProvider):
    """
    Provider simulated for development and tests.

    Can be configured as unavailable to exercise the fallback path.
    """

    def __init__(self, average_speed_kmh: float = 30.0, available: bool = True):
        self.average_speed_kmh = average_speed_kmh
        self.available = available
        self.calls: Dict[Tuple[float, float, float, float], int] = {}

    @property
    def name(self) -> str:
        return "StraightLineProvider"

    async def get_route(
        self,
        origin_lat: float,
        origin_lng: float,
        dest_lat: float,
        dest_lng: float
    ) -> Optional[RouteResult]:
        """Simulated route."""
        key = (origin_lat, origin_lng, dest_lat, dest_lng)
        self.calls[key] = self.calls.get(key, 0) + 1

        if not self.available:
            logger.info(f"[MOCK] Directions unavailable for {key}")
            return None

        distance_km = haversine_distance(origin_lat, origin_lng, dest_lat, dest_lng)
        return RouteResult(
            polyline=straight_line_path(origin_lat, origin_lng, dest_lat, dest_lng),
            distance_km=distance_km,
            duration_min=distance_km / self.average_speed_kmh * 60
        )
