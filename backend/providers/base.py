"""
Directions Provider Interface - abstraction over routing engines.

The matching core only needs a polyline, a distance and a duration between
two coordinates. Any routing engine (OSRM, Google Directions, Valhalla)
can be plugged in by implementing this interface.
"""
from abc import ABC, abstractmethod
from typing import Optional, List
from dataclasses import dataclass


@dataclass
class RouteResult:
    """Routed path between two coordinates."""
    polyline: List[List[float]]  # [[lat, lng], ...]
    distance_km: float
    duration_min: float


class DirectionsProvider(ABC):
    """
    Abstract routing engine.

    Implementations must not raise on engine failures: they return None so
    the caller can fall back to straight-line geometry.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logs."""
        pass

    @abstractmethod
    async def get_route(
        self,
        origin_lat: float,
        origin_lng: float,
        dest_lat: float,
        dest_lng: float
    ) -> Optional[RouteResult]:
        """
        Route between two coordinates.

        Returns:
            RouteResult, or None when the engine is unavailable
        """
        pass
