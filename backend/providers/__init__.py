"""Directions Providers Package."""
from .base import DirectionsProvider, RouteResult
from .mock_provider import StraightLineDirectionsProvider
from .osrm_provider import OSRMDirectionsProvider

__all__ = [
    "DirectionsProvider",
    "RouteResult",
    "StraightLineDirectionsProvider",
    "OSRMDirectionsProvider"
]
