"""
OSRM Directions Provider.
Uses OSRM (Open Source Routing Machine) for free route calculations.
"""
import httpx
import logging
from typing import Optional

from .base import DirectionsProvider, RouteResult

logger = logging.getLogger(__name__)

# OSRM public server (for demo purposes - consider self-hosting for production)
OSRM_BASE_URL = "https://router.project-osrm.org"


class OSRMDirectionsProvider(DirectionsProvider):
    """
    Routes through the OSRM HTTP API.

    A transport can be injected to run against a stub server in tests.
    """

    def __init__(
        self,
        base_url: str = OSRM_BASE_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "OSRM"

    async def get_route(
        self,
        origin_lat: float,
        origin_lng: float,
        dest_lat: float,
        dest_lng: float
    ) -> Optional[RouteResult]:
        """
        Get the driving route from OSRM.
        Returns None when OSRM is unreachable or answers without a route.
        """
        url = f"{self.base_url}/route/v1/driving/{origin_lng},{origin_lat};{dest_lng},{dest_lat}"
        params = {
            "overview": "full",
            "geometries": "geojson"
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.error(f"[OSRM] Error getting route: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"[OSRM] Returned non-OK response: {response.status_code}")
            return None

        try:
            data = response.json()
            if data.get("code") != "Ok" or not data.get("routes"):
                logger.warning(f"[OSRM] No route found: {data.get('code')}")
                return None

            route = data["routes"][0]
            # Convert from [lng, lat] to [lat, lng] format
            polyline = [[coord[1], coord[0]] for coord in route["geometry"]["coordinates"]]

            return RouteResult(
                polyline=polyline,
                distance_km=route["distance"] / 1000,
                duration_min=route["duration"] / 60
            )
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"[OSRM] Malformed route response: {e}")
            return None
