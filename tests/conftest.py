"""
Shared fixtures: in-memory stores and trip factories.
The services only talk to the store interfaces, so no database is needed.
"""
import pytest
from datetime import datetime, timezone
from types import SimpleNamespace

from pymongo.errors import ConnectionFailure

from core.config import Settings
from models import Trip, TripMatch, TripStatus, MatchStatus, TERMINAL_MATCH_STATUSES, match_pair_key
from stores import TripStore, PreferencesStore, MatchStore, NotificationStore
from providers import StraightLineDirectionsProvider
from services.matching_service import MatchingService

DEPARTURE = datetime(2030, 5, 4, 10, 0, tzinfo=timezone.utc)


class InMemoryTripStore(TripStore):
    def __init__(self):
        self.trips = {}

    async def get(self, trip_id):
        trip = self.trips.get(trip_id)
        return trip.model_copy(deep=True) if trip else None

    async def insert(self, trip):
        self.trips[trip.id] = trip.model_copy(deep=True)
        return trip

    async def update(self, trip_id, fields):
        if trip_id not in self.trips:
            return None
        self.trips[trip_id] = Trip(**{**self.trips[trip_id].model_dump(), **fields})
        return await self.get(trip_id)

    async def list_active(self, limit=200, departure_from=None, departure_to=None, exclude_user_id=None):
        active = [
            t for t in self.trips.values()
            if t.status == TripStatus.ACTIVE and t.available_seats > 0
            and (departure_from is None or t.departure_time >= departure_from)
            and (departure_to is None or t.departure_time <= departure_to)
            and t.user_id != exclude_user_id
        ]
        return [t.model_copy(deep=True) for t in sorted(active, key=lambda t: t.departure_time)][:limit]

    async def list_by_user(self, user_id):
        return [t.model_copy(deep=True) for t in self.trips.values() if t.user_id == user_id]


class InMemoryPreferencesStore(PreferencesStore):
    """Can be told to fail the next N upserts with a connection error."""

    def __init__(self, failures=0):
        self.preferences = {}
        self.failures = failures
        self.upsert_calls = 0

    async def get(self, user_id):
        preferences = self.preferences.get(user_id)
        return preferences.model_copy() if preferences else None

    async def upsert(self, preferences):
        self.upsert_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionFailure("connection refused")
        self.preferences[preferences.user_id] = preferences.model_copy()
        return preferences


class InMemoryMatchStore(MatchStore):
    def __init__(self):
        self.matches = {}

    async def get(self, match_id):
        match = self.matches.get(match_id)
        return match.model_copy(deep=True) if match else None

    async def find_pair(self, trip_id, matched_trip_id):
        key = match_pair_key(trip_id, matched_trip_id)
        for match in self.matches.values():
            if match.pair_key == key:
                return match.model_copy(deep=True)
        return None

    async def insert(self, match):
        # Same contract as the unique pair_key index
        if any(m.pair_key == match.pair_key for m in self.matches.values()):
            return None
        self.matches[match.id] = match.model_copy(deep=True)
        return match

    async def update(self, match_id, fields):
        if match_id not in self.matches:
            return None
        self.matches[match_id] = TripMatch(**{**self.matches[match_id].model_dump(), **fields})
        return await self.get(match_id)

    async def list_for_trip(self, trip_id, statuses=None, limit=20):
        found = [
            m for m in self.matches.values()
            if trip_id in (m.trip_id, m.matched_trip_id) and (not statuses or m.status in statuses)
        ]
        found.sort(key=lambda m: (m.compatibility_score, m.route_score), reverse=True)
        return [m.model_copy(deep=True) for m in found[:limit]]

    async def _expire(self, predicate, now):
        count = 0
        for match_id, match in list(self.matches.items()):
            if match.status not in TERMINAL_MATCH_STATUSES and predicate(match):
                await self.update(match_id, {"status": MatchStatus.EXPIRED, "updated_at": now})
                count += 1
        return count

    async def expire_stale(self, now):
        return await self._expire(lambda m: m.expires_at < now, now)

    async def expire_for_trip(self, trip_id, now):
        return await self._expire(lambda m: trip_id in (m.trip_id, m.matched_trip_id), now)


class InMemoryNotificationStore(NotificationStore):
    def __init__(self):
        self.notifications = []

    async def insert(self, notification):
        self.notifications.append(dict(notification))
        return notification

    async def list_for_user(self, user_id, unread_only=False, limit=50):
        found = [
            dict(n) for n in self.notifications
            if n["user_id"] == user_id and (not unread_only or not n["read"])
        ]
        found.sort(key=lambda n: n["created_at"], reverse=True)
        return found[:limit]

    async def mark_read(self, notification_id, user_id, now):
        for notification in self.notifications:
            if notification["id"] == notification_id and notification["user_id"] == user_id:
                if notification["read"]:
                    return False
                notification["read"] = True
                notification["read_at"] = now
                return True
        return False

    async def unread_count(self, user_id):
        return len([n for n in self.notifications if n["user_id"] == user_id and not n["read"]])


def location(lat, lng, address=None):
    return {"address": address or f"{lat},{lng}", "coordinates": {"lat": lat, "lng": lng}}


def make_trip(
    trip_id="trip-a",
    user_id="user-a",
    origin=(40.0, -74.0),
    destination=(40.1, -74.1),
    departure=DEPARTURE,
    flexibility=15,
    price_range=(10.0, 20.0),
    **overrides
) -> Trip:
    """Active trip with a free seat; anything else can be overridden."""
    fields = {
        "id": trip_id,
        "user_id": user_id,
        "origin": location(*origin),
        "destination": location(*destination),
        "departure_time": departure,
        "departure_flexibility": flexibility,
        "price_range_min": price_range[0] if price_range else None,
        "price_range_max": price_range[1] if price_range else None,
        "max_passengers": 3,
        "available_seats": 3,
        "status": TripStatus.ACTIVE,
        "created_at": DEPARTURE,
        "updated_at": DEPARTURE,
    }
    fields.update(overrides)
    return Trip(**fields)


@pytest.fixture
def settings():
    return Settings(max_concurrent_evaluations=4)


@pytest.fixture
def stores():
    return SimpleNamespace(
        trips=InMemoryTripStore(),
        preferences=InMemoryPreferencesStore(),
        matches=InMemoryMatchStore(),
        notifications=InMemoryNotificationStore()
    )


@pytest.fixture
def directions():
    return StraightLineDirectionsProvider()


@pytest.fixture
def matching_service(stores, directions, settings):
    return MatchingService(
        stores.trips, stores.preferences, stores.matches, stores.notifications,
        directions, settings
    )
