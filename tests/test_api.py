"""
Rideshare Matching API Tests
Runs the FastAPI app in-process with in-memory stores:
1. Trip creation applies account preferences and triggers matching
2. Pair scoring with the display contract
3. Match lifecycle endpoints and ownership checks
4. Preferences and notifications
"""
import asyncio
import pytest
from types import SimpleNamespace

from fastapi.testclient import TestClient

from conftest import (
    InMemoryTripStore, InMemoryPreferencesStore, InMemoryMatchStore, InMemoryNotificationStore
)
from core.dependencies import (
    get_trip_store, get_preferences_store, get_match_store,
    get_notification_store, get_directions_provider
)
from models import UserPreferences
from providers import StraightLineDirectionsProvider
from server import app

TRIP_PAYLOAD = {
    "origin": {"address": "Origin Sq", "coordinates": {"lat": 40.0, "lng": -74.0}},
    "destination": {"address": "Destination Ave", "coordinates": {"lat": 40.1, "lng": -74.1}},
    "departure_time": "2030-05-04T10:00:00Z",
    "max_passengers": 3,
    "price_range_min": 10,
    "price_range_max": 20
}


def headers(user_id):
    return {"X-User-Id": user_id}


@pytest.fixture
def api_stores():
    return SimpleNamespace(
        trips=InMemoryTripStore(),
        preferences=InMemoryPreferencesStore(),
        matches=InMemoryMatchStore(),
        notifications=InMemoryNotificationStore()
    )


@pytest.fixture
def client(api_stores):
    directions = StraightLineDirectionsProvider()

    app.dependency_overrides[get_trip_store] = lambda: api_stores.trips
    app.dependency_overrides[get_preferences_store] = lambda: api_stores.preferences
    app.dependency_overrides[get_match_store] = lambda: api_stores.matches
    app.dependency_overrides[get_notification_store] = lambda: api_stores.notifications
    app.dependency_overrides[get_directions_provider] = lambda: directions

    yield TestClient(app)

    app.dependency_overrides.clear()


def create_trip(client, user_id, match_now=False, **changes):
    payload = {**TRIP_PAYLOAD, **changes}
    response = client.post(
        "/api/trips", json=payload, headers=headers(user_id), params={"match_now": match_now}
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestTrips:
    """Trip endpoints"""

    def test_create_trip_applies_account_defaults(self, client):
        trip = create_trip(client, "user-a")
        assert trip["status"] == "ACTIVE"
        assert trip["available_seats"] == 3
        assert trip["departure_flexibility"] == 15
        assert trip["smoking_allowed"] is False
        assert trip["pets_allowed"] is True
        print(f"Created trip {trip['id']}")

    def test_create_requires_user(self, client):
        response = client.post("/api/trips", json=TRIP_PAYLOAD)
        assert response.status_code == 422

    def test_invalid_price_range_rejected(self, client):
        response = client.post(
            "/api/trips",
            json={**TRIP_PAYLOAD, "price_range_min": 20, "price_range_max": 10},
            headers=headers("user-a")
        )
        assert response.status_code == 422

    def test_get_and_list(self, client):
        trip = create_trip(client, "user-a")
        assert client.get(f"/api/trips/{trip['id']}").json()["id"] == trip["id"]
        assert [t["id"] for t in client.get("/api/trips/active").json()] == [trip["id"]]
        assert len(client.get("/api/trips/my-trips", headers=headers("user-a")).json()) == 1
        assert client.get("/api/trips/missing").status_code == 404

    def test_update_trip(self, client):
        trip = create_trip(client, "user-a")
        response = client.put(
            f"/api/trips/{trip['id']}",
            json={"departure_flexibility": 30, "max_passengers": 2},
            headers=headers("user-a")
        )
        assert response.status_code == 200
        assert response.json()["departure_flexibility"] == 30
        assert response.json()["available_seats"] == 2

    def test_update_by_other_user_forbidden(self, client):
        trip = create_trip(client, "user-a")
        response = client.put(f"/api/trips/{trip['id']}", json={"notes": "hi"}, headers=headers("user-b"))
        assert response.status_code == 403
        assert response.json()["error_type"] == "ForbiddenError"

    def test_cancel_expires_open_matches(self, client):
        trip_a = create_trip(client, "user-a")
        trip_b = create_trip(client, "user-b", match_now=True)

        matches = client.get(f"/api/matches/trips/{trip_a['id']}", headers=headers("user-a")).json()
        assert len(matches) == 1

        response = client.post(f"/api/trips/{trip_b['id']}/cancel", headers=headers("user-b"))
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

        matches = client.get(f"/api/matches/trips/{trip_a['id']}", headers=headers("user-a")).json()
        assert matches[0]["status"] == "EXPIRED"

        again = client.post(f"/api/trips/{trip_b['id']}/cancel", headers=headers("user-b"))
        assert again.status_code == 400

    def test_complete_trip(self, client):
        trip = create_trip(client, "user-a")
        response = client.post(f"/api/trips/{trip['id']}/complete", headers=headers("user-a"))
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"
        assert client.get("/api/trips/active").json() == []

        update = client.put(f"/api/trips/{trip['id']}", json={"notes": "late"}, headers=headers("user-a"))
        assert update.status_code == 400


class TestMatches:
    """Scoring and lifecycle endpoints"""

    def test_score_pair(self, client):
        trip_a = create_trip(client, "user-a")
        trip_b = create_trip(client, "user-b", departure_time="2030-05-04T10:10:00Z", price_range_min=15, price_range_max=25)

        response = client.post(
            "/api/matches/score",
            json={"trip_id": trip_a["id"], "matched_trip_id": trip_b["id"]},
            headers=headers("user-b")
        )
        assert response.status_code == 200
        data = response.json()
        print(f"Score: {data['display']}")

        assert data["evaluation"]["viable"] is True
        assert data["evaluation"]["match_type"] == "exact_route"
        assert data["display"]["match_type_label"] == "Same Route"
        assert data["display"]["percentage"] == 83
        assert data["display"]["label"] == "Excellent Match"
        assert data["display"]["breakdown"] == {"route": 100, "time": 67, "price": 33, "preferences": 100}

    def test_score_pair_requires_owner(self, client):
        trip_a = create_trip(client, "user-a")
        trip_b = create_trip(client, "user-b")
        pair = {"trip_id": trip_a["id"], "matched_trip_id": trip_b["id"]}

        assert client.post("/api/matches/score", json=pair).status_code == 422

        stranger = client.post("/api/matches/score", json=pair, headers=headers("stranger"))
        assert stranger.status_code == 403
        assert stranger.json()["error_type"] == "ForbiddenError"

        missing = client.post(
            "/api/matches/score",
            json={"trip_id": trip_a["id"], "matched_trip_id": "missing"},
            headers=headers("user-a")
        )
        assert missing.status_code == 404

    def test_run_matching_and_lifecycle(self, client):
        trip_a = create_trip(client, "user-a")
        create_trip(client, "user-b")

        run = client.post(f"/api/matches/trips/{trip_a['id']}/run", headers=headers("user-a"))
        assert run.status_code == 200
        assert run.json()["created"] == 1
        match_id = run.json()["matches"][0]["id"]

        assert client.get(f"/api/matches/{match_id}", headers=headers("stranger")).status_code == 403
        assert client.post(f"/api/matches/{match_id}/accept", headers=headers("user-a")).status_code == 400

        for action, user_id in (("view", "user-b"), ("contact", "user-b"), ("accept", "user-a")):
            response = client.post(f"/api/matches/{match_id}/{action}", headers=headers(user_id))
            assert response.status_code == 200, response.text

        match = client.get(f"/api/matches/{match_id}", headers=headers("user-b")).json()
        assert match["status"] == "ACCEPTED"

        declined = client.post(f"/api/matches/{match_id}/decline", headers=headers("user-b"))
        assert declined.status_code == 400
        assert declined.json()["error_type"] == "InvalidMatchTransition"

        trip = client.get(f"/api/trips/{trip_a['id']}").json()
        assert trip["status"] == "MATCHED"

    def test_run_matching_on_someone_elses_trip(self, client):
        trip_a = create_trip(client, "user-a")
        response = client.post(f"/api/matches/trips/{trip_a['id']}/run", headers=headers("user-b"))
        assert response.status_code == 403

    def test_filter_by_status(self, client):
        trip_a = create_trip(client, "user-a")
        create_trip(client, "user-b", match_now=True)

        suggested = client.get(
            f"/api/matches/trips/{trip_a['id']}", params={"status": ["SUGGESTED"]}, headers=headers("user-a")
        ).json()
        accepted = client.get(
            f"/api/matches/trips/{trip_a['id']}", params={"status": ["ACCEPTED"]}, headers=headers("user-a")
        ).json()
        assert len(suggested) == 1
        assert accepted == []

    def test_expire_sweep(self, client):
        response = client.post("/api/matches/expire")
        assert response.status_code == 200
        assert response.json()["expired_count"] == 0


class TestPreferencesAndNotifications:
    """Preferences and in-app notifications"""

    def test_preferences_defaults_and_update(self, client):
        defaults = client.get("/api/preferences", headers=headers("user-a")).json()
        assert defaults["max_detour_distance"] == 10.0
        assert defaults["smoking_preference"] == "no"

        updated = client.put(
            "/api/preferences",
            json={**defaults, "max_walking_distance": 800, "music_preference": "yes"},
            headers=headers("user-a")
        )
        assert updated.status_code == 200
        assert client.get("/api/preferences", headers=headers("user-a")).json()["max_walking_distance"] == 800

    def test_invalid_preferences_rejected(self, client):
        response = client.put(
            "/api/preferences",
            json={"price_range_min": 30, "price_range_max": 10},
            headers=headers("user-a")
        )
        assert response.status_code == 422

    def test_minimum_alone_above_default_maximum_rejected(self, client):
        response = client.put("/api/preferences", json={"price_range_min": 60}, headers=headers("user-a"))
        assert response.status_code == 422
        assert client.get("/api/preferences", headers=headers("user-a")).json()["price_range_min"] == 0.0

    def test_trip_from_broken_stored_range_is_a_validation_error(self, client, api_stores):
        # Saved before the range check covered a minimum given alone
        broken = UserPreferences.model_construct(user_id="user-a", price_range_min=60.0, price_range_max=50.0)
        api_stores.preferences.preferences["user-a"] = broken

        response = client.post(
            "/api/trips",
            json={**TRIP_PAYLOAD, "price_range_min": None, "price_range_max": None},
            headers=headers("user-a"),
            params={"match_now": False}
        )
        assert response.status_code == 422
        assert response.json()["error_type"] == "ValidationError"
        assert asyncio.run(api_stores.trips.list_by_user("user-a")) == []

    def test_new_match_notifications(self, client):
        create_trip(client, "user-a")
        create_trip(client, "user-b", match_now=True)

        count = client.get("/api/notifications/unread-count", headers=headers("user-a")).json()["count"]
        assert count == 1

        notifications = client.get("/api/notifications", headers=headers("user-a")).json()
        assert notifications[0]["type"] == "new_match_suggestion"
        assert "Destination Ave" in notifications[0]["body"]

        read = client.post(f"/api/notifications/{notifications[0]['id']}/read", headers=headers("user-a"))
        assert read.status_code == 200
        assert client.get("/api/notifications/unread-count", headers=headers("user-a")).json()["count"] == 0

        other = client.post(f"/api/notifications/{notifications[0]['id']}/read", headers=headers("user-b"))
        assert other.status_code == 404
