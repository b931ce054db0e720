"""
Matching orchestration.

When a trip is created (or on demand) it is compared against every other
active trip. Directions are fetched once per trip per run, concurrently and
bounded by a semaphore; a missing route only lowers the precision of the
pairs involving that trip.
"""
import asyncio
import logging
import uuid
from datetime import datetime, timezone, timedelta
from typing import Dict, List, Optional

from core.config import Settings
from core.exceptions import NotFoundError, TripNotMatchableError, ValidationError
from models import (
    Trip, TripMatch, MatchEvaluation, MatchStatus, RouteAnalysis, MatchingRunResponse,
    MAX_FLEXIBILITY_MINUTES
)
from providers.base import DirectionsProvider, RouteResult
from stores import TripStore, PreferencesStore, MatchStore, NotificationStore
from services.scoring_service import (
    ScoringPolicy, evaluate_trip_pair, rank_evaluations, describe_compatibility
)
from services.preferences_service import get_preferences_or_default, get_preferences_for_users, trip_owner_ids
from services.time_compatibility_service import effective_flexibility
from notification_service import notify_new_match

logger = logging.getLogger(__name__)


def build_trip_match(
    evaluation: MatchEvaluation,
    trip: Trip,
    matched_trip: Trip,
    expiration_days: int,
    now: Optional[datetime] = None
) -> TripMatch:
    """Persistable match record from a viable evaluation."""
    now = now or datetime.now(timezone.utc)
    breakdown = evaluation.breakdown

    return TripMatch(
        id=str(uuid.uuid4()),
        trip_id=trip.id,
        matched_trip_id=matched_trip.id,
        trip_owner_id=trip.user_id,
        matched_trip_owner_id=matched_trip.user_id,
        compatibility_score=round(evaluation.compatibility_score, 4),
        match_type=evaluation.match_type,
        route_score=breakdown.route_score,
        time_score=breakdown.time_score,
        preferences_score=breakdown.preferences_score,
        price_score=breakdown.price_score,
        route_analysis=evaluation.route_analysis or RouteAnalysis(),
        estimated_savings=evaluation.estimated_savings,
        shared_distance=evaluation.shared_distance,
        detour_distance=evaluation.detour_distance,
        detour_time=evaluation.detour_time,
        suggested_pickup_point=evaluation.suggested_pickup_point,
        suggested_dropoff_point=evaluation.suggested_dropoff_point,
        alternative_meeting_points=evaluation.alternative_meeting_points,
        time_difference=evaluation.time_difference,
        time_compatibility_score=breakdown.time_score,
        status=MatchStatus.SUGGESTED,
        expires_at=now + timedelta(days=expiration_days),
        created_at=now,
        updated_at=now
    )


class MatchingService:
    """
    Finds, scores and records trip matches.

    Every collaborator is injected; the service holds no state between calls.
    """

    def __init__(
        self,
        trip_store: TripStore,
        preferences_store: PreferencesStore,
        match_store: MatchStore,
        notification_store: NotificationStore,
        directions: DirectionsProvider,
        settings: Settings
    ):
        self.trip_store = trip_store
        self.preferences_store = preferences_store
        self.match_store = match_store
        self.notification_store = notification_store
        self.directions = directions
        self.settings = settings
        self.policy = ScoringPolicy.from_settings(settings)

    async def _load_trip(self, trip_id: str) -> Trip:
        trip = await self.trip_store.get(trip_id)
        if not trip:
            raise NotFoundError("Trip")
        return trip

    async def get_route(self, trip: Trip) -> Optional[RouteResult]:
        """Routed path for a trip, or None so the scorer falls back to straight lines."""
        origin = trip.origin.coordinates
        destination = trip.destination.coordinates
        try:
            return await self.directions.get_route(origin.lat, origin.lng, destination.lat, destination.lng)
        except Exception as e:
            logger.error(f"Directions provider {self.directions.name} failed for trip {trip.id}: {e}")
            return None

    async def score_pair(self, trip_id: str, matched_trip_id: str) -> MatchEvaluation:
        """Score two stored trips without recording anything."""
        trip = await self._load_trip(trip_id)
        matched_trip = await self._load_trip(matched_trip_id)

        preferences = await get_preferences_or_default(self.preferences_store, trip.user_id)
        matched_preferences = await get_preferences_or_default(self.preferences_store, matched_trip.user_id)
        route, matched_route = await asyncio.gather(self.get_route(trip), self.get_route(matched_trip))

        return evaluate_trip_pair(
            trip, matched_trip, preferences, matched_preferences,
            route, matched_route, self.policy
        )

    async def list_candidates(self, trip: Trip, now: Optional[datetime] = None) -> List[Trip]:
        """
        Other users' active trips that can still fall inside the time window:
        departing within this trip's flexibility plus the largest flexibility
        any trip may declare, and not already gone.
        """
        now = now or datetime.now(timezone.utc)
        owner_preferences = await get_preferences_or_default(self.preferences_store, trip.user_id)
        window = timedelta(minutes=effective_flexibility(trip, owner_preferences) + MAX_FLEXIBILITY_MINUTES)

        return await self.trip_store.list_active(
            self.settings.max_candidate_trips,
            departure_from=max(now, trip.departure_time - window),
            departure_to=trip.departure_time + window,
            exclude_user_id=trip.user_id
        )

    async def find_matches_for_trip(self, trip_id: str, now: Optional[datetime] = None) -> MatchingRunResponse:
        """
        Compare a trip with the other active trips and record the viable matches.
        Pairs that already have a match record are not duplicated.
        """
        trip = await self._load_trip(trip_id)
        if not trip.is_matchable:
            raise TripNotMatchableError(trip.id, trip.status.value)

        candidates = await self.list_candidates(trip, now)
        if not candidates:
            logger.info(f"No candidate trips for trip {trip.id}")
            return MatchingRunResponse(trip_id=trip.id, evaluated=0, created=0, matches=[])

        preferences_by_user = await get_preferences_for_users(
            self.preferences_store, trip_owner_ids([trip] + candidates)
        )

        semaphore = asyncio.Semaphore(self.settings.max_concurrent_evaluations)
        routes: Dict[str, Optional[RouteResult]] = {}

        async def route_for(t: Trip) -> Optional[RouteResult]:
            async with semaphore:
                return await self.get_route(t)

        fetched = await asyncio.gather(*(route_for(t) for t in [trip] + candidates))
        for t, route in zip([trip] + candidates, fetched):
            routes[t.id] = route

        evaluations: List[MatchEvaluation] = []
        for candidate in candidates:
            try:
                evaluations.append(evaluate_trip_pair(
                    trip, candidate,
                    preferences_by_user[trip.user_id], preferences_by_user[candidate.user_id],
                    routes[trip.id], routes[candidate.id],
                    self.policy
                ))
            except ValidationError as e:
                logger.warning(f"Skipping candidate {candidate.id} for trip {trip.id}: {e.message}")

        viable = rank_evaluations(e for e in evaluations if e.viable)
        logger.info(f"Trip {trip.id}: {len(viable)} viable matches out of {len(evaluations)} candidates")

        by_id = {c.id: c for c in candidates}
        created: List[TripMatch] = []
        for evaluation in viable:
            matched_trip = by_id[evaluation.matched_trip_id]
            if await self.match_store.find_pair(trip.id, matched_trip.id):
                continue

            match = await self.match_store.insert(
                build_trip_match(evaluation, trip, matched_trip, self.settings.match_expiration_days, now)
            )
            if match is None:
                # Recorded by a concurrent run for the other trip
                continue
            created.append(match)

            if match.compatibility_score >= self.settings.notify_threshold:
                display = describe_compatibility(match.compatibility_score, match.match_type)
                await notify_new_match(
                    self.notification_store,
                    match,
                    {
                        trip.user_id: matched_trip.destination.address,
                        matched_trip.user_id: trip.destination.address
                    },
                    preferences_by_user,
                    display.label,
                    display.percentage
                )

        return MatchingRunResponse(
            trip_id=trip.id,
            evaluated=len(evaluations),
            created=len(created),
            matches=created
        )
