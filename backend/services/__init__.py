"""Business services for the rideshare matching application."""
from .scoring_service import (
    ScoringPolicy,
    evaluate_trip_pair,
    aggregate_score,
    rank_evaluations,
    describe_compatibility
)
from .matching_service import MatchingService, build_trip_match
from .match_lifecycle_service import (
    ALLOWED_TRANSITIONS,
    can_transition,
    transition_match,
    get_match_for_user
)
from .expiration_service import expire_stale_matches, expire_matches_for_trip
from .preferences_service import (
    default_preferences,
    get_preferences_or_default,
    save_preferences,
    ensure_user_preferences,
    apply_preference_defaults
)
