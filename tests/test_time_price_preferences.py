"""
Sub-score tests for the trip compatibility scorer:
1. Departure time alignment and the flexibility-window cutoff
2. Price range overlap (intersection over union)
3. Rider preferences (smoking, pets, music, conversation)
4. Gender / age filters
"""
import pydantic
import pytest
from datetime import timedelta

from conftest import make_trip, DEPARTURE
from core.exceptions import ValidationError
from models import UserPreferences, TernaryPreference, ConversationLevel, GenderPreference
from services.time_compatibility_service import (
    departure_difference_minutes, effective_flexibility, calculate_time_compatibility
)
from services.price_compatibility_service import (
    resolve_price_range, calculate_price_compatibility, calculate_estimated_savings
)
from services.preference_matching_service import (
    calculate_preferences_compatibility, check_demographic_compatibility, compare_stances
)


class TestTimeCompatibility:
    """Departure alignment within the combined flexibility window"""

    def test_same_departure_scores_one(self):
        score, eligible = calculate_time_compatibility(0, 15, 15)
        assert score == 1.0
        assert eligible

    def test_ten_minutes_in_thirty_minute_window(self):
        score, eligible = calculate_time_compatibility(10, 15, 15)
        assert score == pytest.approx(2 / 3)
        assert eligible

    def test_gap_equal_to_window_is_still_eligible(self):
        score, eligible = calculate_time_compatibility(30, 15, 15)
        assert score == 0.0
        assert eligible

    def test_gap_beyond_window_is_cut_off(self):
        score, eligible = calculate_time_compatibility(31, 15, 15)
        assert score == 0.0
        assert not eligible

    def test_zero_flexibility_requires_exact_departure(self):
        assert calculate_time_compatibility(0, 0, 0) == (1.0, True)
        assert calculate_time_compatibility(1, 0, 0) == (0.0, False)

    def test_negative_flexibility_rejected(self):
        with pytest.raises(ValidationError):
            calculate_time_compatibility(5, -1, 15)

    def test_difference_is_absolute(self):
        later = DEPARTURE + timedelta(minutes=10)
        assert departure_difference_minutes(DEPARTURE, later) == 10
        assert departure_difference_minutes(later, DEPARTURE) == 10

    def test_trip_flexibility_overrides_account_setting(self):
        preferences = UserPreferences(time_flexibility=45)
        assert effective_flexibility(make_trip(flexibility=5), preferences) == 5
        assert effective_flexibility(make_trip(flexibility=None), preferences) == 45


class TestPriceCompatibility:
    """Price range overlap"""

    def test_partial_overlap(self):
        assert calculate_price_compatibility((10, 20), (15, 25)) == pytest.approx(1 / 3)

    def test_identical_ranges(self):
        assert calculate_price_compatibility((10, 20), (10, 20)) == 1.0

    def test_contained_range(self):
        assert calculate_price_compatibility((0, 50), (10, 20)) == pytest.approx(0.2)

    def test_disjoint_ranges_score_zero(self):
        assert calculate_price_compatibility((10, 20), (30, 40)) == 0.0

    def test_touching_ranges_score_zero(self):
        assert calculate_price_compatibility((10, 20), (20, 30)) == 0.0

    def test_empty_range_rejected(self):
        with pytest.raises(ValidationError):
            calculate_price_compatibility((20, 20), (10, 30))

    def test_negative_range_rejected(self):
        with pytest.raises(ValidationError):
            calculate_price_compatibility((-5, 10), (0, 30))

    def test_account_minimum_alone_checked_against_default_maximum(self):
        with pytest.raises(pydantic.ValidationError):
            UserPreferences(price_range_min=60)
        assert UserPreferences(price_range_min=40).price_range_max == 50.0

    def test_trip_range_preferred_over_account_range(self):
        preferences = UserPreferences(price_range_min=0, price_range_max=100)
        assert resolve_price_range(make_trip(price_range=(10, 20)), preferences) == (10, 20)
        assert resolve_price_range(make_trip(price_range=None), preferences) == (0, 100)

    def test_estimated_savings(self):
        assert calculate_estimated_savings(20.0, 5.0, 10.0) == 5.0
        assert calculate_estimated_savings(None, 5.0, 10.0) == 0.0
        assert calculate_estimated_savings(20.0, 15.0, 10.0) == 10.0


class TestPreferenceCompatibility:
    """Categorical rider preferences"""

    def test_indifferent_matches_anything(self):
        assert compare_stances("indifferent", "yes") == 1.0
        assert compare_stances("quiet", "indifferent") == 1.0

    def test_no_stated_dimension_gives_none(self):
        assert calculate_preferences_compatibility(make_trip(), make_trip(trip_id="trip-b")) is None

    def test_only_shared_dimensions_count(self):
        trip_a = make_trip(smoking_allowed=False, pets_allowed=True)
        trip_b = make_trip(trip_id="trip-b", smoking_allowed=True)
        assert calculate_preferences_compatibility(trip_a, trip_b) == 0.0

    def test_average_over_dimensions(self):
        trip_a = make_trip(
            smoking_allowed=False,
            pets_allowed=True,
            music_preference=TernaryPreference.YES,
            conversation_level=ConversationLevel.CHATTY
        )
        trip_b = make_trip(
            trip_id="trip-b",
            smoking_allowed=False,
            pets_allowed=False,
            music_preference=TernaryPreference.INDIFFERENT,
            conversation_level=ConversationLevel.QUIET
        )
        assert calculate_preferences_compatibility(trip_a, trip_b) == 0.5


class TestDemographicFilters:
    """Gender and age filters are hard filters on both sides"""

    def test_same_gender_filter(self):
        trip_a = make_trip(owner_gender="female")
        trip_b = make_trip(trip_id="trip-b", user_id="user-b", owner_gender="male")
        picky = UserPreferences(gender_preference=GenderPreference.SAME)
        assert not check_demographic_compatibility(trip_a, picky, trip_b, UserPreferences())
        assert not check_demographic_compatibility(trip_b, UserPreferences(), trip_a, picky)

    def test_unknown_gender_passes(self):
        trip_a = make_trip(owner_gender="female")
        trip_b = make_trip(trip_id="trip-b", user_id="user-b")
        picky = UserPreferences(gender_preference=GenderPreference.SAME)
        assert check_demographic_compatibility(trip_a, picky, trip_b, UserPreferences())

    def test_gender_from_account_preferences(self):
        trip_a = make_trip()
        trip_b = make_trip(trip_id="trip-b", user_id="user-b")
        picky = UserPreferences(gender="Female", gender_preference=GenderPreference.SAME)
        other = UserPreferences(gender="female ")
        assert check_demographic_compatibility(trip_a, picky, trip_b, other)

    def test_age_bounds(self):
        trip_a = make_trip(owner_age=30)
        trip_b = make_trip(trip_id="trip-b", user_id="user-b", owner_age=19)
        bounded = UserPreferences(min_age=21, max_age=40)
        assert not check_demographic_compatibility(trip_a, bounded, trip_b, UserPreferences())
        assert check_demographic_compatibility(trip_b, bounded, trip_a, UserPreferences())
