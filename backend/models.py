from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict
from datetime import datetime, timezone
from enum import Enum


class TripStatus(str, Enum):
    ACTIVE = "ACTIVE"
    MATCHED = "MATCHED"
    IN_PROGRESS = "IN_PROGRESS"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


TERMINAL_TRIP_STATUSES = {TripStatus.CANCELLED, TripStatus.COMPLETED}

# Largest departure window a trip or account may declare (minutes)
MAX_FLEXIBILITY_MINUTES = 720


class MatchStatus(str, Enum):
    SUGGESTED = "SUGGESTED"
    VIEWED = "VIEWED"
    CONTACTED = "CONTACTED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


TERMINAL_MATCH_STATUSES = {MatchStatus.ACCEPTED, MatchStatus.DECLINED, MatchStatus.EXPIRED}


class MatchType(str, Enum):
    EXACT_ROUTE = "exact_route"
    PARTIAL_OVERLAP = "partial_overlap"
    DETOUR_PICKUP = "detour_pickup"
    DETOUR_DROPOFF = "detour_dropoff"


class TernaryPreference(str, Enum):
    YES = "yes"
    NO = "no"
    INDIFFERENT = "indifferent"


class ConversationLevel(str, Enum):
    CHATTY = "chatty"
    QUIET = "quiet"
    INDIFFERENT = "indifferent"


class GenderPreference(str, Enum):
    SAME = "same"
    ANY = "any"


class RejectionReason(str, Enum):
    OUTSIDE_TIME_WINDOW = "outside_time_window"
    DEMOGRAPHIC_FILTER = "demographic_filter"
    BELOW_THRESHOLD = "below_threshold"


class RouteSource(str, Enum):
    DIRECTIONS = "directions"
    STRAIGHT_LINE = "straight_line"


def match_pair_key(trip_id: str, matched_trip_id: str) -> str:
    """Same key for a pair whichever trip it was created from."""
    return ":".join(sorted((trip_id, matched_trip_id)))


def _ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    # Naive datetimes are taken as UTC so departures stay comparable
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _check_price_range(minimum: Optional[float], maximum: Optional[float]):
    if minimum is None or maximum is None:
        return
    if minimum < 0:
        raise ValueError('price range minimum must not be negative')
    if maximum <= minimum:
        raise ValueError('price range must have a positive width')


# Location Models
class Coordinates(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class LocationData(BaseModel):
    address: str
    coordinates: Coordinates
    place_id: Optional[str] = None
    name: Optional[str] = None


# Trip Models
class TripCreate(BaseModel):
    origin: LocationData
    destination: LocationData
    departure_time: datetime
    max_passengers: int = Field(default=4, ge=1)
    price_per_seat: Optional[float] = Field(default=None, ge=0)
    price_range_min: Optional[float] = None
    price_range_max: Optional[float] = None
    currency: str = "USD"
    departure_flexibility: Optional[int] = Field(default=None, ge=0, le=MAX_FLEXIBILITY_MINUTES)  # minutes
    smoking_allowed: Optional[bool] = None
    pets_allowed: Optional[bool] = None
    music_preference: Optional[TernaryPreference] = None
    conversation_level: Optional[ConversationLevel] = None
    owner_gender: Optional[str] = None
    owner_age: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @validator('departure_time')
    def validate_departure_time(cls, v):
        return _ensure_aware(v)

    @validator('price_range_max', always=True)
    def validate_price_range(cls, v, values):
        minimum = values.get('price_range_min')
        if (v is None) != (minimum is None):
            raise ValueError('price_range_min and price_range_max must be given together')
        _check_price_range(minimum, v)
        return v


class TripUpdate(BaseModel):
    departure_time: Optional[datetime] = None
    max_passengers: Optional[int] = Field(default=None, ge=1)
    price_per_seat: Optional[float] = Field(default=None, ge=0)
    price_range_min: Optional[float] = None
    price_range_max: Optional[float] = None
    departure_flexibility: Optional[int] = Field(default=None, ge=0, le=MAX_FLEXIBILITY_MINUTES)
    smoking_allowed: Optional[bool] = None
    pets_allowed: Optional[bool] = None
    music_preference: Optional[TernaryPreference] = None
    conversation_level: Optional[ConversationLevel] = None
    notes: Optional[str] = None

    @validator('departure_time')
    def validate_departure_time(cls, v):
        return _ensure_aware(v)

    @validator('price_range_max')
    def validate_price_range(cls, v, values):
        _check_price_range(values.get('price_range_min'), v)
        return v


class Trip(TripCreate):
    id: str
    user_id: str
    available_seats: int = Field(ge=0)
    status: TripStatus = TripStatus.ACTIVE
    created_at: datetime
    updated_at: datetime

    @property
    def is_matchable(self) -> bool:
        return self.status == TripStatus.ACTIVE and self.available_seats > 0


# Preferences Models
class UserPreferences(BaseModel):
    """Per-user matching constraints. Every field has the account default."""
    user_id: Optional[str] = None
    max_detour_distance: float = Field(default=10.0, gt=0)  # km
    max_detour_time: float = Field(default=30.0, gt=0)  # minutes
    max_walking_distance: float = Field(default=500.0, ge=0)  # meters
    time_flexibility: int = Field(default=15, ge=0, le=MAX_FLEXIBILITY_MINUTES)  # minutes
    price_range_min: float = 0.0
    price_range_max: float = 50.0
    currency: str = "USD"
    smoking_preference: TernaryPreference = TernaryPreference.NO
    pets_preference: bool = True
    music_preference: TernaryPreference = TernaryPreference.INDIFFERENT
    conversation_level: ConversationLevel = ConversationLevel.INDIFFERENT
    gender: Optional[str] = None
    gender_preference: GenderPreference = GenderPreference.ANY
    min_age: Optional[int] = Field(default=None, ge=0)
    max_age: Optional[int] = Field(default=None, ge=0)
    notify_new_matches: bool = True
    notify_match_updates: bool = True

    @validator('price_range_max', always=True)
    def validate_price_range(cls, v, values):
        _check_price_range(values.get('price_range_min'), v)
        return v

    @validator('max_age')
    def validate_age_bounds(cls, v, values):
        minimum = values.get('min_age')
        if v is not None and minimum is not None and v < minimum:
            raise ValueError('max_age must not be below min_age')
        return v


# Match Models
class MeetingPoint(BaseModel):
    address: Optional[str] = None
    coordinates: Coordinates
    walking_distance: float  # meters, rider on foot
    driver_distance: float = 0.0  # meters from the host trip's own point
    accessibility: str = "unknown"


class RouteAnalysis(BaseModel):
    common_path: List[List[float]] = []  # [[lat, lng], ...]
    deviation_from_original: float = 0.0  # km
    pickup_points: List[List[float]] = []
    dropoff_points: List[List[float]] = []
    route_source: RouteSource = RouteSource.STRAIGHT_LINE


class ScoreBreakdown(BaseModel):
    route_score: float = Field(ge=0, le=1)
    time_score: float = Field(ge=0, le=1)
    preferences_score: Optional[float] = Field(default=None, ge=0, le=1)
    price_score: float = Field(ge=0, le=1)


class MatchEvaluation(BaseModel):
    """Outcome of scoring one trip pair. Not viable is a normal outcome."""
    trip_id: str
    matched_trip_id: str
    viable: bool
    rejection_reason: Optional[RejectionReason] = None
    compatibility_score: float = Field(default=0.0, ge=0, le=1)
    match_type: Optional[MatchType] = None
    breakdown: ScoreBreakdown
    route_analysis: Optional[RouteAnalysis] = None
    detour_distance: float = 0.0
    detour_time: float = 0.0
    shared_distance: float = 0.0
    estimated_savings: float = 0.0
    time_difference: float = 0.0  # minutes
    suggested_pickup_point: Optional[MeetingPoint] = None
    suggested_dropoff_point: Optional[MeetingPoint] = None
    alternative_meeting_points: List[MeetingPoint] = []


class TripMatch(BaseModel):
    id: str
    trip_id: str
    matched_trip_id: str
    pair_key: Optional[str] = None
    trip_owner_id: str
    matched_trip_owner_id: str
    compatibility_score: float = Field(ge=0, le=1)
    match_type: MatchType
    route_score: float = Field(ge=0, le=1)
    time_score: float = Field(ge=0, le=1)
    preferences_score: Optional[float] = Field(default=None, ge=0, le=1)
    price_score: float = Field(ge=0, le=1)
    route_analysis: RouteAnalysis
    estimated_savings: float = 0.0
    shared_distance: float = 0.0
    detour_distance: float = 0.0
    detour_time: float = 0.0
    suggested_pickup_point: Optional[MeetingPoint] = None
    suggested_dropoff_point: Optional[MeetingPoint] = None
    alternative_meeting_points: List[MeetingPoint] = []
    time_difference: float = 0.0
    time_compatibility_score: float = Field(ge=0, le=1)
    status: MatchStatus = MatchStatus.SUGGESTED
    viewed_at: Optional[datetime] = None
    contacted_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    @validator('pair_key', always=True)
    def fill_pair_key(cls, v, values):
        if 'trip_id' in values and 'matched_trip_id' in values:
            return match_pair_key(values['trip_id'], values['matched_trip_id'])
        return v

    def involves(self, user_id: str) -> bool:
        return user_id in (self.trip_owner_id, self.matched_trip_owner_id)


class ScorePairRequest(BaseModel):
    trip_id: str
    matched_trip_id: str


class CompatibilityDisplay(BaseModel):
    percentage: int
    label: str
    color: str
    match_type_label: Optional[str] = None
    breakdown: Optional[Dict[str, int]] = None


class ScorePairResponse(BaseModel):
    evaluation: MatchEvaluation
    display: CompatibilityDisplay


class MatchingRunResponse(BaseModel):
    trip_id: str
    evaluated: int
    created: int
    matches: List[TripMatch]
