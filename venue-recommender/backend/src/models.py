"""Data models for the weather-aware venue recommender."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple

TimeOfDay = Literal["morning", "afternoon", "evening", "night"]


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclass
class WeatherObservation:
    temperature: float
    condition_code: int
    timestamp: int  # unix seconds, UTC
    timezone_offset: int = 0  # seconds east of UTC
    description: str = ""
    feels_like: Optional[float] = None
    wind_speed: float = 0.0
    humidity: Optional[float] = None
    visibility_m: Optional[float] = None
    cloudiness: Optional[float] = None
    precipitating: Optional[bool] = None
    units: Literal["metric", "imperial"] = "metric"


@dataclass(frozen=True)
class WeatherContext:
    temp: float  # Celsius
    feels_like: float
    condition_code: int
    severity_score: float
    time_of_day: TimeOfDay
    description: str
    local_time: Optional[datetime] = None
    wind_mph: float = 0.0
    visibility_m: Optional[float] = None
    cloudiness: Optional[float] = None


@dataclass(frozen=True)
class Venue:
    id: str
    name: str
    location: Optional[LatLng]
    types: Tuple[str, ...] = ()
    rating: Optional[float] = None
    review_count: Optional[int] = None
    open_now: Optional[bool] = None
    price_level: Optional[int] = None
    address: Optional[str] = None
    has_opening_hours: bool = False
    wheelchair_accessible: Optional[bool] = None
    semantic_tags: Tuple[str, ...] = ()

    @property
    def primary_type(self) -> Optional[str]:
        return self.types[0] if self.types else None


@dataclass(frozen=True)
class ScoringWeights:
    weather: float
    time: float
    distance: float
    popularity: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)

    def total(self) -> float:
        return self.weather + self.time + self.distance + self.popularity


@dataclass(frozen=True)
class ExtendedWeights:
    contextual_relevance: float
    spatial_proximity: float
    quality_signals: float
    personal_relevance: float
    temporal_availability: float
    economic_fit: float
    social_proof: float
    uniqueness: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)

    def total(self) -> float:
        return sum(self.as_dict().values())


@dataclass(frozen=True)
class DimensionScore:
    name: str
    value: float  # 0-1
    weight: float
    contribution: float  # value * weight * 100


@dataclass(frozen=True)
class ScoreBreakdown:
    dimensions: Tuple[DimensionScore, ...]
    total_score: float
    raw_score: float
    confidence_level: float
    model: Literal["standard", "extended"] = "standard"
    percentile_rank: Optional[float] = None


@dataclass(frozen=True)
class ScoredVenue:
    venue: Venue
    distance_meters: float
    computed_score: float
    breakdown: ScoreBreakdown

    @property
    def id(self) -> str:
        return self.venue.id

    @property
    def percentile_rank(self) -> Optional[float]:
        return self.breakdown.percentile_rank


@dataclass
class FilterSettings:
    max_radius_km: Optional[float] = None
    max_price_level: int = 4
    min_rating: float = 0.0
    open_now_only: bool = False
    accessibility_required: bool = False
    family_friendly: bool = False


@dataclass
class ImportanceWeights:
    weather: float = 30.0
    distance: float = 20.0
    ratings: float = 25.0
    price: float = 15.0
    novelty: float = 10.0


DEFAULT_MOOD_PRESETS: Dict[str, List[str]] = {
    "adventurous": ["hiking_area", "park", "tourist_attraction", "zoo", "amusement_park"],
    "relaxed": ["spa", "library", "cafe", "book_store", "art_gallery", "museum"],
    "social": ["restaurant", "bar", "night_club", "bowling_alley", "amusement_center"],
    "productive": ["library", "cafe", "book_store", "gym"],
    "romantic": ["restaurant", "art_gallery", "park", "performing_arts_theater", "bar"],
    "family": ["park", "zoo", "aquarium", "museum", "restaurant", "playground", "amusement_park"],
    "foodie": ["restaurant", "cafe", "bakery", "food_court", "meal_takeaway", "bar"],
    "culture": ["museum", "art_gallery", "library", "performing_arts_theater", "tourist_attraction"],
    "nightlife": ["bar", "night_club", "casino", "movie_theater", "restaurant"],
}


@dataclass
class UserPreferences:
    location: LatLng
    radius_m: float = 10_000.0
    mood: Optional[str] = None
    favorites: list[str] = field(default_factory=list)
    blacklist: list[str] = field(default_factory=list)
    filters: FilterSettings = field(default_factory=FilterSettings)
    importance: ImportanceWeights = field(default_factory=ImportanceWeights)
    mood_presets: Dict[str, List[str]] = field(default_factory=lambda: dict(DEFAULT_MOOD_PRESETS))
    recent_venue_ids: list[str] = field(default_factory=list)  # most recent first

    def mood_types(self) -> List[str]:
        if not self.mood:
            return []
        return list(self.mood_presets.get(self.mood.lower(), []))


@dataclass(frozen=True)
class RerankResult:
    success: bool
    venue_ids: Tuple[str, ...] = ()
    error: Optional[str] = None


@dataclass
class RecommendationRequest:
    weather_observation: Optional[WeatherObservation]
    candidate_venues: Optional[List[Venue]]
    user_location: Optional[LatLng]
    preferences: Optional[UserPreferences] = None
    max_results: int = 20
    mood: Optional[str] = None
    session_id: Optional[str] = None


@dataclass
class RecommendationResult:
    venues: List[ScoredVenue]
    metadata: Dict[str, object]
