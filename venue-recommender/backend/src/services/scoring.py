from __future__ import annotations

from typing import Iterable, List, Literal, Optional, Tuple

from loguru import logger

from models import (
    DimensionScore,
    LatLng,
    ScoreBreakdown,
    ScoredVenue,
    ScoringWeights,
    Venue,
    WeatherContext,
)
from services.weather_context import EXTREME_SEVERITY, is_precipitation_code
from utils import clamp, haversine_m

VenueProfile = Literal["indoor", "outdoor", "mixed"]

INDOOR_TYPES = frozenset(
    [
        "museum",
        "art_gallery",
        "library",
        "shopping_mall",
        "movie_theater",
        "bowling_alley",
        "gym",
        "spa",
        "cafe",
        "restaurant",
        "bar",
        "night_club",
        "aquarium",
        "casino",
    ]
)

OUTDOOR_TYPES = frozenset(
    [
        "park",
        "tourist_attraction",
        "amusement_park",
        "zoo",
        "campground",
        "rv_park",
        "stadium",
        "beach",
        "hiking_area",
        "natural_feature",
    ]
)

TIME_OF_DAY_TYPES = {
    "morning": (frozenset(["cafe", "bakery", "park", "gym", "library"]), 20),
    "afternoon": (frozenset(["museum", "tourist_attraction", "shopping_mall", "restaurant", "park"]), 15),
    "evening": (frozenset(["restaurant", "bar", "night_club", "movie_theater", "casino"]), 20),
    "night": (frozenset(["bar", "night_club", "casino", "bowling_alley"]), 20),
}

DISTANCE_BANDS: Tuple[Tuple[float, float], ...] = (
    (500, 100),
    (1000, 90),
    (2000, 75),
    (5000, 50),
    (10000, 25),
)
FAR_DISTANCE_SCORE = 10.0
MISSING_POPULARITY_SCORE = 30.0


class VenueScoringError(ValueError):
    pass


def classify_venue(types: Iterable[str]) -> VenueProfile:
    tags = set(types)
    indoor = bool(tags & INDOOR_TYPES)
    outdoor = bool(tags & OUTDOOR_TYPES)
    if indoor and not outdoor:
        return "indoor"
    if outdoor and not indoor:
        return "outdoor"
    return "mixed"


def derive_semantic_tags(types: Iterable[str], rating: Optional[float], open_now: Optional[bool]) -> Tuple[str, ...]:
    tags: list[str] = list(types)
    if rating is not None:
        if rating >= 4.5:
            tags.append("highly-rated")
        elif rating >= 4.0:
            tags.append("well-rated")
        elif rating >= 3.5:
            tags.append("moderately-rated")
    if open_now is not None:
        tags.append("open-now" if open_now else "closed")
    profile = classify_venue(types)
    if profile != "mixed":
        tags.append(profile)
    return tuple(dict.fromkeys(tags))


def weather_score(venue: Venue, weather: WeatherContext) -> float:
    """0-100 weather fit from the venue's indoor/outdoor profile."""
    profile = classify_venue(venue.types)

    if weather.severity_score >= EXTREME_SEVERITY:
        score = {"indoor": 90.0, "outdoor": 20.0, "mixed": 60.0}[profile]
    elif weather.severity_score <= 0.3:
        score = {"indoor": 60.0, "outdoor": 90.0, "mixed": 70.0}[profile]
    else:
        score = {"indoor": 70.0, "outdoor": 65.0, "mixed": 75.0}[profile]

    if weather.temp < 5 or weather.temp > 32:
        if profile == "indoor":
            score = clamp(score + 10)
        elif profile == "outdoor":
            score = clamp(score - 15)
    elif 18 <= weather.temp <= 25 and profile == "outdoor":
        score = clamp(score + 10)

    if is_precipitation_code(weather.condition_code):
        if profile == "indoor":
            score = clamp(score + 15)
        elif profile == "outdoor":
            score = clamp(score - 20)

    return clamp(score)


def time_score(venue: Venue, weather: WeatherContext) -> float:
    if venue.open_now is False:
        return 10.0

    score = 70.0 if venue.open_now is True else 50.0
    typical, bonus = TIME_OF_DAY_TYPES[weather.time_of_day]
    if typical.intersection(venue.types):
        score += bonus
    return clamp(score)


def distance_to(venue: Venue, origin: LatLng) -> float:
    if venue.location is None:
        raise VenueScoringError(f"venue {venue.id} has no coordinates")
    return haversine_m(origin.lat, origin.lng, venue.location.lat, venue.location.lng)


def distance_score(distance_m: float) -> float:
    for limit, score in DISTANCE_BANDS:
        if distance_m <= limit:
            return score
    return FAR_DISTANCE_SCORE


def popularity_score(venue: Venue) -> float:
    if venue.rating is None:
        return MISSING_POPULARITY_SCORE

    score = venue.rating / 5.0 * 100.0
    reviews = venue.review_count or 0
    if reviews >= 1000:
        score += 10
    elif reviews >= 500:
        score += 7
    elif reviews >= 100:
        score += 5
    elif reviews >= 50:
        score += 3
    elif reviews < 10:
        score -= 10
    return clamp(score)


def confidence_level(venue: Venue) -> float:
    """Share of expected fields the provider actually filled in."""
    checks = [
        venue.rating is not None,
        venue.review_count is not None,
        bool(venue.types),
        venue.location is not None,
        bool(venue.address),
        venue.has_opening_hours or venue.open_now is not None,
        venue.price_level is not None,
    ]
    completeness = float(sum(checks))
    if venue.review_count and venue.review_count > 100:
        completeness += 0.5
    return min(1.0, completeness / len(checks))


def _dimension(name: str, score_0_100: float, weight: float) -> DimensionScore:
    value = score_0_100 / 100.0
    return DimensionScore(name=name, value=value, weight=weight, contribution=value * weight * 100.0)


def score_venue(
    venue: Venue,
    weather: WeatherContext,
    weights: ScoringWeights,
    origin: LatLng,
) -> ScoredVenue:
    """Score one venue with the four-dimension model. Raises VenueScoringError without coordinates."""
    distance_m = distance_to(venue, origin)
    dimensions = (
        _dimension("weather", weather_score(venue, weather), weights.weather),
        _dimension("time", time_score(venue, weather), weights.time),
        _dimension("distance", distance_score(distance_m), weights.distance),
        _dimension("popularity", popularity_score(venue), weights.popularity),
    )
    total = clamp(sum(d.contribution for d in dimensions))
    breakdown = ScoreBreakdown(
        dimensions=dimensions,
        total_score=total,
        raw_score=total,
        confidence_level=confidence_level(venue),
        model="standard",
    )
    return ScoredVenue(venue=venue, distance_meters=distance_m, computed_score=total, breakdown=breakdown)


def score_venues(
    venues: Iterable[Venue],
    weather: WeatherContext,
    weights: ScoringWeights,
    origin: LatLng,
) -> List[ScoredVenue]:
    scored: list[ScoredVenue] = []
    for venue in venues:
        try:
            scored.append(score_venue(venue, weather, weights, origin))
        except VenueScoringError as exc:
            logger.warning("excluding venue from scoring: {}", exc)
    return scored
