"""Eight-dimension venue scoring.

Each dimension yields a value in [0, 1]. The weighted sum is scaled to 0-100
and then discounted by data confidence: ``normalized = raw * (0.7 + 0.3 * c)``,
so a venue with sparse provider data cannot outrank a well-documented one on
equal signals.
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Sequence

from loguru import logger

from models import (
    DimensionScore,
    ExtendedWeights,
    LatLng,
    ScoreBreakdown,
    ScoredVenue,
    UserPreferences,
    Venue,
    WeatherContext,
)
from services.scoring import VenueScoringError, classify_venue, confidence_level, distance_to
from services.weather_context import is_precipitating_group
from utils import clamp, exponential_decay, sigmoid

GLOBAL_MEAN_RATING = 3.5
CREDIBILITY_REVIEWS = 10
LOW_DATA_SCORE = 0.3
UNKNOWN_PRICE_LEVEL = 2

WALK_KM = 0.5
BIKE_KM = 2.0
SHORT_DRIVE_KM = 5.0
MEDIUM_DRIVE_KM = 10.0
LONG_DRIVE_KM = 20.0
_AT_SHORT_DRIVE = 0.85 * exponential_decay(SHORT_DRIVE_KM - BIKE_KM, 3)
_AT_MEDIUM_DRIVE = _AT_SHORT_DRIVE * exponential_decay(MEDIUM_DRIVE_KM - SHORT_DRIVE_KM, 5)

# Representative hour for each bucket when the local clock is unknown.
BUCKET_HOURS = {"morning": 9, "afternoon": 14, "evening": 19, "night": 23}

HOURLY_PATTERNS: Dict[str, Sequence[float]] = {
    "restaurant": (0.3, 0.2, 0.2, 0.2, 0.3, 0.4, 0.6, 0.7, 0.8, 0.7, 0.8, 0.95, 1.0, 0.9, 0.7, 0.6, 0.7, 0.8, 0.95, 1.0, 0.9, 0.8, 0.6, 0.4),
    "cafe": (0.3, 0.2, 0.2, 0.3, 0.4, 0.6, 0.8, 0.95, 1.0, 0.9, 0.8, 0.7, 0.6, 0.7, 0.8, 0.9, 0.8, 0.6, 0.5, 0.4, 0.3, 0.3, 0.3, 0.3),
    "bar": (0.1, 0.1, 0.1, 0.1, 0.1, 0.1, 0.2, 0.2, 0.3, 0.3, 0.3, 0.4, 0.4, 0.4, 0.5, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0, 1.0, 0.9, 0.6),
    "night_club": (0.3, 0.2, 0.1, 0.1, 0.1, 0.1, 0.1, 0.1, 0.1, 0.1, 0.1, 0.2, 0.2, 0.2, 0.3, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.95, 1.0, 0.8),
    "park": (0.1, 0.1, 0.1, 0.1, 0.2, 0.4, 0.6, 0.8, 0.9, 0.95, 1.0, 1.0, 0.95, 0.9, 0.9, 0.85, 0.8, 0.7, 0.5, 0.3, 0.2, 0.1, 0.1, 0.1),
    "gym": (0.2, 0.1, 0.1, 0.1, 0.3, 0.7, 0.9, 0.8, 0.7, 0.6, 0.5, 0.6, 0.7, 0.6, 0.5, 0.6, 0.7, 0.9, 0.95, 0.8, 0.6, 0.4, 0.3, 0.2),
    "shopping_mall": (0.1, 0.1, 0.1, 0.1, 0.1, 0.1, 0.2, 0.3, 0.4, 0.6, 0.8, 0.9, 0.95, 1.0, 1.0, 0.95, 0.9, 0.8, 0.7, 0.5, 0.3, 0.2, 0.1, 0.1),
    "museum": (0.1, 0.1, 0.1, 0.1, 0.1, 0.1, 0.1, 0.2, 0.3, 0.5, 0.8, 0.9, 0.9, 0.95, 0.95, 1.0, 0.9, 0.7, 0.4, 0.2, 0.1, 0.1, 0.1, 0.1),
}

INTERPRETATION_BANDS = (
    (85, "Perfect Match"),
    (75, "Excellent"),
    (65, "Very Good"),
    (55, "Good"),
    (45, "Fair"),
)


def weather_suitability(venue: Venue, weather: WeatherContext) -> float:
    profile = classify_venue(venue.types)
    precipitating = is_precipitating_group(weather.condition_code)
    temp = weather.temp

    if profile == "indoor":
        score = 0.5
        if precipitating:
            score += 0.3
        if weather.feels_like < 0 or weather.feels_like > 32:
            score += 0.2
        if weather.wind_mph > 25:
            score += 0.1
    elif profile == "outdoor":
        score = 0.5
        if not precipitating:
            score += 0.2
        if 15.5 <= temp <= 26.7:
            score += 0.3
        if weather.wind_mph < 15:
            score += 0.1
        if precipitating:
            score -= 0.4
        if temp < 4.4 or temp > 32.2:
            score -= 0.3
    else:
        score = 0.6
        if 10 <= temp <= 29.4:
            score += 0.2
    return clamp(score, 0.0, 1.0)


def hourly_relevance(types: Iterable[str], hour: int) -> float:
    relevance = 0.5
    for tag in types:
        pattern = HOURLY_PATTERNS.get(tag)
        if pattern is not None:
            relevance = max(relevance, pattern[hour % 24])
    return relevance


def contextual_relevance(venue: Venue, weather: WeatherContext) -> float:
    hour = weather.local_time.hour if weather.local_time is not None else BUCKET_HOURS[weather.time_of_day]
    combined = weather_suitability(venue, weather) * 0.6 + hourly_relevance(venue.types, hour) * 0.4
    return clamp(combined, 0.0, 1.0)


def spatial_proximity(distance_km: float) -> float:
    """Walk / bike / drive bands; each decay stage starts where the previous one ends."""
    if distance_km <= WALK_KM:
        return 1.0
    if distance_km <= BIKE_KM:
        return 1.0 - 0.15 * ((distance_km - WALK_KM) / (BIKE_KM - WALK_KM))
    if distance_km <= SHORT_DRIVE_KM:
        return 0.85 * exponential_decay(distance_km - BIKE_KM, 3)
    if distance_km <= MEDIUM_DRIVE_KM:
        return _AT_SHORT_DRIVE * exponential_decay(distance_km - SHORT_DRIVE_KM, 5)
    if distance_km <= LONG_DRIVE_KM:
        return _AT_MEDIUM_DRIVE * exponential_decay(distance_km - MEDIUM_DRIVE_KM, 10)
    return max(0.0, 0.1 - (distance_km - LONG_DRIVE_KM) * 0.01)


def _volume_score(review_count: int) -> float:
    # 1000 reviews saturates
    return min(1.0, math.log10(review_count + 1) / 3)


def quality_signals(rating: Optional[float], review_count: Optional[int]) -> float:
    """Bayesian-adjusted rating blended with review volume."""
    if not rating or not review_count:
        return LOW_DATA_SCORE

    adjusted = (review_count * rating + CREDIBILITY_REVIEWS * GLOBAL_MEAN_RATING) / (
        review_count + CREDIBILITY_REVIEWS
    )
    return sigmoid(adjusted, 3.5, 2) * 0.7 + _volume_score(review_count) * 0.3


def personal_relevance(venue: Venue, preferences: Optional[UserPreferences]) -> float:
    if preferences is None:
        return 0.5

    types = set(venue.types)
    score = 0.5
    if types.intersection(preferences.favorites):
        score += 0.4
    if types.intersection(preferences.mood_types()):
        score += 0.2
    score += preferences.importance.novelty / 100.0 * 0.1
    return min(1.0, score)


def temporal_availability(venue: Venue) -> float:
    if venue.open_now is False:
        return 0.1
    if venue.open_now is True:
        return 1.0
    return 0.5


def economic_fit(price_level: Optional[int], max_price_level: int = 4) -> float:
    level = UNKNOWN_PRICE_LEVEL if price_level is None else price_level
    if level <= max_price_level:
        return 1.0 - (level / 5.0) * 0.3
    return max(0.0, 0.5 - (level - max_price_level) * 0.2)


def social_proof(rating: Optional[float], review_count: Optional[int]) -> float:
    if not review_count:
        return LOW_DATA_SCORE

    volume = _volume_score(review_count)
    consistency = sigmoid(rating, 4.0, 3) if rating and review_count > 50 else 0.5
    # no recent-review counts from the provider; estimate from volume
    recency = volume * 0.5
    return volume * 0.4 + consistency * 0.4 + recency * 0.2


def uniqueness(venue_id: str, recent_ids: Sequence[str]) -> float:
    """1.0 for never-shown venues; exposures recover linearly with age, most recent scores 0."""
    if venue_id not in recent_ids:
        return 1.0
    return recent_ids.index(venue_id) / len(recent_ids)


def score_interpretation(score: float) -> str:
    for threshold, label in INTERPRETATION_BANDS:
        if score >= threshold:
            return label
    return "Poor Match"


def score_venue_extended(
    venue: Venue,
    weather: WeatherContext,
    weights: ExtendedWeights,
    origin: LatLng,
    preferences: Optional[UserPreferences] = None,
) -> ScoredVenue:
    distance_m = distance_to(venue, origin)
    max_price = preferences.filters.max_price_level if preferences is not None else 4
    recent = preferences.recent_venue_ids if preferences is not None else []

    values = {
        "contextual_relevance": contextual_relevance(venue, weather),
        "spatial_proximity": spatial_proximity(distance_m / 1000.0),
        "quality_signals": quality_signals(venue.rating, venue.review_count),
        "personal_relevance": personal_relevance(venue, preferences),
        "temporal_availability": temporal_availability(venue),
        "economic_fit": economic_fit(venue.price_level, max_price),
        "social_proof": social_proof(venue.rating, venue.review_count),
        "uniqueness": uniqueness(venue.id, recent),
    }
    weight_map = weights.as_dict()
    dimensions = tuple(
        DimensionScore(
            name=name,
            value=clamp(value, 0.0, 1.0),
            weight=weight_map[name],
            contribution=clamp(value, 0.0, 1.0) * weight_map[name] * 100.0,
        )
        for name, value in values.items()
    )

    raw = clamp(sum(d.contribution for d in dimensions))
    confidence = confidence_level(venue)
    normalized = clamp(raw * (0.7 + 0.3 * confidence))
    breakdown = ScoreBreakdown(
        dimensions=dimensions,
        total_score=normalized,
        raw_score=raw,
        confidence_level=confidence,
        model="extended",
    )
    return ScoredVenue(venue=venue, distance_meters=distance_m, computed_score=normalized, breakdown=breakdown)


def score_venues_extended(
    venues: Iterable[Venue],
    weather: WeatherContext,
    weights: ExtendedWeights,
    origin: LatLng,
    preferences: Optional[UserPreferences] = None,
) -> List[ScoredVenue]:
    scored: list[ScoredVenue] = []
    for venue in venues:
        try:
            scored.append(score_venue_extended(venue, weather, weights, origin, preferences))
        except VenueScoringError as exc:
            logger.warning("excluding venue from extended scoring: {}", exc)
    return scored
