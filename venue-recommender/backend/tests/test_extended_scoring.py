from __future__ import annotations

from datetime import datetime

import pytest

from models import ImportanceWeights, LatLng, UserPreferences, Venue, WeatherContext
from services.extended_scoring import (
    contextual_relevance,
    economic_fit,
    hourly_relevance,
    personal_relevance,
    quality_signals,
    score_interpretation,
    score_venue_extended,
    score_venues_extended,
    social_proof,
    spatial_proximity,
    uniqueness,
    weather_suitability,
)
from services.weights import DEFAULT_EXTENDED_WEIGHTS

ORIGIN = LatLng(lat=40.7128, lng=-74.0060)


def _ctx(temp: float = 20.0, code: int = 800, *, hour: int = 14, wind: float = 5.0) -> WeatherContext:
    return WeatherContext(
        temp=temp,
        feels_like=temp,
        condition_code=code,
        severity_score=0.2,
        time_of_day="afternoon",
        description="test",
        local_time=datetime(2024, 6, 1, hour, 0),
        wind_mph=wind,
    )


def test_spatial_proximity_decay_curve() -> None:
    assert spatial_proximity(0.3) == 1.0
    assert spatial_proximity(2.0) == pytest.approx(0.85)
    assert spatial_proximity(5.0) == pytest.approx(0.85 * 0.5, rel=1e-3)
    assert spatial_proximity(100.0) == 0.0
    samples = [spatial_proximity(d / 2) for d in range(0, 60)]
    assert all(a >= b for a, b in zip(samples, samples[1:]))


def test_quality_signals_low_data_default_and_volume_effect() -> None:
    assert quality_signals(None, 50) == 0.3
    assert quality_signals(4.5, 0) == 0.3
    assert quality_signals(4.8, 2000) > quality_signals(4.8, 3)


def test_bayesian_adjustment_pulls_sparse_ratings_to_mean() -> None:
    # a perfect score from two reviews should not beat a strong, well-reviewed venue
    assert quality_signals(5.0, 2) < quality_signals(4.5, 800)


def test_weather_suitability_matrix() -> None:
    rainy_cold = _ctx(temp=3.0, code=502)
    museum = Venue(id="m", name="m", location=ORIGIN, types=("museum",))
    park = Venue(id="p", name="p", location=ORIGIN, types=("park",))
    assert weather_suitability(museum, rainy_cold) == pytest.approx(0.8)
    assert weather_suitability(park, rainy_cold) == 0.0
    assert weather_suitability(park, _ctx(temp=22.0)) == 1.0


def test_hourly_relevance_uses_best_matching_pattern() -> None:
    assert hourly_relevance(["bar"], 21) == 1.0
    assert hourly_relevance(["bar"], 9) == 0.5
    assert hourly_relevance(["point_of_interest"], 3) == 0.5


def test_contextual_relevance_falls_back_to_bucket_hour() -> None:
    ctx = WeatherContext(
        temp=20.0, feels_like=20.0, condition_code=800, severity_score=0.1, time_of_day="morning", description="x"
    )
    cafe = Venue(id="c", name="c", location=ORIGIN, types=("cafe",))
    # indoor baseline 0.5 * 0.6 + cafe at 09:00 (0.9) * 0.4
    assert contextual_relevance(cafe, ctx) == pytest.approx(0.5 * 0.6 + 0.9 * 0.4)


def test_personal_relevance_favorites_and_mood() -> None:
    prefs = UserPreferences(
        location=ORIGIN,
        favorites=["museum"],
        mood="culture",
        importance=ImportanceWeights(novelty=0),
    )
    museum = Venue(id="m", name="m", location=ORIGIN, types=("museum",))
    gym = Venue(id="g", name="g", location=ORIGIN, types=("gym",))
    assert personal_relevance(museum, prefs) == 1.0
    assert personal_relevance(gym, prefs) == 0.5
    assert personal_relevance(gym, None) == 0.5


def test_economic_fit() -> None:
    assert economic_fit(0) == 1.0
    assert economic_fit(None) == pytest.approx(0.88)
    assert economic_fit(4, max_price_level=2) == pytest.approx(0.1)


def test_social_proof_defaults_without_reviews() -> None:
    assert social_proof(4.0, None) == 0.3
    assert 0.0 < social_proof(4.6, 900) <= 1.0


def test_uniqueness_is_deterministic_exposure_novelty() -> None:
    recent = ["a", "b", "c", "d"]
    assert uniqueness("zz", recent) == 1.0
    assert uniqueness("a", recent) == 0.0
    assert uniqueness("c", recent) == 0.5
    assert uniqueness("c", recent) == uniqueness("c", recent)


def test_score_venue_extended_applies_confidence_discount() -> None:
    venue = Venue(
        id="v",
        name="v",
        location=ORIGIN,
        types=("museum",),
        rating=4.7,
        review_count=1500,
        open_now=True,
        price_level=1,
        address="1 Museum Way",
        has_opening_hours=True,
    )
    sparse = Venue(id="s", name="s", location=ORIGIN, types=("museum",))
    ctx = _ctx()

    full = score_venue_extended(venue, ctx, DEFAULT_EXTENDED_WEIGHTS, ORIGIN)
    thin = score_venue_extended(sparse, ctx, DEFAULT_EXTENDED_WEIGHTS, ORIGIN)

    assert full.breakdown.model == "extended"
    assert len(full.breakdown.dimensions) == 8
    assert full.breakdown.confidence_level == 1.0
    assert full.computed_score == pytest.approx(full.breakdown.raw_score)
    assert thin.computed_score == pytest.approx(
        thin.breakdown.raw_score * (0.7 + 0.3 * thin.breakdown.confidence_level)
    )
    assert full.computed_score > thin.computed_score


def test_score_venues_extended_skips_missing_coordinates() -> None:
    venues = [
        Venue(id="ok", name="ok", location=ORIGIN, types=("cafe",)),
        Venue(id="nowhere", name="nowhere", location=None, types=("cafe",)),
    ]
    scored = score_venues_extended(venues, _ctx(), DEFAULT_EXTENDED_WEIGHTS, ORIGIN)
    assert [s.id for s in scored] == ["ok"]


def test_score_interpretation_bands() -> None:
    assert score_interpretation(90) == "Perfect Match"
    assert score_interpretation(75) == "Excellent"
    assert score_interpretation(50) == "Fair"
    assert score_interpretation(10) == "Poor Match"
