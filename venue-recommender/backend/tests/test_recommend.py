from __future__ import annotations

import unittest
from typing import List, Optional

from config import Configuration
from models import (
    FilterSettings,
    LatLng,
    RecommendationRequest,
    RerankResult,
    UserPreferences,
    Venue,
    WeatherObservation,
)
from services.exposure import ExposureTracker
from services.recommend import (
    RecommendationValidationError,
    build_reranker,
    recommend,
    validate_request,
)
from services.rerank import GeminiRerankCapability, RerankOrchestrator

ORIGIN = LatLng(lat=51.5074, lng=-0.1278)
NEAR = LatLng(lat=51.5080, lng=-0.1280)

COLD_RAIN = WeatherObservation(temperature=2.0, condition_code=501, timestamp=1704103200, description="moderate rain")


def _venue(vid: str, types, *, location: Optional[LatLng] = NEAR, **kwargs) -> Venue:
    kwargs.setdefault("rating", 4.5)
    kwargs.setdefault("review_count", 300)
    return Venue(id=vid, name=vid, location=location, types=tuple(types), **kwargs)


def _request(venues: Optional[List[Venue]], **kwargs) -> RecommendationRequest:
    return RecommendationRequest(
        weather_observation=kwargs.pop("weather_observation", COLD_RAIN),
        candidate_venues=venues,
        user_location=kwargs.pop("user_location", ORIGIN),
        **kwargs,
    )


class _FixedCapability:
    def __init__(self, result: RerankResult) -> None:
        self.result = result
        self.calls = 0
        self.contexts: list = []

    def rerank(self, candidates, weather_summary, user_context=None):
        self.calls += 1
        self.contexts.append(user_context)
        return self.result


def _cfg(**kwargs) -> Configuration:
    kwargs.setdefault("rerank_enabled", False)
    return Configuration(**kwargs)


class TestValidation(unittest.TestCase):
    def test_missing_fields_are_named(self):
        req = RecommendationRequest(weather_observation=None, candidate_venues=None, user_location=ORIGIN)
        with self.assertRaises(RecommendationValidationError) as ctx:
            validate_request(req)
        self.assertEqual(str(ctx.exception), "Missing required fields: weather_observation, venues")

    def test_max_results_must_be_positive(self):
        with self.assertRaises(RecommendationValidationError):
            recommend(_cfg(), _request([], max_results=0))


class TestRecommend(unittest.TestCase):
    def test_empty_candidates_give_empty_result(self):
        cap = _FixedCapability(RerankResult(success=True, venue_ids=("x",)))
        result = recommend(_cfg(), _request([]), reranker=RerankOrchestrator(cap))
        self.assertEqual(result.venues, [])
        self.assertEqual(result.metadata["total_processed"], 0)
        self.assertFalse(result.metadata["ai_reranking_applied"])
        self.assertEqual(cap.calls, 0)

    def test_cold_rain_puts_museum_above_park(self):
        venues = [_venue("park", ["park"]), _venue("museum", ["museum"])]
        result = recommend(_cfg(), _request(venues))

        self.assertEqual([v.id for v in result.venues], ["museum", "park"])
        self.assertEqual(result.metadata["weather_severity"], 0.7)
        self.assertEqual(result.metadata["scoring_model"], "standard")
        self.assertEqual(set(result.metadata["weights_used"]), {"weather", "time", "distance", "popularity"})
        self.assertIsNone(result.metadata["rerank_error"])
        for item in result.venues:
            self.assertTrue(0 <= item.computed_score <= 100)
            self.assertIsNotNone(item.percentile_rank)

    def test_venues_without_coordinates_are_excluded(self):
        venues = [_venue("a", ["cafe"]), _venue("nowhere", ["cafe"], location=None)]
        result = recommend(_cfg(), _request(venues))
        self.assertEqual([v.id for v in result.venues], ["a"])
        self.assertEqual(result.metadata["total_processed"], 2)

    def test_filters_are_reported(self):
        prefs = UserPreferences(location=ORIGIN, blacklist=["bar"], filters=FilterSettings(min_rating=4.0))
        venues = [_venue("cafe", ["cafe"]), _venue("bar", ["bar"]), _venue("meh", ["cafe"], rating=3.0)]
        result = recommend(_cfg(), _request(venues, preferences=prefs))

        self.assertEqual([v.id for v in result.venues], ["cafe"])
        self.assertEqual(result.metadata["filter_stats"]["reasons"], {"blacklisted": 1, "rating_too_low": 1})
        self.assertEqual(result.metadata["filter_summary"][0], "2 places hidden by filters")

    def test_max_results_truncates(self):
        venues = [_venue(str(i), ["cafe"], rating=4.0 + i / 10) for i in range(5)]
        result = recommend(_cfg(), _request(venues, max_results=2))
        self.assertEqual(len(result.venues), 2)
        self.assertEqual(result.metadata["returned"], 2)

    def test_successful_rerank_is_applied(self):
        venues = [_venue("park", ["park"]), _venue("museum", ["museum"])]
        cap = _FixedCapability(RerankResult(success=True, venue_ids=("park", "museum")))
        result = recommend(_cfg(), _request(venues), reranker=RerankOrchestrator(cap))
        self.assertEqual([v.id for v in result.venues], ["park", "museum"])
        self.assertTrue(result.metadata["ai_reranking_applied"])

    def test_failed_rerank_keeps_ranked_order(self):
        venues = [_venue("park", ["park"]), _venue("museum", ["museum"])]
        cap = _FixedCapability(RerankResult(success=False, error="bad json"))
        result = recommend(_cfg(), _request(venues), reranker=RerankOrchestrator(cap))
        self.assertEqual([v.id for v in result.venues], ["museum", "park"])
        self.assertFalse(result.metadata["ai_reranking_applied"])
        self.assertEqual(result.metadata["rerank_error"], "bad json")

    def test_extended_model_uses_exposure_history(self):
        tracker = ExposureTracker()
        venues = [_venue("a", ["museum"]), _venue("b", ["museum"])]
        cfg = _cfg(scoring_model="extended")

        first = recommend(cfg, _request(venues, session_id="s1"), exposure=tracker)
        self.assertEqual(first.metadata["scoring_model"], "extended")
        self.assertEqual(len(first.venues[0].breakdown.dimensions), 8)
        self.assertEqual(tracker.recent("s1"), [v.id for v in first.venues])

        # the venue shown first last time loses its novelty edge
        shown_first = first.venues[0].id
        second = recommend(cfg, _request(venues, session_id="s1"), exposure=tracker)
        self.assertNotEqual(second.venues[0].id, shown_first)

    def test_request_mood_overrides_preferences(self):
        prefs = UserPreferences(location=ORIGIN, mood="nightlife")
        venues = [_venue("lib", ["library"]), _venue("club", ["night_club"])]
        cap = _FixedCapability(RerankResult(success=False, error="n/a"))
        recommend(_cfg(), _request(venues, preferences=prefs, mood="relaxed"), reranker=RerankOrchestrator(cap))
        self.assertEqual(cap.contexts, ["User is feeling relaxed"])


class TestBuildReranker(unittest.TestCase):
    def test_disabled(self):
        self.assertIsNone(build_reranker(_cfg(rerank_enabled=False)))

    def test_gemini_default(self):
        orchestrator = build_reranker(Configuration(rerank_enabled=True, rerank_top_k=5, rerank_timeout=2.0))
        self.assertIsInstance(orchestrator, RerankOrchestrator)
        self.assertIsInstance(orchestrator.capability, GeminiRerankCapability)
        self.assertEqual(orchestrator.top_k, 5)
        self.assertEqual(orchestrator.capability.timeout, 2.0)

    def test_missing_gemini_key_degrades_gracefully(self):
        venues = [_venue("park", ["park"]), _venue("museum", ["museum"])]
        cfg = Configuration(rerank_enabled=True, gemini_api_key=None)
        result = recommend(cfg, _request(venues), reranker=build_reranker(cfg))
        self.assertEqual([v.id for v in result.venues], ["museum", "park"])
        self.assertFalse(result.metadata["ai_reranking_applied"])


if __name__ == "__main__":
    unittest.main()
