from __future__ import annotations

import threading
import unittest
from typing import List, Optional
from unittest.mock import MagicMock, patch

from models import LatLng, RerankResult, ScoreBreakdown, ScoredVenue, Venue
from services.rerank import (
    CrossEncoderRerankCapability,
    GeminiRerankCapability,
    RerankOrchestrator,
    RerankState,
    build_rerank_prompt,
    parse_rerank_response,
)


def _ranked(*ids: str) -> List[ScoredVenue]:
    out = []
    for idx, vid in enumerate(ids):
        venue = Venue(id=vid, name=f"Venue {vid}", location=LatLng(0.0, 0.0), types=("cafe",), rating=4.0)
        score = 90.0 - idx
        breakdown = ScoreBreakdown(dimensions=(), total_score=score, raw_score=score, confidence_level=1.0)
        out.append(ScoredVenue(venue=venue, distance_meters=100.0, computed_score=score, breakdown=breakdown))
    return out


class _FixedCapability:
    def __init__(self, result: RerankResult) -> None:
        self.result = result
        self.calls: list = []

    def rerank(self, candidates, weather_summary, user_context=None):
        self.calls.append(([c.id for c in candidates], weather_summary, user_context))
        return self.result


class _RaisingCapability:
    def rerank(self, candidates, weather_summary, user_context=None):
        raise ConnectionError("network down")


class _HangingCapability:
    def __init__(self) -> None:
        self.release = threading.Event()

    def rerank(self, candidates, weather_summary, user_context=None):
        self.release.wait(5)
        return RerankResult(success=True, venue_ids=tuple(c.id for c in reversed(candidates)))


def test_parse_accepts_fenced_json_array() -> None:
    result = parse_rerank_response('```json\n["b", "a"]\n```')
    assert result.success
    assert result.venue_ids == ("b", "a")


def test_parse_rejects_non_array_and_non_string_payloads() -> None:
    assert not parse_rerank_response('{"ids": ["a"]}').success
    assert not parse_rerank_response("[1, 2, 3]").success
    assert not parse_rerank_response("Sure! Here you go").success
    assert not parse_rerank_response("").success


def test_prompt_lists_ids_and_weather() -> None:
    prompt = build_rerank_prompt(_ranked("a", "b"), "light rain, 2°C, morning", "User is feeling relaxed")
    assert "(ID: a)" in prompt and "(ID: b)" in prompt
    assert "light rain, 2°C, morning" in prompt
    assert "User is feeling relaxed" in prompt


class TestRerankOrchestrator(unittest.TestCase):
    def test_success_reorders_top_k_and_keeps_tail(self):
        ranked = _ranked("a", "b", "c", "d", "e")
        cap = _FixedCapability(RerankResult(success=True, venue_ids=("c", "zzz", "a", "c")))
        outcome = RerankOrchestrator(cap, top_k=3, timeout=1.0).run(ranked, "clear, 20°C, afternoon", "mood")

        self.assertTrue(outcome.applied)
        self.assertEqual(outcome.state, RerankState.SUCCEEDED)
        self.assertEqual([v.id for v in outcome.venues], ["c", "a", "b", "d", "e"])
        self.assertEqual(cap.calls[0][0], ["a", "b", "c"])
        self.assertEqual(
            outcome.transitions,
            (RerankState.IDLE, RerankState.REQUESTING, RerankState.SUCCEEDED, RerankState.FINALIZED),
        )

    def test_output_is_subset_of_input(self):
        ranked = _ranked("a", "b", "c")
        cap = _FixedCapability(RerankResult(success=True, venue_ids=("x", "b", "y")))
        outcome = RerankOrchestrator(cap, top_k=15).run(ranked, "clear")
        self.assertEqual({v.id for v in outcome.venues}, {"a", "b", "c"})
        self.assertEqual([v.id for v in outcome.venues], ["b", "a", "c"])

    def test_only_unknown_ids_falls_back_to_ranker_order(self):
        ranked = _ranked("a", "b", "c")
        cap = _FixedCapability(RerankResult(success=True, venue_ids=("x", "y")))
        outcome = RerankOrchestrator(cap).run(ranked, "clear")
        self.assertFalse(outcome.applied)
        self.assertEqual(outcome.state, RerankState.FAILED)
        self.assertEqual(outcome.venues, ranked)

    def test_capability_failure_result_falls_back(self):
        ranked = _ranked("a", "b")
        cap = _FixedCapability(RerankResult(success=False, error="response is not an array"))
        outcome = RerankOrchestrator(cap).run(ranked, "clear")
        self.assertFalse(outcome.applied)
        self.assertEqual(outcome.error, "response is not an array")
        self.assertEqual(outcome.venues, ranked)

    def test_exception_never_propagates(self):
        ranked = _ranked("a", "b")
        outcome = RerankOrchestrator(_RaisingCapability()).run(ranked, "clear")
        self.assertFalse(outcome.applied)
        self.assertIn("network down", outcome.error or "")
        self.assertEqual(outcome.venues, ranked)

    def test_timeout_falls_back(self):
        ranked = _ranked("a", "b", "c")
        cap = _HangingCapability()
        try:
            outcome = RerankOrchestrator(cap, timeout=0.05).run(ranked, "clear")
        finally:
            cap.release.set()
        self.assertFalse(outcome.applied)
        self.assertEqual(outcome.state, RerankState.FAILED)
        self.assertIn("timed out", outcome.error or "")
        self.assertEqual(outcome.venues, ranked)

    def test_empty_input_is_not_sent(self):
        cap = _FixedCapability(RerankResult(success=True, venue_ids=("a",)))
        outcome = RerankOrchestrator(cap).run([], "clear")
        self.assertEqual(outcome.venues, [])
        self.assertFalse(outcome.applied)
        self.assertEqual(cap.calls, [])


class TestGeminiCapability(unittest.TestCase):
    def test_missing_api_key_is_a_failure(self):
        result = GeminiRerankCapability(api_key=None).rerank(_ranked("a"), "clear")
        self.assertFalse(result.success)
        self.assertEqual(result.error, "API key not configured")

    @patch("services.rerank.GEMINI_AVAILABLE", True)
    @patch("services.rerank.genai_types")
    @patch("services.rerank.genai")
    def test_generate_content_response_is_parsed(self, mock_genai, mock_types):
        client = MagicMock()
        client.models.generate_content.return_value = MagicMock(text='```json\n["b","a"]\n```')
        mock_genai.Client.return_value = client

        cap = GeminiRerankCapability(api_key="key-123", model_id="gemini-test", timeout=2.5)
        result = cap.rerank(_ranked("a", "b"), "clear, 20°C, afternoon")

        self.assertTrue(result.success)
        self.assertEqual(result.venue_ids, ("b", "a"))
        mock_types.HttpOptions.assert_called_once_with(timeout=2500)
        mock_genai.Client.assert_called_once_with(api_key="key-123", http_options=mock_types.HttpOptions.return_value)
        kwargs = client.models.generate_content.call_args.kwargs
        self.assertEqual(kwargs["model"], "gemini-test")
        self.assertIn("(ID: a)", kwargs["contents"])


class TestCrossEncoderCapability(unittest.TestCase):
    @patch("services.rerank.CrossEncoder")
    def test_orders_by_model_scores(self, mock_cross_encoder):
        model = MagicMock()
        model.predict.return_value = [0.1, 0.9, 0.5]
        mock_cross_encoder.return_value = model

        cap = CrossEncoderRerankCapability("cross-encoder/test")
        result = cap.rerank(_ranked("a", "b", "c"), "snow, -3°C, evening", "User is feeling relaxed")

        self.assertTrue(result.success)
        self.assertEqual(result.venue_ids, ("b", "c", "a"))
        pairs = model.predict.call_args.args[0]
        self.assertTrue(all(p[0].startswith("Best place to go right now: snow") for p in pairs))

    @patch("services.rerank.CrossEncoder", None)
    def test_missing_dependency_degrades_through_orchestrator(self):
        ranked = _ranked("a", "b")
        cap = CrossEncoderRerankCapability("cross-encoder/test")
        outcome = RerankOrchestrator(cap).run(ranked, "clear")
        self.assertFalse(outcome.applied)
        self.assertIn("sentence-transformers", outcome.error or "")


if __name__ == "__main__":
    unittest.main()
