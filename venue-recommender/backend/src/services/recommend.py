from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from loguru import logger

from config import Configuration
from models import (
    RecommendationRequest,
    RecommendationResult,
    ScoredVenue,
    UserPreferences,
    Venue,
)
from services.exposure import ExposureTracker
from services.extended_scoring import score_venues_extended
from services.filters import filter_summary, filter_venues
from services.ranking import rank_venues, select_diverse
from services.rerank import (
    CrossEncoderRerankCapability,
    GeminiRerankCapability,
    RerankOrchestrator,
)
from services.scoring import score_venues
from services.weather_context import build_weather_context, weather_summary
from services.weights import calculate_dynamic_weights, preferences_to_weights, weighting_explanation
from utils import haversine_m


class RecommendationValidationError(ValueError):
    pass


def validate_request(request: RecommendationRequest) -> None:
    missing = []
    if request.weather_observation is None:
        missing.append("weather_observation")
    if request.candidate_venues is None:
        missing.append("venues")
    if request.user_location is None:
        missing.append("user_location")
    if missing:
        raise RecommendationValidationError(f"Missing required fields: {', '.join(missing)}")
    if request.max_results < 1:
        raise RecommendationValidationError("max_results must be at least 1")


def build_reranker(cfg: Configuration) -> Optional[RerankOrchestrator]:
    if not cfg.rerank_enabled:
        return None
    provider = (cfg.rerank_provider or "").lower()
    if provider == "cross_encoder":
        capability = CrossEncoderRerankCapability(cfg.cross_encoder_model)
    else:
        capability = GeminiRerankCapability(cfg.gemini_api_key, cfg.gemini_model_id, timeout=cfg.rerank_timeout)
    return RerankOrchestrator(capability, top_k=cfg.rerank_top_k, timeout=cfg.rerank_timeout)


def _resolve_preferences(
    cfg: Configuration,
    request: RecommendationRequest,
    exposure: Optional[ExposureTracker],
) -> UserPreferences:
    assert request.user_location is not None
    prefs = request.preferences or UserPreferences(location=request.user_location, radius_m=cfg.default_radius_m)
    if prefs.location != request.user_location:
        prefs = replace(prefs, location=request.user_location)
    if request.mood:
        prefs = replace(prefs, mood=request.mood)
    if exposure is not None and request.session_id:
        recent = exposure.recent(request.session_id)
        if recent:
            prefs = replace(prefs, recent_venue_ids=recent)
    return prefs


def _distances_km(venues: List[Venue], prefs: UserPreferences) -> Dict[str, float]:
    origin = prefs.location
    return {
        v.id: haversine_m(origin.lat, origin.lng, v.location.lat, v.location.lng) / 1000.0
        for v in venues
        if v.location is not None
    }


def recommend(
    cfg: Configuration,
    request: RecommendationRequest,
    reranker: Optional[RerankOrchestrator] = None,
    exposure: Optional[ExposureTracker] = None,
) -> RecommendationResult:
    """Score, rank and optionally rerank the request's candidate venues."""
    validate_request(request)
    venues = list(request.candidate_venues or [])
    prefs = _resolve_preferences(cfg, request, exposure)

    context = build_weather_context(request.weather_observation)
    extended = (cfg.scoring_model or "").lower() == "extended"
    if extended:
        weights = preferences_to_weights(prefs.importance)
    else:
        weights = calculate_dynamic_weights(context)

    kept, stats = filter_venues(venues, prefs, _distances_km(venues, prefs))

    if extended:
        scored = score_venues_extended(kept, context, weights, prefs.location, prefs)
    else:
        scored = score_venues(kept, context, weights, prefs.location)
    ranked: List[ScoredVenue] = rank_venues(scored)
    if cfg.diversity_enabled:
        ranked = select_diverse(ranked, request.max_results)

    applied = False
    rerank_error: Optional[str] = None
    if reranker is not None and ranked:
        user_context = f"User is feeling {prefs.mood}" if prefs.mood else None
        outcome = reranker.run(ranked, weather_summary(context), user_context)
        ranked = outcome.venues
        applied = outcome.applied
        rerank_error = outcome.error

    final = ranked[: request.max_results]
    if exposure is not None and request.session_id:
        exposure.record(request.session_id, [item.id for item in final])

    metadata: Dict[str, object] = {
        "total_processed": len(venues),
        "returned": len(final),
        "ai_reranking_applied": applied,
        "weather_severity": context.severity_score,
        "weights_used": weights.as_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "scoring_model": "extended" if extended else "standard",
        "weighting_explanation": weighting_explanation(context),
        "filter_stats": stats.as_dict(),
        "filter_summary": filter_summary(stats),
        "rerank_error": rerank_error,
    }
    logger.info(
        "recommendation processed={} scored={} returned={} severity={:.2f} reranked={}",
        len(venues),
        len(scored),
        len(final),
        context.severity_score,
        applied,
    )
    return RecommendationResult(venues=final, metadata=metadata)
