from __future__ import annotations

from dataclasses import fields
from typing import Dict

from models import ExtendedWeights, ImportanceWeights, ScoringWeights, WeatherContext
from services.weather_context import EXTREME_SEVERITY

STANDARD_WEIGHTS = ScoringWeights(weather=0.35, time=0.30, distance=0.20, popularity=0.15)

EXTREME_WEATHER_WEIGHTS = ScoringWeights(weather=0.60, time=0.20, distance=0.12, popularity=0.08)

EXTREME_CONDITION_CODES = frozenset(
    [
        # thunderstorm
        200, 201, 202, 210, 211, 212, 221, 230, 231, 232,
        # heavy rain
        502, 503, 504, 511, 522, 531,
        # snow
        600, 601, 602, 611, 612, 613, 615, 616, 620, 621, 622,
        # tornado
        781,
    ]
)

DEFAULT_EXTENDED_WEIGHTS = ExtendedWeights(
    contextual_relevance=0.25,
    spatial_proximity=0.20,
    quality_signals=0.20,
    personal_relevance=0.15,
    temporal_availability=0.08,
    economic_fit=0.05,
    social_proof=0.05,
    uniqueness=0.02,
)


def normalize_weights(weights: Dict[str, float]) -> Dict[str, float]:
    """Scale non-negative weights so they sum to 1.0."""
    cleaned = {k: max(0.0, float(v)) for k, v in weights.items()}
    total = sum(cleaned.values())
    if total <= 0:
        return {k: 1.0 / len(cleaned) for k in cleaned}
    return {k: v / total for k, v in cleaned.items()}


def is_extreme_weather(context: WeatherContext) -> bool:
    if context.severity_score >= EXTREME_SEVERITY:
        return True
    if context.condition_code in EXTREME_CONDITION_CODES:
        return True
    return context.temp <= 0 or context.temp >= 38


def calculate_dynamic_weights(context: WeatherContext) -> ScoringWeights:
    """Weights for the four-dimension model; always sums to 1.0."""
    if is_extreme_weather(context):
        return EXTREME_WEATHER_WEIGHTS

    severity = max(0.0, min(context.severity_score, EXTREME_SEVERITY))
    factor = severity / EXTREME_SEVERITY

    standard = STANDARD_WEIGHTS.as_dict()
    extreme = EXTREME_WEATHER_WEIGHTS.as_dict()
    blended = {k: standard[k] + (extreme[k] - standard[k]) * factor for k in standard}
    return ScoringWeights(**normalize_weights(blended))


def weighting_explanation(context: WeatherContext) -> str:
    if is_extreme_weather(context):
        return (
            f"Extreme weather detected ({context.description}). Prioritizing weather-appropriate venues "
            "(60% weather, 20% time, 12% distance, 8% popularity)."
        )
    if context.severity_score > 0.4:
        return (
            f"Moderate weather conditions ({context.description}). "
            "Balancing weather appropriateness with other factors."
        )
    return (
        f"Pleasant weather conditions ({context.description}). Using standard balanced scoring "
        "(35% weather, 30% time, 20% distance, 15% popularity)."
    )


def preferences_to_weights(importance: ImportanceWeights) -> ExtendedWeights:
    """Map the user's 0-100 importance sliders onto the extended dimensions."""
    values = [max(0.0, float(getattr(importance, f.name))) for f in fields(importance)]
    total = sum(values)
    if total <= 0:
        return DEFAULT_EXTENDED_WEIGHTS

    mapped = {
        "contextual_relevance": importance.weather / total * 0.35,
        "spatial_proximity": importance.distance / total * 0.25,
        "quality_signals": importance.ratings / total * 0.20,
        "personal_relevance": 0.10,
        "temporal_availability": 0.05,
        "economic_fit": importance.price / total * 0.03,
        "social_proof": 0.01,
        "uniqueness": importance.novelty / total * 0.01,
    }
    return ExtendedWeights(**normalize_weights(mapped))
