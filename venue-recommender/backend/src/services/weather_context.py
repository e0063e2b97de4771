"""Normalize raw weather observations into a bounded WeatherContext.

Severity is an additive score over temperature, condition group, wind, humidity
and visibility, clamped to [0, 1]. Freezing or extreme heat floors it at the
extreme threshold so downstream weighting always treats those as severe.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from loguru import logger

from models import TimeOfDay, WeatherContext, WeatherObservation
from utils import fahrenheit_to_celsius, ms_to_mph

EXTREME_SEVERITY = 0.7

PRECIPITATION_CODES = frozenset(
    [
        500, 501, 502, 503, 504, 511, 520, 521, 522, 531,  # rain
        600, 601, 602, 611, 612, 613, 615, 616, 620, 621, 622,  # snow
    ]
)

NEUTRAL_CONTEXT = WeatherContext(
    temp=20.0,
    feels_like=20.0,
    condition_code=800,
    severity_score=0.5,
    time_of_day="afternoon",
    description="unknown",
)


def is_precipitation_code(code: int) -> bool:
    return code in PRECIPITATION_CODES


def is_precipitating_group(code: int) -> bool:
    # thunderstorm, drizzle, rain, snow
    return code // 100 in (2, 3, 5, 6)


def calculate_severity(
    temp_c: float,
    condition_code: int,
    *,
    wind_mph: float = 0.0,
    humidity: Optional[float] = None,
    visibility_m: Optional[float] = None,
    cloudiness: Optional[float] = None,
    precipitating: Optional[bool] = None,
) -> float:
    severity = 0.0

    if temp_c < 5 or temp_c >= 38:
        severity += 0.3
    elif temp_c >= 32:
        severity += 0.2
    elif 18 <= temp_c <= 25:
        severity -= 0.1

    group = condition_code // 100
    if group == 2:
        severity += 0.4
    elif group == 3:
        severity += 0.1
    elif group == 5:
        severity += 0.3 if condition_code >= 502 else 0.2
    elif group == 6:
        severity += 0.3
    elif group == 7:
        severity += 0.5 if condition_code == 781 else 0.15
    elif condition_code > 800 and (cloudiness or 0) > 75:
        severity += 0.1

    if precipitating is None:
        precipitating = is_precipitating_group(condition_code)
    if precipitating and temp_c < 5:
        # icy surfaces, sleet
        severity += 0.2

    if wind_mph > 25:
        severity += 0.2
    elif wind_mph > 15:
        severity += 0.1

    if humidity is not None and (humidity > 90 or humidity < 20):
        severity += 0.1

    if visibility_m is not None and visibility_m < 1000:
        severity += 0.2

    severity = max(0.0, min(1.0, severity))
    if temp_c <= 0 or temp_c >= 38:
        severity = max(severity, EXTREME_SEVERITY)
    return round(severity, 6)


def bucket_time_of_day(hour: int) -> TimeOfDay:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def local_datetime(timestamp: int, timezone_offset: int) -> datetime:
    """Wall-clock time at the observation site (naive)."""
    utc = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return (utc + timedelta(seconds=timezone_offset)).replace(tzinfo=None)


def _finite(value: object) -> float:
    if isinstance(value, bool):
        raise TypeError("boolean is not a measurement")
    number = float(value)  # type: ignore[arg-type]
    if not math.isfinite(number):
        raise ValueError("non-finite measurement")
    return number


def build_weather_context(observation: Optional[WeatherObservation]) -> WeatherContext:
    """Derive the per-request WeatherContext. Never raises on malformed input."""
    if observation is None:
        logger.warning("weather observation missing; using neutral context")
        return NEUTRAL_CONTEXT

    try:
        temp_raw = _finite(observation.temperature)
        condition_code = int(_finite(observation.condition_code))
        timestamp = int(_finite(observation.timestamp))
        offset = int(_finite(observation.timezone_offset or 0))
        local = local_datetime(timestamp, offset)
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        logger.warning("malformed weather observation ({}); using neutral context", exc)
        return NEUTRAL_CONTEXT

    imperial = (observation.units or "metric").lower() == "imperial"
    temp_c = fahrenheit_to_celsius(temp_raw) if imperial else temp_raw

    feels_like_c = temp_c
    if observation.feels_like is not None:
        try:
            feels_raw = _finite(observation.feels_like)
            feels_like_c = fahrenheit_to_celsius(feels_raw) if imperial else feels_raw
        except (TypeError, ValueError):
            feels_like_c = temp_c

    try:
        wind = _finite(observation.wind_speed or 0.0)
    except (TypeError, ValueError):
        wind = 0.0
    wind_mph = wind if imperial else ms_to_mph(wind)

    severity = calculate_severity(
        temp_c,
        condition_code,
        wind_mph=wind_mph,
        humidity=observation.humidity,
        visibility_m=observation.visibility_m,
        cloudiness=observation.cloudiness,
        precipitating=observation.precipitating,
    )

    return WeatherContext(
        temp=temp_c,
        feels_like=feels_like_c,
        condition_code=condition_code,
        severity_score=severity,
        time_of_day=bucket_time_of_day(local.hour),
        description=(observation.description or "unknown").strip() or "unknown",
        local_time=local,
        wind_mph=wind_mph,
        visibility_m=observation.visibility_m,
        cloudiness=observation.cloudiness,
    )


def weather_summary(context: WeatherContext) -> str:
    return f"{context.description}, {context.temp:.0f}°C, {context.time_of_day}"
