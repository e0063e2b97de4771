from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from config import Configuration
from models import WeatherObservation
from services.transport import RetryPolicy, request_json


class WeatherError(RuntimeError):
    pass


def parse_current_weather(payload: Dict[str, Any], units: str = "metric") -> WeatherObservation:
    main = payload.get("main") or {}
    conditions = payload.get("weather") or []
    if main.get("temp") is None or not conditions or payload.get("dt") is None:
        raise WeatherError("incomplete weather payload")

    condition = conditions[0] or {}
    wind = payload.get("wind") or {}
    clouds = payload.get("clouds") or {}
    precipitating = None
    if "rain" in payload or "snow" in payload:
        precipitating = True

    return WeatherObservation(
        temperature=float(main["temp"]),
        condition_code=int(condition.get("id", 800)),
        timestamp=int(payload["dt"]),
        timezone_offset=int(payload.get("timezone") or 0),
        description=str(condition.get("description") or ""),
        feels_like=(float(main["feels_like"]) if main.get("feels_like") is not None else None),
        wind_speed=float(wind.get("speed") or 0.0),
        humidity=main.get("humidity"),
        visibility_m=payload.get("visibility"),
        cloudiness=clouds.get("all"),
        precipitating=precipitating,
        units="imperial" if units == "imperial" else "metric",
    )


class OpenWeatherClient:
    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.base = cfg.openweather_base_url.rstrip("/")
        self.session = session or requests.Session()
        self.policy = RetryPolicy()

    def current(self, lat: float, lng: float) -> WeatherObservation:
        units = self.cfg.openweather_units
        payload = request_json(
            self.session,
            "GET",
            f"{self.base}/data/2.5/weather",
            error_cls=WeatherError,
            timeout=self.cfg.openweather_timeout,
            policy=self.policy,
            params={"lat": lat, "lon": lng, "units": units, "appid": self.cfg.openweather_api_key},
            headers={"Accept": "application/json"},
        )
        return parse_current_weather(payload, units)
