from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel, Field

from utils import mask_secret


class Configuration(BaseModel):
    # Google Places (New API)
    places_api_key: Optional[str] = Field(default=None)
    places_base_url: str = Field(default="https://places.googleapis.com")
    places_timeout: int = Field(default=15)
    places_max_results: int = Field(default=10)

    # OpenWeatherMap
    openweather_api_key: Optional[str] = Field(default=None)
    openweather_base_url: str = Field(default="https://api.openweathermap.org")
    openweather_timeout: int = Field(default=10)
    openweather_units: str = Field(default="metric")

    # Scoring
    scoring_model: str = Field(default="standard")  # standard | extended
    default_radius_m: float = Field(default=10_000.0)
    max_results: int = Field(default=20)
    diversity_enabled: bool = Field(default=False)
    gather_max_workers: int = Field(default=6)

    # Rerank
    rerank_enabled: bool = Field(default=True)
    rerank_provider: str = Field(default="gemini")  # gemini | cross_encoder
    rerank_top_k: int = Field(default=15)
    rerank_timeout: float = Field(default=8.0)
    gemini_api_key: Optional[str] = Field(default=None)
    gemini_model_id: str = Field(default="gemini-2.5-flash-lite")
    cross_encoder_model: str = Field(default="cross-encoder/ms-marco-MiniLM-L-6-v2")

    # Exposure tracking (novelty signal)
    exposure_max_history: int = Field(default=50)
    exposure_ttl_sec: int = Field(default=6 * 3600)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        raw: dict[str, Any] = {}

        env_map = {
            "places_api_key": os.getenv("PLACES_API_KEY"),
            "places_base_url": os.getenv("PLACES_BASE_URL"),
            "places_timeout": os.getenv("PLACES_TIMEOUT"),
            "places_max_results": os.getenv("PLACES_MAX_RESULTS"),
            "openweather_api_key": os.getenv("OPENWEATHER_API_KEY"),
            "openweather_base_url": os.getenv("OPENWEATHER_BASE_URL"),
            "openweather_timeout": os.getenv("OPENWEATHER_TIMEOUT"),
            "openweather_units": os.getenv("OPENWEATHER_UNITS"),
            "scoring_model": os.getenv("SCORING_MODEL"),
            "default_radius_m": os.getenv("DEFAULT_RADIUS_M"),
            "max_results": os.getenv("MAX_RESULTS"),
            "diversity_enabled": os.getenv("DIVERSITY_ENABLED"),
            "gather_max_workers": os.getenv("GATHER_MAX_WORKERS"),
            # Rerank
            "rerank_enabled": os.getenv("RERANK_ENABLED"),
            "rerank_provider": os.getenv("RERANK_PROVIDER"),
            "rerank_top_k": os.getenv("RERANK_TOP_K"),
            "rerank_timeout": os.getenv("RERANK_TIMEOUT"),
            "gemini_api_key": os.getenv("GEMINI_API_KEY"),
            "gemini_model_id": os.getenv("GEMINI_MODEL_ID"),
            "cross_encoder_model": os.getenv("CROSS_ENCODER_MODEL"),
            "exposure_max_history": os.getenv("EXPOSURE_MAX_HISTORY"),
            "exposure_ttl_sec": os.getenv("EXPOSURE_TTL_SEC"),
        }

        bool_fields = {"rerank_enabled", "diversity_enabled"}

        for k, v in env_map.items():
            if v is None:
                continue
            if k in bool_fields:
                raw[k] = str(v).lower() in {"1", "true", "yes", "on"}
            else:
                raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    def require_places(self) -> None:
        if not self.places_api_key:
            raise ValueError("PLACES_API_KEY is required")

    def require_openweather(self) -> None:
        if not self.openweather_api_key:
            raise ValueError("OPENWEATHER_API_KEY is required")

    def log_summary(self) -> str:
        return (
            "scoring=%s rerank=%s provider=%s top_k=%s timeout=%.1fs places_key=%s weather_key=%s gemini_key=%s"
            % (
                self.scoring_model,
                self.rerank_enabled,
                self.rerank_provider,
                self.rerank_top_k,
                self.rerank_timeout,
                mask_secret(self.places_api_key),
                mask_secret(self.openweather_api_key),
                mask_secret(self.gemini_api_key),
            )
        )
