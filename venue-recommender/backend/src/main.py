from __future__ import annotations

from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from config import Configuration
from models import (
    FilterSettings,
    ImportanceWeights,
    LatLng,
    RecommendationRequest,
    RecommendationResult,
    ScoredVenue,
    UserPreferences,
    Venue,
    WeatherObservation,
)
from services.candidate_search import gather_venues, place_types_for_category, suitable_categories
from services.exposure import exposure_tracker
from services.places import GooglePlacesClient
from services.recommend import build_reranker, recommend
from services.scoring import derive_semantic_tags
from services.weather import OpenWeatherClient
from services.weather_context import build_weather_context

load_dotenv()

app = FastAPI(title="Weather-Aware Venue Recommender")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class LatLngPayload(BaseModel):
    lat: float
    lng: float


class WeatherObservationPayload(BaseModel):
    temperature: Optional[float] = None
    condition_code: Optional[int] = None
    timestamp: Optional[int] = None
    timezone_offset: int = 0
    description: str = ""
    feels_like: Optional[float] = None
    wind_speed: float = 0.0
    humidity: Optional[float] = None
    visibility_m: Optional[float] = None
    cloudiness: Optional[float] = None
    precipitating: Optional[bool] = None
    units: str = "metric"


class VenuePayload(BaseModel):
    id: str
    name: str
    location: Optional[LatLngPayload] = None
    types: List[str] = []
    rating: Optional[float] = Field(None, ge=0, le=5)
    review_count: Optional[int] = Field(None, ge=0)
    open_now: Optional[bool] = None
    price_level: Optional[int] = Field(None, ge=0, le=4)
    address: Optional[str] = None
    has_opening_hours: bool = False
    wheelchair_accessible: Optional[bool] = None


class FilterPayload(BaseModel):
    max_radius_km: Optional[float] = Field(None, ge=1, le=50)
    max_price_level: int = Field(4, ge=0, le=4)
    min_rating: float = Field(0.0, ge=0, le=5)
    open_now_only: bool = False
    accessibility_required: bool = False
    family_friendly: bool = False


class ImportancePayload(BaseModel):
    weather: float = Field(30.0, ge=0, le=100)
    distance: float = Field(20.0, ge=0, le=100)
    ratings: float = Field(25.0, ge=0, le=100)
    price: float = Field(15.0, ge=0, le=100)
    novelty: float = Field(10.0, ge=0, le=100)


class PreferencesPayload(BaseModel):
    radius_m: Optional[float] = None
    mood: Optional[str] = None
    favorites: List[str] = []
    blacklist: List[str] = []
    filters: FilterPayload = FilterPayload()
    importance: ImportancePayload = ImportancePayload()
    mood_presets: Optional[Dict[str, List[str]]] = None
    recent_venue_ids: List[str] = []


class RecommendationsPayload(BaseModel):
    weather_observation: Optional[WeatherObservationPayload] = None
    venues: Optional[List[VenuePayload]] = None
    user_location: Optional[LatLngPayload] = None
    preferences: Optional[PreferencesPayload] = None
    max_results: int = Field(20, description="Maximum venues to return")
    mood: Optional[str] = None
    session_id: Optional[str] = Field(None, description="Session ID for novelty tracking")


class NearbyPayload(BaseModel):
    lat: float
    lng: float
    categories: Optional[List[str]] = Field(None, description="Activity categories or place types; chosen from the weather when omitted")
    radius_m: Optional[float] = None
    preferences: Optional[PreferencesPayload] = None
    mood: Optional[str] = None
    max_results: int = 20
    session_id: Optional[str] = None


class DimensionPayload(BaseModel):
    name: str
    value: float
    weight: float
    contribution: float


class ScoredVenuePayload(BaseModel):
    id: str
    name: str
    location: Optional[LatLngPayload]
    types: List[str]
    rating: Optional[float]
    review_count: Optional[int]
    open_now: Optional[bool]
    price_level: Optional[int]
    address: Optional[str]
    semantic_tags: List[str]
    distance_meters: float
    computed_score: float
    percentile_rank: Optional[float]
    confidence_level: float
    dimensions: List[DimensionPayload]


class RecommendationsResponse(BaseModel):
    venues: List[ScoredVenuePayload]
    metadata: Dict[str, Any]


def _to_venue(p: VenuePayload) -> Venue:
    location = LatLng(lat=p.location.lat, lng=p.location.lng) if p.location else None
    return Venue(
        id=p.id,
        name=p.name,
        location=location,
        types=tuple(p.types),
        rating=p.rating,
        review_count=p.review_count,
        open_now=p.open_now,
        price_level=p.price_level,
        address=p.address,
        has_opening_hours=p.has_opening_hours,
        wheelchair_accessible=p.wheelchair_accessible,
        semantic_tags=derive_semantic_tags(p.types, p.rating, p.open_now),
    )


def _to_preferences(p: PreferencesPayload, location: LatLng, cfg: Configuration) -> UserPreferences:
    blacklist = set(p.blacklist)
    prefs = UserPreferences(
        location=location,
        radius_m=p.radius_m or cfg.default_radius_m,
        mood=p.mood,
        favorites=[t for t in p.favorites if t not in blacklist],
        blacklist=list(p.blacklist),
        filters=FilterSettings(**p.filters.model_dump()),
        importance=ImportanceWeights(**p.importance.model_dump()),
        recent_venue_ids=list(p.recent_venue_ids),
    )
    if p.mood_presets:
        prefs.mood_presets.update(p.mood_presets)
    return prefs


def _to_payload(item: ScoredVenue) -> ScoredVenuePayload:
    v = item.venue
    return ScoredVenuePayload(
        id=v.id,
        name=v.name,
        location=LatLngPayload(lat=v.location.lat, lng=v.location.lng) if v.location else None,
        types=list(v.types),
        rating=v.rating,
        review_count=v.review_count,
        open_now=v.open_now,
        price_level=v.price_level,
        address=v.address,
        semantic_tags=list(v.semantic_tags),
        distance_meters=round(item.distance_meters, 1),
        computed_score=round(item.computed_score, 2),
        percentile_rank=item.percentile_rank,
        confidence_level=round(item.breakdown.confidence_level, 3),
        dimensions=[
            DimensionPayload(name=d.name, value=round(d.value, 4), weight=round(d.weight, 4), contribution=round(d.contribution, 3))
            for d in item.breakdown.dimensions
        ],
    )


def _to_response(result: RecommendationResult) -> RecommendationsResponse:
    return RecommendationsResponse(venues=[_to_payload(v) for v in result.venues], metadata=result.metadata)


@app.get("/healthz")
def healthz() -> dict:
    cfg = Configuration.from_env()
    logger.info("cfg: {}", cfg.log_summary())
    return {"status": "ok"}


@app.post("/recommendations", response_model=RecommendationsResponse)
def recommendations(req: RecommendationsPayload) -> RecommendationsResponse:
    cfg = Configuration.from_env()
    try:
        location = LatLng(lat=req.user_location.lat, lng=req.user_location.lng) if req.user_location else None
        observation = WeatherObservation(**req.weather_observation.model_dump()) if req.weather_observation else None
        venues = [_to_venue(v) for v in req.venues] if req.venues is not None else None
        prefs = _to_preferences(req.preferences, location, cfg) if (req.preferences and location) else None

        result = recommend(
            cfg,
            RecommendationRequest(
                weather_observation=observation,
                candidate_venues=venues,
                user_location=location,
                preferences=prefs,
                max_results=req.max_results,
                mood=req.mood,
                session_id=req.session_id,
            ),
            reranker=build_reranker(cfg),
            exposure=exposure_tracker,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("recommendation failed: {}", exc)
        raise HTTPException(status_code=500, detail="internal error")
    return _to_response(result)


@app.post("/recommendations/nearby", response_model=RecommendationsResponse)
def recommendations_nearby(req: NearbyPayload) -> RecommendationsResponse:
    try:
        cfg = Configuration.from_env()
        cfg.require_places()
        cfg.require_openweather()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        location = LatLng(lat=req.lat, lng=req.lng)
        radius_m = req.radius_m or cfg.default_radius_m
        observation = OpenWeatherClient(cfg).current(req.lat, req.lng)
        places = GooglePlacesClient(cfg)
        categories = req.categories or suitable_categories(build_weather_context(observation))
        gathered = gather_venues(
            lambda category: places.search_nearby(req.lat, req.lng, radius_m, place_types_for_category(category)),
            categories,
            max_workers=cfg.gather_max_workers,
        )
        prefs = _to_preferences(req.preferences, location, cfg) if req.preferences else None

        result = recommend(
            cfg,
            RecommendationRequest(
                weather_observation=observation,
                candidate_venues=gathered.venues,
                user_location=location,
                preferences=prefs,
                max_results=req.max_results,
                mood=req.mood,
                session_id=req.session_id,
            ),
            reranker=build_reranker(cfg),
            exposure=exposure_tracker,
        )
        result.metadata["gather_errors"] = gathered.errors
        result.metadata["categories"] = list(categories)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("nearby recommendation failed: {}", exc)
        raise HTTPException(status_code=500, detail="internal error")
    return _to_response(result)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8010, reload=True)
