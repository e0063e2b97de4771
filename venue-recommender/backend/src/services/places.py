from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

import requests
from loguru import logger

from config import Configuration
from models import LatLng, Venue
from services.opening_hours import resolve_open_status
from services.scoring import derive_semantic_tags
from services.transport import RetryPolicy, request_json

MAX_RADIUS_M = 50_000.0

FIELD_MASK = ",".join(
    [
        "places.id",
        "places.displayName",
        "places.formattedAddress",
        "places.location",
        "places.types",
        "places.primaryType",
        "places.rating",
        "places.userRatingCount",
        "places.priceLevel",
        "places.businessStatus",
        "places.currentOpeningHours",
        "places.regularOpeningHours",
        "places.utcOffsetMinutes",
        "places.accessibilityOptions",
    ]
)

PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}


class PlacesError(RuntimeError):
    pass


def parse_price_level(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value if 0 <= value <= 4 else None
    return PRICE_LEVELS.get(str(value))


def _venue_local_time(raw: Dict[str, Any], now: datetime) -> Optional[datetime]:
    offset = raw.get("utcOffsetMinutes")
    if not isinstance(offset, (int, float)):
        return None
    return (now + timedelta(minutes=offset)).replace(tzinfo=None)


def parse_place(raw: Dict[str, Any], *, now: Optional[datetime] = None) -> Optional[Venue]:
    """Map one searchNearby entry onto a Venue; entries without an id are skipped."""
    place_id = raw.get("id")
    if not place_id:
        return None

    now = now or datetime.now(timezone.utc)
    name = (raw.get("displayName") or {}).get("text") or "Unnamed place"
    loc = raw.get("location") or {}
    location = None
    if loc.get("latitude") is not None and loc.get("longitude") is not None:
        try:
            location = LatLng(lat=float(loc["latitude"]), lng=float(loc["longitude"]))
        except (TypeError, ValueError):
            logger.warning("place {} has malformed coordinates; leaving location unset", place_id)

    types: list[str] = [str(t) for t in raw.get("types") or []]
    primary = raw.get("primaryType")
    if primary:
        types = [primary] + [t for t in types if t != primary]

    rating = raw.get("rating") if isinstance(raw.get("rating"), (int, float)) else None
    review_count = raw.get("userRatingCount") if isinstance(raw.get("userRatingCount"), int) else None

    regular = raw.get("regularOpeningHours") or {}
    current = raw.get("currentOpeningHours") or {}
    open_now = resolve_open_status(
        regular.get("periods"),
        regular.get("weekdayDescriptions"),
        current.get("openNow"),
        raw.get("businessStatus"),
        _venue_local_time(raw, now),
    )
    accessibility = raw.get("accessibilityOptions") or {}
    wheelchair = accessibility.get("wheelchairAccessibleEntrance")

    return Venue(
        id=str(place_id),
        name=str(name),
        location=location,
        types=tuple(types),
        rating=(float(rating) if rating is not None else None),
        review_count=review_count,
        open_now=open_now,
        price_level=parse_price_level(raw.get("priceLevel")),
        address=raw.get("formattedAddress") or None,
        has_opening_hours=bool(regular.get("periods") or regular.get("weekdayDescriptions")),
        wheelchair_accessible=(wheelchair if isinstance(wheelchair, bool) else None),
        semantic_tags=derive_semantic_tags(types, rating, open_now),
    )


class GooglePlacesClient:
    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.base = cfg.places_base_url.rstrip("/")
        self.session = session or requests.Session()
        self.policy = RetryPolicy()

    def _post(self, path: str, body: dict) -> dict:
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.cfg.places_api_key or "",
            "X-Goog-FieldMask": FIELD_MASK,
        }
        return request_json(
            self.session,
            "POST",
            f"{self.base}{path}",
            error_cls=PlacesError,
            timeout=self.cfg.places_timeout,
            policy=self.policy,
            headers=headers,
            json=body,
        )

    def search_nearby(
        self,
        lat: float,
        lng: float,
        radius_m: float,
        place_types: Union[str, Sequence[str], None] = None,
    ) -> List[Venue]:
        if isinstance(place_types, str):
            place_types = [place_types]
        included = [t for t in (place_types or []) if t]
        body: Dict[str, Any] = {
            "maxResultCount": max(1, min(self.cfg.places_max_results, 20)),
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": lat, "longitude": lng},
                    "radius": max(1.0, min(float(radius_m), MAX_RADIUS_M)),
                }
            },
        }
        if included:
            body["includedTypes"] = included

        payload = self._post("/v1/places:searchNearby", body)
        now = datetime.now(timezone.utc)
        venues: list[Venue] = []
        for raw in payload.get("places") or []:
            venue = parse_place(raw, now=now)
            if venue is not None:
                venues.append(venue)
        logger.info("places searchNearby types={} -> {} venues", ",".join(included) or "*", len(venues))
        return venues
