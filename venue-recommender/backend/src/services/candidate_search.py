from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

from loguru import logger

from models import Venue, WeatherContext

OUTDOOR_ACTIVE = "outdoor_active"
OUTDOOR_RELAX = "outdoor_relax"
INDOOR_ACTIVE = "indoor_active"
INDOOR_RELAX = "indoor_relax"
FOOD_DRINK = "food_drink"
SHOPPING = "shopping"
CULTURE_ENTERTAINMENT = "culture_entertainment"

CATEGORY_PLACE_TYPES: Dict[str, Tuple[str, ...]] = {
    OUTDOOR_ACTIVE: ("park", "hiking_area", "tourist_attraction", "stadium", "playground", "golf_course"),
    OUTDOOR_RELAX: (
        "park",
        "tourist_attraction",
        "zoo",
        "amusement_park",
        "garden",
        "picnic_ground",
        "plaza",
        "marina",
        "campground",
    ),
    INDOOR_ACTIVE: ("gym", "bowling_alley", "amusement_center", "skating_rink"),
    INDOOR_RELAX: (
        "movie_theater",
        "library",
        "cafe",
        "spa",
        "art_gallery",
        "museum",
        "book_store",
        "beauty_salon",
        "hair_care",
        "nail_salon",
        "aquarium",
    ),
    FOOD_DRINK: ("restaurant", "cafe", "bar", "meal_takeaway", "bakery", "food_court", "ice_cream_shop"),
    SHOPPING: (
        "shopping_mall",
        "book_store",
        "clothing_store",
        "department_store",
        "electronics_store",
        "furniture_store",
        "home_goods_store",
        "jewelry_store",
        "shoe_store",
        "pet_store",
        "convenience_store",
        "supermarket",
        "liquor_store",
    ),
    CULTURE_ENTERTAINMENT: (
        "museum",
        "art_gallery",
        "library",
        "movie_theater",
        "aquarium",
        "zoo",
        "tourist_attraction",
        "casino",
        "night_club",
        "performing_arts_theater",
        "amusement_park",
        "stadium",
        "convention_center",
    ),
}

# fetched in any weather
INDOOR_CATEGORIES = (FOOD_DRINK, SHOPPING, CULTURE_ENTERTAINMENT, INDOOR_RELAX, INDOOR_ACTIVE)

# feels-like thresholds in Celsius
TEMP_COLD = 5.0
TEMP_COOL = 15.0
TEMP_WARM = 25.0
TEMP_HOT = 30.0
WIND_HIGH_MPH = 22.4  # 10 m/s


def place_types_for_category(category: str) -> List[str]:
    """Place types searched for a category; an unknown name is taken as a single place type."""
    return list(CATEGORY_PLACE_TYPES.get(category, (category,)))


def suitable_categories(context: WeatherContext) -> List[str]:
    """Activity categories worth fetching in this weather.

    Indoor categories are always included. Outdoor ones are added only when it
    is dry, calm and mild, and dropped again in fog or extreme feels-like temperatures.
    """
    suitable = list(INDOOR_CATEGORIES)
    code = context.condition_code
    if code // 100 in (2, 3, 5, 6):
        return suitable

    feels = context.feels_like
    windy = context.wind_mph > WIND_HIGH_MPH
    clear = code == 800
    clouds = context.cloudiness if context.cloudiness is not None else 0.0

    outdoor_active = False
    if not windy and TEMP_COOL <= feels <= TEMP_HOT:
        outdoor_active = True
    elif not windy and feels > TEMP_HOT and clear:
        outdoor_active = True
    elif not windy and TEMP_COLD <= feels < TEMP_COOL and (clear or clouds < 50):
        outdoor_active = True

    outdoor_relax = False
    if not windy and TEMP_COOL <= feels <= TEMP_WARM:
        outdoor_relax = True
    elif TEMP_WARM < feels <= TEMP_HOT and (clear or clouds < 75):
        outdoor_relax = True
    elif not windy and TEMP_COLD <= feels < TEMP_COOL and clear:
        outdoor_relax = True

    if code // 100 == 7 and context.visibility_m is not None and context.visibility_m < 1000:
        outdoor_active = False
    if feels > 35 or feels < 0:
        outdoor_active = outdoor_relax = False

    if outdoor_active:
        suitable.append(OUTDOOR_ACTIVE)
    if outdoor_relax:
        suitable.append(OUTDOOR_RELAX)
    return suitable


@dataclass
class GatherResult:
    venues: List[Venue]
    errors: Dict[str, str] = field(default_factory=dict)


def dedupe_venues(items: Sequence[Venue]) -> List[Venue]:
    """First occurrence of each id wins."""
    seen: set[str] = set()
    out: list[Venue] = []
    for venue in items:
        if venue.id in seen:
            continue
        seen.add(venue.id)
        out.append(venue)
    return out


def gather_venues(
    fetch: Callable[[str], List[Venue]],
    categories: Sequence[str],
    max_workers: int = 6,
) -> GatherResult:
    """Call ``fetch`` once per category in parallel; a failing category never sinks the others."""
    categories = list(dict.fromkeys(c for c in categories if c))
    if not categories:
        return GatherResult(venues=[])

    per_category: Dict[str, List[Venue]] = {}
    errors: Dict[str, str] = {}
    workers = max(1, min(max_workers, len(categories)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_map = {executor.submit(fetch, category): category for category in categories}
        for future in as_completed(future_map):
            category = future_map[future]
            try:
                per_category[category] = list(future.result())
            except Exception as exc:  # each branch is isolated
                logger.warning("venue fetch failed for {}: {}", category, exc)
                errors[category] = str(exc)

    # concatenate in request order so de-duplication is deterministic
    combined: list[Venue] = []
    for category in categories:
        combined.extend(per_category.get(category, []))
    venues = dedupe_venues(combined)
    logger.info(
        "gathered {} venues from {} categories ({} failed)",
        len(venues),
        len(categories),
        len(errors),
    )
    return GatherResult(venues=venues, errors=errors)
