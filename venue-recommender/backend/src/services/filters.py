from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from models import UserPreferences, Venue

# Places that stay reachable regardless of opening hours.
ALWAYS_ACCESSIBLE_TYPES = frozenset(
    [
        "park",
        "playground",
        "hiking_area",
        "beach",
        "viewpoint",
        "tourist_attraction",
        "natural_feature",
        "campground",
        "dog_park",
        "garden",
        "plaza",
        "picnic_ground",
        "marina",
        "trail",
        "monument",
        "landmark",
        "stadium",
        "sports_complex",
        "golf_course",
    ]
)

NOT_FAMILY_FRIENDLY_TYPES = frozenset(["bar", "night_club", "casino", "liquor_store"])

REASON_LABELS = (
    ("blacklisted", "blacklisted"),
    ("rating_too_low", "below rating minimum"),
    ("too_expensive", "exceed budget"),
    ("too_far", "too far away"),
    ("closed", "currently closed"),
    ("not_accessible", "not wheelchair accessible"),
    ("not_family_friendly", "not family-friendly"),
)


@dataclass
class FilterStats:
    total: int = 0
    passed: int = 0
    filtered: int = 0
    reasons: Dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "passed": self.passed,
            "filtered": self.filtered,
            "reasons": dict(self.reasons),
        }


def apply_filters(
    venue: Venue,
    preferences: UserPreferences,
    distance_km: Optional[float] = None,
) -> Tuple[bool, Optional[str]]:
    """Check one venue against the hard filters. Returns (passed, reason)."""
    types = set(venue.types)
    filters = preferences.filters

    if preferences.blacklist and types.intersection(preferences.blacklist):
        return False, "blacklisted"

    if filters.min_rating > 0 and (not venue.rating or venue.rating < filters.min_rating):
        return False, "rating_too_low"

    if venue.price_level is not None and venue.price_level > filters.max_price_level:
        return False, "too_expensive"

    if distance_km is not None and filters.max_radius_km is not None and distance_km > filters.max_radius_km:
        return False, "too_far"

    if filters.open_now_only and not types.intersection(ALWAYS_ACCESSIBLE_TYPES):
        if venue.open_now is False:
            return False, "closed"

    if filters.accessibility_required and venue.wheelchair_accessible is not True:
        return False, "not_accessible"

    if filters.family_friendly and types.intersection(NOT_FAMILY_FRIENDLY_TYPES):
        return False, "not_family_friendly"

    return True, None


def filter_venues(
    venues: Sequence[Venue],
    preferences: UserPreferences,
    distances_km: Optional[Mapping[str, float]] = None,
) -> Tuple[List[Venue], FilterStats]:
    stats = FilterStats(total=len(venues))
    kept: list[Venue] = []
    for venue in venues:
        distance = distances_km.get(venue.id) if distances_km else None
        passed, reason = apply_filters(venue, preferences, distance)
        if passed:
            stats.passed += 1
            kept.append(venue)
            continue
        stats.filtered += 1
        if reason:
            stats.reasons[reason] = stats.reasons.get(reason, 0) + 1
    return kept, stats


def filter_summary(stats: FilterStats) -> List[str]:
    if stats.filtered == 0:
        return ["All places match your preferences"]

    lines = [f"{stats.filtered} places hidden by filters"]
    for key, label in REASON_LABELS:
        count = stats.reasons.get(key)
        if count:
            lines.append(f"{count} {label}")
    return lines
