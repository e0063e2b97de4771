"""Utility helpers for the venue recommender."""

from __future__ import annotations

import math
import re
from typing import Optional


EARTH_RADIUS_M = 6_371_000.0
_FENCE_PATTERN = re.compile(r"```[A-Za-z]*\s*")


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    if not value:
        return "unset"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"


def strip_code_fences(text: str) -> str:
    """Remove markdown ``` fences (with or without a language tag) if present."""
    if not text:
        return text
    return _FENCE_PATTERN.sub("", text).strip()


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def sigmoid(x: float, midpoint: float = 0.0, steepness: float = 1.0) -> float:
    return 1.0 / (1.0 + math.exp(-steepness * (x - midpoint)))


def exponential_decay(value: float, half_life: float) -> float:
    return math.exp(-0.693 * value / half_life)


def fahrenheit_to_celsius(value: float) -> float:
    return (value - 32.0) * 5.0 / 9.0


def ms_to_mph(value: float) -> float:
    return value * 2.236936
