"""Resolve the tri-state open-now flag from provider opening-hours data.

Order of trust: business status, structured periods, weekday description text,
then the provider's own ``openNow`` only when it says closed.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

CLOSED_STATUSES = {"CLOSED_PERMANENTLY", "CLOSED_TEMPORARILY"}
DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_RANGE_12H = re.compile(
    r"(\d{1,2}):(\d{2})\s*(AM|PM)\s*[–-]\s*(\d{1,2}):(\d{2})\s*(AM|PM)",
    re.IGNORECASE,
)


def _provider_day(moment: datetime) -> int:
    # provider periods count days from Sunday = 0
    return (moment.weekday() + 1) % 7


def _point_minutes(point: Dict[str, Any]) -> int:
    return int(point.get("hour", 0)) * 60 + int(point.get("minute", 0))


def open_from_periods(periods: Sequence[Dict[str, Any]], moment: datetime) -> Optional[bool]:
    if not periods:
        return None

    day = _provider_day(moment)
    now_min = moment.hour * 60 + moment.minute

    if len(periods) == 1 and periods[0].get("open") and not periods[0].get("close"):
        return True  # open around the clock

    for period in periods:
        opening = period.get("open")
        if not opening:
            continue
        closing = period.get("close")
        open_day = int(opening.get("day", -1))
        if not closing:
            if open_day == day:
                return True
            continue

        close_day = int(closing.get("day", -1))
        open_min = _point_minutes(opening)
        close_min = _point_minutes(closing)
        if open_day == close_day:
            if open_day == day and open_min <= now_min < close_min:
                return True
        else:
            # overnight span
            if day == open_day and now_min >= open_min:
                return True
            if day == close_day and now_min < close_min:
                return True
    return False


def _to_24h(hour: int, meridiem: str) -> int:
    meridiem = meridiem.upper()
    if meridiem == "PM" and hour != 12:
        return hour + 12
    if meridiem == "AM" and hour == 12:
        return 0
    return hour


def _description_for(descriptions: Sequence[str], moment: datetime) -> Optional[str]:
    name = DAY_NAMES[moment.weekday()]
    for line in descriptions:
        if line.lower().startswith(name):
            return line
    if len(descriptions) == 7:
        return descriptions[moment.weekday()]
    return None


def open_from_descriptions(descriptions: Sequence[str], moment: datetime) -> Optional[bool]:
    """Best-effort parse of lines like ``"Monday: 9:00 AM – 5:00 PM"``."""
    if not descriptions:
        return None
    today = _description_for(descriptions, moment)
    if not today:
        return None

    lower = today.lower()
    if "closed" in lower:
        return False
    if "24 hours" in lower:
        return True

    match = _RANGE_12H.search(today)
    if not match:
        return None
    open_h, open_m, open_mer, close_h, close_m, close_mer = match.groups()
    open_min = _to_24h(int(open_h), open_mer) * 60 + int(open_m)
    close_min = _to_24h(int(close_h), close_mer) * 60 + int(close_m)
    now_min = moment.hour * 60 + moment.minute

    if open_min < close_min:
        return open_min <= now_min < close_min
    return now_min >= open_min or now_min < close_min


def resolve_open_status(
    periods: Optional[List[Dict[str, Any]]],
    weekday_descriptions: Optional[List[str]],
    open_now: Optional[bool],
    business_status: Optional[str],
    local_time: Optional[datetime],
) -> Optional[bool]:
    """True / False / None (unknown). ``local_time`` is wall-clock time at the venue."""
    if business_status in CLOSED_STATUSES:
        return False

    if local_time is not None:
        if periods:
            computed = open_from_periods(periods, local_time)
            if computed is not None:
                if open_now is not None and open_now != computed:
                    logger.debug("provider openNow={} disagrees with periods ({})", open_now, computed)
                return computed
        if weekday_descriptions:
            parsed = open_from_descriptions(weekday_descriptions, local_time)
            if parsed is not None:
                return parsed

    # an unverified "open" is treated as unknown
    if open_now is False:
        return False
    return None
