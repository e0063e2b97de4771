from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional, Sequence

from models import ScoredVenue


def _sort_key(item: ScoredVenue):
    venue = item.venue
    return (
        -item.computed_score,
        -(venue.rating or 0.0),
        -(venue.review_count or 0),
        venue.id,
    )


def percentile_rank(score: float, all_scores: Sequence[float]) -> float:
    """Share of the set scoring strictly lower, as 0-100."""
    if not all_scores:
        return 0.0
    below = sum(1 for s in all_scores if s < score)
    return below / len(all_scores) * 100.0


def rank_venues(scored: Iterable[ScoredVenue]) -> List[ScoredVenue]:
    """Deterministic ordering: score desc, then rating desc, review count desc, id asc.

    Returns new ScoredVenue values carrying their percentile rank; the input is untouched.
    """
    items = list(scored)
    scores = [item.computed_score for item in items]
    ranked: list[ScoredVenue] = []
    for item in sorted(items, key=_sort_key):
        breakdown = replace(item.breakdown, percentile_rank=percentile_rank(item.computed_score, scores))
        ranked.append(replace(item, breakdown=breakdown))
    return ranked


def select_diverse(ranked: Sequence[ScoredVenue], count: int) -> List[ScoredVenue]:
    count = max(0, count)
    selected: list[ScoredVenue] = []
    taken: set[str] = set()
    used_types: set[Optional[str]] = set()

    for item in ranked:
        if len(selected) >= count / 2:
            break
        primary = item.venue.primary_type
        if primary is not None and primary in used_types:
            continue
        selected.append(item)
        taken.add(item.id)
        used_types.add(primary)

    for item in ranked:
        if len(selected) >= count:
            break
        if item.id not in taken:
            selected.append(item)
            taken.add(item.id)

    return selected
