"""AI reranking of the top-ranked venues with deterministic fallback.

The orchestrator moves ``IDLE -> REQUESTING -> (SUCCEEDED | FAILED) -> FINALIZED``.
Whatever the capability does (raise, hang, return junk), ``run`` returns a
usable ordering: the validated AI order on success, the ranker's order otherwise.
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Tuple

from loguru import logger

from models import RerankResult, ScoredVenue
from utils import strip_code_fences

try:
    from google import genai
    from google.genai import types as genai_types
    GEMINI_AVAILABLE = True
except ImportError:  # pragma: no cover
    genai = None  # type: ignore[assignment]
    genai_types = None  # type: ignore[assignment]
    GEMINI_AVAILABLE = False

try:
    from sentence_transformers import CrossEncoder
except ImportError:  # pragma: no cover
    CrossEncoder = None  # type: ignore[assignment]


class RerankError(RuntimeError):
    pass


class RerankState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    FINALIZED = "finalized"


class RerankCapability(Protocol):
    def rerank(
        self,
        candidates: Sequence[ScoredVenue],
        weather_summary: str,
        user_context: Optional[str] = None,
    ) -> RerankResult: ...


def parse_rerank_response(text: str) -> RerankResult:
    """Accept only a JSON array of strings, optionally wrapped in markdown fences."""
    cleaned = strip_code_fences((text or "").strip())
    try:
        parsed = json.loads(cleaned)
    except (TypeError, ValueError) as exc:
        return RerankResult(success=False, error=f"invalid json: {exc}")
    if not isinstance(parsed, list):
        return RerankResult(success=False, error="response is not an array")
    if not all(isinstance(item, str) for item in parsed):
        return RerankResult(success=False, error="array contains non-string elements")
    return RerankResult(success=True, venue_ids=tuple(parsed))


def _describe(index: int, item: ScoredVenue) -> str:
    venue = item.venue
    rating = f"{venue.rating}/5" if venue.rating is not None else "No rating"
    price = "$" * venue.price_level if venue.price_level else "Price unknown"
    if venue.open_now is None:
        status = "Hours unknown"
    else:
        status = "Open now" if venue.open_now else "Closed"
    return (
        f"{index}. {venue.name} (ID: {venue.id})\n"
        f"   - Address: {venue.address or 'N/A'}\n"
        f"   - Rating: {rating} ({venue.review_count or 0} reviews)\n"
        f"   - Price: {price}\n"
        f"   - Types: {', '.join(venue.types[:3]) or 'N/A'}\n"
        f"   - Status: {status}\n"
        f"   - Tags: {', '.join(venue.semantic_tags) or 'N/A'}\n"
        f"   - Distance: {item.distance_meters:.0f} m\n"
        f"   - Score: {item.computed_score:.2f}"
    )


def build_rerank_prompt(
    candidates: Sequence[ScoredVenue],
    weather_summary: str,
    user_context: Optional[str] = None,
) -> str:
    venues = "\n\n".join(_describe(i + 1, item) for i, item in enumerate(candidates))
    context = f"\nUser context: {user_context}\n" if user_context else ""
    return (
        "You are a local activity recommendation expert. Given the current weather, re-order these "
        "venues by which would offer the best experience for the user right now.\n\n"
        f"Current weather: {weather_summary}\n"
        f"{context}\n"
        f"Venues to rank:\n{venues}\n\n"
        "Guidelines:\n"
        "1. Prefer indoor venues in bad weather (rain, snow, extreme cold or heat).\n"
        "2. Prefer outdoor and scenic venues in pleasant weather.\n"
        "3. Take into account whether the place is currently open.\n"
        "4. Balance weather fit with overall quality (ratings).\n\n"
        "Respond with ONLY a JSON array of venue IDs in your preferred order, no explanation and no "
        'markdown. Example: ["id_1", "id_2", "id_3"]'
    )


class GeminiRerankCapability:
    def __init__(
        self,
        api_key: Optional[str],
        model_id: str = "gemini-2.5-flash-lite",
        timeout: float = 8.0,
    ) -> None:
        self.api_key = api_key
        self.model_id = model_id
        self.timeout = timeout
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            if not GEMINI_AVAILABLE:
                raise RerankError("google-genai is not installed")
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=genai_types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._client

    def rerank(
        self,
        candidates: Sequence[ScoredVenue],
        weather_summary: str,
        user_context: Optional[str] = None,
    ) -> RerankResult:
        if not self.api_key:
            return RerankResult(success=False, error="API key not configured")
        if not candidates:
            return RerankResult(success=True)

        client = self._ensure_client()
        response = client.models.generate_content(
            model=self.model_id,
            contents=build_rerank_prompt(candidates, weather_summary, user_context),
        )
        return parse_rerank_response(response.text or "")


class CrossEncoderRerankCapability:
    """Scores each venue document against a weather/mood query with a local cross-encoder."""

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name
        self._model = None

    def _ensure_model(self) -> None:
        if self._model is None:
            if CrossEncoder is None:
                raise RerankError("sentence-transformers is not installed")
            self._model = CrossEncoder(self.model_name)

    @staticmethod
    def build_query(weather_summary: str, user_context: Optional[str]) -> str:
        parts = [f"Best place to go right now: {weather_summary}"]
        if user_context:
            parts.append(f"Mood: {user_context}")
        return " | ".join(parts)

    @staticmethod
    def build_document(item: ScoredVenue) -> str:
        venue = item.venue
        snippets = [
            venue.name,
            ", ".join(venue.types[:3]),
            ", ".join(venue.semantic_tags),
            venue.address or "",
        ]
        return " | ".join(filter(None, snippets))

    def rerank(
        self,
        candidates: Sequence[ScoredVenue],
        weather_summary: str,
        user_context: Optional[str] = None,
    ) -> RerankResult:
        if not candidates:
            return RerankResult(success=True)
        self._ensure_model()
        assert self._model is not None
        query = self.build_query(weather_summary, user_context)
        pairs = [[query, self.build_document(item)] for item in candidates]
        scores = self._model.predict(pairs)
        scores = scores.tolist() if hasattr(scores, "tolist") else list(scores)
        order = sorted(range(len(candidates)), key=lambda i: -float(scores[i]))
        return RerankResult(success=True, venue_ids=tuple(candidates[i].id for i in order))


@dataclass(frozen=True)
class RerankOutcome:
    venues: List[ScoredVenue]
    applied: bool
    state: RerankState
    error: Optional[str] = None
    transitions: Tuple[RerankState, ...] = ()


def validate_ids(returned: Sequence[str], candidates: Sequence[ScoredVenue]) -> List[str]:
    """Keep ids present in the candidate set, first occurrence only."""
    known = {item.id for item in candidates}
    seen: set[str] = set()
    valid: list[str] = []
    for vid in returned:
        if vid in known and vid not in seen:
            seen.add(vid)
            valid.append(vid)
    return valid


def reorder(ranked: Sequence[ScoredVenue], valid_ids: Sequence[str], top_k: int) -> List[ScoredVenue]:
    """Validated ids first, then unmentioned top-K in ranker order, then the tail beyond K."""
    head = list(ranked[:top_k])
    by_id = {item.id: item for item in head}
    mentioned = set(valid_ids)
    ordered = [by_id[vid] for vid in valid_ids]
    ordered.extend(item for item in head if item.id not in mentioned)
    ordered.extend(ranked[top_k:])
    return ordered


class RerankOrchestrator:
    def __init__(self, capability: RerankCapability, top_k: int = 15, timeout: float = 8.0) -> None:
        self.capability = capability
        self.top_k = max(1, top_k)
        self.timeout = timeout

    def _call(self, candidates: List[ScoredVenue], weather_summary: str, user_context: Optional[str]) -> RerankResult:
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.capability.rerank, candidates, weather_summary, user_context)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise RerankError(f"timed out after {self.timeout:.1f}s")
        finally:
            # never block on a hung provider call
            executor.shutdown(wait=False)

    def run(
        self,
        ranked: Sequence[ScoredVenue],
        weather_summary: str,
        user_context: Optional[str] = None,
    ) -> RerankOutcome:
        ranked = list(ranked)
        transitions = [RerankState.IDLE]
        if not ranked:
            transitions += [RerankState.SUCCEEDED, RerankState.FINALIZED]
            return RerankOutcome(ranked, applied=False, state=RerankState.SUCCEEDED, transitions=tuple(transitions))

        candidates = ranked[: self.top_k]
        transitions.append(RerankState.REQUESTING)
        error: Optional[str] = None
        valid: list[str] = []
        try:
            result = self._call(candidates, weather_summary, user_context)
            if not result.success:
                error = result.error or "rerank failed"
            else:
                valid = validate_ids(result.venue_ids, candidates)
                if not valid:
                    error = "no valid venue ids in rerank response"
        except Exception as exc:  # any provider failure degrades to ranker order
            error = str(exc) or exc.__class__.__name__

        if error is not None:
            logger.warning("rerank fallback to deterministic order: {}", error)
            transitions += [RerankState.FAILED, RerankState.FINALIZED]
            return RerankOutcome(
                ranked,
                applied=False,
                state=RerankState.FAILED,
                error=error,
                transitions=tuple(transitions),
            )

        logger.info("rerank applied to {} of {} venues", len(valid), len(candidates))
        transitions += [RerankState.SUCCEEDED, RerankState.FINALIZED]
        return RerankOutcome(
            reorder(ranked, valid, self.top_k),
            applied=True,
            state=RerankState.SUCCEEDED,
            transitions=tuple(transitions),
        )
