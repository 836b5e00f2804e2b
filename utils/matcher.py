"""Nearest-neighbour search over fingerprint distance.

A linear scan: candidate sets are a few thousand images at most, and every
distance is a 64-bit popcount.
"""
import logging
from collections.abc import Iterable

from models.fingerprint import Fingerprint
from models.match_report import MatchResult

logger = logging.getLogger(__name__)


def find_best_match(
    query_id: str,
    query: Fingerprint,
    candidates: Iterable[tuple[str, Fingerprint]],
    max_distance: int | None = None,
    review_distance: int | None = None,
) -> MatchResult:
    """Return the candidate closest to `query`.

    Ties go to the first candidate in iteration order. The result is a
    no-match (candidate None) when `candidates` is empty or the best distance
    exceeds `max_distance`; in the latter case `distance` still reports it.
    """
    best_id: str | None = None
    best_distance: int | None = None
    for candidate_id, candidate in candidates:
        distance = query.distance(candidate)
        if best_distance is None or distance < best_distance:
            best_id, best_distance = candidate_id, distance

    if best_distance is None:
        return MatchResult(query=query_id)

    if max_distance is not None and best_distance > max_distance:
        logger.debug(
            "No match for %s: best %s at %d exceeds cutoff %d",
            query_id, best_id, best_distance, max_distance,
        )
        return MatchResult(query=query_id, distance=best_distance)

    return MatchResult(
        query=query_id,
        candidate=best_id,
        distance=best_distance,
        needs_review=review_distance is not None and best_distance > review_distance,
    )
