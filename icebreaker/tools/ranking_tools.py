"""Final ranking of scored matches."""

from __future__ import annotations

from icebreaker.models import MatchResult


def _rank_key(result: MatchResult) -> tuple[float, float, str]:
    return (-result.compatibility_score, result.distance, result.user.id)


def aggregate_matches(
    results: list[MatchResult],
    min_score: float = 0.3,
    max_results: int = 20,
) -> list[MatchResult]:
    """Drop matches below ``min_score``, best first, at most ``max_results``.

    Ties are broken by distance, then user id, so the order is stable
    across runs and re-aggregating the output returns it unchanged.
    """

    kept = [r for r in results if r.compatibility_score >= min_score]
    kept.sort(key=_rank_key)
    return kept[: max(max_results, 0)]
