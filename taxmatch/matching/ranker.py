"""Ranking of scored candidates into match decisions."""

from collections.abc import Iterable

from taxmatch.config import DEFAULT_MATCH_LIMIT
from taxmatch.schemas.match import MatchDecision, ScoredCandidate


def rank_candidates(
    scored: Iterable[ScoredCandidate],
    limit: int = DEFAULT_MATCH_LIMIT,
) -> list[MatchDecision]:
    """Rank scored candidates and keep the top matches.

    Candidates with a composite score of 0 carry no signal and are dropped.
    Ties on score are broken by candidate id ascending so the ranking is
    deterministic for a given candidate pool.

    Args:
        scored: Aggregated scores for every candidate in the run.
        limit: Maximum number of decisions to return.

    Returns:
        MatchDecision list with dense ranks 1..N in rank order.

    Raises:
        ValueError: If limit is less than 1.
    """
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")

    eligible = [s for s in scored if s.composite_score > 0]
    eligible.sort(key=lambda s: (-s.composite_score, s.candidate_id))

    return [
        MatchDecision(
            candidate_id=s.candidate_id,
            composite_score=s.composite_score,
            reasons=s.reasons,
            rank=rank,
        )
        for rank, s in enumerate(eligible[:limit], start=1)
    ]
