"""Weighted aggregation of factor scores into a composite match score."""

import math
from collections.abc import Iterable, Mapping

from taxmatch.config import FACTOR_WEIGHTS
from taxmatch.matching.scorers import SCORERS
from taxmatch.schemas.candidate import Candidate
from taxmatch.schemas.criteria import MatchingCriteria
from taxmatch.schemas.match import FactorResult, FactorType, ScoredCandidate


def validate_weights(weights: Mapping[str, float]) -> dict[FactorType, float]:
    """Check a weight table covers every factor and sums to 1.0.

    Args:
        weights: Mapping of factor name (or FactorType) to weight.

    Returns:
        Weights keyed by FactorType.

    Raises:
        ValueError: If a factor is missing, a weight is negative,
            or the weights do not sum to 1.0.
    """
    resolved = {FactorType(key): float(value) for key, value in weights.items()}

    missing = set(FactorType) - set(resolved)
    if missing:
        names = ", ".join(sorted(factor.value for factor in missing))
        raise ValueError(f"Missing weights for factors: {names}")

    if any(weight < 0 for weight in resolved.values()):
        raise ValueError("Factor weights must be non-negative")

    total = sum(resolved.values())
    if not math.isclose(total, 1.0, abs_tol=1e-9):
        raise ValueError(f"Factor weights must sum to 1.0, got {total}")

    return resolved


def compute_composite_score(
    results: Iterable[FactorResult],
    weights: Mapping[FactorType, float],
) -> float:
    """Combine factor scores into a composite score.

    Args:
        results: One FactorResult per factor.
        weights: Validated weights keyed by FactorType.

    Returns:
        Weighted sum clamped to [0, 100] and rounded to 2 decimals.
    """
    total = sum(result.score * weights[result.type] for result in results)
    return round(max(0.0, min(total, 100.0)), 2)


def collect_reasons(results: Iterable[FactorResult]) -> tuple[FactorResult, ...]:
    """Keep contributing factors, highest score first.

    Neutral results (no information available) and zero scores are dropped.
    The sort is stable, so equal scores keep evaluation order.
    """
    contributing = [r for r in results if r.score > 0 and not r.neutral]
    return tuple(sorted(contributing, key=lambda r: r.score, reverse=True))


def score_candidate(
    candidate: Candidate,
    criteria: MatchingCriteria,
    weights: Mapping[FactorType, float] | None = None,
) -> ScoredCandidate:
    """Run every factor scorer for one candidate and aggregate the results.

    Args:
        candidate: Provider snapshot.
        criteria: Client preferences.
        weights: Validated weights (defaults to the configured FACTOR_WEIGHTS).

    Returns:
        ScoredCandidate with composite score and sorted reasons.
    """
    if weights is None:
        weights = validate_weights(FACTOR_WEIGHTS)

    results = [scorer(candidate, criteria) for scorer in SCORERS]

    return ScoredCandidate(
        candidate_id=candidate.id,
        composite_score=compute_composite_score(results, weights),
        reasons=collect_reasons(results),
    )
