"""Aggregate statistics over stored match snapshots."""

from collections import Counter
from datetime import datetime
from typing import Any

from taxmatch.config import HIGH_QUALITY_SCORE
from taxmatch.db.base import DiagnosisRepository, MatchStore

TOP_PROVIDERS_LIMIT = 10


def _score_bucket(score: float) -> str:
    """Label a score with its 10-point bucket, e.g. 72.5 -> '70-79'."""
    lower = min(int(score // 10) * 10, 100)
    return f"{lower}-{lower + 9}"


def get_matching_stats(
    store: MatchStore,
    diagnoses: DiagnosisRepository,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> dict[str, Any]:
    """Summarize stored matches within an optional date range.

    Args:
        store: Match store to read decisions from.
        diagnoses: Diagnosis repository for the diagnosis count.
        from_date: Include only matches created at or after this time.
        to_date: Include only matches created at or before this time.

    Returns:
        Dict with total_matches, total_diagnoses, match_rate,
        average_matching_score, success_rate (percent of matches scoring
        at least HIGH_QUALITY_SCORE), top_matched_providers and
        score_distribution.
    """
    scores = store.list_scores(from_date, to_date)
    total_diagnoses = diagnoses.count(from_date, to_date)
    total_matches = len(scores)

    high_quality = sum(1 for _, score in scores if score >= HIGH_QUALITY_SCORE)
    provider_counts = Counter(provider_id for provider_id, _ in scores)
    buckets = Counter(_score_bucket(score) for _, score in scores)

    return {
        "total_matches": total_matches,
        "total_diagnoses": total_diagnoses,
        "match_rate": total_matches / total_diagnoses if total_diagnoses else 0.0,
        "average_matching_score": (
            round(sum(score for _, score in scores) / total_matches, 2) if total_matches else 0.0
        ),
        "success_rate": high_quality / total_matches * 100 if total_matches else 0.0,
        "top_matched_providers": [
            {"provider_id": provider_id, "count": count}
            for provider_id, count in sorted(
                provider_counts.items(), key=lambda item: (-item[1], item[0])
            )[:TOP_PROVIDERS_LIMIT]
        ],
        "score_distribution": [
            {"score_range": bucket, "count": buckets[bucket]}
            for bucket in sorted(buckets, key=lambda b: int(b.split("-")[0]), reverse=True)
        ],
    }
