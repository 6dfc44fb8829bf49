"""Service layer for taxmatch operations."""

from taxmatch.services.diagnosis_service import complete_diagnosis, generate_matches_best_effort
from taxmatch.services.match_service import MatchService
from taxmatch.services.stats_service import get_matching_stats

__all__ = [
    "MatchService",
    "complete_diagnosis",
    "generate_matches_best_effort",
    "get_matching_stats",
]
