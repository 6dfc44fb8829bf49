"""Tests for matching statistics."""

from datetime import timedelta

from taxmatch.db.connection import utc_now
from taxmatch.db.memory import InMemoryDiagnosisRepository, InMemoryMatchStore
from taxmatch.schemas.match import MatchDecision, MatchSnapshot
from taxmatch.services.stats_service import _score_bucket, get_matching_stats


def _snapshot(source_id, scores, created_at=None):
    return MatchSnapshot(
        source_id=source_id,
        run_id="run",
        decisions=tuple(
            MatchDecision(candidate_id=candidate_id, composite_score=score, rank=rank)
            for rank, (candidate_id, score) in enumerate(scores, start=1)
        ),
        created_at=created_at or utc_now(),
    )


class TestScoreBucket:
    def test_buckets(self):
        assert _score_bucket(72.5) == "70-79"
        assert _score_bucket(9.99) == "0-9"
        assert _score_bucket(100.0) == "100-109"


class TestGetMatchingStats:
    def test_empty(self):
        stats = get_matching_stats(InMemoryMatchStore(), InMemoryDiagnosisRepository())

        assert stats["total_matches"] == 0
        assert stats["match_rate"] == 0.0
        assert stats["average_matching_score"] == 0.0
        assert stats["success_rate"] == 0.0
        assert stats["top_matched_providers"] == []
        assert stats["score_distribution"] == []

    def test_summary(self):
        store = InMemoryMatchStore()
        diagnoses = InMemoryDiagnosisRepository()
        diagnoses.save("user-1", {})
        diagnoses.save("user-2", {})
        store.replace(_snapshot("diag-1", [("ta-1", 90.0), ("ta-2", 60.0)]))
        store.replace(_snapshot("diag-2", [("ta-1", 75.0), ("ta-3", 72.0)]))

        stats = get_matching_stats(store, diagnoses)

        assert stats["total_matches"] == 4
        assert stats["total_diagnoses"] == 2
        assert stats["match_rate"] == 2.0
        assert stats["average_matching_score"] == 74.25
        assert stats["success_rate"] == 75.0
        assert stats["top_matched_providers"][0] == {"provider_id": "ta-1", "count": 2}
        assert stats["score_distribution"] == [
            {"score_range": "90-99", "count": 1},
            {"score_range": "70-79", "count": 2},
            {"score_range": "60-69", "count": 1},
        ]

    def test_date_range(self):
        store = InMemoryMatchStore()
        store.replace(_snapshot("diag-old", [("ta-1", 50.0)], created_at=utc_now() - timedelta(days=30)))
        store.replace(_snapshot("diag-new", [("ta-2", 80.0)]))

        stats = get_matching_stats(
            store,
            InMemoryDiagnosisRepository(),
            from_date=utc_now() - timedelta(days=7),
        )

        assert stats["total_matches"] == 1
        assert stats["top_matched_providers"] == [{"provider_id": "ta-2", "count": 1}]
