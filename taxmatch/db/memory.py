"""In-memory repositories for tests and embedding without a database."""

import threading
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from taxmatch.config import DIAGNOSIS_REUSE_HOURS
from taxmatch.db.connection import utc_now
from taxmatch.schemas.candidate import Candidate
from taxmatch.schemas.criteria import MatchingCriteria
from taxmatch.schemas.diagnosis import Diagnosis
from taxmatch.schemas.match import MatchSnapshot


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _in_range(value: datetime, from_date: datetime | None, to_date: datetime | None) -> bool:
    if from_date is not None and value < _aware(from_date):
        return False
    if to_date is not None and value > _aware(to_date):
        return False
    return True


class InMemoryCandidateRepository:
    """Serves a fixed candidate pool."""

    def __init__(self, candidates: list[Candidate] | None = None):
        self.candidates = list(candidates or [])

    def get_eligible_candidates(self) -> list[Candidate]:
        return list(self.candidates)

    def get_display_names(self, ids: list[str]) -> dict[str, str]:
        wanted = set(ids)
        return {c.id: c.display_name for c in self.candidates if c.id in wanted and c.display_name}


class InMemoryDiagnosisRepository:
    """Diagnosis repository kept in a dict."""

    def __init__(self):
        self._diagnoses: dict[str, Diagnosis] = {}
        self._lock = threading.Lock()

    def add(self, diagnosis: Diagnosis) -> Diagnosis:
        """Insert a diagnosis as-is (test helper)."""
        with self._lock:
            self._diagnoses[diagnosis.id] = diagnosis
        return diagnosis

    def save(
        self,
        user_id: str,
        answers: dict[str, Any],
        criteria: MatchingCriteria | None = None,
    ) -> tuple[Diagnosis, bool]:
        now = utc_now()
        since = now - timedelta(hours=DIAGNOSIS_REUSE_HOURS)

        with self._lock:
            recent = [
                d for d in self._diagnoses.values()
                if d.user_id == user_id and d.created_at >= since
            ]
            if recent:
                existing = max(recent, key=lambda d: d.created_at)
                updated = existing.model_copy(
                    update={
                        "answers": answers,
                        "criteria": criteria if criteria is not None else existing.criteria,
                        "completed_at": now,
                    }
                )
                self._diagnoses[updated.id] = updated
                return updated, False

            diagnosis = Diagnosis(
                id=str(uuid.uuid4()),
                user_id=user_id,
                answers=answers,
                criteria=criteria,
                created_at=now,
                completed_at=now,
            )
            self._diagnoses[diagnosis.id] = diagnosis
            return diagnosis, True

    def get(self, diagnosis_id: str) -> Diagnosis | None:
        return self._diagnoses.get(diagnosis_id)

    def get_latest_for_user(self, user_id: str) -> Diagnosis | None:
        mine = [d for d in self._diagnoses.values() if d.user_id == user_id]
        return max(mine, key=lambda d: d.created_at) if mine else None

    def count(self, from_date: datetime | None = None, to_date: datetime | None = None) -> int:
        return sum(
            1 for d in self._diagnoses.values() if _in_range(d.created_at, from_date, to_date)
        )


class InMemoryMatchStore:
    """Match store kept in a dict of immutable snapshots.

    Replacing a snapshot swaps the whole object under a lock, so readers
    never observe a mix of two runs.
    """

    def __init__(self):
        self._snapshots: dict[str, MatchSnapshot] = {}
        self._lock = threading.Lock()

    def replace(self, snapshot: MatchSnapshot) -> None:
        with self._lock:
            if snapshot.decisions:
                self._snapshots[snapshot.source_id] = snapshot
            else:
                self._snapshots.pop(snapshot.source_id, None)

    def insert_if_absent(self, snapshot: MatchSnapshot) -> bool:
        with self._lock:
            if snapshot.source_id in self._snapshots:
                return False
            if snapshot.decisions:
                self._snapshots[snapshot.source_id] = snapshot
            return True

    def get(self, source_id: str) -> MatchSnapshot | None:
        return self._snapshots.get(source_id)

    def list_scores(
        self,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> list[tuple[str, float]]:
        with self._lock:
            snapshots = list(self._snapshots.values())
        return [
            (decision.candidate_id, decision.composite_score)
            for snapshot in snapshots
            if _in_range(snapshot.created_at, from_date, to_date)
            for decision in snapshot.decisions
        ]
