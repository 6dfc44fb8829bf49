"""Match service: the entry points of the matching engine.

This service handles:
- Scoring every eligible candidate against a client's criteria (in parallel)
- Ranking and persisting the result as a snapshot keyed by diagnosis id
- Regenerating a snapshot (atomic replace) or generating it once
- Reading stored snapshots in rank order

Repositories are injected, so the same pipeline runs against SQL storage
or the in-memory implementations.
"""

import logging
import threading
import uuid
from collections import Counter
from collections.abc import Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any

from taxmatch.config import DEFAULT_MATCH_LIMIT, FACTOR_WEIGHTS, SCORING_MAX_WORKERS
from taxmatch.db.base import CandidateRepository, DiagnosisRepository, MatchStore
from taxmatch.db.connection import utc_now
from taxmatch.matching.aggregator import score_candidate, validate_weights
from taxmatch.matching.ranker import rank_candidates
from taxmatch.schemas.candidate import Candidate
from taxmatch.schemas.criteria import MatchingCriteria
from taxmatch.schemas.diagnosis import Diagnosis
from taxmatch.schemas.match import MatchDecision, MatchSnapshot, ScoredCandidate
from taxmatch.utils import DiagnosisNotFoundError, InvalidCriteriaError, parse_criteria

logger = logging.getLogger(__name__)

CriteriaInput = MatchingCriteria | dict[str, Any] | None


def _check_limit(limit: int) -> None:
    if not isinstance(limit, int) or limit < 1:
        raise InvalidCriteriaError(f"limit must be a positive integer, got {limit!r}")


class MatchService:
    """Computes, stores and reads ranked provider matches."""

    def __init__(
        self,
        candidates: CandidateRepository,
        store: MatchStore,
        diagnoses: DiagnosisRepository,
        weights: Mapping[str, float] | None = None,
        max_workers: int = SCORING_MAX_WORKERS,
    ):
        self.candidates = candidates
        self.store = store
        self.diagnoses = diagnoses
        self.weights = validate_weights(weights if weights is not None else FACTOR_WEIGHTS)
        self.max_workers = max(1, max_workers)
        self._source_locks: dict[str, threading.Lock] = {}
        self._lock_holders: Counter[str] = Counter()
        self._locks_guard = threading.Lock()

    def compute(
        self,
        criteria: CriteriaInput,
        limit: int = DEFAULT_MATCH_LIMIT,
    ) -> list[MatchDecision]:
        """Run the matching pipeline without persisting anything.

        Args:
            criteria: Client preferences (model, dict or None).
            limit: Maximum number of decisions.

        Returns:
            Ranked decisions.

        Raises:
            InvalidCriteriaError: If criteria or limit are invalid.
        """
        criteria = parse_criteria(criteria)
        _check_limit(limit)

        candidates = self.candidates.get_eligible_candidates()
        if not candidates:
            logger.warning("No eligible candidates found")
            return []

        logger.info(f"Scoring {len(candidates)} candidates...")
        scored = self._score_all(candidates, criteria)

        decisions = rank_candidates(scored, limit=limit)
        logger.info(f"Ranked {len(decisions)} matches from {len(scored)} scored candidates")
        return decisions

    def regenerate(
        self,
        source_id: str,
        criteria: CriteriaInput = None,
        limit: int = DEFAULT_MATCH_LIMIT,
    ) -> list[MatchDecision]:
        """Recompute matches for a diagnosis and replace the stored snapshot.

        Concurrent regenerations for the same source are serialized; the last
        writer wins and readers never see a partially replaced snapshot.

        Args:
            source_id: Diagnosis id.
            criteria: Criteria to use; None reuses the diagnosis's preferences.
            limit: Maximum number of decisions.

        Returns:
            The newly stored decisions in rank order.

        Raises:
            DiagnosisNotFoundError: If the diagnosis does not exist.
            InvalidCriteriaError: If criteria or limit are invalid.
            MatchStoreError: If the snapshot could not be written.
        """
        diagnosis = self._get_diagnosis(source_id)
        resolved = self._resolve_criteria(diagnosis, criteria)
        _check_limit(limit)

        with self._source_lock(source_id):
            decisions = self.compute(resolved, limit)
            self.store.replace(self._snapshot(source_id, decisions))

        logger.info(f"Matches regenerated for {source_id}: {len(decisions)} stored")
        return decisions

    def generate_if_absent(
        self,
        source_id: str,
        criteria: CriteriaInput = None,
        limit: int = DEFAULT_MATCH_LIMIT,
    ) -> list[MatchDecision]:
        """Compute and store matches only if none are stored yet.

        Args:
            source_id: Diagnosis id.
            criteria: Criteria to use; None reuses the diagnosis's preferences.
            limit: Maximum number of decisions.

        Returns:
            The stored decisions (existing ones if a snapshot was present).

        Raises:
            DiagnosisNotFoundError: If the diagnosis does not exist.
            InvalidCriteriaError: If criteria or limit are invalid.
            MatchStoreError: If the snapshot could not be written.
        """
        diagnosis = self._get_diagnosis(source_id)
        resolved = self._resolve_criteria(diagnosis, criteria)
        _check_limit(limit)

        with self._source_lock(source_id):
            existing = self.store.get(source_id)
            if existing is not None:
                logger.info(f"Matches already exist for {source_id}, skipping generation")
                return list(existing.decisions)

            decisions = self.compute(resolved, limit)
            if not self.store.insert_if_absent(self._snapshot(source_id, decisions)):
                # Another process stored a snapshot first
                existing = self.store.get(source_id)
                return list(existing.decisions) if existing is not None else []

        logger.info(f"Matches generated for {source_id}: {len(decisions)} stored")
        return decisions

    def read(self, source_id: str) -> list[MatchDecision]:
        """Return stored decisions for a diagnosis in rank order.

        Raises:
            DiagnosisNotFoundError: If the diagnosis does not exist.
        """
        self._get_diagnosis(source_id)
        snapshot = self.store.get(source_id)
        if snapshot is None:
            return []
        return sorted(snapshot.decisions, key=lambda d: d.rank)

    def recommend_for_user(self, user_id: str, limit: int = DEFAULT_MATCH_LIMIT) -> list[MatchDecision]:
        """Return matches for the user's latest diagnosis, generating them if needed.

        Raises:
            DiagnosisNotFoundError: If the user has no diagnosis.
        """
        _check_limit(limit)
        latest = self.diagnoses.get_latest_for_user(user_id)
        if latest is None:
            raise DiagnosisNotFoundError(f"latest diagnosis of user {user_id}")

        decisions = self.read(latest.id)
        if not decisions and latest.criteria is not None:
            decisions = self.generate_if_absent(latest.id, limit=limit)

        return decisions[:limit]

    def _score_all(
        self,
        candidates: list[Candidate],
        criteria: MatchingCriteria,
    ) -> list[ScoredCandidate]:
        """Score candidates in parallel, excluding any whose scoring fails."""
        workers = min(self.max_workers, len(candidates))
        scored = []

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                (candidate, executor.submit(score_candidate, candidate, criteria, self.weights))
                for candidate in candidates
            ]
            for candidate, future in futures:
                try:
                    scored.append(future.result())
                except Exception:
                    logger.exception(
                        f"Scoring failed for candidate {candidate.id}, excluding it from ranking"
                    )

        return scored

    def _get_diagnosis(self, source_id: str) -> Diagnosis:
        diagnosis = self.diagnoses.get(source_id)
        if diagnosis is None:
            raise DiagnosisNotFoundError(source_id)
        return diagnosis

    def _resolve_criteria(self, diagnosis: Diagnosis, criteria: CriteriaInput) -> MatchingCriteria:
        if criteria is not None:
            return parse_criteria(criteria)
        return diagnosis.criteria or MatchingCriteria()

    def _snapshot(self, source_id: str, decisions: list[MatchDecision]) -> MatchSnapshot:
        return MatchSnapshot(
            source_id=source_id,
            run_id=uuid.uuid4().hex,
            decisions=tuple(decisions),
            created_at=utc_now(),
        )

    @contextmanager
    def _source_lock(self, source_id: str) -> Iterator[None]:
        """Serialize writers for one source; the entry is dropped with its last holder."""
        with self._locks_guard:
            lock = self._source_locks.setdefault(source_id, threading.Lock())
            self._lock_holders[source_id] += 1
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                self._lock_holders[source_id] -= 1
                if self._lock_holders[source_id] == 0:
                    del self._lock_holders[source_id]
                    del self._source_locks[source_id]
