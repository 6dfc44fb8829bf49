"""Repository protocols used by the matching service.

The service depends only on these interfaces, so the SQL implementations
can be swapped for the in-memory ones in taxmatch.db.memory.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from taxmatch.schemas.candidate import Candidate
from taxmatch.schemas.criteria import MatchingCriteria
from taxmatch.schemas.diagnosis import Diagnosis
from taxmatch.schemas.match import MatchSnapshot


@runtime_checkable
class CandidateRepository(Protocol):
    """Source of eligible providers for a matching run."""

    def get_eligible_candidates(self) -> list[Candidate]:
        """Return active providers that accept new clients, fully enriched."""
        ...

    def get_display_names(self, ids: list[str]) -> dict[str, str]:
        """Return display names for the given provider ids, eligible or not."""
        ...


@runtime_checkable
class DiagnosisRepository(Protocol):
    """Storage for client diagnoses (the source of match snapshots)."""

    def save(
        self,
        user_id: str,
        answers: dict[str, Any],
        criteria: MatchingCriteria | None = None,
    ) -> tuple[Diagnosis, bool]:
        """Save a diagnosis. Returns (diagnosis, created)."""
        ...

    def get(self, diagnosis_id: str) -> Diagnosis | None:
        """Return a diagnosis by id, or None if unknown."""
        ...

    def get_latest_for_user(self, user_id: str) -> Diagnosis | None:
        """Return the user's most recent diagnosis, or None."""
        ...

    def count(self, from_date: datetime | None = None, to_date: datetime | None = None) -> int:
        """Count diagnoses created in the optional date range."""
        ...


@runtime_checkable
class MatchStore(Protocol):
    """Persistence for match snapshots, one per source id."""

    def replace(self, snapshot: MatchSnapshot) -> None:
        """Atomically replace all decisions stored for snapshot.source_id."""
        ...

    def insert_if_absent(self, snapshot: MatchSnapshot) -> bool:
        """Store the snapshot only if no decisions exist. Returns True if stored."""
        ...

    def get(self, source_id: str) -> MatchSnapshot | None:
        """Return the stored snapshot, or None if no decisions exist."""
        ...

    def list_scores(
        self,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> list[tuple[str, float]]:
        """Return (provider_id, composite_score) for stored decisions in range."""
        ...
