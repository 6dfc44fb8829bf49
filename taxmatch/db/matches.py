"""Match snapshot persistence.

A snapshot is stored as one match_results row per ranked decision and one
match_reasons row per reason. Writes replace every row for a source id inside
a single transaction, so readers see either the previous snapshot or the new
one in full.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from taxmatch.db.connection import (
    DB_ERRORS,
    DatabaseConnection,
    from_db_timestamp,
    get_connection,
    to_db_timestamp,
)
from taxmatch.schemas.match import FactorResult, FactorType, MatchDecision, MatchSnapshot
from taxmatch.utils import MatchStoreError

logger = logging.getLogger(__name__)


class SqlMatchStore:
    """Match store backed by the match_results and match_reasons tables."""

    def __init__(self, connect: Callable = get_connection):
        self._connect = connect

    def replace(self, snapshot: MatchSnapshot) -> None:
        """Atomically replace the stored snapshot for snapshot.source_id.

        Args:
            snapshot: Newly computed snapshot.

        Raises:
            MatchStoreError: If the write fails. The previous snapshot is
                left untouched.
        """
        try:
            with self._connect() as db:
                with db.transaction(lock_key=snapshot.source_id):
                    cursor = db.cursor()
                    self._delete(cursor, db.placeholder, snapshot.source_id)
                    self._insert_snapshot(db, cursor, snapshot)
        except DB_ERRORS as e:
            raise MatchStoreError(
                f"Failed to store matches for {snapshot.source_id}: {e}"
            ) from e

        logger.info(
            f"Stored {len(snapshot.decisions)} matches for {snapshot.source_id} "
            f"(run {snapshot.run_id})"
        )

    def insert_if_absent(self, snapshot: MatchSnapshot) -> bool:
        """Store the snapshot only when no decisions exist for its source.

        Args:
            snapshot: Newly computed snapshot.

        Returns:
            True if the snapshot was stored, False if one already existed.

        Raises:
            MatchStoreError: If the write fails.
        """
        try:
            with self._connect() as db:
                with db.transaction(lock_key=snapshot.source_id):
                    cursor = db.cursor()
                    ph = db.placeholder
                    cursor.execute(
                        f"SELECT COUNT(*) FROM match_results WHERE source_id = {ph}",
                        (snapshot.source_id,),
                    )
                    if cursor.fetchone()[0] > 0:
                        return False
                    self._insert_snapshot(db, cursor, snapshot)
        except DB_ERRORS as e:
            raise MatchStoreError(
                f"Failed to store matches for {snapshot.source_id}: {e}"
            ) from e

        return True

    def get(self, source_id: str) -> MatchSnapshot | None:
        """Retrieve the stored snapshot for a source id.

        Decisions and reasons are read in a single statement so the result
        always belongs to one run.

        Args:
            source_id: Diagnosis id the snapshot was computed for.

        Returns:
            MatchSnapshot with decisions in rank order, or None if nothing is stored.
        """
        with self._connect() as db:
            cursor = db.cursor(dictionary=True)
            ph = db.placeholder
            cursor.execute(
                f"""
                SELECT r.rank, r.run_id, r.provider_id, r.composite_score, r.created_at,
                       m.position, m.factor_type, m.score, m.description
                FROM match_results r
                LEFT JOIN match_reasons m
                    ON m.source_id = r.source_id AND m.rank = r.rank
                WHERE r.source_id = {ph}
                ORDER BY r.rank ASC, m.position ASC
                """,
                (source_id,),
            )
            rows = cursor.fetchall()

        if not rows:
            return None

        return _rows_to_snapshot(source_id, rows)

    def list_scores(
        self,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> list[tuple[str, float]]:
        """Return (provider_id, composite_score) for decisions stored in range."""
        with self._connect() as db:
            cursor = db.cursor(dictionary=True)
            ph = db.placeholder
            clauses = []
            params = []
            if from_date is not None:
                clauses.append(f"created_at >= {ph}")
                params.append(to_db_timestamp(db, from_date))
            if to_date is not None:
                clauses.append(f"created_at <= {ph}")
                params.append(to_db_timestamp(db, to_date))
            where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
            cursor.execute(
                f"SELECT provider_id, composite_score FROM match_results {where}",
                tuple(params),
            )
            rows = cursor.fetchall()

        return [(row["provider_id"], float(row["composite_score"])) for row in rows]

    def _delete(self, cursor: Any, ph: str, source_id: str) -> None:
        cursor.execute(f"DELETE FROM match_reasons WHERE source_id = {ph}", (source_id,))
        cursor.execute(f"DELETE FROM match_results WHERE source_id = {ph}", (source_id,))

    def _insert_snapshot(self, db: DatabaseConnection, cursor: Any, snapshot: MatchSnapshot) -> None:
        created_at = to_db_timestamp(db, snapshot.created_at)
        for decision in snapshot.decisions:
            self._insert_decision(cursor, db.placeholder, snapshot, created_at, decision)

    def _insert_decision(
        self,
        cursor: Any,
        ph: str,
        snapshot: MatchSnapshot,
        created_at: Any,
        decision: MatchDecision,
    ) -> None:
        cursor.execute(
            f"""
            INSERT INTO match_results
            (source_id, rank, run_id, provider_id, composite_score, created_at)
            VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph})
            """,
            (
                snapshot.source_id,
                decision.rank,
                snapshot.run_id,
                decision.candidate_id,
                decision.composite_score,
                created_at,
            ),
        )
        for position, reason in enumerate(decision.reasons):
            cursor.execute(
                f"""
                INSERT INTO match_reasons
                (source_id, rank, position, factor_type, score, description)
                VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph})
                """,
                (
                    snapshot.source_id,
                    decision.rank,
                    position,
                    reason.type.value,
                    reason.score,
                    reason.description,
                ),
            )


def _rows_to_snapshot(source_id: str, rows: list) -> MatchSnapshot:
    """Group joined result/reason rows into a snapshot."""
    decisions = []
    current = None
    reasons: list[FactorResult] = []

    for row in rows:
        if current is None or row["rank"] != current["rank"]:
            if current is not None:
                decisions.append(_build_decision(current, reasons))
            current = row
            reasons = []
        if row["factor_type"] is not None:
            reasons.append(
                FactorResult(
                    type=FactorType(row["factor_type"]),
                    score=float(row["score"]),
                    description=row["description"],
                )
            )
    decisions.append(_build_decision(current, reasons))

    first = rows[0]
    return MatchSnapshot(
        source_id=source_id,
        run_id=first["run_id"],
        decisions=tuple(decisions),
        created_at=from_db_timestamp(first["created_at"]),
    )


def _build_decision(row: Any, reasons: list[FactorResult]) -> MatchDecision:
    return MatchDecision(
        candidate_id=row["provider_id"],
        composite_score=float(row["composite_score"]),
        reasons=tuple(reasons),
        rank=row["rank"],
    )
