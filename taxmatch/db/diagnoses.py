"""Diagnosis database operations."""

import json
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from taxmatch.config import DIAGNOSIS_REUSE_HOURS
from taxmatch.db.connection import (
    DatabaseConnection,
    from_db_timestamp,
    get_connection,
    to_db_timestamp,
    utc_now,
)
from taxmatch.schemas.criteria import MatchingCriteria
from taxmatch.schemas.diagnosis import Diagnosis

_COLUMNS = (
    "id, user_id, answers, has_criteria, business_type, budget, needs, frequency, "
    "location, revenue, employee_count, created_at, completed_at"
)


def _criteria_params(criteria: MatchingCriteria | None) -> tuple:
    if criteria is None:
        return (False, None, None, None, None, None, None, None)
    needs_json = json.dumps(sorted(criteria.needs), ensure_ascii=False) if criteria.needs else None
    return (
        True,
        criteria.business_type,
        criteria.budget,
        needs_json,
        criteria.frequency,
        criteria.location,
        criteria.revenue,
        criteria.employee_count,
    )


def _row_to_diagnosis(row: Any) -> Diagnosis:
    answers = row["answers"]
    if isinstance(answers, str):
        answers = json.loads(answers)

    criteria = None
    if row["has_criteria"]:
        needs = row["needs"]
        if isinstance(needs, str):
            needs = json.loads(needs)
        criteria = MatchingCriteria(
            business_type=row["business_type"],
            budget=row["budget"],
            needs=needs,
            frequency=row["frequency"],
            location=row["location"],
            revenue=row["revenue"],
            employee_count=row["employee_count"],
        )

    return Diagnosis(
        id=row["id"],
        user_id=row["user_id"],
        answers=answers,
        criteria=criteria,
        created_at=from_db_timestamp(row["created_at"]),
        completed_at=from_db_timestamp(row["completed_at"]),
    )


class SqlDiagnosisRepository:
    """Diagnosis repository backed by the diagnoses table."""

    def __init__(self, connect: Callable = get_connection):
        self._connect = connect

    def save(
        self,
        user_id: str,
        answers: dict[str, Any],
        criteria: MatchingCriteria | None = None,
    ) -> tuple[Diagnosis, bool]:
        """Save a completed diagnosis for a user.

        A diagnosis saved within DIAGNOSIS_REUSE_HOURS of the user's previous
        one updates that record instead of creating a new one. Criteria are
        only overwritten on update when new criteria are given.

        Args:
            user_id: Client who answered the diagnosis.
            answers: Raw answers keyed by question id.
            criteria: Matching preferences derived from the answers.

        Returns:
            Tuple of (Diagnosis, created) where created is False when a
            recent diagnosis was updated.
        """
        now = utc_now()
        answers_json = json.dumps(answers, ensure_ascii=False)

        with self._connect() as db:
            with db.transaction(lock_key=f"diagnosis:{user_id}"):
                existing = self._find_recent(db, user_id, now - timedelta(hours=DIAGNOSIS_REUSE_HOURS))
                cursor = db.cursor()
                ph = db.placeholder

                if existing is not None:
                    if criteria is not None:
                        cursor.execute(
                            f"""
                            UPDATE diagnoses SET
                                answers = {ph}, has_criteria = {ph}, business_type = {ph},
                                budget = {ph}, needs = {ph}, frequency = {ph}, location = {ph},
                                revenue = {ph}, employee_count = {ph}, completed_at = {ph}
                            WHERE id = {ph}
                            """,
                            (answers_json, *_criteria_params(criteria), to_db_timestamp(db, now), existing),
                        )
                    else:
                        cursor.execute(
                            f"UPDATE diagnoses SET answers = {ph}, completed_at = {ph} WHERE id = {ph}",
                            (answers_json, to_db_timestamp(db, now), existing),
                        )
                    diagnosis_id, created = existing, False
                else:
                    diagnosis_id, created = str(uuid.uuid4()), True
                    cursor.execute(
                        f"INSERT INTO diagnoses ({_COLUMNS}) VALUES ({', '.join([ph] * 13)})",
                        (
                            diagnosis_id,
                            user_id,
                            answers_json,
                            *_criteria_params(criteria),
                            to_db_timestamp(db, now),
                            to_db_timestamp(db, now),
                        ),
                    )

            diagnosis = self._fetch(db, diagnosis_id)

        return diagnosis, created

    def get(self, diagnosis_id: str) -> Diagnosis | None:
        """Retrieve a diagnosis by id."""
        with self._connect() as db:
            return self._fetch(db, diagnosis_id)

    def get_latest_for_user(self, user_id: str) -> Diagnosis | None:
        """Retrieve the user's most recent diagnosis."""
        with self._connect() as db:
            cursor = db.cursor(dictionary=True)
            ph = db.placeholder
            cursor.execute(
                f"""
                SELECT {_COLUMNS} FROM diagnoses
                WHERE user_id = {ph}
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()

        return _row_to_diagnosis(row) if row is not None else None

    def count(self, from_date: datetime | None = None, to_date: datetime | None = None) -> int:
        """Count diagnoses created within the optional date range."""
        with self._connect() as db:
            cursor = db.cursor()
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
            cursor.execute(f"SELECT COUNT(*) FROM diagnoses {where}", tuple(params))
            return cursor.fetchone()[0]

    def _find_recent(self, db: DatabaseConnection, user_id: str, since: datetime) -> str | None:
        cursor = db.cursor()
        ph = db.placeholder
        cursor.execute(
            f"""
            SELECT id FROM diagnoses
            WHERE user_id = {ph} AND created_at >= {ph}
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (user_id, to_db_timestamp(db, since)),
        )
        row = cursor.fetchone()
        return row[0] if row is not None else None

    def _fetch(self, db: DatabaseConnection, diagnosis_id: str) -> Diagnosis | None:
        cursor = db.cursor(dictionary=True)
        ph = db.placeholder
        cursor.execute(f"SELECT {_COLUMNS} FROM diagnoses WHERE id = {ph}", (diagnosis_id,))
        row = cursor.fetchone()
        return _row_to_diagnosis(row) if row is not None else None
