"""Provider directory operations and the SQL candidate repository."""

import json
import logging
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from taxmatch.db.connection import get_connection, init_tables
from taxmatch.schemas.candidate import Candidate, CandidateSpecialty, PricingTier
from taxmatch.schemas.provider import Provider

logger = logging.getLogger(__name__)

_ELIGIBLE_PROVIDERS = "SELECT id FROM providers WHERE is_active = TRUE AND is_accepting_clients = TRUE"


class SqlCandidateRepository:
    """Candidate repository backed by the providers tables.

    Eligibility (active account, accepting new clients) is applied here,
    before candidates reach the matching engine.
    """

    def __init__(self, connect: Callable = get_connection):
        self._connect = connect

    def get_eligible_candidates(self) -> list[Candidate]:
        """Load every eligible provider with specialties and active pricing tiers.

        Rows that do not form a valid Candidate are logged and skipped.

        Returns:
            Candidates ordered by provider id.
        """
        with self._connect() as db:
            cursor = db.cursor(dictionary=True)
            cursor.execute(
                f"""
                SELECT id, display_name, prefecture, city, years_of_experience,
                       average_rating, total_reviews
                FROM providers
                WHERE id IN ({_ELIGIBLE_PROVIDERS})
                ORDER BY id
                """
            )
            provider_rows = cursor.fetchall()

            cursor.execute(
                f"""
                SELECT provider_id, name, years_of_experience
                FROM provider_specialties
                WHERE provider_id IN ({_ELIGIBLE_PROVIDERS})
                ORDER BY provider_id, position
                """
            )
            specialty_rows = cursor.fetchall()

            cursor.execute(
                f"""
                SELECT provider_id, name, base_price
                FROM pricing_tiers
                WHERE is_active = TRUE AND provider_id IN ({_ELIGIBLE_PROVIDERS})
                ORDER BY provider_id, display_order
                """
            )
            tier_rows = cursor.fetchall()

        specialties = defaultdict(list)
        for row in specialty_rows:
            specialties[row["provider_id"]].append(row)

        tiers = defaultdict(list)
        for row in tier_rows:
            tiers[row["provider_id"]].append(row)

        candidates = []
        for row in provider_rows:
            provider_id = row["id"]
            try:
                candidates.append(
                    Candidate(
                        id=provider_id,
                        display_name=row["display_name"],
                        specialties=tuple(
                            CandidateSpecialty(
                                name=s["name"],
                                years_of_experience=s["years_of_experience"] or 0,
                            )
                            for s in specialties[provider_id]
                        ),
                        pricing_tiers=tuple(
                            PricingTier(name=t["name"], base_price=t["base_price"])
                            for t in tiers[provider_id]
                        ),
                        prefecture=row["prefecture"],
                        city=row["city"],
                        years_of_experience=row["years_of_experience"] or 0,
                        average_rating=(
                            float(row["average_rating"])
                            if row["average_rating"] is not None
                            else None
                        ),
                        total_reviews=row["total_reviews"] or 0,
                    )
                )
            except ValidationError as e:
                logger.warning(f"Skipping provider {provider_id} with invalid data: {e}")

        logger.info(f"Loaded {len(candidates)} eligible candidates")
        return candidates

    def get_display_names(self, ids: list[str]) -> dict[str, str]:
        """Look up display names by provider id, regardless of eligibility.

        Providers without a display name are left out.
        """
        if not ids:
            return {}

        with self._connect() as db:
            cursor = db.cursor(dictionary=True)
            placeholders = ", ".join([db.placeholder] * len(ids))
            cursor.execute(
                f"SELECT id, display_name FROM providers WHERE id IN ({placeholders})",
                tuple(ids),
            )
            rows = cursor.fetchall()

        return {row["id"]: row["display_name"] for row in rows if row["display_name"]}


def insert_providers(providers: list[Provider]) -> int:
    """Insert providers with their specialties and pricing plans.

    Args:
        providers: Providers to insert.

    Returns:
        Number of providers inserted (excludes existing ids).
    """
    inserted = 0

    with get_connection() as db:
        cursor = db.cursor()
        ph = db.placeholder

        for provider in providers:
            cursor.execute(
                f"""
                INSERT INTO providers (
                    id, display_name, prefecture, city, years_of_experience,
                    average_rating, total_reviews, is_active, is_accepting_clients
                ) VALUES ({", ".join([ph] * 9)})
                ON CONFLICT (id) DO NOTHING
                """,
                (
                    provider.id, provider.display_name, provider.prefecture, provider.city,
                    provider.years_of_experience, provider.average_rating,
                    provider.total_reviews, provider.is_active, provider.is_accepting_clients,
                ),
            )
            if cursor.rowcount == 0:
                continue  # Provider already exists

            for position, specialty in enumerate(provider.specialties):
                cursor.execute(
                    f"""
                    INSERT INTO provider_specialties
                    (provider_id, position, name, years_of_experience)
                    VALUES ({ph}, {ph}, {ph}, {ph})
                    """,
                    (provider.id, position, specialty.name, specialty.years_of_experience),
                )

            for order, plan in enumerate(provider.pricing_plans):
                cursor.execute(
                    f"""
                    INSERT INTO pricing_tiers
                    (provider_id, display_order, name, base_price, is_active)
                    VALUES ({ph}, {ph}, {ph}, {ph}, {ph})
                    """,
                    (provider.id, order, plan.name, plan.base_price, plan.is_active),
                )
            inserted += 1

        db.commit()

    return inserted


def count_providers() -> tuple[int, int]:
    """Return (total providers, eligible providers)."""
    with get_connection() as db:
        cursor = db.cursor()
        cursor.execute("SELECT COUNT(*) FROM providers")
        total = cursor.fetchone()[0]
        cursor.execute(f"SELECT COUNT(*) FROM ({_ELIGIBLE_PROVIDERS}) AS eligible")
        eligible = cursor.fetchone()[0]

    return total, eligible


def load_providers_from_file(file_path: Path) -> int:
    """Load providers from a JSON file and add them to the database.

    Idempotent: skips providers that already exist.

    Args:
        file_path: Path to JSON file containing a list of provider dicts.

    Returns:
        Number of providers added.
    """
    init_tables()

    with open(file_path, encoding="utf-8") as f:
        providers_data = json.load(f)

    providers = [Provider(**p) for p in providers_data]
    inserted = insert_providers(providers)

    logger.info(f"Loaded {inserted} new providers from {file_path}")
    return inserted
