"""Tests for SQLite provider directory operations."""

import json

from taxmatch.db.connection import get_connection, init_tables
from taxmatch.db.providers import (
    SqlCandidateRepository,
    count_providers,
    insert_providers,
    load_providers_from_file,
)
from tests.test_utils import make_test_provider


class TestInitDatabase:
    def test_creates_database(self, temp_db):
        assert temp_db.exists()

    def test_init_is_idempotent(self, temp_db):
        init_tables()
        init_tables()

        with get_connection() as db:
            cursor = db.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            tables = {row[0] for row in cursor.fetchall()}

        assert {
            "providers",
            "provider_specialties",
            "pricing_tiers",
            "diagnoses",
            "match_results",
            "match_reasons",
        } <= tables


class TestInsertProviders:
    def test_insert_single_provider(self, temp_db):
        inserted = insert_providers([make_test_provider("ta-1")])
        assert inserted == 1

    def test_idempotent_insert(self, temp_db):
        provider = make_test_provider("ta-1", specialties=[("飲食業", 3)], prices=[(30000, True)])
        insert_providers([provider])
        inserted = insert_providers([provider])  # Insert again
        assert inserted == 0

        candidates = SqlCandidateRepository().get_eligible_candidates()
        assert len(candidates[0].specialties) == 1
        assert len(candidates[0].pricing_tiers) == 1

    def test_count_providers(self, temp_db):
        insert_providers([
            make_test_provider("ta-1"),
            make_test_provider("ta-2", is_active=False),
        ])
        assert count_providers() == (2, 1)


class TestSqlCandidateRepository:
    def test_only_eligible_providers(self, temp_db):
        insert_providers([
            make_test_provider("ta-1"),
            make_test_provider("ta-2", is_active=False),
            make_test_provider("ta-3", is_accepting_clients=False),
        ])

        candidates = SqlCandidateRepository().get_eligible_candidates()

        assert [c.id for c in candidates] == ["ta-1"]

    def test_enriched_with_specialties_and_active_tiers(self, temp_db):
        insert_providers([
            make_test_provider(
                "ta-1",
                specialties=[("IT・EC業界", 10), ("相続", 2)],
                prices=[(50000, False), (30000, True), (80000, True)],
                rating=4.8,
                reviews=24,
            )
        ])

        candidate = SqlCandidateRepository().get_eligible_candidates()[0]

        assert [s.name for s in candidate.specialties] == ["IT・EC業界", "相続"]
        assert candidate.specialties[0].years_of_experience == 10
        assert [t.base_price for t in candidate.pricing_tiers] == [30000, 80000]
        assert candidate.average_rating == 4.8
        assert candidate.total_reviews == 24
        assert candidate.prefecture == "東京都"

    def test_provider_without_rating(self, temp_db):
        insert_providers([make_test_provider("ta-1", rating=None, reviews=0)])

        candidate = SqlCandidateRepository().get_eligible_candidates()[0]

        assert candidate.average_rating is None
        assert candidate.specialties == ()
        assert candidate.pricing_tiers == ()

    def test_empty_directory(self, temp_db):
        assert SqlCandidateRepository().get_eligible_candidates() == []

    def test_display_names_ignore_eligibility(self, temp_db):
        insert_providers([
            make_test_provider("ta-1"),
            make_test_provider("ta-2", is_active=False),
            make_test_provider("ta-3", is_accepting_clients=False),
            make_test_provider("ta-4"),
        ])

        names = SqlCandidateRepository().get_display_names(["ta-1", "ta-2", "ta-3", "missing"])

        assert names == {
            "ta-1": "Accountant ta-1",
            "ta-2": "Accountant ta-2",
            "ta-3": "Accountant ta-3",
        }

    def test_display_names_for_no_ids(self, temp_db):
        assert SqlCandidateRepository().get_display_names([]) == {}


class TestLoadProvidersFromFile:
    def test_load_json(self, temp_db, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "id": "ta-1",
                        "display_name": "山田税理士事務所",
                        "prefecture": "東京都",
                        "years_of_experience": 12,
                        "specialties": [{"name": "飲食業", "years_of_experience": 5}],
                        "pricing_plans": [{"base_price": 30000}],
                    }
                ],
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )

        assert load_providers_from_file(path) == 1
        assert load_providers_from_file(path) == 0

        candidate = SqlCandidateRepository().get_eligible_candidates()[0]
        assert candidate.display_name == "山田税理士事務所"
        assert candidate.pricing_tiers[0].base_price == 30000
