"""Tests for the taxmatch CLI."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from taxmatch.db.connection import get_connection
from taxmatch.db.diagnoses import SqlDiagnosisRepository
from taxmatch.main import app

runner = CliRunner()

PROVIDERS = [
    {
        "id": "ta-1",
        "display_name": "山田税理士事務所",
        "prefecture": "東京都",
        "years_of_experience": 12,
        "average_rating": 4.8,
        "total_reviews": 24,
        "specialties": [{"name": "IT・EC業界", "years_of_experience": 10}],
        "pricing_plans": [{"base_price": 30000}],
    },
    {
        "id": "ta-2",
        "display_name": "佐藤会計",
        "prefecture": "神奈川県",
        "years_of_experience": 4,
        "specialties": [{"name": "相続", "years_of_experience": 4}],
        "pricing_plans": [{"base_price": 45000}],
    },
    {
        "id": "ta-3",
        "display_name": "休業中事務所",
        "prefecture": "東京都",
        "is_accepting_clients": False,
        "specialties": [{"name": "EC", "years_of_experience": 20}],
        "pricing_plans": [{"base_price": 10000}],
    },
]


@pytest.fixture
def files(tmp_path):
    providers = tmp_path / "providers.json"
    providers.write_text(json.dumps(PROVIDERS, ensure_ascii=False), encoding="utf-8")
    criteria = tmp_path / "criteria.json"
    criteria.write_text(
        json.dumps({"businessType": "EC・小売", "budget": 30000, "location": "東京都"}, ensure_ascii=False),
        encoding="utf-8",
    )
    return {"providers": providers, "criteria": criteria, "dir": tmp_path}


@pytest.fixture
def diagnosis_id(temp_db, files):
    """Import providers and complete one diagnosis through the CLI."""
    runner.invoke(app, ["import-providers", "--file", str(files["providers"])])
    result = runner.invoke(app, ["diagnose", "--user", "user-1", "--criteria", str(files["criteria"])])
    assert result.exit_code == 0, result.output
    return SqlDiagnosisRepository().get_latest_for_user("user-1").id


class TestDatabaseCommands:
    def test_init_db(self, temp_db):
        result = runner.invoke(app, ["init-db"])
        assert result.exit_code == 0
        assert "Database initialized" in result.output

    def test_missing_database(self, tmp_path):
        with (
            patch("taxmatch.db.connection.DATABASE_URL", None),
            patch("taxmatch.db.connection.DB_PATH", tmp_path / "nonexistent.db"),
        ):
            result = runner.invoke(app, ["results", "diag-1"])

        assert result.exit_code == 1
        assert "Database not found" in result.output

    def test_import_file_not_found(self, temp_db):
        result = runner.invoke(app, ["import-providers", "--file", "/nonexistent/providers.json"])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_import_is_idempotent(self, temp_db, files):
        first = runner.invoke(app, ["import-providers", "--file", str(files["providers"])])
        second = runner.invoke(app, ["import-providers", "--file", str(files["providers"])])

        assert "Imported 3 providers" in first.output
        assert "No new providers imported" in second.output

    def test_info(self, temp_db, files):
        runner.invoke(app, ["import-providers", "--file", str(files["providers"])])
        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "Eligible Providers" in result.output


class TestMatchCommands:
    def test_diagnose_shows_matches(self, temp_db, files):
        runner.invoke(app, ["import-providers", "--file", str(files["providers"])])
        result = runner.invoke(app, ["diagnose", "--user", "user-1", "--criteria", str(files["criteria"])])

        assert result.exit_code == 0
        assert "Diagnosis saved" in result.output
        assert "#1 山田税理士事務所" in result.output
        assert "休業中事務所" not in result.output

    def test_diagnose_invalid_json(self, temp_db, files):
        bad = files["dir"] / "bad.json"
        bad.write_text("{not json", encoding="utf-8")

        result = runner.invoke(app, ["diagnose", "--user", "user-1", "--criteria", str(bad)])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_results_json(self, diagnosis_id):
        result = runner.invoke(app, ["results", diagnosis_id, "--json"])

        assert result.exit_code == 0
        decisions = json.loads(result.stdout)
        assert [d["candidate_id"] for d in decisions] == ["ta-1", "ta-2"]
        assert [d["rank"] for d in decisions] == [1, 2]
        assert decisions[0]["reasons"][0]["description"]

    def test_results_name_provider_no_longer_accepting(self, diagnosis_id):
        with get_connection() as db:
            db.cursor().execute("UPDATE providers SET is_accepting_clients = FALSE WHERE id = 'ta-1'")
            db.commit()

        result = runner.invoke(app, ["results", diagnosis_id])

        assert result.exit_code == 0
        assert "#1 山田税理士事務所" in result.output

    def test_results_unknown_diagnosis(self, temp_db):
        result = runner.invoke(app, ["results", "missing"])

        assert result.exit_code == 1
        assert "Diagnosis result not found: missing" in result.output

    def test_regenerate_with_limit(self, diagnosis_id):
        result = runner.invoke(app, ["regenerate", diagnosis_id, "--limit", "1", "--json"])

        assert result.exit_code == 0
        assert [d["candidate_id"] for d in json.loads(result.stdout)] == ["ta-1"]

        stored = runner.invoke(app, ["results", diagnosis_id, "--json"])
        assert len(json.loads(stored.stdout)) == 1

    def test_regenerate_invalid_criteria(self, diagnosis_id, files):
        bad = files["dir"] / "bad_criteria.json"
        bad.write_text(json.dumps({"budget": -1}), encoding="utf-8")

        result = runner.invoke(app, ["regenerate", diagnosis_id, "--criteria", str(bad)])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_generate_keeps_existing(self, diagnosis_id):
        runner.invoke(app, ["regenerate", diagnosis_id, "--limit", "1"])
        result = runner.invoke(app, ["generate", diagnosis_id, "--json"])

        assert len(json.loads(result.stdout)) == 1

    def test_recommend(self, diagnosis_id):
        result = runner.invoke(app, ["recommend", "--user", "user-1", "--limit", "1"])

        assert result.exit_code == 0
        assert "#1 山田税理士事務所" in result.output

    def test_recommend_unknown_user(self, temp_db):
        result = runner.invoke(app, ["recommend", "--user", "nobody"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_stats_json(self, diagnosis_id):
        result = runner.invoke(app, ["stats", "--json"])

        assert result.exit_code == 0
        summary = json.loads(result.stdout)
        assert summary["total_matches"] == 2
        assert summary["total_diagnoses"] == 1
