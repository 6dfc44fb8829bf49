"""Shared pytest fixtures for all tests."""

from unittest.mock import patch

import pytest

from taxmatch.db.memory import (
    InMemoryCandidateRepository,
    InMemoryDiagnosisRepository,
    InMemoryMatchStore,
)
from taxmatch.services.match_service import MatchService


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing.

    Patches DB_PATH and DATA_DIR at the connection module level.
    """
    db_path = tmp_path / "test.db"
    data_dir = tmp_path

    # Patch at db.connection where they're used at runtime
    with (
        patch("taxmatch.db.connection.DB_PATH", db_path),
        patch("taxmatch.db.connection.DATA_DIR", data_dir),
        patch("taxmatch.db.connection.DATABASE_URL", None),  # Force SQLite
    ):
        from taxmatch.db.connection import init_tables

        init_tables()
        yield db_path


@pytest.fixture
def memory_repos():
    """In-memory candidate, diagnosis and match repositories."""
    return {
        "candidates": InMemoryCandidateRepository(),
        "diagnoses": InMemoryDiagnosisRepository(),
        "store": InMemoryMatchStore(),
    }


@pytest.fixture
def memory_service(memory_repos):
    """MatchService wired to in-memory repositories."""
    return MatchService(
        candidates=memory_repos["candidates"],
        store=memory_repos["store"],
        diagnoses=memory_repos["diagnoses"],
        max_workers=4,
    )
