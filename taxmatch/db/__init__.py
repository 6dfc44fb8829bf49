"""Database and repository implementations."""

from taxmatch.db.base import CandidateRepository, DiagnosisRepository, MatchStore
from taxmatch.db.connection import get_connection, init_tables
from taxmatch.db.diagnoses import SqlDiagnosisRepository
from taxmatch.db.matches import SqlMatchStore
from taxmatch.db.memory import (
    InMemoryCandidateRepository,
    InMemoryDiagnosisRepository,
    InMemoryMatchStore,
)
from taxmatch.db.providers import (
    SqlCandidateRepository,
    insert_providers,
    load_providers_from_file,
)

__all__ = [
    "get_connection",
    "init_tables",
    "CandidateRepository",
    "DiagnosisRepository",
    "MatchStore",
    "SqlCandidateRepository",
    "SqlDiagnosisRepository",
    "SqlMatchStore",
    "InMemoryCandidateRepository",
    "InMemoryDiagnosisRepository",
    "InMemoryMatchStore",
    "insert_providers",
    "load_providers_from_file",
]
