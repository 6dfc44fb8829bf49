"""Tests for match snapshot persistence."""

import sqlite3
import threading
from datetime import timedelta

import pytest

from taxmatch.db.connection import utc_now
from taxmatch.db.matches import SqlMatchStore
from taxmatch.db.memory import InMemoryMatchStore
from taxmatch.schemas.match import FactorResult, FactorType, MatchDecision, MatchSnapshot
from taxmatch.utils import MatchStoreError


def make_snapshot(source_id: str = "diag-1", run_id: str = "run-1", count: int = 3, created_at=None):
    decisions = tuple(
        MatchDecision(
            candidate_id=f"ta-{rank}",
            composite_score=90.0 - rank * 10,
            rank=rank,
            reasons=(
                FactorResult(type=FactorType.LOCATION, score=100.0, description="地元密着（東京都）"),
                FactorResult(type=FactorType.BUDGET, score=85.0, description="予算内のプラン（月額30,000円～）"),
            ),
        )
        for rank in range(1, count + 1)
    )
    return MatchSnapshot(
        source_id=source_id,
        run_id=run_id,
        decisions=decisions,
        created_at=created_at or utc_now(),
    )


class FailingMatchStore(SqlMatchStore):
    """Fails on the second decision insert, after the old rows were deleted."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def _insert_decision(self, *args, **kwargs):
        self.calls += 1
        if self.calls == 2:
            raise sqlite3.OperationalError("disk I/O error")
        super()._insert_decision(*args, **kwargs)


@pytest.fixture(params=["sql", "memory"])
def store(request):
    if request.param == "memory":
        yield InMemoryMatchStore()
        return

    request.getfixturevalue("temp_db")
    yield SqlMatchStore()


class TestReplace:
    def test_round_trip(self, store):
        snapshot = make_snapshot()
        store.replace(snapshot)

        loaded = store.get("diag-1")

        assert loaded.run_id == "run-1"
        assert loaded.decisions == snapshot.decisions
        assert [d.rank for d in loaded.decisions] == [1, 2, 3]

    def test_replace_overwrites_whole_snapshot(self, store):
        store.replace(make_snapshot(run_id="run-1", count=5))
        store.replace(make_snapshot(run_id="run-2", count=2))

        loaded = store.get("diag-1")

        assert loaded.run_id == "run-2"
        assert len(loaded.decisions) == 2
        assert {d.rank for d in loaded.decisions} == {1, 2}

    def test_empty_snapshot_clears_source(self, store):
        store.replace(make_snapshot())
        store.replace(make_snapshot(count=0))

        assert store.get("diag-1") is None

    def test_sources_are_independent(self, store):
        store.replace(make_snapshot(source_id="diag-1", count=2))
        store.replace(make_snapshot(source_id="diag-2", count=1))
        store.replace(make_snapshot(source_id="diag-1", count=0))

        assert store.get("diag-1") is None
        assert len(store.get("diag-2").decisions) == 1

    def test_unknown_source(self, store):
        assert store.get("missing") is None


class TestInsertIfAbsent:
    def test_inserts_when_empty(self, store):
        assert store.insert_if_absent(make_snapshot(run_id="run-1")) is True
        assert store.get("diag-1").run_id == "run-1"

    def test_does_not_overwrite(self, store):
        store.insert_if_absent(make_snapshot(run_id="run-1"))

        assert store.insert_if_absent(make_snapshot(run_id="run-2")) is False
        assert store.get("diag-1").run_id == "run-1"


class TestListScores:
    def test_date_range(self, store):
        old = utc_now() - timedelta(days=10)
        store.replace(make_snapshot(source_id="diag-old", count=1, created_at=old))
        store.replace(make_snapshot(source_id="diag-new", count=2))

        assert len(store.list_scores()) == 3
        recent = store.list_scores(from_date=utc_now() - timedelta(days=1))
        assert sorted(recent) == [("ta-1", 80.0), ("ta-2", 70.0)]


class TestFailedWrite:
    def test_previous_snapshot_survives(self, temp_db):
        SqlMatchStore().replace(make_snapshot(run_id="run-1", count=3))

        with pytest.raises(MatchStoreError):
            FailingMatchStore().replace(make_snapshot(run_id="run-2", count=3))

        loaded = SqlMatchStore().get("diag-1")
        assert loaded.run_id == "run-1"
        assert len(loaded.decisions) == 3


class TestConcurrentReaders:
    def test_readers_never_see_mixed_runs(self, temp_db):
        store = SqlMatchStore()
        store.replace(make_snapshot(run_id="run-0", count=3))
        done = threading.Event()
        seen = []
        errors = []

        def write():
            try:
                for i in range(1, 61):
                    store.replace(make_snapshot(run_id=f"run-{i}", count=1 + i % 5))
            except Exception as e:  # pragma: no cover
                errors.append(e)
            finally:
                done.set()

        def read():
            try:
                while True:
                    finished = done.is_set()
                    seen.append(store.get("diag-1"))
                    if finished:
                        break
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=write)] + [threading.Thread(target=read) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert seen and None not in seen
        for snapshot in seen:
            ranks = [d.rank for d in snapshot.decisions]
            assert ranks == list(range(1, len(ranks) + 1))
            # Decision count encodes the run that wrote it
            run = int(snapshot.run_id.split("-")[1])
            expected = 3 if run == 0 else 1 + run % 5
            assert len(ranks) == expected
        assert store.get("diag-1").run_id == "run-60"
