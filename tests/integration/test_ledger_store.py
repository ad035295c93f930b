"""
Integration tests for the ledger, progress and path stores.

SQL stores run against a throwaway SQLite file per test.
"""
import threading

import pytest
from sqlalchemy.exc import OperationalError

from masterly.adaptive.mastery_policies import BestScorePolicy
from masterly.adaptive.models import ProgressUpdate
from masterly.adaptive.progress_state import ProgressStateMachine
from masterly.core.errors import ConcurrentWriteConflict
from masterly.core.models import CourseProgress, CourseStatus, MasteryLedgerEntry, ProgressStatus
from masterly.db.database import create_db_engine, init_db, make_session_factory
from masterly.db.documents import LearningPathDocument
from masterly.db.repositories import (
    FallbackPathStore,
    InMemoryLedgerStore,
    LocalPathCache,
    SqlLedgerStore,
    SqlPathStore,
    SqlProgressStore,
)

KEY = ("alice", "A", "dsa")


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def machine():
    return ProgressStateMachine(BestScorePolicy(0.75))


def quiz(machine, score):
    return lambda entry: machine.apply(entry, "quiz_completed", score=score)


class TestInMemoryLedgerStore:
    def test_update_creates_entry(self, machine):
        store = InMemoryLedgerStore()
        update = store.update(KEY, quiz(machine, 0.8))
        assert update.entry.mastered is True
        assert store.get(KEY).status == ProgressStatus.COMPLETED

    def test_concurrent_updates_are_atomic(self, machine):
        store = InMemoryLedgerStore()
        workers, per_worker = 8, 25

        def submit():
            for _ in range(per_worker):
                store.update(KEY, quiz(machine, 0.3))

        threads = [threading.Thread(target=submit) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get(KEY).attempts == workers * per_worker

    def test_failed_mutation_writes_nothing(self, machine):
        store = InMemoryLedgerStore()
        with pytest.raises(ValueError):
            store.update(KEY, lambda entry: machine.apply(entry, "quiz_completed", score=None))
        assert store.get(KEY) is None

    def test_snapshot_is_a_copy(self, machine):
        store = InMemoryLedgerStore()
        store.update(KEY, quiz(machine, 0.8))
        [entry] = store.snapshot("alice")
        entry.score = 0.0
        assert store.get(KEY).score == pytest.approx(0.8)

    def test_snapshot_filters_by_course(self):
        store = InMemoryLedgerStore()
        store.put(MasteryLedgerEntry(user_id="alice", concept_id="A", course_id="dsa"))
        store.put(MasteryLedgerEntry(user_id="alice", concept_id="A"))
        store.put(MasteryLedgerEntry(user_id="bob", concept_id="A"))
        assert len(store.snapshot("alice")) == 2
        assert len(store.snapshot("alice", "dsa")) == 1


class TestSqlLedgerStore:
    def test_round_trip(self, session_factory, machine):
        store = SqlLedgerStore(session_factory)
        store.update(KEY, quiz(machine, 0.8))

        entry = store.get(KEY)
        assert entry.course_id == "dsa"
        assert entry.score == pytest.approx(0.8)
        assert entry.mastered is True
        assert entry.mastered_at is not None
        assert entry.mastered_at.tzinfo is not None

    def test_course_less_entry(self, session_factory, machine):
        store = SqlLedgerStore(session_factory)
        store.update(("alice", "A", None), quiz(machine, 0.5))
        assert store.get(("alice", "A", None)).course_id is None
        assert store.get(KEY) is None

    def test_lost_update_is_retried(self, session_factory, machine):
        store = SqlLedgerStore(session_factory, max_retries=3)
        rival = SqlLedgerStore(session_factory)
        store.update(KEY, quiz(machine, 0.2))
        calls = []

        def racing_quiz(entry):
            if not calls:
                rival.update(KEY, quiz(machine, 0.3))
            calls.append(entry.attempts)
            return machine.apply(entry, "quiz_completed", score=0.4)

        store.update(KEY, racing_quiz)

        # second call saw the rival's write
        assert calls == [1, 2]
        assert store.get(KEY).attempts == 3

    def test_lost_insert_is_retried(self, session_factory, machine):
        store = SqlLedgerStore(session_factory, max_retries=3)
        rival = SqlLedgerStore(session_factory)
        calls = []

        def racing_quiz(entry):
            if not calls:
                rival.update(KEY, quiz(machine, 0.3))
            calls.append(entry.attempts)
            return machine.apply(entry, "quiz_completed", score=0.4)

        store.update(KEY, racing_quiz)
        assert calls == [0, 1]
        assert store.get(KEY).attempts == 2

    def test_exhausted_retries_surface_conflict(self, session_factory, machine):
        store = SqlLedgerStore(session_factory, max_retries=2)
        rival = SqlLedgerStore(session_factory)
        store.update(KEY, quiz(machine, 0.2))

        def always_racing(entry):
            rival.update(KEY, quiz(machine, 0.3))
            return machine.apply(entry, "quiz_completed", score=0.4)

        with pytest.raises(ConcurrentWriteConflict) as excinfo:
            store.update(KEY, always_racing)
        assert excinfo.value.attempts == 2
        # only the rival's writes landed
        assert store.get(KEY).attempts == 3

    def test_put_replaces_entry(self, session_factory):
        store = SqlLedgerStore(session_factory)
        seeded = MasteryLedgerEntry(
            user_id="alice", concept_id="A", course_id="dsa",
            score=0.9, status=ProgressStatus.COMPLETED, achievements=["Improver"],
        )
        store.put(seeded)
        [entry] = store.snapshot("alice", "dsa")
        assert entry.status == ProgressStatus.COMPLETED
        assert entry.achievements == ["Improver"]


class TestSqlProgressStore:
    def test_round_trip(self, session_factory):
        store = SqlProgressStore(session_factory)
        assert store.get("alice", "dsa") is None

        store.save(CourseProgress(user_id="alice", course_id="dsa", status=CourseStatus.ENROLLED))
        store.save(CourseProgress(
            user_id="alice", course_id="dsa", status=CourseStatus.IN_PROGRESS,
            concepts_completed=1, total_concepts=3, overall_progress=33,
        ))

        progress = store.get("alice", "dsa")
        assert progress.status == CourseStatus.IN_PROGRESS
        assert progress.overall_progress == 33


class _BrokenPathStore:
    def save(self, user_id, document):
        raise OperationalError("INSERT", {}, Exception("database is down"))

    def load(self, user_id):
        raise OperationalError("SELECT", {}, Exception("database is down"))


class TestPathStores:
    def test_sql_round_trip(self, session_factory):
        store = SqlPathStore(session_factory)
        document = LearningPathDocument(path_type="topic", selected_goal="graphs")
        store.save("alice", document)
        assert store.load("alice") == document
        assert store.load("bob") is None

    def test_save_falls_back_to_cache(self, tmp_path):
        cache = LocalPathCache(tmp_path / "paths")
        store = FallbackPathStore(_BrokenPathStore(), cache)
        document = LearningPathDocument(path_type="course", selected_goal="dsa")

        store.save("alice", document)

        assert cache.load("alice") == document
        assert store.load("alice") == document

    def test_load_prefers_primary(self, session_factory, tmp_path):
        primary = SqlPathStore(session_factory)
        cache = LocalPathCache(tmp_path / "paths")
        store = FallbackPathStore(primary, cache)

        cache.save("alice", LearningPathDocument(selected_goal="stale"))
        primary.save("alice", LearningPathDocument(selected_goal="fresh"))
        assert store.load("alice").selected_goal == "fresh"

    def test_load_uses_cache_when_primary_empty(self, session_factory, tmp_path):
        cache = LocalPathCache(tmp_path / "paths")
        store = FallbackPathStore(SqlPathStore(session_factory), cache)
        cache.save("alice", LearningPathDocument(selected_goal="offline"))
        assert store.load("alice").selected_goal == "offline"

    def test_cache_file_names_are_sanitized(self, tmp_path):
        cache = LocalPathCache(tmp_path)
        cache.save("../evil", LearningPathDocument())
        assert cache.load("../evil") is not None
        assert not (tmp_path.parent / "evil.json").exists()

    @pytest.mark.parametrize("first,second", [("alice@corp", "alice_corp"), ("a/b", "a_b"), ("Bob", "bob%")])
    def test_similar_user_ids_do_not_share_cache(self, tmp_path, first, second):
        store = FallbackPathStore(_BrokenPathStore(), LocalPathCache(tmp_path / "paths"))
        store.save(first, LearningPathDocument(selected_goal="private"))

        assert store.load(second) is None
        assert store.load(first).selected_goal == "private"


def test_progress_update_action_label(machine):
    update = InMemoryLedgerStore().update(KEY, quiz(machine, 0.1))
    assert isinstance(update, ProgressUpdate)
    assert update.action == "quiz_completed"
