"""
Stores behind the engine.

Mastery ledger:
- InMemoryLedgerStore: per-entry lock; snapshots taken under a store lock
- SqlLedgerStore: optimistic concurrency on the `version` column. A lost
  compare-and-swap raises ConcurrentWriteConflict, which is retried up to
  `max_retries` times before it reaches the caller.

Both stores apply a read-modify-write through `update(key, mutate)`: the
mutator receives a private copy of the current entry (or a fresh one) and
returns a ProgressUpdate whose entry is committed.

Course progress and learning path documents have matching in-memory and SQL
stores. FallbackPathStore pairs a primary path store with a local JSON cache.
"""
from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from masterly.adaptive.models import ProgressUpdate
from masterly.core.errors import ConcurrentWriteConflict
from masterly.core.models import (
    Concept,
    Course,
    CourseProgress,
    CourseStatus,
    Difficulty,
    IconTag,
    LedgerKey,
    MasteryLedgerEntry,
    ProgressStatus,
)
from masterly.db.database import session_scope
from masterly.db.documents import LearningPathDocument
from masterly.db.models import (
    ConceptPrerequisite,
    ConceptRecord,
    CourseConcept,
    CourseProgressRecord,
    CourseRecord,
    LearningPathRecord,
    MasteryLedgerRecord,
)
from masterly.graph.concept_graph import ConceptGraph

Mutator = Callable[[MasteryLedgerEntry], ProgressUpdate]


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# =============================================================================
# Mastery ledger
# =============================================================================

class LedgerStore(Protocol):
    """Atomic access to mastery ledger entries."""

    def get(self, key: LedgerKey) -> MasteryLedgerEntry | None: ...

    def snapshot(self, user_id: str, course_id: str | None = None) -> list[MasteryLedgerEntry]: ...

    def update(self, key: LedgerKey, mutate: Mutator) -> ProgressUpdate: ...


class InMemoryLedgerStore:
    """Thread-safe in-process ledger."""

    def __init__(self) -> None:
        self._entries: dict[LedgerKey, MasteryLedgerEntry] = {}
        self._locks: dict[LedgerKey, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: LedgerKey) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def get(self, key: LedgerKey) -> MasteryLedgerEntry | None:
        with self._guard:
            entry = self._entries.get(key)
            return entry.copy() if entry else None

    def snapshot(self, user_id: str, course_id: str | None = None) -> list[MasteryLedgerEntry]:
        """All entries of a user, optionally limited to one course scope."""
        with self._guard:
            return [
                entry.copy()
                for entry in self._entries.values()
                if entry.user_id == user_id and (course_id is None or entry.course_id == course_id)
            ]

    def update(self, key: LedgerKey, mutate: Mutator) -> ProgressUpdate:
        with self._lock_for(key):
            current = self.get(key) or MasteryLedgerEntry(*key)
            result = mutate(current)
            with self._guard:
                self._entries[key] = result.entry.copy()
            return result

    def put(self, entry: MasteryLedgerEntry) -> None:
        """Seed an entry directly (imports and tests)."""
        with self._lock_for(entry.key), self._guard:
            self._entries[entry.key] = entry.copy()


def _entry_from_record(record: MasteryLedgerRecord) -> MasteryLedgerEntry:
    return MasteryLedgerEntry(
        user_id=record.user_id,
        concept_id=record.concept_id,
        course_id=record.course_key or None,
        score=record.score,
        attempts=record.attempts,
        mastered=record.mastered,
        mastered_at=_aware(record.mastered_at),
        failed_attempts=record.failed_attempts,
        description_read=record.description_read,
        video_watched=record.video_watched,
        quiz_passed=record.quiz_passed,
        status=ProgressStatus(record.status),
        time_spent=record.time_spent,
        achievements=list(record.achievements or []),
        last_quiz_attempt=_aware(record.last_quiz_attempt),
        last_updated=_aware(record.last_updated),
    )


def _entry_values(entry: MasteryLedgerEntry) -> dict:
    return {
        "score": entry.score,
        "attempts": entry.attempts,
        "mastered": entry.mastered,
        "mastered_at": entry.mastered_at,
        "failed_attempts": entry.failed_attempts,
        "description_read": entry.description_read,
        "video_watched": entry.video_watched,
        "quiz_passed": entry.quiz_passed,
        "status": entry.status.value,
        "time_spent": entry.time_spent,
        "achievements": list(entry.achievements),
        "last_quiz_attempt": entry.last_quiz_attempt,
        "last_updated": entry.last_updated,
    }


class SqlLedgerStore:
    """Ledger backed by the mastery_ledger table with compare-and-swap writes."""

    def __init__(self, session_factory: sessionmaker[Session], max_retries: int = 5):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._session_factory = session_factory
        self.max_retries = max_retries

    @staticmethod
    def _select(key: LedgerKey):
        user_id, concept_id, course_id = key
        return select(MasteryLedgerRecord).where(
            MasteryLedgerRecord.user_id == user_id,
            MasteryLedgerRecord.concept_id == concept_id,
            MasteryLedgerRecord.course_key == (course_id or ""),
        )

    def get(self, key: LedgerKey) -> MasteryLedgerEntry | None:
        with session_scope(self._session_factory) as session:
            record = session.execute(self._select(key)).scalar_one_or_none()
            return _entry_from_record(record) if record else None

    def snapshot(self, user_id: str, course_id: str | None = None) -> list[MasteryLedgerEntry]:
        stmt = select(MasteryLedgerRecord).where(MasteryLedgerRecord.user_id == user_id)
        if course_id is not None:
            stmt = stmt.where(MasteryLedgerRecord.course_key == course_id)
        with session_scope(self._session_factory) as session:
            return [_entry_from_record(r) for r in session.execute(stmt).scalars()]

    def update(self, key: LedgerKey, mutate: Mutator) -> ProgressUpdate:
        """
        Read-modify-write one entry.

        Raises:
            ConcurrentWriteConflict: Every attempt lost to a concurrent writer
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                return self._try_update(key, mutate)
            except ConcurrentWriteConflict:
                logger.debug(f"Ledger write conflict on {key} (attempt {attempt}/{self.max_retries})")

        logger.warning(f"Giving up on ledger write for {key} after {self.max_retries} attempts")
        raise ConcurrentWriteConflict(key, attempts=self.max_retries)

    def _try_update(self, key: LedgerKey, mutate: Mutator) -> ProgressUpdate:
        user_id, concept_id, course_id = key
        with session_scope(self._session_factory) as session:
            record = session.execute(self._select(key)).scalar_one_or_none()
            current = _entry_from_record(record) if record else MasteryLedgerEntry(*key)
            result = mutate(current)
            values = _entry_values(result.entry)

            if record is None:
                session.add(MasteryLedgerRecord(
                    user_id=user_id,
                    concept_id=concept_id,
                    course_key=course_id or "",
                    version=1,
                    **values,
                ))
                try:
                    session.flush()
                except IntegrityError:
                    raise ConcurrentWriteConflict(key) from None
            else:
                stmt = (
                    update(MasteryLedgerRecord)
                    .where(
                        MasteryLedgerRecord.id == record.id,
                        MasteryLedgerRecord.version == record.version,
                    )
                    .values(version=record.version + 1, **values)
                    .execution_options(synchronize_session=False)
                )
                if session.execute(stmt).rowcount != 1:
                    raise ConcurrentWriteConflict(key)
            return result

    def put(self, entry: MasteryLedgerEntry) -> None:
        """Seed an entry directly, replacing any existing row."""
        self.update(entry.key, lambda _current: ProgressUpdate(entry=entry.copy(), action="seed"))


# =============================================================================
# Course progress
# =============================================================================

class ProgressStore(Protocol):
    def get(self, user_id: str, course_id: str) -> CourseProgress | None: ...

    def save(self, progress: CourseProgress) -> None: ...


class InMemoryProgressStore:
    def __init__(self) -> None:
        self._records: dict[tuple[str, str], CourseProgress] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str, course_id: str) -> CourseProgress | None:
        with self._lock:
            progress = self._records.get((user_id, course_id))
            return progress.copy() if progress else None

    def save(self, progress: CourseProgress) -> None:
        with self._lock:
            self._records[(progress.user_id, progress.course_id)] = progress.copy()


class SqlProgressStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get(self, user_id: str, course_id: str) -> CourseProgress | None:
        with session_scope(self._session_factory) as session:
            record = session.get(CourseProgressRecord, (user_id, course_id))
            if record is None:
                return None
            return CourseProgress(
                user_id=record.user_id,
                course_id=record.course_id,
                status=CourseStatus(record.status),
                concepts_completed=record.concepts_completed,
                total_concepts=record.total_concepts,
                overall_progress=record.overall_progress,
                enrolled_at=_aware(record.enrolled_at),
                started_at=_aware(record.started_at),
                completed_at=_aware(record.completed_at),
                last_accessed_at=_aware(record.last_accessed_at),
            )

    def save(self, progress: CourseProgress) -> None:
        with session_scope(self._session_factory) as session:
            session.merge(CourseProgressRecord(
                user_id=progress.user_id,
                course_id=progress.course_id,
                status=progress.status.value,
                concepts_completed=progress.concepts_completed,
                total_concepts=progress.total_concepts,
                overall_progress=progress.overall_progress,
                enrolled_at=progress.enrolled_at,
                started_at=progress.started_at,
                completed_at=progress.completed_at,
                last_accessed_at=progress.last_accessed_at,
            ))


# =============================================================================
# Learning path documents
# =============================================================================

class PathStore(Protocol):
    def save(self, user_id: str, document: LearningPathDocument) -> None: ...

    def load(self, user_id: str) -> LearningPathDocument | None: ...


class InMemoryPathStore:
    def __init__(self) -> None:
        self._documents: dict[str, dict] = {}

    def save(self, user_id: str, document: LearningPathDocument) -> None:
        self._documents[user_id] = document.to_payload()

    def load(self, user_id: str) -> LearningPathDocument | None:
        payload = self._documents.get(user_id)
        return LearningPathDocument.from_payload(payload) if payload else None


class SqlPathStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def save(self, user_id: str, document: LearningPathDocument) -> None:
        with session_scope(self._session_factory) as session:
            session.merge(LearningPathRecord(
                user_id=user_id,
                document=document.to_payload(),
                saved_at=document.saved_at or datetime.now(UTC),
            ))

    def load(self, user_id: str) -> LearningPathDocument | None:
        with session_scope(self._session_factory) as session:
            record = session.get(LearningPathRecord, user_id)
            return LearningPathDocument.from_payload(record.document) if record else None


class LocalPathCache:
    """One JSON file per user under `directory`."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def _path(self, user_id: str) -> Path:
        # injective: distinct ids never share a file
        return self.directory / f"{quote(user_id, safe='')}.json"

    def save(self, user_id: str, document: LearningPathDocument) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(user_id).write_text(document.to_json(), encoding="utf-8")

    def load(self, user_id: str) -> LearningPathDocument | None:
        path = self._path(user_id)
        if not path.exists():
            return None
        return LearningPathDocument.from_json(path.read_text(encoding="utf-8"))


class FallbackPathStore:
    """
    Primary path store mirrored to a local cache.

    Saves always reach the cache; a failing primary is logged and skipped.
    Loads prefer the primary and fall back to the cache when it fails or
    has nothing.
    """

    def __init__(self, primary: PathStore, cache: LocalPathCache):
        self.primary = primary
        self.cache = cache

    def save(self, user_id: str, document: LearningPathDocument) -> None:
        try:
            self.primary.save(user_id, document)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Primary path store unavailable, saving locally only: {e}")
        self.cache.save(user_id, document)

    def load(self, user_id: str) -> LearningPathDocument | None:
        try:
            document = self.primary.load(user_id)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Primary path store unavailable, loading local copy: {e}")
            document = None
        if document is None:
            document = self.cache.load(user_id)
        return document


# =============================================================================
# Concept graph
# =============================================================================

def save_concept_graph(session: Session, graph: ConceptGraph) -> tuple[int, int]:
    """
    Upsert concepts and courses of `graph`.

    Returns:
        (concepts written, courses written)
    """
    for position, concept in enumerate(graph.concepts):
        record = session.get(ConceptRecord, concept.id) or ConceptRecord(id=concept.id)
        record.title = concept.title
        record.description = concept.description
        record.difficulty = concept.difficulty.value
        record.estimated_hours = concept.estimated_hours
        record.icon = concept.icon.value
        record.position = position
        if record.prerequisites:
            record.prerequisites.clear()
            session.flush()
        record.prerequisites = [
            ConceptPrerequisite(prerequisite_id=p, position=i)
            for i, p in enumerate(concept.prerequisites)
        ]
        session.add(record)

    for course in graph.courses:
        record = session.get(CourseRecord, course.id) or CourseRecord(id=course.id)
        record.title = course.title
        if record.concepts:
            record.concepts.clear()
            session.flush()
        record.concepts = [
            CourseConcept(concept_id=c, position=i) for i, c in enumerate(course.concept_ids)
        ]
        session.add(record)

    session.flush()
    return len(graph.concepts), len(graph.courses)


def load_concept_graph(session: Session) -> ConceptGraph:
    """Read the whole concept graph."""
    concepts = [
        Concept(
            id=r.id,
            title=r.title,
            description=r.description or "",
            prerequisites=tuple(p.prerequisite_id for p in r.prerequisites),
            difficulty=Difficulty.parse(r.difficulty),
            estimated_hours=r.estimated_hours,
            icon=IconTag.parse(r.icon),
        )
        for r in session.execute(select(ConceptRecord).order_by(ConceptRecord.position, ConceptRecord.id)).scalars()
    ]
    courses = [
        Course(id=r.id, title=r.title, concept_ids=tuple(c.concept_id for c in r.concepts))
        for r in session.execute(select(CourseRecord).order_by(CourseRecord.id)).scalars()
    ]
    return ConceptGraph(concepts, courses)
