"""
Core domain models.

Canonical representations of concepts, courses, mastery ledger entries
and course progress. These are plain dataclasses; persistence lives in
masterly.db and never leaks into the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


class Difficulty(str, Enum):
    """Authoring difficulty tier of a concept."""

    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"

    @classmethod
    def parse(cls, value: str | Difficulty | None) -> Difficulty:
        """Parse a tier name case-insensitively. Unknown values map to MEDIUM."""
        if isinstance(value, Difficulty):
            return value
        if not value:
            return cls.MEDIUM
        normalized = str(value).strip().lower()
        for tier in cls:
            if tier.value.lower() == normalized:
                return tier
        return cls.MEDIUM

    @property
    def rank(self) -> int:
        """Sort key, easiest first."""
        return {Difficulty.EASY: 0, Difficulty.MEDIUM: 1, Difficulty.HARD: 2}[self]

    @property
    def complexity(self) -> int:
        """Complexity points shown on decorated concepts (1/3/5)."""
        return {Difficulty.EASY: 1, Difficulty.MEDIUM: 3, Difficulty.HARD: 5}[self]


class IconTag(str, Enum):
    """Icon identifiers persisted with learning paths in place of UI components."""

    TARGET = "Target"
    BOOK_OPEN = "BookOpen"
    TRENDING_UP = "TrendingUp"
    ZAP = "Zap"
    CODE = "Code"
    DATABASE = "Database"
    SEARCH = "Search"
    BRAIN = "Brain"
    GLOBE = "Globe"
    NETWORK = "Network"
    TROPHY = "Trophy"
    SERVER = "Server"
    CLOUD = "Cloud"
    TREE_PINE = "TreePine"
    ARROW_UP_DOWN = "ArrowUpDown"

    @classmethod
    def parse(cls, value: str | IconTag | None) -> IconTag:
        """Restore an icon from its saved name, defaulting to Target."""
        if isinstance(value, IconTag):
            return value
        for tag in cls:
            if tag.value == value:
                return tag
        return cls.TARGET


class ProgressStatus(str, Enum):
    """Per-concept progress state."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CourseStatus(str, Enum):
    """Per-course enrollment state."""

    NOT_ENROLLED = "not_enrolled"
    ENROLLED = "enrolled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Concept:
    """
    A learning unit.

    Prerequisites are ordered concept ids; together they form a DAG
    (diamonds allowed, cycles tolerated but reported).
    """

    id: str
    title: str
    description: str = ""
    prerequisites: tuple[str, ...] = ()
    difficulty: Difficulty = Difficulty.MEDIUM
    estimated_hours: float = 1.0
    icon: IconTag = IconTag.TARGET

    @property
    def has_prerequisites(self) -> bool:
        return bool(self.prerequisites)


@dataclass(frozen=True)
class Course:
    """An ordered set of concepts."""

    id: str
    title: str
    concept_ids: tuple[str, ...] = ()


# (user_id, concept_id, course_id)
LedgerKey = tuple[str, str, "str | None"]


@dataclass
class MasteryLedgerEntry:
    """
    Mastery state of one user for one concept (optionally scoped to a course).

    `score` is always on the 0-1 scale. `mastered` agrees with the owning
    policy's threshold only immediately after an update; entries are never
    re-evaluated passively.
    """

    user_id: str
    concept_id: str
    course_id: str | None = None
    score: float = 0.0
    attempts: int = 0
    mastered: bool = False
    mastered_at: datetime | None = None
    failed_attempts: int = 0
    description_read: bool = False
    video_watched: bool = False
    quiz_passed: bool = False
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    time_spent: float = 0.0  # minutes
    achievements: list[str] = field(default_factory=list)
    last_quiz_attempt: datetime | None = None
    last_updated: datetime | None = None

    @property
    def key(self) -> LedgerKey:
        return (self.user_id, self.concept_id, self.course_id)

    @property
    def is_completed(self) -> bool:
        """A concept counts as completed for unlocking and progress."""
        return self.status == ProgressStatus.COMPLETED

    def copy(self) -> MasteryLedgerEntry:
        """Independent copy safe to mutate before committing."""
        return replace(self, achievements=list(self.achievements))


@dataclass
class CourseProgress:
    """Course-level completion derived from the mastery ledger."""

    user_id: str
    course_id: str
    status: CourseStatus = CourseStatus.NOT_ENROLLED
    concepts_completed: int = 0
    total_concepts: int = 0
    overall_progress: int = 0
    enrolled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None

    @property
    def is_enrolled(self) -> bool:
        return self.status != CourseStatus.NOT_ENROLLED

    def copy(self) -> CourseProgress:
        return replace(self)
