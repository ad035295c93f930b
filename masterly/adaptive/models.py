"""
Adaptive engine result models.

View-models and results produced by the resolver, sequencer, route
generator and state machine. All are plain dataclasses; the persisted
learning path document is in masterly.db.documents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from masterly.core.errors import CycleDetectedWarning
from masterly.core.models import IconTag, MasteryLedgerEntry, ProgressStatus


@dataclass
class BlockingPrerequisite:
    """A prerequisite that keeps a concept locked."""

    concept_id: str
    concept_name: str
    current_score: float = 0.0
    status: ProgressStatus = ProgressStatus.NOT_STARTED


@dataclass
class UnlockStatus:
    """Unlock decision for one concept with its blocking prerequisites."""

    is_unlocked: bool
    blocking_prerequisites: list[BlockingPrerequisite] = field(default_factory=list)
    unlock_reason: str | None = None


@dataclass
class DecoratedConcept:
    """
    A concept decorated with one user's ledger state, ready for display.

    `mastery_score` is on the 0-10 display scale.
    """

    id: str
    title: str
    description: str
    complexity: int
    estimated_hours: float
    mastery_score: float
    status: ProgressStatus
    is_completed: bool
    is_unlocked: bool
    prerequisites: list[str] = field(default_factory=list)
    icon: IconTag = IconTag.TARGET
    attempts: int = 0
    time_spent: float = 0.0

    @property
    def locked(self) -> bool:
        return not self.is_unlocked

    @property
    def is_prerequisite(self) -> bool:
        """Shown as a pending prerequisite step (locked) in path views."""
        return not self.is_unlocked


@dataclass
class SequencedPath:
    """Topologically ordered, decorated concepts of a course."""

    course_id: str
    user_id: str
    concepts: list[DecoratedConcept] = field(default_factory=list)
    warnings: list[CycleDetectedWarning] = field(default_factory=list)

    @property
    def concept_ids(self) -> list[str]:
        return [c.id for c in self.concepts]

    @property
    def has_cycles(self) -> bool:
        return bool(self.warnings)


class RouteName(str, Enum):
    """
    Named route orderings. RECOMMENDED is always index 0.

    ALTERNATIVE names the non-optimal prerequisite chains of a topic path.
    """

    RECOMMENDED = "Recommended"
    EASY_FIRST = "Easy First"
    TIME_OPTIMIZED = "Time Optimized"
    MASTERY_FOCUSED = "Mastery Focused"
    ALTERNATIVE = "Alternative"


@dataclass
class Route:
    """One ordering of a course's concepts."""

    name: RouteName
    concepts: list[DecoratedConcept]
    respects_prerequisites: bool = True

    @property
    def concept_ids(self) -> list[str]:
        return [c.id for c in self.concepts]


@dataclass
class MasteryOutcome:
    """What a mastery policy changed on a ledger entry."""

    newly_mastered: bool = False
    demoted: bool = False
    achievements: list[str] = field(default_factory=list)


@dataclass
class ProgressUpdate:
    """Result of applying one progress event to a ledger entry."""

    entry: MasteryLedgerEntry
    action: str
    outcome: MasteryOutcome = field(default_factory=MasteryOutcome)
    regressed: bool = False


@dataclass
class MasteryUnlockResult:
    """Result of a quiz submission: mastery flag plus concepts it unlocked."""

    mastered: bool
    newly_unlocked: list[str] = field(default_factory=list)
    entry: MasteryLedgerEntry | None = None
    achievements: list[str] = field(default_factory=list)


@dataclass
class TopicPathStep:
    """One concept along a topic recommendation path."""

    concept_id: str
    title: str
    locked: bool
    prerequisite_scores: dict[str, float] = field(default_factory=dict)


@dataclass
class TopicPath:
    """A candidate chain of concepts towards a goal, with its learning cost."""

    concept_ids: list[str]
    steps: list[TopicPathStep]
    total_cost: float


@dataclass
class TopicRecommendation:
    """Best path plus all candidates for a goal concept."""

    goal_concept_id: str
    best_path: TopicPath
    all_paths: list[TopicPath]
