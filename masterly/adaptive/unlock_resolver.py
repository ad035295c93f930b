"""
Unlock Resolver.

Decides which concepts a user may access:
- No prerequisites: always unlocked
- Otherwise: every prerequisite must have a completed ledger entry
- Missing entry counts as not completed
- No partial credit (2 of 3 prerequisites still locks)

Everything here is a pure read over a ledger snapshot.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping

from masterly.adaptive.models import BlockingPrerequisite, UnlockStatus
from masterly.core.models import Concept, MasteryLedgerEntry, ProgressStatus
from masterly.graph.concept_graph import ConceptGraph

LedgerByConcept = Mapping[str, MasteryLedgerEntry]


def _entry_rank(entry: MasteryLedgerEntry) -> tuple:
    return (entry.is_completed, entry.mastered, entry.score, entry.attempts)


def merge_ledger(entries: Iterable[MasteryLedgerEntry]) -> dict[str, MasteryLedgerEntry]:
    """
    Collapse ledger entries to one per concept.

    A user can hold entries for the same concept under several courses.
    The strongest one wins: completed first, then mastered, then score.
    """
    merged: dict[str, MasteryLedgerEntry] = {}
    for entry in entries:
        current = merged.get(entry.concept_id)
        if current is None or _entry_rank(entry) > _entry_rank(current):
            merged[entry.concept_id] = entry
    return merged


def is_unlocked(concept: Concept, ledger: LedgerByConcept) -> bool:
    """Check whether every prerequisite of `concept` is completed."""
    if not concept.prerequisites:
        return True
    for prereq_id in concept.prerequisites:
        entry = ledger.get(prereq_id)
        if entry is None or not entry.is_completed:
            return False
    return True


def unlock_status(
    concept: Concept,
    ledger: LedgerByConcept,
    graph: ConceptGraph | None = None,
) -> UnlockStatus:
    """
    Check unlock state with blocking prerequisite details.

    Args:
        concept: Concept to check
        ledger: Ledger entries by concept id
        graph: Optional graph used to resolve prerequisite titles

    Returns:
        UnlockStatus with blocking prerequisites if any
    """
    if not concept.prerequisites:
        return UnlockStatus(is_unlocked=True, unlock_reason="no_prerequisites")

    blocking = []
    for prereq_id in concept.prerequisites:
        entry = ledger.get(prereq_id)
        if entry is not None and entry.is_completed:
            continue
        prereq = graph.find_concept(prereq_id) if graph is not None else None
        blocking.append(BlockingPrerequisite(
            concept_id=prereq_id,
            concept_name=prereq.title if prereq else prereq_id,
            current_score=entry.score if entry else 0.0,
            status=entry.status if entry else ProgressStatus.NOT_STARTED,
        ))

    if blocking:
        return UnlockStatus(
            is_unlocked=False,
            blocking_prerequisites=blocking,
            unlock_reason="blocked_by_prerequisites",
        )
    return UnlockStatus(is_unlocked=True, unlock_reason="prerequisites_met")


def newly_unlocked(before: Iterable[str], after: Iterable[str]) -> list[str]:
    """Ids unlocked in `after` but not in `before`, in `after` order."""
    previous = set(before)
    return [concept_id for concept_id in after if concept_id not in previous]


class UnlockResolver:
    """Resolve unlocked concepts against a concept graph."""

    def __init__(self, graph: ConceptGraph):
        self.graph = graph

    def _scope(self, course_id: str | None) -> list[Concept]:
        if course_id is None:
            return self.graph.concepts
        return self.graph.concepts_for_course(course_id)

    def unlocked_ids(
        self,
        ledger: LedgerByConcept,
        course_id: str | None = None,
    ) -> list[str]:
        """Unlocked concept ids in graph (or course) order."""
        return [c.id for c in self._scope(course_id) if is_unlocked(c, ledger)]

    def get_unlocked(
        self,
        ledger: LedgerByConcept,
        course_id: str | None = None,
    ) -> set[str]:
        return set(self.unlocked_ids(ledger, course_id))

    def check(self, concept_id: str, ledger: LedgerByConcept) -> UnlockStatus:
        return unlock_status(self.graph.get_concept(concept_id), ledger, self.graph)
