"""
Learning Path Sequencer.

Orders a course's concepts for sequential learning:
- Prerequisite graph (depth-first topological sort)
- Mastery state merged in from the ledger (status, score, attempts)
- Unlock flags from the unlock resolver

Output is deterministic for a fixed input order, but not canonical: any
valid topological order is acceptable, so callers should check validity
with `is_topologically_valid` rather than compare exact sequences.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from loguru import logger

from masterly.adaptive.models import DecoratedConcept, SequencedPath
from masterly.adaptive.unlock_resolver import LedgerByConcept, is_unlocked
from masterly.core.errors import CycleDetectedWarning
from masterly.core.mastery import unit_to_display
from masterly.core.models import Concept, ProgressStatus


def decorate(concept: Concept, ledger: LedgerByConcept) -> DecoratedConcept:
    """Merge ledger state and unlock flag into a display view-model."""
    entry = ledger.get(concept.id)
    return DecoratedConcept(
        id=concept.id,
        title=concept.title,
        description=concept.description,
        complexity=concept.difficulty.complexity,
        estimated_hours=concept.estimated_hours,
        mastery_score=unit_to_display(entry.score) if entry else 0.0,
        status=entry.status if entry else ProgressStatus.NOT_STARTED,
        is_completed=entry.is_completed if entry else False,
        is_unlocked=is_unlocked(concept, ledger),
        prerequisites=list(concept.prerequisites),
        icon=concept.icon,
        attempts=entry.attempts if entry else 0,
        time_spent=entry.time_spent if entry else 0.0,
    )


class PathSequencer:
    """
    Sequence concepts for learning.

    Uses the prerequisite graph to find a valid ordering, then decorates
    every concept with the learner's mastery state.
    """

    def build(
        self,
        concepts: Sequence[Concept],
        ledger: LedgerByConcept,
        *,
        course_id: str = "",
        user_id: str = "",
    ) -> SequencedPath:
        """
        Build the sequential path for a set of concepts.

        Prerequisites outside `concepts` are not traversed, but they still
        gate unlocking.

        Args:
            concepts: Concepts in authoring order
            ledger: Ledger entries by concept id (point-in-time snapshot)
            course_id: Course id recorded on the result
            user_id: User id recorded on the result

        Returns:
            SequencedPath with decorated concepts and cycle diagnostics
        """
        ordered, warnings = self.topological_order(concepts)
        for warning in warnings:
            logger.warning(f"{warning} (course={course_id or '-'})")

        return SequencedPath(
            course_id=course_id,
            user_id=user_id,
            concepts=[decorate(c, ledger) for c in ordered],
            warnings=warnings,
        )

    @staticmethod
    def topological_order(
        concepts: Sequence[Concept],
    ) -> tuple[list[Concept], list[CycleDetectedWarning]]:
        """
        Depth-first topological sort.

        Each concept is emitted exactly once, after all its prerequisites.
        A concept reached again while still being visited closes a cycle:
        the repeat is dropped and a CycleDetectedWarning is recorded.
        """
        by_id = {c.id: c for c in concepts}
        ordered: list[Concept] = []
        warnings: list[CycleDetectedWarning] = []
        visited: set[str] = set()
        visiting: list[str] = []

        def visit(concept: Concept) -> None:
            if concept.id in visiting:
                chain = visiting[visiting.index(concept.id):] + [concept.id]
                warnings.append(CycleDetectedWarning(concept.id, chain))
                return
            if concept.id in visited:
                return

            visiting.append(concept.id)
            for prereq_id in concept.prerequisites:
                prereq = by_id.get(prereq_id)
                if prereq is not None:
                    visit(prereq)
            visiting.pop()

            visited.add(concept.id)
            ordered.append(concept)

        for concept in concepts:
            if concept.id not in visited:
                visit(concept)

        return ordered, warnings

    @staticmethod
    def is_topologically_valid(
        sequence: Sequence[str],
        prereq_map: Mapping[str, Iterable[str]],
    ) -> bool:
        """
        Check that every prerequisite appears strictly earlier in `sequence`.

        Prerequisites absent from the sequence are ignored.
        """
        position = {concept_id: index for index, concept_id in enumerate(sequence)}
        for concept_id, index in position.items():
            for prereq_id in prereq_map.get(concept_id, ()):
                if prereq_id in position and position[prereq_id] >= index:
                    return False
        return True
