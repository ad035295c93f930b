"""
Course Progress Aggregator.

Rolls per-concept ledger state up into one course-level snapshot:

    overall_progress = round(completed / total * 100), clamped to [0, 100]

An empty course reports 0. The result is a pure function of the previous
snapshot, the ledger snapshot and the clock, so recomputing with unchanged
inputs yields the same snapshot.
"""
from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from masterly.adaptive.unlock_resolver import LedgerByConcept
from masterly.core.models import Concept, CourseProgress, CourseStatus, utcnow


def completion_percentage(completed: int, total: int) -> int:
    """Integer completion percentage; 0 for an empty course."""
    if total <= 0:
        return 0
    return min(max(round(completed / total * 100), 0), 100)


class ProgressAggregator:
    """Recompute CourseProgress snapshots from the mastery ledger."""

    def recompute(
        self,
        previous: CourseProgress,
        concepts: Sequence[Concept],
        ledger: LedgerByConcept,
        now: datetime | None = None,
    ) -> CourseProgress:
        """
        Derive a new snapshot from `previous` and the ledger.

        Status transitions:
        - enrolled -> in_progress once progress is above 0
        - any enrolled state -> completed at 100, stamping completed_at once
        - completed -> in_progress if progress drops, clearing completed_at
        - not_enrolled stays not_enrolled (counts are still reported)

        Args:
            previous: Last stored snapshot (enrollment fields are kept)
            concepts: Concepts that belong to the course
            ledger: Ledger entries by concept id
            now: Clock override

        Returns:
            New CourseProgress; `previous` is not modified
        """
        now = now or utcnow()
        total = len(concepts)
        completed = sum(
            1 for c in concepts
            if (entry := ledger.get(c.id)) is not None and entry.is_completed
        )
        percent = completion_percentage(completed, total)

        snapshot = previous.copy()
        snapshot.concepts_completed = completed
        snapshot.total_concepts = total
        snapshot.overall_progress = percent

        if previous.status == CourseStatus.NOT_ENROLLED:
            return snapshot

        if total > 0 and percent >= 100:
            snapshot.status = CourseStatus.COMPLETED
            snapshot.completed_at = previous.completed_at or now
        elif percent > 0 or previous.status in (CourseStatus.IN_PROGRESS, CourseStatus.COMPLETED):
            snapshot.status = CourseStatus.IN_PROGRESS
            snapshot.completed_at = None
        else:
            snapshot.status = CourseStatus.ENROLLED

        if snapshot.status != CourseStatus.ENROLLED and snapshot.started_at is None:
            snapshot.started_at = now
        return snapshot

    @staticmethod
    def enroll(user_id: str, course_id: str, now: datetime | None = None) -> CourseProgress:
        """Fresh enrollment snapshot."""
        now = now or utcnow()
        return CourseProgress(
            user_id=user_id,
            course_id=course_id,
            status=CourseStatus.ENROLLED,
            enrolled_at=now,
            last_accessed_at=now,
        )
