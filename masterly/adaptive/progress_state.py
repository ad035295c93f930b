"""
Mastery Update State Machine.

Per ledger entry:

    not_started -> in_progress -> completed

driven by discrete progress events. An orthogonal failure counter
implements the anti-cheat rule: after `failure_limit` consecutive failed
quizzes the content steps (description, video, quiz) are cleared and the
entry drops back to in_progress, so retry spam cannot skip the content.
Mastery already achieved is left as is by the regression.

Events are applied to a copy of the entry; the caller commits the copy
atomically through a ledger store or discards it.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from masterly.adaptive.mastery_policies import MasteryPolicy
from masterly.adaptive.models import MasteryOutcome, ProgressUpdate
from masterly.core.errors import InvalidActionError, InvalidScoreError
from masterly.core.models import MasteryLedgerEntry, ProgressStatus, utcnow


class ProgressAction(str, Enum):
    """Progress events accepted from the course learning flow."""

    MARK_DESCRIPTION_READ = "mark_description_read"
    MARK_VIDEO_WATCHED = "mark_video_watched"
    QUIZ_COMPLETED = "quiz_completed"
    RESET = "reset"

    @classmethod
    def parse(cls, value: str | ProgressAction) -> ProgressAction:
        if isinstance(value, ProgressAction):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidActionError(str(value)) from None


class ProgressStateMachine:
    """Apply progress events to ledger entries under one mastery policy."""

    def __init__(self, policy: MasteryPolicy, failure_limit: int = 3):
        if failure_limit < 1:
            raise ValueError("failure_limit must be at least 1")
        self.policy = policy
        self.failure_limit = failure_limit

    def apply(
        self,
        entry: MasteryLedgerEntry,
        action: str | ProgressAction,
        *,
        time_spent: float | None = None,
        score: float | None = None,
        passed: bool | None = None,
        now: datetime | None = None,
    ) -> ProgressUpdate:
        """
        Apply one event and return the updated copy.

        Args:
            entry: Current ledger entry (left untouched)
            action: Event name or ProgressAction
            time_spent: Minutes to add (video watch time, quiz time)
            score: Quiz score on the 0-1 scale (quiz_completed only)
            passed: Quiz pass flag; derived from the policy threshold if None
            now: Clock override

        Returns:
            ProgressUpdate with the new entry

        Raises:
            InvalidActionError: Unknown action, nothing changed
            InvalidScoreError: Missing or out-of-range quiz score
        """
        action = ProgressAction.parse(action)
        now = now or utcnow()
        updated = entry.copy()

        if action == ProgressAction.MARK_DESCRIPTION_READ:
            update = self._mark_description_read(updated)
        elif action == ProgressAction.MARK_VIDEO_WATCHED:
            update = self._mark_video_watched(updated, time_spent)
        elif action == ProgressAction.QUIZ_COMPLETED:
            update = self._quiz_completed(updated, score, passed, time_spent, now)
        else:
            update = self._reset(updated)

        updated.last_updated = now
        return update

    def _mark_description_read(self, entry: MasteryLedgerEntry) -> ProgressUpdate:
        entry.description_read = True
        if entry.status == ProgressStatus.NOT_STARTED:
            entry.status = ProgressStatus.IN_PROGRESS
        return ProgressUpdate(entry=entry, action=ProgressAction.MARK_DESCRIPTION_READ.value)

    def _mark_video_watched(
        self,
        entry: MasteryLedgerEntry,
        watch_time: float | None,
    ) -> ProgressUpdate:
        entry.video_watched = True
        if watch_time:
            entry.time_spent += watch_time
        return ProgressUpdate(entry=entry, action=ProgressAction.MARK_VIDEO_WATCHED.value)

    def _quiz_completed(
        self,
        entry: MasteryLedgerEntry,
        score: float | None,
        passed: bool | None,
        time_spent: float | None,
        now: datetime,
    ) -> ProgressUpdate:
        if score is None:
            raise InvalidScoreError("quiz_completed requires a score")
        if not 0 <= score <= 1:
            raise InvalidScoreError(f"Quiz score must be within [0, 1], got {score}")
        if passed is None:
            passed = self.policy.is_passing(score)

        outcome: MasteryOutcome = self.policy.apply(entry, score, passed, now)
        entry.attempts += 1
        entry.last_quiz_attempt = now
        if time_spent:
            entry.time_spent += time_spent

        regressed = False
        if passed:
            entry.quiz_passed = True
            entry.failed_attempts = 0
        else:
            entry.quiz_passed = False
            entry.failed_attempts += 1
            if entry.failed_attempts >= self.failure_limit:
                entry.description_read = False
                entry.video_watched = False
                entry.status = ProgressStatus.IN_PROGRESS
                regressed = True

        if entry.status == ProgressStatus.NOT_STARTED:
            entry.status = ProgressStatus.IN_PROGRESS

        return ProgressUpdate(
            entry=entry,
            action=ProgressAction.QUIZ_COMPLETED.value,
            outcome=outcome,
            regressed=regressed,
        )

    def _reset(self, entry: MasteryLedgerEntry) -> ProgressUpdate:
        entry.description_read = False
        entry.video_watched = False
        entry.quiz_passed = False
        entry.status = ProgressStatus.NOT_STARTED
        return ProgressUpdate(entry=entry, action=ProgressAction.RESET.value)
