"""
Mastery scoring policies.

Two scoring algorithms exist for the same notion of "mastered" and both
stay in service:

- BestScorePolicy: best score wins and never decreases. Mastery needs a
  passing attempt at or above 0.75. Used by the course learning flow.
- RunningAveragePolicy: the stored score is averaged with each new score.
  At or above 0.70 masters; dropping below demotes, even if the concept
  was mastered before. Used by the standalone quiz submission endpoint.

Callers pick a policy per endpoint by name. Thresholds come from settings.
All scores are on the 0-1 scale.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from masterly.adaptive.models import MasteryOutcome
from masterly.core.models import MasteryLedgerEntry, ProgressStatus

BEST_SCORE = "best_score"
RUNNING_AVERAGE = "running_average"


class MasteryPolicy(ABC):
    """Updates score and mastery fields of a ledger entry for one quiz attempt."""

    name: str = ""

    def __init__(self, threshold: float):
        if not 0 <= threshold <= 1:
            raise ValueError(f"Mastery threshold must be within [0, 1], got {threshold}")
        self.threshold = threshold

    def is_passing(self, score: float) -> bool:
        """Default pass decision when the caller does not supply one."""
        return score >= self.threshold

    @abstractmethod
    def apply(
        self,
        entry: MasteryLedgerEntry,
        score: float,
        passed: bool,
        now: datetime,
    ) -> MasteryOutcome:
        """
        Apply one attempt to `entry` in place.

        `entry.attempts` still holds the count before this attempt.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} threshold={self.threshold}>"


class BestScorePolicy(MasteryPolicy):
    """Best score wins; mastery on a passing attempt at or above threshold."""

    name = BEST_SCORE

    def __init__(self, threshold: float = 0.75):
        super().__init__(threshold)

    def apply(
        self,
        entry: MasteryLedgerEntry,
        score: float,
        passed: bool,
        now: datetime,
    ) -> MasteryOutcome:
        entry.score = max(entry.score, score)

        outcome = MasteryOutcome()
        if passed and score >= self.threshold:
            outcome.newly_mastered = not entry.mastered
            entry.mastered = True
            if entry.mastered_at is None:
                entry.mastered_at = now
            entry.status = ProgressStatus.COMPLETED
        return outcome


class RunningAveragePolicy(MasteryPolicy):
    """
    Average the previous and new score, capped at 1.

    The first attempt takes the new score as is. Mastery is re-evaluated
    after every attempt, so a weak attempt can demote a mastered concept.
    """

    name = RUNNING_AVERAGE

    PERFECT_SCORE = "Perfect Score"
    MASTER_OF_CONCEPT = "Master of Concept"
    FAST_LEARNER = "Fast Learner"
    IMPROVER = "Improver"

    def __init__(self, threshold: float = 0.70):
        super().__init__(threshold)

    def achievements_for(self, previous: float, score: float, attempt_number: int) -> list[str]:
        earned = []
        if score == 1:
            earned.append(self.PERFECT_SCORE)
        if score >= 0.9:
            earned.append(self.MASTER_OF_CONCEPT)
        if score >= 0.75 and attempt_number == 1:
            earned.append(self.FAST_LEARNER)
        if score > previous and attempt_number > 1:
            earned.append(self.IMPROVER)
        return earned

    def apply(
        self,
        entry: MasteryLedgerEntry,
        score: float,
        passed: bool,
        now: datetime,
    ) -> MasteryOutcome:
        first_attempt = entry.attempts == 0
        previous = entry.score if not first_attempt else 0.0
        earned = self.achievements_for(previous, score, entry.attempts + 1)

        entry.score = score if first_attempt else min((entry.score + score) / 2, 1.0)

        outcome = MasteryOutcome(achievements=earned)
        if entry.score >= self.threshold:
            if not entry.mastered:
                entry.mastered = True
                entry.mastered_at = now
                outcome.newly_mastered = True
            entry.status = ProgressStatus.COMPLETED
        else:
            outcome.demoted = entry.mastered
            entry.mastered = False
            entry.mastered_at = None
            if entry.status == ProgressStatus.COMPLETED:
                entry.status = ProgressStatus.IN_PROGRESS

        for label in earned:
            if label not in entry.achievements:
                entry.achievements.append(label)
        return outcome


def build_policies(
    best_score_threshold: float = 0.75,
    running_average_threshold: float = 0.70,
) -> dict[str, MasteryPolicy]:
    """Policy registry keyed by name."""
    return {
        BEST_SCORE: BestScorePolicy(best_score_threshold),
        RUNNING_AVERAGE: RunningAveragePolicy(running_average_threshold),
    }
