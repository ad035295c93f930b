"""
Learning Engine.

Main orchestration layer over the concept graph and the stores:
- Unlock resolution and mastery updates (quiz submissions, progress events)
- Sequential paths and alternative routes per course
- Course progress rollups after every ledger change
- Topic path recommendations
- Saving and restoring learning path documents

The engine keeps no per-user state between calls. Every read works on one
ledger snapshot; every write goes through the ledger store's atomic update.
Scores arrive as percentages (0-100) and are stored on the 0-1 scale.
"""
from __future__ import annotations

import math

from loguru import logger

from config import Settings, get_settings
from masterly.adaptive.mastery_policies import BEST_SCORE, RUNNING_AVERAGE, build_policies
from masterly.adaptive.models import (
    MasteryUnlockResult,
    ProgressUpdate,
    Route,
    RouteName,
    SequencedPath,
    TopicPath,
    TopicRecommendation,
    UnlockStatus,
)
from masterly.adaptive.path_sequencer import PathSequencer, decorate
from masterly.adaptive.progress_aggregator import ProgressAggregator
from masterly.adaptive.progress_state import ProgressAction, ProgressStateMachine
from masterly.adaptive.route_generator import RouteGenerator
from masterly.adaptive.topic_recommender import ROOT, TopicRecommender
from masterly.adaptive.unlock_resolver import UnlockResolver, merge_ledger, newly_unlocked
from masterly.core.errors import InvalidScoreError, NotFoundError
from masterly.core.mastery import percent_to_unit
from masterly.core.models import CourseProgress, MasteryLedgerEntry, utcnow
from masterly.db.documents import LearningPathDocument
from masterly.db.repositories import (
    InMemoryLedgerStore,
    InMemoryPathStore,
    InMemoryProgressStore,
    LedgerStore,
    PathStore,
    ProgressStore,
)
from masterly.graph.concept_graph import ConceptGraph


def score_from_percent(score: float | None) -> float:
    """
    Validate a boundary score (0-100) and convert it to the 0-1 scale.

    Scores above 100 are capped.

    Raises:
        InvalidScoreError: Missing, negative or not a number
    """
    if score is None:
        raise InvalidScoreError("A quiz score is required")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or math.isnan(score):
        raise InvalidScoreError(f"Quiz score must be a number, got {score!r}")
    if score < 0:
        raise InvalidScoreError(f"Quiz score cannot be negative, got {score}")
    return percent_to_unit(score)


class LearningEngine:
    """
    Mastery and unlock engine for one concept graph.

    All operations take the user explicitly.
    """

    def __init__(
        self,
        graph: ConceptGraph,
        ledger_store: LedgerStore | None = None,
        progress_store: ProgressStore | None = None,
        path_store: PathStore | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.graph = graph
        self.ledger = ledger_store or InMemoryLedgerStore()
        self.progress = progress_store or InMemoryProgressStore()
        self.paths = path_store or InMemoryPathStore()

        self._policies = build_policies(
            self.settings.best_score_threshold,
            self.settings.running_average_threshold,
        )
        self._machines = {
            name: ProgressStateMachine(policy, self.settings.anti_cheat_failure_limit)
            for name, policy in self._policies.items()
        }
        self._resolver = UnlockResolver(graph)
        self._sequencer = PathSequencer()
        self._route_generator = RouteGenerator(self.settings.max_alternative_routes)
        self._aggregator = ProgressAggregator()
        self._recommender = TopicRecommender(
            graph,
            completion_threshold=self.settings.completion_threshold,
            path_limit=self.settings.topic_path_limit,
        )

    # ========================================================================
    # LEDGER READS
    # ========================================================================

    def ledger_view(self, user_id: str) -> dict[str, MasteryLedgerEntry]:
        """One merged ledger entry per concept from a single snapshot."""
        return merge_ledger(self.ledger.snapshot(user_id))

    def _machine(self, policy: str) -> ProgressStateMachine:
        try:
            return self._machines[policy]
        except KeyError:
            raise ValueError(f"Unknown mastery policy: {policy!r}") from None

    # ========================================================================
    # UNLOCKING
    # ========================================================================

    def get_unlocked_concepts(self, user_id: str, course_id: str | None = None) -> set[str]:
        """
        Concepts the user may access.

        Args:
            user_id: Learner identifier
            course_id: Limit to one course (all concepts if None)

        Returns:
            Set of unlocked concept ids
        """
        return self._resolver.get_unlocked(self.ledger_view(user_id), course_id)

    def get_unlock_status(self, user_id: str, concept_id: str) -> UnlockStatus:
        return self._resolver.check(concept_id, self.ledger_view(user_id))

    # ========================================================================
    # MASTERY UPDATES
    # ========================================================================

    def update_mastery_and_get_unlocks(
        self,
        user_id: str,
        concept_id: str,
        score: float,
        course_id: str | None = None,
        policy: str = BEST_SCORE,
        time_spent: float | None = None,
    ) -> MasteryUnlockResult:
        """
        Record a quiz attempt and report what it unlocked.

        Args:
            user_id: Learner identifier
            concept_id: Concept the quiz belongs to
            score: Quiz score 0-100
            course_id: Course scope of the ledger entry (None for standalone quizzes)
            policy: "best_score" or "running_average"
            time_spent: Minutes spent on the quiz

        Returns:
            MasteryUnlockResult with the mastery flag and newly unlocked concept ids

        Raises:
            NotFoundError: Unknown concept
            InvalidScoreError: Invalid score
        """
        self.graph.get_concept(concept_id)
        unit_score = score_from_percent(score)
        machine = self._machine(policy)

        before = self._resolver.unlocked_ids(self.ledger_view(user_id))
        update = self.ledger.update(
            (user_id, concept_id, course_id),
            lambda entry: machine.apply(
                entry,
                ProgressAction.QUIZ_COMPLETED,
                score=unit_score,
                time_spent=time_spent,
            ),
        )
        after = self._resolver.unlocked_ids(self.ledger_view(user_id))
        unlocked = newly_unlocked(before, after)

        if update.regressed:
            logger.info(f"Content steps reset for {user_id}/{concept_id} after repeated failures")
        if unlocked:
            logger.info(f"{user_id} unlocked {', '.join(unlocked)} by mastering {concept_id}")

        self._refresh_course_progress(user_id, concept_id)
        return MasteryUnlockResult(
            mastered=update.entry.mastered,
            newly_unlocked=unlocked,
            entry=update.entry,
            achievements=list(update.outcome.achievements),
        )

    def submit_quiz(
        self,
        user_id: str,
        concept_id: str,
        score: float,
        course_id: str | None = None,
        time_spent: float | None = None,
    ) -> MasteryUnlockResult:
        """Standalone quiz submission: running-average scoring with achievements."""
        return self.update_mastery_and_get_unlocks(
            user_id,
            concept_id,
            score,
            course_id=course_id,
            policy=RUNNING_AVERAGE,
            time_spent=time_spent,
        )

    def apply_progress_action(
        self,
        user_id: str,
        concept_id: str,
        course_id: str | None,
        action: str | ProgressAction,
        time_spent: float | None = None,
        score: float | None = None,
        passed: bool | None = None,
        policy: str = BEST_SCORE,
    ) -> ProgressUpdate:
        """
        Apply one course learning event.

        Raises:
            InvalidActionError: Unknown action (nothing is written)
            NotFoundError: Unknown concept
            InvalidScoreError: quiz_completed without a valid score
        """
        action = ProgressAction.parse(action)
        self.graph.get_concept(concept_id)
        unit_score = score_from_percent(score) if action == ProgressAction.QUIZ_COMPLETED else None
        machine = self._machine(policy)

        update = self.ledger.update(
            (user_id, concept_id, course_id),
            lambda entry: machine.apply(
                entry,
                action,
                time_spent=time_spent,
                score=unit_score,
                passed=passed,
            ),
        )
        if update.regressed:
            logger.info(f"Content steps reset for {user_id}/{concept_id} after repeated failures")

        self._refresh_course_progress(user_id, concept_id)
        return update

    def reset_concept_progress(
        self,
        user_id: str,
        concept_id: str,
        course_id: str | None = None,
    ) -> ProgressUpdate:
        """Clear content steps of an existing entry. Score and mastery are kept."""
        key = (user_id, concept_id, course_id)
        if self.ledger.get(key) is None:
            raise NotFoundError("progress", f"{user_id}/{concept_id}")
        return self.apply_progress_action(user_id, concept_id, course_id, ProgressAction.RESET)

    # ========================================================================
    # COURSE PROGRESS
    # ========================================================================

    def enroll(self, user_id: str, course_id: str) -> CourseProgress:
        """Enroll a user in a course. Re-enrolling returns the current snapshot."""
        self.graph.get_course(course_id)
        existing = self.progress.get(user_id, course_id)
        if existing is not None and existing.is_enrolled:
            return existing

        logger.info(f"Enrolling {user_id} in {course_id}")
        self.progress.save(self._aggregator.enroll(user_id, course_id))
        return self.recompute_course_progress(user_id, course_id)

    def recompute_course_progress(self, user_id: str, course_id: str) -> CourseProgress:
        """
        Roll the ledger up into a course snapshot.

        Snapshots of enrolled users are saved; for others the counts are
        reported with status not_enrolled and nothing is stored.
        """
        concepts = self.graph.concepts_for_course(course_id)
        previous = self.progress.get(user_id, course_id) or CourseProgress(user_id, course_id)
        snapshot = self._aggregator.recompute(previous, concepts, self.ledger_view(user_id))
        if snapshot.is_enrolled and snapshot != previous:
            self.progress.save(snapshot)
            if snapshot.status != previous.status:
                logger.info(f"{user_id} course {course_id}: {previous.status.value} -> {snapshot.status.value}")
        return snapshot

    def _refresh_course_progress(self, user_id: str, concept_id: str) -> None:
        for course in self.graph.courses_containing(concept_id):
            existing = self.progress.get(user_id, course.id)
            if existing is not None and existing.is_enrolled:
                self.recompute_course_progress(user_id, course.id)

    # ========================================================================
    # PATHS
    # ========================================================================

    def build_sequential_path(self, course_id: str, user_id: str) -> SequencedPath:
        """Prerequisite-ordered, decorated concepts of a course."""
        concepts = self.graph.concepts_for_course(course_id)
        return self._sequencer.build(
            concepts,
            self.ledger_view(user_id),
            course_id=course_id,
            user_id=user_id,
        )

    def generate_alternative_routes(self, course_id: str, user_id: str) -> list[Route]:
        """Recommended route followed by the alternates."""
        return self._route_generator.generate(self.build_sequential_path(course_id, user_id))

    def recommend_topic_path(
        self,
        user_id: str,
        goal_concept_id: str,
        current_concept_id: str = ROOT,
    ) -> TopicRecommendation:
        scores = {cid: entry.score for cid, entry in self.ledger_view(user_id).items()}
        return self._recommender.recommend(goal_concept_id, scores, current_concept_id)

    def _topic_routes(self, user_id: str, recommendation: TopicRecommendation) -> list[Route]:
        ledger = self.ledger_view(user_id)

        def to_route(name: RouteName, path: TopicPath) -> Route:
            concepts = [decorate(self.graph.get_concept(cid), ledger) for cid in path.concept_ids]
            prereq_map = {c.id: c.prerequisites for c in concepts}
            return Route(
                name=name,
                concepts=concepts,
                respects_prerequisites=PathSequencer.is_topologically_valid(
                    path.concept_ids, prereq_map
                ),
            )

        others = [p for p in recommendation.all_paths if p is not recommendation.best_path]
        return [to_route(RouteName.RECOMMENDED, recommendation.best_path)] + [
            to_route(RouteName.ALTERNATIVE, p)
            for p in others[: self.settings.max_alternative_routes]
        ]

    def generate_learning_path(
        self,
        user_id: str,
        path_type: str,
        goal: str,
        current_concept_id: str | None = None,
        save: bool = True,
    ) -> LearningPathDocument:
        """
        Generate and save a learning path document.

        Args:
            user_id: Learner identifier
            path_type: "course" (goal is a course id) or "topic" (goal is a concept id)
            goal: Course or concept id
            current_concept_id: Topic paths only, starting concept (roots if None)
            save: Persist the document

        Returns:
            LearningPathDocument with the recommended route and alternates
        """
        if path_type == "course":
            routes = self.generate_alternative_routes(goal, user_id)
        elif path_type == "topic":
            recommendation = self.recommend_topic_path(user_id, goal, current_concept_id or ROOT)
            routes = self._topic_routes(user_id, recommendation)
        else:
            raise ValueError(f"Unknown path type: {path_type!r}")

        document = LearningPathDocument.from_routes(
            routes,
            path_type=path_type,
            selected_goal=goal,
            selected_concept=current_concept_id,
            saved_at=utcnow(),
        )
        if save:
            self.paths.save(user_id, document)
            logger.info(f"Saved {path_type} path for {user_id} ({len(document.generated_path)} concepts)")
        return document

    def load_learning_path(self, user_id: str) -> LearningPathDocument | None:
        return self.paths.load(user_id)
