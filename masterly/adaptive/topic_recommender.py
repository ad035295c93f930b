"""
Topic Path Recommender.

For topic-based learning paths: enumerate prerequisite chains leading to a
goal concept and rank them by learning cost.

Edges run from a prerequisite to the concepts that depend on it. Starting
from "root", each concept without prerequisites is tried in graph order and
the first one that reaches the goal supplies the candidates.

Cost of a path: sum of (1 - score) over concepts below the completion
threshold; concepts at or above it cost nothing. Lower is better.
"""
from __future__ import annotations

from collections.abc import Mapping

from loguru import logger

from masterly.adaptive.models import TopicPath, TopicPathStep, TopicRecommendation
from masterly.core.errors import NotFoundError
from masterly.graph.concept_graph import ConceptGraph

ROOT = "root"


class TopicRecommender:
    """Rank prerequisite chains towards a goal concept."""

    def __init__(
        self,
        graph: ConceptGraph,
        completion_threshold: float = 0.7,
        path_limit: int = 50,
    ):
        self.graph = graph
        self.completion_threshold = completion_threshold
        self.path_limit = path_limit

    def all_paths(self, start_id: str, goal_id: str) -> list[list[str]]:
        """
        Enumerate simple paths from `start_id` to `goal_id`.

        Stops after `path_limit` paths.
        """
        if start_id not in self.graph or goal_id not in self.graph:
            return []

        dependents: dict[str, list[str]] = {c.id: [] for c in self.graph.concepts}
        for concept in self.graph.concepts:
            for prereq_id in concept.prerequisites:
                if prereq_id in dependents:
                    dependents[prereq_id].append(concept.id)

        paths: list[list[str]] = []
        stack: list[str] = [start_id]

        def walk(node: str) -> None:
            if len(paths) >= self.path_limit:
                return
            if node == goal_id:
                paths.append(list(stack))
                return
            for nxt in dependents[node]:
                if nxt in stack:
                    continue
                stack.append(nxt)
                walk(nxt)
                stack.pop()

        walk(start_id)
        return paths

    def recommend(
        self,
        goal_id: str,
        scores: Mapping[str, float],
        current_id: str = ROOT,
    ) -> TopicRecommendation:
        """
        Recommend the cheapest path to `goal_id`.

        Args:
            goal_id: Target concept
            scores: Mastery score (0-1) by concept id
            current_id: Starting concept, or "root"

        Returns:
            TopicRecommendation with best and all candidate paths

        Raises:
            NotFoundError: Goal unknown or unreachable
        """
        goal = self.graph.find_concept(goal_id)
        if goal is None:
            raise NotFoundError("concept", goal_id)

        raw_paths: list[list[str]] = []
        if current_id == ROOT:
            for root in self.graph.roots():
                raw_paths = self.all_paths(root.id, goal_id)
                if raw_paths:
                    logger.debug(f"Found {len(raw_paths)} paths from {root.title} to {goal.title}")
                    break
        else:
            self.graph.get_concept(current_id)
            raw_paths = self.all_paths(current_id, goal_id)

        if not raw_paths:
            raise NotFoundError("path", f"{current_id} -> {goal_id}")

        detailed = [self._detail(path, scores) for path in raw_paths]
        best = min(detailed, key=lambda p: p.total_cost)
        return TopicRecommendation(goal_concept_id=goal_id, best_path=best, all_paths=detailed)

    def _detail(self, path: list[str], scores: Mapping[str, float]) -> TopicPath:
        steps = []
        total_cost = 0.0
        for concept_id in path:
            concept = self.graph.get_concept(concept_id)
            prereq_scores = {p: scores.get(p, 0.0) for p in concept.prerequisites}
            locked = any(s < self.completion_threshold for s in prereq_scores.values())

            mastery = scores.get(concept_id, 0.0)
            if mastery < self.completion_threshold:
                total_cost += 1 - mastery

            steps.append(TopicPathStep(
                concept_id=concept_id,
                title=concept.title,
                locked=locked,
                prerequisite_scores=prereq_scores,
            ))
        return TopicPath(concept_ids=list(path), steps=steps, total_cost=round(total_cost, 6))
