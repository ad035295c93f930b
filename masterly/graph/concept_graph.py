"""
Concept Graph Store.

Holds concept nodes, their prerequisite edges and course membership.
The graph is owned by the content-authoring side; the engine only reads
it during a resolution pass.

Course files are JSON documents of the form:

    {
      "courses": [{"id": "dsa", "title": "DSA", "concepts": ["arrays", ...]}],
      "concepts": [
        {"id": "arrays", "title": "Arrays", "difficulty": "Easy",
         "estimatedTime": "1h 30m", "prerequisites": []},
        ...
      ]
    }
"""
from __future__ import annotations

import json
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from loguru import logger

from masterly.core.errors import CourseFileError, NotFoundError
from masterly.core.models import Concept, Course, Difficulty, IconTag

DEFAULT_ESTIMATED_HOURS = 1.0

_DURATION_PATTERN = re.compile(
    r"^(?:(?P<hours>\d+(?:\.\d+)?)\s*h(?:ours?|rs?)?)?"
    r"\s*(?:(?P<minutes>\d+(?:\.\d+)?)\s*m(?:in(?:ute)?s?)?)?$",
    re.IGNORECASE,
)


def parse_estimated_hours(value: Any) -> float:
    """
    Parse an authoring time estimate into hours.

    Accepts numbers (hours) and strings like "2h", "1.5h", "2h 30m", "45m"
    or "1.5". Anything else falls back to one hour.
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_ESTIMATED_HOURS
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else DEFAULT_ESTIMATED_HOURS

    text = str(value).strip()
    match = _DURATION_PATTERN.fullmatch(text)
    if match and (match.group("hours") or match.group("minutes")):
        hours = float(match.group("hours") or 0)
        minutes = float(match.group("minutes") or 0)
        total = hours + minutes / 60
        return total if total > 0 else DEFAULT_ESTIMATED_HOURS
    try:
        parsed = float(text)
    except ValueError:
        return DEFAULT_ESTIMATED_HOURS
    return parsed if parsed > 0 else DEFAULT_ESTIMATED_HOURS


def concept_from_dict(data: dict[str, Any]) -> Concept:
    """Build a Concept from an authoring record (camelCase or snake_case keys)."""
    concept_id = data.get("id") or data.get("_id")
    if not concept_id:
        raise ValueError(f"Concept record has no id: {data!r}")

    estimated = data.get("estimated_hours", data.get("estimatedTime", data.get("estLearningTimeHours")))
    prerequisites = tuple(str(p) for p in (data.get("prerequisites") or []) if p)

    return Concept(
        id=str(concept_id),
        title=data.get("title") or str(concept_id),
        description=data.get("description") or "",
        prerequisites=prerequisites,
        difficulty=Difficulty.parse(data.get("difficulty")),
        estimated_hours=parse_estimated_hours(estimated),
        icon=IconTag.parse(data.get("icon")),
    )


def course_from_dict(data: dict[str, Any]) -> Course:
    """Build a Course from an authoring record."""
    course_id = data.get("id") or data.get("_id")
    if not course_id:
        raise ValueError(f"Course record has no id: {data!r}")
    concept_ids = data.get("concepts") or data.get("concept_ids") or []
    return Course(
        id=str(course_id),
        title=data.get("title") or str(course_id),
        concept_ids=tuple(str(c) for c in concept_ids),
    )


class ConceptGraph:
    """
    In-memory concept DAG with course membership.

    Insertion order is preserved everywhere; it is the tie-breaker that makes
    traversal output deterministic.
    """

    def __init__(
        self,
        concepts: Iterable[Concept] = (),
        courses: Iterable[Course] = (),
    ):
        self._concepts: dict[str, Concept] = {}
        self._courses: dict[str, Course] = {}
        for concept in concepts:
            self.add_concept(concept)
        for course in courses:
            self.add_course(course)

    # ------------------------------------------------------------------
    # Mutation (authoring side only)
    # ------------------------------------------------------------------
    def add_concept(self, concept: Concept) -> None:
        self._concepts[concept.id] = concept

    def add_course(self, course: Course) -> None:
        self._courses[course.id] = course

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def __contains__(self, concept_id: object) -> bool:
        return concept_id in self._concepts

    def __len__(self) -> int:
        return len(self._concepts)

    @property
    def concepts(self) -> list[Concept]:
        return list(self._concepts.values())

    @property
    def courses(self) -> list[Course]:
        return list(self._courses.values())

    def find_concept(self, concept_id: str) -> Concept | None:
        return self._concepts.get(concept_id)

    def get_concept(self, concept_id: str) -> Concept:
        concept = self._concepts.get(concept_id)
        if concept is None:
            raise NotFoundError("concept", concept_id)
        return concept

    def get_course(self, course_id: str) -> Course:
        course = self._courses.get(course_id)
        if course is None:
            raise NotFoundError("course", course_id)
        return course

    def concepts_for_course(self, course_id: str) -> list[Concept]:
        """Concepts of a course in authoring order. Dangling ids are skipped."""
        course = self.get_course(course_id)
        concepts = []
        for concept_id in course.concept_ids:
            concept = self._concepts.get(concept_id)
            if concept is None:
                logger.warning(f"Course {course_id} references unknown concept {concept_id}")
                continue
            concepts.append(concept)
        return concepts

    def courses_containing(self, concept_id: str) -> list[Course]:
        return [c for c in self._courses.values() if concept_id in c.concept_ids]

    def dependents(self, concept_id: str) -> list[str]:
        """Concepts that list `concept_id` as a direct prerequisite."""
        return [c.id for c in self._concepts.values() if concept_id in c.prerequisites]

    def roots(self) -> list[Concept]:
        """Concepts without prerequisites."""
        return [c for c in self._concepts.values() if not c.prerequisites]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def unknown_prerequisites(self) -> dict[str, list[str]]:
        """Map of concept id to prerequisite ids that do not exist."""
        missing: dict[str, list[str]] = {}
        for concept in self._concepts.values():
            unknown = [p for p in concept.prerequisites if p not in self._concepts]
            if unknown:
                missing[concept.id] = unknown
        return missing

    def find_cycles(self) -> list[list[str]]:
        """
        Find prerequisite cycles.

        Returns each cycle once as the list of concept ids along it, closing
        back on its first element (e.g. ["a", "b", "a"]).
        """
        cycles: list[list[str]] = []
        seen: set[frozenset[str]] = set()
        done: set[str] = set()

        def visit(concept_id: str, stack: list[str]) -> None:
            if concept_id in stack:
                cycle = stack[stack.index(concept_id):] + [concept_id]
                signature = frozenset(cycle)
                if signature not in seen:
                    seen.add(signature)
                    cycles.append(cycle)
                return
            if concept_id in done or concept_id not in self._concepts:
                return
            stack.append(concept_id)
            for prereq in self._concepts[concept_id].prerequisites:
                visit(prereq, stack)
            stack.pop()
            done.add(concept_id)

        for concept_id in self._concepts:
            visit(concept_id, [])
        return cycles

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConceptGraph:
        concepts = [concept_from_dict(c) for c in data.get("concepts", [])]
        courses = [course_from_dict(c) for c in data.get("courses", [])]
        return cls(concepts, courses)

    @classmethod
    def load_json(cls, path: Path | str) -> ConceptGraph:
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise CourseFileError(str(path), "file not found") from None
        except (OSError, UnicodeDecodeError) as e:
            raise CourseFileError(str(path), f"unreadable ({e})") from e
        except json.JSONDecodeError as e:
            raise CourseFileError(str(path), f"invalid JSON at line {e.lineno}") from e
        if not isinstance(data, dict):
            raise CourseFileError(str(path), "expected an object with 'courses' and 'concepts'")
        try:
            graph = cls.from_dict(data)
        except (ValueError, TypeError, AttributeError) as e:
            raise CourseFileError(str(path), f"invalid record ({e})") from e
        logger.info(f"Loaded {len(graph)} concepts and {len(graph.courses)} courses from {path.name}")
        return graph
