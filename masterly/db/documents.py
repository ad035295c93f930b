"""
Learning path document.

Persisted shape of a generated learning path. Field names serialize as
camelCase so documents written by the web client and by the engine are
interchangeable. Icons are stored as their tag names and restored with
IconTag.parse.

`selectedRoute` indexes the routes in display order: 0 is `generatedPath`,
k > 0 is `alternativeRoutes[k - 1]`.
"""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from masterly.adaptive.models import DecoratedConcept, Route
from masterly.core.models import IconTag, ProgressStatus

PathType = Literal["course", "topic"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PathStepDocument(_CamelModel):
    """One concept in a saved path."""

    id: str
    title: str
    description: str = ""
    complexity: int = 3
    estimated_hours: float = 1.0
    mastery_level: float = Field(default=0.0, ge=0, le=10)
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    is_completed: bool = False
    is_prerequisite: bool = False
    locked: bool = False
    prerequisites: list[str] = Field(default_factory=list)
    icon: str = IconTag.TARGET.value

    @classmethod
    def from_concept(cls, concept: DecoratedConcept) -> PathStepDocument:
        return cls(
            id=concept.id,
            title=concept.title,
            description=concept.description,
            complexity=concept.complexity,
            estimated_hours=concept.estimated_hours,
            mastery_level=concept.mastery_score,
            status=concept.status,
            is_completed=concept.is_completed,
            is_prerequisite=concept.is_prerequisite,
            locked=concept.locked,
            prerequisites=list(concept.prerequisites),
            icon=concept.icon.value,
        )

    @property
    def icon_tag(self) -> IconTag:
        return IconTag.parse(self.icon)


class LearningPathDocument(_CamelModel):
    """A user's saved learning path with its alternative routes."""

    path_type: PathType = "course"
    selected_goal: str | None = None
    selected_concept: str | None = None
    generated_path: list[PathStepDocument] = Field(default_factory=list)
    alternative_routes: list[list[PathStepDocument]] = Field(default_factory=list)
    route_names: list[str] = Field(default_factory=list)
    selected_route: int = Field(default=0, ge=0)
    saved_at: datetime | None = None

    @model_validator(mode="after")
    def _check_selected_route(self) -> LearningPathDocument:
        if self.selected_route > len(self.alternative_routes):
            raise ValueError(
                f"selectedRoute {self.selected_route} out of range "
                f"for {len(self.alternative_routes)} alternative route(s)"
            )
        return self

    @classmethod
    def from_routes(
        cls,
        routes: list[Route],
        *,
        path_type: PathType = "course",
        selected_goal: str | None = None,
        selected_concept: str | None = None,
        saved_at: datetime | None = None,
    ) -> LearningPathDocument:
        """Build a document from generator output (recommended route first)."""
        steps = [[PathStepDocument.from_concept(c) for c in r.concepts] for r in routes]
        return cls(
            path_type=path_type,
            selected_goal=selected_goal,
            selected_concept=selected_concept,
            generated_path=steps[0] if steps else [],
            alternative_routes=steps[1:],
            route_names=[r.name.value for r in routes],
            saved_at=saved_at,
        )

    def selected_steps(self) -> list[PathStepDocument]:
        if self.selected_route == 0:
            return self.generated_path
        return self.alternative_routes[self.selected_route - 1]

    def to_payload(self) -> dict:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_payload(cls, payload: dict) -> LearningPathDocument:
        return cls.model_validate(payload)

    @classmethod
    def from_json(cls, text: str) -> LearningPathDocument:
        return cls.model_validate_json(text)
