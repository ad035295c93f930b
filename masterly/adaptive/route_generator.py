"""
Alternative Route Generator.

Derives re-orderings of a sequenced path for user choice:
- Recommended: the canonical topological order (always index 0)
- Easy First: stable sort by difficulty tier
- Time Optimized: stable sort by estimated learning time
- Mastery Focused: stable sort by current mastery, weakest first

Alternates optimize a secondary signal and may break prerequisite order.
They are suggestions; each route reports whether it still respects
prerequisites. Unlock flags come from the same ledger snapshot as the
recommended route, so a concept looks the same in every route.
"""
from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from masterly.adaptive.models import DecoratedConcept, Route, RouteName, SequencedPath
from masterly.adaptive.path_sequencer import PathSequencer

# complexity is 1/3/5 for Easy/Medium/Hard
_ROUTE_KEYS: dict[RouteName, Callable[[DecoratedConcept], float]] = {
    RouteName.EASY_FIRST: lambda c: c.complexity,
    RouteName.TIME_OPTIMIZED: lambda c: c.estimated_hours,
    RouteName.MASTERY_FOCUSED: lambda c: c.mastery_score,
}

ALTERNATIVE_ORDER = (
    RouteName.EASY_FIRST,
    RouteName.TIME_OPTIMIZED,
    RouteName.MASTERY_FOCUSED,
)


class RouteGenerator:
    """Generate the recommended route plus capped alternates."""

    def __init__(self, max_alternatives: int = 3):
        if max_alternatives < 0:
            raise ValueError("max_alternatives cannot be negative")
        self.max_alternatives = max_alternatives

    def generate(self, path: SequencedPath) -> list[Route]:
        """
        Build routes for a sequenced path.

        Args:
            path: Output of PathSequencer.build

        Returns:
            Routes with the recommended route first
        """
        prereq_map = {c.id: c.prerequisites for c in path.concepts}
        routes = [Route(
            name=RouteName.RECOMMENDED,
            concepts=list(path.concepts),
            respects_prerequisites=PathSequencer.is_topologically_valid(
                path.concept_ids, prereq_map
            ),
        )]

        for name in ALTERNATIVE_ORDER[: self.max_alternatives]:
            ordered = sorted(path.concepts, key=_ROUTE_KEYS[name])
            routes.append(Route(
                name=name,
                concepts=ordered,
                respects_prerequisites=PathSequencer.is_topologically_valid(
                    [c.id for c in ordered], prereq_map
                ),
            ))

        logger.debug(
            f"Generated {len(routes)} routes for course={path.course_id} user={path.user_id}"
        )
        return routes
