"""Concept graph store."""
from masterly.graph.concept_graph import (
    ConceptGraph,
    concept_from_dict,
    course_from_dict,
    parse_estimated_hours,
)

__all__ = [
    "ConceptGraph",
    "concept_from_dict",
    "course_from_dict",
    "parse_estimated_hours",
]
