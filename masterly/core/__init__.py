"""
Core Module - Shared domain models and interfaces.

This module contains the canonical implementations of core concepts
that are used across the engine (graph, adaptive, db, cli).

Components:
- models: Concept, Course, MasteryLedgerEntry, CourseProgress
- mastery: Score scale conversions and MasteryLevel
- errors: Engine error taxonomy

Design Principle:
Domain modules (masterly/adaptive/, masterly/db/) import from masterly/core/
rather than reimplementing shared concepts.
"""

from masterly.core.errors import (
    ConcurrentWriteConflict,
    CourseFileError,
    CycleDetectedWarning,
    EngineError,
    InvalidScoreError,
    InvalidActionError,
    NotFoundError,
)
from masterly.core.mastery import (
    MasteryLevel,
    percent_to_unit,
    unit_to_display,
    unit_to_percent,
)
from masterly.core.models import (
    Concept,
    Course,
    CourseProgress,
    CourseStatus,
    Difficulty,
    IconTag,
    MasteryLedgerEntry,
    ProgressStatus,
)

__all__ = [
    # Models
    "Concept",
    "Course",
    "CourseProgress",
    "CourseStatus",
    "Difficulty",
    "IconTag",
    "MasteryLedgerEntry",
    "ProgressStatus",
    # Mastery
    "MasteryLevel",
    "percent_to_unit",
    "unit_to_display",
    "unit_to_percent",
    # Errors
    "ConcurrentWriteConflict",
    "CourseFileError",
    "CycleDetectedWarning",
    "EngineError",
    "InvalidScoreError",
    "InvalidActionError",
    "NotFoundError",
]
