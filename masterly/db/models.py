"""
SQLAlchemy models for the mastery engine.

Tables:
- concepts / concept_prerequisites: the concept graph (authoring side)
- courses / course_concepts: course membership
- mastery_ledger: per (user, concept, course) mastery state, versioned
  for compare-and-swap updates
- course_progress: per (user, course) completion snapshot
- learning_paths: last saved learning path document per user
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Declarative base for all engine tables."""


class ConceptRecord(Base):
    """A concept node."""

    __tablename__ = "concepts"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    difficulty: Mapped[str] = mapped_column(Text, default="Medium")
    estimated_hours: Mapped[float] = mapped_column(Float, default=1.0)
    icon: Mapped[str] = mapped_column(Text, default="Target")
    position: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    prerequisites: Mapped[list[ConceptPrerequisite]] = relationship(
        back_populates="concept",
        cascade="all, delete-orphan",
        order_by="ConceptPrerequisite.position",
    )

    def __repr__(self) -> str:
        return f"<ConceptRecord({self.id}, {self.title!r})>"


class ConceptPrerequisite(Base):
    """
    Directed prerequisite edge: `prerequisite_id` must be completed before `concept_id`.

    `prerequisite_id` is not a foreign key so that authoring can reference
    concepts imported later.
    """

    __tablename__ = "concept_prerequisites"

    concept_id: Mapped[str] = mapped_column(
        ForeignKey("concepts.id", ondelete="CASCADE"), primary_key=True
    )
    prerequisite_id: Mapped[str] = mapped_column(Text, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    concept: Mapped[ConceptRecord] = relationship(back_populates="prerequisites")


class CourseRecord(Base):
    """A course."""

    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)

    concepts: Mapped[list[CourseConcept]] = relationship(
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="CourseConcept.position",
    )


class CourseConcept(Base):
    """Ordered course membership."""

    __tablename__ = "course_concepts"

    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True
    )
    concept_id: Mapped[str] = mapped_column(Text, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    course: Mapped[CourseRecord] = relationship(back_populates="concepts")


class MasteryLedgerRecord(Base):
    """
    Mastery ledger row.

    `course_key` is the course id or "" for course-less entries, so the
    unique constraint also covers them (NULLs never collide).
    `version` increments on every write; updates compare it to detect
    concurrent writers.
    """

    __tablename__ = "mastery_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    concept_id: Mapped[str] = mapped_column(Text, nullable=False)
    course_key: Mapped[str] = mapped_column(Text, nullable=False, default="")

    score: Mapped[float] = mapped_column(Float, default=0.0)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    mastered: Mapped[bool] = mapped_column(Boolean, default=False)
    mastered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_attempts: Mapped[int] = mapped_column(Integer, default=0)

    description_read: Mapped[bool] = mapped_column(Boolean, default=False)
    video_watched: Mapped[bool] = mapped_column(Boolean, default=False)
    quiz_passed: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(Text, default="not_started")
    time_spent: Mapped[float] = mapped_column(Float, default=0.0)
    achievements: Mapped[list[str]] = mapped_column(JSON, default=list)

    last_quiz_attempt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("user_id", "concept_id", "course_key", name="uq_ledger_user_concept_course"),
        Index("idx_ledger_user_course", "user_id", "course_key"),
    )

    def __repr__(self) -> str:
        return (
            f"<MasteryLedgerRecord user={self.user_id} concept={self.concept_id} "
            f"score={self.score} v{self.version}>"
        )


class CourseProgressRecord(Base):
    """Course completion snapshot per user."""

    __tablename__ = "course_progress"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    course_id: Mapped[str] = mapped_column(Text, primary_key=True)
    status: Mapped[str] = mapped_column(Text, default="not_enrolled")
    concepts_completed: Mapped[int] = mapped_column(Integer, default=0)
    total_concepts: Mapped[int] = mapped_column(Integer, default=0)
    overall_progress: Mapped[int] = mapped_column(Integer, default=0)
    enrolled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_accessed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class LearningPathRecord(Base):
    """Last saved learning path document per user."""

    __tablename__ = "learning_paths"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
