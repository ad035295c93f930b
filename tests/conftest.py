"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from masterly.core.models import (  # noqa: E402
    Concept,
    Course,
    Difficulty,
    MasteryLedgerEntry,
    ProgressStatus,
)
from masterly.graph.concept_graph import ConceptGraph  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (stores and engine)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings(tmp_path):
    """Default settings isolated from the environment and .env files."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'masterly.db'}",
        log_file=None,
        path_cache_dir=str(tmp_path / "paths"),
    )


def make_entry(
    concept_id: str,
    *,
    user_id: str = "alice",
    course_id: str | None = None,
    score: float = 0.0,
    completed: bool = False,
    mastered: bool | None = None,
    attempts: int = 0,
) -> MasteryLedgerEntry:
    """Build a ledger entry; `completed` also marks it mastered unless overridden."""
    return MasteryLedgerEntry(
        user_id=user_id,
        concept_id=concept_id,
        course_id=course_id,
        score=score,
        attempts=attempts,
        mastered=completed if mastered is None else mastered,
        status=ProgressStatus.COMPLETED if completed else ProgressStatus.NOT_STARTED,
    )


@pytest.fixture
def entry_factory():
    """Provide the ledger entry builder."""
    return make_entry


@pytest.fixture
def chain_graph():
    """A -> B -> C in one course."""
    return ConceptGraph(
        concepts=[
            Concept(id="A", title="Arrays", difficulty=Difficulty.EASY, estimated_hours=1.0),
            Concept(id="B", title="Binary Search", prerequisites=("A",), estimated_hours=2.0),
            Concept(
                id="C",
                title="Complexity",
                prerequisites=("B",),
                difficulty=Difficulty.HARD,
                estimated_hours=3.0,
            ),
        ],
        courses=[Course(id="dsa", title="Data Structures", concept_ids=("A", "B", "C"))],
    )


@pytest.fixture
def diamond_graph():
    """
    root -> left -> goal
    root -> right -> goal
    """
    return ConceptGraph(
        concepts=[
            Concept(id="root", title="Foundations", difficulty=Difficulty.EASY),
            Concept(id="left", title="Left Branch", prerequisites=("root",), difficulty=Difficulty.HARD,
                    estimated_hours=4.0),
            Concept(id="right", title="Right Branch", prerequisites=("root",), difficulty=Difficulty.EASY,
                    estimated_hours=0.5),
            Concept(id="goal", title="Goal", prerequisites=("left", "right")),
        ],
        courses=[Course(id="diamond", title="Diamond", concept_ids=("goal", "right", "left", "root"))],
    )
