"""
Typer CLI for the masterly engine.

Commands:
    masterly db init                      - Initialize database tables
    masterly course import FILE           - Import concepts and courses from JSON
    masterly course validate [FILE]       - Report unknown prerequisites and cycles
    masterly course list                  - List courses
    masterly enroll COURSE                - Enroll a user in a course
    masterly progress COURSE              - Recompute and show course progress
    masterly unlocked                     - List unlocked concepts
    masterly path COURSE                  - Show the sequential learning path
    masterly routes COURSE                - Show the recommended and alternative routes
    masterly action CONCEPT ACTION        - Record a progress event
    masterly quiz CONCEPT SCORE           - Submit a quiz score (0-100)
    masterly recommend GOAL               - Recommend a topic path towards a concept

Usage:
    masterly --help
    masterly course import courses.json
    masterly path dsa --user alice
    masterly quiz arrays 82 --user alice --course dsa
    masterly recommend graphs --user alice --save
"""

from __future__ import annotations

import os
import sys

# Fix Windows encoding issues for Unicode characters (progress bars, glyphs)
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")

from collections.abc import Generator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from config import Settings, get_settings
from masterly.adaptive.learning_engine import LearningEngine
from masterly.adaptive.mastery_policies import BEST_SCORE, RUNNING_AVERAGE
from masterly.adaptive.models import Route, RouteName
from masterly.core.errors import EngineError
from masterly.core.mastery import MasteryLevel, format_progress_bar, unit_to_percent
from masterly.db.database import get_engine, get_session_factory, init_db, session_scope
from masterly.db.repositories import (
    FallbackPathStore,
    LocalPathCache,
    SqlLedgerStore,
    SqlPathStore,
    SqlProgressStore,
    load_concept_graph,
    save_concept_graph,
)
from masterly.graph.concept_graph import ConceptGraph

app = typer.Typer(
    help="masterly: concept mastery tracking and prerequisite-gated learning paths",
    no_args_is_help=True,
)
console = Console()

UserOption = typer.Option(..., "--user", "-u", help="Learner identifier")


class PolicyChoice(str, Enum):
    best_score = BEST_SCORE
    running_average = RUNNING_AVERAGE


# ========================================
# Logging & Context
# ========================================


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """Configure loguru sinks from settings."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention=5)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """Concept mastery and prerequisite unlock engine."""
    configure_logging(get_settings(), verbose)


def _build_engine() -> LearningEngine:
    """Wire the engine to the SQL stores and the local path cache."""
    settings = get_settings()
    factory = get_session_factory()
    with session_scope(factory) as session:
        graph = load_concept_graph(session)
    return LearningEngine(
        graph,
        ledger_store=SqlLedgerStore(factory, max_retries=settings.ledger_max_retries),
        progress_store=SqlProgressStore(factory),
        path_store=FallbackPathStore(SqlPathStore(factory), LocalPathCache(settings.path_cache_dir)),
        settings=settings,
    )


@contextmanager
def _report_errors(failure: str) -> Generator[None, None, None]:
    """Turn engine and database errors into a short message and exit code 1."""
    try:
        yield
    except EngineError as e:
        logger.debug(f"{type(e).__name__}: {e}")
        rprint(f"[red]✗[/red] {failure}: {e}")
        raise typer.Exit(code=1)
    except SQLAlchemyError as e:
        logger.error(f"Database error: {e}")
        rprint(f"[red]✗[/red] {failure}: database unavailable (try `masterly db init`)")
        raise typer.Exit(code=1)


# ========================================
# DB COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    logger.info("Initializing database tables...")
    init_db(get_engine())
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# COURSE COMMANDS
# ========================================

course_app = typer.Typer(help="Concept graph authoring")
app.add_typer(course_app, name="course")


def _print_graph_issues(graph: ConceptGraph) -> int:
    issues = 0
    for concept_id, missing in graph.unknown_prerequisites().items():
        rprint(f"  [yellow]⚠[/yellow] {concept_id}: unknown prerequisites {', '.join(missing)}")
        issues += 1
    for cycle in graph.find_cycles():
        rprint(f"  [yellow]⚠[/yellow] cycle: {' -> '.join(cycle)}")
        issues += 1
    return issues


@course_app.command("import")
def course_import(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Course JSON file"),
) -> None:
    """Import concepts and courses from a JSON file (upsert)."""
    with _report_errors("import failed"):
        graph = ConceptGraph.load_json(file)
        _print_graph_issues(graph)
        with session_scope() as session:
            concepts, courses = save_concept_graph(session, graph)

    rprint(f"[green]✓[/green] Imported {concepts} concepts and {courses} courses")


@course_app.command("validate")
def course_validate(
    file: Path | None = typer.Argument(
        None, exists=True, dir_okay=False, help="Course JSON file (database if omitted)"
    ),
) -> None:
    """Check a concept graph for unknown prerequisites and cycles."""
    if file is not None:
        with _report_errors("could not read course file"):
            graph = ConceptGraph.load_json(file)
    else:
        with _report_errors("could not load concept graph"):
            with session_scope() as session:
                graph = load_concept_graph(session)

    rprint(f"\n[bold cyan]Concept graph[/bold cyan]: {len(graph)} concepts, {len(graph.courses)} courses")
    issues = _print_graph_issues(graph)
    if issues:
        rprint(f"\n[yellow]{issues} issue(s) found[/yellow]")
        raise typer.Exit(code=1)
    rprint("[green]✓[/green] No issues found")


@course_app.command("list")
def course_list() -> None:
    """List courses in the database."""
    with _report_errors("could not load courses"):
        with session_scope() as session:
            graph = load_concept_graph(session)

    table = Table(title="Courses", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Concepts", justify="right")
    for course in graph.courses:
        table.add_row(course.id, course.title, str(len(course.concept_ids)))
    console.print(table)


# ========================================
# PROGRESS COMMANDS
# ========================================


@app.command("enroll")
def enroll(course_id: str = typer.Argument(..., help="Course ID"), user: str = UserOption) -> None:
    """Enroll a learner in a course."""
    with _report_errors("could not enroll"):
        progress = _build_engine().enroll(user, course_id)
    rprint(f"[green]✓[/green] {user} enrolled in {course_id} ({progress.status.value})")


@app.command("progress")
def progress(course_id: str = typer.Argument(..., help="Course ID"), user: str = UserOption) -> None:
    """Recompute and show course progress."""
    with _report_errors("could not compute progress"):
        snapshot = _build_engine().recompute_course_progress(user, course_id)

    rprint(f"\n[bold cyan]{course_id}[/bold cyan] · {user}")
    rprint(f"  Status:    {snapshot.status.value}")
    rprint(
        f"  Progress:  {format_progress_bar(snapshot.overall_progress, 20)} "
        f"{snapshot.overall_progress}% ({snapshot.concepts_completed}/{snapshot.total_concepts})"
    )
    if snapshot.completed_at:
        rprint(f"  Completed: {snapshot.completed_at:%Y-%m-%d %H:%M}")


@app.command("unlocked")
def unlocked(
    user: str = UserOption,
    course_id: str | None = typer.Option(None, "--course", "-c", help="Limit to one course"),
) -> None:
    """List concepts the learner may access."""
    with _report_errors("could not resolve unlocks"):
        engine = _build_engine()
        unlocked_ids = engine.get_unlocked_concepts(user, course_id)

    scope = engine.graph.concepts_for_course(course_id) if course_id else engine.graph.concepts
    for concept in scope:
        if concept.id in unlocked_ids:
            rprint(f"  [green]🔓[/green] {concept.title} [dim]({concept.id})[/dim]")
        else:
            rprint(f"  [dim]🔒 {concept.title} ({concept.id})[/dim]")


def _route_table(route: Route, title: str) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Concept", style="cyan")
    table.add_column("Cx", justify="right")
    table.add_column("Hours", justify="right")
    table.add_column("Mastery", justify="left")
    table.add_column("Status")
    table.add_column("", justify="center")

    for i, concept in enumerate(route.concepts, 1):
        level = MasteryLevel.from_score(concept.mastery_score / 10)
        table.add_row(
            str(i),
            concept.title,
            str(concept.complexity),
            f"{concept.estimated_hours:.1f}",
            f"[{level.color}]{level.emoji} {concept.mastery_score:.1f}[/{level.color}]",
            concept.status.value,
            "🔒" if concept.locked else "",
        )
    return table


@app.command("path")
def path(course_id: str = typer.Argument(..., help="Course ID"), user: str = UserOption) -> None:
    """Show the prerequisite-ordered learning path of a course."""
    with _report_errors("could not generate path"):
        sequenced = _build_engine().build_sequential_path(course_id, user)

    console.print(_route_table(
        Route(name=RouteName.RECOMMENDED, concepts=sequenced.concepts),
        f"Learning Path: {course_id}",
    ))
    for warning in sequenced.warnings:
        rprint(f"[yellow]⚠[/yellow] {warning}")


@app.command("routes")
def routes(
    course_id: str = typer.Argument(..., help="Course ID"),
    user: str = UserOption,
    save: bool = typer.Option(False, "--save", help="Save as the learner's learning path"),
) -> None:
    """Show the recommended route and its alternatives."""
    with _report_errors("could not generate path"):
        engine = _build_engine()
        generated = engine.generate_alternative_routes(course_id, user)
        if save:
            engine.generate_learning_path(user, "course", course_id)

    for route in generated:
        note = "" if route.respects_prerequisites else " [yellow](ignores prerequisites)[/yellow]"
        console.print(_route_table(route, f"{route.name.value}{note}"))
    if save:
        rprint("[green]✓[/green] Learning path saved")


@app.command("action")
def action(
    concept_id: str = typer.Argument(..., help="Concept ID"),
    event: str = typer.Argument(
        ..., help="mark_description_read | mark_video_watched | quiz_completed | reset"
    ),
    user: str = UserOption,
    course_id: str | None = typer.Option(None, "--course", "-c", help="Course scope"),
    time_spent: float | None = typer.Option(None, "--time", help="Minutes spent"),
    score: float | None = typer.Option(None, "--score", help="Quiz score 0-100"),
    passed: bool | None = typer.Option(None, "--passed/--failed", help="Override the pass decision"),
) -> None:
    """Record a course learning event."""
    with _report_errors("progress not saved"):
        update = _build_engine().apply_progress_action(
            user, concept_id, course_id, event,
            time_spent=time_spent, score=score, passed=passed,
        )

    entry = update.entry
    rprint(f"[green]✓[/green] {update.action}: {concept_id} is {entry.status.value}")
    if update.regressed:
        rprint("[yellow]⚠[/yellow] Too many failed attempts: review the description and video again")


@app.command("quiz")
def quiz(
    concept_id: str = typer.Argument(..., help="Concept ID"),
    score: float = typer.Argument(..., help="Quiz score 0-100"),
    user: str = UserOption,
    course_id: str | None = typer.Option(None, "--course", "-c", help="Course scope"),
    policy: PolicyChoice = typer.Option(PolicyChoice.best_score, "--policy", help="Mastery policy"),
) -> None:
    """Submit a quiz score and show newly unlocked concepts."""
    with _report_errors("progress not saved"):
        result = _build_engine().update_mastery_and_get_unlocks(
            user, concept_id, score, course_id=course_id, policy=policy.value
        )

    stored = unit_to_percent(result.entry.score) if result.entry else score
    status = "[green]mastered[/green]" if result.mastered else "[yellow]not mastered[/yellow]"
    rprint(f"\n{concept_id}: {status} (score {stored:.0f}%)")
    for label in result.achievements:
        rprint(f"  🏆 {label}")
    if result.newly_unlocked:
        rprint(f"  [green]🔓 Unlocked:[/green] {', '.join(result.newly_unlocked)}")


@app.command("recommend")
def recommend(
    goal: str = typer.Argument(..., help="Goal concept ID"),
    user: str = UserOption,
    start: str | None = typer.Option(None, "--from", help="Starting concept (roots if omitted)"),
    save: bool = typer.Option(False, "--save", help="Save as the learner's learning path"),
) -> None:
    """Recommend the cheapest prerequisite chain towards a goal concept."""
    with _report_errors("could not generate path"):
        engine = _build_engine()
        recommendation = engine.recommend_topic_path(user, goal, start or "root")
        if save:
            engine.generate_learning_path(user, "topic", goal, current_concept_id=start)

    best = recommendation.best_path
    rprint(f"\n[bold cyan]Best path to {goal}[/bold cyan] (cost {best.total_cost:.2f})")
    for step in best.steps:
        lock = "🔒" if step.locked else "  "
        rprint(f"  {lock} {step.title} [dim]({step.concept_id})[/dim]")
    if len(recommendation.all_paths) > 1:
        rprint(f"\n[dim]{len(recommendation.all_paths) - 1} alternative path(s)[/dim]")
    if save:
        rprint("[green]✓[/green] Learning path saved")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
