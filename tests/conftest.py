"""
Pytest fixtures for the scheduling core test suite.

Provides:
- The bundled construction rule book (loaded fresh per test)
- A deterministic clock for baseline capture
- Builders for small WBS projects, cost matches and hand-dated tasks

Builders are plain functions so tests can import them directly:

    from tests.conftest import make_article, make_project
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from site_config import load_rulebook
from site_kernel.domain import (
    ConstructionPhase,
    CostMatch,
    DeterministicClock,
    ResourceType,
    ScheduleOptions,
    ScheduleTask,
    TaskRelation,
    TaskResource,
    WbsArticle,
    WbsChapter,
    WbsProject,
    WbsSubChapter,
)

PROJECT_START = date(2025, 3, 3)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_article(
    code: str,
    quantity="16",
    description: str | None = None,
    phase: ConstructionPhase | None = None,
    storey: str | None = None,
) -> WbsArticle:
    return WbsArticle(
        code=code,
        description=description or f"Work item {code}",
        unit="m2",
        quantity=None if quantity is None else Decimal(quantity),
        phase=phase,
        storey=storey,
    )


def make_chapter(
    code: str,
    phase: ConstructionPhase | None,
    *articles: WbsArticle,
) -> WbsChapter:
    return WbsChapter(
        code=code,
        name=f"Chapter {code}",
        phase=phase,
        sub_chapters=(WbsSubChapter(code=f"{code}.1", name="Main", articles=articles),),
    )


def make_project(*chapters: WbsChapter, start: date = PROJECT_START) -> WbsProject:
    return WbsProject(name="Test House", start_date=start, chapters=chapters)


def make_match(
    code: str,
    unit_cost="10",
    productivity="1",
    crew_size: int | None = 1,
    material_cost="0",
    equipment_cost="0",
) -> CostMatch:
    """Cost match with one man-hour per unit and a single worker by default.

    With 8-hour days a quantity of 8 * n therefore lasts exactly n days.
    """
    return CostMatch(
        article_code=code,
        price_code=f"P-{code}",
        unit_cost=Decimal(unit_cost),
        productivity=None if productivity is None else Decimal(productivity),
        crew_size=crew_size,
        material_cost=Decimal(material_cost),
        equipment_cost=Decimal(equipment_cost),
    )


def make_task(
    uid: int,
    start_offset: int,
    duration: int,
    workers="1",
    cost="1000",
    predecessors: tuple[tuple[int, int], ...] = (),
    phase: ConstructionPhase = ConstructionPhase.STRUCTURE,
    storey: str | None = None,
    start: date = PROJECT_START,
) -> ScheduleTask:
    """A hand-dated detail task with a single labor line."""
    begin = start + timedelta(days=start_offset)
    return ScheduleTask(
        uid=uid,
        name=f"Task {uid}",
        phase=phase,
        start_date=begin,
        finish_date=begin + timedelta(days=duration),
        duration_days=duration,
        duration_hours=Decimal(duration * 8),
        cost=Decimal(cost),
        resources=(
            TaskResource(
                resource_type=ResourceType.LABOR,
                name="Mason",
                units=Decimal(workers),
                rate=Decimal("14"),
            ),
        ),
        predecessors=tuple(TaskRelation(p, lag) for p, lag in predecessors),
        storey=storey,
    )


def three_task_project() -> tuple[WbsProject, list[CostMatch]]:
    """Three sequential structure articles lasting 2, 3 and 1 days."""
    project = make_project(
        make_chapter(
            "C01",
            ConstructionPhase.STRUCTURE,
            make_article("A1", "16"),
            make_article("A2", "24"),
            make_article("A3", "8"),
        )
    )
    matches = [make_match("A1"), make_match("A2"), make_match("A3")]
    return project, matches


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def rulebook():
    return load_rulebook()


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def options():
    return ScheduleOptions()


@pytest.fixture
def three_task_schedule(rulebook, options):
    from site_engines.sequencer import generate_schedule

    project, matches = three_task_project()
    return generate_schedule(project, matches, options, rulebook)


def make_schedule(tasks, start: date = PROJECT_START, max_workers: int = 10):
    """ProjectSchedule over hand-dated detail tasks, with CPM results."""
    from site_engines.critical_path import analyze_critical_path
    from site_engines.resources import aggregate_resources
    from site_kernel.domain import ProjectSchedule, TeamSummary

    cpm = analyze_critical_path(tasks)
    return ProjectSchedule(
        project_name="Test House",
        start_date=start,
        finish_date=start + timedelta(days=cpm.project_duration_days),
        tasks=tuple(tasks),
        total_duration_days=cpm.project_duration_days,
        total_cost=sum((t.cost for t in tasks), Decimal("0")),
        team_summary=TeamSummary(
            average_workers=Decimal("0"),
            max_workers=max_workers,
            peak_workers=0,
            total_man_hours=Decimal("0"),
        ),
        critical_path=cpm.critical_path,
        floats=cpm.floats,
        resources=aggregate_resources(tasks),
    )
