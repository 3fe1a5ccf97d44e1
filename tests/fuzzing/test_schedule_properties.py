"""
Property-based tests for the scheduling engines.

Properties checked over generated inputs:
- Crew sizing stays within the worker cap and covers the man-hours
- CPM floats are never negative and critical tasks carry zero float
- The critical path forms a dependency chain ending at project finish
- Earned value never exceeds the budget at completion
"""

from datetime import timedelta
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from site_config import load_rulebook
from site_engines.critical_path import analyze_critical_path
from site_engines.earned_value import (
    ActualCostMode,
    TaskProgress,
    capture_baseline,
    compute_evm_snapshot,
)
from site_engines.sequencer import crew_and_duration
from site_kernel.domain import DeterministicClock, ScheduleOptions
from tests.conftest import PROJECT_START, make_schedule, make_task

RULES = load_rulebook()


@st.composite
def task_networks(draw, max_tasks: int = 12):
    """Acyclic networks: every predecessor has a lower uid."""
    count = draw(st.integers(min_value=1, max_value=max_tasks))
    tasks = []
    for uid in range(1, count + 1):
        duration = draw(st.integers(min_value=1, max_value=10))
        preds = ()
        if uid > 1:
            chosen = draw(
                st.lists(
                    st.integers(min_value=1, max_value=uid - 1),
                    max_size=3,
                    unique=True,
                )
            )
            preds = tuple(
                (p, draw(st.integers(min_value=0, max_value=3))) for p in sorted(chosen)
            )
        cost = draw(st.integers(min_value=0, max_value=50_000))
        tasks.append(make_task(uid, 0, duration, cost=str(cost), predecessors=preds))
    return tasks


class TestCrewSizingProperties:
    """crew_and_duration over arbitrary work content."""

    @given(
        man_hours=st.decimals(
            min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2
        ),
        max_workers=st.integers(min_value=1, max_value=40),
        override=st.one_of(st.none(), st.integers(min_value=1, max_value=60)),
    )
    @settings(max_examples=200, deadline=None)
    def test_crew_bounded_and_covers_work(self, man_hours, max_workers, override):
        options = ScheduleOptions(max_workers=max_workers)
        crew, duration = crew_and_duration(man_hours, override, options, RULES)

        hpd = RULES.defaults.hours_per_day
        assert 1 <= crew <= max_workers
        assert duration >= 1
        assert crew * duration * hpd >= man_hours


class TestCriticalPathProperties:
    """Forward and backward pass invariants."""

    @given(tasks=task_networks())
    @settings(max_examples=100, deadline=None)
    def test_floats_non_negative(self, tasks):
        result = analyze_critical_path(tasks)
        for f in result.floats:
            assert f.total_float >= 0
            assert f.early_finish <= result.project_duration_days

    @given(tasks=task_networks())
    @settings(max_examples=100, deadline=None)
    def test_critical_tasks_have_zero_float(self, tasks):
        result = analyze_critical_path(tasks)
        by_uid = {f.uid: f for f in result.floats}

        assert result.critical_path
        for uid in result.critical_path:
            assert by_uid[uid].total_float == 0
        last = by_uid[result.critical_path[-1]]
        assert last.early_finish == result.project_duration_days

    @given(tasks=task_networks())
    @settings(max_examples=100, deadline=None)
    def test_duration_covers_longest_task(self, tasks):
        result = analyze_critical_path(tasks)
        assert result.project_duration_days >= max(t.duration_days for t in tasks)

    @given(tasks=task_networks())
    @settings(max_examples=50, deadline=None)
    def test_analysis_is_deterministic(self, tasks):
        assert analyze_critical_path(tasks) == analyze_critical_path(list(tasks))


class TestEarnedValueProperties:
    """Project snapshot bounds under arbitrary progress."""

    @given(
        tasks=task_networks(max_tasks=8),
        percents=st.lists(st.integers(min_value=0, max_value=100), min_size=8, max_size=8),
        offset=st.integers(min_value=0, max_value=80),
    )
    @settings(max_examples=75, deadline=None)
    def test_earned_value_within_budget(self, tasks, percents, offset):
        schedule = make_schedule(tasks)
        baseline = capture_baseline(schedule, DeterministicClock())
        progress = [
            TaskProgress(task_uid=t.uid, percent_complete=Decimal(p))
            for t, p in zip(tasks, percents)
        ]

        snapshot = compute_evm_snapshot(
            baseline,
            schedule,
            progress,
            PROJECT_START + timedelta(days=offset),
            ActualCostMode.ESTIMATED,
        )

        assert Decimal("0") <= snapshot.earned_value <= snapshot.budget_at_completion
        assert Decimal("0") <= snapshot.planned_value <= snapshot.budget_at_completion
        assert snapshot.actual_cost == snapshot.earned_value
