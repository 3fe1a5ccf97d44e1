"""Tests for S-curve generation."""

from datetime import timedelta
from decimal import Decimal

from site_engines.earned_value import (
    TaskProgress,
    capture_baseline,
    compute_evm_snapshot,
    generate_s_curve,
)
from tests.conftest import PROJECT_START, make_schedule, make_task


def _day(offset):
    return PROJECT_START + timedelta(days=offset)


def _sequential_baseline(clock):
    schedule = make_schedule([
        make_task(1, 0, 2, cost="2000"),
        make_task(2, 2, 3, cost="3000", predecessors=((1, 0),)),
    ])
    return schedule, capture_baseline(schedule, clock)


class TestSCurve:
    """Cumulative series at task boundaries."""

    def test_points_at_task_boundaries(self, clock):
        _schedule, baseline = _sequential_baseline(clock)
        points = generate_s_curve(baseline, [], _day(2))
        assert [p.day for p in points] == [_day(0), _day(2), _day(5)]

    def test_planned_value_cumulative(self, clock):
        _schedule, baseline = _sequential_baseline(clock)
        points = generate_s_curve(baseline, [], _day(0))
        assert [p.planned_value for p in points] == [
            Decimal("0.00"), Decimal("2000.00"), Decimal("5000.00")
        ]

    def test_data_date_point_added_inside_window(self, clock):
        _schedule, baseline = _sequential_baseline(clock)
        points = generate_s_curve(baseline, [], _day(3))
        assert _day(3) in [p.day for p in points]

    def test_data_date_after_finish_closes_the_curve(self, clock):
        """A finished project ends the curve at the data date with EV equal to BAC."""
        schedule, baseline = _sequential_baseline(clock)
        progress = [TaskProgress(1, Decimal("100")), TaskProgress(2, Decimal("100"))]
        points = generate_s_curve(baseline, progress, _day(10))
        snapshot = compute_evm_snapshot(baseline, schedule, progress, _day(10))

        assert [p.day for p in points] == [_day(0), _day(2), _day(5), _day(10)]
        assert points[-1].earned_value == baseline.budget_at_completion
        assert points[-1].earned_value == snapshot.earned_value
        assert points[-1].planned_value == Decimal("5000.00")

    def test_data_date_before_start_adds_no_point(self, clock):
        _schedule, baseline = _sequential_baseline(clock)
        points = generate_s_curve(baseline, [], _day(-3))
        assert [p.day for p in points] == [_day(0), _day(2), _day(5)]

    def test_earned_value_only_up_to_data_date(self, clock):
        _schedule, baseline = _sequential_baseline(clock)
        progress = [TaskProgress(1, Decimal("100"))]
        points = generate_s_curve(baseline, progress, _day(3))
        by_day = {p.day: p for p in points}
        assert by_day[_day(5)].earned_value is None
        assert by_day[_day(5)].actual_cost is None
        assert by_day[_day(3)].earned_value is not None

    def test_series_is_monotone(self, clock):
        _schedule, baseline = _sequential_baseline(clock)
        progress = [TaskProgress(1, Decimal("100")), TaskProgress(2, Decimal("40"))]
        points = generate_s_curve(baseline, progress, _day(4))
        planned = [p.planned_value for p in points]
        earned = [p.earned_value for p in points if p.earned_value is not None]
        assert planned == sorted(planned)
        assert earned == sorted(earned)

    def test_data_date_point_matches_snapshot(self, clock):
        schedule, baseline = _sequential_baseline(clock)
        progress = [
            TaskProgress(1, Decimal("100"), actual_cost=Decimal("2100")),
            TaskProgress(2, Decimal("40"), actual_cost=Decimal("1000")),
        ]
        points = generate_s_curve(baseline, progress, _day(4))
        snapshot = compute_evm_snapshot(baseline, schedule, progress, _day(4))
        last = next(p for p in points if p.day == _day(4))
        assert last.planned_value == snapshot.planned_value
        assert last.earned_value == snapshot.earned_value
        assert last.actual_cost == snapshot.actual_cost

    def test_actual_dates_shape_accrual(self, clock):
        """Work done between actual start and finish accrues in that window."""
        _schedule, baseline = _sequential_baseline(clock)
        progress = [
            TaskProgress(
                1, Decimal("100"), actual_start=_day(0), actual_finish=_day(1),
            )
        ]
        points = generate_s_curve(baseline, progress, _day(3))
        by_day = {p.day: p for p in points}
        assert by_day[_day(2)].earned_value == Decimal("2000.00")
