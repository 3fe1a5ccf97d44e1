"""
Tests for the site capacity optimizer.

Covers:
- Daily worker timeline and bottleneck flags
- Severity bands
- Unconstrained capacity
- Per-storey timelines
- Phase overlap conflicts
- Greedy leveling within float, without mutating the input
- Suggestions
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from site_engines.capacity import (
    BottleneckKind,
    BottleneckSeverity,
    SiteCapacityConstraints,
    SuggestionType,
    classify_severity,
    detect_phase_conflicts,
    optimize_site_capacity,
)
from site_kernel.domain import ConstructionPhase, PhaseOverlapRule, WarningCode
from tests.conftest import PROJECT_START, make_schedule, make_task


def _concurrent_pair():
    """Two three-day tasks needing four workers each, side by side."""
    return make_schedule([
        make_task(1, 0, 3, workers="4"),
        make_task(2, 0, 3, workers="4"),
    ])


def _levelable():
    """Critical 1 -> 3, with task 2 overlapping task 1 and four days of float."""
    return make_schedule([
        make_task(1, 0, 2, workers="4"),
        make_task(2, 0, 2, workers="4"),
        make_task(3, 2, 4, workers="1", predecessors=((1, 0),)),
    ])


class TestTimeline:
    """Workers allocated per day."""

    def test_concurrent_tasks_overload(self):
        result = optimize_site_capacity(
            _concurrent_pair(), None, SiteCapacityConstraints(max_workers=5)
        )
        first = result.capacity_timeline[0]
        assert first.day == PROJECT_START
        assert first.workers_allocated == Decimal("8")
        assert first.workers_capacity == 5
        assert first.is_bottleneck is True
        assert first.utilization_percent == Decimal("160.00")

    def test_sixty_percent_overage_is_high(self):
        result = optimize_site_capacity(
            _concurrent_pair(), None, SiteCapacityConstraints(max_workers=5)
        )
        capacity = [b for b in result.bottlenecks if b.kind == BottleneckKind.CAPACITY]
        assert len(capacity) == 3
        assert all(b.severity == BottleneckSeverity.HIGH for b in capacity)
        assert capacity[0].task_uids == (1, 2)
        assert capacity[0].overload == Decimal("3")

    def test_one_point_per_day_with_exclusive_finish(self):
        schedule = _concurrent_pair()
        result = optimize_site_capacity(schedule, None, SiteCapacityConstraints(max_workers=5))
        assert [p.day for p in result.capacity_timeline] == [
            PROJECT_START + timedelta(days=i) for i in range(3)
        ]

    def test_bottleneck_iff_over_capacity(self):
        result = optimize_site_capacity(
            _levelable(), None, SiteCapacityConstraints(max_workers=5)
        )
        for point in result.capacity_timeline:
            assert point.is_bottleneck == (point.workers_allocated > point.workers_capacity)

    def test_at_capacity_is_not_a_bottleneck(self):
        result = optimize_site_capacity(
            _concurrent_pair(), None, SiteCapacityConstraints(max_workers=8)
        )
        assert result.bottlenecks == ()
        assert result.suggestions == ()


class TestSeverity:
    """low <= 10%, medium <= 30%, high beyond."""

    @pytest.mark.parametrize(
        "allocated,capacity,severity",
        [("11", 10, BottleneckSeverity.LOW), ("13", 10, BottleneckSeverity.MEDIUM),
         ("14", 10, BottleneckSeverity.HIGH), ("8", 5, BottleneckSeverity.HIGH)],
    )
    def test_bands(self, allocated, capacity, severity):
        assert classify_severity(Decimal(allocated), capacity) == severity


class TestUnconstrained:
    """Capacity <= 0 means no limit."""

    @pytest.mark.parametrize("capacity", [0, -3])
    def test_no_bottlenecks_and_warning(self, capacity):
        result = optimize_site_capacity(
            _concurrent_pair(), None, SiteCapacityConstraints(max_workers=capacity)
        )
        assert result.bottlenecks == ()
        assert result.adjustments == ()
        assert all(p.workers_capacity is None for p in result.capacity_timeline)
        assert not any(p.is_bottleneck for p in result.capacity_timeline)
        assert [w.code for w in result.warnings] == [WarningCode.CAPACITY_UNCONSTRAINED]


class TestFloorCapacity:
    """Per-storey limits."""

    def test_storey_overload(self):
        schedule = make_schedule([
            make_task(1, 0, 2, workers="3", storey="L1"),
            make_task(2, 0, 2, workers="3", storey="L1"),
            make_task(3, 0, 2, workers="3", storey="L2"),
        ])
        result = optimize_site_capacity(
            schedule, None, SiteCapacityConstraints(max_workers=20, max_workers_per_floor=4)
        )
        assert {p.storey for p in result.floor_timeline} == {"L1", "L2"}
        floor = [b for b in result.bottlenecks if b.storey is not None]
        assert {b.storey for b in floor} == {"L1"}
        assert all(b.kind == BottleneckKind.CAPACITY for b in floor)
        assert not any(p.is_bottleneck for p in result.capacity_timeline)

    def test_no_floor_timeline_without_storeys(self):
        result = optimize_site_capacity(
            _concurrent_pair(), None,
            SiteCapacityConstraints(max_workers=20, max_workers_per_floor=4),
        )
        assert result.floor_timeline == ()


class TestPhaseConflicts:
    """Overlap rules that forbid sharing the site."""

    RULE = PhaseOverlapRule(
        ConstructionPhase.STRUCTURE, ConstructionPhase.WATERPROOFING,
        can_overlap=False, minimum_gap_days=7,
    )

    def test_overlap_is_high(self):
        tasks = [
            make_task(1, 0, 4),
            make_task(2, 2, 2, phase=ConstructionPhase.WATERPROOFING),
        ]
        conflicts = detect_phase_conflicts(tasks, [self.RULE])
        assert len(conflicts) == 1
        assert conflicts[0].kind == BottleneckKind.PHASE_CONFLICT
        assert conflicts[0].severity == BottleneckSeverity.HIGH
        assert conflicts[0].task_uids == (1, 2)

    def test_gap_shortfall_is_medium(self):
        tasks = [
            make_task(1, 0, 4),
            make_task(2, 6, 2, phase=ConstructionPhase.WATERPROOFING),
        ]
        conflicts = detect_phase_conflicts(tasks, [self.RULE])
        assert conflicts[0].severity == BottleneckSeverity.MEDIUM

    def test_sufficient_gap_is_fine(self):
        tasks = [
            make_task(1, 0, 4),
            make_task(2, 11, 2, phase=ConstructionPhase.WATERPROOFING),
        ]
        assert detect_phase_conflicts(tasks, [self.RULE]) == []

    def test_allowed_overlap_ignored(self):
        rule = PhaseOverlapRule(
            ConstructionPhase.STRUCTURE, ConstructionPhase.ELECTRICAL, can_overlap=True
        )
        tasks = [make_task(1, 0, 4), make_task(2, 0, 4, phase=ConstructionPhase.ELECTRICAL)]
        assert detect_phase_conflicts(tasks, [rule]) == []

    def test_conflict_yields_sequence_suggestion(self):
        schedule = make_schedule([
            make_task(1, 0, 4),
            make_task(2, 2, 2, phase=ConstructionPhase.WATERPROOFING),
        ])
        result = optimize_site_capacity(
            schedule, None, SiteCapacityConstraints(max_workers=10, overlap_rules=(self.RULE,))
        )
        types = [s.suggestion_type for s in result.suggestions]
        assert SuggestionType.SEQUENCE in types


class TestLeveling:
    """Greedy leveling within float."""

    def test_non_critical_task_delayed(self):
        result = optimize_site_capacity(
            _levelable(), None, SiteCapacityConstraints(max_workers=5)
        )
        assert [a.task_uid for a in result.adjustments] == [2, 2]
        moved = next(t for t in result.leveled_tasks if t.uid == 2)
        assert moved.start_date == PROJECT_START + timedelta(days=2)
        assert result.leveled_peak_workers == Decimal("5")
        assert result.peak_workers == Decimal("8")

    def test_critical_tasks_never_move(self):
        schedule = _levelable()
        result = optimize_site_capacity(schedule, None, SiteCapacityConstraints(max_workers=5))
        before = {t.uid: t for t in schedule.detail_tasks}
        for task in result.leveled_tasks:
            if task.uid in schedule.critical_path:
                assert task == before[task.uid]

    def test_duration_not_extended(self):
        result = optimize_site_capacity(
            _levelable(), None, SiteCapacityConstraints(max_workers=5)
        )
        assert result.leveled_duration_days == result.original_duration_days == 6
        assert result.efficiency_gain == Decimal("0.00")

    def test_predecessors_respected(self):
        schedule = make_schedule([
            make_task(1, 0, 2, workers="4"),
            make_task(2, 0, 1, workers="4"),
            make_task(4, 1, 1, workers="1", predecessors=((2, 0),)),
            make_task(3, 2, 4, workers="1", predecessors=((1, 0),)),
        ])
        result = optimize_site_capacity(schedule, None, SiteCapacityConstraints(max_workers=5))
        index = {t.uid: t for t in result.leveled_tasks}
        for task in result.leveled_tasks:
            for rel in task.predecessors:
                pred = index[rel.predecessor_uid]
                assert pred.finish_date + timedelta(days=rel.lag_days) <= task.start_date

    def test_input_not_mutated(self):
        schedule = _levelable()
        snapshot = schedule.tasks
        optimize_site_capacity(schedule, None, SiteCapacityConstraints(max_workers=5))
        assert schedule.tasks == snapshot
        assert schedule.tasks[1].start_date == PROJECT_START

    def test_no_move_possible_when_all_critical(self):
        result = optimize_site_capacity(
            _concurrent_pair(), None, SiteCapacityConstraints(max_workers=5)
        )
        assert result.adjustments == ()
        assert result.efficiency_gain == Decimal("0.00")

    def test_critical_worst_day_does_not_block_other_days(self):
        """An all-critical peak is skipped and a later overload still levels."""
        schedule = make_schedule([
            make_task(1, 0, 2, workers="7"),
            make_task(2, 4, 1, workers="3"),
            make_task(3, 2, 8, workers="1", predecessors=((1, 0),)),
            make_task(4, 4, 1, workers="3"),
        ])
        assert schedule.critical_path == (1, 3)

        result = optimize_site_capacity(schedule, None, SiteCapacityConstraints(max_workers=5))

        assert [a.task_uid for a in result.adjustments] == [2]
        moved = next(t for t in result.leveled_tasks if t.uid == 2)
        assert moved.start_date == PROJECT_START + timedelta(days=5)
        assert result.leveled_peak_workers == Decimal("7")

    def test_delay_leaves_the_overloaded_day(self):
        """A task already running on the peak moves past it in one step."""
        schedule = make_schedule([
            make_task(1, 0, 6, workers="1"),
            make_task(2, 1, 2, workers="4"),
            make_task(3, 2, 2, workers="3"),
        ])

        result = optimize_site_capacity(schedule, None, SiteCapacityConstraints(max_workers=5))

        first = result.adjustments[0]
        assert first.task_uid == 2
        assert first.old_start == PROJECT_START + timedelta(days=1)
        assert first.new_start == PROJECT_START + timedelta(days=3)
        for adj in result.adjustments:
            assert adj.new_start > adj.old_start

    def test_shift_suggestion_per_moved_task(self):
        result = optimize_site_capacity(
            _levelable(), None, SiteCapacityConstraints(max_workers=5)
        )
        shifts = [s for s in result.suggestions if s.suggestion_type == SuggestionType.SHIFT]
        assert len(shifts) == 1
        assert shifts[0].affected_tasks == (2,)
        assert shifts[0].days == 2

    def test_deterministic(self):
        constraints = SiteCapacityConstraints(max_workers=5)
        assert optimize_site_capacity(_levelable(), None, constraints) == optimize_site_capacity(
            _levelable(), None, constraints
        )


class TestSuggestions:
    """Split and resource suggestions."""

    def test_split_for_large_crew(self):
        schedule = make_schedule([make_task(1, 0, 4, workers="10")])
        result = optimize_site_capacity(
            schedule, None, SiteCapacityConstraints(max_workers=20, split_threshold=8)
        )
        splits = [s for s in result.suggestions if s.suggestion_type == SuggestionType.SPLIT]
        assert [s.affected_tasks for s in splits] == [(1,)]

    def test_resource_suggestion_for_high_overload(self):
        result = optimize_site_capacity(
            _concurrent_pair(), None, SiteCapacityConstraints(max_workers=5)
        )
        resource = [s for s in result.suggestions if s.suggestion_type == SuggestionType.RESOURCE]
        assert len(resource) == 1
        assert resource[0].affected_tasks == (1, 2)
        assert "Mason" in resource[0].description


class TestConstraintsFromRules:
    """Constraints built from the rule book."""

    def test_carries_rule_book_values(self, rulebook):
        constraints = SiteCapacityConstraints.from_rules(rulebook, max_workers=12)
        assert constraints.max_workers == 12
        assert constraints.overlap_rules == rulebook.overlap_rules
        assert constraints.split_threshold == rulebook.defaults.split_crew_threshold

    def test_rule_book_threshold_drives_split_suggestion(self, rulebook):
        rules = replace(rulebook, defaults=replace(rulebook.defaults, split_crew_threshold=3))
        schedule = make_schedule([make_task(1, 0, 4, workers="4")])

        result = optimize_site_capacity(
            schedule, None, SiteCapacityConstraints.from_rules(rules, max_workers=20)
        )

        splits = [s for s in result.suggestions if s.suggestion_type == SuggestionType.SPLIT]
        assert [s.affected_tasks for s in splits] == [(1,)]
