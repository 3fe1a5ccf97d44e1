"""
Module: site_engines.capacity
Responsibility:
    Site capacity analysis of a dated schedule: daily worker-demand
    timeline (site-wide and per storey), bottleneck detection against
    capacity constraints and phase overlap rules, advisory greedy resource
    leveling within task float, and optimization suggestions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import site_kernel and sibling engine modules.

Invariants enforced:
    - A detail task is active on ``day`` iff start <= day < finish.
    - ``is_bottleneck`` iff a capacity is set and allocated > capacity,
      for every point, by construction.
    - Capacity <= 0 means unconstrained: capacity is None, no capacity
      bottlenecks, one CAPACITY_UNCONSTRAINED warning.
    - Leveling only moves non-critical tasks later, one day at a time and
      within their float, so predecessor relations and the project finish
      are never violated.  The input schedule is never mutated.

Failure modes:
    None; all constraint problems degrade to warnings.

Audit relevance:
    The result is advisory only.  Callers decide whether to apply
    ``leveled_tasks``; every shift is listed in ``adjustments``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from site_engines.tracer import traced_engine
from site_kernel.domain.diagnostics import ScheduleWarning, WarningCode
from site_kernel.domain.phases import ConstructionPhase
from site_kernel.domain.rules import PhaseOverlapRule, SequencingRules
from site_kernel.domain.schedule import (
    ProjectResources,
    ProjectSchedule,
    ResourceType,
    ScheduleTask,
)
from site_kernel.logging_config import get_logger

logger = get_logger("engines.capacity")

_PERCENT = Decimal("0.01")
_HUNDRED = Decimal("100")
MAX_LEVELING_ITERATIONS = 200


class BottleneckSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class BottleneckKind(str, Enum):
    CAPACITY = "capacity"
    PHASE_CONFLICT = "phase_conflict"


class SuggestionType(str, Enum):
    SHIFT = "shift"
    SPLIT = "split"
    SEQUENCE = "sequence"
    RESOURCE = "resource"


@dataclass(frozen=True)
class SiteCapacityConstraints:
    """Physical limits of the site."""
    max_workers: int
    max_workers_per_floor: int | None = None
    overlap_rules: tuple[PhaseOverlapRule, ...] = ()
    split_threshold: int = 8  # crews above this are candidates for splitting

    @classmethod
    def from_rules(
        cls,
        rules: SequencingRules,
        max_workers: int,
        max_workers_per_floor: int | None = None,
    ) -> SiteCapacityConstraints:
        """Constraints carrying the rule book's overlap rules and split threshold."""
        return cls(
            max_workers=max_workers,
            max_workers_per_floor=max_workers_per_floor,
            overlap_rules=rules.overlap_rules,
            split_threshold=rules.defaults.split_crew_threshold,
        )


@dataclass(frozen=True)
class CapacityPoint:
    """Worker demand on one calendar day (site-wide, or one storey)."""
    day: date
    workers_allocated: Decimal
    workers_capacity: int | None
    utilization_percent: Decimal
    is_bottleneck: bool
    active_tasks: tuple[int, ...] = ()
    storey: str | None = None


@dataclass(frozen=True)
class Bottleneck:
    day: date
    kind: BottleneckKind
    severity: BottleneckSeverity
    phases: tuple[ConstructionPhase, ...]
    task_uids: tuple[int, ...]
    reason: str
    overload: Decimal = Decimal("0")
    storey: str | None = None


@dataclass(frozen=True)
class OptimizationSuggestion:
    suggestion_type: SuggestionType
    title: str
    description: str
    affected_tasks: tuple[int, ...] = ()
    days: int = 0


@dataclass(frozen=True)
class ScheduleAdjustment:
    """One leveling move of a detail task."""
    task_uid: int
    task_name: str
    old_start: date
    new_start: date
    old_finish: date
    new_finish: date
    reason: str


@dataclass(frozen=True)
class OptimizedSchedule:
    """
    Advisory capacity analysis.

    Contract:
        ``leveled_tasks`` holds the detail tasks after leveling (identical
        to the input when no adjustment was possible).  Nothing here is
        applied to the schedule it was computed from.
    """
    original_duration_days: int
    leveled_duration_days: int
    capacity_timeline: tuple[CapacityPoint, ...]
    floor_timeline: tuple[CapacityPoint, ...]
    bottlenecks: tuple[Bottleneck, ...]
    suggestions: tuple[OptimizationSuggestion, ...]
    adjustments: tuple[ScheduleAdjustment, ...]
    leveled_tasks: tuple[ScheduleTask, ...]
    efficiency_gain: Decimal
    peak_workers: Decimal
    leveled_peak_workers: Decimal
    warnings: tuple[ScheduleWarning, ...] = ()


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


def classify_severity(allocated: Decimal, capacity: int) -> BottleneckSeverity:
    """low <= 10% overage, medium <= 30%, high otherwise."""
    overage = (allocated - capacity) / Decimal(capacity) * _HUNDRED
    if overage <= 10:
        return BottleneckSeverity.LOW
    if overage <= 30:
        return BottleneckSeverity.MEDIUM
    return BottleneckSeverity.HIGH


def _days(start: date, finish: date) -> list[date]:
    return [start + timedelta(days=i) for i in range((finish - start).days)]


def build_capacity_timeline(
    tasks: Sequence[ScheduleTask],
    start: date,
    finish: date,
    capacity: int | None,
    storey: str | None = None,
) -> tuple[CapacityPoint, ...]:
    """Daily demand over [start, finish) for the given detail tasks."""
    details = [t for t in tasks if not t.is_summary]
    points = []
    for day in _days(start, finish):
        active = [t for t in details if t.is_active_on(day)]
        allocated = sum((t.labor_units for t in active), Decimal("0"))
        if capacity is None:
            utilization = Decimal("0")
            is_bottleneck = False
        else:
            utilization = (allocated / Decimal(capacity) * _HUNDRED).quantize(_PERCENT)
            is_bottleneck = allocated > capacity
        points.append(
            CapacityPoint(
                day=day,
                workers_allocated=allocated,
                workers_capacity=capacity,
                utilization_percent=utilization,
                is_bottleneck=is_bottleneck,
                active_tasks=tuple(sorted(t.uid for t in active)),
                storey=storey,
            )
        )
    return tuple(points)


def _capacity_bottlenecks(
    timeline: Sequence[CapacityPoint],
    task_index: dict[int, ScheduleTask],
) -> list[Bottleneck]:
    found = []
    for point in timeline:
        if not point.is_bottleneck:
            continue
        phases = sorted(
            {task_index[uid].phase for uid in point.active_tasks},
            key=lambda p: p.order,
        )
        overload = point.workers_allocated - point.workers_capacity
        where = f" on storey {point.storey}" if point.storey else ""
        found.append(
            Bottleneck(
                day=point.day,
                kind=BottleneckKind.CAPACITY,
                severity=classify_severity(point.workers_allocated, point.workers_capacity),
                phases=tuple(phases),
                task_uids=point.active_tasks,
                reason=(
                    f"{point.workers_allocated} workers allocated{where} against "
                    f"a capacity of {point.workers_capacity}"
                ),
                overload=overload,
                storey=point.storey,
            )
        )
    return found


def _phase_window(tasks: Sequence[ScheduleTask], phase: ConstructionPhase) -> tuple[date, date] | None:
    members = [t for t in tasks if t.phase is phase and not t.is_summary]
    if not members:
        return None
    return min(t.start_date for t in members), max(t.finish_date for t in members)


def detect_phase_conflicts(
    tasks: Sequence[ScheduleTask],
    rules: Sequence[PhaseOverlapRule],
) -> list[Bottleneck]:
    """
    Phases that share the site although an overlap rule forbids it.

    Two windows conflict when they are closer than the rule's minimum gap
    in either direction.  Actual overlap is high severity; a gap shortfall
    is medium.
    """
    found = []
    for rule in rules:
        if rule.can_overlap:
            continue
        first = _phase_window(tasks, rule.phase1)
        second = _phase_window(tasks, rule.phase2)
        if first is None or second is None:
            continue
        gap = timedelta(days=rule.minimum_gap_days)
        (s1, f1), (s2, f2) = first, second
        if not (s2 < f1 + gap and s1 < f2 + gap):
            continue
        overlapping = s2 < f1 and s1 < f2
        uids = sorted(
            t.uid for t in tasks
            if not t.is_summary and t.phase in (rule.phase1, rule.phase2)
        )
        found.append(
            Bottleneck(
                day=max(s1, s2),
                kind=BottleneckKind.PHASE_CONFLICT,
                severity=BottleneckSeverity.HIGH if overlapping else BottleneckSeverity.MEDIUM,
                phases=(rule.phase1, rule.phase2),
                task_uids=tuple(uids),
                reason=(
                    f"{rule.phase1.value} and {rule.phase2.value} must not overlap"
                    + (f" (minimum gap {rule.minimum_gap_days} days)" if rule.minimum_gap_days else "")
                    + (f": {rule.reason}" if rule.reason else "")
                ),
            )
        )
    return found


# ---------------------------------------------------------------------------
# Leveling
# ---------------------------------------------------------------------------


def _free_float(
    task: ScheduleTask,
    successors: dict[int, list[tuple[int, int]]],
    current: dict[int, ScheduleTask],
    project_finish: date,
) -> int:
    """Days ``task`` can slip without moving a successor or the project finish."""
    latest = project_finish
    for succ_uid, lag in successors.get(task.uid, ()):
        latest = min(latest, current[succ_uid].start_date - timedelta(days=lag))
    return max(0, (latest - task.finish_date).days)


def level_resources(
    schedule: ProjectSchedule,
    capacity: int,
    max_iterations: int = MAX_LEVELING_ITERATIONS,
) -> tuple[tuple[ScheduleTask, ...], tuple[ScheduleAdjustment, ...]]:
    """
    Greedy leveling of the site-wide labor histogram.

    Overloaded days are visited worst first (most workers, then earliest).
    On the first day that has a movable task, the non-critical task with the
    most free float (then the lowest uid) is delayed just far enough to
    leave that day.  Days whose tasks are all critical or lack the float are
    skipped.  Stops when no overloaded day has a movable task or
    ``max_iterations`` is reached.
    """
    current = {t.uid: t for t in schedule.detail_tasks}
    critical = frozenset(schedule.critical_path)
    successors: dict[int, list[tuple[int, int]]] = {}
    for task in current.values():
        for rel in task.predecessors:
            successors.setdefault(rel.predecessor_uid, []).append((task.uid, rel.lag_days))

    adjustments: list[ScheduleAdjustment] = []
    for _ in range(max_iterations):
        timeline = build_capacity_timeline(
            tuple(current.values()), schedule.start_date, schedule.finish_date, capacity
        )
        overloaded = sorted(
            (p for p in timeline if p.is_bottleneck),
            key=lambda p: (-p.workers_allocated, p.day),
        )
        move = _pick_move(overloaded, current, critical, successors, schedule.finish_date)
        if move is None:
            break

        task, days, day = move
        moved = task.shifted(days)
        current[task.uid] = moved
        adjustments.append(
            ScheduleAdjustment(
                task_uid=task.uid,
                task_name=task.name,
                old_start=task.start_date,
                new_start=moved.start_date,
                old_finish=task.finish_date,
                new_finish=moved.finish_date,
                reason=(
                    f"Resource leveling: delay {days} day(s) to reduce the peak "
                    f"on {day.isoformat()}"
                ),
            )
        )

    leveled = tuple(current[uid] for uid in sorted(current))
    return leveled, tuple(adjustments)


def _pick_move(
    overloaded: Sequence[CapacityPoint],
    current: dict[int, ScheduleTask],
    critical: frozenset[int],
    successors: dict[int, list[tuple[int, int]]],
    project_finish: date,
) -> tuple[ScheduleTask, int, date] | None:
    """First (task, delay, day) that takes a non-critical task off an overloaded day."""
    for point in overloaded:
        best: ScheduleTask | None = None
        best_float = 0
        for uid in point.active_tasks:
            if uid in critical:
                continue
            task = current[uid]
            needed = (point.day - task.start_date).days + 1
            slack = _free_float(task, successors, current, project_finish)
            if slack >= needed and slack > best_float:
                best, best_float = task, slack
        if best is not None:
            return best, (point.day - best.start_date).days + 1, point.day
    return None


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


def _suggestions(
    schedule: ProjectSchedule,
    resources: ProjectResources | None,
    constraints: SiteCapacityConstraints,
    capacity: int | None,
    bottlenecks: Sequence[Bottleneck],
    adjustments: Sequence[ScheduleAdjustment],
    peak: Decimal,
) -> list[OptimizationSuggestion]:
    suggestions: list[OptimizationSuggestion] = []

    shifted: dict[int, list[ScheduleAdjustment]] = {}
    for adj in adjustments:
        shifted.setdefault(adj.task_uid, []).append(adj)
    for uid in sorted(shifted):
        moves = shifted[uid]
        delay = (moves[-1].new_start - moves[0].old_start).days
        suggestions.append(
            OptimizationSuggestion(
                suggestion_type=SuggestionType.SHIFT,
                title=f"Delay '{moves[0].task_name}' by {delay} day(s)",
                description=(
                    f"Start on {moves[-1].new_start.isoformat()} instead of "
                    f"{moves[0].old_start.isoformat()}; the task has float to absorb it"
                ),
                affected_tasks=(uid,),
                days=delay,
            )
        )

    for task in schedule.detail_tasks:
        if task.labor_units > constraints.split_threshold:
            suggestions.append(
                OptimizationSuggestion(
                    suggestion_type=SuggestionType.SPLIT,
                    title=f"Split '{task.name}' into two crews",
                    description=(
                        f"Crew of {task.labor_units} exceeds {constraints.split_threshold}; "
                        f"run two sequential halves with a smaller crew"
                    ),
                    affected_tasks=(task.uid,),
                    days=task.duration_days,
                )
            )

    for conflict in (b for b in bottlenecks if b.kind is BottleneckKind.PHASE_CONFLICT):
        suggestions.append(
            OptimizationSuggestion(
                suggestion_type=SuggestionType.SEQUENCE,
                title=f"Resequence {conflict.phases[0].value} and {conflict.phases[1].value}",
                description=conflict.reason,
                affected_tasks=conflict.task_uids,
            )
        )

    high = [
        b for b in bottlenecks
        if b.kind is BottleneckKind.CAPACITY and b.severity is BottleneckSeverity.HIGH
    ]
    if high and capacity is not None:
        labor = []
        if resources is not None:
            labor = sorted(
                (r for r in resources.resources if r.resource_type is ResourceType.LABOR),
                key=lambda r: (-r.total_hours, r.name),
            )
        busiest = f"; largest labor demand: {labor[0].name}" if labor else ""
        suggestions.append(
            OptimizationSuggestion(
                suggestion_type=SuggestionType.RESOURCE,
                title=f"{len(high)} day(s) critically over capacity",
                description=(
                    f"Peak demand of {peak} workers against a capacity of {capacity}; "
                    f"add {peak - capacity} worker places or split work across areas{busiest}"
                ),
                affected_tasks=tuple(sorted({uid for b in high for uid in b.task_uids})),
                days=len(high),
            )
        )
    return suggestions


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _floor_analysis(
    schedule: ProjectSchedule,
    per_floor: int | None,
    warnings: list[ScheduleWarning],
) -> tuple[CapacityPoint, ...]:
    details = schedule.detail_tasks
    storeys = sorted({t.storey for t in details if t.storey is not None})
    if not storeys or per_floor is None:
        return ()
    if per_floor <= 0:
        warnings.append(
            ScheduleWarning(
                code=WarningCode.CAPACITY_UNCONSTRAINED,
                subject="max_workers_per_floor",
                message=f"Per-floor capacity {per_floor} is not positive; storeys are unconstrained",
            )
        )
        logger.warning("floor_capacity_unconstrained", extra={"max_workers_per_floor": per_floor})
        return ()
    points: list[CapacityPoint] = []
    for storey in storeys:
        points.extend(
            build_capacity_timeline(
                [t for t in details if t.storey == storey],
                schedule.start_date,
                schedule.finish_date,
                per_floor,
                storey=storey,
            )
        )
    return tuple(points)


@traced_engine(
    "capacity", "1.0",
    fingerprint_fields=("schedule", "constraints"),
)
def optimize_site_capacity(
    schedule: ProjectSchedule,
    resources: ProjectResources | None,
    constraints: SiteCapacityConstraints,
) -> OptimizedSchedule:
    """
    Analyse ``schedule`` against ``constraints`` and propose leveling.

    Args:
        schedule: The dated schedule; never modified.
        resources: Aggregated resources, used to name the busiest labor
            role in capacity suggestions.  Defaults to
            ``schedule.resources`` when None.
        constraints: Site-wide and per-storey worker limits and phase
            overlap rules.

    Returns:
        OptimizedSchedule (advisory).
    """
    resources = resources if resources is not None else schedule.resources
    warnings: list[ScheduleWarning] = []
    capacity: int | None = constraints.max_workers
    if capacity is not None and capacity <= 0:
        warnings.append(
            ScheduleWarning(
                code=WarningCode.CAPACITY_UNCONSTRAINED,
                subject="max_workers",
                message=f"Site capacity {capacity} is not positive; treated as unconstrained",
            )
        )
        logger.warning("site_capacity_unconstrained", extra={"max_workers": capacity})
        capacity = None

    details = schedule.detail_tasks
    task_index = {t.uid: t for t in details}
    timeline = build_capacity_timeline(details, schedule.start_date, schedule.finish_date, capacity)
    floor_timeline = _floor_analysis(schedule, constraints.max_workers_per_floor, warnings)

    bottlenecks = _capacity_bottlenecks(timeline, task_index)
    bottlenecks += _capacity_bottlenecks(floor_timeline, task_index)
    bottlenecks += detect_phase_conflicts(details, constraints.overlap_rules)
    bottlenecks.sort(key=lambda b: (b.day, b.kind.value, b.storey or ""))

    leveled: tuple[ScheduleTask, ...] = tuple(sorted(details, key=lambda t: t.uid))
    adjustments: tuple[ScheduleAdjustment, ...] = ()
    if capacity is not None and any(p.is_bottleneck for p in timeline):
        leveled, adjustments = level_resources(schedule, capacity)

    original = schedule.total_duration_days
    leveled_finish = max((t.finish_date for t in leveled), default=schedule.start_date)
    leveled_days = (leveled_finish - schedule.start_date).days
    if adjustments and original > 0:
        gain = (Decimal(original - leveled_days) / Decimal(original) * _HUNDRED).quantize(_PERCENT)
    else:
        gain = Decimal("0.00")

    peak = max((p.workers_allocated for p in timeline), default=Decimal("0"))
    leveled_timeline = build_capacity_timeline(
        leveled, schedule.start_date, schedule.finish_date, capacity
    ) if adjustments else timeline
    leveled_peak = max((p.workers_allocated for p in leveled_timeline), default=Decimal("0"))

    suggestions = _suggestions(
        schedule, resources, constraints, capacity, bottlenecks, adjustments, peak
    )

    logger.info("site_capacity_analyzed", extra={
        "capacity": capacity,
        "bottleneck_count": len(bottlenecks),
        "adjustment_count": len(adjustments),
        "peak_workers": str(peak),
        "leveled_peak_workers": str(leveled_peak),
    })

    return OptimizedSchedule(
        original_duration_days=original,
        leveled_duration_days=leveled_days,
        capacity_timeline=timeline,
        floor_timeline=floor_timeline,
        bottlenecks=tuple(bottlenecks),
        suggestions=tuple(suggestions),
        adjustments=adjustments,
        leveled_tasks=leveled,
        efficiency_gain=gain,
        peak_workers=peak,
        leveled_peak_workers=leveled_peak,
        warnings=tuple(warnings),
    )
