"""
Module: site_engines.earned_value
Responsibility:
    Earned value management over a frozen schedule baseline: baseline
    capture and staleness checks, the project and per-task EVM index set
    at a data date, and the cumulative S-curve series.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import site_kernel and sibling engine modules.
    Time enters only through the injected Clock passed to
    ``capture_baseline``.

Invariants enforced:
    - A baseline is immutable once captured.
    - EV <= BAC: percent complete is clamped to [0, 100].
    - Every ratio is guarded; no division by zero escapes:
        CPI = 0 when AC = 0, SPI = 0 when PV = 0,
        EAC = AC + (BAC - EV) when CPI = 0,
        TCPI = 0 when BAC - AC <= 0.

Failure modes:
    None raised.  Inconsistent baseline entries, unknown progress uids,
    out-of-range percentages and missing tracked costs become
    ScheduleWarning values and warning log records.

Audit relevance:
    Actual cost semantics are explicit (``ActualCostMode``) so a report
    always states whether AC was tracked or estimated.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from site_engines.tracer import traced_engine
from site_kernel.domain.clock import Clock
from site_kernel.domain.diagnostics import ScheduleWarning, WarningCode
from site_kernel.domain.phases import ConstructionPhase
from site_kernel.domain.schedule import ProjectSchedule
from site_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.earned_value")

_MONEY = Decimal("0.01")
_RATIO = Decimal("0.0001")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

ON_TRACK_THRESHOLD = Decimal("0.95")
AT_RISK_THRESHOLD = Decimal("0.85")
STALE_SHIFT_DAYS = 7


class ActualCostMode(str, Enum):
    """Where actual cost comes from."""
    TRACKED = "tracked"  # only supplied costs; missing counts as zero
    ESTIMATED = "estimated"  # always percent complete x planned cost
    TRACKED_OR_ESTIMATED = "tracked_or_estimated"


class TaskStatus(str, Enum):
    COMPLETED = "completed"
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    DELAYED = "delayed"


class HealthStatus(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BaselineTask:
    uid: int
    name: str
    phase: ConstructionPhase
    start_date: date
    finish_date: date
    cost: Decimal
    duration_days: int


@dataclass(frozen=True)
class EvmBaseline:
    """
    Frozen snapshot of the detail tasks a schedule was approved with.

    ``budget_at_completion`` is the sum of the retained task costs.
    """
    captured_at: datetime
    tasks: tuple[BaselineTask, ...]
    budget_at_completion: Decimal
    start_date: date
    finish_date: date
    warnings: tuple[ScheduleWarning, ...] = ()

    @property
    def duration_days(self) -> int:
        return (self.finish_date - self.start_date).days


@dataclass(frozen=True)
class BaselineValidation:
    is_stale: bool
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class TaskProgress:
    """
    A progress observation for one task.

    ``percent_complete`` is accepted as reported; the engine clamps it.
    """
    task_uid: int
    percent_complete: Decimal
    actual_start: date | None = None
    actual_finish: date | None = None
    actual_cost: Decimal | None = None

    def __post_init__(self) -> None:
        if self.actual_cost is not None and self.actual_cost < 0:
            raise ValueError(
                f"actual_cost must be non-negative for task {self.task_uid}"
            )


@dataclass(frozen=True)
class TaskEvmMetrics:
    task_uid: int
    task_name: str
    phase: ConstructionPhase
    is_critical: bool
    budget_at_completion: Decimal
    percent_complete: Decimal
    planned_value: Decimal
    earned_value: Decimal
    actual_cost: Decimal
    schedule_variance: Decimal
    cost_variance: Decimal
    spi: Decimal
    cpi: Decimal
    status: TaskStatus


@dataclass(frozen=True)
class TaskStatusCounts:
    completed: int = 0
    on_track: int = 0
    at_risk: int = 0
    delayed: int = 0


@dataclass(frozen=True)
class ProjectEvmSnapshot:
    data_date: date
    actual_cost_mode: ActualCostMode
    budget_at_completion: Decimal
    planned_value: Decimal
    earned_value: Decimal
    actual_cost: Decimal
    cost_variance: Decimal
    schedule_variance: Decimal
    cpi: Decimal
    spi: Decimal
    estimate_at_completion: Decimal
    estimate_to_complete: Decimal
    variance_at_completion: Decimal
    tcpi: Decimal
    projected_finish_date: date
    schedule_slippage_days: int
    health: HealthStatus
    tasks_by_status: TaskStatusCounts
    task_metrics: tuple[TaskEvmMetrics, ...]
    warnings: tuple[ScheduleWarning, ...] = ()


@dataclass(frozen=True)
class SCurvePoint:
    """Cumulative values at one date; EV and AC are None after the data date."""
    day: date
    planned_value: Decimal
    earned_value: Decimal | None
    actual_cost: Decimal | None


# ---------------------------------------------------------------------------
# Baseline
# ---------------------------------------------------------------------------


def capture_baseline(schedule: ProjectSchedule, clock: Clock) -> EvmBaseline:
    """
    Freeze the detail tasks of ``schedule``.

    Tasks whose finish precedes their start are dropped with an
    INCONSISTENT_DATES warning.
    """
    tasks = []
    warnings = []
    for task in schedule.detail_tasks:
        if task.finish_date < task.start_date:
            warnings.append(
                ScheduleWarning(
                    code=WarningCode.INCONSISTENT_DATES,
                    subject=str(task.uid),
                    message=(
                        f"Task {task.uid} finishes {task.finish_date} before it "
                        f"starts {task.start_date}; left out of the baseline"
                    ),
                )
            )
            logger.warning("baseline_task_dropped", extra={
                "task_uid": task.uid,
                "start_date": task.start_date,
                "finish_date": task.finish_date,
            })
            continue
        tasks.append(
            BaselineTask(
                uid=task.uid,
                name=task.name,
                phase=task.phase,
                start_date=task.start_date,
                finish_date=task.finish_date,
                cost=task.cost,
                duration_days=(task.finish_date - task.start_date).days,
            )
        )

    bac = sum((t.cost for t in tasks), _ZERO).quantize(_MONEY)
    baseline = EvmBaseline(
        captured_at=clock.now(),
        tasks=tuple(sorted(tasks, key=lambda t: t.uid)),
        budget_at_completion=bac,
        start_date=schedule.start_date,
        finish_date=schedule.finish_date,
        warnings=tuple(warnings),
    )
    logger.info("baseline_captured", extra={
        "task_count": len(baseline.tasks),
        "budget_at_completion": str(bac),
        "dropped_count": len(warnings),
    })
    return baseline


def validate_baseline(baseline: EvmBaseline, schedule: ProjectSchedule) -> BaselineValidation:
    """A baseline is stale once the schedule it describes has moved on."""
    reasons = []
    if baseline.finish_date != schedule.finish_date:
        reasons.append(
            f"Project finish moved from {baseline.finish_date.isoformat()} "
            f"to {schedule.finish_date.isoformat()}"
        )
    details = schedule.detail_tasks
    if len(details) != len(baseline.tasks):
        reasons.append(
            f"Task count changed from {len(baseline.tasks)} to {len(details)}"
        )
    current = {t.uid: t for t in details}
    shifted = 0
    for bt in baseline.tasks:
        task = current.get(bt.uid)
        if task is not None and abs((task.finish_date - bt.finish_date).days) > STALE_SHIFT_DAYS:
            shifted += 1
    if shifted:
        reasons.append(
            f"{shifted} task(s) finish more than {STALE_SHIFT_DAYS} days away from the baseline"
        )
    return BaselineValidation(is_stale=bool(reasons), reasons=tuple(reasons))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _baseline_id(baseline: EvmBaseline) -> str:
    """Baselines are identified by their capture instant."""
    return baseline.captured_at.isoformat()


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == 0:
        return _ZERO
    return (numerator / denominator).quantize(_RATIO)


def _fraction(start: date, finish: date, day: date) -> Decimal:
    """Linear share of [start, finish) elapsed by ``day``, clamped to [0, 1]."""
    span = (finish - start).days
    if span <= 0:
        return Decimal("1") if day >= finish else _ZERO
    elapsed = (day - start).days
    return min(Decimal("1"), max(_ZERO, Decimal(elapsed) / Decimal(span)))


def planned_value_at(baseline: EvmBaseline, day: date) -> Decimal:
    return sum(
        (t.cost * _fraction(t.start_date, t.finish_date, day) for t in baseline.tasks),
        _ZERO,
    )


def _band(index: Decimal) -> HealthStatus:
    if index >= ON_TRACK_THRESHOLD:
        return HealthStatus.GREEN
    if index >= AT_RISK_THRESHOLD:
        return HealthStatus.YELLOW
    return HealthStatus.RED


def classify_health(spi: Decimal | None, cpi: Decimal | None) -> HealthStatus:
    """
    Worst band of the measurable indices.

    An index is None when it cannot be measured yet (no PV, or no AC);
    with nothing measurable the project is green.
    """
    bands = [_band(i) for i in (spi, cpi) if i is not None]
    if HealthStatus.RED in bands:
        return HealthStatus.RED
    if HealthStatus.YELLOW in bands:
        return HealthStatus.YELLOW
    return HealthStatus.GREEN


def _task_status(
    percent: Decimal, pv: Decimal, ev: Decimal, ac: Decimal,
) -> tuple[TaskStatus, Decimal, Decimal]:
    # An unmeasurable index counts as 1 once work is reported.
    started = percent > 0
    spi = _ratio(ev, pv) if pv > 0 else (Decimal("1") if started else _ZERO)
    cpi = _ratio(ev, ac) if ac > 0 else (Decimal("1") if started else _ZERO)
    if percent >= _HUNDRED:
        return TaskStatus.COMPLETED, spi, cpi
    if not started and pv == 0:
        return TaskStatus.ON_TRACK, spi, cpi
    band = classify_health(spi, cpi if started else None)
    status = {
        HealthStatus.GREEN: TaskStatus.ON_TRACK,
        HealthStatus.YELLOW: TaskStatus.AT_RISK,
        HealthStatus.RED: TaskStatus.DELAYED,
    }[band]
    return status, spi, cpi


def _resolve_progress(
    baseline: EvmBaseline,
    progress: Sequence[TaskProgress],
    warnings: list[ScheduleWarning],
) -> dict[int, tuple[TaskProgress, Decimal]]:
    """uid -> (observation, clamped percent); the last observation per uid wins."""
    known = {t.uid for t in baseline.tasks}
    resolved: dict[int, tuple[TaskProgress, Decimal]] = {}
    for entry in progress:
        if entry.task_uid not in known:
            warnings.append(
                ScheduleWarning(
                    code=WarningCode.UNKNOWN_TASK,
                    subject=str(entry.task_uid),
                    message=f"Progress for task {entry.task_uid} which is not in the baseline",
                )
            )
            logger.warning("progress_unknown_task", extra={"task_uid": entry.task_uid})
            continue
        percent = Decimal(entry.percent_complete)
        if percent < 0 or percent > _HUNDRED:
            clamped = min(_HUNDRED, max(_ZERO, percent))
            warnings.append(
                ScheduleWarning(
                    code=WarningCode.PERCENT_OUT_OF_RANGE,
                    subject=str(entry.task_uid),
                    message=(
                        f"Percent complete {percent} for task {entry.task_uid} "
                        f"clamped to {clamped}"
                    ),
                )
            )
            logger.warning("progress_percent_clamped", extra={
                "task_uid": entry.task_uid,
                "percent_complete": str(percent),
            })
            percent = clamped
        if entry.task_uid in resolved:
            logger.debug("progress_superseded", extra={"task_uid": entry.task_uid})
        resolved[entry.task_uid] = (entry, percent)
    return resolved


def _actual_cost(
    entry: TaskProgress | None,
    ev: Decimal,
    mode: ActualCostMode,
    warnings: list[ScheduleWarning] | None,
) -> Decimal:
    if mode is ActualCostMode.ESTIMATED:
        return ev
    if entry is not None and entry.actual_cost is not None:
        return Decimal(entry.actual_cost)
    if mode is ActualCostMode.TRACKED_OR_ESTIMATED:
        return ev
    if warnings is not None and ev > 0:
        warnings.append(
            ScheduleWarning(
                code=WarningCode.MISSING_ACTUAL_COST,
                subject=str(entry.task_uid if entry else ""),
                message="Work reported without a tracked actual cost; counted as zero",
            )
        )
    return _ZERO


def _slippage_days(duration: int, ev: Decimal, pv: Decimal) -> int:
    """Days past the baseline finish at the current pace, D / SPI - D."""
    if pv == 0:
        return 0
    if ev == 0:
        return duration
    projected = Decimal(duration) * pv / ev
    return int((projected - duration).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@traced_engine(
    "earned_value", "1.0",
    fingerprint_fields=("baseline", "progress", "data_date", "actual_cost_mode"),
)
def compute_evm_snapshot(
    baseline: EvmBaseline,
    schedule: ProjectSchedule,
    progress: Sequence[TaskProgress],
    data_date: date,
    actual_cost_mode: ActualCostMode = ActualCostMode.TRACKED_OR_ESTIMATED,
) -> ProjectEvmSnapshot:
    """
    EVM indices of ``baseline`` at ``data_date``.

    Args:
        baseline: Frozen baseline (BAC and planned windows).
        schedule: Current schedule; only its critical path is read.
        progress: Observations; unknown uids are ignored with a warning.
        data_date: The "as of" date.  Always explicit.
        actual_cost_mode: How AC is obtained per task.

    Returns:
        ProjectEvmSnapshot.
    """
    with LogContext.bind(baseline_id=_baseline_id(baseline)):
        return _snapshot(baseline, schedule, progress, data_date, actual_cost_mode)


def _snapshot(
    baseline: EvmBaseline,
    schedule: ProjectSchedule,
    progress: Sequence[TaskProgress],
    data_date: date,
    actual_cost_mode: ActualCostMode,
) -> ProjectEvmSnapshot:
    warnings: list[ScheduleWarning] = []
    resolved = _resolve_progress(baseline, progress, warnings)
    critical = frozenset(schedule.critical_path)
    bac = baseline.budget_at_completion

    metrics = []
    counts = {status: 0 for status in TaskStatus}
    total_pv = total_ev = total_ac = _ZERO
    for bt in baseline.tasks:
        entry, percent = resolved.get(bt.uid, (None, _ZERO))
        pv = bt.cost * _fraction(bt.start_date, bt.finish_date, data_date)
        ev = bt.cost * percent / _HUNDRED
        ac = _actual_cost(entry, ev, actual_cost_mode, warnings)
        status, spi, cpi = _task_status(percent, pv, ev, ac)
        counts[status] += 1
        total_pv += pv
        total_ev += ev
        total_ac += ac
        metrics.append(
            TaskEvmMetrics(
                task_uid=bt.uid,
                task_name=bt.name,
                phase=bt.phase,
                is_critical=bt.uid in critical,
                budget_at_completion=bt.cost,
                percent_complete=percent,
                planned_value=pv.quantize(_MONEY),
                earned_value=ev.quantize(_MONEY),
                actual_cost=ac.quantize(_MONEY),
                schedule_variance=(ev - pv).quantize(_MONEY),
                cost_variance=(ev - ac).quantize(_MONEY),
                spi=spi,
                cpi=cpi,
                status=status,
            )
        )

    missing = [w for w in warnings if w.code is WarningCode.MISSING_ACTUAL_COST]
    if missing:
        logger.warning("actual_cost_missing", extra={"task_count": len(missing)})

    cpi = _ratio(total_ev, total_ac)
    spi = _ratio(total_ev, total_pv)
    # Forecasts divide by the exact ratios; only the reported indices are rounded
    if total_ev > 0 and total_ac > 0:
        eac = bac * total_ac / total_ev
    else:
        eac = total_ac + (bac - total_ev)
    remaining = bac - total_ac
    tcpi = _ratio(bac - total_ev, remaining) if remaining > 0 else _ZERO
    slippage = _slippage_days(baseline.duration_days, total_ev, total_pv)
    health = classify_health(
        spi if total_pv > 0 else None,
        cpi if total_ac > 0 else None,
    )

    snapshot = ProjectEvmSnapshot(
        data_date=data_date,
        actual_cost_mode=actual_cost_mode,
        budget_at_completion=bac,
        planned_value=total_pv.quantize(_MONEY),
        earned_value=total_ev.quantize(_MONEY),
        actual_cost=total_ac.quantize(_MONEY),
        cost_variance=(total_ev - total_ac).quantize(_MONEY),
        schedule_variance=(total_ev - total_pv).quantize(_MONEY),
        cpi=cpi,
        spi=spi,
        estimate_at_completion=eac.quantize(_MONEY),
        estimate_to_complete=(eac - total_ac).quantize(_MONEY),
        variance_at_completion=(bac - eac).quantize(_MONEY),
        tcpi=tcpi,
        projected_finish_date=baseline.finish_date + timedelta(days=slippage),
        schedule_slippage_days=slippage,
        health=health,
        tasks_by_status=TaskStatusCounts(
            completed=counts[TaskStatus.COMPLETED],
            on_track=counts[TaskStatus.ON_TRACK],
            at_risk=counts[TaskStatus.AT_RISK],
            delayed=counts[TaskStatus.DELAYED],
        ),
        task_metrics=tuple(metrics),
        warnings=tuple(warnings),
    )
    logger.info("evm_snapshot_computed", extra={
        "data_date": data_date,
        "earned_value": str(snapshot.earned_value),
        "cpi": str(cpi),
        "spi": str(spi),
        "health": health.value,
    })
    return snapshot


# ---------------------------------------------------------------------------
# S-curve
# ---------------------------------------------------------------------------


@traced_engine(
    "s_curve", "1.0",
    fingerprint_fields=("baseline", "progress", "data_date", "actual_cost_mode"),
)
def generate_s_curve(
    baseline: EvmBaseline,
    progress: Sequence[TaskProgress],
    data_date: date,
    actual_cost_mode: ActualCostMode = ActualCostMode.TRACKED_OR_ESTIMATED,
) -> tuple[SCurvePoint, ...]:
    """
    Cumulative PV/EV/AC at every baseline task boundary.

    The data date is added as a point whenever it is on or after the
    baseline start, so the last earned point matches the snapshot even
    when the data date is past the baseline finish.

    EV and AC of a task accrue linearly from its actual start (else
    baseline start) to its actual finish (else the data date); a task
    without a later actual finish therefore reaches its snapshot EV and AC
    exactly at the data-date point.
    """
    with LogContext.bind(baseline_id=_baseline_id(baseline)):
        return _s_curve(baseline, progress, data_date, actual_cost_mode)


def _s_curve(
    baseline: EvmBaseline,
    progress: Sequence[TaskProgress],
    data_date: date,
    actual_cost_mode: ActualCostMode,
) -> tuple[SCurvePoint, ...]:
    days = {d for t in baseline.tasks for d in (t.start_date, t.finish_date)}
    if baseline.start_date <= data_date:
        days.add(data_date)

    # Warnings are reported by compute_evm_snapshot; ignore them here.
    resolved = _resolve_progress(baseline, progress, [])
    accruals = []
    for bt in baseline.tasks:
        if bt.uid not in resolved:
            continue
        entry, percent = resolved[bt.uid]
        ev = bt.cost * percent / _HUNDRED
        ac = _actual_cost(entry, ev, actual_cost_mode, None)
        begin = entry.actual_start or bt.start_date
        end = entry.actual_finish or data_date
        accruals.append((begin, end, ev, ac))

    points = []
    for day in sorted(days):
        pv = planned_value_at(baseline, day).quantize(_MONEY)
        if day > data_date:
            points.append(SCurvePoint(day=day, planned_value=pv, earned_value=None, actual_cost=None))
            continue
        ev = ac = _ZERO
        for begin, end, task_ev, task_ac in accruals:
            share = _fraction(begin, end, day)
            ev += task_ev * share
            ac += task_ac * share
        points.append(
            SCurvePoint(
                day=day,
                planned_value=pv,
                earned_value=ev.quantize(_MONEY),
                actual_cost=ac.quantize(_MONEY),
            )
        )
    logger.info("s_curve_generated", extra={"point_count": len(points)})
    return tuple(points)
