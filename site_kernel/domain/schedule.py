"""
Schedule value objects.

Responsibility
--------------
The nouns every engine exchanges: dated tasks with their resource lines and
finish-to-start relations, CPM float records, critical-chain buffers, the
aggregated project resources and the ``ProjectSchedule`` that carries them
all to exporters and dashboards.

Architecture position
---------------------
**Kernel > Domain** -- pure data definitions with ZERO I/O.  Produced by
``site_engines.sequencer`` and read (never mutated) by every other engine.
Field names are positional contract for the schedule-file and budget
exporters; keep them stable.

Invariants enforced
-------------------
* All models are ``frozen=True``; collections are tuples.
* Money and hours are ``Decimal`` -- NEVER ``float``.
* Dates are ``datetime.date``; a task occupies ``start <= day < finish``.
* ``ProjectSchedule.total_duration_days == (finish_date - start_date).days``.
* ``ScheduleOptions`` ratios are non-negative and ``safety_reduction`` lies
  in ``[0, 1]``.

Failure modes
-------------
* Construction with invalid values raises ``ValueError``.
* ``ScheduleTask`` does not enforce ``finish >= start``: imported schedules
  may violate it, and the earned-value engine drops such entries with a
  warning rather than refusing the whole schedule.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from site_kernel.domain.diagnostics import ScheduleWarning
from site_kernel.domain.phases import ConstructionPhase


class ResourceType(str, Enum):
    LABOR = "labor"
    MATERIAL = "material"
    EQUIPMENT = "equipment"


@dataclass(frozen=True)
class TaskResource:
    """
    One resource line on a detail task.

    For labor ``units`` is the crew size and ``rate`` the hourly rate; for
    material and equipment ``units`` is the measured quantity and ``rate``
    the per-unit cost.
    """
    resource_type: ResourceType
    name: str
    units: Decimal
    rate: Decimal

    def __post_init__(self) -> None:
        if self.units < 0:
            raise ValueError(f"Resource units must be non-negative: {self.name}")
        if self.rate < 0:
            raise ValueError(f"Resource rate must be non-negative: {self.name}")

    def hours(self, duration_hours: Decimal) -> Decimal:
        """Labor hours consumed over the task; zero for non-labor lines."""
        if self.resource_type is ResourceType.LABOR:
            return duration_hours * self.units
        return Decimal("0")

    def line_cost(self, duration_hours: Decimal) -> Decimal:
        if self.resource_type is ResourceType.LABOR:
            return duration_hours * self.units * self.rate
        return self.units * self.rate


@dataclass(frozen=True)
class TaskRelation:
    """Finish-to-start link. Negative ``lag_days`` is an allowed overlap."""
    predecessor_uid: int
    lag_days: int = 0


@dataclass(frozen=True)
class ScheduleTask:
    """A dated task; summary tasks roll up the detail tasks of one phase."""
    uid: int
    name: str
    phase: ConstructionPhase
    start_date: date
    finish_date: date  # exclusive
    duration_days: int
    duration_hours: Decimal
    cost: Decimal
    resources: tuple[TaskResource, ...] = ()
    is_summary: bool = False
    notes: str = ""
    wbs_code: str | None = None
    predecessors: tuple[TaskRelation, ...] = ()
    storey: str | None = None
    outline_level: int = 2

    def __post_init__(self) -> None:
        if self.duration_days < 0:
            raise ValueError(
                f"duration_days must be non-negative for task {self.uid}"
            )
        if self.cost < 0:
            raise ValueError(f"cost must be non-negative for task {self.uid}")

    @property
    def labor_units(self) -> Decimal:
        """Workers on site while the task is active."""
        return sum(
            (r.units for r in self.resources
             if r.resource_type is ResourceType.LABOR),
            Decimal("0"),
        )

    @property
    def man_hours(self) -> Decimal:
        return sum(
            (r.hours(self.duration_hours) for r in self.resources),
            Decimal("0"),
        )

    def is_active_on(self, day: date) -> bool:
        return self.start_date <= day < self.finish_date

    def shifted(self, days: int) -> ScheduleTask:
        """Copy of this task moved by ``days`` calendar days."""
        delta = timedelta(days=days)
        return replace(
            self,
            start_date=self.start_date + delta,
            finish_date=self.finish_date + delta,
        )


@dataclass(frozen=True)
class TaskFloat:
    """CPM pass results for one task, as day offsets from project start."""
    uid: int
    early_start: int
    early_finish: int
    late_start: int
    late_finish: int
    total_float: int


@dataclass(frozen=True)
class ScheduleOptions:
    """Caller-supplied sequencing options."""
    max_workers: int = 10
    use_critical_chain: bool = False
    safety_reduction: Decimal = Decimal("0.5")
    project_buffer_ratio: Decimal = Decimal("0.5")
    feeding_buffer_ratio: Decimal = Decimal("0.5")

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(
                f"max_workers must be at least 1, got {self.max_workers}"
            )
        if not Decimal("0") <= self.safety_reduction <= Decimal("1"):
            raise ValueError(
                f"safety_reduction must be within [0, 1], "
                f"got {self.safety_reduction}"
            )
        if self.project_buffer_ratio < 0 or self.feeding_buffer_ratio < 0:
            raise ValueError("Buffer ratios must be non-negative")


@dataclass(frozen=True)
class TeamSummary:
    average_workers: Decimal
    max_workers: int
    peak_workers: int
    total_man_hours: Decimal


class BufferType(str, Enum):
    PROJECT = "project"
    FEEDING = "feeding"


class BufferZone(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


@dataclass(frozen=True)
class CriticalChainBuffer:
    """
    A CCPM buffer window.

    Zone and consumption are snapshots as of the date they were computed;
    ``site_engines.critical_chain.buffer_status`` recomputes them for any
    data date.
    """
    uid: int
    buffer_type: BufferType
    name: str
    start_date: date
    finish_date: date
    duration_days: int
    zone: BufferZone = BufferZone.GREEN
    consumed_percent: Decimal = Decimal("0")
    feeding_chain: tuple[int, ...] = ()
    protects_task: int | None = None


@dataclass(frozen=True)
class AggressiveTaskWindow:
    """A detail task's dates after safety has been stripped."""
    uid: int
    start_date: date
    finish_date: date
    duration_days: int
    safe_duration_days: int

    @property
    def removed_safety_days(self) -> int:
        return self.safe_duration_days - self.duration_days


@dataclass(frozen=True)
class CriticalChainData:
    """Result of the critical chain transformation."""
    chain: tuple[int, ...]
    buffers: tuple[CriticalChainBuffer, ...]
    project_buffer: CriticalChainBuffer
    feeding_buffers: tuple[CriticalChainBuffer, ...]
    aggressive_tasks: tuple[AggressiveTaskWindow, ...]
    original_duration_days: int
    aggressive_duration_days: int
    ccpm_duration_days: int
    ccpm_finish_date: date
    safety_reduction_percent: Decimal
    buffer_ratio: Decimal


@dataclass(frozen=True)
class ProjectResource:
    """Project-wide totals for one (name, type, rate) resource."""
    uid: int
    name: str
    resource_type: ResourceType
    rate: Decimal
    total_units: Decimal
    total_hours: Decimal
    total_cost: Decimal
    task_count: int


@dataclass(frozen=True)
class ProjectResources:
    resources: tuple[ProjectResource, ...]
    total_labor_hours: Decimal
    total_labor_cost: Decimal
    total_material_cost: Decimal
    total_equipment_cost: Decimal
    grand_total: Decimal


@dataclass(frozen=True)
class ProjectSchedule:
    """
    A fully dated project schedule.

    ``critical_path`` is the ordered uid chain of zero-float detail tasks
    from project start to project finish.  When critical chain is enabled
    the tasks keep their CPM dates and ``critical_chain`` carries the
    aggressive windows and buffers.
    """
    project_name: str
    start_date: date
    finish_date: date
    tasks: tuple[ScheduleTask, ...]
    total_duration_days: int
    total_cost: Decimal
    team_summary: TeamSummary
    critical_path: tuple[int, ...] = ()
    floats: tuple[TaskFloat, ...] = ()
    critical_chain: CriticalChainData | None = None
    resources: ProjectResources | None = None
    warnings: tuple[ScheduleWarning, ...] = ()

    def __post_init__(self) -> None:
        if self.finish_date < self.start_date:
            raise ValueError(
                f"Schedule finish {self.finish_date} precedes start "
                f"{self.start_date}"
            )
        span = (self.finish_date - self.start_date).days
        if self.total_duration_days != span:
            raise ValueError(
                f"total_duration_days {self.total_duration_days} does not "
                f"match the schedule span of {span} days"
            )

    @property
    def detail_tasks(self) -> tuple[ScheduleTask, ...]:
        return tuple(t for t in self.tasks if not t.is_summary)

    @property
    def summary_tasks(self) -> tuple[ScheduleTask, ...]:
        return tuple(t for t in self.tasks if t.is_summary)

    def task_index(self) -> dict[int, ScheduleTask]:
        """uid -> task arena for the detail and summary tasks."""
        return {t.uid: t for t in self.tasks}

    def float_for(self, uid: int) -> TaskFloat | None:
        for record in self.floats:
            if record.uid == uid:
                return record
        return None
